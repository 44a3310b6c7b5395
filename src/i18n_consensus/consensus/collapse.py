"""Entropy collapse: separate agreed leaves from disputed ones.

``collapse_candidates`` walks the *source* catalog's shape and, for every
string leaf, looks up the value each candidate produced at the same path.

- All N candidates produced the same string → the leaf is **agreed** and
  the value is written to the output tree.
- Anything else → the leaf is **disputed**.  The output holds the
  ``UNRESOLVED`` sentinel and a ``Mismatch`` is recorded.

A candidate that lacks the leaf (or lacks a container above it, or put a
non-string there) votes ``ABSENT``.  An absent vote always forces a
dispute and is recorded in ``Mismatch.missing_in``; it is never silently
dropped from the tally.  There is no majority pick at this stage: even
two-out-of-three agreement defers to the critique loop.

Source values that are neither strings nor mappings (numbers, booleans,
``None``, lists) are not translatable and are copied to the output
unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from i18n_consensus.consensus.tree import ABSENT, Path, TreeBuilder, dotted

logger = logging.getLogger(__name__)

# Written into the output tree wherever a leaf is still disputed.  A plain
# string keeps the tree JSON-serialisable for partial results.
UNRESOLVED = "<<EntropyDetected>>"


@dataclass(frozen=True)
class Mismatch:
    """A disputed leaf and everything known about the dispute.

    Attributes:
        key:          Dotted key path (display form).
        path:         Key path as segments; used to write the leaf back.
        source:       Original source string.
        translations: Distinct values observed so far from candidates and
                      judges, sorted.
        opinions:     Judge rationales accumulated across rounds, in the
                      order they were received.
        result:       Resolved value, or ``None`` while unresolved.
        missing_in:   Indices of candidates that did not provide the leaf.
    """

    key: str
    path: Path
    source: str
    translations: tuple[str, ...] = ()
    opinions: tuple[str, ...] = ()
    result: str | None = None
    missing_in: tuple[int, ...] = field(default=())

    @property
    def is_resolved(self) -> bool:
        return self.result is not None

    def resolve(self, result: str, opinions: Sequence[str] = ()) -> Mismatch:
        return replace(self, result=result, opinions=(*self.opinions, *opinions))

    def carry_over(self, results: Sequence[str], opinions: Sequence[str]) -> Mismatch:
        """Return the mismatch as it enters the next critique round."""
        return replace(
            self,
            translations=tuple(sorted({*self.translations, *results})),
            opinions=(*self.opinions, *opinions),
        )

    def to_payload(self, *, include_opinions: bool) -> dict:
        """Serialise for a judge invocation."""
        payload: dict[str, Any] = {
            "key": self.key,
            "source": self.source,
            "translations": list(self.translations),
        }
        if include_opinions:
            payload["opinions"] = list(self.opinions)
        return payload

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "source": self.source,
            "translations": list(self.translations),
            "opinions": list(self.opinions),
            "result": self.result,
            "missing_in": list(self.missing_in),
        }


@dataclass(frozen=True)
class ConsensusResult:
    """Output of ``collapse_candidates``.

    Attributes:
        out:        Source-shaped tree; agreed leaves hold their value,
                    disputed leaves hold ``UNRESOLVED``.
        mismatches: One ``Mismatch`` per disputed leaf, in source order.
    """

    out: dict
    mismatches: tuple[Mismatch, ...]

    @property
    def is_unanimous(self) -> bool:
        return not self.mismatches


def _child(node: Any, key: str) -> Any:
    if isinstance(node, Mapping) and key in node:
        return node[key]
    return ABSENT


def _collapse_leaf(
    path: Path,
    source_value: str,
    values: Sequence[Any],
    builder: TreeBuilder,
    mismatches: list[Mismatch],
) -> None:
    votes = [value if isinstance(value, str) else ABSENT for value in values]
    missing_in = tuple(index for index, vote in enumerate(votes) if vote is ABSENT)
    distinct = {vote for vote in votes if vote is not ABSENT}

    if not missing_in and len(distinct) == 1:
        builder.set(path, next(iter(distinct)))
        return

    builder.set(path, UNRESOLVED)
    mismatches.append(
        Mismatch(
            key=dotted(path),
            path=path,
            source=source_value,
            translations=tuple(sorted(distinct)),
            missing_in=missing_in,
        )
    )
    if missing_in:
        logger.warning(
            "Key %r missing from candidate(s) %s", dotted(path), ", ".join(map(str, missing_in))
        )


def _collapse_node(
    source: Mapping,
    candidates: Sequence[Any],
    path: Path,
    builder: TreeBuilder,
    mismatches: list[Mismatch],
) -> None:
    for key, source_value in source.items():
        child_path = (*path, str(key))
        children = [_child(candidate, key) for candidate in candidates]

        if isinstance(source_value, Mapping):
            builder.ensure(child_path)
            # Candidates without a container here pass ABSENT down, so every
            # leaf below is disputed for them.
            _collapse_node(source_value, children, child_path, builder, mismatches)
        elif isinstance(source_value, str):
            _collapse_leaf(child_path, source_value, children, builder, mismatches)
        else:
            builder.set(child_path, source_value)


def collapse_candidates(source: Mapping, candidates: Sequence[Mapping]) -> ConsensusResult:
    """Diff N candidate trees against the source shape.

    Args:
        source:     The source catalog; authoritative for which paths exist.
        candidates: Candidate trees, one per oracle generation.

    Returns:
        ``ConsensusResult`` with the partially filled output tree and the
        list of disputed leaves.

    Raises:
        ValueError: If ``candidates`` is empty.
    """
    if not candidates:
        raise ValueError("collapse_candidates requires at least one candidate")

    builder = TreeBuilder()
    mismatches: list[Mismatch] = []
    _collapse_node(source, list(candidates), (), builder, mismatches)

    logger.info(
        "Entropy collapse over %d candidates: %d disputed leaves",
        len(candidates),
        len(mismatches),
    )
    return ConsensusResult(out=builder.build(), mismatches=tuple(mismatches))
