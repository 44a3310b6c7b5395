"""Critique convergence loop: resolve disputed leaves by independent judges.

State machine
-------------
Round 0
    The ``mismatches`` left by ``collapse_candidates``.
Dispatch
    K judges are invoked concurrently, each with the full disputed-set
    payload: key, source string and the distinct values seen so far.  From
    round 2 on the payload also carries every opinion given in earlier
    rounds.
Aggregate
    Per key, the K ``result`` values form a set.  Exactly one member →
    resolved, merged into the output tree at its path.  Otherwise the
    mismatch stays disputed: the judges' opinions are appended and their
    results join ``translations`` for the next round.
Terminate
    After ``max_rounds`` rounds or as soon as nothing is disputed.  Keys
    still disputed are returned as the *residual*.  Running out of rounds
    is a normal outcome ("needs a human"), not an error.

Aggregation depends only on which values were returned, never on which
judge finished first.  Judge failures are handled inside the invoker
(bounded retry); an exhausted judge aborts the round as a unit.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from i18n_consensus.consensus.collapse import Mismatch
from i18n_consensus.consensus.fanout import gather_all
from i18n_consensus.consensus.tree import ABSENT, merge
from i18n_consensus.core.bus import EventBus
from i18n_consensus.core.events import Events

if TYPE_CHECKING:
    from i18n_consensus.oracle.base import Verdict

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 3

# One independent judge invocation: (payload, judge_index) -> verdicts by key.
JudgeInvoker = Callable[[list[dict], int], Awaitable[Mapping[str, "Verdict"]]]


@dataclass(frozen=True)
class CritiqueOutcome:
    """Terminal state of the critique loop.

    Attributes:
        resolved_out: Output tree with every resolved leaf merged in.  Keys
                      still disputed keep whatever the base tree held there
                      (normally the ``UNRESOLVED`` sentinel).
        residual:     Mismatches still disputed after the last round.
        resolved:     Mismatches resolved by the judges, ``result`` set.
        rounds:       Number of rounds actually run.
    """

    resolved_out: dict
    residual: tuple[Mismatch, ...]
    resolved: tuple[Mismatch, ...]
    rounds: int

    @property
    def is_converged(self) -> bool:
        return not self.residual


def aggregate_votes(
    mismatches: Sequence[Mismatch],
    verdict_sets: Sequence[Mapping[str, Verdict]],
) -> tuple[list[Mismatch], list[Mismatch]]:
    """Split mismatches into resolved and still-disputed after one round.

    Args:
        mismatches:   The disputed set the judges were shown.
        verdict_sets: One mapping per judge, dotted key → ``Verdict``.

    Returns:
        ``(resolved, disputed)``.  A key without a verdict from some judge
        can never be resolved in that round.
    """
    resolved: list[Mismatch] = []
    disputed: list[Mismatch] = []

    for mismatch in mismatches:
        verdicts = [verdict_set.get(mismatch.key) for verdict_set in verdict_sets]
        results = [verdict.result if verdict is not None else ABSENT for verdict in verdicts]
        opinions = [verdict.opinion for verdict in verdicts if verdict is not None]
        distinct = sorted({result for result in results if result is not ABSENT})

        if results and ABSENT not in results and len(distinct) == 1:
            resolved.append(mismatch.resolve(distinct[0], opinions))
        else:
            disputed.append(mismatch.carry_over(distinct, opinions))

    return resolved, disputed


async def resolve_mismatches(
    mismatches: Sequence[Mismatch],
    judge_invoker: JudgeInvoker,
    max_rounds: int = DEFAULT_MAX_ROUNDS,
    *,
    judges: int = 3,
    base: Mapping | None = None,
    bus: EventBus | None = None,
) -> CritiqueOutcome:
    """Run bounded critique rounds over the disputed set.

    Args:
        mismatches:    Disputed leaves from ``collapse_candidates``.
        judge_invoker: Coroutine function performing one judge invocation.
        max_rounds:    Upper bound on rounds; ``0`` skips critique entirely.
        judges:        K, the number of judges per round.
        base:          Tree to merge resolved leaves into (normally
                       ``ConsensusResult.out``).  Not mutated.
        bus:           Optional event bus for progress events.

    Returns:
        ``CritiqueOutcome`` with the merged tree and the residual.
    """
    if max_rounds < 0:
        raise ValueError("max_rounds must be >= 0")
    if judges < 1:
        raise ValueError("judges must be >= 1")

    disputed = list(mismatches)
    resolved: list[Mismatch] = []
    rounds = 0

    for round_number in range(1, max_rounds + 1):
        if not disputed:
            break

        payload = [m.to_payload(include_opinions=round_number >= 2) for m in disputed]
        logger.info(
            "Critique round %d/%d: %d disputed keys, %d judges",
            round_number,
            max_rounds,
            len(disputed),
            judges,
        )
        verdict_sets = await gather_all(
            judge_invoker(copy.deepcopy(payload), judge) for judge in range(judges)
        )

        newly_resolved, disputed = aggregate_votes(disputed, verdict_sets)
        resolved.extend(newly_resolved)
        rounds = round_number

        for mismatch in newly_resolved:
            logger.info("Resolved %r -> %r in round %d", mismatch.key, mismatch.result, rounds)
        if bus is not None:
            bus.emit(
                Events.CRITIQUE_ROUND_COMPLETED,
                {
                    "round": round_number,
                    "resolved": [m.key for m in newly_resolved],
                    "disputed": [m.key for m in disputed],
                },
                source="critique",
            )

    if disputed:
        logger.warning(
            "%d keys still disputed after %d rounds: %s",
            len(disputed),
            rounds,
            ", ".join(m.key for m in disputed),
        )

    resolved_out = merge(base or {}, ((m.path, m.result) for m in resolved))
    return CritiqueOutcome(
        resolved_out=resolved_out,
        residual=tuple(disputed),
        resolved=tuple(resolved),
        rounds=rounds,
    )
