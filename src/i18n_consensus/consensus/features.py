"""Structural fingerprinting of localization strings.

``build_feature_set`` walks a nested catalog and records, for every string
leaf, the machine-meaningful substructure a translation must preserve:

interpolations
    Placeholder names from both ``{{ name }}`` and ``{ name }`` syntaxes,
    merged into one sorted, de-duplicated tuple.
nesting
    Expressions referenced through ``$t( expr )``.
trans_tags
    Markup tag names; ``<b>`` and ``</b>`` collapse to ``"b"``.
has_plural
    Whether the *key path* (not the value) ends with ``_one``, ``_other``
    or ``_zero``.
raw_length
    Character count of the value.  Informational only; never compared.

Only string leaves produce entries.  Numbers, booleans, ``None`` and lists
are ignored.  The function is pure: the same tree always yields an equal
``FeatureSet``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import asdict, dataclass

from i18n_consensus.consensus.tree import Path, dotted

logger = logging.getLogger(__name__)

_DOUBLE_BRACE = re.compile(r"\{\{\s*([\w.-]+)\s*\}\}")
_SINGLE_BRACE = re.compile(r"\{\s*([\w.-]+)\s*\}")
_NESTING = re.compile(r"\$t\(\s*([^)]+?)\s*\)")
_TRANS_TAG = re.compile(r"</?([A-Za-z][\w-]*)>")
_PLURAL_SUFFIX = re.compile(r"(?:_one|_other|_zero)$")


@dataclass(frozen=True)
class StringFeatures:
    """Structural signature of a single localizable string.

    All tuple fields are sorted and unique so that two signatures can be
    compared with ``==`` regardless of the order in which matches appeared.
    """

    interpolations: tuple[str, ...]
    nesting: tuple[str, ...]
    trans_tags: tuple[str, ...]
    has_plural: bool
    raw_length: int

    def to_dict(self) -> dict:
        data = asdict(self)
        for name in ("interpolations", "nesting", "trans_tags"):
            data[name] = list(data[name])
        return data


class FeatureSet(dict[str, StringFeatures]):
    """Dotted key path to ``StringFeatures``.

    ``paths`` keeps the segments each dotted key came from, so that
    ``{"about": {"date": ...}}`` and ``{"about.date": ...}`` stay distinct
    when a candidate is checked against this set.
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.paths: dict[str, Path] = {}

    def record(self, path: Path, features: StringFeatures) -> None:
        key = dotted(path)
        self[key] = features
        self.paths[key] = path


def _unique_sorted(*groups: list[str]) -> tuple[str, ...]:
    return tuple(sorted({match for group in groups for match in group}))


def extract_string_features(value: str, key_path: str) -> StringFeatures:
    """Compute the structural signature of one string leaf.

    Args:
        value:    The string value.
        key_path: Dotted key path of the leaf; used for plural detection.
    """
    return StringFeatures(
        interpolations=_unique_sorted(
            _DOUBLE_BRACE.findall(value),
            _SINGLE_BRACE.findall(value),
        ),
        nesting=_unique_sorted(_NESTING.findall(value)),
        trans_tags=_unique_sorted(_TRANS_TAG.findall(value)),
        has_plural=bool(_PLURAL_SUFFIX.search(key_path)),
        raw_length=len(value),
    )


def _collect(node: Mapping, path: tuple[str, ...], acc: FeatureSet) -> None:
    for key, value in node.items():
        child_path = (*path, str(key))
        if isinstance(value, str):
            acc.record(child_path, extract_string_features(value, dotted(child_path)))
        elif isinstance(value, Mapping):
            _collect(value, child_path, acc)


def build_feature_set(tree: Mapping) -> FeatureSet:
    """Build the ``FeatureSet`` of a nested catalog.

    Recurses depth-first in the tree's own key order.  Keys of the result
    are dotted paths (``"about.buildnumber"``); ``paths`` maps each one
    back to its segments.

    Args:
        tree: Nested mapping with string leaves.

    Returns:
        ``FeatureSet`` of dotted key path to ``StringFeatures``.
    """
    acc = FeatureSet()
    _collect(tree, (), acc)
    logger.debug("Extracted features for %d keys", len(acc))
    return acc


def find_duplicate_paths(tree: Mapping) -> list[str]:
    """Return dotted paths that more than one string leaf maps to.

    ``{"a.b": "x", "a": {"b": "y"}}`` produces ``["a.b"]``: both leaves
    would share one ``FeatureSet`` entry and one could never be validated.
    """
    seen: set[str] = set()
    duplicates: list[str] = []

    def _walk(node: Mapping, path: tuple[str, ...]) -> None:
        for key, value in node.items():
            child_path = (*path, str(key))
            if isinstance(value, str):
                key_path = dotted(child_path)
                if key_path in seen and key_path not in duplicates:
                    duplicates.append(key_path)
                seen.add(key_path)
            elif isinstance(value, Mapping):
                _walk(value, child_path)

    _walk(tree, ())
    return duplicates
