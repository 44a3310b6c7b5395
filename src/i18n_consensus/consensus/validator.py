"""Structural validator for candidate translations.

``validate_against`` checks every string leaf of a candidate tree against
a reference ``FeatureSet`` (normally the source catalog's) and reports
every structural deviation.  An empty list means the candidate is
structurally acceptable and may take part in consensus voting.

Checks (applied per reference key, in order)
--------------------------------------------
1. **Missing key** — the candidate has no string leaf at the path.
   Paths are compared segment by segment, so a candidate that flattens
   ``{"about": {"date": ...}}`` into ``{"about.date": ...}`` (or nests a
   flat key) is missing that key.  No further checks run for that key.
2. **Interpolations** — the set of ``{{name}}`` / ``{name}`` placeholders.
3. **Nesting** — the set of ``$t(...)`` references.
4. **Tags** — the set of markup tag names.
5. **Plural** — the ``_one`` / ``_other`` / ``_zero`` suffix status.

All errors are collected; validation is never fail-fast so that a caller
can report every defect of an attempt in one pass.  Keys present in the
candidate but absent from the reference are not reported: extra keys never
reach the output because consensus walks the source's shape.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from i18n_consensus.consensus.features import (
    FeatureSet,
    StringFeatures,
    build_feature_set,
    extract_string_features,
    find_duplicate_paths,
)
from i18n_consensus.consensus.tree import lookup
from i18n_consensus.errors import SourceSelfInvalidError

logger = logging.getLogger(__name__)


class ValidationErrorKind(enum.Enum):
    """Kinds of structural deviation."""

    MISSING_KEY = "MissingKey"
    INTERPOLATION_MISMATCH = "InterpolationMismatch"
    NESTING_MISMATCH = "NestingMismatch"
    TAG_MISMATCH = "TagMismatch"
    PLURAL_MISMATCH = "PluralMismatch"
    DUPLICATE_KEY = "DuplicateKey"


@dataclass(frozen=True)
class ValidationError:
    """One structural deviation found at a key path.

    Attributes:
        key:      Dotted key path.
        kind:     What kind of deviation.
        expected: Reference value (sorted tuple or bool); ``None`` for
                  ``MISSING_KEY``.
        actual:   Candidate value; ``None`` for ``MISSING_KEY``.
    """

    key: str
    kind: ValidationErrorKind
    expected: Any = None
    actual: Any = None

    def __str__(self) -> str:
        if self.kind in (ValidationErrorKind.MISSING_KEY, ValidationErrorKind.DUPLICATE_KEY):
            return f"{self.key}: {self.kind.value}"
        return f"{self.key}: {self.kind.value} (expected {self.expected!r}, got {self.actual!r})"

    def to_dict(self) -> dict:
        def _plain(value: Any) -> Any:
            return list(value) if isinstance(value, tuple) else value

        return {
            "key": self.key,
            "kind": self.kind.value,
            "expected": _plain(self.expected),
            "actual": _plain(self.actual),
        }


_SET_FIELDS: tuple[tuple[str, ValidationErrorKind], ...] = (
    ("interpolations", ValidationErrorKind.INTERPOLATION_MISMATCH),
    ("nesting", ValidationErrorKind.NESTING_MISMATCH),
    ("trans_tags", ValidationErrorKind.TAG_MISMATCH),
)


def compare_features(
    key: str, expected: StringFeatures, actual: StringFeatures
) -> list[ValidationError]:
    """Compare two signatures for the same key.

    ``raw_length`` is deliberately not compared; translations legitimately
    change length.
    """
    errors: list[ValidationError] = []
    for field_name, kind in _SET_FIELDS:
        want = getattr(expected, field_name)
        got = getattr(actual, field_name)
        if want != got:
            errors.append(ValidationError(key=key, kind=kind, expected=want, actual=got))

    if expected.has_plural != actual.has_plural:
        errors.append(
            ValidationError(
                key=key,
                kind=ValidationErrorKind.PLURAL_MISMATCH,
                expected=expected.has_plural,
                actual=actual.has_plural,
            )
        )
    return errors


def validate_against(reference: FeatureSet, tree: Mapping) -> list[ValidationError]:
    """Validate a candidate tree against a reference ``FeatureSet``.

    Args:
        reference: Fingerprint of the source catalog.
        tree:      Candidate tree to check.

    Returns:
        Every ``ValidationError`` found, in reference key order.  Empty when
        the candidate is structurally acceptable.
    """
    errors: list[ValidationError] = []

    for key, expected in reference.items():
        value = lookup(tree, reference.paths[key])
        if not isinstance(value, str):
            errors.append(ValidationError(key=key, kind=ValidationErrorKind.MISSING_KEY))
            continue
        errors.extend(compare_features(key, expected, extract_string_features(value, key)))

    if errors:
        logger.debug("Validation found %d errors: %s", len(errors), [str(e) for e in errors])
    return errors


def validate_source(source: Mapping) -> FeatureSet:
    """Pre-flight self-check of the source catalog.

    Builds the reference ``FeatureSet`` and validates the source against it.
    Also rejects catalogs where a flat dotted key and a nested path name the
    same leaf (``DUPLICATE_KEY``), since the two leaves would share one
    fingerprint.  Runs before any oracle call.

    Returns:
        The reference ``FeatureSet``.

    Raises:
        SourceSelfInvalidError: If the source is not self-consistent.
    """
    reference = build_feature_set(source)
    errors = [
        ValidationError(key=key, kind=ValidationErrorKind.DUPLICATE_KEY)
        for key in find_duplicate_paths(source)
    ]
    errors.extend(validate_against(reference, source))
    if errors:
        logger.error("Source catalog failed its self-check with %d errors", len(errors))
        raise SourceSelfInvalidError(errors)
    logger.info("Source catalog validated: %d keys", len(reference))
    return reference
