"""Consensus engine: structure-preserving translation from a noisy oracle.

An LLM asked to translate the same catalog twice rarely gives the same
answer twice, and now and then drops a ``{{count}}`` or renames a
``<bold>`` tag.  This package turns several such answers into one
catalog whose machine-meaningful substructure matches the source.

Package structure
-----------------
features.py   ``build_feature_set``: structural fingerprint of every
              string leaf (placeholders, ``$t()`` references, tags, plural
              suffix, length).
validator.py  ``validate_against``: compare a tree with a fingerprint and
              report every deviation.
tree.py       Tuple key paths and ``TreeBuilder`` for fresh output trees.
collapse.py   ``collapse_candidates``: split leaves into agreed and
              disputed.
retry.py      ``RetryingOracleClient``: one oracle call, validated, with a
              bounded attempt budget.
critique.py   ``resolve_mismatches``: bounded rounds of independent judges
              voting on disputed leaves.
fanout.py     ``gather_all``: fail-fast concurrent join.
service.py    ``ConsensusTranslationService``: the pipeline entry-point.

Typical call flow
-----------------
1. ``validate_source`` builds the reference fingerprint (fatal if the
   source is not self-consistent).
2. N candidates are generated concurrently; each must pass the
   fingerprint check before it may vote.
3. ``collapse_candidates`` keeps unanimous leaves and records the rest.
4. ``resolve_mismatches`` asks K judges per round until every key is
   agreed or the round budget runs out.
5. Still-disputed keys are returned as the residual for human review.
"""

from i18n_consensus.consensus.collapse import (
    UNRESOLVED,
    ConsensusResult,
    Mismatch,
    collapse_candidates,
)
from i18n_consensus.consensus.critique import CritiqueOutcome, aggregate_votes, resolve_mismatches
from i18n_consensus.consensus.features import (
    FeatureSet,
    StringFeatures,
    build_feature_set,
    extract_string_features,
)
from i18n_consensus.consensus.retry import RetryingOracleClient
from i18n_consensus.consensus.service import (
    ConsensusSettings,
    ConsensusTranslationService,
    TranslationResult,
)
from i18n_consensus.consensus.validator import (
    ValidationError,
    ValidationErrorKind,
    validate_against,
    validate_source,
)

__all__ = [
    "UNRESOLVED",
    "ConsensusResult",
    "ConsensusSettings",
    "ConsensusTranslationService",
    "CritiqueOutcome",
    "FeatureSet",
    "Mismatch",
    "RetryingOracleClient",
    "StringFeatures",
    "TranslationResult",
    "ValidationError",
    "ValidationErrorKind",
    "aggregate_votes",
    "build_feature_set",
    "collapse_candidates",
    "extract_string_features",
    "resolve_mismatches",
    "validate_against",
    "validate_source",
]
