"""Consensus translation pipeline.

``ConsensusTranslationService`` is the single public entry-point of the
consensus engine.  It orchestrates ``validate_source``,
``RetryingOracleClient``, ``collapse_candidates`` and
``resolve_mismatches`` to turn one source catalog into one target-language
catalog.

Caller contract
---------------
``translate()`` either raises a fatal error or returns a
``TranslationResult``:

- ``SourceSelfInvalidError`` — the source failed its own structural
  self-check.  Raised before any oracle call.
- ``MaxAttemptsExceededError`` — one candidate or judge exhausted its
  attempt budget.  The whole parallel group is cancelled.
- A ``TranslationResult`` otherwise.  Keys the judges did not agree on
  within ``max_rounds`` are returned in ``residual`` and hold the
  ``UNRESOLVED`` sentinel in ``output``.  A non-empty residual is a normal
  outcome that needs human review, not an error.

Concurrency
-----------
The N candidate generations run concurrently and are joined before the
collapse; each critique round's K judges likewise.  No stage consumes
partial results of the previous one.  All tree walking and vote
aggregation is synchronous, after the join, on data owned by this call.

Progress
--------
When constructed with an ``EventBus`` the service emits ``run:*`` and
``consensus:collapsed`` events, and passes the bus down so that retry and
critique events are emitted too.  The result objects are immutable
snapshots; observers never read shared mutable state.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from i18n_consensus.consensus.collapse import ConsensusResult, Mismatch, collapse_candidates
from i18n_consensus.consensus.critique import CritiqueOutcome, resolve_mismatches
from i18n_consensus.consensus.fanout import gather_all
from i18n_consensus.consensus.features import FeatureSet
from i18n_consensus.consensus.retry import RetryingOracleClient
from i18n_consensus.consensus.validator import validate_source
from i18n_consensus.core.bus import EventBus
from i18n_consensus.core.events import Events
from i18n_consensus.errors import ConsensusError
from i18n_consensus.oracle.base import Oracle, Verdict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsensusSettings:
    """Voting and retry parameters for one pipeline.

    Attributes:
        candidates:   N, independent candidate translations per run.
        judges:       K, independent judges per critique round.
        max_attempts: Attempt budget of every single oracle invocation.
        max_rounds:   Upper bound on critique rounds; ``0`` disables
                      critique so every disputed leaf becomes residual.
    """

    candidates: int = 3
    judges: int = 3
    max_attempts: int = 3
    max_rounds: int = 3

    def __post_init__(self) -> None:
        if self.candidates < 1:
            raise ValueError("candidates must be >= 1")
        if self.judges < 1:
            raise ValueError("judges must be >= 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.max_rounds < 0:
            raise ValueError("max_rounds must be >= 0")

    @classmethod
    def from_dict(cls, data: Mapping) -> ConsensusSettings:
        """Parse an options block.

        Accepts both ``snake_case`` keys (INI files) and the ``camelCase``
        keys used in a ``package.json`` block.  Missing fields keep their
        defaults.
        """
        defaults = cls()

        def pick(snake: str, camel: str, default: int) -> int:
            if snake in data:
                return int(data[snake])
            if camel in data:
                return int(data[camel])
            return default

        return cls(
            candidates=pick("candidates", "candidates", defaults.candidates),
            judges=pick("judges", "judges", defaults.judges),
            max_attempts=pick("max_attempts", "maxAttempts", defaults.max_attempts),
            max_rounds=pick("max_rounds", "maxRounds", defaults.max_rounds),
        )


@dataclass(frozen=True)
class TranslationResult:
    """Immutable snapshot of one completed pipeline run.

    Attributes:
        language:   Target language.
        output:     Final tree.  Unresolved leaves hold ``UNRESOLVED``.
        residual:   Mismatches still disputed after the critique budget.
        consensus:  Snapshot after entropy collapse.
        critique:   Terminal state of the critique loop.
        candidates: The N accepted candidate trees, in slot order.
    """

    language: str
    output: dict
    residual: tuple[Mismatch, ...]
    consensus: ConsensusResult
    critique: CritiqueOutcome
    candidates: tuple[dict, ...]

    @property
    def is_complete(self) -> bool:
        """``True`` when every leaf converged."""
        return not self.residual

    @property
    def unresolved_keys(self) -> list[str]:
        return [mismatch.key for mismatch in self.residual]


class ConsensusTranslationService:
    """Runs the full consensus pipeline against one ``Oracle``.

    Attributes:
        _oracle:   The generation backend.
        _settings: Frozen voting parameters.
        _client:   Retry/validation wrapper around ``_oracle``.
        _bus:      Optional event bus.
    """

    def __init__(
        self,
        oracle: Oracle,
        settings: ConsensusSettings | None = None,
        *,
        bus: EventBus | None = None,
    ) -> None:
        self._oracle = oracle
        self._settings = settings or ConsensusSettings()
        self._bus = bus
        self._client = RetryingOracleClient(
            oracle, max_attempts=self._settings.max_attempts, bus=bus
        )
        logger.info(
            "ConsensusTranslationService initialised "
            "(candidates=%d, judges=%d, max_attempts=%d, max_rounds=%d)",
            self._settings.candidates,
            self._settings.judges,
            self._settings.max_attempts,
            self._settings.max_rounds,
        )

    @property
    def settings(self) -> ConsensusSettings:
        return self._settings

    # ── Public API ────────────────────────────────────────────────────────────

    async def translate(self, source: dict, language: str) -> TranslationResult:
        """Translate ``source`` into ``language`` by multi-candidate consensus.

        Full pipeline:

        1. Self-check the source and build its ``FeatureSet``.
        2. Generate N candidates concurrently, each validated and retried.
        3. Entropy collapse: agreed leaves are written, disputed ones recorded.
        4. Critique rounds over the disputed set with K judges.

        Args:
            source:   Source catalog (nested mapping, string leaves).
            language: Target language name or code, passed to the oracle.

        Returns:
            ``TranslationResult`` snapshot.

        Raises:
            SourceSelfInvalidError:   Step 1 failed.  No oracle call made.
            MaxAttemptsExceededError: A candidate or judge slot exhausted
                                      its attempts.
        """
        settings = self._settings
        self._emit(
            Events.RUN_STARTED,
            {
                "language": language,
                "candidates": settings.candidates,
                "judges": settings.judges,
                "max_rounds": settings.max_rounds,
            },
        )

        try:
            result = await self._run(source, language)
        except ConsensusError as exc:
            logger.error("Translation to %s failed: %s", language, exc)
            self._emit(Events.RUN_FAILED, {"language": language, "error": str(exc)})
            raise

        self._emit(
            Events.RUN_COMPLETED,
            {
                "language": language,
                "resolved": len(result.critique.resolved),
                "residual": len(result.residual),
                "complete": result.is_complete,
            },
        )
        logger.info(
            "Translation to %s finished: %d disputed, %d resolved by critique, %d residual",
            language,
            len(result.consensus.mismatches),
            len(result.critique.resolved),
            len(result.residual),
        )
        return result

    # ── Internal helpers ──────────────────────────────────────────────────────

    async def _run(self, source: dict, language: str) -> TranslationResult:
        settings = self._settings

        # ── Step 1: Pre-flight self check ─────────────────────────────────────
        reference = validate_source(source)
        self._emit(Events.SOURCE_VALIDATED, {"language": language, "keys": len(reference)})

        # ── Step 2: N candidates, concurrently ────────────────────────────────
        candidates = await gather_all(
            self._client.translate_with_retry(source, language, reference, slot=slot)
            for slot in range(settings.candidates)
        )

        # ── Step 3: Entropy collapse ──────────────────────────────────────────
        consensus = collapse_candidates(source, candidates)
        self._emit(
            Events.CONSENSUS_COLLAPSED,
            {
                "candidates": len(candidates),
                "disputed": [mismatch.key for mismatch in consensus.mismatches],
            },
        )

        # ── Step 4: Critique rounds ───────────────────────────────────────────
        critique = await resolve_mismatches(
            consensus.mismatches,
            self._judge_invoker(language, reference),
            settings.max_rounds,
            judges=settings.judges,
            base=consensus.out,
            bus=self._bus,
        )

        return TranslationResult(
            language=language,
            output=critique.resolved_out,
            residual=critique.residual,
            consensus=consensus,
            critique=critique,
            candidates=tuple(candidates),
        )

    def _judge_invoker(self, language: str, reference: FeatureSet):
        async def invoke(payload: list[dict], judge: int) -> dict[str, Verdict]:
            return await self._client.critique_with_retry(
                payload, language, reference, judge=judge
            )

        return invoke

    def _emit(self, event_type: str, detail: dict) -> None:
        if self._bus is not None:
            self._bus.emit(event_type, detail, source="service")
