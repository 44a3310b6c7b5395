"""Bounded-retry wrapper around single oracle invocations.

``RetryingOracleClient`` is the acceptance gate between the oracle and the
vote.  Every attempt is checked structurally before it is allowed to count:

Candidate attempt (``translate_with_retry``)
--------------------------------------------
1. ``oracle.generate`` — transport and parse failures are retryable.
2. ``validate_against`` the source ``FeatureSet`` — any error rejects the
   attempt; every error is logged.
3. Accepted → the tree is returned.

Judge attempt (``critique_with_retry``)
---------------------------------------
1. ``oracle.critique`` — transport and parse failures are retryable.
2. Coverage — a verdict must exist for every disputed key, and its
   ``result`` may not be the ``UNRESOLVED`` placeholder.
3. Structure — every verdict ``result`` must carry the same placeholders,
   nesting references, tags and plural status as the source string at that
   key (``compare_features``).  A judge cannot vote for a value that no
   candidate would have been allowed to produce.
4. Accepted → verdicts are returned keyed by dotted path.

Exhausting ``max_attempts`` raises ``MaxAttemptsExceededError``.  The caller
treats that as fatal for the whole parallel group rather than continuing
with fewer voters.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import TYPE_CHECKING, TypeVar

from i18n_consensus.consensus.collapse import UNRESOLVED
from i18n_consensus.consensus.features import FeatureSet, extract_string_features
from i18n_consensus.consensus.validator import (
    ValidationError,
    ValidationErrorKind,
    compare_features,
    validate_against,
)
from i18n_consensus.core.bus import EventBus
from i18n_consensus.core.events import Events
from i18n_consensus.errors import (
    MaxAttemptsExceededError,
    OracleError,
    StructuralMismatchError,
)

if TYPE_CHECKING:
    from i18n_consensus.oracle.base import Oracle, Verdict

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3

T = TypeVar("T")


class RetryingOracleClient:
    """Wraps an ``Oracle`` with validation and bounded retry.

    Attributes:
        _oracle:       The external collaborator.
        _max_attempts: Default attempt budget per invocation.
        _bus:          Optional event bus for progress events.
    """

    def __init__(
        self,
        oracle: Oracle,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        bus: EventBus | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._oracle = oracle
        self._max_attempts = max_attempts
        self._bus = bus

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    # ── Public API ────────────────────────────────────────────────────────────

    async def translate_with_retry(
        self,
        source: dict,
        language: str,
        reference: FeatureSet,
        *,
        max_attempts: int | None = None,
        slot: int = 0,
    ) -> dict:
        """Obtain one structurally valid candidate translation.

        Args:
            source:       Source catalog.
            language:     Target language passed to the oracle.
            reference:    ``FeatureSet`` of the source.
            max_attempts: Override of the client default.
            slot:         Candidate index, used in logs and events.

        Returns:
            The accepted candidate tree.

        Raises:
            MaxAttemptsExceededError: Every attempt failed.
        """

        async def attempt() -> dict:
            candidate = await self._oracle.generate(source, language)
            errors = validate_against(reference, candidate)
            if errors:
                raise StructuralMismatchError(errors)
            return candidate

        return await self._run(
            attempt,
            role="candidate",
            slot=slot,
            max_attempts=max_attempts or self._max_attempts,
            accepted_event=Events.CANDIDATE_ACCEPTED,
            rejected_event=Events.CANDIDATE_REJECTED,
        )

    async def critique_with_retry(
        self,
        disputed: Sequence[Mapping],
        language: str,
        reference: FeatureSet,
        *,
        judge: int = 0,
        max_attempts: int | None = None,
    ) -> dict[str, Verdict]:
        """Obtain one judge's complete, structurally valid set of verdicts.

        Args:
            disputed:     Judge payload; each item has at least ``key`` and
                          ``source``.
            language:     Target language passed to the oracle.
            reference:    ``FeatureSet`` of the source.
            judge:        Judge index, used in logs and events.
            max_attempts: Override of the client default.

        Returns:
            Verdicts keyed by dotted key path, one per disputed key.

        Raises:
            MaxAttemptsExceededError: Every attempt failed.
        """
        items = [dict(item) for item in disputed]

        async def attempt() -> dict[str, Verdict]:
            verdicts = await self._oracle.critique(items, language)
            by_key = {verdict.key: verdict for verdict in verdicts}
            errors = check_verdicts(items, by_key, reference)
            if errors:
                raise StructuralMismatchError(errors)
            return {item["key"]: by_key[item["key"]] for item in items}

        return await self._run(
            attempt,
            role="judge",
            slot=judge,
            max_attempts=max_attempts or self._max_attempts,
            accepted_event=Events.JUDGE_ACCEPTED,
            rejected_event=Events.JUDGE_REJECTED,
        )

    # ── Internal helpers ──────────────────────────────────────────────────────

    async def _run(
        self,
        attempt: Callable[[], Awaitable[T]],
        *,
        role: str,
        slot: int,
        max_attempts: int,
        accepted_event: str,
        rejected_event: str,
    ) -> T:
        last_error: Exception | None = None
        for number in range(1, max_attempts + 1):
            try:
                result = await attempt()
            except StructuralMismatchError as exc:
                last_error = exc
                logger.warning(
                    "%s %d attempt %d/%d rejected with %d structural errors",
                    role,
                    slot,
                    number,
                    max_attempts,
                    len(exc.errors),
                )
                for error in exc.errors:
                    logger.warning("  %s %d: %s", role, slot, error)
                self._emit(rejected_event, role, slot, number, "structural", exc.errors)
            except OracleError as exc:
                last_error = exc
                logger.warning(
                    "%s %d attempt %d/%d failed: %s", role, slot, number, max_attempts, exc
                )
                self._emit(rejected_event, role, slot, number, type(exc).__name__, [])
            else:
                logger.info("%s %d accepted on attempt %d", role, slot, number)
                self._emit(accepted_event, role, slot, number)
                return result

        logger.error("%s %d: max attempts (%d) reached, aborting", role, slot, max_attempts)
        raise MaxAttemptsExceededError(
            role=role, slot=slot, attempts=max_attempts, last_error=last_error
        )

    def _emit(
        self,
        event_type: str,
        role: str,
        slot: int,
        attempt: int,
        reason: str | None = None,
        errors: Sequence[ValidationError] = (),
    ) -> None:
        if self._bus is None:
            return
        detail: dict = {"judge" if role == "judge" else "slot": slot, "attempt": attempt}
        if reason is not None:
            detail["reason"] = reason
            detail["errors"] = [str(error) for error in errors]
        self._bus.emit(event_type, detail, source="retry")


def check_verdicts(
    disputed: Sequence[Mapping],
    verdicts: Mapping[str, Verdict],
    reference: FeatureSet,
) -> list[ValidationError]:
    """Structural acceptance check for one judge's verdicts.

    A missing verdict, or one whose result is the ``UNRESOLVED`` placeholder,
    is reported as ``MISSING_KEY``.  Each verdict result is
    fingerprinted as if it were the leaf at that key and compared with the
    source's fingerprint.
    """
    errors: list[ValidationError] = []
    for item in disputed:
        key = item["key"]
        verdict = verdicts.get(key)
        if verdict is None or verdict.result == UNRESOLVED:
            errors.append(ValidationError(key=key, kind=ValidationErrorKind.MISSING_KEY))
            continue
        expected = reference.get(key)
        if expected is None:
            expected = extract_string_features(item.get("source", ""), key)
        errors.extend(compare_features(key, expected, extract_string_features(verdict.result, key)))
    return errors
