"""Typed exceptions for the consensus engine and its oracle collaborator.

This module defines the small, explicit exception hierarchy the pipeline
uses to signal failures that must abort a run or drive a retry.

Design intent:
    - Disagreement between candidates or judges is *not* an error.  Disputed
      leaves travel as ``Mismatch`` records and unresolved keys are returned
      as the run's residual.  Nothing in this module is raised for them.
    - Fatal failures carry enough structured context (key path, expected vs.
      actual) to diagnose the problem without re-running the oracle.
    - Oracle failures are retryable and only escalate to
      ``MaxAttemptsExceededError`` once the attempt budget is spent.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from i18n_consensus.consensus.validator import ValidationError


def _format_errors(errors: Sequence[ValidationError], limit: int = 20) -> str:
    lines = [f"  - {error}" for error in errors[:limit]]
    if len(errors) > limit:
        lines.append(f"  ... and {len(errors) - limit} more")
    return "\n".join(lines)


class ConsensusError(RuntimeError):
    """Base exception for consensus-engine failures."""


class SourceSelfInvalidError(ConsensusError):
    """The source catalog fails its own structural self-check.

    Raised before any oracle call is issued.  A document that is not
    internally consistent cannot be translated consistently.

    Args:
        errors: Every validation error found in the source.
    """

    def __init__(self, errors: Sequence[ValidationError]) -> None:
        self.errors = list(errors)
        super().__init__(
            f"Source catalog failed its structural self-check "
            f"({len(self.errors)} errors):\n{_format_errors(self.errors)}"
        )


class StructuralMismatchError(ConsensusError):
    """A candidate or judge output failed the structural acceptance gate.

    Used inside the retry loop to carry the validation errors of a single
    attempt.  Never escapes ``RetryingOracleClient``.
    """

    def __init__(self, errors: Sequence[ValidationError]) -> None:
        self.errors = list(errors)
        super().__init__(
            f"Output failed structural validation ({len(self.errors)} errors):\n"
            f"{_format_errors(self.errors)}"
        )


class OracleError(ConsensusError):
    """Base exception for failures of the external oracle collaborator."""


class OracleTransportError(OracleError):
    """The oracle call did not produce a successful response.

    Args:
        detail: Human-readable description (response body, network error).
        status_code: HTTP status code, or ``0`` when no response was received.
    """

    def __init__(self, detail: str, *, status_code: int = 0) -> None:
        self.detail = detail
        self.status_code = status_code
        prefix = f"HTTP {status_code}" if status_code else "transport failure"
        super().__init__(f"Oracle {prefix}: {detail}")


class OracleMalformedOutputError(OracleError):
    """The oracle responded but the body is not a usable tree or verdict list.

    Args:
        detail: What was wrong with the response.
        raw: The raw response text (kept for DEBUG logging).
    """

    def __init__(self, detail: str, *, raw: str = "") -> None:
        self.detail = detail
        self.raw = raw
        super().__init__(f"Malformed oracle output: {detail}")


class MaxAttemptsExceededError(ConsensusError):
    """An oracle slot exhausted its retry budget.

    Fatal for the whole parallel group: dropping the slot would change the
    number of voters and with it the meaning of agreement.

    Args:
        role: ``"candidate"`` or ``"judge"``.
        slot: Index of the candidate or judge within its group.
        attempts: Number of attempts made.
        last_error: The exception raised by the final attempt.
    """

    def __init__(
        self,
        *,
        role: str,
        slot: int,
        attempts: int,
        last_error: Exception | None = None,
    ) -> None:
        self.role = role
        self.slot = slot
        self.attempts = attempts
        self.last_error = last_error
        self.last_errors: list[ValidationError] = (
            list(last_error.errors) if isinstance(last_error, StructuralMismatchError) else []
        )
        message = f"{role} {slot}: max attempts ({attempts}) exceeded"
        if last_error is not None:
            message = f"{message}; last error: {last_error}"
        super().__init__(message)
