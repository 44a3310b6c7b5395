"""
Event Type Constants for translation runs

Events use "domain:action" format in PAST TENSE: they record facts about
what happened during a run, never requests.

    from i18n_consensus.core.events import Events

    bus.on(Events.CANDIDATE_REJECTED, show_rejection)
"""


class Events:
    """
    All event types emitted by the pipeline, grouped by stage.
    """

    # =========================================================================
    # RUN LIFECYCLE
    # =========================================================================

    RUN_STARTED = "run:started"
    """
    Detail: {"language": str, "candidates": int, "judges": int, "max_rounds": int}
    """

    SOURCE_VALIDATED = "source:validated"
    """
    Emitted after the source catalog passed its structural self-check.

    Detail: {"language": str, "keys": int}
    """

    RUN_COMPLETED = "run:completed"
    """
    Detail: {"language": str, "resolved": int, "residual": int, "complete": bool}
    """

    RUN_FAILED = "run:failed"
    """
    Emitted when a fatal error aborts the run.

    Detail: {"language": str, "error": str}
    """

    # =========================================================================
    # CANDIDATE GENERATION
    # =========================================================================

    CANDIDATE_ACCEPTED = "candidate:accepted"
    """
    Detail: {"slot": int, "attempt": int}
    """

    CANDIDATE_REJECTED = "candidate:rejected"
    """
    Emitted for every failed attempt (transport, malformed or structural).

    Detail: {"slot": int, "attempt": int, "reason": str, "errors": list[str]}
    """

    CONSENSUS_COLLAPSED = "consensus:collapsed"
    """
    Detail: {"candidates": int, "disputed": list[str]}
    """

    # =========================================================================
    # CRITIQUE
    # =========================================================================

    JUDGE_ACCEPTED = "judge:accepted"
    """
    Detail: {"judge": int, "attempt": int}
    """

    JUDGE_REJECTED = "judge:rejected"
    """
    Detail: {"judge": int, "attempt": int, "reason": str, "errors": list[str]}
    """

    CRITIQUE_ROUND_COMPLETED = "critique:round_completed"
    """
    Detail: {"round": int, "resolved": list[str], "disputed": list[str]}
    """

    # =========================================================================
    # ORACLE TRANSPORT
    # =========================================================================

    ORACLE_CALLED = "oracle:called"
    """
    One HTTP round trip to the oracle backend.

    Detail: {"reason": str, "model": str, "status": str, "duration_ms": float}
    """


def get_all_event_types() -> list[str]:
    """Sorted list of every event type string defined on ``Events``."""
    return sorted(
        value
        for name, value in vars(Events).items()
        if isinstance(value, str) and not name.startswith("_")
    )


def is_valid_event_type(event_type: str) -> bool:
    return event_type in get_all_event_types()
