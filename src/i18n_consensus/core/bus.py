"""
Pipeline Event Bus

Progress reporting for translation runs. The pipeline never shares mutable
state with whoever is watching it; instead every stage emits an immutable
event describing what just happened, and observers (console reporter,
dashboards, tests) subscribe to the events they care about.

=============================================================================
PRINCIPLES
=============================================================================

1. THE BUS RECORDS FACTS
   - Events are past tense: "candidate:accepted" means a candidate WAS
     accepted, not "please accept this candidate"
   - The bus never influences the pipeline's outcome

2. EVENTS ARE IMMUTABLE
   - Handlers receive frozen events; they cannot modify them

3. EMIT IS SYNCHRONOUS
   - Sequence numbers are assigned and the event is logged before any
     handler runs; handlers are plain callables and finish before emit
     returns

4. HANDLER FAILURES ARE ISOLATED
   - A failing observer is logged and skipped; it never breaks a run

=============================================================================
USAGE
=============================================================================

    from i18n_consensus.core.bus import EventBus
    from i18n_consensus.core.events import Events

    bus = EventBus()

    def on_round(event):
        print(f"round {event.detail['round']}: {event.detail['disputed']} left")

    unsubscribe = bus.on(Events.CRITIQUE_ROUND_COMPLETED, on_round)
    service = ConsensusTranslationService(oracle, settings, bus=bus)

    # Listen to everything
    bus.on_any(lambda event: print(event))

=============================================================================
"""

from __future__ import annotations

import inspect
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)


# =============================================================================
# TYPE ALIASES
# =============================================================================

EventHandler = Callable[["PipelineEvent"], None]
Unsubscribe = Callable[[], None]

# Subscription key for handlers registered with on_any()
_ANY = "*"


# =============================================================================
# EVENT
# =============================================================================


@dataclass(frozen=True)
class EventMetadata:
    """
    Metadata attached to every event.

    Attributes:
        timestamp: Unix epoch milliseconds (UTC). For display, not ordering.
        source: Component that emitted the event ("service", "retry", ...).
        sequence: Monotonically increasing per bus. The only reliable order.
    """

    timestamp: int
    source: str
    sequence: int

    @staticmethod
    def create(source: str, sequence: int) -> EventMetadata:
        now_ms = int(datetime.now(UTC).timestamp() * 1000)
        return EventMetadata(timestamp=now_ms, source=source, sequence=sequence)


@dataclass(frozen=True)
class PipelineEvent:
    """
    A single fact emitted by the pipeline.

    Attributes:
        type: "domain:action" in past tense, see ``core.events.Events``.
        detail: Event payload. Treat as read-only.
        meta: Timestamp, source and sequence number.
    """

    type: str
    detail: dict = field(default_factory=dict)
    meta: EventMetadata | None = None

    def __str__(self) -> str:
        if self.meta:
            return (
                f"PipelineEvent(type='{self.type}', "
                f"source='{self.meta.source}', "
                f"seq={self.meta.sequence})"
            )
        return f"PipelineEvent(type='{self.type}')"


# =============================================================================
# BUS
# =============================================================================


class EventBus:
    """
    Synchronous event bus with a bounded in-memory log.

    One bus is normally created per CLI invocation and handed to the
    service; tests create their own so runs never observe each other.

    Key Methods:
    - emit(): Record an event and notify handlers
    - on() / on_any(): Subscribe (returns an unsubscribe function)
    - get_event_log(): Event history, oldest first
    """

    def __init__(self, *, max_log_size: int = 10000) -> None:
        # Registration order is preserved so handler execution is deterministic
        self._handlers: dict[str, list[EventHandler]] = {}
        self._event_log: deque[PipelineEvent] = deque(maxlen=max_log_size)
        self._sequence: int = 0

    # =========================================================================
    # EMIT
    # =========================================================================

    def emit(
        self, event_type: str, detail: dict[str, Any] | None = None, source: str = "pipeline"
    ) -> PipelineEvent:
        """
        Emit an event.

        When this returns the event has a sequence number, is in the log
        and every handler has run.

        Args:
            event_type: Event type, e.g. ``Events.CANDIDATE_ACCEPTED``.
            detail: Payload. Defaults to an empty dict.
            source: Emitting component, for debugging.

        Returns:
            The committed event.
        """
        self._sequence += 1
        event = PipelineEvent(
            type=event_type,
            detail=detail if detail is not None else {},
            meta=EventMetadata.create(source, self._sequence),
        )
        self._event_log.append(event)
        logger.debug("EMIT [%d]: %s from %s", self._sequence, event_type, source)

        self._notify_handlers(event)
        return event

    def _notify_handlers(self, event: PipelineEvent) -> None:
        handlers = [*self._handlers.get(event.type, []), *self._handlers.get(_ANY, [])]
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.error("Handler error for '%s'", event.type, exc_info=True)

    # =========================================================================
    # SUBSCRIBE
    # =========================================================================

    def on(self, event_type: str, handler: EventHandler) -> Unsubscribe:
        """
        Subscribe a handler to one event type.

        Returns:
            A function that removes the subscription.

        Raises:
            TypeError: If ``handler`` is a coroutine function.
        """
        if inspect.iscoroutinefunction(handler):
            raise TypeError(f"Event handlers must be synchronous, got {handler!r}")
        self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def on_any(self, handler: EventHandler) -> Unsubscribe:
        """Subscribe a handler to every event type."""
        return self.on(_ANY, handler)

    # =========================================================================
    # EVENT LOG
    # =========================================================================

    def get_event_log(
        self, limit: int | None = None, event_type: str | None = None
    ) -> list[PipelineEvent]:
        """
        Events in chronological order.

        Args:
            limit: Return only the last N events.
            event_type: Only events of this type.
        """
        events = [e for e in self._event_log if event_type is None or e.type == event_type]
        if limit is not None:
            return events[-limit:]
        return events
