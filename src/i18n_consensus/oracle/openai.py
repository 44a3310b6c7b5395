"""Chat-completion oracle over an OpenAI-compatible HTTP API.

``ChatCompletionOracle`` is the only place in the project that makes a
network call.  It implements the ``Oracle`` protocol on top of the
``/chat/completions`` endpoint and must be used as an async context
manager so the underlying connection pool is closed:

    async with ChatCompletionOracle(settings.oracle, prompts) as oracle:
        service = ConsensusTranslationService(oracle, settings.consensus)
        result = await service.translate(source, "French")

Each call:

1. Picks the next model from the ``ModelRotation``.
2. Sends the system prompt and the JSON payload as the user turn, at the
   configured temperature (``0`` by default).
3. Records a ``CallRecord`` and emits ``oracle:called``.
4. Raises ``OracleTransportError`` on network failure or non-2xx status,
   ``OracleMalformedOutputError`` when the body cannot be parsed.

No retry happens here.  Retrying is the job of ``RetryingOracleClient``,
which also validates what comes back.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from i18n_consensus.core.bus import EventBus
from i18n_consensus.core.events import Events
from i18n_consensus.errors import OracleMalformedOutputError, OracleTransportError
from i18n_consensus.oracle.base import Verdict, parse_tree, parse_verdicts
from i18n_consensus.oracle.prompts import PromptSet
from i18n_consensus.oracle.rotation import ModelRotation

if TYPE_CHECKING:
    from i18n_consensus.config import OracleSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallRecord:
    """One oracle round trip, for progress displays and post-run summaries.

    Attributes:
        reason:      ``"translate"`` or ``"critique"``.
        model:       Model that served the call.
        status:      ``"200 OK"``-style status line, or ``"error"``.
        duration_ms: Wall-clock duration of the HTTP exchange.
    """

    reason: str
    model: str
    status: str
    duration_ms: float

    def to_dict(self) -> dict:
        return {
            "reason": self.reason,
            "model": self.model,
            "status": self.status,
            "duration_ms": round(self.duration_ms, 2),
        }


class ChatCompletionOracle:
    """``Oracle`` implementation backed by a chat-completion endpoint.

    Attributes:
        _settings:    Frozen oracle settings (URL, models, timeout).
        _prompts:     System prompt templates.
        _rotation:    Model selection strategy.
        _api_key:     Bearer token.
        _bus:         Optional event bus for ``oracle:called``.
        _http_client: Created on ``__aenter__``.
    """

    def __init__(
        self,
        settings: OracleSettings,
        prompts: PromptSet | None = None,
        *,
        rotation: ModelRotation | None = None,
        api_key: str | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self._settings = settings
        self._prompts = prompts or PromptSet()
        self._rotation = rotation or ModelRotation(settings.models)
        self._api_key = api_key if api_key is not None else settings.api_key
        self._bus = bus
        self._http_client: httpx.AsyncClient | None = None
        self._calls: list[CallRecord] = []

    # ── Context manager protocol ──────────────────────────────────────────────

    async def __aenter__(self) -> ChatCompletionOracle:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        self._http_client = httpx.AsyncClient(
            base_url=self._settings.base_url,
            timeout=self._settings.timeout_seconds,
            headers=headers,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """The underlying client.

        Raises:
            RuntimeError: If accessed outside of ``async with``.
        """
        if self._http_client is None:
            raise RuntimeError(
                "ChatCompletionOracle must be used as an async context manager. "
                "Use 'async with ChatCompletionOracle(settings) as oracle:'"
            )
        return self._http_client

    @property
    def calls(self) -> list[CallRecord]:
        """Every call made so far, oldest first."""
        return list(self._calls)

    # ── Oracle protocol ───────────────────────────────────────────────────────

    async def generate(self, source: dict, language: str) -> dict:
        messages = [
            {"role": "system", "content": self._prompts.for_translate(language)},
            {"role": "user", "content": json.dumps(source, ensure_ascii=False)},
        ]
        return parse_tree(await self._complete(messages, reason="translate"))

    async def critique(self, disputed: list[dict], language: str) -> list[Verdict]:
        followup = any("opinions" in item for item in disputed)
        messages = [
            {"role": "system", "content": self._prompts.for_critique(language, followup=followup)},
            {"role": "user", "content": json.dumps(disputed, ensure_ascii=False)},
        ]
        return parse_verdicts(await self._complete(messages, reason="critique"))

    # ── Internal helpers ──────────────────────────────────────────────────────

    async def _complete(self, messages: list[dict], *, reason: str) -> str:
        model = self._rotation.next()
        payload = {
            "model": model,
            "temperature": self._settings.temperature,
            "messages": messages,
        }
        logger.debug("Calling %s for %s with %d messages", model, reason, len(messages))

        started = time.perf_counter()
        try:
            response = await self.http_client.post("/chat/completions", json=payload)
        except httpx.HTTPError as exc:
            self._record(reason, model, "error", started)
            logger.warning("Oracle call to %s failed: %s", self._settings.base_url, exc)
            raise OracleTransportError(
                f"cannot reach {self._settings.base_url}: {exc}"
            ) from exc

        self._record(reason, model, f"{response.status_code} {response.reason_phrase}", started)

        if not response.is_success:
            raise OracleTransportError(response.text, status_code=response.status_code)

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise OracleMalformedOutputError(
                "unexpected chat-completion envelope", raw=response.text
            ) from exc
        if not isinstance(content, str):
            raise OracleMalformedOutputError("completion has no text content", raw=response.text)

        logger.debug("%s replied to %s: %s", model, reason, content)
        return content

    def _record(self, reason: str, model: str, status: str, started: float) -> None:
        record = CallRecord(
            reason=reason,
            model=model,
            status=status,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        self._calls.append(record)
        logger.info("%s call to %s: %s in %.0f ms", reason, model, status, record.duration_ms)
        if self._bus is not None:
            self._bus.emit(Events.ORACLE_CALLED, record.to_dict(), source="oracle")
