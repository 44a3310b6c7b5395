"""
Tests for the chat-completion oracle.

This module tests ChatCompletionOracle against a mocked OpenAI-compatible
endpoint: request shape, model rotation, error mapping and call records.
Uses respx for mocking HTTP requests.
"""

import json
from collections.abc import AsyncGenerator

import httpx
import pytest
import respx
from httpx import Response

from i18n_consensus.config import OracleSettings
from i18n_consensus.core.events import Events
from i18n_consensus.errors import OracleMalformedOutputError, OracleTransportError
from i18n_consensus.oracle import ChatCompletionOracle, PromptSet, Verdict

URL = "http://oracle.test/v1/chat/completions"

# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def settings() -> OracleSettings:
    """Oracle settings pointing at a fake host."""
    return OracleSettings(
        base_url="http://oracle.test/v1",
        models=["model-a", "model-b"],
        temperature=0.0,
        timeout_seconds=5.0,
    )


@pytest.fixture
async def oracle(settings: OracleSettings, bus) -> AsyncGenerator[ChatCompletionOracle, None]:
    """An entered oracle with a fixed key."""
    async with ChatCompletionOracle(settings, api_key="sk-test", bus=bus) as oracle:
        yield oracle


def completion(content) -> Response:
    """Build a chat-completion response carrying ``content``."""
    return Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


# =============================================================================
# CONTEXT MANAGER TESTS
# =============================================================================


class TestContextManager:
    """Tests for the async context manager protocol."""

    def test_http_client_outside_context_raises(self, settings):
        """Accessing the client before entering raises RuntimeError."""
        oracle = ChatCompletionOracle(settings)

        with pytest.raises(RuntimeError, match="async context manager"):
            _ = oracle.http_client

    @pytest.mark.asyncio
    async def test_client_closed_on_exit(self, settings):
        """The client is released when the context exits."""
        async with ChatCompletionOracle(settings) as oracle:
            assert isinstance(oracle.http_client, httpx.AsyncClient)

        with pytest.raises(RuntimeError):
            _ = oracle.http_client


# =============================================================================
# GENERATE TESTS
# =============================================================================


class TestGenerate:
    """Tests for candidate generation."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_generate_sends_prompt_and_parses_tree(self, oracle):
        """generate() posts the source as JSON and parses the reply."""
        route = respx.post(URL).mock(return_value=completion('{"a": "Numéro de build :"}'))

        result = await oracle.generate({"a": "Build Number:"}, "French")

        assert result == {"a": "Numéro de build :"}
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "model-a"
        assert body["temperature"] == 0.0
        assert body["messages"][0]["role"] == "system"
        assert "French" in body["messages"][0]["content"]
        assert body["messages"][1] == {"role": "user", "content": '{"a": "Build Number:"}'}

    @pytest.mark.asyncio
    @respx.mock
    async def test_models_rotate_between_calls(self, oracle):
        """Consecutive calls use the next model in the rotation."""
        route = respx.post(URL).mock(return_value=completion("{}"))

        for _ in range(3):
            await oracle.generate({}, "fr")

        models = [json.loads(call.request.content)["model"] for call in route.calls]
        assert models == ["model-a", "model-b", "model-a"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_fenced_json_is_accepted(self, oracle):
        """Markdown code fences around the JSON are stripped."""
        respx.post(URL).mock(return_value=completion('```json\n{"a": "b"}\n```'))

        assert await oracle.generate({"a": "x"}, "fr") == {"a": "b"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_server_error_raises_transport_error(self, oracle):
        """A non-2xx status raises OracleTransportError with the code."""
        respx.post(URL).mock(return_value=Response(500, text="upstream exploded"))

        with pytest.raises(OracleTransportError) as exc_info:
            await oracle.generate({"a": "x"}, "fr")

        assert exc_info.value.status_code == 500
        assert "upstream exploded" in exc_info.value.detail

    @pytest.mark.asyncio
    @respx.mock
    async def test_connect_error_raises_transport_error(self, oracle):
        """Network failures become OracleTransportError without a status."""
        respx.post(URL).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(OracleTransportError) as exc_info:
            await oracle.generate({"a": "x"}, "fr")

        assert exc_info.value.status_code == 0
        assert oracle.calls[-1].status == "error"

    @pytest.mark.asyncio
    @respx.mock
    async def test_bad_envelope_raises_malformed(self, oracle):
        """A body without choices raises OracleMalformedOutputError."""
        respx.post(URL).mock(return_value=Response(200, json={"error": "nope"}))

        with pytest.raises(OracleMalformedOutputError):
            await oracle.generate({"a": "x"}, "fr")

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_text_content_raises_malformed(self, oracle):
        respx.post(URL).mock(return_value=completion(None))

        with pytest.raises(OracleMalformedOutputError, match="no text content"):
            await oracle.generate({"a": "x"}, "fr")

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_object_reply_raises_malformed(self, oracle):
        respx.post(URL).mock(return_value=completion('["a", "b"]'))

        with pytest.raises(OracleMalformedOutputError, match="expected a JSON object"):
            await oracle.generate({"a": "x"}, "fr")


# =============================================================================
# CRITIQUE TESTS
# =============================================================================


class TestCritique:
    """Tests for judge invocations."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_critique_parses_verdicts(self, oracle):
        """critique() returns Verdict models."""
        reply = [{"key": "a", "opinion": "closest", "result": "Numéro de build :"}]
        respx.post(URL).mock(return_value=completion(json.dumps(reply)))

        verdicts = await oracle.critique(
            [{"key": "a", "source": "Build Number:", "translations": ["x", "y"]}], "French"
        )

        assert verdicts == [Verdict(key="a", opinion="closest", result="Numéro de build :")]

    @pytest.mark.asyncio
    @respx.mock
    async def test_followup_prompt_when_opinions_present(self, settings, bus):
        """Payloads carrying opinions are judged with the follow-up prompt."""
        prompts = PromptSet(critique="FIRST {{language}}", critique_followup="AGAIN {{language}}")
        route = respx.post(URL).mock(return_value=completion("[]"))

        async with ChatCompletionOracle(settings, prompts, bus=bus) as oracle:
            await oracle.critique([{"key": "a", "source": "s", "translations": []}], "de")
            await oracle.critique(
                [{"key": "a", "source": "s", "translations": [], "opinions": ["hm"]}], "de"
            )

        systems = [json.loads(call.request.content)["messages"][0]["content"] for call in route.calls]
        assert systems == ["FIRST de", "AGAIN de"]


# =============================================================================
# CALL RECORD TESTS
# =============================================================================


class TestCallRecords:
    """Tests for call bookkeeping and oracle:called events."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_calls_are_recorded_and_emitted(self, oracle, bus):
        respx.post(URL).mock(return_value=completion("{}"))

        await oracle.generate({}, "fr")

        record = oracle.calls[0]
        assert record.reason == "translate"
        assert record.model == "model-a"
        assert record.status == "200 OK"
        assert record.duration_ms >= 0
        event = bus.get_event_log(event_type=Events.ORACLE_CALLED)[0]
        assert event.meta.source == "oracle"
        assert event.detail["status"] == "200 OK"

    def test_calls_returns_a_copy(self, settings):
        oracle = ChatCompletionOracle(settings)
        oracle.calls.append("x")
        assert oracle.calls == []
