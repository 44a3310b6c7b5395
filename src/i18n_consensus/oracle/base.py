"""Oracle collaborator contract and response parsing.

The consensus engine talks to the text-generation backend only through the
``Oracle`` protocol below.  Any object with these two coroutines can drive a
run: the bundled ``ChatCompletionOracle``, a local-model adapter, or a
scripted fake in tests.

``generate`` must return a candidate tree shaped like the source.
``critique`` must return one ``Verdict`` per disputed key.  Both raise
``OracleTransportError`` when the backend call fails and
``OracleMalformedOutputError`` when the response cannot be parsed.
"""

from __future__ import annotations

import json
import re
from typing import Any, Protocol

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from i18n_consensus.errors import OracleMalformedOutputError

# Models routinely wrap JSON in markdown fences even when told not to.
_CODE_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


class Verdict(BaseModel):
    """One judge's ruling on one disputed key.

    Attributes:
        key:     Dotted key path of the disputed leaf.
        opinion: Free-text rationale; carried into later rounds as context.
        result:  The value the judge considers best.
    """

    key: str
    opinion: str = ""
    result: str


_VERDICTS = TypeAdapter(list[Verdict])


class Oracle(Protocol):
    """What the consensus engine needs from a generation backend."""

    async def generate(self, source: dict, language: str) -> dict:
        """Translate the whole source tree into ``language``."""
        ...

    async def critique(self, disputed: list[dict], language: str) -> list[Verdict]:
        """Judge a list of disputed-leaf payloads."""
        ...


def _load_json(text: str) -> Any:
    cleaned = _CODE_FENCE.sub(" ", text or "").strip()
    if not cleaned:
        raise OracleMalformedOutputError("empty response", raw=text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise OracleMalformedOutputError(f"response is not valid JSON ({exc})", raw=text) from exc


def parse_tree(text: str) -> dict:
    """Parse a ``generate`` response body into a candidate tree.

    Raises:
        OracleMalformedOutputError: Not JSON, or not a JSON object.
    """
    data = _load_json(text)
    if not isinstance(data, dict):
        raise OracleMalformedOutputError(
            f"expected a JSON object, got {type(data).__name__}", raw=text
        )
    return data


def parse_verdicts(text: str) -> list[Verdict]:
    """Parse a ``critique`` response body into verdicts.

    Accepts a bare JSON array, or an object wrapping exactly one array
    (``{"results": [...]}``), which some models insist on producing.

    Raises:
        OracleMalformedOutputError: Not JSON or not a list of verdicts.
    """
    data = _load_json(text)
    if isinstance(data, dict):
        lists = [value for value in data.values() if isinstance(value, list)]
        if len(lists) == 1:
            data = lists[0]
    try:
        return _VERDICTS.validate_python(data)
    except PydanticValidationError as exc:
        raise OracleMalformedOutputError(
            f"verdicts failed validation ({exc.error_count()} errors)", raw=text
        ) from exc
