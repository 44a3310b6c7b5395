"""Tests for oracle response parsing (oracle/base.py)."""

import pytest

from i18n_consensus.errors import OracleMalformedOutputError
from i18n_consensus.oracle.base import Verdict, parse_tree, parse_verdicts


@pytest.mark.unit
class TestParseTree:
    def test_plain_object(self):
        assert parse_tree('{"about": {"date": "Date :"}}') == {"about": {"date": "Date :"}}

    def test_code_fence_is_stripped(self):
        assert parse_tree('```json\n{"a": "b"}\n```') == {"a": "b"}
        assert parse_tree('```\n{"a": "b"}```') == {"a": "b"}

    @pytest.mark.parametrize("text", ["", "   ", "```json```"])
    def test_empty_response(self, text):
        with pytest.raises(OracleMalformedOutputError, match="empty response"):
            parse_tree(text)

    def test_invalid_json_keeps_raw(self):
        with pytest.raises(OracleMalformedOutputError) as exc_info:
            parse_tree("Sure! Here is your translation: {")

        assert exc_info.value.raw == "Sure! Here is your translation: {"
        assert "not valid JSON" in str(exc_info.value)

    def test_array_is_not_a_tree(self):
        with pytest.raises(OracleMalformedOutputError, match="got list"):
            parse_tree("[]")


@pytest.mark.unit
class TestParseVerdicts:
    def test_bare_array(self):
        verdicts = parse_verdicts('[{"key": "a", "opinion": "ok", "result": "A"}]')
        assert verdicts == [Verdict(key="a", opinion="ok", result="A")]

    def test_opinion_is_optional(self):
        assert parse_verdicts('[{"key": "a", "result": "A"}]')[0].opinion == ""

    def test_object_wrapping_one_list(self):
        verdicts = parse_verdicts('{"results": [{"key": "a", "result": "A"}]}')
        assert [v.key for v in verdicts] == ["a"]

    def test_object_wrapping_two_lists_is_rejected(self):
        with pytest.raises(OracleMalformedOutputError, match="failed validation"):
            parse_verdicts('{"x": [], "y": []}')

    def test_missing_result_is_rejected(self):
        with pytest.raises(OracleMalformedOutputError, match="failed validation"):
            parse_verdicts('[{"key": "a", "opinion": "no idea"}]')
