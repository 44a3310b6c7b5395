"""
Tests for the consensus translation pipeline (consensus/service.py).

These drive ``ConsensusTranslationService`` end to end against a scripted
``FakeOracle``: self-check, N candidates, entropy collapse and critique.
"""

from __future__ import annotations

import pytest

from i18n_consensus.consensus import UNRESOLVED, ConsensusSettings, ConsensusTranslationService
from i18n_consensus.core.events import Events
from i18n_consensus.errors import (
    MaxAttemptsExceededError,
    OracleTransportError,
    SourceSelfInvalidError,
)
from tests.fakes import FakeOracle, unanimous

# ============================================================================
# SETTINGS
# ============================================================================


@pytest.mark.unit
class TestConsensusSettings:
    def test_defaults(self):
        settings = ConsensusSettings()
        assert (settings.candidates, settings.judges) == (3, 3)
        assert (settings.max_attempts, settings.max_rounds) == (3, 3)

    @pytest.mark.parametrize(
        "kwargs",
        [{"candidates": 0}, {"judges": 0}, {"max_attempts": 0}, {"max_rounds": -1}],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            ConsensusSettings(**kwargs)

    def test_zero_rounds_allowed(self):
        assert ConsensusSettings(max_rounds=0).max_rounds == 0

    def test_from_dict_accepts_camel_case(self):
        settings = ConsensusSettings.from_dict({"candidates": "5", "maxAttempts": 2, "maxRounds": 1})
        assert settings == ConsensusSettings(candidates=5, judges=3, max_attempts=2, max_rounds=1)

    def test_from_dict_prefers_snake_case(self):
        settings = ConsensusSettings.from_dict({"max_rounds": 4, "maxRounds": 1})
        assert settings.max_rounds == 4

    def test_is_frozen(self):
        with pytest.raises(AttributeError):
            ConsensusSettings().judges = 9  # type: ignore


# ============================================================================
# PIPELINE
# ============================================================================


@pytest.mark.unit
class TestTranslate:
    @pytest.mark.asyncio
    async def test_build_number_scenario(self, bus):
        oracle = FakeOracle(
            candidates=[
                {"a": "Numéro de build :"},
                {"a": "Numéro de build :"},
                {"a": "Numéro de version :"},
            ],
            verdicts=[unanimous({"a": "Numéro de build :"})] * 3,
        )
        service = ConsensusTranslationService(oracle, bus=bus)

        result = await service.translate({"a": "Build Number:"}, "French")

        assert result.consensus.out == {"a": UNRESOLVED}
        mismatch = result.consensus.mismatches[0]
        assert mismatch.key == "a"
        assert set(mismatch.translations) == {"Numéro de build :", "Numéro de version :"}
        assert result.output == {"a": "Numéro de build :"}
        assert result.residual == ()
        assert result.is_complete
        assert result.critique.rounds == 1
        assert len(oracle.critique_calls) == 3
        assert all(language == "French" for _, language in oracle.generate_calls)

        types = [event.type for event in bus.get_event_log()]
        assert types[0] == Events.RUN_STARTED
        assert types[-1] == Events.RUN_COMPLETED
        assert types.count(Events.CANDIDATE_ACCEPTED) == 3
        assert types.count(Events.JUDGE_ACCEPTED) == 3
        completed = bus.get_event_log(event_type=Events.RUN_COMPLETED)[0]
        assert completed.detail == {
            "language": "French",
            "resolved": 1,
            "residual": 0,
            "complete": True,
        }

    @pytest.mark.asyncio
    async def test_unanimous_candidates_skip_critique(self, about_source, about_french):
        oracle = FakeOracle(candidates=[about_french] * 3)
        service = ConsensusTranslationService(oracle)

        result = await service.translate(about_source, "fr")

        assert result.output == about_french
        assert oracle.critique_calls == []
        assert result.critique.rounds == 0
        assert len(result.candidates) == 3

    @pytest.mark.asyncio
    async def test_invalid_candidate_never_votes(self):
        source = {"items_other": "{{count}} items"}
        oracle = FakeOracle(
            candidates=[
                {"items_other": "{{count}} éléments"},
                {"items_other": "éléments"},
                {"items_other": "{{count}} éléments"},
                {"items_other": "{{count}} éléments"},
            ]
        )
        service = ConsensusTranslationService(oracle)

        result = await service.translate(source, "fr")

        assert len(oracle.generate_calls) == 4
        assert result.output == {"items_other": "{{count}} éléments"}
        assert result.consensus.is_unanimous

    @pytest.mark.asyncio
    async def test_residual_when_judges_disagree(self):
        oracle = FakeOracle(
            candidates=[{"a": "X"}, {"a": "Y"}],
            verdicts=[unanimous({"a": "X"}), unanimous({"a": "Y"})] * 2,
        )
        service = ConsensusTranslationService(
            oracle, ConsensusSettings(candidates=2, judges=2, max_rounds=2)
        )

        result = await service.translate({"a": "x", "b": 7}, "fr")

        assert result.output == {"a": UNRESOLVED, "b": 7}
        assert result.unresolved_keys == ["a"]
        assert not result.is_complete

    @pytest.mark.asyncio
    async def test_flattened_candidates_are_retried_before_voting(self, bus):
        nested = {"about": {"date": "Date de build :"}}
        oracle = FakeOracle(candidates=[{"about.date": "Date de build :"}, nested] * 3)
        service = ConsensusTranslationService(oracle, bus=bus)

        result = await service.translate({"about": {"date": "Build Date:"}}, "fr")

        assert len(oracle.generate_calls) == 6
        assert result.consensus.mismatches == ()
        assert result.output == nested
        assert oracle.critique_calls == []
        rejected = bus.get_event_log(event_type=Events.CANDIDATE_REJECTED)
        assert [event.detail["errors"] for event in rejected] == [["about.date: MissingKey"]] * 3

    @pytest.mark.asyncio
    async def test_nested_candidates_never_vote_on_flat_source(self):
        oracle = FakeOracle(candidates=[{"about": {"date": "Date de build :"}}] * 2)
        service = ConsensusTranslationService(
            oracle, ConsensusSettings(candidates=1, max_attempts=2)
        )

        with pytest.raises(MaxAttemptsExceededError) as exc_info:
            await service.translate({"about.date": "Build Date:"}, "fr")

        assert exc_info.value.last_errors[0].kind.value == "MissingKey"
        assert oracle.critique_calls == []

    @pytest.mark.asyncio
    async def test_invalid_source_makes_no_oracle_calls(self, bus):
        oracle = FakeOracle()
        service = ConsensusTranslationService(oracle, bus=bus)

        with pytest.raises(SourceSelfInvalidError):
            await service.translate({"a.b": "x", "a": {"b": "y"}}, "fr")

        assert oracle.generate_calls == []
        assert bus.get_event_log(event_type=Events.RUN_FAILED)[0].detail["language"] == "fr"

    @pytest.mark.asyncio
    async def test_exhausted_candidate_fails_the_run(self, bus):
        oracle = FakeOracle(
            candidates=[{"a": "X"}] + [OracleTransportError("down", status_code=500)] * 4
        )
        service = ConsensusTranslationService(
            oracle, ConsensusSettings(candidates=2, max_attempts=2), bus=bus
        )

        with pytest.raises(MaxAttemptsExceededError) as exc_info:
            await service.translate({"a": "x"}, "fr")

        assert exc_info.value.role == "candidate"
        assert oracle.critique_calls == []
        assert bus.get_event_log(event_type=Events.RUN_COMPLETED) == []
        assert len(bus.get_event_log(event_type=Events.RUN_FAILED)) == 1

    @pytest.mark.asyncio
    async def test_source_is_not_mutated(self, about_source, about_french):
        snapshot = {key: value for key, value in about_source.items()}
        oracle = FakeOracle(candidates=[about_french] * 3)

        await ConsensusTranslationService(oracle).translate(about_source, "fr")

        assert about_source == snapshot
