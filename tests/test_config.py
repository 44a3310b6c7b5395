"""Tests for i18n_consensus.config loading and overrides."""

import configparser
import json

import pytest

from i18n_consensus.config import (
    ENV_PREFIX,
    TranslateConfig,
    _load_from_ini,
    get_config_status,
    load_config,
    print_config_summary,
)
from i18n_consensus.consensus import ConsensusSettings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the caller's environment out of every test."""
    for name in ("OPEN_AI_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    for option in (
        "ROOT_FILE",
        "TARGET_LANGUAGES",
        "TARGET_FOLDER",
        "PROMPTS_DIR",
        "CANDIDATES",
        "JUDGES",
        "MAX_ATTEMPTS",
        "MAX_ROUNDS",
        "MODELS",
        "BASE_URL",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(f"{ENV_PREFIX}{option}", raising=False)


def write_package_json(root, block):
    (root / "package.json").write_text(
        json.dumps({"name": "web-app", "i18next-ai-translate": block}), encoding="utf-8"
    )


@pytest.mark.unit
def test_defaults_without_any_file(tmp_path):
    cfg = load_config(root=tmp_path)

    assert cfg.sources == []
    assert cfg.consensus == ConsensusSettings()
    assert cfg.catalog.target_languages == []
    assert cfg.root_file_path == tmp_path / "public/locales/translation.json"
    assert cfg.prompts_path is None


@pytest.mark.unit
def test_package_json_block(tmp_path):
    write_package_json(
        tmp_path,
        {
            "rootFile": "locales/en/translation.json",
            "targetLanguages": ["French", "German"],
            "targetFolder": "locales",
            "promptsDir": "prompts",
            "options": {"candidates": 5, "maxRounds": 2, "models": ["gpt-4o"]},
        },
    )

    cfg = load_config(root=tmp_path)

    assert cfg.catalog.root_file == "locales/en/translation.json"
    assert cfg.catalog.target_languages == ["French", "German"]
    assert cfg.target_folder_path == tmp_path / "locales"
    assert cfg.prompts_path == tmp_path / "prompts"
    assert cfg.consensus.candidates == 5
    assert cfg.consensus.max_rounds == 2
    assert cfg.consensus.judges == 3
    assert cfg.oracle.models == ["gpt-4o"]
    assert cfg.sources == [str(tmp_path / "package.json")]


@pytest.mark.unit
def test_package_json_without_block_is_ignored(tmp_path):
    (tmp_path / "package.json").write_text('{"name": "x"}', encoding="utf-8")

    cfg = load_config(root=tmp_path)

    assert cfg.sources == []


@pytest.mark.unit
def test_unparseable_package_json_is_skipped(tmp_path, caplog):
    (tmp_path / "package.json").write_text("{nope", encoding="utf-8")

    cfg = load_config(root=tmp_path)

    assert cfg.sources == []
    assert "unparseable" in caplog.text


@pytest.mark.unit
def test_ini_overrides_package_json(tmp_path):
    write_package_json(tmp_path, {"targetLanguages": ["French"], "options": {"judges": 5}})
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "translate.ini").write_text(
        "[catalog]\ntarget_languages = Spanish, Italian\n\n[consensus]\njudges = 2\n",
        encoding="utf-8",
    )

    cfg = load_config(root=tmp_path)

    assert cfg.catalog.target_languages == ["Spanish", "Italian"]
    assert cfg.consensus.judges == 2
    assert len(cfg.sources) == 2


@pytest.mark.unit
def test_example_ini_is_fallback(tmp_path):
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "translate.example.ini").write_text(
        "[oracle]\ntemperature = 0.3\n", encoding="utf-8"
    )

    cfg = load_config(root=tmp_path)

    assert cfg.oracle.temperature == 0.3
    assert get_config_status(cfg)["using_example"] is True


@pytest.mark.unit
def test_env_overrides_everything(tmp_path, monkeypatch):
    write_package_json(tmp_path, {"targetLanguages": ["French"]})
    monkeypatch.setenv("I18N_CONSENSUS_TARGET_LANGUAGES", "de, ja")
    monkeypatch.setenv("I18N_CONSENSUS_CANDIDATES", "4")
    monkeypatch.setenv("I18N_CONSENSUS_MAX_ROUNDS", "0")
    monkeypatch.setenv("I18N_CONSENSUS_MODELS", "m1,m2")
    monkeypatch.setenv("I18N_CONSENSUS_LOG_LEVEL", "debug")

    cfg = load_config(root=tmp_path)

    assert cfg.catalog.target_languages == ["de", "ja"]
    assert cfg.consensus.candidates == 4
    assert cfg.consensus.max_rounds == 0
    assert cfg.oracle.models == ["m1", "m2"]
    assert cfg.logging.level == "DEBUG"


@pytest.mark.unit
def test_invalid_env_value_is_rejected(tmp_path, monkeypatch):
    monkeypatch.setenv("I18N_CONSENSUS_JUDGES", "0")

    with pytest.raises(ValueError):
        load_config(root=tmp_path)


@pytest.mark.unit
@pytest.mark.parametrize("kwarg", ["config_file", "package_json"])
def test_explicit_missing_file_raises(tmp_path, kwarg):
    with pytest.raises(FileNotFoundError):
        load_config(root=tmp_path, **{kwarg: "missing.file"})


@pytest.mark.unit
def test_ini_sections():
    """All INI sections are read into the matching settings."""
    parser = configparser.ConfigParser()
    parser.read_dict(
        {
            "oracle": {
                "base_url": "http://localhost:11434/v1",
                "models": "llama3, mistral",
                "timeout_seconds": "12.5",
                "api_key_env": "LOCAL_KEY",
            },
            "consensus": {"max_attempts": "5"},
            "catalog": {"prompts_dir": ""},
            "logging": {"level": "warning", "format": "simple"},
        }
    )

    cfg = TranslateConfig()
    _load_from_ini(parser, cfg)

    assert cfg.oracle.base_url == "http://localhost:11434/v1"
    assert cfg.oracle.models == ["llama3", "mistral"]
    assert cfg.oracle.timeout_seconds == 12.5
    assert cfg.oracle.api_key_env == "LOCAL_KEY"
    assert cfg.consensus.max_attempts == 5
    assert cfg.catalog.prompts_dir is None
    assert cfg.logging.level == "WARNING"
    assert cfg.logging.format == "simple"


@pytest.mark.unit
def test_api_key_lookup(monkeypatch):
    cfg = TranslateConfig()
    assert cfg.oracle.api_key is None

    monkeypatch.setenv("OPENAI_API_KEY", "sk-fallback")
    assert cfg.oracle.api_key == "sk-fallback"

    monkeypatch.setenv("OPEN_AI_KEY", "sk-primary")
    assert cfg.oracle.api_key == "sk-primary"


@pytest.mark.unit
def test_absolute_paths_are_kept(tmp_path):
    elsewhere = tmp_path / "elsewhere"
    cfg = TranslateConfig(root=tmp_path / "project")

    assert cfg.resolve(elsewhere) == elsewhere
    assert cfg.resolve("locales") == tmp_path / "project" / "locales"


@pytest.mark.unit
def test_print_config_summary(tmp_path, capsys, monkeypatch):
    monkeypatch.setenv("OPEN_AI_KEY", "sk-test")
    write_package_json(tmp_path, {"targetLanguages": ["French"]})

    print_config_summary(load_config(root=tmp_path))

    output = capsys.readouterr().out
    assert "TRANSLATION CONFIGURATION" in output
    assert "French" in output
    assert "API key:     set" in output
