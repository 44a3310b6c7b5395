"""
Translation run configuration.

This module handles loading configuration from multiple sources with a
clear priority order:

    1. Environment variables (highest priority) - for CI pipelines
    2. Config file (config/translate.ini) - per-project settings
    3. The "i18next-ai-translate" block of package.json - for web projects
       that already keep their i18n settings there
    4. Built-in defaults (lowest priority)

All relative paths are resolved against the project root, which is the
current working directory unless given explicitly.

Usage:
    from i18n_consensus.config import load_config

    cfg = load_config()
    print(cfg.catalog.root_file)
    print(cfg.consensus.candidates)

Environment Variable Mapping:
    I18N_CONSENSUS_ROOT_FILE         -> catalog.root_file
    I18N_CONSENSUS_TARGET_LANGUAGES  -> catalog.target_languages
    I18N_CONSENSUS_TARGET_FOLDER     -> catalog.target_folder
    I18N_CONSENSUS_PROMPTS_DIR       -> catalog.prompts_dir
    I18N_CONSENSUS_CANDIDATES        -> consensus.candidates
    I18N_CONSENSUS_JUDGES            -> consensus.judges
    I18N_CONSENSUS_MAX_ATTEMPTS      -> consensus.max_attempts
    I18N_CONSENSUS_MAX_ROUNDS        -> consensus.max_rounds
    I18N_CONSENSUS_MODELS            -> oracle.models
    I18N_CONSENSUS_BASE_URL          -> oracle.base_url
    I18N_CONSENSUS_LOG_LEVEL         -> logging.level
    OPEN_AI_KEY / OPENAI_API_KEY     -> oracle.api_key
"""

from __future__ import annotations

import configparser
import json
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Literal

from i18n_consensus.consensus.service import ConsensusSettings

logger = logging.getLogger(__name__)

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

CONFIG_DIR = Path("config")
CONFIG_FILE = CONFIG_DIR / "translate.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "translate.example.ini"
PACKAGE_JSON = Path("package.json")

# Key of the settings block inside package.json.
PACKAGE_JSON_BLOCK = "i18next-ai-translate"

ENV_PREFIX = "I18N_CONSENSUS_"


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


@dataclass
class OracleSettings:
    """Chat-completion backend configuration."""

    base_url: str = "https://api.openai.com/v1"
    models: list[str] = field(default_factory=lambda: ["gpt-4o-mini", "gpt-3.5-turbo"])
    temperature: float = 0.0
    timeout_seconds: float = 60.0
    api_key_env: str = "OPEN_AI_KEY"

    @property
    def api_key(self) -> str | None:
        """API key from the configured env var, else ``OPENAI_API_KEY``."""
        return os.getenv(self.api_key_env) or os.getenv("OPENAI_API_KEY") or None


@dataclass
class CatalogSettings:
    """Where catalogs are read from and written to."""

    root_file: str = "public/locales/translation.json"
    target_languages: list[str] = field(default_factory=list)
    target_folder: str = "public/locales"
    prompts_dir: str | None = None


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed"] = "detailed"


@dataclass
class TranslateConfig:
    """
    Complete configuration of a translation run.

    ``consensus`` is frozen; overrides are applied with
    ``dataclasses.replace``.
    """

    oracle: OracleSettings = field(default_factory=OracleSettings)
    consensus: ConsensusSettings = field(default_factory=ConsensusSettings)
    catalog: CatalogSettings = field(default_factory=CatalogSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    root: Path = field(default_factory=Path.cwd)
    sources: list[str] = field(default_factory=list)

    def resolve(self, path: str | Path) -> Path:
        """Resolve ``path`` against the project root."""
        p = Path(path)
        if p.is_absolute():
            return p
        return self.root / p

    @property
    def root_file_path(self) -> Path:
        return self.resolve(self.catalog.root_file)

    @property
    def target_folder_path(self) -> Path:
        return self.resolve(self.catalog.target_folder)

    @property
    def prompts_path(self) -> Path | None:
        if self.catalog.prompts_dir is None:
            return None
        return self.resolve(self.catalog.prompts_dir)


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def _parse_list(value: str) -> list[str]:
    """Parse a comma-separated string to list, stripping whitespace."""
    if not value or value.strip() == "":
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _consensus_overrides(cfg: TranslateConfig, **changes: int) -> None:
    if changes:
        cfg.consensus = replace(cfg.consensus, **changes)


def _load_from_package_json(data: dict, cfg: TranslateConfig) -> None:
    """Load the ``i18next-ai-translate`` block of package.json."""
    block = data.get(PACKAGE_JSON_BLOCK)
    if not isinstance(block, dict):
        return

    if "rootFile" in block:
        cfg.catalog.root_file = str(block["rootFile"])
    if "targetLanguages" in block:
        cfg.catalog.target_languages = [str(lang) for lang in block["targetLanguages"]]
    if "targetFolder" in block:
        cfg.catalog.target_folder = str(block["targetFolder"])
    if "promptsDir" in block:
        cfg.catalog.prompts_dir = str(block["promptsDir"])

    options = block.get("options") or {}
    if isinstance(options, dict):
        cfg.consensus = ConsensusSettings.from_dict(
            {
                "candidates": options.get("candidates", cfg.consensus.candidates),
                "judges": options.get("judges", cfg.consensus.judges),
                "maxAttempts": options.get("maxAttempts", cfg.consensus.max_attempts),
                "maxRounds": options.get("maxRounds", cfg.consensus.max_rounds),
            }
        )
        if "models" in options:
            cfg.oracle.models = [str(model) for model in options["models"]]


def _load_from_ini(parser: configparser.ConfigParser, cfg: TranslateConfig) -> None:
    """Load configuration from parsed INI file into TranslateConfig."""
    # Oracle section
    if parser.has_section("oracle"):
        if parser.has_option("oracle", "base_url"):
            cfg.oracle.base_url = parser.get("oracle", "base_url")
        if parser.has_option("oracle", "models"):
            cfg.oracle.models = _parse_list(parser.get("oracle", "models"))
        if parser.has_option("oracle", "temperature"):
            cfg.oracle.temperature = parser.getfloat("oracle", "temperature")
        if parser.has_option("oracle", "timeout_seconds"):
            cfg.oracle.timeout_seconds = parser.getfloat("oracle", "timeout_seconds")
        if parser.has_option("oracle", "api_key_env"):
            cfg.oracle.api_key_env = parser.get("oracle", "api_key_env")

    # Consensus section
    if parser.has_section("consensus"):
        changes = {
            option: parser.getint("consensus", option)
            for option in ("candidates", "judges", "max_attempts", "max_rounds")
            if parser.has_option("consensus", option)
        }
        _consensus_overrides(cfg, **changes)

    # Catalog section
    if parser.has_section("catalog"):
        if parser.has_option("catalog", "root_file"):
            cfg.catalog.root_file = parser.get("catalog", "root_file")
        if parser.has_option("catalog", "target_languages"):
            cfg.catalog.target_languages = _parse_list(parser.get("catalog", "target_languages"))
        if parser.has_option("catalog", "target_folder"):
            cfg.catalog.target_folder = parser.get("catalog", "target_folder")
        if parser.has_option("catalog", "prompts_dir"):
            cfg.catalog.prompts_dir = parser.get("catalog", "prompts_dir") or None

    # Logging section
    if parser.has_section("logging"):
        if parser.has_option("logging", "level"):
            cfg.logging.level = parser.get("logging", "level").upper()
        if parser.has_option("logging", "format"):
            val = parser.get("logging", "format").lower()
            if val in ("simple", "detailed"):
                cfg.logging.format = val  # type: ignore[assignment]


def _apply_env_overrides(cfg: TranslateConfig) -> None:
    """Apply environment variable overrides to configuration."""
    # Catalog settings
    if env_root := os.getenv(f"{ENV_PREFIX}ROOT_FILE"):
        cfg.catalog.root_file = env_root
    if env_languages := os.getenv(f"{ENV_PREFIX}TARGET_LANGUAGES"):
        cfg.catalog.target_languages = _parse_list(env_languages)
    if env_folder := os.getenv(f"{ENV_PREFIX}TARGET_FOLDER"):
        cfg.catalog.target_folder = env_folder
    if env_prompts := os.getenv(f"{ENV_PREFIX}PROMPTS_DIR"):
        cfg.catalog.prompts_dir = env_prompts

    # Consensus settings
    changes = {}
    for option in ("candidates", "judges", "max_attempts", "max_rounds"):
        if env_value := os.getenv(f"{ENV_PREFIX}{option.upper()}"):
            changes[option] = int(env_value)
    _consensus_overrides(cfg, **changes)

    # Oracle settings
    if env_models := os.getenv(f"{ENV_PREFIX}MODELS"):
        cfg.oracle.models = _parse_list(env_models)
    if env_url := os.getenv(f"{ENV_PREFIX}BASE_URL"):
        cfg.oracle.base_url = env_url

    # Logging settings
    if env_log := os.getenv(f"{ENV_PREFIX}LOG_LEVEL"):
        cfg.logging.level = env_log.upper()


def load_config(
    config_file: str | Path | None = None,
    package_json: str | Path | None = None,
    *,
    root: str | Path | None = None,
) -> TranslateConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. ``config_file``, else config/translate.ini, else
           config/translate.example.ini
        3. ``package_json`` (default package.json), block
           "i18next-ai-translate"
        4. Built-in defaults

    Args:
        config_file:  Explicit INI file.  Must exist if given.
        package_json: Explicit package.json.  Must exist if given.
        root:         Project root; defaults to the working directory.

    Returns:
        TranslateConfig: Fully populated configuration object.

    Raises:
        FileNotFoundError: An explicitly given file does not exist.
    """
    cfg = TranslateConfig(root=Path(root) if root is not None else Path.cwd())

    # package.json block (lowest file priority)
    pkg_path = cfg.resolve(package_json) if package_json is not None else cfg.resolve(PACKAGE_JSON)
    if package_json is not None and not pkg_path.exists():
        raise FileNotFoundError(f"package.json not found: {pkg_path}")
    if pkg_path.exists():
        try:
            data = json.loads(pkg_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring unparseable %s: %s", pkg_path, exc)
        else:
            if isinstance(data, dict):
                _load_from_package_json(data, cfg)
                if PACKAGE_JSON_BLOCK in data:
                    cfg.sources.append(str(pkg_path))

    # Determine which INI file to use
    ini_path: Path | None = None
    if config_file is not None:
        ini_path = cfg.resolve(config_file)
        if not ini_path.exists():
            raise FileNotFoundError(f"Config file not found: {ini_path}")
    elif cfg.resolve(CONFIG_FILE).exists():
        ini_path = cfg.resolve(CONFIG_FILE)
    elif cfg.resolve(CONFIG_EXAMPLE).exists():
        # Use example as fallback for development
        ini_path = cfg.resolve(CONFIG_EXAMPLE)

    if ini_path is not None:
        parser = configparser.ConfigParser()
        parser.read(ini_path, encoding="utf-8")
        _load_from_ini(parser, cfg)
        cfg.sources.append(str(ini_path))

    # Apply environment variable overrides (highest priority)
    _apply_env_overrides(cfg)

    logger.debug("Configuration loaded from %s", cfg.sources or ["defaults"])
    return cfg


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def get_config_status(cfg: TranslateConfig) -> dict:
    """
    Get configuration status for diagnostics.

    Returns a dictionary with configuration source information, useful
    for debugging a run that picked up unexpected settings.
    """
    return {
        "sources": list(cfg.sources),
        "using_example": any(source.endswith(CONFIG_EXAMPLE.name) for source in cfg.sources),
        "root_file": str(cfg.root_file_path),
        "root_file_exists": cfg.root_file_path.exists(),
        "target_folder": str(cfg.target_folder_path),
        "target_languages": list(cfg.catalog.target_languages),
        "api_key_present": cfg.oracle.api_key is not None,
    }


def print_config_summary(cfg: TranslateConfig) -> None:
    """Print a summary of the configuration to stdout."""
    status = get_config_status(cfg)
    print("\n" + "=" * 60)
    print("TRANSLATION CONFIGURATION")
    print("=" * 60)
    print(f"Sources:     {', '.join(status['sources']) or 'defaults only'}")
    if status["using_example"]:
        print("WARNING: Using example config (copy to translate.ini to customise)")
    print("-" * 60)
    print(f"Source file: {status['root_file']} (exists: {status['root_file_exists']})")
    print(f"Output:      {status['target_folder']}")
    print(f"Languages:   {', '.join(status['target_languages']) or '(none)'}")
    print(f"Models:      {', '.join(cfg.oracle.models)}")
    print(f"Endpoint:    {cfg.oracle.base_url}")
    print(f"API key:     {'set' if status['api_key_present'] else 'MISSING'}")
    print(
        f"Consensus:   {cfg.consensus.candidates} candidates, {cfg.consensus.judges} judges, "
        f"{cfg.consensus.max_rounds} rounds, {cfg.consensus.max_attempts} attempts"
    )
    print(f"Log level:   {cfg.logging.level}")
    print("=" * 60 + "\n")
