"""Catalog file I/O.

i18next keeps one JSON file per language:

    public/locales/translation.json        source (developer English)
    public/locales/fr/translation.json     target
    public/locales/fr/unresolved.json      residual report, when non-empty

Everything here is synchronous file work around a pipeline run; the
consensus engine itself never touches the filesystem.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path

from i18n_consensus.consensus.collapse import Mismatch
from i18n_consensus.consensus.tree import Path as KeyPath
from i18n_consensus.consensus.tree import dotted, lookup

logger = logging.getLogger(__name__)

TRANSLATION_FILENAME = "translation.json"
RESIDUAL_FILENAME = "unresolved.json"


class CatalogError(Exception):
    """A catalog file is missing, unreadable or not a JSON object."""

    def __init__(self, path: Path, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"{path}: {detail}")


def read_catalog(path: str | Path) -> dict:
    """Read a catalog file.

    Raises:
        CatalogError: The file does not exist, is not UTF-8 JSON, or its
                      top level is not an object.
    """
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise CatalogError(p, "file not found") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise CatalogError(p, f"cannot read file ({exc})") from exc

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise CatalogError(p, f"invalid JSON ({exc})") from exc

    if not isinstance(data, dict):
        raise CatalogError(p, f"expected a JSON object, got {type(data).__name__}")
    return data


def write_catalog(path: str | Path, tree: dict) -> Path:
    """Write ``tree`` as pretty-printed UTF-8 JSON, creating parent folders."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(tree, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    logger.info("Wrote %s", p)
    return p


def target_path(folder: str | Path, language: str) -> Path:
    """Path of the translation file for ``language`` under ``folder``."""
    return Path(folder) / language / TRANSLATION_FILENAME


def residual_path(folder: str | Path, language: str) -> Path:
    return Path(folder) / language / RESIDUAL_FILENAME


def load_reference(folder: str | Path, language: str) -> dict | None:
    """Return the existing translation for ``language``, if there is one.

    A missing file is normal for a language translated for the first time.
    An unreadable one is logged and treated as missing.
    """
    path = target_path(folder, language)
    if not path.exists():
        logger.info("No existing %s translation at %s", language, path)
        return None
    try:
        reference = read_catalog(path)
    except CatalogError as exc:
        logger.warning("Ignoring existing %s translation: %s", language, exc)
        return None
    logger.info("Found existing %s translation at %s", language, path)
    return reference


def changed_keys(previous: Mapping, current: Mapping) -> list[str]:
    """Dotted paths of string leaves in ``current`` that differ from ``previous``."""
    changed: list[str] = []

    def _walk(node: Mapping, path: KeyPath) -> None:
        for key, value in node.items():
            child_path = (*path, str(key))
            if isinstance(value, Mapping):
                _walk(value, child_path)
            elif isinstance(value, str) and lookup(previous, child_path) != value:
                changed.append(dotted(child_path))

    _walk(current, ())
    return changed


def write_residual_report(path: str | Path, residual: Sequence[Mismatch]) -> Path:
    """Write the still-disputed keys of a run for human review."""
    items = [mismatch.to_dict() for mismatch in residual]
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(items, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    logger.info("Wrote %d entries to %s", len(items), p)
    return p
