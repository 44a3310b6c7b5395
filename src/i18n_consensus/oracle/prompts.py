"""Prompt templates for the chat-completion oracle.

The consensus engine never builds prompts itself.  The caller supplies a
``PromptSet``; the bundled defaults below are only a starting point and can
be replaced per project by dropping text files into a prompts directory:

    prompts/
        translate.txt           system prompt for candidate generation
        critique.txt            system prompt for round-1 judges
        critique_followup.txt   system prompt for judges that see opinions

Templates use ``{{language}}`` as their only placeholder.  Unknown
placeholders are left in place so they stay visible while a prompt is
being developed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TRANSLATE = (
    "You are a localization engine. "
    "Translate the JSON values from developer English to {{language}}. "
    "Do not change keys. Preserve nesting, placeholders, interpolations and HTML tags. "
    "The template syntax is i18next. "
    "Return ONLY valid JSON in the same format as the input. Do not wrap it in a new object."
)

DEFAULT_CRITIQUE = (
    "You are a critical localization engine. "
    "Iterate over the array and judge the translation quality. Each object contains the "
    "key, the English source text and an array of suggested translations into {{language}}. "
    "Write at key 'opinion' your thoughts about the translations and which one is best. "
    "Write at key 'result' the translation you consider best, as the string itself. "
    "Keep every placeholder, $t() reference and tag of the source. "
    "Return ONLY a JSON array of objects with keys 'key', 'opinion' and 'result'."
)

DEFAULT_CRITIQUE_FOLLOWUP = (
    "You are a critical localization engine. "
    "Iterate over the array and judge the translation quality. Each object contains the "
    "key, the English source text, an array of suggested translations into {{language}} "
    "and the opinions previously given by you and other reviewers. "
    "Write at key 'opinion' your thoughts about the translations and opinions and which "
    "one is best. "
    "Write at key 'result' the translation you consider best, as the string itself. "
    "Keep every placeholder, $t() reference and tag of the source. "
    "Return ONLY a JSON array of objects with keys 'key', 'opinion' and 'result'."
)

_FILES = {
    "translate": "translate.txt",
    "critique": "critique.txt",
    "critique_followup": "critique_followup.txt",
}


def render(template: str, **values: str) -> str:
    """Substitute ``{{name}}`` placeholders in ``template``."""
    rendered = template
    for key, value in values.items():
        rendered = rendered.replace(f"{{{{{key}}}}}", str(value))
    return rendered


@dataclass(frozen=True)
class PromptSet:
    """The three system prompts an oracle needs.

    Attributes:
        translate:         Candidate generation.
        critique:          Judges in round 1.
        critique_followup: Judges whose payload carries prior opinions.
    """

    translate: str = DEFAULT_TRANSLATE
    critique: str = DEFAULT_CRITIQUE
    critique_followup: str = DEFAULT_CRITIQUE_FOLLOWUP

    @classmethod
    def load(cls, directory: str | Path | None) -> PromptSet:
        """Load templates from ``directory``, falling back per file to defaults."""
        if directory is None:
            return cls()

        root = Path(directory)
        defaults = cls()
        loaded: dict[str, str] = {}
        for field_name, filename in _FILES.items():
            path = root / filename
            if path.exists():
                loaded[field_name] = path.read_text(encoding="utf-8").strip()
                logger.debug("Loaded %s prompt from %s", field_name, path)
            else:
                logger.warning(
                    "Prompt template not found at %s; using built-in %s prompt",
                    path,
                    field_name,
                )
                loaded[field_name] = getattr(defaults, field_name)
        return cls(**loaded)

    def for_translate(self, language: str) -> str:
        return render(self.translate, language=language)

    def for_critique(self, language: str, *, followup: bool = False) -> str:
        template = self.critique_followup if followup else self.critique
        return render(template, language=language)
