"""Generation backends for the consensus engine.

Package structure
-----------------
base.py      ``Oracle`` protocol, ``Verdict`` model and response parsing.
prompts.py   ``PromptSet``: system prompt templates with built-in defaults.
rotation.py  ``ModelRotation``: round-robin model selection.
openai.py    ``ChatCompletionOracle``: async client for an OpenAI-compatible
             ``/chat/completions`` endpoint.
"""

from i18n_consensus.oracle.base import Oracle, Verdict, parse_tree, parse_verdicts
from i18n_consensus.oracle.openai import CallRecord, ChatCompletionOracle
from i18n_consensus.oracle.prompts import PromptSet
from i18n_consensus.oracle.rotation import ModelRotation

__all__ = [
    "CallRecord",
    "ChatCompletionOracle",
    "ModelRotation",
    "Oracle",
    "PromptSet",
    "Verdict",
    "parse_tree",
    "parse_verdicts",
]
