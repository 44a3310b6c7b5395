"""Model rotation strategy for the chat-completion oracle.

Spreading the N candidates and K judges over several backend models makes
the generations more independent of each other.  Which model serves which
call is a transport concern; the consensus engine never sees it.
"""

from __future__ import annotations

import itertools
import random
from collections.abc import Sequence


class ModelRotation:
    """Round-robin over a fixed list of model names.

    Args:
        models:  Non-empty list of model identifiers.
        shuffle: Start from a random position instead of the first model.
        rng:     Random source used when ``shuffle`` is set (injectable for
                 tests).
    """

    def __init__(
        self,
        models: Sequence[str],
        *,
        shuffle: bool = False,
        rng: random.Random | None = None,
    ) -> None:
        cleaned = [model.strip() for model in models if model and model.strip()]
        if not cleaned:
            raise ValueError("ModelRotation requires at least one model")
        self._models = tuple(cleaned)
        start = (rng or random.Random()).randrange(len(cleaned)) if shuffle else 0
        self._cycle = itertools.islice(itertools.cycle(self._models), start, None)

    @property
    def models(self) -> tuple[str, ...]:
        return self._models

    def next(self) -> str:
        """Return the model to use for the next call."""
        return next(self._cycle)

    def __len__(self) -> int:
        return len(self._models)
