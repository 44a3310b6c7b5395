"""i18n-consensus: structure-preserving LLM translation of i18next catalogs.

Several independent LLM translations of the same catalog are compared leaf
by leaf.  Leaves they all agree on are kept; disputed leaves go to a
bounded number of critique rounds in which independent judges vote.
Every candidate and every judge verdict must keep the placeholders,
``$t()`` references, tags and plural suffixes of the source string before
it is allowed to vote.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__: str = version("i18n-consensus")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
