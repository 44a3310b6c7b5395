"""
Shared pytest fixtures for the i18n-consensus test suite.

This module provides fixtures that are automatically available to all test files:
- A fresh event bus per test
- Small source catalogs used across the consensus tests

Scripted oracles live in ``tests/fakes.py``.
"""

import pytest

from i18n_consensus.core.bus import EventBus

# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def bus() -> EventBus:
    """A fresh event bus for one test."""
    return EventBus()


@pytest.fixture
def about_source() -> dict:
    """Nested catalog shaped like a typical i18next "about" page."""
    return {
        "about": {
            "title": "About",
            "buildnumber": "Build Number:",
            "date": "Build Date:",
        },
        "items_one": "{{count}} item",
        "items_other": "{{count}} items",
        "welcome": "Hello <bold>{{name}}</bold>, see $t(about.title)",
    }


@pytest.fixture
def about_french() -> dict:
    """A structurally valid French translation of ``about_source``."""
    return {
        "about": {
            "title": "À propos",
            "buildnumber": "Numéro de build :",
            "date": "Date de build :",
        },
        "items_one": "{{count}} élément",
        "items_other": "{{count}} éléments",
        "welcome": "Bonjour <bold>{{name}}</bold>, voir $t(about.title)",
    }
