"""
Shared pytest fixtures for the chat translator test suite.

This module provides fixtures that are automatically available to all test files:
- A sample glossary document written to a temporary YAML file
- A fake monotonic clock whose sleep advances time instantly
- A stand-in completion client with AsyncMock operations
"""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from chat_translator.client import CompletionClient
from chat_translator.glossary import Glossary, GlossaryMatcher, load_glossary
from tests.constants import SAMPLE_GLOSSARY, write_glossary

# ============================================================================
# GLOSSARY FIXTURES
# ============================================================================


@pytest.fixture
def glossary_path(tmp_path: Path) -> Path:
    """Path to a valid sample glossary file."""
    return write_glossary(tmp_path, SAMPLE_GLOSSARY)


@pytest.fixture
def glossary(glossary_path: Path) -> Glossary:
    """The sample glossary, loaded."""
    return load_glossary(glossary_path)


@pytest.fixture
def matcher(glossary: Glossary) -> GlossaryMatcher:
    return GlossaryMatcher(glossary)


# ============================================================================
# TIME FIXTURES
# ============================================================================


class FakeClock:
    """Monotonic clock stand-in.  ``sleep`` records the delay and advances time."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# CLIENT FIXTURES
# ============================================================================


@pytest.fixture
def fake_client() -> MagicMock:
    """A completion client whose operations are AsyncMocks.

    ``translate`` echoes a tagged string by default so that tests can tell
    which direction produced which outcome.
    """
    client = MagicMock(spec=CompletionClient)

    async def _translate(text, source, target, hint=None, *, output_format="text"):
        return f"{target}:{text}"

    client.translate = AsyncMock(side_effect=_translate)
    client.translate_with_auto_detect = AsyncMock()
    client.detect_language = AsyncMock()
    return client
