"""Shared fixtures."""
from __future__ import annotations

import pytest

from shabetz.dictionary import LocalLexicon
from shabetz.highscores import HighscoreStore

from helpers import WORDS, LoopbackRelay, RecordingTransport


@pytest.fixture
def lexicon() -> LocalLexicon:
    return LocalLexicon(WORDS)


@pytest.fixture
def permissive_lexicon() -> LocalLexicon:
    return LocalLexicon(WORDS, permissive=True)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def loopback() -> LoopbackRelay:
    return LoopbackRelay()


@pytest.fixture
def store() -> HighscoreStore:
    return HighscoreStore()
