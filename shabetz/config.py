from __future__ import annotations
import os
from typing import List, Optional

from dotenv import load_dotenv

if os.getenv('PYTEST_CURRENT_TEST') is None:
    load_dotenv(override=False)

_TRUE = {'1', 'true', 'yes', 'on', 'y', 't'}


def _bool(name: str, default: bool) -> bool:
    val = os.environ.get(name)
    if val is None:
        return default
    return val.strip().lower() in _TRUE


def _list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.environ.get(name, default).split(',') if item.strip()]


class Config:
    HOST = os.environ.get('SHABETZ_HOST', '0.0.0.0')
    PORT = int(os.environ.get('SHABETZ_PORT', '3001'))
    CORS_ORIGINS = _list('CORS_ORIGINS', '*')
    # Lexicon oracle; empty means local lexicon only
    DICTIONARY_URL: Optional[str] = os.environ.get('DICTIONARY_URL') or None
    DICTIONARY_TIMEOUT = float(os.environ.get('DICTIONARY_TIMEOUT', '3.0'))
    WORDS_FILE: Optional[str] = os.environ.get('WORDS_FILE') or None
    LOCAL_LEXICON_PERMISSIVE = _bool('LOCAL_LEXICON_PERMISSIVE', True)
    # Game rules
    SECONDS_PER_TURN = int(os.environ.get('SECONDS_PER_TURN', '120'))
    TILES_PER_PLAYER = int(os.environ.get('TILES_PER_PLAYER', '7'))
    # Fixed delay between reconnect attempts (seconds)
    RECONNECT_DELAY = float(os.environ.get('RECONNECT_DELAY', '3.0'))
    HIGHSCORES_PATH = os.environ.get('HIGHSCORES_PATH', 'highscores.json')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_PATH: Optional[str] = os.environ.get('SHABETZ_LOG_PATH') or None
