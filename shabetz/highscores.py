from __future__ import annotations
import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Literal, Optional, Sequence

from pydantic import BaseModel, TypeAdapter, ValidationError

from .schemas import Move, PlayerState
from .scoring import MoveScore, calculate_game_stats

log = logging.getLogger(__name__)

HighscoreCategory = Literal['turn-points', 'game-points', 'word-points', 'longest-word', 'bingo-count']

class HighscoreEntry(BaseModel):
    id: str
    category: HighscoreCategory
    playerName: str
    points: int
    dateISO: str
    word: Optional[str] = None
    gameId: Optional[str] = None

_entries = TypeAdapter(List[HighscoreEntry])


class HighscoreStore:
    """Append-only list of score records kept in a local JSON file."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path) if path else None
        self._lock = threading.Lock()
        self._memory: List[HighscoreEntry] = []

    def load(self) -> List[HighscoreEntry]:
        if self.path is None:
            return list(self._memory)
        if not self.path.exists():
            return []
        try:
            return _entries.validate_json(self.path.read_bytes())
        except ValidationError as e:
            log.warning('Ignoring unreadable highscores file %s: %s', self.path, e)
            return []

    def append(
        self,
        category: HighscoreCategory,
        player_name: str,
        points: int,
        word: Optional[str] = None,
        game_id: Optional[str] = None,
    ) -> HighscoreEntry:
        entry = HighscoreEntry(
            id=uuid.uuid4().hex,
            category=category,
            playerName=player_name,
            points=points,
            dateISO=datetime.now(timezone.utc).isoformat(),
            word=word,
            gameId=game_id,
        )
        with self._lock:
            if self.path is None:
                self._memory.insert(0, entry)
            else:
                entries = [entry, *self.load()]
                self.path.write_text(
                    json.dumps([e.model_dump(exclude_none=True) for e in entries], ensure_ascii=False),
                    encoding='utf-8',
                )
        return entry

    def top(self, category: HighscoreCategory, limit: int = 10) -> List[HighscoreEntry]:
        entries = [e for e in self.load() if e.category == category]
        return sorted(entries, key=lambda e: e.points, reverse=True)[:limit]


def record_turn(store: HighscoreStore, player_name: str, score: MoveScore, game_id: Optional[str] = None) -> None:
    store.append('turn-points', player_name, score.total, game_id=game_id)
    if not score.wordScores:
        return
    best = max(score.wordScores, key=lambda ws: ws.score)
    store.append('word-points', player_name, best.score, word=best.word, game_id=game_id)
    longest = max(score.wordScores, key=lambda ws: len(ws.word))
    store.append('longest-word', player_name, len(longest.word), word=longest.word, game_id=game_id)


def record_game(
    store: HighscoreStore,
    players: Sequence[PlayerState],
    player_id: int,
    history: Sequence[Move],
    game_id: Optional[str] = None,
) -> None:
    player = players[player_id]
    store.append('game-points', player.name, player.score, game_id=game_id)
    stats = calculate_game_stats(m for m in history if m.playerId == player_id)
    if stats.bingoCount:
        store.append('bingo-count', player.name, stats.bingoCount, game_id=game_id)
