from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from .board import Premium, premium_at
from .letters import letter_points, rack_points
from .schemas import Board, FoundWord, Move, PlayerState, Position, WordScore

BINGO_BONUS = 50
DEFAULT_RACK_CAPACITY = 7

@dataclass
class MoveScore:
    total: int
    wordScores: List[WordScore] = field(default_factory=list)
    bingoBonus: int = 0


def score_word(word: FoundWord, new_positions: Set[Tuple[int, int]], board: Board) -> int:
    base = 0
    word_multiplier = 1
    for pos in word.positions:
        tile = board[pos.row][pos.col]
        if tile is None:
            continue
        value = 0 if tile.isJoker else letter_points(tile.letter)
        # Premium squares only count the turn a tile is first placed on them
        if (pos.row, pos.col) in new_positions:
            premium = premium_at(pos.row, pos.col)
            if premium is Premium.TRIPLE_LETTER:
                value *= 3
            elif premium is Premium.DOUBLE_LETTER:
                value *= 2
            elif premium in (Premium.TRIPLE_WORD, Premium.CENTER):
                word_multiplier *= 3
            elif premium is Premium.DOUBLE_WORD:
                word_multiplier *= 2
        base += value
    return base * word_multiplier


def score_move(
    new_words: Sequence[FoundWord],
    new_positions: Iterable[Position],
    board: Board,
    tiles_used: int,
    rack_capacity: int = DEFAULT_RACK_CAPACITY,
) -> MoveScore:
    placed = {(p.row, p.col) for p in new_positions}
    word_scores = [
        WordScore(word=w.text, score=score_word(w, placed, board)) for w in new_words
    ]
    bingo = BINGO_BONUS if tiles_used == rack_capacity else 0
    return MoveScore(
        total=sum(ws.score for ws in word_scores) + bingo,
        wordScores=word_scores,
        bingoBonus=bingo,
    )


def apply_end_of_game(players: Sequence[PlayerState], finisher: Optional[int]) -> List[PlayerState]:
    """Final adjustment of scores, applied once when the game ends.

    The finisher (the player who emptied their rack) collects the value of
    every other rack; everybody else loses the value of their own rack,
    never dropping below zero. Without a finisher nobody collects.
    """
    leftovers = [rack_points(p.tiles_left()) for p in players]
    adjusted: List[PlayerState] = []
    for idx, player in enumerate(players):
        if idx == finisher:
            bonus = sum(v for i, v in enumerate(leftovers) if i != idx)
            adjusted.append(player.model_copy(update={'score': player.score + bonus}))
        else:
            adjusted.append(player.model_copy(update={'score': max(0, player.score - leftovers[idx])}))
    return adjusted


@dataclass
class GameStats:
    totalWords: int = 0
    averageWordLength: float = 0.0
    highestScoringWord: Optional[WordScore] = None
    bingoCount: int = 0
    totalTilesPlayed: int = 0


def calculate_game_stats(history: Iterable[Move]) -> GameStats:
    stats = GameStats()
    total_length = 0
    for move in history:
        if move.action != 'place-word':
            continue
        for ws in move.wordScores or []:
            stats.totalWords += 1
            total_length += len(ws.word)
            if stats.highestScoringWord is None or ws.score > stats.highestScoringWord.score:
                stats.highestScoringWord = ws
        if move.bingoBonus:
            stats.bingoCount += 1
        stats.totalTilesPlayed += len(move.tilesUsed or [])
    if stats.totalWords:
        stats.averageWordLength = round(total_length / stats.totalWords, 1)
    return stats
