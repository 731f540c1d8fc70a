from __future__ import annotations
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple

from .schemas import Board, BoardTile, Placement

BOARD_SIZE = 15
CENTER: Tuple[int, int] = (7, 7)

class Premium(str, Enum):
    TRIPLE_WORD = 'triple-word'
    DOUBLE_WORD = 'double-word'
    TRIPLE_LETTER = 'triple-letter'
    DOUBLE_LETTER = 'double-letter'
    CENTER = 'center'
    NORMAL = 'normal'

_TRIPLE_WORD = [(0, 0), (0, 7), (0, 14), (7, 0), (7, 14), (14, 0), (14, 7), (14, 14)]
_DOUBLE_WORD = [
    (1, 1), (2, 2), (3, 3), (4, 4),
    (1, 13), (2, 12), (3, 11), (4, 10),
    (13, 1), (12, 2), (11, 3), (10, 4),
    (13, 13), (12, 12), (11, 11), (10, 10),
]
_TRIPLE_LETTER = [
    (1, 5), (1, 9), (5, 1), (5, 5), (5, 9), (5, 13),
    (9, 1), (9, 5), (9, 9), (9, 13), (13, 5), (13, 9),
]
_DOUBLE_LETTER = [
    (0, 3), (0, 11), (2, 6), (2, 8), (3, 0), (3, 7), (3, 14),
    (6, 2), (6, 6), (6, 8), (6, 12), (7, 3), (7, 11),
    (8, 2), (8, 6), (8, 8), (8, 12), (11, 0), (11, 7), (11, 14),
    (12, 6), (12, 8), (14, 3), (14, 11),
]

def _build_premium_map() -> Mapping[Tuple[int, int], Premium]:
    squares = {}
    for positions, premium in (
        (_TRIPLE_WORD, Premium.TRIPLE_WORD),
        (_DOUBLE_WORD, Premium.DOUBLE_WORD),
        (_TRIPLE_LETTER, Premium.TRIPLE_LETTER),
        (_DOUBLE_LETTER, Premium.DOUBLE_LETTER),
    ):
        for pos in positions:
            squares[pos] = premium
    squares[CENTER] = Premium.CENTER
    return MappingProxyType(squares)

# Static, loaded once
PREMIUM_MAP: Mapping[Tuple[int, int], Premium] = _build_premium_map()


def premium_at(row: int, col: int) -> Premium:
    return PREMIUM_MAP.get((row, col), Premium.NORMAL)


def inside(row: int, col: int) -> bool:
    return 0 <= row < BOARD_SIZE and 0 <= col < BOARD_SIZE


def empty_board() -> Board:
    return [[None for _ in range(BOARD_SIZE)] for _ in range(BOARD_SIZE)]


def tile_at(board: Board, row: int, col: int) -> Optional[BoardTile]:
    if not inside(row, col):
        return None
    return board[row][col]


def has_tile(board: Board, row: int, col: int) -> bool:
    return tile_at(board, row, col) is not None


def is_empty(board: Board) -> bool:
    return all(cell is None for row in board for cell in row)


def copy_board(board: Board) -> Board:
    # Tiles are replaced, never edited, so a row-level copy is enough
    return [list(row) for row in board]


def overlay(board: Board, placements: Iterable[Placement], owner: Optional[int] = None) -> Board:
    """New board with the placements laid down as new (uncommitted) tiles."""
    out = copy_board(board)
    for p in placements:
        out[p.position.row][p.position.col] = BoardTile(
            letter=p.letter, isNew=True, ownerId=owner, isJoker=p.isJoker,
        )
    return out


def commit(board: Board, placements: Iterable[Placement], owner: int) -> Board:
    out = copy_board(board)
    for p in placements:
        out[p.position.row][p.position.col] = BoardTile(
            letter=p.letter, isNew=False, ownerId=owner, isJoker=p.isJoker,
        )
    return out
