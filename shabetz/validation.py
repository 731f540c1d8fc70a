from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Protocol, Sequence, Set, Tuple

from .board import BOARD_SIZE, CENTER, has_tile, inside, overlay
from .letters import normalize_word_variants
from .schemas import Board, FoundWord, Placement, Position

MIN_WORD_LENGTH = 2

class Lexicon(Protocol):
    def is_valid(self, word: str) -> bool: ...

class ErrorKind(str, Enum):
    OCCUPIED_SQUARE = 'OccupiedSquare'
    MISALIGNED_PLACEMENT = 'MisalignedPlacement'
    DISCONTINUOUS_PLACEMENT = 'DiscontinuousPlacement'
    MUST_USE_CENTER = 'MustUseCenter'
    DISCONNECTED = 'Disconnected'
    NO_WORD_FORMED = 'NoWordFormed'
    UNKNOWN_WORD = 'UnknownWord'

_MESSAGES = {
    ErrorKind.OCCUPIED_SQUARE: 'Tiles must go on free squares inside the board',
    ErrorKind.MISALIGNED_PLACEMENT: 'Tiles must share a single row or column',
    ErrorKind.DISCONTINUOUS_PLACEMENT: 'Tiles must form a continuous line',
    ErrorKind.MUST_USE_CENTER: 'The first word must cover the center square',
    ErrorKind.DISCONNECTED: 'New tiles must touch tiles already on the board',
    ErrorKind.NO_WORD_FORMED: 'The move must form at least one new word',
}

@dataclass(frozen=True)
class MoveError:
    kind: ErrorKind
    word: Optional[str] = None

    @property
    def message(self) -> str:
        if self.kind is ErrorKind.UNKNOWN_WORD:
            return f'The word "{self.word}" is not in the dictionary'
        return _MESSAGES[self.kind]

    def to_dict(self) -> dict:
        return {'kind': self.kind.value, 'word': self.word, 'message': self.message}

@dataclass
class ValidationResult:
    legal: bool
    errors: List[MoveError] = field(default_factory=list)
    new_words: List[FoundWord] = field(default_factory=list)

    def kinds(self) -> List[ErrorKind]:
        return [e.kind for e in self.errors]


def _scan_line(board: Board, cells: Sequence[Tuple[int, int]]) -> List[FoundWord]:
    words: List[FoundWord] = []
    run: List[Tuple[int, int]] = []

    def flush() -> None:
        if len(run) >= MIN_WORD_LENGTH:
            tiles = [board[r][c] for r, c in run]
            words.append(FoundWord(
                text=''.join(t.letter for t in tiles),
                positions=[Position(row=r, col=c) for r, c in run],
                isNew=any(t.isNew for t in tiles),
            ))

    for r, c in cells:
        if board[r][c] is not None:
            run.append((r, c))
        else:
            flush()
            run = []
    flush()
    return words


def find_all_words(board: Board) -> List[FoundWord]:
    """Every maximal run of two or more tiles, rows first, then columns."""
    words: List[FoundWord] = []
    for row in range(BOARD_SIZE):
        words.extend(_scan_line(board, [(row, col) for col in range(BOARD_SIZE)]))
    for col in range(BOARD_SIZE):
        words.extend(_scan_line(board, [(row, col) for row in range(BOARD_SIZE)]))
    return words


def _bad_squares(board: Board, placements: Sequence[Placement]) -> bool:
    seen: Set[Tuple[int, int]] = set()
    for p in placements:
        key = p.position.key()
        if not inside(*key) or board[key[0]][key[1]] is not None or key in seen:
            return True
        seen.add(key)
    return False


def _has_gap(board: Board, placements: Sequence[Placement], horizontal: bool) -> bool:
    new = {p.position.key() for p in placements}
    if horizontal:
        row = placements[0].position.row
        cols = [p.position.col for p in placements]
        line = [(row, c) for c in range(min(cols), max(cols) + 1)]
    else:
        col = placements[0].position.col
        rows = [p.position.row for p in placements]
        line = [(r, col) for r in range(min(rows), max(rows) + 1)]
    return any(pos not in new and not has_tile(board, *pos) for pos in line)


def _touches_existing(board: Board, placements: Sequence[Placement]) -> bool:
    for p in placements:
        r, c = p.position.row, p.position.col
        for dr, dc in ((-1, 0), (1, 0), (0, -1), (0, 1)):
            if has_tile(board, r + dr, c + dc):
                return True
    return False


def word_is_known(lexicon: Lexicon, word: str) -> bool:
    return any(lexicon.is_valid(v) for v in normalize_word_variants(word))


def validate(
    board: Board,
    placements: Sequence[Placement],
    is_first_move: bool,
    lexicon: Lexicon,
) -> ValidationResult:
    errors: List[MoveError] = []

    if _bad_squares(board, placements):
        return ValidationResult(legal=False, errors=[MoveError(ErrorKind.OCCUPIED_SQUARE)])

    if len(placements) > 1:
        rows = {p.position.row for p in placements}
        cols = {p.position.col for p in placements}
        horizontal, vertical = len(rows) == 1, len(cols) == 1
        if not horizontal and not vertical:
            errors.append(MoveError(ErrorKind.MISALIGNED_PLACEMENT))
        elif _has_gap(board, placements, horizontal):
            errors.append(MoveError(ErrorKind.DISCONTINUOUS_PLACEMENT))

    if is_first_move:
        if not any(p.position.key() == CENTER for p in placements):
            errors.append(MoveError(ErrorKind.MUST_USE_CENTER))
    elif not _touches_existing(board, placements):
        errors.append(MoveError(ErrorKind.DISCONNECTED))

    candidate = overlay(board, placements)
    new_words = [w for w in find_all_words(candidate) if w.isNew]
    if not new_words:
        errors.append(MoveError(ErrorKind.NO_WORD_FORMED))

    for word in new_words:
        if not word_is_known(lexicon, word.text):
            errors.append(MoveError(ErrorKind.UNKNOWN_WORD, word=word.text))

    return ValidationResult(legal=not errors, errors=errors, new_words=new_words)
