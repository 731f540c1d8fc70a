from __future__ import annotations
import random
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from .board import commit, copy_board, empty_board, overlay
from .letters import EMPTY_SLOT, JOKER, MEDIAL_TO_FINAL, create_letter_bag, draw_tiles
from .schemas import Board, FoundWord, GamePhase, GameState, Move, Placement, PlayerState, Snapshot
from .scoring import MoveScore, apply_end_of_game, score_move
from .validation import Lexicon, MoveError, validate

class GameRules:
    MAX_CONSECUTIVE_PASSES = 6  # three full rounds of mutual passing
    TILES_PER_PLAYER = 7
    TIME_PER_TURN = 120  # seconds

class GameError(Exception):
    pass

class GameNotActive(GameError):
    pass

class NotYourTurn(GameError):
    pass

class IllegalAction(GameError):
    pass

class InvalidMove(GameError):
    def __init__(self, errors: List[MoveError]):
        super().__init__('; '.join(e.message for e in errors))
        self.errors = errors

@dataclass
class GameOptions:
    tiles_per_player: int = GameRules.TILES_PER_PLAYER
    seconds_per_turn: int = GameRules.TIME_PER_TURN
    include_jokers: bool = True
    include_final_forms: bool = True
    bag_size_multiplier: float = 1.0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_new_game_state(
    seconds_per_turn: int = GameRules.TIME_PER_TURN,
    phase: GamePhase = 'setup',
    now: Optional[datetime] = None,
) -> GameState:
    return GameState(
        phase=phase,
        turnNumber=1,
        consecutivePasses=0,
        isFirstMove=True,
        moveHistory=[],
        secondsPerTurn=seconds_per_turn,
        currentTurnStartTime=now or utcnow(),
    )


def record_move(state: GameState, move: Move, now: Optional[datetime] = None) -> GameState:
    if state.phase != 'playing':
        raise GameNotActive(f'moves are not accepted while the game is {state.phase}')
    now = now or utcnow()
    stamped = move.model_copy(update={'timestamp': now})
    return state.model_copy(update={
        'moveHistory': [*state.moveHistory, stamped],
        'turnNumber': state.turnNumber + 1,
        'consecutivePasses': state.consecutivePasses + 1 if move.action == 'pass' else 0,
        'isFirstMove': False if move.action == 'place-word' else state.isFirstMove,
        'currentTurnStartTime': now,
    })


def remaining_turn_time(state: GameState, now: Optional[datetime] = None) -> int:
    # Derived from the start timestamp on every read, never counted down
    if state.currentTurnStartTime is None:
        return state.secondsPerTurn
    elapsed = int(((now or utcnow()) - state.currentTurnStartTime).total_seconds())
    return max(0, state.secondsPerTurn - elapsed)


def is_game_finished(state: GameState, players: Sequence[PlayerState]) -> bool:
    out_of_tiles = any(not p.tiles_left() for p in players)
    return out_of_tiles or state.consecutivePasses >= GameRules.MAX_CONSECUTIVE_PASSES


def start_game(
    names: Sequence[str],
    options: Optional[GameOptions] = None,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
    epoch: Optional[str] = None,
) -> Snapshot:
    options = options or GameOptions()
    rng = rng or random.Random()
    bag = create_letter_bag(
        include_jokers=options.include_jokers,
        include_final_forms=options.include_final_forms,
        bag_size_multiplier=options.bag_size_multiplier,
        rng=rng,
    )
    players: List[PlayerState] = []
    for name in names:
        tiles, bag = draw_tiles(bag, options.tiles_per_player)
        tiles += [EMPTY_SLOT] * (options.tiles_per_player - len(tiles))
        players.append(PlayerState(name=name, score=0, rack=tiles, consecutivePasses=0))
    return Snapshot(
        board=empty_board(),
        players=players,
        letterBag=bag,
        currentPlayer=0,
        gameState=create_new_game_state(options.seconds_per_turn, phase='playing', now=now),
        version=0,
        epoch=epoch or uuid.uuid4().hex,
    )


def _check_turn(snapshot: Snapshot, player_id: int) -> PlayerState:
    if snapshot.gameState.phase != 'playing':
        raise GameNotActive(f'the game is {snapshot.gameState.phase}')
    if player_id != snapshot.currentPlayer:
        raise NotYourTurn(f'it is player {snapshot.currentPlayer}\'s turn, not {player_id}')
    return snapshot.players[player_id]


def _check_rack(rack: Sequence[str], placements: Sequence[Placement]) -> None:
    indices = [p.sourceTileIndex for p in placements]
    if len(set(indices)) != len(indices):
        raise IllegalAction('a rack tile can only be placed once')
    for p in placements:
        if not 0 <= p.sourceTileIndex < len(rack):
            raise IllegalAction(f'no rack slot {p.sourceTileIndex}')
        held = rack[p.sourceTileIndex]
        expected = JOKER if p.isJoker else p.letter
        if held != expected:
            raise IllegalAction(f'rack slot {p.sourceTileIndex} holds {held!r}, not {expected!r}')


def _refill(rack: Sequence[str], emptied: Sequence[int], bag: List[str]) -> Tuple[List[str], List[str]]:
    new_rack = list(rack)
    for idx in emptied:
        new_rack[idx] = EMPTY_SLOT
    missing = [i for i, t in enumerate(new_rack) if not t]
    drawn, bag = draw_tiles(bag, len(missing))
    for idx, letter in zip(missing, drawn):
        new_rack[idx] = letter
    return new_rack, bag


def apply_final_forms(board: Board, new_words: Sequence[FoundWord]) -> Board:
    """Turn the last letter of each new word into its word-final form.

    A cell that sits inside another new word keeps its medial form.
    """
    ends = {w.positions[-1].key() for w in new_words}
    interior = {p.key() for w in new_words for p in w.positions[:-1]}
    out = copy_board(board)
    for r, c in ends - interior:
        tile = out[r][c]
        if tile is not None and tile.letter in MEDIAL_TO_FINAL:
            out[r][c] = tile.model_copy(update={'letter': MEDIAL_TO_FINAL[tile.letter]})
    return out


def play_word(
    snapshot: Snapshot,
    player_id: int,
    placements: Sequence[Placement],
    lexicon: Lexicon,
    now: Optional[datetime] = None,
) -> Tuple[Snapshot, MoveScore]:
    player = _check_turn(snapshot, player_id)
    if not placements:
        raise IllegalAction('no tiles placed')
    _check_rack(player.rack, placements)

    result = validate(snapshot.board, placements, snapshot.gameState.isFirstMove, lexicon)
    if not result.legal:
        raise InvalidMove(result.errors)

    scored_board = overlay(snapshot.board, placements, owner=player_id)
    score = score_move(
        result.new_words,
        [p.position for p in placements],
        scored_board,
        tiles_used=len(placements),
        rack_capacity=len(player.rack),
    )
    board = apply_final_forms(commit(snapshot.board, placements, player_id), result.new_words)
    rack, bag = _refill(player.rack, [p.sourceTileIndex for p in placements], list(snapshot.letterBag))

    players = list(snapshot.players)
    players[player_id] = player.model_copy(update={
        'score': player.score + score.total,
        'rack': rack,
        'consecutivePasses': 0,
    })
    move = Move(
        playerId=player_id,
        action='place-word',
        word=', '.join(w.text for w in result.new_words),
        tilesUsed=[p.letter for p in placements],
        score=score.total,
        wordScores=score.wordScores,
        bingoBonus=score.bingoBonus,
    )
    state = record_move(snapshot.gameState, move, now=now)
    return snapshot.model_copy(update={
        'board': board, 'players': players, 'letterBag': bag, 'gameState': state,
    }), score


def pass_turn(snapshot: Snapshot, player_id: int, now: Optional[datetime] = None) -> Snapshot:
    player = _check_turn(snapshot, player_id)
    players = list(snapshot.players)
    players[player_id] = player.model_copy(update={'consecutivePasses': player.consecutivePasses + 1})
    state = record_move(snapshot.gameState, Move(playerId=player_id, action='pass'), now=now)
    return snapshot.model_copy(update={'players': players, 'gameState': state})


def exchange_tiles(
    snapshot: Snapshot,
    player_id: int,
    rack_indices: Sequence[int],
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> Snapshot:
    player = _check_turn(snapshot, player_id)
    indices = list(dict.fromkeys(rack_indices))
    if not indices:
        raise IllegalAction('no tiles selected for exchange')
    if any(not 0 <= i < len(player.rack) or not player.rack[i] for i in indices):
        raise IllegalAction('only tiles on the rack can be exchanged')
    if len(snapshot.letterBag) < len(indices):
        raise IllegalAction('not enough tiles left in the bag')

    returned = [player.rack[i] for i in indices]
    # Tiles go back before drawing, so the bag keeps its size
    bag = list(snapshot.letterBag) + returned
    (rng or random.Random()).shuffle(bag)
    drawn, bag = draw_tiles(bag, len(indices))
    rack = list(player.rack)
    for idx, letter in zip(indices, drawn):
        rack[idx] = letter

    players = list(snapshot.players)
    players[player_id] = player.model_copy(update={'rack': rack, 'consecutivePasses': 0})
    move = Move(playerId=player_id, action='exchange-tiles', tilesUsed=returned)
    state = record_move(snapshot.gameState, move, now=now)
    return snapshot.model_copy(update={'players': players, 'letterBag': bag, 'gameState': state})


def finish_game(snapshot: Snapshot, finisher: Optional[int]) -> Snapshot:
    if snapshot.gameState.phase == 'finished':
        return snapshot
    players = apply_end_of_game(snapshot.players, finisher)
    state = snapshot.gameState.model_copy(update={'phase': 'finished'})
    return snapshot.model_copy(update={'players': players, 'gameState': state})


def settle_turn(snapshot: Snapshot) -> Snapshot:
    """End-of-game check after a recorded move, otherwise hand the turn over.

    Only the authoritative side calls this; the turn index is never taken
    from a peer.
    """
    if snapshot.gameState.phase != 'playing':
        return snapshot
    if is_game_finished(snapshot.gameState, snapshot.players):
        finisher = next((i for i, p in enumerate(snapshot.players) if not p.tiles_left()), None)
        return finish_game(snapshot, finisher)
    return snapshot.model_copy(update={
        'currentPlayer': (snapshot.currentPlayer + 1) % len(snapshot.players),
    })
