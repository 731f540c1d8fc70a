import random
from datetime import datetime, timedelta, timezone

import pytest

from shabetz.game_logic import (
    GameNotActive,
    GameOptions,
    GameRules,
    IllegalAction,
    InvalidMove,
    NotYourTurn,
    create_new_game_state,
    exchange_tiles,
    finish_game,
    is_game_finished,
    pass_turn,
    play_word,
    record_move,
    remaining_turn_time,
    settle_turn,
    start_game,
)
from shabetz.schemas import Move
from shabetz.validation import ErrorKind

from helpers import across

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def game():
    return start_game(['Dana', 'Noa'], rng=random.Random(3), now=T0)


def with_rack(snapshot, player_id, rack):
    players = list(snapshot.players)
    players[player_id] = players[player_id].model_copy(update={'rack': rack})
    return snapshot.model_copy(update={'players': players})


def test_start_game(game):
    assert game.currentPlayer == 0
    assert game.gameState.phase == 'playing'
    assert game.gameState.turnNumber == 1
    assert game.gameState.isFirstMove
    assert [len(p.rack) for p in game.players] == [7, 7]
    assert len(game.letterBag) == 110 - 14
    assert game.version == 0
    assert game.epoch


def test_start_game_options():
    snap = start_game(['a', 'b'], GameOptions(tiles_per_player=5, include_jokers=False))
    assert [len(p.rack) for p in snap.players] == [5, 5]
    assert '?' not in snap.letterBag + snap.players[0].rack + snap.players[1].rack


def test_new_game_state_defaults():
    state = create_new_game_state(now=T0)
    assert state.phase == 'setup'
    assert state.turnNumber == 1
    assert state.consecutivePasses == 0
    assert state.moveHistory == []
    assert state.secondsPerTurn == GameRules.TIME_PER_TURN


def test_record_move_counts_passes():
    state = create_new_game_state(phase='playing', now=T0)
    state = record_move(state, Move(playerId=0, action='pass'), now=T0)
    state = record_move(state, Move(playerId=1, action='pass'), now=T0)
    assert state.consecutivePasses == 2
    assert state.turnNumber == 3
    assert state.isFirstMove

    later = T0 + timedelta(seconds=40)
    state = record_move(state, Move(playerId=0, action='place-word', word='בית'), now=later)
    assert state.consecutivePasses == 0
    assert not state.isFirstMove
    assert state.currentTurnStartTime == later
    assert state.moveHistory[-1].timestamp == later


def test_exchange_resets_pass_counter():
    state = create_new_game_state(phase='playing', now=T0)
    state = record_move(state, Move(playerId=0, action='pass'))
    state = record_move(state, Move(playerId=1, action='exchange-tiles'))
    assert state.consecutivePasses == 0


def test_record_move_outside_play():
    with pytest.raises(GameNotActive):
        record_move(create_new_game_state(), Move(playerId=0, action='pass'))


def test_remaining_time_is_derived():
    state = create_new_game_state(seconds_per_turn=120, phase='playing', now=T0)
    assert remaining_turn_time(state, now=T0) == 120
    assert remaining_turn_time(state, now=T0 + timedelta(seconds=30)) == 90
    assert remaining_turn_time(state, now=T0 + timedelta(seconds=500)) == 0


def test_pass_threshold_finishes_game(game):
    state = game.gameState.model_copy(update={'consecutivePasses': GameRules.MAX_CONSECUTIVE_PASSES - 1})
    snap = game.model_copy(update={'gameState': state, 'currentPlayer': 1})
    snap = settle_turn(pass_turn(snap, 1))
    assert snap.gameState.consecutivePasses == GameRules.MAX_CONSECUTIVE_PASSES
    assert snap.gameState.phase == 'finished'


def test_passes_hand_over_the_turn(game):
    snap = settle_turn(pass_turn(game, 0))
    assert snap.currentPlayer == 1
    assert snap.gameState.phase == 'playing'
    assert snap.players[0].consecutivePasses == 1
    assert game.currentPlayer == 0


def test_is_game_finished_when_rack_empty(game):
    players = list(game.players)
    players[1] = players[1].model_copy(update={'rack': ['', '']})
    assert is_game_finished(game.gameState, players)
    assert not is_game_finished(game.gameState, game.players)


def test_play_word_scores_and_refills(game, lexicon):
    snap = with_rack(game, 0, list('ביתאבגד'))
    bag_before = len(snap.letterBag)
    new, score = play_word(snap, 0, across('בית', 7, 6), lexicon, now=T0)

    assert score.total == (3 + 1 + 1) * 3
    assert new.players[0].score == score.total
    assert new.players[0].rack[3:] == list('אבגד')
    assert all(new.players[0].rack)
    assert len(new.letterBag) == bag_before - 3
    assert new.board[7][7].letter == 'י'
    assert not new.board[7][7].isNew
    assert new.gameState.moveHistory[-1].word == 'בית'
    assert new.currentPlayer == 0
    assert settle_turn(new).currentPlayer == 1
    # The input snapshot is untouched
    assert snap.board[7][7] is None
    assert snap.players[0].score == 0


def test_word_end_takes_final_form(game, lexicon):
    snap = with_rack(game, 0, list('שלומאבג'))
    new, _ = play_word(snap, 0, across('שלומ', 7, 5), lexicon)
    assert new.board[7][8].letter == 'ם'
    assert new.board[7][7].letter == 'ו'


def test_rejected_move_changes_nothing(game, lexicon):
    snap = with_rack(game, 0, list('אאאבגדה'))
    before = snap.model_dump()
    with pytest.raises(InvalidMove) as info:
        play_word(snap, 0, across('אאא', 7, 6), lexicon)
    assert [e.kind for e in info.value.errors] == [ErrorKind.UNKNOWN_WORD]
    assert snap.model_dump() == before


def test_play_out_of_turn(game, lexicon):
    with pytest.raises(NotYourTurn):
        play_word(game, 1, across('בית', 7, 6), lexicon)


def test_play_tiles_not_on_rack(game, lexicon):
    snap = with_rack(game, 0, list('אאאאאאא'))
    with pytest.raises(IllegalAction):
        play_word(snap, 0, across('בית', 7, 6), lexicon)


def test_exchange_keeps_bag_size(game):
    bag_size = len(game.letterBag)
    new = exchange_tiles(game, 0, [0, 2], rng=random.Random(5))
    assert len(new.letterBag) == bag_size
    assert len(new.players[0].rack) == 7
    assert new.players[0].rack[1] == game.players[0].rack[1]
    assert new.gameState.moveHistory[-1].action == 'exchange-tiles'
    assert sorted(new.letterBag + new.players[0].rack) == sorted(game.letterBag + game.players[0].rack)


def test_exchange_needs_enough_tiles_in_bag(game):
    snap = game.model_copy(update={'letterBag': ['א']})
    with pytest.raises(IllegalAction):
        exchange_tiles(snap, 0, [0, 1])


def test_finish_game_is_applied_once(game):
    finished = finish_game(with_rack(game, 1, ['ז']), finisher=None)
    assert finished.gameState.phase == 'finished'
    assert finish_game(finished, finisher=0) is finished
    with pytest.raises(GameNotActive):
        pass_turn(finished, 0)
