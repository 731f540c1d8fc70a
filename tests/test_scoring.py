from shabetz.board import commit, empty_board, overlay
from shabetz.schemas import PlayerState
from shabetz.scoring import BINGO_BONUS, apply_end_of_game, calculate_game_stats, score_move, score_word
from shabetz.validation import find_all_words

from helpers import across, down, place


def scored(placements, board=None):
    board = overlay(board or empty_board(), placements)
    words = [w for w in find_all_words(board) if w.isNew]
    return score_move(words, [p.position for p in placements], board, tiles_used=len(placements))


def test_first_word_through_center_and_double_letter():
    # Column 7, rows 3-7: (3, 7) doubles its letter, the center triples the word
    result = scored(down('אבגדה', 3, 7))
    assert result.total == (1 + 3 + 3 + 2 + 1 + 1) * 3
    assert result.bingoBonus == 0


def test_bingo_added_once_per_move():
    result = scored(across('אאאאאאא', 7, 4))
    assert result.wordScores[0].score == 7 * 3
    assert result.bingoBonus == BINGO_BONUS
    assert result.total == 21 + BINGO_BONUS


def test_bingo_with_several_words_counts_once():
    board = commit(empty_board(), across('אאאאאאא', 7, 4), 0)
    placements = across('בבבבבבב', 8, 4)
    result = scored(placements, board)
    assert len(result.wordScores) == 8
    assert result.total == sum(ws.score for ws in result.wordScores) + BINGO_BONUS


def test_score_independent_of_placement_order():
    placements = down('אבגדה', 3, 7)
    assert scored(placements).total == scored(list(reversed(placements))).total


def test_premium_only_counts_for_new_tiles():
    board = overlay(empty_board(), down('אבגדה', 3, 7))
    word = [w for w in find_all_words(board)][0]
    assert score_word(word, set(), board) == 10


def test_joker_scores_zero():
    placements = [place(7, 7, 'ז', 0, joker=True), place(7, 8, 'א', 1)]
    result = scored(placements)
    assert result.total == 1 * 3


def test_end_of_game_with_finisher():
    players = [
        PlayerState(name='Dana', score=40, rack=['', '', '']),
        PlayerState(name='Noa', score=30, rack=['ז', 'א', '']),
    ]
    final = apply_end_of_game(players, finisher=0)
    assert [p.score for p in final] == [51, 19]
    assert players[0].score == 40


def test_end_of_game_without_finisher_never_negative():
    players = [
        PlayerState(name='Dana', score=5, rack=['ז']),
        PlayerState(name='Noa', score=30, rack=['א', 'ב']),
    ]
    final = apply_end_of_game(players, finisher=None)
    assert [p.score for p in final] == [0, 26]


def test_game_stats():
    from shabetz.schemas import Move, WordScore

    history = [
        Move(playerId=0, action='place-word', wordScores=[WordScore(word='בית', score=15)],
             tilesUsed=list('בית'), bingoBonus=0),
        Move(playerId=1, action='pass'),
        Move(playerId=0, action='place-word', wordScores=[WordScore(word='שלום', score=70)],
             tilesUsed=list('אאאאאאא'), bingoBonus=50),
    ]
    stats = calculate_game_stats(history)
    assert stats.totalWords == 2
    assert stats.bingoCount == 1
    assert stats.totalTilesPlayed == 10
    assert stats.highestScoringWord.word == 'שלום'
    assert stats.averageWordLength == 3.5
