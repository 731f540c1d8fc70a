from shabetz.board import commit, empty_board
from shabetz.validation import ErrorKind, MoveError, find_all_words, validate

from helpers import across, down, place


def board_with(placements, owner=0):
    return commit(empty_board(), placements, owner)


def test_first_word_through_center(lexicon):
    result = validate(empty_board(), across('בית', 7, 6), True, lexicon)
    assert result.legal
    assert result.errors == []
    assert [w.text for w in result.new_words] == ['בית']


def test_validate_does_not_touch_inputs(lexicon):
    board = board_with(across('בית', 7, 6))
    before = [[t.model_copy() if t else None for t in row] for row in board]
    placements = [place(6, 6, 'ל'), place(0, 0, 'א', 1)]
    before_placements = [p.model_copy(deep=True) for p in placements]

    validate(board, placements, False, lexicon)

    assert board == before
    assert placements == before_placements


def test_first_move_off_center(lexicon):
    result = validate(empty_board(), across('בית', 0, 0), True, lexicon)
    assert not result.legal
    assert ErrorKind.MUST_USE_CENTER in result.kinds()


def test_misaligned_tiles(lexicon):
    result = validate(empty_board(), [place(7, 7, 'ד'), place(8, 8, 'ג', 1)], True, lexicon)
    assert ErrorKind.MISALIGNED_PLACEMENT in result.kinds()


def test_gap_in_line(lexicon):
    result = validate(empty_board(), [place(7, 7, 'ד'), place(7, 9, 'ג', 1)], True, lexicon)
    assert ErrorKind.DISCONTINUOUS_PLACEMENT in result.kinds()


def test_existing_tiles_fill_the_gap(lexicon):
    board = board_with([place(7, 7, 'י')])
    result = validate(board, [place(7, 6, 'ב'), place(7, 8, 'ת', 1)], False, lexicon)
    assert result.legal
    assert [w.text for w in result.new_words] == ['בית']


def test_disconnected_word(lexicon):
    board = board_with(across('בית', 7, 6))
    result = validate(board, across('דג', 0, 0), False, lexicon)
    assert result.kinds() == [ErrorKind.DISCONNECTED]


def test_cross_word_with_existing_tile(lexicon):
    board = board_with(across('בית', 7, 6))
    result = validate(board, [place(6, 6, 'ל')], False, lexicon)
    assert result.legal
    assert [w.text for w in result.new_words] == ['לב']


def test_every_new_word_is_checked(lexicon):
    board = board_with(across('בית', 7, 6))
    # ל over ב forms לב; ג next to it forms the unknown row word לג
    result = validate(board, [place(6, 6, 'ל'), place(6, 7, 'ג', 1)], False, lexicon)
    unknown = [e.word for e in result.errors if e.kind is ErrorKind.UNKNOWN_WORD]
    assert 'לג' in unknown
    assert not result.legal


def test_unknown_word(lexicon):
    result = validate(empty_board(), across('אאא', 7, 6), True, lexicon)
    assert result.kinds() == [ErrorKind.UNKNOWN_WORD]
    assert result.errors[0].word == 'אאא'
    assert 'אאא' in result.errors[0].message


def test_medial_spelling_matches_final_form(lexicon):
    result = validate(empty_board(), across('שלומ', 7, 5), True, lexicon)
    assert result.legal


def test_single_tile_forms_no_word(lexicon):
    result = validate(empty_board(), [place(7, 7, 'א')], True, lexicon)
    assert ErrorKind.NO_WORD_FORMED in result.kinds()


def test_occupied_square_short_circuits(lexicon):
    board = board_with(across('בית', 7, 6))
    result = validate(board, [place(7, 7, 'א'), place(0, 0, 'ב', 1)], False, lexicon)
    assert result.kinds() == [ErrorKind.OCCUPIED_SQUARE]


def test_outside_board_is_rejected(lexicon):
    result = validate(empty_board(), [place(7, 15, 'א')], True, lexicon)
    assert result.kinds() == [ErrorKind.OCCUPIED_SQUARE]


def test_find_all_words_rows_then_columns():
    board = board_with(across('בית', 7, 6) + down('ל', 6, 6))
    texts = [w.text for w in find_all_words(board)]
    assert texts == ['בית', 'לב']


def test_error_serialisation():
    error = MoveError(ErrorKind.UNKNOWN_WORD, word='אאא')
    assert error.to_dict() == {
        'kind': 'UnknownWord',
        'word': 'אאא',
        'message': 'The word "אאא" is not in the dictionary',
    }
