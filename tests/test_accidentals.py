"""Unit tests for accidental tracking and bar-boundary reconciliation."""

from fractions import Fraction

from abcbars.accidentals import (
    bar_accidentals,
    merge_accidentals,
    reconstruct_music,
    split_accidentals,
)
from abcbars.keys import key_signature_accidentals
from abcbars.models import (
    Accidental,
    AccidentalEdit,
    EditAction,
    PitchIdentity,
    Token,
    TokenKind,
)
from abcbars.tokenizer import MusicTokenizer


def _notes(*texts: str) -> list[Token]:
    tokens: list[Token] = []
    position = 0
    for text in texts:
        kind = TokenKind.REST if text.startswith("z") else TokenKind.NOTE
        tokens.append(
            Token(
                text=text,
                source_index=position,
                source_length=len(text),
                kind=kind,
                whitespace=" ",
            )
        )
        position += len(text) + 1
    return tokens


def _texts(tokens: list[Token]) -> list[str]:
    return [token.text for token in tokens]


def _segments(music: str) -> list[list[Token]]:
    bars, _ = MusicTokenizer(unit_length=Fraction(1, 8), meter=(4, 4)).tokenize(music)
    return bars


# ---------------------------------------------------------------------------
# bar_accidentals
# ---------------------------------------------------------------------------


def test_implicit_note_carries_earlier_explicit_accidental() -> None:
    state = bar_accidentals(_notes("C", "^C", "C"), key_signature_accidentals("C"))
    assert state[PitchIdentity("C", "")] is Accidental.SHARP


def test_first_implicit_mention_is_seeded_from_key() -> None:
    state = bar_accidentals(_notes("F", "G"), key_signature_accidentals("D"))
    assert state[PitchIdentity("F", "")] is Accidental.SHARP
    assert state[PitchIdentity("G", "")] is Accidental.NONE


def test_pitches_are_tracked_per_octave() -> None:
    state = bar_accidentals(_notes("^c", "c'", "C"), key_signature_accidentals("C"))
    assert state[PitchIdentity("c", "")] is Accidental.SHARP
    assert state[PitchIdentity("c", "'")] is Accidental.NONE
    assert state[PitchIdentity("C", "")] is Accidental.NONE


def test_rests_are_ignored() -> None:
    state = bar_accidentals(_notes("z2", "^G"), key_signature_accidentals("C"))
    assert list(state) == [PitchIdentity("G", "")]


def test_chord_notes_are_tracked() -> None:
    [bar] = _segments("[^CE]2 C2|")
    state = bar_accidentals(bar, key_signature_accidentals("C"))
    assert state[PitchIdentity("C", "")] is Accidental.SHARP
    assert state[PitchIdentity("E", "")] is Accidental.NONE


# ---------------------------------------------------------------------------
# merge_accidentals
# ---------------------------------------------------------------------------


def test_merge_removes_accidental_already_in_effect() -> None:
    key = key_signature_accidentals("D major")
    first_state = bar_accidentals(_notes("F", "A"), key)

    result = merge_accidentals(_notes("^F", "G"), first_state, key)

    assert _texts(result) == ["F", "G"]
    assert result[0].needs_accidental_modification
    assert result[0].accidental_edits == (AccidentalEdit.remove(),)


def test_merge_inserts_natural_after_explicit_sharp() -> None:
    key = key_signature_accidentals("C")
    first_state = bar_accidentals(_notes("^C", "D"), key)

    result = merge_accidentals(_notes("C2", "C"), first_state, key)

    assert _texts(result) == ["=C2", "C"]
    assert result[0].accidental_edits == (AccidentalEdit.insert(Accidental.NATURAL),)
    assert not result[1].needs_accidental_modification


def test_merge_inserts_key_accidental_after_natural() -> None:
    key = key_signature_accidentals("G")
    first_state = bar_accidentals(_notes("=F", "G"), key)

    result = merge_accidentals(_notes("F"), first_state, key)

    assert _texts(result) == ["^F"]


def test_merge_keeps_accidental_that_differs() -> None:
    key = key_signature_accidentals("C")
    first_state = bar_accidentals(_notes("^C"), key)

    result = merge_accidentals(_notes("_C"), first_state, key)

    assert _texts(result) == ["_C"]
    assert not result[0].needs_accidental_modification


def test_merge_keeps_later_explicit_mentions() -> None:
    key = key_signature_accidentals("C")
    first_state = bar_accidentals(_notes("^C"), key)

    result = merge_accidentals(_notes("^C", "=C", "^C"), first_state, key)

    assert _texts(result) == ["C", "=C", "^C"]


def test_merge_compares_natural_and_implicit_as_equal() -> None:
    key = key_signature_accidentals("C")
    first_state = bar_accidentals(_notes("C"), key)

    result = merge_accidentals(_notes("=C"), first_state, key)

    assert _texts(result) == ["C"]


def test_merge_ignores_pitches_unknown_to_first_segment() -> None:
    key = key_signature_accidentals("C")
    first_state = bar_accidentals(_notes("^C"), key)

    result = merge_accidentals(_notes("^c", "D"), first_state, key)

    assert _texts(result) == ["^c", "D"]


def test_merge_leaves_minimal_boundary_untouched() -> None:
    key = key_signature_accidentals("D")
    first_state = bar_accidentals(_notes("F", "A", "d"), key)
    second = _notes("G", "F", "z", "E")

    result = merge_accidentals(second, first_state, key)

    assert reconstruct_music(result) == reconstruct_music(second)
    assert all(new is old for new, old in zip(result, second))


def test_merge_flags_chords_without_rewriting_them() -> None:
    key = key_signature_accidentals("C")
    first_state = bar_accidentals(_notes("^C"), key)
    [bar] = _segments("[CE]4|")

    [chord] = merge_accidentals(bar, first_state, key)

    assert chord.text == "[CE]4"
    assert chord.needs_accidental_modification
    assert [edit.action for edit in chord.accidental_edits] == [EditAction.INSERT, EditAction.KEEP]


def test_merge_does_not_mutate_input() -> None:
    key = key_signature_accidentals("D")
    second = _notes("^F")
    merge_accidentals(second, {PitchIdentity("F", ""): Accidental.SHARP}, key)
    assert second[0].text == "^F"
    assert not second[0].needs_accidental_modification


# ---------------------------------------------------------------------------
# split_accidentals
# ---------------------------------------------------------------------------


def test_split_removes_marker_implied_by_key() -> None:
    key = key_signature_accidentals("D major")

    result = split_accidentals(_notes("^F", "A", "F"), key)

    assert _texts(result) == ["F", "A", "F"]
    assert result[0].accidental_edits == (AccidentalEdit.remove(),)
    assert not result[2].needs_accidental_modification


def test_split_removes_explicit_natural_in_plain_key() -> None:
    key = key_signature_accidentals("C")
    assert _texts(split_accidentals(_notes("=B", "B"), key)) == ["B", "B"]


def test_split_never_touches_implicit_notes() -> None:
    key = key_signature_accidentals("C")
    assert _texts(split_accidentals(_notes("F", "^F", "F"), key)) == ["F", "^F", "F"]


def test_split_keeps_accidentals_against_the_key() -> None:
    key = key_signature_accidentals("D")
    assert _texts(split_accidentals(_notes("=F", "^F"), key)) == ["=F", "^F"]


def test_split_writes_out_carried_accidental() -> None:
    key = key_signature_accidentals("C")
    before_state = bar_accidentals(_notes("^F", "G"), key)

    result = split_accidentals(_notes("F", "F", "A"), key, before_state)

    assert _texts(result) == ["^F", "F", "A"]


def test_split_writes_out_carried_natural() -> None:
    key = key_signature_accidentals("G")
    before_state = bar_accidentals(_notes("=F"), key)

    result = split_accidentals(_notes("F"), key, before_state)

    assert _texts(result) == ["=F"]


# ---------------------------------------------------------------------------
# reconstruct_music
# ---------------------------------------------------------------------------


def test_reconstruct_music_joins_with_whitespace() -> None:
    assert reconstruct_music(_notes("A", "B", "c")) == "A B c"


def test_reconstruct_music_empty() -> None:
    assert reconstruct_music([]) == ""
