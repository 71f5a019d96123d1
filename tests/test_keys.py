"""Unit tests for key normalisation and key-signature accidentals."""

import pytest

from abcbars.errors import InvalidKeySignature
from abcbars.keys import key_default, key_signature_accidentals, normalise_key
from abcbars.models import Accidental


def test_d_major_sharpens_f_and_c_only() -> None:
    assert dict(key_signature_accidentals("D major")) == {
        "F": Accidental.SHARP,
        "C": Accidental.SHARP,
    }


def test_d_dorian_has_no_accidentals() -> None:
    assert dict(key_signature_accidentals("D dorian")) == {}


def test_c_major_has_no_accidentals() -> None:
    assert dict(key_signature_accidentals("C")) == {}


def test_flat_keys() -> None:
    assert dict(key_signature_accidentals("Bb")) == {
        "B": Accidental.FLAT,
        "E": Accidental.FLAT,
    }
    assert dict(key_signature_accidentals("Cm")) == {
        "B": Accidental.FLAT,
        "E": Accidental.FLAT,
        "A": Accidental.FLAT,
    }


def test_sharp_tonic_minor() -> None:
    assert dict(key_signature_accidentals("F#m")) == {
        "F": Accidental.SHARP,
        "C": Accidental.SHARP,
        "G": Accidental.SHARP,
    }


def test_modal_keys() -> None:
    assert dict(key_signature_accidentals("A mixolydian")) == {
        "C": Accidental.SHARP,
        "F": Accidental.SHARP,
    }
    assert dict(key_signature_accidentals("Ephr")) == {}
    assert dict(key_signature_accidentals("F lydian")) == {}
    assert dict(key_signature_accidentals("B locrian")) == {}


def test_seven_sharps() -> None:
    accidentals = key_signature_accidentals("C#")
    assert len(accidentals) == 7
    assert set(accidentals.values()) == {Accidental.SHARP}


def test_unknown_mode_falls_back_to_major() -> None:
    assert dict(key_signature_accidentals("G wibble")) == {"F": Accidental.SHARP}


def test_key_map_is_read_only() -> None:
    accidentals = key_signature_accidentals("G")
    with pytest.raises(TypeError):
        accidentals["B"] = Accidental.FLAT  # type: ignore[index]


def test_double_accidental_tonic_is_rejected() -> None:
    with pytest.raises(InvalidKeySignature):
        key_signature_accidentals("F##")


def test_normalise_key_examples() -> None:
    assert normalise_key("D") == ("D", "major")
    assert normalise_key("Aaeol") == ("A", "minor")
    assert normalise_key("D#mixo") == ("D♯", "mixolydian")
    assert normalise_key("Bb Dorian") == ("B♭", "dorian")
    assert normalise_key("em") == ("E", "minor")
    assert normalise_key("G Ionian") == ("G", "major")


def test_normalise_key_without_tonic_raises() -> None:
    with pytest.raises(InvalidKeySignature):
        normalise_key("none")


def test_key_default_is_case_insensitive() -> None:
    accidentals = key_signature_accidentals("D")
    assert key_default(accidentals, "f") is Accidental.SHARP
    assert key_default(accidentals, "F") is Accidental.SHARP
    assert key_default(accidentals, "g") is Accidental.NONE


# ---------------------------------------------------------------------------
# Cross-check against music21's key model.
# ---------------------------------------------------------------------------

_M21_CASES = [
    ("D", "D", "major"),
    ("Bb", "B-", "major"),
    ("F#m", "f#", "minor"),
    ("Gdor", "G", "dorian"),
    ("Amix", "A", "mixolydian"),
    ("Eb lydian", "E-", "lydian"),
    ("C# phrygian", "C#", "phrygian"),
]


@pytest.mark.integration
@pytest.mark.parametrize(("key_header", "tonic", "mode"), _M21_CASES)
def test_matches_music21_altered_pitches(key_header: str, tonic: str, mode: str) -> None:
    key_module = pytest.importorskip("music21.key")

    expected: dict[str, Accidental] = {}
    for pitch in key_module.Key(tonic, mode).alteredPitches:
        alter = pitch.accidental.alter
        expected[pitch.step] = Accidental.SHARP if alter > 0 else Accidental.FLAT

    assert dict(key_signature_accidentals(key_header)) == expected
