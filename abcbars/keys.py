"""Key handling: normalise ``K:`` values and derive their implied accidentals."""

from __future__ import annotations

import logging
import re
from types import MappingProxyType
from typing import Final

from abcbars.errors import InvalidKeySignature
from abcbars.models import Accidental, KeySignatureMap

logger = logging.getLogger(__name__)

# Semitone position of each natural letter (index 0 = C)
NATURAL_SEMITONES: Final[dict[str, int]] = {
    "C": 0,
    "D": 2,
    "E": 4,
    "F": 5,
    "G": 7,
    "A": 9,
    "B": 11,
}

LETTERS: Final[str] = "CDEFGAB"

# Semitone offsets from the tonic for each diatonic mode
MODE_PATTERNS: Final[dict[str, tuple[int, ...]]] = {
    "major": (0, 2, 4, 5, 7, 9, 11),  # Ionian
    "minor": (0, 2, 3, 5, 7, 8, 10),  # Aeolian
    "mixolydian": (0, 2, 4, 5, 7, 9, 10),
    "dorian": (0, 2, 3, 5, 7, 9, 10),
    "phrygian": (0, 1, 3, 5, 7, 8, 10),
    "lydian": (0, 2, 4, 6, 7, 9, 11),
    "locrian": (0, 1, 3, 5, 6, 8, 10),
}

DEFAULT_MODE: Final[str] = "major"

# First three letters of a mode name (lower case) -> canonical mode
_MODE_ABBREVIATIONS: Final[dict[str, str]] = {
    "": "major",
    "maj": "major",
    "ion": "major",
    "m": "minor",
    "min": "minor",
    "aeo": "minor",
    "mix": "mixolydian",
    "dor": "dorian",
    "phr": "phrygian",
    "lyd": "lydian",
    "loc": "locrian",
}

_SHARP_SIGNS: Final[str] = "#♯"
_FLAT_SIGNS: Final[str] = "b♭"

_KEY_RE = re.compile(r"^\s*([A-Ga-g])([#b♯♭]*)\s*([A-Za-z]*)")


def normalise_key(key_header: str) -> tuple[str, str]:
    """
    Split a ``K:`` value into its tonic and canonical mode name.

    The tonic keeps its letter (upper-cased) and renders a sharp or flat as
    ``♯`` / ``♭``. Mode names are matched on their first three letters, so
    ``Dmix``, ``D Mixolydian`` and ``D mixo`` all normalise the same way.
    Unknown mode names fall back to major.

    Examples:
        ``"D"``      -> ``("D", "major")``
        ``"Aaeol"``  -> ``("A", "minor")``
        ``"D#mixo"`` -> ``("D♯", "mixolydian")``

    Raises:
        InvalidKeySignature: If the value does not start with a tonic letter.
    """
    match = _KEY_RE.match(key_header)
    if not match:
        raise InvalidKeySignature(f"Cannot read a tonic from key '{key_header}'.")

    letter, signs, mode_text = match.groups()
    tonic = letter.upper() + "".join(
        "♯" if sign in _SHARP_SIGNS else "♭" for sign in signs
    )

    mode = _MODE_ABBREVIATIONS.get(mode_text.lower()[:3], DEFAULT_MODE)
    return tonic, mode


def _tonic_semitone(tonic: str) -> int:
    letter, signs = tonic[0], tonic[1:]
    if len(signs) > 1:
        raise InvalidKeySignature(
            f"Tonic '{tonic}' carries a double accidental; key signatures never do."
        )
    semitone = NATURAL_SEMITONES[letter]
    if signs and signs in _SHARP_SIGNS:
        semitone = (semitone + 1) % 12
    elif signs and signs in _FLAT_SIGNS:
        semitone = (semitone + 11) % 12
    return semitone


def key_signature_accidentals(key_header: str) -> KeySignatureMap:
    """
    Return the accidentals a key signature applies to each natural letter.

    The scale is built by walking the seven letters from the tonic letter and
    comparing each letter's natural semitone with the one the mode pattern
    expects at that degree.

    Args:
        key_header: Raw ``K:`` value, e.g. ``"D"``, ``"F# minor"``, ``"Gdor"``.

    Returns:
        Read-only mapping of upper-case letter to ``Accidental.SHARP`` or
        ``Accidental.FLAT``. Letters left natural by the key are absent.
    """
    tonic, mode = normalise_key(key_header)
    pattern = MODE_PATTERNS.get(mode, MODE_PATTERNS[DEFAULT_MODE])
    tonic_semitone = _tonic_semitone(tonic)
    start = LETTERS.index(tonic[0])

    accidentals: dict[str, Accidental] = {}
    for degree, offset in enumerate(pattern):
        letter = LETTERS[(start + degree) % 7]
        expected = (tonic_semitone + offset) % 12
        diff = (expected - NATURAL_SEMITONES[letter]) % 12
        if diff == 1:
            accidentals[letter] = Accidental.SHARP
        elif diff == 11:
            accidentals[letter] = Accidental.FLAT

    logger.debug("key %r -> %s %s: %s", key_header, tonic, mode, accidentals)
    return MappingProxyType(accidentals)


def key_default(key_accidentals: KeySignatureMap, letter: str) -> Accidental:
    """Accidental the key applies to *letter* (either case); NONE if natural."""
    return key_accidentals.get(letter.upper(), Accidental.NONE)
