"""abcbars: pitch-safe bar editing for ABC notation."""

from abcbars.accidentals import (
    bar_accidentals,
    merge_accidentals,
    reconstruct_music,
    split_accidentals,
)
from abcbars.bar_info import find_midpoints, get_bar_info
from abcbars.errors import (
    AbcBarsError,
    AbcSyntaxError,
    InvalidKeySignature,
    MalformedBarStructure,
    MissingKeySignature,
    NotEnoughBars,
    UnsupportedDivisor,
    UnsupportedMeter,
)
from abcbars.excerpt import get_first_bars, get_incipit, has_anacrusis
from abcbars.keys import key_signature_accidentals, normalise_key
from abcbars.meter_toggle import toggle_meter_doubling
from abcbars.pitch import extract_note_info
from abcbars.tokenizer import parse_abc

__version__ = "0.1.0"

__all__ = [
    "AbcBarsError",
    "AbcSyntaxError",
    "InvalidKeySignature",
    "MalformedBarStructure",
    "MissingKeySignature",
    "NotEnoughBars",
    "UnsupportedDivisor",
    "UnsupportedMeter",
    "bar_accidentals",
    "extract_note_info",
    "find_midpoints",
    "get_bar_info",
    "get_first_bars",
    "get_incipit",
    "has_anacrusis",
    "key_signature_accidentals",
    "merge_accidentals",
    "normalise_key",
    "parse_abc",
    "reconstruct_music",
    "split_accidentals",
    "toggle_meter_doubling",
]
