"""Data models shared by the tokenizer, accidental engine and bar engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction
from typing import Mapping, NamedTuple


class Accidental(Enum):
    """An accidental as written in ABC, or its absence."""

    DOUBLE_FLAT = "__"
    FLAT = "_"
    NATURAL = "="
    SHARP = "^"
    DOUBLE_SHARP = "^^"
    NONE = ""

    @classmethod
    def from_marker(cls, marker: str | None) -> Accidental:
        return cls(marker or "")

    @property
    def marker(self) -> str:
        return self.value

    @property
    def is_explicit(self) -> bool:
        return self is not Accidental.NONE

    def normalized(self) -> Accidental:
        """Collapse an explicit natural onto NONE for pitch comparisons."""
        if self is Accidental.NATURAL:
            return Accidental.NONE
        return self


class TokenKind(Enum):
    NOTE = "note"
    CHORD = "chord"
    REST = "rest"
    DUMMY = "dummy"
    INLINE_FIELD = "inline-field"
    CHORD_SYMBOL = "chord-symbol"
    TUPLET = "tuplet"
    BROKEN_RHYTHM = "broken-rhythm"
    VARIANT_ENDING = "variant-ending"
    DECORATION = "decoration"
    GRACE_NOTE = "grace-note"


#: Token kinds that never take part in accidental tracking.
NON_PITCH_KINDS: frozenset[TokenKind] = frozenset(
    {
        TokenKind.REST,
        TokenKind.DUMMY,
        TokenKind.INLINE_FIELD,
        TokenKind.CHORD_SYMBOL,
        TokenKind.TUPLET,
        TokenKind.BROKEN_RHYTHM,
        TokenKind.VARIANT_ENDING,
        TokenKind.DECORATION,
        TokenKind.GRACE_NOTE,
    }
)


class EditAction(Enum):
    KEEP = "keep"
    REMOVE = "remove"
    INSERT = "insert"


@dataclass(frozen=True)
class AccidentalEdit:
    """What the reconciler decided for one note of a token."""

    action: EditAction
    accidental: Accidental = Accidental.NONE

    @classmethod
    def keep(cls) -> AccidentalEdit:
        return cls(EditAction.KEEP)

    @classmethod
    def remove(cls) -> AccidentalEdit:
        return cls(EditAction.REMOVE)

    @classmethod
    def insert(cls, accidental: Accidental) -> AccidentalEdit:
        return cls(EditAction.INSERT, accidental)

    @property
    def changes_text(self) -> bool:
        return self.action is not EditAction.KEEP


@dataclass(frozen=True)
class Token:
    """
    A lexical unit of the music body.

    Attributes:
        text:          Token text as it appears in the music text.
        source_index:  Offset of the token in the music text.
        source_length: Length of the token in the music text.
        kind:          Semantic category.
        whitespace:    Whitespace following the token (back-quotes removed).
        duration:      Length as a fraction of a whole note, if any.
        chord_notes:   Constituent note tokens of a chord.
        field:         Field letter of an inline field (``K``, ``L``, ...).
        value:         Value of an inline field.
        needs_accidental_modification: Set by the reconciler when any note
                       of the token was edited.
        accidental_edits: Per-note reconciler decisions, in note order.
    """

    text: str
    source_index: int
    source_length: int
    kind: TokenKind
    whitespace: str = ""
    duration: Fraction | None = None
    chord_notes: tuple[Token, ...] = ()
    field: str | None = None
    value: str | None = None
    needs_accidental_modification: bool = False
    accidental_edits: tuple[AccidentalEdit, ...] = ()

    @property
    def end_index(self) -> int:
        return self.source_index + self.source_length


class PitchIdentity(NamedTuple):
    """A specific written pitch: letter (case kept) plus octave markers."""

    letter: str
    octave_markers: str

    def __str__(self) -> str:
        return f"{self.letter}{self.octave_markers}"


@dataclass(frozen=True)
class NoteInfo:
    """Pitch content decoded from one note."""

    letter: str
    octave_markers: str
    accidental: Accidental

    @property
    def pitch(self) -> PitchIdentity:
        return PitchIdentity(self.letter, self.octave_markers)

    @property
    def base_letter(self) -> str:
        return self.letter.upper()


class NoteSpan(NamedTuple):
    """A note's text cut around its accidental and letter."""

    prefix: str
    accidental: str
    letter: str
    suffix: str

    def join(self) -> str:
        return f"{self.prefix}{self.accidental}{self.letter}{self.suffix}"


KeySignatureMap = Mapping[str, Accidental]
AccidentalState = Mapping[PitchIdentity, Accidental]


@dataclass(frozen=True)
class CumulativeDuration:
    """Duration snapshots taken at a bar-line."""

    since_last_bar_line: Fraction
    since_last_complete: Fraction


@dataclass(frozen=True)
class BarLine:
    """A bar-line token plus the annotations computed by the bar engine."""

    text: str
    source_index: int
    source_length: int
    bar_type: str = "regular"
    is_repeat: bool = False
    has_line_break: bool = False
    bar_number: int | None = None
    is_partial: bool | None = None
    cumulative_duration: CumulativeDuration | None = None

    @property
    def end_index(self) -> int:
        return self.source_index + self.source_length


@dataclass(frozen=True)
class BarInfoOptions:
    """Selects which bar annotations to compute."""

    bar_numbers: bool = True
    is_partial: bool = True
    cumulative_duration: bool = True
    divide_bars_by: int | None = None


@dataclass(frozen=True)
class BarInfo:
    """Annotated bar-lines plus the text offsets where bars can be bisected."""

    bar_lines: list[BarLine]
    midpoints: list[int]


@dataclass(frozen=True)
class LineMetadata:
    """One music line of the source, with its comment and continuation."""

    line_index: int
    original_line: str
    content: str
    comment: str | None
    has_continuation: bool

    @property
    def indent(self) -> str:
        return self.original_line[: len(self.original_line) - len(self.original_line.lstrip())]

    @property
    def tail(self) -> str:
        """Source text after the music: the ``\\`` continuation and ``%`` comment."""
        return self.original_line.strip()[len(self.content) :]

    def restore(self, content: str) -> str:
        """Return the source line with its music replaced by *content*."""
        return f"{self.indent}{content}{self.tail}"


@dataclass(frozen=True)
class MusicLines:
    """Music body of a tune, separated from its header lines."""

    music_text: str
    line_metadata: list[LineMetadata]
    header_lines: list[str]
    header_end_index: int


@dataclass(frozen=True)
class TuneMetadata:
    """Descriptive header fields of a tune."""

    title: str | None = None
    titles: list[str] = field(default_factory=list)
    rhythm: str | None = None
    composer: str | None = None
    meter: str | None = None
    key: str | None = None
    source: str | None = None
    origin: str | None = None
    url: str | None = None
    recording: str | None = None
    comments: list[str] = field(default_factory=list)
    history: str | None = None


@dataclass(frozen=True)
class ParsedTune:
    """A tokenized tune: bar segments, bar-lines and the header context."""

    bars: list[list[Token]]
    bar_lines: list[BarLine]
    unit_length: Fraction
    meter: tuple[int, int]
    key_header: str
    music_text: str
    header_end_index: int
    line_metadata: list[LineMetadata]
