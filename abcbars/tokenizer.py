"""MusicTokenizer: splits an ABC music body into bar segments and bar-lines."""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from fractions import Fraction
from typing import Final

from abcbars.errors import AbcSyntaxError
from abcbars.header import get_key_header, get_meter, get_music_lines, get_unit_length
from abcbars.models import BarLine, ParsedTune, Token, TokenKind
from abcbars.pitch import SYMBOL_DECORATIONS

logger = logging.getLogger(__name__)

# ── Token patterns ─────────────────────────────────────────────────────────────

_FIELD_LINE_RE: Final = re.compile(r"([H-Zw+]):(?![|:])([^\n]*)")
_BAR_LINE_RE: Final = re.compile(r"\[\|\]|\[\||:+\|[\]|]?:*|:{2,}|\|\]|\|\|:*|\|:+|\|")
_VARIANT_AFTER_BAR_RE: Final = re.compile(r"[1-9][0-9]*(?:[,\-][0-9]+)*")
_VARIANT_RE: Final = re.compile(r"\[[1-9][0-9]*(?:[,\-][0-9]+)*")
_INLINE_FIELD_RE: Final = re.compile(r"\[([A-Za-z]):([^\]\n]*)\]")
_ANNOTATION_RE: Final = re.compile(r'"[^"\n]*"')
_DECORATION_RE: Final = re.compile(r"![^!\n]*!|\+[^+\n]*\+")
_TUPLET_RE: Final = re.compile(r"\(([2-9])(?::([0-9]*))?(?::([0-9]*))?")
_BROKEN_RHYTHM_RE: Final = re.compile(r"<{1,3}|>{1,3}")
_GRACE_RE: Final = re.compile(r"\{[^}]*\}")
_NOTE_RE: Final = re.compile(
    r"(?P<prefix>(?:(?:![^!\n]*!|\+[^+\n]*\+)\s*)*[" + re.escape(SYMBOL_DECORATIONS) + r"]*)"
    r"(?P<body>[=^_]*[A-Ga-g][',]*|[zxyZX]|\[[^\]\[|\n]*\])"
    r"(?P<length>[0-9]*(?:/+[0-9]*)?)"
    r"(?P<tie>-?)"
)
_CHORD_NOTE_RE: Final = re.compile(
    r"(?:![^!]*!)*[~.]*[=^_]*[A-Ga-g][',]*(?P<length>[0-9]*(?:/+[0-9]*)?)-?"
)
_LENGTH_RE: Final = re.compile(r"([0-9]*)(/*)([0-9]*)")
_FRACTION_VALUE_RE: Final = re.compile(r"(\d+)/(\d+)")

_SIMPLE_PATTERNS: Final = (
    (_VARIANT_RE, TokenKind.VARIANT_ENDING),
    (_ANNOTATION_RE, TokenKind.CHORD_SYMBOL),
    (_GRACE_RE, TokenKind.GRACE_NOTE),
)

_SPACING: Final[str] = " \t\n`"
_SKIPPED: Final[str] = "()-&\\"

# Default tuplet q for each p (ABC 2.1, section 4.13); None = meter dependent
_TUPLET_Q: Final[dict[int, int | None]] = {
    2: 3,
    3: 2,
    4: 3,
    5: None,
    6: 2,
    7: None,
    8: 3,
    9: None,
}


def classify_bar_line(text: str) -> tuple[str, bool]:
    """Return ``(bar_type, is_repeat)`` for a bar-line's text."""
    if text in ("|:", "[|"):
        return "repeat-start", text == "|:"
    if text in (":|", ":|]"):
        return "repeat-end", True
    if text in ("::", ":|:", ":||:") or (text.startswith(":") and text.endswith(":")):
        return "repeat-both", True
    if text == "|]":
        return "final", False
    if text == "||":
        return "double", False
    if text == "|":
        return "regular", False
    return "other", ":" in text


def length_multiplier(length: str) -> Fraction:
    """
    Turn an ABC length suffix into a multiple of the unit note length.

    ``""`` -> 1, ``"3"`` -> 3, ``"/"`` -> 1/2, ``"//"`` -> 1/4,
    ``"/4"`` -> 1/4, ``"3/2"`` -> 3/2.
    """
    match = _LENGTH_RE.fullmatch(length)
    if not match:
        return Fraction(1)
    numerator_text, slashes, denominator_text = match.groups()
    numerator = int(numerator_text) if numerator_text else 1
    if not slashes:
        return Fraction(numerator)
    if denominator_text:
        return Fraction(numerator, int(denominator_text) * 2 ** (len(slashes) - 1))
    return Fraction(numerator, 2 ** len(slashes))


class MusicTokenizer:
    """
    Tokenizes an ABC music body (headers already removed).

    Durations are fractions of a whole note: unit length x written length,
    scaled by any enclosing tuplet and by broken-rhythm markers.
    """

    def __init__(self, unit_length: Fraction, meter: tuple[int, int]) -> None:
        """
        Args:
            unit_length: ``L:`` value in effect at the start of the music.
            meter:       ``M:`` value in effect at the start of the music.
        """
        self.unit_length = unit_length
        self.meter = meter

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _is_compound(self) -> bool:
        numerator = self.meter[0]
        return numerator % 3 == 0 and numerator > 3

    def _trailing_whitespace(self, text: str, end: int) -> str:
        stop = end
        while stop < len(text) and text[stop] in _SPACING:
            stop += 1
        return text[end:stop].replace("`", "")

    def _make_token(
        self,
        text: str,
        start: int,
        end: int,
        kind: TokenKind,
        **extra: object,
    ) -> Token:
        return Token(
            text=text[start:end],
            source_index=start,
            source_length=end - start,
            kind=kind,
            whitespace=self._trailing_whitespace(text, end),
            **extra,  # type: ignore[arg-type]
        )

    def _apply_field(self, field: str, value: str) -> None:
        if field == "L":
            match = _FRACTION_VALUE_RE.search(value)
            if match:
                self.unit_length = Fraction(int(match.group(1)), int(match.group(2)))
        elif field == "M":
            match = _FRACTION_VALUE_RE.search(value)
            if match:
                self.meter = (int(match.group(1)), int(match.group(2)))
            elif value.strip() == "C":
                self.meter = (4, 4)
            elif value.strip() == "C|":
                self.meter = (2, 2)

    def _tuplet(self, match: re.Match[str]) -> tuple[int, int, int]:
        p = int(match.group(1))
        q_text, r_text = match.group(2), match.group(3)
        if q_text:
            q = int(q_text)
        else:
            default_q = _TUPLET_Q[p]
            q = default_q if default_q is not None else (3 if self._is_compound() else 2)
        r = int(r_text) if r_text else p
        return p, q, r

    def _chord_notes(self, text: str, start: int, end: int) -> tuple[Token, ...]:
        inner_start = text.index("[", start) + 1
        inner_end = text.index("]", inner_start)
        notes: list[Token] = []
        for match in _CHORD_NOTE_RE.finditer(text, inner_start, inner_end):
            notes.append(
                Token(
                    text=match.group(0),
                    source_index=match.start(),
                    source_length=match.end() - match.start(),
                    kind=TokenKind.NOTE,
                )
            )
        return tuple(notes)

    def _match_simple(self, text: str, index: int) -> Token | None:
        """Match the tokens that need no state: variant endings, annotations, graces."""
        for pattern, kind in _SIMPLE_PATTERNS:
            match = pattern.match(text, index)
            if match:
                return self._make_token(text, index, match.end(), kind)
        return None

    def _note_kind(self, body: str) -> TokenKind:
        if body.startswith("["):
            return TokenKind.CHORD
        if body == "y":
            return TokenKind.DUMMY
        if body in "zxZX":
            return TokenKind.REST
        return TokenKind.NOTE

    def _note_duration(self, body: str, length: str, chord_notes: tuple[Token, ...]) -> Fraction:
        if body == "y":
            return Fraction(0)
        if body in "ZX":
            bars = int(length) if length.isdigit() else 1
            return Fraction(self.meter[0], self.meter[1]) * bars
        if body.startswith("[") and not length and chord_notes:
            inner = _CHORD_NOTE_RE.fullmatch(chord_notes[0].text)
            length = inner.group("length") if inner else ""
        return self.unit_length * length_multiplier(length)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def tokenize(self, text: str) -> tuple[list[list[Token]], list[BarLine]]:
        """
        Split *text* into bar segments and the bar-lines that close them.

        Returns:
            ``(bars, bar_lines)``. A bar-line before any music produces no
            segment, so ``bar_lines`` may be one longer than ``bars``.

        Raises:
            AbcSyntaxError: If a tuplet starts inside another tuplet.
        """
        bars: list[list[Token]] = []
        bar_lines: list[BarLine] = []
        current: list[Token] = []

        tuplet_left = 0
        tuplet_ratio = Fraction(1)
        broken: str | None = None
        last_timed: int | None = None  # index in `current` of the last timed note

        index = 0
        length = len(text)
        while index < length:
            char = text[index]

            if char in _SPACING or char in _SKIPPED and not _TUPLET_RE.match(text, index):
                index += 1
                continue

            at_line_start = index == 0 or text[index - 1] == "\n"
            field_line = _FIELD_LINE_RE.match(text, index) if at_line_start else None
            if field_line:
                self._apply_field(field_line.group(1), field_line.group(2))
                current.append(
                    self._make_token(
                        text,
                        index,
                        field_line.end(),
                        TokenKind.INLINE_FIELD,
                        field=field_line.group(1),
                        value=field_line.group(2).strip(),
                    )
                )
                index = field_line.end()
                continue

            bar_match = _BAR_LINE_RE.match(text, index)
            if bar_match:
                bar_text = bar_match.group(0)
                bar_type, is_repeat = classify_bar_line(bar_text)
                after = self._trailing_whitespace(text, bar_match.end())
                bar_lines.append(
                    BarLine(
                        text=bar_text,
                        source_index=index,
                        source_length=len(bar_text),
                        bar_type=bar_type,
                        is_repeat=is_repeat,
                        has_line_break="\n" in after,
                    )
                )
                if current:
                    bars.append(current)
                current = []
                broken = None
                last_timed = None
                index = bar_match.end()

                variant = _VARIANT_AFTER_BAR_RE.match(text, index)
                if variant:
                    current.append(
                        self._make_token(text, index, variant.end(), TokenKind.VARIANT_ENDING)
                    )
                    index = variant.end()
                continue

            simple = self._match_simple(text, index)
            if simple:
                current.append(simple)
                index = simple.end_index
                continue

            inline = _INLINE_FIELD_RE.match(text, index)
            if inline:
                self._apply_field(inline.group(1), inline.group(2))
                current.append(
                    self._make_token(
                        text,
                        index,
                        inline.end(),
                        TokenKind.INLINE_FIELD,
                        field=inline.group(1),
                        value=inline.group(2).strip(),
                    )
                )
                last_timed = None
                index = inline.end()
                continue

            tuplet = _TUPLET_RE.match(text, index)
            if tuplet:
                if tuplet_left > 0:
                    raise AbcSyntaxError(
                        f"Nested tuplet '{tuplet.group(0)}' at offset {index} is not supported."
                    )
                p, q, r = self._tuplet(tuplet)
                tuplet_left, tuplet_ratio = r, Fraction(q, p)
                current.append(self._make_token(text, index, tuplet.end(), TokenKind.TUPLET))
                index = tuplet.end()
                continue

            rhythm = _BROKEN_RHYTHM_RE.match(text, index)
            if rhythm:
                current.append(self._make_token(text, index, rhythm.end(), TokenKind.BROKEN_RHYTHM))
                broken = rhythm.group(0) if last_timed is not None else None
                index = rhythm.end()
                continue

            note = _NOTE_RE.match(text, index)
            if note:
                body, written_length = note.group("body"), note.group("length")
                kind = self._note_kind(body)
                chord_notes = self._chord_notes(text, index, note.end()) if kind is TokenKind.CHORD else ()
                duration = self._note_duration(body, written_length, chord_notes)

                if tuplet_left > 0 and kind is not TokenKind.DUMMY:
                    duration *= tuplet_ratio
                    tuplet_left -= 1

                if broken is not None and last_timed is not None:
                    factor = Fraction(1, 2 ** len(broken))
                    longer, shorter = 2 - factor, factor
                    first, second = (longer, shorter) if broken[0] == ">" else (shorter, longer)
                    previous = current[last_timed]
                    current[last_timed] = replace(previous, duration=(previous.duration or 0) * first)
                    duration *= second
                    broken = None

                current.append(
                    self._make_token(
                        text,
                        index,
                        note.end(),
                        kind,
                        duration=duration,
                        chord_notes=chord_notes,
                    )
                )
                if duration:
                    last_timed = len(current) - 1
                index = note.end()
                continue

            decoration = _DECORATION_RE.match(text, index)
            if decoration or char in SYMBOL_DECORATIONS:
                end = decoration.end() if decoration else index + 1
                current.append(self._make_token(text, index, end, TokenKind.DECORATION))
                index = end
                continue

            logger.debug("skipping unrecognised character %r at offset %d", char, index)
            index += 1

        if current:
            bars.append(current)

        return bars, bar_lines


def parse_abc(abc: str) -> ParsedTune:
    """
    Tokenize a complete tune.

    Raises:
        MissingKeySignature: If the tune has no ``K:`` line.
        AbcSyntaxError:      If the music uses nested tuplets.
    """
    key_header = get_key_header(abc)
    meter = get_meter(abc)
    unit_length = get_unit_length(abc)
    lines = get_music_lines(abc)

    tokenizer = MusicTokenizer(unit_length=unit_length, meter=meter)
    bars, bar_lines = tokenizer.tokenize(lines.music_text)
    logger.debug("parsed %d bar(s), %d bar-line(s)", len(bars), len(bar_lines))

    return ParsedTune(
        bars=bars,
        bar_lines=bar_lines,
        unit_length=unit_length,
        meter=meter,
        key_header=key_header,
        music_text=lines.music_text,
        header_end_index=lines.header_end_index,
        line_metadata=lines.line_metadata,
    )
