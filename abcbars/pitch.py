"""Decode and rewrite the pitch part of a note token."""

from __future__ import annotations

from typing import Final

from abcbars.models import (
    Accidental,
    AccidentalEdit,
    EditAction,
    NoteInfo,
    NoteSpan,
    Token,
    TokenKind,
)

PITCH_LETTERS: Final[str] = "ABCDEFGabcdefg"
OCTAVE_MARKERS: Final[str] = "',"
SYMBOL_DECORATIONS: Final[str] = "~.HLMOPSTUVuv"

# Delimited prefixes: !decoration!, +decoration+ and "annotation"
_DELIMITERS: Final[str] = "!+\""


def parse_note_text(text: str) -> NoteSpan | None:
    """
    Cut a note's text into ``(prefix, accidental, letter, suffix)``.

    The prefix holds leading decorations and annotations, the accidental is
    one of ``^^ ^ __ _ =`` (possibly empty) and the suffix is everything after
    the letter (octave markers, length, tie). Joining the four parts gives
    back *text* unchanged.

    Returns:
        The span, or None when *text* does not start with a pitched note.
    """
    index = 0
    length = len(text)
    while index < length:
        char = text[index]
        if char.isspace() or char in SYMBOL_DECORATIONS:
            index += 1
        elif char in _DELIMITERS:
            closing = text.find(char, index + 1)
            if closing < 0:
                return None
            index = closing + 1
        else:
            break

    accidental_start = index
    if text.startswith(("^^", "__"), index):
        index += 2
    elif index < length and text[index] in "^_=":
        index += 1

    if index >= length or text[index] not in PITCH_LETTERS:
        return None

    return NoteSpan(
        prefix=text[:accidental_start],
        accidental=text[accidental_start:index],
        letter=text[index],
        suffix=text[index + 1 :],
    )


def _octave_markers(suffix: str) -> str:
    end = 0
    while end < len(suffix) and suffix[end] in OCTAVE_MARKERS:
        end += 1
    return suffix[:end]


def extract_note_info(token: Token) -> list[NoteInfo]:
    """
    Return the pitch content of a note or chord token.

    Chords yield one entry per constituent note, in written order. Tokens
    without a decodable pitch yield an empty list.
    """
    if token.kind is TokenKind.CHORD:
        infos: list[NoteInfo] = []
        for note in token.chord_notes:
            infos.extend(extract_note_info(note))
        return infos

    span = parse_note_text(token.text)
    if span is None:
        return []
    return [
        NoteInfo(
            letter=span.letter,
            octave_markers=_octave_markers(span.suffix),
            accidental=Accidental.from_marker(span.accidental),
        )
    ]


def rewrite_note_text(text: str, edit: AccidentalEdit) -> str:
    """Apply a reconciler edit to a single note's text."""
    if edit.action is EditAction.KEEP:
        return text
    span = parse_note_text(text)
    if span is None:
        return text
    if edit.action is EditAction.REMOVE:
        return span._replace(accidental="").join()
    return span._replace(accidental=edit.accidental.marker).join()
