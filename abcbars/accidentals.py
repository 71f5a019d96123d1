"""
Accidental tracking within a bar and reconciliation across bar boundaries.

ABC accidentals last until the end of the bar and apply to one written pitch
(letter plus octave markers). Removing a bar-line therefore lets accidentals
from the left bar leak into the right one, and inserting a bar-line cuts them
off. The functions here compute the minimal marker edits that keep every note
sounding the same across such a text edit.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace

from abcbars.keys import key_default
from abcbars.models import (
    NON_PITCH_KINDS,
    Accidental,
    AccidentalEdit,
    AccidentalState,
    KeySignatureMap,
    NoteInfo,
    PitchIdentity,
    Token,
    TokenKind,
)
from abcbars.pitch import extract_note_info, rewrite_note_text

logger = logging.getLogger(__name__)


def _pitched_notes(token: Token) -> list[NoteInfo]:
    if token.kind in NON_PITCH_KINDS:
        return []
    return extract_note_info(token)


def bar_accidentals(
    tokens: Iterable[Token],
    key_accidentals: KeySignatureMap,
) -> dict[PitchIdentity, Accidental]:
    """
    Fold a bar's tokens into the accidental in effect for each pitch.

    Explicit accidentals overwrite earlier ones for the same pitch. A pitch
    first met without one is seeded from the key signature; later implicit
    mentions carry whatever is already in effect.

    Args:
        tokens:          Tokens of one bar segment, in order.
        key_accidentals: Map returned by ``key_signature_accidentals``.

    Returns:
        A new mapping of pitch to accidental at the end of the segment.
    """
    state: dict[PitchIdentity, Accidental] = {}
    for token in tokens:
        for info in _pitched_notes(token):
            if info.accidental.is_explicit:
                state[info.pitch] = info.accidental
            elif info.pitch not in state:
                state[info.pitch] = key_default(key_accidentals, info.letter)
    return state


def _same_pitch(left: Accidental, right: Accidental) -> bool:
    return left.normalized() is right.normalized()


def _with_edits(token: Token, edits: tuple[AccidentalEdit, ...]) -> Token:
    """Return *token* rewritten for *edits*, or *token* itself if none apply."""
    if not any(edit.changes_text for edit in edits):
        return token

    text = token.text
    if token.kind is not TokenKind.CHORD:
        text = rewrite_note_text(token.text, edits[0])
    else:
        # Chord text is left for the caller, which knows the note spans.
        logger.debug("chord %r flagged for accidental edits %s", token.text, edits)

    return replace(
        token,
        text=text,
        needs_accidental_modification=True,
        accidental_edits=edits,
    )


def merge_accidentals(
    tokens: Sequence[Token],
    first_state: AccidentalState,
    key_accidentals: KeySignatureMap,
) -> list[Token]:
    """
    Rewrite a segment that is about to be appended to a preceding segment.

    Args:
        tokens:          Tokens of the second segment.
        first_state:     ``bar_accidentals`` of everything before it in the
                         merged bar.
        key_accidentals: Key signature map.

    Returns:
        New token list. Unchanged tokens are the input objects; edited tokens
        carry ``needs_accidental_modification`` and one ``AccidentalEdit`` per
        note. Single notes are rewritten, chords only flagged.
    """
    local: dict[PitchIdentity, Accidental] = {}
    result: list[Token] = []

    for token in tokens:
        infos = _pitched_notes(token)
        if not infos:
            result.append(token)
            continue

        edits: list[AccidentalEdit] = []
        for info in infos:
            pitch = info.pitch
            default = key_default(key_accidentals, info.letter)
            carried = first_state.get(pitch)

            if info.accidental.is_explicit:
                first_mention = pitch not in local
                local[pitch] = info.accidental
                if (
                    first_mention
                    and carried is not None
                    and _same_pitch(info.accidental, carried)
                ):
                    edits.append(AccidentalEdit.remove())
                else:
                    edits.append(AccidentalEdit.keep())
            elif pitch in local:
                edits.append(AccidentalEdit.keep())
            elif carried is not None and not _same_pitch(carried, default):
                # The merged bar would carry the left bar's accidental over.
                needed = default if default.is_explicit else Accidental.NATURAL
                local[pitch] = needed
                edits.append(AccidentalEdit.insert(needed))
            else:
                local[pitch] = default
                edits.append(AccidentalEdit.keep())

        result.append(_with_edits(token, tuple(edits)))

    return result


def split_accidentals(
    tokens: Sequence[Token],
    key_accidentals: KeySignatureMap,
    before_state: AccidentalState | None = None,
) -> list[Token]:
    """
    Rewrite the part of a segment that will start a new bar after a split.

    The first mention of a pitch whose explicit accidental only restates the
    key signature is redundant at a fresh bar and is removed. Implicit
    accidentals are never removed.

    When *before_state* (the accidentals in effect at the split point) is
    given, an implicit first mention that relied on an accidental carried
    from before the split gets that accidental written out.

    Returns:
        New token list, with the same conventions as ``merge_accidentals``.
    """
    local: dict[PitchIdentity, Accidental] = {}
    result: list[Token] = []

    for token in tokens:
        infos = _pitched_notes(token)
        if not infos:
            result.append(token)
            continue

        edits: list[AccidentalEdit] = []
        for info in infos:
            pitch = info.pitch
            default = key_default(key_accidentals, info.letter)

            if pitch in local:
                if info.accidental.is_explicit:
                    local[pitch] = info.accidental
                edits.append(AccidentalEdit.keep())
                continue

            if info.accidental.is_explicit:
                local[pitch] = info.accidental
                if _same_pitch(info.accidental, default):
                    edits.append(AccidentalEdit.remove())
                else:
                    edits.append(AccidentalEdit.keep())
                continue

            carried = before_state.get(pitch) if before_state is not None else None
            if carried is not None and not _same_pitch(carried, default):
                needed = carried if carried.is_explicit else Accidental.NATURAL
                local[pitch] = needed
                edits.append(AccidentalEdit.insert(needed))
            else:
                local[pitch] = default
                edits.append(AccidentalEdit.keep())

        result.append(_with_edits(token, tuple(edits)))

    return result


def reconstruct_music(tokens: Sequence[Token]) -> str:
    """Join token texts with the whitespace that followed each one."""
    parts: list[str] = []
    for index, token in enumerate(tokens):
        parts.append(token.text)
        if index < len(tokens) - 1:
            parts.append(token.whitespace)
    return "".join(parts)
