"""MeterToggler: switch a tune between a meter and its doubled form (4/4 <-> 4/2)."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace
from fractions import Fraction
from typing import Final, NamedTuple

from abcbars.accidentals import bar_accidentals, merge_accidentals, split_accidentals
from abcbars.bar_info import find_midpoints, get_bar_info, has_initial_bar_line, segment_duration
from abcbars.errors import UnsupportedMeter
from abcbars.keys import key_signature_accidentals
from abcbars.models import AccidentalState, BarLine, KeySignatureMap, Token, TokenKind
from abcbars.pitch import rewrite_note_text
from abcbars.tokenizer import parse_abc

logger = logging.getLogger(__name__)

# Meter -> the meter it toggles to
METER_PAIRS: Final[dict[tuple[int, int], tuple[int, int]]] = {
    (4, 4): (4, 2),
    (4, 2): (4, 4),
    (6, 8): (12, 8),
    (12, 8): (6, 8),
}

_INLINE_SPACE: Final[str] = " \t`"


class _TextEdit(NamedTuple):
    """Replace ``music_text[start:end]`` with *replacement*."""

    start: int
    end: int
    replacement: str


def _is_key_field(token: Token) -> bool:
    return token.kind is TokenKind.INLINE_FIELD and token.field == "K" and bool(token.value)


def _split_at_key_change(tokens: Sequence[Token]) -> tuple[list[Token], list[Token]]:
    """Cut *tokens* before the first key change; the tail is never reconciled."""
    for index, token in enumerate(tokens):
        if _is_key_field(token):
            return list(tokens[:index]), list(tokens[index:])
    return list(tokens), []


def _rewrite_chord(token: Token) -> Token:
    """Apply a flagged chord's per-note edits to its text and its notes."""
    pieces: list[str] = []
    notes: list[Token] = []
    cursor = 0
    for note, edit in zip(token.chord_notes, token.accidental_edits):
        start = note.source_index - token.source_index
        new_text = rewrite_note_text(note.text, edit)
        pieces.append(token.text[cursor:start])
        pieces.append(new_text)
        notes.append(replace(note, text=new_text))
        cursor = start + note.source_length
    pieces.append(token.text[cursor:])
    return replace(token, text="".join(pieces), chord_notes=tuple(notes))


def _finish_chords(tokens: Sequence[Token]) -> list[Token]:
    return [
        _rewrite_chord(token)
        if token.kind is TokenKind.CHORD and token.needs_accidental_modification
        else token
        for token in tokens
    ]


def _token_edits(tokens: Sequence[Token]) -> list[_TextEdit]:
    return [
        _TextEdit(token.source_index, token.end_index, token.text)
        for token in tokens
        if token.needs_accidental_modification
    ]


def _apply_edits(text: str, edits: Sequence[_TextEdit]) -> str:
    pieces: list[str] = []
    cursor = 0
    for edit in sorted(edits):
        pieces.append(text[cursor : edit.start])
        pieces.append(edit.replacement)
        cursor = edit.end
    pieces.append(text[cursor:])
    return "".join(pieces)


class MeterToggler:
    """
    Rewrite a tune from one meter of ``METER_PAIRS`` to its partner.

    Doubling the meter merges pairs of complete bars by removing the bar-line
    between them; halving it splits every complete bar at its half-way point.
    Accidentals on either side of a removed or inserted bar-line are
    reconciled so every note keeps its pitch.
    """

    def __init__(self, abc: str) -> None:
        """
        Args:
            abc: A single tune, headers included.

        Raises:
            MissingKeySignature: If the tune has no ``K:`` line.
            UnsupportedMeter:    If the tune's meter has no partner.
        """
        self.abc = abc
        self.tune = parse_abc(abc)
        target = METER_PAIRS.get(self.tune.meter)
        if target is None:
            supported = ", ".join(f"{n}/{d}" for n, d in METER_PAIRS)
            meter = f"{self.tune.meter[0]}/{self.tune.meter[1]}"
            raise UnsupportedMeter(f"Cannot toggle meter {meter}. Supported meters: {supported}.")
        self.target = target
        self.full_bar = Fraction(*self.tune.meter)
        self._key_maps: dict[str, KeySignatureMap] = {}

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _key_map(self, key_header: str) -> KeySignatureMap:
        if key_header not in self._key_maps:
            self._key_maps[key_header] = key_signature_accidentals(key_header)
        return self._key_maps[key_header]

    def _key_after(self, tokens: Sequence[Token], key_header: str) -> str:
        for token in tokens:
            if _is_key_field(token):
                key_header = token.value or key_header
        return key_header

    def _scope_state(self, tokens: Sequence[Token], key_header: str) -> AccidentalState:
        """Accidentals in effect after *tokens*, counted from the last key change."""
        start = 0
        for index, token in enumerate(tokens):
            if _is_key_field(token):
                key_header = token.value or key_header
                start = index + 1
        return bar_accidentals(tokens[start:], self._key_map(key_header))

    def _completes_bar(self, bar_line: BarLine) -> bool:
        if not bar_line.is_partial:
            return True
        cumulative = bar_line.cumulative_duration
        return cumulative is not None and cumulative.since_last_complete >= self.full_bar

    def _removal(self, text: str, bar_line: BarLine) -> _TextEdit:
        """Drop *bar_line* and collapse the whitespace after it."""
        end = bar_line.end_index
        while end < len(text) and (text[end] in _INLINE_SPACE or text[end] == "\n"):
            end += 1
        gap = text[bar_line.end_index : end]
        if "\n" in gap:
            replacement = "\n"
        elif bar_line.source_index > 0 and text[bar_line.source_index - 1] in _INLINE_SPACE:
            replacement = ""
        else:
            replacement = " "
        return _TextEdit(bar_line.source_index, end, replacement)

    def _insertion(self, text: str, token: Token) -> _TextEdit:
        """Put a bar-line after *token*, in place of the spaces that follow it."""
        end = token.end_index
        stop = end
        while stop < len(text) and text[stop] in _INLINE_SPACE:
            stop += 1
        if stop < len(text) and text[stop] == "\n":
            return _TextEdit(end, end, "|")
        return _TextEdit(end, stop, "|")

    def _merge_bars(self) -> list[_TextEdit]:
        tune = self.tune
        info = get_bar_info(tune.bars, tune.bar_lines, tune.meter)
        offset = 1 if has_initial_bar_line(tune.bars, tune.bar_lines) else 0
        last_line = len(info.bar_lines) - 1

        edits: list[_TextEdit] = []
        key_header = tune.key_header
        scope: list[Token] = []
        scope_key = key_header
        pair_open = False
        joined = False

        for bar_index, bar in enumerate(tune.bars):
            line_index = bar_index + offset
            if line_index > last_line:
                break

            tokens = list(bar)
            if joined:
                head, tail = _split_at_key_change(tokens)
                merged = merge_accidentals(
                    head, self._scope_state(scope, scope_key), self._key_map(key_header)
                )
                tokens = _finish_chords(merged) + tail
                edits.extend(_token_edits(tokens))
            key_header = self._key_after(tokens, key_header)
            scope.extend(tokens)

            bar_line = info.bar_lines[line_index]
            next_bar = tune.bars[bar_index + 1] if bar_index + 1 < len(tune.bars) else None
            completes = self._completes_bar(bar_line)

            if bar_index == 0 and bar_line.is_partial:
                # Pickup bar stays on its own.
                pair_open = False
            elif not completes:
                pass
            elif (
                not pair_open
                and bar_line.text == "|"
                and line_index != last_line
                and next_bar is not None
                and next_bar[0].kind is not TokenKind.VARIANT_ENDING
            ):
                edits.append(self._removal(tune.music_text, bar_line))
                logger.debug("merging across bar-line at offset %d", bar_line.source_index)
                pair_open = joined = True
                continue
            else:
                pair_open = False

            joined = False
            scope, scope_key = [], key_header

        return edits

    def _split_bars(self) -> list[_TextEdit]:
        tune = self.tune
        half_bar = self.full_bar / 2
        key_header = tune.key_header
        edits: list[_TextEdit] = []

        for bar in tune.bars:
            segment_key = key_header
            key_header = self._key_after(bar, key_header)
            if segment_duration(bar) < self.full_bar:
                continue

            midpoints = find_midpoints([bar], half_bar)
            if not midpoints:
                continue
            split_at = next(
                (index for index, token in enumerate(bar) if token.source_index >= midpoints[0]),
                len(bar),
            )
            before, after = bar[:split_at], bar[split_at:]
            if not any(token.duration for token in after):
                continue
            if after[0].kind is TokenKind.BROKEN_RHYTHM:
                # The notes of a broken rhythm cannot be split by a bar-line.
                logger.debug("not splitting broken rhythm at offset %d", after[0].source_index)
                continue

            edits.append(self._insertion(tune.music_text, before[-1]))
            logger.debug("splitting bar after %r at offset %d", before[-1].text, before[-1].end_index)

            split_key = self._key_after(before, segment_key)
            head, _ = _split_at_key_change(after)
            rewritten = split_accidentals(
                head, self._key_map(split_key), self._scope_state(before, segment_key)
            )
            edits.extend(_token_edits(_finish_chords(rewritten)))

        return edits

    def _headers(self, lines: Sequence[str]) -> list[str]:
        meter_line = f"M:{self.target[0]}/{self.target[1]}"
        headers: list[str] = []
        replaced = False
        for line in lines:
            stripped = line.strip()
            if not replaced and stripped.startswith("M:"):
                headers.append(meter_line)
                replaced = True
            elif not replaced and stripped.startswith("K:"):
                headers.extend([meter_line, line])
                replaced = True
            else:
                headers.append(line)
        if not replaced:
            headers.append(meter_line)
        return headers

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def doubles(self) -> bool:
        """True when the target meter is twice as long as the current one."""
        return Fraction(*self.target) > self.full_bar

    def toggle(self) -> str:
        """
        Return the tune rewritten in the partner meter.

        The header keeps its lines, with ``M:`` swapped (or added before
        ``K:``). Every music line keeps its indentation, its ``\\``
        continuation and its ``%`` comment; comment-only lines stay put.
        """
        edits = self._merge_bars() if self.doubles else self._split_bars()
        logger.debug("%d text edit(s) for %s -> %s", len(edits), self.tune.meter, self.target)
        music = _apply_edits(self.tune.music_text, edits)

        # Edits never add or remove a newline, so music lines map one to one.
        lines = self.abc.split("\n")
        for metadata, content in zip(self.tune.line_metadata, music.split("\n")):
            lines[metadata.line_index] = metadata.restore(content)

        header_end = self.tune.header_end_index
        return "\n".join([*self._headers(lines[:header_end]), *lines[header_end:]])


def toggle_meter_doubling(abc: str) -> str:
    """Toggle *abc* between 4/4 and 4/2, or between 6/8 and 12/8."""
    return MeterToggler(abc).toggle()
