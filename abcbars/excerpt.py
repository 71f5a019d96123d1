"""
Excerpts cut from the start of a tune: its pickup, its first bars, its incipit.

An excerpt is copied from the source as written. Counting starts at the
first complete bar; an anacrusis before it is kept only on request.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from fractions import Fraction
from typing import Final

from abcbars.bar_info import segment_duration
from abcbars.errors import NotEnoughBars
from abcbars.header import get_meter, get_unit_length
from abcbars.models import BarLine, LineMetadata, ParsedTune, Token
from abcbars.tokenizer import parse_abc

logger = logging.getLogger(__name__)

DEFAULT_INCIPIT_BARS: Final[int] = 2

# Header fields kept when headers are stripped
ESSENTIAL_HEADERS: Final[tuple[str, ...]] = ("X:", "M:", "L:", "K:")


def _opening_bar_line(tune: ParsedTune, bar: Sequence[Token]) -> BarLine | None:
    start = bar[0].source_index
    return next((line for line in reversed(tune.bar_lines) if line.end_index <= start), None)


def _closing_bar_line(tune: ParsedTune, bar: Sequence[Token]) -> BarLine | None:
    end = bar[-1].end_index
    return next((line for line in tune.bar_lines if line.source_index >= end), None)


def _source_lines(tune: ParsedTune, abc: str, start: int, end: int) -> list[str]:
    """Source lines holding ``music_text[start:end]``, comments included."""
    source = abc.split("\n")
    pieces: dict[int, str] = {}
    last: LineMetadata | None = None
    last_is_whole = False

    line_start = 0
    for metadata in tune.line_metadata:
        line_end = line_start + len(metadata.content)
        if line_start < end and start < line_end:
            low, high = max(start, line_start), min(end, line_end)
            piece = tune.music_text[low:high]
            if low == line_start:
                piece = metadata.indent + piece
            last, last_is_whole = metadata, high == line_end
            pieces[metadata.line_index] = piece + metadata.tail if last_is_whole else piece
        line_start = line_end + 1

    if last is None:
        return []
    if last_is_whole and last.has_continuation:
        # A continuation on the closing line would run past the excerpt.
        without = last.tail.lstrip()[1:]
        pieces[last.line_index] = pieces[last.line_index][: -len(last.tail)] + without

    first = min(pieces)
    lines = [pieces.get(index, source[index]) for index in range(first, last.line_index + 1)]
    lines[0] = lines[0].lstrip()
    return lines


def has_anacrusis(abc: str) -> bool:
    """True when the first bar of *abc* is shorter than its meter (a pickup)."""
    tune = parse_abc(abc)
    if not tune.bars:
        return False
    return segment_duration(tune.bars[0]) < Fraction(*tune.meter)


def get_first_bars(
    abc: str,
    num_bars: int = 1,
    with_anacrusis: bool = False,
    strip_headers: bool = False,
) -> str:
    """
    Return the header of *abc* followed by its first *num_bars* bars.

    Bars are counted from the first complete bar. Spacing, line breaks and
    ``%`` comments inside the excerpt are kept; a ``\\`` continuation on its
    last line is dropped. A ``|:`` opening the first counted bar is kept when
    the pickup is skipped.

    Args:
        abc:            A single tune, headers included.
        num_bars:       How many bars to keep, at least 1.
        with_anacrusis: Also keep the music before the first complete bar.
        strip_headers:  Keep only the ``X:``, ``M:``, ``L:`` and ``K:`` headers.

    Raises:
        MissingKeySignature: If the tune has no ``K:`` line.
        NotEnoughBars:       If *num_bars* is below 1, the tune has no
                             complete bar, or it runs out of bars.
    """
    if num_bars < 1:
        raise NotEnoughBars(f"At least one bar must be requested, not {num_bars}.")

    tune = parse_abc(abc)
    full_bar = Fraction(*tune.meter)
    first_complete = next(
        (index for index, bar in enumerate(tune.bars) if segment_duration(bar) >= full_bar),
        None,
    )
    if first_complete is None:
        raise NotEnoughBars("No complete bars found.")

    last_bar = first_complete + num_bars - 1
    if last_bar >= len(tune.bars):
        raise NotEnoughBars(
            f"Found {len(tune.bars) - first_complete} bar(s) from the first complete one, "
            f"{num_bars} requested."
        )

    start = 0
    opening = _opening_bar_line(tune, tune.bars[first_complete])
    if first_complete > 0 and not with_anacrusis and opening is not None:
        start = opening.source_index if opening.bar_type == "repeat-start" else opening.end_index

    closing = _closing_bar_line(tune, tune.bars[last_bar])
    end = closing.end_index if closing is not None else tune.bars[last_bar][-1].end_index
    logger.debug("excerpt of bars %d-%d spans music offsets %d-%d", first_complete, last_bar, start, end)

    headers = [line for line in abc.split("\n")[: tune.header_end_index] if line.strip()]
    if strip_headers:
        headers = [line for line in headers if line.strip().startswith(ESSENTIAL_HEADERS)]
    return "\n".join([*headers, *_source_lines(tune, abc, start, end)])


def _default_incipit_bars(meter: tuple[int, int], unit_length: Fraction) -> int:
    long_bar = (
        (meter == (4, 4) and unit_length.denominator == 16)
        or (meter == (4, 2) and unit_length.denominator == 8)
        or meter == (12, 8)
    )
    return 1 if long_bar else DEFAULT_INCIPIT_BARS


def get_incipit(abc: str, num_bars: int | None = None) -> str:
    """
    Return the opening bars of *abc*, pickup included, under a minimal header.

    Without *num_bars* the incipit is two bars long, or one bar when bars
    are already long: 4/4 written in sixteenths, 4/2 in eighths, or 12/8.
    """
    if num_bars is None:
        num_bars = _default_incipit_bars(get_meter(abc), get_unit_length(abc))
    return get_first_bars(abc, num_bars, with_anacrusis=True, strip_headers=True)
