"""
Musical bar numbering and duration bookkeeping over tokenized bars.

A *musical bar* lasts exactly one meter. Repeats and variant endings can
split one musical bar over several bar segments; those segments are partial
and share the musical bar's number. Variant endings are alternative paths,
so duration counting restarts at each of them instead of adding up.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace
from fractions import Fraction

from abcbars.errors import MalformedBarStructure, UnsupportedDivisor
from abcbars.models import (
    BarInfo,
    BarInfoOptions,
    BarLine,
    CumulativeDuration,
    Token,
    TokenKind,
)

logger = logging.getLogger(__name__)

SUPPORTED_DIVISORS: frozenset[int] = frozenset({2})


def _starts_with_variant(bar: Sequence[Token]) -> bool:
    return bool(bar) and bar[0].kind is TokenKind.VARIANT_ENDING


def segment_duration(bar: Sequence[Token]) -> Fraction:
    """Exact total duration of the duration-bearing tokens of a segment."""
    total = Fraction(0)
    for token in bar:
        if token.duration is not None:
            total += token.duration
    return total


def has_initial_bar_line(bars: Sequence[Sequence[Token]], bar_lines: Sequence[BarLine]) -> bool:
    """True when the first bar-line comes before any music."""
    return (
        len(bars) > 0
        and len(bars[0]) > 0
        and len(bar_lines) > 0
        and bar_lines[0].source_index < bars[0][0].source_index
    )


def get_bar_info(
    bars: Sequence[Sequence[Token]],
    bar_lines: Sequence[BarLine],
    meter: tuple[int, int],
    options: BarInfoOptions = BarInfoOptions(),
) -> BarInfo:
    """
    Annotate bar-lines with bar numbers, partial flags and durations.

    Args:
        bars:      Bar segments, each a list of tokens.
        bar_lines: Bar-lines in source order; every segment must be closed
                   by one, and a bar-line before the first token is allowed.
        meter:     ``(numerator, denominator)``; a full bar lasts
                   ``numerator / denominator`` whole notes.
        options:   Which annotations to compute and whether to locate
                   bisection points.

    Returns:
        BarInfo with new BarLine objects (the inputs are left untouched) and
        the music-text offsets at which each bar can be bisected.

    Raises:
        UnsupportedDivisor:    If ``options.divide_bars_by`` is neither None
                               nor 2.
        MalformedBarStructure: If there are fewer bar-lines than segments.
    """
    divisor = options.divide_bars_by
    if divisor is not None and divisor not in SUPPORTED_DIVISORS:
        raise UnsupportedDivisor(f"Bars can only be divided by 2, not {divisor}.")
    if len(bar_lines) < len(bars):
        raise MalformedBarStructure(
            f"{len(bars)} bar segment(s) but only {len(bar_lines)} bar-line(s); "
            "every bar must end with a bar-line."
        )

    full_bar = Fraction(meter[0], meter[1])
    annotated = list(bar_lines)

    next_bar_number = 0
    since_last_complete = Fraction(0)
    last_complete: int | None = None
    numbers: dict[int, int] = {}
    offset = 0

    if has_initial_bar_line(bars, bar_lines):
        if options.bar_numbers:
            annotated[0] = replace(annotated[0], bar_number=None)
        offset = 1

    for bar_index, bar in enumerate(bars):
        line_index = bar_index + offset
        if line_index >= len(annotated):
            break

        if _starts_with_variant(bar) and last_complete is not None:
            since_last_complete = Fraction(0)

        duration = segment_duration(bar)
        since_last_complete += duration
        is_partial_bar = duration < full_bar

        if not is_partial_bar:
            bar_number = next_bar_number
            next_bar_number += 1
            last_complete = line_index
        else:
            if last_complete is not None:
                bar_number = numbers[last_complete] + 1
            else:
                bar_number = 0
            if bar_number == 0:
                # Anacrusis: the pickup closes bar 0 whatever its length.
                next_bar_number = 1
                last_complete = line_index
            if since_last_complete >= full_bar:
                next_bar_number = bar_number + 1
                last_complete = line_index

        numbers[line_index] = bar_number

        changes: dict[str, object] = {}
        if options.bar_numbers:
            changes["bar_number"] = bar_number
        if options.is_partial and is_partial_bar:
            changes["is_partial"] = True
        if options.cumulative_duration:
            changes["cumulative_duration"] = CumulativeDuration(
                since_last_bar_line=duration,
                since_last_complete=since_last_complete,
            )
        annotated[line_index] = replace(annotated[line_index], **changes)

        logger.debug(
            "bar %d: %s duration=%s since_complete=%s number=%s",
            bar_index,
            "partial" if is_partial_bar else "complete",
            duration,
            since_last_complete,
            bar_number,
        )

        if last_complete == line_index:
            since_last_complete = Fraction(0)

    midpoints: list[int] = []
    if divisor is not None:
        midpoints = find_midpoints(bars, full_bar / divisor)

    return BarInfo(bar_lines=annotated, midpoints=midpoints)


def find_midpoints(bars: Sequence[Sequence[Token]], half_bar: Fraction) -> list[int]:
    """
    Locate, per segment, the text offset just after the token reaching *half_bar*.

    Segments starting with a variant ending are skipped, and a variant ending
    met before the half-way point abandons the segment.
    """
    midpoints: list[int] = []
    for bar in bars:
        if _starts_with_variant(bar):
            continue

        accumulated = Fraction(0)
        for token in bar:
            if token.kind is TokenKind.VARIANT_ENDING:
                break
            if token.duration is None:
                continue

            previous = accumulated
            accumulated += token.duration
            if previous < half_bar <= accumulated:
                midpoints.append(token.end_index + len(token.whitespace))
                break

    return midpoints
