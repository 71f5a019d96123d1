"""Unit tests for bar numbering, partial bars, durations and midpoints."""

from fractions import Fraction

import pytest

from abcbars.bar_info import find_midpoints, get_bar_info, segment_duration
from abcbars.errors import MalformedBarStructure, UnsupportedDivisor
from abcbars.models import BarInfo, BarInfoOptions, CumulativeDuration, ParsedTune
from abcbars.tokenizer import parse_abc


def _tune(music: str, unit: str = "1/4", meter: str = "4/4") -> ParsedTune:
    return parse_abc(f"X:1\nL:{unit}\nM:{meter}\nK:C\n{music}")


def _info(tune: ParsedTune, options: BarInfoOptions = BarInfoOptions()) -> BarInfo:
    return get_bar_info(tune.bars, tune.bar_lines, tune.meter, options)


def test_anacrusis_is_bar_zero() -> None:
    info = _info(_tune("C2|C8|D8|E8|]", unit="1/8"))
    assert [bar_line.bar_number for bar_line in info.bar_lines] == [0, 1, 2, 3]
    assert info.bar_lines[0].is_partial is True
    assert info.bar_lines[1].is_partial is None


def test_no_anacrusis_numbers_from_zero() -> None:
    info = _info(_tune("C4|D4|E4|]"))
    assert [bar_line.bar_number for bar_line in info.bar_lines] == [0, 1, 2]


def test_initial_repeat_with_partial_bars() -> None:
    info = _info(_tune("|:D2|C4|D2:|E2|F4|]"))
    bar_lines = info.bar_lines

    assert [bar_line.bar_number for bar_line in bar_lines] == [None, 0, 1, 2, 2, 3]
    assert bar_lines[0].is_partial is None
    assert bar_lines[0].cumulative_duration is None

    assert bar_lines[1].is_partial is True
    assert bar_lines[1].cumulative_duration == CumulativeDuration(Fraction(1, 2), Fraction(1, 2))
    assert bar_lines[2].cumulative_duration == CumulativeDuration(Fraction(1), Fraction(1))
    assert bar_lines[3].is_partial is True
    assert bar_lines[3].cumulative_duration == CumulativeDuration(Fraction(1, 2), Fraction(1, 2))
    # E2 completes musical bar 2 together with the D2 before the repeat.
    assert bar_lines[4].is_partial is True
    assert bar_lines[4].cumulative_duration == CumulativeDuration(Fraction(1, 2), Fraction(1))
    assert bar_lines[5].is_partial is None
    assert bar_lines[5].cumulative_duration == CumulativeDuration(Fraction(1), Fraction(1))


def test_variant_endings_with_partial_bars() -> None:
    info = _info(_tune("D2|C4|[1D2:|[2DF||G2|F4|G2|]"))
    bar_lines = info.bar_lines

    assert [bar_line.bar_number for bar_line in bar_lines] == [0, 1, 2, 2, 2, 3, 4]
    # Each variant ending restarts the count instead of adding to the other.
    assert bar_lines[2].cumulative_duration == CumulativeDuration(Fraction(1, 2), Fraction(1, 2))
    assert bar_lines[3].cumulative_duration == CumulativeDuration(Fraction(1, 2), Fraction(1, 2))
    assert bar_lines[4].cumulative_duration == CumulativeDuration(Fraction(1, 2), Fraction(1))
    assert bar_lines[5].is_partial is None
    assert bar_lines[6].is_partial is True
    assert bar_lines[6].cumulative_duration == CumulativeDuration(Fraction(1, 2), Fraction(1, 2))


def test_durations_are_exact_fractions() -> None:
    tune = _tune("(3CDE F3/2 G/ A2 B/4 c/4 d/2|", unit="1/8")
    [bar_line] = _info(tune).bar_lines

    cumulative = bar_line.cumulative_duration
    assert cumulative is not None
    assert isinstance(cumulative.since_last_bar_line, Fraction)
    assert cumulative.since_last_bar_line == Fraction(7, 8)
    assert cumulative.since_last_bar_line == segment_duration(tune.bars[0])
    assert bar_line.is_partial is True


def test_compound_meter() -> None:
    info = _info(_tune("A|BAG ABc|dcB A2:|", unit="1/8", meter="6/8"))
    assert [bar_line.bar_number for bar_line in info.bar_lines] == [0, 1, 2]
    assert info.bar_lines[2].is_partial is True


def test_inputs_are_not_modified() -> None:
    tune = _tune("C2|C4|]")
    _info(tune)
    assert all(bar_line.bar_number is None for bar_line in tune.bar_lines)
    assert all(bar_line.cumulative_duration is None for bar_line in tune.bar_lines)


def test_options_turn_off_annotations() -> None:
    options = BarInfoOptions(bar_numbers=False, is_partial=False, cumulative_duration=False)
    info = _info(_tune("D2|C4|D2|E2|F4|]"), options)
    for bar_line in info.bar_lines:
        assert bar_line.bar_number is None
        assert bar_line.is_partial is None
        assert bar_line.cumulative_duration is None


def test_unsupported_divisor_raises() -> None:
    tune = _tune("C4|")
    with pytest.raises(UnsupportedDivisor):
        _info(tune, BarInfoOptions(divide_bars_by=3))


def test_unsupported_divisor_is_checked_first() -> None:
    tune = _tune("C4|D4")
    with pytest.raises(UnsupportedDivisor):
        get_bar_info(tune.bars, [], tune.meter, BarInfoOptions(divide_bars_by=4))


def test_missing_final_bar_line_raises() -> None:
    tune = _tune("C4|D4")
    assert len(tune.bars) == 2
    with pytest.raises(MalformedBarStructure):
        _info(tune)


# ---------------------------------------------------------------------------
# Midpoints
# ---------------------------------------------------------------------------


def test_midpoints_after_half_bar() -> None:
    tune = _tune("C2D2E2F2|G4A4|", unit="1/8")
    info = _info(tune, BarInfoOptions(divide_bars_by=2))
    assert info.midpoints == [4, 11]


def test_midpoint_includes_trailing_whitespace() -> None:
    tune = _tune("C2 D2 E2 F2|", unit="1/8")
    info = _info(tune, BarInfoOptions(divide_bars_by=2))
    assert info.midpoints == [6]
    assert tune.music_text[info.midpoints[0]] == "E"


def test_midpoint_on_note_crossing_half() -> None:
    tune = _tune("C3 D3 E2|", unit="1/8")
    assert find_midpoints(tune.bars, Fraction(1, 2)) == [6]


def test_midpoints_skip_variant_endings() -> None:
    tune = _tune("C4|[1D2E2:|[2F2 [3G2 A2|", unit="1/8")
    info = _info(tune, BarInfoOptions(divide_bars_by=2))
    assert info.midpoints == [2]


def test_midpoints_not_requested() -> None:
    assert _info(_tune("C4|D4|")).midpoints == []
