"""abcbars CLI entry point."""

import logging
import sys
from pathlib import Path
from typing import NoReturn

import click

from abcbars import __version__
from abcbars.bar_info import get_bar_info
from abcbars.errors import AbcBarsError
from abcbars.excerpt import get_first_bars, get_incipit, has_anacrusis
from abcbars.header import get_tunes
from abcbars.keys import key_signature_accidentals, normalise_key
from abcbars.meter_toggle import toggle_meter_doubling
from abcbars.models import BarInfoOptions
from abcbars.tokenizer import parse_abc


def _fail(message: str) -> NoReturn:
    click.echo(f"  ERROR: {message}", err=True)
    sys.exit(1)


def _read_tune(abc_file: str, tune_index: int) -> str:
    """Return tune number *tune_index* (1-based) of *abc_file*.

    A file without ``X:`` lines is treated as one tune.
    """
    text = Path(abc_file).read_text(encoding="utf-8")
    tunes = get_tunes(text)
    if not tunes:
        return text
    if tune_index > len(tunes):
        raise click.BadParameter(
            f"'{abc_file}' holds {len(tunes)} tune(s), not {tune_index}.",
            param_hint="--tune",
        )
    return tunes[tune_index - 1]


_TUNE_OPTION = click.option(
    "--tune",
    "tune_index",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Which tune of a multi-tune file to use (1 = first).",
)


# ── CLI group ──────────────────────────────────────────────────────────────────

@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="abcbars")
@click.option("--verbose", "-v", is_flag=True, help="Log debug messages to stderr.")
def main(verbose: bool) -> None:
    """abcbars: bar numbering, accidental reconciliation and meter toggling for ABC tunes."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


# ── key subcommand ─────────────────────────────────────────────────────────────

@main.command()
@click.argument("key_header", metavar="KEY")
def key(key_header: str) -> None:
    """
    Show the accidentals implied by a key signature.

    KEY is a K: value such as "D", "F#m" or "G dorian".

    \b
    Examples:
      abcbars key D
      abcbars key "Bb mixolydian"
    """
    try:
        tonic, mode = normalise_key(key_header)
        accidentals = key_signature_accidentals(key_header)
    except AbcBarsError as exc:
        _fail(str(exc))

    click.echo(f"{tonic} {mode}")
    if not accidentals:
        click.echo("  (no accidentals)")
    for letter, accidental in accidentals.items():
        click.echo(f"  {letter}: {accidental.name.lower()} ({accidental.marker})")


# ── bars subcommand ────────────────────────────────────────────────────────────

@main.command()
@click.argument("abc_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@_TUNE_OPTION
@click.option(
    "--divide",
    type=int,
    default=None,
    metavar="N",
    help="Also locate the points that divide each bar into N parts (only 2 is supported).",
)
def bars(abc_file: str, tune_index: int, divide: int | None) -> None:
    """
    Number the bars of an ABC tune and show their durations.

    ABC_FILE is the path to an .abc file.

    \b
    Examples:
      abcbars bars reel.abc
      abcbars bars reel.abc --divide 2
      abcbars bars book.abc --tune 3
    """
    try:
        abc = _read_tune(abc_file, tune_index)
        tune = parse_abc(abc)
        pickup = has_anacrusis(abc)
        info = get_bar_info(
            tune.bars,
            tune.bar_lines,
            tune.meter,
            BarInfoOptions(divide_bars_by=divide),
        )
    except (AbcBarsError, OSError) as exc:
        _fail(str(exc))

    click.echo(f"abcbars v{__version__}")
    click.echo(f"  Meter  : {tune.meter[0]}/{tune.meter[1]}  |  Unit: {tune.unit_length}")
    click.echo(f"  Key    : {tune.key_header}")
    click.echo(f"  Pickup : {'yes' if pickup else 'no'}")
    click.echo()

    for bar_line in info.bar_lines:
        number = "-" if bar_line.bar_number is None else str(bar_line.bar_number)
        partial = "partial" if bar_line.is_partial else ""
        durations = ""
        if bar_line.cumulative_duration is not None:
            cumulative = bar_line.cumulative_duration
            durations = f"{cumulative.since_last_bar_line} / {cumulative.since_last_complete}"
        click.echo(f"  {bar_line.source_index:6d}  {bar_line.text:<4}  {number:>4}  {partial:<7}  {durations}")

    if divide is not None:
        click.echo()
        click.echo(f"  Midpoints: {', '.join(str(point) for point in info.midpoints) or '(none)'}")


# ── toggle subcommand ──────────────────────────────────────────────────────────

@main.command()
@click.argument("abc_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@_TUNE_OPTION
@click.option(
    "--output",
    "-o",
    default=None,
    metavar="PATH",
    help="Destination .abc file. Defaults to standard output.",
)
def toggle(abc_file: str, tune_index: int, output: str | None) -> None:
    """
    Toggle a tune between 4/4 and 4/2 (or 6/8 and 12/8).

    Bars are merged in pairs or split in half; accidentals are rewritten
    so every note keeps its pitch.

    \b
    Examples:
      abcbars toggle hornpipe.abc
      abcbars toggle hornpipe.abc -o hornpipe_4_2.abc
    """
    try:
        toggled = toggle_meter_doubling(_read_tune(abc_file, tune_index))
    except (AbcBarsError, OSError) as exc:
        _fail(str(exc))

    if output is None:
        click.echo(toggled)
        return

    try:
        Path(output).write_text(toggled + "\n", encoding="utf-8")
    except OSError as exc:
        _fail(f"Could not write output file — {exc}")

    click.echo(f"Done!  Wrote '{output}'.")


# ── first-bars subcommand ──────────────────────────────────────────────────────

@main.command("first-bars")
@click.argument("abc_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@_TUNE_OPTION
@click.option(
    "--bars",
    "num_bars",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="How many bars to keep, counted from the first complete bar.",
)
@click.option("--anacrusis/--no-anacrusis", default=False, help="Keep the pickup bar.")
@click.option("--strip-headers", is_flag=True, help="Keep only the X:, M:, L: and K: headers.")
def first_bars(
    abc_file: str,
    tune_index: int,
    num_bars: int,
    anacrusis: bool,
    strip_headers: bool,
) -> None:
    """
    Print the header and the first bars of a tune.

    \b
    Examples:
      abcbars first-bars reel.abc --bars 4
      abcbars first-bars jig.abc --anacrusis --strip-headers
    """
    try:
        excerpt = get_first_bars(
            _read_tune(abc_file, tune_index),
            num_bars,
            with_anacrusis=anacrusis,
            strip_headers=strip_headers,
        )
    except (AbcBarsError, OSError) as exc:
        _fail(str(exc))

    click.echo(excerpt)


# ── incipit subcommand ─────────────────────────────────────────────────────────

@main.command()
@click.argument("abc_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@_TUNE_OPTION
@click.option(
    "--bars",
    "num_bars",
    type=click.IntRange(min=1),
    default=None,
    help="Override the number of bars (default: 2, or 1 for long bars).",
)
def incipit(abc_file: str, tune_index: int, num_bars: int | None) -> None:
    """
    Print the incipit of a tune: pickup and opening bars under X:, M:, L:, K:.

    \b
    Examples:
      abcbars incipit reel.abc
      abcbars incipit book.abc --tune 2 --bars 3
    """
    try:
        text = get_incipit(_read_tune(abc_file, tune_index), num_bars)
    except (AbcBarsError, OSError) as exc:
        _fail(str(exc))

    click.echo(text)
