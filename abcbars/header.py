"""Read header fields of an ABC tune and separate them from its music lines."""

from __future__ import annotations

import re
from fractions import Fraction
from typing import Final

from abcbars.errors import MissingKeySignature
from abcbars.keys import normalise_key
from abcbars.models import LineMetadata, MusicLines, TuneMetadata

DEFAULT_METER: Final[tuple[int, int]] = (4, 4)
DEFAULT_UNIT_LENGTH: Final[Fraction] = Fraction(1, 8)

_KEY_LINE_RE = re.compile(r"^K:[ \t]*(.*?)[ \t]*(?:%.*)?$", re.MULTILINE)
_METER_VALUE_RE = re.compile(r"(\d+)/(\d+)|C\|?")
_FRACTION_RE = re.compile(r"(\d+)/(\d+)")
_HEADER_LINE_RE = re.compile(r"^[A-Za-z+]:(?![|:])")
_TUNE_RE = re.compile(r"^X:[ \t]*\d+.*$(?:\n(?![ \t]*$).*)*", re.MULTILINE)

# Header letter -> TuneMetadata attribute, for fields copied verbatim
_METADATA_FIELDS: Final[dict[str, str]] = {
    "C": "composer",
    "M": "meter",
    "S": "source",
    "O": "origin",
    "F": "url",
    "D": "recording",
}


def get_key_header(abc: str) -> str:
    """
    Return the value of the first ``K:`` line.

    Raises:
        MissingKeySignature: If the tune has no ``K:`` line with a value.
    """
    match = _KEY_LINE_RE.search(abc)
    if not match or not match.group(1):
        raise MissingKeySignature("No key signature (K:) found in ABC.")
    return match.group(1)


def get_tonal_base(abc: str) -> str:
    """Return the tonic letter of the tune's key, upper-cased (e.g. ``"D"``)."""
    return normalise_key(get_key_header(abc))[0][0]


def _split_comment(line: str) -> tuple[str, str | None]:
    """Split off an inline ``%`` comment, ignoring a ``\\%`` escape."""
    index = 0
    while True:
        index = line.find("%", index)
        if index < 0:
            return line, None
        if index > 0 and line[index - 1] == "\\":
            index += 1
            continue
        return line[:index], line[index + 1 :].strip()


def _header_field(abc: str, name: str) -> str | None:
    """
    Value of the first *name* field of the header, comment removed.

    The header ends at the first ``K:`` line, so fields repeated in the
    body (a later ``M:3/4``) are ignored.
    """
    for raw in abc.split("\n"):
        line = raw.strip()
        if line.startswith(f"{name}:"):
            value, _ = _split_comment(line[2:])
            return value.strip()
        if line.startswith("K:"):
            break
    return None


def get_meter(abc: str) -> tuple[int, int]:
    """
    Return the header ``M:`` meter as ``(numerator, denominator)``.

    ``C`` is 4/4 and ``C|`` is 2/2. A missing or unreadable ``M:`` (such as
    ``M:none``) gives 4/4.
    """
    value = _header_field(abc, "M")
    match = _METER_VALUE_RE.match(value) if value else None
    if not match:
        return DEFAULT_METER
    if match.group(1):
        return int(match.group(1)), int(match.group(2))
    return (2, 2) if match.group(0) == "C|" else (4, 4)


def get_unit_length(abc: str) -> Fraction:
    """Return the header ``L:`` unit note length; 1/8 if absent."""
    value = _header_field(abc, "L")
    match = _FRACTION_RE.match(value) if value else None
    if match:
        return Fraction(int(match.group(1)), int(match.group(2)))
    return DEFAULT_UNIT_LENGTH


def get_music_lines(abc: str) -> MusicLines:
    """
    Separate the header from the music and describe each music line.

    Blank and comment-only lines are skipped. Field lines (``X:``, ``T:``, ...)
    before the first music line are headers, and ``header_end_index`` is the
    index of the first source line after them. Inline comments and trailing
    ``\\`` continuations are stripped from the music and recorded in the line
    metadata, which can put them back with ``LineMetadata.restore``.
    """
    music: list[str] = []
    metadata: list[LineMetadata] = []
    header_lines: list[str] = []
    header_end_index = 0
    in_header = True

    for line_index, line in enumerate(abc.split("\n")):
        stripped = line.strip()
        if not stripped or stripped.startswith("%"):
            if in_header:
                header_end_index = line_index + 1
            continue

        if in_header and _HEADER_LINE_RE.match(stripped):
            header_lines.append(line)
            header_end_index = line_index + 1
            continue
        in_header = False

        content, comment = _split_comment(stripped)
        content = content.rstrip()
        has_continuation = content.endswith("\\")
        if has_continuation:
            content = content[:-1].rstrip()

        if not content:
            continue

        music.append(content)
        metadata.append(
            LineMetadata(
                line_index=line_index,
                original_line=line,
                content=content,
                comment=comment,
                has_continuation=has_continuation,
            )
        )

    return MusicLines(
        music_text="\n".join(music),
        line_metadata=metadata,
        header_lines=header_lines,
        header_end_index=header_end_index,
    )


def get_metadata(abc: str) -> TuneMetadata:
    """
    Collect the descriptive header fields of a tune, up to its ``K:`` line.

    Only the first ``T:`` becomes the title; later ones go to ``titles``.
    ``N:`` lines become ``comments``; ``H:`` lines and their ``+:``
    continuations are joined with spaces into ``history``. The key is
    normalised, so ``K:Dmaj`` gives ``"D major"``.
    """
    fields: dict[str, str] = {}
    titles: list[str] = []
    comments: list[str] = []
    history: list[str] = []
    current = ""

    for raw in abc.split("\n"):
        line = raw.strip()
        if len(line) < 2 or line[1] != ":":
            continue
        name = line[0]
        value, _ = _split_comment(line[2:])
        value = value.strip()

        if name == "K":
            fields["key"] = " ".join(normalise_key(value)) if value else ""
            break
        if name == "T":
            if "title" in fields:
                titles.append(value)
            else:
                fields["title"] = value
        elif name == "R":
            fields["rhythm"] = value.lower()
        elif name == "N":
            comments.append(value)
        elif name == "H":
            history.append(value)
        elif name == "+" and current == "H":
            history.append(value)
        elif name in _METADATA_FIELDS:
            fields[_METADATA_FIELDS[name]] = value
        if name != "+":
            current = name

    return TuneMetadata(
        titles=titles,
        comments=comments,
        history=" ".join(history) if history else None,
        **fields,
    )


def get_tunes(text: str) -> list[str]:
    """Split a multi-tune file into tunes, each starting at its ``X:`` line."""
    return [match.group(0) for match in _TUNE_RE.finditer(text)]
