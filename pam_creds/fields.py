from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

DEFAULT_DELIMITER = ","
DEFAULT_QUOTE_CHAR = '"'


def split_fields(line: str, delimiter: str = DEFAULT_DELIMITER, quote_char: str = DEFAULT_QUOTE_CHAR) -> List[str]:
    """
    Split one line of a delimited export into field values.

    A quote character toggles quoted state wherever it appears; inside a quoted
    run a doubled quote yields one literal quote and the delimiter is kept as
    text. An unterminated quote simply swallows the rest of the line.
    """

    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    i = 0
    length = len(line)

    while i < length:
        char = line[i]
        if char == quote_char:
            if in_quotes and i + 1 < length and line[i + 1] == quote_char:
                current.append(quote_char)
                i += 1
            else:
                in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
        i += 1

    fields.append("".join(current))
    return fields


def split_lines(text: str) -> List[str]:
    """
    Break export text into physical lines on line feeds only.

    ``\\r\\n`` and lone ``\\r`` endings are normalized first; other characters
    that ``str.splitlines`` treats as breaks (form feed, ``\\u2028``...) stay
    inside their cell.
    """

    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def clean_field(value: object) -> str:
    """Trim a raw cell value to the text used by detection and extraction."""

    if value is None:
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class RawRecord:
    """One input row: its 1-based physical line number and raw field values."""

    line_no: int
    fields: Tuple[str, ...]

    def cell(self, index: int) -> str:
        if 0 <= index < len(self.fields):
            return clean_field(self.fields[index])
        return ""

    @property
    def is_blank(self) -> bool:
        return all(not clean_field(f) for f in self.fields)


def tokenize_lines(
    lines: Sequence[str],
    delimiter: str = DEFAULT_DELIMITER,
    quote_char: str = DEFAULT_QUOTE_CHAR,
) -> List[RawRecord]:
    return [
        RawRecord(line_no=idx, fields=tuple(split_fields(line, delimiter, quote_char)))
        for idx, line in enumerate(lines, start=1)
    ]
