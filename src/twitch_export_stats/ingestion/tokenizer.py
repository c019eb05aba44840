"""Line splitting and quoted-field parsing for export CSV files.

This covers the subset of CSV the account export produces: one record per
line, commas as separators, double quotes for fields that contain commas,
and `""` for a literal quote inside a quoted field. Multi-line fields are
not supported.
"""

from __future__ import annotations


def split_nonempty_lines(text: str) -> list[str]:
    """Split text on newlines and drop blank lines."""
    return [line for line in text.split("\n") if line.strip()]


def parse_csv_line(line: str) -> list[str]:
    """Split one line into trimmed field values.

    Never raises. An unterminated quote runs to the end of the line, and a
    trailing empty field is not emitted, so callers must bounds-check.
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    index = 0
    length = len(line)

    while index < length:
        char = line[index]
        if char == '"':
            if in_quotes and index + 1 < length and line[index + 1] == '"':
                current.append('"')
                index += 1
            else:
                in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        index += 1

    if current:
        fields.append("".join(current).strip())

    return fields


def field_at(values: list[str], index: int | None) -> str | None:
    """Return the field at `index`, or None when the column is absent or the row is short."""
    if index is None or index >= len(values):
        return None
    return values[index]
