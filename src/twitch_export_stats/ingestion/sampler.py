"""Schema preview for tabular files that have no dedicated aggregator."""

from __future__ import annotations

import re

from .tokenizer import parse_csv_line, split_nonempty_lines

NUMERIC_PATTERN = re.compile(r"-?[0-9]+(\.[0-9]+)?")


def canonical_number(value: str) -> str:
    """Reformat a purely numeric string (`"007"` -> `"7"`, `"1.50"` -> `"1.5"`); return others unchanged.

    Works on the digits directly, so values of any length are accepted.
    """
    if NUMERIC_PATTERN.fullmatch(value) is None:
        return value
    negative = value.startswith("-")
    whole, _, fraction = value.lstrip("-").partition(".")
    whole = whole.lstrip("0") or "0"
    fraction = fraction.rstrip("0")
    digits = f"{whole}.{fraction}" if fraction else whole
    if negative and digits != "0":
        return f"-{digits}"
    return digits


def sample_tabular_file(text: str, sample_row_limit: int = 3) -> tuple[list[str], list[dict[str, str]]]:
    """Return the header row and up to `sample_row_limit` rows keyed by header."""
    lines = split_nonempty_lines(text)
    if not lines:
        return [], []

    headers = parse_csv_line(lines[0])
    rows: list[dict[str, str]] = []
    for line in lines[1 : sample_row_limit + 1]:
        values = parse_csv_line(line)
        row: dict[str, str] = {}
        for index, header in enumerate(headers):
            value = values[index] if index < len(values) else ""
            row[header] = canonical_number(value)
        rows.append(row)
    return headers, rows
