"""Parse delimited text into a rectangular table of trimmed string cells.

Uses stdlib csv module. Double-quoted fields may contain commas and
doubled quotes. Empty lines are skipped; every row is padded or truncated
to the header width so cells always align with headers. Repeated header
names get a numeric suffix (`name`, `name_1`, ...) so no column is lost.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterator
from dataclasses import dataclass

from loguru import logger

from geoview.layers.errors import MalformedInput


@dataclass
class Table:
    """Header names plus data rows, all cells trimmed strings."""

    headers: list[str]
    rows: list[list[str]]

    def column_index(self, name: str) -> int:
        return self.headers.index(name)

    def column(self, name: str, limit: int | None = None) -> list[str]:
        idx = self.column_index(name)
        rows = self.rows if limit is None else self.rows[:limit]
        return [row[idx] for row in rows]


def parse_table(text: str) -> Table:
    """Parse CSV text into a Table.

    Args:
        text: Raw CSV content, first non-empty line is the header.

    Returns:
        Table with trimmed headers and aligned rows. Duplicate headers are
        suffixed to stay unique.

    Raises:
        MalformedInput: If there are fewer than two non-empty lines or the
            text cannot be tokenized.
    """
    if text.startswith("\ufeff"):
        text = text[1:]

    lines: list[list[str]] = []
    try:
        reader = csv.reader(io.StringIO(text), skipinitialspace=True)
        for raw in reader:
            if _is_empty_line(raw):
                continue
            lines.append([cell.strip() for cell in raw])
    except csv.Error as e:
        raise MalformedInput(f"Could not parse CSV: {e}") from e

    if len(lines) < 2:
        raise MalformedInput(
            "CSV file is empty or has no data rows: expected a header line "
            "followed by at least one data row"
        )

    headers = _unique_headers(lines[0])
    width = len(headers)
    rows = [_align(cells, width) for cells in lines[1:]]
    return Table(headers=headers, rows=rows)


def iter_chunks(rows: list, chunk_size: int) -> Iterator[tuple[int, list]]:
    """Yield (start_index, rows[start:start + chunk_size]) slices."""
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    for start in range(0, len(rows), chunk_size):
        yield start, rows[start:start + chunk_size]


def _is_empty_line(raw: list[str]) -> bool:
    return len(raw) == 0 or (len(raw) == 1 and not raw[0].strip())


def _unique_headers(headers: list[str]) -> list[str]:
    taken = set(headers)
    seen: set[str] = set()
    out = []
    for name in headers:
        if name in seen:
            n = 1
            while f"{name}_{n}" in taken:
                n += 1
            renamed = f"{name}_{n}"
            logger.warning(f"Duplicate CSV column {name!r} renamed to {renamed!r}")
            taken.add(renamed)
            name = renamed
        seen.add(name)
        out.append(name)
    return out


def _align(cells: list[str], width: int) -> list[str]:
    if len(cells) < width:
        return cells + [""] * (width - len(cells))
    return cells[:width]
