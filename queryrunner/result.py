"""
Result Normalizer for queryrunner.

Every backend answer becomes a QueryResult: a name, the query text that
produced it, ordered column names and rows of strings. Backends that
return fixed columns use ``from_rows``; backends that return key/value
records use ``from_records``, which derives the columns in order of
first appearance.

Usage:
    result = QueryResult.from_records(
        "errors",
        "fields @message",
        [{"a": 1, "b": 2}, {"b": 3, "c": 4}],
    )
    result.columns   # ("a", "b", "c")
    result.rows      # (("1", "2", ""), ("", "3", "4"))

    print(result.to_table())
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

logger = logging.getLogger(__name__)

RENDER_WIDTH = 1000
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def _markdown_cell(value: str) -> str:
    """One markdown table cell: pipes escaped, line breaks as <br>."""
    value = value.replace("|", "\\|")
    return _LINE_BREAK.sub("<br>", value)


def format_scalar(value: Any) -> str:
    """
    Render a backend value as a result cell.

    None is empty, booleans are ``true``/``false``, integral floats drop
    their fraction, bytes are lowercase hex and containers are compact JSON.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, str):
        return value
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    return str(value)


def _record_items(record: Mapping[str, Any] | Iterable[tuple[str, Any]]) -> Iterable[tuple[str, Any]]:
    if isinstance(record, Mapping):
        return record.items()
    return record


@dataclass(frozen=True)
class QueryResult:
    """
    Normalized tabular result of one query run.

    Every row has exactly ``len(columns)`` cells.
    """

    name: str
    query: str
    columns: tuple[str, ...] = field(default_factory=tuple)
    rows: tuple[tuple[str, ...], ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        columns = tuple(self.columns)
        rows = tuple(tuple(row) for row in self.rows)
        for i, row in enumerate(rows):
            if len(row) != len(columns):
                raise ValueError(
                    f"row {i} of `{self.name}` has {len(row)} cells, expected {len(columns)}"
                )
        object.__setattr__(self, "columns", columns)
        object.__setattr__(self, "rows", rows)

    # =========================================================================
    # Constructors
    # =========================================================================

    @classmethod
    def empty(cls, name: str, query: str) -> QueryResult:
        return cls(name, query)

    @classmethod
    def from_rows(
        cls,
        name: str,
        query: str,
        columns: Iterable[str],
        rows: Iterable[Iterable[Any]],
    ) -> QueryResult:
        """Result with fixed columns; cells are formatted with format_scalar."""
        return cls(
            name,
            query,
            tuple(columns),
            tuple(tuple(format_scalar(cell) for cell in row) for row in rows),
        )

    @classmethod
    def from_records(
        cls,
        name: str,
        query: str,
        records: Iterable[Mapping[str, Any] | Iterable[tuple[str, Any]]],
        ignore_fields: Iterable[str] = (),
    ) -> QueryResult:
        """
        Result from key/value records.

        Columns are ordered by first appearance across all records. A record
        without a column gets an empty cell. Fields in ``ignore_fields`` are
        dropped.

        Args:
            records: Mappings, or iterables of ``(field, value)`` pairs
            ignore_fields: Field names to skip
        """
        ignored = set(ignore_fields)
        columns: dict[str, int] = {}
        normalized: list[dict[str, str]] = []
        for record in records:
            row: dict[str, str] = {}
            for key, value in _record_items(record):
                if key in ignored:
                    continue
                if key not in columns:
                    columns[key] = len(columns)
                row[key] = format_scalar(value)
            normalized.append(row)

        return cls(
            name,
            query,
            tuple(columns),
            tuple(tuple(row.get(column, "") for column in columns) for row in normalized),
        )

    @classmethod
    def from_json_lines(
        cls,
        name: str,
        query: str,
        lines: Iterable[str | bytes],
    ) -> QueryResult:
        """Result from JSON Lines, one object per line; other lines are skipped."""
        records: list[Mapping[str, Any]] = []
        for line in lines:
            if isinstance(line, bytes):
                line = line.decode("utf-8")
            if not line.strip():
                continue
            logger.debug(f"[result] json line: {line}")
            try:
                value = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning(f"[result] Skipping undecodable line in `{name}`: {e}")
                continue
            if not isinstance(value, dict):
                logger.warning(f"[result] Skipping non-object line in `{name}`")
                continue
            records.append(value)
        return cls.from_records(name, query, records)

    # =========================================================================
    # Records
    # =========================================================================

    def record_keys(self) -> list[str]:
        """Column names made unique: a repeated ``c`` becomes ``c1``, ``c2``, ..."""
        seen: dict[str, int] = {}
        keys = []
        for column in self.columns:
            if column in seen:
                keys.append(f"{column}{seen[column]}")
                seen[column] += 1
            else:
                keys.append(column)
                seen[column] = 1
        return keys

    def to_records(self) -> list[dict[str, str]]:
        keys = self.record_keys()
        return [dict(zip(keys, row)) for row in self.rows]

    # =========================================================================
    # Renderers
    # =========================================================================

    def _render(self, table: Table) -> str:
        console = Console(width=RENDER_WIDTH, color_system=None, force_terminal=False, highlight=False)
        with console.capture() as capture:
            console.print(table)
        return capture.get()

    def _rich_table(self, cell: Callable[[str], str] = str, **kwargs: Any) -> Table:
        table = Table(**kwargs)
        for column in self.columns:
            table.add_column(Text(cell(column)), no_wrap=True, overflow="ignore")
        for row in self.rows:
            table.add_row(*(Text(cell(value)) for value in row))
        return table

    def to_table(self) -> str:
        return self._render(self._rich_table(box=box.ASCII, header_style=None))

    def to_borderless_table(self) -> str:
        return self._render(
            self._rich_table(box=None, show_edge=False, pad_edge=False, header_style=None)
        )

    def to_markdown_table(self) -> str:
        if not self.columns:
            return ""
        text = self._render(
            self._rich_table(_markdown_cell, box=box.MARKDOWN, show_edge=True, header_style=None)
        )
        # MARKDOWN draws blank top and bottom edges
        return "".join(line.rstrip() + "\n" for line in text.splitlines() if line.strip())

    def to_vertical(self) -> str:
        parts = []
        for i, row in enumerate(self.rows, start=1):
            parts.append(f"********* {i}. row *********\n")
            for column, cell in zip(self.columns, row):
                parts.append(f"  {column}: {cell}\n")
        return "".join(parts)

    def to_json_lines(self) -> str:
        return "".join(json.dumps(record, ensure_ascii=False) + "\n" for record in self.to_records())

    def to_value(self) -> dict[str, Any]:
        """Every rendering of the result, for use as an expression variable."""
        return {
            "name": self.name,
            "query": self.query,
            "columns": list(self.columns),
            "rows": [list(row) for row in self.rows],
            "table": self.to_table(),
            "markdown_table": self.to_markdown_table(),
            "borderless_table": self.to_borderless_table(),
            "vertical_table": self.to_vertical(),
            "json_lines": self.to_json_lines(),
        }

    def render(self, output: str) -> str:
        """Render in a named output format (json|table|markdown|borderless|vertical)."""
        if output == "table":
            return self.to_table()
        if output == "markdown":
            return self.to_markdown_table()
        if output == "borderless":
            return self.to_borderless_table()
        if output == "vertical":
            return self.to_vertical()
        if output == "json":
            return json.dumps(self.to_records(), ensure_ascii=False) + "\n"
        raise ValueError(f"unknown output format: {output}")


def results_by_name(results: Iterable[QueryResult]) -> dict[str, list[dict[str, str]]]:
    """``{query name: records}`` for a batch of results."""
    return {result.name: result.to_records() for result in results}


__all__ = ["QueryResult", "format_scalar", "results_by_name"]
