from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from .errors import KeyNotFoundError, PositionOutOfRangeError

log = logging.getLogger(__name__)

_LINE_SPLIT = re.compile(r"[\r\n]+")


class SymbolTable(Mapping[str, List[str]]):
    """
    Immutable mapping from the first field of a CSV-like line to its remaining fields.

    Machine files (``SYMBOL,value1,value2,...``) are read this way whether they came
    through the TCP ``LOD`` command or the FTP file store.
    """

    def __init__(self, rows: Optional[Mapping[str, Iterable[str]]] = None, *, source: str = "") -> None:
        """
        Args:
            rows: Symbol to field list mapping, in file order.
            source: File or query the table was read from (for log messages).
        """
        self.source = source
        self._rows: Dict[str, Tuple[str, ...]] = {}
        for key, fields in (rows or {}).items():
            self._rows[key] = tuple(fields)

    @classmethod
    def parse(cls, text: str, *, source: str = "") -> "SymbolTable":
        """
        Parse a block of text into a symbol table.

        Empty lines are dropped, lines with fewer than two fields are skipped with a
        warning and a repeated symbol keeps its first occurrence.

        Args:
            text: File content; CR and/or LF terminate lines.
            source: File name used in log messages.

        Returns:
            Parsed table.

        Raises:
            ValueError: If ``text`` is None.
        """
        if text is None:
            raise ValueError(f"No content to parse for {source or 'symbol table'}")
        return cls.from_lines((line for line in _LINE_SPLIT.split(text) if line), source=source)

    @classmethod
    def from_lines(cls, lines: Iterable[str], *, source: str = "") -> "SymbolTable":
        """Build a table from lines already split on line terminators."""
        rows: Dict[str, List[str]] = {}
        for line in lines:
            if not line:
                continue
            parts = line.split(",")
            if len(parts) < 2:
                log.warning("Couldn't use line %r of %s", line, source)
                continue
            symbol = parts[0]
            if symbol in rows:
                log.error("Symbol %s is specified several times in %s", symbol, source)
                continue
            rows[symbol] = [part.strip(" ") for part in parts[1:]]
        return cls(rows, source=source)

    def get_field(self, symbol: str, position: int) -> str:
        """
        Return one field of a symbol row.

        Raises:
            KeyNotFoundError: If the symbol is absent.
            PositionOutOfRangeError: If the row has no field at ``position``.
        """
        fields = self._fields(symbol)
        if position < 0 or position >= len(fields):
            log.error("Invalid position %d for %s in %s, only %d elements", position, symbol, self.source, len(fields))
            raise PositionOutOfRangeError(
                f"Symbol {symbol!r} has only {len(fields)} position(s) and position {position} is required"
            )
        return fields[position]

    def get_list(self, symbol: str) -> List[str]:
        """Return a copy of the full field list of a symbol row."""
        return list(self._fields(symbol))

    def _fields(self, symbol: str) -> Tuple[str, ...]:
        try:
            return self._rows[symbol]
        except KeyError:
            log.error("%s not found in %s", symbol, self.source)
            raise KeyNotFoundError(f"Symbol {symbol!r} not found in {self.source}") from None

    def __getitem__(self, symbol: str) -> List[str]:
        return list(self._rows[symbol])

    def __iter__(self) -> Iterator[str]:
        return iter(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SymbolTable):
            return self._rows == other._rows
        return super().__eq__(other)

    def __repr__(self) -> str:
        return f"SymbolTable(source={self.source!r}, symbols={len(self._rows)})"
