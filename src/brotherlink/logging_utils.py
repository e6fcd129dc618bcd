# logging_utils.py
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import IO, Optional, Tuple, Union

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class _Run:
    """A sequence of identical records written on one line."""

    key: Tuple[int, str, str]
    first: float
    last: float
    count: int = 1


class RepeatCollapsingHandler(logging.StreamHandler):
    """
    Stream handler for polling loops: a record identical to the previous one
    (same level, logger and message) only adds a dot to the current line.

    The run is closed with a repeat count and its duration when a different record
    arrives or when the handler is closed.
    """

    def __init__(self, stream: Optional[IO[str]] = None) -> None:
        super().__init__(stream)
        self._run: Optional[_Run] = None

    def emit(self, record: logging.LogRecord) -> None:
        try:
            key = (record.levelno, record.name, record.getMessage())
            if self._run is not None and self._run.key == key:
                self._run.count += 1
                self._run.last = record.created
                self.stream.write(".")
                self.flush()
                return

            rendered = self.format(record)
            self._end_run()
            self._run = _Run(key=key, first=record.created, last=record.created)
            self.stream.write(rendered)
            self.flush()
        except Exception:
            self.handleError(record)

    def _end_run(self) -> None:
        run, self._run = self._run, None
        if run is None:
            return
        if run.count > 1:
            self.stream.write(f" (repeated {run.count} times over {run.last - run.first:.2f}s)")
        self.stream.write(self.terminator)
        self.flush()

    def close(self) -> None:
        try:
            self._end_run()
        finally:
            super().close()


def setup_logging(level: Union[str, int] = "INFO", stream: Optional[IO[str]] = None) -> None:
    """
    Install the repeat-collapsing handler on the root logger.

    Args:
        level: Level name (``"debug"``, ``"INFO"``...) or number; unknown names fall back to INFO.
        stream: Output stream; defaults to stderr so that results printed on stdout stay clean.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    handler = RepeatCollapsingHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.basicConfig(level=level, handlers=[handler], force=True)
