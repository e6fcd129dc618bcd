# tests/conftest.py
from pathlib import Path
import sys

import pytest

# Ensure src/ is on sys.path for imports when running pytest directly.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
for path in (str(SRC),):
    if path not in sys.path:
        sys.path.insert(0, path)


class FakeClock:
    """Manually advanced monotonic clock for the backoff deadline."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
