"""
Shared fixtures: a controllable clock, in-memory persistence and a recording
suggestion sink.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from services.session import SessionManager  # noqa: E402


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class MemoryStore:
    def __init__(self):
        self.saved = {}
        self.writes = []
        self.fail = False

    def __call__(self, document_id: str, text: str) -> bool:
        if self.fail:
            return False
        self.saved[document_id] = text
        self.writes.append((document_id, text))
        return True


class RecordingSink:
    def __init__(self):
        self.calls = []

    def add_suggestion(self, word, source_label, source_id):
        self.calls.append((word, source_label, source_id))
        return True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def manager(clock, store, sink):
    return SessionManager(
        persist=store,
        sink=sink,
        debounce_seconds=1.5,
        clock=clock,
        suggestions_enabled=True,
    )
