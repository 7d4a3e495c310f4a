"""Test configuration and fixtures."""

import pytest
import tempfile
import shutil
from pathlib import Path

from code_reveal.core.config import CodeRevealConfig, RevealConfig, SessionConfig
from code_reveal.core.events import EventRecorder
from code_reveal.core.interfaces import ITimerBackend
from code_reveal.core.revisions import RevisionStore
from code_reveal.core.timers import ManualTimerBackend, TimerHandle
from code_reveal.core.workspace import Workspace


@pytest.fixture
def temp_project():
    """Create a temporary project directory."""
    temp_dir = Path(tempfile.mkdtemp())

    try:
        (temp_dir / "src").mkdir()
        (temp_dir / ".code-reveal").mkdir()

        yield temp_dir
    finally:
        shutil.rmtree(temp_dir)


@pytest.fixture
def backend():
    """Virtual clock; tests move time explicitly."""
    return ManualTimerBackend()


@pytest.fixture
def reveal_config():
    """5 characters every 10ms, no newline pause."""
    return RevealConfig(chars_per_tick=5, tick_interval_ms=10, newline_extra_delay_ms=0)


@pytest.fixture
def session_config():
    return SessionConfig(settle_delay_ms=50)


@pytest.fixture
def store():
    return RevisionStore(max_history=50)


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def workspace(backend, reveal_config, session_config):
    """Workspace on the manual backend with deterministic pacing."""
    config = CodeRevealConfig()
    config.reveal = reveal_config
    config.session = session_config
    ws = Workspace(config, backend)
    yield ws
    ws.close()


class LeakyTimerBackend(ITimerBackend):
    """Fires every scheduled callback, even cancelled ones.

    Stands in for a real timer whose thread already started when cancel()
    was called.
    """

    def __init__(self):
        self._now = 0.0
        self.handles = []

    def call_later(self, delay_ms, callback):
        handle = TimerHandle(callback, self._now + max(0.0, delay_ms))
        self.handles.append(handle)
        return handle

    def now(self):
        return self._now

    def drain(self, max_callbacks=10_000):
        fired = 0
        while self.handles and fired < max_callbacks:
            self.handles.sort(key=lambda handle: handle.due)
            handle = self.handles.pop(0)
            self._now = max(self._now, handle.due)
            handle.callback()
            fired += 1
        return fired


@pytest.fixture
def leaky_backend():
    return LeakyTimerBackend()
