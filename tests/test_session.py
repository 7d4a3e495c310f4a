"""Tests for the session orchestrator."""

import threading
from unittest.mock import patch

import pytest

from code_reveal.core.config import RevealConfig, SessionConfig
from code_reveal.core.errors import ConfigurationError, SessionActiveError
from code_reveal.core.events import EventChannel, EventRecorder, SessionEventType
from code_reveal.core.models import (
    ErrorKind, FileAction, FileChange, OperationStatus, SessionStatus, StepStatus
)
from code_reveal.core.operations import OperationLog
from code_reveal.core.reveal import RevealHandle
from code_reveal.core.session import SessionOrchestrator
from code_reveal.core.timers import ThreadingTimerBackend


A_TS = FileChange("a.ts", "const a = 1;")
B_CSS = FileChange("b.css", "body{}")


@pytest.fixture
def channel(recorder):
    channel = EventChannel()
    channel.subscribe(recorder)
    return channel


@pytest.fixture
def orchestrator(store, backend, reveal_config, session_config, channel):
    return SessionOrchestrator(
        store=store,
        backend=backend,
        reveal_config=reveal_config,
        session_config=session_config,
        channel=channel,
        operation_log=OperationLog(),
    )


def overall_values(recorder):
    return [e.progress.overall_progress for e in recorder.events if e.progress is not None]


class TestSessionFlow:
    """Test cases for a session that runs to completion."""

    def test_two_file_session(self, orchestrator, backend, store, recorder):
        """Test revealing two files in order with deterministic timing."""
        orchestrator.start_session([A_TS, B_CSS])
        assert orchestrator.status == SessionStatus.STREAMING

        backend.run_until_idle()

        assert orchestrator.status == SessionStatus.COMPLETED
        assert store.buffer_for("a.ts") == "const a = 1;"
        assert store.buffer_for("b.css") == "body{}"
        # a.ts: ticks at 0, 10, 20; settle 50; b.css: 70, 80; settle 50
        assert backend.now() == 130

        changed = recorder.of_type(SessionEventType.CURRENT_FILE_CHANGED)
        assert [e.file_change.file_path for e in changed] == ["a.ts", "b.css"]
        assert len(recorder.of_type(SessionEventType.FILE_COMPLETED)) == 2
        assert len(recorder.of_type(SessionEventType.SESSION_COMPLETED)) == 1

    def test_partials_reach_subscribers(self, orchestrator, backend, recorder):
        orchestrator.start_session([A_TS])
        backend.run_until_idle()

        partials = [e.partial_content for e in recorder.of_type(SessionEventType.PROGRESS)
                    if e.partial_content is not None]
        assert partials == ["const", "const a = ", "const a = 1;"]

    def test_progress_is_monotonic_and_ends_at_100(self, orchestrator, backend, recorder):
        orchestrator.start_session([A_TS, B_CSS, FileChange("c.md", "# Title\n\nBody text.\n")])
        backend.run_until_idle()

        values = overall_values(recorder)
        assert all(a <= b for a, b in zip(values, values[1:]))
        assert all(0 <= v <= 100 for v in values)
        assert values[-1] == 100.0
        assert orchestrator.progress.overall_progress == 100.0
        assert orchestrator.progress.is_streaming is False

    def test_file_boundary_progress(self, orchestrator, backend, recorder):
        orchestrator.start_session([A_TS, B_CSS])
        backend.run_until_idle()

        first_done = recorder.of_type(SessionEventType.FILE_COMPLETED)[0]
        assert first_done.progress.overall_progress == 50.0
        assert first_done.snapshot.content == "const a = 1;"

    def test_empty_file_list_completes_immediately(self, orchestrator, recorder):
        orchestrator.start_session([])

        assert orchestrator.status == SessionStatus.COMPLETED
        assert orchestrator.progress.overall_progress == 100.0
        assert len(recorder.of_type(SessionEventType.SESSION_COMPLETED)) == 1

    def test_empty_content_is_committed(self, orchestrator, backend, store):
        orchestrator.start_session([FileChange("empty.txt", "")])
        backend.run_until_idle()

        assert orchestrator.status == SessionStatus.COMPLETED
        assert store.buffer_for("empty.txt") == ""
        assert store.can_undo_file("empty.txt")

    def test_operation_records_steps(self, orchestrator, backend):
        orchestrator.start_session([A_TS, B_CSS])
        backend.run_until_idle()

        operation = orchestrator.operation
        assert operation.status == OperationStatus.SUCCESS
        assert [s.file_path for s in operation.steps] == ["a.ts", "b.css"]
        assert all(s.status == StepStatus.COMPLETE for s in operation.steps)

    def test_modified_file_keeps_previous_revision(self, orchestrator, backend, store):
        store.open_file("a.ts", "let a = 0;")
        orchestrator.start_session([FileChange("a.ts", "const a = 1;", FileAction.MODIFY)])
        backend.run_until_idle()

        assert store.buffer_for("a.ts") == "const a = 1;"
        assert store.undo("a.ts")
        assert store.buffer_for("a.ts") == "let a = 0;"


class TestSessionErrors:
    """Test cases for per-file failures."""

    def test_missing_content_is_skipped(self, orchestrator, backend, store, recorder):
        """Test that a file without content fails alone and the session continues."""
        files = [FileChange("a.ts", "one"), FileChange("b.ts", None), FileChange("c.ts", "three")]

        orchestrator.start_session(files)
        backend.run_until_idle()

        assert orchestrator.status == SessionStatus.COMPLETED
        assert len(orchestrator.errors) == 1
        error = orchestrator.errors[0]
        assert error.kind == ErrorKind.CONTENT
        assert error.file_path == "b.ts"

        assert store.buffer_for("a.ts") == "one"
        assert store.buffer_for("c.ts") == "three"
        assert not store.has_file("b.ts")

        failed = recorder.of_type(SessionEventType.FILE_FAILED)
        assert [e.file_change.file_path for e in failed] == ["b.ts"]
        assert len(recorder.of_type(SessionEventType.OPERATION_ERROR)) == 1
        assert orchestrator.operation.status == OperationStatus.ERROR

        values = overall_values(recorder)
        assert all(a <= b for a, b in zip(values, values[1:]))

    def test_update_failure_becomes_callback_error(self, orchestrator, backend, store):
        """Test that an exception while applying an update is recorded, not raised."""
        original = store.update_stream

        def flaky(file_path, partial, owner):
            if file_path == "bad.ts":
                raise RuntimeError("disk full")
            return original(file_path, partial, owner)

        with patch.object(store, 'update_stream', side_effect=flaky):
            orchestrator.start_session([FileChange("bad.ts", "xxxxxxxxxx"), A_TS])
            backend.run_until_idle()

        assert orchestrator.status == SessionStatus.COMPLETED
        assert [e.kind for e in orchestrator.errors] == [ErrorKind.CALLBACK]
        assert "disk full" in orchestrator.errors[0].message
        assert not store.is_locked("bad.ts")
        assert store.buffer_for("bad.ts") == ""
        assert store.buffer_for("a.ts") == "const a = 1;"

    def test_locked_file_is_recorded(self, orchestrator, backend, store):
        store.begin_stream("a.ts", "someone_else")

        orchestrator.start_session([A_TS, B_CSS])
        backend.run_until_idle()

        assert [e.kind for e in orchestrator.errors] == [ErrorKind.LOCKED]
        assert store.buffer_for("b.css") == "body{}"

    def test_listener_failure_does_not_abort_session(self, orchestrator, backend, channel):
        channel.subscribe(lambda event: 1 / 0)

        orchestrator.start_session([A_TS])
        backend.run_until_idle()

        assert orchestrator.status == SessionStatus.COMPLETED
        assert orchestrator.errors == []
        assert channel.listener_errors > 0

    def test_pacing_edit_mid_session_does_not_stall(self, orchestrator, backend, store):
        """Test that pacing is read once per session, not once per file."""
        orchestrator.start_session([FileChange("a.ts", "abc"), FileChange("b.ts", "xyz")])
        orchestrator.reveal_config.chars_per_tick = 0

        backend.run_until_idle()

        assert orchestrator.status == SessionStatus.COMPLETED
        assert orchestrator.errors == []
        assert store.buffer_for("a.ts") == "abc"
        assert store.buffer_for("b.ts") == "xyz"

    def test_failure_starting_a_file_is_recorded(self, orchestrator, backend, store, recorder):
        """Test that an exception while starting a later file fails only that file."""
        original = orchestrator.scheduler.start

        def flaky(target, on_update, config=None, on_error=None):
            if target == "xyz":
                raise RuntimeError("scheduler down")
            return original(target, on_update, config=config, on_error=on_error)

        files = [FileChange("a.ts", "abc"), FileChange("b.ts", "xyz"), FileChange("c.ts", "123")]
        with patch.object(orchestrator.scheduler, 'start', side_effect=flaky):
            orchestrator.start_session(files)
            backend.run_until_idle()

        assert orchestrator.status == SessionStatus.COMPLETED
        assert [e.kind for e in orchestrator.errors] == [ErrorKind.CALLBACK]
        assert orchestrator.errors[0].file_path == "b.ts"
        assert "scheduler down" in orchestrator.errors[0].message
        assert not store.is_locked("b.ts")
        assert store.buffer_for("c.ts") == "123"
        failed = recorder.of_type(SessionEventType.FILE_FAILED)
        assert [e.file_change.file_path for e in failed] == ["b.ts"]

    def test_failure_starting_first_file(self, orchestrator, backend, store):
        with patch.object(orchestrator.scheduler, 'start', side_effect=RuntimeError("boom")):
            orchestrator.start_session([A_TS])
            backend.run_until_idle()

        assert orchestrator.status == SessionStatus.COMPLETED
        assert [e.kind for e in orchestrator.errors] == [ErrorKind.CALLBACK]
        assert not store.is_locked("a.ts")

    def test_invalid_config_fails_fast(self, store, backend, channel):
        orchestrator = SessionOrchestrator(store, backend,
                                           reveal_config=RevealConfig(chars_per_tick=0),
                                           channel=channel)

        with pytest.raises(ConfigurationError):
            orchestrator.start_session([A_TS])

        assert orchestrator.status == SessionStatus.IDLE
        assert backend.pending_count == 0
        assert not store.has_file("a.ts")

    def test_duplicate_paths_rejected(self, orchestrator):
        with pytest.raises(ValueError):
            orchestrator.start_session([A_TS, FileChange("a.ts", "other")])

        assert orchestrator.status == SessionStatus.IDLE

    def test_non_file_change_rejected(self, orchestrator):
        with pytest.raises(TypeError):
            orchestrator.start_session(["a.ts"])


class TestSessionCancellation:
    """Test cases for cancelling a session."""

    def test_cancel_stops_progress(self, orchestrator, backend, store, recorder):
        """Test that nothing is delivered or committed after cancel."""
        orchestrator.start_session([FileChange("long.ts", "x" * 100), B_CSS])
        backend.advance(10)
        progress_before = len(recorder.of_type(SessionEventType.PROGRESS))
        assert progress_before == 2

        assert orchestrator.cancel_session() is True
        backend.run_until_idle()

        assert orchestrator.status == SessionStatus.CANCELLED
        assert len(recorder.of_type(SessionEventType.PROGRESS)) == progress_before
        assert len(recorder.of_type(SessionEventType.SESSION_CANCELLED)) == 1
        assert not store.is_locked("long.ts")
        assert store.view("long.ts") == ""
        assert not store.has_file("b.css")
        assert orchestrator.operation.status == OperationStatus.CANCELLED

    def test_cancel_during_settle_delay(self, orchestrator, backend, store, recorder):
        orchestrator.start_session([FileChange("a.ts", "abc"), B_CSS])
        assert store.buffer_for("a.ts") == "abc"

        orchestrator.cancel_session()
        backend.run_until_idle()

        changed = recorder.of_type(SessionEventType.CURRENT_FILE_CHANGED)
        assert [e.file_change.file_path for e in changed] == ["a.ts"]
        assert not store.has_file("b.css")
        assert backend.pending_count == 0

    def test_cancel_without_session(self, orchestrator):
        assert orchestrator.cancel_session() is False

    def test_cancel_twice(self, orchestrator):
        orchestrator.start_session([FileChange("long.ts", "x" * 100)])

        assert orchestrator.cancel_session() is True
        assert orchestrator.cancel_session() is False

    def test_progress_frozen_after_cancel(self, orchestrator, backend):
        orchestrator.start_session([FileChange("long.ts", "x" * 100)])
        backend.advance(20)
        orchestrator.cancel_session()
        snapshot = orchestrator.progress

        backend.advance(1000)

        assert orchestrator.progress.overall_progress == snapshot.overall_progress
        assert orchestrator.progress.is_streaming is False

    def test_late_tick_after_cancel_is_discarded(self, store, leaky_backend, reveal_config,
                                                 session_config, channel, recorder):
        """Test that a tick already past the reveal's own check changes nothing."""
        orchestrator = SessionOrchestrator(store, leaky_backend, reveal_config=reveal_config,
                                           session_config=session_config, channel=channel)
        orchestrator.start_session([FileChange("long.ts", "x" * 100)])
        progress_before = len(recorder.of_type(SessionEventType.PROGRESS))

        # The handle keeps ticking as if its timer thread had already started
        with patch.object(RevealHandle, 'cancel'):
            orchestrator.cancel_session()
        leaky_backend.drain()

        assert orchestrator.status == SessionStatus.CANCELLED
        assert len(recorder.of_type(SessionEventType.PROGRESS)) == progress_before
        assert store.view("long.ts") == ""
        assert not store.is_locked("long.ts")

    def test_settle_timer_firing_after_cancel(self, store, leaky_backend, reveal_config,
                                              session_config, channel, recorder):
        orchestrator = SessionOrchestrator(store, leaky_backend, reveal_config=reveal_config,
                                           session_config=session_config, channel=channel)
        orchestrator.start_session([FileChange("a.ts", "abc"), B_CSS])
        orchestrator.cancel_session()

        assert leaky_backend.drain() == 1

        changed = recorder.of_type(SessionEventType.CURRENT_FILE_CHANGED)
        assert [e.file_change.file_path for e in changed] == ["a.ts"]
        assert not store.has_file("b.css")
        assert orchestrator.status == SessionStatus.CANCELLED


class TestSessionLifecycle:
    """Test cases for the session state machine."""

    def test_start_while_streaming_raises(self, orchestrator):
        orchestrator.start_session([FileChange("long.ts", "x" * 100)])

        with pytest.raises(SessionActiveError):
            orchestrator.start_session([A_TS])

        assert orchestrator.status == SessionStatus.STREAMING

    def test_finished_session_is_replaced(self, orchestrator, backend):
        first = orchestrator.start_session([A_TS])
        backend.run_until_idle()

        second = orchestrator.start_session([B_CSS])

        assert second.id != first.id
        assert orchestrator.session is second
        assert orchestrator.status == SessionStatus.STREAMING
        backend.run_until_idle()
        assert orchestrator.status == SessionStatus.COMPLETED

    def test_cancelled_session_can_restart(self, orchestrator, backend, store):
        orchestrator.start_session([FileChange("long.ts", "x" * 100)])
        orchestrator.cancel_session()

        orchestrator.start_session([FileChange("long.ts", "y" * 12)])
        backend.run_until_idle()

        assert orchestrator.status == SessionStatus.COMPLETED
        assert store.buffer_for("long.ts") == "y" * 12

    def test_reset_returns_to_idle(self, orchestrator, backend):
        orchestrator.start_session([A_TS])
        backend.run_until_idle()

        orchestrator.reset()

        assert orchestrator.status == SessionStatus.IDLE
        assert orchestrator.session is None
        assert orchestrator.progress is None


class TestWallClockGuard:
    """Test cases for the optional session time limit."""

    def test_session_times_out(self, store, backend, reveal_config, channel, recorder):
        orchestrator = SessionOrchestrator(
            store, backend,
            reveal_config=reveal_config,
            session_config=SessionConfig(settle_delay_ms=50, max_session_seconds=0.05),
            channel=channel,
        )

        orchestrator.start_session([FileChange("long.ts", "x" * 100)])
        backend.run_until_idle()

        assert orchestrator.status == SessionStatus.CANCELLED
        error = orchestrator.errors[-1]
        assert error.kind == ErrorKind.TIMEOUT
        assert error.recoverable is False
        cancelled = recorder.of_type(SessionEventType.SESSION_CANCELLED)
        assert len(cancelled) == 1
        assert cancelled[0].error is error
        assert not store.is_locked("long.ts")
        assert orchestrator.operation.status == OperationStatus.ERROR


class TestThreadedSession:
    """Test cases running on real timers."""

    def test_session_completes_on_threads(self, store, channel):
        done = threading.Event()
        channel.subscribe(lambda event: done.set(), [SessionEventType.SESSION_COMPLETED])
        orchestrator = SessionOrchestrator(
            store, ThreadingTimerBackend(),
            reveal_config=RevealConfig(chars_per_tick=4, tick_interval_ms=1,
                                       newline_extra_delay_ms=0),
            session_config=SessionConfig(settle_delay_ms=1),
            channel=channel,
        )

        orchestrator.start_session([A_TS, B_CSS])

        assert done.wait(timeout=5.0)
        assert orchestrator.status == SessionStatus.COMPLETED
        assert store.buffer_for("a.ts") == "const a = 1;"
        assert store.buffer_for("b.css") == "body{}"
