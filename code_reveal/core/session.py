"""Session orchestrator: reveals an ordered set of files one after another."""

import dataclasses
import logging
import threading
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional

from .config import RevealConfig, SessionConfig
from .errors import (
    ConfigurationError, FileLockedError, InvalidTransitionError, SessionActiveError
)
from .events import EventChannel, SessionEvent, SessionEventType
from .interfaces import ITimerBackend, ITimerHandle
from .models import (
    CodeOperation, ErrorKind, FileChange, FileStreamProgress, OperationError,
    RevisionSnapshot, SessionStatus, StreamingSession, generate_session_id
)
from .operations import OperationLog
from .reveal import CancellationToken, RevealHandle, RevealScheduler
from .revisions import RevisionStore


logger = logging.getLogger(__name__)


VALID_TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.IDLE: frozenset({SessionStatus.STREAMING}),
    SessionStatus.STREAMING: frozenset({SessionStatus.COMPLETED, SessionStatus.CANCELLED}),
    SessionStatus.COMPLETED: frozenset({SessionStatus.IDLE}),
    SessionStatus.CANCELLED: frozenset({SessionStatus.IDLE}),
}


class SessionOrchestrator:
    """Sequences the reveal scheduler across a session's files.

    Owns the session lifecycle (idle -> streaming -> completed, or
    streaming -> cancelled -> idle), aggregate progress, and the write lock
    on the file currently being streamed into. Each file's final content
    is committed to the revision store once its reveal completes.
    """

    def __init__(self, store: RevisionStore, backend: ITimerBackend,
                 reveal_config: Optional[RevealConfig] = None,
                 session_config: Optional[SessionConfig] = None,
                 channel: Optional[EventChannel] = None,
                 operation_log: Optional[OperationLog] = None):
        """Initialize session orchestrator.

        Args:
            store: Revision store receiving streamed content and commits
            backend: Timer backend driving ticks and settle delays
            reveal_config: Pacing for every file's reveal
            session_config: Settle delay and optional wall-clock guard
            channel: Event channel for progress and lifecycle notifications
            operation_log: Log recording each session as a code operation
        """
        self.store = store
        self.backend = backend
        self.reveal_config = reveal_config or RevealConfig()
        self.session_config = session_config or SessionConfig()
        self.channel = channel or EventChannel()
        self.operation_log = operation_log or OperationLog()
        self.scheduler = RevealScheduler(backend, self.reveal_config)

        self._lock = threading.RLock()
        self._status = SessionStatus.IDLE
        self._session: Optional[StreamingSession] = None
        self._operation: Optional[CodeOperation] = None
        self._token = CancellationToken()
        self._reveal: Optional[RevealHandle] = None
        self._session_reveal_config = self.reveal_config
        self._settle_timer: Optional[ITimerHandle] = None
        self._file_progress = 0.0
        self._last_overall = 0.0
        self._started_ms = 0.0

    # State

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def session(self) -> Optional[StreamingSession]:
        return self._session

    @property
    def operation(self) -> Optional[CodeOperation]:
        return self._operation

    @property
    def errors(self) -> List[OperationError]:
        with self._lock:
            return list(self._session.errors) if self._session else []

    @property
    def progress(self) -> Optional[FileStreamProgress]:
        with self._lock:
            if self._session is None:
                return None
            return self._build_progress(update=False)

    def _transition(self, new_status: SessionStatus) -> None:
        if new_status not in VALID_TRANSITIONS[self._status]:
            raise InvalidTransitionError(
                f"Invalid session transition: {self._status.value} -> {new_status.value}"
            )
        logger.debug(f"Session status {self._status.value} -> {new_status.value}")
        self._status = new_status
        if self._session is not None and new_status != SessionStatus.IDLE:
            self._session.status = new_status

    def _validate_config(self) -> None:
        self.reveal_config.validate()
        if self.session_config.settle_delay_ms < 0:
            raise ConfigurationError("session.settle_delay_ms must be non-negative")
        max_seconds = self.session_config.max_session_seconds
        if max_seconds is not None and max_seconds <= 0:
            raise ConfigurationError("session.max_session_seconds must be greater than 0 when set")

    # Lifecycle

    def start_session(self, files: Iterable[FileChange]) -> StreamingSession:
        """Start revealing files in order.

        Raises:
            SessionActiveError: If a session is already streaming
            ConfigurationError: If pacing or session settings are invalid
            ValueError: If two files share a path
            TypeError: If an item is not a FileChange
        """
        files = tuple(files)
        with self._lock:
            if self._status == SessionStatus.STREAMING:
                raise SessionActiveError(
                    f"Session {self._session.id} is already active; cancel it first"
                )
            self._validate_config()
            self._check_files(files)

            if self._status != SessionStatus.IDLE:
                self._discard()

            session = StreamingSession(id=generate_session_id(), files=files)
            self._session = session
            # Pacing is fixed for the session; later edits to reveal_config apply to the next one
            self._session_reveal_config = dataclasses.replace(self.reveal_config)
            self._token = CancellationToken()
            self._reveal = None
            self._settle_timer = None
            self._file_progress = 0.0
            self._last_overall = 0.0
            self._started_ms = self.backend.now()
            self._operation = self.operation_log.start(f"Reveal {len(files)} files")

            self._transition(SessionStatus.STREAMING)
            session.started_at = datetime.now()
            logger.info(f"Session {session.id} started with {len(files)} files")
            self._emit(SessionEventType.SESSION_STARTED)

            if not files:
                self._complete_session()
            else:
                self._start_file(0)
            return session

    @staticmethod
    def _check_files(files: tuple) -> None:
        seen = set()
        for item in files:
            if not isinstance(item, FileChange):
                raise TypeError(f"Expected FileChange, got {type(item).__name__}")
            if item.file_path in seen:
                raise ValueError(f"Duplicate file path in session: {item.file_path}")
            seen.add(item.file_path)

    def cancel_session(self) -> bool:
        """Stop the streaming session.

        The partial content of the file being streamed is discarded, not
        committed. Returns False if nothing was streaming.
        """
        with self._lock:
            if self._status != SessionStatus.STREAMING:
                return False
            handle = self._stop_streaming()
            self._transition(SessionStatus.CANCELLED)
            self._session.completed_at = datetime.now()
            self.operation_log.cancel(self._operation.id)
            logger.info(f"Session {self._session.id} cancelled at file "
                        f"{self._session.current_file_index + 1}/{self._session.total_files}")
            self._emit(SessionEventType.SESSION_CANCELLED)

        # Outside the lock: a tick blocked on our lock holds the handle's lock
        if handle is not None:
            handle.cancel()
        return True

    def reset(self) -> None:
        """Discard a finished session and return to idle."""
        with self._lock:
            if self._status == SessionStatus.IDLE:
                return
            self._discard()

    def _discard(self) -> None:
        self._transition(SessionStatus.IDLE)
        self._session = None
        self._operation = None
        self._file_progress = 0.0
        self._last_overall = 0.0

    def _stop_streaming(self) -> Optional[RevealHandle]:
        # Caller holds the lock
        self._token.cancel()
        handle = self._reveal
        self._reveal = None
        if self._settle_timer is not None:
            self._settle_timer.cancel()
            self._settle_timer = None

        current = self._session.current_file
        if current is not None:
            self._release_stream(current.file_path)
        return handle

    # Per-file flow

    def _start_file(self, index: int) -> None:
        """Begin a file; anything it raises is recorded against that file."""
        try:
            self._begin_file(index)
        except Exception as e:
            file_change = self._session.files[index]
            logger.error(f"Starting {file_change.file_path} failed: {e}", exc_info=True)
            self._token.cancel()
            self._token = CancellationToken()
            handle = self._reveal
            self._reveal = None
            if handle is not None:
                handle.cancel()
            self._release_stream(file_change.file_path)
            self._fail_file(OperationError(
                kind=ErrorKind.CALLBACK,
                message=f"Starting {file_change.file_path} failed: {e}",
                file_path=file_change.file_path,
            ))

    def _release_stream(self, file_path: str) -> None:
        if not self.store.is_locked(file_path):
            return
        try:
            self.store.end_stream(file_path, self._session.id, commit=False)
        except FileLockedError:
            logger.debug(f"Stream lock on {file_path} held by another owner")

    def _begin_file(self, index: int) -> None:
        session = self._session
        session.current_file_index = index
        file_change = session.files[index]
        self._file_progress = 0.0

        self.operation_log.add_step(self._operation.id, f"Revealing {file_change.file_path}",
                                    file_change.file_path)
        logger.debug(f"Session {session.id}: file {index + 1}/{session.total_files} "
                     f"{file_change.file_path}")
        self._emit(SessionEventType.CURRENT_FILE_CHANGED, file_change=file_change)

        if not file_change.has_valid_content:
            self._fail_file(OperationError(
                kind=ErrorKind.CONTENT,
                message=f"Missing or invalid content for {file_change.file_path}",
                file_path=file_change.file_path,
            ))
            return

        try:
            self.store.begin_stream(file_change.file_path, session.id)
        except FileLockedError as e:
            self._fail_file(OperationError(
                kind=ErrorKind.LOCKED,
                message=str(e),
                file_path=file_change.file_path,
            ))
            return

        token = self._token
        self._reveal = self.scheduler.start(
            file_change.content,
            lambda partial, is_complete: self._on_update(token, index, partial, is_complete),
            config=self._session_reveal_config,
            on_error=lambda error: self._on_reveal_error(token, index, error),
        )

    def _on_update(self, token: CancellationToken, index: int,
                   partial: str, is_complete: bool) -> None:
        with self._lock:
            if token.cancelled:
                logger.debug("Discarding update from cancelled session")
                return
            if self._deadline_exceeded():
                self._timeout()
                return

            session = self._session
            file_change = session.files[index]
            content = file_change.content
            self.store.update_stream(file_change.file_path, partial, session.id)
            self._file_progress = len(partial) / len(content) * 100.0 if content else 100.0
            self._emit(SessionEventType.PROGRESS, file_change=file_change, partial_content=partial)

            if not is_complete:
                return

            self._reveal = None
            snapshot = self.store.end_stream(file_change.file_path, session.id,
                                             commit=True, final_content=content)
            self.operation_log.complete_step(self._operation.id, file_change.file_path)
            self._emit(SessionEventType.FILE_COMPLETED, file_change=file_change, snapshot=snapshot)
            self._schedule_advance()

    def _on_reveal_error(self, token: CancellationToken, index: int, error: Exception) -> None:
        with self._lock:
            if token.cancelled:
                return
            file_change = self._session.files[index]
            logger.error(f"Reveal of {file_change.file_path} failed: {error}", exc_info=error)
            self._reveal = None
            self._release_stream(file_change.file_path)
            self._fail_file(OperationError(
                kind=ErrorKind.CALLBACK,
                message=f"Reveal of {file_change.file_path} failed: {error}",
                file_path=file_change.file_path,
            ))

    def _fail_file(self, error: OperationError) -> None:
        self._record_error(error)
        self._file_progress = 100.0
        self._emit(SessionEventType.FILE_FAILED, file_change=self._session.current_file, error=error)
        self._schedule_advance()

    def _record_error(self, error: OperationError) -> None:
        self._session.errors.append(error)
        self.operation_log.fail_step(self._operation.id, error)
        logger.warning(f"Session {self._session.id}: {error.kind.value} error: {error.message}")
        self._emit(SessionEventType.OPERATION_ERROR, error=error)

    def _schedule_advance(self) -> None:
        token = self._token
        self._settle_timer = self.backend.call_later(
            self.session_config.settle_delay_ms, lambda: self._advance(token)
        )

    def _advance(self, token: CancellationToken) -> None:
        with self._lock:
            if token.cancelled or self._status != SessionStatus.STREAMING:
                logger.debug("Discarding settle timer from finished session")
                return
            self._settle_timer = None
            if self._deadline_exceeded():
                self._timeout()
                return

            next_index = self._session.current_file_index + 1
            if next_index < self._session.total_files:
                self._start_file(next_index)
            else:
                self._complete_session()

    def _complete_session(self) -> None:
        session = self._session
        self._file_progress = 100.0
        self._transition(SessionStatus.COMPLETED)
        session.completed_at = datetime.now()

        if session.errors:
            self.operation_log.fail(self._operation.id, OperationError(
                kind=session.errors[0].kind,
                message=f"{len(session.errors)} of {session.total_files} files failed",
            ))
        else:
            self.operation_log.complete(self._operation.id)

        logger.info(f"Session {session.id} completed: {session.total_files} files, "
                    f"{len(session.errors)} errors")
        self._emit(SessionEventType.PROGRESS)
        self._emit(SessionEventType.SESSION_COMPLETED)

    # Wall-clock guard

    def _deadline_exceeded(self) -> bool:
        max_seconds = self.session_config.max_session_seconds
        if max_seconds is None:
            return False
        return self.backend.now() - self._started_ms > max_seconds * 1000.0

    def _timeout(self) -> None:
        session = self._session
        error = OperationError(
            kind=ErrorKind.TIMEOUT,
            message=f"Session exceeded {self.session_config.max_session_seconds}s",
            file_path=session.current_file.file_path if session.current_file else None,
            recoverable=False,
        )
        self._record_error(error)
        # Caller holds the lock and may be inside a tick of this handle
        handle = self._stop_streaming()
        self._transition(SessionStatus.CANCELLED)
        session.completed_at = datetime.now()
        self.operation_log.fail(self._operation.id, error)
        logger.warning(f"Session {session.id} cancelled by wall-clock guard")
        self._emit(SessionEventType.SESSION_CANCELLED, error=error)
        if handle is not None:
            handle.cancel()

    # Progress and events

    def _build_progress(self, update: bool = True) -> FileStreamProgress:
        session = self._session
        total = session.total_files
        if self._status == SessionStatus.COMPLETED or total == 0:
            overall = 100.0
        else:
            overall = (session.current_file_index / total) * 100.0 + self._file_progress / total
        overall = min(100.0, max(self._last_overall, overall))
        if update:
            self._last_overall = overall

        return FileStreamProgress(
            session_id=session.id,
            current_file=session.current_file,
            current_file_index=session.current_file_index,
            total_files=total,
            current_file_progress=self._file_progress,
            overall_progress=overall,
            is_streaming=self._status == SessionStatus.STREAMING,
        )

    def _emit(self, event_type: SessionEventType, file_change: Optional[FileChange] = None,
              partial_content: Optional[str] = None,
              snapshot: Optional[RevisionSnapshot] = None,
              error: Optional[OperationError] = None) -> None:
        event = SessionEvent(
            event_type=event_type,
            session_id=self._session.id,
            progress=self._build_progress(),
            file_change=file_change,
            partial_content=partial_content,
            snapshot=snapshot,
            error=error,
        )
        self.channel.publish(event)
