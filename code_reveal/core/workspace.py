"""Workspace: the in-process surface presentation layers talk to."""

import dataclasses
import logging
import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .config import CodeRevealConfig
from .diff_engine import DiffEngine
from .errors import DiffApplyError, DiffPreviewNotFoundError, FileLockedError
from .events import EventChannel, EventListener, SessionEventType, Subscription
from .interfaces import ITimerBackend
from .models import (
    CodeOperation, DiffId, DiffPreview, DiffStatus, FileChange, FileStreamProgress,
    OperationError, RevisionId, RevisionSnapshot, SessionStatus, StreamingSession,
    generate_diff_id
)
from .operations import OperationLog
from .revisions import RevisionStore
from .session import SessionOrchestrator
from .timers import ThreadingTimerBackend


logger = logging.getLogger(__name__)


class Workspace:
    """Wires the orchestrator, revision store and diff engine together.

    Streaming, interactive editing and diff review all go through this
    class; presentation code subscribes to its event channel.
    """

    def __init__(self, config: Optional[CodeRevealConfig] = None,
                 backend: Optional[ITimerBackend] = None):
        """Initialize workspace.

        Args:
            config: Typed configuration (defaults if None)
            backend: Timer backend; real threading timers if None
        """
        self.config = config or CodeRevealConfig()
        self.backend = backend or ThreadingTimerBackend()
        self.channel = EventChannel()
        self.operation_log = OperationLog()
        self.store = RevisionStore(max_history=self.config.history.max_history)
        self.diff_engine = DiffEngine(self.config.diff)
        self.orchestrator = SessionOrchestrator(
            store=self.store,
            backend=self.backend,
            reveal_config=self.config.reveal,
            session_config=self.config.session,
            channel=self.channel,
            operation_log=self.operation_log,
        )
        self._previews: Dict[DiffId, DiffPreview] = {}
        self._lock = threading.RLock()

    # Streaming

    def start_streaming_session(self, files: Iterable[FileChange],
                                cancel_active: bool = False) -> StreamingSession:
        """Start revealing files.

        Args:
            files: Ordered artifacts to reveal
            cancel_active: Cancel a streaming session first instead of
                raising SessionActiveError
        """
        if cancel_active:
            self.orchestrator.cancel_session()
        return self.orchestrator.start_session(files)

    def cancel_streaming_session(self) -> bool:
        return self.orchestrator.cancel_session()

    def subscribe(self, listener: EventListener,
                  event_types: Optional[Iterable[SessionEventType]] = None) -> Subscription:
        return self.channel.subscribe(listener, event_types)

    @property
    def status(self) -> SessionStatus:
        return self.orchestrator.status

    @property
    def session(self) -> Optional[StreamingSession]:
        return self.orchestrator.session

    @property
    def progress(self) -> Optional[FileStreamProgress]:
        return self.orchestrator.progress

    @property
    def errors(self) -> List[OperationError]:
        return self.orchestrator.errors

    @property
    def operations(self) -> List[CodeOperation]:
        return self.operation_log.list_operations()

    # Editing

    def open_file(self, file_path: str, content: str = "") -> RevisionSnapshot:
        return self.store.open_file(file_path, content)

    def commit_edit(self, file_path: str, content: str,
                    description: str = "Manual edit") -> RevisionSnapshot:
        """Commit a manual edit and make file_path the file under edit.

        Raises:
            FileLockedError: If file_path is being streamed into
        """
        with self._lock:
            if self.store.is_locked(file_path):
                raise FileLockedError(file_path, self.session.id if self.session else None)
            self.store.open_file(file_path)
            return self.store.commit(content, file_path, description)

    def undo(self) -> bool:
        return self.store.undo()

    def redo(self) -> bool:
        return self.store.redo()

    @property
    def can_undo(self) -> bool:
        return self.store.can_undo

    @property
    def can_redo(self) -> bool:
        return self.store.can_redo

    @property
    def buffer(self) -> str:
        return self.store.buffer

    @property
    def active_file(self) -> Optional[str]:
        return self.store.active_file

    def view(self, file_path: str) -> str:
        """Content to display for file_path, including a partial stream."""
        return self.store.view(file_path)

    # Diff preview

    def request_diff_preview(self, file_path: str, from_revision: RevisionId,
                             to_revision: Optional[RevisionId] = None) -> DiffPreview:
        """Diff two retained revisions of a file.

        Args:
            file_path: File to diff
            from_revision: Source revision id
            to_revision: Target revision id; the current revision if None

        Raises:
            RevisionNotFoundError: If either revision is unknown or evicted
        """
        source = self.store.get_revision(file_path, from_revision)
        if to_revision is None:
            target = self.store.current_revision(file_path)
        else:
            target = self.store.get_revision(file_path, to_revision)

        preview = DiffPreview(
            id=generate_diff_id(),
            file_path=file_path,
            from_revision=source.revision,
            to_revision=target.revision,
            result=self.diff_engine.diff(source.content, target.content),
            created_at=datetime.now(),
        )
        return self._store_preview(preview)

    def propose_edit(self, file_path: str, content: str) -> DiffPreview:
        """Preview an edit against the file's current revision without committing it."""
        current = self.store.current_revision(file_path)
        preview = DiffPreview(
            id=generate_diff_id(),
            file_path=file_path,
            from_revision=current.revision,
            to_revision=None,
            result=self.diff_engine.diff(current.content, content),
            created_at=datetime.now(),
            proposed_content=content,
        )
        return self._store_preview(preview)

    def _store_preview(self, preview: DiffPreview) -> DiffPreview:
        with self._lock:
            self._previews[preview.id] = preview
            self._trim_previews()
        logger.debug(f"Diff preview {preview.id} for {preview.file_path}: "
                     f"+{preview.result.added} -{preview.result.removed}")
        return preview

    def _trim_previews(self) -> None:
        # Answered previews go first, oldest first; dict order is creation order
        excess = len(self._previews) - self.config.diff.max_previews
        if excess <= 0:
            return
        answered = [p.id for p in self._previews.values() if p.status != DiffStatus.PENDING]
        pending = [p.id for p in self._previews.values() if p.status == DiffStatus.PENDING]
        for diff_id in (answered + pending)[:excess]:
            del self._previews[diff_id]
        logger.debug(f"Dropped {excess} old diff previews")

    def clear_diff_previews(self, answered_only: bool = True) -> int:
        """Forget previews; pending ones are kept unless answered_only is False.

        Returns:
            Number of previews removed
        """
        with self._lock:
            doomed = [p.id for p in self._previews.values()
                      if not answered_only or p.status != DiffStatus.PENDING]
            for diff_id in doomed:
                del self._previews[diff_id]
        return len(doomed)

    def get_diff_preview(self, diff_id: DiffId) -> DiffPreview:
        with self._lock:
            try:
                return self._previews[diff_id]
            except KeyError:
                raise DiffPreviewNotFoundError(f"Diff preview not found: {diff_id}")

    @property
    def diff_previews(self) -> List[DiffPreview]:
        with self._lock:
            return list(self._previews.values())

    def accept_diff(self, diff_id: DiffId) -> RevisionSnapshot:
        """Apply a pending preview to its file as a new commit.

        A proposed edit is only accepted while the file is still at the
        revision it was proposed against. Accepting a preview between two
        revisions commits the target revision's content again.

        Raises:
            DiffPreviewNotFoundError: If diff_id is unknown
            DiffApplyError: If the preview no longer matches the file
            ValueError: If the preview was already accepted or rejected
        """
        with self._lock:
            preview = self._pending_preview(diff_id)
            source = self.store.get_revision(preview.file_path, preview.from_revision)

            if preview.proposed_content is not None:
                current = self.store.current_revision(preview.file_path)
                if current.revision != preview.from_revision:
                    raise DiffApplyError(
                        f"{preview.file_path} moved from revision {preview.from_revision} "
                        f"to {current.revision} since {diff_id} was proposed"
                    )
                target = preview.proposed_content
            else:
                target = self.store.get_revision(preview.file_path, preview.to_revision).content

            if not preview.result.is_summary:
                target = self.diff_engine.apply_hunks(source.content, preview.hunks)

            snapshot = self.commit_edit(preview.file_path, target, f"Accepted {diff_id}")
            self._respond(preview, DiffStatus.ACCEPTED)
            return snapshot

    def reject_diff(self, diff_id: DiffId) -> DiffPreview:
        with self._lock:
            return self._respond(self._pending_preview(diff_id), DiffStatus.REJECTED)

    def _pending_preview(self, diff_id: DiffId) -> DiffPreview:
        preview = self.get_diff_preview(diff_id)
        if preview.status != DiffStatus.PENDING:
            raise ValueError(f"Diff preview {diff_id} is already {preview.status.value}")
        return preview

    def _respond(self, preview: DiffPreview, status: DiffStatus) -> DiffPreview:
        updated = dataclasses.replace(preview, status=status, responded_at=datetime.now())
        self._previews[preview.id] = updated
        return updated

    # Lifecycle

    def close(self) -> None:
        """Cancel any streaming session and drop all subscribers."""
        self.orchestrator.cancel_session()
        self.channel.clear()

    def __enter__(self) -> 'Workspace':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
