"""Revision store: per-file editable buffers with bounded undo/redo history."""

import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional

from .errors import FileLockedError, NoActiveFileError, RevisionNotFoundError
from .interfaces import IRevisionStore
from .models import RevisionId, RevisionSnapshot


logger = logging.getLogger(__name__)


class FileHistory:
    """Undo/redo state of a single file.

    Snapshots live in an arena keyed by revision id. Every retained id is
    in exactly one place: the undo stack, the redo stack, or ``current``.
    """

    def __init__(self, file_path: str, initial_content: str = ""):
        self.file_path = file_path
        self.entries: Dict[RevisionId, RevisionSnapshot] = {}
        self.undo_stack: List[RevisionId] = []
        self.redo_stack: List[RevisionId] = []
        self.next_revision = 0
        self.dirty = False
        self.lock_owner: Optional[str] = None
        self.stream_content: Optional[str] = None
        self.current = self._add_entry(initial_content, "Opened").revision

    def _add_entry(self, content: str, description: str) -> RevisionSnapshot:
        snapshot = RevisionSnapshot(
            file_path=self.file_path,
            revision=self.next_revision,
            content=content,
            timestamp=datetime.now(),
            description=description,
        )
        self.entries[snapshot.revision] = snapshot
        self.next_revision += 1
        return snapshot

    @property
    def buffer(self) -> str:
        return self.entries[self.current].content

    @property
    def is_streaming(self) -> bool:
        return self.lock_owner is not None


class RevisionStore(IRevisionStore):
    """Holds the editable buffer of each file and its undo/redo stacks.

    One file is active at a time; ``commit``, ``undo``, ``redo`` and the
    derived properties act on it unless a path is given. While a file is
    being streamed into, only the stream owner may write to it.
    """

    def __init__(self, max_history: int = 50):
        """Initialize revision store.

        Args:
            max_history: Maximum undo depth per file; older revisions are
                evicted first
        """
        if max_history <= 0:
            raise ValueError("max_history must be greater than 0")
        self.max_history = max_history
        self._histories: Dict[str, FileHistory] = {}
        self._active: Optional[str] = None
        self._lock = threading.RLock()

    # File selection

    @property
    def active_file(self) -> Optional[str]:
        return self._active

    @property
    def file_paths(self) -> List[str]:
        with self._lock:
            return list(self._histories)

    def open_file(self, file_path: str, initial_content: str = "") -> RevisionSnapshot:
        """Make file_path the file under edit.

        A file seen before keeps its history and initial_content is ignored.
        """
        with self._lock:
            history = self._get_or_create(file_path, initial_content)
            if self._active != file_path:
                logger.debug(f"Active file switched: {self._active} -> {file_path}")
            self._active = file_path
            return history.entries[history.current]

    def has_file(self, file_path: str) -> bool:
        with self._lock:
            return file_path in self._histories

    def _get_or_create(self, file_path: str, initial_content: str = "") -> FileHistory:
        history = self._histories.get(file_path)
        if history is None:
            history = FileHistory(file_path, initial_content)
            self._histories[file_path] = history
        return history

    def _require(self, file_path: Optional[str]) -> FileHistory:
        path = file_path or self._active
        if path is None:
            raise NoActiveFileError("No file is open for editing")
        history = self._histories.get(path)
        if history is None:
            raise RevisionNotFoundError(f"No history for file: {path}")
        return history

    @staticmethod
    def _check_writer(history: FileHistory, owner: Optional[str]) -> None:
        if history.lock_owner is not None and history.lock_owner != owner:
            raise FileLockedError(history.file_path, history.lock_owner)

    # Editing

    def commit(self, content: str, file_path: Optional[str] = None,
               description: str = "", owner: Optional[str] = None) -> RevisionSnapshot:
        """Record content as the new current revision.

        The previous revision moves onto the undo stack and the redo stack
        is discarded.

        Raises:
            FileLockedError: If the file is being streamed by someone else
            NoActiveFileError: If no path is given and no file is active
        """
        if not isinstance(content, str):
            raise TypeError(f"Content must be a string, got {type(content).__name__}")

        with self._lock:
            path = file_path or self._active
            if path is None:
                raise NoActiveFileError("No file is open for editing")
            history = self._get_or_create(path)
            self._check_writer(history, owner)
            return self._commit(history, content, description)

    def _commit(self, history: FileHistory, content: str, description: str) -> RevisionSnapshot:
        for revision in history.redo_stack:
            del history.entries[revision]
        history.redo_stack.clear()

        history.undo_stack.append(history.current)
        snapshot = history._add_entry(content, description)
        history.current = snapshot.revision
        history.dirty = True

        while len(history.undo_stack) > self.max_history:
            evicted = history.undo_stack.pop(0)
            del history.entries[evicted]
            logger.debug(f"Evicted revision {evicted} of {history.file_path}")

        logger.debug(f"Committed revision {snapshot.revision} of {history.file_path} "
                     f"(undo depth {len(history.undo_stack)})")
        return snapshot

    def undo(self, file_path: Optional[str] = None) -> bool:
        """Step the file back one revision.

        Returns:
            False if there was nothing to undo
        """
        with self._lock:
            history = self._history_for_navigation(file_path)
            if history is None or not history.undo_stack:
                return False
            history.redo_stack.append(history.current)
            history.current = history.undo_stack.pop()
            history.dirty = True
            return True

    def redo(self, file_path: Optional[str] = None) -> bool:
        """Step the file forward one revision.

        Returns:
            False if there was nothing to redo
        """
        with self._lock:
            history = self._history_for_navigation(file_path)
            if history is None or not history.redo_stack:
                return False
            history.undo_stack.append(history.current)
            history.current = history.redo_stack.pop()
            history.dirty = True
            return True

    def _history_for_navigation(self, file_path: Optional[str]) -> Optional[FileHistory]:
        path = file_path or self._active
        if path is None:
            return None
        history = self._histories.get(path)
        if history is not None:
            self._check_writer(history, None)
        return history

    # Derived state

    def can_undo_file(self, file_path: str) -> bool:
        with self._lock:
            history = self._histories.get(file_path)
            return bool(history and history.undo_stack)

    def can_redo_file(self, file_path: str) -> bool:
        with self._lock:
            history = self._histories.get(file_path)
            return bool(history and history.redo_stack)

    @property
    def can_undo(self) -> bool:
        return self._active is not None and self.can_undo_file(self._active)

    @property
    def can_redo(self) -> bool:
        return self._active is not None and self.can_redo_file(self._active)

    @property
    def buffer(self) -> str:
        """Committed content of the active file ("" when none is open)."""
        with self._lock:
            if self._active is None:
                return ""
            return self._histories[self._active].buffer

    def buffer_for(self, file_path: str) -> str:
        with self._lock:
            return self._require(file_path).buffer

    @property
    def dirty(self) -> bool:
        with self._lock:
            if self._active is None:
                return False
            return self._histories[self._active].dirty

    def mark_clean(self, file_path: Optional[str] = None) -> None:
        with self._lock:
            self._require(file_path).dirty = False

    # Revisions

    def get_revision(self, file_path: str, revision: RevisionId) -> RevisionSnapshot:
        """Look up a retained revision.

        Raises:
            RevisionNotFoundError: If the file or revision is unknown or evicted
        """
        with self._lock:
            history = self._require(file_path)
            snapshot = history.entries.get(revision)
            if snapshot is None:
                raise RevisionNotFoundError(f"Revision {revision} of {file_path} is not retained")
            return snapshot

    def current_revision(self, file_path: Optional[str] = None) -> RevisionSnapshot:
        with self._lock:
            history = self._require(file_path)
            return history.entries[history.current]

    def history(self, file_path: Optional[str] = None) -> List[RevisionSnapshot]:
        """Retained revisions from oldest to newest, including redoable ones."""
        with self._lock:
            history = self._require(file_path)
            order = history.undo_stack + [history.current] + list(reversed(history.redo_stack))
            return [history.entries[revision] for revision in order]

    # Streaming

    def is_locked(self, file_path: str) -> bool:
        with self._lock:
            history = self._histories.get(file_path)
            return bool(history and history.is_streaming)

    def begin_stream(self, file_path: str, owner: str) -> None:
        """Lock file_path so only owner may write until end_stream."""
        with self._lock:
            history = self._get_or_create(file_path)
            self._check_writer(history, owner)
            history.lock_owner = owner
            history.stream_content = ""
            logger.debug(f"Stream lock on {file_path} taken by {owner}")

    def update_stream(self, file_path: str, partial: str, owner: str) -> None:
        with self._lock:
            history = self._require(file_path)
            if history.lock_owner != owner:
                raise FileLockedError(file_path, history.lock_owner)
            history.stream_content = partial

    def end_stream(self, file_path: str, owner: str, commit: bool = True,
                   final_content: Optional[str] = None) -> Optional[RevisionSnapshot]:
        """Release the stream lock.

        Args:
            file_path: Streamed file
            owner: Lock owner given to begin_stream
            commit: Commit the streamed content as a new revision; when
                False the partial content is discarded
            final_content: Content to commit instead of the last partial

        Returns:
            The committed snapshot, or None when not committing
        """
        with self._lock:
            history = self._require(file_path)
            if history.lock_owner != owner:
                raise FileLockedError(file_path, history.lock_owner)
            content = final_content if final_content is not None else history.stream_content
            history.lock_owner = None
            history.stream_content = None
            logger.debug(f"Stream lock on {file_path} released by {owner} (commit={commit})")
            if not commit:
                return None
            return self._commit(history, content or "", f"Streamed by {owner}")

    def view(self, file_path: Optional[str] = None) -> str:
        """What an editor should display: the partial stream or the buffer."""
        with self._lock:
            history = self._require(file_path)
            if history.stream_content is not None:
                return history.stream_content
            return history.buffer
