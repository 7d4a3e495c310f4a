"""Core interfaces and abstract base classes for Code Reveal."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, Any, List, Optional, Sequence

from .models import DiffHunk, DiffResult, RevisionId, RevisionSnapshot


class ITimerHandle(ABC):
    """A scheduled callback that can be cancelled before it fires."""

    @abstractmethod
    def cancel(self) -> None:
        """Prevent the callback from running. Safe to call more than once."""
        pass

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        pass


class ITimerBackend(ABC):
    """Source of time and delayed callbacks for the cooperative timeline."""

    @abstractmethod
    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> ITimerHandle:
        """Run callback once after delay_ms milliseconds."""
        pass

    @abstractmethod
    def now(self) -> float:
        """Current time in milliseconds on this backend's clock."""
        pass


class IRevisionStore(ABC):
    """Interface for the per-file editable buffer with undo/redo."""

    @abstractmethod
    def commit(self, content: str, file_path: Optional[str] = None,
               description: str = "", owner: Optional[str] = None) -> RevisionSnapshot:
        """Record new content as the current revision."""
        pass

    @abstractmethod
    def undo(self) -> bool:
        """Step back one revision on the active file."""
        pass

    @abstractmethod
    def redo(self) -> bool:
        """Step forward one revision on the active file."""
        pass

    @abstractmethod
    def get_revision(self, file_path: str, revision: RevisionId) -> RevisionSnapshot:
        """Look up a retained revision of a file."""
        pass

    @abstractmethod
    def begin_stream(self, file_path: str, owner: str) -> None:
        """Lock a file for exclusive streamed writes."""
        pass

    @abstractmethod
    def update_stream(self, file_path: str, partial: str, owner: str) -> None:
        """Publish partial streamed content without committing it."""
        pass

    @abstractmethod
    def end_stream(self, file_path: str, owner: str, commit: bool = True,
                   final_content: Optional[str] = None) -> Optional[RevisionSnapshot]:
        """Release the stream lock, optionally committing the final content."""
        pass


class IDiffEngine(ABC):
    """Interface for line-based diffing."""

    @abstractmethod
    def diff(self, old_content: str, new_content: str) -> DiffResult:
        """Compute the hunks turning old_content into new_content."""
        pass

    @abstractmethod
    def apply_hunks(self, old_content: str, hunks: Sequence[DiffHunk]) -> str:
        """Rebuild the new content from old_content and a hunk list."""
        pass


class IConfigManager(ABC):
    """Interface for configuration management."""

    @abstractmethod
    def load_config(self, config_path: Optional[Path] = None) -> Dict[str, Any]:
        """Load configuration from file."""
        pass

    @abstractmethod
    def save_config(self, config: Dict[str, Any], config_path: Optional[Path] = None) -> bool:
        """Save configuration to file."""
        pass

    @abstractmethod
    def get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values."""
        pass

    @abstractmethod
    def validate_config(self, config: Dict[str, Any]) -> List[str]:
        """Validate configuration and return any errors."""
        pass
