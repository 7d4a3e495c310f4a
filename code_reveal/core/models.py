"""Core data models and type definitions for Code Reveal."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Tuple
import uuid


# Type aliases for better readability
SessionId = str
OperationId = str
DiffId = str
RevisionId = int


LANGUAGE_BY_EXTENSION: Dict[str, str] = {
    "tsx": "typescript",
    "ts": "typescript",
    "jsx": "javascript",
    "js": "javascript",
    "css": "css",
    "json": "json",
    "md": "markdown",
    "html": "html",
    "py": "python",
}


class FileAction(Enum):
    """What a streamed file does to the workspace."""
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"


class SessionStatus(Enum):
    """Lifecycle states of a streaming session."""
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class HunkType(Enum):
    """Kinds of line groups in a diff."""
    CONTEXT = "context"
    ADDED = "added"
    REMOVED = "removed"


class DiffFormat(Enum):
    """Available diff output formats."""
    UNIFIED = "unified"
    SIDE_BY_SIDE = "side-by-side"


class DiffStatus(Enum):
    """Review state of a diff preview."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class OperationStatus(Enum):
    """Overall state of a code operation."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


class StepStatus(Enum):
    """State of a single operation step."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


class ErrorKind(Enum):
    """Categories of recorded (non-raised) errors."""
    CONFIGURATION = "configuration"
    CONTENT = "content"
    CALLBACK = "callback"
    TIMEOUT = "timeout"
    LOCKED = "locked"


def infer_language(file_path: str) -> str:
    """Infer a language hint from a file extension."""
    suffix = PurePosixPath(file_path).suffix.lower().lstrip(".")
    return LANGUAGE_BY_EXTENSION.get(suffix, "plaintext")


@dataclass(frozen=True)
class FileChange:
    """One artifact to reveal: a file path and its final content."""
    file_path: str
    content: Optional[str]
    action: FileAction = FileAction.CREATE
    language: Optional[str] = None

    @property
    def resolved_language(self) -> str:
        """Explicit language hint, or one inferred from the extension."""
        return self.language or infer_language(self.file_path)

    @property
    def has_valid_content(self) -> bool:
        return isinstance(self.content, str)


@dataclass(frozen=True)
class OperationError:
    """A recorded per-file failure surfaced through the error channel."""
    kind: ErrorKind
    message: str
    file_path: Optional[str] = None
    recoverable: bool = True


@dataclass
class StreamingSession:
    """An ordered set of files being revealed one after another."""
    id: SessionId
    files: Tuple[FileChange, ...]
    current_file_index: int = 0
    status: SessionStatus = SessionStatus.IDLE
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    errors: List[OperationError] = field(default_factory=list)

    @property
    def total_files(self) -> int:
        return len(self.files)

    @property
    def current_file(self) -> Optional[FileChange]:
        if 0 <= self.current_file_index < len(self.files):
            return self.files[self.current_file_index]
        return None


@dataclass(frozen=True)
class FileStreamProgress:
    """Derived progress of a streaming session."""
    session_id: SessionId
    current_file: Optional[FileChange]
    current_file_index: int
    total_files: int
    current_file_progress: float
    overall_progress: float
    is_streaming: bool


@dataclass(frozen=True)
class RevisionSnapshot:
    """Immutable capture of a file buffer at one point in its history."""
    file_path: str
    revision: RevisionId
    content: str
    timestamp: datetime
    description: str = ""


@dataclass(frozen=True)
class DiffHunk:
    """A contiguous run of lines sharing one diff type.

    Lines keep their original line endings so hunks can be re-applied
    byte for byte.
    """
    type: HunkType
    lines: Tuple[str, ...]

    @property
    def text_lines(self) -> List[str]:
        """Lines without trailing line endings, for display."""
        return [line.rstrip("\r\n") for line in self.lines]


@dataclass(frozen=True)
class DiffResult:
    """Outcome of diffing two contents."""
    hunks: Tuple[DiffHunk, ...]
    lines_before: int
    lines_after: int
    added: int = 0
    removed: int = 0
    is_summary: bool = False
    summary: Optional[str] = None

    @property
    def has_changes(self) -> bool:
        if self.is_summary:
            return True
        return self.added > 0 or self.removed > 0


@dataclass(frozen=True)
class DiffPreview:
    """A diff between two revisions of one file, offered for review."""
    id: DiffId
    file_path: str
    from_revision: RevisionId
    to_revision: Optional[RevisionId]
    result: DiffResult
    created_at: datetime
    status: DiffStatus = DiffStatus.PENDING
    responded_at: Optional[datetime] = None
    proposed_content: Optional[str] = None

    @property
    def hunks(self) -> Tuple[DiffHunk, ...]:
        return self.result.hunks


@dataclass
class OperationStep:
    """One step of a code operation."""
    message: str
    status: StepStatus
    timestamp: datetime
    file_path: Optional[str] = None
    error: Optional[OperationError] = None


@dataclass
class CodeOperation:
    """A named multi-step action, such as revealing a set of files."""
    id: OperationId
    name: str
    status: OperationStatus = OperationStatus.PENDING
    steps: List[OperationStep] = field(default_factory=list)
    error: Optional[OperationError] = None
    created_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @property
    def current_step(self) -> Optional[OperationStep]:
        return self.steps[-1] if self.steps else None

    @property
    def errors(self) -> List[OperationError]:
        return [step.error for step in self.steps if step.error is not None]


def generate_session_id() -> SessionId:
    """Generate a unique session ID."""
    return f"session_{uuid.uuid4().hex[:12]}"


def generate_operation_id() -> OperationId:
    """Generate a unique operation ID."""
    return f"op_{uuid.uuid4().hex[:8]}"


def generate_diff_id() -> DiffId:
    """Generate a unique diff preview ID."""
    return f"diff_{uuid.uuid4().hex[:8]}"
