"""Exception hierarchy for Code Reveal."""

from typing import Optional


class CodeRevealError(Exception):
    """Base exception for all Code Reveal errors."""
    pass


class ConfigurationError(CodeRevealError):
    """Raised when scheduler or session parameters are invalid."""
    pass


class SessionActiveError(CodeRevealError):
    """Raised when a session is started while another one is streaming."""
    pass


class InvalidTransitionError(CodeRevealError):
    """Raised on a session status change the state machine does not allow."""
    pass


class FileLockedError(CodeRevealError):
    """Raised when an edit targets a file that is currently being streamed into."""

    def __init__(self, file_path: str, owner: Optional[str] = None):
        self.file_path = file_path
        self.owner = owner
        message = f"File is locked for streaming: {file_path}"
        if owner:
            message += f" (owner: {owner})"
        super().__init__(message)


class RevisionNotFoundError(CodeRevealError):
    """Raised when a revision id is unknown or has been evicted."""
    pass


class DiffApplyError(CodeRevealError):
    """Raised when diff hunks do not match the content they are applied to."""
    pass


class DiffPreviewNotFoundError(CodeRevealError):
    """Raised when a diff preview id is unknown."""
    pass


class NoActiveFileError(CodeRevealError):
    """Raised when an edit needs an open file and none is active."""
    pass


class OperationNotFoundError(CodeRevealError):
    """Raised when an operation id is unknown or has been trimmed."""
    pass
