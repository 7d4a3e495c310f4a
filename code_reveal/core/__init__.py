"""Core streaming, revision and diff components."""

from .config import CodeRevealConfig, ConfigManager, RevealConfig, SessionConfig
from .diff_engine import DiffEngine, diff_stats
from .diff_viewer import DiffViewer
from .errors import (
    CodeRevealError, ConfigurationError, DiffApplyError, FileLockedError,
    InvalidTransitionError, OperationNotFoundError, RevisionNotFoundError, SessionActiveError
)
from .events import EventChannel, SessionEvent, SessionEventType
from .models import FileAction, FileChange, SessionStatus
from .reveal import RevealScheduler, estimate_reveal_duration
from .revisions import RevisionStore
from .session import SessionOrchestrator
from .timers import ManualTimerBackend, ThreadingTimerBackend
from .workspace import Workspace

__all__ = [
    'CodeRevealConfig',
    'ConfigManager',
    'RevealConfig',
    'SessionConfig',
    'DiffEngine',
    'diff_stats',
    'DiffViewer',
    'CodeRevealError',
    'ConfigurationError',
    'DiffApplyError',
    'FileLockedError',
    'InvalidTransitionError',
    'OperationNotFoundError',
    'RevisionNotFoundError',
    'SessionActiveError',
    'EventChannel',
    'SessionEvent',
    'SessionEventType',
    'FileAction',
    'FileChange',
    'SessionStatus',
    'RevealScheduler',
    'estimate_reveal_duration',
    'RevisionStore',
    'SessionOrchestrator',
    'ManualTimerBackend',
    'ThreadingTimerBackend',
    'Workspace',
]
