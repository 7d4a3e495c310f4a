"""Line-based diff engine producing context/added/removed hunks."""

import difflib
import logging
from typing import Dict, List, Optional, Sequence

from .config import DiffConfig
from .errors import DiffApplyError
from .interfaces import IDiffEngine
from .models import DiffHunk, DiffResult, HunkType


logger = logging.getLogger(__name__)


def split_lines(content: Optional[str]) -> List[str]:
    """Split content into lines, keeping line endings."""
    return content.splitlines(keepends=True) if content else []


class DiffEngine(IDiffEngine):
    """Computes deterministic line diffs between two contents of one file."""

    def __init__(self, config: Optional[DiffConfig] = None):
        """Initialize diff engine.

        Args:
            config: Size ceilings and display context; defaults apply if None
        """
        self.config = config or DiffConfig()

    def exceeds_limits(self, content: Optional[str]) -> bool:
        if not content:
            return False
        if len(content) > self.config.max_diff_chars:
            return True
        return content.count("\n") + 1 > self.config.max_diff_lines

    def diff(self, old_content: Optional[str], new_content: Optional[str]) -> DiffResult:
        """Diff two contents.

        ``None`` is treated as an empty file. Inputs above the configured
        ceilings produce a summary result with no hunks.
        """
        if self.exceeds_limits(old_content) or self.exceeds_limits(new_content):
            return self._summary(old_content or "", new_content or "")

        old_lines = split_lines(old_content)
        new_lines = split_lines(new_content)
        hunks = self._compute_hunks(old_lines, new_lines)

        return DiffResult(
            hunks=tuple(hunks),
            lines_before=len(old_lines),
            lines_after=len(new_lines),
            added=sum(len(h.lines) for h in hunks if h.type == HunkType.ADDED),
            removed=sum(len(h.lines) for h in hunks if h.type == HunkType.REMOVED),
        )

    def _summary(self, old_content: str, new_content: str) -> DiffResult:
        lines_before = len(split_lines(old_content))
        lines_after = len(split_lines(new_content))
        summary = f"{lines_before} lines before vs {lines_after} lines after"
        logger.debug(f"Diff input over size ceiling, summarising: {summary}")
        return DiffResult(
            hunks=(),
            lines_before=lines_before,
            lines_after=lines_after,
            is_summary=True,
            summary=summary,
        )

    def _compute_hunks(self, old_lines: List[str], new_lines: List[str]) -> List[DiffHunk]:
        # No junk heuristic: hunks depend only on the two inputs
        matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)
        runs: List[List] = []

        def push(hunk_type: HunkType, lines: Sequence[str]) -> None:
            if not lines:
                return
            if runs and runs[-1][0] == hunk_type:
                runs[-1][1].extend(lines)
            else:
                runs.append([hunk_type, list(lines)])

        for tag, i1, i2, j1, j2 in matcher.get_opcodes():
            if tag == 'equal':
                push(HunkType.CONTEXT, old_lines[i1:i2])
            elif tag == 'delete':
                push(HunkType.REMOVED, old_lines[i1:i2])
            elif tag == 'insert':
                push(HunkType.ADDED, new_lines[j1:j2])
            elif tag == 'replace':
                push(HunkType.REMOVED, old_lines[i1:i2])
                push(HunkType.ADDED, new_lines[j1:j2])

        return [DiffHunk(type=hunk_type, lines=tuple(lines)) for hunk_type, lines in runs]

    def apply_hunks(self, old_content: Optional[str], hunks: Sequence[DiffHunk]) -> str:
        """Rebuild the target content from old_content and hunks.

        Raises:
            DiffApplyError: If context or removed lines do not match old_content
        """
        old_lines = split_lines(old_content)
        cursor = 0
        result: List[str] = []

        for hunk in hunks:
            if hunk.type == HunkType.ADDED:
                result.extend(hunk.lines)
                continue

            expected = list(hunk.lines)
            actual = old_lines[cursor:cursor + len(expected)]
            if actual != expected:
                raise DiffApplyError(
                    f"{hunk.type.value} hunk does not match source at line {cursor + 1}"
                )
            if hunk.type == HunkType.CONTEXT:
                result.extend(expected)
            cursor += len(expected)

        if cursor != len(old_lines):
            raise DiffApplyError(
                f"Hunks cover {cursor} of {len(old_lines)} source lines"
            )
        return "".join(result)


def diff_stats(result: DiffResult) -> Dict[str, float]:
    """Summarise how much of the original content a diff touches."""
    total_lines = result.lines_before
    changed_lines = result.added + result.removed
    change_percentage = (changed_lines / total_lines) * 100 if total_lines > 0 else 0.0
    return {
        'total_lines': total_lines,
        'changed_lines': changed_lines,
        'change_percentage': round(change_percentage, 1),
    }
