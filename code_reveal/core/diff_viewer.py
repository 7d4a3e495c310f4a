"""Diff rendering with unified and side-by-side output and syntax highlighting."""

import logging
from typing import Any, List, Optional, Tuple

from pygments import highlight
from pygments.formatters import Terminal256Formatter
from pygments.lexers import get_lexer_for_filename, TextLexer
from pygments.util import ClassNotFound

from .models import DiffFormat, DiffHunk, DiffPreview, HunkType


logger = logging.getLogger(__name__)


class DiffViewerError(Exception):
    """Base exception for diff viewer operations."""
    pass


_PREFIX = {
    HunkType.CONTEXT: ' ',
    HunkType.REMOVED: '-',
    HunkType.ADDED: '+',
}

_COLOR = {
    HunkType.REMOVED: "\033[31m",
    HunkType.ADDED: "\033[32m",
}

_RESET = "\033[0m"


# (type, old line number, new line number, text)
DiffLine = Tuple[HunkType, Optional[int], Optional[int], str]


def flatten_hunks(hunks: List[DiffHunk]) -> List[DiffLine]:
    """Expand hunks into numbered lines."""
    lines: List[DiffLine] = []
    old_no = 0
    new_no = 0
    for hunk in hunks:
        for text in hunk.text_lines:
            if hunk.type == HunkType.CONTEXT:
                old_no += 1
                new_no += 1
                lines.append((hunk.type, old_no, new_no, text))
            elif hunk.type == HunkType.REMOVED:
                old_no += 1
                lines.append((hunk.type, old_no, None, text))
            else:
                new_no += 1
                lines.append((hunk.type, None, new_no, text))
    return lines


class DiffViewer:
    """Renders diff previews for terminals and exports."""

    def __init__(self, context_lines: int = 3, enable_colors: bool = True,
                 syntax_highlighting: bool = True):
        """Initialize diff viewer.

        Args:
            context_lines: Number of unchanged lines shown around changes
            enable_colors: Whether to emit ANSI colors
            syntax_highlighting: Whether to highlight code with Pygments
                (only applies when colors are enabled)
        """
        self.context_lines = context_lines
        self.enable_colors = enable_colors
        self.syntax_highlighting = syntax_highlighting and enable_colors
        if self.syntax_highlighting:
            self.formatter = Terminal256Formatter(style='monokai')

        logger.debug(f"DiffViewer initialized with context_lines={context_lines}, "
                     f"colors={enable_colors}, syntax_highlighting={self.syntax_highlighting}")

    def _get_lexer_for_file(self, file_path: str) -> Any:
        if not self.syntax_highlighting:
            return None

        try:
            return get_lexer_for_filename(file_path)
        except ClassNotFound:
            return TextLexer()

    def _highlight_code(self, code: str, lexer: Any) -> str:
        if not self.syntax_highlighting or not lexer or not code.strip():
            return code

        try:
            return highlight(code, lexer, self.formatter).rstrip('\n')
        except Exception as e:
            logger.debug(f"Syntax highlighting failed: {e}")
            return code

    def _header(self, preview: DiffPreview) -> str:
        target = preview.to_revision if preview.to_revision is not None else "proposed"
        header = f"Diff for {preview.file_path} (revision {preview.from_revision} -> {target})"
        underline = "=" * len(header)
        if self.enable_colors:
            header = f"\033[1;34m{header}{_RESET}"
        return f"{header}\n{underline}"

    def render(self, preview: DiffPreview, format: DiffFormat = DiffFormat.UNIFIED,
               width: int = 80) -> str:
        """Render a preview in the requested format.

        Raises:
            DiffViewerError: If the format is not supported
        """
        header = self._header(preview)
        result = preview.result

        if result.is_summary:
            return f"{header}\n\n{result.summary}"

        if not result.has_changes:
            return f"{header}\n\nNo differences found."

        if format == DiffFormat.UNIFIED:
            body = self.render_unified(preview)
        elif format == DiffFormat.SIDE_BY_SIDE:
            body = self.render_side_by_side(preview, width)
        else:
            raise DiffViewerError(f"Unsupported diff format: {format}")

        return f"{header}\n\n{body}"

    def _format_line(self, hunk_type: HunkType, text: str, lexer: Any) -> str:
        content = self._highlight_code(text, lexer)
        line = f"{_PREFIX[hunk_type]}{content}"
        if self.enable_colors and hunk_type in _COLOR:
            line = f"{_COLOR[hunk_type]}{line}{_RESET}"
        return line

    def render_unified(self, preview: DiffPreview) -> str:
        """Unified diff with @@ headers and trimmed context."""
        lines = flatten_hunks(list(preview.hunks))
        changed = [i for i, line in enumerate(lines) if line[0] != HunkType.CONTEXT]
        if not changed:
            return ""

        lexer = self._get_lexer_for_file(preview.file_path)
        target = preview.to_revision if preview.to_revision is not None else "proposed"
        output = [
            f"--- {preview.file_path} (revision {preview.from_revision})",
            f"+++ {preview.file_path} (revision {target})",
        ]

        for start, end in self._group_ranges(changed, len(lines)):
            block = lines[start:end]
            old_count = sum(1 for line in block if line[0] != HunkType.ADDED)
            new_count = sum(1 for line in block if line[0] != HunkType.REMOVED)
            old_before = sum(1 for line in lines[:start] if line[0] != HunkType.ADDED)
            new_before = sum(1 for line in lines[:start] if line[0] != HunkType.REMOVED)
            old_start = old_before + 1 if old_count else old_before
            new_start = new_before + 1 if new_count else new_before

            hunk_header = f"@@ -{old_start},{old_count} +{new_start},{new_count} @@"
            if self.enable_colors:
                hunk_header = f"\033[36m{hunk_header}{_RESET}"
            output.append(hunk_header)

            for hunk_type, _, _, text in block:
                output.append(self._format_line(hunk_type, text, lexer))

        return '\n'.join(output)

    def _group_ranges(self, changed: List[int], total: int) -> List[Tuple[int, int]]:
        ranges: List[Tuple[int, int]] = []
        for index in changed:
            start = max(0, index - self.context_lines)
            end = min(total, index + self.context_lines + 1)
            if ranges and start <= ranges[-1][1]:
                ranges[-1] = (ranges[-1][0], max(ranges[-1][1], end))
            else:
                ranges.append((start, end))
        return ranges

    def render_side_by_side(self, preview: DiffPreview, width: int = 80) -> str:
        """Two-column rendering; removed lines are paired with the additions after them."""
        col_width = (width - 3) // 2  # 3 chars for separator

        def fit(text: str) -> str:
            if len(text) > col_width:
                return text[:col_width - 3] + "..."
            return text

        def colored(text: str, hunk_type: HunkType, present: bool) -> str:
            padded = f"{text:<{col_width}}"
            if self.enable_colors and present:
                return f"{_COLOR[hunk_type]}{padded}{_RESET}"
            return padded

        rows = [
            "=" * width,
            f"{'revision ' + str(preview.from_revision):<{col_width}} | "
            f"revision {preview.to_revision if preview.to_revision is not None else 'proposed'}",
            "=" * width,
        ]

        hunks = list(preview.hunks)
        index = 0
        while index < len(hunks):
            hunk = hunks[index]
            if hunk.type == HunkType.CONTEXT:
                for text in hunk.text_lines:
                    rows.append(f"{fit(text):<{col_width}} | {fit(text)}")
                index += 1
                continue

            removed: List[str] = []
            added: List[str] = []
            if hunk.type == HunkType.REMOVED:
                removed = hunk.text_lines
                if index + 1 < len(hunks) and hunks[index + 1].type == HunkType.ADDED:
                    added = hunks[index + 1].text_lines
                    index += 1
            else:
                added = hunk.text_lines
            index += 1

            for k in range(max(len(removed), len(added))):
                has_before = k < len(removed)
                has_after = k < len(added)
                before = fit(removed[k]) if has_before else ""
                after = fit(added[k]) if has_after else ""
                left = f"- {before}" if has_before and not self.enable_colors else before
                right = f"+ {after}" if has_after and not self.enable_colors else after
                rows.append(f"{colored(left, HunkType.REMOVED, has_before)} | "
                            f"{colored(right, HunkType.ADDED, has_after).rstrip()}")

        return '\n'.join(rows)
