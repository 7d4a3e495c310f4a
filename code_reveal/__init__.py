"""
Code Reveal - Simulated live authorship of program text.

Streams pre-authored file contents into an editable buffer as if they were
being typed, and keeps a revisable per-file history with undo/redo and diff
preview.
"""

__version__ = "0.1.0"
__author__ = "Code Reveal Team"
