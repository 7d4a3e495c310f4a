"""Command line interface for Code Reveal."""
