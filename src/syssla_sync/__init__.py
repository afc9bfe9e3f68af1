"""Local-first task, time tracking and wiki store with GitHub repository sync."""

__version__ = "0.3.0"
