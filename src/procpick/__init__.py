"""procpick - pick a process by pattern and act on it."""

__version__ = "0.1.0"
