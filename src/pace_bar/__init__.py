"""Menu bar monitor for Claude usage limits and period pacing."""

__version__ = "1.0.0"
