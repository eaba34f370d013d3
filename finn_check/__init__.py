"""AI-assisted pattern checks for pull requests."""

__version__ = "0.1.0"
