"""BugSage core - bug lifecycle engine and JSON API."""

__version__ = "1.0.0"
