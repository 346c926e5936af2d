"""
Exception types raised by formstate.

The engine resolves almost every failure internally (validator errors become
error-map entries, bad paths read as None). The only exception that crosses the
public surface is MalformedPathError, raised when a path string cannot be
compiled at all.
"""


class FormStateError(Exception):
    """Base class for formstate errors."""


class MalformedPathError(FormStateError, ValueError):
    """Raised when a dotted path is empty or contains an empty segment."""

    def __init__(self, path: str, reason: str = "empty segment"):
        self.path = path
        self.reason = reason
        super().__init__(f"Malformed path {path!r}: {reason}")
