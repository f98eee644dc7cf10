# sdgscript/errors.py
"""
Exception hierarchy for sdgscript.

The analysis core never raises on malformed input; these exceptions are
reserved for configuration and loading failures and for the opt-in
REJECT collision policy of the runtime registry.

    SdgScriptError
    ├── KeywordTableError      - malformed keyword table file
    ├── SourceLoadError        - unreadable / unparsable source file
    └── ContextCollisionError  - duplicate runtime context id (REJECT policy)
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "SdgScriptError",
    "KeywordTableError",
    "SourceLoadError",
    "ContextCollisionError",
]


class SdgScriptError(Exception):
    """Base class for every sdgscript error."""


class KeywordTableError(SdgScriptError):
    """A keyword table file could not be parsed or has the wrong shape."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        if path:
            message = f"{path}: {message}"
        super().__init__(message)


class SourceLoadError(SdgScriptError):
    """A source unit could not be read or parsed."""

    def __init__(self, filename: str, reason: str, line: int = 0):
        self.filename = filename
        self.reason = reason
        self.line = line
        where = f"{filename}:{line}" if line else filename
        super().__init__(f"{where}: {reason}")


class ContextCollisionError(SdgScriptError):
    """``start`` was called with an id that is already active."""

    def __init__(self, context_id: str):
        self.context_id = context_id
        super().__init__(f"Context id already active: {context_id}")
