"""Exception types raised by the trace symbolicator."""
from typing import Optional


class SymbolicationError(Exception):
    """Base class for all symbolication failures."""


class SymbolFileParseError(SymbolicationError):
    """A Breakpad symbol file could not be read or decoded."""

    def __init__(self, path, reason: str):
        super().__init__(f"Failed to parse {path}: {reason}")
        self.path = path
        self.reason = reason


class SymbolFetchError(SymbolicationError):
    """A symbol server failed with something other than a 404.

    This is fatal for the whole run: the error is propagated to every frame
    waiting on the module that triggered it.
    """

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"Error fetching {url}: {message}")
        self.url = url
        self.status_code = status_code


class TraceFormatError(SymbolicationError):
    """The input trace is not a JSON trace document."""
