"""Error taxonomy shared by the gateway and the browser engine."""

from typing import Any, Dict, List, Optional


class BrowserError(Exception):
    """Base class for all dbbrowser errors."""


class BackendError(BrowserError):
    """Any fault reported by the backend: unknown table, constraint violation, bad input."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ConnectionLostError(BackendError):
    """The backend link dropped after it had been established."""


class BrowserConnectionError(BrowserError):
    """The initial handshake failed or timed out."""

    def __init__(self, reason: str, last_error: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.last_error = last_error


class PartialResolutionError(BrowserError):
    """One or more foreign-key option lists could not be fetched."""

    def __init__(self, options: Dict[str, List[Any]], failures: Dict[str, str]):
        columns = ", ".join(sorted(failures))
        super().__init__(f"Failed to resolve options for: {columns}")
        self.options = options
        self.failures = failures


class SelectionRequiredError(BrowserError):
    """An operation that needs a selected row was invoked without one."""
