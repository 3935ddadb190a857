"""
Error types shared by the parser, executor and engine.
"""

from typing import Optional


class FlowgateError(Exception):
    """Base class for flowgate errors."""
    pass


class ParseError(FlowgateError):
    """Raised when a workflow document is invalid. No run is attempted."""

    def __init__(self, message: str, location: Optional[str] = None):
        self.message = message
        self.location = location
        super().__init__(f"{location}: {message}" if location else message)


class ExecutorFault(FlowgateError):
    """
    Raised when a command could not be launched at all (missing binary,
    missing working directory, installer failure).

    The engine attaches the final run report as `report` before re-raising.
    """

    def __init__(self, message: str, step: Optional[str] = None):
        self.message = message
        self.step = step
        self.report = None
        super().__init__(message)

    def __str__(self) -> str:
        if self.step:
            return f"step '{self.step}': {self.message}"
        return self.message
