"""
Custom exceptions for the worker models layer.
"""


class WorkerError(Exception):
    """Base exception for worker-side failures."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class UpstreamCallFailedError(WorkerError):
    """Raised when the LLM call fails: missing key, transport error, non-2xx or malformed body."""


class CommandExecutionError(WorkerError):
    """Raised inside a command handler; the executor turns it into an error result."""
