"""
Exceptions raised inside spanstream. None of these escape into the instrumented application.
"""


class SpanStreamError(Exception):
    """Base class for spanstream errors."""


class ConnectFailure(SpanStreamError):
    """The trace observer could not be reached. Retried with backoff."""


class AgentNotConnected(SpanStreamError):
    """Timed out waiting for the agent to connect to its collector."""
