"""
Exception hierarchy for the PubSubX client.

Command validation problems are raised as `CommandRejected` and reported
by the dispatcher; transport problems are raised by `Transport` and
translated into connection phase changes by the dispatcher and the
session loop.
"""
from pubsubx.client.models import ErrorCode


class PubSubXError(Exception):
    """Base class for all client errors."""


class CommandRejected(PubSubXError):
    """A command was refused before any state change."""

    def __init__(self, code: ErrorCode, detail: str = ""):
        super().__init__(f"{code.name}: {code.value}{detail}")
        self.code = code
        self.detail = detail


class TransportError(PubSubXError):
    """Base class for broker connection failures."""


class ConnectFailure(TransportError):
    """Opening the connection or sending the handshake failed."""


class ReadFailure(TransportError):
    """The OS reported an error while reading from the broker."""


class WriteFailure(TransportError):
    """The OS reported an error while writing to the broker."""


class PeerClosed(TransportError):
    """The broker closed the stream (zero-length read)."""
