"""
Data Models and Protocol Constants.

Defines the session state shared between the command dispatcher and the
session loop, the parsed command and received message records, and the
user-facing error/info codes.
"""
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Optional, Set

# --- Protocol Constants ---

DELIMITER = "\n\nx"             # Terminates every framed unit on the wire
BUFFER_SIZE = 1024              # Single receive / send chunk size
MAX_MESSAGE_SIZE = 10 * BUFFER_SIZE
MAX_NAME_LEN = 64
MIN_PORT = 1024                 # Exclusive lower bound
MAX_PORT = 65535

COMMANDS = ("-H", "HELP", "CONNECT", "DISCONNECT", "PUBLISH", "SUBSCRIBE", "UNSUBSCRIBE")


class ConnectionPhase(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class ErrorCode(str, Enum):
    """User-facing error conditions. The value is the text printed after 'ERROR: '."""
    INIT_FAIL = "Initialization of the client has failed"
    WRONG_PORT = "Server port number is wrong, must be integer in range 1024 < port <= 65535"
    WRONG_NAME = "Client name is empty/too long, must be between 1 and 64 characters"
    NAME_TAKEN = "Client name is already taken, please enter other name"
    CONN_FAIL = "Connection to the server has failed, please check port and try again"
    MSG_TOO_LONG = "Trying to send message that is too long"
    CONN_LOST = "Client lost connection to the server try to reconnect"
    CONN_DOWN = "Server shut the connection, all subscriptions are lost"
    NOT_CONN = "Client is not connected, only CONNECT command is accepted"
    WRONG_TOPIC = "Client received message on a topic it is not subscribed to"
    EMPTY_TOPIC = "Trying to publish/subscribe/unsubscribe to an empty topic"
    WRONG_CMD = "Wrong command is entered, to see help enter -h"
    UNKNOWN_RSP = "Unknown response from server: "
    EXCEPTION = "Exception occurred: "


class InfoCode(str, Enum):
    """User-facing notices. The value is the text printed after 'INFO: '."""
    CONN_ACC = "Connection successfully established"
    ALR_CONN = "Already connected to server, first disconnect"
    ALR_SUB = "Already subscribed to topic: "
    NOT_SUB = "Was not subscribed to topic: "
    CONN_RESTORED = "Connection restored"
    DISCONNECTED = "Disconnected from server"


@dataclass
class Session:
    """
    State owned jointly by the command dispatcher and the session loop.

    Only ever touched from the event loop thread, so no lock is needed:
    the dispatcher reads phase/topics and updates topics, the session loop
    owns the outbound queue and the inbound buffer once connected.
    """
    broker_host: str = "localhost"
    broker_port: Optional[int] = None
    client_name: Optional[str] = None
    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED
    topics: Set[str] = field(default_factory=set)
    outbound: Deque[bytes] = field(default_factory=deque)
    inbound_buffer: str = ""

    @property
    def connected(self) -> bool:
        return self.phase is ConnectionPhase.CONNECTED

    def mark_connected(self, port: int, name: str):
        self.broker_port = port
        self.client_name = name
        self.phase = ConnectionPhase.CONNECTED

    def mark_disconnected(self):
        """Drops everything that only makes sense while connected."""
        self.phase = ConnectionPhase.DISCONNECTED
        self.topics.clear()
        self.outbound.clear()
        self.inbound_buffer = ""


# --- Records passed between components ---

@dataclass(frozen=True)
class ParsedCommand:
    """One interactive command line, split into verb and up to two arguments."""
    verb: str
    arg1: str = ""
    arg2: str = ""


@dataclass(frozen=True)
class ReceivedMessage:
    """A complete message pushed by the broker."""
    topic: str
    data: str = ""
