"""
Command Dispatcher.

Interprets one interactive command line against the current session.
CONNECT performs the handshake inline; every other session command is
handed to the running `SessionLoop` through its `ControlChannel`.

All methods run on the event loop thread, so they can read and update
the session without a lock.
"""
import logging
from typing import Optional

from pubsubx.client.console import Console
from pubsubx.client.errors import CommandRejected, TransportError
from pubsubx.client.framing import DELIMITER_BYTES
from pubsubx.client.models import (BUFFER_SIZE, COMMANDS, MAX_NAME_LEN, MAX_PORT, MIN_PORT,
                                   ErrorCode, InfoCode, ParsedCommand, Session)
from pubsubx.client.session import SessionLoop
from pubsubx.client.transport import Transport

logger = logging.getLogger(__name__)


def parse_command(line: str) -> ParsedCommand:
    """
    Splits a command line into verb and arguments.

    The verb is matched case-insensitively. The first argument is a single
    word, the second argument is the rest of the line so published data can
    contain spaces.

    Raises:
        CommandRejected: If the line is empty or the verb is unknown.
    """
    parts = line.split(None, 2)
    if not parts:
        raise CommandRejected(ErrorCode.WRONG_CMD)
    verb = parts[0].upper()
    if verb not in COMMANDS:
        raise CommandRejected(ErrorCode.WRONG_CMD)
    arg1 = parts[1] if len(parts) > 1 else ""
    arg2 = parts[2].strip() if len(parts) > 2 else ""
    return ParsedCommand(verb=verb, arg1=arg1, arg2=arg2)


def validate_connect_args(port: str, name: str) -> int:
    """
    Checks CONNECT arguments before the broker is contacted.

    Returns:
        int: The port number.
    """
    if not (port.isascii() and port.isdecimal()):
        raise CommandRejected(ErrorCode.WRONG_PORT)
    port_number = int(port)
    if not MIN_PORT < port_number <= MAX_PORT:
        raise CommandRejected(ErrorCode.WRONG_PORT)
    if not name or len(name) > MAX_NAME_LEN:
        raise CommandRejected(ErrorCode.WRONG_NAME)
    return port_number


class CommandDispatcher:
    session: Session
    console: Console
    buffer_size: int
    delimit_fragments: bool
    session_loop: Optional[SessionLoop]

    def __init__(self, session: Session, console: Console, buffer_size: int = BUFFER_SIZE,
                 delimit_fragments: bool = True):
        self.session = session
        self.console = console
        self.buffer_size = buffer_size
        self.delimit_fragments = delimit_fragments
        self.session_loop = None

    async def dispatch(self, line: str):
        """
        Executes one command line. Rejections are reported on the console and
        never change the session.
        """
        if not line.strip():
            return
        try:
            command = parse_command(line)
            await self.execute(command)
        except CommandRejected as e:
            logger.debug(f"Rejected {line.strip()!r}: {e}")
            self.console.error(e.code, e.detail)

    async def execute(self, command: ParsedCommand):
        if command.verb in ("-H", "HELP"):
            self.console.help()
            return

        if command.verb == "CONNECT":
            if self.session.connected:
                self.console.info(InfoCode.ALR_CONN)
                return
            # Only the first word after the port is the name
            name = command.arg2.split()[0] if command.arg2 else ""
            await self.connect(command.arg1, name)
            return

        if not self.session.connected:
            raise CommandRejected(ErrorCode.NOT_CONN)

        if command.verb == "DISCONNECT":
            await self.disconnect()
        elif command.verb == "PUBLISH":
            self.publish(command.arg1, command.arg2)
        elif command.verb == "SUBSCRIBE":
            self.subscribe(command.arg1)
        elif command.verb == "UNSUBSCRIBE":
            self.unsubscribe(command.arg1)

    # --- Handshake ---

    async def connect(self, port: str, name: str):
        port_number = validate_connect_args(port, name)

        try:
            transport = await Transport.connect(self.session.broker_host, port_number, read_size=self.buffer_size)
        except TransportError as e:
            logger.debug(f"Connect failed: {e}")
            raise CommandRejected(ErrorCode.CONN_FAIL) from e

        try:
            await transport.send_handshake(name)
            response = await transport.read_once()
        except TransportError as e:
            logger.warning(f"Handshake with {self.session.broker_host}:{port_number} failed: {e}")
            await transport.close()
            raise CommandRejected(ErrorCode.CONN_FAIL) from e

        if response.startswith(b"OK"):
            self._accept(transport, port_number, name)
        elif response.startswith(b"RESTORED"):
            self._restore(transport, port_number, name, response)
        elif response.startswith(b"ERROR"):
            await transport.close()
            raise CommandRejected(ErrorCode.NAME_TAKEN)
        else:
            await transport.close()
            raise CommandRejected(ErrorCode.UNKNOWN_RSP, response.decode("utf-8", errors="replace"))

    def _new_session_loop(self, transport: Transport) -> SessionLoop:
        self.session.topics.clear()
        self.session.outbound.clear()
        self.session.inbound_buffer = ""
        self.session_loop = SessionLoop(self.session, transport, self.console,
                                        buffer_size=self.buffer_size,
                                        delimit_fragments=self.delimit_fragments)
        return self.session_loop

    def _accept(self, transport: Transport, port: int, name: str):
        session_loop = self._new_session_loop(transport)
        self.session.mark_connected(port, name)
        logger.info(f"Connected to broker as {name!r}")
        self.console.info(InfoCode.CONN_ACC)
        session_loop.start()

    def _restore(self, transport: Transport, port: int, name: str, response: bytes):
        """
        Restores a previous session: the response carries the tag, the
        space separated list of subscribed topics and then any messages the
        broker kept while the client was away.
        """
        session_loop = self._new_session_loop(transport)
        self.session.mark_connected(port, name)
        self.console.info(InfoCode.CONN_RESTORED)

        fields = response.split(DELIMITER_BYTES, 2)
        if len(fields) > 1:
            self.session.topics.update(fields[1].decode("utf-8", errors="replace").split())
        logger.info(f"Session of {name!r} restored with topics {sorted(self.session.topics)}")

        if len(fields) > 2:
            replayed = session_loop.process_inbound(fields[2])
            logger.debug(f"Replayed {replayed} missed message(s)")
        session_loop.start()

    # --- Connected phase commands ---

    async def disconnect(self):
        session_loop = self.session_loop
        session_loop.channel.signal_shutdown()
        self.session.topics.clear()
        await session_loop.wait_closed()
        self.session_loop = None
        self.console.info(InfoCode.DISCONNECTED)

    def publish(self, topic: str, data: str):
        if not topic:
            raise CommandRejected(ErrorCode.EMPTY_TOPIC)
        self._send(f"PUBLISH {topic} {data}")

    def subscribe(self, topic: str):
        if not topic:
            raise CommandRejected(ErrorCode.EMPTY_TOPIC)
        if topic in self.session.topics:
            self.console.info(InfoCode.ALR_SUB, topic)
            return
        self._send(f"SUBSCRIBE {topic}")
        self.session.topics.add(topic)

    def unsubscribe(self, topic: str):
        if not topic:
            raise CommandRejected(ErrorCode.EMPTY_TOPIC)
        if topic not in self.session.topics:
            self.console.info(InfoCode.NOT_SUB, topic)
            return
        self._send(f"UNSUBSCRIBE {topic}")
        self.session.topics.discard(topic)

    def _send(self, body: str):
        self.session_loop.channel.signal_outbound(body)

    async def close(self):
        """Tears down a live session without the DISCONNECT exchange."""
        if self.session_loop is not None:
            await self.session_loop.stop()
            self.session_loop = None
