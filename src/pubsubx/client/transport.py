"""
Broker Transport.

A thin wrapper around an asyncio stream pair. It translates OS-level
socket errors into the client's `TransportError` hierarchy so the
dispatcher and the session loop only ever deal with those.
"""
import asyncio
import logging

from pubsubx.client.errors import ConnectFailure, PeerClosed, ReadFailure, WriteFailure
from pubsubx.client.framing import encode_command
from pubsubx.client.models import BUFFER_SIZE

logger = logging.getLogger(__name__)


class Transport:
    host: str
    port: int
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    read_size: int
    _closed: bool

    """
    One TCP connection to the broker.
    """
    def __init__(self, host: str, port: int, reader: asyncio.StreamReader,
                 writer: asyncio.StreamWriter, read_size: int = BUFFER_SIZE):
        self.host = host
        self.port = port
        self.reader = reader
        self.writer = writer
        self.read_size = read_size
        self._closed = False

    @classmethod
    async def connect(cls, host: str, port: int, read_size: int = BUFFER_SIZE) -> "Transport":
        """
        Opens the connection.

        Raises:
            ConnectFailure: If the broker cannot be reached.
        """
        logger.info(f"Connecting to broker at {host}:{port}...")
        try:
            reader, writer = await asyncio.open_connection(host, port)
        except OSError as e:
            logger.warning(f"Connection to {host}:{port} failed: {e}")
            raise ConnectFailure(f"Failed to connect to {host}:{port}: {e}") from e
        return cls(host, port, reader, writer, read_size=read_size)

    @property
    def closed(self) -> bool:
        return self._closed

    async def send_handshake(self, name: str):
        """Sends `CONNECT <name>` and waits until it has left the buffer."""
        frame = encode_command(f"CONNECT {name}")
        try:
            self.writer.write(frame)
            await self.writer.drain()
        except OSError as e:
            raise ConnectFailure(f"Failed to send handshake: {e}") from e
        logger.debug(f"Handshake sent: {frame!r}")

    async def read_once(self) -> bytes:
        """
        Performs a single read of at most `read_size` bytes.

        Raises:
            PeerClosed: The broker closed the stream.
            ReadFailure: The read failed at the OS level.
        """
        try:
            data = await self.reader.read(self.read_size)
        except OSError as e:
            raise ReadFailure(f"Read from broker failed: {e}") from e
        if not data:
            raise PeerClosed("Broker closed the connection")
        logger.debug(f"Received {len(data)} bytes")
        return data

    async def wait_writable(self):
        """Completes once the write buffer is below its high-water mark."""
        try:
            await self.writer.drain()
        except OSError as e:
            raise WriteFailure(f"Broker connection not writable: {e}") from e

    def write_chunk(self, data: bytes):
        if self._closed or self.writer.is_closing():
            raise WriteFailure("Broker connection is closed")
        try:
            self.writer.write(data)
        except OSError as e:
            raise WriteFailure(f"Write to broker failed: {e}") from e
        logger.debug(f"Sent chunk of {len(data)} bytes")

    async def close(self):
        """Closes the connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError as e:
            logger.debug(f"Ignoring error while closing broker connection: {e}")
        logger.info(f"Connection to {self.host}:{self.port} closed.")
