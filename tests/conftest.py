"""
Pytest Configuration and Fixtures for the pubsubx project.

Provides test logging and a small in-process broker built on
`asyncio.start_server`, so session tests exercise a real TCP connection
without needing an external PubSubX server.
"""

import asyncio
import logging
import sys
from typing import Callable, List, Optional

import pytest
import pytest_asyncio

from pubsubx.client.models import DELIMITER

DELIM = DELIMITER.encode("utf-8")


@pytest.fixture(scope="session", autouse=True)
def setup_test_logging():
    """
    Configures the Python logging framework globally for all tests.
    Because tests bypass main.py, this ensures our logs are formatted
    and visible exactly how we want them during test runs.
    """
    formatter = logging.Formatter(fmt="%(levelname)-8s %(message)s - %(funcName)s:%(lineno)d ")
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(formatter)
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)


class FakeBroker:
    """
    Accepts one client at a time, answers the handshake with a canned
    response and records every byte the client sends afterwards.
    """
    def __init__(self, handshake_response: Optional[bytes] = b"OK" + DELIM):
        self.handshake_response = handshake_response
        self.handshakes: List[bytes] = []
        self.received = bytearray()
        self.client_closed = asyncio.Event()
        self.session_started = asyncio.Event()
        self._server: Optional[asyncio.AbstractServer] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self.port: int = 0

    async def start(self):
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.handshakes.append(await reader.read(1024))
        if self.handshake_response is None:
            writer.close()
            return
        writer.write(self.handshake_response)
        await writer.drain()
        self._writer = writer
        self.session_started.set()
        try:
            while True:
                data = await reader.read(4096)
                if not data:
                    break
                self.received.extend(data)
        except ConnectionError:
            pass
        finally:
            self.client_closed.set()

    async def push(self, data: bytes):
        """Sends raw bytes to the connected client."""
        self._writer.write(data)
        await self._writer.drain()

    async def drop_client(self):
        """Closes the broker side of the connection."""
        self._writer.close()

    def frames(self) -> List[bytes]:
        """Everything received so far, split on the delimiter."""
        return [frame for frame in bytes(self.received).split(DELIM) if frame]

    async def stop(self):
        if self._writer is not None:
            self._writer.close()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()


async def wait_until(condition: Callable[[], bool], timeout: float = 2.0):
    """Polls `condition` on the event loop until it holds or fails the test."""
    async def _poll():
        while not condition():
            await asyncio.sleep(0.01)
    try:
        await asyncio.wait_for(_poll(), timeout=timeout)
    except asyncio.TimeoutError:
        pytest.fail("Timed out waiting for condition.")


@pytest.fixture
def until():
    """Exposes `wait_until` to test modules."""
    return wait_until


@pytest_asyncio.fixture
async def make_broker():
    """Factory for fake brokers with a custom handshake response; all are stopped afterwards."""
    brokers = []

    async def _make(handshake_response: Optional[bytes] = b"OK" + DELIM) -> FakeBroker:
        fake = FakeBroker(handshake_response)
        await fake.start()
        brokers.append(fake)
        return fake

    yield _make
    for fake in brokers:
        await fake.stop()


@pytest_asyncio.fixture
async def broker(make_broker):
    """A running fake broker that answers the handshake with OK."""
    return await make_broker()
