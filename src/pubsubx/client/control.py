"""
Control Channel between the command dispatcher and the session loop.

Carries two kinds of signal: "outbound command ready" and "shut down the
session". Both are plain `asyncio.Queue`s so the session loop can await
them in the same `asyncio.wait` call as the broker socket read.
"""
import asyncio
import logging
from typing import List, Optional

from pubsubx.client.errors import CommandRejected
from pubsubx.client.models import MAX_MESSAGE_SIZE, ErrorCode

logger = logging.getLogger(__name__)


class ControlChannel:
    _outbound: asyncio.Queue
    _shutdown: asyncio.Queue
    _loop: Optional[asyncio.AbstractEventLoop]
    max_message_size: int

    def __init__(self, max_message_size: int = MAX_MESSAGE_SIZE, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._outbound = asyncio.Queue()
        self._shutdown = asyncio.Queue()
        self._loop = loop
        self.max_message_size = max_message_size

    # --- Producer side (command context) ---

    def signal_outbound(self, payload: str):
        """
        Queues a command body for the session loop. Never drops; order is kept.

        Raises:
            CommandRejected: If the body exceeds the inter-context message cap.
        """
        if len(payload.encode("utf-8")) > self.max_message_size:
            raise CommandRejected(ErrorCode.MSG_TOO_LONG)
        logger.debug(f"Outbound signal: {payload[:64]!r}")
        self._outbound.put_nowait(payload)

    def signal_shutdown(self):
        logger.debug("Shutdown signal")
        self._shutdown.put_nowait(True)

    def signal_outbound_threadsafe(self, payload: str):
        """For callers outside the event loop thread."""
        self._require_loop().call_soon_threadsafe(self.signal_outbound, payload)

    def signal_shutdown_threadsafe(self):
        """For callers outside the event loop thread (e.g. OS signal handlers)."""
        self._require_loop().call_soon_threadsafe(self.signal_shutdown)

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise RuntimeError("ControlChannel was created without an event loop reference")
        return self._loop

    # --- Consumer side (session loop) ---

    async def next_outbound(self) -> str:
        payload = await self._outbound.get()
        self._outbound.task_done()
        return payload

    async def next_shutdown(self) -> bool:
        token = await self._shutdown.get()
        self._shutdown.task_done()
        return token

    def drain_outbound(self) -> List[str]:
        """Returns every outbound payload that is already waiting, oldest first."""
        payloads = []
        while True:
            try:
                payloads.append(self._outbound.get_nowait())
            except asyncio.QueueEmpty:
                return payloads
            self._outbound.task_done()

    def drain_shutdown(self) -> int:
        """Discards duplicate shutdown requests. Returns how many were dropped."""
        dropped = 0
        while True:
            try:
                self._shutdown.get_nowait()
            except asyncio.QueueEmpty:
                return dropped
            self._shutdown.task_done()
            dropped += 1

    @property
    def pending_outbound(self) -> int:
        return self._outbound.qsize()
