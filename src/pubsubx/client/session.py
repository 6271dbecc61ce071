"""
Session Loop: the network-facing side of the client.

Once the handshake has succeeded, a single asyncio task owns the broker
connection. Each iteration it waits, in one `asyncio.wait` call, for:
- data (or an error) from the broker,
- an outbound command from the dispatcher,
- a shutdown request from the dispatcher,
- write readiness, but only while there is something queued to send.

All Session mutation happens on the event loop thread, so the loop never
needs a lock; it simply yields while it is blocked in the wait.
"""
import asyncio
import codecs
import logging
from typing import Optional, Set

from pubsubx.client.console import Console
from pubsubx.client.control import ControlChannel
from pubsubx.client.errors import PeerClosed, TransportError
from pubsubx.client.framing import chunk_for_send, encode_command, parse_message, split_inbound
from pubsubx.client.models import BUFFER_SIZE, ErrorCode, Session
from pubsubx.client.transport import Transport

logger = logging.getLogger(__name__)


def route_messages(session: Session, console: Console, text: str) -> int:
    """
    Reassembles `text` into the session's inbound buffer and delivers every
    complete message whose topic is subscribed. Messages on other topics are
    reported and dropped. Returns the number of messages delivered.
    """
    messages, session.inbound_buffer = split_inbound(session.inbound_buffer, text)
    delivered = 0
    for raw in messages:
        message = parse_message(raw)
        if message.topic in session.topics:
            console.message(message)
            delivered += 1
        else:
            logger.debug(f"Dropping message on unsubscribed topic {message.topic!r}")
            console.error(ErrorCode.WRONG_TOPIC)
    return delivered


class SessionLoop:
    session: Session
    transport: Transport
    console: Console
    channel: ControlChannel
    buffer_size: int
    delimit_fragments: bool
    _task: Optional[asyncio.Task]
    _write_armed: bool

    """
    Runs the connected phase of the protocol state machine.
    """
    def __init__(self, session: Session, transport: Transport, console: Console,
                 channel: Optional[ControlChannel] = None, buffer_size: int = BUFFER_SIZE,
                 delimit_fragments: bool = True):
        self.session = session
        self.transport = transport
        self.console = console
        self.channel = channel or ControlChannel()
        self.buffer_size = buffer_size
        self.delimit_fragments = delimit_fragments
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._task = None
        self._write_armed = False

    # --- Lifecycle ---

    def start(self):
        """Launches the loop in the background."""
        logger.info(f"Starting session loop for {self.session.client_name!r}")
        self._task = asyncio.create_task(self._main_loop(), name="SessionLoop")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def wait_closed(self):
        """Waits for the loop to terminate."""
        if self._task is not None:
            await self._task

    async def stop(self):
        """Cancels the loop without the DISCONNECT exchange. Used at process exit."""
        if self.running:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                logger.info("Session loop cancelled.")
        await self._terminate()

    # --- Inbound ---

    def process_inbound(self, data: bytes) -> int:
        """Decodes a chunk of broker bytes and routes every complete message."""
        text = self._decoder.decode(data)
        return route_messages(self.session, self.console, text)

    # --- Main loop ---

    async def _main_loop(self):
        read_task = None
        outbound_task = None
        shutdown_task = None
        write_task = None

        try:
            while True:
                # Re-arm the base interests; tasks still pending carry over
                if read_task is None:
                    read_task = asyncio.create_task(self.transport.read_once())
                if outbound_task is None:
                    outbound_task = asyncio.create_task(self.channel.next_outbound())
                if shutdown_task is None:
                    shutdown_task = asyncio.create_task(self.channel.next_shutdown())
                if self._write_armed and write_task is None:
                    write_task = asyncio.create_task(self.transport.wait_writable())

                waiting: Set[asyncio.Task] = {read_task, outbound_task, shutdown_task}
                if write_task is not None:
                    waiting.add(write_task)

                done, _ = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)

                if read_task in done:
                    task, read_task = read_task, None
                    try:
                        data = task.result()
                    except PeerClosed:
                        self._connection_down()
                        return
                    except TransportError as e:
                        self._connection_lost(e)
                        return
                    self.process_inbound(data)

                if outbound_task in done:
                    task, outbound_task = outbound_task, None
                    self._queue_outbound([task.result()] + self.channel.drain_outbound())

                if shutdown_task in done:
                    shutdown_task = None
                    if write_task is not None:
                        write_task.cancel()
                        write_task = None
                    await self._disconnect()
                    return

                if write_task in done:
                    task, write_task = write_task, None
                    try:
                        task.result()
                        self._write_next_chunk()
                    except TransportError as e:
                        self._connection_lost(e)
                        return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Session loop crashed: {e}")
            self.console.error(ErrorCode.EXCEPTION, str(e))
        finally:
            for task in (read_task, outbound_task, shutdown_task, write_task):
                if task is not None and not task.done():
                    task.cancel()
            await self._terminate()

    def _queue_outbound(self, payloads):
        for payload in payloads:
            self.session.outbound.append(payload.encode("utf-8"))
        self._write_armed = True

    def _write_next_chunk(self):
        chunk, final = chunk_for_send(self.session.outbound, self.buffer_size, self.delimit_fragments)
        if chunk:
            self.transport.write_chunk(chunk)
        if final and not self.session.outbound:
            self._write_armed = False

    # --- Transitions out of the connected phase ---

    def _connection_lost(self, error: Exception):
        logger.warning(f"Connection to broker lost: {error}")
        self.console.error(ErrorCode.CONN_LOST)

    def _connection_down(self):
        logger.warning("Broker closed the connection.")
        self.console.error(ErrorCode.CONN_DOWN)

    async def _disconnect(self):
        dropped = self.channel.drain_shutdown()
        if dropped:
            logger.debug(f"Discarded {dropped} duplicate shutdown signal(s)")
        try:
            self.transport.write_chunk(encode_command("DISCONNECT"))
            await self.transport.wait_writable()
        except TransportError as e:
            logger.debug(f"DISCONNECT not delivered: {e}")
        logger.info("Disconnected from broker.")

    async def _terminate(self):
        await self.transport.close()
        self.session.mark_disconnected()
        self._write_armed = False
