"""
Delimiter Framing.

Pure functions that turn the inbound byte stream into complete messages
and outbound command bodies into size-bounded, delimiter-terminated wire
chunks. Nothing here performs I/O or keeps state beyond what the caller
passes in.
"""
import logging
from typing import Deque, List, Tuple, Union

from pubsubx.client.models import BUFFER_SIZE, DELIMITER, ReceivedMessage

logger = logging.getLogger(__name__)

DELIMITER_BYTES = DELIMITER.encode("utf-8")


def encode_command(body: str) -> bytes:
    """Frames a single short command (handshake, DISCONNECT) for the wire."""
    return (body + DELIMITER).encode("utf-8")


def chunk_for_send(
    queue: Deque[bytes], buffer_size: int = BUFFER_SIZE, delimit_fragments: bool = True
) -> Tuple[bytes, bool]:
    """
    Takes the next wire chunk from the head of the outbound queue.

    An entry longer than `buffer_size - len(DELIMITER)` is cut and the rest
    stays at the head of the queue. Every chunk is delimiter-terminated,
    including non-final fragments, because that is what brokers speaking
    this protocol expect; with `delimit_fragments=False` only the last
    fragment of an entry carries the delimiter.

    Returns the chunk and whether the queue is now empty. An empty queue
    yields `(b"", True)` and is left untouched.
    """
    if not queue:
        return b"", True

    max_chunk = buffer_size - len(DELIMITER_BYTES)
    if max_chunk < 1:
        raise ValueError(f"buffer_size must exceed {len(DELIMITER_BYTES)} bytes, got {buffer_size}")
    head = queue[0]

    if len(head) > max_chunk:
        chunk = head[:max_chunk]
        queue[0] = head[max_chunk:]
        if delimit_fragments:
            chunk += DELIMITER_BYTES
        logger.debug(f"Fragment of {len(chunk)} bytes, {len(queue[0])} bytes left at queue head")
        return chunk, False

    queue.popleft()
    return head + DELIMITER_BYTES, not queue


def split_inbound(buffer: str, data: Union[str, bytes]) -> Tuple[List[str], str]:
    """
    Appends newly received data to the reassembly buffer and splits off
    every complete message.

    Returns the complete messages in order and the incomplete trailing
    fragment (empty if the stream ended exactly on a delimiter). Empty
    segments produced by consecutive delimiters are dropped.
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    stream = buffer + data

    if DELIMITER not in stream:
        return [], stream

    segments = stream.split(DELIMITER)
    # The segment after the last delimiter is "" when the stream ends on one
    remainder = segments.pop()
    return [segment for segment in segments if segment], remainder


def parse_message(text: str) -> ReceivedMessage:
    """Splits a complete message on its first whitespace into topic and data."""
    parts = text.split(None, 1)
    if not parts:
        return ReceivedMessage(topic="")
    if len(parts) == 1:
        return ReceivedMessage(topic=parts[0])
    return ReceivedMessage(topic=parts[0], data=parts[1])
