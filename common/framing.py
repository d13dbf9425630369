"""
Text framing for the controller link protocols.

Both protocols wrap every message in start/end marker words over a plain TCP
byte stream, without a length prefix:

  CRI (control):      CRISTART <seq> <command> CRIEND
  Position interface: MSGSTART <payload> MSGEND

Outbound: MarkerFramer builds frames and, for CRI, allocates the sequence
number under a lock so concurrent senders never reuse or skip a number.

Inbound: MessageBuffer accumulates decoded text, extracts every complete
frame in order, and discards consumed text. The retained text is capped so a
peer that never sends a terminator cannot grow the buffer without bound.
"""

import logging
import threading
from typing import List, Optional, Tuple

from .constants import CRI_SEQ_INITIAL, CRI_SEQ_LIMIT, MAX_MESSAGE_BUFFER

logger = logging.getLogger(__name__)


class FramingError(Exception):
    """A message cannot be framed"""
    pass


class MarkerFramer:
    """
    Builds outbound frames.

    Thread-safety: sequence allocation is protected by a lock. Callers that
    must keep frame order equal to write order (CRI) should hold their own
    write lock around create_frame() + the socket write.
    """

    def __init__(self, start_marker: str, end_marker: str, sequenced: bool = False):
        self.start_marker = start_marker
        self.end_marker = end_marker
        self.sequenced = sequenced

        self._seq = CRI_SEQ_INITIAL
        self._seq_lock = threading.Lock()

    def next_sequence(self) -> int:
        """Advance and return the sequence number (2, 3, ... 9999, 1, 2, ...)"""
        with self._seq_lock:
            self._seq += 1
            if self._seq >= CRI_SEQ_LIMIT:
                self._seq = 1
            return self._seq

    def create_frame(self, payload: str) -> str:
        """
        Wrap a payload in markers.

        Raises:
            FramingError: If the payload contains one of the frame markers
        """
        if self.start_marker in payload or self.end_marker in payload:
            raise FramingError(f"Payload contains a frame marker: {payload!r}")

        if self.sequenced:
            return f"{self.start_marker} {self.next_sequence()} {payload} {self.end_marker}"
        return f"{self.start_marker} {payload} {self.end_marker}"

    def get_sequence(self) -> int:
        """Get last allocated sequence number (thread-safe)"""
        with self._seq_lock:
            return self._seq

    def reset_sequence(self):
        with self._seq_lock:
            self._seq = CRI_SEQ_INITIAL


class MessageBuffer:
    """
    Receive-side frame scanner.

    Not thread-safe: each channel owns one buffer and feeds it only from its
    read thread.
    """

    def __init__(self, start_marker: str, end_marker: str,
                 max_length: int = MAX_MESSAGE_BUFFER):
        self.start_marker = start_marker
        self.end_marker = end_marker
        self.max_length = max_length
        self._buffer = ""

    def feed(self, text: str) -> List[str]:
        """
        Append received text and extract complete frames.

        Returns:
            Payloads of all complete frames, in stream order, with the start
            marker plus its separating space and the space before the end
            marker stripped.
        """
        self._buffer += text
        buffer = self._buffer

        payloads = []
        consumed = 0
        payload_offset = len(self.start_marker) + 1

        start = buffer.find(self.start_marker)
        while start != -1:
            end = buffer.find(self.end_marker, start + payload_offset)
            if end == -1:
                break
            payloads.append(buffer[start + payload_offset:end - 1])
            consumed = end + len(self.end_marker)
            start = buffer.find(self.start_marker, consumed)

        remove = consumed
        if len(buffer) - remove > self.max_length:
            remove = len(buffer) - self.max_length
            logger.warning(f"Receive buffer over {self.max_length} characters, discarding {remove - consumed}")
        self._buffer = buffer[remove:]

        return payloads

    def clear(self):
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text retained while waiting for the rest of a frame"""
        return self._buffer


def split_sequence(payload: str) -> Tuple[Optional[int], str]:
    """
    Split a CRI payload into its sequence number and message body.

    Returns:
        (sequence, body); sequence is None if the first token is not a number
    """
    head, _, body = payload.partition(" ")
    try:
        return int(head), body
    except ValueError:
        return None, payload
