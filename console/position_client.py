"""
Position Client - Streaming channel to the robot controller

High-rate TCP text protocol of the position interface:
- Every send interval a target position is taken from the active position
  source (or the current position is echoed back to hold) and sent
- Feedback positions are received continuously and published as
  current_position
- Rolling averages of the send and receive intervals are kept for display

SAFETY:
- Any write failure stops the channel; the read loop then exits and reports
  connection_changed(False)
- With no position source the robot is commanded to hold its position
"""

import logging
import socket
import threading
import time
from typing import List, Optional

from common.connection_manager import open_client_socket, shutdown_socket, close_socket
from common.constants import (
    MSG_START_MARKER, MSG_END_MARKER, MAX_MESSAGE_BUFFER, RECV_CHUNK_SIZE,
    DEFAULT_SEND_INTERVAL_MS, ROLLING_WINDOW_SIZE, THREAD_JOIN_TIMEOUT_S
)
from common.events import EventHook
from common.framing import FramingError, MarkerFramer, MessageBuffer
from common.periodic_timer import PeriodicTimer
from common.rolling_average import RollingAverage

from console.motion.position_set import PositionSet
from console.motion.position_source import PositionSource

logger = logging.getLogger(__name__)

_FEEDBACK_GROUP_SIZES = {'J': 6, 'E': 3, 'C': 6, 'P': 3}


def _fmt(value: float) -> str:
    # Fixed '.' decimal separator independent of locale
    return f"{value:.6f}"


def format_position_message(position: PositionSet) -> str:
    """
    Build the target payload (without frame markers).

    'Pos J j0..j5 E e0..e2 P px py heading' in joint mode,
    'Pos C x y z a b c E e0..e2 P px py heading' in cartesian mode.
    """
    if position.is_cartesian:
        pose = "C " + " ".join(_fmt(v) for v in position.cartesian_position + position.cartesian_orientation)
    else:
        pose = "J " + " ".join(_fmt(v) for v in position.robot_joints)

    external = " ".join(_fmt(v) for v in position.external_joints)
    platform = " ".join(_fmt(v) for v in position.platform_position + (position.platform_heading,))
    return f"Pos {pose} E {external} P {platform}"


def _is_numeric_token(token: str) -> bool:
    return token[0].isdigit() or token[0] in "-+."


def parse_position_feedback(tokens: List[str]) -> PositionSet:
    """
    Parse the tokens of a 'Pos ...' feedback message.

    Group labels J, E, C and P switch the target for the numbers that follow,
    so the groups may come in any order. Any other non-numeric token ends the
    current group. Surplus numbers and unparseable numbers are dropped.
    """
    groups = {label: [0.0] * size for label, size in _FEEDBACK_GROUP_SIZES.items()}

    current: Optional[str] = None
    idx = 0
    for token in tokens:
        if token in groups:
            current = token
            idx = 0
        elif not _is_numeric_token(token):
            current = None
            idx = 0
        elif current is not None:
            values = groups[current]
            if idx < len(values):
                try:
                    values[idx] = float(token)
                except ValueError:
                    logger.debug(f"Position Client: Dropping unparseable value '{token}'")
            idx += 1

    cartesian = groups['C']
    platform = groups['P']
    return PositionSet(
        joints=groups['J'] + groups['E'],
        cartesian_position=cartesian[:3],
        cartesian_orientation=cartesian[3:],
        platform_position=platform[:2],
        platform_heading=platform[2]
    )


class PositionClient:
    """Streaming channel client"""

    def __init__(self, window_size: int = ROLLING_WINDOW_SIZE):
        self.address = "127.0.0.1"
        self.port = -1
        self.send_interval_ms = float(DEFAULT_SEND_INTERVAL_MS)

        self.connection_changed = EventHook("position.connection_changed")

        # Replaced wholesale, never mutated
        self._current_position = PositionSet.zero()
        self._last_target_position = PositionSet.zero()
        self._position_source: Optional[PositionSource] = None

        self._current_update_ms = RollingAverage(window_size)
        self._target_update_ms = RollingAverage(window_size)
        self._last_current_update = time.monotonic()
        self._last_target_update = time.monotonic()

        self._framer = MarkerFramer(MSG_START_MARKER, MSG_END_MARKER)
        self._socket: Optional[socket.socket] = None
        self._stop_event = threading.Event()
        self._stop_event.set()
        self._read_thread: Optional[threading.Thread] = None
        self._send_timer: Optional[PeriodicTimer] = None

        self._lifecycle_lock = threading.Lock()
        self._write_lock = threading.Lock()

        # Statistics
        self.positions_sent = 0
        self.positions_received = 0

    # ------------------------------------------------------------------
    # Published state
    # ------------------------------------------------------------------

    @property
    def current_position(self) -> PositionSet:
        """Latest feedback position"""
        return self._current_position

    @property
    def last_target_position(self) -> PositionSet:
        """Latest target position sent"""
        return self._last_target_position

    @property
    def position_source(self) -> Optional[PositionSource]:
        return self._position_source

    @position_source.setter
    def position_source(self, source: Optional[PositionSource]):
        self._position_source = source

    @property
    def current_position_update_interval_ms(self) -> float:
        """Mean interval between received feedback positions"""
        return self._current_update_ms.average

    @property
    def target_position_update_interval_ms(self) -> float:
        """Mean interval between sent target positions"""
        return self._target_update_ms.average

    @property
    def is_running(self) -> bool:
        return not self._stop_event.is_set() and self._socket is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, send_interval_ms: float, address: str, port: int):
        """
        Connect to the position interface and start streaming.

        Returns immediately; an invalid port is logged and ignored.
        """
        with self._lifecycle_lock:
            self._stop_locked()

            if port < 0 or port > 65535:
                logger.error(f"Position Client: Can not connect to invalid port number {port}")
                return

            if send_interval_ms < 1:
                logger.warning(f"Position Client: Send interval {send_interval_ms} ms too small, using 1 ms")
                send_interval_ms = 1

            logger.info(f"Position Client: Connecting to server at {address}:{port}")
            self.address = address
            self.port = port
            self.send_interval_ms = float(send_interval_ms)
            self._current_update_ms.reset()
            self._target_update_ms.reset()

            self._stop_event = threading.Event()
            self._send_timer = PeriodicTimer(
                self.send_interval_ms / 1000.0, self._send_position, name="position-send"
            )
            self._read_thread = threading.Thread(
                target=self._read_loop, args=(self._stop_event, self._send_timer),
                name="position-reader", daemon=True
            )
            self._read_thread.start()

    def stop(self):
        """Stop streaming and disconnect. Safe from any thread."""
        with self._lifecycle_lock:
            self._stop_locked()

    def _stop_locked(self):
        self._stop_event.set()
        if self._send_timer:
            self._send_timer.stop()
        shutdown_socket(self._socket)

        thread = self._read_thread
        if thread and thread is not threading.current_thread():
            thread.join(timeout=THREAD_JOIN_TIMEOUT_S)
            if thread.is_alive():
                logger.warning("Position Client: Reader did not stop in time")
        self._read_thread = None

    def _read_loop(self, stop_event: threading.Event, send_timer: PeriodicTimer):
        """Connect, start the send timer, then read feedback until stopped"""
        sock = None
        try:
            sock = open_client_socket(self.address, self.port)
            with self._write_lock:
                self._socket = sock
            if stop_event.is_set():
                return

            now = time.monotonic()
            self._last_target_update = now
            self._last_current_update = now
            send_timer.start()

            logger.info("Position Client: Connected")
            self.connection_changed.emit(True)

            buffer = MessageBuffer(MSG_START_MARKER, MSG_END_MARKER, MAX_MESSAGE_BUFFER)
            while not stop_event.is_set():
                try:
                    data = sock.recv(RECV_CHUNK_SIZE)
                except socket.timeout:
                    continue
                if not data:
                    logger.warning("Position Client: Connection closed by controller")
                    break
                for message in buffer.feed(data.decode("utf-8", errors="replace")):
                    self._parse(message)

        except OSError as e:
            if not stop_event.is_set():
                logger.error(f"Position Client: Reader failed: {e}")
        finally:
            stop_event.set()
            send_timer.stop()
            with self._write_lock:
                if self._socket is sock:
                    self._socket = None
            close_socket(sock)

            self.connection_changed.emit(False)
            logger.info("Position Client: Stopped")

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    def _parse(self, message: str):
        tokens = message.split()
        if not tokens:
            return

        kind = tokens[0]
        if kind == "Pos":
            self._current_position = parse_position_feedback(tokens)
            self.positions_received += 1

            now = time.monotonic()
            self._current_update_ms.add((now - self._last_current_update) * 1000.0)
            self._last_current_update = now
        elif kind == "OK":
            return
        elif kind == "ERROR":
            logger.warning(f"Position Client: Controller reported '{message}'")
        else:
            logger.warning(f"Position Client: Received unknown message: '{message}'")

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def _send_position(self):
        """Send one target position; called by the send timer"""
        if self._stop_event.is_set() or self._socket is None:
            return

        now = time.monotonic()
        elapsed_ms = (now - self._last_target_update) * 1000.0
        self._last_target_update = now

        current = self._current_position
        source = self._position_source
        target = source.get_position_set(current, elapsed_ms) if source is not None else current

        self._last_target_position = target
        self._target_update_ms.add(elapsed_ms)

        self.send_message(format_position_message(target))

    def send_message(self, payload: str) -> bool:
        """Frame and write one message; a write failure stops the channel"""
        try:
            payload.encode("ascii")
            frame = self._framer.create_frame(payload)
        except (FramingError, UnicodeEncodeError) as e:
            logger.error(f"Position Client: Not sending invalid message: {e}")
            return False
        with self._write_lock:
            sock = self._socket
            if self._stop_event.is_set() or sock is None:
                return False
            try:
                sock.sendall(frame.encode("ascii"))
                self.positions_sent += 1
                return True
            except OSError as e:
                logger.error(f"Position Client: Could not send position: {e}")
                self._stop_event.set()
                return False

    def get_stats(self) -> dict:
        return {
            'positions_sent': self.positions_sent,
            'positions_received': self.positions_received,
            'current_update_interval_ms': self.current_position_update_interval_ms,
            'target_update_interval_ms': self.target_position_update_interval_ms
        }
