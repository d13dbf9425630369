"""
CRI Client - Control channel to the robot controller

Low-rate TCP text protocol for connection, state and error management:
- Keepalive jog every 0.5s so the controller keeps the link open
- State requests every 0.5s so controller-driven changes are observed
- Commands for active mode, error reset, motor enable/disable and the
  position interface

SAFETY:
- Connection loss is reported through connection_changed(False); the link
  orchestrator reacts by stopping the streaming channel
- Sequence numbers and socket writes share one write lock, so keepalive and
  caller threads cannot interleave frames
"""

import logging
import socket
import threading
from dataclasses import dataclass, replace
from typing import Optional

from common.connection_manager import open_client_socket, shutdown_socket, close_socket
from common.constants import (
    CRI_START_MARKER, CRI_END_MARKER, CRI_DEFAULT_PORT,
    DEFAULT_POSITION_INTERFACE_PORT, MAX_MESSAGE_BUFFER, RECV_CHUNK_SIZE,
    KEEPALIVE_INTERVAL_S, STATE_REQUEST_INTERVAL_S, THREAD_JOIN_TIMEOUT_S,
    CMD_QUIT, CMD_GET_ACTIVE, CMD_SET_ACTIVE, CMD_RESET, CMD_ENABLE, CMD_DISABLE,
    CMD_GET_POSITION_INTERFACE, CMD_CONFIGURE_POSITION_INTERFACE,
    CMD_USE_POSITION_INTERFACE, CMD_KEEPALIVE, ERROR_CODE_NOT_CONNECTED
)
from common.events import EventHook
from common.framing import MarkerFramer, MessageBuffer, FramingError
from common.periodic_timer import PeriodicTimer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CRIState:
    """Controller state as last reported over CRI"""
    connection_active: bool = False
    position_interface_running: bool = False
    position_interface_active: bool = False
    error_code: str = ERROR_CODE_NOT_CONNECTED
    position_interface_port: int = DEFAULT_POSITION_INTERFACE_PORT


def parse_bool(token: str) -> Optional[bool]:
    """Parse 'true'/'false' (any case), None for anything else"""
    value = token.strip().lower()
    if value == "true":
        return True
    if value == "false":
        return False
    return None


def format_bool(value: bool) -> str:
    return "true" if value else "false"


def parse_cri_message(message: str, state: CRIState) -> CRIState:
    """
    Apply one received CRI payload to the state.

    The payload is '<seq> <KIND> ...'; the first token is ignored and the
    second selects STATUS, CMD or CONFIG handling. Unknown kinds, short
    messages and unparseable values leave the state unchanged.

    Returns:
        The updated state (the same object if nothing changed)
    """
    tokens = message.split()
    if len(tokens) < 2:
        return state

    kind = tokens[1]

    if kind == "STATUS":
        # Error code is the token following 'ERROR'
        if "ERROR" in tokens:
            error_idx = tokens.index("ERROR")
            if error_idx + 1 < len(tokens):
                return replace(state, error_code=tokens[error_idx + 1])
        return state

    if kind == "CMD":
        if len(tokens) >= 4 and tokens[2] == "Active":
            active = parse_bool(tokens[3])
            if active is not None:
                return replace(state, connection_active=active)
        elif len(tokens) >= 5 and tokens[2] == "PositionInterface":
            running = parse_bool(tokens[3])
            in_use = parse_bool(tokens[4])
            if running is not None:
                state = replace(state, position_interface_running=running)
            if in_use is not None:
                state = replace(state, position_interface_active=in_use)
        return state

    if kind == "CONFIG":
        if len(tokens) >= 4 and tokens[2] == "PositionInterface":
            running = parse_bool(tokens[3])
            if running is not None:
                state = replace(state, position_interface_running=running)
            if len(tokens) >= 5:
                port = _parse_port(tokens[4])
                if port is not None:
                    state = replace(state, position_interface_port=port)
        return state

    return state


def _parse_port(token: str) -> Optional[int]:
    try:
        port = int(token)
    except ValueError:
        return None
    if 0 <= port <= 65535:
        return port
    return None


class CRIClient:
    """Control channel client"""

    def __init__(self, default_position_interface_port: int = DEFAULT_POSITION_INTERFACE_PORT,
                 keepalive_interval: float = KEEPALIVE_INTERVAL_S,
                 state_request_interval: float = STATE_REQUEST_INTERVAL_S):
        self.address = "127.0.0.1"
        self.port = CRI_DEFAULT_PORT
        self.default_position_interface_port = default_position_interface_port

        self.connection_changed = EventHook("cri.connection_changed")

        self._framer = MarkerFramer(CRI_START_MARKER, CRI_END_MARKER, sequenced=True)
        self._state = self._initial_state()

        self._socket: Optional[socket.socket] = None
        self._stop_event = threading.Event()
        self._stop_event.set()
        self._read_thread: Optional[threading.Thread] = None

        # Serializes start/stop; never held by the read thread
        self._lifecycle_lock = threading.Lock()
        # Protects sequence number + socket write
        self._write_lock = threading.Lock()

        self._keepalive_timer = PeriodicTimer(keepalive_interval, self._send_keepalive, name="cri-keepalive")
        self._state_timer = PeriodicTimer(state_request_interval, self._send_state_request, name="cri-state")

        # Statistics
        self.messages_sent = 0
        self.messages_received = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _initial_state(self) -> CRIState:
        return CRIState(position_interface_port=self.default_position_interface_port)

    def _reset_values(self):
        self._state = self._initial_state()

    @property
    def state(self) -> CRIState:
        """Snapshot of the controller state"""
        return self._state

    @property
    def is_running(self) -> bool:
        return not self._stop_event.is_set() and self._socket is not None

    @property
    def is_reader_alive(self) -> bool:
        """True until the read thread has given up (connect failure or drop)"""
        thread = self._read_thread
        return thread is not None and thread.is_alive()

    @property
    def is_connection_active(self) -> bool:
        return self._state.connection_active

    @property
    def is_position_interface_running(self) -> bool:
        return self._state.position_interface_running

    @property
    def is_position_interface_active(self) -> bool:
        return self._state.position_interface_active

    @property
    def error_code(self) -> str:
        return self._state.error_code

    @property
    def position_interface_port(self) -> int:
        return self._state.position_interface_port

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, address: str, port: int):
        """
        Connect to the controller.

        Returns immediately; the connection is made on the read thread.
        Failures are logged and reported via connection_changed(False).
        """
        with self._lifecycle_lock:
            self._stop_locked()

            logger.info(f"CRI Client: Connecting to server at {address}:{port}")
            self.address = address
            self.port = port
            self._reset_values()
            self._framer.reset_sequence()

            self._stop_event = threading.Event()
            self._read_thread = threading.Thread(
                target=self._read_loop, args=(self._stop_event,), name="cri-reader", daemon=True
            )
            self._read_thread.start()

    def stop(self):
        """Disconnect. Safe to call when not running and from any thread."""
        with self._lifecycle_lock:
            self._stop_locked()

    def _stop_locked(self):
        self.send(CMD_QUIT)

        self._stop_event.set()
        self._keepalive_timer.stop()
        self._state_timer.stop()
        shutdown_socket(self._socket)

        thread = self._read_thread
        if thread and thread is not threading.current_thread():
            thread.join(timeout=THREAD_JOIN_TIMEOUT_S)
            if thread.is_alive():
                logger.warning("CRI Client: Reader did not stop in time")
        self._read_thread = None
        self._reset_values()

    def _read_loop(self, stop_event: threading.Event):
        """Connect, then read and parse messages until stopped"""
        sock = None
        try:
            sock = open_client_socket(self.address, self.port)
            with self._write_lock:
                self._socket = sock
            if stop_event.is_set():
                return

            self._keepalive_timer.start()
            self._state_timer.start()

            logger.info("CRI Client: Connected")
            self.connection_changed.emit(True)

            self.request_get_active()
            self.request_get_position_interface()

            buffer = MessageBuffer(CRI_START_MARKER, CRI_END_MARKER, MAX_MESSAGE_BUFFER)
            while not stop_event.is_set():
                try:
                    data = sock.recv(RECV_CHUNK_SIZE)
                except socket.timeout:
                    continue
                if not data:
                    logger.warning("CRI Client: Connection closed by controller")
                    break
                for message in buffer.feed(data.decode("utf-8", errors="replace")):
                    self._parse(message)

        except OSError as e:
            if not stop_event.is_set():
                logger.error(f"CRI Client: Reader failed: {e}")
        finally:
            stop_event.set()
            self._keepalive_timer.stop()
            self._state_timer.stop()
            with self._write_lock:
                if self._socket is sock:
                    self._socket = None
            close_socket(sock)
            self._reset_values()

            self.connection_changed.emit(False)
            logger.info("CRI Client: Stopped")

    def _parse(self, message: str):
        self.messages_received += 1
        new_state = parse_cri_message(message, self._state)
        if new_state is not self._state:
            if new_state.error_code != self._state.error_code:
                logger.info(f"CRI Client: Error code {self._state.error_code} -> {new_state.error_code}")
            self._state = new_state
        logger.debug(f"CRI Client: Received '{message}'")

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send(self, command: str) -> bool:
        """
        Frame and send one command.

        Returns:
            True if written to the socket; False if not connected or failed
        """
        with self._write_lock:
            sock = self._socket
            if self._stop_event.is_set() or sock is None:
                return False

            try:
                command.encode("ascii")
                frame = self._framer.create_frame(command)
            except (FramingError, UnicodeEncodeError) as e:
                logger.error(f"CRI Client: Not sending invalid command: {e}")
                return False

            try:
                sock.sendall(frame.encode("ascii"))
                self.messages_sent += 1
                return True
            except OSError as e:
                logger.error(f"CRI Client: Could not send message: {e}")
                self._stop_event.set()
                return False

    def _send_keepalive(self):
        self.send(CMD_KEEPALIVE)

    def _send_state_request(self):
        self.request_get_active()
        self.request_get_position_interface()

    def _ensure_active(self):
        # The controller ignores mutating commands from a passive connection
        if not self._state.connection_active:
            self.send_set_active()

    def request_get_active(self) -> bool:
        """Request the active/passive state"""
        return self.send(CMD_GET_ACTIVE)

    def send_set_active(self) -> bool:
        """Request making this connection the active one"""
        logger.info("CRI Client: Requesting active connection")
        return self.send(CMD_SET_ACTIVE)

    def send_reset_errors(self) -> bool:
        self._ensure_active()
        logger.info("CRI Client: Requesting error reset")
        return self.send(CMD_RESET)

    def send_enable_motors(self) -> bool:
        self._ensure_active()
        logger.info("CRI Client: Requesting enable motors")
        return self.send(CMD_ENABLE)

    def send_disable_motors(self) -> bool:
        self._ensure_active()
        logger.info("CRI Client: Requesting disable motors")
        return self.send(CMD_DISABLE)

    def request_get_position_interface(self) -> bool:
        """Request the position interface running/in-use state"""
        return self.send(CMD_GET_POSITION_INTERFACE)

    def send_configure_position_interface(self, enabled: bool) -> bool:
        """Request starting or stopping the position interface"""
        self._ensure_active()
        logger.info(f"CRI Client: Requesting position interface enabled={enabled}")
        return self.send(f"{CMD_CONFIGURE_POSITION_INTERFACE} {format_bool(enabled)}")

    def send_use_position_interface(self, use: bool) -> bool:
        """Request (de)selecting the position interface as position source"""
        self._ensure_active()
        logger.info(f"CRI Client: Requesting position interface in use={use}")
        return self.send(f"{CMD_USE_POSITION_INTERFACE} {format_bool(use)}")

    def get_stats(self) -> dict:
        return {
            'messages_sent': self.messages_sent,
            'messages_received': self.messages_received,
            'send_seq': self._framer.get_sequence()
        }
