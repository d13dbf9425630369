"""
Simulated Robot Controller

Speaks both link protocols on localhost so the console can be run and tested
without a robot:
- CRI server: answers state requests and position interface commands,
  replies to every keepalive with a STATUS message carrying the error code
- Position interface server: accepts streaming clients while the interface
  runs and echoes each received target back as feedback

Both servers bind port 0 by default; the chosen ports are available as
cri_port and position_port after start(). Fault options make the controller
ignore configure/use requests or withhold the streaming port so the
console's abort paths can be exercised.
"""

import logging
import socket
import threading
from typing import List, Optional, Tuple

from common.connection_manager import (
    create_server_socket, configure_tcp_keepalive, shutdown_socket, close_socket
)
from common.constants import (
    CRI_START_MARKER, CRI_END_MARKER, MSG_START_MARKER, MSG_END_MARKER,
    MAX_MESSAGE_BUFFER, RECV_CHUNK_SIZE, SOCKET_READ_TIMEOUT_S, THREAD_JOIN_TIMEOUT_S
)
from common.framing import MarkerFramer, MessageBuffer, split_sequence

logger = logging.getLogger(__name__)

DEFAULT_ERROR_CODE = "NoError"


def _bool(value: bool) -> str:
    return "true" if value else "false"


class SimulatedController:
    """In-process controller with a CRI server and a position interface server"""

    def __init__(
        self,
        host: str = "127.0.0.1",
        cri_port: int = 0,
        position_port: int = 0,
        advertise_port: bool = True,
        ignore_configure: bool = False,
        ignore_use: bool = False,
        echo_feedback: bool = True,
        error_code: str = DEFAULT_ERROR_CODE
    ):
        """
        Args:
            host: Bind address
            cri_port: CRI port (0 = pick a free port)
            position_port: Position interface port (0 = pick a free port)
            advertise_port: Include the streaming port in CONFIG replies
            ignore_configure: Never start the position interface
            ignore_use: Never select the position interface as source
            echo_feedback: Answer every target with a feedback position
            error_code: Error code reported in STATUS messages
        """
        self.host = host
        self.cri_port = cri_port
        self.position_port = position_port
        self.advertise_port = advertise_port
        self.ignore_configure = ignore_configure
        self.ignore_use = ignore_use
        self.echo_feedback = echo_feedback

        self._lock = threading.Lock()
        self._error_code = error_code
        self.active = False
        self.interface_running = False
        self.interface_in_use = False

        # (sequence, body) of every CRI command received, in order
        self.commands: List[Tuple[Optional[int], str]] = []
        self.targets_received = 0
        self.last_target: Optional[str] = None

        self._stop_event = threading.Event()
        self._cri_server: Optional[socket.socket] = None
        self._position_server: Optional[socket.socket] = None
        self._cri_clients: List[socket.socket] = []
        self._position_clients: List[socket.socket] = []
        self._threads: List[threading.Thread] = []

        self._framer = MarkerFramer(CRI_START_MARKER, CRI_END_MARKER, sequenced=True)
        self._position_framer = MarkerFramer(MSG_START_MARKER, MSG_END_MARKER)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """Bind both servers and start accepting."""
        self._stop_event.clear()

        self._cri_server = create_server_socket(self.host, self.cri_port, backlog=2, timeout=SOCKET_READ_TIMEOUT_S)
        self.cri_port = self._cri_server.getsockname()[1]
        self._position_server = create_server_socket(
            self.host, self.position_port, backlog=2, timeout=SOCKET_READ_TIMEOUT_S
        )
        self.position_port = self._position_server.getsockname()[1]

        self._spawn("sim-cri-accept", self._accept_loop, self._cri_server, self._handle_cri_client)
        self._spawn("sim-pos-accept", self._accept_loop, self._position_server, self._handle_position_client)

        logger.info(f"Simulated controller listening: CRI {self.host}:{self.cri_port}, "
                    f"position interface {self.host}:{self.position_port}")

    def stop(self):
        """Close all connections and both servers."""
        self._stop_event.set()
        self.drop_cri_clients()
        self.drop_position_clients()

        for thread in list(self._threads):
            if thread is not threading.current_thread():
                thread.join(timeout=THREAD_JOIN_TIMEOUT_S)
        self._threads = []

        close_socket(self._cri_server)
        close_socket(self._position_server)
        self._cri_server = None
        self._position_server = None
        logger.info("Simulated controller stopped")

    def _spawn(self, name: str, target, *args):
        thread = threading.Thread(target=target, args=args, name=name, daemon=True)
        self._threads.append(thread)
        thread.start()

    # ------------------------------------------------------------------
    # Fault injection and inspection
    # ------------------------------------------------------------------

    def drop_cri_clients(self):
        """Disconnect every CRI client (simulates a controller side drop)."""
        with self._lock:
            clients = list(self._cri_clients)
        for sock in clients:
            shutdown_socket(sock)

    def drop_position_clients(self):
        """Disconnect every position interface client."""
        with self._lock:
            clients = list(self._position_clients)
        for sock in clients:
            shutdown_socket(sock)

    def set_error_code(self, error_code: str):
        with self._lock:
            self._error_code = error_code

    @property
    def error_code(self) -> str:
        with self._lock:
            return self._error_code

    @property
    def cri_client_count(self) -> int:
        with self._lock:
            return len(self._cri_clients)

    @property
    def position_client_count(self) -> int:
        with self._lock:
            return len(self._position_clients)

    def command_bodies(self) -> List[str]:
        with self._lock:
            return [body for _, body in self.commands]

    def command_sequences(self) -> List[Optional[int]]:
        with self._lock:
            return [seq for seq, _ in self.commands]

    # ------------------------------------------------------------------
    # Accepting
    # ------------------------------------------------------------------

    def _accept_loop(self, server: socket.socket, handler):
        while not self._stop_event.is_set():
            try:
                client_sock, addr = server.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._stop_event.is_set():
                    logger.error(f"Simulated controller accept failed: {e}")
                return

            client_sock.settimeout(SOCKET_READ_TIMEOUT_S)
            configure_tcp_keepalive(client_sock, idle=5, interval=2, count=3)
            logger.info(f"Simulated controller accepted connection from {addr}")
            self._spawn(f"sim-client-{addr[1]}", handler, client_sock)

    def _serve(self, sock: socket.socket, clients: List[socket.socket],
               start_marker: str, end_marker: str, on_message):
        """Read framed messages from one client until it or the controller stops."""
        with self._lock:
            clients.append(sock)

        buffer = MessageBuffer(start_marker, end_marker, MAX_MESSAGE_BUFFER)
        try:
            while not self._stop_event.is_set():
                try:
                    data = sock.recv(RECV_CHUNK_SIZE)
                except socket.timeout:
                    continue
                if not data:
                    break
                for message in buffer.feed(data.decode("utf-8", errors="replace")):
                    if not on_message(sock, message):
                        return
        except OSError as e:
            if not self._stop_event.is_set():
                logger.warning(f"Simulated controller connection error: {e}")
        finally:
            with self._lock:
                if sock in clients:
                    clients.remove(sock)
            close_socket(sock)

    # ------------------------------------------------------------------
    # CRI
    # ------------------------------------------------------------------

    def _handle_cri_client(self, sock: socket.socket):
        self._serve(sock, self._cri_clients, CRI_START_MARKER, CRI_END_MARKER, self._on_cri_message)
        logger.info("Simulated controller: CRI client disconnected")

    def _on_cri_message(self, sock: socket.socket, message: str) -> bool:
        """Handle one CRI command; returns False to close the connection."""
        seq, body = split_sequence(message)
        with self._lock:
            self.commands.append((seq, body))

        tokens = body.split()
        if not tokens:
            return True

        if tokens[0] == "QUIT":
            logger.info("Simulated controller: CRI client quit")
            return False

        if tokens[0] == "ALIVEJOG":
            self._send_cri(sock, f"STATUS MODE joint RUNSTATE 0 ERROR {self.error_code}")
            return True

        if tokens[0] == "CMD" and len(tokens) >= 2:
            self._on_cri_command(sock, tokens)
        elif tokens[0] == "CONFIG" and len(tokens) >= 3 and tokens[1] == "SetPositionInterface":
            self._on_configure(sock, tokens[2].lower() == "true")
        return True

    def _on_cri_command(self, sock: socket.socket, tokens: List[str]):
        command = tokens[1]
        if command == "GetActive":
            self._send_cri(sock, f"CMD Active {_bool(self.active)}")
        elif command == "SetActive":
            with self._lock:
                self.active = len(tokens) < 3 or tokens[2].lower() == "true"
            self._send_cri(sock, f"CMD Active {_bool(self.active)}")
        elif command == "GetPositionInterface":
            self._send_interface_state(sock)
        elif command == "UsePositionInterface" and len(tokens) >= 3:
            use = tokens[2].lower() == "true"
            with self._lock:
                # Only switches while streaming traffic is present
                if not self.ignore_use and self.active and (not use or self._position_clients):
                    self.interface_in_use = use and self.interface_running
            self._send_interface_state(sock)
        elif command in ("Reset", "Enable", "Disable"):
            if command == "Reset":
                self.set_error_code(DEFAULT_ERROR_CODE)
            logger.info(f"Simulated controller: {command}")

    def _on_configure(self, sock: socket.socket, enabled: bool):
        with self._lock:
            if not self.ignore_configure and self.active:
                self.interface_running = enabled
                if not enabled:
                    self.interface_in_use = False
            running = self.interface_running

        if not running:
            self.drop_position_clients()

        if self.advertise_port:
            self._send_cri(sock, f"CONFIG PositionInterface {_bool(running)} {self.position_port}")
        else:
            self._send_cri(sock, f"CONFIG PositionInterface {_bool(running)}")

    def _send_interface_state(self, sock: socket.socket):
        with self._lock:
            running, in_use = self.interface_running, self.interface_in_use
        self._send_cri(sock, f"CMD PositionInterface {_bool(running)} {_bool(in_use)}")

    def _send_cri(self, sock: socket.socket, payload: str):
        frame = self._framer.create_frame(payload)
        try:
            sock.sendall(frame.encode("ascii"))
        except OSError as e:
            logger.debug(f"Simulated controller: CRI reply failed: {e}")

    # ------------------------------------------------------------------
    # Position interface
    # ------------------------------------------------------------------

    def _handle_position_client(self, sock: socket.socket):
        with self._lock:
            running = self.interface_running
        if not running:
            logger.warning("Simulated controller: position interface not running, closing connection")
            close_socket(sock)
            return

        self._serve(sock, self._position_clients, MSG_START_MARKER, MSG_END_MARKER, self._on_position_message)

        with self._lock:
            if not self._position_clients:
                # Without streaming traffic the controller falls back to its own source
                self.interface_in_use = False
        logger.info("Simulated controller: position client disconnected")

    def _on_position_message(self, sock: socket.socket, message: str) -> bool:
        tokens = message.split()
        if not tokens or tokens[0] != "Pos":
            self._send_position(sock, "ERROR unknown message")
            return True

        with self._lock:
            self.targets_received += 1
            self.last_target = message

        if self.echo_feedback:
            self._send_position(sock, message)
        return True

    def _send_position(self, sock: socket.socket, payload: str):
        try:
            sock.sendall(self._position_framer.create_frame(payload).encode("ascii"))
        except OSError as e:
            logger.debug(f"Simulated controller: position reply failed: {e}")


def main():
    """Run the simulated controller standalone until interrupted."""
    import argparse
    import os
    import signal

    from common.logging_config import setup_logging

    parser = argparse.ArgumentParser(description="Simulated robot controller")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--cri-port", type=int, default=int(os.getenv("SIM_CRI_PORT", "3920")))
    parser.add_argument("--position-port", type=int, default=int(os.getenv("SIM_POSITION_PORT", "3921")))
    parser.add_argument("--error-code", default=DEFAULT_ERROR_CODE)
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO"))
    args = parser.parse_args()

    setup_logging("controller_sim", args.log_level)

    controller = SimulatedController(
        host=args.host, cri_port=args.cri_port, position_port=args.position_port,
        error_code=args.error_code
    )
    stop_event = threading.Event()

    def signal_handler(sig, frame):
        logger.info(f"Shutdown signal {sig} received")
        stop_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    controller.start()
    while not stop_event.wait(1.0):
        pass
    controller.stop()


if __name__ == '__main__':
    main()
