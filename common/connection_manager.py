"""
Connection Management Utilities

Socket helpers shared by the link clients and the simulated controller:
- Client socket creation with low-latency options and a bounded connect
- Server socket creation with SO_REUSEADDR
- TCP keepalive configuration for zombie connection detection
- Shutdown/close helpers that unblock a reader thread
"""

import socket
import logging
from typing import Optional

from .constants import SOCKET_CONNECT_TIMEOUT_S, SOCKET_READ_TIMEOUT_S

logger = logging.getLogger(__name__)


def open_client_socket(
    host: str,
    port: int,
    connect_timeout: float = SOCKET_CONNECT_TIMEOUT_S,
    read_timeout: Optional[float] = SOCKET_READ_TIMEOUT_S
) -> socket.socket:
    """
    Connect a TCP client socket.

    The read timeout lets read loops wake up regularly to check their stop
    flag; socket.timeout from recv() is therefore a normal event.

    Args:
        host: Controller address
        port: Controller port
        connect_timeout: Seconds to wait for the TCP handshake
        read_timeout: recv() timeout in seconds (None = blocking)

    Returns:
        Connected socket

    Raises:
        OSError: If the connection cannot be established
    """
    sock = socket.create_connection((host, port), timeout=connect_timeout)
    try:
        # Position messages are small and periodic; do not let Nagle batch them
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        configure_tcp_keepalive(sock, idle=5, interval=2, count=3)
        sock.settimeout(read_timeout)
    except OSError:
        sock.close()
        raise

    logger.debug(f"Client socket connected: {host}:{port}")
    return sock


def create_server_socket(host: str, port: int, backlog: int = 1, timeout: Optional[float] = None) -> socket.socket:
    """
    Create TCP server socket with SO_REUSEADDR enabled.

    Args:
        host: Host address to bind (e.g., '127.0.0.1')
        port: Port number to bind, 0 picks a free port
        backlog: Maximum queued connections
        timeout: Optional accept timeout in seconds (default None = blocking)

    Returns:
        Configured server socket ready to accept connections

    Raises:
        OSError: If socket creation or binding fails
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

    try:
        sock.bind((host, port))
        sock.listen(backlog)
    except OSError:
        sock.close()
        raise

    if timeout is not None:
        sock.settimeout(timeout)

    logger.debug(f"Server socket created: {host}:{sock.getsockname()[1]} (SO_REUSEADDR enabled)")
    return sock


def configure_tcp_keepalive(sock: socket.socket, idle: int = 60, interval: int = 10, count: int = 3):
    """
    Configure TCP keepalive for zombie connection detection.

    Total detection time: idle + (interval * count)

    Args:
        sock: Socket to configure
        idle: Idle time in seconds before first keepalive probe
        interval: Interval in seconds between keepalive probes
        count: Number of failed probes before declaring connection dead
    """
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)

    # Linux-specific parameters
    try:
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, idle)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, interval)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPCNT, count)
    except (OSError, AttributeError):
        logger.debug("TCP keepalive detailed configuration not supported on this platform")


def shutdown_socket(sock: Optional[socket.socket]):
    """
    Shut down both directions of a socket.

    A thread blocked in recv() on the socket returns immediately; the owner
    of the socket still has to close it.
    """
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        # Already disconnected
        pass


def close_socket(sock: Optional[socket.socket]):
    """Close a socket, ignoring errors from an already broken connection."""
    if sock is None:
        return
    try:
        sock.close()
    except OSError as e:
        logger.debug(f"Socket close failed: {e}")
