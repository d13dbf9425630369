"""
Configuration for the Position Interface Console

All values come from environment variables with documented defaults.
Invalid values never abort startup: they are logged and the default is used.
Command line flags of console/link_console.py override these values.
"""
import logging
import os
from typing import Optional

from common.constants import (
    CRI_DEFAULT_PORT, DEFAULT_POSITION_INTERFACE_PORT, DEFAULT_SEND_INTERVAL_MS,
    CONNECT_TIMEOUT_S, INTERFACE_START_TIMEOUT_S, INTERFACE_ACTIVATE_TIMEOUT_S,
    STREAM_SETTLE_S, HANDSHAKE_POLL_S
)

logger = logging.getLogger(__name__)


def env_int(name: str, default: int, minimum: Optional[int] = None, maximum: Optional[int] = None) -> int:
    """Read an integer variable; fall back to default if missing or invalid"""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        logger.warning(f"Could not parse {name}={raw!r}, using default {default}")
        return default
    if (minimum is not None and value < minimum) or (maximum is not None and value > maximum):
        logger.warning(f"{name}={value} out of range, using default {default}")
        return default
    return value


def env_float(name: str, default: float, minimum: Optional[float] = None) -> float:
    """Read a float variable; fall back to default if missing or invalid"""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw.strip().replace(",", "."))
    except ValueError:
        logger.warning(f"Could not parse {name}={raw!r}, using default {default}")
        return default
    if minimum is not None and value < minimum:
        logger.warning(f"{name}={value} below {minimum}, using default {default}")
        return default
    return value


def env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def env_port(name: str, default: int) -> int:
    return env_int(name, default, minimum=0, maximum=65535)


# ============================================================================
# ROBOT CONTROLLER
# ============================================================================
ROBOT_ADDRESS = os.getenv('ROBOT_ADDRESS', '127.0.0.1')
CRI_PORT = env_port('CRI_PORT', CRI_DEFAULT_PORT)
# Used until the controller advertises the streaming port
POSITION_INTERFACE_PORT = env_port('POSITION_INTERFACE_PORT', DEFAULT_POSITION_INTERFACE_PORT)
SEND_INTERVAL_MS = env_int('SEND_INTERVAL_MS', DEFAULT_SEND_INTERVAL_MS, minimum=1)

# Connect sequence timing (seconds)
CONNECT_TIMEOUT = env_float('CONNECT_TIMEOUT_S', CONNECT_TIMEOUT_S, minimum=0.0)
INTERFACE_START_TIMEOUT = env_float('INTERFACE_START_TIMEOUT_S', INTERFACE_START_TIMEOUT_S, minimum=0.0)
INTERFACE_ACTIVATE_TIMEOUT = env_float('INTERFACE_ACTIVATE_TIMEOUT_S', INTERFACE_ACTIVATE_TIMEOUT_S, minimum=0.0)
STREAM_SETTLE = env_float('STREAM_SETTLE_S', STREAM_SETTLE_S, minimum=0.0)
HANDSHAKE_POLL = env_float('HANDSHAKE_POLL_S', HANDSHAKE_POLL_S, minimum=0.01)

# Jog velocities (units per second at jog 1.0)
JOG_VELOCITY = env_float('JOG_VELOCITY', 10.0, minimum=0.0)
CARTESIAN_JOG_VELOCITY = env_float('CARTESIAN_JOG_VELOCITY', 10.0, minimum=0.0)

# Status WebSocket for external displays
STATUS_WS_ENABLED = env_bool('STATUS_WS_ENABLED', False)
STATUS_WS_PORT = env_port('STATUS_WS_PORT', 5005)
STATUS_WS_INTERVAL = env_float('STATUS_WS_INTERVAL', 0.5, minimum=0.05)

# Periodic status line in the log (seconds, 0 = off)
STATUS_LOG_INTERVAL = env_float('STATUS_LOG_INTERVAL', 10.0, minimum=0.0)

# Logging Configuration
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FILE = os.getenv('LOG_FILE') or None
