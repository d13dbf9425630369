"""
Link State for the console

Combined state of the control and streaming channels as seen from outside:

  DISCONNECTED -> CONNECTING -> CONTROL_UP -> CONFIGURING_INTERFACE
               -> STREAMING_UP -> ACTIVE

FAILED is entered when the connect sequence aborts; DISCONNECTED when a
channel drops or the operator disconnects. Streamed positions only move the
robot in ACTIVE.
"""

import logging
import threading
import time
from enum import Enum

from common.events import EventHook

logger = logging.getLogger(__name__)


class LinkState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONTROL_UP = "control_up"
    CONFIGURING_INTERFACE = "configuring_interface"
    STREAMING_UP = "streaming_up"
    ACTIVE = "active"
    FAILED = "failed"


class LinkStateTracker:
    """
    Holds the current link state and notifies observers of transitions.

    state_changed handlers receive (old_state, new_state) on the thread that
    made the transition.
    """

    def __init__(self):
        self._state = LinkState.DISCONNECTED
        self._since = time.time()
        self._reason = ""
        self._lock = threading.Lock()
        self.state_changed = EventHook("link.state_changed")

    @property
    def state(self) -> LinkState:
        with self._lock:
            return self._state

    @property
    def reason(self) -> str:
        """Why the last transition happened (empty if not given)"""
        with self._lock:
            return self._reason

    def time_in_state(self) -> float:
        with self._lock:
            return time.time() - self._since

    def set_state(self, state: LinkState, reason: str = "") -> bool:
        """
        Move to a new state.

        Returns:
            True if the state changed
        """
        with self._lock:
            old = self._state
            if old == state:
                return False
            self._state = state
            self._since = time.time()
            self._reason = reason

        if reason:
            logger.info(f"Link state changed: {old.value} -> {state.value} ({reason})")
        else:
            logger.info(f"Link state changed: {old.value} -> {state.value}")
        self.state_changed.emit(old, state)
        return True

    def is_active(self) -> bool:
        return self.state == LinkState.ACTIVE
