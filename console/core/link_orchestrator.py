"""
Link Orchestrator for the console

Brings the control channel (CRI) and the streaming channel (position
interface) up in the order the controller requires, and tears both down
together.

Connect sequence (one shot, no automatic retry):
1. Start CRI and wait until it is connected
2. Start the position interface on the controller and wait until it runs
3. Start streaming on the advertised port, then let the controller see live
   traffic for a settle delay
4. Select the position interface as position source and wait until active

Each wait is bounded by a timeout; on timeout both channels are stopped and
the link ends in FAILED.

SAFETY:
- Losing either channel stops the other one; streaming without control (or
  control without streaming) is never left running
- disconnect() cancels queued and running connect sequences; a cancelled
  sequence stops whatever channel it already started
- Channel event handlers only queue work on the orchestrator's worker thread,
  they never block the reporting channel's read thread
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Set

from common.constants import (
    CONNECT_TIMEOUT_S, INTERFACE_START_TIMEOUT_S, INTERFACE_ACTIVATE_TIMEOUT_S,
    STREAM_SETTLE_S, HANDSHAKE_POLL_S, THREAD_JOIN_TIMEOUT_S
)

from console.cri_client import CRIClient
from console.position_client import PositionClient
from .link_state import LinkState, LinkStateTracker

logger = logging.getLogger(__name__)


@dataclass
class HandshakeTimeouts:
    """Timing of the connect sequence, in seconds"""
    connect: float = CONNECT_TIMEOUT_S
    interface_start: float = INTERFACE_START_TIMEOUT_S
    interface_activate: float = INTERFACE_ACTIVATE_TIMEOUT_S
    stream_settle: float = STREAM_SETTLE_S
    poll: float = HANDSHAKE_POLL_S


class ConnectAborted(Exception):
    """A phase of the connect sequence failed"""

    def __init__(self, phase: str, message: str):
        super().__init__(f"{phase}: {message}")
        self.phase = phase


class ConnectCancelled(Exception):
    """The operator disconnected while the connect sequence was running"""
    pass


class LinkOrchestrator:
    """Sequences startup and shutdown of both link channels"""

    def __init__(self, cri_client: CRIClient, position_client: PositionClient,
                 timeouts: Optional[HandshakeTimeouts] = None):
        self.cri_client = cri_client
        self.position_client = position_client
        self.timeouts = timeouts or HandshakeTimeouts()

        self.link_state = LinkStateTracker()

        self._tasks: "queue.Queue[Optional[Callable[[], Any]]]" = queue.Queue()
        self._worker: Optional[threading.Thread] = None

        self._sequence_lock = threading.Lock()
        self._sequence_active = False
        self._cancel = threading.Event()
        self._pending: Set[threading.Event] = set()

        self.connect_attempts = 0
        self.connect_failures = 0
        self.last_failure: Optional[str] = None

        self.cri_client.connection_changed.subscribe(self._on_cri_connection_changed)
        self.position_client.connection_changed.subscribe(self._on_position_connection_changed)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def start(self):
        """Start the worker thread that runs connect sequences and teardowns"""
        if self._worker and self._worker.is_alive():
            return
        self._worker = threading.Thread(target=self._worker_loop, name="link-orchestrator", daemon=True)
        self._worker.start()
        logger.info("LinkOrchestrator started")

    def stop(self):
        """Disconnect both channels and stop the worker"""
        self.disconnect()
        worker = self._worker
        if worker:
            self._tasks.put(None)
            if worker is not threading.current_thread():
                worker.join(timeout=THREAD_JOIN_TIMEOUT_S)
        self._worker = None
        logger.info("LinkOrchestrator stopped")

    def _worker_loop(self):
        while True:
            task = self._tasks.get()
            if task is None:
                break
            try:
                task()
            except Exception as e:
                logger.error(f"LinkOrchestrator task failed: {e}")

    def _dispatch(self, task: Callable[[], Any]):
        """Run a task on the worker thread (or a helper thread if not started)"""
        if self._worker and self._worker.is_alive():
            self._tasks.put(task)
        else:
            threading.Thread(target=task, name="link-task", daemon=True).start()

    # ------------------------------------------------------------------
    # Operator requests
    # ------------------------------------------------------------------

    @property
    def state(self) -> LinkState:
        return self.link_state.state

    def is_connecting(self) -> bool:
        """True while a connect request is queued or its sequence is running"""
        with self._sequence_lock:
            return self._sequence_active or self._has_pending_request()

    def _has_pending_request(self) -> bool:
        # Caller holds _sequence_lock
        return any(not cancel.is_set() for cancel in self._pending)

    def connect(self, address: str, cri_port: int, send_interval_ms: float) -> bool:
        """
        Queue the connect sequence.

        Returns:
            False if a connect request is already queued or running
        """
        cancel = threading.Event()
        with self._sequence_lock:
            if self._sequence_active or self._has_pending_request():
                logger.warning("Connect requested while a connect sequence is running, ignoring")
                return False
            self._pending.add(cancel)
        self._dispatch(lambda: self.run_connect_sequence(address, cri_port, send_interval_ms, cancel))
        return True

    def disconnect(self):
        """Cancel queued and running connect sequences and stop both channels"""
        with self._sequence_lock:
            for cancel in self._pending:
                cancel.set()
            self._cancel.set()
        self.position_client.stop()
        self.cri_client.stop()
        if self.state != LinkState.FAILED:
            self.link_state.set_state(LinkState.DISCONNECTED, "operator disconnect")

    def run_connect_sequence(self, address: str, cri_port: int, send_interval_ms: float,
                             cancel: Optional[threading.Event] = None) -> bool:
        """
        Run the connect sequence on the calling thread.

        Returns:
            True if the link reached ACTIVE
        """
        with self._sequence_lock:
            if cancel is not None:
                self._pending.discard(cancel)
            if self._sequence_active:
                logger.warning("Connect sequence already running, ignoring")
                return False
            if cancel is None:
                if self._has_pending_request():
                    logger.warning("Connect request already queued, ignoring")
                    return False
                cancel = threading.Event()
            if cancel.is_set():
                logger.info("Connect request cancelled before it started")
                return False
            self._sequence_active = True
            self._cancel = cancel

        self.connect_attempts += 1
        try:
            self._connect(address, cri_port, send_interval_ms, cancel)
            return True
        except ConnectAborted as e:
            if cancel.is_set():
                logger.info("Connect sequence cancelled")
                self._stop_channels()
                return False
            self.connect_failures += 1
            self.last_failure = str(e)
            logger.error(f"Connect sequence aborted in phase {e}")
            self._stop_channels()
            self.link_state.set_state(LinkState.FAILED, str(e))
            return False
        except ConnectCancelled:
            logger.info("Connect sequence cancelled")
            self._stop_channels()
            return False
        finally:
            with self._sequence_lock:
                self._sequence_active = False
            if cancel.is_set() and self.state != LinkState.FAILED:
                self.link_state.set_state(LinkState.DISCONNECTED, "connect cancelled")

    def _stop_channels(self):
        self.position_client.stop()
        self.cri_client.stop()

    def _connect(self, address: str, cri_port: int, send_interval_ms: float,
                 cancel: threading.Event):
        cri = self.cri_client
        position = self.position_client
        timeouts = self.timeouts

        # Phase 1: control channel
        self.link_state.set_state(LinkState.CONNECTING, f"{address}:{cri_port}")
        self._check_cancel(cancel)
        cri.start(address, cri_port)
        self._wait_until(
            "cri_connect", lambda: cri.is_running, timeouts.connect, cancel,
            require_cri=False, require_cri_reader=True
        )
        self.link_state.set_state(LinkState.CONTROL_UP)

        # Phase 2: position interface running on the controller
        self.link_state.set_state(LinkState.CONFIGURING_INTERFACE)
        if not cri.is_position_interface_running:
            cri.send_configure_position_interface(True)
        self._wait_until(
            "interface_start", lambda: cri.is_position_interface_running,
            timeouts.interface_start, cancel,
            on_poll=cri.request_get_position_interface
        )

        # Phase 3: streaming channel
        stream_port = cri.position_interface_port
        logger.info(f"Starting position interface stream on port {stream_port} "
                    f"(interval {send_interval_ms} ms)")
        self._check_cancel(cancel)
        position.start(send_interval_ms, address, stream_port)
        self._wait_until(
            "stream_connect", lambda: position.is_running, timeouts.connect, cancel
        )
        self.link_state.set_state(LinkState.STREAMING_UP)

        # The controller falls back to its default source if it is switched
        # before it has seen live streaming traffic
        self._sleep(timeouts.stream_settle, cancel)
        if not position.is_running:
            raise ConnectAborted("stream_settle", "position interface disconnected")

        # Phase 4: select the position interface as position source
        if not cri.is_position_interface_active:
            cri.send_use_position_interface(True)
        self._wait_until(
            "interface_activate", lambda: cri.is_position_interface_active,
            timeouts.interface_activate, cancel,
            on_poll=cri.request_get_position_interface, require_stream=True
        )

        self.link_state.set_state(LinkState.ACTIVE)

    @staticmethod
    def _check_cancel(cancel: threading.Event):
        if cancel.is_set():
            raise ConnectCancelled()

    @staticmethod
    def _sleep(seconds: float, cancel: threading.Event):
        if cancel.wait(seconds):
            raise ConnectCancelled()

    def _wait_until(self, phase: str, condition: Callable[[], bool], timeout: float,
                    cancel: threading.Event,
                    on_poll: Optional[Callable[[], Any]] = None,
                    require_cri: bool = True, require_stream: bool = False,
                    require_cri_reader: bool = False):
        """
        Poll a condition until true.

        Raises:
            ConnectAborted: On timeout or when a required channel drops
            ConnectCancelled: When disconnect() was called
        """
        deadline = time.monotonic() + timeout
        while True:
            self._check_cancel(cancel)
            if condition():
                return
            if require_cri and not self.cri_client.is_running:
                raise ConnectAborted(phase, "control channel disconnected")
            if require_cri_reader and not self.cri_client.is_reader_alive:
                raise ConnectAborted(phase, "control channel connect failed")
            if require_stream and not self.position_client.is_running:
                raise ConnectAborted(phase, "position interface disconnected")
            if time.monotonic() >= deadline:
                raise ConnectAborted(phase, f"timed out after {timeout:.1f}s")
            if on_poll:
                on_poll()
            self._sleep(self.timeouts.poll, cancel)

    # ------------------------------------------------------------------
    # Channel events (delivered on the channels' read threads)
    # ------------------------------------------------------------------

    def _on_cri_connection_changed(self, connected: bool):
        if connected:
            return
        if self.position_client.is_running:
            logger.warning("CRI disconnected, stopping position interface")
            self._dispatch(self.position_client.stop)
        self._mark_disconnected("control channel disconnected")

    def _on_position_connection_changed(self, connected: bool):
        if connected:
            return
        if self.cri_client.is_running:
            logger.warning("Position interface disconnected, stopping CRI")
            self._dispatch(self.cri_client.stop)
        self._mark_disconnected("position interface disconnected")

    def _mark_disconnected(self, reason: str):
        # A running connect sequence reports its own outcome
        if self.is_connecting():
            return
        if self.state in (LinkState.DISCONNECTED, LinkState.FAILED):
            return
        self.link_state.set_state(LinkState.DISCONNECTED, reason)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of the whole link for logging and status clients"""
        cri_state = self.cri_client.state
        position = self.position_client
        streaming = position.is_running

        if not self.cri_client.is_running and not streaming:
            summary = "Not connected"
        elif not self.cri_client.is_running:
            summary = "CRI not connected"
        elif not streaming:
            summary = f"{cri_state.error_code}, position not connected"
        else:
            summary = cri_state.error_code

        return {
            'state': self.state.value,
            'reason': self.link_state.reason,
            'time_in_state': round(self.link_state.time_in_state(), 3),
            'active': self.link_state.is_active(),
            'summary': summary,
            'cri': {
                'running': self.cri_client.is_running,
                'connection_active': cri_state.connection_active,
                'position_interface_running': cri_state.position_interface_running,
                'position_interface_active': cri_state.position_interface_active,
                'error_code': cri_state.error_code,
                'position_interface_port': cri_state.position_interface_port,
                'stats': self.cri_client.get_stats(),
            },
            'position': {
                'running': streaming,
                'current': position.current_position.as_dict() if streaming else None,
                'target': position.last_target_position.as_dict() if streaming else None,
                'current_update_interval_ms': position.current_position_update_interval_ms,
                'target_update_interval_ms': position.target_position_update_interval_ms,
                'stats': position.get_stats(),
            },
            'connect_attempts': self.connect_attempts,
            'connect_failures': self.connect_failures,
            'last_failure': self.last_failure,
        }
