"""
Position Interface Console - headless operator entry point

Connects to a robot controller, runs the connect sequence and streams target
positions from the selected position source until interrupted.

Usage:
    python -m console.link_console --address 192.168.3.11
    python -m console.link_console --source jog --jog 0.1,0,0,0,0,0,0,0,0
    python -m console.link_console --source csv --csv-file path.csv --repeat

Environment variables (see console/config.py) provide the defaults; command
line flags override them.
"""

import argparse
import json
import logging
import signal
import sys
import threading
from typing import List, Optional

from common.logging_config import setup_logging

from console import config
from console.cri_client import CRIClient
from console.position_client import PositionClient
from console.core.link_orchestrator import HandshakeTimeouts, LinkOrchestrator
from console.core.link_state import LinkState
from console.motion import CSVMotionGenerator, JogMotionGenerator, PositionSource
from console.status_websocket import LinkStatusWebSocketServer, run_status_server

logger = logging.getLogger(__name__)

SOURCE_CHOICES = ("jog", "csv", "none")
OPERATOR_COMMANDS = ("reset", "enable", "disable", "connect", "disconnect", "status", "quit")


def parse_jog_values(text: str) -> List[float]:
    """Parse a comma separated list of up to 9 jog fractions."""
    parts = [p.strip() for p in text.split(",") if p.strip()]
    if len(parts) > 9:
        raise argparse.ArgumentTypeError("at most 9 jog values")
    try:
        return [float(p) for p in parts]
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid jog values: {text!r}")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Robot position interface console")
    parser.add_argument("--address", default=config.ROBOT_ADDRESS, help="Robot controller address")
    parser.add_argument("--cri-port", type=int, default=config.CRI_PORT, help="CRI control port")
    parser.add_argument("--interval", type=float, default=config.SEND_INTERVAL_MS,
                        help="Position send interval in ms")
    parser.add_argument("--source", choices=SOURCE_CHOICES, default="jog",
                        help="Position source (none = hold current position)")
    parser.add_argument("--csv-file", default="", help="Path file for --source csv")
    parser.add_argument("--repeat", action="store_true", help="Loop the CSV path")
    parser.add_argument("--jog", type=parse_jog_values, default=None,
                        help="Joint jog fractions, comma separated (j1..j6,e1..e3)")
    parser.add_argument("--jog-velocity", type=float, default=config.JOG_VELOCITY,
                        help="Joint velocity at jog 1.0 (units/s)")
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="Logging level")
    parser.add_argument("--status-ws", action="store_true", default=config.STATUS_WS_ENABLED,
                        help="Serve link status over WebSocket")
    parser.add_argument("--status-ws-port", type=int, default=config.STATUS_WS_PORT,
                        help="Status WebSocket port")
    parser.add_argument("--reset-errors", action="store_true",
                        help="Reset controller errors once the link is active")
    parser.add_argument("--enable-motors", action="store_true",
                        help="Enable motors once the link is active")
    parser.add_argument("--disable-motors-on-exit", action="store_true",
                        help="Disable motors before disconnecting on shutdown")
    parser.add_argument("--interactive", action="store_true",
                        help="Read operator commands from stdin (" + ", ".join(OPERATOR_COMMANDS) + ")")
    return parser


class LinkConsole:
    """Wires the link clients, the orchestrator and a position source together"""

    def __init__(self, args: argparse.Namespace):
        self.args = args
        self.running = False
        self._shutdown = threading.Event()

        self.cri_client = CRIClient(default_position_interface_port=config.POSITION_INTERFACE_PORT)
        self.position_client = PositionClient()
        self.orchestrator = LinkOrchestrator(
            self.cri_client, self.position_client,
            HandshakeTimeouts(
                connect=config.CONNECT_TIMEOUT,
                interface_start=config.INTERFACE_START_TIMEOUT,
                interface_activate=config.INTERFACE_ACTIVATE_TIMEOUT,
                stream_settle=config.STREAM_SETTLE,
                poll=config.HANDSHAKE_POLL
            )
        )

        self.jog_generator = JogMotionGenerator(args.jog_velocity, config.CARTESIAN_JOG_VELOCITY)
        self.csv_generator = CSVMotionGenerator(args.csv_file, repeat=args.repeat)
        self.source: Optional[PositionSource] = self._select_source(args.source)

        self.status_server: Optional[LinkStatusWebSocketServer] = None
        self._status_thread: Optional[threading.Thread] = None

        self.orchestrator.link_state.state_changed.subscribe(self._on_link_state_changed)

    def _select_source(self, name: str) -> Optional[PositionSource]:
        if name == "csv":
            if not self.args.csv_file:
                logger.warning("No CSV file given, holding position")
                return None
            return self.csv_generator
        if name == "jog":
            return self.jog_generator
        return None

    def _on_link_state_changed(self, old_state: LinkState, new_state: LinkState):
        if new_state == LinkState.STREAMING_UP:
            # Hold position until the link is active
            self.position_client.position_source = None
        elif new_state == LinkState.ACTIVE:
            self._activate_source()
            self._apply_startup_commands()
        elif old_state == LinkState.ACTIVE:
            self.csv_generator.stop()
            self.position_client.position_source = None

        if self.status_server:
            self.status_server.notify_state_change(old_state, new_state)

    def _activate_source(self):
        current = self.position_client.current_position
        if self.source is self.jog_generator:
            # Start jogging from the robot's actual position
            self.jog_generator.set_position(current)
            if self.args.jog:
                self.jog_generator.set_jog(self.args.jog)
        elif self.source is self.csv_generator:
            self.csv_generator.start()
        self.position_client.position_source = self.source
        logger.info(f"Position source active: {self.args.source} (start {current.describe()})")

    def _apply_startup_commands(self):
        if self.args.reset_errors:
            self.cri_client.send_reset_errors()
        if self.args.enable_motors:
            self.cri_client.send_enable_motors()

    def handle_command(self, line: str) -> bool:
        """
        Run one operator command.

        Returns:
            False if the command is unknown or could not be sent
        """
        command = line.strip().lower()
        if not command:
            return True

        if command == "reset":
            return self.cri_client.send_reset_errors()
        if command == "enable":
            return self.cri_client.send_enable_motors()
        if command == "disable":
            return self.cri_client.send_disable_motors()
        if command == "connect":
            return self.orchestrator.connect(self.args.address, self.args.cri_port, self.args.interval)
        if command == "disconnect":
            self.orchestrator.disconnect()
            return True
        if command == "status":
            logger.info(f"Status: {json.dumps(self.orchestrator.get_status())}")
            return True
        if command == "quit":
            self.request_shutdown()
            return True

        logger.warning(f"Unknown command '{command}' (expected one of: {', '.join(OPERATOR_COMMANDS)})")
        return False

    def _read_commands(self, stream):
        for line in stream:
            if not self.running:
                break
            if not self.handle_command(line):
                logger.warning(f"Command '{line.strip()}' not executed")

    def start(self):
        """Connect and run until a shutdown signal or the link fails."""
        self.running = True

        if self.args.status_ws:
            self.status_server = LinkStatusWebSocketServer(
                self.orchestrator.get_status, port=self.args.status_ws_port,
                interval=config.STATUS_WS_INTERVAL
            )
            self._status_thread = threading.Thread(
                target=run_status_server, args=(self.status_server,), name="status-ws", daemon=True
            )
            self._status_thread.start()

        self.orchestrator.start()
        self.orchestrator.connect(self.args.address, self.args.cri_port, self.args.interval)

        if self.args.interactive:
            threading.Thread(
                target=self._read_commands, args=(sys.stdin,), name="operator-input", daemon=True
            ).start()

        status_interval = config.STATUS_LOG_INTERVAL or None
        while self.running:
            if self._shutdown.wait(status_interval):
                break
            logger.info(f"Status: {json.dumps(self.orchestrator.get_status())}")

        self.stop()

    def request_shutdown(self):
        self.running = False
        self._shutdown.set()

    def stop(self):
        logger.info("Stopping console...")
        self.running = False
        if self.args.disable_motors_on_exit and self.orchestrator.link_state.is_active():
            self.cri_client.send_disable_motors()
        self.orchestrator.stop()
        if self.status_server:
            self.status_server.stop_sync()
            if self._status_thread:
                self._status_thread.join(timeout=2.0)
        logger.info("Console stopped")


console: Optional[LinkConsole] = None


def signal_handler(sig, frame):
    """Handle shutdown signals"""
    logger.info(f"Shutdown signal {sig} received")
    if console:
        console.request_shutdown()


def main(argv: Optional[List[str]] = None):
    """Main entry point"""
    global console

    args = build_arg_parser().parse_args(argv)
    setup_logging("console", args.log_level, config.LOG_FILE)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info("=" * 60)
    logger.info("POSITION INTERFACE CONSOLE STARTING")
    logger.info("=" * 60)

    console = LinkConsole(args)
    try:
        console.start()
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        console.stop()
        sys.exit(1)


if __name__ == '__main__':
    main()
