#!/usr/bin/env python3
"""
Run the position interface console against the simulated controller.

Starts the simulated robot controller and the console on localhost.
No robot needed.

Usage:
    python scripts/run_sim.py                  # Start controller and console
    python scripts/run_sim.py --controller-only
    python scripts/run_sim.py --csv path.csv   # Replay a path instead of jogging

The system will:
1. Start the simulated controller (CRI server, position interface server)
2. Start the console, which runs the connect sequence and streams positions

Press Ctrl+C to stop.
"""

import os
import sys
import time
import signal
import subprocess
import argparse
from pathlib import Path

# Ensure we're in the right directory
SCRIPT_DIR = Path(__file__).parent.absolute()
PROJECT_ROOT = SCRIPT_DIR.parent
os.chdir(PROJECT_ROOT)

# Configuration
SIM_CONFIG = {
    'LOG_LEVEL': 'INFO',
    'ROBOT_ADDRESS': '127.0.0.1',
    'STREAM_SETTLE_S': '0.5',
    'STATUS_LOG_INTERVAL': '5',
}

# Port configuration
PORTS = {
    'SIM_CRI_PORT': '13920',
    'SIM_POSITION_PORT': '13921',
    'CRI_PORT': '13920',
    'POSITION_INTERFACE_PORT': '13921',
}


class SimRunner:
    """Runs the simulated controller and the console"""

    def __init__(self):
        self.processes = []
        self.running = True

        # Setup signal handlers
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, sig, frame):
        print("\nShutdown signal received...")
        self.running = False
        self.stop_all()

    def _make_env(self, extra=None):
        """Create environment with simulation config"""
        env = os.environ.copy()
        env.update(SIM_CONFIG)
        env.update(PORTS)
        if extra:
            env.update(extra)
        return env

    def start_controller(self):
        """Start the simulated controller"""
        print("Starting simulated controller...")
        proc = subprocess.Popen(
            [sys.executable, '-m', 'controller_sim.controller_server'],
            env=self._make_env(),
            cwd=str(PROJECT_ROOT),
        )
        self.processes.append(('Controller', proc))
        print(f"  PID: {proc.pid}")
        return proc

    def start_console(self, console_args):
        """Start the console"""
        print("Starting console...")
        proc = subprocess.Popen(
            [sys.executable, '-m', 'console.link_console'] + console_args,
            env=self._make_env(),
            cwd=str(PROJECT_ROOT),
        )
        self.processes.append(('Console', proc))
        print(f"  PID: {proc.pid}")
        return proc

    def stop_all(self):
        """Stop all processes, console first"""
        for name, proc in reversed(self.processes):
            if proc.poll() is None:
                print(f"Stopping {name} (PID {proc.pid})...")
                proc.terminate()
                try:
                    proc.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    print(f"  Force killing {name}...")
                    proc.kill()

    def wait(self):
        """Wait for processes and monitor health"""
        print("\n" + "=" * 60)
        print("Simulation running. Press Ctrl+C to stop.")
        print("=" * 60)
        print()

        reported = set()
        while self.running:
            for name, proc in self.processes:
                ret = proc.poll()
                if ret is not None and name not in reported:
                    print(f"WARNING: {name} exited with code {ret}")
                    reported.add(name)

            time.sleep(1)


def main():
    parser = argparse.ArgumentParser(
        description='Run the position interface console in simulation mode',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('--controller-only', action='store_true',
                        help='Start only the simulated controller')
    parser.add_argument('--csv', default='',
                        help='Replay this CSV path instead of jogging')
    parser.add_argument('--status-ws', action='store_true',
                        help='Serve link status over WebSocket')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable debug logging')
    args = parser.parse_args()

    if args.verbose:
        SIM_CONFIG['LOG_LEVEL'] = 'DEBUG'

    console_args = ['--jog', '0.1,0,0,0,0,0,0,0,0']
    if args.csv:
        console_args = ['--source', 'csv', '--csv-file', args.csv, '--repeat']
    if args.status_ws:
        console_args.append('--status-ws')

    print("=" * 60)
    print("Position Interface Simulator")
    print("=" * 60)
    print()
    print("Configuration:")
    print(f"  CRI Port: {PORTS['SIM_CRI_PORT']}")
    print(f"  Position Interface Port: {PORTS['SIM_POSITION_PORT']}")
    print(f"  Console: {' '.join(console_args)}")
    print()

    runner = SimRunner()

    try:
        runner.start_controller()
        if not args.controller_only:
            time.sleep(1)  # Give the controller time to bind
            runner.start_console(console_args)

        runner.wait()

    except KeyboardInterrupt:
        pass
    finally:
        runner.stop_all()

    print("\nSimulation stopped.")
    return 0


if __name__ == '__main__':
    sys.exit(main())
