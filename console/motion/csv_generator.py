"""
CSV Motion Generator

Replays a recorded path from a text file, one position per send cycle.

Line format (';' separated, '.' or ',' as decimal separator):
  J;j1;j2;j3;j4;j5;j6;e1;e2;e3;x;y;z;a;b;c   joint record, cartesian ignored
  C;j1;j2;j3;j4;j5;j6;e1;e2;e3;x;y;z;a;b;c   cartesian record, robot joints ignored

Missing trailing values read as 0. The file is read lazily on the first
start() after the filename was set.
"""

import logging
import threading
from typing import List, Optional

from common.constants import NUM_JOINTS

from .position_set import PositionSet

logger = logging.getLogger(__name__)

CSV_SEPARATOR = ";"
CSV_VALUE_COUNT = 15


def parse_csv_line(line: str) -> Optional[PositionSet]:
    """
    Parse one file line.

    Returns:
        The position, or None for a blank line

    Raises:
        ValueError: If a numeric field cannot be parsed
    """
    if not line.strip():
        return None

    fields = line.strip().split(CSV_SEPARATOR)
    is_cartesian = fields[0].strip().lower() == "c"

    values = [0.0] * CSV_VALUE_COUNT
    for i, text in enumerate(fields[1:CSV_VALUE_COUNT + 1]):
        text = text.strip()
        if text:
            values[i] = float(text.replace(",", "."))

    return PositionSet(
        joints=values[:NUM_JOINTS],
        cartesian_position=values[9:12],
        cartesian_orientation=values[12:15],
        is_cartesian=is_cartesian
    )


class CSVMotionGenerator:
    """Position source that replays a CSV file"""

    def __init__(self, filename: str = "", repeat: bool = False):
        self._filename = filename
        self.repeat = repeat

        self._lines: List[PositionSet] = []
        self._lines_lock = threading.Lock()

        self._running = False
        self._index = 0

    @property
    def filename(self) -> str:
        return self._filename

    @filename.setter
    def filename(self, value: str):
        """Changing the file stops playback and forces a re-read on start()"""
        self.stop()
        self.clear_buffer()
        self._filename = value

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def line_count(self) -> int:
        with self._lines_lock:
            return len(self._lines)

    @property
    def index(self) -> int:
        return self._index

    def start(self):
        """Start playback from the first line"""
        if self._running:
            return

        with self._lines_lock:
            if not self._lines:
                self._read_file(self._filename)

        logger.info("CSV Motion Generator: Starting")
        self._index = 0
        self._running = True

    def stop(self):
        """Stop playback and rewind"""
        if self._running:
            logger.info("CSV Motion Generator: Stopping")
            self._running = False
            self._index = 0

    def clear_buffer(self):
        with self._lines_lock:
            self._lines = []

    def get_position_set(self, current_position: PositionSet, elapsed_ms: float) -> PositionSet:
        """
        Return the next line merged onto the current position.

        When playback is stopped or the end is reached without repeat, the
        current position is returned unchanged (the robot holds).
        """
        if not self._running:
            return current_position

        with self._lines_lock:
            if self.repeat and self._index >= len(self._lines):
                self._index = 0

            if self._index >= len(self._lines):
                target = None
            else:
                target = self._lines[self._index]
                self._index += 1

        if target is None:
            logger.info("CSV Motion Generator: End of file reached")
            self.stop()
            return current_position

        if target.is_cartesian:
            joints = current_position.robot_joints + target.external_joints
            return current_position.replace(
                joints=joints,
                cartesian_position=target.cartesian_position,
                cartesian_orientation=target.cartesian_orientation,
                is_cartesian=True
            )
        return current_position.replace(joints=target.joints, is_cartesian=False)

    def _read_file(self, filename: str):
        """Read the file into the line cache. Caller holds _lines_lock."""
        logger.info(f"CSV Motion Generator: Reading file '{filename}'")
        lines: List[PositionSet] = []
        try:
            with open(filename, "r", encoding="utf-8") as f:
                for line_number, line in enumerate(f, start=1):
                    try:
                        position = parse_csv_line(line)
                    except ValueError as e:
                        raise ValueError(f"line {line_number}: {e}") from e
                    if position is not None:
                        lines.append(position)
        except (OSError, ValueError) as e:
            self._lines = []
            logger.error(f"CSV Motion Generator: Could not read file '{filename}': {e}")
            return

        self._lines = lines
        logger.info(f"CSV Motion Generator: File '{filename}' read, {len(lines)} positions")
