"""
Tests for the CSV motion generator.
"""

import pytest
import os
import sys

# Add parent to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from console.motion import CSVMotionGenerator, PositionSet
from console.motion.csv_generator import parse_csv_line


JOINT_LINE = "J;1;2;3;4;5;6;7;8;9;0;0;0;0;0;0"
CARTESIAN_LINE = "C;0;0;0;0;0;0;7;8;9;100;200;300;10;20;30"


@pytest.fixture
def two_line_file(tmp_path):
    path = tmp_path / "path.csv"
    path.write_text("J;1;2;3;4;5;6;7;8;9;0;0;0;0;0;0\nJ;2;3;4;5;6;7;8;9;10;0;0;0;0;0;0\n")
    return str(path)


class TestParseCsvLine:

    def test_joint_line(self):
        p = parse_csv_line(JOINT_LINE)
        assert not p.is_cartesian
        assert p.joints == tuple(float(i) for i in range(1, 10))

    def test_cartesian_line(self):
        p = parse_csv_line(CARTESIAN_LINE)
        assert p.is_cartesian
        assert p.cartesian_position == (100.0, 200.0, 300.0)
        assert p.cartesian_orientation == (10.0, 20.0, 30.0)
        assert p.external_joints == (7.0, 8.0, 9.0)

    def test_lowercase_marker(self):
        assert parse_csv_line("c;0;0;0;0;0;0;0;0;0;1;2;3;0;0;0").is_cartesian

    def test_comma_decimal_separator(self):
        p = parse_csv_line("J;1,5;2.25")
        assert p.joints[0] == 1.5
        assert p.joints[1] == 2.25

    def test_missing_values_are_zero(self):
        p = parse_csv_line("J;1")
        assert p.joints == (1.0,) + (0.0,) * 8

    def test_blank_line(self):
        assert parse_csv_line("   \n") is None

    def test_invalid_number(self):
        with pytest.raises(ValueError):
            parse_csv_line("J;abc")


class TestCSVMotionGenerator:

    def setup_method(self):
        self.current = PositionSet(joints=[0.5] * 9, platform_heading=12.0)

    def test_plays_lines_then_stops(self, two_line_file):
        """Two-line file: two targets, then hold and stop"""
        gen = CSVMotionGenerator(two_line_file)
        gen.start()
        assert gen.is_running
        assert gen.line_count == 2

        first = gen.get_position_set(self.current, 10)
        second = gen.get_position_set(self.current, 10)
        third = gen.get_position_set(self.current, 10)

        assert first.joints[0] == 1.0
        assert second.joints[0] == 2.0
        assert third == self.current
        assert not gen.is_running

    def test_platform_kept_from_current(self, two_line_file):
        gen = CSVMotionGenerator(two_line_file)
        gen.start()
        assert gen.get_position_set(self.current, 10).platform_heading == 12.0

    def test_repeat_wraps(self, two_line_file):
        gen = CSVMotionGenerator(two_line_file, repeat=True)
        gen.start()
        values = [gen.get_position_set(self.current, 10).joints[0] for _ in range(5)]
        assert values == [1.0, 2.0, 1.0, 2.0, 1.0]
        assert gen.is_running

    def test_not_started_returns_current(self, two_line_file):
        gen = CSVMotionGenerator(two_line_file)
        assert gen.get_position_set(self.current, 10) == self.current

    def test_cartesian_record_merged(self, tmp_path):
        """Cartesian records keep the measured robot joints"""
        path = tmp_path / "cart.csv"
        path.write_text(CARTESIAN_LINE + "\n")
        gen = CSVMotionGenerator(str(path))
        gen.start()

        target = gen.get_position_set(self.current, 10)
        assert target.is_cartesian
        assert target.robot_joints == (0.5,) * 6
        assert target.external_joints == (7.0, 8.0, 9.0)
        assert target.cartesian_position == (100.0, 200.0, 300.0)

    def test_blank_lines_skipped(self, tmp_path):
        path = tmp_path / "blank.csv"
        path.write_text(JOINT_LINE + "\n\n" + JOINT_LINE + "\n\n")
        gen = CSVMotionGenerator(str(path))
        gen.start()
        assert gen.line_count == 2

    def test_missing_file(self, tmp_path):
        """A missing file is logged; playback ends immediately"""
        gen = CSVMotionGenerator(str(tmp_path / "missing.csv"))
        gen.start()
        assert gen.line_count == 0
        assert gen.get_position_set(self.current, 10) == self.current
        assert not gen.is_running

    def test_bad_line_clears_cache(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text(JOINT_LINE + "\nJ;oops\n")
        gen = CSVMotionGenerator(str(path))
        gen.start()
        assert gen.line_count == 0

    def test_filename_change_stops_and_rereads(self, two_line_file, tmp_path):
        gen = CSVMotionGenerator(two_line_file)
        gen.start()
        gen.get_position_set(self.current, 10)

        other = tmp_path / "other.csv"
        other.write_text("J;42\n")
        gen.filename = str(other)
        assert not gen.is_running
        assert gen.line_count == 0

        gen.start()
        assert gen.line_count == 1
        assert gen.get_position_set(self.current, 10).joints[0] == 42.0

    def test_restart_rewinds(self, two_line_file):
        gen = CSVMotionGenerator(two_line_file)
        gen.start()
        gen.get_position_set(self.current, 10)
        gen.stop()
        gen.start()
        assert gen.get_position_set(self.current, 10).joints[0] == 1.0
