"""
Tests for the position interface streaming channel.

Usage:
    pytest tests/test_position_client.py -v
"""

import unittest
import os
import sys

# Add parent to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, os.path.dirname(__file__))

from console.position_client import PositionClient, format_position_message, parse_position_feedback
from console.motion import JogMotionGenerator, PositionSet
from controller_sim import SimulatedController
from sim_helpers import wait_for, unused_port


class TestFormatPositionMessage(unittest.TestCase):

    def test_joint_mode(self):
        p = PositionSet(joints=range(9), platform_position=(1.5, -2), platform_heading=90)
        self.assertEqual(
            format_position_message(p),
            "Pos J 0.000000 1.000000 2.000000 3.000000 4.000000 5.000000 "
            "E 6.000000 7.000000 8.000000 P 1.500000 -2.000000 90.000000"
        )

    def test_cartesian_mode(self):
        p = PositionSet(
            joints=[9, 9, 9, 9, 9, 9, 1, 2, 3],
            cartesian_position=(100, 200, 300), cartesian_orientation=(0, 90, 180),
            is_cartesian=True
        )
        self.assertEqual(
            format_position_message(p),
            "Pos C 100.000000 200.000000 300.000000 0.000000 90.000000 180.000000 "
            "E 1.000000 2.000000 3.000000 P 0.000000 0.000000 0.000000"
        )

    def test_decimal_point(self):
        p = PositionSet(joints=[0.125])
        self.assertIn("0.125000", format_position_message(p))


class TestParsePositionFeedback(unittest.TestCase):

    def test_all_groups(self):
        tokens = "Pos J 1 2 3 4 5 6 E 7 8 9 C 10 11 12 13 14 15 P 16 17 18".split()
        p = parse_position_feedback(tokens)
        self.assertEqual(p.joints, tuple(float(i) for i in range(1, 10)))
        self.assertEqual(p.cartesian_position, (10.0, 11.0, 12.0))
        self.assertEqual(p.cartesian_orientation, (13.0, 14.0, 15.0))
        self.assertEqual(p.platform_position, (16.0, 17.0))
        self.assertEqual(p.platform_heading, 18.0)

    def test_groups_in_any_order(self):
        p = parse_position_feedback("Pos E 7 8 9 J 1 2".split())
        self.assertEqual(p.joints, (1.0, 2.0, 0.0, 0.0, 0.0, 0.0, 7.0, 8.0, 9.0))

    def test_unknown_label_ends_group(self):
        p = parse_position_feedback("Pos J 1 2 X 3 4".split())
        self.assertEqual(p.joints[:4], (1.0, 2.0, 0.0, 0.0))

    def test_unparseable_value_dropped(self):
        """The slot keeps its default but later values stay aligned"""
        p = parse_position_feedback("Pos J 1 1.2.3 3".split())
        self.assertEqual(p.joints[:3], (1.0, 0.0, 3.0))

    def test_surplus_values_dropped(self):
        p = parse_position_feedback("Pos E 1 2 3 4 5".split())
        self.assertEqual(p.external_joints, (1.0, 2.0, 3.0))

    def test_negative_and_signed_values(self):
        p = parse_position_feedback("Pos J -1.5 +2 .5".split())
        self.assertEqual(p.joints[:3], (-1.5, 2.0, 0.5))

    def test_feedback_is_joint_mode(self):
        p = parse_position_feedback("Pos C 1 2 3 4 5 6".split())
        self.assertFalse(p.is_cartesian)


class TestPositionClientStreaming:
    """Streaming against the simulated controller"""

    def setup_method(self):
        self.sim = SimulatedController()
        self.sim.start()
        self.sim.interface_running = True
        self.client = PositionClient()
        self.events = []
        self.client.connection_changed.subscribe(self.events.append)

    def teardown_method(self):
        self.client.stop()
        self.sim.stop()

    def connect(self, interval_ms=10):
        self.client.start(interval_ms, "127.0.0.1", self.sim.position_port)
        assert wait_for(lambda: self.client.is_running)

    def test_holds_current_position_without_source(self):
        self.connect()
        assert wait_for(lambda: self.sim.targets_received >= 5)
        assert self.sim.last_target.startswith("Pos J 0.000000")
        assert self.client.last_target_position == PositionSet.zero()
        assert self.events == [True]

    def test_feedback_updates_current_position(self):
        jog = JogMotionGenerator(velocity=10.0)
        jog.set_jog([1.0])
        self.client.position_source = jog
        self.connect()

        # The simulated controller echoes targets back as feedback
        assert wait_for(lambda: self.client.current_position.joints[0] > 0.0)
        assert self.client.positions_received > 0
        assert self.client.last_target_position.joints[0] > 0.0

    def test_update_intervals_measured(self):
        self.connect(interval_ms=20)
        assert wait_for(lambda: self.client.positions_sent >= 10)
        assert 5.0 < self.client.target_position_update_interval_ms < 200.0
        assert wait_for(lambda: self.client.current_position_update_interval_ms > 0.0)

    def test_stop(self):
        self.connect()
        self.client.stop()
        assert not self.client.is_running
        assert self.events == [True, False]
        sent = self.sim.targets_received
        assert not wait_for(lambda: self.sim.targets_received > sent + 1, timeout=0.2)

    def test_invalid_port(self):
        """An invalid port is logged and nothing is started"""
        self.client.start(10, "127.0.0.1", -1)
        assert not self.client.is_running
        self.client.start(10, "127.0.0.1", 70000)
        assert not self.client.is_running
        assert self.events == []

    def test_interval_clamped(self):
        self.connect(interval_ms=0)
        assert self.client.send_interval_ms == 1.0

    def test_controller_drop_reported(self):
        self.connect()
        assert wait_for(lambda: self.sim.position_client_count == 1)
        self.sim.drop_position_clients()
        assert wait_for(lambda: self.events == [True, False])
        assert not self.client.is_running

    def test_rejected_when_interface_not_running(self):
        self.sim.interface_running = False
        self.client.start(10, "127.0.0.1", self.sim.position_port)
        assert wait_for(lambda: self.events[-1:] == [False])
        assert not self.client.is_running

    def test_connect_refused(self):
        self.client.start(10, "127.0.0.1", unused_port())
        assert wait_for(lambda: self.events == [False])

    def test_invalid_payload_not_sent(self):
        """Non-ASCII text or embedded frame markers are rejected without stopping the channel"""
        self.connect()
        assert not self.client.send_message("Pos J Ü")
        assert not self.client.send_message("Pos MSGEND")
        assert self.client.is_running
        sent = self.client.positions_sent
        assert wait_for(lambda: self.client.positions_sent > sent)


if __name__ == '__main__':
    unittest.main()
