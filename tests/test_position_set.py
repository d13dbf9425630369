"""
Tests for the PositionSet value object.
"""

import unittest
import os
import sys
from dataclasses import FrozenInstanceError

# Add parent to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from console.motion.position_set import PositionSet


class TestPositionSet(unittest.TestCase):

    def test_zero(self):
        p = PositionSet.zero()
        self.assertEqual(p.joints, (0.0,) * 9)
        self.assertEqual(p.cartesian_position, (0.0, 0.0, 0.0))
        self.assertEqual(p.platform_position, (0.0, 0.0))
        self.assertFalse(p.is_cartesian)

    def test_lengths_normalized(self):
        """Short inputs are padded, long ones truncated"""
        p = PositionSet(joints=[1, 2, 3], cartesian_position=[1, 2, 3, 4], platform_position=[7])
        self.assertEqual(p.joints, (1.0, 2.0, 3.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0))
        self.assertEqual(p.cartesian_position, (1.0, 2.0, 3.0))
        self.assertEqual(p.platform_position, (7.0, 0.0))

    def test_values_are_floats(self):
        p = PositionSet(joints=[1] * 9, platform_heading=2)
        self.assertTrue(all(isinstance(v, float) for v in p.joints))
        self.assertIsInstance(p.platform_heading, float)

    def test_immutable(self):
        p = PositionSet.zero()
        with self.assertRaises(FrozenInstanceError):
            p.platform_heading = 1.0

    def test_replace_keeps_other_fields(self):
        p = PositionSet(joints=range(9), platform_heading=45.0)
        q = p.replace(is_cartesian=True, cartesian_position=(1, 2, 3))
        self.assertEqual(q.joints, p.joints)
        self.assertEqual(q.platform_heading, 45.0)
        self.assertTrue(q.is_cartesian)
        self.assertEqual(q.cartesian_position, (1.0, 2.0, 3.0))
        self.assertFalse(p.is_cartesian)

    def test_joint_groups(self):
        p = PositionSet(joints=range(9))
        self.assertEqual(p.robot_joints, (0.0, 1.0, 2.0, 3.0, 4.0, 5.0))
        self.assertEqual(p.external_joints, (6.0, 7.0, 8.0))

    def test_as_dict(self):
        d = PositionSet(joints=range(9), is_cartesian=True).as_dict()
        self.assertEqual(d['joints'][8], 8.0)
        self.assertTrue(d['is_cartesian'])
        self.assertEqual(len(d['cartesian_orientation']), 3)

    def test_equality(self):
        self.assertEqual(PositionSet(joints=[1]), PositionSet(joints=[1.0, 0, 0]))


if __name__ == '__main__':
    unittest.main()
