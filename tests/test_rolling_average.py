"""
Tests for the rolling average used by the update-interval display.
"""

import unittest
import os
import sys
import threading

# Add parent to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from common.rolling_average import RollingAverage
from common.constants import ROLLING_WINDOW_SIZE


class TestRollingAverage(unittest.TestCase):

    def setUp(self):
        self.avg = RollingAverage()

    def test_empty_is_zero(self):
        self.assertEqual(self.avg.average, 0.0)
        self.assertEqual(len(self.avg), 0)

    def test_partial_window(self):
        """Before the window fills, the mean covers the samples seen so far"""
        self.avg.add(10.0)
        self.assertEqual(self.avg.add(20.0), 15.0)
        self.assertEqual(self.avg.average, 15.0)

    def test_full_window(self):
        """20 samples 1..20 average 10.5"""
        for i in range(1, ROLLING_WINDOW_SIZE + 1):
            self.avg.add(i)
        self.assertEqual(len(self.avg), 20)
        self.assertAlmostEqual(self.avg.average, 10.5)

    def test_oldest_evicted(self):
        """The 21st sample evicts the first"""
        for i in range(1, 21):
            self.avg.add(i)
        self.avg.add(21)
        self.assertEqual(len(self.avg), 20)
        self.assertEqual(self.avg.samples()[0], 2.0)
        self.assertAlmostEqual(self.avg.average, 11.5)

    def test_reset(self):
        self.avg.add(5)
        self.avg.reset()
        self.assertEqual(self.avg.average, 0.0)

    def test_invalid_size(self):
        with self.assertRaises(ValueError):
            RollingAverage(0)

    def test_concurrent_add(self):
        def worker():
            for _ in range(1000):
                self.avg.add(4.0)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(self.avg), ROLLING_WINDOW_SIZE)
        self.assertEqual(self.avg.average, 4.0)


if __name__ == '__main__':
    unittest.main()
