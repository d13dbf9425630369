"""
Tests for the event hook and the periodic timer.
"""

import unittest
import os
import sys
import threading
import time

# Add parent to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from common.events import EventHook
from common.periodic_timer import PeriodicTimer


class TestEventHook(unittest.TestCase):

    def setUp(self):
        self.hook = EventHook("test")
        self.received = []

    def test_emit_to_subscribers(self):
        self.hook.subscribe(self.received.append)
        self.hook.emit(True)
        self.hook.emit(False)
        self.assertEqual(self.received, [True, False])

    def test_unsubscribe(self):
        unsubscribe = self.hook.subscribe(self.received.append)
        self.assertEqual(len(self.hook), 1)
        unsubscribe()
        self.hook.emit(True)
        self.assertEqual(self.received, [])
        self.assertEqual(len(self.hook), 0)

    def test_failing_handler_does_not_stop_others(self):
        def broken(value):
            raise RuntimeError("handler failed")

        self.hook.subscribe(broken)
        self.hook.subscribe(self.received.append)
        self.hook.emit(1)
        self.assertEqual(self.received, [1])

    def test_multiple_arguments(self):
        self.hook.subscribe(lambda old, new: self.received.append((old, new)))
        self.hook.emit("a", "b")
        self.assertEqual(self.received, [("a", "b")])

    def test_delivered_on_emitting_thread(self):
        threads = []
        self.hook.subscribe(lambda: threads.append(threading.current_thread().name))

        t = threading.Thread(target=self.hook.emit, name="emitter")
        t.start()
        t.join()
        self.assertEqual(threads, ["emitter"])


class TestPeriodicTimer(unittest.TestCase):

    def test_fires_repeatedly(self):
        calls = []
        timer = PeriodicTimer(0.02, lambda: calls.append(time.monotonic()), name="test-timer")
        timer.start()
        time.sleep(0.25)
        timer.stop()

        self.assertGreaterEqual(len(calls), 5)
        self.assertFalse(timer.is_running())

    def test_no_calls_after_stop(self):
        calls = []
        timer = PeriodicTimer(0.01, lambda: calls.append(1))
        timer.start()
        time.sleep(0.05)
        timer.stop()
        count = len(calls)
        time.sleep(0.05)
        self.assertEqual(len(calls), count)

    def test_callback_error_keeps_timer_running(self):
        calls = []

        def callback():
            calls.append(1)
            raise RuntimeError("tick failed")

        timer = PeriodicTimer(0.01, callback)
        timer.start()
        time.sleep(0.1)
        self.assertTrue(timer.is_running())
        timer.stop()
        self.assertGreater(len(calls), 1)

    def test_stop_from_callback(self):
        done = threading.Event()
        timer = None

        def callback():
            timer.stop()
            done.set()

        timer = PeriodicTimer(0.01, callback)
        timer.start()
        self.assertTrue(done.wait(1.0))
        time.sleep(0.05)
        self.assertFalse(timer.is_running())

    def test_restart(self):
        calls = []
        timer = PeriodicTimer(0.01, lambda: calls.append(1))
        timer.start()
        timer.stop()
        timer.start()
        time.sleep(0.05)
        timer.stop()
        self.assertGreater(len(calls), 0)

    def test_stop_without_start(self):
        timer = PeriodicTimer(0.01, lambda: None)
        timer.stop()
        self.assertFalse(timer.is_running())


if __name__ == '__main__':
    unittest.main()
