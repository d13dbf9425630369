"""
Tests for marker framing module.

Tests frame creation, CRI sequence numbering and inbound frame extraction.
"""

import unittest
import os
import sys
import threading

# Add parent to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from common.framing import MarkerFramer, MessageBuffer, FramingError, split_sequence
from common.constants import (
    CRI_START_MARKER, CRI_END_MARKER, MSG_START_MARKER, MSG_END_MARKER,
    MAX_MESSAGE_BUFFER
)


class TestMarkerFramer(unittest.TestCase):
    """Test outbound frame construction"""

    def setUp(self):
        self.cri = MarkerFramer(CRI_START_MARKER, CRI_END_MARKER, sequenced=True)
        self.msg = MarkerFramer(MSG_START_MARKER, MSG_END_MARKER)

    def test_first_sequence_is_two(self):
        """First CRI frame carries sequence 2"""
        self.assertEqual(self.cri.create_frame("CMD GetActive"), "CRISTART 2 CMD GetActive CRIEND")
        self.assertEqual(self.cri.create_frame("CMD GetActive"), "CRISTART 3 CMD GetActive CRIEND")

    def test_sequence_wraps_to_one(self):
        """Sequence goes 9998, 9999, 1, 2"""
        self.cri._seq = 9997
        self.assertEqual([self.cri.next_sequence() for _ in range(4)], [9998, 9999, 1, 2])

    def test_reset_sequence(self):
        self.cri.next_sequence()
        self.cri.next_sequence()
        self.cri.reset_sequence()
        self.assertEqual(self.cri.next_sequence(), 2)

    def test_unsequenced_frame(self):
        self.assertEqual(self.msg.create_frame("Pos J 1 2"), "MSGSTART Pos J 1 2 MSGEND")

    def test_marker_in_payload_rejected(self):
        """A payload containing a marker would corrupt the stream"""
        with self.assertRaises(FramingError):
            self.cri.create_frame("CMD CRIEND")
        with self.assertRaises(FramingError):
            self.msg.create_frame("MSGSTART")

    def test_concurrent_sequence_allocation(self):
        """Concurrent senders never reuse a sequence number"""
        results = []
        lock = threading.Lock()

        def worker():
            local = [self.cri.next_sequence() for _ in range(500)]
            with lock:
                results.extend(local)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(results), 2000)
        self.assertEqual(len(set(results)), 2000)


class TestMessageBuffer(unittest.TestCase):
    """Test inbound frame extraction"""

    def setUp(self):
        self.buffer = MessageBuffer(CRI_START_MARKER, CRI_END_MARKER)

    def test_single_frame(self):
        self.assertEqual(self.buffer.feed("CRISTART 5 CMD Active true CRIEND"), ["5 CMD Active true"])
        self.assertEqual(self.buffer.pending, "")

    def test_round_trip(self):
        """Frames built by the framer come back as the original payload"""
        framer = MarkerFramer(MSG_START_MARKER, MSG_END_MARKER)
        buffer = MessageBuffer(MSG_START_MARKER, MSG_END_MARKER)
        payload = "Pos J 1.000000 2.000000 3.000000 E 0 0 0 P 0 0 0"
        self.assertEqual(buffer.feed(framer.create_frame(payload)), [payload])

    def test_two_frames_in_one_read(self):
        """Both frames are returned, in order"""
        data = "CRISTART 1 A CRIEND CRISTART 2 B CRIEND"
        self.assertEqual(self.buffer.feed(data), ["1 A", "2 B"])

    def test_partial_frame(self):
        """A frame split over reads is returned once complete"""
        self.assertEqual(self.buffer.feed("CRISTART 7 STATUS ERR"), [])
        self.assertEqual(self.buffer.feed("OR NoError CRIEND"), ["7 STATUS ERROR NoError"])
        self.assertEqual(self.buffer.pending, "")

    def test_split_marker(self):
        self.assertEqual(self.buffer.feed("CRIST"), [])
        self.assertEqual(self.buffer.feed("ART 1 A CRI"), [])
        self.assertEqual(self.buffer.feed("END"), ["1 A"])

    def test_noise_before_frame_skipped(self):
        self.assertEqual(self.buffer.feed("garbage CRISTART 1 A CRIEND"), ["1 A"])

    def test_trailing_partial_kept(self):
        self.assertEqual(self.buffer.feed("CRISTART 1 A CRIEND CRISTART 2"), ["1 A"])
        self.assertEqual(self.buffer.pending.strip(), "CRISTART 2")

    def test_buffer_bounded(self):
        """Retained text never exceeds the cap, even without terminators"""
        for _ in range(50):
            self.buffer.feed("CRISTART " + "x" * 100)
            self.assertLessEqual(len(self.buffer.pending), MAX_MESSAGE_BUFFER)

    def test_recovers_after_overflow(self):
        self.buffer.feed("y" * 5000)
        self.assertLessEqual(len(self.buffer.pending), MAX_MESSAGE_BUFFER)
        self.assertEqual(self.buffer.feed(" CRISTART 3 OK CRIEND"), ["3 OK"])

    def test_clear(self):
        self.buffer.feed("CRISTART 1")
        self.buffer.clear()
        self.assertEqual(self.buffer.pending, "")


class TestSplitSequence(unittest.TestCase):

    def test_split(self):
        self.assertEqual(split_sequence("12 CMD GetActive"), (12, "CMD GetActive"))

    def test_no_sequence(self):
        self.assertEqual(split_sequence("CMD GetActive"), (None, "CMD GetActive"))


if __name__ == '__main__':
    unittest.main()
