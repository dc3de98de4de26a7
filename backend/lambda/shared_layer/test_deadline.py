"""test_deadline.py — Caller time budget tests."""

from __future__ import annotations

import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "python"))

from async_operations.deadline import Deadline


class DeadlineTests(unittest.TestCase):
    def test_unbounded(self):
        deadline = Deadline()
        self.assertFalse(deadline.bounded)
        self.assertIsNone(deadline.remaining())
        self.assertFalse(deadline.expired())

    def test_counts_down_from_start(self):
        now = [100.0]
        deadline = Deadline(5, monotonic=lambda: now[0])

        self.assertTrue(deadline.bounded)
        self.assertEqual(deadline.remaining(), 5.0)
        now[0] = 103.0
        self.assertEqual(deadline.remaining(), 2.0)
        self.assertFalse(deadline.expired())
        now[0] = 105.0
        self.assertTrue(deadline.expired())

    def test_remaining_never_negative(self):
        deadline = Deadline(5, monotonic=lambda: 200.0, start=100.0)
        self.assertEqual(deadline.remaining(), 0.0)
        self.assertTrue(deadline.expired())


if __name__ == "__main__":
    unittest.main()
