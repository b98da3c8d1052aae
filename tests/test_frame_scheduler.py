"""Tests for the single-slot frame scheduler."""

import unittest

from tripane.core.merge.frame_scheduler import FrameScheduler


class CountingScheduler(FrameScheduler):
    def __init__(self, callback):
        super().__init__(callback)
        self.arm_count = 0
        self.disarm_count = 0

    def _arm(self) -> None:
        self.arm_count += 1

    def _disarm(self) -> None:
        self.disarm_count += 1


class FrameSchedulerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.calls = []
        self.scheduler = CountingScheduler(self.calls.append)

    def test_latest_request_wins(self) -> None:
        self.scheduler.request("first")
        self.scheduler.request("second")

        self.assertTrue(self.scheduler.tick())
        self.assertEqual(self.calls, ["second"])
        self.assertEqual(self.scheduler.arm_count, 1)

    def test_tick_without_work_does_nothing(self) -> None:
        self.assertFalse(self.scheduler.tick())
        self.assertEqual(self.calls, [])

    def test_nothing_carries_over_to_the_next_frame(self) -> None:
        self.scheduler.request("a")
        self.scheduler.tick()

        self.assertFalse(self.scheduler.has_pending)
        self.assertFalse(self.scheduler.is_armed)
        self.assertFalse(self.scheduler.tick())

        self.scheduler.request("b")
        self.assertEqual(self.scheduler.arm_count, 2)

    def test_cancel_drops_pending_work(self) -> None:
        self.scheduler.request("a")
        self.scheduler.cancel()

        self.assertFalse(self.scheduler.tick())
        self.assertEqual(self.scheduler.disarm_count, 1)
        self.assertEqual(self.calls, [])

    def test_callback_failure_is_logged(self) -> None:
        def broken(item):
            raise RuntimeError("frame failed")

        scheduler = FrameScheduler(broken)
        scheduler.request("x")

        with self.assertLogs("tripane.core.merge.frame_scheduler", level="ERROR"):
            self.assertTrue(scheduler.tick())
        self.assertFalse(scheduler.has_pending)


if __name__ == "__main__":
    unittest.main()
