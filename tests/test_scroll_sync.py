"""Tests for chunk-aligned scroll synchronization.

Viewports are simulated with fixed line heights. Like a real widget, a
fake viewport reports every offset change back to the aligner's scroll
handler synchronously, so aligner-initiated scrolls travel the same
path as user scrolls.
"""

import unittest

from tripane.core.merge.chunk_builder import build_chunks
from tripane.core.merge.scroll_sync import SIDES, ScrollAligner
from tripane.core.models import LineMetrics, Side


class FakeViewport:
    def __init__(self, line_count: int, line_height: float = 20.0, height: float = 600.0):
        self.line_count = line_count
        self.line_height = line_height
        self.view_height = height
        self.offset = 0.0
        self.on_change = None
        self.fail_measure = False

    def scroll_top(self) -> float:
        return self.offset

    def max_scroll_top(self) -> float:
        return max(0.0, self.line_count * self.line_height - self.view_height)

    def height(self) -> float:
        return self.view_height

    def measure(self, line_range) -> LineMetrics:
        if self.fail_measure:
            raise RuntimeError("layout unavailable")
        top = line_range.start_line * self.line_height
        return LineMetrics(top, top + line_range.line_count * self.line_height)

    def scroll_to(self, offset: float) -> float:
        new_offset = min(max(offset, 0.0), self.max_scroll_top())
        changed = new_offset != self.offset
        self.offset = new_offset
        if changed and self.on_change is not None:
            self.on_change()
        return self.offset

    def screen_center(self, line_range) -> float:
        return self.measure(line_range).center - self.offset


def _documents(line_count: int = 60):
    """Base plus two sides that insert a header and rewrite every odd line."""
    base = [f"line {i}\n" for i in range(line_count)]
    left = [f"left header {k}\n" for k in range(10)]
    right = [f"right header {k}\n" for k in range(5)]
    for i, line in enumerate(base):
        left.append(f"left {i}\n" if i % 2 else line)
        right.append(f"right {i}\n" if i % 2 else line)
    return base, left, right


class AlignmentHarness(unittest.TestCase):
    def make_aligner(self, base, left, right, **kwargs):
        self.chunks = build_chunks(base, left, right)
        self.views = {
            Side.LEFT: FakeViewport(len(left)),
            Side.BASE: FakeViewport(len(base)),
            Side.RIGHT: FakeViewport(len(right)),
        }
        self.aligner = ScrollAligner(self.views, self.chunks, **kwargs)
        for side, view in self.views.items():
            view.on_change = lambda s=side: self.aligner.on_scroll(s)
        return self.aligner

    def user_scroll(self, side: Side, offset: float) -> None:
        self.views[side].scroll_to(offset)

    def assert_chunks_aligned(self, source: Side) -> None:
        visible = self.aligner.visible_chunks(source)
        self.assertTrue(visible)
        for chunk in visible:
            base_center = self.views[Side.BASE].screen_center(chunk.base_range)
            for side in (Side.LEFT, Side.RIGHT):
                line_range = chunk.range_for(side)
                if line_range is None:
                    continue
                self.assertAlmostEqual(
                    self.views[side].screen_center(line_range), base_center, delta=0.5
                )


class BaseOriginatedTests(AlignmentHarness):
    def test_sides_align_to_base_chunks(self) -> None:
        aligner = self.make_aligner(*_documents())

        self.user_scroll(Side.BASE, 400)
        self.assertTrue(aligner.scheduler.tick())

        self.assertEqual(self.views[Side.LEFT].offset, 600)
        self.assertEqual(self.views[Side.RIGHT].offset, 500)
        self.assert_chunks_aligned(Side.BASE)

    def test_alignment_holds_beyond_visible_chunk_cap(self) -> None:
        aligner = self.make_aligner(*_documents(120))
        for view in self.views.values():
            view.view_height = 1200

        self.user_scroll(Side.BASE, 400)
        self.assertGreater(
            sum(1 for chunk in self.chunks
                if chunk.base_range.start_line * 20 < 1600
                and chunk.base_range.stop * 20 > 400),
            aligner.max_visible_chunks
        )
        aligner.scheduler.tick()

        self.assertEqual(len(aligner.visible_chunks(Side.BASE)), aligner.max_visible_chunks)
        self.assert_chunks_aligned(Side.BASE)

    def test_visible_chunks_prefer_viewport_center(self) -> None:
        aligner = self.make_aligner(*_documents(120), max_visible_chunks=3)
        self.views[Side.BASE].offset = 400

        visible = aligner.visible_chunks(Side.BASE)

        self.assertEqual([chunk.base_range.start_line for chunk in visible], [33, 35, 37])


class SideOriginatedTests(AlignmentHarness):
    def test_base_follows_side_and_other_side_follows_base(self) -> None:
        aligner = self.make_aligner(*_documents())

        self.user_scroll(Side.LEFT, 600)
        aligner.scheduler.tick()

        self.assertEqual(self.views[Side.BASE].offset, 400)
        self.assertEqual(self.views[Side.RIGHT].offset, 500)
        self.assert_chunks_aligned(Side.LEFT)


class FeedbackTests(AlignmentHarness):
    def test_pass_count_tracks_user_scrolls_only(self) -> None:
        aligner = self.make_aligner(*_documents())

        for offset in (100, 220, 340, 460):
            self.user_scroll(Side.BASE, offset)
            aligner.scheduler.tick()
        self.user_scroll(Side.RIGHT, 200)
        aligner.scheduler.tick()

        # Programmatic writes above must not have queued further passes
        self.assertFalse(aligner.scheduler.has_pending)
        self.assertFalse(aligner.scheduler.tick())
        self.assertEqual(aligner.pass_count, 5)
        for side in SIDES:
            self.assertFalse(aligner.is_suppressed(side))

    def test_bursts_coalesce_into_one_pass_with_latest_offset(self) -> None:
        aligner = self.make_aligner(*_documents())

        for offset in (50, 150, 400):
            self.user_scroll(Side.BASE, offset)
        aligner.scheduler.tick()

        self.assertEqual(aligner.pass_count, 1)
        self.assertEqual(self.views[Side.LEFT].offset, 600)

    def test_clamped_write_leaves_no_suppression_mark(self) -> None:
        base, left, right = _documents()
        aligner = self.make_aligner(base, left[:40], right)

        self.user_scroll(Side.BASE, 400)
        aligner.scheduler.tick()
        self.assertFalse(aligner.is_suppressed(Side.LEFT))

        self.user_scroll(Side.LEFT, 0)
        self.assertTrue(aligner.scheduler.has_pending)

    def test_disabled_aligner_only_tracks_offsets(self) -> None:
        aligner = self.make_aligner(*_documents())
        aligner.set_enabled(False)

        self.user_scroll(Side.BASE, 400)

        self.assertFalse(aligner.scheduler.has_pending)
        self.assertEqual(self.views[Side.LEFT].offset, 0)

        aligner.set_enabled(True)
        self.user_scroll(Side.BASE, 420)
        aligner.scheduler.tick()
        # Only the 20px moved since re-enabling is copied before nudging
        self.assert_chunks_aligned(Side.BASE)

    def test_failed_pass_is_isolated(self) -> None:
        aligner = self.make_aligner(*_documents())
        self.views[Side.BASE].fail_measure = True

        self.user_scroll(Side.BASE, 400)
        with self.assertLogs("tripane.core.merge.scroll_sync", level="ERROR"):
            aligner.scheduler.tick()

        self.assertEqual(aligner.pass_count, 0)

        self.views[Side.BASE].fail_measure = False
        self.user_scroll(Side.BASE, 420)
        self.assertTrue(aligner.scheduler.has_pending)
        aligner.scheduler.tick()
        self.assertEqual(aligner.pass_count, 1)
        self.assert_chunks_aligned(Side.BASE)


class ConstructionTests(unittest.TestCase):
    def test_missing_viewport_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            ScrollAligner({Side.BASE: FakeViewport(3)})


if __name__ == "__main__":
    unittest.main()
