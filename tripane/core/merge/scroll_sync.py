"""
Chunk-aligned scroll synchronization for the three merge panes.

Each genuine scroll on one pane is handled in one pass per frame:
1. The raw scroll delta is copied to the other two panes
2. Chunks visible in the source pane are collected (capped, nearest the
   viewport center first)
3. Each target is nudged by the median center-to-center offset of the
   chunks it shares with its anchor

Base is always the hub: left and right are never aligned to each other.
Programmatic scrolls are marked suppressed so the target's own scroll
handler does not start another pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Optional

from tripane.core.merge.frame_scheduler import FrameScheduler
from tripane.core.merge.geometry import Viewport, clamp_scroll, median
from tripane.core.models import LineRange, MergeChunk, Side

logger = logging.getLogger(__name__)


SIDES = (Side.LEFT, Side.BASE, Side.RIGHT)

DEFAULT_MAX_VISIBLE_CHUNKS = 12
DEFAULT_ALIGNMENT_THRESHOLD = 0.5


@dataclass(frozen=True)
class RangePair:
    """Corresponding ranges of one chunk in an anchor and a target pane."""
    anchor: LineRange
    target: LineRange


SchedulerFactory = Callable[[Callable[[Side], None]], FrameScheduler[Side]]


class ScrollAligner:
    """
    Keeps the left, base and right viewports chunk-aligned while scrolling.

    Hosts call ``on_scroll(side)`` from every viewport's scroll handler,
    including for scrolls the aligner itself caused.
    """

    def __init__(
        self,
        viewports: Mapping[Side, Viewport],
        chunks: Iterable[MergeChunk] = (),
        scheduler_factory: Optional[SchedulerFactory] = None,
        max_visible_chunks: int = DEFAULT_MAX_VISIBLE_CHUNKS,
        threshold: float = DEFAULT_ALIGNMENT_THRESHOLD,
        enabled: bool = True
    ):
        missing = [side.value for side in SIDES if side not in viewports]
        if missing:
            raise ValueError(f"Missing viewports: {', '.join(missing)}")

        self._viewports = dict(viewports)
        self._chunks: list[MergeChunk] = list(chunks)
        self.max_visible_chunks = max_visible_chunks
        self.threshold = threshold
        self._enabled = enabled

        factory = scheduler_factory or FrameScheduler
        self._scheduler = factory(self.align_from)

        self._last_scroll: dict[Side, float] = {}
        self._suppressed: set[Side] = set()
        self._syncing = False
        self.pass_count = 0

        self.sync_baseline()

    @property
    def scheduler(self) -> FrameScheduler[Side]:
        return self._scheduler

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        """Toggle synchronization; re-enabling starts from current offsets."""
        self._enabled = enabled
        if not enabled:
            self._scheduler.cancel()
        self.sync_baseline()

    def set_chunks(self, chunks: Iterable[MergeChunk]) -> None:
        self._chunks = list(chunks)

    def sync_baseline(self) -> None:
        """Record every viewport's current offset as the baseline."""
        self._last_scroll = {
            side: self._viewports[side].scroll_top() for side in SIDES
        }

    def is_suppressed(self, side: Side) -> bool:
        return side in self._suppressed

    def reset(self) -> None:
        """Drop pending work and marks, e.g. after a layout change."""
        self._scheduler.cancel()
        self._suppressed.clear()
        self._syncing = False
        self.sync_baseline()

    # -------------------------------------------------------------------------
    # Event handling
    # -------------------------------------------------------------------------

    def on_scroll(self, side: Side) -> None:
        """Scroll handler for one viewport."""
        if side in self._suppressed:
            self._suppressed.discard(side)
            self._last_scroll[side] = self._viewports[side].scroll_top()
            return

        if self._syncing or not self._enabled:
            self._last_scroll[side] = self._viewports[side].scroll_top()
            return

        self._scheduler.request(side)

    def align_from(self, source: Side) -> None:
        """
        Run one alignment pass for a scroll that originated on ``source``.

        Called by the frame scheduler; failures are logged and the
        bookkeeping is resynchronized to whatever the viewports now show.
        """
        if not self._enabled:
            return

        self._syncing = True
        try:
            self._align_pass(source)
            self.pass_count += 1
        except Exception:
            logger.exception("Scroll alignment from %s failed", source.value)
        finally:
            self.sync_baseline()
            self._syncing = False

    def _align_pass(self, source: Side) -> None:
        source_view = self._viewports[source]
        delta = source_view.scroll_top() - self._last_scroll[source]

        if delta:
            for side in SIDES:
                if side == source:
                    continue
                view = self._viewports[side]
                self._write(side, view.scroll_top() + delta)

        visible = self.visible_chunks(source)
        if not visible:
            return

        if source == Side.BASE:
            self._align_target(Side.BASE, Side.LEFT, visible)
            self._align_target(Side.BASE, Side.RIGHT, visible)
        else:
            self._align_target(source, Side.BASE, visible)
            self._align_target(Side.BASE, source.opposite, visible)

    # -------------------------------------------------------------------------
    # Geometry
    # -------------------------------------------------------------------------

    def visible_chunks(self, side: Side) -> list[MergeChunk]:
        """
        Chunks whose range on ``side`` intersects that viewport.

        At most ``max_visible_chunks`` are returned, preferring those whose
        centers are nearest the viewport center; document order is kept.
        """
        view = self._viewports[side]
        top = view.scroll_top()
        bottom = top + view.height()

        candidates: list[tuple[MergeChunk, LineRange]] = []
        for chunk in self._chunks:
            line_range = chunk.range_for(side)
            if line_range is not None:
                candidates.append((chunk, line_range))

        # Ranges on one side are ordered, so find the first visible one by bisection
        low, high = 0, len(candidates)
        while low < high:
            mid = (low + high) // 2
            if view.measure(candidates[mid][1]).bottom < top:
                low = mid + 1
            else:
                high = mid

        visible: list[tuple[MergeChunk, float]] = []
        for chunk, line_range in candidates[low:]:
            metrics = view.measure(line_range)
            if metrics.top > bottom:
                break
            visible.append((chunk, metrics.center))

        if len(visible) > self.max_visible_chunks:
            center = (top + bottom) / 2
            nearest = sorted(visible, key=lambda item: abs(item[1] - center))
            keep = {id(chunk) for chunk, _ in nearest[:self.max_visible_chunks]}
            visible = [item for item in visible if id(item[0]) in keep]

        return [chunk for chunk, _ in visible]

    def alignment_delta(
        self,
        anchor_side: Side,
        target_side: Side,
        pairs: list[RangePair]
    ) -> float:
        """Median screen-space offset of target centers from anchor centers."""
        if not pairs:
            return 0.0

        anchor = self._viewports[anchor_side]
        target = self._viewports[target_side]
        anchor_top = anchor.scroll_top()
        target_top = target.scroll_top()

        offsets = [
            (target.measure(pair.target).center - target_top)
            - (anchor.measure(pair.anchor).center - anchor_top)
            for pair in pairs
        ]
        return median(offsets)

    @staticmethod
    def build_range_pairs(
        chunks: Iterable[MergeChunk],
        anchor_side: Side,
        target_side: Side
    ) -> list[RangePair]:
        pairs: list[RangePair] = []
        for chunk in chunks:
            anchor = chunk.range_for(anchor_side)
            target = chunk.range_for(target_side)
            if anchor is None or target is None:
                continue
            pairs.append(RangePair(anchor, target))
        return pairs

    def _align_target(
        self,
        anchor_side: Side,
        target_side: Side,
        visible: list[MergeChunk]
    ) -> None:
        pairs = self.build_range_pairs(visible, anchor_side, target_side)
        if not pairs:
            return

        delta = self.alignment_delta(anchor_side, target_side, pairs)
        if abs(delta) < self.threshold:
            return

        target = self._viewports[target_side]
        self._write(target_side, target.scroll_top() + delta)

    def _write(self, side: Side, offset: float) -> None:
        """Programmatic scroll, pre-marked so its event is not re-aligned."""
        view = self._viewports[side]
        current = view.scroll_top()
        target = clamp_scroll(view, offset)
        if target == current:
            return

        self._suppressed.add(side)
        applied = view.scroll_to(target)
        if applied == current:
            # No scroll happened, so no event will consume the mark
            self._suppressed.discard(side)
