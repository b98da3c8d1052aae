"""
Viewport geometry capability used by scroll alignment.

Whatever renders the three documents supplies one ``Viewport`` per
document. Offsets are document pixels, 0 at the top of the document.
"""

from __future__ import annotations

from typing import Protocol

from tripane.core.models import LineMetrics, LineRange


class Viewport(Protocol):
    """A vertically scrollable rendering of one document."""

    def scroll_top(self) -> float:
        """Current vertical scroll offset."""
        ...

    def max_scroll_top(self) -> float:
        """Largest valid scroll offset."""
        ...

    def height(self) -> float:
        """Visible height of the viewport."""
        ...

    def measure(self, line_range: LineRange) -> LineMetrics:
        """Pixel extent of a line range; empty ranges measure as a point."""
        ...

    def scroll_to(self, offset: float) -> float:
        """Scroll to an offset and return the offset actually applied."""
        ...


def clamp_scroll(viewport: Viewport, offset: float) -> float:
    """Clamp an offset to the viewport's valid scroll range."""
    maximum = max(0.0, viewport.max_scroll_top())
    return min(max(offset, 0.0), maximum)


def median(values: list[float]) -> float:
    """Median of values; 0 for an empty list."""
    if not values:
        return 0.0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]
