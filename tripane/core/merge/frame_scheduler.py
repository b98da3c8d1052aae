"""
Single-slot frame scheduler.

Requests made before the next frame overwrite each other; the frame runs
only the latest one. Nothing is queued across frames.
"""

from __future__ import annotations

import logging
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class FrameScheduler(Generic[T]):
    """
    Pending-work cell drained once per frame.

    The base class is driven manually with ``tick()``; hosts subclass it and
    override ``_arm``/``_disarm`` to hook a timer or frame callback.
    """

    def __init__(self, callback: Callable[[T], None]):
        self._callback = callback
        self._pending: Optional[T] = None
        self._armed = False

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    @property
    def is_armed(self) -> bool:
        return self._armed

    def request(self, item: T) -> None:
        """Store item as the frame's work, superseding any unfired request."""
        self._pending = item
        if self._armed:
            return
        self._armed = True
        self._arm()

    def tick(self) -> bool:
        """
        Run the pending work, if any.

        Returns:
            True if work ran
        """
        self._armed = False
        item = self._pending
        self._pending = None
        if item is None:
            return False

        try:
            self._callback(item)
        except Exception:
            logger.exception("Scheduled frame work failed for %r", item)
        return True

    def cancel(self) -> None:
        """Drop pending work and disarm."""
        self._pending = None
        if self._armed:
            self._armed = False
            self._disarm()

    def _arm(self) -> None:
        """Hook for subclasses: schedule a call to tick()."""

    def _disarm(self) -> None:
        """Hook for subclasses: cancel the scheduled tick()."""
