"""
Core data models for the three-way merge engine.

This module defines the data structures shared by the merge components:
- Line ranges scoped to one document version
- Merge chunks and their kinds
- Resolution actions and outcomes
- Viewport geometry

All models are:
- UI-agnostic (the Qt view is only one consumer)
- Type-hinted for IDE support
- Immutable where practical
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, Sequence


# =============================================================================
# Enumerations
# =============================================================================

class Side(Enum):
    """One of the three documents in a merge session."""
    LEFT = "left"
    BASE = "base"
    RIGHT = "right"

    @property
    def opposite(self) -> 'Side':
        """The other divergent side (base has none)."""
        if self == Side.LEFT:
            return Side.RIGHT
        if self == Side.RIGHT:
            return Side.LEFT
        raise ValueError("Base has no opposite side")


class MergeChunkKind(Enum):
    """Type of a divergent base region."""
    INSERT = "insert"       # Lines added where base has none
    DELETE = "delete"       # Base lines removed
    CHANGE = "change"       # Base lines replaced
    CONFLICT = "conflict"   # Both sides diverged differently


class MergeChunkAction(Enum):
    """How the user chose to resolve a chunk."""
    APPLY_LEFT = "apply_left"
    APPLY_RIGHT = "apply_right"
    KEEP_BASE = "keep_base"
    MANUAL = "manual"

    @property
    def mutates_base(self) -> bool:
        """True for actions that rewrite the base document."""
        return self in (MergeChunkAction.APPLY_LEFT, MergeChunkAction.APPLY_RIGHT)

    @property
    def source_side(self) -> Optional[Side]:
        """Document an apply action copies lines from."""
        if self == MergeChunkAction.APPLY_LEFT:
            return Side.LEFT
        if self == MergeChunkAction.APPLY_RIGHT:
            return Side.RIGHT
        return None


class ActionOutcome(Enum):
    """Result of asking the resolution store to act on a chunk."""
    APPLIED = auto()            # Base rewritten and chunks rebuilt
    RECORDED = auto()           # Intent recorded, base untouched
    REJECTED_ILLEGAL = auto()   # Action not valid for this chunk
    REJECTED_STALE = auto()     # Chunk no longer exists
    FAILED = auto()             # Rebuild failed, prior state kept

    @property
    def accepted(self) -> bool:
        return self in (ActionOutcome.APPLIED, ActionOutcome.RECORDED)


# =============================================================================
# Line Models
# =============================================================================

# Same breaks a text editor starts a new block at
_LINE_BREAK = re.compile(r"(?<=\n)|(?<=\r)(?!\n)")


def split_lines(text: str) -> list[str]:
    r"""
    Split text into lines, keeping line endings so joins are lossless.

    Lines end at "\n", "\r\n" or a lone "\r". Other characters that
    str.splitlines treats as breaks (form feed, U+2028, ...) stay inside
    their line.
    """
    lines = _LINE_BREAK.split(text)
    if not lines[-1]:
        lines.pop()
    return lines


def join_lines(lines: Sequence[str]) -> str:
    """Join lines produced by split_lines back into text."""
    return ''.join(lines)


# Where a base line came from: (Side.BASE, i) for ancestor line i,
# (Side.LEFT, j) or (Side.RIGHT, j) for a line copied from that side, and
# None for text typed into base by hand
LineOrigin = Optional[tuple[Side, int]]


@dataclass(frozen=True)
class LineRange:
    """
    Inclusive, 0-indexed line range within one document.

    An empty range has ``end_line == start_line - 1`` and marks the
    insertion point before ``start_line``.
    """
    start_line: int
    end_line: int

    def __post_init__(self) -> None:
        if self.start_line < 0 or self.end_line < self.start_line - 1:
            raise ValueError(f"Invalid line range: {self.start_line}..{self.end_line}")

    @classmethod
    def from_slice(cls, start: int, stop: int) -> 'LineRange':
        """Create from a half-open [start, stop) slice."""
        return cls(start, stop - 1)

    @property
    def stop(self) -> int:
        """Exclusive end line, for slicing."""
        return self.end_line + 1

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    @property
    def is_empty(self) -> bool:
        return self.line_count == 0

    @property
    def center(self) -> float:
        return (self.start_line + self.stop) / 2

    def contains(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line

    def overlaps(self, other: 'LineRange') -> bool:
        """True if the two ranges share a line or touch without a gap."""
        return self.start_line <= other.stop and other.start_line <= self.stop

    def slice(self, lines: Sequence[str]) -> list[str]:
        return list(lines[self.start_line:self.stop])

    def __str__(self) -> str:
        if self.is_empty:
            return f"@{self.start_line}"
        return f"{self.start_line}-{self.end_line}"


# =============================================================================
# Merge Models
# =============================================================================

@dataclass(frozen=True)
class MergeChunk:
    """
    A contiguous base region where left, right or both diverge.

    ``left_range``/``right_range`` are present only for sides that differ
    from base here; a missing side matches base exactly over this chunk.
    ``action`` is a suggestion, never a recorded decision.
    """
    id: str
    kind: MergeChunkKind
    base_range: LineRange
    left_range: Optional[LineRange] = None
    right_range: Optional[LineRange] = None
    action: MergeChunkAction = MergeChunkAction.KEEP_BASE
    base_lines: tuple[str, ...] = field(default=(), compare=False)
    left_lines: tuple[str, ...] = field(default=(), compare=False)
    right_lines: tuple[str, ...] = field(default=(), compare=False)

    @property
    def is_conflict(self) -> bool:
        return self.kind == MergeChunkKind.CONFLICT

    @property
    def has_left(self) -> bool:
        return self.left_range is not None

    @property
    def has_right(self) -> bool:
        return self.right_range is not None

    def has_side(self, side: Side) -> bool:
        return self.range_for(side) is not None

    def range_for(self, side: Side) -> Optional[LineRange]:
        """Line range of this chunk in the given document, if it diverges there."""
        if side == Side.BASE:
            return self.base_range
        if side == Side.LEFT:
            return self.left_range
        if side == Side.RIGHT:
            return self.right_range
        raise ValueError(f"Unknown side: {side}")

    def lines_for(self, side: Side) -> tuple[str, ...]:
        if side == Side.BASE:
            return self.base_lines
        if side == Side.LEFT:
            return self.left_lines
        return self.right_lines

    def allows(self, action: MergeChunkAction) -> bool:
        """Whether the action is legal for this chunk."""
        if action == MergeChunkAction.APPLY_LEFT:
            return self.has_left
        if action == MergeChunkAction.APPLY_RIGHT:
            return self.has_right
        if action == MergeChunkAction.KEEP_BASE:
            return not self.is_conflict
        if action == MergeChunkAction.MANUAL:
            return True
        raise ValueError(f"Unknown action: {action}")


# =============================================================================
# Geometry Models
# =============================================================================

@dataclass(frozen=True)
class LineMetrics:
    """Vertical pixel extent of a line range in document coordinates."""
    top: float
    bottom: float

    @property
    def center(self) -> float:
        return (self.top + self.bottom) / 2

    @property
    def height(self) -> float:
        return self.bottom - self.top
