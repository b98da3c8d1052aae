"""
Chunk builder for the three-way merge view.

Implements the region classification behind the merge view:
1. Computes line diffs from base to left and base to right
2. Sweeps both edit scripts in base order, grouping edits that overlap
   or touch (no equal base line between them)
3. Classifies each group as an insert, delete, change or conflict
4. Derives a chunk id that survives rebuilds of unaffected regions
"""

from __future__ import annotations

import difflib
import hashlib
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from tripane.core.models import (
    LineOrigin,
    LineRange,
    MergeChunk,
    MergeChunkAction,
    MergeChunkKind,
    Side,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiffRegion:
    """A non-equal stretch of one side's alignment against base."""
    base_start: int
    base_end: int
    other_start: int
    other_end: int

    @property
    def is_addition(self) -> bool:
        """True if lines were added (no base lines)."""
        return self.base_start == self.base_end

    @property
    def is_deletion(self) -> bool:
        """True if lines were deleted (no other lines)."""
        return self.other_start == self.other_end

    @property
    def delta(self) -> int:
        """Change in line count this region introduces."""
        return (self.other_end - self.other_start) - (self.base_end - self.base_start)


@dataclass
class _RegionGroup:
    """Side regions swept into one base span."""
    base_start: int
    base_end: int
    left: list[DiffRegion] = field(default_factory=list)
    right: list[DiffRegion] = field(default_factory=list)


def trace_origins(
    previous: Sequence[str],
    current: Sequence[str],
    origins: Optional[Sequence[LineOrigin]] = None
) -> list[LineOrigin]:
    """
    Carry base line origins across an edit.

    Lines the edit kept keep their origin; everything else counts as typed
    by hand. Without ``origins`` every line of ``previous`` is taken to be
    ancestor text.
    """
    if origins is None:
        origins = [(Side.BASE, index) for index in range(len(previous))]

    traced: list[LineOrigin] = [None] * len(current)
    matcher = difflib.SequenceMatcher(None, list(previous), list(current), autojunk=False)
    for block in matcher.get_matching_blocks():
        for offset in range(block.size):
            traced[block.b + offset] = origins[block.a + offset]
    return traced


class ChunkBuilder:
    """
    Builds the merge chunk list for a (base, left, right) triple.

    The result is rebuilt from scratch on every call; nothing is patched
    incrementally. When ``ancestor`` is given, base is aligned with each
    side through the origin of its lines (see ``trace_origins``), and a
    side only diverges where it edited the ancestor or where base still
    holds ancestor text the side replaced. Regions that were settled by
    copying the other side therefore do not resurface.
    """

    def build(
        self,
        base_lines: Sequence[str],
        left_lines: Sequence[str],
        right_lines: Sequence[str],
        ancestor_lines: Optional[Sequence[str]] = None,
        base_origins: Optional[Sequence[LineOrigin]] = None
    ) -> list[MergeChunk]:
        """
        Build merge chunks.

        Args:
            base_lines: Working base lines
            left_lines: Left version lines
            right_lines: Right version lines
            ancestor_lines: Original common ancestor, if base has been edited
            base_origins: Origin of every base line; traced from the
                ancestor with a diff when not given

        Returns:
            Chunks ordered by base start line
        """
        base = list(base_lines)
        left = list(left_lines)
        right = list(right_lines)

        left_own: Optional[set[DiffRegion]] = None
        right_own: Optional[set[DiffRegion]] = None

        if ancestor_lines is None:
            left_diffs = self._compute_diff_regions(base, left)
            right_diffs = self._compute_diff_regions(base, right)
        else:
            ancestor = list(ancestor_lines)
            if base_origins is None:
                origins = trace_origins(ancestor, base)
            else:
                origins = list(base_origins)
            if len(origins) != len(base):
                raise ValueError(
                    f"Got {len(origins)} line origins for {len(base)} base lines"
                )
            left_diffs, left_own = self._traced_regions(base, left, ancestor, origins, Side.LEFT)
            right_diffs, right_own = self._traced_regions(base, right, ancestor, origins, Side.RIGHT)

        groups = self._group_diff_regions(left_diffs, right_diffs)

        chunks: list[MergeChunk] = []
        seen_ids: dict[str, int] = {}
        left_offset = 0
        right_offset = 0

        for group in groups:
            left_span = self._map_span(group, group.left, left_offset)
            right_span = self._map_span(group, group.right, right_offset)
            left_offset += sum(region.delta for region in group.left)
            right_offset += sum(region.delta for region in group.right)

            has_left = self._diverges(group.left, left_own)
            has_right = self._diverges(group.right, right_own)
            if not has_left and not has_right:
                continue

            chunks.append(self._create_chunk(
                group, base, left, right, left_span, right_span,
                has_left, has_right, seen_ids
            ))

        logger.debug(
            "Built %d chunks (%d left regions, %d right regions)",
            len(chunks), len(left_diffs), len(right_diffs)
        )
        return chunks

    def _compute_diff_regions(
        self,
        base: list[str],
        other: list[str]
    ) -> list[DiffRegion]:
        """Compute diff regions between base and other."""
        matcher = difflib.SequenceMatcher(None, base, other, autojunk=False)

        return [
            DiffRegion(b_start, b_end, o_start, o_end)
            for tag, b_start, b_end, o_start, o_end in matcher.get_opcodes()
            if tag != 'equal'
        ]

    def _traced_regions(
        self,
        base: list[str],
        other: list[str],
        ancestor: list[str],
        origins: list[LineOrigin],
        side: Side
    ) -> tuple[list[DiffRegion], set[DiffRegion]]:
        """
        Align base with one side through the origins of base lines.

        Ancestor lines the side kept, and lines copied from the side, pin
        the alignment; only the stretches between pins are diffed afresh.
        Rewriting one part of base therefore never realigns another.

        Returns:
            All regions, and the subset the side is responsible for
        """
        kept = self._kept_lines(ancestor, other)

        pins: list[tuple[int, int]] = []
        for index, origin in enumerate(origins):
            if origin is None:
                continue
            origin_side, line = origin
            if origin_side == Side.BASE:
                target = kept.get(line)
            elif origin_side == side:
                target = line
            else:
                continue
            if target is None or target >= len(other):
                continue
            if pins and target <= pins[-1][1]:
                continue
            if other[target] != base[index]:
                continue
            pins.append((index, target))

        matched = self._match_between_pins(base, other, pins)
        regions = self._regions_between(matched, len(base), len(other))

        edited = set(range(len(other))).difference(kept.values())
        own = {
            region for region in regions
            if self._is_own_region(region, origins, edited)
        }
        return regions, own

    @staticmethod
    def _kept_lines(ancestor: list[str], other: list[str]) -> dict[int, int]:
        """Map ancestor line indices to the side lines they survive as."""
        matcher = difflib.SequenceMatcher(None, ancestor, other, autojunk=False)
        kept: dict[int, int] = {}
        for block in matcher.get_matching_blocks():
            for offset in range(block.size):
                kept[block.a + offset] = block.b + offset
        return kept

    @staticmethod
    def _match_between_pins(
        base: list[str],
        other: list[str],
        pins: list[tuple[int, int]]
    ) -> list[tuple[int, int]]:
        """Pinned line pairs plus the equal lines diffed between them."""
        matched: list[tuple[int, int]] = []
        base_next, other_next = 0, 0

        for base_pin, other_pin in pins + [(len(base), len(other))]:
            if base_next < base_pin and other_next < other_pin:
                matcher = difflib.SequenceMatcher(
                    None, base[base_next:base_pin], other[other_next:other_pin],
                    autojunk=False
                )
                for block in matcher.get_matching_blocks():
                    matched.extend(
                        (base_next + block.a + offset, other_next + block.b + offset)
                        for offset in range(block.size)
                    )
            matched.append((base_pin, other_pin))
            base_next, other_next = base_pin + 1, other_pin + 1

        # End sentinel
        matched.pop()
        return matched

    @staticmethod
    def _regions_between(
        matched: list[tuple[int, int]],
        base_count: int,
        other_count: int
    ) -> list[DiffRegion]:
        """Turn matched line pairs into the regions between them."""
        regions: list[DiffRegion] = []
        base_next, other_next = 0, 0

        for base_line, other_line in matched + [(base_count, other_count)]:
            if base_line > base_next or other_line > other_next:
                regions.append(DiffRegion(base_next, base_line, other_next, other_line))
            base_next, other_next = base_line + 1, other_line + 1

        return regions

    @staticmethod
    def _is_own_region(
        region: DiffRegion,
        origins: list[LineOrigin],
        edited: set[int]
    ) -> bool:
        """
        Whether a side is responsible for a region.

        It is when the region holds a line the side edited, or ancestor
        text in base that the side replaced. What is left is base text
        copied from the other side or typed by hand over lines this side
        never touched.
        """
        if any(line in edited for line in range(region.other_start, region.other_end)):
            return True
        return any(
            origins[index] is not None and origins[index][0] == Side.BASE
            for index in range(region.base_start, region.base_end)
        )

    @staticmethod
    def _diverges(
        regions: list[DiffRegion],
        own: Optional[set[DiffRegion]]
    ) -> bool:
        """Whether a side counts as diverging from base within a group."""
        if own is None:
            return bool(regions)
        return any(region in own for region in regions)

    def _group_diff_regions(
        self,
        left_diffs: list[DiffRegion],
        right_diffs: list[DiffRegion]
    ) -> list[_RegionGroup]:
        """
        Sweep both sides in base order and group touching regions.

        A region joins the open group when it starts at or before the
        group's base end, so adjacent regions with no equal line between
        them always end up in one group.
        """
        # (base_start, base_end, side, region); side 0=left, 1=right
        events: list[tuple[int, int, int, DiffRegion]] = []
        events.extend((r.base_start, r.base_end, 0, r) for r in left_diffs)
        events.extend((r.base_start, r.base_end, 1, r) for r in right_diffs)
        events.sort(key=lambda event: event[:3])

        groups: list[_RegionGroup] = []
        current: Optional[_RegionGroup] = None

        for base_start, base_end, side, region in events:
            if current is None or base_start > current.base_end:
                current = _RegionGroup(base_start=base_start, base_end=base_end)
                groups.append(current)
            else:
                current.base_end = max(current.base_end, base_end)

            if side == 0:
                current.left.append(region)
            else:
                current.right.append(region)

        return groups

    def _map_span(
        self,
        group: _RegionGroup,
        regions: list[DiffRegion],
        offset: int
    ) -> tuple[int, int]:
        """
        Map the group's base span to one side's coordinates.

        ``offset`` is the side's line-count drift from earlier groups; equal
        stretches inside the group map one to one.
        """
        start = group.base_start + offset
        end = group.base_end + offset + sum(region.delta for region in regions)
        return start, end

    def _create_chunk(
        self,
        group: _RegionGroup,
        base: list[str],
        left: list[str],
        right: list[str],
        left_span: tuple[int, int],
        right_span: tuple[int, int],
        has_left: bool,
        has_right: bool,
        seen_ids: dict[str, int]
    ) -> MergeChunk:
        """Classify a region group and turn it into a chunk."""
        base_lines = base[group.base_start:group.base_end]
        left_lines = left[left_span[0]:left_span[1]]
        right_lines = right[right_span[0]:right_span[1]]

        if has_left and has_right and left_lines != right_lines:
            kind = MergeChunkKind.CONFLICT
            action = MergeChunkAction.MANUAL
        elif has_left:
            # Covers both sides converging on the same text
            kind = self._classify(base_lines, left_lines)
            action = MergeChunkAction.APPLY_LEFT
        else:
            kind = self._classify(base_lines, right_lines)
            action = MergeChunkAction.APPLY_RIGHT

        chunk_id = self._chunk_id(kind, base_lines, left_span, right_span, seen_ids)

        return MergeChunk(
            id=chunk_id,
            kind=kind,
            base_range=LineRange.from_slice(group.base_start, group.base_end),
            left_range=LineRange.from_slice(*left_span) if has_left else None,
            right_range=LineRange.from_slice(*right_span) if has_right else None,
            action=action,
            base_lines=tuple(base_lines),
            left_lines=tuple(left_lines) if has_left else (),
            right_lines=tuple(right_lines) if has_right else (),
        )

    @staticmethod
    def _classify(base_lines: list[str], other_lines: list[str]) -> MergeChunkKind:
        if not base_lines:
            return MergeChunkKind.INSERT
        if not other_lines:
            return MergeChunkKind.DELETE
        return MergeChunkKind.CHANGE

    @staticmethod
    def _chunk_id(
        kind: MergeChunkKind,
        base_lines: list[str],
        left_span: tuple[int, int],
        right_span: tuple[int, int],
        seen_ids: dict[str, int]
    ) -> str:
        """
        Derive a chunk id from content and position in the immutable sides.

        Left and right never change during a session, so their spans stay
        put when a different chunk rewrites base.
        """
        digest = hashlib.sha1()
        digest.update(kind.value.encode('utf-8'))
        digest.update(f"|L{left_span[0]}:{left_span[1]}|R{right_span[0]}:{right_span[1]}|".encode('utf-8'))
        for line in base_lines:
            digest.update(line.encode('utf-8', errors='surrogatepass'))
            digest.update(b'\x00')

        chunk_id = f"chunk-{digest.hexdigest()[:12]}"
        occurrence = seen_ids.get(chunk_id, 0)
        seen_ids[chunk_id] = occurrence + 1
        if occurrence:
            chunk_id = f"{chunk_id}-{occurrence}"
        return chunk_id


def build_chunks(
    base_lines: Sequence[str],
    left_lines: Sequence[str],
    right_lines: Sequence[str],
    ancestor_lines: Optional[Sequence[str]] = None,
    base_origins: Optional[Sequence[LineOrigin]] = None
) -> list[MergeChunk]:
    """Build merge chunks with a default builder."""
    return ChunkBuilder().build(
        base_lines, left_lines, right_lines, ancestor_lines, base_origins
    )
