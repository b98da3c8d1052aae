"""
Resolution store for interactive three-way merging.

Holds the working base document, the actions the user recorded per chunk
and the current chunk set. Applying ``apply_left``/``apply_right`` rewrites
base and rebuilds every chunk; ``keep_base``/``manual`` only record intent.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence, Union

from tripane.core.merge.chunk_builder import ChunkBuilder, trace_origins
from tripane.core.models import (
    ActionOutcome,
    LineOrigin,
    MergeChunk,
    MergeChunkAction,
    MergeChunkKind,
    Side,
    join_lines,
    split_lines,
)

logger = logging.getLogger(__name__)


ChunkObserver = Callable[[list[MergeChunk], list[MergeChunk]], None]
Document = Union[str, Sequence[str]]


def _as_lines(document: Document) -> list[str]:
    if isinstance(document, str):
        return split_lines(document)
    return list(document)


class ResolutionStore:
    """
    Owner of the mutable merge state.

    The store is passed by handle to whoever needs it (navigation, views);
    there is no module-level instance.
    """

    def __init__(
        self,
        base: Document = (),
        left: Document = (),
        right: Document = (),
        builder: Optional[ChunkBuilder] = None
    ):
        self._builder = builder or ChunkBuilder()
        self._ancestor_lines: list[str] = []
        self._base_lines: list[str] = []
        self._base_origins: list[LineOrigin] = []
        self._left_lines: list[str] = []
        self._right_lines: list[str] = []
        self._chunks: list[MergeChunk] = []
        self._chunk_actions: dict[str, MergeChunkAction] = {}
        self._observers: list[ChunkObserver] = []

        self.reset(base, left, right)

    # -------------------------------------------------------------------------
    # Inputs
    # -------------------------------------------------------------------------

    def reset(self, base: Document, left: Document, right: Document) -> bool:
        """
        Load a new (base, left, right) triple from the version-control layer.

        The given base becomes the ancestor the sides are measured against.
        Returns False (keeping the previous session) if chunking fails.
        """
        base_lines = _as_lines(base)
        left_lines = _as_lines(left)
        right_lines = _as_lines(right)

        origins: list[LineOrigin] = [(Side.BASE, index) for index in range(len(base_lines))]
        chunks = self._try_build(base_lines, left_lines, right_lines, base_lines, origins)
        if chunks is None:
            return False

        previous = self._chunks
        self._ancestor_lines = list(base_lines)
        self._base_lines = base_lines
        self._base_origins = origins
        self._left_lines = left_lines
        self._right_lines = right_lines
        self._chunks = chunks
        self._chunk_actions = {}

        logger.info(
            "Merge session loaded: %d base, %d left, %d right lines, %d chunks",
            len(base_lines), len(left_lines), len(right_lines), len(chunks)
        )
        self._notify_observers(previous)
        return True

    def set_base(self, base: Document) -> bool:
        """
        Replace base after a hand edit and rebuild.

        Lines the edit kept keep their origin; typed lines belong to no
        side. Recorded actions survive only for chunk ids still present.
        """
        new_base = _as_lines(base)
        origins = trace_origins(self._base_lines, new_base, self._base_origins)
        return self._commit_base(new_base, origins)

    # -------------------------------------------------------------------------
    # Outputs
    # -------------------------------------------------------------------------

    @property
    def chunks(self) -> list[MergeChunk]:
        return list(self._chunks)

    @property
    def chunk_actions(self) -> dict[str, MergeChunkAction]:
        return dict(self._chunk_actions)

    @property
    def base_lines(self) -> list[str]:
        return list(self._base_lines)

    @property
    def left_lines(self) -> list[str]:
        return list(self._left_lines)

    @property
    def right_lines(self) -> list[str]:
        return list(self._right_lines)

    @property
    def base_text(self) -> str:
        """Current base, handed back for staging or saving."""
        return join_lines(self._base_lines)

    @property
    def conflict_count(self) -> int:
        return sum(1 for chunk in self._chunks if chunk.is_conflict)

    @property
    def is_resolved(self) -> bool:
        """True once no divergent chunk remains."""
        return not self._chunks

    def lines_for(self, side: Side) -> list[str]:
        if side == Side.BASE:
            return self.base_lines
        if side == Side.LEFT:
            return self.left_lines
        return self.right_lines

    def get_chunk(self, chunk_id: str) -> Optional[MergeChunk]:
        """Get a chunk of the current set by id."""
        for chunk in self._chunks:
            if chunk.id == chunk_id:
                return chunk
        return None

    def index_of(self, chunk_id: Optional[str]) -> int:
        """Index of a chunk in the current set, or -1."""
        for index, chunk in enumerate(self._chunks):
            if chunk.id == chunk_id:
                return index
        return -1

    def recorded_action(self, chunk: MergeChunk) -> Optional[MergeChunkAction]:
        return self._chunk_actions.get(chunk.id)

    def effective_action(self, chunk: MergeChunk) -> MergeChunkAction:
        """Recorded action, falling back to the chunk's suggestion."""
        return self._chunk_actions.get(chunk.id, chunk.action)

    def marked_text(
        self,
        marker_left: str = "<<<<<<< LEFT",
        marker_base: str = "||||||| BASE",
        marker_sep: str = "=======",
        marker_right: str = ">>>>>>> RIGHT",
        include_base: bool = True
    ) -> str:
        """
        Base with git-style markers around every remaining conflict.

        Non-conflict chunks keep their current base content.
        """
        merged: list[str] = []
        position = 0

        for chunk in self._chunks:
            if not chunk.is_conflict:
                continue

            merged.extend(self._base_lines[position:chunk.base_range.start_line])
            merged.append(f"{marker_left}\n")
            merged.extend(self._terminated(chunk.left_lines))
            if include_base:
                merged.append(f"{marker_base}\n")
                merged.extend(self._terminated(chunk.base_lines))
            merged.append(f"{marker_sep}\n")
            merged.extend(self._terminated(chunk.right_lines))
            merged.append(f"{marker_right}\n")
            position = chunk.base_range.stop

        merged.extend(self._base_lines[position:])
        return join_lines(merged)

    @staticmethod
    def _terminated(lines: Sequence[str]) -> list[str]:
        """Make sure a block ends with a newline before the next marker."""
        result = list(lines)
        if result and not result[-1].endswith(('\n', '\r')):
            result[-1] = result[-1] + '\n'
        return result

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def apply(
        self,
        chunk: Union[MergeChunk, str],
        action: MergeChunkAction
    ) -> ActionOutcome:
        """
        Apply a resolution action to a chunk.

        The chunk is looked up again in the current set, so callers holding
        an outdated chunk (or bypassing UI gating) cannot corrupt base.

        Args:
            chunk: Chunk or chunk id
            action: Action to apply

        Returns:
            What happened; rejections leave every piece of state unchanged
        """
        chunk_id = chunk if isinstance(chunk, str) else chunk.id
        current = self.get_chunk(chunk_id)

        if current is None:
            logger.debug("Ignoring %s on stale chunk %s", action.value, chunk_id)
            return ActionOutcome.REJECTED_STALE

        if not current.allows(action):
            logger.debug(
                "Rejecting %s on %s chunk %s", action.value, current.kind.value, chunk_id
            )
            return ActionOutcome.REJECTED_ILLEGAL

        if action == MergeChunkAction.KEEP_BASE or action == MergeChunkAction.MANUAL:
            self._chunk_actions[current.id] = action
            return ActionOutcome.RECORDED

        elif action == MergeChunkAction.APPLY_LEFT or action == MergeChunkAction.APPLY_RIGHT:
            return self._apply_side(current, action)

        else:
            raise ValueError(f"Unknown action: {action}")

    def _apply_side(self, chunk: MergeChunk, action: MergeChunkAction) -> ActionOutcome:
        """Replace the chunk's base lines with the chosen side's lines."""
        side = action.source_side
        side_range = chunk.range_for(side)
        side_lines = self._left_lines if side == Side.LEFT else self._right_lines

        start, stop = chunk.base_range.start_line, chunk.base_range.stop
        new_base = self._base_lines[:start] + side_range.slice(side_lines) + self._base_lines[stop:]
        origins = (
            self._base_origins[:start]
            + [(side, line) for line in range(side_range.start_line, side_range.stop)]
            + self._base_origins[stop:]
        )

        # Recorded before the rebuild so pruning decides whether it survives
        actions = dict(self._chunk_actions)
        actions[chunk.id] = action

        if not self._commit_base(new_base, origins, actions):
            return ActionOutcome.FAILED

        logger.debug(
            "Applied %s to chunk %s (base %s), %d chunks remain",
            action.value, chunk.id, chunk.base_range, len(self._chunks)
        )
        return ActionOutcome.APPLIED

    def apply_all(self, action: MergeChunkAction) -> int:
        """
        Apply one action to every chunk that allows it.

        Chunks are rebuilt after each application, so the set is rescanned
        until no eligible chunk is left. Returns the number of applications.
        """
        applied = 0
        attempted: set[str] = set()

        while True:
            target = next(
                (chunk for chunk in self._chunks
                 if chunk.id not in attempted and chunk.allows(action)),
                None
            )
            if target is None:
                return applied

            attempted.add(target.id)
            if self.apply(target, action).accepted:
                applied += 1

    def auto_merge(self) -> int:
        """
        Apply the suggested side of every non-conflicting chunk.

        Conflicts are left for the user. Returns the number of chunks applied.
        """
        applied = 0
        attempted: set[str] = set()

        while True:
            target = next(
                (chunk for chunk in self._chunks
                 if chunk.id not in attempted
                 and chunk.kind != MergeChunkKind.CONFLICT
                 and chunk.action.mutates_base),
                None
            )
            if target is None:
                break

            attempted.add(target.id)
            if self.apply(target, target.action) == ActionOutcome.APPLIED:
                applied += 1

        logger.info("Auto-merged %d chunks, %d conflicts remain", applied, self.conflict_count)
        return applied

    # -------------------------------------------------------------------------
    # Rebuilds
    # -------------------------------------------------------------------------

    def _commit_base(
        self,
        new_base: list[str],
        origins: list[LineOrigin],
        actions: Optional[dict[str, MergeChunkAction]] = None
    ) -> bool:
        """Rebuild for a new base and commit only if the rebuild succeeds."""
        chunks = self._try_build(
            new_base, self._left_lines, self._right_lines, self._ancestor_lines, origins
        )
        if chunks is None:
            return False

        if actions is None:
            actions = self._chunk_actions

        surviving = {chunk.id for chunk in chunks}
        previous = self._chunks

        self._base_lines = new_base
        self._base_origins = origins
        self._chunks = chunks
        self._chunk_actions = {
            chunk_id: action for chunk_id, action in actions.items()
            if chunk_id in surviving
        }

        self._notify_observers(previous)
        return True

    def _try_build(
        self,
        base: list[str],
        left: list[str],
        right: list[str],
        ancestor: list[str],
        origins: list[LineOrigin]
    ) -> Optional[list[MergeChunk]]:
        """Build chunks, isolating any failure from the committed state."""
        try:
            return self._builder.build(base, left, right, ancestor, origins)
        except Exception:
            logger.exception("Chunk rebuild failed; keeping previous chunk set")
            return None

    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------

    def add_observer(self, callback: ChunkObserver) -> None:
        """Add a callback notified with (previous_chunks, chunks) after rebuilds."""
        self._observers.append(callback)

    def remove_observer(self, callback: ChunkObserver) -> None:
        """Remove a chunk change observer."""
        if callback in self._observers:
            self._observers.remove(callback)

    def _notify_observers(self, previous: list[MergeChunk]) -> None:
        """Notify all observers of a new chunk set."""
        for callback in list(self._observers):
            try:
                callback(list(previous), list(self._chunks))
            except Exception:
                logger.exception("Chunk observer %r failed", callback)
