"""
Keyboard navigation over the merge chunk list.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Iterable, Mapping, Optional

from tripane.core.merge.resolution import ResolutionStore
from tripane.core.models import ActionOutcome, MergeChunk, MergeChunkAction

logger = logging.getLogger(__name__)


class NavigationCommand(Enum):
    """Commands a keystroke can map to."""
    NEXT = "next"
    PREVIOUS = "previous"
    APPLY_LEFT = "apply_left"
    APPLY_RIGHT = "apply_right"
    KEEP_BASE = "keep_base"


DEFAULT_KEY_BINDINGS: dict[str, NavigationCommand] = {
    "n": NavigationCommand.NEXT,
    "Down": NavigationCommand.NEXT,
    "p": NavigationCommand.PREVIOUS,
    "Up": NavigationCommand.PREVIOUS,
    "l": NavigationCommand.APPLY_LEFT,
    "r": NavigationCommand.APPLY_RIGHT,
    "i": NavigationCommand.KEEP_BASE,
}

_COMMAND_ACTIONS = {
    NavigationCommand.APPLY_LEFT: MergeChunkAction.APPLY_LEFT,
    NavigationCommand.APPLY_RIGHT: MergeChunkAction.APPLY_RIGHT,
    NavigationCommand.KEEP_BASE: MergeChunkAction.KEEP_BASE,
}


def bindings_from_keys(keys: Mapping[str, Iterable[str]]) -> dict[str, NavigationCommand]:
    """
    Build a key map from ``{command_name: [keys...]}``.

    Unknown command names are skipped with a warning.
    """
    bindings: dict[str, NavigationCommand] = {}
    for name, command_keys in keys.items():
        try:
            command = NavigationCommand(name)
        except ValueError:
            logger.warning("Ignoring key binding for unknown command %r", name)
            continue
        for key in command_keys:
            bindings[key] = command
    return bindings


class NavigationController:
    """
    Tracks the selected chunk and maps keystrokes to chunk operations.

    Selection follows the store: when a rebuild removes the selected chunk,
    the chunk now sitting at its old index (clamped) is selected instead.
    """

    def __init__(
        self,
        store: ResolutionStore,
        reveal: Optional[Callable[[MergeChunk], None]] = None,
        key_bindings: Optional[Mapping[str, NavigationCommand]] = None
    ):
        self._store = store
        self._reveal = reveal
        self._bindings = dict(key_bindings or DEFAULT_KEY_BINDINGS)
        self._selected_chunk_id: Optional[str] = None

        store.add_observer(self._on_chunks_changed)
        chunks = store.chunks
        if chunks:
            self._set_selected(chunks[0].id)

    @property
    def selected_chunk_id(self) -> Optional[str]:
        return self._selected_chunk_id

    @property
    def selected_chunk(self) -> Optional[MergeChunk]:
        if self._selected_chunk_id is None:
            return None
        return self._store.get_chunk(self._selected_chunk_id)

    @property
    def selected_index(self) -> int:
        return self._store.index_of(self._selected_chunk_id)

    @property
    def key_bindings(self) -> dict[str, NavigationCommand]:
        return dict(self._bindings)

    def set_key_bindings(self, bindings: Mapping[str, NavigationCommand]) -> None:
        self._bindings = dict(bindings)

    def set_reveal_callback(self, reveal: Optional[Callable[[MergeChunk], None]]) -> None:
        self._reveal = reveal

    def detach(self) -> None:
        """Stop following the store."""
        self._store.remove_observer(self._on_chunks_changed)

    # -------------------------------------------------------------------------
    # Movement
    # -------------------------------------------------------------------------

    def select(self, chunk_id: str) -> bool:
        """Select a chunk by id; unknown ids are ignored."""
        if self._store.get_chunk(chunk_id) is None:
            return False
        self._set_selected(chunk_id)
        return True

    def next(self) -> bool:
        return self._go_to(self._current_index() + 1)

    def previous(self) -> bool:
        return self._go_to(self._current_index() - 1)

    def _current_index(self) -> int:
        return max(0, self.selected_index)

    def _go_to(self, index: int) -> bool:
        """Select the chunk at index, clamped to the list bounds."""
        chunks = self._store.chunks
        if not chunks:
            return False
        bounded = min(max(index, 0), len(chunks) - 1)
        self._set_selected(chunks[bounded].id)
        return True

    def _set_selected(self, chunk_id: Optional[str]) -> None:
        self._selected_chunk_id = chunk_id
        if chunk_id is None or self._reveal is None:
            return

        chunk = self._store.get_chunk(chunk_id)
        if chunk is not None:
            self._reveal(chunk)

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def apply_left(self) -> ActionOutcome:
        return self._apply_selected(MergeChunkAction.APPLY_LEFT)

    def apply_right(self) -> ActionOutcome:
        return self._apply_selected(MergeChunkAction.APPLY_RIGHT)

    def keep_base(self) -> ActionOutcome:
        return self._apply_selected(MergeChunkAction.KEEP_BASE)

    def _apply_selected(self, action: MergeChunkAction) -> ActionOutcome:
        chunk = self.selected_chunk
        if chunk is None:
            return ActionOutcome.REJECTED_STALE
        return self._store.apply(chunk, action)

    # -------------------------------------------------------------------------
    # Keys
    # -------------------------------------------------------------------------

    def handle_key(self, key: str) -> bool:
        """
        Dispatch a keystroke.

        Returns:
            True if the key is bound and chunks exist, so the host should
            consume the event
        """
        command = self._bindings.get(key)
        if command is None or not self._store.chunks:
            return False

        self.dispatch(command)
        return True

    def dispatch(self, command: NavigationCommand) -> None:
        if command == NavigationCommand.NEXT:
            self.next()
        elif command == NavigationCommand.PREVIOUS:
            self.previous()
        elif command in _COMMAND_ACTIONS:
            self._apply_selected(_COMMAND_ACTIONS[command])
        else:
            raise ValueError(f"Unknown command: {command}")

    # -------------------------------------------------------------------------
    # Store updates
    # -------------------------------------------------------------------------

    def _on_chunks_changed(
        self,
        previous: list[MergeChunk],
        chunks: list[MergeChunk]
    ) -> None:
        """Re-validate the selection against a rebuilt chunk list."""
        if not chunks:
            self._selected_chunk_id = None
            return

        current_ids = {chunk.id for chunk in chunks}
        if self._selected_chunk_id in current_ids:
            return

        old_index = next(
            (index for index, chunk in enumerate(previous)
             if chunk.id == self._selected_chunk_id),
            0
        )
        successor = chunks[min(old_index, len(chunks) - 1)]
        logger.debug(
            "Selected chunk %s vanished, moving to %s",
            self._selected_chunk_id, successor.id
        )
        self._set_selected(successor.id)
