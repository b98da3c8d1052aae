"""
Three-pane merge view for chunk resolution.

Provides the host UI around the merge engine:
- Left, base and right panes with chunk highlighting
- Keyboard navigation and resolution
- Chunk-aligned synchronized scrolling
- Saving the resolved base
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from PyQt6.QtCore import Qt, QEvent, QObject, QTimer, pyqtSignal
from PyQt6.QtGui import QColor, QFont, QKeyEvent, QKeySequence, QTextCursor, QTextFormat
from PyQt6.QtWidgets import (
    QFileDialog, QLabel, QSplitter, QStatusBar,
    QTextEdit, QToolBar, QVBoxLayout, QWidget
)

from tripane.core.merge.frame_scheduler import FrameScheduler
from tripane.core.merge.navigation import NavigationController, bindings_from_keys
from tripane.core.merge.resolution import ResolutionStore
from tripane.core.merge.scroll_sync import SIDES, ScrollAligner
from tripane.core.models import (
    ActionOutcome, LineMetrics, LineRange, MergeChunk,
    MergeChunkAction, MergeChunkKind, Side
)
from tripane.services.file_io import (
    FileIOService, LineEnding, plain_newlines, restore_line_endings
)
from tripane.services.settings import ApplicationSettings, Theme

logger = logging.getLogger(__name__)


class MergeViewColors:
    """Color scheme for merge view."""
    # These will be updated by the load() method
    CONFLICT_BACKGROUND = QColor(255, 230, 230)
    RESOLVED_BACKGROUND = QColor(230, 255, 230)
    ADDED_LINE = QColor(220, 255, 220)
    REMOVED_LINE = QColor(255, 220, 220)
    CHANGED_LINE = QColor(255, 255, 200)
    CURRENT_CHUNK = QColor(255, 240, 150)

    @classmethod
    def load(cls, theme: Theme) -> None:
        """Load colors based on theme."""
        if theme == Theme.DARK:
            cls.CONFLICT_BACKGROUND = QColor(60, 30, 30)
            cls.RESOLVED_BACKGROUND = QColor(30, 60, 30)
            cls.ADDED_LINE = QColor(30, 60, 30)
            cls.REMOVED_LINE = QColor(60, 30, 30)
            cls.CHANGED_LINE = QColor(60, 60, 30)
            cls.CURRENT_CHUNK = QColor(80, 80, 40)
        else:
            cls.CONFLICT_BACKGROUND = QColor(255, 230, 230)
            cls.RESOLVED_BACKGROUND = QColor(230, 255, 230)
            cls.ADDED_LINE = QColor(220, 255, 220)
            cls.REMOVED_LINE = QColor(255, 220, 220)
            cls.CHANGED_LINE = QColor(255, 255, 200)
            cls.CURRENT_CHUNK = QColor(255, 240, 150)

    @classmethod
    def for_kind(cls, kind: MergeChunkKind) -> QColor:
        mapping = {
            MergeChunkKind.INSERT: cls.ADDED_LINE,
            MergeChunkKind.DELETE: cls.REMOVED_LINE,
            MergeChunkKind.CHANGE: cls.CHANGED_LINE,
            MergeChunkKind.CONFLICT: cls.CONFLICT_BACKGROUND,
        }
        return mapping[kind]


class MergePaneEdit(QTextEdit):
    """
    Text pane for one merge document.

    Features:
    - Chunk highlighting
    - Pixel-based vertical scrolling for alignment
    - Centering on a line
    """

    def __init__(
        self,
        side: Side,
        parent: Optional[QWidget] = None,
        font_family: str = "Consolas",
        font_size: int = 10
    ):
        super().__init__(parent)

        self.side = side

        self.setReadOnly(True)
        self.setAcceptRichText(False)
        self.setLineWrapMode(QTextEdit.LineWrapMode.NoWrap)

        font = QFont(font_family, font_size)
        font.setStyleHint(QFont.StyleHint.Monospace)
        self.setFont(font)

    def set_document_text(self, text: str) -> None:
        """Replace the text, keeping the scroll position."""
        bar = self.verticalScrollBar()
        value = bar.value()
        self.setPlainText(text)
        bar.setValue(min(value, bar.maximum()))

    def set_chunk_highlights(self, highlights: list[tuple[LineRange, QColor]]) -> None:
        """Paint full-width backgrounds behind line ranges."""
        selections = []
        document = self.document()

        for line_range, color in highlights:
            if line_range.is_empty:
                continue
            start = document.findBlockByNumber(line_range.start_line)
            end = document.findBlockByNumber(
                min(line_range.end_line, document.blockCount() - 1)
            )
            if not start.isValid() or not end.isValid():
                continue

            selection = QTextEdit.ExtraSelection()
            selection.format.setBackground(color)
            selection.format.setProperty(QTextFormat.Property.FullWidthSelection, True)
            cursor = QTextCursor(start)
            cursor.setPosition(end.position(), QTextCursor.MoveMode.KeepAnchor)
            selection.cursor = cursor
            selections.append(selection)

        self.setExtraSelections(selections)

    def block_metrics(self, line_range: LineRange) -> LineMetrics:
        """Document pixel extent of a line range."""
        document = self.document()
        layout = document.documentLayout()
        last = document.blockCount() - 1

        start = document.findBlockByNumber(min(line_range.start_line, last))
        start_rect = layout.blockBoundingRect(start)

        if line_range.is_empty:
            if line_range.start_line > last:
                return LineMetrics(start_rect.bottom(), start_rect.bottom())
            return LineMetrics(start_rect.top(), start_rect.top())

        end = document.findBlockByNumber(min(line_range.end_line, last))
        return LineMetrics(start_rect.top(), layout.blockBoundingRect(end).bottom())

    def center_on_line(self, line: int) -> None:
        """Scroll so the line sits in the middle of the viewport."""
        metrics = self.block_metrics(LineRange(line, line))
        bar = self.verticalScrollBar()
        offset = metrics.center - self.viewport().height() / 2
        bar.setValue(max(0, min(round(offset), bar.maximum())))

        block = self.document().findBlockByNumber(line)
        if block.isValid():
            self.setTextCursor(QTextCursor(block))


class QtViewport:
    """Viewport geometry of a MergePaneEdit for the scroll aligner."""

    def __init__(self, editor: MergePaneEdit):
        self.editor = editor

    def scroll_top(self) -> float:
        return float(self.editor.verticalScrollBar().value())

    def max_scroll_top(self) -> float:
        return float(self.editor.verticalScrollBar().maximum())

    def height(self) -> float:
        return float(self.editor.viewport().height())

    def measure(self, line_range: LineRange) -> LineMetrics:
        return self.editor.block_metrics(line_range)

    def scroll_to(self, offset: float) -> float:
        bar = self.editor.verticalScrollBar()
        bar.setValue(round(offset))
        return float(bar.value())


class QtFrameScheduler(FrameScheduler[Side]):
    """Frame scheduler driven by a single-shot QTimer."""

    def __init__(self, callback: Callable[[Side], None], interval_ms: int = 16):
        super().__init__(callback)
        self._timer = QTimer()
        self._timer.setSingleShot(True)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self.tick)

    def _arm(self) -> None:
        self._timer.start()

    def _disarm(self) -> None:
        self._timer.stop()


_QT_KEY_NAMES = {
    Qt.Key.Key_Down: "Down",
    Qt.Key.Key_Up: "Up",
}


def key_name(event: QKeyEvent) -> Optional[str]:
    """Name of a plain keystroke as used in key bindings."""
    modifiers = event.modifiers() & ~Qt.KeyboardModifier.KeypadModifier
    if modifiers not in (Qt.KeyboardModifier.NoModifier, Qt.KeyboardModifier.ShiftModifier):
        return None
    key = Qt.Key(event.key())
    if key in _QT_KEY_NAMES:
        return _QT_KEY_NAMES[key]
    return event.text() or None


class MergeView(QWidget):
    """
    Three-pane merge view.

    Features:
    - Left / base / right panes with chunk highlighting
    - Toolbar and keyboard resolution (n/p, l, r, i)
    - Chunk-aligned synchronized scrolling
    - Save functionality
    """

    # Signal when base text changes after a resolution or edit
    base_changed = pyqtSignal(str)

    # Signal when a chunk becomes selected
    chunk_selected = pyqtSignal(str)  # chunk_id

    # Signal when the merged base was written
    saved = pyqtSignal(str)  # output_path

    def __init__(
        self,
        settings: Optional[ApplicationSettings] = None,
        parent: Optional[QWidget] = None
    ):
        super().__init__(parent)

        self._settings = settings or ApplicationSettings()
        self._file_io = FileIOService()
        self._output_path: Optional[Path] = None
        self._encoding = 'utf-8'
        self._line_ending = LineEnding.LF
        self._updating_text = False

        MergeViewColors.load(self._settings.ui.theme)

        # View observer first so panes hold the new text before navigation reveals
        self.store = ResolutionStore()
        self.store.add_observer(self._on_chunks_changed)
        self.navigation = NavigationController(
            self.store,
            reveal=self._reveal_chunk,
            key_bindings=bindings_from_keys(self._settings.keys.as_mapping())
        )

        self._setup_ui()

        merge_settings = self._settings.merge
        self.viewports = {side: QtViewport(self.editors[side]) for side in SIDES}
        self.aligner = ScrollAligner(
            self.viewports,
            scheduler_factory=lambda callback: QtFrameScheduler(
                callback, merge_settings.frame_interval_ms
            ),
            max_visible_chunks=merge_settings.alignment_chunk_cap,
            threshold=merge_settings.alignment_threshold_px,
            enabled=merge_settings.sync_scroll
        )
        self._setup_scroll_sync()

        self._base_edit_timer = QTimer(self)
        self._base_edit_timer.setSingleShot(True)
        self._base_edit_timer.setInterval(300)
        self._base_edit_timer.timeout.connect(self._commit_base_edit)

        self._refresh()

    def _setup_ui(self) -> None:
        """Setup the main UI."""
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(0)

        ui = self._settings.ui
        self.editors: dict[Side, MergePaneEdit] = {
            side: MergePaneEdit(side, font_family=ui.font_family, font_size=ui.font_size)
            for side in SIDES
        }
        self.left_editor = self.editors[Side.LEFT]
        self.base_editor = self.editors[Side.BASE]
        self.right_editor = self.editors[Side.RIGHT]

        self.toolbar = self._create_toolbar()
        self.toolbar.setVisible(ui.show_toolbar)
        layout.addWidget(self.toolbar)

        splitter = QSplitter(Qt.Orientation.Horizontal)
        titles = {
            Side.LEFT: ("Left", "#e0ffe0"),
            Side.BASE: ("Base (Result)", "#e0e0ff"),
            Side.RIGHT: ("Right", "#ffe0e0"),
        }
        for side in SIDES:
            container = QWidget()
            container_layout = QVBoxLayout(container)
            container_layout.setContentsMargins(4, 4, 4, 4)

            title, background = titles[side]
            header = QLabel(title)
            header.setStyleSheet(
                f"font-weight: bold; background-color: {background}; padding: 4px;"
            )
            container_layout.addWidget(header)
            container_layout.addWidget(self.editors[side])
            splitter.addWidget(container)

            self.editors[side].installEventFilter(self)

        layout.addWidget(splitter)

        self.status_bar = QStatusBar()
        layout.addWidget(self.status_bar)

        self.base_editor.textChanged.connect(self._on_base_text_edited)

    def _create_toolbar(self) -> QToolBar:
        """Create the toolbar."""
        toolbar = QToolBar()
        toolbar.setMovable(False)

        # Navigation
        self.prev_chunk_action = toolbar.addAction("◀ Previous")
        self.prev_chunk_action.triggered.connect(self.navigation.previous)

        self.next_chunk_action = toolbar.addAction("Next ▶")
        self.next_chunk_action.triggered.connect(self.navigation.next)

        toolbar.addSeparator()

        self.chunk_label = QLabel(" Chunk: 0/0 ")
        toolbar.addWidget(self.chunk_label)

        toolbar.addSeparator()

        # Resolution
        self.apply_left_action = toolbar.addAction("Apply Left")
        self.apply_left_action.triggered.connect(
            lambda: self._act(MergeChunkAction.APPLY_LEFT)
        )

        self.keep_base_action = toolbar.addAction("Keep Base")
        self.keep_base_action.triggered.connect(
            lambda: self._act(MergeChunkAction.KEEP_BASE)
        )

        self.apply_right_action = toolbar.addAction("Apply Right")
        self.apply_right_action.triggered.connect(
            lambda: self._act(MergeChunkAction.APPLY_RIGHT)
        )

        self.manual_action = toolbar.addAction("Edit Manually")
        self.manual_action.setCheckable(True)
        self.manual_action.setToolTip("Edit base by hand; uncheck or press Esc when done")
        self.manual_action.triggered.connect(self._on_manual_triggered)

        self.auto_merge_action = toolbar.addAction("Auto Merge")
        self.auto_merge_action.triggered.connect(self.auto_merge)

        toolbar.addSeparator()

        self.sync_scroll_action = toolbar.addAction("Sync Scroll")
        self.sync_scroll_action.setCheckable(True)
        self.sync_scroll_action.setChecked(self._settings.merge.sync_scroll)
        self.sync_scroll_action.triggered.connect(self._toggle_sync_scroll)

        toolbar.addSeparator()

        self.save_action = toolbar.addAction("Save")
        self.save_action.setShortcut(QKeySequence.StandardKey.Save)
        self.save_action.triggered.connect(lambda: self.save())

        self.save_as_action = toolbar.addAction("Save As...")
        self.save_as_action.triggered.connect(self._save_as)

        return toolbar

    def _setup_scroll_sync(self) -> None:
        """Route every pane's scroll events to the aligner."""
        for side, editor in self.editors.items():
            editor.verticalScrollBar().valueChanged.connect(
                lambda _value, s=side: self.aligner.on_scroll(s)
            )

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def load_texts(
        self,
        base: str,
        left: str,
        right: str,
        line_ending: Optional[LineEnding] = None
    ) -> bool:
        """Start a merge session from text supplied by the host."""
        self._lock_base_editor()
        self._updating_text = True
        try:
            self.left_editor.setPlainText(left)
            self.right_editor.setPlainText(right)
            self.base_editor.setPlainText(base)
        finally:
            self._updating_text = False

        if not self.store.reset(base, left, right):
            self.status_bar.showMessage("Could not compute merge chunks", 5000)
            return False

        self._line_ending = LineEnding.of(base) if line_ending is None else line_ending
        self.aligner.reset()
        return True

    def load_files(
        self,
        base_path: str | Path,
        left_path: str | Path,
        right_path: str | Path,
        output_path: Optional[str | Path] = None
    ) -> bool:
        """Load the three versions from disk."""
        contents = {}
        for side, path in ((Side.BASE, base_path), (Side.LEFT, left_path), (Side.RIGHT, right_path)):
            result = self._file_io.read_file(path)
            if not result.success:
                logger.error("Failed to read %s file %s: %s", side.value, path, result.error)
                self.status_bar.showMessage(f"Cannot open {path}: {result.error}", 5000)
                return False
            contents[side] = result.content

        self._encoding = contents[Side.BASE].encoding
        self._output_path = Path(output_path) if output_path else Path(base_path)

        return self.load_texts(
            contents[Side.BASE].content,
            contents[Side.LEFT].content,
            contents[Side.RIGHT].content,
            contents[Side.BASE].line_ending
        )

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def _act(self, action: MergeChunkAction) -> ActionOutcome:
        """Apply an action to the selected chunk."""
        chunk = self.navigation.selected_chunk
        if chunk is None:
            return ActionOutcome.REJECTED_STALE

        outcome = self.store.apply(chunk, action)
        if outcome == ActionOutcome.REJECTED_ILLEGAL:
            self.status_bar.showMessage(
                f"{action.value.replace('_', ' ').title()} is not available for this chunk", 3000
            )
        elif outcome == ActionOutcome.FAILED:
            self.status_bar.showMessage("Could not rebuild chunks; change not applied", 5000)
        elif action == MergeChunkAction.MANUAL:
            self.base_editor.setReadOnly(False)
            self.manual_action.setChecked(True)
            self.base_editor.setFocus()
            self._refresh()
        elif outcome == ActionOutcome.RECORDED:
            self._refresh()
        return outcome

    def auto_merge(self) -> int:
        applied = self.store.auto_merge()
        self.status_bar.showMessage(f"Auto-merged {applied} chunks", 3000)
        return applied

    def _on_base_text_edited(self) -> None:
        if self._updating_text or self.base_editor.isReadOnly():
            return
        self._base_edit_timer.start()

    def _commit_base_edit(self) -> None:
        """Hand a manual base edit to the store, in the file's line endings."""
        lines = restore_line_endings(
            self.base_editor.toPlainText(), self.store.base_lines, self._line_ending.newline
        )
        self.store.set_base(lines)

    def _on_manual_triggered(self, checked: bool) -> None:
        if not checked:
            self.finish_manual_edit()
        elif self._act(MergeChunkAction.MANUAL) != ActionOutcome.RECORDED:
            self.manual_action.setChecked(False)

    def finish_manual_edit(self) -> None:
        """Commit any pending hand edit and make base read-only again."""
        self._flush_base_edit()
        self._lock_base_editor()
        self._refresh()

    def _flush_base_edit(self) -> None:
        if self._base_edit_timer.isActive():
            self._base_edit_timer.stop()
            self._commit_base_edit()

    def _lock_base_editor(self) -> None:
        self._base_edit_timer.stop()
        self.base_editor.setReadOnly(True)
        self.manual_action.setChecked(False)

    # -------------------------------------------------------------------------
    # Updates
    # -------------------------------------------------------------------------

    def _on_chunks_changed(self, previous: list[MergeChunk], chunks: list[MergeChunk]) -> None:
        """Bring the panes in line with a rebuilt chunk set."""
        base_text = self.store.base_text
        if self.base_editor.toPlainText() != plain_newlines(base_text):
            self._updating_text = True
            try:
                self.base_editor.set_document_text(base_text)
            finally:
                self._updating_text = False

        self.aligner.set_chunks(chunks)
        self.aligner.sync_baseline()

        if not chunks:
            self._lock_base_editor()

        self._refresh()
        self.base_changed.emit(base_text)

    def _reveal_chunk(self, chunk: MergeChunk) -> None:
        """Selection side effect: center the base pane on the chunk."""
        if self._settings.merge.center_on_select:
            self.base_editor.center_on_line(chunk.base_range.start_line)
        self._refresh()
        self.chunk_selected.emit(chunk.id)

    def _refresh(self) -> None:
        """Update highlights, toolbar state and status."""
        chunks = self.store.chunks
        selected = self.navigation.selected_chunk

        for side, editor in self.editors.items():
            highlights = []
            for chunk in chunks:
                line_range = chunk.range_for(side)
                if line_range is None:
                    continue
                if selected is not None and chunk.id == selected.id:
                    color = MergeViewColors.CURRENT_CHUNK
                elif self.store.recorded_action(chunk) is not None:
                    color = MergeViewColors.RESOLVED_BACKGROUND
                else:
                    color = MergeViewColors.for_kind(chunk.kind)
                highlights.append((line_range, color))
            editor.set_chunk_highlights(highlights)

        self.apply_left_action.setEnabled(
            selected is not None and selected.allows(MergeChunkAction.APPLY_LEFT))
        self.apply_right_action.setEnabled(
            selected is not None and selected.allows(MergeChunkAction.APPLY_RIGHT))
        self.keep_base_action.setEnabled(
            selected is not None and selected.allows(MergeChunkAction.KEEP_BASE))
        self.manual_action.setEnabled(
            selected is not None or not self.base_editor.isReadOnly())
        self.prev_chunk_action.setEnabled(bool(chunks))
        self.next_chunk_action.setEnabled(bool(chunks))

        total = len(chunks)
        if total:
            index = max(0, self.store.index_of(self.navigation.selected_chunk_id))
            self.chunk_label.setText(f" Chunk: {index + 1}/{total} ")
            self.status_bar.showMessage(
                f"{total} chunks, {self.store.conflict_count} conflicts"
            )
        else:
            self.chunk_label.setText(" No differences ")
            self.status_bar.showMessage("All chunks resolved")

    def _toggle_sync_scroll(self, checked: bool) -> None:
        """Toggle synchronized scrolling."""
        self.aligner.set_enabled(checked)

    # -------------------------------------------------------------------------
    # Keys
    # -------------------------------------------------------------------------

    def eventFilter(self, obj: QObject, event: QEvent) -> bool:
        """Route navigation keys from the panes to the controller."""
        if event.type() == QEvent.Type.KeyPress and isinstance(obj, MergePaneEdit):
            # Typing into base during a manual edit stays with the editor
            if not obj.isReadOnly():
                if event.key() == Qt.Key.Key_Escape:
                    self.finish_manual_edit()
                    return True
                return False
            if self._handle_key(event):
                return True
        return super().eventFilter(obj, event)

    def keyPressEvent(self, event: QKeyEvent) -> None:
        if not self._handle_key(event):
            super().keyPressEvent(event)

    def _handle_key(self, event: QKeyEvent) -> bool:
        name = key_name(event)
        if name is None:
            return False
        return self.navigation.handle_key(name)

    # -------------------------------------------------------------------------
    # Saving
    # -------------------------------------------------------------------------

    def save(self, path: Optional[str | Path] = None) -> bool:
        """Write the current base to the output path."""
        self._flush_base_edit()
        target = Path(path) if path else self._output_path
        if target is None:
            return self._save_as()

        merge_settings = self._settings.merge
        result = self._file_io.write_file(
            target,
            self.store.base_text,
            encoding=self._encoding,
            create_backup=merge_settings.create_backup,
            backup_extension=merge_settings.backup_extension
        )
        if not result.success:
            logger.error("Saving merge result to %s failed: %s", target, result.error)
            self.status_bar.showMessage(f"Save failed: {result.error}", 5000)
            return False

        self._output_path = target
        self.status_bar.showMessage(f"Saved to {target}", 3000)
        self.saved.emit(str(target))
        return True

    def _save_as(self) -> bool:
        path, _ = QFileDialog.getSaveFileName(
            self,
            "Save Merge Result",
            str(self._output_path or ''),
            "All Files (*)"
        )
        if not path:
            return False
        return self.save(path)

    def closeEvent(self, event) -> None:
        self.aligner.reset()
        self.navigation.detach()
        super().closeEvent(event)

