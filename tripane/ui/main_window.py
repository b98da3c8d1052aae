"""
Main application window hosting a merge session.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from PyQt6.QtGui import QAction, QCloseEvent, QKeySequence
from PyQt6.QtWidgets import QFileDialog, QMainWindow, QMessageBox, QWidget

from tripane.services.file_io import FileIOService
from tripane.services.settings import SettingsManager
from tripane.ui.merge_view import MergeView

logger = logging.getLogger(__name__)


class MergeWindow(QMainWindow):
    """Top-level window: menus, window state and unsaved-change tracking."""

    def __init__(
        self,
        settings_manager: SettingsManager,
        parent: Optional[QWidget] = None
    ):
        super().__init__(parent)

        self._settings_manager = settings_manager
        self._settings = settings_manager.settings
        self._modified = False
        self._file_name = "TriPane"

        self.merge_view = MergeView(self._settings)
        self.merge_view.base_changed.connect(self._on_base_changed)
        self.merge_view.saved.connect(self._on_saved)
        self.setCentralWidget(self.merge_view)

        self._create_menus()

        ui = self._settings.ui
        self.resize(ui.window_width, ui.window_height)
        if ui.window_maximized:
            self.showMaximized()

        self._update_title()

    def _create_menus(self) -> None:
        menu_bar = self.menuBar()
        view = self.merge_view

        # File menu
        file_menu = menu_bar.addMenu("&File")
        file_menu.addAction(view.save_action)
        file_menu.addAction(view.save_as_action)

        export_action = QAction("Export With Conflict &Markers...", self)
        export_action.triggered.connect(self.export_marked)
        file_menu.addAction(export_action)

        file_menu.addSeparator()

        quit_action = QAction("&Quit", self)
        quit_action.setShortcut(QKeySequence.StandardKey.Quit)
        quit_action.triggered.connect(self.close)
        file_menu.addAction(quit_action)

        # Merge menu
        merge_menu = menu_bar.addMenu("&Merge")
        merge_menu.addAction(view.prev_chunk_action)
        merge_menu.addAction(view.next_chunk_action)
        merge_menu.addSeparator()
        merge_menu.addAction(view.apply_left_action)
        merge_menu.addAction(view.keep_base_action)
        merge_menu.addAction(view.apply_right_action)
        merge_menu.addAction(view.manual_action)
        merge_menu.addSeparator()
        merge_menu.addAction(view.auto_merge_action)

        # View menu
        view_menu = menu_bar.addMenu("&View")
        view_menu.addAction(view.sync_scroll_action)

    def open_merge(
        self,
        base_path: str | Path,
        left_path: str | Path,
        right_path: str | Path,
        output_path: Optional[str | Path] = None
    ) -> bool:
        """Load three files into the merge view."""
        if not self.merge_view.load_files(base_path, left_path, right_path, output_path):
            QMessageBox.warning(
                self,
                "Open Merge",
                "Could not load the merge inputs. See the log for details."
            )
            return False

        self._settings.last_directory = str(Path(base_path).resolve().parent)
        self._modified = False
        self._update_title(Path(output_path or base_path).name)
        return True

    def export_marked(self) -> bool:
        """Write base with conflict markers around unresolved conflicts."""
        path, _ = QFileDialog.getSaveFileName(
            self,
            "Export With Conflict Markers",
            self._settings.last_directory,
            "All Files (*)"
        )
        if not path:
            return False

        merge = self._settings.merge
        text = self.merge_view.store.marked_text(
            marker_left=merge.conflict_marker_left,
            marker_base=merge.conflict_marker_base,
            marker_sep=merge.conflict_marker_sep,
            marker_right=merge.conflict_marker_right,
            include_base=merge.show_base_in_markers
        )
        result = FileIOService().write_file(path, text)
        if not result.success:
            logger.error("Exporting marked merge to %s failed: %s", path, result.error)
            QMessageBox.warning(self, "Export", f"Export failed:\n\n{result.error}")
            return False
        return True

    def _on_base_changed(self, _text: str) -> None:
        self._modified = True
        self._update_title()

    def _on_saved(self, path: str) -> None:
        self._modified = False
        self._update_title(Path(path).name)

    def _update_title(self, name: Optional[str] = None) -> None:
        if name is not None:
            self._file_name = name
        self.setWindowTitle(f"{self._file_name}{' *' if self._modified else ''} - TriPane Merge")

    def closeEvent(self, event: QCloseEvent) -> None:
        if self._modified:
            reply = QMessageBox.question(
                self,
                "Unsaved Changes",
                "The merge result has unsaved changes. Save before closing?",
                QMessageBox.StandardButton.Save
                | QMessageBox.StandardButton.Discard
                | QMessageBox.StandardButton.Cancel
            )
            if reply == QMessageBox.StandardButton.Cancel:
                event.ignore()
                return
            if reply == QMessageBox.StandardButton.Save and not self.merge_view.save():
                event.ignore()
                return

        ui = self._settings.ui
        ui.window_maximized = self.isMaximized()
        if not ui.window_maximized:
            ui.window_width = self.width()
            ui.window_height = self.height()
        self._settings.merge.sync_scroll = self.merge_view.aligner.enabled
        self._settings_manager.save(self._settings)

        self.merge_view.close()
        super().closeEvent(event)
