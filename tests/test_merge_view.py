"""Tests for the Qt merge view.

Runs on the offscreen platform set up in conftest; skipped when PyQt6
cannot be imported.
"""

import tempfile
import unittest
from pathlib import Path

import pytest

QtWidgets = pytest.importorskip("PyQt6.QtWidgets")

from PyQt6.QtCore import QEvent, Qt  # noqa: E402
from PyQt6.QtGui import QKeyEvent  # noqa: E402

from tripane.core.models import LineRange, MergeChunkAction, Side  # noqa: E402
from tripane.services.settings import ApplicationSettings  # noqa: E402
from tripane.ui.merge_view import MergeView, QtFrameScheduler, key_name  # noqa: E402


def _app():
    return QtWidgets.QApplication.instance() or QtWidgets.QApplication([])


def _key(key, text="", modifiers=Qt.KeyboardModifier.NoModifier) -> QKeyEvent:
    return QKeyEvent(QEvent.Type.KeyPress, key, modifiers, text)


class MergeViewTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.app = _app()

    def setUp(self) -> None:
        self.view = MergeView(ApplicationSettings())
        self.view.resize(1200, 600)
        self.base_texts = []
        self.view.base_changed.connect(self.base_texts.append)
        self.assertTrue(self.view.load_texts("a\nb\nc\n", "a\nX\nc\n", "a\nY\nc\n"))

    def tearDown(self) -> None:
        self.view.close()
        self.view.deleteLater()

    def test_loading_selects_the_conflict(self) -> None:
        chunks = self.view.store.chunks
        self.assertEqual(len(chunks), 1)
        self.assertEqual(self.view.navigation.selected_chunk_id, chunks[0].id)
        self.assertIn("1/1", self.view.chunk_label.text())
        self.assertFalse(self.view.keep_base_action.isEnabled())
        self.assertTrue(self.view.apply_left_action.isEnabled())

    def test_apply_left_updates_base_pane(self) -> None:
        self.view.apply_left_action.trigger()

        self.assertEqual(self.view.base_editor.toPlainText(), "a\nX\nc\n")
        self.assertEqual(self.base_texts[-1], "a\nX\nc\n")
        # Only the right side still differs from base
        self.assertFalse(self.view.apply_left_action.isEnabled())
        self.assertTrue(self.view.apply_right_action.isEnabled())

    def test_keys_route_to_navigation(self) -> None:
        self.view.keyPressEvent(_key(Qt.Key.Key_R, "r"))

        self.assertEqual(self.view.store.base_text, "a\nY\nc\n")

    def test_base_pane_keys_are_filtered_while_read_only(self) -> None:
        event = _key(Qt.Key.Key_L, "l")

        self.assertTrue(self.view.eventFilter(self.view.base_editor, event))
        self.assertEqual(self.view.store.base_text, "a\nX\nc\n")

    def test_manual_edit_is_handed_to_store(self) -> None:
        self.view._act(MergeChunkAction.MANUAL)
        self.assertFalse(self.view.base_editor.isReadOnly())

        self.view.base_editor.setPlainText("a\nX\nc\n")
        self.view._commit_base_edit()

        self.assertEqual(self.view.store.base_text, "a\nX\nc\n")
        self.assertEqual(len(self.view.store.chunks), 1)

    def test_manual_toggle_and_escape_end_hand_editing(self) -> None:
        self.view.manual_action.trigger()
        self.assertTrue(self.view.manual_action.isChecked())
        self.assertFalse(self.view.base_editor.isReadOnly())

        self.view.manual_action.trigger()
        self.assertTrue(self.view.base_editor.isReadOnly())

        self.view.manual_action.trigger()
        self.view.base_editor.setPlainText("a\nZ\nc\n")
        self.assertTrue(self.view.eventFilter(self.view.base_editor, _key(Qt.Key.Key_Escape)))

        self.assertTrue(self.view.base_editor.isReadOnly())
        self.assertFalse(self.view.manual_action.isChecked())
        self.assertEqual(self.view.store.base_text, "a\nZ\nc\n")

        # Base pane keys reach navigation again
        self.assertTrue(self.view.eventFilter(self.view.base_editor, _key(Qt.Key.Key_L, "l")))
        self.assertEqual(self.view.store.base_text, "a\nX\nc\n")

    def test_viewport_measures_lines(self) -> None:
        viewport = self.view.viewports[Side.BASE]

        first = viewport.measure(LineRange(0, 0))
        second = viewport.measure(LineRange(1, 1))
        insertion = viewport.measure(LineRange(1, 0))

        self.assertGreater(first.height, 0)
        self.assertGreaterEqual(second.top, first.bottom)
        self.assertEqual(insertion.height, 0)
        self.assertEqual(insertion.top, second.top)

    def test_save_writes_base(self) -> None:
        saved = []
        self.view.saved.connect(saved.append)
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "merged.txt"
            self.view.apply_left_action.trigger()

            self.assertTrue(self.view.save(path))

            self.assertEqual(path.read_text(encoding="utf-8"), "a\nX\nc\n")
        self.assertEqual(saved, [str(path)])


class LineEndingTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.app = _app()

    def setUp(self) -> None:
        self.view = MergeView(ApplicationSettings())
        self.view.load_texts(
            "a\r\nb\r\nc\r\nd\r\ne\r\n",
            "a\r\nX\r\nc\r\nd\r\ne\r\n",
            "a\r\nb\r\nc\r\nY\r\ne\r\n",
        )

    def tearDown(self) -> None:
        self.view.close()
        self.view.deleteLater()

    def test_hand_edit_keeps_crlf_breaks(self) -> None:
        chunk_ids = [chunk.id for chunk in self.view.store.chunks]
        self.assertEqual(len(chunk_ids), 2)

        self.view.manual_action.trigger()
        self.view.base_editor.setPlainText("a\nb\nc\nd\ne\nf\n")
        self.view.finish_manual_edit()

        self.assertEqual(self.view.store.base_text, "a\r\nb\r\nc\r\nd\r\ne\r\nf\r\n")
        self.assertEqual([chunk.id for chunk in self.view.store.chunks], chunk_ids)

        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "merged.txt"
            self.assertTrue(self.view.save(path))
            self.assertEqual(path.read_bytes(), b"a\r\nb\r\nc\r\nd\r\ne\r\nf\r\n")


class QtHelperTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.app = _app()

    def test_key_names(self) -> None:
        self.assertEqual(key_name(_key(Qt.Key.Key_Down)), "Down")
        self.assertEqual(key_name(_key(Qt.Key.Key_N, "n")), "n")
        self.assertIsNone(key_name(_key(Qt.Key.Key_N, "n", Qt.KeyboardModifier.ControlModifier)))

    def test_frame_scheduler_arms_timer(self) -> None:
        calls = []
        scheduler = QtFrameScheduler(calls.append, interval_ms=16)

        scheduler.request(Side.BASE)
        self.assertTrue(scheduler._timer.isActive())

        scheduler.cancel()
        self.assertFalse(scheduler._timer.isActive())
        self.assertEqual(calls, [])


if __name__ == "__main__":
    unittest.main()
