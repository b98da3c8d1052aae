"""Tests for settings persistence."""

import json
import tempfile
import unittest
from pathlib import Path

from tripane.services.settings import ApplicationSettings, SettingsManager, Theme


class SettingsManagerTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "nested" / "settings.json"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_missing_file_gives_defaults(self) -> None:
        settings = SettingsManager(self.path).settings
        self.assertEqual(settings, ApplicationSettings())
        self.assertEqual(settings.merge.alignment_chunk_cap, 12)
        self.assertEqual(settings.merge.alignment_threshold_px, 0.5)

    def test_save_and_load_round_trip(self) -> None:
        manager = SettingsManager(self.path)
        settings = manager.settings
        settings.merge.sync_scroll = False
        settings.merge.alignment_chunk_cap = 8
        settings.keys.next = ["j"]
        settings.ui.theme = Theme.DARK
        settings.last_directory = "/tmp/work"

        self.assertTrue(manager.save())

        stored = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertEqual(stored["ui"]["theme"], "DARK")

        loaded = SettingsManager(self.path).load()
        self.assertEqual(loaded, settings)

    def test_partial_file_fills_in_defaults(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text(json.dumps({"merge": {"frame_interval_ms": 33}}), encoding="utf-8")

        loaded = SettingsManager(self.path).load()

        self.assertEqual(loaded.merge.frame_interval_ms, 33)
        self.assertTrue(loaded.merge.sync_scroll)
        self.assertEqual(loaded.keys.apply_left, ["l"])

    def test_corrupt_file_falls_back_to_defaults(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{not json", encoding="utf-8")

        with self.assertLogs("tripane.services.settings", level="WARNING"):
            loaded = SettingsManager(self.path).load()

        self.assertEqual(loaded, ApplicationSettings())

    def test_observers_are_notified_on_save(self) -> None:
        manager = SettingsManager(self.path)
        seen = []
        manager.add_observer(seen.append)

        manager.reset()

        self.assertEqual(seen, [ApplicationSettings()])

    def test_key_bindings_mapping(self) -> None:
        mapping = ApplicationSettings().keys.as_mapping()
        self.assertEqual(mapping["next"], ["n", "Down"])
        self.assertEqual(mapping["keep_base"], ["i"])


class ThemeTests(unittest.TestCase):
    def test_from_string_accepts_values_and_names(self) -> None:
        self.assertEqual(Theme.from_string("dark"), Theme.DARK)
        self.assertEqual(Theme.from_string("LIGHT"), Theme.LIGHT)
        self.assertEqual(Theme.from_string("neon"), Theme.SYSTEM)


if __name__ == "__main__":
    unittest.main()
