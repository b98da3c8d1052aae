"""
Application settings management.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class Theme(Enum):
    """UI theme options."""
    SYSTEM = "system"
    LIGHT = "light"
    DARK = "dark"

    @classmethod
    def from_string(cls, value: str) -> 'Theme':
        """Create from string value."""
        try:
            # Try to match by value
            for theme in cls:
                if theme.value == value.lower():
                    return theme
            # Try to match by name
            return cls[value.upper()]
        except (KeyError, AttributeError):
            return cls.SYSTEM


@dataclass
class MergeSettings:
    """Settings for merge resolution and pane synchronization."""
    sync_scroll: bool = True
    alignment_chunk_cap: int = 12
    alignment_threshold_px: float = 0.5
    frame_interval_ms: int = 16
    center_on_select: bool = True

    conflict_marker_left: str = "<<<<<<< LEFT"
    conflict_marker_base: str = "||||||| BASE"
    conflict_marker_sep: str = "======="
    conflict_marker_right: str = ">>>>>>> RIGHT"
    show_base_in_markers: bool = True

    create_backup: bool = True
    backup_extension: str = ".orig"


@dataclass
class KeyBindings:
    """Keys bound to each navigation command."""
    next: list[str] = field(default_factory=lambda: ["n", "Down"])
    previous: list[str] = field(default_factory=lambda: ["p", "Up"])
    apply_left: list[str] = field(default_factory=lambda: ["l"])
    apply_right: list[str] = field(default_factory=lambda: ["r"])
    keep_base: list[str] = field(default_factory=lambda: ["i"])

    def as_mapping(self) -> dict[str, list[str]]:
        """Command name to keys, as understood by the navigation controller."""
        return {
            'next': list(self.next),
            'previous': list(self.previous),
            'apply_left': list(self.apply_left),
            'apply_right': list(self.apply_right),
            'keep_base': list(self.keep_base),
        }


@dataclass
class UISettings:
    """User interface settings."""
    theme: Theme = Theme.LIGHT
    font_family: str = "Consolas"
    font_size: int = 10
    window_width: int = 1400
    window_height: int = 800
    window_maximized: bool = False
    show_toolbar: bool = True


@dataclass
class ApplicationSettings:
    """Main application settings container."""
    merge: MergeSettings = field(default_factory=MergeSettings)
    keys: KeyBindings = field(default_factory=KeyBindings)
    ui: UISettings = field(default_factory=UISettings)

    last_directory: str = ""


class SettingsManager:
    """Manager for loading/saving application settings."""

    def __init__(self, settings_path: Optional[Path] = None):
        self.settings_path = settings_path or self._get_default_path()
        self._settings: Optional[ApplicationSettings] = None
        self._observers: list[Callable[[ApplicationSettings], None]] = []

    @staticmethod
    def _get_default_path() -> Path:
        """Get the default settings file path."""
        if os.name == 'nt':
            # Windows
            app_data = os.environ.get('APPDATA', os.path.expanduser('~'))
            return Path(app_data) / 'TriPane' / 'settings.json'
        else:
            # Linux/Mac
            config_home = os.environ.get('XDG_CONFIG_HOME',
                                         os.path.expanduser('~/.config'))
            return Path(config_home) / 'tripane' / 'settings.json'

    @property
    def settings(self) -> ApplicationSettings:
        """Get current settings, loading from disk if needed."""
        if self._settings is None:
            self._settings = self.load()
        return self._settings

    def load(self) -> ApplicationSettings:
        """Load settings from disk."""
        if not self.settings_path.exists():
            return ApplicationSettings()

        try:
            with open(self.settings_path, 'r', encoding='utf-8') as f:
                data = json.load(f)

            return self._from_dict(data)
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning("Could not load settings from %s: %s", self.settings_path, e)
            return ApplicationSettings()

    def save(self, settings: Optional[ApplicationSettings] = None) -> bool:
        """Save settings to disk."""
        settings = settings or self._settings
        if settings is None:
            return False

        try:
            self.settings_path.parent.mkdir(parents=True, exist_ok=True)

            data = self._to_dict(settings)

            with open(self.settings_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)

            self._settings = settings
            self._notify_observers()
            return True

        except OSError as e:
            logger.error("Could not save settings to %s: %s", self.settings_path, e)
            return False

    def reset(self) -> ApplicationSettings:
        """Reset to default settings."""
        self._settings = ApplicationSettings()
        self.save()
        return self._settings

    def add_observer(self, callback: Callable[[ApplicationSettings], None]) -> None:
        """Add a callback to be notified of settings changes."""
        self._observers.append(callback)

    def remove_observer(self, callback: Callable[[ApplicationSettings], None]) -> None:
        """Remove a settings change observer."""
        if callback in self._observers:
            self._observers.remove(callback)

    def _notify_observers(self) -> None:
        """Notify all observers of settings change."""
        for callback in self._observers:
            try:
                callback(self._settings)
            except Exception:
                logger.exception("Settings observer %r failed", callback)

    def _to_dict(self, settings: ApplicationSettings) -> dict:
        """Convert settings to dictionary for JSON serialization."""
        def convert(obj: Any) -> Any:
            if isinstance(obj, Enum):
                return obj.name
            elif hasattr(obj, '__dataclass_fields__'):
                return {k: convert(getattr(obj, k)) for k in asdict(obj)}
            elif isinstance(obj, list):
                return [convert(item) for item in obj]
            elif isinstance(obj, dict):
                return {k: convert(v) for k, v in obj.items()}
            else:
                return obj

        return convert(settings)

    def _from_dict(self, data: dict) -> ApplicationSettings:
        """Convert dictionary back to settings objects."""
        def get_enum(enum_class: type, value: Any) -> Enum:
            if isinstance(value, str):
                try:
                    return enum_class[value]
                except KeyError:
                    return list(enum_class)[0]
            return value

        merge_data = data.get('merge', {})
        defaults = MergeSettings()
        merge = MergeSettings(
            sync_scroll=merge_data.get('sync_scroll', defaults.sync_scroll),
            alignment_chunk_cap=merge_data.get('alignment_chunk_cap', defaults.alignment_chunk_cap),
            alignment_threshold_px=merge_data.get('alignment_threshold_px', defaults.alignment_threshold_px),
            frame_interval_ms=merge_data.get('frame_interval_ms', defaults.frame_interval_ms),
            center_on_select=merge_data.get('center_on_select', defaults.center_on_select),
            conflict_marker_left=merge_data.get('conflict_marker_left', defaults.conflict_marker_left),
            conflict_marker_base=merge_data.get('conflict_marker_base', defaults.conflict_marker_base),
            conflict_marker_sep=merge_data.get('conflict_marker_sep', defaults.conflict_marker_sep),
            conflict_marker_right=merge_data.get('conflict_marker_right', defaults.conflict_marker_right),
            show_base_in_markers=merge_data.get('show_base_in_markers', defaults.show_base_in_markers),
            create_backup=merge_data.get('create_backup', defaults.create_backup),
            backup_extension=merge_data.get('backup_extension', defaults.backup_extension),
        )

        keys_data = data.get('keys', {})
        key_defaults = KeyBindings()
        keys = KeyBindings(
            next=keys_data.get('next', key_defaults.next),
            previous=keys_data.get('previous', key_defaults.previous),
            apply_left=keys_data.get('apply_left', key_defaults.apply_left),
            apply_right=keys_data.get('apply_right', key_defaults.apply_right),
            keep_base=keys_data.get('keep_base', key_defaults.keep_base),
        )

        ui_data = data.get('ui', {})
        ui = UISettings(
            theme=get_enum(Theme, ui_data.get('theme', 'LIGHT')),
            font_family=ui_data.get('font_family', 'Consolas'),
            font_size=ui_data.get('font_size', 10),
            window_width=ui_data.get('window_width', 1400),
            window_height=ui_data.get('window_height', 800),
            window_maximized=ui_data.get('window_maximized', False),
            show_toolbar=ui_data.get('show_toolbar', True),
        )

        return ApplicationSettings(
            merge=merge,
            keys=keys,
            ui=ui,
            last_directory=data.get('last_directory', ''),
        )
