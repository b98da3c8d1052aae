"""
Services for settings persistence and file access.
"""

from tripane.services.settings import (
    ApplicationSettings,
    KeyBindings,
    MergeSettings,
    SettingsManager,
    Theme,
    UISettings,
)
from tripane.services.file_io import (
    FileIOService,
    LineEnding,
    ReadResult,
    WriteResult,
    plain_newlines,
    restore_line_endings,
)

__all__ = [
    'ApplicationSettings',
    'KeyBindings',
    'MergeSettings',
    'SettingsManager',
    'Theme',
    'UISettings',
    'FileIOService',
    'LineEnding',
    'ReadResult',
    'WriteResult',
    'plain_newlines',
    'restore_line_endings',
]
