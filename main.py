"""
Command line entry point for TriPane.

    tripane BASE LEFT RIGHT [-o OUTPUT]

Opens the three versions in the merge window; the resolved base is saved
to OUTPUT (or over BASE).
"""

from __future__ import annotations

import argparse
import logging
import sys
import traceback
from pathlib import Path
from typing import Optional, Sequence

from PyQt6.QtCore import Qt
from PyQt6.QtGui import QColor, QPalette
from PyQt6.QtWidgets import QApplication, QMessageBox, QStyleFactory

from tripane import __version__
from tripane.services.settings import SettingsManager, Theme
from tripane.ui.main_window import MergeWindow

APP_NAME = "TriPane"

logger = logging.getLogger(APP_NAME.lower())


# =============================================================================
# Logging
# =============================================================================

class LogFormatter(logging.Formatter):
    """Formatter that colors the level name on a terminal."""

    LEVEL_COLORS = {
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[1;31m',
    }

    def __init__(self, colored: bool = False):
        super().__init__('%(asctime)s %(levelname)-8s %(name)s: %(message)s', '%H:%M:%S')
        self.colored = colored

    def formatMessage(self, record: logging.LogRecord) -> str:
        text = super().formatMessage(record)
        color = self.LEVEL_COLORS.get(record.levelno) if self.colored else None
        return f"{color}{text}\033[0m" if color else text


def setup_logging(level: str, log_file: Optional[Path] = None) -> None:
    """Log to stderr, and to ``log_file`` when one is given."""
    handlers: list[logging.Handler] = []

    console = logging.StreamHandler()
    console.setFormatter(LogFormatter(colored=sys.stderr.isatty()))
    handlers.append(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(LogFormatter())
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # chardet is chatty at DEBUG
    logging.getLogger('chardet').setLevel(logging.WARNING)


def report_unhandled(exc_type, exc_value, exc_tb) -> None:
    """sys.excepthook: log the error and show it while the GUI is up."""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)
        return

    logger.critical("Unhandled exception", exc_info=(exc_type, exc_value, exc_tb))

    if QApplication.instance() is not None:
        dialog = QMessageBox(QMessageBox.Icon.Critical, APP_NAME,
                             f"Unexpected error: {exc_type.__name__}: {exc_value}")
        dialog.setInformativeText("Unsaved merge results may be lost. Save and restart.")
        dialog.setDetailedText(''.join(traceback.format_exception(exc_type, exc_value, exc_tb)))
        dialog.exec()


# =============================================================================
# Arguments
# =============================================================================

def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog=APP_NAME.lower(),
        description="Resolve a three-way merge interactively.",
    )
    parser.add_argument('base', type=Path, help="common ancestor; the merge result starts from it")
    parser.add_argument('left', type=Path, help="left (ours) version")
    parser.add_argument('right', type=Path, help="right (theirs) version")
    parser.add_argument('-o', '--output', type=Path,
                        help="where to save the result (default: BASE)")

    parser.add_argument('--theme', choices=[theme.value for theme in Theme],
                        help="color theme for this session")
    parser.add_argument('--no-sync-scroll', action='store_true',
                        help="start with aligned scrolling off")
    parser.add_argument('-c', '--config', type=Path, help="settings file to use")
    parser.add_argument('--reset-settings', action='store_true',
                        help="restore default settings before starting")

    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    parser.add_argument('--log-file', type=Path, help="also write the log to this file")
    parser.add_argument('--debug', action='store_true', help="shorthand for --log-level DEBUG")
    parser.add_argument('--version', action='version', version=f'{APP_NAME} {__version__}')

    args = parser.parse_args(argv)
    if args.debug:
        args.log_level = 'DEBUG'
    return args


def load_settings(args: argparse.Namespace) -> SettingsManager:
    """Settings from disk with this run's command line overrides."""
    manager = SettingsManager(args.config)
    if args.reset_settings:
        logger.info("Resetting settings to defaults")
        manager.reset()

    settings = manager.settings
    if args.theme:
        settings.ui.theme = Theme.from_string(args.theme)
    if args.no_sync_scroll:
        settings.merge.sync_scroll = False
    return manager


# =============================================================================
# Theme
# =============================================================================

_DARK_PALETTE = {
    QPalette.ColorRole.Window: QColor(45, 45, 45),
    QPalette.ColorRole.WindowText: QColor(212, 212, 212),
    QPalette.ColorRole.Base: QColor(35, 35, 35),
    QPalette.ColorRole.AlternateBase: QColor(45, 45, 45),
    QPalette.ColorRole.Text: QColor(212, 212, 212),
    QPalette.ColorRole.Button: QColor(45, 45, 45),
    QPalette.ColorRole.ButtonText: QColor(212, 212, 212),
    QPalette.ColorRole.ToolTipBase: QColor(45, 45, 45),
    QPalette.ColorRole.ToolTipText: QColor(212, 212, 212),
    QPalette.ColorRole.Highlight: QColor(42, 130, 218),
    QPalette.ColorRole.HighlightedText: QColor(Qt.GlobalColor.black),
}


def apply_theme(app: QApplication, theme: Theme) -> None:
    """Use Fusion everywhere; dark gets its own palette."""
    app.setStyle(QStyleFactory.create("Fusion"))
    if theme != Theme.DARK:
        app.setPalette(app.style().standardPalette())
        return

    palette = QPalette()
    for role, color in _DARK_PALETTE.items():
        palette.setColor(role, color)
    palette.setColor(QPalette.ColorGroup.Disabled, QPalette.ColorRole.Text, QColor(127, 127, 127))
    palette.setColor(QPalette.ColorGroup.Disabled, QPalette.ColorRole.ButtonText, QColor(127, 127, 127))
    app.setPalette(palette)


# =============================================================================
# Main
# =============================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_arguments(argv)
    setup_logging(args.log_level, args.log_file)
    sys.excepthook = report_unhandled
    logger.info("Starting %s %s", APP_NAME, __version__)

    app = QApplication(sys.argv[:1])
    app.setApplicationName(APP_NAME)
    app.setApplicationVersion(__version__)

    settings_manager = load_settings(args)
    apply_theme(app, settings_manager.settings.ui.theme)

    window = MergeWindow(settings_manager)
    if not window.open_merge(args.base, args.left, args.right, args.output):
        logger.error("Could not open %s, %s and %s", args.base, args.left, args.right)
        return 1

    window.show()
    exit_code = app.exec()
    logger.info("Exiting with code %d", exit_code)
    return exit_code


if __name__ == '__main__':
    sys.exit(main())
