"""
User interface components for TriPane.
"""

from tripane.ui.main_window import MergeWindow
from tripane.ui.merge_view import (
    MergePaneEdit,
    MergeView,
    MergeViewColors,
    QtFrameScheduler,
    QtViewport,
)

__all__ = [
    'MergePaneEdit',
    'MergeWindow',
    'MergeView',
    'MergeViewColors',
    'QtFrameScheduler',
    'QtViewport',
]
