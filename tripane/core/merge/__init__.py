"""
Merge module for interactive three-way chunk resolution.
"""

from tripane.core.merge.chunk_builder import (
    ChunkBuilder,
    build_chunks,
)
from tripane.core.merge.resolution import ResolutionStore
from tripane.core.merge.navigation import (
    NavigationController,
    NavigationCommand,
    DEFAULT_KEY_BINDINGS,
)
from tripane.core.merge.frame_scheduler import FrameScheduler
from tripane.core.merge.scroll_sync import ScrollAligner

__all__ = [
    'ChunkBuilder',
    'build_chunks',
    'ResolutionStore',
    'NavigationController',
    'NavigationCommand',
    'DEFAULT_KEY_BINDINGS',
    'FrameScheduler',
    'ScrollAligner',
]
