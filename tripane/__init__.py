"""
TriPane: interactive three-way merge engine with a PyQt6 host view.
"""

__version__ = "1.0.0"
