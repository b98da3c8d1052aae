"""
Core merge logic, independent of any UI toolkit.
"""
