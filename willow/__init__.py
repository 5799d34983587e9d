"""
Willow - Source Package

A personal task stream: a daily list, a parking lot for someday items,
and an archive, all kept in user-defined order by fractional ranks.

DESIGN PRINCIPLES:
1. Reordering touches one row, not the whole list
2. Rank arithmetic is pure and storage-agnostic
3. Context (owner, day, clock) is passed in, never ambient
4. Every user action is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Willow Team"
