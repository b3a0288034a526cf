"""
Atomic reference data.

This module provides:
- Level (configuration) records
- Ion records with their level and level-density index ranges
- Element records
- The read-only AtomicData container
"""

from plasmaeq.atomic.structures import Level, Ion, Element, AtomicData

__all__ = [
    "Level",
    "Ion",
    "Element",
    "AtomicData",
]
