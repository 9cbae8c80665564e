"""
Level Detector - 支撐壓力位偵測
"""

from .level_detector import (
    LevelDetectionOptions,
    PivotPoints,
    SupportResistanceDetector,
    remove_duplicate_levels,
)

__all__ = [
    "LevelDetectionOptions",
    "PivotPoints",
    "SupportResistanceDetector",
    "remove_duplicate_levels",
]
