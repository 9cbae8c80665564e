"""
Price Target Synthesizer - 價格目標計算
"""

from .price_target_calculator import PriceTargetCalculator, deduplicate_targets

__all__ = [
    "PriceTargetCalculator",
    "deduplicate_targets",
]
