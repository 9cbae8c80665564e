"""Double Top / Double Bottom Detector for TA Engine"""

from typing import List, Sequence

from .extrema_detector import KIND_HIGH, KIND_LOW, LocalExtremaDetector
from .models import (
    MAX_PATTERNS_PER_DETECTOR,
    Candle,
    ChartCoordinate,
    Extremum,
    PatternResult,
    PatternType,
    PriceTarget,
    TargetType,
)


MIN_PATTERN_BARS = 20


class DoublePatternDetector:
    """雙重頂 / 雙重底檢測器

    Attributes:
        price_tolerance: 兩個頂 (底) 的最大相對價差
        min_separation: 兩個頂 (底) 之間的最少 K 線數
        min_depth: 中間谷底 (峰頂) 與頂 (底) 的最小相對距離
    """

    def __init__(
        self,
        price_tolerance: float = 0.03,
        min_separation: int = 10,
        min_depth: float = 0.05,
        lookback: int = 3,
    ):
        self.price_tolerance = price_tolerance
        self.min_separation = min_separation
        self.min_depth = min_depth
        self.extrema_detector = LocalExtremaDetector(lookback=lookback)

    def detect(self, candles: Sequence[Candle]) -> List[PatternResult]:
        """偵測雙重頂與雙重底

        Args:
            candles: K 線序列

        Returns:
            型態列表，依第二個頂 (底) 的位置排序
        """
        if len(candles) < MIN_PATTERN_BARS:
            return []

        patterns = []
        highs = self.extrema_detector.find_local_extrema(candles, KIND_HIGH)
        for i, first in enumerate(highs):
            for second in highs[i + 1:]:
                if self._is_pair(first, second, candles, top=True):
                    patterns.append(self._build(first, second, candles, top=True))

        lows = self.extrema_detector.find_local_extrema(candles, KIND_LOW)
        for i, first in enumerate(lows):
            for second in lows[i + 1:]:
                if self._is_pair(first, second, candles, top=False):
                    patterns.append(self._build(first, second, candles, top=False))

        patterns.sort(key=lambda p: p.coordinates[-1].x)
        return patterns[-MAX_PATTERNS_PER_DETECTOR:]

    def _is_pair(self, first: Extremum, second: Extremum, candles: Sequence[Candle], top: bool) -> bool:
        if abs(first.price - second.price) / first.price > self.price_tolerance:
            return False
        if second.index - first.index < self.min_separation:
            return False

        between = candles[first.index + 1:second.index]
        if top:
            valley = min(c.low for c in between)
            return (first.price - valley) / first.price > self.min_depth
        peak = max(c.high for c in between)
        return (peak - first.price) / first.price > self.min_depth

    def _build(self, first: Extremum, second: Extremum, candles: Sequence[Candle], top: bool) -> PatternResult:
        between = candles[first.index + 1:second.index]
        if top:
            offset = min(range(len(between)), key=lambda k: between[k].low)
            neckline = between[offset].low
            target = neckline - (first.price - neckline)
            pattern_type = PatternType.DOUBLE_TOP
            reasoning = "Double top measured move target"
        else:
            offset = max(range(len(between)), key=lambda k: between[k].high)
            neckline = between[offset].high
            target = neckline + (neckline - first.price)
            pattern_type = PatternType.DOUBLE_BOTTOM
            reasoning = "Double bottom measured move target"

        neck_index = first.index + 1 + offset
        coordinates = (
            ChartCoordinate(first.index, first.price, candles[first.index].timestamp),
            ChartCoordinate(neck_index, neckline, candles[neck_index].timestamp),
            ChartCoordinate(second.index, second.price, candles[second.index].timestamp),
        )
        return PatternResult(
            pattern_type=pattern_type,
            confidence=0.7,
            coordinates=coordinates,
            description=pattern_type.description,
            implications=pattern_type.implications,
            price_targets=(PriceTarget(target, TargetType.TARGET, 0.7, reasoning),),
        )
