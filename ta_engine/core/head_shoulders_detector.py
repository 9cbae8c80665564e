"""Head and Shoulders Detector for TA Engine

Detects head-and-shoulders tops on consecutive swing highs and inverse
head-and-shoulders bottoms on consecutive swing lows.
"""

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


MIN_PATTERN_BARS = 15
SHOULDER_TOLERANCE = 0.05


class HeadShouldersDetector:
    """頭肩型態檢測器

    對連續三個波峰 (左肩、頭、右肩) 檢查：頭高於兩肩、
    兩肩價差不超過左肩價格的 shoulder_tolerance、索引嚴格遞增。
    反向頭肩以波谷做鏡像判斷。
    """

    def __init__(self, shoulder_tolerance: float = SHOULDER_TOLERANCE, lookback: int = 3):
        self.shoulder_tolerance = shoulder_tolerance
        self.extrema_detector = LocalExtremaDetector(lookback=lookback)

    def is_head_and_shoulders(self, left: Extremum, head: Extremum, right: Extremum) -> bool:
        """判斷三個波峰是否構成頭肩頂"""
        if head.price <= left.price or head.price <= right.price:
            return False
        if abs(left.price - right.price) / left.price > self.shoulder_tolerance:
            return False
        return left.index < head.index < right.index

    def is_inverse_head_and_shoulders(self, left: Extremum, head: Extremum, right: Extremum) -> bool:
        """判斷三個波谷是否構成頭肩底"""
        if head.price >= left.price or head.price >= right.price:
            return False
        if abs(left.price - right.price) / left.price > self.shoulder_tolerance:
            return False
        return left.index < head.index < right.index

    def detect(self, candles: Sequence[Candle]) -> List[PatternResult]:
        """偵測頭肩頂與頭肩底

        Args:
            candles: K 線序列

        Returns:
            型態列表，資料不足 MIN_PATTERN_BARS 根時為空
        """
        if len(candles) < MIN_PATTERN_BARS:
            return []

        patterns = []
        highs = self.extrema_detector.find_local_extrema(candles, KIND_HIGH)
        for left, head, right in zip(highs, highs[1:], highs[2:]):
            if self.is_head_and_shoulders(left, head, right):
                patterns.append(self._build(PatternType.HEAD_AND_SHOULDERS, left, head, right, candles))

        lows = self.extrema_detector.find_local_extrema(candles, KIND_LOW)
        for left, head, right in zip(lows, lows[1:], lows[2:]):
            if self.is_inverse_head_and_shoulders(left, head, right):
                patterns.append(self._build(PatternType.INVERSE_HEAD_AND_SHOULDERS, left, head, right, candles))

        patterns.sort(key=lambda p: p.coordinates[-1].x)
        return patterns[-MAX_PATTERNS_PER_DETECTOR:]

    def _build(
        self,
        pattern_type: PatternType,
        left: Extremum,
        head: Extremum,
        right: Extremum,
        candles: Sequence[Candle],
    ) -> PatternResult:
        coordinates = tuple(
            ChartCoordinate(p.index, p.price, candles[p.index].timestamp) for p in (left, head, right)
        )
        if pattern_type == PatternType.HEAD_AND_SHOULDERS:
            neckline = min(left.price, right.price)
            target = neckline - (head.price - neckline)
            reasoning = "Head and shoulders measured move target"
        else:
            neckline = max(left.price, right.price)
            target = neckline + (neckline - head.price)
            reasoning = "Inverse head and shoulders measured move target"

        return PatternResult(
            pattern_type=pattern_type,
            confidence=0.75,
            coordinates=coordinates,
            description=pattern_type.description,
            implications=pattern_type.implications,
            price_targets=(PriceTarget(target, TargetType.TARGET, 0.7, reasoning),),
        )
