"""Triangle Detector for TA Engine

This module implements the TriangleDetector class. It slides a fixed-size
window over the most recent bars, fits least-squares lines through the
window's swing highs and swing lows, and classifies the pair of slopes as
an ascending, descending or symmetrical triangle, or as a rising or falling
wedge.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from .extrema_detector import KIND_HIGH, KIND_LOW, LocalExtremaDetector
from .models import (
    MAX_PATTERNS_PER_DETECTOR,
    Candle,
    ChartCoordinate,
    PatternResult,
    PatternType,
    PriceTarget,
    TargetType,
)
from .trend_line import LineFit, TrendLineFitter


logger = logging.getLogger(__name__)

TRIANGLE_WINDOW = 20
TRIANGLE_SCAN_BARS = 100
# Slope threshold in raw price units per bar index
SLOPE_EPSILON = 0.001


class TriangleDetector:
    """三角形 / 楔形型態檢測器

    Attributes:
        window_size: 每個滑動窗口的 K 線數
        scan_bars: 只掃描最近的 K 線數
        slope_epsilon: 判定水平線的斜率門檻
    """

    def __init__(
        self,
        window_size: int = TRIANGLE_WINDOW,
        scan_bars: int = TRIANGLE_SCAN_BARS,
        slope_epsilon: float = SLOPE_EPSILON,
        lookback: int = 3,
    ):
        self.window_size = window_size
        self.scan_bars = scan_bars
        self.slope_epsilon = slope_epsilon
        self.extrema_detector = LocalExtremaDetector(lookback=lookback)
        self.fitter = TrendLineFitter()

    def classify(self, high_slope: float, low_slope: float) -> Optional[Tuple[PatternType, float]]:
        """依高點線與低點線斜率分類型態

        Args:
            high_slope: 高點擬合線斜率
            low_slope: 低點擬合線斜率

        Returns:
            (型態類型, 信心度)，不構成三角形或楔形時為 None
        """
        eps = self.slope_epsilon
        if high_slope < -eps and abs(low_slope) < eps:
            return PatternType.DESCENDING_TRIANGLE, 0.7
        if abs(high_slope) < eps and low_slope > eps:
            return PatternType.ASCENDING_TRIANGLE, 0.7
        if high_slope < -eps and low_slope > eps:
            return PatternType.SYMMETRICAL_TRIANGLE, 0.6
        # Converging lines sloping the same way
        if high_slope > eps and low_slope > high_slope:
            return PatternType.WEDGE_RISING, 0.6
        if low_slope < -eps and high_slope < low_slope:
            return PatternType.WEDGE_FALLING, 0.6
        return None

    def detect(self, candles: Sequence[Candle]) -> List[PatternResult]:
        """掃描最近的 K 線並回傳偵測到的三角形與楔形

        同一組極值點在相鄰窗口重複出現時只回報一次。

        Args:
            candles: K 線序列

        Returns:
            型態列表 (最多 MAX_PATTERNS_PER_DETECTOR 個，保留最近的)
        """
        n = len(candles)
        if n < self.window_size:
            return []

        patterns = []
        seen = set()
        for start in range(max(0, n - self.scan_bars), n - self.window_size + 1):
            segment = candles[start:start + self.window_size]
            highs = self.extrema_detector.find_local_extrema(segment, KIND_HIGH)
            lows = self.extrema_detector.find_local_extrema(segment, KIND_LOW)
            if len(highs) < 2 or len(lows) < 2:
                continue

            high_fit = self.fitter.fit(highs)
            low_fit = self.fitter.fit(lows)
            classified = self.classify(high_fit.slope, low_fit.slope)
            if classified is None:
                continue
            pattern_type, confidence = classified

            coordinates = (
                ChartCoordinate(start + highs[0].index, highs[0].price, segment[highs[0].index].timestamp),
                ChartCoordinate(start + highs[-1].index, highs[-1].price, segment[highs[-1].index].timestamp),
                ChartCoordinate(start + lows[0].index, lows[0].price, segment[lows[0].index].timestamp),
                ChartCoordinate(start + lows[-1].index, lows[-1].price, segment[lows[-1].index].timestamp),
            )
            key = (pattern_type, tuple(c.x for c in coordinates))
            if key in seen:
                continue
            seen.add(key)

            targets = self._measured_move(pattern_type, coordinates, high_fit, low_fit)
            patterns.append(PatternResult(
                pattern_type=pattern_type,
                confidence=confidence,
                coordinates=coordinates,
                description=pattern_type.description,
                implications=pattern_type.implications,
                price_targets=targets,
            ))

        if patterns:
            logger.debug(f"Triangle scan found {len(patterns)} candidate patterns")
        return patterns[-MAX_PATTERNS_PER_DETECTOR:]

    def _measured_move(
        self,
        pattern_type: PatternType,
        coordinates: Tuple[ChartCoordinate, ...],
        high_fit: LineFit,
        low_fit: LineFit,
    ) -> Tuple[PriceTarget, ...]:
        prices = [c.y for c in coordinates]
        height = max(prices) - min(prices)
        # Breakout boundaries projected to the last bar of the window
        end_x = self.window_size - 1
        resistance = high_fit.slope * end_x + high_fit.intercept
        support = low_fit.slope * end_x + low_fit.intercept

        if pattern_type == PatternType.ASCENDING_TRIANGLE:
            return (PriceTarget(resistance + height, TargetType.TARGET, 0.7,
                                "Ascending triangle breakout target"),)
        if pattern_type == PatternType.DESCENDING_TRIANGLE:
            return (PriceTarget(support - height, TargetType.TARGET, 0.7,
                                "Descending triangle breakdown target"),)
        if pattern_type == PatternType.SYMMETRICAL_TRIANGLE:
            return (
                PriceTarget(resistance + height * 0.75, TargetType.TARGET, 0.6,
                            "Symmetrical triangle upside breakout target"),
                PriceTarget(support - height * 0.75, TargetType.TARGET, 0.6,
                            "Symmetrical triangle downside breakdown target"),
            )
        if pattern_type == PatternType.WEDGE_RISING:
            return (PriceTarget(support - height, TargetType.TARGET, 0.6,
                                "Rising wedge breakdown target"),)
        return (PriceTarget(resistance + height, TargetType.TARGET, 0.6,
                            "Falling wedge breakout target"),)
