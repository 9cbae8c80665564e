"""Channel Detector for TA Engine

Pairs resistance lines through swing highs with parallel support lines
through swing lows and reports rising and falling price channels.
"""

from typing import List, Optional, Sequence

from .extrema_detector import KIND_HIGH, KIND_LOW, LocalExtremaDetector
from .models import (
    MAX_PATTERNS_PER_DETECTOR,
    Candle,
    PatternResult,
    PatternType,
    PriceTarget,
    TargetType,
    TrendLine,
    TrendLineType,
)
from .trend_line import TrendLineFitter


MIN_CHANNEL_BARS = 20


class ChannelDetector:
    """通道型態檢測器

    上軌與下軌斜率差小於平行門檻，且兩者同為正 (上升通道)
    或同為負 (下降通道) 時成立。
    """

    def __init__(self, lookback: int = 3, fitter: Optional[TrendLineFitter] = None):
        self.extrema_detector = LocalExtremaDetector(lookback=lookback)
        self.fitter = fitter or TrendLineFitter()

    def detect(self, candles: Sequence[Candle]) -> List[PatternResult]:
        """偵測上升與下降通道

        Args:
            candles: K 線序列

        Returns:
            通道型態列表，依兩軌觸及數總和遞減排序
        """
        if len(candles) < MIN_CHANNEL_BARS:
            return []

        highs = self.extrema_detector.find_local_extrema(candles, KIND_HIGH)
        lows = self.extrema_detector.find_local_extrema(candles, KIND_LOW)
        upper_lines = self.fitter.find_trend_lines(highs, TrendLineType.RESISTANCE)
        lower_lines = self.fitter.find_trend_lines(lows, TrendLineType.SUPPORT)

        patterns = []
        for upper in upper_lines:
            for lower in lower_lines:
                if not self.fitter.are_parallel(upper, lower):
                    continue
                pattern = self._build(upper, lower, candles)
                if pattern is not None:
                    patterns.append((upper.strength + lower.strength, pattern))

        patterns.sort(key=lambda item: item[0], reverse=True)
        return [pattern for _, pattern in patterns[:MAX_PATTERNS_PER_DETECTOR]]

    def _build(self, upper: TrendLine, lower: TrendLine, candles: Sequence[Candle]) -> Optional[PatternResult]:
        if upper.slope > 0 and lower.slope > 0:
            pattern_type = PatternType.CHANNEL_UP
        elif upper.slope < 0 and lower.slope < 0:
            pattern_type = PatternType.CHANNEL_DOWN
        else:
            return None

        last_x = len(candles) - 1
        width = abs(upper.value_at(last_x) - lower.value_at(last_x))
        if width == 0:
            return None
        current_price = candles[-1].close

        if pattern_type == PatternType.CHANNEL_UP:
            targets = (
                PriceTarget(current_price + width * 0.5, TargetType.TARGET, 0.6, "Channel resistance target"),
                PriceTarget(current_price - width * 0.3, TargetType.STOP_LOSS, 0.7, "Channel support stop level"),
            )
        else:
            targets = (
                PriceTarget(current_price - width * 0.5, TargetType.TARGET, 0.6, "Channel support target"),
                PriceTarget(current_price + width * 0.3, TargetType.STOP_LOSS, 0.7, "Channel resistance stop level"),
            )

        return PatternResult(
            pattern_type=pattern_type,
            confidence=0.65,
            coordinates=(upper.start_point, upper.end_point, lower.start_point, lower.end_point),
            description=pattern_type.description,
            implications=pattern_type.implications,
            price_targets=targets,
        )
