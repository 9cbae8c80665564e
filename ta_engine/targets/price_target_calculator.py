"""Price Target Calculator for TA Engine

This module implements the PriceTargetCalculator class, which turns swing
points, support/resistance levels and detected patterns into price targets
and stop levels:

1. Fibonacci retracements of the latest swing
2. Fibonacci extensions in the trade direction
3. Nearest qualifying opposite-side support/resistance levels
4. Measured moves of detected chart patterns

calculate_comprehensive_targets merges all sources, keeps targets within a
distance band of the current price, removes near duplicates and returns the
most confident ones.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from ..core.models import (
    Candle,
    ChartCoordinate,
    IndicatorSignal,
    LevelType,
    PatternResult,
    PatternType,
    PriceTarget,
    SupportResistanceLevel,
    TargetType,
)


logger = logging.getLogger(__name__)

TARGET_DEDUP_TOLERANCE = 0.015
MIN_TARGET_DISTANCE = 0.01
MAX_TARGET_DISTANCE = 0.30
MIN_PATTERN_CONFIDENCE = 0.6
MAX_TARGETS = 8
MAX_LEVEL_TARGETS = 5


def deduplicate_targets(
    targets: Sequence[PriceTarget],
    tolerance: float = TARGET_DEDUP_TOLERANCE,
) -> List[PriceTarget]:
    """移除相近的重複目標

    同類型且相對價差小於 tolerance 的目標視為重複，保留信心度較高者。
    """
    unique: List[PriceTarget] = []
    for target in targets:
        for i, existing in enumerate(unique):
            if existing.target_type != target.target_type or existing.level == 0:
                continue
            if abs(existing.level - target.level) / abs(existing.level) < tolerance:
                if target.confidence > existing.confidence:
                    unique[i] = target
                break
        else:
            unique.append(target)
    return unique


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _label(pattern_type: PatternType) -> str:
    return pattern_type.value.replace("_", " ")


def _line_value(start: ChartCoordinate, end: ChartCoordinate, x: float) -> float:
    if end.x == start.x:
        return end.y
    slope = (end.y - start.y) / (end.x - start.x)
    return start.y + slope * (x - start.x)


class PriceTargetCalculator:
    """價格目標計算器

    Attributes:
        min_distance: 目標與現價的最小相對距離
        max_distance: 目標與現價的最大相對距離
        max_targets: 綜合目標數量上限
    """

    def __init__(
        self,
        min_distance: float = MIN_TARGET_DISTANCE,
        max_distance: float = MAX_TARGET_DISTANCE,
        max_targets: int = MAX_TARGETS,
    ):
        self.min_distance = min_distance
        self.max_distance = max_distance
        self.max_targets = max_targets

    # ------------------------------------------------------------------
    # Fibonacci
    # ------------------------------------------------------------------

    def calculate_fibonacci_retracements(
        self,
        swing_high: float,
        swing_low: float,
        current_price: float,
    ) -> List[PriceTarget]:
        """計算斐波那契回撤目標

        只保留距現價 1-20% 的價位；現價下方的價位作為停損，上方的作為目標。

        Returns:
            依信心度遞減排序的目標
        """
        price_range = swing_high - swing_low
        targets = []
        for ratio in (0.236, 0.382, 0.5, 0.618, 0.786):
            level = swing_high - price_range * ratio
            distance = abs(level - current_price) / current_price
            if not 0.01 < distance < 0.20:
                continue

            if ratio in (0.382, 0.618):
                confidence = 0.8
            elif ratio == 0.5:
                confidence = 0.7
            else:
                confidence = 0.6
            confidence += (0.20 - distance) * 0.5

            targets.append(PriceTarget(
                level=level,
                target_type=TargetType.STOP_LOSS if level < current_price else TargetType.TARGET,
                confidence=min(0.9, confidence),
                reasoning=(
                    f"Fibonacci {ratio * 100:.1f}% retracement level from swing high "
                    f"{swing_high:.2f} to swing low {swing_low:.2f}"
                ),
            ))
        targets.sort(key=lambda t: t.confidence, reverse=True)
        return targets

    def calculate_fibonacci_extensions(
        self,
        swing_high: float,
        swing_low: float,
        current_price: float,
        direction: IndicatorSignal,
    ) -> List[PriceTarget]:
        """計算斐波那契延伸目標

        多頭由波段低點向上延伸，空頭由波段高點向下延伸；只保留距現價 2-50% 的價位。
        """
        price_range = abs(swing_high - swing_low)
        bullish = direction == IndicatorSignal.BULLISH
        targets = []
        for ratio in (1.272, 1.414, 1.618, 2.0, 2.618):
            level = swing_low + price_range * ratio if bullish else swing_high - price_range * ratio
            distance = abs(level - current_price) / current_price
            if not 0.02 < distance < 0.50:
                continue

            if ratio in (1.272, 1.618):
                confidence = 0.75
            elif ratio in (1.414, 2.0):
                confidence = 0.65
            else:
                confidence = 0.5
            if distance < 0.10:
                confidence += 0.1
            elif distance > 0.30:
                confidence -= 0.1

            targets.append(PriceTarget(
                level=level,
                target_type=TargetType.TARGET,
                confidence=_clamp(confidence, 0.3, 0.85),
                reasoning=f"Fibonacci {ratio * 100:.1f}% extension target ({direction.value} projection)",
            ))
        targets.sort(key=lambda t: t.confidence, reverse=True)
        return targets

    # ------------------------------------------------------------------
    # Support / resistance
    # ------------------------------------------------------------------

    def calculate_support_resistance_targets(
        self,
        levels: Sequence[SupportResistanceLevel],
        current_price: float,
        direction: IndicatorSignal,
    ) -> List[PriceTarget]:
        """以方向上的下一個支撐 / 壓力位作為目標

        多頭取現價上方的壓力，空頭取現價下方的支撐；依
        強度 - 0.5 * 距離 排序取前五名，排名越後信心度折扣越多。
        """
        if direction == IndicatorSignal.BULLISH:
            relevant = [lvl for lvl in levels if lvl.level_type == LevelType.RESISTANCE and lvl.level > current_price]
        else:
            relevant = [lvl for lvl in levels if lvl.level_type == LevelType.SUPPORT and lvl.level < current_price]

        def score(level: SupportResistanceLevel) -> float:
            return level.strength - abs(level.level - current_price) / current_price * 0.5

        relevant.sort(key=score, reverse=True)

        targets = []
        for rank, level in enumerate(relevant[:MAX_LEVEL_TARGETS]):
            distance = abs(level.level - current_price) / current_price
            if distance < 0.005 or distance > 0.25:
                continue

            confidence = level.strength * 0.6 + level.confidence * 0.4
            if level.touches >= 3:
                confidence += 0.1
            confidence *= 1 - rank * 0.1

            targets.append(PriceTarget(
                level=level.level,
                target_type=TargetType.TARGET,
                confidence=_clamp(confidence, 0.3, 0.9),
                reasoning=(
                    f"{level.level_type.value} level at {level.level:.2f} "
                    f"({level.touches} touches, strength: {level.strength * 100:.0f}%)"
                ),
            ))
        return targets

    # ------------------------------------------------------------------
    # Patterns
    # ------------------------------------------------------------------

    def calculate_pattern_targets(
        self,
        pattern: PatternResult,
        current_price: float,
        candles: Sequence[Candle] = (),
    ) -> List[PriceTarget]:
        """依型態類型計算量度目標

        Args:
            pattern: 偵測到的型態
            current_price: 現價
            candles: K 線序列 (旗形需判斷先前趨勢)

        型態本身已帶有偵測器計算的目標時直接沿用，否則由座標推算；
        兩者使用相同的量度公式。

        Returns:
            距現價 1-30% 內的目標
        """
        if pattern.price_targets:
            return [t for t in pattern.price_targets if self._within_band(t.level, current_price)]

        pattern_type = pattern.pattern_type
        if pattern_type == PatternType.ASCENDING_TRIANGLE:
            targets = self._triangle_targets(pattern, bullish=True)
        elif pattern_type == PatternType.DESCENDING_TRIANGLE:
            targets = self._triangle_targets(pattern, bullish=False)
        elif pattern_type == PatternType.SYMMETRICAL_TRIANGLE:
            targets = self._symmetrical_triangle_targets(pattern)
        elif pattern_type in (PatternType.HEAD_AND_SHOULDERS, PatternType.INVERSE_HEAD_AND_SHOULDERS):
            targets = self._head_and_shoulders_targets(pattern)
        elif pattern_type in (PatternType.DOUBLE_TOP, PatternType.DOUBLE_BOTTOM):
            targets = self._double_pattern_targets(pattern)
        elif pattern_type in (PatternType.CHANNEL_UP, PatternType.CHANNEL_DOWN):
            targets = self._channel_targets(pattern, current_price)
        elif pattern_type in (PatternType.WEDGE_RISING, PatternType.WEDGE_FALLING):
            targets = self._wedge_targets(pattern)
        else:
            targets = self._flag_targets(pattern, current_price, candles)

        return [t for t in targets if self._within_band(t.level, current_price)]

    @staticmethod
    def _triangle_bounds(pattern: PatternResult) -> Tuple[float, float, float]:
        """回傳 (突破壓力, 跌破支撐, 型態高度)，邊界取最後一個高點與低點"""
        coords = pattern.coordinates
        prices = [c.y for c in coords]
        return coords[1].y, coords[3].y, max(prices) - min(prices)

    def _triangle_targets(self, pattern: PatternResult, bullish: bool) -> List[PriceTarget]:
        if len(pattern.coordinates) < 4:
            return []
        resistance, support, height = self._triangle_bounds(pattern)
        level = resistance + height if bullish else support - height
        return [PriceTarget(
            level=level,
            target_type=TargetType.TARGET,
            confidence=pattern.confidence * 0.8,
            reasoning=f"{_label(pattern.pattern_type)} measured move target (pattern height: {height:.2f})",
        )]

    def _symmetrical_triangle_targets(self, pattern: PatternResult) -> List[PriceTarget]:
        if len(pattern.coordinates) < 4:
            return []
        resistance, support, height = self._triangle_bounds(pattern)
        confidence = pattern.confidence * 0.7
        return [
            PriceTarget(resistance + height * 0.75, TargetType.TARGET, confidence,
                        "Symmetrical triangle upside breakout target"),
            PriceTarget(support - height * 0.75, TargetType.TARGET, confidence,
                        "Symmetrical triangle downside breakdown target"),
        ]

    def _head_and_shoulders_targets(self, pattern: PatternResult) -> List[PriceTarget]:
        coords = pattern.coordinates
        if len(coords) < 3:
            return []
        bearish = pattern.pattern_type == PatternType.HEAD_AND_SHOULDERS
        if bearish:
            head = max(coords, key=lambda c: c.y)
            neckline = min(c.y for c in coords if c is not head)
        else:
            head = min(coords, key=lambda c: c.y)
            neckline = max(c.y for c in coords if c is not head)
        height = abs(head.y - neckline)
        level = neckline - height if bearish else neckline + height
        return [PriceTarget(
            level=level,
            target_type=TargetType.TARGET,
            confidence=pattern.confidence * 0.85,
            reasoning=f"{_label(pattern.pattern_type)} measured move from neckline ({neckline:.2f})",
        )]

    def _double_pattern_targets(self, pattern: PatternResult) -> List[PriceTarget]:
        coords = pattern.coordinates
        bearish = pattern.pattern_type == PatternType.DOUBLE_TOP
        if len(coords) >= 3:
            peaks = [coords[0].y, coords[-1].y]
            neckline = coords[1].y
        else:
            peaks = [c.y for c in coords]
            average = sum(peaks) / len(peaks)
            neckline = average * 0.95 if bearish else average * 1.05
        average_peak = sum(peaks) / len(peaks)
        height = abs(average_peak - neckline)
        level = neckline - height if bearish else neckline + height
        return [PriceTarget(
            level=level,
            target_type=TargetType.TARGET,
            confidence=pattern.confidence * 0.8,
            reasoning=f"{_label(pattern.pattern_type)} measured move target",
        )]

    def _channel_targets(self, pattern: PatternResult, current_price: float) -> List[PriceTarget]:
        coords = pattern.coordinates
        if len(coords) < 4:
            return []
        # Both boundaries projected to the later end point
        end_x = max(coords[1].x, coords[3].x)
        width = abs(_line_value(coords[0], coords[1], end_x) - _line_value(coords[2], coords[3], end_x))
        confidence = pattern.confidence * 0.7

        if pattern.pattern_type == PatternType.CHANNEL_UP:
            return [
                PriceTarget(current_price + width * 0.5, TargetType.TARGET, confidence,
                            "Ascending channel resistance target"),
                PriceTarget(current_price - width * 0.3, TargetType.STOP_LOSS, confidence + 0.1,
                            "Ascending channel support level"),
            ]
        return [
            PriceTarget(current_price - width * 0.5, TargetType.TARGET, confidence,
                        "Descending channel support target"),
            PriceTarget(current_price + width * 0.3, TargetType.STOP_LOSS, confidence + 0.1,
                        "Descending channel resistance level"),
        ]

    def _wedge_targets(self, pattern: PatternResult) -> List[PriceTarget]:
        if len(pattern.coordinates) < 4:
            return []
        resistance, support, height = self._triangle_bounds(pattern)
        bullish = pattern.pattern_type == PatternType.WEDGE_FALLING
        level = resistance + height if bullish else support - height
        return [PriceTarget(
            level=level,
            target_type=TargetType.TARGET,
            confidence=pattern.confidence * 0.75,
            reasoning=f"{_label(pattern.pattern_type)} reversal target (wedge height: {height:.2f})",
        )]

    def _flag_targets(
        self,
        pattern: PatternResult,
        current_price: float,
        candles: Sequence[Candle],
    ) -> List[PriceTarget]:
        trend = self.detect_recent_trend(candles)
        if trend == IndicatorSignal.NEUTRAL:
            return []
        # Flagpole estimated at 10% of price
        pole = current_price * 0.10
        level = current_price + pole if trend == IndicatorSignal.BULLISH else current_price - pole
        return [PriceTarget(
            level=level,
            target_type=TargetType.TARGET,
            confidence=pattern.confidence * 0.8,
            reasoning=f"{_label(pattern.pattern_type)} continuation target (estimated flagpole projection)",
        )]

    @staticmethod
    def detect_recent_trend(candles: Sequence[Candle], bars: int = 10, threshold: float = 0.02) -> IndicatorSignal:
        """以最近 bars 根收盤價變化判斷先前趨勢"""
        if len(candles) < bars:
            return IndicatorSignal.NEUTRAL
        start = candles[-bars].close
        change = (candles[-1].close - start) / start
        if change > threshold:
            return IndicatorSignal.BULLISH
        if change < -threshold:
            return IndicatorSignal.BEARISH
        return IndicatorSignal.NEUTRAL

    # ------------------------------------------------------------------
    # Combined
    # ------------------------------------------------------------------

    def _within_band(self, level: float, current_price: float) -> bool:
        distance = abs(level - current_price) / current_price
        return self.min_distance < distance < self.max_distance

    def calculate_comprehensive_targets(
        self,
        current_price: float,
        levels: Sequence[SupportResistanceLevel],
        patterns: Sequence[PatternResult],
        candles: Sequence[Candle] = (),
        swing_high: Optional[float] = None,
        swing_low: Optional[float] = None,
        direction: Optional[IndicatorSignal] = None,
    ) -> List[PriceTarget]:
        """綜合所有來源的價格目標

        Args:
            current_price: 現價
            levels: 支撐壓力位
            patterns: 偵測到的型態 (只使用信心度高於 0.6 者)
            candles: K 線序列
            swing_high: 波段高點 (與 swing_low 同時給定時計算斐波那契)
            swing_low: 波段低點
            direction: 交易方向；給定時計算支撐壓力目標與斐波那契延伸

        Returns:
            去重後依信心度遞減排序的目標，最多 max_targets 個
        """
        targets: List[PriceTarget] = []
        directional = direction in (IndicatorSignal.BULLISH, IndicatorSignal.BEARISH)

        if directional:
            targets.extend(self.calculate_support_resistance_targets(levels, current_price, direction))

        for pattern in patterns:
            if pattern.confidence > MIN_PATTERN_CONFIDENCE:
                targets.extend(self.calculate_pattern_targets(pattern, current_price, candles))

        if swing_high is not None and swing_low is not None and swing_high > swing_low:
            targets.extend(self.calculate_fibonacci_retracements(swing_high, swing_low, current_price))
            if directional:
                targets.extend(self.calculate_fibonacci_extensions(swing_high, swing_low, current_price, direction))

        in_band = [t for t in targets if self._within_band(t.level, current_price)]
        unique = deduplicate_targets(in_band)
        unique.sort(key=lambda t: t.confidence, reverse=True)
        logger.debug(f"Target synthesis kept {min(len(unique), self.max_targets)} of {len(targets)} candidates")
        return unique[:self.max_targets]
