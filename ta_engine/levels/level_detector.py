"""Support / Resistance Level Detector for TA Engine

This module implements the SupportResistanceDetector class. Levels come
from several independent sources:

1. Classic floor-trader pivot points from the last bar
2. Dynamic levels from grouped swing highs and lows
3. Psychological round-number levels near the current price
4. Fibonacci retracement and extension levels of a price swing
5. Price zones where high-volume bars cluster

detect_all_levels unions the enabled sources, removes near duplicates and
keeps the strongest levels.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..core.exceptions import InvalidParameterError
from ..core.models import Candle, IndicatorSignal, LevelType, SupportResistanceLevel


logger = logging.getLogger(__name__)

RETRACEMENT_RATIOS = (0.236, 0.382, 0.5, 0.618, 0.786)
EXTENSION_RATIOS = (1.272, 1.414, 1.618, 2.0, 2.618)
GOLDEN_RATIOS = (0.382, 0.618, 1.272, 1.618)

LEVEL_DEDUP_TOLERANCE = 0.005
GROUP_TOLERANCE = 0.01
TEST_TOLERANCE = 0.005
MIN_DYNAMIC_STRENGTH = 0.3
MAX_LEVELS = 20


@dataclass(frozen=True)
class PivotPoints:
    """經典樞紐點"""
    pivot: float
    r1: float
    r2: float
    r3: float
    s1: float
    s2: float
    s3: float


@dataclass
class LevelDetectionOptions:
    """detect_all_levels 的來源開關與參數"""
    include_pivots: bool = True
    include_psychological: bool = True
    include_fibonacci: bool = False
    include_volume: bool = True
    swing_high: Optional[float] = None
    swing_low: Optional[float] = None
    lookback: int = 50
    max_levels: int = MAX_LEVELS


def remove_duplicate_levels(
    levels: Sequence[SupportResistanceLevel],
    tolerance: float = LEVEL_DEDUP_TOLERANCE,
) -> List[SupportResistanceLevel]:
    """移除相近的重複價位

    同類型且相對價差小於 tolerance 的價位視為同一價位，保留強度較高者。
    輸出保持第一次出現的順序。
    """
    unique: List[SupportResistanceLevel] = []
    for level in levels:
        for i, existing in enumerate(unique):
            if existing.level_type != level.level_type or existing.level == 0:
                continue
            if abs(existing.level - level.level) / abs(existing.level) < tolerance:
                if level.strength > existing.strength:
                    unique[i] = level
                break
        else:
            unique.append(level)
    return unique


class SupportResistanceDetector:
    """支撐壓力位偵測器

    Attributes:
        group_tolerance: 動態價位分組容差 (相對群組平均)
        test_tolerance: 計算測試次數的價差容差
        min_strength: 動態價位最低強度
        extrema_lookback: 動態價位極值判斷的前後 K 線數
    """

    def __init__(
        self,
        group_tolerance: float = GROUP_TOLERANCE,
        test_tolerance: float = TEST_TOLERANCE,
        min_strength: float = MIN_DYNAMIC_STRENGTH,
        extrema_lookback: int = 2,
    ):
        self.group_tolerance = group_tolerance
        self.test_tolerance = test_tolerance
        self.min_strength = min_strength
        self.extrema_lookback = extrema_lookback

    # ------------------------------------------------------------------
    # Pivot points
    # ------------------------------------------------------------------

    def calculate_pivot_points(self, high: float, low: float, close: float) -> PivotPoints:
        """以最近一根 K 線計算經典樞紐點

        Args:
            high: 最高價
            low: 最低價
            close: 收盤價

        Returns:
            樞紐點與三層支撐壓力
        """
        pivot = (high + low + close) / 3
        return PivotPoints(
            pivot=pivot,
            r1=2 * pivot - low,
            r2=pivot + (high - low),
            r3=high + 2 * (pivot - low),
            s1=2 * pivot - high,
            s2=pivot - (high - low),
            s3=low - 2 * (high - pivot),
        )

    def pivot_levels(self, candles: Sequence[Candle]) -> List[SupportResistanceLevel]:
        """把最近一根 K 線的樞紐點轉為價位列表"""
        if not candles:
            return []
        last = candles[-1]
        p = self.calculate_pivot_points(last.high, last.low, last.close)
        rows = (
            (p.pivot, LevelType.SUPPORT, 0.7),
            (p.r1, LevelType.RESISTANCE, 0.6),
            (p.r2, LevelType.RESISTANCE, 0.5),
            (p.r3, LevelType.RESISTANCE, 0.4),
            (p.s1, LevelType.SUPPORT, 0.6),
            (p.s2, LevelType.SUPPORT, 0.5),
            (p.s3, LevelType.SUPPORT, 0.4),
        )
        return [
            SupportResistanceLevel(level, level_type, strength, 1, 0.0, strength, "pivot")
            for level, level_type, strength in rows
            if level > 0
        ]

    # ------------------------------------------------------------------
    # Dynamic levels
    # ------------------------------------------------------------------

    def detect_dynamic_levels(self, candles: Sequence[Candle], lookback: int = 50) -> List[SupportResistanceLevel]:
        """從近期波段高低點偵測動態支撐壓力

        Args:
            candles: K 線序列
            lookback: 搜尋極值的最近 K 線數

        Returns:
            強度不低於 min_strength 的價位，依強度遞減排序
        """
        if lookback < 1:
            raise InvalidParameterError("lookback", lookback, "lookback must be positive")
        n = len(candles)
        window = min(lookback, n)
        offset = n - window
        recent = candles[offset:]
        lb = self.extrema_lookback

        points = []
        for i in range(lb, window - lb):
            current = recent[i]
            neighbours = [recent[j] for j in range(i - lb, i + lb + 1) if j != i]
            if all(current.high > c.high for c in neighbours):
                points.append((current.high, LevelType.RESISTANCE, offset + i, current.volume))
            if all(current.low < c.low for c in neighbours):
                points.append((current.low, LevelType.SUPPORT, offset + i, current.volume))

        levels = []
        for group in self._group_levels(points):
            level = self._score_group(group, candles)
            if level.strength >= self.min_strength:
                levels.append(level)

        levels.sort(key=lambda lvl: lvl.strength, reverse=True)
        return levels

    def _group_levels(self, points):
        groups = []
        for point in sorted(points, key=lambda p: p[0]):
            for group in groups:
                average = sum(p[0] for p in group) / len(group)
                if group[0][1] == point[1] and abs(point[0] - average) / average <= self.group_tolerance:
                    group.append(point)
                    break
            else:
                groups.append([point])
        return groups

    def _score_group(self, group, candles: Sequence[Candle]) -> SupportResistanceLevel:
        n = len(candles)
        level_type = group[0][1]
        average_price = sum(p[0] for p in group) / len(group)
        total_volume = sum(p[3] for p in group)
        touches = len(group)

        tests = self.count_level_tests(average_price, candles, level_type)
        latest_index = max(p[2] for p in group)
        recency = max(0.1, 1 - (n - latest_index) / n)
        average_volume = sum(c.volume for c in candles) / n
        if average_volume > 0:
            volume_factor = min(2.0, total_volume / (average_volume * touches))
        else:
            volume_factor = 0.0

        strength = touches * 0.3 + tests * 0.4 + recency * 0.2 + volume_factor * 0.1
        strength = min(1.0, strength / 3)
        confidence = min(1.0, touches / 5 + tests / 10 + recency)

        return SupportResistanceLevel(
            level=average_price,
            level_type=level_type,
            strength=strength,
            touches=max(touches, tests),
            volume=total_volume,
            confidence=confidence,
            source="dynamic",
        )

    def count_level_tests(self, level: float, candles: Sequence[Candle], level_type: LevelType) -> int:
        """計算最低價 (支撐) 或最高價 (壓力) 落在價位容差內的 K 線數"""
        count = 0
        for candle in candles:
            price = candle.low if level_type == LevelType.SUPPORT else candle.high
            if abs(price - level) / level <= self.test_tolerance:
                count += 1
        return count

    # ------------------------------------------------------------------
    # Psychological levels
    # ------------------------------------------------------------------

    @staticmethod
    def round_number_interval(price: float) -> float:
        """依價格量級決定整數關卡間距"""
        if price < 1:
            return 0.1
        if price < 10:
            return 1.0
        if price < 100:
            return 5.0
        if price < 1000:
            return 10.0
        return 50.0

    def identify_psychological_levels(
        self,
        current_price: float,
        price_range: float = 0.2,
    ) -> List[SupportResistanceLevel]:
        """找出目前價格 ±price_range 內的整數關卡

        強度隨距離線性遞減：max(0.2, 1 - 5 * 距離)。
        """
        if current_price <= 0:
            raise InvalidParameterError("current_price", current_price, "price must be positive")

        interval = self.round_number_interval(current_price)
        min_price = current_price * (1 - price_range)
        max_price = current_price * (1 + price_range)

        levels = []
        step = math.floor(min_price / interval)
        while step * interval <= max_price:
            # Multiply instead of accumulating to avoid float drift
            level = round(step * interval, 10)
            step += 1
            if level <= 0 or level < min_price or level > max_price:
                continue
            distance = abs(level - current_price) / current_price
            level_type = LevelType.SUPPORT if level < current_price else LevelType.RESISTANCE
            levels.append(SupportResistanceLevel(
                level=level,
                level_type=level_type,
                strength=max(0.2, 1 - distance * 5),
                touches=1,
                volume=0.0,
                confidence=0.6,
                source="psychological",
            ))
        return levels

    # ------------------------------------------------------------------
    # Fibonacci levels
    # ------------------------------------------------------------------

    def calculate_fibonacci_levels(
        self,
        swing_high: float,
        swing_low: float,
        kind: str = "retracement",
        direction: IndicatorSignal = IndicatorSignal.BULLISH,
        current_price: Optional[float] = None,
    ) -> List[SupportResistanceLevel]:
        """計算斐波那契回撤或延伸價位

        Args:
            swing_high: 波段高點
            swing_low: 波段低點
            kind: "retracement" 或 "extension"
            direction: 延伸方向；BULLISH 向上延伸，BEARISH 向下延伸
            current_price: 給定時回撤只保留距離 1-20% 的價位，延伸只保留 2-50%

        Returns:
            斐波那契價位列表

        Raises:
            InvalidParameterError: 高點不大於低點或 kind 不正確
        """
        if swing_high <= swing_low:
            raise InvalidParameterError("swing_high", swing_high, "swing high must be above swing low")
        if kind not in ("retracement", "extension"):
            raise InvalidParameterError("kind", kind, "kind must be 'retracement' or 'extension'")

        price_range = swing_high - swing_low
        levels = []
        if kind == "retracement":
            ratios, band = RETRACEMENT_RATIOS, (0.01, 0.20)
        else:
            ratios, band = EXTENSION_RATIOS, (0.02, 0.50)

        for ratio in ratios:
            if kind == "retracement":
                level = swing_high - price_range * ratio
            elif direction == IndicatorSignal.BEARISH:
                level = swing_high - price_range * ratio
            else:
                level = swing_low + price_range * ratio
            if level <= 0:
                continue

            if current_price is not None:
                distance = abs(level - current_price) / current_price
                if not band[0] <= distance <= band[1]:
                    continue
                level_type = LevelType.SUPPORT if level < current_price else LevelType.RESISTANCE
            elif kind == "retracement":
                level_type = LevelType.SUPPORT
            else:
                level_type = LevelType.SUPPORT if direction == IndicatorSignal.BEARISH else LevelType.RESISTANCE

            if ratio in (0.382, 0.618, 1.618):
                strength = 0.8
            elif ratio in (0.5, 1.272):
                strength = 0.7
            else:
                strength = 0.6

            levels.append(SupportResistanceLevel(
                level=level,
                level_type=level_type,
                strength=strength,
                touches=1,
                volume=0.0,
                confidence=0.8 if ratio in GOLDEN_RATIOS else 0.7,
                source=f"fibonacci_{ratio}",
            ))
        return levels

    # ------------------------------------------------------------------
    # Volume levels
    # ------------------------------------------------------------------

    def detect_volume_based_levels(
        self,
        candles: Sequence[Candle],
        volume_threshold: float = 1.5,
    ) -> List[SupportResistanceLevel]:
        """找出高成交量 K 線聚集的價位

        成交量超過平均 volume_threshold 倍的 K 線，依收盤價分桶
        (桶寬為平均收盤價的 1%)，每桶至少兩根才成立。
        """
        if not candles:
            return []
        volumes = np.array([c.volume for c in candles], dtype=float)
        average_volume = float(np.mean(volumes))
        if average_volume <= 0:
            return []
        bucket_width = float(np.mean([c.close for c in candles])) * 0.01
        current_price = candles[-1].close

        buckets: Dict[int, List[Candle]] = {}
        for candle in candles:
            if candle.volume > average_volume * volume_threshold:
                buckets.setdefault(int(round(candle.close / bucket_width)), []).append(candle)

        levels = []
        for key, members in buckets.items():
            if len(members) < 2:
                continue
            level = key * bucket_width
            total_volume = sum(c.volume for c in members)
            levels.append(SupportResistanceLevel(
                level=level,
                level_type=LevelType.SUPPORT if level < current_price else LevelType.RESISTANCE,
                strength=min(1.0, total_volume / average_volume / 10),
                touches=len(members),
                volume=total_volume,
                confidence=min(1.0, len(members) / 5),
                source="volume",
            ))

        levels.sort(key=lambda lvl: lvl.strength, reverse=True)
        return levels

    # ------------------------------------------------------------------
    # Combined
    # ------------------------------------------------------------------

    def detect_all_levels(
        self,
        candles: Sequence[Candle],
        options: Optional[LevelDetectionOptions] = None,
    ) -> List[SupportResistanceLevel]:
        """綜合所有啟用來源的支撐壓力位

        Args:
            candles: K 線序列
            options: 來源開關，預設啟用動態、樞紐、整數關卡與成交量

        Returns:
            去重後依強度遞減排序的價位，最多 options.max_levels 個
        """
        opts = options or LevelDetectionOptions()
        if not candles:
            return []

        levels = self.detect_dynamic_levels(candles, opts.lookback)
        if opts.include_pivots:
            levels.extend(self.pivot_levels(candles))
        if opts.include_psychological:
            levels.extend(self.identify_psychological_levels(candles[-1].close))
        if opts.include_fibonacci and opts.swing_high is not None and opts.swing_low is not None:
            if opts.swing_high > opts.swing_low:
                levels.extend(self.calculate_fibonacci_levels(opts.swing_high, opts.swing_low))
        if opts.include_volume:
            levels.extend(self.detect_volume_based_levels(candles))

        unique = remove_duplicate_levels(levels)
        unique.sort(key=lambda lvl: lvl.strength, reverse=True)
        logger.debug(f"Level detection kept {min(len(unique), opts.max_levels)} of {len(levels)} levels")
        return unique[:opts.max_levels]
