"""Trend Line Fitter for TA Engine

Least-squares line fitting through pivot points, enumeration of candidate
support/resistance lines from pivot pairs, and the parallel-line test used
by channel detection.
"""

from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from .exceptions import InsufficientDataError
from .models import ChartCoordinate, Extremum, TrendLine, TrendLineType


MAX_LINE_PIVOTS = 20
MAX_TREND_LINES = 10
MIN_PAIR_DISTANCE = 5
TOUCH_TOLERANCE = 0.02
MIN_TOUCHES = 2
PARALLEL_TOLERANCE = 0.001


@dataclass(frozen=True)
class LineFit:
    """最小平方法擬合結果"""
    slope: float
    intercept: float
    r_squared: float


class TrendLineFitter:
    """趨勢線擬合器

    以樞紐點兩兩配對產生候選趨勢線，並計算每條線觸及的樞紐點數。
    樞紐點數與輸出線數皆有上限，配對列舉最多 C(20, 2) 次。
    """

    def __init__(
        self,
        touch_tolerance: float = TOUCH_TOLERANCE,
        min_touches: int = MIN_TOUCHES,
        max_pivots: int = MAX_LINE_PIVOTS,
        max_lines: int = MAX_TREND_LINES,
        min_distance: int = MIN_PAIR_DISTANCE,
    ):
        self.touch_tolerance = touch_tolerance
        self.min_touches = min_touches
        self.max_pivots = max_pivots
        self.max_lines = max_lines
        self.min_distance = min_distance

    def fit(self, points: Sequence[Extremum]) -> LineFit:
        """對樞紐點做一次線性擬合

        Args:
            points: 至少兩個樞紐點

        Returns:
            斜率、截距與 R² 值

        Raises:
            InsufficientDataError: 少於兩個點
        """
        if len(points) < 2:
            raise InsufficientDataError("trend line fit", 2, len(points))

        x = np.array([p.index for p in points], dtype=float)
        y = np.array([p.price for p in points], dtype=float)
        slope, intercept = np.polyfit(x, y, 1)

        y_pred = slope * x + intercept
        ss_res = np.sum((y - y_pred) ** 2)
        ss_tot = np.sum((y - np.mean(y)) ** 2)
        if ss_tot == 0:
            r_squared = 1.0 if ss_res == 0 else 0.0
        else:
            r_squared = 1 - (ss_res / ss_tot)

        return LineFit(float(slope), float(intercept), float(r_squared))

    def find_trend_lines(self, points: Sequence[Extremum], line_type: TrendLineType) -> List[TrendLine]:
        """列舉通過樞紐點對的趨勢線

        只使用最近 max_pivots 個樞紐點；配對間距至少 min_distance 根 K 線；
        在兩端點之間、與線的相對距離不超過 touch_tolerance 的樞紐點算作觸及。

        Args:
            points: 按索引排序的樞紐點
            line_type: 產生的線類型

        Returns:
            觸及數達門檻的趨勢線，依觸及數遞減排序，最多 max_lines 條
        """
        pivots = list(points)[-self.max_pivots:]
        if len(pivots) < 2:
            return []

        lines = []
        for i in range(len(pivots) - 1):
            for j in range(i + 1, len(pivots)):
                start, end = pivots[i], pivots[j]
                if end.index - start.index < self.min_distance:
                    continue

                slope = (end.price - start.price) / (end.index - start.index)
                touches = 0
                for p in pivots:
                    if start.index <= p.index <= end.index:
                        expected = start.price + slope * (p.index - start.index)
                        if expected > 0 and abs(p.price - expected) / expected <= self.touch_tolerance:
                            touches += 1

                if touches >= self.min_touches:
                    lines.append(TrendLine(
                        start_point=ChartCoordinate(start.index, start.price),
                        end_point=ChartCoordinate(end.index, end.price),
                        slope=slope,
                        strength=touches,
                        line_type=line_type,
                        intercept=start.price - slope * start.index,
                    ))

        lines.sort(key=lambda line: (line.strength, line.end_point.x), reverse=True)
        return lines[:self.max_lines]

    @staticmethod
    def are_parallel(first: TrendLine, second: TrendLine, tolerance: float = PARALLEL_TOLERANCE) -> bool:
        """兩線斜率差小於 tolerance 時視為平行"""
        return abs(first.slope - second.slope) < tolerance
