"""Local Extrema Detector for TA Engine

This module implements the LocalExtremaDetector class for identifying
swing highs and swing lows in OHLC series.
"""

from typing import List, Sequence

from .exceptions import InvalidParameterError
from .models import Candle, Extremum


# Upper bound on returned extrema; downstream detectors enumerate pairs
MAX_EXTREMA = 50

KIND_HIGH = "high"
KIND_LOW = "low"


class LocalExtremaDetector:
    """局部極值檢測器

    從價格序列中識別波峰（局部最大值）與波谷（局部最小值）。
    一個點必須在前後各 lookback 根 K 線範圍內「嚴格」最高 (或最低)
    才算極值，相同價位不算。

    Attributes:
        lookback: 前後各檢查的 K 線數
        max_points: 回傳極值數量上限，超過時保留最近的點
    """

    def __init__(self, lookback: int = 3, max_points: int = MAX_EXTREMA):
        """初始化極值檢測器

        Args:
            lookback: 前後各檢查的 K 線數，預設 3
            max_points: 回傳極值數量上限，預設 50

        Raises:
            InvalidParameterError: 參數非正整數
        """
        if lookback < 1:
            raise InvalidParameterError("lookback", lookback, "lookback must be positive")
        if max_points < 1:
            raise InvalidParameterError("max_points", max_points, "max_points must be positive")

        self.lookback = lookback
        self.max_points = max_points

    def find_local_extrema(self, candles: Sequence[Candle], kind: str) -> List[Extremum]:
        """從 K 線序列找出局部極值

        Args:
            candles: K 線序列
            kind: "high" 使用最高價找波峰，"low" 使用最低價找波谷

        Returns:
            按索引排序的極值列表
        """
        if kind == KIND_HIGH:
            return self.find_peaks([c.high for c in candles])
        if kind == KIND_LOW:
            return self.find_troughs([c.low for c in candles])
        raise InvalidParameterError("kind", kind, "kind must be 'high' or 'low'")

    def detect(self, candles: Sequence[Candle]) -> List[Extremum]:
        """檢測所有波峰與波谷，按索引位置排序返回"""
        extrema = self.find_local_extrema(candles, KIND_HIGH) + self.find_local_extrema(candles, KIND_LOW)
        extrema.sort(key=lambda x: x.index)
        return extrema

    def find_peaks(self, prices: Sequence[float]) -> List[Extremum]:
        """僅返回波峰

        Args:
            prices: 價格序列

        Returns:
            波峰列表
        """
        return self._scan(prices, is_peak=True)

    def find_troughs(self, prices: Sequence[float]) -> List[Extremum]:
        """僅返回波谷

        Args:
            prices: 價格序列

        Returns:
            波谷列表
        """
        return self._scan(prices, is_peak=False)

    def _scan(self, prices: Sequence[float], is_peak: bool) -> List[Extremum]:
        lb = self.lookback
        if len(prices) < 2 * lb + 1:
            return []

        extrema = []
        for i in range(lb, len(prices) - lb):
            current = prices[i]
            neighbours = [prices[j] for j in range(i - lb, i + lb + 1) if j != i]
            if is_peak:
                is_extreme = all(current > p for p in neighbours)
            else:
                is_extreme = all(current < p for p in neighbours)
            if is_extreme:
                extrema.append(Extremum(index=i, price=float(current), is_peak=is_peak))

        if len(extrema) > self.max_points:
            extrema = extrema[-self.max_points:]
        return extrema
