"""
指標庫 (Indicator Pool)

負責計算所有技術指標。每個方法都是輸入序列的純函數，
資料長度不足時拋出 InsufficientDataError，絕不回傳 NaN 或空序列。
"""

from typing import List, Optional, Sequence

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from ..core.exceptions import InsufficientDataError, InvalidParameterError
from ..core.models import IndicatorSignal
from .models import (
    ATRParams,
    BollingerParams,
    IndicatorResult,
    MACDParams,
    RSIParams,
    SMAParams,
    StochasticParams,
)


# RSI 在平均跌幅為零時的飽和值；漲跌皆為零時回傳中性值
RSI_SATURATED = 100.0
RSI_FLAT = 50.0
# KD 在區間高低相同時的飽和值
STOCHASTIC_FLAT = 50.0


def _require_period(name: str, period: int) -> None:
    if isinstance(period, bool) or not isinstance(period, int) or period < 1:
        raise InvalidParameterError(name, period, "period must be a positive integer")


def _require_length(operation: str, data: Sequence[float], required: int) -> None:
    if len(data) < required:
        raise InsufficientDataError(operation, required, len(data))


def _to_array(name: str, values: Sequence[float]) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    if arr.size and not np.all(np.isfinite(arr)):
        raise InvalidParameterError(name, "non-finite value", "inputs must be finite numbers")
    return arr


class IndicatorPool:
    """技術指標計算庫"""

    def __init__(
        self,
        rsi_period: int = 14,
        macd_fast: int = 12,
        macd_slow: int = 26,
        macd_signal: int = 9,
        bb_period: int = 20,
        bb_std: float = 2.0,
        atr_period: int = 14,
        stoch_k: int = 14,
        stoch_d: int = 3,
    ):
        """
        初始化指標庫，設定各指標的預設計算參數

        Args:
            rsi_period: RSI 計算週期
            macd_fast: MACD 快線週期
            macd_slow: MACD 慢線週期
            macd_signal: MACD 訊號線週期
            bb_period: 布林通道週期
            bb_std: 布林通道標準差倍數
            atr_period: ATR 計算週期
            stoch_k: KD 指標 K 值週期
            stoch_d: KD 指標 D 值週期

        Raises:
            InvalidParameterError: 週期非正整數、標準差倍數非正或快線不小於慢線
        """
        for name, period in (
            ("rsi_period", rsi_period),
            ("macd_fast", macd_fast),
            ("macd_slow", macd_slow),
            ("macd_signal", macd_signal),
            ("bb_period", bb_period),
            ("atr_period", atr_period),
            ("stoch_k", stoch_k),
            ("stoch_d", stoch_d),
        ):
            _require_period(name, period)
        if macd_fast >= macd_slow:
            raise InvalidParameterError("macd_fast", macd_fast, "fast period must be shorter than slow period")
        if bb_std <= 0:
            raise InvalidParameterError("bb_std", bb_std, "standard deviation multiplier must be positive")

        self.rsi_period = rsi_period
        self.macd_fast = macd_fast
        self.macd_slow = macd_slow
        self.macd_signal = macd_signal
        self.bb_period = bb_period
        self.bb_std = bb_std
        self.atr_period = atr_period
        self.stoch_k = stoch_k
        self.stoch_d = stoch_d

    # ------------------------------------------------------------------
    # 移動平均
    # ------------------------------------------------------------------

    def calculate_sma(self, prices: Sequence[float], period: int) -> List[float]:
        """
        計算簡單移動平均序列

        Args:
            prices: 價格序列
            period: 計算週期

        Returns:
            長度為 len(prices) - period + 1 的 SMA 序列

        Raises:
            InsufficientDataError: period 大於資料長度
        """
        _require_period("period", period)
        _require_length(f"SMA({period})", prices, period)
        arr = _to_array("prices", prices)
        return sliding_window_view(arr, period).mean(axis=1).tolist()

    def calculate_ema(self, prices: Sequence[float], period: int) -> List[float]:
        """
        計算指數移動平均序列

        第一個值為前 period 筆的 SMA，之後使用乘數 2 / (period + 1)。

        Args:
            prices: 價格序列
            period: EMA 週期

        Returns:
            長度為 len(prices) - period + 1 的 EMA 序列
        """
        _require_period("period", period)
        _require_length(f"EMA({period})", prices, period)
        arr = _to_array("prices", prices)
        return self._calculate_ema_series(arr, period).tolist()

    def _calculate_ema_series(self, prices: np.ndarray, period: int) -> np.ndarray:
        multiplier = 2.0 / (period + 1)
        ema_series = np.zeros(len(prices) - period + 1)
        ema_series[0] = np.mean(prices[:period])
        for i in range(1, len(ema_series)):
            price = prices[period - 1 + i]
            ema_series[i] = (price - ema_series[i - 1]) * multiplier + ema_series[i - 1]
        return ema_series

    def calculate_sma_result(
        self,
        closes: Sequence[float],
        period: int,
        fast_period: Optional[int] = None,
    ) -> IndicatorResult:
        """
        計算 SMA 指標結果

        未指定 fast_period 時以收盤價相對 SMA 的位置判斷方向；
        指定時以較短週期 SMA 相對本 SMA 的位置判斷 (均線排列)。

        Args:
            closes: 收盤價序列
            period: SMA 週期
            fast_period: 用於比較的較短週期

        Returns:
            名稱為 SMA_{period} 的 IndicatorResult
        """
        values = self.calculate_sma(closes, period)
        sma = values[-1]
        if fast_period is None:
            reference = float(closes[-1])
        else:
            reference = self.calculate_sma(closes, fast_period)[-1]

        if reference > sma:
            signal = IndicatorSignal.BULLISH
        elif reference < sma:
            signal = IndicatorSignal.BEARISH
        else:
            signal = IndicatorSignal.NEUTRAL

        extras = {} if fast_period is None else {"fast_period": fast_period}
        return IndicatorResult(
            name=f"SMA_{period}",
            values=tuple(values),
            parameters=SMAParams(period=period, extras=extras),
            interpretation=f"{period}-period Simple Moving Average: {sma:.2f}",
            signal=signal,
        )

    # ------------------------------------------------------------------
    # 動能指標
    # ------------------------------------------------------------------

    def calculate_rsi(self, prices: Sequence[float], period: Optional[int] = None) -> IndicatorResult:
        """
        計算 RSI 序列

        以前 period 個變動的平均漲跌幅為種子，之後套用 Wilder 平滑。
        平均跌幅為 0 時 RSI 飽和為 100；漲跌皆為 0 時為 50。

        Args:
            prices: 價格序列
            period: RSI 週期，預設使用初始化設定

        Returns:
            長度為 len(prices) - period 的 RSI 結果

        Raises:
            InsufficientDataError: 資料少於 period + 1 筆
        """
        period = self.rsi_period if period is None else period
        _require_period("period", period)
        _require_length(f"RSI({period})", prices, period + 1)
        arr = _to_array("prices", prices)

        deltas = np.diff(arr)
        gains = np.where(deltas > 0, deltas, 0.0)
        losses = np.where(deltas < 0, -deltas, 0.0)

        avg_gain = float(np.mean(gains[:period]))
        avg_loss = float(np.mean(losses[:period]))
        values = [self._rsi_value(avg_gain, avg_loss)]
        for i in range(period, len(deltas)):
            avg_gain = (avg_gain * (period - 1) + gains[i]) / period
            avg_loss = (avg_loss * (period - 1) + losses[i]) / period
            values.append(float(self._rsi_value(avg_gain, avg_loss)))

        params = RSIParams(period=period)
        latest = values[-1]
        if latest > params.overbought:
            signal = IndicatorSignal.BEARISH
            interpretation = f"RSI at {latest:.2f} is overbought, upside momentum may be exhausted"
        elif latest < params.oversold:
            signal = IndicatorSignal.BULLISH
            interpretation = f"RSI at {latest:.2f} is oversold, selling pressure may be exhausted"
        else:
            signal = IndicatorSignal.NEUTRAL
            interpretation = f"RSI at {latest:.2f} is in neutral territory"

        return IndicatorResult(
            name="RSI",
            values=tuple(values),
            parameters=params,
            interpretation=interpretation,
            signal=signal,
        )

    @staticmethod
    def _rsi_value(avg_gain: float, avg_loss: float) -> float:
        if avg_loss == 0:
            return RSI_SATURATED if avg_gain > 0 else RSI_FLAT
        rs = avg_gain / avg_loss
        return 100.0 - (100.0 / (1.0 + rs))

    def calculate_macd(
        self,
        prices: Sequence[float],
        fast: Optional[int] = None,
        slow: Optional[int] = None,
        signal: Optional[int] = None,
    ) -> IndicatorResult:
        """
        計算 MACD

        MACD 線 = 快線 EMA (切除前 slow - fast 筆對齊) - 慢線 EMA；
        訊號線 = MACD 線的 EMA；柱狀圖 = MACD 線 - 訊號線。
        components 中三條線長度相同且索引對齊。

        Args:
            prices: 價格序列
            fast: 快線週期
            slow: 慢線週期
            signal: 訊號線週期

        Returns:
            MACD 結果，values 為對齊後的 MACD 線

        Raises:
            InvalidParameterError: fast >= slow
            InsufficientDataError: 資料少於 slow + signal - 1 筆
        """
        fast = self.macd_fast if fast is None else fast
        slow = self.macd_slow if slow is None else slow
        signal = self.macd_signal if signal is None else signal
        for name, period in (("fast", fast), ("slow", slow), ("signal", signal)):
            _require_period(name, period)
        if fast >= slow:
            raise InvalidParameterError("fast", fast, "fast period must be shorter than slow period")
        _require_length(f"MACD({fast},{slow},{signal})", prices, slow + signal - 1)
        arr = _to_array("prices", prices)

        fast_ema = self._calculate_ema_series(arr, fast)
        slow_ema = self._calculate_ema_series(arr, slow)
        macd_line = fast_ema[slow - fast:] - slow_ema
        signal_line = self._calculate_ema_series(macd_line, signal)
        aligned_macd = macd_line[signal - 1:]
        histogram = aligned_macd - signal_line

        m, s, h = float(aligned_macd[-1]), float(signal_line[-1]), float(histogram[-1])
        if m > s and h > 0:
            direction = IndicatorSignal.BULLISH
            interpretation = f"MACD {m:.4f} above signal {s:.4f}, bullish momentum"
        elif m < s and h < 0:
            direction = IndicatorSignal.BEARISH
            interpretation = f"MACD {m:.4f} below signal {s:.4f}, bearish momentum"
        else:
            direction = IndicatorSignal.NEUTRAL
            interpretation = f"MACD {m:.4f} flat against signal {s:.4f}, no clear momentum"

        return IndicatorResult(
            name="MACD",
            values=tuple(aligned_macd.tolist()),
            parameters=MACDParams(fast=fast, slow=slow, signal=signal),
            interpretation=interpretation,
            signal=direction,
            components={
                "macd_line": tuple(aligned_macd.tolist()),
                "signal_line": tuple(signal_line.tolist()),
                "histogram": tuple(histogram.tolist()),
            },
        )

    def calculate_stochastic(
        self,
        highs: Sequence[float],
        lows: Sequence[float],
        closes: Sequence[float],
        k_period: Optional[int] = None,
        d_period: Optional[int] = None,
    ) -> IndicatorResult:
        """
        計算 KD 指標

        %K = (收盤 - 區間最低) / (區間最高 - 區間最低) * 100；
        區間高低相同時 %K 為 50。%D = %K 的 SMA。

        Args:
            highs: 最高價序列
            lows: 最低價序列
            closes: 收盤價序列
            k_period: K 值週期
            d_period: D 值週期

        Returns:
            KD 結果，values 為與 %D 對齊的 %K

        Raises:
            InvalidParameterError: 三個序列長度不一致
            InsufficientDataError: 資料少於 k_period + d_period - 1 筆
        """
        k_period = self.stoch_k if k_period is None else k_period
        d_period = self.stoch_d if d_period is None else d_period
        _require_period("k_period", k_period)
        _require_period("d_period", d_period)
        highs_arr, lows_arr, closes_arr = self._hlc_arrays(highs, lows, closes)
        _require_length(f"Stochastic({k_period},{d_period})", closes_arr, k_period + d_period - 1)

        highest = sliding_window_view(highs_arr, k_period).max(axis=1)
        lowest = sliding_window_view(lows_arr, k_period).min(axis=1)
        window_closes = closes_arr[k_period - 1:]
        ranges = highest - lowest
        k_values = np.full(len(ranges), STOCHASTIC_FLAT)
        nonzero = ranges > 0
        k_values[nonzero] = (window_closes[nonzero] - lowest[nonzero]) / ranges[nonzero] * 100.0

        d_values = sliding_window_view(k_values, d_period).mean(axis=1)
        aligned_k = k_values[d_period - 1:]

        params = StochasticParams(k_period=k_period, d_period=d_period)
        k, d = float(aligned_k[-1]), float(d_values[-1])
        if k > params.overbought and d > params.overbought:
            signal = IndicatorSignal.BEARISH
            interpretation = f"Stochastic %K {k:.2f} / %D {d:.2f} overbought"
        elif k < params.oversold and d < params.oversold:
            signal = IndicatorSignal.BULLISH
            interpretation = f"Stochastic %K {k:.2f} / %D {d:.2f} oversold"
        elif k > d:
            signal = IndicatorSignal.NEUTRAL
            interpretation = f"Stochastic %K {k:.2f} above %D {d:.2f}, momentum improving"
        elif k < d:
            signal = IndicatorSignal.NEUTRAL
            interpretation = f"Stochastic %K {k:.2f} below %D {d:.2f}, momentum fading"
        else:
            signal = IndicatorSignal.NEUTRAL
            interpretation = f"Stochastic %K and %D level at {k:.2f}"

        return IndicatorResult(
            name="Stochastic",
            values=tuple(aligned_k.tolist()),
            parameters=params,
            interpretation=interpretation,
            signal=signal,
            components={
                "k": tuple(aligned_k.tolist()),
                "d": tuple(d_values.tolist()),
            },
        )

    # ------------------------------------------------------------------
    # 波動度指標
    # ------------------------------------------------------------------

    def calculate_bollinger(
        self,
        prices: Sequence[float],
        period: Optional[int] = None,
        std_devs: Optional[float] = None,
    ) -> IndicatorResult:
        """
        計算布林通道

        中軌 = SMA；上下軌 = 中軌 ± std_devs * 母體標準差。

        Args:
            prices: 價格序列
            period: 計算週期
            std_devs: 標準差倍數

        Returns:
            布林通道結果，values 為中軌，components 含 upper/lower/bandwidth
        """
        period = self.bb_period if period is None else period
        std_devs = self.bb_std if std_devs is None else std_devs
        _require_period("period", period)
        if std_devs <= 0:
            raise InvalidParameterError("std_devs", std_devs, "standard deviation multiplier must be positive")
        _require_length(f"Bollinger({period})", prices, period)
        arr = _to_array("prices", prices)

        windows = sliding_window_view(arr, period)
        middle = windows.mean(axis=1)
        std = windows.std(axis=1, ddof=0)
        upper = middle + std_devs * std
        lower = middle - std_devs * std
        bandwidth = np.divide(
            upper - lower, middle, out=np.zeros_like(middle), where=middle != 0
        )

        close = float(arr[-1])
        up, mid, low = float(upper[-1]), float(middle[-1]), float(lower[-1])
        if close > up:
            signal = IndicatorSignal.BEARISH
            interpretation = f"Price {close:.2f} above upper band {up:.2f}, overextended"
        elif close < low:
            signal = IndicatorSignal.BULLISH
            interpretation = f"Price {close:.2f} below lower band {low:.2f}, stretched to the downside"
        elif close > mid:
            signal = IndicatorSignal.NEUTRAL
            interpretation = f"Price {close:.2f} above middle band {mid:.2f}, bullish bias"
        elif close < mid:
            signal = IndicatorSignal.NEUTRAL
            interpretation = f"Price {close:.2f} below middle band {mid:.2f}, bearish bias"
        else:
            signal = IndicatorSignal.NEUTRAL
            interpretation = f"Price {close:.2f} at middle band"

        return IndicatorResult(
            name="Bollinger",
            values=tuple(middle.tolist()),
            parameters=BollingerParams(period=period, std_dev=std_devs),
            interpretation=interpretation,
            signal=signal,
            components={
                "middle": tuple(middle.tolist()),
                "upper": tuple(upper.tolist()),
                "lower": tuple(lower.tolist()),
                "bandwidth": tuple(bandwidth.tolist()),
            },
        )

    @staticmethod
    def detect_squeeze(bandwidths: Sequence[float], lookback: int, ratio: float = 0.5) -> bool:
        """
        偵測布林通道壓縮

        最新帶寬小於前 lookback 筆平均帶寬的 ratio 倍時視為壓縮。
        歷史帶寬不足時回傳 False。
        """
        if len(bandwidths) < 2:
            return False
        history = np.asarray(bandwidths[-(lookback + 1):-1], dtype=float)
        avg_bandwidth = float(np.mean(history))
        return float(bandwidths[-1]) < avg_bandwidth * ratio

    def calculate_atr(
        self,
        highs: Sequence[float],
        lows: Sequence[float],
        closes: Sequence[float],
        period: Optional[int] = None,
    ) -> IndicatorResult:
        """
        計算 ATR (平均真實區間)

        真實區間 = max(高 - 低, |高 - 前收|, |低 - 前收|)，以 SMA 平滑。

        Returns:
            長度為 len(closes) - period 的 ATR 結果

        Raises:
            InsufficientDataError: 資料少於 period + 1 筆
        """
        period = self.atr_period if period is None else period
        _require_period("period", period)
        highs_arr, lows_arr, closes_arr = self._hlc_arrays(highs, lows, closes)
        _require_length(f"ATR({period})", closes_arr, period + 1)

        prev_close = closes_arr[:-1]
        high, low = highs_arr[1:], lows_arr[1:]
        true_ranges = np.maximum.reduce([
            high - low,
            np.abs(high - prev_close),
            np.abs(low - prev_close),
        ])
        atr = sliding_window_view(true_ranges, period).mean(axis=1)

        latest = float(atr[-1])
        close = float(closes_arr[-1])
        pct = latest / close * 100 if close else 0.0
        return IndicatorResult(
            name="ATR",
            values=tuple(atr.tolist()),
            parameters=ATRParams(period=period),
            interpretation=f"Average True Range {latest:.4f} ({pct:.2f}% of price)",
            signal=IndicatorSignal.NEUTRAL,
        )

    def _hlc_arrays(self, highs, lows, closes):
        if not (len(highs) == len(lows) == len(closes)):
            raise InvalidParameterError(
                "highs/lows/closes",
                (len(highs), len(lows), len(closes)),
                "high, low and close series must have the same length",
            )
        return _to_array("highs", highs), _to_array("lows", lows), _to_array("closes", closes)


def percentile_rank(values: Sequence[float], value: float) -> float:
    """計算 value 在 values 中的百分位 (0-1)，values 為空時回傳 0.5"""
    if not values:
        return 0.5
    below = sum(1 for v in values if v < value)
    equal = sum(1 for v in values if v == value)
    rank = (below + 0.5 * equal) / len(values)
    return rank
