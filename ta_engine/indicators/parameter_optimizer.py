"""Indicator Parameter Optimizer for TA Engine

Maps a timeframe label and a volatility estimate to indicator periods.
Short timeframes get faster indicators, daily and weekly bars get slower
ones, and the Bollinger multiplier widens or narrows with volatility.
"""

from .models import (
    BollingerParams,
    IndicatorParameterSet,
    MACDParams,
    RSIParams,
    StochasticParams,
)


INTRADAY_TIMEFRAMES = frozenset({"1m", "3m", "5m", "15m", "30m"})
LONG_TIMEFRAMES = frozenset({"1d", "1w", "1M", "D", "W", "M"})

HIGH_VOLATILITY = 0.8
LOW_VOLATILITY = 0.3


def _is_long_timeframe(timeframe: str) -> bool:
    # "1M" is monthly while "1m" is one minute, so only compare exact labels
    # before falling back to case-insensitive day/week labels.
    if timeframe in LONG_TIMEFRAMES:
        return True
    return timeframe.lower() in {"1d", "1w", "d", "w", "daily", "weekly"}


def optimize_parameters(timeframe: str, volatility: float = 0.5) -> IndicatorParameterSet:
    """依時間週期與波動度挑選指標參數

    Args:
        timeframe: 時間週期標籤 (例如 "5m", "1h", "1d")
        volatility: 波動度估計 (0-1)

    Returns:
        調整後的指標參數組合；未知的時間週期使用標準參數
    """
    rsi = RSIParams(period=14)
    macd = MACDParams(fast=12, slow=26, signal=9)
    bb_period = 20
    stochastic = StochasticParams(k_period=14, d_period=3)

    if timeframe in INTRADAY_TIMEFRAMES:
        rsi = RSIParams(period=9)
        macd = MACDParams(fast=8, slow=17, signal=6)
        bb_period = 15
        stochastic = StochasticParams(k_period=9, d_period=3)
    elif _is_long_timeframe(timeframe):
        rsi = RSIParams(period=21)
        macd = MACDParams(fast=19, slow=39, signal=14)
        bb_period = 30
        stochastic = StochasticParams(k_period=21, d_period=5)

    if volatility > HIGH_VOLATILITY:
        std_dev = 2.5
    elif volatility < LOW_VOLATILITY:
        std_dev = 1.5
    else:
        std_dev = 2.0

    return IndicatorParameterSet(
        rsi=rsi,
        macd=macd,
        bollinger=BollingerParams(period=bb_period, std_dev=std_dev),
        stochastic=stochastic,
    )
