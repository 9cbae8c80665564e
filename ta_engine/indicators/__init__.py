"""
Indicator Library - 指標庫

此模組提供技術指標計算與依時間週期調整參數的功能。
"""

from .models import (
    IndicatorParams,
    SMAParams,
    EMAParams,
    RSIParams,
    MACDParams,
    BollingerParams,
    StochasticParams,
    ATRParams,
    IndicatorParameterSet,
    IndicatorResult,
)
from .indicator_pool import IndicatorPool, percentile_rank
from .parameter_optimizer import optimize_parameters

__all__ = [
    "IndicatorParams",
    "SMAParams",
    "EMAParams",
    "RSIParams",
    "MACDParams",
    "BollingerParams",
    "StochasticParams",
    "ATRParams",
    "IndicatorParameterSet",
    "IndicatorResult",
    "IndicatorPool",
    "percentile_rank",
    "optimize_parameters",
]
