"""TA Engine - 技術分析引擎

輸入單一標的的 OHLCV 歷史資料，輸出技術指標、圖表型態、支撐壓力位與價格目標。
"""

from .core.exceptions import AnalysisError, InsufficientDataError, InvalidParameterError
from .core.models import Candle, TechnicalAnalysisResult, TradingSignal
from .analysis.config import AnalysisConfig
from .analysis.technical_analyzer import TechnicalAnalysisEngine

__version__ = "0.1.0"

__all__ = [
    "AnalysisError",
    "InsufficientDataError",
    "InvalidParameterError",
    "Candle",
    "TechnicalAnalysisResult",
    "TradingSignal",
    "AnalysisConfig",
    "TechnicalAnalysisEngine",
]
