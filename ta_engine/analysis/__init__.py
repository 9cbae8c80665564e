"""
Analysis Engine - 分析引擎

此模組提供技術分析流程整合、交易訊號產生與 DataFrame 轉換功能。
"""

from .config import AnalysisConfig
from .frame_adapter import candles_from_dataframe, candles_to_dataframe
from .signal_generator import SignalGenerator, SignalVote, TimeframeProfile
from .technical_analyzer import TechnicalAnalysisEngine

__all__ = [
    "AnalysisConfig",
    "candles_from_dataframe",
    "candles_to_dataframe",
    "SignalGenerator",
    "SignalVote",
    "TimeframeProfile",
    "TechnicalAnalysisEngine",
]
