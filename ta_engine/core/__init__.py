from .exceptions import AnalysisError, InsufficientDataError, InvalidParameterError
from .models import (
    Candle,
    ChartCoordinate,
    Extremum,
    IndicatorSignal,
    LevelType,
    PatternResult,
    PatternType,
    PriceTarget,
    SupportResistanceLevel,
    TargetType,
    TechnicalAnalysisResult,
    TradeAction,
    TradingSignal,
    TrendDirection,
    TrendLine,
    TrendLineType,
    RiskLevel,
    validate_series,
)
from .extrema_detector import LocalExtremaDetector
from .trend_line import TrendLineFitter
from .triangle_detector import TriangleDetector
from .head_shoulders_detector import HeadShouldersDetector
from .double_pattern_detector import DoublePatternDetector
from .channel_detector import ChannelDetector
from .pattern_engine import PatternEngine
