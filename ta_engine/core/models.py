"""Core data models for TA Engine

This module defines the value objects shared by the indicator library, the
pattern recognizer, the level detector, the target synthesizer and the
analysis facade. Every model is a frozen dataclass; sequences are stored as
tuples so a result never aliases the caller's input lists.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence, Tuple

from .exceptions import InvalidParameterError

if TYPE_CHECKING:
    from ..indicators.models import IndicatorResult


class IndicatorSignal(Enum):
    """指標方向訊號"""
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class PatternType(Enum):
    """圖表型態類型"""
    ASCENDING_TRIANGLE = "ascending_triangle"
    DESCENDING_TRIANGLE = "descending_triangle"
    SYMMETRICAL_TRIANGLE = "symmetrical_triangle"
    HEAD_AND_SHOULDERS = "head_and_shoulders"
    INVERSE_HEAD_AND_SHOULDERS = "inverse_head_and_shoulders"
    DOUBLE_TOP = "double_top"
    DOUBLE_BOTTOM = "double_bottom"
    CHANNEL_UP = "channel_up"
    CHANNEL_DOWN = "channel_down"
    WEDGE_RISING = "wedge_rising"
    WEDGE_FALLING = "wedge_falling"
    FLAG = "flag"
    PENNANT = "pennant"

    @property
    def bias(self) -> IndicatorSignal:
        """型態隱含的方向偏向"""
        return _PATTERN_BIAS.get(self, IndicatorSignal.NEUTRAL)

    @property
    def description(self) -> str:
        return _PATTERN_DESCRIPTIONS[self]

    @property
    def implications(self) -> Tuple[str, ...]:
        return _PATTERN_IMPLICATIONS[self]


# Upper bound on patterns emitted by a single detector
MAX_PATTERNS_PER_DETECTOR = 10

_PATTERN_DESCRIPTIONS = {
    PatternType.ASCENDING_TRIANGLE: "Ascending triangle - bullish continuation pattern",
    PatternType.DESCENDING_TRIANGLE: "Descending triangle - bearish continuation pattern",
    PatternType.SYMMETRICAL_TRIANGLE: "Symmetrical triangle - neutral consolidation pattern",
    PatternType.HEAD_AND_SHOULDERS: "Head and shoulders - bearish reversal pattern",
    PatternType.INVERSE_HEAD_AND_SHOULDERS: "Inverse head and shoulders - bullish reversal pattern",
    PatternType.DOUBLE_TOP: "Double top - bearish reversal pattern",
    PatternType.DOUBLE_BOTTOM: "Double bottom - bullish reversal pattern",
    PatternType.CHANNEL_UP: "Ascending channel - bullish trend continuation",
    PatternType.CHANNEL_DOWN: "Descending channel - bearish trend continuation",
    PatternType.WEDGE_RISING: "Rising wedge - bearish reversal pattern",
    PatternType.WEDGE_FALLING: "Falling wedge - bullish reversal pattern",
    PatternType.FLAG: "Flag pattern - trend continuation",
    PatternType.PENNANT: "Pennant pattern - trend continuation",
}

_PATTERN_IMPLICATIONS = {
    PatternType.ASCENDING_TRIANGLE: ("Bullish bias", "Expect upward breakout", "Rising support with horizontal resistance"),
    PatternType.DESCENDING_TRIANGLE: ("Bearish bias", "Expect downward breakdown", "Falling resistance with horizontal support"),
    PatternType.SYMMETRICAL_TRIANGLE: ("Neutral bias", "Breakout direction uncertain", "Decreasing volatility before move"),
    PatternType.HEAD_AND_SHOULDERS: ("Bearish reversal", "Trend change from up to down", "Break of neckline confirms pattern"),
    PatternType.INVERSE_HEAD_AND_SHOULDERS: ("Bullish reversal", "Trend change from down to up", "Break of neckline confirms pattern"),
    PatternType.DOUBLE_TOP: ("Bearish reversal", "Strong resistance level", "Failed attempt to break higher"),
    PatternType.DOUBLE_BOTTOM: ("Bullish reversal", "Strong support level", "Failed attempt to break lower"),
    PatternType.CHANNEL_UP: ("Bullish trend", "Buy dips to support", "Sell rallies to resistance"),
    PatternType.CHANNEL_DOWN: ("Bearish trend", "Sell rallies to resistance", "Buy dips for short covering"),
    PatternType.WEDGE_RISING: ("Bearish divergence", "Weakening uptrend", "Expect downward reversal"),
    PatternType.WEDGE_FALLING: ("Bullish divergence", "Weakening downtrend", "Expect upward reversal"),
    PatternType.FLAG: ("Trend continuation", "Brief consolidation", "Expect resumption of prior trend"),
    PatternType.PENNANT: ("Trend continuation", "Triangular consolidation", "Expect resumption of prior trend"),
}

_PATTERN_BIAS = {
    PatternType.ASCENDING_TRIANGLE: IndicatorSignal.BULLISH,
    PatternType.DESCENDING_TRIANGLE: IndicatorSignal.BEARISH,
    PatternType.HEAD_AND_SHOULDERS: IndicatorSignal.BEARISH,
    PatternType.INVERSE_HEAD_AND_SHOULDERS: IndicatorSignal.BULLISH,
    PatternType.DOUBLE_TOP: IndicatorSignal.BEARISH,
    PatternType.DOUBLE_BOTTOM: IndicatorSignal.BULLISH,
    PatternType.CHANNEL_UP: IndicatorSignal.BULLISH,
    PatternType.CHANNEL_DOWN: IndicatorSignal.BEARISH,
    PatternType.WEDGE_RISING: IndicatorSignal.BEARISH,
    PatternType.WEDGE_FALLING: IndicatorSignal.BULLISH,
}


class LevelType(Enum):
    """價位類型"""
    SUPPORT = "support"
    RESISTANCE = "resistance"


class TargetType(Enum):
    """價格目標類型"""
    ENTRY = "entry"
    TARGET = "target"
    STOP_LOSS = "stop_loss"


class TrendLineType(Enum):
    """趨勢線類型"""
    SUPPORT = "support"
    RESISTANCE = "resistance"
    TREND = "trend"


class TrendDirection(Enum):
    """趨勢方向"""
    UPTREND = "uptrend"
    DOWNTREND = "downtrend"
    SIDEWAYS = "sideways"


class TradeAction(Enum):
    """交易動作"""
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class RiskLevel(Enum):
    """風險等級"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class Candle:
    """單根 K 線 (OHLCV)

    Attributes:
        open: 開盤價
        high: 最高價
        low: 最低價
        close: 收盤價 (四個價格都必須大於 0)
        volume: 成交量，不可為負
        timestamp: 時間戳記
    """
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        for name in ("open", "high", "low", "close", "volume"):
            value = getattr(self, name)
            if not math.isfinite(value):
                raise InvalidParameterError(name, value, f"{name} must be a finite number")
        for name in ("open", "high", "low", "close"):
            value = getattr(self, name)
            if value <= 0:
                raise InvalidParameterError(name, value, f"{name} must be greater than 0")
        if self.volume < 0:
            raise InvalidParameterError("volume", self.volume, "volume must be non-negative")


def validate_series(candles: Sequence[Candle]) -> None:
    """檢查 K 線序列的時間戳記為非遞減

    沒有時間戳記的 K 線不參與比較。

    Raises:
        InvalidParameterError: 時間戳記倒序時
    """
    previous: Optional[datetime] = None
    for i, candle in enumerate(candles):
        if candle.timestamp is None:
            continue
        if previous is not None and candle.timestamp < previous:
            raise InvalidParameterError(
                "candles",
                f"index {i}",
                "timestamps must be non-decreasing (oldest first)",
            )
        previous = candle.timestamp


@dataclass(frozen=True)
class Extremum:
    """局部極值點

    Attributes:
        index: 在序列中的位置
        price: 價格值
        is_peak: True=波峰, False=波谷
    """
    index: int
    price: float
    is_peak: bool


@dataclass(frozen=True)
class ChartCoordinate:
    """圖表座標 (K 線索引, 價格)"""
    x: int
    y: float
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class TrendLine:
    """趨勢線

    Attributes:
        start_point: 起點座標
        end_point: 終點座標
        slope: 斜率 (價格 / K 線)
        strength: 觸及此線的點數
        line_type: 線的類型
        intercept: 截距，x=0 時的價格
    """
    start_point: ChartCoordinate
    end_point: ChartCoordinate
    slope: float
    strength: int
    line_type: TrendLineType
    intercept: float = 0.0

    def value_at(self, x: float) -> float:
        """計算指定索引位置的趨勢線價格"""
        return self.intercept + self.slope * x


@dataclass(frozen=True)
class PriceTarget:
    """價格目標

    Attributes:
        level: 目標價位
        target_type: 目標類型 (進場/目標/停損)
        confidence: 信心度 (0-1)
        reasoning: 產生此目標的方法說明
    """
    level: float
    target_type: TargetType
    confidence: float
    reasoning: str


@dataclass(frozen=True)
class PatternResult:
    """圖表型態偵測結果

    Attributes:
        pattern_type: 型態類型
        confidence: 信心度 (0-1)
        coordinates: 定義型態的 2-4 個關鍵座標
        description: 型態描述
        implications: 型態的交易含意
        price_targets: 型態衍生的價格目標
    """
    pattern_type: PatternType
    confidence: float
    coordinates: Tuple[ChartCoordinate, ...]
    description: str
    implications: Tuple[str, ...] = ()
    price_targets: Tuple[PriceTarget, ...] = ()

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise InvalidParameterError("confidence", self.confidence, "confidence must be in [0, 1]")
        if not 2 <= len(self.coordinates) <= 4:
            raise InvalidParameterError(
                "coordinates", len(self.coordinates), "a pattern is described by 2 to 4 coordinates"
            )


@dataclass(frozen=True)
class SupportResistanceLevel:
    """支撐 / 壓力位

    Attributes:
        level: 價位
        level_type: 支撐或壓力
        strength: 強度 (0-1)
        touches: 觸及次數，至少 1
        volume: 該價位累積成交量
        confidence: 信心度 (0-1)
        source: 偵測方法名稱
    """
    level: float
    level_type: LevelType
    strength: float
    touches: int = 1
    volume: float = 0.0
    confidence: float = 0.5
    source: str = ""


@dataclass(frozen=True)
class TrendAnalysis:
    """趨勢分析結果"""
    direction: TrendDirection
    strength: float                 # 0-1
    duration: int                   # 迴歸使用的 K 線數
    slope: float                    # 每根 K 線的價格變化


@dataclass(frozen=True)
class MACDSnapshot:
    """MACD 最新值"""
    macd: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class StochasticSnapshot:
    """KD 最新值"""
    k: float
    d: float


@dataclass(frozen=True)
class BollingerSnapshot:
    """布林通道最新值"""
    upper: float
    middle: float
    lower: float
    squeeze: bool


@dataclass(frozen=True)
class MomentumAnalysis:
    """動能分析結果，資料不足的指標為 None"""
    rsi: Optional[float]
    macd: Optional[MACDSnapshot]
    stochastic: Optional[StochasticSnapshot]
    interpretation: str


@dataclass(frozen=True)
class VolatilityAnalysis:
    """波動度分析結果"""
    atr: Optional[float]
    bollinger: Optional[BollingerSnapshot]
    volatility_rank: float          # 0-1, ATR 在歷史中的百分位


@dataclass(frozen=True)
class TechnicalAnalysisResult:
    """技術分析總結果

    引擎的最終輸出，建立後不再變動。
    """
    symbol: str
    timeframe: str
    current_price: float
    indicators: Tuple["IndicatorResult", ...]
    patterns: Tuple[PatternResult, ...]
    support_resistance: Tuple[SupportResistanceLevel, ...]
    trend: TrendAnalysis
    momentum: MomentumAnalysis
    volatility: VolatilityAnalysis
    price_targets: Tuple[PriceTarget, ...] = field(default_factory=tuple)

    def get_indicator(self, name: str) -> Optional["IndicatorResult"]:
        """依名稱取得指標結果"""
        for indicator in self.indicators:
            if indicator.name == name:
                return indicator
        return None


@dataclass(frozen=True)
class TradingSignal:
    """交易訊號

    Attributes:
        action: 買進 / 賣出 / 觀望
        confidence: 信心度 (0-1)
        reasoning: 判斷依據
        price_targets: 價格目標
        stop_loss: 停損價，觀望訊號為 None
        time_horizon: 持有期間描述
        risk_level: 風險等級
    """
    action: TradeAction
    confidence: float
    reasoning: Tuple[str, ...]
    price_targets: Tuple[PriceTarget, ...]
    stop_loss: Optional[float]
    time_horizon: str
    risk_level: RiskLevel
