"""
訊號產生器 (Signal Generator)

將技術分析結果轉換為交易訊號：
- 主要訊號：指標、型態與趨勢的加權投票；多數看多且趨勢向上才買進，鏡像賣出
- 逆勢訊號：短週期下 RSI 極端且有對應支撐壓力時的均值回歸訊號
- 訊號合併：同方向訊號合併為一個
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..core.models import (
    IndicatorSignal,
    LevelType,
    PriceTarget,
    RiskLevel,
    TargetType,
    TechnicalAnalysisResult,
    TradeAction,
    TradingSignal,
    TrendDirection,
)
from ..targets.price_target_calculator import deduplicate_targets


logger = logging.getLogger(__name__)

INDICATOR_WEIGHTS: Dict[str, float] = {
    "RSI": 1.0,
    "MACD": 1.2,
    "Bollinger": 0.8,
    "Stochastic": 0.9,
    "SMA_20": 1.1,
    "SMA_50": 1.3,
}
INDICATOR_CONFIDENCE = 0.7
PATTERN_WEIGHT = 1.0
TREND_WEIGHT = 1.5
MAX_SIGNAL_CONFIDENCE = 0.95
MAX_SIGNAL_TARGETS = 3
LEVEL_STOP_BUFFER = 0.02


@dataclass(frozen=True)
class TimeframeProfile:
    """時間週期對應的交易屬性"""
    horizon: str
    risk_level: RiskLevel
    allow_counter_trend: bool
    min_confidence: float
    stop_loss_multiplier: float


_SCALPING = TimeframeProfile("Scalping (minutes to hours)", RiskLevel.HIGH, True, 0.6, 0.5)
_INTRADAY = TimeframeProfile("Intraday (hours to 1 day)", RiskLevel.MEDIUM, True, 0.65, 0.75)
_SWING = TimeframeProfile("Swing (days to weeks)", RiskLevel.MEDIUM, False, 0.7, 1.0)
_POSITION = TimeframeProfile("Position (weeks to months)", RiskLevel.LOW, False, 0.75, 1.5)
DEFAULT_PROFILE = TimeframeProfile("Medium-term (days to weeks)", RiskLevel.MEDIUM, False, 0.7, 1.0)

TIMEFRAME_PROFILES: Dict[str, TimeframeProfile] = {
    "1m": _SCALPING,
    "5m": _SCALPING,
    "15m": _SCALPING,
    "1h": _INTRADAY,
    "4h": _INTRADAY,
    "1d": _SWING,
    "1w": _POSITION,
    "1M": _POSITION,
}


@dataclass(frozen=True)
class SignalVote:
    """單一來源的方向投票"""
    source: str
    direction: IndicatorSignal
    weight: float
    confidence: float


class SignalGenerator:
    """交易訊號產生器"""

    def __init__(
        self,
        indicator_weights: Optional[Dict[str, float]] = None,
        pattern_weight: float = PATTERN_WEIGHT,
        trend_weight: float = TREND_WEIGHT,
        atr_stop_multiple: float = 2.0,
    ):
        """
        初始化訊號產生器

        Args:
            indicator_weights: 指標名稱 -> 投票權重，未列出的指標權重為 1.0
            pattern_weight: 型態投票權重 (再乘上型態信心度)
            trend_weight: 趨勢投票權重 (再乘上趨勢強度)
            atr_stop_multiple: 無可用價位時以 ATR 倍數設定停損
        """
        self.indicator_weights = dict(INDICATOR_WEIGHTS if indicator_weights is None else indicator_weights)
        self.pattern_weight = pattern_weight
        self.trend_weight = trend_weight
        self.atr_stop_multiple = atr_stop_multiple

    @staticmethod
    def get_timeframe_profile(timeframe: str) -> TimeframeProfile:
        """取得時間週期對應的交易屬性，未知週期使用中期設定"""
        return TIMEFRAME_PROFILES.get(timeframe, DEFAULT_PROFILE)

    # ------------------------------------------------------------------
    # 投票
    # ------------------------------------------------------------------

    def collect_votes(self, result: TechnicalAnalysisResult) -> List[SignalVote]:
        """收集指標、型態與趨勢的方向投票"""
        votes = []
        for indicator in result.indicators:
            weight = self.indicator_weights.get(indicator.name, 1.0)
            if weight > 0:
                votes.append(SignalVote(indicator.name, indicator.signal, weight, INDICATOR_CONFIDENCE))

        for pattern in result.patterns:
            votes.append(SignalVote(
                pattern.pattern_type.value,
                pattern.pattern_type.bias,
                self.pattern_weight * pattern.confidence,
                pattern.confidence,
            ))

        trend = result.trend
        trend_weight = self.trend_weight * trend.strength
        if trend_weight > 0:
            if trend.direction == TrendDirection.UPTREND:
                direction = IndicatorSignal.BULLISH
            elif trend.direction == TrendDirection.DOWNTREND:
                direction = IndicatorSignal.BEARISH
            else:
                direction = IndicatorSignal.NEUTRAL
            votes.append(SignalVote("trend", direction, trend_weight, trend.strength))
        return votes

    @staticmethod
    def vote_shares(votes: Sequence[SignalVote]) -> Tuple[float, float]:
        """計算多方與空方的加權占比 (中性票計入分母)"""
        total = sum(v.weight for v in votes)
        if total <= 0:
            return 0.0, 0.0
        bullish = sum(v.weight for v in votes if v.direction == IndicatorSignal.BULLISH)
        bearish = sum(v.weight for v in votes if v.direction == IndicatorSignal.BEARISH)
        return bullish / total, bearish / total

    # ------------------------------------------------------------------
    # 訊號
    # ------------------------------------------------------------------

    def generate_signals(self, result: TechnicalAnalysisResult, timeframe: Optional[str] = None) -> List[TradingSignal]:
        """
        產生交易訊號

        Args:
            result: 技術分析結果
            timeframe: 時間週期，預設使用分析結果的週期

        Returns:
            依信心度遞減排序的訊號；至少包含主要訊號
        """
        profile = self.get_timeframe_profile(timeframe or result.timeframe)
        signals = [self.generate_primary_signal(result, profile)]
        if profile.allow_counter_trend:
            counter = self.generate_counter_trend_signal(result, profile)
            if counter is not None:
                signals.append(counter)
        signals.sort(key=lambda s: s.confidence, reverse=True)
        return signals

    def generate_primary_signal(self, result: TechnicalAnalysisResult, profile: TimeframeProfile) -> TradingSignal:
        """依加權投票與趨勢方向產生主要訊號"""
        votes = self.collect_votes(result)
        bullish, bearish = self.vote_shares(votes)
        direction = result.trend.direction

        if bullish > 0.5 and direction == TrendDirection.UPTREND:
            action, share, side = TradeAction.BUY, bullish, IndicatorSignal.BULLISH
        elif bearish > 0.5 and direction == TrendDirection.DOWNTREND:
            action, share, side = TradeAction.SELL, bearish, IndicatorSignal.BEARISH
        else:
            action, share, side = TradeAction.HOLD, 0.0, IndicatorSignal.NEUTRAL

        reasoning = [
            f"Weighted votes: {bullish * 100:.0f}% bullish, {bearish * 100:.0f}% bearish",
            f"Trend {direction.value} (strength {result.trend.strength:.2f})",
        ]

        if action == TradeAction.HOLD:
            confidence = min(MAX_SIGNAL_CONFIDENCE, 1.0 - max(bullish, bearish))
            reasoning.append("No majority aligned with the trend")
            return TradingSignal(
                action=action,
                confidence=confidence,
                reasoning=tuple(reasoning),
                price_targets=(),
                stop_loss=None,
                time_horizon=profile.horizon,
                risk_level=profile.risk_level,
            )

        aligned = [v for v in votes if v.direction == side]
        aligned_weight = sum(v.weight for v in aligned)
        mean_confidence = sum(v.weight * v.confidence for v in aligned) / aligned_weight
        confidence = min(MAX_SIGNAL_CONFIDENCE, 0.5 * share + 0.5 * mean_confidence)

        aligned.sort(key=lambda v: v.weight, reverse=True)
        reasoning.append("Supporting: " + ", ".join(v.source for v in aligned[:5]))
        if confidence < profile.min_confidence:
            reasoning.append(
                f"Confidence {confidence:.2f} below the {profile.min_confidence:.2f} preferred for this timeframe"
            )

        targets = self._select_targets(result, action, confidence)
        stop_loss = self._select_stop_loss(result, action, profile.stop_loss_multiplier)
        logger.debug(f"{result.symbol}: {action.value} signal at confidence {confidence:.2f}")
        return TradingSignal(
            action=action,
            confidence=confidence,
            reasoning=tuple(reasoning),
            price_targets=tuple(targets),
            stop_loss=stop_loss,
            time_horizon=profile.horizon,
            risk_level=profile.risk_level,
        )

    def generate_counter_trend_signal(
        self,
        result: TechnicalAnalysisResult,
        profile: TimeframeProfile,
    ) -> Optional[TradingSignal]:
        """
        產生逆勢訊號

        RSI <= 25 且現價下方有支撐時買進，RSI >= 75 且上方有壓力時賣出。

        Returns:
            逆勢訊號；條件不成立或信心度不足時為 None
        """
        rsi = result.momentum.rsi
        if rsi is None or 25 < rsi < 75:
            return None

        price = result.current_price
        if rsi <= 25:
            action = TradeAction.BUY
            relevant = [lvl for lvl in result.support_resistance
                        if lvl.level_type == LevelType.SUPPORT and lvl.level < price]
        else:
            action = TradeAction.SELL
            relevant = [lvl for lvl in result.support_resistance
                        if lvl.level_type == LevelType.RESISTANCE and lvl.level > price]
        if not relevant:
            return None

        confidence = min(0.8, 0.5 + abs(rsi - 50) / 100)
        if confidence < profile.min_confidence:
            return None

        reasoning = [
            f"Counter-trend {action.value} signal",
            f"RSI at extreme level: {rsi:.1f}",
            f"{len(relevant)} key level(s) providing confluence",
        ]
        bollinger = result.volatility.bollinger
        if bollinger is not None and bollinger.squeeze:
            reasoning.append("Bollinger Band squeeze suggests imminent volatility expansion")

        return TradingSignal(
            action=action,
            confidence=confidence,
            reasoning=tuple(reasoning),
            price_targets=tuple(self._select_targets(result, action, confidence * 0.8)),
            stop_loss=self._select_stop_loss(result, action, profile.stop_loss_multiplier * 0.7),
            time_horizon=profile.horizon,
            risk_level=RiskLevel.HIGH,
        )

    # ------------------------------------------------------------------
    # 目標與停損
    # ------------------------------------------------------------------

    def _select_targets(self, result: TechnicalAnalysisResult, action: TradeAction, confidence: float) -> List[PriceTarget]:
        price = result.current_price
        buying = action == TradeAction.BUY

        synthesized = [
            t for t in result.price_targets
            if t.target_type == TargetType.TARGET and (t.level > price if buying else t.level < price)
        ]
        if synthesized:
            synthesized.sort(key=lambda t: abs(t.level - price))
            return synthesized[:MAX_SIGNAL_TARGETS]

        wanted = LevelType.RESISTANCE if buying else LevelType.SUPPORT
        levels = [
            lvl for lvl in result.support_resistance
            if lvl.level_type == wanted and (lvl.level > price if buying else lvl.level < price)
        ]
        levels.sort(key=lambda lvl: abs(lvl.level - price))
        return [
            PriceTarget(
                level=lvl.level,
                target_type=TargetType.TARGET,
                confidence=max(0.3, confidence * lvl.strength * (1 - i * 0.15)),
                reasoning=(
                    f"{lvl.level_type.value} level with {lvl.touches} touches "
                    f"(strength: {lvl.strength * 100:.0f}%)"
                ),
            )
            for i, lvl in enumerate(levels[:MAX_SIGNAL_TARGETS])
        ]

    def _select_stop_loss(self, result: TechnicalAnalysisResult, action: TradeAction, multiplier: float) -> float:
        price = result.current_price
        buying = action == TradeAction.BUY

        stops = [
            t for t in result.price_targets
            if t.target_type == TargetType.STOP_LOSS and (t.level < price if buying else t.level > price)
        ]
        if stops:
            return min(stops, key=lambda t: abs(t.level - price)).level

        wanted = LevelType.SUPPORT if buying else LevelType.RESISTANCE
        levels = [
            lvl for lvl in result.support_resistance
            if lvl.level_type == wanted and (lvl.level < price if buying else lvl.level > price)
        ]
        if levels:
            strongest = max(levels, key=lambda lvl: lvl.strength)
            buffer = LEVEL_STOP_BUFFER * multiplier
            return strongest.level * (1 - buffer) if buying else strongest.level * (1 + buffer)

        atr = result.volatility.atr
        distance = atr * self.atr_stop_multiple if atr else price * LEVEL_STOP_BUFFER * 2 * multiplier
        return price - distance if buying else price + distance

    # ------------------------------------------------------------------
    # 合併
    # ------------------------------------------------------------------

    @staticmethod
    def consolidate_signals(signals: Sequence[TradingSignal]) -> List[TradingSignal]:
        """
        合併同方向訊號

        買進與賣出各自合併為一個訊號；沒有方向性訊號時保留第一個觀望訊號。
        合併後信心度為平均值，風險取最高等級。
        """
        if len(signals) <= 1:
            return list(signals)

        consolidated = []
        for action in (TradeAction.BUY, TradeAction.SELL):
            group = [s for s in signals if s.action == action]
            if group:
                consolidated.append(SignalGenerator._merge(group))

        if not consolidated:
            holds = [s for s in signals if s.action == TradeAction.HOLD]
            if holds:
                consolidated.append(holds[0])

        consolidated.sort(key=lambda s: s.confidence, reverse=True)
        return consolidated

    @staticmethod
    def _merge(group: Sequence[TradingSignal]) -> TradingSignal:
        best = max(group, key=lambda s: s.confidence)
        if len(group) == 1:
            return best

        reasoning = []
        for signal in group:
            for reason in signal.reasoning:
                if reason not in reasoning:
                    reasoning.append(reason)
        targets = deduplicate_targets([t for s in group for t in s.price_targets], tolerance=0.01)
        confidence = min(MAX_SIGNAL_CONFIDENCE, sum(s.confidence for s in group) / len(group))

        risks = {s.risk_level for s in group}
        if RiskLevel.HIGH in risks:
            risk = RiskLevel.HIGH
        elif RiskLevel.MEDIUM in risks:
            risk = RiskLevel.MEDIUM
        else:
            risk = RiskLevel.LOW

        return TradingSignal(
            action=best.action,
            confidence=confidence,
            reasoning=tuple(reasoning[:8]),
            price_targets=tuple(targets[:MAX_SIGNAL_TARGETS]),
            stop_loss=best.stop_loss,
            time_horizon=best.time_horizon,
            risk_level=risk,
        )
