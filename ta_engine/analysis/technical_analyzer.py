"""
技術分析引擎 (Technical Analysis Engine)

整合指標計算、型態識別、支撐壓力與價格目標，提供統一的 analyze_price() 介面：
1. 驗證資料長度與時間順序
2. 以 ATR 百分位估計波動度，依時間週期與波動度選擇指標參數
3. 計算指標、型態與支撐壓力 (各自獨立)
4. 彙整趨勢、動能與波動度摘要
5. 綜合價格目標，回傳不可變的 TechnicalAnalysisResult
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..core.exceptions import InsufficientDataError
from ..core.models import (
    BollingerSnapshot,
    Candle,
    IndicatorSignal,
    MACDSnapshot,
    MomentumAnalysis,
    StochasticSnapshot,
    TechnicalAnalysisResult,
    TradingSignal,
    TrendAnalysis,
    TrendDirection,
    VolatilityAnalysis,
    validate_series,
)
from ..core.pattern_engine import PatternEngine
from ..indicators.indicator_pool import IndicatorPool, percentile_rank
from ..indicators.models import IndicatorParameterSet, IndicatorResult
from ..indicators.parameter_optimizer import optimize_parameters
from ..levels.level_detector import LevelDetectionOptions, SupportResistanceDetector
from ..targets.price_target_calculator import PriceTargetCalculator
from .config import AnalysisConfig
from .frame_adapter import candles_from_dataframe
from .signal_generator import SignalGenerator


logger = logging.getLogger(__name__)

MetricsCallback = Callable[[str, float], None]

VOLATILITY_ATR_PERIOD = 14
DEFAULT_VOLATILITY_RANK = 0.5


class TechnicalAnalysisEngine:
    """
    技術分析引擎

    只保存配置，不保留任何呼叫之間的狀態；同一實例可重複呼叫。

    Attributes:
        config: 分析配置
        pattern_engine: 型態識別引擎
        level_detector: 支撐壓力偵測器
        target_calculator: 價格目標計算器
        signal_generator: 交易訊號產生器
    """

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        metrics_callback: Optional[MetricsCallback] = None,
        signal_generator: Optional[SignalGenerator] = None,
    ):
        """
        初始化技術分析引擎

        Args:
            config: 分析配置，若未提供則使用預設配置
            metrics_callback: 各階段耗時回報函式 (stage, elapsed_ms)
            signal_generator: 訊號產生器，若未提供則建立新實例

        Raises:
            InvalidParameterError: 配置值無效
        """
        self.config = config or AnalysisConfig()
        self.config.validate()
        self.metrics_callback = metrics_callback
        self.signal_generator = signal_generator or SignalGenerator()
        self._init_components()

    def _init_components(self) -> None:
        """根據配置初始化各分析組件"""
        cfg = self.config
        self.pattern_engine = PatternEngine(
            lookback=cfg.extrema_lookback,
            triangle_window=cfg.triangle_window,
            triangle_scan_bars=cfg.triangle_scan_bars,
            slope_epsilon=cfg.slope_epsilon,
            shoulder_tolerance=cfg.shoulder_tolerance,
            double_tolerance=cfg.double_tolerance,
            double_min_separation=cfg.double_min_separation,
            double_min_depth=cfg.double_min_depth,
            touch_tolerance=cfg.touch_tolerance,
            max_patterns=cfg.max_patterns,
        )
        self.level_detector = SupportResistanceDetector()
        self.target_calculator = PriceTargetCalculator(
            min_distance=cfg.min_target_distance,
            max_distance=cfg.max_target_distance,
            max_targets=cfg.max_targets,
        )

    @contextmanager
    def _timed(self, stage: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.debug(f"Stage {stage} took {elapsed_ms:.2f} ms")
            if self.metrics_callback is not None:
                self.metrics_callback(stage, elapsed_ms)

    # ------------------------------------------------------------------
    # 主要介面
    # ------------------------------------------------------------------

    def analyze_price(self, symbol: str, timeframe: str, candles: Sequence[Candle]) -> TechnicalAnalysisResult:
        """
        執行完整技術分析

        Args:
            symbol: 標的代碼
            timeframe: 時間週期 (例如 "1d", "1h", "5m")
            candles: K 線序列，由舊到新

        Returns:
            技術分析結果

        Raises:
            InsufficientDataError: K 線數少於 min_bars
            InvalidParameterError: 時間戳記倒序
        """
        cfg = self.config
        candles = list(candles)
        if len(candles) < cfg.min_bars:
            raise InsufficientDataError("technical analysis", cfg.min_bars, len(candles))
        validate_series(candles)

        with self._timed("total"):
            highs = [c.high for c in candles]
            lows = [c.low for c in candles]
            closes = [c.close for c in candles]
            current_price = closes[-1]

            with self._timed("volatility_estimate"):
                volatility_rank = self.estimate_volatility_rank(highs, lows, closes)
            params = optimize_parameters(timeframe, volatility_rank)

            with self._timed("indicators"):
                indicators = self.calculate_indicators(highs, lows, closes, params)

            with self._timed("patterns"):
                patterns = self.pattern_engine.detect_patterns(candles)

            trend = self.analyze_trend(closes)
            swing_high, swing_low = self._swing_range(candles)

            with self._timed("levels"):
                levels = self.level_detector.detect_all_levels(
                    candles,
                    LevelDetectionOptions(
                        include_pivots=cfg.include_pivots,
                        include_psychological=cfg.include_psychological,
                        include_fibonacci=cfg.include_fibonacci_levels,
                        include_volume=cfg.include_volume,
                        swing_high=swing_high,
                        swing_low=swing_low,
                        lookback=cfg.level_lookback,
                        max_levels=cfg.max_levels,
                    ),
                )

            momentum = self.summarize_momentum(indicators)
            volatility = self.summarize_volatility(indicators, volatility_rank)

            with self._timed("targets"):
                targets = self.target_calculator.calculate_comprehensive_targets(
                    current_price,
                    levels,
                    patterns,
                    candles=candles,
                    swing_high=swing_high,
                    swing_low=swing_low,
                    direction=self._trend_signal(trend.direction),
                )

        logger.info(
            f"{symbol} {timeframe}: {len(indicators)} indicators, {len(patterns)} patterns, "
            f"{len(levels)} levels, {len(targets)} targets, trend {trend.direction.value}"
        )
        return TechnicalAnalysisResult(
            symbol=symbol,
            timeframe=timeframe,
            current_price=current_price,
            indicators=tuple(indicators),
            patterns=tuple(patterns),
            support_resistance=tuple(levels),
            trend=trend,
            momentum=momentum,
            volatility=volatility,
            price_targets=tuple(targets),
        )

    def analyze_dataframe(self, symbol: str, timeframe: str, frame: pd.DataFrame) -> TechnicalAnalysisResult:
        """以 OHLCV DataFrame 執行技術分析"""
        return self.analyze_price(symbol, timeframe, candles_from_dataframe(frame))

    def generate_signals(self, result: TechnicalAnalysisResult, timeframe: Optional[str] = None) -> List[TradingSignal]:
        """由分析結果產生交易訊號，依信心度遞減排序"""
        with self._timed("signals"):
            return self.signal_generator.generate_signals(result, timeframe)

    # ------------------------------------------------------------------
    # 指標
    # ------------------------------------------------------------------

    def estimate_volatility_rank(self, highs: Sequence[float], lows: Sequence[float], closes: Sequence[float]) -> float:
        """
        估計波動度百分位

        最新 ATR(14) 在 ATR 歷史序列中的百分位；資料不足時為 0.5。
        """
        try:
            atr = IndicatorPool().calculate_atr(highs, lows, closes, VOLATILITY_ATR_PERIOD)
        except InsufficientDataError:
            return DEFAULT_VOLATILITY_RANK
        return percentile_rank(atr.values, atr.latest)

    def calculate_indicators(
        self,
        highs: Sequence[float],
        lows: Sequence[float],
        closes: Sequence[float],
        params: IndicatorParameterSet,
    ) -> List[IndicatorResult]:
        """
        依參數組合計算所有指標

        歷史不足的指標會被略過並記錄警告，不會產生替代值。
        """
        pool = IndicatorPool(
            rsi_period=params.rsi.period,
            macd_fast=params.macd.fast,
            macd_slow=params.macd.slow,
            macd_signal=params.macd.signal,
            bb_period=params.bollinger.period,
            bb_std=params.bollinger.std_dev,
            atr_period=params.atr.period,
            stoch_k=params.stochastic.k_period,
            stoch_d=params.stochastic.d_period,
        )
        calculations: List[Tuple[str, Callable[[], IndicatorResult]]] = [
            ("RSI", lambda: pool.calculate_rsi(closes)),
            ("MACD", lambda: pool.calculate_macd(closes)),
            ("Bollinger", lambda: pool.calculate_bollinger(closes)),
            ("Stochastic", lambda: pool.calculate_stochastic(highs, lows, closes)),
            ("ATR", lambda: pool.calculate_atr(highs, lows, closes)),
            ("SMA_20", lambda: pool.calculate_sma_result(closes, 20)),
            ("SMA_50", lambda: pool.calculate_sma_result(closes, 50, fast_period=20)),
        ]

        indicators = []
        for name, calculate in calculations:
            try:
                indicators.append(calculate())
            except InsufficientDataError as e:
                logger.warning(f"Skipping {name}: {e.message}")
        return indicators

    # ------------------------------------------------------------------
    # 摘要
    # ------------------------------------------------------------------

    def analyze_trend(self, closes: Sequence[float]) -> TrendAnalysis:
        """
        以最近 trend_bars 根收盤價的線性迴歸判斷趨勢

        斜率除以平均價得到每根 K 線的相對變化，超過 ±trend_threshold
        判定為上升 / 下降趨勢；強度 = min(1, |相對斜率| * 100)。
        """
        window = np.asarray(closes[-self.config.trend_bars:], dtype=float)
        x = np.arange(len(window))
        slope, _ = np.polyfit(x, window, 1)
        mean_price = float(window.mean())
        normalized = float(slope) / mean_price if mean_price > 0 else 0.0

        if normalized > self.config.trend_threshold:
            direction = TrendDirection.UPTREND
        elif normalized < -self.config.trend_threshold:
            direction = TrendDirection.DOWNTREND
        else:
            direction = TrendDirection.SIDEWAYS

        return TrendAnalysis(
            direction=direction,
            strength=min(1.0, abs(normalized) * 100),
            duration=len(window),
            slope=float(slope),
        )

    @staticmethod
    def summarize_momentum(indicators: Sequence[IndicatorResult]) -> MomentumAnalysis:
        """彙整 RSI、MACD 與 KD 的最新值與解讀"""
        by_name = {i.name: i for i in indicators}
        notes = []

        rsi = None
        if "RSI" in by_name:
            rsi = by_name["RSI"].latest
            rsi_params = by_name["RSI"].parameters
            if rsi > rsi_params.overbought:
                notes.append(f"RSI overbought ({rsi:.1f})")
            elif rsi < rsi_params.oversold:
                notes.append(f"RSI oversold ({rsi:.1f})")
            else:
                notes.append(f"RSI neutral ({rsi:.1f})")

        macd = None
        if "MACD" in by_name:
            comps = by_name["MACD"].components
            macd = MACDSnapshot(
                macd=comps["macd_line"][-1],
                signal=comps["signal_line"][-1],
                histogram=comps["histogram"][-1],
            )
            notes.append("MACD above signal" if macd.histogram > 0 else "MACD below signal")

        stochastic = None
        if "Stochastic" in by_name:
            comps = by_name["Stochastic"].components
            stochastic = StochasticSnapshot(k=comps["k"][-1], d=comps["d"][-1])
            notes.append(f"Stochastic %K {stochastic.k:.1f} / %D {stochastic.d:.1f}")

        interpretation = "; ".join(notes) if notes else "Insufficient data for momentum analysis"
        return MomentumAnalysis(rsi=rsi, macd=macd, stochastic=stochastic, interpretation=interpretation)

    def summarize_volatility(self, indicators: Sequence[IndicatorResult], volatility_rank: float) -> VolatilityAnalysis:
        """彙整 ATR、布林通道與波動度百分位"""
        by_name = {i.name: i for i in indicators}
        atr = by_name["ATR"].latest if "ATR" in by_name else None

        bollinger = None
        if "Bollinger" in by_name:
            bands = by_name["Bollinger"]
            comps = bands.components
            squeeze = IndicatorPool.detect_squeeze(
                comps["bandwidth"],
                bands.parameters.period,
                self.config.squeeze_ratio,
            )
            bollinger = BollingerSnapshot(
                upper=comps["upper"][-1],
                middle=comps["middle"][-1],
                lower=comps["lower"][-1],
                squeeze=squeeze,
            )

        return VolatilityAnalysis(atr=atr, bollinger=bollinger, volatility_rank=volatility_rank)

    def _swing_range(self, candles: Sequence[Candle]) -> Tuple[float, float]:
        window = candles[-self.config.swing_lookback:]
        return max(c.high for c in window), min(c.low for c in window)

    @staticmethod
    def _trend_signal(direction: TrendDirection) -> Optional[IndicatorSignal]:
        if direction == TrendDirection.UPTREND:
            return IndicatorSignal.BULLISH
        if direction == TrendDirection.DOWNTREND:
            return IndicatorSignal.BEARISH
        return None
