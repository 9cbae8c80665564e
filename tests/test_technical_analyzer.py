"""Integration tests for the Technical Analysis Engine facade

Runs the full analysis pipeline on constructed and random candle series
and checks the result invariants end to end.
"""

from datetime import datetime, timedelta

import pytest
from hypothesis import given, strategies as st, settings, HealthCheck

from ta_engine import (
    AnalysisConfig,
    Candle,
    InsufficientDataError,
    InvalidParameterError,
    TechnicalAnalysisEngine,
    TechnicalAnalysisResult,
)
from ta_engine.analysis import candles_to_dataframe
from ta_engine.core.models import PatternType, TradeAction, TrendDirection


# =============================================================================
# Test Data Generators
# =============================================================================

def candles_from_closes(closes, volume=1000.0, start=None):
    candles = []
    for i, close in enumerate(closes):
        timestamp = start + timedelta(days=i) if start is not None else None
        candles.append(Candle(open=close, high=close + 0.2, low=close - 0.2, close=close,
                              volume=volume, timestamp=timestamp))
    return candles


def rising_closes(bars=60):
    """Zigzag of period 6 on top of a one point per bar drift."""
    wave = (6.0, 4.0, 2.0, 0.0, 2.0, 4.0)
    return [100.0 + wave[i % 6] + i for i in range(bars)]


@st.composite
def valid_ohlcv_series(draw, min_length=20, max_length=80):
    """Generate a random walk of valid OHLCV candles."""
    length = draw(st.integers(min_value=min_length, max_value=max_length))
    price = draw(st.floats(min_value=20.0, max_value=500.0))
    candles = []
    for _ in range(length):
        open_price = price
        price = max(1.0, price * (1 + draw(st.floats(min_value=-0.03, max_value=0.03))))
        high = max(open_price, price) * (1 + draw(st.floats(min_value=0.0, max_value=0.01)))
        low = min(open_price, price) * (1 - draw(st.floats(min_value=0.0, max_value=0.01)))
        volume = draw(st.floats(min_value=0.0, max_value=1e6))
        candles.append(Candle(open=open_price, high=high, low=low, close=price, volume=volume))
    return candles


# =============================================================================
# Input validation
# =============================================================================

class TestInputValidation:
    """Test facade input checks"""

    def test_ten_bars_rejected(self):
        engine = TechnicalAnalysisEngine()
        with pytest.raises(InsufficientDataError) as exc_info:
            engine.analyze_price("TEST", "1d", candles_from_closes([100.0 + i for i in range(10)]))
        assert exc_info.value.required == 20
        assert exc_info.value.available == 10

    def test_twenty_bars_accepted(self):
        """Test the minimum history succeeds and long indicators are skipped"""
        engine = TechnicalAnalysisEngine()
        result = engine.analyze_price("TEST", "1h", candles_from_closes(rising_closes(20)))
        assert isinstance(result, TechnicalAnalysisResult)
        assert result.get_indicator("RSI") is not None
        assert result.get_indicator("Bollinger") is not None
        assert result.get_indicator("MACD") is None
        assert result.get_indicator("SMA_50") is None
        assert result.momentum.macd is None
        assert result.momentum.rsi is not None

    def test_out_of_order_timestamps_rejected(self):
        candles = candles_from_closes(rising_closes(30), start=datetime(2024, 1, 1))
        candles.reverse()
        with pytest.raises(InvalidParameterError):
            TechnicalAnalysisEngine().analyze_price("TEST", "1d", candles)

    def test_zero_price_rejected_before_analysis(self):
        """Test a zero close in the input frame fails validation, not level detection"""
        closes = [300.0 - c for c in rising_closes(40)]
        frame = candles_to_dataframe(candles_from_closes(closes))
        frame.loc[frame.index[-1], "Close"] = 0.0
        with pytest.raises(InvalidParameterError, match="close"):
            TechnicalAnalysisEngine().analyze_dataframe("TEST", "1d", frame)

    def test_invalid_config_rejected(self):
        with pytest.raises(InvalidParameterError):
            TechnicalAnalysisEngine(AnalysisConfig(trend_bars=1))


# =============================================================================
# Scenarios
# =============================================================================

class TestAnalysisScenarios:
    """Test the pipeline on constructed series"""

    def test_rising_series(self):
        """Test a rising 60-bar zigzag reads as an uptrend with firm momentum"""
        engine = TechnicalAnalysisEngine()
        result = engine.analyze_price("TEST", "1d", candles_from_closes(rising_closes()))

        assert result.symbol == "TEST"
        assert result.current_price == rising_closes()[-1]
        assert result.trend.direction == TrendDirection.UPTREND
        assert 0.0 < result.trend.strength <= 1.0
        assert result.trend.duration == 20
        assert result.get_indicator("RSI").latest > 50
        assert result.momentum.rsi > 50
        assert result.momentum.macd is not None
        assert result.volatility.atr is not None
        assert result.volatility.bollinger is not None
        assert any(p.pattern_type == PatternType.CHANNEL_UP for p in result.patterns)

    def test_falling_series(self):
        closes = [300.0 - c for c in rising_closes()]
        result = TechnicalAnalysisEngine().analyze_price("TEST", "1d", candles_from_closes(closes))
        assert result.trend.direction == TrendDirection.DOWNTREND
        assert result.momentum.rsi < 50

    def test_flat_series(self):
        result = TechnicalAnalysisEngine().analyze_price("TEST", "4h", candles_from_closes([100.0] * 40))
        assert result.trend.direction == TrendDirection.SIDEWAYS
        assert result.trend.strength == pytest.approx(0.0, abs=1e-6)
        assert result.volatility.bollinger.squeeze is False
        assert result.patterns == ()

    def test_result_sections_are_tuples(self):
        result = TechnicalAnalysisEngine().analyze_price("TEST", "1d", candles_from_closes(rising_closes()))
        assert isinstance(result.indicators, tuple)
        assert isinstance(result.patterns, tuple)
        assert isinstance(result.support_resistance, tuple)
        assert isinstance(result.price_targets, tuple)

    def test_indicator_components_cannot_be_changed(self):
        result = TechnicalAnalysisEngine().analyze_price("TEST", "1d", candles_from_closes(rising_closes()))
        macd = result.get_indicator("MACD")
        histogram = macd.components["histogram"]
        with pytest.raises(TypeError):
            macd.components["histogram"] = ()
        with pytest.raises(TypeError):
            macd.parameters.extras["fast"] = 1
        assert result.get_indicator("MACD").components["histogram"] == histogram

    def test_metrics_callback_receives_stages(self):
        stages = {}
        engine = TechnicalAnalysisEngine(metrics_callback=lambda stage, ms: stages.setdefault(stage, ms))
        engine.analyze_price("TEST", "1d", candles_from_closes(rising_closes()))
        assert {"total", "indicators", "patterns", "levels", "targets"} <= set(stages)
        assert all(ms >= 0 for ms in stages.values())

    def test_analyze_dataframe(self):
        candles = candles_from_closes(rising_closes(), start=datetime(2024, 1, 1))
        frame = candles_to_dataframe(candles)
        engine = TechnicalAnalysisEngine()
        from_frame = engine.analyze_dataframe("TEST", "1d", frame)
        direct = engine.analyze_price("TEST", "1d", candles)
        assert from_frame.current_price == direct.current_price
        assert from_frame.trend == direct.trend

    def test_generate_signals(self):
        engine = TechnicalAnalysisEngine()
        result = engine.analyze_price("TEST", "1d", candles_from_closes(rising_closes()))
        signals = engine.generate_signals(result)
        assert signals
        for signal in signals:
            assert 0.0 <= signal.confidence <= 0.95
            if signal.action == TradeAction.HOLD:
                assert signal.stop_loss is None
            else:
                assert signal.stop_loss is not None


# =============================================================================
# Properties
# =============================================================================

class TestAnalysisProperties:
    """Property tests over random OHLCV series"""

    @given(
        candles=valid_ohlcv_series(),
        timeframe=st.sampled_from(["5m", "1h", "4h", "1d", "1w"]),
    )
    @settings(max_examples=30, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    def test_result_invariants(self, candles, timeframe):
        config = AnalysisConfig()
        result = TechnicalAnalysisEngine(config).analyze_price("RAND", timeframe, candles)

        assert result.current_price == candles[-1].close
        assert 0.0 <= result.volatility.volatility_rank <= 1.0
        assert 0.0 <= result.trend.strength <= 1.0
        assert len(result.patterns) <= config.max_patterns
        assert len(result.support_resistance) <= config.max_levels
        assert len(result.price_targets) <= config.max_targets
        for pattern in result.patterns:
            assert 0.0 <= pattern.confidence <= 1.0
        for level in result.support_resistance:
            assert level.level > 0
        for target in result.price_targets:
            distance = abs(target.level - result.current_price) / result.current_price
            assert config.min_target_distance < distance < config.max_target_distance
        if result.momentum.rsi is not None:
            assert 0.0 <= result.momentum.rsi <= 100.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
