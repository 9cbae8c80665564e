"""Unit tests for Indicator Pool

This module verifies the moving averages, momentum and volatility
indicators, their saturation rules and their error handling.
"""

import pytest
from hypothesis import given, strategies as st, settings, HealthCheck

from ta_engine.core.exceptions import InsufficientDataError, InvalidParameterError
from ta_engine.core.models import IndicatorSignal
from ta_engine.indicators import (
    IndicatorPool,
    IndicatorResult,
    RSIParams,
    SMAParams,
    percentile_rank,
)


# =============================================================================
# Test Data Generators
# =============================================================================

@st.composite
def valid_close_prices(draw, min_length=40, max_length=80):
    """Generate a valid close price series."""
    length = draw(st.integers(min_value=min_length, max_value=max_length))
    base_price = draw(st.floats(min_value=50.0, max_value=200.0))

    prices = []
    current = base_price
    for _ in range(length):
        change = draw(st.floats(min_value=-0.03, max_value=0.03))
        current = max(1.0, current * (1 + change))
        prices.append(current)
    return prices


# =============================================================================
# Initialization
# =============================================================================

class TestIndicatorPoolInit:
    """Test IndicatorPool initialization"""

    def test_init_default_params(self):
        """Test initialization with default parameters"""
        pool = IndicatorPool()
        assert pool.rsi_period == 14
        assert pool.macd_fast == 12
        assert pool.macd_slow == 26
        assert pool.macd_signal == 9
        assert pool.bb_period == 20
        assert pool.bb_std == 2.0
        assert pool.atr_period == 14
        assert pool.stoch_k == 14
        assert pool.stoch_d == 3

    def test_init_rejects_non_positive_period(self):
        """Test initialization rejects a zero period"""
        with pytest.raises(InvalidParameterError, match="rsi_period"):
            IndicatorPool(rsi_period=0)

    def test_init_rejects_fast_not_below_slow(self):
        """Test MACD fast period must be shorter than slow period"""
        with pytest.raises(InvalidParameterError, match="macd_fast"):
            IndicatorPool(macd_fast=26, macd_slow=26)

    def test_init_rejects_non_positive_std(self):
        """Test Bollinger multiplier must be positive"""
        with pytest.raises(InvalidParameterError):
            IndicatorPool(bb_std=0)

    def test_invalid_parameter_is_value_error(self):
        """Test InvalidParameterError can be caught as ValueError"""
        with pytest.raises(ValueError):
            IndicatorPool(stoch_k=-3)


# =============================================================================
# Moving Averages
# =============================================================================

class TestMovingAverages:
    """Test SMA and EMA calculation"""

    def test_sma_length_and_first_value(self):
        """Test SMA output length and first value"""
        pool = IndicatorPool()
        prices = [1.0, 2.0, 3.0, 4.0, 5.0, 6.0]
        sma = pool.calculate_sma(prices, 3)
        assert len(sma) == 4
        assert sma[0] == pytest.approx(2.0)
        assert sma[-1] == pytest.approx(5.0)

    def test_sma_insufficient_data(self):
        """Test SMA raises when the period exceeds the series"""
        pool = IndicatorPool()
        with pytest.raises(InsufficientDataError) as exc_info:
            pool.calculate_sma([1.0, 2.0], 3)
        assert exc_info.value.required == 3
        assert exc_info.value.available == 2

    def test_ema_seeded_with_sma(self):
        """Test EMA first value equals SMA of the first period"""
        pool = IndicatorPool()
        prices = [2.0, 4.0, 6.0, 8.0]
        ema = pool.calculate_ema(prices, 3)
        assert len(ema) == 2
        assert ema[0] == pytest.approx(4.0)
        # multiplier 2 / (3 + 1) = 0.5
        assert ema[1] == pytest.approx(6.0)

    def test_non_finite_input_rejected(self):
        """Test NaN inputs raise InvalidParameterError"""
        pool = IndicatorPool()
        with pytest.raises(InvalidParameterError):
            pool.calculate_sma([1.0, float("nan"), 3.0], 2)

    @given(
        price=st.floats(min_value=1.0, max_value=10000.0),
        length=st.integers(min_value=5, max_value=60),
        period=st.integers(min_value=1, max_value=5),
    )
    @settings(max_examples=100, suppress_health_check=[HealthCheck.too_slow])
    def test_constant_series_converges(self, price, length, period):
        """Test SMA and EMA of a constant series equal the constant"""
        pool = IndicatorPool()
        prices = [price] * length
        for value in pool.calculate_sma(prices, period):
            assert value == pytest.approx(price)
        for value in pool.calculate_ema(prices, period):
            assert value == pytest.approx(price)

    def test_sma_result_signal_vs_close(self):
        """Test SMA result compares the latest close to the average"""
        pool = IndicatorPool()
        prices = [100.0 + i for i in range(30)]
        result = pool.calculate_sma_result(prices, 20)
        assert result.name == "SMA_20"
        assert isinstance(result.parameters, SMAParams)
        assert result.signal == IndicatorSignal.BULLISH

    def test_sma_result_with_fast_period(self):
        """Test SMA result compares a faster average when requested"""
        pool = IndicatorPool()
        prices = [200.0 - i for i in range(60)]
        result = pool.calculate_sma_result(prices, 50, fast_period=20)
        assert result.name == "SMA_50"
        assert result.signal == IndicatorSignal.BEARISH
        assert result.parameters.as_dict() == {"period": 50, "fast_period": 20}


# =============================================================================
# RSI
# =============================================================================

class TestRSICalculation:
    """Test RSI indicator calculation"""

    def test_rsi_insufficient_data(self):
        """Test RSI raises with fewer than period + 1 prices"""
        pool = IndicatorPool(rsi_period=14)
        with pytest.raises(InsufficientDataError):
            pool.calculate_rsi([100.0] * 14)

    def test_rsi_output_length(self):
        """Test RSI series length is len(prices) - period"""
        pool = IndicatorPool(rsi_period=14)
        prices = [100.0 + (i % 5) for i in range(40)]
        result = pool.calculate_rsi(prices)
        assert isinstance(result, IndicatorResult)
        assert len(result.values) == 26

    def test_rsi_monotone_increase_saturates(self):
        """Test strictly rising prices give RSI 100 and an overbought signal"""
        pool = IndicatorPool()
        result = pool.calculate_rsi([100.0 + i for i in range(30)])
        assert result.latest == 100.0
        assert result.signal == IndicatorSignal.BEARISH
        assert "overbought" in result.interpretation

    def test_rsi_monotone_decrease(self):
        """Test strictly falling prices give RSI 0 and an oversold signal"""
        pool = IndicatorPool()
        result = pool.calculate_rsi([200.0 - i for i in range(30)])
        assert result.latest == pytest.approx(0.0)
        assert result.signal == IndicatorSignal.BULLISH
        assert "oversold" in result.interpretation

    def test_rsi_flat_series(self):
        """Test a flat series gives a neutral RSI of 50"""
        pool = IndicatorPool()
        result = pool.calculate_rsi([100.0] * 30)
        assert result.latest == 50.0
        assert result.signal == IndicatorSignal.NEUTRAL
        assert isinstance(result.parameters, RSIParams)

    @given(prices=valid_close_prices())
    @settings(max_examples=100, suppress_health_check=[HealthCheck.too_slow])
    def test_rsi_value_range(self, prices):
        """Test RSI values are always within [0, 100]"""
        pool = IndicatorPool()
        result = pool.calculate_rsi(prices)
        for value in result.values:
            assert 0.0 <= value <= 100.0


# =============================================================================
# MACD
# =============================================================================

class TestMACDCalculation:
    """Test MACD indicator calculation"""

    def test_macd_rejects_fast_not_below_slow(self):
        """Test MACD rejects fast >= slow"""
        pool = IndicatorPool()
        with pytest.raises(InvalidParameterError):
            pool.calculate_macd([100.0] * 60, fast=26, slow=12)

    def test_macd_insufficient_data(self):
        """Test MACD requires slow + signal - 1 prices"""
        pool = IndicatorPool()
        with pytest.raises(InsufficientDataError):
            pool.calculate_macd([100.0 + i for i in range(33)])
        # 26 + 9 - 1 = 34 prices are enough
        result = pool.calculate_macd([100.0 + i for i in range(34)])
        assert len(result.values) == 1

    @given(prices=valid_close_prices())
    @settings(max_examples=100, suppress_health_check=[HealthCheck.too_slow])
    def test_macd_histogram_identity(self, prices):
        """Test histogram equals MACD line minus signal line on aligned indices"""
        pool = IndicatorPool()
        result = pool.calculate_macd(prices)
        macd_line = result.components["macd_line"]
        signal_line = result.components["signal_line"]
        histogram = result.components["histogram"]
        assert len(macd_line) == len(signal_line) == len(histogram)
        for m, s, h in zip(macd_line, signal_line, histogram):
            assert h == pytest.approx(m - s, abs=1e-9)

    def test_macd_uptrend_is_bullish(self):
        """Test an accelerating uptrend gives a bullish MACD"""
        pool = IndicatorPool()
        prices = [100.0 + 0.05 * i * i for i in range(60)]
        result = pool.calculate_macd(prices)
        assert result.signal == IndicatorSignal.BULLISH


# =============================================================================
# Bollinger Bands
# =============================================================================

class TestBollingerCalculation:
    """Test Bollinger Bands calculation"""

    @given(prices=valid_close_prices())
    @settings(max_examples=100, suppress_health_check=[HealthCheck.too_slow])
    def test_band_width_identity(self, prices):
        """Test bands are symmetric around the middle band"""
        pool = IndicatorPool()
        result = pool.calculate_bollinger(prices)
        comps = result.components
        for upper, middle, lower in zip(comps["upper"], comps["middle"], comps["lower"]):
            assert upper - middle == pytest.approx(middle - lower, abs=1e-6)
            assert upper >= lower

    def test_constant_series_has_zero_bandwidth(self):
        """Test a constant series collapses the bands"""
        pool = IndicatorPool()
        result = pool.calculate_bollinger([50.0] * 25)
        assert result.components["upper"][-1] == pytest.approx(50.0)
        assert result.components["lower"][-1] == pytest.approx(50.0)
        assert result.components["bandwidth"][-1] == pytest.approx(0.0)

    def test_close_above_upper_band_is_bearish(self):
        """Test a close above the upper band is an overextension"""
        pool = IndicatorPool()
        result = pool.calculate_bollinger([100.0] * 19 + [130.0])
        assert result.signal == IndicatorSignal.BEARISH

    def test_close_below_lower_band_is_bullish(self):
        """Test a close below the lower band is a downside stretch"""
        pool = IndicatorPool()
        result = pool.calculate_bollinger([100.0] * 19 + [70.0])
        assert result.signal == IndicatorSignal.BULLISH

    def test_detect_squeeze(self):
        """Test squeeze detection against the trailing average bandwidth"""
        assert IndicatorPool.detect_squeeze([0.1] * 20 + [0.01], 20) is True
        assert IndicatorPool.detect_squeeze([0.1] * 21, 20) is False
        assert IndicatorPool.detect_squeeze([0.1], 20) is False


# =============================================================================
# Stochastic & ATR
# =============================================================================

class TestStochasticCalculation:
    """Test Stochastic (KD) indicator calculation"""

    def test_zero_range_saturates_to_50(self):
        """Test %K is 50 when the window high equals the window low"""
        pool = IndicatorPool()
        flat = [100.0] * 20
        result = pool.calculate_stochastic(flat, flat, flat)
        assert result.components["k"][-1] == 50.0
        assert result.components["d"][-1] == 50.0

    def test_close_at_high_is_overbought(self):
        """Test closes at the window high give an overbought reading"""
        pool = IndicatorPool()
        highs = [101.0 + i for i in range(30)]
        lows = [100.0 + i for i in range(30)]
        closes = list(highs)
        result = pool.calculate_stochastic(highs, lows, closes)
        assert result.components["k"][-1] == pytest.approx(100.0)
        assert result.signal == IndicatorSignal.BEARISH

    def test_mismatched_lengths_rejected(self):
        """Test mismatched high/low/close lengths raise InvalidParameterError"""
        pool = IndicatorPool()
        with pytest.raises(InvalidParameterError):
            pool.calculate_stochastic([1.0] * 20, [1.0] * 19, [1.0] * 20)

    def test_insufficient_data(self):
        """Test Stochastic requires k_period + d_period - 1 bars"""
        pool = IndicatorPool()
        data = [100.0] * 15
        with pytest.raises(InsufficientDataError):
            pool.calculate_stochastic(data, data, data)


class TestATRCalculation:
    """Test ATR calculation"""

    def test_constant_true_range(self):
        """Test ATR equals a constant true range"""
        pool = IndicatorPool()
        n = 30
        result = pool.calculate_atr([101.0] * n, [99.0] * n, [100.0] * n)
        assert len(result.values) == n - 14
        assert result.latest == pytest.approx(2.0)
        assert result.signal == IndicatorSignal.NEUTRAL

    def test_gap_counts_in_true_range(self):
        """Test a gap from the previous close widens the true range"""
        pool = IndicatorPool()
        highs = [101.0] * 15 + [111.0]
        lows = [99.0] * 15 + [109.0]
        closes = [100.0] * 15 + [110.0]
        result = pool.calculate_atr(highs, lows, closes)
        # last true range = |111 - 100| = 11, the other 13 are 2
        assert result.latest == pytest.approx((13 * 2.0 + 11.0) / 14)


class TestPercentileRank:
    """Test percentile rank helper"""

    def test_empty_is_middle(self):
        assert percentile_rank([], 1.0) == 0.5

    def test_rank_counts_half_of_ties(self):
        assert percentile_rank([1.0, 2.0, 3.0, 4.0], 4.0) == pytest.approx(0.875)
        assert percentile_rank([1.0, 2.0, 3.0, 4.0], 0.5) == 0.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
