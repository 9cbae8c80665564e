"""Unit tests for support / resistance level detection"""

import pytest
from hypothesis import given, strategies as st, settings, HealthCheck

from ta_engine.core.exceptions import InvalidParameterError
from ta_engine.core.models import Candle, IndicatorSignal, LevelType, SupportResistanceLevel
from ta_engine.levels import (
    LevelDetectionOptions,
    SupportResistanceDetector,
    remove_duplicate_levels,
)


def zigzag_candles(bars=50, top=110.0, bottom=100.0, volume=1000.0):
    """Range-bound zigzag with a 6-bar period between fixed top and bottom."""
    wave = (1.0, 2 / 3, 1 / 3, 0.0, 1 / 3, 2 / 3)
    candles = []
    for i in range(bars):
        close = bottom + (top - bottom) * wave[i % 6]
        candles.append(Candle(open=close, high=close + 0.2, low=close - 0.2, close=close, volume=volume))
    return candles


def level(price, level_type=LevelType.SUPPORT, strength=0.5):
    return SupportResistanceLevel(price, level_type, strength)


@st.composite
def level_lists(draw):
    """Generate lists of levels with random prices, types and strengths."""
    count = draw(st.integers(min_value=0, max_value=30))
    return [
        SupportResistanceLevel(
            draw(st.floats(min_value=90.0, max_value=110.0)),
            draw(st.sampled_from([LevelType.SUPPORT, LevelType.RESISTANCE])),
            draw(st.floats(min_value=0.0, max_value=1.0)),
        )
        for _ in range(count)
    ]


# =============================================================================
# Pivot points
# =============================================================================

class TestPivotPoints:
    """Test classic pivot point calculation"""

    def test_pivot_scenario(self):
        """Test high 110 / low 90 / close 100"""
        p = SupportResistanceDetector().calculate_pivot_points(110.0, 90.0, 100.0)
        assert p.pivot == pytest.approx(100.0)
        assert p.r1 == pytest.approx(110.0)
        assert p.s1 == pytest.approx(90.0)
        assert p.r2 == pytest.approx(120.0)
        assert p.s2 == pytest.approx(80.0)
        assert p.r3 == pytest.approx(130.0)
        assert p.s3 == pytest.approx(70.0)

    def test_pivot_levels_from_last_candle(self):
        candles = [Candle(open=95.0, high=110.0, low=90.0, close=100.0)]
        levels = SupportResistanceDetector().pivot_levels(candles)
        assert len(levels) == 7
        assert all(lvl.source == "pivot" for lvl in levels)
        resistance = sorted(lvl.level for lvl in levels if lvl.level_type == LevelType.RESISTANCE)
        assert resistance == pytest.approx([110.0, 120.0, 130.0])

    def test_non_positive_pivot_levels_dropped(self):
        """Test levels at or below zero are never emitted"""
        candles = [Candle(open=1.0, high=10.0, low=0.5, close=1.0)]
        levels = SupportResistanceDetector().pivot_levels(candles)
        assert all(lvl.level > 0 for lvl in levels)
        assert len(levels) < 7


# =============================================================================
# Dynamic levels
# =============================================================================

class TestDynamicLevels:
    """Test swing-based level detection"""

    def test_repeated_swings_form_levels(self):
        detector = SupportResistanceDetector()
        levels = detector.detect_dynamic_levels(zigzag_candles())
        resistance = [lvl for lvl in levels if lvl.level_type == LevelType.RESISTANCE]
        support = [lvl for lvl in levels if lvl.level_type == LevelType.SUPPORT]
        assert resistance and support
        assert resistance[0].level == pytest.approx(110.2)
        assert support[0].level == pytest.approx(99.8)
        assert resistance[0].touches >= 3
        assert all(lvl.source == "dynamic" for lvl in levels)
        assert all(lvl.strength >= detector.min_strength for lvl in levels)

    def test_lookback_longer_than_series(self):
        """Test the window is clipped to the available bars"""
        levels = SupportResistanceDetector().detect_dynamic_levels(zigzag_candles(bars=30), lookback=100)
        assert levels

    def test_invalid_lookback(self):
        with pytest.raises(InvalidParameterError):
            SupportResistanceDetector().detect_dynamic_levels(zigzag_candles(), lookback=0)

    def test_count_level_tests(self):
        detector = SupportResistanceDetector()
        candles = zigzag_candles(bars=12)
        # bars 0 and 6 touch the top
        assert detector.count_level_tests(110.2, candles, LevelType.RESISTANCE) == 2
        assert detector.count_level_tests(99.8, candles, LevelType.SUPPORT) == 2


# =============================================================================
# Psychological, Fibonacci & volume levels
# =============================================================================

class TestRoundNumberLevels:
    """Test psychological level detection"""

    @pytest.mark.parametrize(
        "price, interval",
        [(0.5, 0.1), (5.0, 1.0), (50.0, 5.0), (500.0, 10.0), (5000.0, 50.0)],
    )
    def test_round_number_interval(self, price, interval):
        assert SupportResistanceDetector.round_number_interval(price) == interval

    def test_levels_around_price(self):
        levels = SupportResistanceDetector().identify_psychological_levels(100.0)
        prices = {lvl.level for lvl in levels}
        assert {90.0, 100.0, 110.0} <= prices
        by_price = {lvl.level: lvl for lvl in levels}
        assert by_price[90.0].level_type == LevelType.SUPPORT
        assert by_price[110.0].level_type == LevelType.RESISTANCE
        assert by_price[100.0].strength == pytest.approx(1.0)
        assert by_price[90.0].strength == pytest.approx(0.5)

    def test_non_positive_price_rejected(self):
        with pytest.raises(InvalidParameterError):
            SupportResistanceDetector().identify_psychological_levels(0.0)


class TestFibonacciLevels:
    """Test Fibonacci level calculation"""

    def test_retracement_scenario(self):
        """Test swing 120 / 80 gives 100 at 50% and 95.28 at 61.8%"""
        levels = SupportResistanceDetector().calculate_fibonacci_levels(120.0, 80.0)
        prices = [lvl.level for lvl in levels]
        assert any(p == pytest.approx(100.0) for p in prices)
        assert any(p == pytest.approx(95.28) for p in prices)
        assert all(lvl.level_type == LevelType.SUPPORT for lvl in levels)

    def test_golden_ratio_confidence(self):
        levels = SupportResistanceDetector().calculate_fibonacci_levels(120.0, 80.0)
        by_source = {lvl.source: lvl for lvl in levels}
        assert by_source["fibonacci_0.618"].confidence == 0.8
        assert by_source["fibonacci_0.236"].confidence == 0.7

    def test_bearish_extension_projects_down(self):
        levels = SupportResistanceDetector().calculate_fibonacci_levels(
            120.0, 80.0, kind="extension", direction=IndicatorSignal.BEARISH
        )
        assert levels
        assert all(lvl.level < 80.0 for lvl in levels)

    def test_current_price_filters_distance(self):
        levels = SupportResistanceDetector().calculate_fibonacci_levels(120.0, 80.0, current_price=100.0)
        for lvl in levels:
            distance = abs(lvl.level - 100.0) / 100.0
            assert 0.01 <= distance <= 0.20

    def test_invalid_swing(self):
        with pytest.raises(InvalidParameterError):
            SupportResistanceDetector().calculate_fibonacci_levels(80.0, 120.0)


class TestVolumeLevels:
    """Test high-volume price clusters"""

    def test_volume_cluster(self):
        candles = [Candle(open=100.0, high=100.5, low=99.5, close=100.0, volume=100.0) for _ in range(18)]
        candles[5] = Candle(open=105.0, high=105.5, low=104.5, close=105.0, volume=1000.0)
        candles[10] = Candle(open=105.0, high=105.5, low=104.5, close=105.0, volume=1000.0)
        levels = SupportResistanceDetector().detect_volume_based_levels(candles)
        assert len(levels) == 1
        assert levels[0].level_type == LevelType.RESISTANCE
        assert levels[0].touches == 2
        assert abs(levels[0].level - 105.0) / 105.0 < 0.01

    def test_zero_volume_gives_no_levels(self):
        candles = zigzag_candles(volume=0.0)
        assert SupportResistanceDetector().detect_volume_based_levels(candles) == []


# =============================================================================
# Combined detection & de-duplication
# =============================================================================

class TestLevelDeduplication:
    """Test remove_duplicate_levels"""

    def test_stronger_duplicate_wins(self):
        levels = [
            level(100.0, strength=0.5),
            level(100.3, strength=0.8),
            level(100.3, LevelType.RESISTANCE, 0.4),
            level(101.0, strength=0.6),
        ]
        unique = remove_duplicate_levels(levels)
        assert len(unique) == 3
        assert unique[0].level == 100.3
        assert unique[0].strength == 0.8

    @given(levels=level_lists())
    @settings(max_examples=100, suppress_health_check=[HealthCheck.too_slow])
    def test_strongest_level_of_each_type_survives(self, levels):
        """Test de-duplication never drops the strongest level of a type"""
        unique = remove_duplicate_levels(levels)
        assert len(unique) <= len(levels)
        assert all(u in levels for u in unique)
        for level_type in LevelType:
            before = [lvl.strength for lvl in levels if lvl.level_type == level_type]
            after = [lvl.strength for lvl in unique if lvl.level_type == level_type]
            if before:
                assert max(after) == max(before)


class TestDetectAllLevels:
    """Test combined level detection"""

    def test_sorted_and_capped(self):
        detector = SupportResistanceDetector()
        levels = detector.detect_all_levels(zigzag_candles(bars=60), LevelDetectionOptions(max_levels=5))
        assert 0 < len(levels) <= 5
        strengths = [lvl.strength for lvl in levels]
        assert strengths == sorted(strengths, reverse=True)

    def test_sources_can_be_disabled(self):
        detector = SupportResistanceDetector()
        options = LevelDetectionOptions(include_pivots=False, include_psychological=False, include_volume=False)
        levels = detector.detect_all_levels(zigzag_candles(bars=60), options)
        assert all(lvl.source == "dynamic" for lvl in levels)

    def test_fibonacci_levels_need_swing(self):
        detector = SupportResistanceDetector()
        options = LevelDetectionOptions(
            include_pivots=False,
            include_psychological=False,
            include_volume=False,
            include_fibonacci=True,
            swing_high=120.0,
            swing_low=80.0,
        )
        levels = detector.detect_all_levels(zigzag_candles(bars=60), options)
        assert any(lvl.source.startswith("fibonacci") for lvl in levels)

    def test_empty_input(self):
        assert SupportResistanceDetector().detect_all_levels([]) == []
