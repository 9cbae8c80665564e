"""Unit tests for DataFrame conversion"""

from datetime import datetime

import pandas as pd
import pytest

from ta_engine.analysis import candles_from_dataframe, candles_to_dataframe
from ta_engine.core.exceptions import InvalidParameterError
from ta_engine.core.models import Candle


def ohlcv(columns=("Open", "High", "Low", "Close", "Volume"), rows=3):
    values = {
        "open": [100.0 + i for i in range(rows)],
        "high": [101.0 + i for i in range(rows)],
        "low": [99.0 + i for i in range(rows)],
        "close": [100.5 + i for i in range(rows)],
        "volume": [1000.0 * (i + 1) for i in range(rows)],
    }
    return pd.DataFrame({name: values[name.lower()] for name in columns})


class TestCandlesFromDataFrame:
    """Test DataFrame to candle conversion"""

    @pytest.mark.parametrize(
        "columns",
        [
            ("Open", "High", "Low", "Close", "Volume"),
            ("open", "high", "low", "close", "volume"),
            ("OPEN", "High", "low", "Close", "VOLUME"),
        ],
    )
    def test_column_names_are_case_insensitive(self, columns):
        candles = candles_from_dataframe(ohlcv(columns))
        assert len(candles) == 3
        assert candles[1].open == 101.0
        assert candles[1].close == 101.5
        assert candles[2].volume == 3000.0
        assert all(c.timestamp is None for c in candles)

    def test_volume_optional(self):
        candles = candles_from_dataframe(ohlcv(("Open", "High", "Low", "Close")))
        assert all(c.volume == 0.0 for c in candles)

    def test_missing_volume_values_become_zero(self):
        frame = ohlcv()
        frame.loc[1, "Volume"] = float("nan")
        candles = candles_from_dataframe(frame)
        assert candles[1].volume == 0.0

    def test_missing_price_column(self):
        with pytest.raises(InvalidParameterError, match="close"):
            candles_from_dataframe(ohlcv(("Open", "High", "Low")))

    def test_datetime_index(self):
        frame = ohlcv()
        frame.index = pd.date_range("2024-01-01", periods=3, freq="D")
        candles = candles_from_dataframe(frame)
        assert candles[0].timestamp == datetime(2024, 1, 1)
        assert candles[2].timestamp == datetime(2024, 1, 3)

    def test_date_column(self):
        frame = ohlcv()
        frame["Date"] = ["2024-02-01", "2024-02-02", "2024-02-05"]
        candles = candles_from_dataframe(frame)
        assert candles[2].timestamp == datetime(2024, 2, 5)

    def test_invalid_row_rejected(self):
        frame = ohlcv()
        frame.loc[0, "Open"] = 0.0
        with pytest.raises(InvalidParameterError):
            candles_from_dataframe(frame)


class TestCandlesToDataFrame:
    """Test candle to DataFrame conversion"""

    def test_timestamped_candles_use_datetime_index(self):
        candles = [
            Candle(open=10.0, high=11.0, low=9.0, close=10.5, volume=5.0, timestamp=datetime(2024, 1, d))
            for d in (1, 2, 3)
        ]
        frame = candles_to_dataframe(candles)
        assert list(frame.columns) == ["Open", "High", "Low", "Close", "Volume"]
        assert isinstance(frame.index, pd.DatetimeIndex)
        assert frame.index.name == "Date"
        assert candles_from_dataframe(frame) == candles

    def test_untimed_candles_use_integer_index(self):
        candles = [Candle(open=10.0, high=11.0, low=9.0, close=10.5) for _ in range(4)]
        frame = candles_to_dataframe(candles)
        assert not isinstance(frame.index, pd.DatetimeIndex)
        assert list(frame.index) == [0, 1, 2, 3]
        assert candles_from_dataframe(frame) == candles

    def test_empty(self):
        frame = candles_to_dataframe([])
        assert frame.empty
        assert candles_from_dataframe(frame) == []
