"""
DataFrame 轉換 (Frame Adapter)

pandas DataFrame 與 Candle 序列之間的轉換，不涉及任何 I/O。
欄位名稱不分大小寫 (Open/High/Low/Close/Volume)；時間戳記取自
DatetimeIndex 或 timestamp/date/datetime 欄位。
"""

import logging
from typing import List, Optional, Sequence

import pandas as pd

from ..core.exceptions import InvalidParameterError
from ..core.models import Candle


logger = logging.getLogger(__name__)

PRICE_COLUMNS = ("open", "high", "low", "close")
TIMESTAMP_COLUMNS = ("timestamp", "datetime", "date")


def _column_map(frame: pd.DataFrame) -> dict:
    return {str(col).lower(): col for col in frame.columns}


def _timestamps(frame: pd.DataFrame, columns: dict) -> Optional[List]:
    if isinstance(frame.index, pd.DatetimeIndex):
        return [ts.to_pydatetime() for ts in frame.index]
    for name in TIMESTAMP_COLUMNS:
        if name in columns:
            values = pd.to_datetime(frame[columns[name]])
            return [ts.to_pydatetime() for ts in values]
    return None


def candles_from_dataframe(frame: pd.DataFrame) -> List[Candle]:
    """
    將 OHLCV DataFrame 轉換為 K 線序列

    Args:
        frame: 含 open/high/low/close (必要) 與 volume (選用) 欄位的 DataFrame，
               列依時間由舊到新排列

    Returns:
        K 線列表

    Raises:
        InvalidParameterError: 缺少必要欄位或數值無效
    """
    columns = _column_map(frame)
    missing = [name for name in PRICE_COLUMNS if name not in columns]
    if missing:
        raise InvalidParameterError("frame", list(frame.columns), f"missing columns: {', '.join(missing)}")

    opens = frame[columns["open"]].astype(float).tolist()
    highs = frame[columns["high"]].astype(float).tolist()
    lows = frame[columns["low"]].astype(float).tolist()
    closes = frame[columns["close"]].astype(float).tolist()
    if "volume" in columns:
        volumes = frame[columns["volume"]].fillna(0.0).astype(float).tolist()
    else:
        volumes = [0.0] * len(frame)
    timestamps = _timestamps(frame, columns) or [None] * len(frame)

    candles = [
        Candle(open=o, high=h, low=lo, close=c, volume=v, timestamp=ts)
        for o, h, lo, c, v, ts in zip(opens, highs, lows, closes, volumes, timestamps)
    ]
    logger.debug(f"Converted DataFrame with {len(candles)} rows to candles")
    return candles


def candles_to_dataframe(candles: Sequence[Candle]) -> pd.DataFrame:
    """
    將 K 線序列轉換為 DataFrame

    所有 K 線都有時間戳記時以其作為 DatetimeIndex，否則使用整數索引。

    Returns:
        欄位為 Open/High/Low/Close/Volume 的 DataFrame
    """
    data = {
        "Open": [c.open for c in candles],
        "High": [c.high for c in candles],
        "Low": [c.low for c in candles],
        "Close": [c.close for c in candles],
        "Volume": [c.volume for c in candles],
    }
    if candles and all(c.timestamp is not None for c in candles):
        index = pd.DatetimeIndex([c.timestamp for c in candles], name="Date")
        return pd.DataFrame(data, index=index)
    return pd.DataFrame(data)
