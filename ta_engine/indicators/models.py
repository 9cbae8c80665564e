"""
指標參數與計算結果資料模型

每種指標都有自己的參數類別，保留具名欄位並以 extras 承載額外設定。
"""

from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any, Dict, Mapping, Tuple

from ..core.models import IndicatorSignal


class IndicatorParams:
    """指標參數共用行為"""

    def __post_init__(self):
        # extras is exposed read-only
        object.__setattr__(self, "extras", MappingProxyType(dict(self.extras)))

    def as_dict(self) -> Dict[str, Any]:
        """轉換為 參數名稱 -> 值 的字典，extras 會攤平合併"""
        values = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "extras"}
        values.update(getattr(self, "extras", {}))
        return values


@dataclass(frozen=True)
class SMAParams(IndicatorParams):
    """SMA 參數"""
    period: int = 20
    extras: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EMAParams(IndicatorParams):
    """EMA 參數"""
    period: int = 20
    extras: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RSIParams(IndicatorParams):
    """RSI 參數"""
    period: int = 14
    overbought: float = 70.0        # 超買門檻
    oversold: float = 30.0          # 超賣門檻
    extras: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MACDParams(IndicatorParams):
    """MACD 參數"""
    fast: int = 12
    slow: int = 26
    signal: int = 9
    extras: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BollingerParams(IndicatorParams):
    """布林通道參數"""
    period: int = 20
    std_dev: float = 2.0            # 標準差倍數
    extras: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StochasticParams(IndicatorParams):
    """KD 指標參數"""
    k_period: int = 14
    d_period: int = 3
    overbought: float = 80.0
    oversold: float = 20.0
    extras: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ATRParams(IndicatorParams):
    """ATR 參數"""
    period: int = 14
    extras: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class IndicatorParameterSet:
    """依時間週期與波動度調整後的指標參數組合"""
    rsi: RSIParams = field(default_factory=RSIParams)
    macd: MACDParams = field(default_factory=MACDParams)
    bollinger: BollingerParams = field(default_factory=BollingerParams)
    stochastic: StochasticParams = field(default_factory=StochasticParams)
    atr: ATRParams = field(default_factory=ATRParams)


@dataclass(frozen=True)
class IndicatorResult:
    """指標計算結果

    Attributes:
        name: 指標名稱 (例如 "RSI", "SMA_20")
        values: 主要輸出序列，長度為輸入長度扣除暖機長度
        parameters: 計算所用的參數
        interpretation: 可讀的解讀文字
        signal: 方向訊號
        components: 多線指標的各條線 (MACD、布林通道、KD)
    """
    name: str
    values: Tuple[float, ...]
    parameters: IndicatorParams
    interpretation: str
    signal: IndicatorSignal
    components: Mapping[str, Tuple[float, ...]] = field(default_factory=dict)

    def __post_init__(self):
        frozen = {name: tuple(series) for name, series in self.components.items()}
        object.__setattr__(self, "values", tuple(self.values))
        object.__setattr__(self, "components", MappingProxyType(frozen))

    @property
    def latest(self) -> float:
        """最新一筆數值"""
        return self.values[-1]
