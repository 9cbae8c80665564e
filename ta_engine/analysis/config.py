"""
分析引擎配置 (Analysis Config)

集中管理分析流程中的各項門檻與上限，支援字典與 JSON 轉換。
"""

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict
import json

from ..core.exceptions import InvalidParameterError


@dataclass
class AnalysisConfig:
    """分析引擎配置

    Attributes:
        # 資料需求
        min_bars: 分析所需最少 K 線數

        # 趨勢
        trend_bars: 趨勢迴歸使用的最近 K 線數
        trend_threshold: 標準化斜率門檻 (每根 K 線的價格比例)

        # 型態
        extrema_lookback: 極值判斷前後 K 線數
        slope_epsilon: 三角形水平線斜率門檻 (價格 / K 線)
        triangle_window: 三角形滑動窗口長度
        triangle_scan_bars: 三角形掃描的最近 K 線數
        shoulder_tolerance: 頭肩兩肩容差
        double_tolerance: 雙重頂底價差容差
        double_min_separation: 雙重頂底最少間隔
        double_min_depth: 雙重頂底中間回檔深度
        touch_tolerance: 趨勢線觸及容差
        max_patterns: 型態數量上限

        # 支撐壓力
        level_lookback: 動態價位搜尋的最近 K 線數
        max_levels: 價位數量上限
        include_pivots: 是否加入樞紐點
        include_psychological: 是否加入整數關卡
        include_volume: 是否加入成交量價位
        include_fibonacci_levels: 是否把波段斐波那契回撤加入價位

        # 價格目標
        swing_lookback: 計算波段高低點的最近 K 線數
        min_target_distance: 目標最小相對距離
        max_target_distance: 目標最大相對距離
        max_targets: 目標數量上限

        # 波動度
        squeeze_ratio: 布林帶寬低於歷史平均此比例視為壓縮
    """
    min_bars: int = 20

    trend_bars: int = 20
    trend_threshold: float = 0.001

    extrema_lookback: int = 3
    slope_epsilon: float = 0.001
    triangle_window: int = 20
    triangle_scan_bars: int = 100
    shoulder_tolerance: float = 0.05
    double_tolerance: float = 0.03
    double_min_separation: int = 10
    double_min_depth: float = 0.05
    touch_tolerance: float = 0.02
    max_patterns: int = 20

    level_lookback: int = 50
    max_levels: int = 20
    include_pivots: bool = True
    include_psychological: bool = True
    include_volume: bool = True
    include_fibonacci_levels: bool = False

    swing_lookback: int = 50
    min_target_distance: float = 0.01
    max_target_distance: float = 0.30
    max_targets: int = 8

    squeeze_ratio: float = 0.5

    def validate(self) -> None:
        """檢查配置值

        Raises:
            InvalidParameterError: 任何配置值超出合理範圍
        """
        for name in (
            "trend_bars",
            "extrema_lookback",
            "triangle_window",
            "triangle_scan_bars",
            "double_min_separation",
            "max_patterns",
            "level_lookback",
            "max_levels",
            "swing_lookback",
            "max_targets",
        ):
            value = getattr(self, name)
            if value < 1:
                raise InvalidParameterError(name, value, f"{name} must be a positive integer")
        if self.min_bars < 2:
            raise InvalidParameterError("min_bars", self.min_bars, "at least 2 bars are needed for a regression")
        if self.trend_bars < 2:
            raise InvalidParameterError("trend_bars", self.trend_bars, "at least 2 bars are needed for a regression")
        if not 0 <= self.min_target_distance < self.max_target_distance:
            raise InvalidParameterError(
                "min_target_distance",
                self.min_target_distance,
                "min_target_distance must be non-negative and below max_target_distance",
            )
        for name in ("trend_threshold", "slope_epsilon", "touch_tolerance", "squeeze_ratio"):
            value = getattr(self, name)
            if value <= 0:
                raise InvalidParameterError(name, value, f"{name} must be positive")

    def to_dict(self) -> Dict[str, Any]:
        """將配置轉換為字典格式"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisConfig":
        """
        從字典建立配置物件

        未提供的欄位使用預設值，未知欄位忽略。

        Args:
            data: 字典格式的配置資料

        Returns:
            配置物件
        """
        defaults = cls()
        values = {}
        for f in fields(cls):
            default = getattr(defaults, f.name)
            raw = data.get(f.name, default)
            if isinstance(default, bool):
                values[f.name] = bool(raw)
            elif isinstance(default, int):
                values[f.name] = int(raw)
            else:
                values[f.name] = float(raw)
        return cls(**values)

    def to_json(self) -> str:
        """將配置轉換為 JSON 字串"""
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> "AnalysisConfig":
        """
        從 JSON 字串建立配置物件

        Args:
            json_str: JSON 字串

        Returns:
            配置物件
        """
        data = json.loads(json_str)
        return cls.from_dict(data)
