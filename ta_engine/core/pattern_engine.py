"""Pattern Engine for TA Engine

This module implements the PatternEngine class that integrates all
chart-pattern detectors into a single recognition pass.
"""

import logging
from typing import List, Sequence

from .channel_detector import ChannelDetector
from .double_pattern_detector import DoublePatternDetector
from .head_shoulders_detector import HeadShouldersDetector
from .models import Candle, PatternResult
from .trend_line import TrendLineFitter
from .triangle_detector import TriangleDetector


logger = logging.getLogger(__name__)

MAX_PATTERNS = 20


class PatternEngine:
    """型態識別整合引擎

    整合 TriangleDetector, HeadShouldersDetector, DoublePatternDetector,
    ChannelDetector 執行完整型態識別流程。

    Attributes:
        triangle_detector: 三角形 / 楔形檢測器
        head_shoulders_detector: 頭肩型態檢測器
        double_detector: 雙重頂底檢測器
        channel_detector: 通道檢測器
        max_patterns: 回傳型態數量上限
    """

    def __init__(
        self,
        # LocalExtremaDetector parameters
        lookback: int = 3,
        # TriangleDetector parameters
        triangle_window: int = 20,
        triangle_scan_bars: int = 100,
        slope_epsilon: float = 0.001,
        # HeadShouldersDetector parameters
        shoulder_tolerance: float = 0.05,
        # DoublePatternDetector parameters
        double_tolerance: float = 0.03,
        double_min_separation: int = 10,
        double_min_depth: float = 0.05,
        # ChannelDetector parameters
        touch_tolerance: float = 0.02,
        max_patterns: int = MAX_PATTERNS,
        enable_triangles: bool = True,
        enable_head_shoulders: bool = True,
        enable_double_patterns: bool = True,
        enable_channels: bool = True,
    ):
        """初始化型態識別引擎

        Args:
            lookback: 極值檢測前後 K 線數 (預設 3)
            triangle_window: 三角形滑動窗口長度 (預設 20)
            triangle_scan_bars: 三角形掃描的最近 K 線數 (預設 100)
            slope_epsilon: 水平線斜率門檻 (預設 0.001)
            shoulder_tolerance: 頭肩兩肩容差 (預設 5%)
            double_tolerance: 雙重頂底價差容差 (預設 3%)
            double_min_separation: 雙重頂底最少間隔 (預設 10)
            double_min_depth: 雙重頂底中間回檔深度 (預設 5%)
            touch_tolerance: 趨勢線觸及容差 (預設 2%)
            max_patterns: 回傳型態數量上限 (預設 20)
        """
        self.triangle_detector = TriangleDetector(
            window_size=triangle_window,
            scan_bars=triangle_scan_bars,
            slope_epsilon=slope_epsilon,
            lookback=lookback,
        )

        self.head_shoulders_detector = HeadShouldersDetector(
            shoulder_tolerance=shoulder_tolerance,
            lookback=lookback,
        )

        self.double_detector = DoublePatternDetector(
            price_tolerance=double_tolerance,
            min_separation=double_min_separation,
            min_depth=double_min_depth,
            lookback=lookback,
        )

        self.channel_detector = ChannelDetector(
            lookback=lookback,
            fitter=TrendLineFitter(touch_tolerance=touch_tolerance),
        )

        self.max_patterns = max_patterns
        self.enable_triangles = enable_triangles
        self.enable_head_shoulders = enable_head_shoulders
        self.enable_double_patterns = enable_double_patterns
        self.enable_channels = enable_channels

    def detect_patterns(self, candles: Sequence[Candle]) -> List[PatternResult]:
        """執行所有啟用的檢測器

        Args:
            candles: K 線序列

        Returns:
            依信心度遞減排序的型態列表；沒有型態時為空列表
        """
        patterns: List[PatternResult] = []
        if self.enable_triangles:
            patterns.extend(self.triangle_detector.detect(candles))
        if self.enable_head_shoulders:
            patterns.extend(self.head_shoulders_detector.detect(candles))
        if self.enable_double_patterns:
            patterns.extend(self.double_detector.detect(candles))
        if self.enable_channels:
            patterns.extend(self.channel_detector.detect(candles))

        # Stable sort keeps detector order among equal confidences
        patterns.sort(key=lambda p: p.confidence, reverse=True)
        logger.debug(f"Pattern recognition found {len(patterns)} patterns over {len(candles)} bars")
        return patterns[:self.max_patterns]
