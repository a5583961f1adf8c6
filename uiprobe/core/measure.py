"""
計測トラッカー — start / end マーカーによる経過時間の計測

実行全体で 1 つの「保留中の開始時刻」を共有する（スロットごとではない）。
end マーカーで経過秒数を計算し、ステップが指定するスロット（1〜3）に書き込む。
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Optional

from ..dsl.schema import MEASURE_SLOTS
from .result import ERROR_INVALID_MEASURE, ERROR_MISS_START_MARKER, MeasureSample

if TYPE_CHECKING:
    from ..dsl.schema import Step
    from .result import RunResult

logger = logging.getLogger(__name__)


class MeasurementTracker:
    """start / end マーカーの状態を管理する。

    Attributes:
        pending_start: 未消費の start マーカー時刻（なければ None）
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock
        self.pending_start: Optional[datetime] = None

    def reset(self) -> None:
        """保留中の開始時刻を破棄する（実行開始時に呼ぶ）。"""
        self.pending_start = None

    def mark_start(self) -> datetime:
        """現在時刻を保留中の開始時刻として記録する。"""
        self.pending_start = self._clock()
        return self.pending_start

    def mark_end(self, step: Step, result: RunResult) -> Optional[MeasureSample]:
        """end マーカーを処理し、経過時間をスロットに書き込む。

        開始時刻がない場合、スロットが不正な場合はエラーログに 1 行追記して
        何も書き込まない。いずれの場合も保留中の開始時刻は必ず消費される。

        Args:
            step: end マーカーを持つステップ
            result: 書き込み先の実行結果

        Returns:
            書き込んだ計測結果。書き込まなかった場合は None
        """
        start = self.pending_start
        self.pending_start = None

        if start is None:
            result.append_error(step.name, ERROR_MISS_START_MARKER)
            logger.info("開始時刻が見つかりません。ステップ設定を確認してください: %s", step)
            return None

        now = self._clock()
        # ミリ秒精度で秒に換算
        duration_ms = (now - start) // timedelta(milliseconds=1)
        duration = duration_ms / 1000.0

        if step.measure_slot not in MEASURE_SLOTS:
            result.append_error(step.name, ERROR_INVALID_MEASURE)
            logger.error("計測スロットの設定が不正です: %s", step)
            return None

        sample = MeasureSample(sample_time=now, duration_seconds=duration)
        result.set_sample(step.measure_slot, sample)
        logger.debug("measure_time_%d = %.3fs", step.measure_slot, duration)
        return sample
