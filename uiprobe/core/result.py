"""
実行結果モデル — RunResult / StepOutcome / MeasureSample

1 回の実行（Run）の結果を蓄積するデータクラスと、エラーログに書き込む
メッセージ定数を定義する。

RunResult は Runner が実行開始時に生成し、実行中は Runner（と Runner が呼ぶ
ハンドラ）だけが更新する。execute() から返された後は読み取り専用として扱う。
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Literal, Optional

from ..dsl.schema import MEASURE_SLOTS

# ---------------------------------------------------------------------------
# エラーログ用メッセージ
# ---------------------------------------------------------------------------

ERROR_FIND_ELEMENT = (
    "can not find the element, check selectorType & selectorValue, "
    "or update script when page changed"
)
ERROR_SELECTOR_TYPE = "Wrong selectorType, should be one of [id, class, name, xpath]"
ERROR_MISS_START_MARKER = "The end marker before start marker"
ERROR_INVALID_ACTION = (
    "Invalid action, only [none, open, fill, click, check, select, script, "
    "wait, any, goto, sleep] allowed"
)
ERROR_INVALID_MEASURE = "invalid measure value, should be one of 1 or 2 or 3"
ERROR_WAIT_TIMEOUT = "wait element timeout"
ERROR_NO_OPTION = "select failed, no item matched"
ERROR_RUN_TIMEOUT = "run timeout"
ERROR_CANCELLED = "run cancelled"

ERROR_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# ドライバのエラーメッセージから除去するノイズ
_DRIVER_NOISE_MARKERS = ("Call log:", "(Session info:")
_JS_ERROR_PREFIX = re.compile(r"^(javascript error|Error):\s*", re.IGNORECASE)


def driver_error_message(exc: BaseException) -> str:
    """ブラウザ操作の例外から人が読めるメッセージを取り出す。

    Playwright の "Call log:" 以降などのドライバ固有ノイズを切り捨て、
    先頭の "javascript error: " を除去する。

    Args:
        exc: ブラウザ操作で発生した例外

    Returns:
        整形済みのエラーメッセージ
    """
    message = str(exc) or type(exc).__name__
    for marker in _DRIVER_NOISE_MARKERS:
        idx = message.find(marker)
        if idx != -1:
            message = message[:idx]
    message = message.strip()
    message = _JS_ERROR_PREFIX.sub("", message)
    return message.strip() or type(exc).__name__


# ---------------------------------------------------------------------------
# 結果データクラス
# ---------------------------------------------------------------------------

@dataclass
class MeasureSample:
    """計測スロット 1 つ分の結果。

    Attributes:
        sample_time: 計測した時刻（end マーカー処理時）
        duration_seconds: start マーカーからの経過秒数
    """

    sample_time: datetime
    duration_seconds: float


@dataclass
class StepOutcome:
    """単一ステップの実行結果（診断用）。

    Attributes:
        step_index: ステップのインデックス（0始まり）
        step_name: ステップ名
        action: アクション名
        selector: 使用したセレクタ値
        started_at: 開始時刻
        finished_at: 終了時刻
        status: passed / failed
        messages: このステップの実行中にエラーログへ追記された行
    """

    step_index: int
    step_name: str
    action: str
    selector: str = ""
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    status: Literal["passed", "failed"] = "passed"
    messages: list[str] = field(default_factory=list)

    @property
    def duration_ms(self) -> float:
        """ステップの実行時間（ミリ秒）。"""
        if self.started_at is None or self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds() * 1000


@dataclass
class RunResult:
    """1 回の実行の結果。

    Attributes:
        tag: 実行タグ
        started_at: 実行開始時刻
        finished_at: 実行終了時刻（早期停止・例外時も必ず設定される）
        samples: スロット番号 → 計測結果
        error_message: タイムスタンプ付きエラーログ（改行区切り、空文字 = エラーなし）
        steps: 実行したステップの結果（実行順、ジャンプで同じステップが複数回現れ得る）
        artifacts_dir: スクリーンショット保存先（キャプチャ有効時）
    """

    tag: str = ""
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    samples: dict[int, MeasureSample] = field(default_factory=dict)
    error_message: str = ""
    steps: list[StepOutcome] = field(default_factory=list)
    artifacts_dir: Optional[Path] = None

    # ----- エラーログ -----

    def append_error(self, step_name: str, message: str, now: Optional[datetime] = None) -> str:
        """エラーログに 1 行追記する。

        Args:
            step_name: 対象ステップ名
            message: エラー内容
            now: タイムスタンプ（省略時は現在時刻）

        Returns:
            追記した行
        """
        stamp = (now or datetime.now()).strftime(ERROR_TIME_FORMAT)
        line = f"{stamp}: Step [{step_name}] {message}"
        if self.error_message:
            self.error_message += "\n" + line
        else:
            self.error_message = line
        return line

    @property
    def errors(self) -> list[str]:
        """エラーログを行単位のリストで返す。"""
        return self.error_message.splitlines() if self.error_message else []

    # ----- 計測スロット -----

    def set_sample(self, slot: int, sample: MeasureSample) -> None:
        """スロットに計測結果を書き込む（既存値は上書き）。"""
        if slot not in MEASURE_SLOTS:
            raise ValueError(f"計測スロットは {MEASURE_SLOTS} のいずれかです: {slot}")
        self.samples[slot] = sample

    def measure_time(self, slot: int) -> Optional[float]:
        """スロットの経過秒数を返す。未計測の場合は None。"""
        sample = self.samples.get(slot)
        return sample.duration_seconds if sample else None

    def sample_time(self, slot: int) -> Optional[datetime]:
        """スロットの計測時刻を返す。未計測の場合は None。"""
        sample = self.samples.get(slot)
        return sample.sample_time if sample else None

    @property
    def measure_time_1(self) -> Optional[float]:
        return self.measure_time(1)

    @property
    def measure_time_2(self) -> Optional[float]:
        return self.measure_time(2)

    @property
    def measure_time_3(self) -> Optional[float]:
        return self.measure_time(3)

    @property
    def sample_time_1(self) -> Optional[datetime]:
        return self.sample_time(1)

    @property
    def sample_time_2(self) -> Optional[datetime]:
        return self.sample_time(2)

    @property
    def sample_time_3(self) -> Optional[datetime]:
        return self.sample_time(3)

    # ----- 集計 -----

    @property
    def status(self) -> Literal["passed", "failed"]:
        """失敗したステップが 1 つでもあれば failed。"""
        if any(s.status == "failed" for s in self.steps):
            return "failed"
        return "passed"

    @property
    def duration_ms(self) -> float:
        """実行全体の時間（ミリ秒）。"""
        if self.started_at is None or self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> dict[str, Any]:
        """レポート用の辞書に変換する。"""
        return {
            "tag": self.tag,
            "status": self.status,
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
            "duration_ms": self.duration_ms,
            "measures": {
                f"measure_time_{slot}": {
                    "duration_seconds": self.measure_time(slot),
                    "sample_time": _iso(self.sample_time(slot)),
                }
                for slot in MEASURE_SLOTS
            },
            "error_message": self.error_message,
            "steps": [
                {
                    "step_index": s.step_index,
                    "step_name": s.step_name,
                    "action": s.action,
                    "selector": s.selector,
                    "started_at": _iso(s.started_at),
                    "finished_at": _iso(s.finished_at),
                    "duration_ms": s.duration_ms,
                    "status": s.status,
                    "messages": list(s.messages),
                }
                for s in self.steps
            ],
            "artifacts_dir": self.artifacts_dir.as_posix() if self.artifacts_dir else None,
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
