"""
ArtifactCapture — ステップ単位のスクリーンショット保存

実行ごとに 1 つの保存先ディレクトリを決め、capture フラグ付きステップの後に
スクリーンショットを保存する。

ディレクトリ構成::

    <data_dir>/<YYYY-mm-dd>/<タグ>/<HHMMSS>/<ステップ名>_<HHMMSS>.png

保存の失敗は実行を止めない。エラーログに記録して実行を継続する。
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

from .result import driver_error_message

if TYPE_CHECKING:
    from ..dsl.schema import Step
    from .result import RunResult
    from .session import BrowserSession

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# ファイル名サニタイズ
# ---------------------------------------------------------------------------

_INVALID_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')
"""ファイル名に使用できない文字を検出する正規表現。"""

DATE_FORMAT = "%Y-%m-%d"
SHORT_TIME_FORMAT = "%H%M%S"


def valid_filename(name: str) -> str:
    """文字列をファイル名として安全な形に変換する。

    ファイルシステムで使えない文字（\\ / : * ? " < > |）と制御文字を _ に置換する。
    "." と ".." はそれぞれ "_" と "__" になる。

    Args:
        name: 変換対象の文字列

    Returns:
        変換後の文字列
    """
    if name in (".", ".."):
        return "_" * len(name)
    return _INVALID_FILENAME_CHARS.sub("_", name)


# ---------------------------------------------------------------------------
# ArtifactCapture 本体
# ---------------------------------------------------------------------------

@dataclass
class ArtifactCapture:
    """スクリーンショットの保存先管理と保存処理。

    Attributes:
        base_dir: 保存先ベースディレクトリ（設定の data_dir）
        run_dir: 実行ディレクトリ（create_run_dir() で設定される）
        clock: 現在時刻の取得関数
    """

    base_dir: Path = field(default_factory=lambda: Path("data"))
    run_dir: Optional[Path] = field(default=None, init=False)
    clock: Callable[[], datetime] = datetime.now

    def create_run_dir(self, tag: str, timestamp: Optional[datetime] = None) -> Path:
        """実行ディレクトリを作成する。

        Args:
            tag: 実行タグ（サニタイズしてディレクトリ名に使用）
            timestamp: ディレクトリ名に使用する時刻。None の場合は現在時刻

        Returns:
            作成された実行ディレクトリのパス
        """
        if timestamp is None:
            timestamp = self.clock()

        self.run_dir = (
            self.base_dir
            / timestamp.strftime(DATE_FORMAT)
            / valid_filename(tag)
            / timestamp.strftime(SHORT_TIME_FORMAT)
        )
        self.run_dir.mkdir(parents=True, exist_ok=True)
        logger.info("キャプチャ保存先を作成しました: %s", self.run_dir)
        return self.run_dir

    def screenshot_path(self, step: Step, timestamp: Optional[datetime] = None) -> Path:
        """ステップのスクリーンショット保存パスを返す。

        Raises:
            RuntimeError: create_run_dir() が呼ばれていない場合
        """
        if self.run_dir is None:
            raise RuntimeError("run_dir が未設定です。create_run_dir() を先に呼び出してください。")
        if timestamp is None:
            timestamp = self.clock()
        filename = f"{valid_filename(step.name)}_{timestamp.strftime(SHORT_TIME_FORMAT)}.png"
        return self.run_dir / filename

    async def save(
        self,
        step: Step,
        session: BrowserSession,
        result: RunResult,
    ) -> Optional[Path]:
        """スクリーンショットを撮って保存する。

        失敗した場合は "capture failure <理由>" をエラーログに記録して None を返す。

        Args:
            step: 対象ステップ
            session: ブラウザセッション
            result: エラーログの書き込み先

        Returns:
            保存したファイルのパス。失敗時は None
        """
        try:
            path = self.screenshot_path(step)
            data = await session.screenshot()
            path.write_bytes(data)
        except Exception as exc:
            result.append_error(step.name, f"capture failure {driver_error_message(exc)}")
            logger.warning("スクリーンショットの保存に失敗しました: %s", exc)
            return None

        logger.debug("スクリーンショットを保存しました: %s", path)
        return path
