"""
要素ロケータ — セレクタに一致する要素の出現をポーリングで待機する

タイムアウトは異常ではなく通常の結果として LocateResult で返す。
検索中にセッションが送出した例外は debug ログに残してポーリングを継続し、
この関数の外へは送出しない（キャンセルのみ伝播する）。
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from ..dsl.schema import SelectorKind
from .result import ERROR_CANCELLED, ERROR_SELECTOR_TYPE, ERROR_WAIT_TIMEOUT

if TYPE_CHECKING:
    from .session import BrowserSession

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.02
"""ポーリング間隔（秒）。"""


@dataclass
class LocateResult:
    """要素待機の結果。

    Attributes:
        element: 見つかった要素ハンドル（見つからなければ None）
        elapsed: 待機に要した秒数
        reason: 見つからなかった理由（見つかった場合は空文字）
    """

    element: Any = None
    elapsed: float = 0.0
    reason: str = ""

    @property
    def found(self) -> bool:
        return self.element is not None


async def wait_element(
    session: BrowserSession,
    kind: SelectorKind,
    value: str,
    timeout: float,
    *,
    interval: float = POLL_INTERVAL,
    cancel_event: Optional[asyncio.Event] = None,
) -> LocateResult:
    """要素が見つかるかタイムアウトするまでポーリングする。

    timeout が 0 以下でも 1 回は検索する。

    Args:
        session: ブラウザセッション
        kind: セレクタ種別
        value: セレクタ値（単一の式）
        timeout: タイムアウト（秒）
        interval: ポーリング間隔（秒）
        cancel_event: セットされたら待機を打ち切るイベント

    Returns:
        待機結果
    """
    start = time.perf_counter()
    if kind is SelectorKind.UNKNOWN:
        return LocateResult(reason=ERROR_SELECTOR_TYPE)

    deadline = max(0.0, float(timeout))

    while True:
        try:
            element = await session.find_element(kind, value)
        except Exception as exc:
            logger.debug("要素検索中にエラー（継続）: %s=%s: %s", kind.value, value, exc)
            element = None

        elapsed = time.perf_counter() - start
        if element is not None:
            logger.debug("要素を発見: %s=%s（%.0fms 経過）", kind.value, value, elapsed * 1000)
            return LocateResult(element=element, elapsed=elapsed)

        if elapsed >= deadline:
            logger.warning("要素の検索がタイムアウトしました: %s=%s（%ss）", kind.value, value, timeout)
            return LocateResult(elapsed=elapsed, reason=ERROR_WAIT_TIMEOUT)

        if cancel_event is not None and cancel_event.is_set():
            return LocateResult(elapsed=elapsed, reason=ERROR_CANCELLED)

        await asyncio.sleep(min(interval, deadline - elapsed))
