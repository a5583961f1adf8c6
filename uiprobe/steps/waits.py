"""
複数セレクタ待機 — wait（全て出現）/ any（いずれか出現）

selectorValue のカンマ区切りセレクタを同じセレクタ種別の独立した式に分割し、
式ごとに 1 タスクを起動して要素待機を並行実行する。各タスクは自分の
インデックスのスロットにだけ結果を書き込み、全タスクの完了を待ってから判定する。

セレクタが 1 つの場合は actionValue を空にした check と同じ動作になる。
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from ..core.locator import wait_element
from ..core.result import ERROR_CANCELLED, ERROR_FIND_ELEMENT, ERROR_SELECTOR_TYPE
from ..dsl.schema import SelectorKind
from .builtin import CheckHandler

if TYPE_CHECKING:
    from ..core.session import BrowserSession
    from ..dsl.schema import Step
    from .registry import ActionContext

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# 並行待機コーディネータ
# ---------------------------------------------------------------------------

@dataclass
class WaitOutcome:
    """並行待機の結果。

    リストは全てセレクタの順序に揃えたインデックス対応。

    Attributes:
        selectors: 待機したセレクタ式
        elements: 見つかった要素（見つからなければ None）
        elapsed_ms: セレクタごとの待機時間（ミリ秒）
    """

    selectors: list[str]
    elements: list[Any] = field(default_factory=list)
    elapsed_ms: list[int] = field(default_factory=list)

    @property
    def found_count(self) -> int:
        return sum(1 for e in self.elements if e is not None)

    @property
    def all_found(self) -> bool:
        return self.found_count == len(self.selectors)

    @property
    def any_found(self) -> bool:
        return self.found_count > 0

    @property
    def missing(self) -> list[str]:
        """見つからなかったセレクタ式。"""
        return [s for s, e in zip(self.selectors, self.elements) if e is None]

    def duration_report(self) -> str:
        """セレクタごとの待機時間の診断文字列（例: "Duration: 12,340"）。"""
        return "Duration: " + ",".join(str(ms) for ms in self.elapsed_ms)


async def wait_concurrently(
    session: BrowserSession,
    kind: SelectorKind,
    selectors: list[str],
    timeout: float,
    cancel_event: Optional[asyncio.Event] = None,
) -> WaitOutcome:
    """複数のセレクタを並行に待機し、全タスクの完了後に結果を返す。

    同時実行数はセレクタ数と同じ。セッションへのコマンドは
    セッション側で直列化される。

    Args:
        session: ブラウザセッション
        kind: 全セレクタ共通のセレクタ種別
        selectors: セレクタ式のリスト
        timeout: セレクタごとのタイムアウト（秒）
        cancel_event: セットされたら待機を打ち切るイベント

    Returns:
        インデックス対応の待機結果
    """
    count = len(selectors)
    outcome = WaitOutcome(
        selectors=list(selectors),
        elements=[None] * count,
        elapsed_ms=[0] * count,
    )
    limit = asyncio.Semaphore(max(1, count))

    async def worker(index: int, selector: str) -> None:
        async with limit:
            started = time.perf_counter()
            located = await wait_element(
                session, kind, selector, timeout, cancel_event=cancel_event,
            )
            outcome.elements[index] = located.element
            outcome.elapsed_ms[index] = int((time.perf_counter() - started) * 1000)

    tasks = [
        asyncio.create_task(worker(i, s), name=f"wait[{i}] {s}")
        for i, s in enumerate(selectors)
    ]
    try:
        await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()

    logger.debug("並行待機完了: %d/%d 件発見 %s", outcome.found_count, count, outcome.elapsed_ms)
    return outcome


# ---------------------------------------------------------------------------
# ハンドラ
# ---------------------------------------------------------------------------

class _MultiWaitHandler:
    """wait / any の共通処理。"""

    require_all: bool = True

    async def execute(self, step: Step, context: ActionContext) -> bool:
        selectors = step.selectors
        if len(selectors) <= 1:
            check_step = step.model_copy(update={"action_value": ""})
            return await CheckHandler().execute(check_step, context)

        if step.selector_kind is SelectorKind.UNKNOWN:
            return context.fail(step, ERROR_SELECTOR_TYPE)

        try:
            outcome = await wait_concurrently(
                context.session,
                step.selector_kind,
                selectors,
                step.timeout_seconds,
                cancel_event=context.cancel_event,
            )
        except Exception as exc:
            logger.error("並行待機の結合でエラー: %s", exc)
            return context.fail(step, f"wait error: {exc}")

        context.note(step, outcome.duration_report())

        ok = outcome.all_found if self.require_all else outcome.any_found
        if ok:
            return False

        if context.cancel_event.is_set():
            logger.warning("並行待機がキャンセルされました: %s", step.name)
            return context.fail(step, ERROR_CANCELLED)

        logger.warning("要素が見つかりません: %s", ", ".join(outcome.missing))
        return context.fail(step, ERROR_FIND_ELEMENT)


class WaitAllHandler(_MultiWaitHandler):
    """wait — 全てのセレクタの要素が出現するまで待機する。"""

    require_all = True


class WaitAnyHandler(_MultiWaitHandler):
    """any — いずれかのセレクタの要素が出現するまで待機する。"""

    require_all = False
