"""
Runner — ステップ列の実行エンジン（インタプリタ）

ステップ列をプログラムカウンタ順に 1 つずつ実行し、マーカー間の経過時間を
計測して RunResult にまとめる。

主な構成:
  - RunnerConfig: 実行設定（実行タイムアウト、ネットワーク制限、キャプチャ保存先）
  - InterpreterState: 1 回の実行の状態（ステップ列、pc、計測トラッカー、結果）
  - Runner: 実行エンジン本体
  - run_steps: セッションの確保 → 実行 → 解放 をまとめたヘルパー

ステップごとの処理順:
  start マーカー記録 → アクション実行 → end マーカー計測 → キャプチャ → 結果記録

ハンドラの例外は全て RunResult のエラーログに変換し、呼び出し元へは送出しない。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Sequence

from ..dsl.schema import Action, Marker
from ..steps.registry import ActionContext
from .artifacts import ArtifactCapture
from .measure import MeasurementTracker
from .result import (
    ERROR_CANCELLED,
    ERROR_INVALID_ACTION,
    ERROR_RUN_TIMEOUT,
    RunResult,
    StepOutcome,
    driver_error_message,
)

if TYPE_CHECKING:
    from ..config import ProbeConfig
    from ..dsl.schema import Step
    from ..steps.registry import ActionRegistry
    from .session import BrowserSession

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# 設定データクラス
# ---------------------------------------------------------------------------

@dataclass
class RunnerConfig:
    """Runner の実行設定。

    Attributes:
        run_timeout: 実行全体のタイムアウト（秒）。0 で無制限
        network_throttling: 実行開始時にネットワーク速度を制限するか
        network_latency: 遅延（ミリ秒）
        network_download: 下り帯域（バイト/秒）
        network_upload: 上り帯域（バイト/秒）
        data_dir: キャプチャ保存先ベースディレクトリ
    """

    run_timeout: float = 0
    network_throttling: bool = False
    network_latency: int = 500
    network_download: int = 1000 * 1000
    network_upload: int = 500 * 1000
    data_dir: Path = field(default_factory=lambda: Path("data"))

    @classmethod
    def from_probe_config(cls, config: ProbeConfig) -> RunnerConfig:
        """アプリケーション設定から RunnerConfig を生成する。"""
        return cls(
            run_timeout=config.run_timeout,
            network_throttling=config.network_throttling,
            network_latency=config.network_latency,
            network_download=config.network_download,
            network_upload=config.network_upload,
            data_dir=Path(config.data_dir),
        )


# ---------------------------------------------------------------------------
# インタプリタ状態
# ---------------------------------------------------------------------------

@dataclass
class InterpreterState:
    """1 回の実行のインタプリタ状態。

    Attributes:
        steps: 実行するステップ列
        result: 実行結果
        tracker: start / end マーカーの計測状態
        pc: 次に実行するステップのインデックス
    """

    steps: list[Step]
    result: RunResult
    tracker: MeasurementTracker = field(default_factory=MeasurementTracker)
    pc: int = 0

    @property
    def finished(self) -> bool:
        return not 0 <= self.pc < len(self.steps)

    @property
    def current(self) -> Step:
        return self.steps[self.pc]

    def advance(self) -> None:
        self.pc += 1

    def jump_to(self, target: int) -> None:
        """次に実行するステップを target にする。

        負の値は 0（先頭からの再実行）に丸める。範囲外の値は実行終了になる。
        """
        self.pc = max(0, target)


# ---------------------------------------------------------------------------
# Runner 本体
# ---------------------------------------------------------------------------

class Runner:
    """ステップ列の実行エンジン。

    ActionRegistry を通じてアクション種別に応じたハンドラへディスパッチする。
    セッションの確保・解放は呼び出し側の責任（run_steps() を参照）。

    使用例::

        async with open_session(config) as session:
            runner = Runner(session, create_full_registry())
            result = await runner.execute(steps, tag="login", capture=True)
    """

    def __init__(
        self,
        session: BrowserSession,
        registry: Optional[ActionRegistry] = None,
        config: Optional[RunnerConfig] = None,
        capture: Optional[ArtifactCapture] = None,
    ) -> None:
        """Runner を初期化する。

        Args:
            session: ブラウザセッション
            registry: アクションハンドラのレジストリ（None の場合は全アクション登録済み）
            config: 実行設定
            capture: スクリーンショット保存（None の場合は config.data_dir を使用）
        """
        if registry is None:
            from ..steps import create_full_registry

            registry = create_full_registry()

        self._session = session
        self._registry = registry
        self._config = config or RunnerConfig()
        self._capture = capture or ArtifactCapture(base_dir=self._config.data_dir)
        self._cancel_event = asyncio.Event()

    # -------------------------------------------------------------------
    # パブリック API
    # -------------------------------------------------------------------

    async def execute(
        self,
        steps: Sequence[Step],
        tag: str = "",
        capture: bool = False,
    ) -> RunResult:
        """ステップ列を実行し、結果を返す。

        ステップの失敗・実行タイムアウト・キャンセルはエラーログに記録され、
        例外として送出されない。finished_at は常に設定される。

        Args:
            steps: 実行するステップ列
            tag: 実行タグ（キャプチャ保存先・レポートに使用）
            capture: キャプチャを有効にするか（ステップ側の capture フラグと併用）

        Returns:
            実行結果
        """
        self._cancel_event.clear()
        self._capture.run_dir = None
        result = RunResult(tag=tag, started_at=datetime.now())
        state = InterpreterState(steps=list(steps), result=result)
        state.tracker.reset()
        context = ActionContext(
            session=self._session,
            result=result,
            cancel_event=self._cancel_event,
        )

        logger.info("実行開始: tag=%s（%d ステップ）", tag, len(state.steps))

        try:
            await self._apply_network_throttling()

            if capture:
                try:
                    result.artifacts_dir = self._capture.create_run_dir(tag, result.started_at)
                except (OSError, ValueError) as exc:
                    logger.warning("キャプチャ保存先を作成できません: %s", exc)

            if self._config.run_timeout > 0:
                try:
                    await asyncio.wait_for(
                        self._run_loop(state, context, capture),
                        timeout=self._config.run_timeout,
                    )
                except asyncio.TimeoutError:
                    self._record_interrupted(state, ERROR_RUN_TIMEOUT)
                    logger.error(
                        "実行が %ss 以内に完了しませんでした: tag=%s",
                        self._config.run_timeout, tag,
                    )
            else:
                await self._run_loop(state, context, capture)
        finally:
            result.finished_at = datetime.now()

        logger.info(
            "実行終了: tag=%s status=%s（%.0fms）",
            tag, result.status, result.duration_ms,
        )
        return result

    def cancel(self) -> None:
        """実行中の execute() にキャンセルを要求する。

        次のステップ境界、または要素待機のポーリング中に実行が打ち切られる。
        """
        logger.info("実行のキャンセルが要求されました")
        self._cancel_event.set()

    # -------------------------------------------------------------------
    # 実行ループ
    # -------------------------------------------------------------------

    async def _run_loop(
        self,
        state: InterpreterState,
        context: ActionContext,
        capture: bool,
    ) -> None:
        """pc が範囲外になるか、ステップが停止を要求するまで実行する。"""
        while not state.finished:
            if self._cancel_event.is_set():
                state.result.append_error(state.current.name, ERROR_CANCELLED)
                logger.warning("実行がキャンセルされました（ステップ %d）", state.pc)
                return

            stop = await self._execute_step(state, context, capture)
            if stop:
                logger.info("ステップ %d で実行を停止します", state.pc)
                return

            if context.jump_target is not None:
                state.jump_to(context.jump_target)
            else:
                state.advance()

    async def _execute_step(
        self,
        state: InterpreterState,
        context: ActionContext,
        capture: bool,
    ) -> bool:
        """単一ステップを実行する。

        Returns:
            実行を停止する場合 True
        """
        step = state.current
        result = state.result
        context.begin_step()
        logged_before = len(result.errors)

        outcome = StepOutcome(
            step_index=state.pc,
            step_name=step.name,
            action=step.action_label,
            selector=step.selector_value,
            started_at=datetime.now(),
        )
        logger.debug("ステップ開始: %s", step)

        if step.marker is Marker.START:
            state.tracker.mark_start()

        stop = await self._dispatch(step, context)

        if step.marker is Marker.END and not stop:
            if state.tracker.mark_end(step, result) is None:
                context.failed = True

        if capture and step.capture:
            if await self._capture.save(step, self._session, result) is None:
                context.failed = True

        outcome.finished_at = datetime.now()
        outcome.status = "failed" if context.failed else "passed"
        outcome.messages = result.errors[logged_before:]
        result.steps.append(outcome)
        logger.debug("ステップ終了: %s（%s）", step.name, outcome.status)
        return stop

    async def _dispatch(self, step: Step, context: ActionContext) -> bool:
        """アクション種別に応じたハンドラを実行する。"""
        if step.action is Action.INVALID or not self._registry.has(step.action):
            logger.error("不正なアクションです: %s", step.action_label)
            return context.fail(step, ERROR_INVALID_ACTION)

        handler = self._registry.get(step.action)
        try:
            return bool(await handler.execute(step, context))
        except Exception as exc:
            logger.exception("ステップ '%s' で予期しないエラーが発生しました", step.name)
            return context.fail(step, f"unexpected error: {driver_error_message(exc)}")

    # -------------------------------------------------------------------
    # 補助処理
    # -------------------------------------------------------------------

    async def _apply_network_throttling(self) -> None:
        """設定に応じてネットワーク速度を制限する。失敗しても実行は継続する。"""
        if not self._config.network_throttling:
            return
        try:
            await self._session.set_network_conditions(
                self._config.network_latency,
                self._config.network_download,
                self._config.network_upload,
            )
        except Exception as exc:
            logger.warning("ネットワーク制限の設定に失敗しました: %s", exc)

    def _record_interrupted(self, state: InterpreterState, message: str) -> None:
        """中断されたステップをエラーログと結果に記録する。"""
        if state.finished:
            state.result.append_error("", message)
            return
        step = state.current
        line = state.result.append_error(step.name, message)
        state.result.steps.append(
            StepOutcome(
                step_index=state.pc,
                step_name=step.name,
                action=step.action_label,
                selector=step.selector_value,
                finished_at=datetime.now(),
                status="failed",
                messages=[line],
            )
        )


# ---------------------------------------------------------------------------
# スコープ付き実行
# ---------------------------------------------------------------------------

async def run_steps(
    steps: Sequence[Step],
    tag: str = "",
    capture: bool = False,
    config: Optional[ProbeConfig] = None,
    registry: Optional[ActionRegistry] = None,
) -> RunResult:
    """ブラウザセッションを起動してステップ列を実行し、必ずセッションを終了する。

    Args:
        steps: 実行するステップ列
        tag: 実行タグ
        capture: キャプチャを有効にするか
        config: アプリケーション設定（None の場合はデフォルト値）
        registry: アクションレジストリ（None の場合は全アクション登録済み）

    Returns:
        実行結果
    """
    from ..config import ProbeConfig
    from .session import open_session

    if config is None:
        config = ProbeConfig()

    async with open_session(config) as session:
        runner = Runner(session, registry, RunnerConfig.from_probe_config(config))
        return await runner.execute(steps, tag, capture)
