"""
標準アクションハンドラ — open / fill / click / check / select / script / goto / sleep / none

各ハンドラは ActionHandler Protocol を満たし、ActionRegistry に登録される。
ブラウザ操作の例外はハンドラの境界で捕捉し、ドライバ固有のノイズを除いた
メッセージとしてエラーログへ記録したうえで step.stop_on_error を返す。
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import TYPE_CHECKING, Any

from ..core.locator import LocateResult, wait_element
from ..core.result import (
    ERROR_CANCELLED,
    ERROR_FIND_ELEMENT,
    ERROR_NO_OPTION,
    ERROR_SELECTOR_TYPE,
    driver_error_message,
)
from ..dsl.schema import Action
from .registry import ActionContext, ActionInfo, ActionRegistry

if TYPE_CHECKING:
    from ..dsl.schema import Step

logger = logging.getLogger(__name__)


# ===========================================================================
# 共通ヘルパー
# ===========================================================================

async def locate(step: Step, context: ActionContext, selector_value: str | None = None) -> LocateResult:
    """ステップのセレクタで要素を待機する。"""
    value = step.selector_value if selector_value is None else selector_value
    return await wait_element(
        context.session,
        step.selector_kind,
        value,
        step.timeout_seconds,
        cancel_event=context.cancel_event,
    )


def not_found_message(located: LocateResult) -> str:
    """要素が見つからなかった理由をエラーログ用メッセージに変換する。"""
    if located.reason in (ERROR_SELECTOR_TYPE, ERROR_CANCELLED):
        return located.reason
    return ERROR_FIND_ELEMENT


def text_matches(actual: str, expected: str) -> bool:
    """check の判定。

    期待値が空なら実際のテキストが空でないこと、そうでなければ完全一致、
    または期待値を正規表現とした全体一致で成功とする。
    """
    if not expected and actual:
        return True
    if actual == expected:
        return True
    try:
        return re.fullmatch(expected, actual) is not None
    except re.error:
        return False


def script_value_to_str(value: Any) -> str:
    """スクリプトの戻り値をログ用の文字列に変換する。"""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def parse_millis(value: str) -> int:
    """スリープ時間（ミリ秒）をパースする。数値でなければ 0。"""
    try:
        return max(0, int(value.strip()))
    except (ValueError, AttributeError):
        return 0


# ===========================================================================
# ナビゲーション
# ===========================================================================

class OpenHandler:
    """open — actionValue の URL を開く。"""

    async def execute(self, step: Step, context: ActionContext) -> bool:
        try:
            await context.session.navigate(step.action_value)
            return False
        except Exception as exc:
            logger.error("open でエラー: %s", exc)
            return context.fail(step, f"open error: {driver_error_message(exc)}")


# ===========================================================================
# 操作
# ===========================================================================

class FillHandler:
    """fill — 要素の値をクリアしてから actionValue をキー入力する。"""

    async def execute(self, step: Step, context: ActionContext) -> bool:
        try:
            located = await locate(step, context)
            if not located.found:
                return context.fail(step, not_found_message(located))

            await context.session.set_text(located.element, step.action_value)
            return False
        except Exception as exc:
            logger.error("fill でエラー: %s", exc)
            return context.fail(step, f"fill error: {driver_error_message(exc)}")


class ClickHandler:
    """click — 要素をクリックする。"""

    async def execute(self, step: Step, context: ActionContext) -> bool:
        try:
            located = await locate(step, context)
            if not located.found:
                return context.fail(step, not_found_message(located))

            await context.session.click(located.element)
            return False
        except Exception as exc:
            logger.error("click でエラー: %s", exc)
            return context.fail(step, f"click error: {driver_error_message(exc)}")


class SelectHandler:
    """select — コンテナ直下の li から actionValue と同じテキストの項目をクリックする。"""

    async def execute(self, step: Step, context: ActionContext) -> bool:
        try:
            located = await locate(step, context)
            if not located.found:
                return context.fail(step, not_found_message(located))

            items = await context.session.find_children(located.element, "li")
            for item in items:
                if await context.session.get_text(item) == step.action_value:
                    await context.session.click(item)
                    return False

            return context.fail(step, f"{ERROR_NO_OPTION}: {step.action_value}")
        except Exception as exc:
            logger.warning("select でエラー: %s", exc)
            return context.fail(step, f"select error: {driver_error_message(exc)}")


# ===========================================================================
# 検証
# ===========================================================================

class CheckHandler:
    """check — 要素の表示テキストを actionValue と照合する（正規表現可）。"""

    async def execute(self, step: Step, context: ActionContext) -> bool:
        try:
            located = await locate(step, context)
            if not located.found:
                return context.fail(step, not_found_message(located))

            value = await context.session.get_text(located.element)
            if text_matches(value, step.action_value):
                return False

            return context.fail(
                step,
                f"check failed, timeout or selector wrong, got: {value}, "
                f"expect: {step.action_value}",
            )
        except Exception as exc:
            logger.error("check でエラー: %s", exc)
            return context.fail(step, f"check error: {driver_error_message(exc)}")


# ===========================================================================
# 制御
# ===========================================================================

class ScriptHandler:
    """script — actionValue をブラウザ内で実行する。

    戻り値が null 以外の場合はその値をエラーログへ記録する（ステップは失敗扱いにしない）。
    """

    async def execute(self, step: Step, context: ActionContext) -> bool:
        try:
            value = await context.session.run_script(step.action_value)
        except Exception as exc:
            logger.error("スクリプトエラー: %s", exc)
            return context.fail(step, driver_error_message(exc))

        if value is not None:
            context.note(step, script_value_to_str(value))
        return False


class JumpHandler:
    """goto — 条件スクリプトが true を返したら nextStep へジャンプする。"""

    async def execute(self, step: Step, context: ActionContext) -> bool:
        try:
            condition = await context.session.run_script(step.action_value)
        except Exception as exc:
            logger.error("goto でエラー: %s", exc)
            return context.fail(step, f"goto error: {driver_error_message(exc)}")

        if not isinstance(condition, bool):
            return context.fail(
                step,
                f"goto error: condition must return a boolean, got: "
                f"{script_value_to_str(condition)}",
            )

        if condition:
            logger.debug("goto: ステップ %d へジャンプ", step.jump_target)
            context.request_jump(step.jump_target)
        return False


class SleepHandler:
    """sleep — actionValue ミリ秒待機する。

    待機中に実行のキャンセルが要求された場合は、その時点で打ち切る。
    """

    async def execute(self, step: Step, context: ActionContext) -> bool:
        millis = parse_millis(step.action_value)
        try:
            await asyncio.wait_for(context.cancel_event.wait(), timeout=millis / 1000.0)
        except asyncio.TimeoutError:
            return False
        except asyncio.CancelledError:
            logger.error("sleep が中断されました")
            context.fail(step, "sleep interrupted")
            raise

        logger.warning("sleep がキャンセルされました: %s", step.name)
        return context.fail(step, ERROR_CANCELLED)


class NoneHandler:
    """none — 何もしない。"""

    async def execute(self, step: Step, context: ActionContext) -> bool:
        return False


# ===========================================================================
# メタ情報
# ===========================================================================

BUILTIN_ACTIONS: dict[Action, tuple[type, ActionInfo]] = {
    Action.NONE: (NoneHandler, ActionInfo("none", "何もしない（マーカー専用ステップ等）", "control")),
    Action.OPEN: (OpenHandler, ActionInfo("open", "actionValue の URL を開く", "navigation")),
    Action.FILL: (FillHandler, ActionInfo("fill", "要素の値をクリアして actionValue を入力", "action")),
    Action.CLICK: (ClickHandler, ActionInfo("click", "要素をクリック", "action")),
    Action.CHECK: (CheckHandler, ActionInfo("check", "要素のテキストを actionValue と照合（正規表現可）", "validation")),
    Action.SELECT: (SelectHandler, ActionInfo("select", "コンテナ直下の li を actionValue で選択", "action")),
    Action.SCRIPT: (ScriptHandler, ActionInfo("script", "actionValue のスクリプトをブラウザ内で実行", "control")),
    Action.JUMP: (JumpHandler, ActionInfo("goto", "条件スクリプトが true なら nextStep へジャンプ", "control")),
    Action.SLEEP: (SleepHandler, ActionInfo("sleep", "actionValue ミリ秒待機", "wait")),
}


def create_default_registry() -> ActionRegistry:
    """標準アクションが全て登録された ActionRegistry を生成する。"""
    registry = ActionRegistry()
    for action, (handler_cls, info) in BUILTIN_ACTIONS.items():
        registry.register(action, handler_cls(), info=info)
    return registry
