"""
アクションレジストリ — アクションハンドラの登録・検索・一覧

Action 列挙値ごとにハンドラを 1 つ登録し、Runner はステップのアクションで
ハンドラを引いて実行する。

主な構成:
  - ActionHandler Protocol: ハンドラの共通インターフェース
  - ActionContext: ハンドラ実行時のコンテキスト（セッション、結果、ジャンプ要求）
  - ActionInfo: アクションのメタ情報（名前、説明、カテゴリ）
  - ActionRegistry: ハンドラの登録・検索・一覧
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

from ..dsl.schema import Action

if TYPE_CHECKING:
    from ..core.result import RunResult
    from ..core.session import BrowserSession
    from ..dsl.schema import Step

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# アクション実行コンテキスト
# ---------------------------------------------------------------------------

@dataclass
class ActionContext:
    """ハンドラ実行時のコンテキスト情報。

    Runner が実行ごとに 1 つ生成し、ステップごとに begin_step() でリセットする。

    Attributes:
        session: ブラウザセッション
        result: 実行結果（エラーログの書き込み先）
        cancel_event: 実行のキャンセルを通知するイベント
        failed: 現在のステップが失敗を記録したか
        jump_target: 現在のステップが要求したジャンプ先（なければ None）
    """

    session: BrowserSession
    result: RunResult
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    failed: bool = False
    jump_target: Optional[int] = None

    def begin_step(self) -> None:
        """ステップ単位の状態をリセットする。"""
        self.failed = False
        self.jump_target = None

    def fail(self, step: Step, message: str) -> bool:
        """失敗をエラーログに記録し、ステップの stop_on_error を返す。

        ハンドラは ``return context.fail(step, msg)`` の形で使う。
        """
        self.failed = True
        self.result.append_error(step.name, message)
        return step.stop_on_error

    def note(self, step: Step, message: str) -> None:
        """ステップを失敗扱いにせずエラーログへ記録する（診断情報・スクリプト戻り値）。"""
        self.result.append_error(step.name, message)

    def request_jump(self, target: int) -> None:
        """次に実行するステップを指定する。"""
        self.jump_target = target


# ---------------------------------------------------------------------------
# アクションメタ情報
# ---------------------------------------------------------------------------

@dataclass
class ActionInfo:
    """アクションのメタ情報。

    Attributes:
        name: アクション名（ステップ文書で使用するワイヤー名）
        description: 説明文
        category: カテゴリ（navigation, action, wait, validation, control）
    """

    name: str
    description: str
    category: str


# ---------------------------------------------------------------------------
# ハンドラ Protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class ActionHandler(Protocol):
    """アクションハンドラの共通インターフェース。"""

    async def execute(self, step: Step, context: ActionContext) -> bool:
        """ステップを実行する。

        ブラウザ操作の例外はハンドラ内で捕捉してエラーログへ変換すること。

        Args:
            step: 実行するステップ
            context: 実行コンテキスト

        Returns:
            実行を停止する場合 True
        """
        ...


# ---------------------------------------------------------------------------
# ActionRegistry 本体
# ---------------------------------------------------------------------------

class ActionRegistry:
    """アクションハンドラの登録・検索・一覧を管理するレジストリ。

    使用例::

        registry = ActionRegistry()
        registry.register(Action.CLICK, ClickHandler(), info=ActionInfo(...))
        handler = registry.get(Action.CLICK)
    """

    def __init__(self) -> None:
        self._handlers: dict[Action, ActionHandler] = {}
        self._info: dict[Action, ActionInfo] = {}

    def register(
        self,
        action: Action,
        handler: ActionHandler,
        *,
        info: Optional[ActionInfo] = None,
    ) -> None:
        """ハンドラを登録する。同じアクションの既存ハンドラは上書きする（警告を出力）。

        Raises:
            TypeError: handler が ActionHandler Protocol を満たさない場合
            ValueError: Action.INVALID に登録しようとした場合
        """
        if not isinstance(handler, ActionHandler):
            raise TypeError(
                f"handler は ActionHandler Protocol を満たす必要があります: "
                f"{type(handler).__name__}"
            )
        if action is Action.INVALID:
            raise ValueError("Action.INVALID にはハンドラを登録できません")

        if action in self._handlers:
            logger.warning(
                "アクション '%s' のハンドラを上書きします（既存: %s → 新規: %s）",
                action.value,
                type(self._handlers[action]).__name__,
                type(handler).__name__,
            )

        self._handlers[action] = handler
        if info is not None:
            self._info[action] = info
        elif action not in self._info:
            self._info[action] = ActionInfo(
                name=action.value,
                description=f"{action.value} アクション",
                category="unknown",
            )

        logger.debug("アクション '%s' を登録しました: %s", action.value, type(handler).__name__)

    def get(self, action: Action) -> ActionHandler:
        """アクションのハンドラを取得する。

        Raises:
            KeyError: 未登録の場合
        """
        if action not in self._handlers:
            registered = ", ".join(self.names)
            raise KeyError(
                f"アクション '{action.value}' は登録されていません。"
                f"登録済みアクション: [{registered}]"
            )
        return self._handlers[action]

    def has(self, action: Action) -> bool:
        return action in self._handlers

    def list_all(self) -> list[ActionInfo]:
        """登録済み全アクションのメタ情報を名前順で返す。"""
        return sorted(self._info.values(), key=lambda a: a.name)

    @property
    def names(self) -> list[str]:
        """登録済み全アクション名をソート済みリストで返す。"""
        return sorted(a.value for a in self._handlers)
