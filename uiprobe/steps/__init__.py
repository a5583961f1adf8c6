"""
アクションライブラリモジュール

標準アクション（open / fill / click / check / select / script / goto / sleep / none）と
複数セレクタ待機（wait / any）を提供する。

主要エクスポート:
  - ActionRegistry: アクションハンドラの登録・検索・一覧
  - ActionHandler: アクションハンドラの共通 Protocol
  - ActionContext: アクション実行コンテキスト
  - ActionInfo: アクションのメタ情報
  - create_full_registry: 全アクション登録済みレジストリの生成
"""

from .registry import ActionContext, ActionHandler, ActionInfo, ActionRegistry

__all__ = [
    "ActionContext",
    "ActionHandler",
    "ActionInfo",
    "ActionRegistry",
    "create_full_registry",
]


def create_full_registry() -> ActionRegistry:
    """標準アクション + 複数セレクタ待機が全て登録された ActionRegistry を生成する。

    Returns:
        全アクションが登録された ActionRegistry
    """
    from ..dsl.schema import Action
    from .builtin import create_default_registry
    from .waits import WaitAllHandler, WaitAnyHandler

    registry = create_default_registry()

    registry.register(
        Action.WAIT_ALL,
        WaitAllHandler(),
        info=ActionInfo("wait", "カンマ区切りの全セレクタの要素が出現するまで待機", "wait"),
    )
    registry.register(
        Action.WAIT_ANY,
        WaitAnyHandler(),
        info=ActionInfo("any", "カンマ区切りのいずれかのセレクタの要素が出現するまで待機", "wait"),
    )

    return registry
