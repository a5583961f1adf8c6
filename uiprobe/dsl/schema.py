"""
DSL スキーマ定義 — ステップモデル

ステップ列（JSON / YAML）の 1 要素を表す Pydantic v2 モデルと、
セレクタ種別・マーカー・アクションの列挙型を定義する。

列挙値はパース時に一度だけ解決し、実行時に文字列比較は行わない。
未知のアクション・セレクタ種別はパースエラーにせず、専用の値に解決して
実行時にステップエラーとして報告する。
"""

from __future__ import annotations

import enum
import json
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ---------------------------------------------------------------------------
# 列挙型
# ---------------------------------------------------------------------------

class SelectorKind(str, enum.Enum):
    """要素の指定方式。"""

    ID = "id"
    CLASS = "class"
    NAME = "name"
    XPATH = "xpath"
    UNKNOWN = "unknown"

    @classmethod
    def resolve(cls, value: str) -> SelectorKind:
        """文字列をセレクタ種別に変換する。未知の値は UNKNOWN。"""
        try:
            kind = cls(value.strip().lower())
        except ValueError:
            return cls.UNKNOWN
        return kind


class Marker(str, enum.Enum):
    """計時マーカー。"""

    NONE = "none"
    START = "start"
    END = "end"

    @classmethod
    def resolve(cls, value: str) -> Marker:
        """文字列をマーカーに変換する。未知の値は NONE 扱い。"""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.NONE


class Action(str, enum.Enum):
    """ステップのアクション種別。

    値はステップ文書で使われるワイヤー名そのもの。
    """

    NONE = "none"
    OPEN = "open"
    FILL = "fill"
    CLICK = "click"
    CHECK = "check"
    SELECT = "select"
    SCRIPT = "script"
    WAIT_ALL = "wait"
    WAIT_ANY = "any"
    JUMP = "goto"
    SLEEP = "sleep"
    INVALID = "invalid"

    @classmethod
    def resolve(cls, value: str) -> Action:
        """ワイヤー名または別名をアクションに変換する。未知の値は INVALID。"""
        key = value.strip().lower()
        if key in _ACTION_SYNONYMS:
            return _ACTION_SYNONYMS[key]
        if key == cls.INVALID.value:
            return cls.INVALID
        try:
            return cls(key)
        except ValueError:
            return cls.INVALID


# 説明的な別名
_ACTION_SYNONYMS: dict[str, Action] = {
    "run-script": Action.SCRIPT,
    "wait-all": Action.WAIT_ALL,
    "wait-any": Action.WAIT_ANY,
    "jump": Action.JUMP,
    "navigate": Action.OPEN,
}

MEASURE_SLOTS = (1, 2, 3)
"""end マーカーの計測結果を書き込めるスロット番号。"""

DEFAULT_TIMEOUT_SECONDS = 10


# ---------------------------------------------------------------------------
# ステップモデル
# ---------------------------------------------------------------------------

class Step(BaseModel):
    """1 つの宣言的ブラウザ操作と、その計時・制御メタデータ。

    フィールドはステップ文書のワイヤー名（camelCase）をエイリアスとして受け付ける。
    実行中は不変。
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    name: str = Field(default="No name", description="ステップ名（表示用のみ）")
    selector_kind: SelectorKind = Field(
        default=SelectorKind.ID, alias="selectorType", description="セレクタ種別",
    )
    selector_value: str = Field(
        default="", alias="selectorValue",
        description="セレクタ値。wait / any ではカンマ区切りの複数指定が可能",
    )
    marker: Marker = Field(default=Marker.NONE, description="計時マーカー")
    action: Action = Field(default=Action.CLICK, description="アクション種別")
    action_value: str = Field(
        default="", alias="actionValue",
        description="アクション引数（URL、入力値、期待値、スクリプト、スリープ ms 等）",
    )
    measure_slot: int = Field(
        default=1, alias="measure", description="end マーカーの書き込み先スロット（1〜3）",
    )
    stop_on_error: bool = Field(
        default=False, alias="stopOnError", description="失敗時に実行を停止するか",
    )
    timeout_seconds: int = Field(
        default=DEFAULT_TIMEOUT_SECONDS, alias="timeout", description="要素待機のタイムアウト（秒）",
    )
    capture: bool = Field(default=False, description="ステップ後にスクリーンショットを撮るか")
    jump_target: int = Field(
        default=0, alias="nextStep", description="goto 条件成立時のジャンプ先（0 始まり）",
    )
    raw_action: Optional[str] = Field(
        default=None, alias="rawAction", exclude=True,
        description="INVALID に解決された元のアクション文字列",
    )

    # ----- バリデータ -----

    @model_validator(mode="before")
    @classmethod
    def _keep_raw_action(cls, data: Any) -> Any:
        if isinstance(data, dict):
            raw = data.get("action")
            if isinstance(raw, str) and Action.resolve(raw) is Action.INVALID:
                data = {**data, "rawAction": raw}
        return data

    @field_validator("action", mode="before")
    @classmethod
    def _resolve_action(cls, value: Any) -> Any:
        if value is None:
            return Action.INVALID
        if isinstance(value, str) and not isinstance(value, Action):
            return Action.resolve(value)
        return value

    @field_validator("selector_kind", mode="before")
    @classmethod
    def _resolve_selector_kind(cls, value: Any) -> Any:
        if value is None:
            return SelectorKind.UNKNOWN
        if isinstance(value, str) and not isinstance(value, SelectorKind):
            return SelectorKind.resolve(value)
        return value

    @field_validator("marker", mode="before")
    @classmethod
    def _resolve_marker(cls, value: Any) -> Any:
        if value is None:
            return Marker.NONE
        if isinstance(value, str) and not isinstance(value, Marker):
            return Marker.resolve(value)
        return value

    @field_validator("name", "selector_value", "action_value", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    # ----- 派生プロパティ -----

    @property
    def selectors(self) -> list[str]:
        """カンマ区切りのセレクタ値を個別の式に分割して返す。"""
        return [s.strip() for s in self.selector_value.split(",") if s.strip()]

    @property
    def action_label(self) -> str:
        """ログ表示用のアクション名。INVALID の場合は元の文字列。"""
        if self.action is Action.INVALID and self.raw_action is not None:
            return self.raw_action
        return self.action.value

    def to_wire(self) -> dict[str, Any]:
        """ワイヤー形式（camelCase）の辞書に変換する。"""
        return self.model_dump(by_alias=True, mode="json")

    def __str__(self) -> str:
        return f"ステップ({self.name}) => {json.dumps(self.to_wire(), ensure_ascii=False)}"
