"""
Step モデルのユニットテスト

ワイヤー名（camelCase）での読み込み、列挙値の解決、
未知のアクション・セレクタ種別の扱い、派生プロパティを検証する。
"""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from uiprobe.dsl.schema import (
    DEFAULT_TIMEOUT_SECONDS,
    Action,
    Marker,
    SelectorKind,
    Step,
)


# ---------------------------------------------------------------------------
# 列挙型
# ---------------------------------------------------------------------------

class TestEnums:
    """列挙値の解決テスト。"""

    @pytest.mark.parametrize("raw, expected", [
        ("id", SelectorKind.ID),
        ("CLASS", SelectorKind.CLASS),
        (" name ", SelectorKind.NAME),
        ("xpath", SelectorKind.XPATH),
        ("css", SelectorKind.UNKNOWN),
        ("", SelectorKind.UNKNOWN),
    ])
    def test_selector_kind_resolve(self, raw, expected):
        """セレクタ種別が解決され、未知の値は UNKNOWN になること。"""
        assert SelectorKind.resolve(raw) is expected

    @pytest.mark.parametrize("raw, expected", [
        ("start", Marker.START),
        ("END", Marker.END),
        ("none", Marker.NONE),
        ("", Marker.NONE),
        ("begin", Marker.NONE),
    ])
    def test_marker_resolve(self, raw, expected):
        """マーカーが解決され、未知の値は NONE になること。"""
        assert Marker.resolve(raw) is expected

    @pytest.mark.parametrize("raw, expected", [
        ("open", Action.OPEN),
        ("navigate", Action.OPEN),
        ("script", Action.SCRIPT),
        ("run-script", Action.SCRIPT),
        ("wait", Action.WAIT_ALL),
        ("wait-all", Action.WAIT_ALL),
        ("any", Action.WAIT_ANY),
        ("wait-any", Action.WAIT_ANY),
        ("goto", Action.JUMP),
        ("jump", Action.JUMP),
        ("Sleep", Action.SLEEP),
        ("none", Action.NONE),
    ])
    def test_action_resolve(self, raw, expected):
        """ワイヤー名と別名の両方がアクションに解決されること。"""
        assert Action.resolve(raw) is expected

    def test_unknown_action_is_invalid(self):
        """未知のアクションは INVALID に解決されること。"""
        assert Action.resolve("hover") is Action.INVALID


# ---------------------------------------------------------------------------
# Step モデル
# ---------------------------------------------------------------------------

class TestStep:
    """Step モデルのテスト。"""

    def test_defaults(self):
        """省略時のデフォルト値が設定されること。"""
        step = Step()
        assert step.name == "No name"
        assert step.selector_kind is SelectorKind.ID
        assert step.marker is Marker.NONE
        assert step.action is Action.CLICK
        assert step.measure_slot == 1
        assert step.stop_on_error is False
        assert step.timeout_seconds == DEFAULT_TIMEOUT_SECONDS
        assert step.capture is False
        assert step.jump_target == 0

    def test_wire_names(self):
        """camelCase のワイヤー名で読み込めること。"""
        step = Step.model_validate({
            "name": "ログイン",
            "selectorType": "xpath",
            "selectorValue": "//button",
            "marker": "end",
            "action": "check",
            "actionValue": "OK",
            "measure": 2,
            "stopOnError": True,
            "timeout": 3,
            "capture": True,
            "nextStep": 4,
        })
        assert step.selector_kind is SelectorKind.XPATH
        assert step.selector_value == "//button"
        assert step.marker is Marker.END
        assert step.action is Action.CHECK
        assert step.action_value == "OK"
        assert step.measure_slot == 2
        assert step.stop_on_error is True
        assert step.timeout_seconds == 3
        assert step.capture is True
        assert step.jump_target == 4

    def test_python_names(self):
        """属性名でも生成できること。"""
        step = Step(name="a", action=Action.SLEEP, action_value="10")
        assert step.action is Action.SLEEP
        assert step.action_value == "10"

    def test_invalid_action_keeps_raw_value(self):
        """不正なアクションは INVALID になり、元の文字列が action_label に残ること。"""
        step = Step.model_validate({"action": "hover"})
        assert step.action is Action.INVALID
        assert step.action_label == "hover"

    def test_unknown_selector_kind(self):
        """未知のセレクタ種別は UNKNOWN になること（パースエラーにならない）。"""
        step = Step.model_validate({"selectorType": "css"})
        assert step.selector_kind is SelectorKind.UNKNOWN

    def test_null_strings_become_empty(self):
        """null の文字列フィールドは空文字になること。"""
        step = Step.model_validate({"selectorValue": None, "actionValue": None})
        assert step.selector_value == ""
        assert step.action_value == ""

    def test_unknown_fields_are_ignored(self):
        """未知のフィールドは無視されること。"""
        step = Step.model_validate({"name": "a", "comment": "メモ"})
        assert step.name == "a"

    def test_frozen(self):
        """実行中に変更できないこと。"""
        step = Step(name="a")
        with pytest.raises(ValidationError):
            step.name = "b"

    def test_selectors_split_on_comma(self):
        """カンマ区切りのセレクタ値が個別の式に分割されること。"""
        step = Step.model_validate({"selectorValue": " a , b,,c "})
        assert step.selectors == ["a", "b", "c"]

    def test_selectors_empty(self):
        """空のセレクタ値は空リストになること。"""
        assert Step().selectors == []

    def test_to_wire_uses_aliases(self):
        """to_wire() がワイヤー名で出力し、rawAction を含まないこと。"""
        wire = Step.model_validate({"action": "hover", "nextStep": 2}).to_wire()
        assert wire["action"] == "invalid"
        assert wire["nextStep"] == 2
        assert "rawAction" not in wire
        assert "raw_action" not in wire

    def test_str_contains_name(self):
        """文字列表現にステップ名が含まれること。"""
        assert "ログイン" in str(Step(name="ログイン"))

    @given(
        name=st.text(max_size=20),
        measure=st.integers(min_value=-5, max_value=10),
        timeout=st.integers(min_value=0, max_value=120),
        next_step=st.integers(min_value=-3, max_value=50),
    )
    def test_wire_round_trip_preserves_fields(self, name, measure, timeout, next_step):
        """to_wire() の出力を再読み込みしても値が変わらないこと。"""
        step = Step.model_validate({
            "name": name,
            "measure": measure,
            "timeout": timeout,
            "nextStep": next_step,
        })
        assert Step.model_validate(step.to_wire()) == step
