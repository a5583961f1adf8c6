"""
標準アクションハンドラのテスト

ブラウザは FakeSession（tests/conftest.py）で代替し、
各ハンドラのセッション呼び出しとエラーログへの記録を確認する。

注意: ハンドラは asyncio.run() で同期テストとして実行する。
"""

from __future__ import annotations

import asyncio

import pytest

from uiprobe.core.result import (
    ERROR_CANCELLED,
    ERROR_FIND_ELEMENT,
    ERROR_NO_OPTION,
    ERROR_SELECTOR_TYPE,
    RunResult,
)
from uiprobe.dsl.schema import Action, Step
from uiprobe.steps.builtin import (
    BUILTIN_ACTIONS,
    CheckHandler,
    ClickHandler,
    FillHandler,
    JumpHandler,
    NoneHandler,
    OpenHandler,
    ScriptHandler,
    SelectHandler,
    SleepHandler,
    create_default_registry,
    parse_millis,
    script_value_to_str,
    text_matches,
)
from uiprobe.steps.registry import ActionContext, ActionHandler


# ---------------------------------------------------------------------------
# ヘルパー
# ---------------------------------------------------------------------------

def _run(handler, session, **fields) -> tuple[bool, ActionContext]:
    """ハンドラを 1 回実行し、戻り値とコンテキストを返す。"""
    fields.setdefault("name", "step")
    fields.setdefault("timeout", 0)
    step = Step.model_validate(fields)
    context = ActionContext(session=session, result=RunResult())
    context.begin_step()
    stop = asyncio.run(handler.execute(step, context))
    return stop, context


# ===========================================================================
# 補助関数
# ===========================================================================

class TestHelpers:
    """ハンドラ共通ヘルパーのテスト。"""

    @pytest.mark.parametrize("actual, expected, ok", [
        ("Example", "Example", True),
        ("Example", "", True),
        ("", "", True),
        ("", "x", False),
        ("Order 123", r"Order \d+", True),
        ("Order 123 done", r"Order \d+", False),
        ("a", "b", False),
        ("[x", "[x", True),
        ("y", "[x", False),
    ])
    def test_text_matches(self, actual: str, expected: str, ok: bool):
        assert text_matches(actual, expected) is ok

    @pytest.mark.parametrize("value, expected", [
        ("text", "text"),
        (42, "42"),
        (True, "true"),
        ({"a": "日本"}, '{"a": "日本"}'),
        ([1, 2], "[1, 2]"),
    ])
    def test_script_value_to_str(self, value, expected: str):
        assert script_value_to_str(value) == expected

    @pytest.mark.parametrize("value, expected", [
        ("250", 250), (" 10 ", 10), ("", 0), ("1s", 0), ("-5", 0),
    ])
    def test_parse_millis(self, value: str, expected: int):
        assert parse_millis(value) == expected


# ===========================================================================
# ナビゲーション・操作
# ===========================================================================

class TestOpenHandler:
    """open のテスト。"""

    def test_navigate(self, fake_session):
        stop, context = _run(OpenHandler(), fake_session, action="open", actionValue="https://x/")
        assert stop is False
        assert fake_session.navigated == ["https://x/"]
        assert not context.failed

    def test_navigate_error(self, fake_session):
        """ナビゲーションの失敗がエラーログに記録されること。"""
        fake_session.navigate_error = RuntimeError("net::ERR_NAME_NOT_RESOLVED\nCall log:\n- x")
        stop, context = _run(
            OpenHandler(), fake_session, action="open", actionValue="https://bad/", stopOnError=True,
        )
        assert stop is True
        assert context.failed
        assert context.result.errors[0].endswith("open error: net::ERR_NAME_NOT_RESOLVED")


class TestFillHandler:
    """fill のテスト。"""

    def test_fill(self, make_session, make_element):
        user = make_element("user", value="old")
        session = make_session(elements={"user": user})
        stop, context = _run(
            FillHandler(), session, action="fill", selectorValue="user", actionValue="alice",
        )
        assert stop is False
        assert user.value == "alice"
        assert session.typed == [("user", "alice")]

    def test_missing_element(self, fake_session):
        """要素が見つからない場合は ERROR_FIND_ELEMENT が記録されること。"""
        stop, context = _run(FillHandler(), fake_session, action="fill", selectorValue="user")
        assert stop is False
        assert context.result.errors[0].endswith(ERROR_FIND_ELEMENT)

    def test_unknown_selector_type(self, fake_session):
        """未知のセレクタ種別は ERROR_SELECTOR_TYPE が記録されること。"""
        _, context = _run(
            FillHandler(), fake_session, action="fill", selectorType="css", selectorValue="#u",
        )
        assert ERROR_SELECTOR_TYPE in context.result.error_message
        assert fake_session.find_calls == []


class TestClickHandler:
    """click のテスト。"""

    def test_click(self, make_session, make_element):
        session = make_session(elements={"//button": make_element("button")})
        stop, context = _run(
            ClickHandler(), session, action="click", selectorType="xpath", selectorValue="//button",
        )
        assert stop is False
        assert session.clicked == ["button"]
        assert context.result.error_message == ""

    def test_click_error(self, make_session, make_element):
        """クリックの例外が "click error" として記録されること。"""
        button = make_element("button", click_error=RuntimeError("element is not visible"))
        session = make_session(elements={"b": button})
        stop, context = _run(
            ClickHandler(), session, action="click", selectorValue="b", stopOnError=True,
        )
        assert stop is True
        assert "click error: element is not visible" in context.result.error_message


class TestSelectHandler:
    """select のテスト。"""

    def _session(self, make_session, make_element):
        items = [make_element("li-1", text="東京"), make_element("li-2", text="大阪")]
        return make_session(elements={"city": make_element("ul", children=items)})

    def test_select_matching_item(self, make_session, make_element):
        """テキストが完全一致する項目がクリックされること。"""
        session = self._session(make_session, make_element)
        stop, context = _run(
            SelectHandler(), session, action="select", selectorValue="city", actionValue="大阪",
        )
        assert stop is False
        assert session.clicked == ["li-2"]
        assert not context.failed

    def test_no_matching_item(self, make_session, make_element):
        """一致する項目がない場合はエラーログに記録されること。"""
        session = self._session(make_session, make_element)
        _, context = _run(
            SelectHandler(), session, action="select", selectorValue="city", actionValue="名古屋",
        )
        assert session.clicked == []
        assert context.result.errors[0].endswith(f"{ERROR_NO_OPTION}: 名古屋")

    def test_container_missing(self, fake_session):
        _, context = _run(SelectHandler(), fake_session, action="select", selectorValue="city")
        assert ERROR_FIND_ELEMENT in context.result.error_message


# ===========================================================================
# 検証
# ===========================================================================

class TestCheckHandler:
    """check のテスト。"""

    def test_exact_match(self, make_session, make_element):
        session = make_session(elements={"h1": make_element("h1", text="Example Domain")})
        stop, context = _run(
            CheckHandler(), session, action="check", selectorValue="h1", actionValue="Example Domain",
        )
        assert stop is False
        assert context.result.error_message == ""

    def test_regex_match(self, make_session, make_element):
        session = make_session(elements={"total": make_element("total", text="合計 1,200 円")})
        _, context = _run(
            CheckHandler(), session, action="check", selectorValue="total",
            actionValue=r"合計 [\d,]+ 円",
        )
        assert not context.failed

    def test_mismatch(self, make_session, make_element):
        """不一致の場合は実際の値と期待値が記録されること。"""
        session = make_session(elements={"h1": make_element("h1", text="Error")})
        stop, context = _run(
            CheckHandler(), session, action="check", selectorValue="h1",
            actionValue="Example", stopOnError=True,
        )
        assert stop is True
        assert context.result.errors[0].endswith(
            "check failed, timeout or selector wrong, got: Error, expect: Example"
        )

    def test_empty_text(self, make_session, make_element):
        """空テキストの要素は期待値が空なら成功、空でなければ失敗になること。"""
        session = make_session(elements={"blank": make_element("blank", text="")})
        _, context = _run(CheckHandler(), session, action="check", selectorValue="blank")
        assert not context.failed

        session = make_session(elements={"blank": make_element("blank", text="")})
        _, context = _run(CheckHandler(), session, action="check", selectorValue="blank", actionValue="x")
        assert context.failed

    def test_missing_element(self, fake_session):
        """要素が見つからない場合は 1 行だけ記録されること。"""
        stop, context = _run(CheckHandler(), fake_session, action="check", selectorValue="nope")
        assert stop is False
        assert len(context.result.errors) == 1
        assert ERROR_FIND_ELEMENT in context.result.errors[0]


# ===========================================================================
# 制御
# ===========================================================================

class TestScriptHandler:
    """script のテスト。"""

    def test_value_noted(self, make_session):
        """null 以外の戻り値がエラーログに記録され、失敗扱いにならないこと。"""
        session = make_session(scripts={"return 1": 1})
        stop, context = _run(ScriptHandler(), session, action="script", actionValue="return 1")
        assert stop is False
        assert not context.failed
        assert context.result.errors[0].endswith("Step [step] 1")

    def test_null_not_noted(self, fake_session):
        """戻り値が null の場合は何も記録されないこと。"""
        _, context = _run(ScriptHandler(), fake_session, action="script", actionValue="void 0")
        assert context.result.error_message == ""
        assert fake_session.scripts_run == ["void 0"]

    def test_script_error(self, make_session):
        """スクリプトの例外は "javascript error: " を除いて記録されること。"""
        session = make_session(scripts={"boom()": RuntimeError("javascript error: boom is not defined")})
        stop, context = _run(
            ScriptHandler(), session, action="script", actionValue="boom()", stopOnError=True,
        )
        assert stop is True
        assert context.result.errors[0].endswith("Step [step] boom is not defined")


class TestJumpHandler:
    """goto のテスト。"""

    def test_true_requests_jump(self, make_session):
        session = make_session(scripts={"cond": True})
        stop, context = _run(JumpHandler(), session, action="goto", actionValue="cond", nextStep=3)
        assert stop is False
        assert context.jump_target == 3

    def test_false_no_jump(self, make_session):
        session = make_session(scripts={"cond": False})
        _, context = _run(JumpHandler(), session, action="goto", actionValue="cond", nextStep=3)
        assert context.jump_target is None
        assert not context.failed

    @pytest.mark.parametrize("value", [None, 1, "true"])
    def test_non_boolean(self, make_session, value):
        """真偽値以外の条件はエラーになりジャンプしないこと。"""
        session = make_session(scripts={"cond": value})
        _, context = _run(JumpHandler(), session, action="goto", actionValue="cond", nextStep=0)
        assert context.jump_target is None
        assert "goto error: condition must return a boolean" in context.result.error_message

    def test_script_error(self, make_session):
        session = make_session(scripts={"cond": RuntimeError("Error: bad")})
        _, context = _run(JumpHandler(), session, action="goto", actionValue="cond")
        assert context.result.errors[0].endswith("goto error: bad")
        assert context.jump_target is None


class TestSleepHandler:
    """sleep のテスト。"""

    def test_sleep(self, fake_session):
        stop, context = _run(SleepHandler(), fake_session, action="sleep", actionValue="10")
        assert stop is False
        assert not context.failed

    def test_non_numeric_is_zero(self, fake_session):
        """数値でない値は 0 ミリ秒として扱われること。"""
        _, context = _run(SleepHandler(), fake_session, action="sleep", actionValue="abc")
        assert context.result.error_message == ""

    def test_interrupted(self, fake_session):
        """中断された場合はエラーログに記録して CancelledError を伝播すること。"""
        step = Step.model_validate({"name": "zz", "action": "sleep", "actionValue": "5000"})
        context = ActionContext(session=fake_session, result=RunResult())

        async def scenario():
            task = asyncio.create_task(SleepHandler().execute(step, context))
            await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())
        assert context.result.errors[0].endswith("Step [zz] sleep interrupted")

    def test_cancel_event_ends_sleep(self, fake_session):
        """キャンセルイベントで待機が打ち切られ、失敗として記録されること。"""
        step = Step.model_validate(
            {"name": "zz", "action": "sleep", "actionValue": "5000", "stopOnError": True},
        )
        context = ActionContext(session=fake_session, result=RunResult())

        async def scenario():
            task = asyncio.create_task(SleepHandler().execute(step, context))
            await asyncio.sleep(0.01)
            context.cancel_event.set()
            return await asyncio.wait_for(task, timeout=2)

        assert asyncio.run(scenario()) is True
        assert context.failed
        assert context.result.errors[0].endswith(f"Step [zz] {ERROR_CANCELLED}")


class TestNoneHandler:
    def test_noop(self, fake_session):
        stop, context = _run(NoneHandler(), fake_session, action="none")
        assert stop is False
        assert fake_session.find_calls == []


# ===========================================================================
# レジストリ
# ===========================================================================

class TestDefaultRegistry:
    """create_default_registry() のテスト。"""

    def test_all_builtin_registered(self):
        registry = create_default_registry()
        for action in BUILTIN_ACTIONS:
            assert registry.has(action)
        assert not registry.has(Action.WAIT_ALL)

    def test_handlers_satisfy_protocol(self):
        for handler_cls, _info in BUILTIN_ACTIONS.values():
            assert isinstance(handler_cls(), ActionHandler)

    def test_info_names_are_wire_names(self):
        """メタ情報の名前がワイヤー名と一致すること。"""
        for action, (_cls, info) in BUILTIN_ACTIONS.items():
            assert info.name == action.value
