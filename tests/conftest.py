"""
テスト共通フィクスチャ

ブラウザセッションは FakeSession（BrowserSession Protocol のインメモリ実装）で代替し、
実際のブラウザは起動しない。要素はセレクタ値をキーとして登録する。
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import pytest


# ---------------------------------------------------------------------------
# FakeSession
# ---------------------------------------------------------------------------

@dataclass
class FakeElement:
    """FakeSession が返す要素。"""

    name: str
    text: str = ""
    children: list["FakeElement"] = field(default_factory=list)
    value: str = ""
    click_error: Optional[Exception] = None


class FakeSession:
    """BrowserSession のテスト用実装。

    Args:
        elements: セレクタ値 → 要素
        scripts: スクリプト → 戻り値（例外インスタンスなら送出、list なら先頭から順に返す）
        delays: セレクタ値 → 出現までの秒数（セッション生成時刻から）
    """

    def __init__(
        self,
        elements: Optional[dict[str, FakeElement]] = None,
        scripts: Optional[dict[str, Any]] = None,
        delays: Optional[dict[str, float]] = None,
    ) -> None:
        self.elements = dict(elements or {})
        self.scripts = dict(scripts or {})
        self.delays = dict(delays or {})
        self.navigated: list[str] = []
        self.clicked: list[str] = []
        self.typed: list[tuple[str, str]] = []
        self.scripts_run: list[str] = []
        self.find_calls: list[tuple[Any, str]] = []
        self.screenshots = 0
        self.network: Optional[tuple[int, int, int]] = None
        self.closed = False
        self.navigate_error: Optional[Exception] = None
        self.screenshot_error: Optional[Exception] = None
        self.network_error: Optional[Exception] = None
        self._created = time.perf_counter()

    async def navigate(self, url: str) -> None:
        if self.navigate_error is not None:
            raise self.navigate_error
        self.navigated.append(url)

    async def find_element(self, kind, value):
        self.find_calls.append((kind, value))
        element = self.elements.get(value)
        if element is None:
            return None
        if time.perf_counter() - self._created < self.delays.get(value, 0):
            return None
        return element

    async def find_children(self, element, tag):
        return list(element.children)

    async def click(self, element) -> None:
        if element.click_error is not None:
            raise element.click_error
        self.clicked.append(element.name)

    async def set_text(self, element, value: str) -> None:
        element.value = value
        self.typed.append((element.name, value))

    async def get_text(self, element) -> str:
        return element.text

    async def run_script(self, source: str) -> Any:
        self.scripts_run.append(source)
        value = self.scripts.get(source)
        if isinstance(value, list):
            value = value.pop(0) if value else None
        if isinstance(value, Exception):
            raise value
        return value

    async def screenshot(self) -> bytes:
        if self.screenshot_error is not None:
            raise self.screenshot_error
        self.screenshots += 1
        return b"\x89PNG\r\n\x1a\nfake"

    async def set_network_conditions(self, latency_ms: int, download_bps: int, upload_bps: int) -> None:
        if self.network_error is not None:
            raise self.network_error
        self.network = (latency_ms, download_bps, upload_bps)

    async def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# pytest フィクスチャ
# ---------------------------------------------------------------------------

@pytest.fixture
def make_element():
    """FakeElement のファクトリ。"""
    return FakeElement


@pytest.fixture
def make_session():
    """FakeSession のファクトリ。"""
    return FakeSession


@pytest.fixture
def fake_session() -> FakeSession:
    """要素を持たない FakeSession。"""
    return FakeSession()


@pytest.fixture
def sample_steps_json() -> str:
    """start / end マーカーで open の時間を計測するステップ列。"""
    return """\
[
  {"name": "トップを開く", "marker": "start", "action": "open",
   "actionValue": "https://example.com/"},
  {"name": "ヘッダー確認", "selectorType": "id", "selectorValue": "header",
   "action": "check", "actionValue": "Example", "timeout": 0},
  {"name": "計測終了", "marker": "end", "action": "none", "measure": 1}
]
"""


@pytest.fixture
def sample_steps_yaml() -> str:
    """sample_steps_json と同じ内容の YAML。"""
    return """\
- name: トップを開く
  marker: start
  action: open
  actionValue: https://example.com/
- name: ヘッダー確認
  selectorType: id
  selectorValue: header
  action: check
  actionValue: Example
  timeout: 0
- name: 計測終了
  marker: end
  action: none
  measure: 1
"""


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """一時ディレクトリ（テスト終了後に自動クリーンアップ）。"""
    return tmp_path

