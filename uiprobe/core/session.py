"""
ブラウザセッション — 実行エンジンが使うブラウザ操作の境界

エンジンはブラウザを BrowserSession Protocol（ナビゲーション、要素検索、クリック、
テキスト入力・取得、スクリプト実行、スクリーンショット、ネットワーク制限、終了）
としてのみ扱う。PlaywrightSession がその Playwright 実装である。

複数セレクタの同時待機では複数のワーカーが同じセッションへコマンドを発行する。
PlaywrightSession は全コマンドを asyncio.Lock で直列化し、
同一 Page への同時コマンド発行を起こさない。
"""

from __future__ import annotations

import asyncio
import enum
import logging
import re
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Optional, Protocol, runtime_checkable

from ..dsl.schema import SelectorKind

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, ElementHandle, Page

    from ..config import ProbeConfig

logger = logging.getLogger(__name__)

# Selenium 形式の関数本体（"return ..." を含む）を判定する
_RETURN_STATEMENT = re.compile(r"\breturn\b")


# ---------------------------------------------------------------------------
# セッション Protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class BrowserSession(Protocol):
    """実行エンジンが必要とするブラウザ操作の集合。"""

    async def navigate(self, url: str) -> None:
        """URL を開く。"""
        ...

    async def find_element(self, kind: SelectorKind, value: str) -> Optional[Any]:
        """要素を 1 つ検索する。見つからなければ None。"""
        ...

    async def find_children(self, element: Any, tag: str) -> list[Any]:
        """要素の直下の子要素のうち、指定タグのものを返す。"""
        ...

    async def click(self, element: Any) -> None:
        """要素をクリックする。"""
        ...

    async def set_text(self, element: Any, value: str) -> None:
        """要素の値をクリアし、キー入力として value を送る。"""
        ...

    async def get_text(self, element: Any) -> str:
        """要素の表示テキストを返す。"""
        ...

    async def run_script(self, source: str) -> Any:
        """ブラウザ内でスクリプトを実行し、戻り値を返す。"""
        ...

    async def screenshot(self) -> bytes:
        """現在のページのスクリーンショット（PNG）を返す。"""
        ...

    async def set_network_conditions(
        self, latency_ms: int, download_bps: int, upload_bps: int,
    ) -> None:
        """ネットワーク速度を制限する。"""
        ...

    async def close(self) -> None:
        """セッションを終了する。"""
        ...


# ---------------------------------------------------------------------------
# セッション状態
# ---------------------------------------------------------------------------

class SessionState(enum.Enum):
    """ブラウザセッションの状態。"""

    IDLE = "idle"
    LAUNCHING = "launching"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


# ---------------------------------------------------------------------------
# セレクタ変換
# ---------------------------------------------------------------------------

def to_playwright_selector(kind: SelectorKind, value: str) -> str:
    """セレクタ種別と値を Playwright のセレクタ文字列に変換する。

    name 種別はタグ名として扱う。

    Raises:
        ValueError: 未知のセレクタ種別の場合
    """
    if kind is SelectorKind.ID:
        return f"id={value}"
    if kind is SelectorKind.CLASS:
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'css=[class~="{escaped}"]'
    if kind is SelectorKind.NAME:
        return f"css={value}"
    if kind is SelectorKind.XPATH:
        return f"xpath={value}"
    raise ValueError(f"未知のセレクタ種別です: {kind}")


def as_page_function(source: str) -> str:
    """スクリプトを page.evaluate() に渡せる形に変換する。

    "return" を含むスクリプトは関数本体とみなして無名関数で包む。
    それ以外は式としてそのまま評価する。
    """
    if _RETURN_STATEMENT.search(source):
        return f"() => {{\n{source}\n}}"
    return source


# ---------------------------------------------------------------------------
# PlaywrightSession 本体
# ---------------------------------------------------------------------------

class PlaywrightSession:
    """Playwright による BrowserSession 実装。

    launch() でブラウザを起動し、close() で必ず終了する。
    全てのブラウザコマンドは内部ロックで直列化される。
    """

    def __init__(self) -> None:
        self._state: SessionState = SessionState.IDLE
        self._pw_instance: Optional[Any] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> SessionState:
        """現在のセッション状態を返す。"""
        return self._state

    @property
    def is_active(self) -> bool:
        """セッションがアクティブかどうかを返す。"""
        return self._state == SessionState.ACTIVE

    @property
    def page(self) -> Page:
        """現在の Page を返す。

        Raises:
            RuntimeError: セッションがアクティブでない場合
        """
        if not self.is_active or self._page is None:
            raise RuntimeError(
                "アクティブなセッションがありません。先に launch() を呼んでください。"
            )
        return self._page

    # ----- ライフサイクル -----

    async def launch(
        self,
        headed: bool = False,
        viewport_width: int = 1280,
        viewport_height: int = 720,
    ) -> None:
        """ブラウザを起動し、Page を生成する。

        Raises:
            RuntimeError: 既にアクティブなセッションがある場合
        """
        if self._state == SessionState.ACTIVE:
            raise RuntimeError(
                "既にアクティブなセッションがあります。先に close() を呼んでください。"
            )

        self._state = SessionState.LAUNCHING
        logger.info("ブラウザを起動しています... (headed=%s)", headed)

        try:
            from playwright.async_api import async_playwright

            pw = await async_playwright().start()
            self._pw_instance = pw

            self._browser = await pw.chromium.launch(headless=not headed)
            self._context = await self._browser.new_context(
                viewport={"width": viewport_width, "height": viewport_height},
            )
            self._page = await self._context.new_page()
            self._state = SessionState.ACTIVE
            logger.info("ブラウザを起動しました")

        except Exception:
            self._state = SessionState.IDLE
            logger.exception("ブラウザの起動に失敗しました")
            raise

    async def close(self) -> None:
        """ブラウザを終了し、リソースをクリーンアップする。"""
        if self._state in (SessionState.CLOSED, SessionState.CLOSING):
            return

        self._state = SessionState.CLOSING
        logger.info("ブラウザを終了しています...")

        try:
            if self._browser is not None:
                await self._browser.close()
            if self._pw_instance is not None:
                await self._pw_instance.stop()
        except Exception:
            logger.exception("ブラウザの終了中にエラーが発生しました")
        finally:
            self._browser = None
            self._context = None
            self._page = None
            self._pw_instance = None
            self._state = SessionState.CLOSED
            logger.info("ブラウザを終了しました")

    # ----- ブラウザコマンド -----

    async def navigate(self, url: str) -> None:
        async with self._lock:
            logger.info("open: %s", url)
            await self.page.goto(url)

    async def find_element(self, kind: SelectorKind, value: str) -> Optional[ElementHandle]:
        selector = to_playwright_selector(kind, value)
        async with self._lock:
            return await self.page.query_selector(selector)

    async def find_children(self, element: ElementHandle, tag: str) -> list[ElementHandle]:
        async with self._lock:
            return await element.query_selector_all(f":scope > {tag}")

    async def click(self, element: ElementHandle) -> None:
        async with self._lock:
            await element.click()

    async def set_text(self, element: ElementHandle, value: str) -> None:
        async with self._lock:
            await element.evaluate("el => { el.value = ''; }")
            await element.type(value)

    async def get_text(self, element: ElementHandle) -> str:
        async with self._lock:
            text = await element.inner_text()
        return (text or "").strip()

    async def run_script(self, source: str) -> Any:
        async with self._lock:
            return await self.page.evaluate(as_page_function(source))

    async def screenshot(self) -> bytes:
        async with self._lock:
            return await self.page.screenshot(type="png")

    async def set_network_conditions(
        self, latency_ms: int, download_bps: int, upload_bps: int,
    ) -> None:
        """Chrome DevTools Protocol でネットワーク速度を制限する（Chromium のみ）。"""
        if self._context is None:
            raise RuntimeError("アクティブなセッションがありません。")
        async with self._lock:
            cdp = await self._context.new_cdp_session(self.page)
            await cdp.send(
                "Network.emulateNetworkConditions",
                {
                    "offline": False,
                    "latency": latency_ms,
                    "downloadThroughput": download_bps,
                    "uploadThroughput": upload_bps,
                },
            )
        logger.info(
            "ネットワーク制限を設定しました: latency=%dms down=%dB/s up=%dB/s",
            latency_ms, download_bps, upload_bps,
        )


# ---------------------------------------------------------------------------
# スコープ付きセッション
# ---------------------------------------------------------------------------

@asynccontextmanager
async def open_session(config: ProbeConfig) -> AsyncIterator[PlaywrightSession]:
    """ブラウザセッションを起動し、終了時に必ず close() する。

    使用例::

        async with open_session(config) as session:
            result = await Runner(session, runner_config).execute(steps, "login", True)
    """
    session = PlaywrightSession()
    await session.launch(
        headed=config.headed,
        viewport_width=config.viewport_width,
        viewport_height=config.viewport_height,
    )
    try:
        yield session
    finally:
        await session.close()
