"""
テンプレート置換 — 名前付き JSON テンプレートからステップ列を生成する

テンプレートはステップ列の JSON テキストで、プレースホルダーを含む。
プレースホルダー辞書（キー → 値）の各キーを正規表現として生の JSON テキストに適用し、
一致箇所を値（リテラル）に置換してからパースする。
ステップのスキーマは一切意識しない純粋なテキスト置換である。
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Mapping

from .parser import parse_steps
from .schema import Step

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# カスタム例外
# ---------------------------------------------------------------------------

class TemplateNotFoundError(Exception):
    """指定名のテンプレートが存在しない場合に送出される例外。

    Attributes:
        name: 参照されたテンプレート名
    """

    def __init__(self, name: str, directory: Path) -> None:
        self.name = name
        super().__init__(f"テンプレート '{name}' が見つかりません: {directory}")


# ---------------------------------------------------------------------------
# テキスト置換
# ---------------------------------------------------------------------------

def substitute(template_text: str, params: Mapping[str, str]) -> str:
    """テンプレートテキスト内のプレースホルダーを置換する。

    キーは正規表現として解釈する。正規表現として不正なキーは
    リテラル文字列として置換する。値は常にリテラルとして挿入する。

    Args:
        template_text: テンプレートの生テキスト
        params: プレースホルダー辞書

    Returns:
        置換後のテキスト
    """
    text = template_text
    for key, value in params.items():
        replacement = str(value)
        try:
            text = re.sub(key, lambda _m, r=replacement: r, text)
        except re.error:
            logger.debug("正規表現として不正なキーのためリテラル置換します: %s", key)
            text = text.replace(key, replacement)
    return text


def build_script(template_text: str, params: Mapping[str, str]) -> list[Step]:
    """テンプレートとプレースホルダー辞書からステップ列を生成する。

    Args:
        template_text: JSON テンプレート文字列
        params: プレースホルダー辞書（キー = プレースホルダー, 値 = 置換値）

    Returns:
        生成されたステップ列。テンプレートが空、またはパースに失敗した場合は空リスト
    """
    if not template_text:
        return []
    return parse_steps(substitute(template_text, params))


# ---------------------------------------------------------------------------
# テンプレートストア
# ---------------------------------------------------------------------------

class TemplateStore:
    """ディレクトリ内の名前付きテンプレート（<name>.json）を管理する。

    使用例::

        store = TemplateStore(Path("templates"))
        steps = store.build("LGN", {"__USER__": "alice"})
    """

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)
        self._cache: dict[str, str] = {}

    @property
    def directory(self) -> Path:
        """テンプレートディレクトリ。"""
        return self._directory

    def names(self) -> list[str]:
        """利用可能なテンプレート名をソート済みで返す。"""
        if not self._directory.is_dir():
            return []
        return sorted(p.stem for p in self._directory.glob("*.json"))

    def load(self, name: str) -> str:
        """テンプレートの生テキストを返す。

        Raises:
            TemplateNotFoundError: テンプレートファイルが存在しない場合
        """
        if name in self._cache:
            return self._cache[name]

        path = self._directory / f"{name}.json"
        if not path.is_file():
            raise TemplateNotFoundError(name, self._directory)

        text = path.read_text(encoding="utf-8")
        self._cache[name] = text
        logger.debug("テンプレートを読み込みました: %s", path)
        return text

    def build(self, name: str, params: Mapping[str, str]) -> list[Step]:
        """名前付きテンプレートからステップ列を生成する。"""
        return build_script(self.load(name), params)
