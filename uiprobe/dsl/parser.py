"""
ステップパーサー — ステップ列の読み込み・書き出し

ステップ列は JSON 配列（各要素がワイヤー名のフィールドを持つオブジェクト）で表現する。
YAML ファイル（.yaml / .yml）は ruamel.yaml で読み込み、同じ構造として扱う。

不正な JSON テキストは例外にせず空のステップ列として扱う（呼び出し元へは送出しない）。
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .schema import Step

logger = logging.getLogger(__name__)

_YAML_SUFFIXES = (".yaml", ".yml")


# ---------------------------------------------------------------------------
# パース
# ---------------------------------------------------------------------------

def parse_steps(text: str) -> list[Step]:
    """JSON テキストをステップ列に変換する。

    JSON 構文エラー・トップレベルが配列でない・スキーマ違反のいずれの場合も
    エラーログを出力して空リストを返す。

    Args:
        text: ステップ列の JSON テキスト

    Returns:
        パース済みのステップ列（失敗時は空リスト）
    """
    if not text or not text.strip():
        return []

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.error("JSON parse error: %s", exc)
        return []

    return steps_from_data(data)


def steps_from_data(data: Any) -> list[Step]:
    """デシリアライズ済みのデータ（list[dict]）をステップ列に変換する。

    変換に失敗した場合はエラーログを出力して空リストを返す。
    """
    if data is None:
        return []
    if not isinstance(data, list):
        logger.error("ステップ列は配列である必要があります: %s", type(data).__name__)
        return []

    try:
        return [Step.model_validate(_to_plain(item)) for item in data]
    except (PydanticValidationError, TypeError) as exc:
        logger.error("ステップのスキーマ検証に失敗しました: %s", exc)
        return []


# ---------------------------------------------------------------------------
# 書き出し
# ---------------------------------------------------------------------------

def dump_steps(steps: list[Step], pretty: bool = False) -> str:
    """ステップ列をワイヤー形式の JSON 文字列に変換する。

    Args:
        steps: ステップ列
        pretty: インデント付きで整形するか

    Returns:
        JSON 文字列
    """
    data = [step.to_wire() for step in steps]
    if pretty:
        return json.dumps(data, ensure_ascii=False, indent=2)
    return json.dumps(data, ensure_ascii=False)


# ---------------------------------------------------------------------------
# ファイル読み込み
# ---------------------------------------------------------------------------

def read_text(path: Path) -> str:
    """ステップファイルを UTF-8 テキストとして読み込む。

    Raises:
        FileNotFoundError: ファイルが存在しない場合
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"ステップファイルが見つかりません: {path}")
    return path.read_text(encoding="utf-8")


def load_steps(path: Path) -> list[Step]:
    """ステップファイル（.json / .yaml / .yml）を読み込む。

    JSON ファイルは parse_steps() と同じく不正な内容を空リストとして扱う。
    YAML ファイルは構文エラーを ValueError として送出する。

    Args:
        path: ステップファイルのパス

    Returns:
        パース済みのステップ列

    Raises:
        FileNotFoundError: ファイルが存在しない場合
        ValueError: YAML 構文エラーの場合
    """
    path = Path(path)
    text = read_text(path)

    if is_yaml_path(path):
        return parse_yaml_steps(text)
    return parse_steps(text)


def is_yaml_path(path: Path) -> bool:
    return Path(path).suffix.lower() in _YAML_SUFFIXES


def parse_yaml_steps(text: str) -> list[Step]:
    """YAML テキストをステップ列に変換する。

    Raises:
        ValueError: YAML 構文エラーの場合
    """
    yaml = YAML(typ="safe")
    try:
        data = yaml.load(text)
    except YAMLError as exc:
        line_info = ""
        mark = getattr(exc, "problem_mark", None)
        if mark is not None:
            line_info = f" (行 {mark.line + 1}, 列 {mark.column + 1})"
        raise ValueError(f"YAML 構文エラー{line_info}: {exc}") from exc

    return steps_from_data(data)


def _to_plain(data: Any) -> Any:
    """ruamel.yaml の CommentedMap / CommentedSeq を通常の dict / list に再帰変換する。"""
    if isinstance(data, dict):
        return {key: _to_plain(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_to_plain(item) for item in data]
    return data
