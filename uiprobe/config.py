"""
uiprobe 設定 — 設定ファイル・環境変数・CLI 引数からの設定読み込み

CLI 引数 > 環境変数 > 設定ファイル（uiprobe.yaml） > デフォルト値 の優先順位で適用される。

環境変数一覧:
  UIPROBE_DATA_DIR           : キャプチャ保存先ディレクトリ（デフォルト: data）
  UIPROBE_HEADED             : ブラウザ表示モード（true/false, デフォルト: false）
  UIPROBE_RUN_TIMEOUT        : 実行全体のタイムアウト秒数（0 = 無制限, デフォルト: 0）
  UIPROBE_NETWORK_THROTTLING : ネットワーク速度制限の有効化（true/false, デフォルト: false）
  UIPROBE_NETWORK_LATENCY    : 遅延（ミリ秒, デフォルト: 500）
  UIPROBE_NETWORK_DOWNLOAD   : 下り帯域（バイト/秒, デフォルト: 1000000）
  UIPROBE_NETWORK_UPLOAD     : 上り帯域（バイト/秒, デフォルト: 500000）
  UIPROBE_TEMPLATES_DIR      : ステップテンプレートのディレクトリ（デフォルト: templates）

設定ファイル例（uiprobe.yaml）::

    data_dir: /var/uiprobe/data
    run_timeout: 120
    network:
      throttling: true
      latency: 300
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "uiprobe.yaml"

# ---------------------------------------------------------------------------
# 環境変数キー定数
# ---------------------------------------------------------------------------

_ENV_DATA_DIR = "UIPROBE_DATA_DIR"
_ENV_HEADED = "UIPROBE_HEADED"
_ENV_RUN_TIMEOUT = "UIPROBE_RUN_TIMEOUT"
_ENV_NETWORK_THROTTLING = "UIPROBE_NETWORK_THROTTLING"
_ENV_NETWORK_LATENCY = "UIPROBE_NETWORK_LATENCY"
_ENV_NETWORK_DOWNLOAD = "UIPROBE_NETWORK_DOWNLOAD"
_ENV_NETWORK_UPLOAD = "UIPROBE_NETWORK_UPLOAD"
_ENV_TEMPLATES_DIR = "UIPROBE_TEMPLATES_DIR"

# 設定ファイルの network セクションのキー → ProbeConfig の属性名
_NETWORK_KEYS = {
    "throttling": "network_throttling",
    "latency": "network_latency",
    "download": "network_download",
    "upload": "network_upload",
}


class ConfigError(Exception):
    """設定ファイル・設定値が不正な場合の例外。"""


# ---------------------------------------------------------------------------
# 設定データクラス
# ---------------------------------------------------------------------------

@dataclass
class ProbeConfig:
    """uiprobe の実行時設定。

    Attributes:
        data_dir: キャプチャ保存先ディレクトリ
        headed: ブラウザ表示モード（True=表示, False=ヘッドレス）
        run_timeout: 実行全体のタイムアウト（秒, 0 = 無制限）
        network_throttling: ネットワーク速度制限を行うか
        network_latency: 遅延（ミリ秒）
        network_download: 下り帯域（バイト/秒）
        network_upload: 上り帯域（バイト/秒）
        templates_dir: ステップテンプレートのディレクトリ
        viewport_width: ビューポート幅
        viewport_height: ビューポート高さ
    """

    data_dir: str = "data"
    headed: bool = False
    run_timeout: float = 0
    network_throttling: bool = False
    network_latency: int = 500
    network_download: int = 1000 * 1000
    network_upload: int = 500 * 1000
    templates_dir: str = "templates"
    viewport_width: int = 1280
    viewport_height: int = 720


# ---------------------------------------------------------------------------
# 値の変換
# ---------------------------------------------------------------------------

def _parse_bool(value: Any) -> bool:
    """値を bool に変換する。

    Args:
        value: "true", "1", "yes", "on" → True、それ以外 → False

    Returns:
        変換結果
    """
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes", "on")


def _coerce(name: str, value: Any) -> Any:
    """ProbeConfig の属性型に合わせて値を変換する。

    Raises:
        ConfigError: 数値に変換できない場合
    """
    default = getattr(ProbeConfig, name)
    if isinstance(default, bool):
        return _parse_bool(value)
    try:
        if name == "run_timeout":
            return float(value)
        if isinstance(default, int):
            return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} の値が不正です: {value!r}") from exc
    return str(value)


# ---------------------------------------------------------------------------
# 設定ファイルからの読み込み
# ---------------------------------------------------------------------------

def load_config_file(path: Union[str, Path]) -> ProbeConfig:
    """YAML 設定ファイルから ProbeConfig を生成する。

    未知のキーは警告を出して無視する。

    Args:
        path: 設定ファイルのパス

    Returns:
        設定ファイルの値を反映した設定

    Raises:
        ConfigError: ファイルが存在しない、YAML として不正、値が不正な場合
    """
    file_path = Path(path)
    if not file_path.exists():
        raise ConfigError(f"設定ファイルが見つかりません: {file_path}")

    yaml = YAML(typ="safe")
    try:
        with open(file_path, encoding="utf-8") as f:
            data = yaml.load(f)
    except YAMLError as exc:
        raise ConfigError(f"設定ファイルの YAML が不正です: {file_path}: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"設定ファイルのトップレベルはマッピングである必要があります: {file_path}")

    values = _flatten(data)
    config = ProbeConfig()
    known = {f.name for f in fields(ProbeConfig)}
    for key, value in values.items():
        if key not in known:
            logger.warning("未知の設定キーを無視します: %s", key)
            continue
        setattr(config, key, _coerce(key, value))

    logger.info("設定ファイルを読み込みました: %s", file_path)
    return config


def _flatten(data: Mapping[str, Any]) -> dict[str, Any]:
    """network セクションを network_* 属性名に展開する。"""
    values: dict[str, Any] = {}
    for key, value in data.items():
        if key == "network" and isinstance(value, Mapping):
            for sub_key, sub_value in value.items():
                attr = _NETWORK_KEYS.get(str(sub_key), f"network_{sub_key}")
                values[attr] = sub_value
        else:
            values[str(key)] = value
    return values


# ---------------------------------------------------------------------------
# 環境変数からの読み込み
# ---------------------------------------------------------------------------

def load_config_from_env(
    base: Optional[ProbeConfig] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ProbeConfig:
    """環境変数の値を設定に適用する。

    設定されていない環境変数は base の値を維持する。
    数値として不正な値は警告を出して無視する。

    Args:
        base: ベースとなる設定（None の場合はデフォルト値）
        environ: 参照する環境変数（None の場合は os.environ）

    Returns:
        環境変数を適用した設定
    """
    config = base if base is not None else ProbeConfig()
    env = os.environ if environ is None else environ

    if _ENV_DATA_DIR in env:
        config.data_dir = env[_ENV_DATA_DIR]

    if _ENV_HEADED in env:
        config.headed = _parse_bool(env[_ENV_HEADED])

    if _ENV_NETWORK_THROTTLING in env:
        config.network_throttling = _parse_bool(env[_ENV_NETWORK_THROTTLING])

    if _ENV_TEMPLATES_DIR in env:
        config.templates_dir = env[_ENV_TEMPLATES_DIR]

    numeric = (
        (_ENV_RUN_TIMEOUT, "run_timeout"),
        (_ENV_NETWORK_LATENCY, "network_latency"),
        (_ENV_NETWORK_DOWNLOAD, "network_download"),
        (_ENV_NETWORK_UPLOAD, "network_upload"),
    )
    for env_key, attr in numeric:
        if env_key not in env:
            continue
        try:
            setattr(config, attr, _coerce(attr, env[env_key]))
        except ConfigError:
            logger.warning("%s の値が不正です: %s", env_key, env[env_key])

    return config


# ---------------------------------------------------------------------------
# CLI 引数の適用
# ---------------------------------------------------------------------------

def apply_overrides(config: ProbeConfig, **overrides: Any) -> ProbeConfig:
    """CLI 引数を設定に適用する。

    値が None の引数は無視する（未指定扱い）。

    Args:
        config: ベースとなる設定（環境変数まで適用済み）
        **overrides: 属性名 → 値

    Returns:
        CLI 引数が適用された設定

    Raises:
        ConfigError: 未知の属性名が指定された場合
    """
    known = {f.name for f in fields(ProbeConfig)}
    for key, value in overrides.items():
        if value is None:
            continue
        if key not in known:
            raise ConfigError(f"未知の設定項目です: {key}")
        setattr(config, key, _coerce(key, value))
    return config


def load_config(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ProbeConfig:
    """設定ファイルと環境変数から設定を組み立てる。

    path が None の場合、カレントディレクトリの uiprobe.yaml があれば読み込む。

    Args:
        path: 設定ファイルのパス
        environ: 参照する環境変数（None の場合は os.environ）

    Returns:
        設定ファイル → 環境変数 の順に適用した設定
    """
    if path is not None:
        config = load_config_file(path)
    elif Path(DEFAULT_CONFIG_FILE).exists():
        config = load_config_file(DEFAULT_CONFIG_FILE)
    else:
        config = ProbeConfig()

    config = load_config_from_env(config, environ)
    logger.debug("設定を読み込みました: %s", config)
    return config
