"""
CLI エントリポイント — Typer ベースのコマンドラインインターフェース

uiprobe コマンドとして以下のサブコマンドを提供する:
  - run: ステップ列の実行（計測結果とエラーログを表示、レポート出力）
  - validate: ステップ列の静的解析
  - list-actions: 全アクション一覧
  - template: 名前付きテンプレートからステップ列を生成
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Typer アプリ定義
# ---------------------------------------------------------------------------

app = typer.Typer(
    help=(
        "uiprobe — 宣言的 UI プローブ実行ツール\n\n"
        "基本の流れ:\n"
        "  1. uiprobe validate steps.json   ステップ列を検査\n"
        "  2. uiprobe run steps.json        ブラウザで実行して計測\n\n"
        "詳しくは各コマンドに --help を付けてください。"
    ),
    no_args_is_help=True,
)


# ---------------------------------------------------------------------------
# 共通ヘルパー
# ---------------------------------------------------------------------------

def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_params(items: Optional[list[str]]) -> dict[str, str]:
    """KEY=VALUE 形式の引数リストを辞書に変換する。

    Raises:
        typer.BadParameter: = を含まない引数がある場合
    """
    params: dict[str, str] = {}
    for item in items or []:
        if "=" not in item:
            raise typer.BadParameter(f"KEY=VALUE 形式で指定してください: {item}")
        key, value = item.split("=", 1)
        params[key] = value
    return params


def _load_steps(steps_file: Path, params: dict[str, str]):
    """ステップファイルを読み込む。params があればテキスト置換してからパースする。"""
    from .dsl.parser import is_yaml_path, load_steps, parse_steps, parse_yaml_steps, read_text
    from .dsl.template import substitute

    if not params:
        return load_steps(steps_file)

    text = substitute(read_text(steps_file), params)
    if is_yaml_path(steps_file):
        return parse_yaml_steps(text)
    return parse_steps(text)


# ---------------------------------------------------------------------------
# run コマンド
# ---------------------------------------------------------------------------

@app.command()
def run(
    steps_file: Path = typer.Argument(..., help="実行するステップファイル（.json / .yaml）"),
    tag: str = typer.Option("", "--tag", "-t", help="実行タグ（キャプチャ保存先・レポートに使用）"),
    capture: bool = typer.Option(
        False, "--capture/--no-capture", help="capture: true のステップでスクリーンショットを保存",
    ),
    headed: Optional[bool] = typer.Option(
        None, "--headed/--headless", help="ブラウザ表示モード（デフォルト: 設定値）",
    ),
    param: Optional[list[str]] = typer.Option(
        None, "--param", "-p", help="プレースホルダー置換 KEY=VALUE（複数指定可）",
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="実行全体のタイムアウト（秒）。0 で無制限",
    ),
    report_dir: Optional[Path] = typer.Option(
        None, "--report-dir", help="レポート（JSON / HTML / JUnit XML）の出力先",
    ),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="設定ファイル（デフォルト: ./uiprobe.yaml）",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="デバッグログを出力"),
) -> None:
    """ステップ列をブラウザで実行し、計測結果を表示する。"""
    import asyncio

    from .config import apply_overrides, load_config
    from .core.reporting import Reporter
    from .core.runner import run_steps

    _setup_logging(verbose)

    try:
        params = _parse_params(param)
        config = apply_overrides(
            load_config(config_file),
            headed=headed,
            run_timeout=timeout,
        )

        steps = _load_steps(steps_file, params)
        if not steps:
            typer.echo(f"エラー: 実行できるステップがありません: {steps_file}", err=True)
            raise typer.Exit(code=1)

        result = asyncio.run(run_steps(steps, tag=tag, capture=capture, config=config))

        typer.echo(f"タグ: {result.tag or '-'}")
        typer.echo(f"ステータス: {result.status}")
        typer.echo(f"実行時間: {result.duration_ms:.0f}ms")
        typer.echo(
            f"ステップ: {len(result.steps)} "
            f"(passed={sum(1 for s in result.steps if s.status == 'passed')}, "
            f"failed={sum(1 for s in result.steps if s.status == 'failed')})"
        )
        for slot in (1, 2, 3):
            value = result.measure_time(slot)
            if value is not None:
                typer.echo(f"measure_time_{slot}: {value:.3f}s")

        if result.artifacts_dir:
            typer.echo(f"キャプチャ: {result.artifacts_dir}")

        if result.error_message:
            typer.echo("エラーログ:")
            typer.echo(result.error_message)

        if report_dir is not None:
            for path in Reporter().generate_all(result, report_dir):
                typer.echo(f"レポート: {path}")

        if result.status == "failed":
            raise typer.Exit(code=1)
    except typer.Exit:
        raise
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# validate コマンド
# ---------------------------------------------------------------------------

@app.command()
def validate(
    steps_file: Path = typer.Argument(..., help="検査するステップファイル（.json / .yaml）"),
) -> None:
    """ステップファイルを読み込み、静的解析を行う。"""
    from .dsl.linter import StepLinter
    from .dsl.parser import load_steps

    try:
        steps = load_steps(steps_file)
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    if not steps:
        typer.echo(f"✗ {steps_file}: ステップを読み込めませんでした", err=True)
        raise typer.Exit(code=1)

    linter = StepLinter()
    issues = linter.lint(steps)

    if not issues:
        typer.echo(f"✓ {steps_file}: {len(steps)} ステップ、問題なし")
        return

    for issue in issues:
        typer.echo(
            f"[{issue.severity.value}] "
            f"ステップ {issue.step_index} ({issue.step_name}): "
            f"{issue.message}",
            err=True,
        )

    if linter.has_errors(issues):
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# list-actions コマンド
# ---------------------------------------------------------------------------

@app.command("list-actions")
def list_actions() -> None:
    """登録済み全アクションの一覧を表示する。"""
    from .steps import create_full_registry

    registry = create_full_registry()
    all_actions = registry.list_all()

    categories: dict[str, list] = {}
    for info in all_actions:
        categories.setdefault(info.category, []).append(info)

    for category, actions in sorted(categories.items()):
        typer.echo(f"\n[{category}]")
        for action in actions:
            typer.echo(f"  {action.name:10s} {action.description}")

    typer.echo(f"\n合計: {len(all_actions)} アクション")


# ---------------------------------------------------------------------------
# template コマンド
# ---------------------------------------------------------------------------

@app.command()
def template(
    name: Optional[str] = typer.Argument(None, help="テンプレート名（省略時は一覧を表示）"),
    param: Optional[list[str]] = typer.Option(
        None, "--param", "-p", help="プレースホルダー置換 KEY=VALUE（複数指定可）",
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="出力先 JSON ファイル（省略時は標準出力）",
    ),
    templates_dir: Optional[Path] = typer.Option(
        None, "--templates-dir", help="テンプレートディレクトリ（デフォルト: 設定値）",
    ),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="設定ファイル（デフォルト: ./uiprobe.yaml）",
    ),
) -> None:
    """名前付きテンプレートにプレースホルダーを適用し、ステップ列を JSON で出力する。"""
    from .config import load_config
    from .dsl.parser import dump_steps
    from .dsl.template import TemplateStore

    try:
        directory = templates_dir or Path(load_config(config_file).templates_dir)
        store = TemplateStore(directory)

        if name is None:
            names = store.names()
            for template_name in names:
                typer.echo(template_name)
            typer.echo(f"\n合計: {len(names)} テンプレート（{store.directory}）")
            return

        steps = store.build(name, _parse_params(param))
        if not steps:
            typer.echo(f"エラー: テンプレート '{name}' からステップを生成できませんでした", err=True)
            raise typer.Exit(code=1)

        text = dump_steps(steps, pretty=True)
        if output is None:
            typer.echo(text)
        else:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(text + "\n", encoding="utf-8")
            typer.echo(f"✓ {len(steps)} ステップを出力しました: {output}")
    except typer.Exit:
        raise
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)
