"""
Reporter — 実行結果レポートの出力

1 回の実行結果（RunResult）を 3 形式で書き出す:

  - report.json: RunResult.to_dict() にエラーログ行とステップ集計を加えたもの
  - report.html: Jinja2 テンプレート（uiprobe/templates/report.html.j2）で描画した一覧
  - junit.xml:   ステップ 1 つを testcase 1 つとした CI 向けレポート。
                 計測スロットは testsuite の properties に入れる
"""

from __future__ import annotations

import json
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader

from ..dsl.schema import MEASURE_SLOTS
from .result import RunResult, StepOutcome

logger = logging.getLogger(__name__)

# HTML テンプレートの置き場所（パッケージ同梱）
_TEMPLATES_DIR = Path(__file__).parent.parent / "templates"
_HTML_TEMPLATE = "report.html.j2"

_DEFAULT_SUITE_NAME = "uiprobe"


def summarize(steps: list[StepOutcome]) -> dict[str, int]:
    """ステップ結果を total / passed / failed に集計する。"""
    failed = len([s for s in steps if s.status == "failed"])
    return {"total": len(steps), "passed": len(steps) - failed, "failed": failed}


class Reporter:
    """RunResult をファイルに書き出すレポーター。

    出力先ディレクトリは各 generate_*() が必要に応じて作成する。
    """

    def __init__(self, templates_dir: Path = _TEMPLATES_DIR) -> None:
        self._env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=True,
        )

    # ----- 各形式 -----

    def generate_json(self, result: RunResult, output_dir: Path) -> Path:
        """report.json を出力し、そのパスを返す。"""
        text = json.dumps(self._report_context(result), ensure_ascii=False, indent=2)
        return self._write(output_dir / "report.json", text, "JSON")

    def generate_html(self, result: RunResult, output_dir: Path) -> Path:
        """report.html を出力し、そのパスを返す。"""
        html = self._env.get_template(_HTML_TEMPLATE).render(
            report=self._report_context(result),
        )
        return self._write(output_dir / "report.html", html, "HTML")

    def generate_junit_xml(self, result: RunResult, output_dir: Path) -> Path:
        """junit.xml を出力し、そのパスを返す。

        失敗したステップの failure 要素には、そのステップの実行中に
        エラーログへ追記された行をそのまま入れる。
        """
        root = self._junit_tree(result)
        ET.indent(root, space="  ")
        body = ET.tostring(root, encoding="unicode")
        text = '<?xml version="1.0" encoding="utf-8"?>\n' + body + "\n"
        return self._write(output_dir / "junit.xml", text, "JUnit XML")

    def generate_all(self, result: RunResult, output_dir: Path) -> list[Path]:
        """JSON / HTML / JUnit XML をまとめて出力する。"""
        return [
            self.generate_json(result, output_dir),
            self.generate_html(result, output_dir),
            self.generate_junit_xml(result, output_dir),
        ]

    # ----- 内部処理 -----

    @staticmethod
    def _report_context(result: RunResult) -> dict[str, Any]:
        context = result.to_dict()
        context["errors"] = result.errors
        context["summary"] = summarize(result.steps)
        return context

    @staticmethod
    def _junit_tree(result: RunResult) -> ET.Element:
        suite_name = result.tag or _DEFAULT_SUITE_NAME
        counts = summarize(result.steps)

        root = ET.Element("testsuites")
        suite = ET.SubElement(root, "testsuite", {
            "name": suite_name,
            "tests": str(counts["total"]),
            "failures": str(counts["failed"]),
            "time": f"{result.duration_ms / 1000:.3f}",
        })

        props = ET.SubElement(suite, "properties")
        for slot in MEASURE_SLOTS:
            seconds = result.measure_time(slot)
            ET.SubElement(props, "property", {
                "name": f"measure_time_{slot}",
                "value": "" if seconds is None else f"{seconds:.3f}",
            })

        for outcome in result.steps:
            case = ET.SubElement(suite, "testcase", {
                "name": f"{outcome.step_index:03d} {outcome.step_name}",
                "classname": suite_name,
                "time": f"{outcome.duration_ms / 1000:.3f}",
            })
            if outcome.status != "failed":
                continue
            first = outcome.messages[0] if outcome.messages else "failed"
            failure = ET.SubElement(case, "failure", {"message": first})
            failure.text = "\n".join(outcome.messages) or "failed"

        if result.error_message:
            ET.SubElement(suite, "system-out").text = result.error_message

        return root

    @staticmethod
    def _write(path: Path, text: str, label: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        logger.info("%s レポートを出力しました: %s", label, path)
        return path
