"""
ステップ Linter — ステップ列の静的解析

実行前にステップ列を走査し、実行時にエラーログへ記録されることになる
設定ミスを検出する。

検出ルール:
  - 不正なアクション → error
  - 要素を扱うアクションのセレクタ種別が不正 → error
  - 要素を扱うアクションの selectorValue が空 → error
  - end マーカーの計測スロットが 1〜3 以外 → error
  - 先行する start マーカーのない end マーカー → warning（goto で実行順が変わる場合がある）
  - goto のジャンプ先がステップ列の範囲外 → warning
  - sleep の actionValue が数値でない → warning
  - open の actionValue（URL）が空 → warning
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .schema import MEASURE_SLOTS, Action, Marker, SelectorKind, Step

# 要素を検索するアクション
_ELEMENT_ACTIONS = frozenset({
    Action.FILL,
    Action.CLICK,
    Action.CHECK,
    Action.SELECT,
    Action.WAIT_ALL,
    Action.WAIT_ANY,
})


# ---------------------------------------------------------------------------
# Lint 重大度・検出結果
# ---------------------------------------------------------------------------

class LintSeverity(Enum):
    """Lint 結果の重大度レベル。"""

    ERROR = "error"
    WARNING = "warning"


@dataclass
class LintIssue:
    """Lint で検出された問題。

    Attributes:
        step_index: ステップのインデックス（0始まり）
        step_name: ステップ名
        severity: 重大度
        rule: 適用されたルール名
        message: 問題の説明
    """

    step_index: int
    step_name: str
    severity: LintSeverity
    rule: str
    message: str


# ---------------------------------------------------------------------------
# StepLinter 本体
# ---------------------------------------------------------------------------

class StepLinter:
    """ステップ列の静的解析を行う Linter。"""

    def lint(self, steps: list[Step]) -> list[LintIssue]:
        """全ルールを適用し、検出された問題を返す。

        Args:
            steps: 検査対象のステップ列

        Returns:
            検出された LintIssue のリスト（問題なしの場合は空リスト）
        """
        issues: list[LintIssue] = []
        start_pending = False

        for index, step in enumerate(steps):
            for check in (
                self._check_action,
                self._check_selector,
                self._check_measure_slot,
                self._check_sleep_value,
                self._check_open_url,
            ):
                issue = check(step, index)
                if issue is not None:
                    issues.append(issue)

            issue = self._check_jump_target(step, index, len(steps))
            if issue is not None:
                issues.append(issue)

            # マーカー順序（ステップ列の並び順で判定）
            if step.marker is Marker.START:
                start_pending = True
            elif step.marker is Marker.END:
                if not start_pending:
                    issues.append(LintIssue(
                        step_index=index,
                        step_name=step.name,
                        severity=LintSeverity.WARNING,
                        rule="end-before-start",
                        message="先行する start マーカーがない end マーカーです",
                    ))
                start_pending = False

        return issues

    @staticmethod
    def has_errors(issues: list[LintIssue]) -> bool:
        return any(i.severity is LintSeverity.ERROR for i in issues)

    # -----------------------------------------------------------------
    # ルール
    # -----------------------------------------------------------------

    def _check_action(self, step: Step, index: int) -> Optional[LintIssue]:
        if step.action is not Action.INVALID:
            return None
        return LintIssue(
            step_index=index,
            step_name=step.name,
            severity=LintSeverity.ERROR,
            rule="invalid-action",
            message=f"不正なアクションです: {step.action_label!r}",
        )

    def _check_selector(self, step: Step, index: int) -> Optional[LintIssue]:
        if step.action not in _ELEMENT_ACTIONS:
            return None
        if step.selector_kind is SelectorKind.UNKNOWN:
            return LintIssue(
                step_index=index,
                step_name=step.name,
                severity=LintSeverity.ERROR,
                rule="invalid-selector-type",
                message="selectorType は id / class / name / xpath のいずれかです",
            )
        if not step.selectors:
            return LintIssue(
                step_index=index,
                step_name=step.name,
                severity=LintSeverity.ERROR,
                rule="empty-selector",
                message=f"{step.action.value} には selectorValue が必要です",
            )
        return None

    def _check_measure_slot(self, step: Step, index: int) -> Optional[LintIssue]:
        if step.marker is not Marker.END or step.measure_slot in MEASURE_SLOTS:
            return None
        return LintIssue(
            step_index=index,
            step_name=step.name,
            severity=LintSeverity.ERROR,
            rule="invalid-measure",
            message=f"measure は 1 / 2 / 3 のいずれかです: {step.measure_slot}",
        )

    def _check_jump_target(self, step: Step, index: int, count: int) -> Optional[LintIssue]:
        if step.action is not Action.JUMP or 0 <= step.jump_target < count:
            return None
        return LintIssue(
            step_index=index,
            step_name=step.name,
            severity=LintSeverity.WARNING,
            rule="jump-out-of-range",
            message=(
                f"nextStep {step.jump_target} はステップ列の範囲外です"
                f"（0〜{count - 1}）"
            ),
        )

    def _check_sleep_value(self, step: Step, index: int) -> Optional[LintIssue]:
        if step.action is not Action.SLEEP:
            return None
        if step.action_value.strip().isdigit():
            return None
        return LintIssue(
            step_index=index,
            step_name=step.name,
            severity=LintSeverity.WARNING,
            rule="sleep-not-numeric",
            message=f"sleep の actionValue が数値ではありません（0ms として扱われます）: {step.action_value!r}",
        )

    def _check_open_url(self, step: Step, index: int) -> Optional[LintIssue]:
        if step.action is not Action.OPEN or step.action_value.strip():
            return None
        return LintIssue(
            step_index=index,
            step_name=step.name,
            severity=LintSeverity.WARNING,
            rule="open-without-url",
            message="open の actionValue（URL）が空です",
        )
