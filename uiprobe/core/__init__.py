# コアモジュール
# Runner、要素ロケータ、計測トラッカー、ブラウザセッション、キャプチャ、レポート生成を提供

from .artifacts import ArtifactCapture, valid_filename
from .locator import LocateResult, wait_element
from .measure import MeasurementTracker
from .reporting import Reporter
from .result import MeasureSample, RunResult, StepOutcome
from .runner import InterpreterState, Runner, RunnerConfig, run_steps
from .session import BrowserSession, PlaywrightSession, open_session

__all__ = [
    "ArtifactCapture",
    "BrowserSession",
    "InterpreterState",
    "LocateResult",
    "MeasureSample",
    "MeasurementTracker",
    "PlaywrightSession",
    "Reporter",
    "RunResult",
    "Runner",
    "RunnerConfig",
    "StepOutcome",
    "open_session",
    "run_steps",
    "valid_filename",
    "wait_element",
]
