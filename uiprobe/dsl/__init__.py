# DSL モジュール
# ステップモデル、JSON / YAML パーサー、テンプレート置換、静的解析を提供

from . import schema  # noqa: F401
from . import parser  # noqa: F401
from . import template  # noqa: F401
from . import linter  # noqa: F401
