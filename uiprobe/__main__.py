"""
uiprobe CLI エントリポイント

python -m uiprobe で uiprobe コマンドと同じ CLI を起動する。
"""

from __future__ import annotations

from .cli import app

app(prog_name="uiprobe")
