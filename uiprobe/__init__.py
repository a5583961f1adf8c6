# uiprobe — 宣言的 UI プローブ実行エンジン
# ステップ列をブラウザ上で再生し、マーカー間の経過時間を計測する

__version__ = "0.1.0"
