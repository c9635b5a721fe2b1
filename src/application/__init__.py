"""
アプリケーション層パッケージ初期化。
"""
