"""
アプリケーション層から利用する観測性ユーティリティ。

Infrastructure 層で実際のメトリクス実装を登録するまでは全て no-op として動作する。
"""

from __future__ import annotations

from typing import Protocol


class MetricsRecorderProtocol(Protocol):
    def observe_migration(self, migration: str, status: str, duration_seconds: float) -> None: ...

    def increment_collections_created(self, collection: str) -> None: ...

    def set_settings_keys(self, namespace: str, count: int) -> None: ...

    def reset(self) -> None: ...


class _NoopMetricsRecorder(MetricsRecorderProtocol):
    def observe_migration(self, migration: str, status: str, duration_seconds: float) -> None:  # noqa: D401
        pass

    def increment_collections_created(self, collection: str) -> None:
        pass

    def set_settings_keys(self, namespace: str, count: int) -> None:
        pass

    def reset(self) -> None:
        pass


metrics_recorder: MetricsRecorderProtocol = _NoopMetricsRecorder()


def use_metrics_recorder(recorder: MetricsRecorderProtocol) -> None:
    global metrics_recorder
    metrics_recorder = recorder


def reset_observability() -> None:
    use_metrics_recorder(_NoopMetricsRecorder())
