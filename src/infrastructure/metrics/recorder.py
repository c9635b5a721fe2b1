"""
アプリケーション共通で利用するメトリクス記録ユーティリティ。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from .registry import Counter, Gauge, Histogram, MetricsRegistry


@dataclass
class _MetricHandles:
    migration_duration_seconds: Histogram
    migrations_total: Counter
    collections_created_total: Counter
    settings_keys: Gauge


class MetricsRecorder:
    """
    グローバルなメトリクス記録を担当するヘルパ。
    MetricsRegistry が未設定の場合はすべての更新を無視する。
    """

    _registry: MetricsRegistry | None = None
    _handles: _MetricHandles | None = None
    _default_labels: Mapping[str, str] = {}

    @classmethod
    def configure(
        cls,
        registry: MetricsRegistry,
        *,
        default_labels: Mapping[str, str] | None = None,
    ) -> None:
        cls._registry = registry
        cls._default_labels = default_labels or {}
        base_label_names = tuple(cls._default_labels.keys())

        def _label_names(*names: str) -> tuple[str, ...]:
            return base_label_names + names

        cls._handles = _MetricHandles(
            migration_duration_seconds=registry.histogram(
                "migration_duration_seconds",
                "Duration of database migrations in seconds",
                labels=_label_names("migration", "status"),
            ),
            migrations_total=registry.counter(
                "migrations",
                "Number of database migration runs by outcome",
                labels=_label_names("migration", "status"),
            ),
            collections_created_total=registry.counter(
                "collections_created",
                "Number of collections created during initialization",
                labels=_label_names("collection"),
            ),
            settings_keys=registry.gauge(
                "settings_keys",
                "Number of keys visible in the settings of a namespace",
                labels=_label_names("namespace"),
            ),
        )

    @classmethod
    def _merge_labels(cls, extra: Mapping[str, str] | None) -> Mapping[str, str]:
        if not extra:
            return cls._default_labels
        merged = dict(cls._default_labels)
        merged.update(extra)
        return merged

    @classmethod
    def observe_migration(cls, migration: str, status: str, duration_seconds: float) -> None:
        if not cls._handles:
            return
        labels = cls._merge_labels({"migration": migration, "status": status})
        cls._handles.migration_duration_seconds.observe(duration_seconds, labels=labels)
        cls._handles.migrations_total.inc(1.0, labels=labels)

    @classmethod
    def increment_collections_created(cls, collection: str) -> None:
        if not cls._handles:
            return
        labels = cls._merge_labels({"collection": collection})
        cls._handles.collections_created_total.inc(1.0, labels=labels)

    @classmethod
    def set_settings_keys(cls, namespace: str, count: int) -> None:
        if not cls._handles or count < 0:
            return
        labels = cls._merge_labels({"namespace": namespace})
        cls._handles.settings_keys.set(float(count), labels=labels)

    @classmethod
    def reset(cls) -> None:
        cls._registry = None
        cls._handles = None
        cls._default_labels = {}
