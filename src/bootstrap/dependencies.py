"""
名前空間ごとの Settings をまとめて保持し、シャットダウンフックと実行モードを提供する。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from domain.settings import (
    DEFAULT_NAMESPACE,
    DeclarationRegistry,
    Settings,
    declaration_registry,
    namespace_of,
    validate_namespace,
)
from infrastructure.settings import SettingsBuilder

from .deployment import DeploymentMode
from .shutdown import ShutdownHookRegistry

logger = logging.getLogger("layered_settings_core.bootstrap.dependencies")


class Dependencies:
    """
    名前空間 → Settings の対応と、プロセス共通のシャットダウンフックを保持する。
    """

    def __init__(
        self,
        settings_by_namespace: dict[str, Settings],
        *,
        shutdown_hooks: ShutdownHookRegistry | None = None,
        deployment_mode: DeploymentMode | None = None,
    ) -> None:
        self._settings = dict(settings_by_namespace)
        self.shutdown_hooks = shutdown_hooks or ShutdownHookRegistry()
        if deployment_mode is None:
            deployment_mode = DeploymentMode.from_settings(self.settings())
        self.deployment_mode = deployment_mode

    @staticmethod
    def builder() -> "DependenciesBuilder":
        return DependenciesBuilder()

    def namespaces(self) -> set[str]:
        return set(self._settings)

    def settings(self, namespace: str = DEFAULT_NAMESPACE) -> Settings:
        """
        名前空間に対応する Settings を返す。

        既定の名前空間が登録されていない場合は、登録済みのいずれかを返す。

        Raises:
            KeyError: 既定以外の未登録の名前空間を指定した場合。
        """

        found = self._settings.get(namespace)
        if found is not None:
            return found
        if namespace == DEFAULT_NAMESPACE and self._settings:
            return self._settings[sorted(self._settings)[0]]
        raise KeyError(f"名前空間 '{namespace}' の Settings は登録されていません: {sorted(self._settings)}")

    def settings_for(self, target: object) -> Settings:
        """``@namespace`` で宣言された名前空間の Settings を返す。"""

        return self.settings(namespace_of(target))

    @property
    def is_production(self) -> bool:
        return self.deployment_mode.is_production

    def auto_shutdown_refresh(self, builder: SettingsBuilder) -> None:
        """ビルダーが開始した再読み込みをシャットダウン時に停止する。"""

        self.shutdown_hooks.add(builder.on_shutdown())

    def also_shutdown(self, other: "Dependencies") -> "Dependencies":
        self.shutdown_hooks.add_last(other.shutdown)
        return self

    def shutdown(self) -> int:
        return self.shutdown_hooks.shutdown()

    def __repr__(self) -> str:
        return f"Dependencies(namespaces={sorted(self._settings)}, mode={self.deployment_mode.value})"


class DependenciesBuilder:
    """
    :class:`Dependencies` のビルダー。

    同じ名前空間に複数の Settings を追加した場合、後から追加したものが優先される。
    """

    def __init__(
        self,
        *,
        resource_packages: Iterable[str] = (),
        registry: DeclarationRegistry | None = None,
    ) -> None:
        self._builders: dict[str, list[SettingsBuilder]] = {}
        self._locations: list[Path] = []
        self._resource_packages = list(resource_packages)
        self._registry = registry or declaration_registry()
        self._use_mutable = False
        self._shutdown_hooks: ShutdownHookRegistry | None = None
        self._deployment_mode: DeploymentMode | None = None
        self._refreshing: list[SettingsBuilder] = []

    def namespaces(self) -> set[str]:
        return set(self._builders)

    def add_default_location(self, directory: Path | str) -> "DependenciesBuilder":
        """
        以降に追加する名前空間で、ディレクトリ内の ``<ns>.properties`` を読み込む。

        Raises:
            ValueError: パスが存在し、かつディレクトリではない場合。
        """

        path = Path(directory)
        if path.exists() and not path.is_dir():
            raise ValueError(f"ディレクトリではありません: {path}")
        self._locations.append(path)
        return self

    def add_namespace(self, name: str) -> "DependenciesBuilder":
        """
        Raises:
            ValueError: 同じ名前空間を既に追加している場合。
        """

        validate_namespace(name)
        if name in self._builders:
            raise ValueError(f"名前空間 '{name}' は既に追加されています。")
        builder = (
            SettingsBuilder(name, resource_packages=self._resource_packages)
            .add_env()
            .add_system_properties()
            .add_generated_defaults_from_classpath()
            .add_defaults_from_classpath()
            .add_defaults_from_user_home()
        )
        self._add_locations(builder)
        self._refreshing.append(builder)
        return self.add_settings(builder.build(), name)

    def add_default_settings(self) -> "DependenciesBuilder":
        """宣言済みの全名前空間と既定の名前空間について、既定の場所から Settings を追加する。"""

        names = set(self._builders) | set(self._registry.namespaces()) | {DEFAULT_NAMESPACE}
        for name in sorted(names):
            builder = SettingsBuilder(name, resource_packages=self._resource_packages).add_default_locations()
            self._add_locations(builder)
            self._refreshing.append(builder)
            self.add_settings(builder.build(), name)
        return self

    def add_settings(self, settings: Settings, namespace: str = DEFAULT_NAMESPACE) -> "DependenciesBuilder":
        validate_namespace(namespace)
        builder = SettingsBuilder(namespace).add_settings(settings)
        self._builders.setdefault(namespace, []).append(builder)
        return self

    def use_mutable_settings(self) -> "DependenciesBuilder":
        self._use_mutable = True
        return self

    def with_shutdown_hooks(self, hooks: ShutdownHookRegistry) -> "DependenciesBuilder":
        self._shutdown_hooks = hooks
        return self

    def with_deployment_mode(self, mode: DeploymentMode) -> "DependenciesBuilder":
        self._deployment_mode = mode
        return self

    def build(self) -> Dependencies:
        """構築した Dependencies のシャットダウン時に、各名前空間の再読み込みも停止する。"""

        dependencies = Dependencies(
            self._collapse(),
            shutdown_hooks=self._shutdown_hooks,
            deployment_mode=self._deployment_mode,
        )
        for builder in self._refreshing:
            dependencies.auto_shutdown_refresh(builder)
        return dependencies

    def _collapse(self) -> dict[str, Settings]:
        result: dict[str, Settings] = {}
        for name, builders in self._builders.items():
            if len(builders) == 1 and not self._use_mutable:
                result[name] = builders[0].build()
                continue
            combined = SettingsBuilder(name)
            for builder in builders:
                combined.add_builder(builder)
            result[name] = combined.build_mutable() if self._use_mutable else combined.build()
        logger.debug("collapsed settings for namespaces %s", sorted(result))
        return result

    def _add_locations(self, builder: SettingsBuilder) -> None:
        for location in self._locations:
            builder.add_location(location)

    def __repr__(self) -> str:
        lines = ["DependenciesBuilder"]
        for name, builders in sorted(self._builders.items()):
            lines.append(f"  {name}: {len(builders)} settings")
        return "\n".join(lines)
