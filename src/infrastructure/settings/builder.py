"""
複数の設定ソースを優先順に積み上げて Settings を構築するビルダー。

後から追加したソースほど優先される（最後に追加したソースが最初に参照される）。

Example:
    >>> settings = (
    ...     SettingsBuilder.for_namespace("server")
    ...     .add_defaults_from_classpath()
    ...     .add_file("/etc/server.properties")
    ...     .add("server.port", 8080)
    ...     .build()
    ... )
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Sequence

import httpx

from domain.settings import (
    DEFAULT_NAMESPACE,
    ConfigurationError,
    LayeredSettings,
    PropertiesSettings,
    RefreshInterval,
    Settings,
    SettingsLoadError,
    WritableSettings,
    validate_namespace,
)
from domain.settings.base import to_setting_string

from .refresh import RefreshTask
from .sources import (
    DeclaredDefaultsSource,
    EnvironmentSource,
    ExistingSettingsSource,
    FileSource,
    FixedSource,
    RedisHashSource,
    ResourceSource,
    SettingsSource,
    SystemPropertiesSource,
    UrlSource,
)

logger = logging.getLogger("layered_settings_core.settings.builder")

DEFAULT_RESOURCE_DIRECTORY = "settings"
DEFAULT_EXTENSION = ".properties"
GENERATED_PREFIX = "generated-"
ETC_DIRECTORIES = (Path("/opt/local/etc"), Path("/etc"))


class SettingsBuilder:
    """
    設定ソースを積み上げるビルダー。

    Attributes:
        namespace: 構築する Settings の名前空間。ファイル名の決定にも使われる。
        resource_packages: ``settings/<namespace>.properties`` を探すパッケージ名。
    """

    def __init__(self, namespace: str = DEFAULT_NAMESPACE, *, resource_packages: Iterable[str] = ()) -> None:
        self.namespace = validate_namespace(namespace)
        self.resource_packages: list[str] = list(resource_packages)
        self._sources: list[SettingsSource] = []
        self._environment_keys: tuple[str, ...] = ()
        self._refresh_tasks: list[RefreshTask] = []

    @classmethod
    def for_namespace(cls, namespace: str, *, resource_packages: Iterable[str] = ()) -> "SettingsBuilder":
        return cls(namespace, resource_packages=resource_packages)

    @classmethod
    def create(cls, *, resource_packages: Iterable[str] = ()) -> "SettingsBuilder":
        """既定の名前空間で :meth:`create_with_defaults` する。"""

        return cls.create_with_defaults(DEFAULT_NAMESPACE, resource_packages=resource_packages)

    @classmethod
    def create_with_defaults(cls, namespace: str, *, resource_packages: Iterable[str] = ()) -> "SettingsBuilder":
        """:meth:`add_default_locations` 済みのビルダーを返す。"""

        return cls(namespace, resource_packages=resource_packages).add_default_locations()

    @classmethod
    def create_default(cls, *, resource_packages: Iterable[str] = ()) -> "SettingsBuilder":
        """システムプロパティとファイル・パッケージ同梱の既定値のみを積んだビルダー。"""

        return (
            cls(DEFAULT_NAMESPACE, resource_packages=resource_packages)
            .add_system_properties()
            .add_filesystem_and_classpath_locations()
        )

    @property
    def source_count(self) -> int:
        return len(self._sources)

    @property
    def sources(self) -> tuple[SettingsSource, ...]:
        return tuple(self._sources)

    def add_resource_package(self, package: str) -> "SettingsBuilder":
        if package not in self.resource_packages:
            self.resource_packages.append(package)
        return self

    def add(self, key: str, value: object) -> "SettingsBuilder":
        """
        単一のキーを追加する。

        直前のソースがこのビルダー自身の生成した固定レイヤで、かつ同じキーを
        まだ持っていない場合はそのレイヤにまとめる。
        """

        if not key:
            raise ValueError("設定キーは必須です。")
        if value is None:
            raise ValueError(f"設定 '{key}' の値に None は指定できません。")
        text = to_setting_string(value)
        last = self._sources[-1] if self._sources else None
        if isinstance(last, FixedSource) and last.owned and key not in last:
            last.put(key, text)
        else:
            self._sources.append(FixedSource({key: text}, owned=True, label="added"))
        return self

    def add_properties(self, values: Mapping[str, object]) -> "SettingsBuilder":
        return self.add_source(FixedSource(values))

    def add_file(self, path: Path | str, interval: RefreshInterval = RefreshInterval.FILES) -> "SettingsBuilder":
        return self.add_source(FileSource(path, interval))

    def add_url(
        self,
        url: str,
        interval: RefreshInterval = RefreshInterval.URLS,
        *,
        client_factory: Callable[[], httpx.Client] | None = None,
    ) -> "SettingsBuilder":
        return self.add_source(UrlSource(url, interval, client_factory=client_factory))

    def add_redis_hash(
        self,
        client: Any,
        key: str,
        interval: RefreshInterval = RefreshInterval.URLS,
    ) -> "SettingsBuilder":
        return self.add_source(RedisHashSource(client, key, interval))

    def add_settings(self, settings: Settings) -> "SettingsBuilder":
        return self.add_source(ExistingSettingsSource(settings))

    def add_builder(self, other: "SettingsBuilder") -> "SettingsBuilder":
        """別のビルダーのソースを、その優先順を保ったまま末尾に追加する。"""

        if other is self:
            raise ValueError("自分自身を追加することはできません。")
        for source in other.sources:
            if isinstance(source, FixedSource) and source.owned:
                source = FixedSource(source.load(), label="added")
            self._sources.append(source)
        return self

    def add_source(self, source: SettingsSource) -> "SettingsBuilder":
        self._sources.append(source)
        return self

    def add_env(self) -> "SettingsBuilder":
        return self.add_source(EnvironmentSource(self._environment_keys))

    def restrict_environment_properties(self, *keys: str) -> "SettingsBuilder":
        """環境変数由来のソースが公開するキーを制限する。既に追加済みのソースにも適用される。"""

        self._environment_keys = tuple(keys)
        for source in self._sources:
            if isinstance(source, EnvironmentSource):
                source.keys = self._environment_keys
        return self

    def add_system_properties(self) -> "SettingsBuilder":
        return self.add_source(SystemPropertiesSource())

    def add_generated_defaults_from_classpath(self) -> "SettingsBuilder":
        """コード上で宣言された既定値と、同梱の ``settings/generated-<ns>.properties`` を追加する。"""

        self.add_source(DeclaredDefaultsSource(self.namespace))
        for package in self.resource_packages:
            self.add_source(ResourceSource(package, f"{DEFAULT_RESOURCE_DIRECTORY}/{self._generated_file_name()}"))
        return self

    def add_defaults_from_classpath(self) -> "SettingsBuilder":
        """同梱の ``settings/<ns>.properties`` と ``settings/<ns>.yaml`` を追加する。"""

        for package in self.resource_packages:
            self.add_source(ResourceSource(package, f"{DEFAULT_RESOURCE_DIRECTORY}/{self._file_name()}"))
            self.add_source(ResourceSource(package, f"{DEFAULT_RESOURCE_DIRECTORY}/{self.namespace}.yaml"))
        return self

    def add_defaults_from_etc(self, directories: Sequence[Path] = ETC_DIRECTORIES) -> "SettingsBuilder":
        """最初に存在するディレクトリ（既定は ``/opt/local/etc``、なければ ``/etc``）のファイルを追加する。"""

        for directory in directories:
            if Path(directory).exists():
                return self._add_if_exists(Path(directory) / self._file_name())
        return self

    def add_defaults_from_user_home(self, home: Path | None = None) -> "SettingsBuilder":
        return self._add_if_exists((home or Path.home()) / self._file_name())

    def add_defaults_from_process_working_dir(self, directory: Path | None = None) -> "SettingsBuilder":
        return self._add_if_exists((directory or Path.cwd()) / self._file_name())

    def add_location(self, directory: Path | str) -> "SettingsBuilder":
        """
        ディレクトリ内の ``generated-<ns>.properties`` と ``<ns>.properties`` を追加する。

        Raises:
            ValueError: パスが存在し、かつディレクトリではない場合。
        """

        path = Path(directory)
        if path.exists() and not path.is_dir():
            raise ValueError(f"ディレクトリではありません: {path}")
        self.add_file(path / self._generated_file_name())
        return self.add_file(path / self._file_name())

    def add_filesystem_and_classpath_locations(self) -> "SettingsBuilder":
        return (
            self.add_generated_defaults_from_classpath()
            .add_defaults_from_classpath()
            .add_defaults_from_etc()
            .add_defaults_from_user_home()
            .add_defaults_from_process_working_dir()
        )

    def add_default_locations(self) -> "SettingsBuilder":
        return self.add_env().add_system_properties().add_filesystem_and_classpath_locations()

    def add_default_locations_and_parse_args(
        self,
        *args: str,
        shortcuts: Mapping[str, str] | None = None,
    ) -> "SettingsBuilder":
        """
        システムプロパティ、ファイル・パッケージ同梱の既定値、コマンドライン引数、
        環境変数の順に追加する。環境変数が最も優先される。
        """

        return (
            self.add_system_properties()
            .add_filesystem_and_classpath_locations()
            .parse_command_line_arguments(*args, shortcuts=shortcuts)
            .add_env()
        )

    def parse_command_line_arguments(
        self,
        *args: str,
        shortcuts: Mapping[str, str] | None = None,
    ) -> "SettingsBuilder":
        """
        ``--foo`` を ``foo=true``、``--foo 23`` を ``foo=23`` として追加する。

        ``shortcuts`` は 1 文字から長い名前への対応で、``-fb`` は ``--foo --bar`` と同じ。

        Raises:
            ConfigurationError: 未知の短縮オプションや、キーを伴わない値がある場合。
        """

        parsed = parse_arguments(args, shortcuts or {})
        if parsed:
            self.add_source(FixedSource(parsed, label="arguments"))
        return self

    def build(self) -> LayeredSettings:
        """
        Settings を構築する。

        再読み込み間隔が有効なソースは、戻り値が参照されている間だけ定期的に再読み込みされる。

        Raises:
            SettingsLoadError: いずれかのソースの初回読み込みに失敗した場合。
        """

        layers: list[Settings] = []
        refreshable: list[tuple[SettingsSource, PropertiesSettings]] = []
        for source in reversed(self._sources):
            if isinstance(source, ExistingSettingsSource):
                layers.append(source.settings)
                continue
            try:
                values = source.load()
            except Exception as exc:
                raise SettingsLoadError(f"設定ソース {source.describe()} の読み込みに失敗しました。") from exc
            layer = PropertiesSettings(values, description=source.describe())
            layers.append(layer)
            if source.interval.enabled:
                refreshable.append((source, layer))

        result = LayeredSettings(self.namespace, layers)
        for source, layer in refreshable:
            task = RefreshTask(source, layer, result)
            self._refresh_tasks.append(task)
            task.start()
        logger.debug("built settings for namespace=%s with %d layers", self.namespace, len(layers))
        return result

    def build_mutable(self) -> WritableSettings:
        return WritableSettings(self.namespace, self.build())

    def on_shutdown(self) -> Callable[[], None]:
        """このビルダーが開始した再読み込みをすべて停止する callable を返す。"""

        def _cancel_refresh() -> None:
            tasks, self._refresh_tasks = self._refresh_tasks, []
            for task in tasks:
                task.cancel()

        return _cancel_refresh

    def _add_if_exists(self, path: Path) -> "SettingsBuilder":
        if path.is_file():
            return self.add_file(path)
        logger.debug("not adding %s to settings for namespace %s because it does not exist", path, self.namespace)
        return self

    def _file_name(self) -> str:
        return _safe_file_stem(self.namespace) + DEFAULT_EXTENSION

    def _generated_file_name(self) -> str:
        return GENERATED_PREFIX + _safe_file_stem(self.namespace) + DEFAULT_EXTENSION

    def __repr__(self) -> str:
        lines = [f"SettingsBuilder[{self.namespace}]"]
        lines.extend(f"  {source.describe()}" for source in self._sources)
        return "\n".join(lines)


def parse_arguments(args: Sequence[str], shortcuts: Mapping[str, str]) -> dict[str, str]:
    """
    コマンドライン引数を辞書に変換する。

    Raises:
        ConfigurationError: 未知の短縮オプションや、キーを伴わない値がある場合。
    """

    result: dict[str, str] = {}
    pending: str | None = None
    for arg in args:
        if arg.startswith("--") and len(arg) > 2 and arg[2] != "-":
            if pending is not None:
                result[pending] = "true"
            pending = arg[2:]
        elif len(arg) >= 2 and arg[0] == "-" and arg[1] != "-":
            for character in arg[1:]:
                long_name = shortcuts.get(character)
                if long_name is None:
                    raise ConfigurationError(
                        f"Unknown short arg {character} - known args are {sorted(shortcuts)}"
                    )
                if pending is not None:
                    result[pending] = "true"
                pending = long_name
        else:
            if pending is None:
                raise ConfigurationError(f"Dangling argument {arg}")
            result[pending] = arg
            pending = None
    if pending is not None:
        result[pending] = "true"
    return result


def _safe_file_stem(namespace: str) -> str:
    return namespace.replace("/", "_").replace("\\", "_")
