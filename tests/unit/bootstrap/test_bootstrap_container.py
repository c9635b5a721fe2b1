from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from application import observability
from bootstrap import BootstrapContainer, BuilderSettingsLoader
from domain.settings import Settings, SettingsLoadError


class StaticLoader:
    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def load(self) -> Settings:
        return self._settings


class RecordingConfigurator:
    def __init__(self, name: str, calls: list[str]) -> None:
        self._name = name
        self._calls = calls

    def configure(self, settings: Settings) -> None:
        self._calls.append(self._name)


def test_initialize_loads_settings_then_configures_logging_and_metrics() -> None:
    calls: list[str] = []
    requested: list[str] = []
    settings = Settings.from_mapping({"a": "1", "b": "2"})
    recorder = MagicMock()
    observability.use_metrics_recorder(recorder)

    def loader_factory(namespace: str) -> StaticLoader:
        requested.append(namespace)
        return StaticLoader(settings)

    container = BootstrapContainer(
        settings_loader_factory=loader_factory,
        logging_configurator=RecordingConfigurator("logging", calls),
        metrics_configurator=RecordingConfigurator("metrics", calls),
        namespace="app",
    )
    try:
        context = container.initialize()
    finally:
        observability.reset_observability()

    assert requested == ["app"]
    assert calls == ["logging", "metrics"]
    assert context.namespace == "app"
    assert context.settings is settings
    recorder.set_settings_keys.assert_called_once_with("app", 2)


def test_builder_settings_loader_layers_files_arguments_and_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    config = tmp_path / "extra.properties"
    config.write_text("from.file=file\nshared=file\n", encoding="utf-8")
    monkeypatch.setenv("shared", "env")
    loader = BuilderSettingsLoader(
        "app",
        resource_packages=(),
        files=[config],
        args=["--from.args", "args", "-s", "args"],
        shortcuts={"s": "shared"},
    )

    settings = loader.load()
    assert loader.builder is not None
    loader.builder.on_shutdown()()

    assert settings.get_string("from.file") == "file"
    assert settings.get_string("from.args") == "args"
    assert settings.get_string("shared") == "env"


def test_builder_settings_loader_reports_unreadable_sources(tmp_path: Path) -> None:
    broken = tmp_path / "broken.properties"
    broken.write_text("bad=\\uZZZZ\n", encoding="utf-8")

    with pytest.raises(SettingsLoadError):
        BuilderSettingsLoader("app", resource_packages=(), files=[broken]).load()
