from __future__ import annotations

from pathlib import Path

import pytest

from domain.settings import ConfigurationError, PropertiesSettings, RefreshInterval, SettingsLoadError
from infrastructure.settings import (
    ExistingSettingsSource,
    FileSource,
    FixedSource,
    SettingsBuilder,
    SettingsSource,
    parse_arguments,
)


class BrokenSource(SettingsSource):
    def load(self) -> dict[str, str]:
        raise OSError("unreachable")


def test_later_sources_take_precedence() -> None:
    settings = (
        SettingsBuilder.for_namespace("app")
        .add_properties({"a": "base", "b": "base"})
        .add_properties({"a": "override"})
        .build()
    )

    assert settings.get_string("a") == "override"
    assert settings.get_string("b") == "base"
    assert settings.namespace == "app"


def test_add_coalesces_distinct_keys_into_one_source() -> None:
    builder = SettingsBuilder("app").add("a", 1).add("b", True)

    assert builder.source_count == 1

    builder.add("a", 2)

    assert builder.source_count == 2
    assert builder.build().get_int("a") == 2

    builder.add_properties({"c": "3"}).add("d", "4")

    assert builder.source_count == 4


def test_add_rejects_empty_key_and_none_value() -> None:
    builder = SettingsBuilder("app")

    with pytest.raises(ValueError):
        builder.add("", "x")
    with pytest.raises(ValueError):
        builder.add("a", None)


def test_add_builder_copies_sources_and_rejects_self() -> None:
    inner = SettingsBuilder("inner").add("a", "inner")
    outer = SettingsBuilder("outer").add_properties({"a": "outer", "b": "outer"}).add_builder(inner)

    outer.add("c", "3")
    settings = outer.build()

    assert settings.get_string("a") == "inner"
    assert settings.get_string("b") == "outer"
    assert inner.build().get_string("c") is None
    copied = outer.sources[1]
    assert isinstance(copied, FixedSource) and not copied.owned
    with pytest.raises(ValueError):
        outer.add_builder(outer)


def test_add_settings_uses_existing_instance_as_layer() -> None:
    existing = PropertiesSettings({"a": "1"})
    settings = SettingsBuilder("app").add_settings(existing).build()

    existing.set_delegate({"a": "2"})

    assert isinstance(SettingsBuilder("app").add_settings(existing).sources[0], ExistingSettingsSource)
    assert settings.get_string("a") == "2"
    assert settings.layers[0] is existing


def test_build_wraps_load_failures() -> None:
    builder = SettingsBuilder("app").add_source(BrokenSource())

    with pytest.raises(SettingsLoadError) as excinfo:
        builder.build()

    assert isinstance(excinfo.value.__cause__, OSError)


def test_add_location_adds_generated_and_plain_files(tmp_path: Path) -> None:
    (tmp_path / "generated-app.properties").write_text("a=generated\nb=generated\n", encoding="utf-8")
    (tmp_path / "app.properties").write_text("a=plain\n", encoding="utf-8")
    builder = SettingsBuilder("app").add_location(tmp_path)

    settings = builder.build()
    builder.on_shutdown()()

    assert [type(source) for source in builder.sources] == [FileSource, FileSource]
    assert settings.get_string("a") == "plain"
    assert settings.get_string("b") == "generated"


def test_add_location_rejects_files(tmp_path: Path) -> None:
    not_a_directory = tmp_path / "file.txt"
    not_a_directory.write_text("", encoding="utf-8")

    with pytest.raises(ValueError):
        SettingsBuilder("app").add_location(not_a_directory)


def test_home_and_working_directory_files_are_added_only_when_present(tmp_path: Path) -> None:
    builder = SettingsBuilder("app")
    builder.add_defaults_from_user_home(tmp_path).add_defaults_from_process_working_dir(tmp_path)
    assert builder.source_count == 0

    (tmp_path / "app.properties").write_text("a=1\n", encoding="utf-8")
    builder.add_defaults_from_user_home(tmp_path)
    assert builder.source_count == 1


def test_etc_uses_first_existing_directory_only(tmp_path: Path) -> None:
    first = tmp_path / "first"
    second = tmp_path / "second"
    first.mkdir()
    second.mkdir()
    (second / "app.properties").write_text("a=1\n", encoding="utf-8")

    builder = SettingsBuilder("app").add_defaults_from_etc((tmp_path / "missing", first, second))

    assert builder.source_count == 0


def test_classpath_defaults_read_packaged_resources() -> None:
    builder = SettingsBuilder("defaults", resource_packages=["runtime"]).add_defaults_from_classpath()

    settings = builder.build()
    builder.on_shutdown()()

    assert settings.get_string("metrics.provider") == "noop"
    assert builder.source_count == 2


def test_command_line_arguments_are_highest_below_environment() -> None:
    builder = SettingsBuilder("app").add("port", "1").parse_command_line_arguments(
        "--port", "2", "--verbose", "-d", shortcuts={"d": "debug"}
    )

    settings = builder.build()

    assert settings.get_int("port") == 2
    assert settings.get_bool("verbose") is True
    assert settings.get_bool("debug") is True


def test_parse_arguments_expands_shortcut_groups() -> None:
    parsed = parse_arguments(["-ab", "value", "--flag", "--key", "v"], {"a": "alpha", "b": "beta"})

    assert parsed == {"alpha": "true", "beta": "value", "flag": "true", "key": "v"}


def test_parse_arguments_rejects_unknown_short_and_dangling_values() -> None:
    with pytest.raises(ConfigurationError) as unknown:
        parse_arguments(["-x"], {"a": "alpha"})
    with pytest.raises(ConfigurationError) as dangling:
        parse_arguments(["value"], {})

    assert str(unknown.value) == "Unknown short arg x - known args are ['a']"
    assert str(dangling.value) == "Dangling argument value"


def test_refreshable_sources_stop_on_shutdown(tmp_path: Path) -> None:
    interval = RefreshInterval("test-files", 3600)
    builder = SettingsBuilder("app").add_file(tmp_path / "app.properties", interval)

    builder.build()
    stop = builder.on_shutdown()
    tasks = list(builder._refresh_tasks)
    stop()

    assert len(tasks) == 1
    assert tasks[0].cancelled is True


def test_restrict_environment_properties_applies_to_existing_sources(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SETTINGS_TEST_KEEP", "yes")
    monkeypatch.setenv("SETTINGS_TEST_DROP", "no")

    settings = SettingsBuilder("app").add_env().restrict_environment_properties("SETTINGS_TEST_KEEP").build()

    assert settings.all_keys() == {"SETTINGS_TEST_KEEP"}


def test_build_mutable_and_repr() -> None:
    builder = SettingsBuilder("app").add("a", "1")

    mutable = builder.build_mutable()
    mutable.set_string("a", "2")

    assert mutable.get_string("a") == "2"
    assert repr(builder).splitlines() == ["SettingsBuilder[app]", "  added['a']"]
