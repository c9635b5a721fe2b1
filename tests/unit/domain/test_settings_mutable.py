from __future__ import annotations

from domain.settings import PropertiesSettings, WritableSettings


def test_written_values_shadow_base_and_clear_hides_keys() -> None:
    base = PropertiesSettings({"a": "1", "b": "2"})
    settings = WritableSettings("app", base)

    settings.set_int("a", 10)
    settings.set_bool("flag", True)
    settings.set_int_list("ids", [1, 2])
    settings.clear("b")

    assert settings.get_int("a") == 10
    assert settings.get_string("flag") == "true"
    assert settings.get_string("ids") == "1,2"
    assert settings.get_string("b") is None
    assert settings.all_keys() == {"a", "flag", "ids"}
    assert base.get_string("a") == "1"


def test_setting_none_clears_and_setting_again_restores() -> None:
    settings = WritableSettings(None, PropertiesSettings({"a": "1"}))

    settings.set_string("a", None)
    assert "a" not in settings

    settings.set_float("a", 2.5)
    assert settings.get_float("a") == 2.5
    assert settings.namespace == "defaults"


def test_set_settings_replaces_base_but_keeps_writes() -> None:
    settings = WritableSettings("app", PropertiesSettings({"a": "1", "b": "2"}))
    settings.set_string("a", "mine")

    settings.set_settings(PropertiesSettings({"b": "new"}))

    assert settings.get_string("a") == "mine"
    assert settings.get_string("b") == "new"
