from __future__ import annotations

from domain.settings import Settings
from bootstrap import DeploymentMode
from infrastructure.settings import SystemProperties


def test_mode_comes_from_settings_before_system_properties() -> None:
    properties = SystemProperties()
    properties.set("productionMode", "true")

    assert DeploymentMode.from_settings(Settings.from_mapping({}), properties=properties) is DeploymentMode.PRODUCTION
    assert (
        DeploymentMode.from_settings(Settings.from_mapping({"productionMode": "false"}), properties=properties)
        is DeploymentMode.DEVELOPMENT
    )
    assert DeploymentMode.from_settings(Settings.from_mapping({"productionMode": " TRUE "})).is_production is True
    assert DeploymentMode.from_settings(Settings.from_mapping({}), properties=SystemProperties()).is_production is False


def test_in_unit_test_checks_property_then_environment() -> None:
    properties = SystemProperties()

    assert DeploymentMode.in_unit_test(properties=properties, environ={}) is False
    assert DeploymentMode.in_unit_test(properties=properties, environ={"PYTEST_CURRENT_TEST": "x"}) is True

    properties.set("unit.test", "yes")
    assert DeploymentMode.in_unit_test(properties=properties, environ={}) is True

    properties.set("unit.test", "false")
    assert DeploymentMode.in_unit_test(properties=properties, environ={}) is False
