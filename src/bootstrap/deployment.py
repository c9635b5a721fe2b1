"""
実行モード（本番／開発）の判定。
"""

from __future__ import annotations

import enum
import os
from typing import Mapping

from domain.settings import Settings
from infrastructure.settings import SystemProperties, system_properties

PRODUCTION_MODE_KEY = "productionMode"
UNIT_TEST_PROPERTY = "unit.test"


class DeploymentMode(enum.Enum):
    PRODUCTION = "production"
    DEVELOPMENT = "development"

    @property
    def is_production(self) -> bool:
        return self is DeploymentMode.PRODUCTION

    @staticmethod
    def from_settings(
        settings: Settings,
        *,
        properties: SystemProperties | None = None,
    ) -> "DeploymentMode":
        """``productionMode`` を設定、無ければシステムプロパティから読み取る。"""

        props = properties or system_properties
        raw = settings.get_string(PRODUCTION_MODE_KEY)
        if raw is None:
            raw = props.get(PRODUCTION_MODE_KEY)
        if raw is not None and raw.strip().lower() == "true":
            return DeploymentMode.PRODUCTION
        return DeploymentMode.DEVELOPMENT

    @staticmethod
    def in_unit_test(
        *,
        properties: SystemProperties | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> bool:
        props = properties or system_properties
        value = props.get(UNIT_TEST_PROPERTY)
        if value is not None and value != "false":
            return True
        env = os.environ if environ is None else environ
        return "PYTEST_CURRENT_TEST" in env
