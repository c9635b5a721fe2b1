"""
設定ドメインの公開API。
"""

from .base import EMPTY, LayeredSettings, PrefixedSettings, PropertiesSettings, Settings, parse_duration
from .declarations import (
    DeclarationRegistry,
    SettingDeclaration,
    SettingTier,
    SettingType,
    declaration_registry,
    declare_setting,
    defaults,
)
from .errors import (
    ConfigurationError,
    InvalidSettingValueError,
    MissingSettingError,
    SettingsError,
    SettingsLoadError,
)
from .mutable import MutableSettings, WritableSettings
from .namespace import DEFAULT_NAMESPACE, namespace, namespace_of, validate_namespace
from .refresh_interval import RefreshInterval

__all__ = [
    "EMPTY",
    "DEFAULT_NAMESPACE",
    "ConfigurationError",
    "DeclarationRegistry",
    "InvalidSettingValueError",
    "LayeredSettings",
    "MissingSettingError",
    "MutableSettings",
    "PrefixedSettings",
    "PropertiesSettings",
    "RefreshInterval",
    "SettingDeclaration",
    "SettingTier",
    "SettingType",
    "Settings",
    "SettingsError",
    "SettingsLoadError",
    "WritableSettings",
    "declaration_registry",
    "declare_setting",
    "defaults",
    "namespace",
    "namespace_of",
    "parse_duration",
    "validate_namespace",
]
