"""
設定ソースと SettingsBuilder の公開API。
"""

from .builder import SettingsBuilder, parse_arguments
from .codecs import SettingsFormatError, dump_properties, flatten_yaml, parse_properties
from .refresh import RefreshTask
from .shortcuts import ShortcutsBuilder
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
from .system_properties import SystemProperties, system_properties

__all__ = [
    "DeclaredDefaultsSource",
    "EnvironmentSource",
    "ExistingSettingsSource",
    "FileSource",
    "FixedSource",
    "RedisHashSource",
    "RefreshTask",
    "ResourceSource",
    "SettingsBuilder",
    "SettingsFormatError",
    "SettingsSource",
    "ShortcutsBuilder",
    "SystemProperties",
    "SystemPropertiesSource",
    "UrlSource",
    "dump_properties",
    "flatten_yaml",
    "parse_arguments",
    "parse_properties",
    "system_properties",
]
