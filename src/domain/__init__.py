"""
ドメイン層のパッケージ初期化。
"""

from .registry import AbstractRegistry, Registerable, RegistryFrozenError
from .settings import (
    DEFAULT_NAMESPACE,
    LayeredSettings,
    MutableSettings,
    PropertiesSettings,
    RefreshInterval,
    Settings,
    WritableSettings,
    namespace,
)

__all__ = [
    "AbstractRegistry",
    "DEFAULT_NAMESPACE",
    "LayeredSettings",
    "MutableSettings",
    "PropertiesSettings",
    "RefreshInterval",
    "Registerable",
    "RegistryFrozenError",
    "Settings",
    "WritableSettings",
    "namespace",
]
