"""
ブートストラップ関連の公開API。
"""

from .config_loader import BuilderSettingsLoader, LoggingConfigModel, MetricsConfigModel
from .container import (
    BootstrapContainer,
    BootstrapContext,
    BootstrapError,
    InvalidConfigurationError,
    LoggingConfigurator,
    MetricsConfigurator,
    MissingConfigurationError,
    SettingsLoader,
)
from .dependencies import Dependencies, DependenciesBuilder
from .deployment import DeploymentMode
from .logging_setup import DictConfigLoggingConfigurator
from .metrics_setup import MetricsConfiguratorRegistry, NoopMetricsConfigurator, PrometheusMetricsConfigurator
from .shutdown import Phase, ShutdownHookRegistry

__all__ = [
    "BootstrapContainer",
    "BootstrapContext",
    "BootstrapError",
    "BuilderSettingsLoader",
    "Dependencies",
    "DependenciesBuilder",
    "DeploymentMode",
    "DictConfigLoggingConfigurator",
    "InvalidConfigurationError",
    "LoggingConfigModel",
    "LoggingConfigurator",
    "MetricsConfigModel",
    "MetricsConfigurator",
    "MetricsConfiguratorRegistry",
    "MissingConfigurationError",
    "NoopMetricsConfigurator",
    "Phase",
    "PrometheusMetricsConfigurator",
    "SettingsLoader",
    "ShutdownHookRegistry",
]
