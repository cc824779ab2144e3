"""
Configuration Management Module
统一配置管理
"""
from .settings import (
    Settings,
    JGISettings,
    ExtractionSettings,
    StorageSettings,
    AnalyticsSettings,
    GeneralSettings,
    get_settings,
)

__all__ = [
    "Settings",
    "JGISettings",
    "ExtractionSettings",
    "StorageSettings",
    "AnalyticsSettings",
    "GeneralSettings",
    "get_settings",
]
