"""Configuration module for QIC."""

from qic.config.settings import (
    BrowserConfig,
    DeletionConfig,
    DownloadConfig,
    OptimizerConfig,
    OutputConfig,
    QicSettings,
    RunConfig,
    get_settings,
    reload_settings,
)

__all__ = [
    "BrowserConfig",
    "DeletionConfig",
    "DownloadConfig",
    "OptimizerConfig",
    "OutputConfig",
    "QicSettings",
    "RunConfig",
    "get_settings",
    "reload_settings",
]
