"""Configuration management for feedlens."""

from .loader import Config, load_config, load_sources, save_config, save_sources
from .models import (
    ConfigModel,
    EmbeddingConfig,
    PostgresConfig,
    SandboxConfig,
    SchedulerConfig,
    SourceConfig,
    VectorStoreConfig,
)

__all__ = [
    "Config",
    "ConfigModel",
    "EmbeddingConfig",
    "PostgresConfig",
    "SandboxConfig",
    "SchedulerConfig",
    "SourceConfig",
    "VectorStoreConfig",
    "load_config",
    "load_sources",
    "save_config",
    "save_sources",
]
