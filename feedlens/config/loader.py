"""Configuration loader."""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from .models import ConfigModel, SourceConfig

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "feedlens" / "config.yaml"


def _with_secret(section: Dict[str, Any], key: str, env_key: str) -> Dict[str, Any]:
    """Fill ``key`` from the environment variable named by ``env_key``, if set."""
    env_name = section.get(env_key)
    if env_name and os.environ.get(env_name):
        section[key] = os.environ[env_name]
    return section


def _read_yaml(path: Path, kind: str) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"{kind.capitalize()} file not found: {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {kind} file: {e}")

    return data or {}


class Config:
    """Configuration manager.

    The config path defaults to ``$FEEDLENS_CONFIG`` and then to
    ``~/.config/feedlens/config.yaml``; ``sources.yaml`` lives next to it.
    """

    def __init__(self, config_path: Optional[Path] = None) -> None:
        """Initialize config manager."""
        if config_path is None:
            env_path = os.environ.get("FEEDLENS_CONFIG")
            config_path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH
        self.config_path = config_path
        self._config: Optional[ConfigModel] = None

    @classmethod
    def from_model(cls, model: ConfigModel, config_path: Optional[Path] = None) -> "Config":
        """Wrap an already-built config model."""
        config = cls(config_path)
        config._config = model
        return config

    @property
    def config(self) -> ConfigModel:
        """Get loaded config."""
        if self._config is None:
            self._config = load_config(self.config_path)
        return self._config

    @property
    def sources_path(self) -> Path:
        return self.config_path.parent / "sources.yaml"

    @property
    def model_cache_dir(self) -> Path:
        """Local model cache directory, created on demand."""
        path = Path(self.config.embedding.cache_dir).expanduser()
        path.mkdir(parents=True, exist_ok=True)
        return path

    def get_db_config(self) -> Dict[str, Any]:
        """Postgres settings with the password resolved."""
        return _with_secret(self.config.postgres.model_dump(), "password", "password_env")

    def get_embedding_config(self) -> Dict[str, Any]:
        """Embedding settings with the API key resolved."""
        return _with_secret(self.config.embedding.model_dump(), "api_key", "api_key_env")


def load_config(config_path: Path) -> ConfigModel:
    """Load configuration from YAML file."""
    data = _read_yaml(config_path, "config")
    try:
        return ConfigModel(**data)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration: {e}")


def load_sources(sources_path: Path) -> List[SourceConfig]:
    """Load sources from YAML file."""
    entries = _read_yaml(sources_path, "sources").get("sources") or []

    sources = []
    for entry in entries:
        try:
            sources.append(SourceConfig(**entry))
        except ValidationError as e:
            raise ValueError(f"Invalid source {entry.get('name', 'unknown')}: {e}")
    return sources


def save_config(config: ConfigModel, config_path: Path) -> None:
    """Save configuration to YAML file."""
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w") as f:
        yaml.dump(config.model_dump(), f, default_flow_style=False, sort_keys=False)


def save_sources(sources: List[SourceConfig], sources_path: Path) -> None:
    """Save sources to YAML file."""
    sources_path.parent.mkdir(parents=True, exist_ok=True)

    data = {"sources": [s.model_dump(exclude_none=True) for s in sources]}
    with open(sources_path, "w") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
