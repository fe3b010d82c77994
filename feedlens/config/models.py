"""Configuration models."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class PostgresConfig(BaseModel):
    """Postgres configuration."""

    host: str = Field("localhost", description="Database host")
    port: int = Field(5432, description="Database port")
    database: str = Field("feedlens", description="Database name")
    user: str = Field("feedlens_user", description="Database user")
    password: Optional[str] = Field(None, description="Database password")
    password_env: Optional[str] = Field(None, description="Environment variable for password")


class SchedulerConfig(BaseModel):
    """Feed fetch scheduler configuration."""

    max_concurrent_fetches: int = Field(3, description="Concurrent feed fetches", ge=1, le=32)
    fetch_timeout_seconds: float = Field(30.0, description="Per-request fetch timeout", gt=0)
    update_interval_minutes: int = Field(60, description="Minutes between periodic updates", ge=1)
    proxy_url: Optional[str] = Field(None, description="Global proxy for feed requests")
    user_agent: str = Field("feedlens/0.1 (+feed aggregator)", description="HTTP User-Agent")


class SandboxConfig(BaseModel):
    """Extraction sandbox configuration."""

    timeout_seconds: float = Field(10.0, description="Wall-clock limit for parsing scripts", gt=0)


class EmbeddingConfig(BaseModel):
    """Embedding provider and queue configuration."""

    provider: str = Field("openai", description="Embedding provider (openai, custom, ollama, local)")
    model: str = Field("text-embedding-3-small", description="Embedding model name")
    base_url: Optional[str] = Field(None, description="Base URL for the API")
    api_key_env: Optional[str] = Field(None, description="Environment variable for API key")
    api_key: Optional[str] = Field(None, description="API key (prefer api_key_env)")
    max_concurrent_tasks: int = Field(2, description="Concurrent embedding tasks", ge=1, le=32)
    max_retries: int = Field(3, description="Failures before a record is marked failed", ge=1, le=10)
    max_text_chars: int = Field(8000, description="Characters of record text to embed", ge=100)
    inference_timeout_seconds: float = Field(
        120.0, description="Local inference round-trip timeout", gt=0
    )
    cache_dir: str = Field("~/.cache/feedlens/models", description="Local model cache directory")

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Validate that the provider is known."""
        allowed = {"openai", "custom", "ollama", "local"}
        if v not in allowed:
            raise ValueError(f"Unknown embedding provider {v!r}, expected one of {sorted(allowed)}")
        return v


class VectorStoreConfig(BaseModel):
    """Vector store configuration."""

    path: Optional[str] = Field("~/.local/share/feedlens/vectors", description="Persistent Chroma path")
    host: Optional[str] = Field(None, description="Chroma server host (overrides path)")
    port: int = Field(8000, description="Chroma server port")
    collection: str = Field("records", description="Collection name")
    distance: str = Field("cosine", description="Distance space (cosine, l2, ip)")


class ConfigModel(BaseModel):
    """Main configuration model."""

    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    vector_store: VectorStoreConfig = Field(default_factory=VectorStoreConfig)


class SourceConfig(BaseModel):
    """Source configuration from sources.yaml."""

    name: str = Field(..., description="Source name")
    url: str = Field(..., description="Feed or page URL")
    proxy_override: Optional[str] = Field(None, description="Proxy used instead of the global one")
    parsing_script: Optional[str] = Field(None, description="Custom extraction script")
    enabled: bool = Field(True, description="Whether source is enabled")
