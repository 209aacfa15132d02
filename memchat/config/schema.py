"""Configuration schema using Pydantic."""

import os
import re
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

_ENV_REF_RE = re.compile(r"^\$\{?([A-Za-z_][A-Za-z0-9_]*)\}?$")

# Parsed config file for the Config() call in progress; see Config.from_file_data.
_file_data: ContextVar[dict[str, Any] | None] = ContextVar("memchat_config_file", default=None)


def _resolve_env(value: str) -> str:
    """Resolve ``$VAR`` / ``${VAR}`` references; unset variables are returned unchanged."""
    if not value:
        return value
    m = _ENV_REF_RE.match(value.strip())
    if not m:
        return value
    return os.environ.get(m.group(1), value)


def _by_field_name(model: type[BaseModel], data: dict[str, Any]) -> dict[str, Any]:
    """Re-key camelCase file data by field name, descending into nested models.

    Environment values arrive keyed by field name; both sides must use the
    same keys for the deep merge to let the environment win.
    """
    fields: dict[str, tuple[str, FieldInfo]] = {}
    for name, field in model.model_fields.items():
        fields[name] = (name, field)
        if field.alias:
            fields[field.alias] = (name, field)

    out: dict[str, Any] = {}
    for key, value in data.items():
        name, field = fields.get(key, (key, None))
        annotation = field.annotation if field is not None else None
        if isinstance(value, dict) and isinstance(annotation, type) and issubclass(annotation, BaseModel):
            value = _by_field_name(annotation, value)
        out[name] = value
    return out


class JsonFileSettingsSource(PydanticBaseSettingsSource):
    """Settings source for an already-parsed ``config.json``."""

    def __init__(self, settings_cls: type[BaseSettings], data: dict[str, Any] | None):
        super().__init__(settings_cls)
        self.data = _by_field_name(settings_cls, data or {})

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return self.data.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        return dict(self.data)


class Base(BaseModel):
    """Base model that accepts both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ResilienceConfig(Base):
    """Outbound request policy for the completion client."""

    timeout: int = 120  # seconds, enforced by the HTTP client
    max_retries: int = 0


class ProviderConfig(Base):
    """Chat-completion provider configuration."""

    api_key: str = ""
    api_base: str | None = None
    model: str = "openai/gpt-4o-mini"
    max_tokens: int = 800
    temperature: float = 0.7
    extra_headers: dict[str, str] | None = None
    resilience: ResilienceConfig = Field(default_factory=ResilienceConfig)

    @property
    def resolved_api_key(self) -> str:
        return _resolve_env(self.api_key)


class EmbeddingConfig(Base):
    """Embedding endpoint configuration.

    ``api_base``/``api_key`` default to the provider's values when left empty.
    """

    enabled: bool = True
    model: str = "text-embedding-ada-002"
    api_base: str | None = None
    api_key: str = ""
    timeout: float = 30.0
    fallback_dimensions: int = 128


class MemoryConfig(Base):
    """Short-term window and summarization policy."""

    max_short_term_rounds: int = 6
    summary_trigger_rounds: int = 10
    min_summary_batch: int = 5
    summary_max_tokens: int = 800
    summary_temperature: float = 0.3


class StorageConfig(Base):
    """Storage backend selection.

    ``chroma`` talks to a Chroma server when ``chroma_host`` is set and keeps
    a local persistent database under ``data_dir`` otherwise.
    """

    backend: Literal["memory", "file", "chroma"] = "file"
    data_dir: str = "vector_data"
    chroma_host: str | None = None
    chroma_port: int = 8000
    messages_collection: str = "chat_messages"
    memories_collection: str = "long_term_memories"

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser()


class ServerConfig(Base):
    """HTTP server configuration."""

    host: str = "127.0.0.1"
    port: int = 8787


class LoggingConfig(Base):
    """Logging output configuration."""

    level: str = "INFO"
    json_output: bool = True


class Config(BaseSettings):
    """Root configuration for memchat."""

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="MEMCHAT_",
        env_nested_delimiter="__",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Earlier sources win: explicit kwargs, then MEMCHAT_* env, then the file.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonFileSettingsSource(settings_cls, _file_data.get()),
            file_secret_settings,
        )

    @classmethod
    def from_file_data(cls, data: dict[str, Any]) -> "Config":
        """Build a config from parsed file data with ``MEMCHAT_*`` env layered on top."""
        token = _file_data.set(data)
        try:
            return cls()
        finally:
            _file_data.reset(token)

    def embedding_endpoint(self) -> str | None:
        """Return the embeddings URL, derived from the provider base when not set."""
        base = self.embedding.api_base or self.provider.api_base
        if not base:
            return None
        base = base.rstrip("/")
        if base.endswith("/chat/completions"):
            base = base[: -len("/chat/completions")]
        return f"{base}/embeddings"

    def embedding_api_key(self) -> str:
        return _resolve_env(self.embedding.api_key) or self.provider.resolved_api_key
