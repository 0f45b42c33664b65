"""Configuration management and the model registry."""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass
from pathlib import Path

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from callsight.errors import BadRequest


class Settings(BaseSettings):
    """Service settings, loaded from env vars and optionally overridden by a YAML config file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API keys
    openai_api_key: str = ""
    jina_api_key: str = ""
    vector_index_api_key: str = ""

    # Generation
    openai_base_url: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_temperature: float = 0.0
    model_providers: dict[str, list[str]] = Field(
        default_factory=lambda: {"openai": ["gpt-4o-mini", "gpt-4o", "gpt-4.1-mini"]}
    )
    provider_base_urls: dict[str, str] = Field(default_factory=dict)
    provider_api_keys: dict[str, str] = Field(default_factory=dict)
    client_max_retries: int = 4
    client_backoff_seconds: float = 1.0
    analysis_max_concurrency: int = 4

    # Embeddings
    embedding_provider: str = "openai"
    embedding_model: str = "text-embedding-3-small"

    # Vector index
    vector_index_control_url: str = "https://api.pinecone.io"
    calls_index_name: str = "calls"
    calls_namespace: str = ""
    products_index_name: str = "products"
    products_namespace: str = ""
    related_top_k: int = 8

    # Analytics
    cluster_threshold: float = 0.8
    cluster_limit: int = 1000
    cluster_timeout_seconds: float = 30.0
    cluster_max_intents: int = 5000
    product_analytics_limit: int = 100

    # Paths
    output_dir: Path = Field(default=Path("output"))

    @classmethod
    def from_yaml(cls, config_path: str | Path, **overrides) -> "Settings":
        """Load settings from a YAML config file, with env vars and overrides applied on top."""
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                yaml_config = yaml.safe_load(f) or {}
        else:
            yaml_config = {}
        merged = {**yaml_config, **overrides}
        return cls(**merged)

    def resolved_base_url(self, provider: str) -> str:
        """Resolve the OpenAI-compatible base URL for one provider."""

        candidate = self.provider_base_urls.get(provider, "").strip()
        if not candidate and provider == "openai":
            candidate = self.openai_base_url.strip()
        if not candidate:
            return ""
        return f"{candidate.rstrip('/')}/"

    def resolved_api_key(self, provider: str) -> str:
        """Resolve the API key for one provider, falling back to the OpenAI key."""

        explicit = self.provider_api_keys.get(provider, "").strip()
        if explicit:
            return explicit
        return self.openai_api_key.strip()

    def namespace_or_none(self, namespace: str) -> str | None:
        return namespace.strip() or None


@dataclass(frozen=True, slots=True)
class ModelSpec:
    """One generation model a caller may select."""

    model_id: str
    provider: str
    display_name: str


@dataclass(frozen=True, slots=True)
class ModelRegistry:
    """Immutable provider/model table handed to the analyzer at construction."""

    models: tuple[ModelSpec, ...]
    default_model_id: str

    def __post_init__(self) -> None:
        if not self.models:
            raise ValueError("ModelRegistry requires at least one model.")
        ids = [spec.model_id for spec in self.models]
        if len(set(ids)) != len(ids):
            raise ValueError("ModelRegistry model ids must be unique.")
        if self.default_model_id not in ids:
            raise ValueError(f"Default model '{self.default_model_id}' is not registered.")

    @classmethod
    def from_settings(cls, settings: Settings) -> ModelRegistry:
        models: list[ModelSpec] = []
        for provider, model_ids in settings.model_providers.items():
            for model_id in model_ids:
                models.append(
                    ModelSpec(model_id=model_id, provider=provider, display_name=model_id)
                )
        default_model_id = settings.openai_model
        if default_model_id not in {spec.model_id for spec in models}:
            default_spec = ModelSpec(
                model_id=default_model_id,
                provider="openai",
                display_name=default_model_id,
            )
            models.insert(0, default_spec)
        return cls(models=tuple(models), default_model_id=default_model_id)

    def resolve(self, model_id: str | None) -> ModelSpec:
        """Return the spec for ``model_id`` (default when empty)."""

        wanted = (model_id or "").strip() or self.default_model_id
        for spec in self.models:
            if spec.model_id == wanted:
                return spec
        raise BadRequest(
            f"Unknown model id '{wanted}'.",
            details={"modelId": wanted, "available": [spec.model_id for spec in self.models]},
        )

    def providers(self) -> tuple[str, ...]:
        seen: list[str] = []
        for spec in self.models:
            if spec.provider not in seen:
                seen.append(spec.provider)
        return tuple(seen)

    def models_for(self, providers: Collection[str] | None = None) -> tuple[ModelSpec, ...]:
        """Models for the given providers, or every model when ``providers`` is None."""

        if providers is None:
            return self.models
        wanted = set(providers)
        return tuple(spec for spec in self.models if spec.provider in wanted)
