"""Tests for configuration loading and the model registry."""

import pytest

from callsight.config import ModelRegistry, ModelSpec, Settings
from callsight.errors import BadRequest


def _settings(**overrides) -> Settings:
    values = {
        "openai_api_key": "test",
        "openai_base_url": "",
        "jina_api_key": "",
        "vector_index_api_key": "",
    }
    values.update(overrides)
    return Settings(**values)


class TestSettings:
    def test_defaults(self):
        settings = _settings()
        assert settings.openai_model == "gpt-4o-mini"
        assert settings.openai_temperature == 0.0
        assert settings.client_max_retries == 4
        assert settings.client_backoff_seconds == 1.0
        assert settings.analysis_max_concurrency == 4
        assert settings.embedding_provider == "openai"
        assert settings.calls_index_name == "calls"
        assert settings.products_index_name == "products"
        assert settings.related_top_k == 8
        assert settings.cluster_threshold == 0.8
        assert settings.cluster_limit == 1000
        assert settings.cluster_timeout_seconds == 30.0
        assert settings.product_analytics_limit == 100
        assert settings.output_dir.as_posix() == "output"

    def test_from_yaml_missing_file(self, tmp_path):
        settings = Settings.from_yaml(tmp_path / "nonexistent.yaml", openai_api_key="test")
        assert settings.openai_model == "gpt-4o-mini"

    def test_from_yaml_with_overrides(self, tmp_path):
        config_file = tmp_path / "test.yaml"
        config_file.write_text(
            "cluster_threshold: 0.65\n"
            "model_providers:\n"
            "  openai: [gpt-4o-mini]\n"
            "  groq: [llama-3.1-8b-instant]\n"
        )
        settings = Settings.from_yaml(config_file, openai_api_key="test", cluster_limit=50)
        assert settings.cluster_threshold == 0.65
        assert settings.cluster_limit == 50
        assert settings.model_providers["groq"] == ["llama-3.1-8b-instant"]

    def test_base_url_resolution_per_provider(self):
        settings = _settings(
            openai_base_url="https://proxy.example.com/v1",
            provider_base_urls={"groq": "https://api.groq.com/openai/v1/"},
        )
        assert settings.resolved_base_url("openai") == "https://proxy.example.com/v1/"
        assert settings.resolved_base_url("groq") == "https://api.groq.com/openai/v1/"
        assert settings.resolved_base_url("other") == ""

    def test_api_key_falls_back_to_openai_key(self):
        settings = _settings(provider_api_keys={"groq": " groq-key "})
        assert settings.resolved_api_key("groq") == "groq-key"
        assert settings.resolved_api_key("openai") == "test"

    def test_blank_namespace_is_none(self):
        settings = _settings()
        assert settings.namespace_or_none("  ") is None
        assert settings.namespace_or_none("prod") == "prod"


class TestModelRegistry:
    def test_from_settings_lists_every_provider_model(self):
        settings = _settings(
            model_providers={"openai": ["gpt-4o-mini", "gpt-4o"], "groq": ["llama-3"]}
        )
        registry = ModelRegistry.from_settings(settings)
        assert [spec.model_id for spec in registry.models] == ["gpt-4o-mini", "gpt-4o", "llama-3"]
        assert registry.providers() == ("openai", "groq")
        assert registry.default_model_id == "gpt-4o-mini"

    def test_default_model_is_registered_when_missing(self):
        settings = _settings(openai_model="gpt-4.1", model_providers={"groq": ["llama-3"]})
        registry = ModelRegistry.from_settings(settings)
        assert registry.models[0] == ModelSpec("gpt-4.1", "openai", "gpt-4.1")

    def test_resolve_defaults_and_rejects_unknown_ids(self):
        registry = ModelRegistry.from_settings(_settings())
        assert registry.resolve(None).model_id == "gpt-4o-mini"
        assert registry.resolve("  ").model_id == "gpt-4o-mini"
        assert registry.resolve("gpt-4o").model_id == "gpt-4o"
        with pytest.raises(BadRequest) as excinfo:
            registry.resolve("not-a-model")
        assert excinfo.value.details["modelId"] == "not-a-model"

    def test_models_for_filters_by_provider(self):
        settings = _settings(model_providers={"openai": ["gpt-4o-mini"], "groq": ["llama-3"]})
        registry = ModelRegistry.from_settings(settings)
        assert [spec.model_id for spec in registry.models_for(["groq"])] == ["llama-3"]
        assert registry.models_for(None) == registry.models
        assert registry.models_for(["nope"]) == ()

    def test_rejects_duplicate_ids(self):
        spec = ModelSpec("m", "openai", "m")
        with pytest.raises(ValueError, match="unique"):
            ModelRegistry(models=(spec, spec), default_model_id="m")

    def test_rejects_unregistered_default(self):
        with pytest.raises(ValueError, match="not registered"):
            ModelRegistry(models=(ModelSpec("m", "openai", "m"),), default_model_id="x")
