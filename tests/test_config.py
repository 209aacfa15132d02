"""Tests for configuration defaults, loading and derived endpoints."""

import json
from pathlib import Path

import pytest

from memchat.config import Config, load_config
from memchat.config.loader import save_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    import os

    for key in list(os.environ):
        if key.startswith("MEMCHAT_"):
            monkeypatch.delenv(key)


class TestDefaults:
    def test_memory_defaults(self):
        config = Config()
        assert config.memory.max_short_term_rounds == 6
        assert config.memory.summary_trigger_rounds == 10
        assert config.memory.min_summary_batch == 5

    def test_server_and_storage_defaults(self):
        config = Config()
        assert config.server.host == "127.0.0.1"
        assert config.server.port == 8787
        assert config.storage.backend == "file"
        assert config.storage.data_path == Path("vector_data")

    def test_embedding_defaults(self):
        config = Config()
        assert config.embedding.model == "text-embedding-ada-002"
        assert config.embedding.fallback_dimensions == 128
        assert config.embedding_endpoint() is None


class TestEmbeddingEndpoint:
    @pytest.mark.parametrize(
        ("api_base", "expected"),
        [
            ("https://api.example.com/v1/chat/completions", "https://api.example.com/v1/embeddings"),
            ("https://api.example.com/v1/chat/completions/", "https://api.example.com/v1/embeddings"),
            ("https://api.example.com/v1", "https://api.example.com/v1/embeddings"),
        ],
    )
    def test_derived_from_provider_base(self, api_base, expected):
        config = Config.model_validate({"provider": {"apiBase": api_base}})
        assert config.embedding_endpoint() == expected

    def test_explicit_embedding_base_wins(self):
        config = Config.model_validate({
            "provider": {"apiBase": "https://chat.example.com/v1"},
            "embedding": {"apiBase": "https://embed.example.com/v1"},
        })
        assert config.embedding_endpoint() == "https://embed.example.com/v1/embeddings"


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path: Path):
        config = load_config(tmp_path / "absent.json")
        assert config.memory.summary_trigger_rounds == 10

    def test_camel_case_file(self, tmp_path: Path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "memory": {"maxShortTermRounds": 3, "summaryTriggerRounds": 4},
            "storage": {"backend": "memory"},
            "server": {"port": 9000},
        }))
        config = load_config(path)
        assert config.memory.max_short_term_rounds == 3
        assert config.memory.summary_trigger_rounds == 4
        assert config.storage.backend == "memory"
        assert config.server.port == 9000

    def test_snake_case_file(self, tmp_path: Path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"memory": {"max_short_term_rounds": 2}}))
        assert load_config(path).memory.max_short_term_rounds == 2

    def test_invalid_json_falls_back_to_defaults(self, tmp_path: Path):
        path = tmp_path / "config.json"
        path.write_text("{broken")
        assert load_config(path).server.port == 8787

    def test_invalid_values_fall_back_to_defaults(self, tmp_path: Path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"storage": {"backend": "sqlite"}}))
        assert load_config(path).storage.backend == "file"

    def test_save_then_load(self, tmp_path: Path):
        path = tmp_path / "nested" / "config.json"
        config = Config()
        config.memory.max_short_term_rounds = 9
        save_config(config, path)

        data = json.loads(path.read_text())
        assert data["memory"]["maxShortTermRounds"] == 9
        assert load_config(path).memory.max_short_term_rounds == 9


class TestEnvironment:
    def test_env_overrides_nested_fields(self, monkeypatch):
        monkeypatch.setenv("MEMCHAT_SERVER__PORT", "9999")
        monkeypatch.setenv("MEMCHAT_MEMORY__SUMMARY_TRIGGER_ROUNDS", "20")
        config = Config()
        assert config.server.port == 9999
        assert config.memory.summary_trigger_rounds == 20

    def test_env_overrides_config_file(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "config.json"
        save_config(Config(), path)
        monkeypatch.setenv("MEMCHAT_PROVIDER__API_KEY", "sk-from-env-123456")
        monkeypatch.setenv("MEMCHAT_MEMORY__SUMMARY_TRIGGER_ROUNDS", "3")

        config = load_config(path)

        assert config.provider.api_key == "sk-from-env-123456"
        assert config.memory.summary_trigger_rounds == 3

    def test_file_values_survive_unrelated_env(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "memory": {"maxShortTermRounds": 3, "summaryTriggerRounds": 4},
            "provider": {"apiBase": "https://api.example.com/v1"},
        }))
        monkeypatch.setenv("MEMCHAT_MEMORY__SUMMARY_TRIGGER_ROUNDS", "12")

        config = load_config(path)

        assert config.memory.max_short_term_rounds == 3
        assert config.memory.summary_trigger_rounds == 12
        assert config.provider.api_base == "https://api.example.com/v1"

    def test_env_applies_when_file_is_invalid(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        monkeypatch.setenv("MEMCHAT_SERVER__PORT", "9100")
        assert load_config(path).server.port == 9100

    def test_explicit_kwargs_beat_env(self, monkeypatch):
        monkeypatch.setenv("MEMCHAT_SERVER__PORT", "9999")
        config = Config(server={"port": 7000})
        assert config.server.port == 7000
