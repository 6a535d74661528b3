"""
Tests for configuration helpers and component factories.
"""

from codepilot.core import config
from codepilot.vector.embeddings import DeterministicHashEmbedding, OllamaEmbedding


def test_generation_options_forward_stop_sequences():
    options = config.get_generation_options()

    assert options["num_predict"] == config.GEN_NUM_PREDICT
    assert "```" in options["stop"]
    options["stop"].append("mutated")
    assert "mutated" not in config.GEN_STOP_SEQUENCES


def test_embedding_provider_selection(monkeypatch):
    monkeypatch.setattr(config, "EMBED_PROVIDER", "hash")
    monkeypatch.setattr(config, "EMBED_DIM", 32)
    provider = config.get_embedding_provider()
    assert isinstance(provider, DeterministicHashEmbedding)
    assert provider.get_dimension() == 32

    monkeypatch.setattr(config, "EMBED_PROVIDER", "ollama")
    assert isinstance(config.get_embedding_provider(), OllamaEmbedding)


def test_vector_store_uses_configured_path(monkeypatch, tmp_path):
    path = tmp_path / "nested" / "store.json"
    monkeypatch.setattr(config, "VECTOR_STORE_PATH", str(path))

    store = config.get_vector_store(DeterministicHashEmbedding(dimension=8))

    assert store.path == path
    assert path.parent.is_dir()
    assert len(store) == 0


def test_validate_config_flags_bad_values(monkeypatch):
    monkeypatch.setattr(config, "EMBED_PROVIDER", "openai")
    monkeypatch.setattr(config, "ALLOWED_COMMANDS", [])

    issues = config.validate_config()

    assert any("EMBED_PROVIDER" in issue for issue in issues)
    assert any("ALLOWED_COMMANDS" in issue for issue in issues)


def test_command_guard_uses_allow_list(monkeypatch):
    monkeypatch.setattr(config, "ALLOWED_COMMANDS", ["git status"])

    guard = config.get_command_guard()

    assert guard.is_allowed("git status -s")
    assert not guard.is_allowed("git push")
