import pytest

from opinionmap.config import Config, ConfigModel, default_config_path, load_config, save_config


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_empty_file_uses_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")

    config = load_config(path)

    assert config.clustering.k_min == 5
    assert config.clustering.k_max == 12
    assert config.clustering.confidence_threshold == 0.2
    assert config.sampling.default_sample_size == 10000
    assert config.vectorization.embed_batch_size == 100
    assert config.reduction.target_max == 100.0


def test_save_and_load(tmp_path):
    path = tmp_path / "nested" / "config.yaml"
    original = ConfigModel(clustering={"k": 6, "seed": 42}, llm={"provider": "mock"})

    save_config(original, path)
    loaded = load_config(path)

    assert loaded == original


def test_invalid_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("clustering: [unclosed")
    with pytest.raises(ValueError, match="Invalid YAML"):
        load_config(path)


@pytest.mark.parametrize("body", [
    "clustering:\n  k_min: 9\n  k_max: 6\n",
    "reduction:\n  target_min: 10\n  target_max: 5\n",
    "clustering:\n  confidence_threshold: 1.5\n",
])
def test_invalid_values(tmp_path, body):
    path = tmp_path / "config.yaml"
    path.write_text(body)
    with pytest.raises(ValueError, match="Invalid configuration"):
        load_config(path)


def test_default_path_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("OPINIONMAP_CONFIG", str(tmp_path / "custom.yaml"))
    assert default_config_path() == tmp_path / "custom.yaml"
    assert Config().config_path == tmp_path / "custom.yaml"


def test_secrets_resolved_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    save_config(
        ConfigModel(postgres={"password_env": "TEST_DB_PASSWORD"}, llm={"api_key_env": "TEST_LLM_KEY"}),
        path,
    )
    monkeypatch.setenv("TEST_DB_PASSWORD", "secret")
    monkeypatch.setenv("TEST_LLM_KEY", "sk-test")

    config = Config(path)

    assert config.get_db_config()["password"] == "secret"
    assert config.get_llm_config()["api_key"] == "sk-test"


def test_explicit_api_key_wins(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "from-env")
    config = Config.from_model(ConfigModel(embedding={"api_key": "explicit"}))
    assert config.get_embedding_config()["api_key"] == "explicit"
