from pathlib import Path

import pytest

from marketgraph.infrastructure.config import settings


@pytest.fixture
def fresh_config(tmp_path, monkeypatch):
    """Loads configuration from a temporary YAML file and no .env file."""
    def _load(yaml_text: str = "") -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml_text)
        monkeypatch.setattr(settings, "find_dotenv_path", lambda: None)
        settings.load_configuration(config_file=config_file, force=True)
    yield _load
    settings.load_configuration(config_file=tmp_path / "absent.yaml", force=True)


def test_yaml_nested_keys_are_flattened(fresh_config):
    fresh_config("client_id: from-yaml\nlimiter:\n  profile: prod\nretry:\n  max_retries: 5\n")
    assert settings.get_client_id() == "from-yaml"
    assert settings.get_limiter_profile() == "prod"
    assert settings.get_backoff_policy() == {"max_retries": 5}


def test_environment_overrides_yaml(fresh_config, monkeypatch):
    fresh_config("client_id: from-yaml\nhttp:\n  timeout: 10\n")
    monkeypatch.setenv("MARKETGRAPH_CLIENT_ID", "from-env")
    monkeypatch.setenv("MARKETGRAPH_HTTP_TIMEOUT", "2.5")
    assert settings.get_client_id() == "from-env"
    assert settings.get_http_timeout() == 2.5


def test_test_config_overrides_everything(fresh_config, monkeypatch):
    fresh_config("base_url: https://yaml.example/\n")
    monkeypatch.setenv("MARKETGRAPH_BASE_URL", "https://env.example")
    settings.set_config_for_testing({"base_url": "https://test.example/"})
    assert settings.get_base_url() == "https://test.example"
    settings.clear_test_config()
    assert settings.get_base_url() == "https://env.example"


def test_defaults(fresh_config):
    fresh_config()
    assert settings.get_client_id() is None
    assert settings.get_base_url() == settings.DEFAULT_BASE_URL
    assert settings.get_api_version() == "v1"
    assert settings.get_token_store_path() is None
    assert settings.get_limiter_profile() == "dev"
    assert settings.get_backoff_policy() == {}
    assert settings.get_http_timeout() == settings.DEFAULT_HTTP_TIMEOUT_S


def test_unknown_limiter_profile_falls_back_to_dev(fresh_config, monkeypatch):
    fresh_config()
    monkeypatch.setenv("MARKETGRAPH_LIMITER_PROFILE", "turbo")
    assert settings.get_limiter_profile() == "dev"


def test_token_store_path_expands_user(fresh_config, monkeypatch):
    fresh_config("token_store:\n  path: ~/tokens/marketgraph.json\n")
    assert settings.get_token_store_path() == Path("~/tokens/marketgraph.json").expanduser()


def test_env_var_name():
    assert settings.env_var_name("limiter.profile") == "MARKETGRAPH_LIMITER_PROFILE"


def test_env_values_are_coerced(monkeypatch):
    monkeypatch.setenv("MARKETGRAPH_FLAG", "true")
    monkeypatch.setenv("MARKETGRAPH_COUNT", "3")
    assert settings.get_config("flag") is True
    assert settings.get_config("count") == 3
