import pytest

from chat_core.config.settings import Settings, load_client_config


def test_settings_normalise_urls():
    cfg = Settings(
        api_base_url="https://api.example.com/",
        oauth_client_id="  ",
        oauth_redirect_uri="https://app.example.com/",
    )
    assert cfg.api_base_url == "https://api.example.com"
    assert cfg.oauth_client_id is None
    assert cfg.oauth_redirect_uri == "https://app.example.com/"


def test_settings_yaml_source(monkeypatch, tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("api_base_url: https://yaml.example.com\nhttp_timeout: 5\n", encoding="utf-8")
    monkeypatch.setenv("CHAT_CONFIG_FILE", str(path))
    monkeypatch.delenv("API_BASE_URL", raising=False)
    monkeypatch.delenv("HTTP_TIMEOUT", raising=False)
    cfg = Settings()
    assert cfg.api_base_url == "https://yaml.example.com"
    assert cfg.http_timeout == 5.0


def test_client_config_skips_non_mapping_file(monkeypatch, tmp_path):
    bad = tmp_path / "bad.yaml"
    bad.write_text("- just\n- a list\n", encoding="utf-8")
    monkeypatch.setenv("CHAT_CONFIG_FILE", str(bad))
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.yaml").write_text("oauth_client_id: from-cwd\n", encoding="utf-8")
    with pytest.warns(UserWarning, match="top level must be a mapping"):
        data = load_client_config()
    assert data == {"oauth_client_id": "from-cwd"}


def test_client_config_empty_file_is_used(monkeypatch, tmp_path):
    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding="utf-8")
    monkeypatch.setenv("CHAT_CONFIG_FILE", str(empty))
    assert load_client_config() == {}


def test_env_overrides_client_config(monkeypatch, tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("api_base_url: https://yaml.example.com\n", encoding="utf-8")
    monkeypatch.setenv("CHAT_CONFIG_FILE", str(path))
    monkeypatch.setenv("API_BASE_URL", "https://env.example.com/")
    assert Settings().api_base_url == "https://env.example.com"
