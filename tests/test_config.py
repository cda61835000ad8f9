from app.config import DEFAULT_ORIGINS, load_settings


def test_defaults(monkeypatch):
    for name in ("ALLOWED_ORIGINS", "ALLOWED_ORIGIN", "API_PREFIX", "MONGODB_DB"):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.allowed_origins == DEFAULT_ORIGINS
    assert settings.api_prefix == "/api"
    assert settings.mongodb_db == "chat_app"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example, https://b.example,")
    monkeypatch.setenv("MAX_MESSAGE_LENGTH", "10")
    monkeypatch.setenv("ENVIRONMENT", "production")

    settings = load_settings()

    assert settings.allowed_origins == ["https://a.example", "https://b.example"]
    assert settings.max_message_length == 10
    assert settings.is_production


def test_single_origin_fallback(monkeypatch):
    monkeypatch.delenv("ALLOWED_ORIGINS", raising=False)
    monkeypatch.setenv("ALLOWED_ORIGIN", "https://only.example")

    assert load_settings().allowed_origins == ["https://only.example"]
