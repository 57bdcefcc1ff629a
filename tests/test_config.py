from autotrack.core.config import Settings


def test_from_env(monkeypatch):
    monkeypatch.setenv("AUTOTRACK_API_URL", "https://app.test")
    monkeypatch.setenv("AUTOTRACK_CUSTOMER_ID", "cust-9")
    monkeypatch.setenv("AUTOTRACK_POLL_INTERVAL", "1.5")
    monkeypatch.setenv("AUTOTRACK_VERIFY_TLS", "false")
    monkeypatch.delenv("AUTOTRACK_API_TOKEN", raising=False)

    settings = Settings.from_env()

    assert settings.api_url == "https://app.test"
    assert settings.customer_id == "cust-9"
    assert settings.api_token is None
    assert settings.poll_interval == 1.5
    assert settings.verify_tls is False


def test_override_skips_none():
    settings = Settings(customer_id="cust-1").override(customer_id=None, api_token="tok")
    assert settings.customer_id == "cust-1"
    assert settings.api_token == "tok"
