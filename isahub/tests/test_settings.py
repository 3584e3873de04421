import pytest
pytestmark = pytest.mark.security

from isahub.config import get_settings
from isahub.core.startup_checks import ProductionConfigError, run_startup_validations


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_cookie_samesite_normalizes(monkeypatch):
    monkeypatch.setenv("COOKIE_SAMESITE", "None")
    monkeypatch.setenv("COOKIE_SECURE", "true")
    s = get_settings()
    assert s.cookie_samesite == "none"
    assert s.cookie_samesite_header == "None"


def test_cookie_samesite_rejects_invalid(monkeypatch):
    monkeypatch.setenv("COOKIE_SAMESITE", "invalid")
    with pytest.raises(Exception):
        get_settings()


def test_cookie_samesite_none_requires_secure(monkeypatch):
    monkeypatch.setenv("COOKIE_SAMESITE", "none")
    monkeypatch.setenv("COOKIE_SECURE", "false")
    with pytest.raises(Exception):
        get_settings()


def test_published_access_tiers_parsed(monkeypatch):
    monkeypatch.setenv("PUBLISHED_ACCESS_TIERS", " Accessible , editing,managing ")
    assert get_settings().published_access_tiers_list == ["accessible", "editing", "managing"]


@pytest.mark.parametrize("value", ["private,visible", "visible,public"])
def test_published_access_tiers_rejects_bad_names(monkeypatch, value):
    monkeypatch.setenv("PUBLISHED_ACCESS_TIERS", value)
    with pytest.raises(Exception):
        get_settings()


def test_notification_delivery_validated(monkeypatch):
    monkeypatch.setenv("NOTIFICATION_DELIVERY", "smtp")
    with pytest.raises(Exception):
        get_settings()


def test_production_requires_secure_configuration(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("COOKIE_SECURE", "false")
    monkeypatch.setenv("CORS_ORIGINS", "http://localhost:3000")
    monkeypatch.setenv("DATABASE_URL_POSTGRES", "")
    settings = get_settings()
    with pytest.raises(ProductionConfigError) as excinfo:
        run_startup_validations(settings)
    message = str(excinfo.value)
    assert "COOKIE_SECURE" in message
    assert "CORS_ORIGINS" in message
    assert "SITE_BASE_URL" in message


def test_production_accepts_secure_configuration(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("COOKIE_SECURE", "true")
    monkeypatch.setenv("CORS_ORIGINS", "https://isahub.example.org")
    monkeypatch.setenv("SITE_BASE_URL", "https://isahub.example.org")
    monkeypatch.setenv("DATABASE_URL_POSTGRES", "postgresql+psycopg://isahub@db/isahub")
    run_startup_validations(get_settings())
