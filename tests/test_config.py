import os
from unittest import mock

from quote_integrations import config
from quote_integrations.retry import RetryPolicy


def test_settings_defaults():
    with mock.patch.dict(os.environ, {}, clear=True):
        settings = config._read_settings()
        assert settings.S2P_LOGIN_URL is None
        assert settings.S2P_TOKEN_TTL_S == 3600
        assert settings.S2P_GUARD_BAND_S == 600
        assert settings.GEONAMES_BASE_URL == "http://api.geonames.org"
        assert settings.GEONAMES_MAX_RETRIES == 3
        assert settings.GEONAMES_BACKOFF_BASE_S == 1.0
        assert settings.GEONAMES_BACKOFF_CAP_S == 10.0
        assert settings.GEONAMES_CACHE_TTL_S == 7 * 24 * 60 * 60
        assert settings.SUPPORTED_COUNTRIES == {"US", "CA"}
        assert settings.LENIENT_COUNTRIES == {"CA"}
        assert settings.HTTP_TIMEOUT_S == 15.0


def test_settings_custom():
    env = {
        "SHIP2PRIMUS_LOGIN_URL": "https://s2p.test/login",
        "SHIP2PRIMUS_USERNAME": "acme",
        "SHIP2PRIMUS_PASSWORD": "pw",
        "GEONAMES_BASE_URL": "https://secure.geonames.org/",
        "GEONAMES_MAX_RETRIES": "5",
        "GEONAMES_BACKOFF_BASE_S": "0.5",
        "GEONAMES_SUPPORTED_COUNTRIES": "us, ca, mx",
    }
    with mock.patch.dict(os.environ, env, clear=True):
        settings = config._read_settings()
        assert settings.S2P_USERNAME == "acme"
        assert settings.GEONAMES_BASE_URL == "https://secure.geonames.org"
        assert settings.GEONAMES_MAX_RETRIES == 5
        assert settings.GEONAMES_BACKOFF_BASE_S == 0.5
        assert settings.SUPPORTED_COUNTRIES == {"US", "CA", "MX"}


def test_invalid_numbers_fall_back_to_defaults(caplog):
    env = {"GEONAMES_MAX_RETRIES": "many", "HTTP_TIMEOUT_S": "soon"}
    with mock.patch.dict(os.environ, env, clear=True):
        settings = config._read_settings()
        assert settings.GEONAMES_MAX_RETRIES == 3
        assert settings.HTTP_TIMEOUT_S == 15.0
    assert "GEONAMES_MAX_RETRIES" in caplog.text


def test_validate_settings_warns_about_missing_credentials(caplog):
    with mock.patch.dict(os.environ, {}, clear=True):
        config.validate_settings(config._read_settings())
    assert "SHIP2PRIMUS_PASSWORD" in caplog.text
    assert "GEONAMES_USERNAME" in caplog.text


def test_negative_backoff_falls_back_to_defaults(caplog):
    env = {"GEONAMES_BACKOFF_BASE_S": "-1", "GEONAMES_BACKOFF_CAP_S": "-5"}
    with mock.patch.dict(os.environ, env, clear=True):
        settings = config._read_settings()
        assert settings.GEONAMES_BACKOFF_BASE_S == 1.0
        assert settings.GEONAMES_BACKOFF_CAP_S == 10.0
        RetryPolicy(
            max_attempts=settings.GEONAMES_MAX_RETRIES,
            base_delay_s=settings.GEONAMES_BACKOFF_BASE_S,
            max_delay_s=settings.GEONAMES_BACKOFF_CAP_S,
        )
    assert "GEONAMES_BACKOFF_BASE_S" in caplog.text
