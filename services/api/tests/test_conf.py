import pytest

import conf
from utils import env
from utils.env import EnvVarSpec

PORT = EnvVarSpec(id="TEST_PORT", default="8000", parse=int, type=(int, ...))
NAME = EnvVarSpec(id="TEST_NAME")
SECRET = EnvVarSpec(id="TEST_SECRET", is_optional=True, is_secret=True)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("TEST_PORT", "TEST_NAME", "TEST_SECRET", "USE_AUTH", "LEDGER_BACKEND",
                 "SCHEDULER_SWEEP_SECONDS", "BROADCAST_QUEUE_SIZE", "SSE_KEEPALIVE_SECONDS",
                 "AUTH_OIDC_JWK_URL", "AUTH_OIDC_AUDIENCE", "AUTH_OIDC_ISSUER"):
        monkeypatch.delenv(name, raising=False)


def test_parse_uses_default_when_unset():
    assert env.parse(PORT) == 8000
    assert env.parse(NAME) is None


def test_parse_treats_empty_as_unset(monkeypatch):
    monkeypatch.setenv("TEST_PORT", "")

    assert env.parse(PORT) == 8000


def test_validate_reports_missing_and_unparsable(monkeypatch):
    assert env.validate([PORT, SECRET]) is True
    assert env.validate([NAME]) is False

    monkeypatch.setenv("TEST_PORT", "eighty")
    assert env.validate([PORT]) is False


def test_defaults_are_valid():
    assert conf.validate() is True
    assert conf.get_ledger_backend() == "couchbase"
    assert conf.get_scheduler_conf().sweep_seconds == 15
    assert conf.get_stream_conf().queue_size == 100


def test_unknown_ledger_backend_is_invalid(monkeypatch):
    monkeypatch.setenv("LEDGER_BACKEND", "postgres")

    assert conf.validate() is False


def test_non_positive_sweep_interval_is_invalid(monkeypatch):
    monkeypatch.setenv("SCHEDULER_SWEEP_SECONDS", "0")

    assert conf.validate() is False


def test_auth_settings_are_required_with_auth(monkeypatch):
    monkeypatch.setenv("USE_AUTH", "true")
    assert conf.validate() is False

    monkeypatch.setenv("AUTH_OIDC_JWK_URL", "https://id.example.com/jwks")
    monkeypatch.setenv("AUTH_OIDC_AUDIENCE", "reverse-auction")
    monkeypatch.setenv("AUTH_OIDC_ISSUER", "https://id.example.com/")
    assert conf.validate() is True
    assert conf.get_auth_config().audience == "reverse-auction"


def test_keepalive_has_a_floor(monkeypatch):
    monkeypatch.setenv("SSE_KEEPALIVE_SECONDS", "0.1")

    assert conf.get_stream_conf().keepalive_seconds == 1.0
