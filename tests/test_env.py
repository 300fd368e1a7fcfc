import pytest

from elfsquad import env
from elfsquad.constants import DEFAULT_API_URL, DEFAULT_LOGIN_URL, DEFAULT_SCOPE

_ENV_KEYS = (
    "ELFSQUAD_CLIENT_ID",
    "ELFSQUAD_REDIRECT_URI",
    "ELFSQUAD_SCOPE",
    "ELFSQUAD_LOGIN_URL",
    "ELFSQUAD_RESPONSE_MODE",
    "ELFSQUAD_TENANT_ID",
    "ELFSQUAD_API_URL",
)


def _clear_env(monkeypatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_options_from_env_defaults(monkeypatch) -> None:
    _clear_env(monkeypatch)

    options = env.options_from_env()

    assert options.client_id is None
    assert options.redirect_uri is None
    assert options.scope == DEFAULT_SCOPE
    assert options.login_url == DEFAULT_LOGIN_URL
    assert options.response_mode == "fragment"
    assert options.api_url == DEFAULT_API_URL
    assert options.uses_user_authentication is False


def test_options_from_env_reads_values(monkeypatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("ELFSQUAD_CLIENT_ID", "client-1")
    monkeypatch.setenv("ELFSQUAD_REDIRECT_URI", "http://127.0.0.1:8976/callback")
    monkeypatch.setenv("ELFSQUAD_RESPONSE_MODE", "query")
    monkeypatch.setenv("ELFSQUAD_TENANT_ID", "  ")

    options = env.options_from_env()

    assert options.client_id == "client-1"
    assert options.redirect_uri == "http://127.0.0.1:8976/callback"
    assert options.response_mode == "query"
    assert options.tenant_id is None
    assert options.uses_user_authentication is True


def test_get_env_int_rejects_garbage(monkeypatch) -> None:
    monkeypatch.setenv("ELFSQUAD_HTTP_MAX_RETRIES", "lots")

    with pytest.raises(RuntimeError, match="ELFSQUAD_HTTP_MAX_RETRIES must be an integer"):
        env.get_env_int("ELFSQUAD_HTTP_MAX_RETRIES", 2)


def test_get_env_float_default(monkeypatch) -> None:
    monkeypatch.delenv("ELFSQUAD_HTTP_TIMEOUT", raising=False)

    assert env.get_env_float("ELFSQUAD_HTTP_TIMEOUT", 30.0) == 30.0


def test_load_env_reads_dotenv_file(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("ELFSQUAD_TENANT_ID", "")
    env_file = tmp_path / ".env"
    env_file.write_text("ELFSQUAD_TENANT_ID=t-from-file\n", encoding="utf-8")

    env.load_env(env_file)

    assert env.options_from_env().tenant_id == "t-from-file"


def test_load_env_without_file(tmp_path) -> None:
    env.load_env(tmp_path / "missing.env")


@pytest.mark.parametrize("value", ["1", "true", "YES", " on "])
def test_is_truthy(value: str) -> None:
    assert env.is_truthy(value) is True


def test_is_truthy_rejects_other_values() -> None:
    assert env.is_truthy(None) is False
    assert env.is_truthy("0") is False
