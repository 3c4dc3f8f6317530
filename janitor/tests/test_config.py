from __future__ import annotations

import pytest

from janitor.src.config import ConfigError, load_config, normalize_gitlab_url, parse_bool

BASE_ENV = {"GITLAB_API_URL": "https://gitlab.example.org/", "GITLAB_TOKEN": "tok"}


def test_defaults() -> None:
    config = load_config(BASE_ENV)

    assert config.gitlab_api_url == "https://gitlab.example.org/api/v4"
    assert config.gitlab_ref == "master"
    assert config.gitlab_group_prefix == "groups-"
    assert config.gitlab_timeout_seconds == 30
    assert config.gitlab_verify_tls is True
    assert config.port == 8080
    assert config.log_level == "INFO"
    assert config.otel_enabled is False


def test_token_not_in_repr() -> None:
    assert "glpat-secret" not in repr(load_config({**BASE_ENV, "GITLAB_TOKEN": "glpat-secret"}))


@pytest.mark.parametrize("missing", ["GITLAB_API_URL", "GITLAB_TOKEN"])
def test_required_variables(missing: str) -> None:
    env = {key: value for key, value in BASE_ENV.items() if key != missing}

    with pytest.raises(ConfigError, match=missing):
        load_config(env)


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("JANITOR_PORT", "0"),
        ("JANITOR_PORT", "70000"),
        ("JANITOR_PORT", "http"),
        ("GITLAB_TIMEOUT_SECONDS", "0"),
    ],
)
def test_invalid_integers(name: str, value: str) -> None:
    with pytest.raises(ConfigError, match=name):
        load_config({**BASE_ENV, name: value})


def test_empty_ref_rejected() -> None:
    with pytest.raises(ConfigError):
        load_config({**BASE_ENV, "GITLAB_REF": " "})


def test_overrides() -> None:
    config = load_config(
        {
            **BASE_ENV,
            "GITLAB_REF": "main",
            "JANITOR_PORT": "9000",
            "LOG_LEVEL": "debug",
            "OTEL_ENABLED": "yes",
        }
    )

    assert config.gitlab_ref == "main"
    assert config.port == 9000
    assert config.log_level == "DEBUG"
    assert config.otel_enabled is True


def test_normalize_gitlab_url_keeps_existing_suffix() -> None:
    assert normalize_gitlab_url("https://g.example/api/v4/") == "https://g.example/api/v4"


@pytest.mark.parametrize(("raw", "expected"), [("1", True), ("On", True), ("no", False), (None, False)])
def test_parse_bool(raw: str | None, expected: bool) -> None:
    assert parse_bool(raw) is expected
