from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field


class ConfigError(RuntimeError):
    """Raised when the service configuration is invalid."""


@dataclass(frozen=True)
class JanitorConfig:
    """Immutable service configuration loaded at startup.

    Attributes:
        gitlab_api_url:    GitLab REST base, always ending in ``/api/v4``.
        gitlab_token:      Private token sent as ``PRIVATE-TOKEN``.
        gitlab_ref:        Revision every configuration file is read from.
        gitlab_group_prefix: Prefix put in front of the domain to build the
                           project path (``groups-<domain>/<uid>``).
        gitlab_timeout_seconds: Per-request HTTP timeout towards GitLab.
        gitlab_verify_tls: Whether GitLab TLS certificates are verified.
        host / port:       Bind address of the HTTP surface.
        log_level:         Root logger level name.
        otel_enabled:      Enable OpenTelemetry tracing when the extra is installed.
    """

    gitlab_api_url: str
    gitlab_token: str = field(repr=False)
    gitlab_ref: str = "master"
    gitlab_group_prefix: str = "groups-"
    gitlab_timeout_seconds: int = 30
    gitlab_verify_tls: bool = True
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8080
    log_level: str = "INFO"
    otel_enabled: bool = False


def parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_int(
    values: Mapping[str, str],
    name: str,
    default: int,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    raw = values.get(name)
    if raw is None or not raw.strip():
        value = default
    else:
        try:
            value = int(raw)
        except ValueError as exc:
            raise ConfigError(f"{name} must be an integer") from exc

    if minimum is not None and value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got: {value}")
    if maximum is not None and value > maximum:
        raise ConfigError(f"{name} must be <= {maximum}, got: {value}")
    return value


def normalize_gitlab_url(url: str) -> str:
    """Return *url* without trailing slash and with the ``/api/v4`` suffix."""
    base = url.strip().rstrip("/")
    if not base.endswith("/api/v4"):
        base = f"{base}/api/v4"
    return base


def load_config(env: Mapping[str, str] | None = None) -> JanitorConfig:
    """Load service config from the environment.

    ``GITLAB_API_URL`` and ``GITLAB_TOKEN`` are mandatory; every other
    variable falls back to a default.  Raises :class:`ConfigError` instead
    of starting a service that cannot reach its configuration source.
    """
    values = env if env is not None else os.environ

    gitlab_url = values.get("GITLAB_API_URL", "").strip()
    if not gitlab_url:
        raise ConfigError("GITLAB_API_URL is not set.")
    gitlab_token = values.get("GITLAB_TOKEN", "").strip()
    if not gitlab_token:
        raise ConfigError("GITLAB_TOKEN is not set.")

    gitlab_ref = values.get("GITLAB_REF", "master").strip()
    if not gitlab_ref:
        raise ConfigError("GITLAB_REF must be a non-empty string")

    return JanitorConfig(
        gitlab_api_url=normalize_gitlab_url(gitlab_url),
        gitlab_token=gitlab_token,
        gitlab_ref=gitlab_ref,
        gitlab_group_prefix=values.get("GITLAB_GROUP_PREFIX", "groups-"),
        gitlab_timeout_seconds=parse_int(
            values, "GITLAB_TIMEOUT_SECONDS", 30, minimum=1, maximum=600
        ),
        gitlab_verify_tls=parse_bool(values.get("GITLAB_VERIFY_TLS"), default=True),
        host=values.get("JANITOR_HOST", "0.0.0.0"),  # noqa: S104
        port=parse_int(values, "JANITOR_PORT", 8080, minimum=1, maximum=65535),
        log_level=values.get("LOG_LEVEL", "INFO").upper(),
        otel_enabled=parse_bool(values.get("OTEL_ENABLED")),
    )
