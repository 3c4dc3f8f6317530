from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from janitor.src.__main__ import main
from janitor.src.config import ConfigError


def test_main_wires_service_and_serves(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITLAB_API_URL", "https://gitlab.example.org")
    monkeypatch.setenv("GITLAB_TOKEN", "tok")
    monkeypatch.setenv("JANITOR_PORT", "9090")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    core_api, apps_api = SimpleNamespace(), SimpleNamespace()

    with (
        patch("janitor.src.__main__.configure_logging") as mock_logging,
        patch("janitor.src.__main__.load_kube_configuration") as mock_kube,
        patch("janitor.src.__main__.build_clients", return_value=(core_api, apps_api)),
        patch("janitor.src.__main__.build_service") as mock_build_service,
        patch("janitor.src.__main__.create_app") as mock_create_app,
        patch("janitor.src.__main__.uvicorn.run") as mock_run,
    ):
        main()

    mock_logging.assert_called_once_with("WARNING")
    mock_kube.assert_called_once()
    config = mock_build_service.call_args.args[0]
    assert config.gitlab_api_url == "https://gitlab.example.org/api/v4"
    assert mock_build_service.call_args.kwargs == {"core_api": core_api, "apps_api": apps_api}
    mock_create_app.assert_called_once_with(mock_build_service.return_value, config)
    assert mock_run.call_args.args == (mock_create_app.return_value,)
    assert mock_run.call_args.kwargs["port"] == 9090
    assert mock_run.call_args.kwargs["log_config"] is None


def test_main_refuses_to_start_without_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITLAB_API_URL", "https://gitlab.example.org")
    monkeypatch.delenv("GITLAB_TOKEN", raising=False)

    with (
        patch("janitor.src.__main__.load_kube_configuration") as mock_kube,
        patch("janitor.src.__main__.uvicorn.run") as mock_run,
        pytest.raises(ConfigError, match="GITLAB_TOKEN"),
    ):
        main()

    mock_kube.assert_not_called()
    mock_run.assert_not_called()


def test_main_builds_real_service_graph(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITLAB_API_URL", "https://gitlab.example.org")
    monkeypatch.setenv("GITLAB_TOKEN", "tok")

    with (
        patch("janitor.src.__main__.configure_logging"),
        patch("janitor.src.__main__.load_kube_configuration"),
        patch(
            "janitor.src.__main__.build_clients",
            return_value=(MagicMock(), MagicMock()),
        ),
        patch("janitor.src.__main__.uvicorn.run") as mock_run,
    ):
        main()

    app = mock_run.call_args.args[0]
    paths = {route.path for route in app.routes}
    assert "/v1/config/create-or-replace" in paths
