from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from kubernetes.config.config_exception import ConfigException

from janitor.src.errors import NotFoundError, RemoteIOError
from janitor.src.kube import (
    build_clients,
    build_namespace,
    ensure_namespace,
    load_kube_configuration,
    namespace_exists,
    remote_error,
    require_namespace,
)
from janitor.tests.fakes import FakeCoreApi, api_error, connection_error


def test_load_kube_configuration_in_cluster() -> None:
    with (
        patch("janitor.src.kube.config.load_incluster_config") as mock_incluster,
        patch("janitor.src.kube.config.load_kube_config") as mock_kubeconfig,
    ):
        load_kube_configuration()

    mock_incluster.assert_called_once()
    mock_kubeconfig.assert_not_called()


def test_load_kube_configuration_local_fallback() -> None:
    with (
        patch(
            "janitor.src.kube.config.load_incluster_config",
            side_effect=ConfigException("not in cluster"),
        ),
        patch("janitor.src.kube.config.load_kube_config") as mock_kubeconfig,
    ):
        load_kube_configuration()

    mock_kubeconfig.assert_called_once()


def test_build_clients_returns_tuple() -> None:
    with patch("janitor.src.kube.client") as mock_client:
        mock_client.CoreV1Api.return_value = SimpleNamespace(name="core")
        mock_client.AppsV1Api.return_value = SimpleNamespace(name="apps")
        core, apps = build_clients()

    assert core.name == "core"
    assert apps.name == "apps"


def test_remote_error_keeps_cause() -> None:
    cause = api_error(500)

    error = remote_error("Reading namespace ns1", cause)

    assert isinstance(error, RemoteIOError)
    assert error.__cause__ is cause
    assert "status=500" in str(error)


def test_namespace_exists() -> None:
    core_api = FakeCoreApi(namespaces={"ns1"})

    assert namespace_exists(core_api, "ns1") is True
    assert namespace_exists(core_api, "ns2") is False


def test_namespace_read_failure_is_remote_error() -> None:
    core_api = FakeCoreApi(failures={("read_namespace", "ns1"): 500})

    with pytest.raises(RemoteIOError):
        namespace_exists(core_api, "ns1")


def test_require_namespace_raises_not_found() -> None:
    with pytest.raises(NotFoundError, match="Namespace not found"):
        require_namespace(FakeCoreApi(), "ns1")


def test_build_namespace_omits_empty_metadata() -> None:
    body = build_namespace("ns1")

    assert body.metadata.name == "ns1"
    assert body.metadata.labels is None
    assert body.metadata.annotations is None


def test_ensure_namespace_creates_missing_namespace() -> None:
    core_api = FakeCoreApi()

    assert ensure_namespace(core_api, "ns1") is True
    assert "ns1" in core_api.namespaces
    assert ensure_namespace(core_api, "ns1") is False
    assert core_api.methods_called("create_namespace") == ["ns1"]


def test_ensure_namespace_tolerates_creation_race() -> None:
    core_api = MagicMock()
    core_api.read_namespace.side_effect = api_error(404)
    core_api.create_namespace.side_effect = api_error(409)

    assert ensure_namespace(core_api, "ns1") is False


def test_ensure_namespace_propagates_other_failures() -> None:
    core_api = FakeCoreApi(failures={("create_namespace", "ns1"): 403})

    with pytest.raises(RemoteIOError):
        ensure_namespace(core_api, "ns1")


def test_remote_error_wraps_transport_failure() -> None:
    cause = connection_error()

    error = remote_error("Reading namespace ns1", cause)

    assert error.__cause__ is cause
    assert str(error).startswith("Reading namespace ns1 failed: ")


@pytest.mark.parametrize("failure", [connection_error(), OSError("connection reset")])
def test_namespace_transport_failures_are_remote_errors(failure: Exception) -> None:
    reading = FakeCoreApi(namespaces={"ns1"}, failures={("read_namespace", "ns1"): failure})
    creating = FakeCoreApi(failures={("create_namespace", "ns1"): failure})

    with pytest.raises(RemoteIOError):
        namespace_exists(reading, "ns1")
    with pytest.raises(RemoteIOError):
        ensure_namespace(creating, "ns1")
