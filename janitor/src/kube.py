from __future__ import annotations

import logging

from kubernetes import client, config
from kubernetes.client import ApiException, AppsV1Api, CoreV1Api
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError

from janitor.src.errors import NotFoundError, RemoteIOError

LOGGER = logging.getLogger(__name__)

NAMESPACE_NOT_FOUND = "Namespace not found"

# Raised by the client transport when the API server cannot be reached at all.
TRANSPORT_ERRORS: tuple[type[Exception], ...] = (HTTPError, OSError)


def load_kube_configuration() -> None:
    """Load Kubernetes client configuration.

    Attempts in-cluster config first (running inside a pod), falling back
    to the local kubeconfig for development.
    """
    try:
        config.load_incluster_config()
        LOGGER.info("Loaded in-cluster Kubernetes configuration")
    except ConfigException:
        config.load_kube_config()
        LOGGER.info("Loaded local kubeconfig")


def build_clients() -> tuple[CoreV1Api, AppsV1Api]:
    """Return CoreV1 and AppsV1 API clients using the active kube configuration."""
    return client.CoreV1Api(), client.AppsV1Api()


def is_not_found(exc: ApiException) -> bool:
    return exc.status == 404


def is_conflict(exc: ApiException) -> bool:
    return exc.status == 409


def remote_error(action: str, exc: Exception) -> RemoteIOError:
    """Wrap an API or transport failure into the service error taxonomy, keeping the cause."""
    if isinstance(exc, ApiException):
        error = RemoteIOError(f"{action} failed (status={exc.status}, reason={exc.reason})")
    else:
        error = RemoteIOError(f"{action} failed: {exc}")
    error.__cause__ = exc
    return error


def namespace_exists(core_api: CoreV1Api, namespace: str) -> bool:
    try:
        core_api.read_namespace(name=namespace)
    except ApiException as exc:
        if is_not_found(exc):
            return False
        raise remote_error(f"Reading namespace {namespace}", exc) from exc
    except TRANSPORT_ERRORS as exc:
        raise remote_error(f"Reading namespace {namespace}", exc) from exc
    return True


def require_namespace(core_api: CoreV1Api, namespace: str) -> None:
    """Raise :class:`NotFoundError` unless *namespace* exists."""
    if not namespace_exists(core_api, namespace):
        LOGGER.info("Namespace %s not found", namespace)
        raise NotFoundError(NAMESPACE_NOT_FOUND)


def build_namespace(
    name: str,
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
) -> client.V1Namespace:
    return client.V1Namespace(
        metadata=client.V1ObjectMeta(
            name=name,
            labels=labels or None,
            annotations=annotations or None,
        )
    )


def ensure_namespace(core_api: CoreV1Api, namespace: str) -> bool:
    """Create *namespace* when it does not exist yet.

    Returns True when this call created it.  Losing a creation race to
    another caller (HTTP 409) counts as success because the namespace
    exists afterwards either way.
    """
    if namespace_exists(core_api, namespace):
        return False

    LOGGER.info("Namespace %s not found, creating it", namespace)
    try:
        core_api.create_namespace(body=build_namespace(namespace))
    except ApiException as exc:
        if is_conflict(exc):
            LOGGER.info("Namespace %s was created concurrently", namespace)
            return False
        raise remote_error(f"Creating namespace {namespace}", exc) from exc
    except TRANSPORT_ERRORS as exc:
        raise remote_error(f"Creating namespace {namespace}", exc) from exc
    return True
