from __future__ import annotations

import logging
from typing import Any

from kubernetes.client import ApiException, CoreV1Api

from janitor.src.errors import NotFoundError
from janitor.src.kube import (
    TRANSPORT_ERRORS,
    build_namespace,
    is_not_found,
    remote_error,
    require_namespace,
)
from janitor.src.models import Instance, PodRef, PodSummary
from janitor.src.naming import pod_name_prefix

LOGGER = logging.getLogger(__name__)

LOG_CHUNK_BYTES = 64 * 1024


class InstanceInspector:
    """Read-only views of a running instance plus tenant namespace creation."""

    def __init__(self, core_api: CoreV1Api, logger: logging.Logger | None = None) -> None:
        self.core_api = core_api
        self.logger = logger or LOGGER

    def _read_service(self, instance: Instance) -> Any:
        require_namespace(self.core_api, instance.namespace)
        try:
            return self.core_api.read_namespaced_service(
                name=instance.uid, namespace=instance.namespace
            )
        except ApiException as exc:
            if is_not_found(exc):
                self.logger.info("Service %s/%s not found", instance.namespace, instance.uid)
                raise NotFoundError("Service not found") from exc
            raise remote_error(f"Reading service {instance.namespace}/{instance.uid}", exc) from exc
        except TRANSPORT_ERRORS as exc:
            raise remote_error(f"Reading service {instance.namespace}/{instance.uid}", exc) from exc

    def service_exists(self, instance: Instance) -> str:
        """Return the name of the instance's Service, raising NotFoundError if absent."""
        service = self._read_service(instance)
        return getattr(getattr(service, "metadata", None), "name", None) or instance.uid

    def service_ip(self, instance: Instance) -> str:
        """Return the first load-balancer ingress IP of the instance's Service."""
        self.logger.info(
            "Retrieving IP for service %s in namespace %s", instance.uid, instance.namespace
        )
        service = self._read_service(instance)
        load_balancer = getattr(getattr(service, "status", None), "load_balancer", None)
        ingress = getattr(load_balancer, "ingress", None) or []
        if not ingress:
            self.logger.info("No load balancer ingresses found")
            raise NotFoundError("Service ingress not found")

        self.logger.info("Found %d load balancer ingress(es)", len(ingress))
        ip = getattr(ingress[0], "ip", None)
        if not ip:
            self.logger.info("IP address not found")
            raise NotFoundError("Ip not found")
        return ip

    def list_pods(self, instance: Instance) -> list[PodSummary]:
        require_namespace(self.core_api, instance.namespace)
        self.logger.info("Collecting pods from namespace %s", instance.namespace)
        try:
            pods = self.core_api.list_namespaced_pod(namespace=instance.namespace)
        except (ApiException, *TRANSPORT_ERRORS) as exc:
            raise remote_error(f"Listing pods in {instance.namespace}", exc) from exc

        prefix = pod_name_prefix(instance.uid)
        matching: list[PodSummary] = []
        for pod in getattr(pods, "items", None) or []:
            name = getattr(getattr(pod, "metadata", None), "name", None) or ""
            if not name.startswith(prefix):
                continue
            containers = getattr(getattr(pod, "spec", None), "containers", None) or []
            matching.append(
                PodSummary(
                    name=name,
                    display_name=name,
                    containers=tuple(container.name for container in containers),
                )
            )

        self.logger.info("Found %d pods matching %s", len(matching), instance.uid)
        return matching

    def get_logs(self, instance: Instance, pod: PodRef) -> str:
        """Return the complete log of *pod* as one string.

        The first container named in *pod* is read when given, otherwise the
        API server picks the pod's default container.  The stream is drained
        without any size limit.
        """
        require_namespace(self.core_api, instance.namespace)
        try:
            self.core_api.read_namespaced_pod(name=pod.name, namespace=instance.namespace)
        except ApiException as exc:
            if is_not_found(exc):
                raise NotFoundError("Pod not found") from exc
            raise remote_error(f"Reading pod {instance.namespace}/{pod.name}", exc) from exc
        except TRANSPORT_ERRORS as exc:
            raise remote_error(f"Reading pod {instance.namespace}/{pod.name}", exc) from exc

        kwargs: dict[str, Any] = {}
        if pod.containers:
            kwargs["container"] = pod.containers[0]
        self.logger.info(
            "Collecting logs from pod/container %s/%s in namespace %s",
            pod.name,
            kwargs.get("container", ""),
            instance.namespace,
        )

        try:
            stream = self.core_api.read_namespaced_pod_log(
                name=pod.name,
                namespace=instance.namespace,
                _preload_content=False,
                **kwargs,
            )
        except (ApiException, *TRANSPORT_ERRORS) as exc:
            raise remote_error(f"Opening log stream of {pod.name}", exc) from exc

        try:
            chunks = list(stream.stream(LOG_CHUNK_BYTES))
        except TRANSPORT_ERRORS as exc:
            raise remote_error(f"Reading log stream of {pod.name}", exc) from exc
        finally:
            stream.release_conn()

        logs = b"".join(chunks).decode("utf-8", errors="replace")
        self.logger.info("Returning %d characters of logs", len(logs))
        return logs

    def create_namespace(self, name: str, annotations: dict[str, str] | None = None) -> None:
        """Create a tenant namespace labelled ``name=<name>`` with *annotations*."""
        self.logger.info(
            "Creating namespace %s with %d annotations", name, len(annotations or {})
        )
        body = build_namespace(name, labels={"name": name}, annotations=annotations)
        try:
            self.core_api.create_namespace(body=body)
        except (ApiException, *TRANSPORT_ERRORS) as exc:
            raise remote_error(f"Creating namespace {name}", exc) from exc
