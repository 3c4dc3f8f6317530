from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from kubernetes.client import ApiException, AppsV1Api, CoreV1Api

from janitor.src.errors import JanitorError, NotFoundError
from janitor.src.kube import (
    NAMESPACE_NOT_FOUND,
    TRANSPORT_ERRORS,
    is_not_found,
    remote_error,
    require_namespace,
)
from janitor.src.models import Instance, InstanceStatus, Readiness

LOGGER = logging.getLogger(__name__)

NO_WORKLOAD = "Neither Deployment nor StatefulSet found"


class WorkloadKind(str, Enum):
    """Workload controllers an instance can run as, in probing order."""

    DEPLOYMENT = "Deployment"
    STATEFUL_SET = "StatefulSet"


@dataclass(frozen=True)
class Workload:
    kind: WorkloadKind
    name: str
    desired_replicas: int
    ready_replicas: int

    @property
    def is_ready(self) -> bool:
        return self.desired_replicas == self.ready_replicas

    @classmethod
    def from_api_object(cls, kind: WorkloadKind, obj: Any) -> Workload:
        """Read replica counts the way the API server defaults them.

        An unset ``spec.replicas`` means 1; an unset
        ``status.ready_replicas`` means no pod is ready yet.
        """
        spec = getattr(obj, "spec", None)
        status = getattr(obj, "status", None)
        desired = getattr(spec, "replicas", None)
        ready = getattr(status, "ready_replicas", None)
        name = getattr(getattr(obj, "metadata", None), "name", None) or ""
        return cls(
            kind=kind,
            name=name,
            desired_replicas=1 if desired is None else int(desired),
            ready_replicas=0 if ready is None else int(ready),
        )


class StatusEvaluator:
    """Derives READY / PENDING / FAILED for an instance from its workload controller.

    Nothing is cached: every call reads the namespace and the workload
    again.  A workload that never becomes ready stays PENDING; callers poll
    and apply their own deadline.
    """

    def __init__(
        self,
        core_api: CoreV1Api,
        apps_api: AppsV1Api,
        logger: logging.Logger | None = None,
    ) -> None:
        self.core_api = core_api
        self.apps_api = apps_api
        self.logger = logger or LOGGER
        self._probes: tuple[tuple[WorkloadKind, Callable[..., Any]], ...] = (
            (WorkloadKind.DEPLOYMENT, apps_api.read_namespaced_deployment),
            (WorkloadKind.STATEFUL_SET, apps_api.read_namespaced_stateful_set),
        )

    def find_workload(self, instance: Instance) -> Workload:
        """Return the first workload named ``instance.uid``, probing each kind in order."""
        for kind, read in self._probes:
            self.logger.debug("Looking for %s %s/%s", kind.value, instance.namespace, instance.uid)
            try:
                obj = read(name=instance.uid, namespace=instance.namespace)
            except ApiException as exc:
                if is_not_found(exc):
                    continue
                raise remote_error(
                    f"Reading {kind.value} {instance.namespace}/{instance.uid}", exc
                ) from exc
            except TRANSPORT_ERRORS as exc:
                raise remote_error(
                    f"Reading {kind.value} {instance.namespace}/{instance.uid}", exc
                ) from exc
            return Workload.from_api_object(kind, obj)
        raise NotFoundError(NO_WORKLOAD)

    def check(self, instance: Instance) -> InstanceStatus:
        self.logger.info(
            "Checking if %s is ready in namespace %s", instance.uid, instance.namespace
        )
        try:
            require_namespace(self.core_api, instance.namespace)
        except NotFoundError as exc:
            return InstanceStatus(Readiness.FAILED, NAMESPACE_NOT_FOUND, exc)
        except JanitorError as exc:
            return InstanceStatus(Readiness.FAILED, str(exc), exc)

        try:
            workload = self.find_workload(instance)
        except NotFoundError as exc:
            self.logger.info("Neither Deployment nor StatefulSet %s found", instance.uid)
            return InstanceStatus(Readiness.FAILED, NO_WORKLOAD, exc)
        except JanitorError as exc:
            self.logger.error("Workload lookup for %s failed: %s", instance.uid, exc)
            return InstanceStatus(Readiness.FAILED, str(exc), exc)

        if workload.is_ready:
            self.logger.info("%s %s is ready", workload.kind.value, workload.name)
            return InstanceStatus(Readiness.READY, f"{workload.kind.value} is ready")

        self.logger.info(
            "%s %s not yet ready (%d/%d replicas)",
            workload.kind.value,
            workload.name,
            workload.ready_replicas,
            workload.desired_replicas,
        )
        return InstanceStatus(Readiness.PENDING, f"Waiting for {workload.kind.value}")
