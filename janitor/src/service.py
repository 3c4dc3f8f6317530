from __future__ import annotations

import logging
import time
from collections.abc import Callable

from kubernetes.client import AppsV1Api, CoreV1Api

from janitor.src.config import JanitorConfig
from janitor.src.configmaps import ConfigMapReconciler, partial_failure
from janitor.src.credentials import CredentialReconciler
from janitor.src.errors import JanitorError, UnsupportedVersionError
from janitor.src.gitlab import GitLabSource
from janitor.src.inspector import InstanceInspector
from janitor.src.metrics import METRICS
from janitor.src.models import (
    API_VERSION,
    Credentials,
    Instance,
    PodRef,
    ServiceResponse,
    Status,
)
from janitor.src.readiness import StatusEvaluator

LOGGER = logging.getLogger(__name__)


def check_api(requested: str, current: str = API_VERSION) -> None:
    """Reject a non-empty API tag that differs from the implemented version."""
    if requested and requested != current:
        raise UnsupportedVersionError(
            f"unsupported API version: service implements API version '{current}', "
            f"but asked for '{requested}'"
        )


class JanitorService:
    """The public operations, each answering with a :class:`ServiceResponse`.

    Every operation checks the API version tag first and never raises a
    :class:`JanitorError`; failures come back as FAILED responses carrying
    the error.
    """

    def __init__(
        self,
        config_maps: ConfigMapReconciler,
        credentials: CredentialReconciler,
        readiness: StatusEvaluator,
        inspector: InstanceInspector,
    ) -> None:
        self.config_maps = config_maps
        self.credentials = credentials
        self.readiness = readiness
        self.inspector = inspector

    @staticmethod
    def _run(name: str, api: str, body: Callable[[], ServiceResponse]) -> ServiceResponse:
        start = time.monotonic()
        try:
            check_api(api)
            response = body()
        except UnsupportedVersionError as exc:
            LOGGER.warning("%s rejected: %s", name, exc)
            response = ServiceResponse(Status.FAILED, str(exc), error=exc)
        except JanitorError as exc:
            LOGGER.error("%s failed: %s", name, exc)
            response = ServiceResponse(Status.FAILED, str(exc), error=exc)

        METRICS.operation_duration_seconds.labels(operation=name).observe(
            time.monotonic() - start
        )
        METRICS.operations_total.labels(operation=name, status=response.status.value).inc()
        return response

    # ConfigMaps

    def create_or_replace_config(self, api: str, instance: Instance) -> ServiceResponse:
        def body() -> ServiceResponse:
            applied = self.config_maps.reconcile(instance)
            return ServiceResponse(
                Status.OK,
                "ConfigMap created/updated successfully",
                payload=[f"{obj.name}:{obj.action}" for obj in applied],
            )

        return self._run("config.create_or_replace", api, body)

    def delete_config(self, api: str, instance: Instance) -> ServiceResponse:
        def body() -> ServiceResponse:
            result = self.config_maps.teardown(instance)
            error = partial_failure(result)
            if error is not None:
                LOGGER.warning("%s", error)
            return ServiceResponse(Status.OK, "ConfigMaps deleted successfully", error=error)

        return self._run("config.delete", api, body)

    # Secrets

    def create_or_replace_basic_auth(
        self, api: str, instance: Instance, credentials: Credentials
    ) -> ServiceResponse:
        def body() -> ServiceResponse:
            applied = self.credentials.reconcile(instance, credentials)
            if applied.action == "created":
                return ServiceResponse(Status.OK, "Secret created successfully")
            return ServiceResponse(Status.OK, "Secret updated successfully")

        return self._run("basic_auth.create_or_replace", api, body)

    def delete_basic_auth(self, api: str, instance: Instance) -> ServiceResponse:
        def body() -> ServiceResponse:
            if not self.credentials.teardown(instance):
                return ServiceResponse(Status.OK, "Secret does not exist")
            return ServiceResponse(Status.OK, "Secret deleted successfully")

        return self._run("basic_auth.delete", api, body)

    def delete_tls(self, api: str, instance: Instance) -> ServiceResponse:
        def body() -> ServiceResponse:
            if not self.credentials.teardown_tls(instance):
                return ServiceResponse(Status.OK, "Secret does not exist")
            return ServiceResponse(Status.OK, "Secret deleted successfully")

        return self._run("cert_manager.delete", api, body)

    # Readiness and information

    def check_if_ready(self, api: str, instance: Instance) -> ServiceResponse:
        def body() -> ServiceResponse:
            status = self.readiness.check(instance)
            return ServiceResponse(status.readiness.to_status(), status.message, error=status.error)

        return self._run("readiness.check", api, body)

    def retrieve_service_ip(self, api: str, instance: Instance) -> ServiceResponse:
        def body() -> ServiceResponse:
            return ServiceResponse(Status.OK, "", payload=self.inspector.service_ip(instance))

        return self._run("information.service_ip", api, body)

    def check_service_exists(self, api: str, instance: Instance) -> ServiceResponse:
        def body() -> ServiceResponse:
            return ServiceResponse(Status.OK, "", payload=self.inspector.service_exists(instance))

        return self._run("information.service_exists", api, body)

    # Pods and namespaces

    def retrieve_pod_list(self, api: str, instance: Instance) -> ServiceResponse:
        def body() -> ServiceResponse:
            return ServiceResponse(Status.OK, "", payload=self.inspector.list_pods(instance))

        return self._run("pods.list", api, body)

    def retrieve_pod_logs(self, api: str, instance: Instance, pod: PodRef) -> ServiceResponse:
        def body() -> ServiceResponse:
            return ServiceResponse(Status.OK, "", payload=[self.inspector.get_logs(instance, pod)])

        return self._run("pods.logs", api, body)

    def create_namespace(
        self, api: str, namespace: str, annotations: dict[str, str] | None = None
    ) -> ServiceResponse:
        def body() -> ServiceResponse:
            self.inspector.create_namespace(namespace, annotations)
            return ServiceResponse(Status.OK, "")

        return self._run("namespaces.create", api, body)


def build_service(
    config: JanitorConfig,
    core_api: CoreV1Api,
    apps_api: AppsV1Api,
    source: GitLabSource | None = None,
) -> JanitorService:
    """Wire a :class:`JanitorService` from configuration and API clients."""
    gitlab = source or GitLabSource.from_config(config)
    return JanitorService(
        config_maps=ConfigMapReconciler(core_api, gitlab, ref=config.gitlab_ref),
        credentials=CredentialReconciler(core_api),
        readiness=StatusEvaluator(core_api, apps_api),
        inspector=InstanceInspector(core_api),
    )
