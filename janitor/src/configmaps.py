from __future__ import annotations

import base64
import logging
from typing import Protocol

from kubernetes.client import ApiException, CoreV1Api

from janitor.src.errors import JanitorError, PartialFailureError
from janitor.src.kube import TRANSPORT_ERRORS, ensure_namespace, remote_error, require_namespace
from janitor.src.metrics import METRICS
from janitor.src.models import AppliedObject, Instance, TeardownResult
from janitor.src.naming import belongs_to_instance, object_name
from janitor.src.objects import (
    ObjectStore,
    UpdateStrategy,
    apply_object,
    build_object,
    config_map_store,
    delete_object,
)
from janitor.src.tree import SourceTree, flatten

LOGGER = logging.getLogger(__name__)


class ProjectSource(SourceTree, Protocol):
    def resolve_project(self, domain: str, uid: str) -> int: ...


def split_payload(files: dict[str, bytes]) -> dict[str, dict[str, str]]:
    """Split a group's files into ConfigMap ``data`` and ``binaryData``.

    UTF-8 text goes to ``data`` verbatim; anything else is base64 encoded
    into ``binaryData``.
    """
    data: dict[str, str] = {}
    binary_data: dict[str, str] = {}
    for name, content in files.items():
        try:
            data[name] = content.decode("utf-8")
        except UnicodeDecodeError:
            binary_data[name] = base64.b64encode(content).decode("ascii")
    return {"data": data, "binaryData": binary_data}


class ConfigMapReconciler:
    """Keeps an instance's ConfigMaps in line with its GitLab configuration project.

    One ConfigMap is written per group of the flattened repository tree:
    the root group becomes ``<uid>``, every top-level directory ``<uid>-<dir>``.
    Existing ConfigMaps are replaced as a whole; ConfigMaps of groups that
    disappeared from the repository are left alone until teardown.
    """

    def __init__(
        self,
        core_api: CoreV1Api,
        source: ProjectSource,
        ref: str = "master",
        strategy: UpdateStrategy = UpdateStrategy.REPLACE,
        logger: logging.Logger | None = None,
    ) -> None:
        self.core_api = core_api
        self.source = source
        self.ref = ref
        self.strategy = strategy
        self.store: ObjectStore = config_map_store(core_api)
        self.logger = logger or LOGGER

    def reconcile(self, instance: Instance) -> list[AppliedObject]:
        """Create or replace one ConfigMap per configuration group.

        Groups are applied in name order and the first failure aborts the
        pass; groups applied before it stay persisted.  Re-running the whole
        reconcile is safe because every group is idempotent.
        """
        project_id = self.source.resolve_project(instance.domain, instance.uid)
        ensure_namespace(self.core_api, instance.namespace)

        try:
            tree = flatten(self.source, project_id, self.ref)
        except JanitorError:
            self.logger.error(
                "Error while retrieving repository content for %s; no ConfigMap will be written",
                instance.uid,
            )
            raise

        applied: list[AppliedObject] = []
        for group in sorted(tree):
            body = build_object(
                kind="ConfigMap",
                name=object_name(instance.uid, group),
                namespace=instance.namespace,
                payload=split_payload(tree[group]),
            )
            applied.append(apply_object(self.store, instance.namespace, body, self.strategy))
        return applied

    def teardown(self, instance: Instance) -> TeardownResult:
        """Delete every ConfigMap that belongs to *instance*.

        Best effort: a failed delete is logged and counted, and the scan
        carries on with the remaining ConfigMaps.
        """
        require_namespace(self.core_api, instance.namespace)

        try:
            config_maps = self.store.list(namespace=instance.namespace)
        except ApiException as exc:
            raise remote_error(f"Listing ConfigMaps in {instance.namespace}", exc) from exc
        except TRANSPORT_ERRORS as exc:
            raise remote_error(f"Listing ConfigMaps in {instance.namespace}", exc) from exc

        deleted: list[str] = []
        failed: list[str] = []
        for config_map in getattr(config_maps, "items", None) or []:
            name = getattr(getattr(config_map, "metadata", None), "name", None)
            if not name or not belongs_to_instance(instance.uid, name):
                continue
            self.logger.info("Deleting ConfigMap named %s", name)
            try:
                delete_object(self.store, instance.namespace, name)
            except JanitorError:
                self.logger.exception("Error occurred while deleting ConfigMap %s", name)
                METRICS.teardown_delete_errors_total.labels(kind=self.store.kind).inc()
                failed.append(name)
                continue
            deleted.append(name)

        return TeardownResult(deleted=tuple(deleted), failed=tuple(failed))


def partial_failure(result: TeardownResult) -> PartialFailureError | None:
    if not result.failed:
        return None
    return PartialFailureError(
        f"Failed to delete {len(result.failed)} ConfigMap(s): {', '.join(result.failed)}",
        list(result.failed),
    )
