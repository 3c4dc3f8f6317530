from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from kubernetes.client import ApiException, CoreV1Api

from janitor.src.kube import TRANSPORT_ERRORS, is_conflict, is_not_found, remote_error
from janitor.src.metrics import METRICS
from janitor.src.models import AppliedObject

LOGGER = logging.getLogger(__name__)

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "janitor"


class UpdateStrategy(str, Enum):
    """How an object that already exists is brought to the desired payload.

    ``REPLACE`` overwrites the whole object.  ``MERGE_PATCH`` sends the
    payload maps as a merge document so keys added by someone else survive.
    ``JSON_PATCH`` sends one ``add`` operation per payload key.
    """

    REPLACE = "replace"
    MERGE_PATCH = "merge-patch"
    JSON_PATCH = "json-patch"


@dataclass(frozen=True)
class ObjectStore:
    """Binds one namespaced object kind to the CoreV1Api calls that manage it."""

    kind: str
    read: Callable[..., Any]
    create: Callable[..., Any]
    replace: Callable[..., Any]
    patch: Callable[..., Any]
    delete: Callable[..., Any]
    list: Callable[..., Any]


def config_map_store(core_api: CoreV1Api) -> ObjectStore:
    return ObjectStore(
        kind="ConfigMap",
        read=core_api.read_namespaced_config_map,
        create=core_api.create_namespaced_config_map,
        replace=core_api.replace_namespaced_config_map,
        patch=core_api.patch_namespaced_config_map,
        delete=core_api.delete_namespaced_config_map,
        list=core_api.list_namespaced_config_map,
    )


def secret_store(core_api: CoreV1Api) -> ObjectStore:
    return ObjectStore(
        kind="Secret",
        read=core_api.read_namespaced_secret,
        create=core_api.create_namespaced_secret,
        replace=core_api.replace_namespaced_secret,
        patch=core_api.patch_namespaced_secret,
        delete=core_api.delete_namespaced_secret,
        list=core_api.list_namespaced_secret,
    )

PAYLOAD_FIELDS = ("data", "binaryData", "stringData")

# payload field -> attribute name on the client's model objects
_MODEL_ATTRIBUTES = {"data": "data", "binaryData": "binary_data", "stringData": "string_data"}


def build_object(
    kind: str,
    name: str,
    namespace: str,
    payload: dict[str, dict[str, str]],
    labels: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Return a manifest dict for *kind* carrying *payload* (``data``/``binaryData``)."""
    merged_labels = {MANAGED_BY_LABEL: MANAGED_BY_VALUE, **(labels or {})}
    body: dict[str, Any] = {
        "apiVersion": "v1",
        "kind": kind,
        "metadata": {"name": name, "namespace": namespace, "labels": merged_labels},
    }
    for key, value in payload.items():
        if value:
            body[key] = value
    if "data" not in body:
        body["data"] = {}
    return body


def merge_patch_document(body: dict[str, Any]) -> dict[str, Any]:
    return {key: body[key] for key in PAYLOAD_FIELDS if key in body}


def _escape_pointer(token: str) -> str:
    return token.replace("~", "~0").replace("/", "~1")


def json_patch_document(body: dict[str, Any], current: Any = None) -> list[dict[str, Any]]:
    """Return RFC 6902 ``add`` operations writing the payload of *body*.

    ``add`` on ``/data/<key>`` needs ``/data`` to exist, so a section the
    *current* object lacks is added as a whole map instead.  Without
    *current* every section is assumed present.
    """
    operations: list[dict[str, Any]] = []
    for field_name in PAYLOAD_FIELDS:
        if field_name not in body:
            continue
        values = body[field_name] or {}
        if current is not None and getattr(current, _MODEL_ATTRIBUTES[field_name], None) is None:
            operations.append({"op": "add", "path": f"/{field_name}", "value": dict(values)})
            continue
        for key, value in values.items():
            operations.append(
                {
                    "op": "add",
                    "path": f"/{field_name}/{_escape_pointer(key)}",
                    "value": value,
                }
            )
    return operations


def _update_existing(
    store: ObjectStore,
    namespace: str,
    name: str,
    body: dict[str, Any],
    strategy: UpdateStrategy,
    current: Any = None,
) -> str:
    if strategy is UpdateStrategy.REPLACE:
        store.replace(name=name, namespace=namespace, body=body)
        return "replaced"
    if strategy is UpdateStrategy.MERGE_PATCH:
        # A dict body is sent as a merge document; for plain string maps the
        # strategic and RFC 7386 merge semantics are identical.
        store.patch(name=name, namespace=namespace, body=merge_patch_document(body))
        return "patched"
    if current is None:
        current = store.read(name=name, namespace=namespace)
    store.patch(name=name, namespace=namespace, body=json_patch_document(body, current))
    return "patched"


def apply_object(
    store: ObjectStore,
    namespace: str,
    body: dict[str, Any],
    strategy: UpdateStrategy = UpdateStrategy.REPLACE,
) -> AppliedObject:
    """Create the object described by *body* or update it in place.

    Performs get-then-create-or-update.  A create that loses a race with
    another writer (HTTP 409) falls through to the update path.  Any other
    API or transport failure is raised as :class:`RemoteIOError`.
    """
    name = body["metadata"]["name"]
    current: Any = None
    try:
        current = store.read(name=name, namespace=namespace)
    except ApiException as exc:
        if not is_not_found(exc):
            raise remote_error(f"Reading {store.kind} {namespace}/{name}", exc) from exc
    except TRANSPORT_ERRORS as exc:
        raise remote_error(f"Reading {store.kind} {namespace}/{name}", exc) from exc

    action = ""
    if current is None:
        try:
            store.create(namespace=namespace, body=body)
            action = "created"
        except ApiException as exc:
            if not is_conflict(exc):
                raise remote_error(f"Creating {store.kind} {namespace}/{name}", exc) from exc
            LOGGER.info(
                "%s %s/%s was created concurrently; updating instead",
                store.kind,
                namespace,
                name,
            )
        except TRANSPORT_ERRORS as exc:
            raise remote_error(f"Creating {store.kind} {namespace}/{name}", exc) from exc

    if not action:
        try:
            action = _update_existing(store, namespace, name, body, strategy, current)
        except (ApiException, *TRANSPORT_ERRORS) as exc:
            raise remote_error(f"Updating {store.kind} {namespace}/{name}", exc) from exc

    LOGGER.info("%s %s/%s %s", store.kind, namespace, name, action)
    METRICS.objects_applied_total.labels(kind=store.kind, action=action).inc()
    return AppliedObject(kind=store.kind, name=name, action=action)


def delete_object(store: ObjectStore, namespace: str, name: str) -> bool:
    """Delete one object; return False when it was already gone."""
    try:
        store.delete(name=name, namespace=namespace)
    except ApiException as exc:
        if is_not_found(exc):
            return False
        raise remote_error(f"Deleting {store.kind} {namespace}/{name}", exc) from exc
    except TRANSPORT_ERRORS as exc:
        raise remote_error(f"Deleting {store.kind} {namespace}/{name}", exc) from exc
    LOGGER.info("Deleted %s %s/%s", store.kind, namespace, name)
    return True


def object_exists(store: ObjectStore, namespace: str, name: str) -> bool:
    try:
        store.read(name=name, namespace=namespace)
    except ApiException as exc:
        if is_not_found(exc):
            return False
        raise remote_error(f"Reading {store.kind} {namespace}/{name}", exc) from exc
    except TRANSPORT_ERRORS as exc:
        raise remote_error(f"Reading {store.kind} {namespace}/{name}", exc) from exc
    return True
