from __future__ import annotations

from types import SimpleNamespace

import pytest

from janitor.src.errors import RemoteIOError
from janitor.src.objects import (
    UpdateStrategy,
    apply_object,
    build_object,
    config_map_store,
    delete_object,
    json_patch_document,
    merge_patch_document,
)
from janitor.tests.fakes import FakeCoreApi, connection_error


def _body(data: dict[str, str]) -> dict[str, object]:
    return build_object("ConfigMap", "app1", "ns1", {"data": data})


def test_build_object_skips_empty_payload_sections() -> None:
    body = build_object("ConfigMap", "app1", "ns1", {"data": {"a": "1"}, "binaryData": {}})

    assert body["data"] == {"a": "1"}
    assert "binaryData" not in body
    assert body["metadata"]["namespace"] == "ns1"


def test_build_object_always_has_data() -> None:
    assert build_object("ConfigMap", "app1", "ns1", {})["data"] == {}


def test_merge_patch_document_only_carries_payload() -> None:
    assert merge_patch_document(_body({"a": "1"})) == {"data": {"a": "1"}}


def test_json_patch_document_escapes_keys() -> None:
    assert json_patch_document(_body({"a/b": "1", "c~d": "2"})) == [
        {"op": "add", "path": "/data/a~1b", "value": "1"},
        {"op": "add", "path": "/data/c~0d", "value": "2"},
    ]


def test_each_strategy_updates_existing_object() -> None:
    for strategy, method in [
        (UpdateStrategy.REPLACE, "replace_namespaced_config_map"),
        (UpdateStrategy.MERGE_PATCH, "patch_namespaced_config_map"),
        (UpdateStrategy.JSON_PATCH, "patch_namespaced_config_map"),
    ]:
        core_api = FakeCoreApi(namespaces={"ns1"})
        store = config_map_store(core_api)
        apply_object(store, "ns1", _body({"a": "1", "keep": "yes"}))

        apply_object(store, "ns1", _body({"a": "2"}), strategy)

        data = core_api.config_map_data("ns1", "app1")
        assert core_api.methods_called(method) == ["app1"]
        assert data["a"] == "2"
        if strategy is UpdateStrategy.REPLACE:
            assert "keep" not in data
        else:
            assert data["keep"] == "yes"


def test_json_patch_document_adds_missing_section_as_a_whole() -> None:
    current = SimpleNamespace(data=None, binary_data={"old": "AA=="})
    body = build_object(
        "ConfigMap", "app1", "ns1", {"data": {"a": "1"}, "binaryData": {"b": "Ag=="}}
    )

    assert json_patch_document(body, current) == [
        {"op": "add", "path": "/data", "value": {"a": "1"}},
        {"op": "add", "path": "/binaryData/b", "value": "Ag=="},
    ]


def test_json_patch_on_object_without_data_section() -> None:
    core_api = FakeCoreApi(namespaces={"ns1"})
    core_api.objects["config_map"][("ns1", "app1")] = {"metadata": {"name": "app1"}}

    applied = apply_object(
        config_map_store(core_api), "ns1", _body({"a": "1"}), UpdateStrategy.JSON_PATCH
    )

    assert applied.action == "patched"
    assert core_api.config_map_data("ns1", "app1") == {"a": "1"}


def test_lost_connection_while_applying_is_remote_error() -> None:
    core_api = FakeCoreApi(
        namespaces={"ns1"},
        failures={("read_namespaced_config_map", "app1"): connection_error()},
    )

    with pytest.raises(RemoteIOError, match="Reading ConfigMap ns1/app1"):
        apply_object(config_map_store(core_api), "ns1", _body({"a": "1"}))
    assert core_api.methods_called("create_namespaced_config_map") == []


def test_delete_object_lost_connection_is_remote_error() -> None:
    core_api = FakeCoreApi(
        namespaces={"ns1"},
        failures={("delete_namespaced_config_map", "app1"): OSError("reset")},
    )

    with pytest.raises(RemoteIOError):
        delete_object(config_map_store(core_api), "ns1", "app1")
