from pathlib import Path

import pytest
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from src.common.errors import CredentialError, WorkClientError, WorkNotFoundError
from src.workclient import credentials
from src.workclient.client import MERGE_PATCH_CONTENT_TYPE, WorkClient
from src.workclient.work import (
    build_manifest_work,
    manifest_diff,
    merge_patch_body,
    resource_feedback,
    work_conditions,
    work_manifests,
)


class _FakeCustomObjectsApi:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def _record(self, method, args, kwargs):
        self.calls.append((method, args, kwargs))
        if self.error is not None:
            raise self.error
        return {"metadata": {"name": "web-abcde", "uid": "u-1"}, "items": [{"metadata": {"name": "a"}}]}

    def create_namespaced_custom_object(self, *args, **kwargs):
        return self._record("create", args, kwargs)

    def get_namespaced_custom_object(self, *args, **kwargs):
        return self._record("get", args, kwargs)

    def replace_namespaced_custom_object(self, *args, **kwargs):
        return self._record("replace", args, kwargs)

    def patch_namespaced_custom_object(self, *args, **kwargs):
        return self._record("patch", args, kwargs)

    def delete_namespaced_custom_object(self, *args, **kwargs):
        return self._record("delete", args, kwargs)

    def list_namespaced_custom_object(self, *args, **kwargs):
        return self._record("list", args, kwargs)

    def list_cluster_custom_object(self, *args, **kwargs):
        return self._record("list_cluster", args, kwargs)


class TestWorkClient:
    def test_create_targets_manifestworks(self):
        api = _FakeCustomObjectsApi()
        work = build_manifest_work(namespace="cluster1", manifests=[], generate_name="web-")
        created = WorkClient(custom_api=api).create("cluster1", work)
        assert created["metadata"]["uid"] == "u-1"
        method, args, _ = api.calls[0]
        assert method == "create"
        assert args[:4] == ("work.open-cluster-management.io", "v1", "cluster1", "manifestworks")
        assert args[4]["metadata"]["generateName"] == "web-"

    def test_patch_uses_merge_patch(self):
        api = _FakeCustomObjectsApi()
        WorkClient(custom_api=api).patch("cluster1", "web", merge_patch_body([{"kind": "Namespace"}]))
        _, args, kwargs = api.calls[0]
        assert args[4] == "web"
        assert args[5] == {"spec": {"workload": {"manifests": [{"kind": "Namespace"}]}}}
        assert kwargs["_content_type"] == MERGE_PATCH_CONTENT_TYPE

    def test_delete_is_immediate(self):
        api = _FakeCustomObjectsApi()
        WorkClient(custom_api=api).delete("cluster1", "web")
        assert api.calls[0][2] == {"grace_period_seconds": 0}

    def test_update_replaces_by_name(self):
        api = _FakeCustomObjectsApi()
        WorkClient(custom_api=api).update("cluster1", {"metadata": {"name": "web"}})
        assert api.calls[0][0] == "replace"
        assert api.calls[0][1][4] == "web"

    def test_list_returns_items(self):
        api = _FakeCustomObjectsApi()
        client = WorkClient(custom_api=api)
        assert client.list("cluster1") == [{"metadata": {"name": "a"}}]
        assert client.list_all() == [{"metadata": {"name": "a"}}]
        assert [c[0] for c in api.calls] == ["list", "list_cluster"]

    def test_not_found_is_translated(self):
        api = _FakeCustomObjectsApi(error=ApiException(status=404, reason="Not Found"))
        with pytest.raises(WorkNotFoundError) as excinfo:
            WorkClient(custom_api=api).get("cluster1", "web")
        assert excinfo.value.status == 404

    def test_other_api_errors_are_translated(self):
        api = _FakeCustomObjectsApi(error=ApiException(status=409, reason="Conflict"))
        with pytest.raises(WorkClientError) as excinfo:
            WorkClient(custom_api=api).create("cluster1", {"metadata": {}})
        assert not isinstance(excinfo.value, WorkNotFoundError)
        assert excinfo.value.reason == "Conflict"

    def test_unrelated_errors_propagate(self):
        api = _FakeCustomObjectsApi(error=RuntimeError("bug"))
        with pytest.raises(RuntimeError):
            WorkClient(custom_api=api).get("cluster1", "web")


class TestWorkAccessors:
    def test_accessors_tolerate_missing_sections(self):
        assert work_conditions(None) == []
        assert work_conditions({"status": {"conditions": "bad"}}) == []
        assert work_manifests({"spec": {}}) == []
        assert resource_feedback({}) == []

    def test_manifest_configs_are_optional(self):
        work = build_manifest_work(namespace="c1", manifests=[{"kind": "A"}], name="w")
        assert "manifestConfigs" not in work["spec"]
        assert work["metadata"] == {"namespace": "c1", "name": "w"}

    def test_manifest_diff(self):
        before = [{"spec": {"replicas": 2}}]
        after = [{"spec": {"replicas": 3}}]
        assert manifest_diff(before, after) == [{"op": "replace", "path": "/0/spec/replicas", "value": 3}]
        assert manifest_diff(before, before) == []


class TestCredentials:
    def test_falls_back_to_kubeconfig(self, tmp_path: Path, monkeypatch):
        kubeconfig = tmp_path / "config"
        kubeconfig.write_text("apiVersion: v1\n", encoding="utf-8")
        loaded = []

        def no_cluster(**kwargs):
            raise ConfigException("Service host/port is not set.")

        monkeypatch.setattr(credentials.k8s_config, "load_incluster_config", no_cluster)
        monkeypatch.setattr(
            credentials.k8s_config,
            "load_kube_config",
            lambda config_file, client_configuration: loaded.append(config_file),
        )
        api_client = credentials.resolve_api_client(kubeconfig)
        assert loaded == [str(kubeconfig)]
        assert api_client is not None

    def test_missing_kubeconfig_is_fatal(self, tmp_path: Path, monkeypatch):
        def no_cluster(**kwargs):
            raise ConfigException("Service host/port is not set.")

        monkeypatch.setattr(credentials.k8s_config, "load_incluster_config", no_cluster)
        with pytest.raises(CredentialError):
            credentials.resolve_api_client(tmp_path / "missing")

    def test_broken_kubeconfig_is_fatal(self, tmp_path: Path, monkeypatch):
        kubeconfig = tmp_path / "config"
        kubeconfig.write_text("not a kubeconfig", encoding="utf-8")

        def no_cluster(**kwargs):
            raise ConfigException("Service host/port is not set.")

        def broken(config_file, client_configuration):
            raise ConfigException("Invalid kube-config file.")

        monkeypatch.setattr(credentials.k8s_config, "load_incluster_config", no_cluster)
        monkeypatch.setattr(credentials.k8s_config, "load_kube_config", broken)
        with pytest.raises(CredentialError):
            credentials.resolve_api_client(kubeconfig)
