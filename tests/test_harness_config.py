"""Tests for environment-driven harness configuration."""

import pytest

from kubeharness.core.harness_config import (
    DEFAULT_MANIFEST_FILES,
    HarnessConfig,
    get_harness_config,
    reset_harness_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in (
        "KUBEHARNESS_KUBECTL",
        "KUBEHARNESS_DEPLOY_DIR",
        "KUBEHARNESS_MANIFESTS",
        "KUBEHARNESS_APISERVER_READY_TIMEOUT",
        "KUBEHARNESS_CRD_READY_TIMEOUT",
        "KUBEHARNESS_NAMESPACE",
    ):
        monkeypatch.delenv(key, raising=False)
    reset_harness_config()
    yield
    reset_harness_config()


def test_defaults_match_baseline_environment():
    config = HarnessConfig.from_env()

    assert config.kubectl_binary == "kubectl"
    assert config.manifest_files == DEFAULT_MANIFEST_FILES
    assert config.crd_resources == "vt,vtc,vtk,vts,vtbs,vtb,etcdls"
    assert (config.apiserver_ready_interval, config.apiserver_ready_timeout) == (1.0, 60.0)
    assert (config.crd_ready_interval, config.crd_ready_timeout) == (1.0, 30.0)
    assert config.namespace == "default"
    assert config.manifest_locations() == [
        "../../../deploy/service_account.yaml",
        "../../../deploy/role.yaml",
        "../../../deploy/role_binding.yaml",
        "../../../deploy/priority.yaml",
        "../../../deploy/crds/",
    ]


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("KUBEHARNESS_DEPLOY_DIR", "/srv/deploy")
    monkeypatch.setenv("KUBEHARNESS_MANIFESTS", "crds/, role.yaml")
    monkeypatch.setenv("KUBEHARNESS_APISERVER_READY_TIMEOUT", "120")
    monkeypatch.setenv("KUBEHARNESS_NAMESPACE", "vitess")

    config = HarnessConfig.from_env()

    assert config.manifest_locations() == ["/srv/deploy/crds/", "/srv/deploy/role.yaml"]
    assert config.apiserver_ready_timeout == 120.0
    assert config.namespace == "vitess"


def test_invalid_numbers_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("KUBEHARNESS_CRD_READY_TIMEOUT", "soon")

    assert HarnessConfig.from_env().crd_ready_timeout == 30.0


def test_with_overrides_ignores_none():
    config = HarnessConfig().with_overrides(deploy_dir="deploy", namespace=None)

    assert config.deploy_dir == "deploy"
    assert config.namespace == "default"


def test_get_harness_config_is_cached(monkeypatch):
    first = get_harness_config()
    monkeypatch.setenv("KUBEHARNESS_NAMESPACE", "other")

    assert get_harness_config() is first
    reset_harness_config()
    assert get_harness_config().namespace == "other"
