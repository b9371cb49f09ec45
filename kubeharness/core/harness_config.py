"""
Harness Configuration Module
============================

Central configuration for the integration-test harness with env var support.

Usage:
    from kubeharness.core.harness_config import get_harness_config

    config = get_harness_config()
    locations = config.manifest_locations()

Environment variables (all optional):
    KUBEHARNESS_KUBECTL                   kubectl binary name or path
    KUBEHARNESS_ETCD                      etcd binary name or path
    KUBEHARNESS_KUBE_APISERVER            kube-apiserver binary name or path
    KUBEHARNESS_DEPLOY_DIR                directory holding the baseline manifests
    KUBEHARNESS_MANIFESTS                 comma-separated manifest files, in apply order
    KUBEHARNESS_CRD_RESOURCES             resource list queried to detect CRD readiness
    KUBEHARNESS_APISERVER_READY_INTERVAL  seconds between kube-apiserver probes
    KUBEHARNESS_APISERVER_READY_TIMEOUT   max seconds to wait for kube-apiserver
    KUBEHARNESS_CRD_READY_INTERVAL        seconds between CRD probes
    KUBEHARNESS_CRD_READY_TIMEOUT         max seconds to wait for CRDs
    KUBEHARNESS_NAMESPACE                 namespace the controller watches
    KUBEHARNESS_STOP_TIMEOUT              grace period before SIGKILL on teardown
"""

from __future__ import annotations

import os
import posixpath
from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple


# =============================================================================
# Configuration Defaults
# =============================================================================

# Path from the integration test binary working dir to the deploy manifests.
DEFAULT_DEPLOY_DIR = "../../../deploy"

# Base files installed before any test runs, but not the operator Deployment.
DEFAULT_MANIFEST_FILES: Tuple[str, ...] = (
    "service_account.yaml",
    "role.yaml",
    "role_binding.yaml",
    "priority.yaml",
    "crds/",
)

DEFAULT_CRD_RESOURCES = "vt,vtc,vtk,vts,vtbs,vtb,etcdls"


def _env_str(key: str, default: str) -> str:
    value = os.getenv(key, "").strip()
    return value or default


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return default


def _env_list(key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(key, "")
    if not raw.strip():
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


# =============================================================================
# HarnessConfig Dataclass
# =============================================================================

@dataclass(frozen=True)
class HarnessConfig:
    """
    Settings for one harness run.

    Attributes:
        kubectl_binary: Name or path of kubectl
        etcd_binary: Name or path of etcd
        apiserver_binary: Name or path of kube-apiserver
        deploy_dir: Directory containing the baseline manifests
        manifest_files: Manifest files/directories applied in order
        crd_resources: Selector passed to ``kubectl get`` to detect CRD readiness
        apiserver_ready_interval: Sleep between kube-apiserver probes (seconds)
        apiserver_ready_timeout: Budget for kube-apiserver readiness (seconds)
        crd_ready_interval: Sleep between CRD probes (seconds)
        crd_ready_timeout: Budget for CRD readiness (seconds)
        namespace: Namespace handed to the controller-under-test
        stop_timeout: Grace period for SIGTERM before SIGKILL (seconds)
    """
    kubectl_binary: str = "kubectl"
    etcd_binary: str = "etcd"
    apiserver_binary: str = "kube-apiserver"
    deploy_dir: str = DEFAULT_DEPLOY_DIR
    manifest_files: Tuple[str, ...] = field(default=DEFAULT_MANIFEST_FILES)
    crd_resources: str = DEFAULT_CRD_RESOURCES
    apiserver_ready_interval: float = 1.0
    apiserver_ready_timeout: float = 60.0
    crd_ready_interval: float = 1.0
    crd_ready_timeout: float = 30.0
    namespace: str = "default"
    stop_timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "HarnessConfig":
        """Create configuration from environment variables."""
        return cls(
            kubectl_binary=_env_str("KUBEHARNESS_KUBECTL", "kubectl"),
            etcd_binary=_env_str("KUBEHARNESS_ETCD", "etcd"),
            apiserver_binary=_env_str("KUBEHARNESS_KUBE_APISERVER", "kube-apiserver"),
            deploy_dir=_env_str("KUBEHARNESS_DEPLOY_DIR", DEFAULT_DEPLOY_DIR),
            manifest_files=_env_list("KUBEHARNESS_MANIFESTS", DEFAULT_MANIFEST_FILES),
            crd_resources=_env_str("KUBEHARNESS_CRD_RESOURCES", DEFAULT_CRD_RESOURCES),
            apiserver_ready_interval=_env_float("KUBEHARNESS_APISERVER_READY_INTERVAL", 1.0),
            apiserver_ready_timeout=_env_float("KUBEHARNESS_APISERVER_READY_TIMEOUT", 60.0),
            crd_ready_interval=_env_float("KUBEHARNESS_CRD_READY_INTERVAL", 1.0),
            crd_ready_timeout=_env_float("KUBEHARNESS_CRD_READY_TIMEOUT", 30.0),
            namespace=_env_str("KUBEHARNESS_NAMESPACE", "default"),
            stop_timeout=_env_float("KUBEHARNESS_STOP_TIMEOUT", 10.0),
        )

    def manifest_locations(self) -> List[str]:
        """Manifest locations joined onto deploy_dir, in apply order."""
        return manifest_locations(self.deploy_dir, self.manifest_files)

    def with_overrides(self, **changes) -> "HarnessConfig":
        """Copy with the given fields replaced; None values are ignored."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def manifest_locations(deploy_dir: str, files) -> List[str]:
    """
    Join each manifest file onto deploy_dir.

    A trailing slash marks a directory that kubectl expands itself, so it is
    kept on the joined path.
    """
    locations = []
    for name in files:
        location = posixpath.join(deploy_dir, name)
        if name.endswith("/") and not location.endswith("/"):
            location += "/"
        locations.append(location)
    return locations


# =============================================================================
# Singleton Access
# =============================================================================

_config_instance: Optional[HarnessConfig] = None


def get_harness_config() -> HarnessConfig:
    """Get the process-wide harness configuration (read from env once)."""
    global _config_instance
    if _config_instance is None:
        _config_instance = HarnessConfig.from_env()
    return _config_instance


def reset_harness_config() -> None:
    """Reset the cached configuration (for tests)."""
    global _config_instance
    _config_instance = None
