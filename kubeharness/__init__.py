"""
kubeharness - ephemeral Kubernetes environment for controller integration tests.

Starts etcd and kube-apiserver, installs the baseline manifests, runs the
controller-under-test in-process and hands control to a test routine.
"""

__version__ = "0.1.0"
