"""
Harness core: bootstrap sequencing, readiness polling, process handles and teardown.
"""

from kubeharness.core.cleanup_stack import CleanupStack
from kubeharness.core.controller_runner import (
    ApiserverConfig,
    BackgroundController,
    ControllerOptions,
    ControllerRunner,
)
from kubeharness.core.errors import (
    BackgroundRunError,
    HarnessError,
    InstallFailure,
    KubectlCommandError,
    MissingDependency,
    ReadinessTimeout,
    StartFailure,
    TestFailure,
)
from kubeharness.core.harness_config import HarnessConfig, get_harness_config
from kubeharness.core.orchestrator import HarnessState, IntegrationHarness, test_main
from kubeharness.core.readiness_poller import PollResult, poll_until_ready

__all__ = [
    "ApiserverConfig",
    "BackgroundController",
    "BackgroundRunError",
    "CleanupStack",
    "ControllerOptions",
    "ControllerRunner",
    "HarnessConfig",
    "HarnessError",
    "HarnessState",
    "InstallFailure",
    "IntegrationHarness",
    "KubectlCommandError",
    "MissingDependency",
    "PollResult",
    "ReadinessTimeout",
    "StartFailure",
    "TestFailure",
    "get_harness_config",
    "poll_until_ready",
    "test_main",
]
