"""
Integration Test Harness Orchestrator
=====================================

Stands up an ephemeral cluster, runs a test routine against it and tears
everything down again.

State machine:
    +-------------------------+
    | INIT                    |
    +-------------------------+
              |  kubectl resolvable?
              v
    +-------------------------+
    | DEPENDENCY_CHECKED      |
    +-------------------------+
              |  start etcd                     (push: stop etcd)
              v
    +-------------------------+
    | STORE_STARTED           |
    +-------------------------+
              |  start kube-apiserver           (push: stop kube-apiserver)
              v
    +-------------------------+
    | SERVICE_STARTED         |
    +-------------------------+
              |  poll `kubectl version`
              v
    +-------------------------+
    | SERVICE_READY           |
    +-------------------------+
              |  kubectl apply -f <baseline manifests>
              v
    +-------------------------+
    | MANIFESTS_INSTALLED     |
    +-------------------------+
              |  poll `kubectl get <crds>`
              v
    +-------------------------+
    | DERIVED_RESOURCES_READY |
    +-------------------------+
              |  start controller task          (push: signal controller stop)
              v
    +-------------------------+
    | CONTROLLER_STARTED      |
    +-------------------------+
              |
              v
    +-------------------------+
    | TESTS_RUNNING           |  -> COMPLETED (exit 0) or FAILED (exit 1)
    +-------------------------+

Any step may fail; the cleanup stack is unwound on every exit path.

Usage:
    from kubeharness.core.orchestrator import test_main

    def run_tests() -> int:
        return pytest.main(["tests/integration"])

    test_main(run_tests, my_controller_factory)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import sys
import time
from contextlib import contextmanager
from enum import Enum
from typing import Any, Awaitable, Callable, Iterator, Optional, Tuple, Union

from kubeharness.core.cleanup_stack import CleanupStack
from kubeharness.core.controller_runner import (
    ApiserverConfig,
    BackgroundController,
    ControllerFactory,
    ControllerOptions,
    ControllerRunner,
)
from kubeharness.core.errors import (
    HarnessError,
    KubectlCommandError,
    StartFailure,
    TestFailure,
    with_stage,
)
from kubeharness.core.harness_config import HarnessConfig, get_harness_config
from kubeharness.core.kubectl import Kubectl, resolve_kubectl
from kubeharness.core.manifest_installer import install_manifests
from kubeharness.core.process_handles import (
    ReleaseAction,
    ServiceProcess,
    start_apiserver,
    start_etcd,
)
from kubeharness.core.readiness_poller import poll_until_ready

logger = logging.getLogger(__name__)

TestRoutine = Callable[[], Union[int, Awaitable[int]]]
EtcdLauncher = Callable[[HarnessConfig], Awaitable[Tuple[ServiceProcess, ReleaseAction]]]
ApiserverLauncher = Callable[[HarnessConfig, str], Awaitable[Tuple[ServiceProcess, ReleaseAction]]]

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


class HarnessState(str, Enum):
    """Harness states in order."""
    INIT = "init"
    DEPENDENCY_CHECKED = "dependency_checked"
    STORE_STARTED = "store_started"
    SERVICE_STARTED = "service_started"
    SERVICE_READY = "service_ready"
    MANIFESTS_INSTALLED = "manifests_installed"
    DERIVED_RESOURCES_READY = "derived_resources_ready"
    CONTROLLER_STARTED = "controller_started"
    TESTS_RUNNING = "tests_running"
    COMPLETED = "completed"
    FAILED = "failed"


class IntegrationHarness:
    """
    Runs one test routine against one ephemeral etcd + kube-apiserver pair
    with the controller-under-test running in-process.

    The launchers, kubectl resolver, clock and sleep are injectable so the
    sequencing can be exercised without real cluster binaries.
    """

    def __init__(
        self,
        tests: TestRoutine,
        controller_factory: ControllerFactory,
        config: Optional[HarnessConfig] = None,
        *,
        kubectl_resolver: Callable[[str], str] = resolve_kubectl,
        kubectl_factory: Callable[[str, str], Kubectl] = Kubectl,
        etcd_launcher: EtcdLauncher = start_etcd,
        apiserver_launcher: ApiserverLauncher = start_apiserver,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.tests = tests
        self.controller_factory = controller_factory
        self.config = config or get_harness_config()
        self._resolve_kubectl = kubectl_resolver
        self._make_kubectl = kubectl_factory
        self._start_etcd = etcd_launcher
        self._start_apiserver = apiserver_launcher
        self._clock = clock
        self._sleep = sleep

        self.state = HarnessState.INIT
        self.cleanup = CleanupStack()
        self.error: Optional[HarnessError] = None
        self.test_exit_code: Optional[int] = None
        self.etcd: Optional[ServiceProcess] = None
        self.apiserver: Optional[ServiceProcess] = None
        self.controller: Optional[BackgroundController] = None

    # =========================================================================
    # State Handling
    # =========================================================================

    def _transition(self, state: HarnessState) -> None:
        old_state = self.state
        self.state = state
        logger.info(f"[Harness] {old_state.value} -> {state.value}")

    @contextmanager
    def _stage(self, target: HarnessState) -> Iterator[None]:
        """Run one bootstrap step; on success move to ``target``."""
        try:
            yield
        except HarnessError as e:
            raise with_stage(e, target)
        except Exception as e:
            raise HarnessError("unexpected error", stage=target, cause=e) from e
        self._transition(target)

    # =========================================================================
    # Run
    # =========================================================================

    async def run(self) -> int:
        """
        Bootstrap, run the tests and tear down.

        Returns:
            0 if the test routine returned 0, 1 on any failure. On failure the
            single error line is printed to stdout.
        """
        try:
            try:
                await self._bootstrap_and_test()
            finally:
                result = await self.cleanup.unwind()
                if not result.success:
                    logger.warning(
                        f"[Harness] Teardown finished with {len(result.errors)} error(s)"
                    )
        except HarnessError as e:
            self.error = e
            self._transition(HarnessState.FAILED)
            print(e)
            return EXIT_FAILURE

        self._transition(HarnessState.COMPLETED)
        return EXIT_SUCCESS

    async def _bootstrap_and_test(self) -> None:
        config = self.config

        with self._stage(HarnessState.DEPENDENCY_CHECKED):
            kubectl_path = self._resolve_kubectl(config.kubectl_binary)

        with self._stage(HarnessState.STORE_STARTED):
            self.etcd, stop_etcd = await self._start_etcd(config)
            self.cleanup.push("etcd", stop_etcd)

        with self._stage(HarnessState.SERVICE_STARTED):
            self.apiserver, stop_apiserver = await self._start_apiserver(config, self.etcd.url)
            self.cleanup.push("kube-apiserver", stop_apiserver)

        kubectl = self._make_kubectl(kubectl_path, self.apiserver.url)

        with self._stage(HarnessState.SERVICE_READY):
            await self._wait(
                kubectl.version,
                config.apiserver_ready_interval,
                config.apiserver_ready_timeout,
                "kube-apiserver to be ready",
            )

        with self._stage(HarnessState.MANIFESTS_INSTALLED):
            await install_manifests(kubectl, config.manifest_locations())

        with self._stage(HarnessState.DERIVED_RESOURCES_READY):
            await self._wait(
                lambda: kubectl.query(config.crd_resources),
                config.crd_ready_interval,
                config.crd_ready_timeout,
                "CRDs to be ready",
            )

        with self._stage(HarnessState.CONTROLLER_STARTED):
            try:
                apiserver_config = ApiserverConfig(host=self.apiserver.url)
            except ValueError as e:
                raise StartFailure("cannot create controller-manager", cause=e) from e
            runner = ControllerRunner(
                self.controller_factory, ControllerOptions(namespace=config.namespace)
            )
            self.controller = await runner.start(apiserver_config)
            self.cleanup.push("controller-manager", self.controller.cancel)

        self._transition(HarnessState.TESTS_RUNNING)
        self.test_exit_code = await self._run_tests()
        if self.test_exit_code != 0:
            raise TestFailure(self.test_exit_code, stage=HarnessState.TESTS_RUNNING)

    async def _wait(self, probe, interval: float, max_wait: float, description: str) -> None:
        await poll_until_ready(
            probe,
            interval=interval,
            max_wait=max_wait,
            description=description,
            retry_on=(KubectlCommandError,),
            clock=self._clock,
            sleep=self._sleep,
        )

    async def _run_tests(self) -> int:
        """
        Run the test routine; plain callables go to a worker thread.

        A worker thread cannot be stopped. If the run is cancelled while it is
        busy, teardown proceeds and the thread keeps going against services
        that are being shut down.
        """
        in_thread = not inspect.iscoroutinefunction(self.tests)
        try:
            if in_thread:
                result = await asyncio.to_thread(self.tests)
            else:
                result = await self.tests()
            if inspect.isawaitable(result):
                result = await result
            return int(result)
        except asyncio.CancelledError:
            if in_thread:
                logger.warning(
                    "[Harness] Run cancelled while the test routine was running; "
                    "it may still be executing during teardown"
                )
            raise
        except Exception as e:
            raise HarnessError(
                "test routine raised", stage=HarnessState.TESTS_RUNNING, cause=e
            ) from e


def test_main(
    tests: TestRoutine,
    controller_factory: ControllerFactory,
    config: Optional[HarnessConfig] = None,
) -> None:
    """Start etcd, kube-apiserver and the controller, run ``tests``, then exit."""
    harness = IntegrationHarness(tests, controller_factory, config)
    sys.exit(asyncio.run(harness.run()))


test_main.__test__ = False  # not a pytest test function
