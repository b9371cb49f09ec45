"""
Pytest configuration and shared fixtures for the kubeharness test suite.

This file contains:
- Fakes for the clock, kubectl and backing-service launchers
- Shared fixtures available to all tests
- Test hooks and configuration
"""

import asyncio
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from kubeharness.core.errors import KubectlCommandError, StartFailure  # noqa: E402
from kubeharness.core.harness_config import HarnessConfig  # noqa: E402


class FakeClock:
    """Monotonic clock that only moves when sleep() is awaited."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeKubectl:
    """
    Stands in for Kubectl.

    ``version_failures`` / ``query_failures`` are how many leading calls fail
    (None means every call fails); ``failing_locations`` make apply() fail.
    """

    def __init__(
        self,
        path: str,
        server: str,
        events: List[str],
        version_failures: Optional[int] = 0,
        query_failures: Optional[int] = 0,
        failing_locations: Optional[Dict[str, str]] = None,
    ):
        self.path = path
        self.server = server
        self.events = events
        self.version_failures = version_failures
        self.query_failures = query_failures
        self.failing_locations = failing_locations or {}
        self.version_calls = 0
        self.query_calls = 0
        self.applied: List[str] = []

    async def version(self) -> str:
        self.version_calls += 1
        if self.version_failures is None or self.version_calls <= self.version_failures:
            raise KubectlCommandError(["version"], 1, "The connection to the server was refused")
        return "Server Version: v1.16.0"

    async def query(self, selector: str) -> str:
        self.query_calls += 1
        if self.query_failures is None or self.query_calls <= self.query_failures:
            raise KubectlCommandError(["get", selector], 1, "the server doesn't have a resource type")
        return "No resources found."

    async def apply(self, location: str) -> str:
        self.applied.append(location)
        self.events.append(f"apply {location}")
        if location in self.failing_locations:
            raise KubectlCommandError(["apply", "-f", location], 1, self.failing_locations[location])
        return f"{location} configured"


class FakeServices:
    """Records starts/stops of the backing services in ``events``."""

    def __init__(self, events: List[str], fail: Optional[str] = None):
        self.events = events
        self.fail = fail
        self.stop_calls: Dict[str, int] = {"etcd": 0, "kube-apiserver": 0}

    def _started(self, name: str, url: str):
        if self.fail == name:
            raise StartFailure(f"unable to start {name}", cause=FileNotFoundError(name))
        self.events.append(f"start {name}")

        async def release() -> None:
            self.stop_calls[name] += 1
            self.events.append(f"stop {name}")

        return SimpleNamespace(name=name, url=url), release

    async def start_etcd(self, config):
        return self._started("etcd", "http://127.0.0.1:2379")

    async def start_apiserver(self, config, etcd_url):
        assert etcd_url == "http://127.0.0.1:2379"
        return self._started("kube-apiserver", "http://127.0.0.1:8080")


class IdleController:
    """Controller that waits for the stop signal."""

    def __init__(self, events: List[str]):
        self.events = events

    async def start(self, stop: asyncio.Event) -> None:
        self.events.append("controller running")
        await stop.wait()
        self.events.append("controller stopped")


@pytest.fixture
def events() -> List[str]:
    return []


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def harness_config() -> HarnessConfig:
    return HarnessConfig(deploy_dir="deploy")


@pytest.fixture(scope="session")
def project_root_path():
    """Return the project root directory path."""
    return project_root


def pytest_configure(config):
    """Configure pytest with custom settings."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


def pytest_report_header(config):
    """Add custom header to pytest report."""
    return [
        "kubeharness Test Suite",
        f"Project Root: {project_root}",
    ]
