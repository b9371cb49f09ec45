"""
Harness Error Taxonomy
======================

Every fatal condition raised during bootstrap is a HarnessError. The
orchestrator catches HarnessError at the top level, tears the environment
down and prints ``str(error)`` as the single user-facing failure line.

    HarnessError
    ├── MissingDependency   kubectl not on PATH (pre-bootstrap)
    ├── StartFailure        etcd / kube-apiserver / controller failed to launch
    ├── ReadinessTimeout    a bounded wait exceeded its budget
    ├── InstallFailure      kubectl apply of a manifest location failed
    ├── BackgroundRunError  controller failed after start (logged only)
    └── TestFailure         the test routine returned non-zero

KubectlCommandError is deliberately not a HarnessError: a single failed
kubectl invocation is retryable inside the readiness poller and only becomes
fatal once wrapped by the installer or a timeout.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from kubeharness.core.orchestrator import HarnessState


INSTALL_KUBECTL = """
Cannot find kubectl, cannot run integration tests

Please download kubectl and ensure it is somewhere in the PATH.
See tools/get-kube-binaries.sh

"""


class HarnessError(Exception):
    """Base class for fatal harness errors."""

    def __init__(
        self,
        message: str,
        stage: Optional["HarnessState"] = None,
        cause: Optional[BaseException] = None,
        output: str = "",
    ):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.cause = cause
        self.output = output

    def __str__(self) -> str:
        line = self.message
        if self.stage is not None:
            line = f"{line} [stage={self.stage.value}]"
        if self.cause is not None:
            line = f"{line}: {self.cause}"
        if self.output:
            line = f"{line}\n{self.output.rstrip()}"
        return line


class MissingDependency(HarnessError):
    """The external command-line tool could not be resolved."""

    def __init__(self, binary: str = "kubectl", stage: Optional["HarnessState"] = None):
        super().__init__(INSTALL_KUBECTL, stage=stage)
        self.binary = binary

    def __str__(self) -> str:
        # The remediation text is printed verbatim.
        return self.message


class StartFailure(HarnessError):
    """A backing service or the controller-under-test failed to launch."""


class ReadinessTimeout(HarnessError):
    def __init__(
        self,
        description: str,
        elapsed: float,
        last_error: Optional[BaseException] = None,
        attempts: int = 0,
        stage: Optional["HarnessState"] = None,
    ):
        output = getattr(last_error, "output", "") or ""
        super().__init__(
            f"timed out waiting for {description} after {elapsed:.1f}s",
            stage=stage,
            cause=last_error,
            output=output,
        )
        self.description = description
        self.elapsed = elapsed
        self.last_error = last_error
        self.attempts = attempts


class InstallFailure(HarnessError):
    def __init__(
        self,
        location: str,
        output: str = "",
        cause: Optional[BaseException] = None,
        stage: Optional["HarnessState"] = None,
    ):
        super().__init__(f"cannot install {location}", stage=stage, cause=cause, output=output)
        self.location = location


class BackgroundRunError(HarnessError):
    """The controller-under-test failed after it was started."""


class TestFailure(HarnessError):
    __test__ = False  # not a pytest test class

    def __init__(self, exit_code: int, stage: Optional["HarnessState"] = None):
        super().__init__(
            f"one or more tests failed with exit code: {exit_code}", stage=stage
        )
        self.exit_code = exit_code


class KubectlCommandError(Exception):
    """A single kubectl invocation exited non-zero or could not be executed."""

    def __init__(self, args: Sequence[str], returncode: Optional[int], output: str = ""):
        self.command = list(args)
        self.returncode = returncode
        self.output = output
        super().__init__(
            f"kubectl {' '.join(self.command)} failed with exit code {returncode}"
        )


def with_stage(error: HarnessError, stage: "HarnessState") -> HarnessError:
    """Attach the orchestrator state to an error raised by a component."""
    if error.stage is None:
        error.stage = stage
    return error
