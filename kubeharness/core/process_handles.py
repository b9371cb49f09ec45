"""
Backing Service Processes
=========================

Start/stop handles for the two ephemeral backing services of the test
environment: etcd (coordination store) and kube-apiserver (control plane).

start_etcd() / start_apiserver() return as soon as the process is spawned,
together with a release action that stops it. Readiness is not checked here;
the orchestrator polls for it separately.

Stopping escalates SIGTERM -> SIGKILL after a grace period and also reaps any
children the service forked (found via psutil), then removes the temporary
data directory.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import socket
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Tuple

import psutil

from kubeharness.core.errors import StartFailure
from kubeharness.core.harness_config import HarnessConfig

logger = logging.getLogger(__name__)

ReleaseAction = Callable[[], Awaitable[None]]

LOOPBACK = "127.0.0.1"
LOG_TAIL_LINES = 20


def find_free_port(host: str = LOOPBACK) -> int:
    """Ask the kernel for a currently unused TCP port on ``host``."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, 0))
        return sock.getsockname()[1]


@dataclass
class ServiceProcess:
    """A spawned backing service."""
    name: str
    command: List[str]
    process: asyncio.subprocess.Process
    data_dir: Path
    url: str
    log_path: Path
    _stopped: bool = field(default=False, repr=False)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def stopped(self) -> bool:
        return self._stopped

    def is_running(self) -> bool:
        return self.process.returncode is None

    def log_tail(self, lines: int = LOG_TAIL_LINES) -> str:
        try:
            content = self.log_path.read_text(errors="replace")
        except OSError:
            return ""
        return "\n".join(content.splitlines()[-lines:])

    async def stop(self, graceful_timeout: float = 10.0) -> None:
        """Terminate the process tree and remove the data dir. Only the first call acts."""
        if self._stopped:
            return
        self._stopped = True

        try:
            if self.process.returncode is not None:
                logger.warning(
                    f"[Services] {self.name} (PID {self.pid}) already exited with code "
                    f"{self.process.returncode}\n{self.log_tail()}"
                )
            else:
                await self._terminate_tree(graceful_timeout)
        finally:
            shutil.rmtree(self.data_dir, ignore_errors=True)

    async def _terminate_tree(self, graceful_timeout: float) -> None:
        try:
            children = psutil.Process(self.pid).children(recursive=True)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            children = []

        try:
            self.process.terminate()
        except ProcessLookupError:
            pass
        try:
            await asyncio.wait_for(self.process.wait(), timeout=graceful_timeout)
            logger.info(f"[Services] {self.name} stopped gracefully")
        except asyncio.TimeoutError:
            self.process.kill()
            await self.process.wait()
            logger.warning(f"[Services] {self.name} killed after {graceful_timeout}s")

        if children:
            _, alive = await asyncio.to_thread(
                psutil.wait_procs, children, timeout=graceful_timeout
            )
            for child in alive:
                try:
                    child.kill()
                except psutil.NoSuchProcess:
                    pass
            if alive:
                logger.warning(
                    f"[Services] Killed {len(alive)} leftover child process(es) of {self.name}"
                )


def _resolve_binary(binary: str) -> str:
    path = shutil.which(binary)
    if path is None:
        raise FileNotFoundError(f"cannot find {binary} in PATH")
    return path


async def spawn_service(
    name: str,
    binary: str,
    build_args: Callable[[Path, int], Tuple[List[str], str]],
    graceful_timeout: float = 10.0,
) -> Tuple[ServiceProcess, ReleaseAction]:
    """
    Spawn a backing service in a fresh temporary data directory.

    Args:
        name: Service name for logs and errors
        binary: Binary name or path
        build_args: Given (data_dir, port), returns (args, service_url)
        graceful_timeout: SIGTERM grace period used by the release action

    Returns:
        (ServiceProcess, release action)

    Raises:
        StartFailure: if the binary cannot be found or spawned
    """
    data_dir: Optional[Path] = None
    try:
        executable = _resolve_binary(binary)
        data_dir = Path(tempfile.mkdtemp(prefix=f"kubeharness-{name}-"))
        args, url = build_args(data_dir, find_free_port())
        command = [executable, *args]
        log_path = data_dir / f"{name}.log"

        logger.info(f"[Services] Starting {name}: {' '.join(command)}")
        with open(log_path, "wb") as log_file:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=log_file,
                stderr=asyncio.subprocess.STDOUT,
            )
    except OSError as e:
        if data_dir is not None:
            shutil.rmtree(data_dir, ignore_errors=True)
        logger.error(f"[Services] Failed to start {name}: {e}")
        raise StartFailure(f"unable to start {name}", cause=e) from e

    service = ServiceProcess(
        name=name,
        command=command,
        process=process,
        data_dir=data_dir,
        url=url,
        log_path=log_path,
    )
    logger.info(f"[Services] {name} started with PID {service.pid} at {url}")

    async def release() -> None:
        await service.stop(graceful_timeout)

    return service, release


async def start_etcd(config: HarnessConfig) -> Tuple[ServiceProcess, ReleaseAction]:
    """Start a single-member etcd listening on a free loopback port."""

    def build_args(data_dir: Path, port: int) -> Tuple[List[str], str]:
        url = f"http://{LOOPBACK}:{port}"
        peer_url = f"http://{LOOPBACK}:{find_free_port()}"
        args = [
            "--data-dir", str(data_dir / "data"),
            "--listen-client-urls", url,
            "--advertise-client-urls", url,
            "--listen-peer-urls", peer_url,
        ]
        return args, url

    return await spawn_service("etcd", config.etcd_binary, build_args, config.stop_timeout)


async def start_apiserver(
    config: HarnessConfig, etcd_url: str
) -> Tuple[ServiceProcess, ReleaseAction]:
    """Start kube-apiserver backed by ``etcd_url``, serving plain HTTP on loopback."""

    def build_args(data_dir: Path, port: int) -> Tuple[List[str], str]:
        args = [
            "--cert-dir", str(data_dir / "certs"),
            "--insecure-port", str(port),
            "--insecure-bind-address", LOOPBACK,
            "--etcd-servers", etcd_url,
        ]
        return args, f"http://{LOOPBACK}:{port}"

    return await spawn_service(
        "kube-apiserver", config.apiserver_binary, build_args, config.stop_timeout
    )
