"""
kubectl invocation.

Both the manifest installer and the readiness probes go through Kubectl, so
swapping the CLI for a native client only touches this module.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from typing import List

from kubeharness.core.errors import KubectlCommandError, MissingDependency

logger = logging.getLogger(__name__)


def resolve_kubectl(binary: str = "kubectl") -> str:
    """Return the full path to kubectl, or raise MissingDependency."""
    path = shutil.which(binary)
    if path is None:
        raise MissingDependency(binary)
    return path


class Kubectl:
    """
    Runs kubectl against one API server.

    Every invocation is ``kubectl --server <server> <args...>`` with stdout and
    stderr combined into one output string.
    """

    def __init__(self, path: str, server: str):
        self.path = path
        self.server = server

    def command_line(self, *args: str) -> List[str]:
        return [self.path, "--server", self.server, *args]

    async def run(self, *args: str) -> str:
        """
        Run kubectl and return its combined output.

        Raises:
            KubectlCommandError: if kubectl cannot be executed or exits non-zero
        """
        cmd = self.command_line(*args)
        logger.debug(f"[Kubectl] {' '.join(cmd)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise KubectlCommandError(args, None, f"cannot exec kubectl: {e}") from e

        try:
            stdout, _ = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                logger.debug(f"[Kubectl] Killing abandoned kubectl (PID {process.pid})")
                try:
                    process.kill()
                except ProcessLookupError:
                    pass  # already exited
                await process.wait()
            raise
        output = stdout.decode(errors="replace") if stdout else ""
        if process.returncode != 0:
            raise KubectlCommandError(args, process.returncode, output)
        return output

    async def apply(self, location: str) -> str:
        return await self.run("apply", "-f", location)

    async def query(self, selector: str) -> str:
        return await self.run("get", selector)

    async def version(self) -> str:
        return await self.run("version")
