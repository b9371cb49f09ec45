"""
In-Process Controller Runner
============================

Runs the controller-under-test as a background asyncio task inside the test
process, next to the foreground test routine.

A controller is built by a factory:

    def factory(config: ApiserverConfig, options: ControllerOptions) -> Controller

Construction happens synchronously inside ControllerRunner.start(); if it
raises, start() raises StartFailure. The controller's ``start(stop)``
coroutine then runs until ``stop`` is set. Errors it raises after start()
returned are only logged, never delivered to the test routine.

Usage:
    runner = ControllerRunner(factory, ControllerOptions(namespace="default"))
    background = await runner.start(ApiserverConfig(host=apiserver.url))
    ...
    background.cancel()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import aiohttp

from kubeharness.core.errors import BackgroundRunError, StartFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiserverConfig:
    """Connection settings for the ephemeral kube-apiserver."""
    host: str
    request_timeout: float = 30.0

    def __post_init__(self):
        if not self.host.startswith(("http://", "https://")):
            raise ValueError(f"kube-apiserver host must be an http(s) URL, got {self.host!r}")

    def session(self) -> aiohttp.ClientSession:
        """Open an HTTP session bound to the API server. Caller closes it."""
        return aiohttp.ClientSession(
            base_url=self.host,
            timeout=aiohttp.ClientTimeout(total=self.request_timeout),
        )


@dataclass(frozen=True)
class ControllerOptions:
    namespace: str = "default"


class Controller(Protocol):
    async def start(self, stop: asyncio.Event) -> None:
        ...


ControllerFactory = Callable[[ApiserverConfig, ControllerOptions], Controller]


class BackgroundController:
    """Handle on the running controller task."""

    def __init__(self, controller: Controller, name: str = "controller-manager"):
        self.controller = controller
        self.name = name
        self.stop_event = asyncio.Event()
        self.error: Optional[BackgroundRunError] = None
        self._cancelled = False
        self.task: asyncio.Task = asyncio.create_task(self._run(), name=name)

    async def _run(self) -> None:
        try:
            await self.controller.start(self.stop_event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.error = BackgroundRunError(f"cannot start {self.name}", cause=e)
            logger.error(f"[Controller] {self.error}", exc_info=True)
        else:
            logger.info(f"[Controller] {self.name} exited")

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def done(self) -> bool:
        return self.task.done()

    def cancel(self) -> None:
        """Signal the controller to stop. Does not wait for it to exit."""
        if self._cancelled:
            return
        self._cancelled = True
        self.stop_event.set()
        logger.info(f"[Controller] Stop signal sent to {self.name}")


class ControllerRunner:
    def __init__(self, factory: ControllerFactory, options: Optional[ControllerOptions] = None):
        self.factory = factory
        self.options = options or ControllerOptions()

    async def start(self, config: ApiserverConfig) -> BackgroundController:
        """
        Build the controller and start it in the background.

        Raises:
            StartFailure: if the factory raises
        """
        try:
            controller = self.factory(config, self.options)
        except Exception as e:
            logger.error(f"[Controller] Cannot create controller-manager: {e}")
            raise StartFailure("cannot create controller-manager", cause=e) from e

        background = BackgroundController(controller)
        logger.info(
            f"[Controller] controller-manager running against {config.host} "
            f"(namespace={self.options.namespace})"
        )
        return background
