"""
Baseline manifest installation.

Applies manifest locations one by one with ``kubectl apply -f``. The first
failure stops the sequence; nothing already applied is rolled back, since the
whole environment is torn down by the orchestrator anyway.
"""

from __future__ import annotations

import logging
from typing import Iterable, List

from kubeharness.core.errors import InstallFailure, KubectlCommandError
from kubeharness.core.kubectl import Kubectl

logger = logging.getLogger(__name__)


async def install_manifests(kubectl: Kubectl, locations: Iterable[str]) -> List[str]:
    """
    Apply each location in order.

    Args:
        kubectl: Kubectl bound to the target API server
        locations: Files or directories (kubectl expands directories)

    Returns:
        The locations that were applied

    Raises:
        InstallFailure: naming the failing location, with kubectl's output
    """
    applied: List[str] = []
    for location in locations:
        logger.info(f"[Installer] Installing {location}...")
        try:
            output = await kubectl.apply(location)
        except KubectlCommandError as e:
            logger.error(f"[Installer] Failed to install {location}: {e}")
            raise InstallFailure(location, output=e.output, cause=e) from e
        if output:
            logger.debug(f"[Installer] {output.rstrip()}")
        applied.append(location)
    return applied
