#!/usr/bin/env python3
"""
Command-line entry point.

Runs pytest inside the harness:

    python -m kubeharness --controller mypkg.manager:new_manager -- tests/integration -x

Everything after ``--`` is passed to pytest. Settings not given on the
command line come from KUBEHARNESS_* environment variables, optionally loaded
from a .env file.
"""

from __future__ import annotations

import argparse
import asyncio
import importlib
import logging
import os
from typing import List, Optional

import pytest
from dotenv import load_dotenv

from kubeharness.core.controller_runner import ControllerFactory
from kubeharness.core.harness_config import HarnessConfig
from kubeharness.core.orchestrator import IntegrationHarness

logger = logging.getLogger(__name__)


def load_factory(target: str) -> ControllerFactory:
    """Import ``module:attribute`` and return the attribute."""
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise argparse.ArgumentTypeError(
            f"controller must look like 'package.module:factory', got {target!r}"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise argparse.ArgumentTypeError(f"cannot import {module_name}: {e}") from e
    try:
        factory = getattr(module, attr)
    except AttributeError as e:
        raise argparse.ArgumentTypeError(f"{module_name} has no attribute {attr!r}") from e
    if not callable(factory):
        raise argparse.ArgumentTypeError(f"{target} is not callable")
    return factory


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kubeharness",
        description="Run integration tests against an ephemeral etcd + kube-apiserver.",
    )
    parser.add_argument(
        "--controller",
        required=True,
        type=load_factory,
        help="controller factory to run in-process, as package.module:callable",
    )
    parser.add_argument("--deploy-dir", help="directory holding the baseline manifests")
    parser.add_argument("--namespace", help="namespace handed to the controller")
    parser.add_argument("--kubectl", dest="kubectl_binary", help="kubectl binary")
    parser.add_argument("--etcd", dest="etcd_binary", help="etcd binary")
    parser.add_argument("--kube-apiserver", dest="apiserver_binary", help="kube-apiserver binary")
    parser.add_argument("--env-file", default=".env", help="dotenv file to load (default: .env)")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    parser.add_argument("pytest_args", nargs="*", help="arguments passed to pytest (after --)")
    return parser


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    if args.env_file and os.path.exists(args.env_file):
        load_dotenv(args.env_file)
        logger.debug(f"Loaded environment from {args.env_file}")

    config = HarnessConfig.from_env().with_overrides(
        deploy_dir=args.deploy_dir,
        namespace=args.namespace,
        kubectl_binary=args.kubectl_binary,
        etcd_binary=args.etcd_binary,
        apiserver_binary=args.apiserver_binary,
    )
    pytest_args = list(args.pytest_args)

    def run_tests() -> int:
        return int(pytest.main(pytest_args))

    harness = IntegrationHarness(run_tests, args.controller, config)
    return asyncio.run(harness.run())
