"""Command-line entry point for running acceptance suites against a device."""

import argparse
import asyncio
import logging
import shutil
import sys
from pathlib import Path
from typing import Optional

from harness.config import HarnessConfig, load_config
from harness.models.result import SuiteResult
from harness.services.environment import DeviceEnvironment
from harness.services.reporter import ReportService
from harness.services.scenario import SuiteRunner
from harness.suites import device_tree, modem, supervisor
from harness.utils.errors import ConfigError
from harness.utils.logging import setup_logger

SUITES = {
    "supervisor": supervisor.build_suite,
    "device-tree": device_tree.build_suite,
    "modem": modem.build_suite,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="harness",
        description="Run end-to-end acceptance suites against a device",
    )
    parser.add_argument("--config", type=Path, help="JSON configuration file")
    parser.add_argument(
        "--suite",
        action="append",
        choices=sorted(SUITES),
        help="Suite to run (repeatable, default: all)",
    )
    parser.add_argument("--log-level", help="Overrides the configured log level")
    return parser


async def run_suites(config: HarnessConfig, names: list[str]) -> list[SuiteResult]:
    """Run the named suites one after another against the configured device.

    The working directory holding release checkouts is removed afterwards.
    """
    env = DeviceEnvironment.from_config(config)
    runner = SuiteRunner(
        policy=config.poll_policy(),
        reporter=ReportService(results_url=config.results_url),
    )
    results = []
    try:
        for name in names:
            results.append(await runner.run(SUITES[name](env)))
    finally:
        if env.workdir.exists():
            shutil.rmtree(env.workdir)
            logging.getLogger("harness.main").debug(f"Removed working directory {env.workdir}")
    return results


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point.

    Returns:
        0 when every scenario passed, 1 otherwise, 2 on configuration errors
    """
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    level_name = (args.log_level or config.log_level).upper()
    logger = setup_logger(
        "harness", config.log_file, level=getattr(logging, level_name, logging.INFO)
    )

    names = args.suite or list(SUITES)
    logger.info(f"Running suites: {', '.join(names)}")
    try:
        results = asyncio.run(run_suites(config, names))
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    passed = all(result.passed for result in results)
    logger.info("All suites passed" if passed else "Some scenarios failed")
    return 0 if passed else 1


if __name__ == "__main__":
    sys.exit(main())
