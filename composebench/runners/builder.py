"""
Expansion of a benchmark configuration into test runs, and the batch driver
that executes them one after the other.

Copyright 2025 Advanced Micro Devices, Inc.
All rights reserved.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional
import logging

from composebench.lib.context import RunContext
from composebench.lib.docker_lib import DockerControlPlane
from composebench.lib.errors import BenchError, ConfigurationError, TestRunFailed
from composebench.metrics.base import CollectorRegistry, default_registry
from composebench.runners.test_run import RunResult, TestRun
from composebench.schema.config import BenchConfig

log = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


@dataclass
class RunOptions:
    """Options shared by every run of a batch."""

    # root directory, each run gets its own subfolder
    out_path: Path = Path("results")
    # names of the tests to run, empty means all
    filter_tests: List[str] = field(default_factory=list)
    control_plane: Optional[DockerControlPlane] = None
    registry: Optional[CollectorRegistry] = None


def tool_names(config: BenchConfig, test) -> List[str]:
    """Tools a test runs with: the global tools, then those only the test declares."""
    names = list(config.tools)
    for name in test.tools:
        if name not in config.tools:
            names.append(name)
    return names


def _select_tests(config: BenchConfig, filter_tests):
    if not filter_tests:
        return list(config.tests)
    known = {t.name for t in config.tests}
    unknown = [name for name in filter_tests if name not in known]
    if unknown:
        raise ConfigurationError(f"unknown test(s): {', '.join(unknown)} (available: {', '.join(sorted(known)) or 'none'})")
    wanted = set(filter_tests)
    return [t for t in config.tests if t.name in wanted]


def build_test_runs(config: BenchConfig, options: RunOptions, now: Optional[datetime] = None) -> List[TestRun]:
    """
    Expand every test scenario into one TestRun per tool.

    Tools are the globally declared tools in declaration order followed by the
    tools only the scenario declares. Infrastructure and metrics are the
    global entries followed by the scenario entries; the compose files of a
    tool are its global file followed by the scenario's override.

    All runs of a batch share the same timestamp, so their output directories
    {out}/{timestamp}_{test}_{tool} sort together.
    """
    now = now or datetime.now()
    stamp = now.strftime(TIMESTAMP_FORMAT)
    control_plane = options.control_plane or DockerControlPlane()
    registry = options.registry or default_registry()

    runs = []
    for test in _select_tests(config, options.filter_tests):
        infrastructure = list(config.infrastructure.values()) + list(test.infrastructure.values())
        metrics = list(config.metrics.values()) + list(test.metrics.values())

        for tool in tool_names(config, test):
            tools = []
            if tool in config.tools:
                tools.append(config.tools[tool])
            if tool in test.tools:
                tools.append(test.tools[tool])

            runs.append(
                TestRun(
                    name=test.name,
                    tool=tool,
                    out_path=Path(options.out_path) / f"{stamp}_{test.name}_{tool}",
                    duration=test.duration,
                    steps=test.steps,
                    infrastructure=infrastructure,
                    tools=tools,
                    metrics=metrics,
                    control_plane=control_plane,
                    registry=registry,
                )
            )
    return runs


def run_tests(config: BenchConfig, options: RunOptions, ctx: Optional[RunContext] = None) -> List[RunResult]:
    """
    Run every test run of the configuration sequentially.

    Returns:
        List[RunResult]: one result per successful run.

    Raises:
        TestRunFailed: for the first run that fails; later runs are not started.
    """
    ctx = ctx or RunContext()
    out_path = Path(options.out_path)
    try:
        out_path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise BenchError(f"failed to create output directory {str(out_path)!r}: {e}") from e

    runs = build_test_runs(config, options)
    log.info(f"Identified {len(runs)} tests")

    results = []
    for idx, run in enumerate(runs):
        result = run.execute(ctx)
        if not result.succeeded:
            raise TestRunFailed(idx, run.tool, result.error) from result.error
        log.info(f"Test {run.name} ({run.tool}) finished in {result.duration_seconds:.1f}s")
        results.append(result)
    return results
