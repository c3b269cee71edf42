"""Pydantic schemas of the benchmark configuration."""

from .config import BenchConfig, HookCommand, MetricsCollectorConfig, ServiceConfig, TestScenario, TestSteps, load_config, parse_config

__all__ = [
    "BenchConfig",
    "HookCommand",
    "MetricsCollectorConfig",
    "ServiceConfig",
    "TestScenario",
    "TestSteps",
    "load_config",
    "parse_config",
]
