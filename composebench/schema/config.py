"""
Pydantic schemas for the benchmark configuration file.

The configuration describes infrastructure services, tools under test,
metrics collectors and test scenarios. It is validated as a whole when loaded
so that typos fail fast, before any container is started.

Copyright 2025 Advanced Micro Devices, Inc.
All rights reserved.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import os

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from composebench.lib.errors import ConfigurationError
from composebench.lib.utils_lib import parse_duration

HOOK_NAMES = (
    "pre-infrastructure",
    "post-infrastructure",
    "pre-tool",
    "post-tool",
    "pre-test",
    "during",
    "post-test",
    "pre-cleanup",
    "post-cleanup",
)


class ServiceConfig(BaseModel):
    """A docker compose file describing one infrastructure service or tool."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    compose: str = Field(min_length=1, description="Path to the docker compose file")


class HookCommand(BaseModel):
    """One command of a lifecycle hook."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = ""
    container: Optional[str] = Field(default=None, description="Run inside this container instead of locally")
    run: str = Field(min_length=1, description="Shell script to execute")


class TestSteps(BaseModel):
    """Hook commands per lifecycle hook name."""

    __test__ = False

    model_config = ConfigDict(extra="forbid", frozen=True)

    pre_infrastructure: List[HookCommand] = Field(default_factory=list, alias="pre-infrastructure")
    post_infrastructure: List[HookCommand] = Field(default_factory=list, alias="post-infrastructure")
    pre_tool: List[HookCommand] = Field(default_factory=list, alias="pre-tool")
    post_tool: List[HookCommand] = Field(default_factory=list, alias="post-tool")
    pre_test: List[HookCommand] = Field(default_factory=list, alias="pre-test")
    during: List[HookCommand] = Field(default_factory=list)
    post_test: List[HookCommand] = Field(default_factory=list, alias="post-test")
    pre_cleanup: List[HookCommand] = Field(default_factory=list, alias="pre-cleanup")
    post_cleanup: List[HookCommand] = Field(default_factory=list, alias="post-cleanup")

    @field_validator("*", mode="before")
    @classmethod
    def empty_hook_is_no_commands(cls, v):
        # `pre-tool:` with no value is parsed by YAML as None
        return [] if v is None else v

    def get(self, hook: str) -> List[HookCommand]:
        if hook not in HOOK_NAMES:
            raise KeyError(f"unknown hook {hook!r}")
        return getattr(self, hook.replace("-", "_"))


class MetricsCollectorConfig(BaseModel):
    """
    A metrics collector instance.

    `settings` is passed to the collector's configure step as-is; its shape is
    owned by the collector type.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = ""
    collector: str = Field(min_length=1, description="Collector type, e.g. prometheus, kafka, conduit, docker")
    tools: List[str] = Field(default_factory=list, description="Tools this collector applies to (empty = all)")
    settings: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("tools", "settings", mode="before")
    @classmethod
    def empty_is_default(cls, v, info):
        if v is None:
            return [] if info.field_name == "tools" else {}
        return v

    def applies_to(self, tool: str) -> bool:
        return not self.tools or tool in self.tools


def _name_metrics(metrics):
    """Use the mapping key as the collector name unless one is given."""
    if not isinstance(metrics, dict):
        return metrics
    named = {}
    for key, value in metrics.items():
        if isinstance(value, dict) and not value.get("name"):
            value = {**value, "name": key}
        named[key] = value
    return named


class TestScenario(BaseModel):
    """A named, timed benchmark definition with hooks and resource overrides."""

    __test__ = False

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    duration: float = Field(default=0.0, ge=0, description="Test window in seconds")
    steps: TestSteps = Field(default_factory=TestSteps)
    infrastructure: Dict[str, ServiceConfig] = Field(default_factory=dict)
    tools: Dict[str, ServiceConfig] = Field(default_factory=dict)
    metrics: Dict[str, MetricsCollectorConfig] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def normalize(cls, data):
        if isinstance(data, dict):
            data = {k: v for k, v in data.items() if not (v is None and k != "name")}
            if "metrics" in data:
                data["metrics"] = _name_metrics(data["metrics"])
        return data

    @field_validator("duration", mode="before")
    @classmethod
    def parse_duration_string(cls, v):
        try:
            return parse_duration(v)
        except ValueError as e:
            raise ValueError(str(e)) from None


class BenchConfig(BaseModel):
    """Top level of a benchmark configuration file."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    infrastructure: Dict[str, ServiceConfig] = Field(default_factory=dict)
    tools: Dict[str, ServiceConfig] = Field(default_factory=dict)
    metrics: Dict[str, MetricsCollectorConfig] = Field(default_factory=dict)
    tests: List[TestScenario] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def normalize(cls, data):
        if isinstance(data, dict):
            data = {k: v for k, v in data.items() if v is not None}
            if "metrics" in data:
                data["metrics"] = _name_metrics(data["metrics"])
        return data

    @field_validator("tests")
    @classmethod
    def unique_test_names(cls, v: List[TestScenario]) -> List[TestScenario]:
        seen = set()
        for test in v:
            if test.name in seen:
                raise ValueError(f"duplicate test name {test.name!r}")
            seen.add(test.name)
        return v


def _resolve_services(services, base_dir):
    if not isinstance(services, dict):
        return services
    resolved = {}
    for name, svc in services.items():
        if isinstance(svc, dict) and isinstance(svc.get("compose"), str) and svc["compose"]:
            compose = svc["compose"]
            if not os.path.isabs(compose):
                compose = os.path.normpath(os.path.join(base_dir, compose))
            svc = {**svc, "compose": compose}
        resolved[name] = svc
    return resolved


def resolve_compose_paths(raw: Dict[str, Any], base_dir: Union[str, Path]) -> Dict[str, Any]:
    """Return a copy of the raw configuration with relative compose paths made absolute."""
    base_dir = str(base_dir)
    out = dict(raw)
    for section in ("infrastructure", "tools"):
        if section in out:
            out[section] = _resolve_services(out[section], base_dir)
    if isinstance(out.get("tests"), list):
        tests = []
        for test in out["tests"]:
            if isinstance(test, dict):
                test = dict(test)
                for section in ("infrastructure", "tools"):
                    if section in test:
                        test[section] = _resolve_services(test[section], base_dir)
            tests.append(test)
        out["tests"] = tests
    return out


def parse_config(raw: Dict[str, Any], base_dir: Union[str, Path, None] = None) -> BenchConfig:
    """Validate an already decoded configuration mapping."""
    if not isinstance(raw, dict):
        raise ConfigurationError(f"configuration must be a mapping, got {type(raw).__name__}")
    if base_dir is not None:
        raw = resolve_compose_paths(raw, base_dir)
    try:
        return BenchConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"invalid configuration:\n{e}") from e


def load_config(config_path: Union[str, Path]) -> BenchConfig:
    """
    Load and validate a benchmark configuration file.

    Relative compose paths are resolved against the directory of the file.

    Raises:
        ConfigurationError: if the file is missing, empty, not valid YAML or
            does not match the schema.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigurationError(f"configuration file not found: {config_path}")

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"failed to parse {config_path}: {e}") from e

    if raw is None:
        raise ConfigurationError(f"configuration file is empty: {config_path}")

    try:
        return parse_config(raw, base_dir=config_path.resolve().parent)
    except ConfigurationError as e:
        raise ConfigurationError(f"{config_path}: {e}") from e
