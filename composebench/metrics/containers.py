"""
Container resource usage collector.

Reads the per container metrics exported by cAdvisor. The `url` setting points
at the cAdvisor metrics endpoint.

Copyright 2025 Advanced Micro Devices, Inc.
All rights reserved.
"""

from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from composebench.metrics.prometheus.specialized import SpecializedCollector, quote_label

TYPE = "docker"

BYTES_PER_MEGABYTE = 1048576


class DockerSettings(BaseModel):
    model_config = ConfigDict(extra="allow")

    containers: List[str] = Field(default_factory=list)

    @field_validator("containers", mode="before")
    @classmethod
    def no_containers(cls, v):
        return [] if v is None else v


class DockerCollector(SpecializedCollector):
    """Reports CPU and memory usage per container."""

    TYPE = TYPE
    RESOURCE_KEY = "containers"
    SETTINGS_MODEL = DockerSettings

    def build_queries(self, cfg):
        queries = []
        for container in cfg.containers:
            selector = f"{{name={quote_label(container)}}}"
            queries.append(
                {
                    "name": f"cpu-percentage[{container}]",
                    "query": f"sum(rate(container_cpu_usage_seconds_total{selector}[2s])) * 100",
                    "unit": "%",
                    "interval": "1s",
                }
            )
            queries.append(
                {
                    "name": f"memory-usage[{container}]",
                    "query": f"container_memory_usage_bytes{selector} / {BYTES_PER_MEGABYTE}",
                    "unit": "MB",
                    "interval": "1s",
                }
            )
        return queries


def register(registry):
    registry.register(TYPE, DockerCollector)
