"""
Conduit pipeline collector.

Copyright 2025 Advanced Micro Devices, Inc.
All rights reserved.
"""

from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from composebench.metrics.prometheus.specialized import SpecializedCollector, quote_label

TYPE = "conduit"

BYTES_PER_MEGABYTE = 1048576


class ConduitSettings(BaseModel):
    model_config = ConfigDict(extra="allow")

    pipelines: List[str] = Field(default_factory=list)

    @field_validator("pipelines", mode="before")
    @classmethod
    def no_pipelines(cls, v):
        return [] if v is None else v


class ConduitCollector(SpecializedCollector):
    """Reports processed records and connector bytes per pipeline."""

    TYPE = TYPE
    RESOURCE_KEY = "pipelines"
    SETTINGS_MODEL = ConduitSettings

    def build_queries(self, cfg):
        queries = []
        for pipeline in cfg.pipelines:
            name = quote_label(pipeline)
            queries.extend(
                [
                    {
                        "name": f"msg-rate-per-second[{pipeline}]",
                        "query": f"rate(conduit_pipeline_execution_duration_seconds_count{{pipeline_name={name}}}[2s])",
                        "unit": "msg/s",
                        "interval": "1s",
                    },
                    {
                        "name": f"msg-megabytes-in-per-second[{pipeline}]",
                        "query": (
                            f'rate(conduit_connector_bytes_sum{{pipeline_name={name},type="source"}}[2s])'
                            f"/{BYTES_PER_MEGABYTE}"
                        ),
                        "unit": "MB/s",
                        "interval": "1s",
                    },
                    {
                        "name": f"msg-megabytes-out-per-second[{pipeline}]",
                        "query": (
                            f'rate(conduit_connector_bytes_sum{{pipeline_name={name},type="destination"}}[2s])'
                            f"/{BYTES_PER_MEGABYTE}"
                        ),
                        "unit": "MB/s",
                        "interval": "1s",
                    },
                ]
            )
        return queries


def register(registry):
    registry.register(TYPE, ConduitCollector)
