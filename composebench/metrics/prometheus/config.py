"""
Settings of the prometheus collector.

Decoding is strict: a key the collector does not know fails the configuration
instead of being silently ignored.

Copyright 2025 Advanced Micro Devices, Inc.
All rights reserved.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from composebench.lib.errors import ConfigurationError
from composebench.lib.utils_lib import parse_duration

DEFAULT_SCRAPE_INTERVAL = 1.0


def _duration(v):
    if v is None:
        return v
    try:
        return parse_duration(v)
    except ValueError as e:
        raise ValueError(str(e)) from None


class QueryConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    # PromQL expression evaluated against the scraped samples
    query: str = Field(min_length=1)
    # query resolution in seconds, defaults to the scrape interval
    interval: Optional[float] = Field(default=None, gt=0)
    # display only
    unit: str = ""

    @field_validator("interval", mode="before")
    @classmethod
    def parse_interval(cls, v):
        return _duration(v)

    @field_validator("unit", mode="before")
    @classmethod
    def empty_unit(cls, v):
        return "" if v is None else v


class PrometheusConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    # metrics endpoint of the monitored service
    url: str
    scrape_interval: float = Field(default=DEFAULT_SCRAPE_INTERVAL, gt=0, alias="scrape-interval")
    queries: List[QueryConfig] = Field(default_factory=list)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ValueError(f"invalid URL {v!r}: expected http(s)://host[:port]/path")
        # raises ValueError for a port that is not a number or out of range
        parsed.port
        return v

    @field_validator("scrape_interval", mode="before")
    @classmethod
    def parse_scrape_interval(cls, v):
        return DEFAULT_SCRAPE_INTERVAL if v is None else _duration(v)

    @field_validator("queries", mode="before")
    @classmethod
    def no_queries(cls, v):
        return [] if v is None else v


def parse_config(settings: Dict[str, Any]) -> PrometheusConfig:
    if settings is None:
        settings = {}
    if not isinstance(settings, dict):
        raise ConfigurationError(f"settings must be a mapping, got {type(settings).__name__}")
    try:
        return PrometheusConfig.model_validate(settings)
    except ValidationError as e:
        raise ConfigurationError(f"failed to decode settings: {e}") from e
