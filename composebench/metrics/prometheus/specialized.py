"""
Collectors built on top of the prometheus collector.

A specialization knows the metric names exported by one kind of service. It
turns a short list of resources (topics, pipelines, containers) into ready
made queries and hands everything else to the wrapped PrometheusCollector.

Copyright 2025 Advanced Micro Devices, Inc.
All rights reserved.
"""

from typing import Any, Dict, List

from pydantic import BaseModel, ValidationError

from composebench.lib.errors import ConfigurationError
from composebench.metrics.base import Collector
from composebench.metrics.prometheus.collector import PrometheusCollector


def quote_label(value: str) -> str:
    """Quote a label value for use inside a query selector."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class SpecializedCollector(Collector):
    """
    Base class of the specialized collectors.

    Subclasses set TYPE, RESOURCE_KEY and SETTINGS_MODEL (a pydantic model
    that accepts unknown keys) and implement build_queries.
    """

    TYPE: str = ""
    RESOURCE_KEY: str = ""
    SETTINGS_MODEL = BaseModel

    def __init__(self, logger, name: str, session=None):
        self.prometheus = PrometheusCollector(logger, name, session=session)

    def get_type(self):
        return self.TYPE

    def get_name(self):
        return self.prometheus.get_name()

    def build_queries(self, cfg) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def configure(self, settings):
        if settings is not None and not isinstance(settings, dict):
            raise ConfigurationError(f"{self.TYPE} collector: settings must be a mapping")
        settings = dict(settings or {})
        try:
            cfg = self.SETTINGS_MODEL.model_validate(settings)
        except ValidationError as e:
            raise ConfigurationError(f"{self.TYPE} collector: failed to parse config: {e}") from e

        # the prometheus collector rejects keys it does not know
        settings.pop(self.RESOURCE_KEY, None)

        queries = self.build_queries(cfg)
        user_queries = settings.get("queries")
        if user_queries is not None:
            if not isinstance(user_queries, list):
                raise ConfigurationError(f"{self.TYPE} collector: queries must be a list")
            queries.extend(user_queries)
        settings["queries"] = queries

        try:
            self.prometheus.configure(settings)
        except ConfigurationError as e:
            raise ConfigurationError(f"{self.TYPE} collector: {e}") from e

    def run(self, ctx):
        self.prometheus.run(ctx)

    def get_results(self):
        return self.prometheus.get_results()

    def export(self, out_dir):
        return self.prometheus.export(out_dir)
