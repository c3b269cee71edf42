'''
Copyright 2025 Advanced Micro Devices, Inc.
All rights reserved. This notice is intended as a precaution against inadvertent publication and does not imply publication or any waiver of confidentiality.
The year included in the foregoing notice is the year of creation of the work.
All code contained here is Property of Advanced Micro Devices, Inc.
'''

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import csv
import os
import threading
import time

import requests
from prometheus_client.parser import text_string_to_metric_families

from composebench.lib.errors import ConfigurationError
from composebench.metrics.base import Collector
from composebench.metrics.prometheus.config import PrometheusConfig, parse_config
from composebench.metrics.prometheus.query import QueryError, SeriesStore, parse_query

TYPE = "prometheus"

SCRAPE_TIMEOUT_SECONDS = 5.0
CSV_HEADER = ["query", "unit", "timestamp", "value"]


@dataclass(frozen=True)
class Sample:
    timestamp: float
    value: float


@dataclass
class QueryResult:
    """Samples recorded for one configured query."""

    name: str
    query: str
    unit: str = ""
    samples: List[Sample] = field(default_factory=list)


def parse_exposition(text: str) -> Dict[Any, float]:
    """Parse the Prometheus text format into {(sample name, labels): value}."""
    series = {}
    for family in text_string_to_metric_families(text):
        for sample in family.samples:
            series[(sample.name, frozenset(sample.labels.items()))] = float(sample.value)
    return series


class PrometheusCollector(Collector):
    """
    Scrapes a metrics endpoint and records the value of PromQL queries.

    Every scrape-interval the endpoint is fetched and stored in a bounded
    in-memory history; each query is evaluated against that history whenever
    its own interval has elapsed. A failed scrape is logged and skipped.
    """

    def __init__(self, logger, name: str, session: Optional[requests.Session] = None, clock=time.time):
        self.log = logger
        self.name = name
        self._session = session
        self._clock = clock
        self._lock = threading.Lock()
        self._config: Optional[PrometheusConfig] = None
        self._compiled = []
        self._results: List[QueryResult] = []
        self._store = SeriesStore()

    def get_type(self):
        return TYPE

    def get_name(self):
        return self.name

    @property
    def config(self) -> Optional[PrometheusConfig]:
        return self._config

    def configure(self, settings):
        cfg = parse_config(settings)
        compiled = []
        for q in cfg.queries:
            try:
                compiled.append((q, parse_query(q.query)))
            except QueryError as e:
                raise ConfigurationError(f"query {q.name!r}: {e}") from e
            self.log.debug(f"{self.name}: query {q.name!r} = {q.query}")

        with self._lock:
            self._config = cfg
            self._compiled = compiled
            self._results = [QueryResult(name=q.name, query=q.query, unit=q.unit) for q, _ in compiled]
            self._store = SeriesStore()

    def scrape(self, session: requests.Session, now: float) -> bool:
        """Fetch the endpoint once and store the samples. Returns False if the scrape failed."""
        url = self._config.url
        try:
            resp = session.get(url, timeout=SCRAPE_TIMEOUT_SECONDS)
            resp.raise_for_status()
            series = parse_exposition(resp.text)
        except requests.RequestException as e:
            self.log.warning(f"{self.name}: failed to scrape {url}: {e}")
            return False
        except ValueError as e:
            self.log.warning(f"{self.name}: failed to parse metrics from {url}: {e}")
            return False
        self._store.add(now, series)
        return True

    def evaluate(self, now: float, due: Dict[int, float]):
        """Evaluate every query whose interval has elapsed, recording one sample each."""
        for idx, (q, node) in enumerate(self._compiled):
            if now < due.get(idx, 0.0):
                continue
            due[idx] = now + (q.interval or self._config.scrape_interval)
            try:
                value = self._store.evaluate_value(node, now)
            except QueryError as e:
                self.log.warning(f"{self.name}: query {q.name!r} failed: {e}")
                continue
            if value is None:
                continue
            with self._lock:
                self._results[idx].samples.append(Sample(timestamp=now, value=value))

    def run(self, ctx):
        if self._config is None:
            raise ConfigurationError(f"collector {self.name!r} is not configured")

        session = self._session or requests.Session()
        interval = self._config.scrape_interval
        due: Dict[int, float] = {}
        self.log.info(f"{self.name}: collecting metrics from {self._config.url} every {interval}s")
        try:
            while not ctx.cancelled():
                now = self._clock()
                if self.scrape(session, now):
                    self.evaluate(now, due)
                if ctx.sleep(interval):
                    break
        finally:
            if self._session is None:
                session.close()
        self.log.info(f"{self.name}: stopped collecting metrics")
        for result in self.get_results():
            if not result.samples:
                self.log.warning(f"{self.name}: query {result.name!r} recorded no samples from {self._config.url}")

    def get_results(self) -> List[QueryResult]:
        with self._lock:
            return [QueryResult(r.name, r.query, r.unit, list(r.samples)) for r in self._results]

    def export(self, out_dir):
        path = os.path.join(str(out_dir), f"{self.name}.csv")
        with open(path, "w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(CSV_HEADER)
            for result in self.get_results():
                for sample in result.samples:
                    ts = datetime.fromtimestamp(sample.timestamp, tz=timezone.utc).isoformat()
                    writer.writerow([result.name, result.unit, ts, sample.value])
        self.log.info(f"{self.name}: exported metrics to {path}")
        return path
