#!/usr/bin/env python3
"""
Copyright 2025 Advanced Micro Devices, Inc.
All rights reserved. This notice is intended as a precaution against inadvertent publication and does not imply publication or any waiver of confidentiality.
The year included in the foregoing notice is the year of creation of the work.
All code contained here is Property of Advanced Micro Devices, Inc.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, List
import logging
import threading

from composebench.lib.errors import ConfigurationError

log = logging.getLogger(__name__)


class Collector(ABC):
    """Base class for all metrics collectors"""

    @abstractmethod
    def get_type(self):
        """Return the collector type, as used in the configuration and the registry"""
        pass

    @abstractmethod
    def get_name(self):
        """Return the logical name of this collector instance"""
        pass

    @abstractmethod
    def configure(self, settings):
        """Validate the settings mapping; raise ConfigurationError if it is invalid"""
        pass

    @abstractmethod
    def run(self, ctx):
        """Collect metrics until the context is cancelled"""
        pass

    @abstractmethod
    def get_results(self):
        """Return the collected samples, keyed by query name"""
        pass

    @abstractmethod
    def export(self, out_dir):
        """Write the collected samples to out_dir and return the written path"""
        pass


# factory signature: (logger, instance name) -> Collector
CollectorFactory = Callable[[logging.Logger, str], Collector]


class CollectorRegistry:
    """
    Mapping from collector type name to a factory.

    Registration is explicit. Registering the same type twice replaces the
    previous factory.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._factories: Dict[str, CollectorFactory] = {}

    def register(self, type_name: str, factory: CollectorFactory):
        with self._lock:
            if type_name in self._factories:
                log.debug(f"Replacing collector factory for type {type_name!r}")
            self._factories[type_name] = factory

    def get_types(self) -> List[str]:
        with self._lock:
            return sorted(self._factories)

    def new_collector(self, type_name: str, logger: logging.Logger, name: str) -> Collector:
        with self._lock:
            factory = self._factories.get(type_name)
        if factory is None:
            known = ", ".join(self.get_types()) or "none"
            raise ConfigurationError(f"unknown collector type {type_name!r} (registered: {known})")
        return factory(logger, name)


def register_builtin_collectors(registry: CollectorRegistry) -> CollectorRegistry:
    """Register the collectors shipped with composebench."""
    from composebench.metrics import conduit, containers, kafka, prometheus

    prometheus.register(registry)
    kafka.register(registry)
    conduit.register(registry)
    containers.register(registry)
    return registry


def default_registry() -> CollectorRegistry:
    return register_builtin_collectors(CollectorRegistry())
