"""
Metrics collectors.

Collector types are registered explicitly in a CollectorRegistry; see
metrics.base.register_builtin_collectors for the ones shipped here.
"""
