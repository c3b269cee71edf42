"""
Runners module - test execution.

- builder: expands a configuration into test runs and executes them in order
- test_run: lifecycle of a single run (containers, hooks, collectors, cleanup)
"""
