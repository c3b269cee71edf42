"""Benchmarks of containerized tools orchestrated with docker compose."""
