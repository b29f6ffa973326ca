"""Incremental asset pipelines: registry, change detection, scheduling."""
