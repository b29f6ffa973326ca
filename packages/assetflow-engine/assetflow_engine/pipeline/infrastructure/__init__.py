"""Pipeline infrastructure: glob matching, registry, change detection, scheduling, execution."""
