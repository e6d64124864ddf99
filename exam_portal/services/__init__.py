"""Service layer: schedule resolution, attempts, scoring and aggregation."""
