"""Assessment scheduling, attempt scoring and marks aggregation service."""
