"""Domain models: value objects, cache items, statistics and configuration."""
