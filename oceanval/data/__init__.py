"""Data access: station catalog, observation and forecast stores, loaders and caching."""
