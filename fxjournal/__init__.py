"""Forex trade journal data layer: caching, trade loading, performance monitoring, schema versioning."""

__version__ = "0.1.0"
