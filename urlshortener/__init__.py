"""URL shortening service with click analytics, SQLite storage and an HTTP API."""

__version__ = "0.1.0"