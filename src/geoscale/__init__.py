"""GeoScale queue backend: durable content-generation and WordPress push jobs."""

__version__ = "0.1.0"
