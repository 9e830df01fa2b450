"""WordPress publishing via the GeoScale connector plugin."""

from geoscale.services.wordpress.publisher import WordPressPublisher

__all__ = ["WordPressPublisher"]
