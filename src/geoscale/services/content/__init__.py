"""Landing page content generation via OpenRouter."""

from geoscale.services.content.generator import OpenRouterContentGenerator
from geoscale.services.content.openrouter_client import OpenRouterClient

__all__ = ["OpenRouterClient", "OpenRouterContentGenerator"]
