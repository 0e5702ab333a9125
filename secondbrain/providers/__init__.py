"""
AI providers: the backends behind the gateway.
"""

from .base import AIProvider, ProviderRegistry, get_registry

__all__ = ["AIProvider", "ProviderRegistry", "get_registry"]
