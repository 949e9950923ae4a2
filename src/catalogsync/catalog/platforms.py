"""Remote catalog platform adapters and their registry.

Adapters register themselves by platform name; an import job picks one when
it starts.

Usage:
    from catalogsync.catalog.platforms import platform_registry

    @platform_registry.register("shopify")
    class ShopifyCatalogClient(PlatformAdapter): ...

    adapter = platform_registry.create("shopify", page_size=30)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Type

from ..exceptions import ValidationError
from ..models import CatalogItem

logger = logging.getLogger(__name__)


def normalize_base_url(url: str) -> str:
    """Strip the trailing slash and default the scheme to https."""
    url = url.strip().rstrip("/")
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    return url


class PlatformAdapter(ABC):
    """Capability set of a remote catalog source."""

    name: str = ""

    @abstractmethod
    async def verify_compatible(self, base_url: str) -> bool:
        """Check the store is reachable and compatible. Never raises; False on any failure."""

    @abstractmethod
    async def fetch_page(
        self, base_url: str, page: int, page_size: int | None = None
    ) -> List[CatalogItem]:
        """Fetch one 1-based page. An empty list means past the last page.

        Raises:
            RemoteFetchError: non-2xx, transport failure or malformed body.
        """

    async def close(self) -> None:
        """Release network resources."""


class PlatformRegistry:
    """Registry of PlatformAdapter classes keyed by platform name."""

    def __init__(self):
        self._adapters: Dict[str, Type[PlatformAdapter]] = {}

    def register(self, name: str) -> Callable[[Type[PlatformAdapter]], Type[PlatformAdapter]]:
        """Decorator to register an adapter class.

        Example:
            @platform_registry.register("shopify")
            class ShopifyCatalogClient(PlatformAdapter): ...
        """

        def decorator(cls: Type[PlatformAdapter]) -> Type[PlatformAdapter]:
            self._adapters[name.lower()] = cls
            cls.name = name.lower()
            logger.debug(f"Registered platform adapter: {name} -> {cls.__name__}")
            return cls

        return decorator

    def create(self, name: str, **kwargs: Any) -> PlatformAdapter:
        """Instantiate the adapter registered for a platform.

        Raises:
            ValidationError: unknown platform.
        """
        cls = self._adapters.get(name.lower())
        if cls is None:
            raise ValidationError(
                f"Unknown platform '{name}'. Known: {', '.join(self.list_platforms()) or 'none'}"
            )
        return cls(**kwargs)

    def list_platforms(self) -> List[str]:
        return sorted(self._adapters)


# Global singleton
platform_registry = PlatformRegistry()


__all__ = ["PlatformAdapter", "PlatformRegistry", "platform_registry", "normalize_base_url"]
