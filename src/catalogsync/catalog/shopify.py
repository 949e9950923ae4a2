"""
Shopify public catalog client.

Reads the unauthenticated `/products.json` export every Shopify storefront
serves. Pages are 1-based; an empty `products` list ends pagination.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx
import pydantic

from ..exceptions import RemoteFetchError
from ..models import CatalogItem
from .platforms import PlatformAdapter, normalize_base_url, platform_registry

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 30


@platform_registry.register("shopify")
class ShopifyCatalogClient(PlatformAdapter):
    """PlatformAdapter over `/products.json`."""

    def __init__(
        self,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.page_size = page_size
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Lazy HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def verify_compatible(self, base_url: str) -> bool:
        url = f"{normalize_base_url(base_url)}/products.json"
        try:
            response = await self._get_client().get(url, params={"limit": 1})
            if not response.is_success:
                logger.info(f"Store check {url} returned {response.status_code}")
                return False
            data = response.json()
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            logger.info(f"Store check {url} failed: {e}")
            return False
        return isinstance(data, dict) and isinstance(data.get("products"), list)

    async def fetch_page(
        self, base_url: str, page: int, page_size: int | None = None
    ) -> List[CatalogItem]:
        url = f"{normalize_base_url(base_url)}/products.json"
        limit = page_size or self.page_size

        try:
            response = await self._get_client().get(url, params={"page": page, "limit": limit})
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise RemoteFetchError(f"Failed to fetch page {page}: {e}") from e

        if not response.is_success:
            raise RemoteFetchError(
                f"Failed to fetch page {page}: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RemoteFetchError(f"Page {page} is not valid JSON") from e

        products = data.get("products") if isinstance(data, dict) else None
        if not isinstance(products, list):
            raise RemoteFetchError(f"Page {page} has no products list")

        try:
            return [CatalogItem.model_validate(p) for p in products]
        except pydantic.ValidationError as e:
            raise RemoteFetchError(f"Page {page} has malformed products: {e}") from e

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


__all__ = ["ShopifyCatalogClient", "DEFAULT_PAGE_SIZE"]
