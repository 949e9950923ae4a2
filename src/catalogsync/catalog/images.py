"""
Local image archive for imported products.

Downloads remote product images to `{base_dir}/{owner_id}/image-{n}.{ext}`
and returns their public paths. Files already on disk are reused.
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

import httpx

logger = logging.getLogger(__name__)

_EXT_RE = re.compile(r"\.(jpg|jpeg|png|gif|webp|svg)(?:\?|$)", re.IGNORECASE)
_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_]+")


class ImageArchiver(Protocol):
    async def download_images(
        self, urls: Sequence[str], owner_id: str, delay_ms: int = 500
    ) -> List[str]: ...


def image_extension(url: str) -> str:
    """File extension from the URL path, jpg when unknown."""
    match = _EXT_RE.search(url)
    return match.group(1).lower() if match else "jpg"


def safe_dir_name(owner_id: str) -> str:
    """Single path segment for owner_id: runs of other characters collapse to one "-"."""
    return _UNSAFE_RE.sub("-", owner_id).strip("-") or "item"


class HttpImageArchiver:
    """ImageArchiver writing to the local filesystem."""

    def __init__(
        self,
        base_dir: str | Path = "public/assets/products",
        url_prefix: str = "/assets/products",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_dir = Path(base_dir)
        self.url_prefix = url_prefix.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Lazy HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._client

    async def download_images(
        self, urls: Sequence[str], owner_id: str, delay_ms: int = 500
    ) -> List[str]:
        """Download images in order, skipping the ones that fail.

        Returns:
            Public paths of the images that are on disk afterwards.
        """
        owner_dir = safe_dir_name(owner_id)
        target_dir = self.base_dir / owner_dir
        target_dir.mkdir(parents=True, exist_ok=True)

        paths: List[str] = []
        for index, url in enumerate(urls):
            filename = f"image-{index + 1}.{image_extension(url)}"
            target = target_dir / filename
            public_path = f"{self.url_prefix}/{owner_dir}/{filename}"

            if target.exists():
                paths.append(public_path)
                continue

            try:
                response = await self._get_client().get(url)
                response.raise_for_status()
                target.write_bytes(response.content)
                paths.append(public_path)
            except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
                logger.warning(f"Failed to download image {url}: {e}")

            if delay_ms and index < len(urls) - 1:
                await asyncio.sleep(delay_ms / 1000)

        return paths

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


__all__ = ["ImageArchiver", "HttpImageArchiver", "image_extension", "safe_dir_name"]
