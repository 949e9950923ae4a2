"""
WooCommerce store syncer.

Pulls products from a store's REST API (`/wp-json/wc/v3`) into the shared
catalog, upserting variants and the store/product mapping. In
modified-only mode only products changed since the store's last sync are
requested.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..catalog.duplicates import find_title_match
from ..catalog.platforms import normalize_base_url
from ..concurrency import run_safe, run_with_retry
from ..config import SyncSettings
from ..exceptions import RemoteFetchError, StoreSyncError
from ..models import ItemStatus, SyncOptions, SyncResult
from ..storage.base import (
    CatalogStore,
    CredentialCipher,
    ProductDraft,
    StoreRecord,
    VariantDraft,
)

logger = logging.getLogger(__name__)


def _money(value: Any) -> Optional[Decimal]:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class WooCommerceSyncer:
    """Per-store syncer for WooCommerce stores."""

    def __init__(
        self,
        catalog: CatalogStore,
        cipher: Optional[CredentialCipher] = None,
        settings: Optional[SyncSettings] = None,
        modified_only: bool = False,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.catalog = catalog
        self.cipher = cipher
        self.settings = settings or SyncSettings()
        self.modified_only = modified_only
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Lazy HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.settings.request_timeout, follow_redirects=True
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # =========================================================================
    # Store sync
    # =========================================================================

    def _credentials(self, store: StoreRecord) -> Dict[str, str]:
        if not store.is_active:
            raise StoreSyncError(store.id, f"Store is not active: {store.name}")
        if store.platform != "WOO":
            raise StoreSyncError(
                store.id, f"Store platform must be WOO, got: {store.platform}"
            )
        if not store.consumer_key or not store.consumer_secret:
            raise StoreSyncError(store.id, "Store missing WooCommerce credentials")

        secret = store.consumer_secret
        if self.cipher is not None:
            secret = self.cipher.decrypt(secret)
        return {"consumer_key": store.consumer_key, "consumer_secret": secret}

    async def sync(self, store: StoreRecord, options: Optional[SyncOptions] = None) -> SyncResult:
        """Sync one store's products into the catalog.

        Raises:
            StoreSyncError: the store is inactive, not WOO, or has no credentials.
        """
        options = SyncOptions.parse(options)
        started = time.monotonic()
        result = SyncResult()

        auth = self._credentials(store)
        currency = store.resolve_currency(self.settings.currency)
        api_base = f"{normalize_base_url(store.domain)}/wp-json/wc/v3"

        modified_after: Optional[datetime] = None
        if self.modified_only:
            modified_after = await self.catalog.last_synced_at(store.id)
            if modified_after:
                logger.info(
                    f"[{store.name}] Syncing products modified after {modified_after.isoformat()}"
                )
            else:
                logger.info(f"[{store.name}] No previous sync found, syncing all products")

        page_size = options.page_size or self.settings.page_size
        max_pages = options.max_pages or self.settings.max_pages

        page = 1
        while max_pages is None or page <= max_pages:
            params: Dict[str, Any] = {
                **auth,
                "per_page": page_size,
                "page": page,
                "orderby": "modified",
                "order": "desc",
            }
            if modified_after:
                params["modified_after"] = modified_after.isoformat()

            logger.debug(f"[{store.name}] Fetching page {page}")
            try:
                products, total_pages = (
                    await run_with_retry(
                        [lambda: self._fetch_products(f"{api_base}/products", params)],
                        max_retries=self.settings.retry_max,
                        backoff_multiplier=self.settings.retry_backoff,
                    )
                )[0]
            except Exception as e:
                logger.error(f"[{store.name}] Error fetching page {page}: {e}")
                break

            if not products:
                break

            for woo_product in products:
                try:
                    status = await self._process_product(
                        store, api_base, auth, woo_product, currency
                    )
                except Exception as e:
                    result.failed += 1
                    result.errors.append(
                        {
                            "productId": str(woo_product.get("id")),
                            "title": str(woo_product.get("name", "")),
                            "error": str(e),
                        }
                    )
                    logger.error(
                        f"[{store.name}] Error processing product {woo_product.get('id')}: {e}"
                    )
                    continue

                result.total += 1
                if status == ItemStatus.CREATED:
                    result.created += 1
                else:
                    result.updated += 1

            if page >= total_pages:
                break
            page += 1

        result.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"[{store.name}] Completed: {result.created} created, {result.updated} updated, "
            f"{result.skipped} skipped, {result.failed} failed"
        )
        return result

    async def _fetch_products(
        self, url: str, params: Dict[str, Any]
    ) -> Tuple[List[Dict[str, Any]], int]:
        response = await self._get_client().get(url, params=params)
        if not response.is_success:
            raise RemoteFetchError(
                f"Product list returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            products = response.json()
        except ValueError as e:
            raise RemoteFetchError("Product list is not valid JSON") from e
        if not isinstance(products, list):
            raise RemoteFetchError("Product list is not a JSON array")
        try:
            total_pages = int(response.headers.get("x-wp-totalpages", "1"))
        except ValueError:
            total_pages = 1
        return products, total_pages

    # =========================================================================
    # Products and variants
    # =========================================================================

    async def _process_product(
        self,
        store: StoreRecord,
        api_base: str,
        auth: Dict[str, str],
        woo: Dict[str, Any],
        currency: str,
    ) -> ItemStatus:
        sku = woo.get("sku") or None
        slug = woo.get("slug") or None

        existing = await self.catalog.find_by_sku(sku) if sku else None
        if existing is None and slug:
            existing = await self.catalog.find_by_handle(slug)
        if existing is None and woo.get("name"):
            existing = await find_title_match(self.catalog, woo["name"])
            if existing is not None:
                logger.debug(f"Title match for {woo['name']}: {existing.title}")

        draft = ProductDraft(
            title=woo.get("name") or "",
            handle=slug,
            description=woo.get("description") or woo.get("short_description") or None,
            options=woo.get("attributes") or None,
            categories=[c["name"] for c in woo.get("categories") or [] if c.get("name")],
            images=[i["src"] for i in woo.get("images") or [] if i.get("src")],
            raw_payload=woo,
            is_shared=False,
        )

        if existing is not None:
            logger.debug(f"Duplicate found for {draft.title}, updating {existing.id}")
            product = await self.catalog.update_product(existing.id, draft)
            status = ItemStatus.UPDATED
        else:
            product = await self.catalog.create_product(draft)
            status = ItemStatus.CREATED

        await self._sync_variants(product.id, api_base, auth, woo, currency)

        await self.catalog.upsert_store_mapping(
            store.id,
            product.id,
            str(woo["id"]),
            is_active=woo.get("status") == "publish",
            synced_at=datetime.now(timezone.utc),
            source="WOO",
        )
        return status

    async def _sync_variants(
        self,
        product_id: str,
        api_base: str,
        auth: Dict[str, str],
        woo: Dict[str, Any],
        currency: str,
    ) -> None:
        product_type = woo.get("type")

        if product_type == "simple":
            images = woo.get("images") or []
            await self.catalog.upsert_variant_by_sku(
                product_id,
                VariantDraft(
                    sku=woo.get("sku") or f"WOO-{woo['id']}",
                    price=_money(woo.get("price") or woo.get("regular_price") or "0"),
                    compare_at_price=(
                        _money(woo.get("regular_price") or "0") if woo.get("sale_price") else None
                    ),
                    currency=currency,
                    featured_image=images[0].get("src") if images else None,
                    raw_payload={
                        "id": woo["id"],
                        "regular_price": woo.get("regular_price"),
                        "sale_price": woo.get("sale_price"),
                        "on_sale": woo.get("on_sale"),
                    },
                ),
            )
            return

        variation_ids = woo.get("variations") or []
        if product_type != "variable" or not variation_ids:
            return

        operations = [
            (lambda vid=vid: self._sync_variation(product_id, api_base, auth, woo["id"], vid, currency))
            for vid in variation_ids
        ]
        outcome = await run_safe(operations, batch_size=self.settings.variation_batch_size)
        for failure in outcome.failed:
            logger.warning(
                f"Error syncing variation {variation_ids[failure.index]} "
                f"of product {woo['id']}: {failure.error}"
            )

    async def _sync_variation(
        self,
        product_id: str,
        api_base: str,
        auth: Dict[str, str],
        woo_product_id: Any,
        variation_id: Any,
        currency: str,
    ) -> None:
        response = await self._get_client().get(
            f"{api_base}/products/{woo_product_id}/variations/{variation_id}", params=auth
        )
        response.raise_for_status()
        variation = response.json()

        image = variation.get("image") or {}
        on_sale = bool(variation.get("sale_price")) and bool(variation.get("on_sale"))
        await self.catalog.upsert_variant_by_sku(
            product_id,
            VariantDraft(
                sku=variation.get("sku") or f"WOO-{woo_product_id}-VAR-{variation.get('id', variation_id)}",
                price=_money(variation.get("price") or variation.get("regular_price") or "0"),
                compare_at_price=_money(variation.get("regular_price") or "0") if on_sale else None,
                currency=currency,
                featured_image=image.get("src") or None,
                options=[a["option"] for a in variation.get("attributes") or [] if a.get("option")],
                raw_payload={
                    "id": variation.get("id"),
                    "regular_price": variation.get("regular_price"),
                    "sale_price": variation.get("sale_price"),
                    "on_sale": variation.get("on_sale"),
                    "attributes": variation.get("attributes"),
                    "stock_quantity": variation.get("stock_quantity"),
                    "stock_status": variation.get("stock_status"),
                },
            ),
        )


__all__ = ["WooCommerceSyncer"]
