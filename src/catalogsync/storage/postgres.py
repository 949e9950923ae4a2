"""
PostgreSQL storage over the catalog tables.

Tables: products, product_variants, store_product_maps, stores
(camelCase quoted column names). Each call opens its own short-lived
connection.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from .base import (
    ProductDraft,
    StoredProduct,
    StoredVariant,
    StoreFilter,
    StoreRecord,
    VariantDraft,
)

logger = logging.getLogger(__name__)

_PRODUCT_COLUMNS = """
    p."id", p."title", p."handle",
    COALESCE(
        (SELECT array_agg(v."sku") FROM product_variants v
         WHERE v."productId" = p."id" AND v."sku" IS NOT NULL),
        ARRAY[]::TEXT[]
    ) AS skus
"""


def _product(row: Dict[str, Any]) -> StoredProduct:
    return StoredProduct(
        id=row["id"],
        title=row["title"],
        handle=row.get("handle"),
        skus=list(row.get("skus") or []),
    )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _variant_payload(variant: VariantDraft) -> Dict[str, Any]:
    # product_variants has no option columns
    if not variant.options:
        return variant.raw_payload
    return {**variant.raw_payload, "options": list(variant.options)}


class PostgresCatalogStore:
    """CatalogStore on PostgreSQL via psycopg 3."""

    def __init__(self, database_url: str):
        self.database_url = database_url

    async def _connect(self) -> psycopg.AsyncConnection:
        return await psycopg.AsyncConnection.connect(self.database_url, row_factory=dict_row)

    async def _fetch_one(self, query: str, params: Sequence[Any]) -> Optional[Dict[str, Any]]:
        async with await self._connect() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchone()

    async def _fetch_all(self, query: str, params: Sequence[Any]) -> List[Dict[str, Any]]:
        async with await self._connect() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchall()

    async def find_by_handle(self, handle: str) -> Optional[StoredProduct]:
        row = await self._fetch_one(
            f'SELECT {_PRODUCT_COLUMNS} FROM products p WHERE p."handle" = %s LIMIT 1',
            (handle,),
        )
        return _product(row) if row else None

    async def find_by_handles(self, handles: Sequence[str]) -> List[StoredProduct]:
        if not handles:
            return []
        rows = await self._fetch_all(
            f'SELECT {_PRODUCT_COLUMNS} FROM products p WHERE p."handle" = ANY(%s)',
            (list(handles),),
        )
        return [_product(r) for r in rows]

    async def find_by_sku(self, sku: str) -> Optional[StoredProduct]:
        row = await self._fetch_one(
            f"""
            SELECT {_PRODUCT_COLUMNS}
            FROM products p
            JOIN product_variants pv ON pv."productId" = p."id"
            WHERE pv."sku" = %s
            LIMIT 1
            """,
            (sku,),
        )
        return _product(row) if row else None

    async def find_variants_by_skus(self, skus: Sequence[str]) -> List[StoredVariant]:
        if not skus:
            return []
        rows = await self._fetch_all(
            """
            SELECT v."id", v."productId", v."sku", p."title", p."handle"
            FROM product_variants v
            JOIN products p ON p."id" = v."productId"
            WHERE v."sku" = ANY(%s)
            """,
            (list(skus),),
        )
        return [
            StoredVariant(
                id=r["id"],
                product_id=r["productId"],
                sku=r["sku"],
                product_title=r["title"],
                product_handle=r["handle"],
            )
            for r in rows
        ]

    async def find_by_title_keywords(
        self, keywords: Sequence[str], limit: int = 50
    ) -> List[StoredProduct]:
        if not keywords:
            return []
        patterns = [f"%{_escape_like(k)}%" for k in keywords]
        rows = await self._fetch_all(
            f'SELECT {_PRODUCT_COLUMNS} FROM products p WHERE p."title" ILIKE ANY(%s) LIMIT %s',
            (patterns, limit),
        )
        return [_product(r) for r in rows]

    async def create_product(self, draft: ProductDraft) -> StoredProduct:
        product_id = str(uuid.uuid4())
        async with await self._connect() as conn:
            await conn.execute(
                """
                INSERT INTO products (
                    "id", "title", "description", "brandId", "isShared", "categories",
                    "images", "rawPayload", "handle", "options", "vendor",
                    "createdAt", "updatedAt"
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, NOW(), NOW())
                """,
                (
                    product_id,
                    draft.title,
                    draft.description,
                    draft.brand_id,
                    draft.is_shared,
                    draft.categories,
                    draft.images,
                    Jsonb(draft.raw_payload),
                    draft.handle,
                    Jsonb(draft.options) if draft.options is not None else None,
                    draft.vendor,
                ),
            )
        return StoredProduct(id=product_id, title=draft.title, handle=draft.handle)

    async def update_product(self, product_id: str, draft: ProductDraft) -> StoredProduct:
        row = await self._fetch_one(
            """
            UPDATE products SET
                "title" = %s,
                "description" = %s,
                "vendor" = %s,
                "handle" = COALESCE(%s, "handle"),
                "options" = COALESCE(%s, "options"),
                "categories" = %s,
                "images" = %s,
                "rawPayload" = %s,
                "updatedAt" = NOW()
            WHERE "id" = %s
            RETURNING "id", "title", "handle"
            """,
            (
                draft.title,
                draft.description,
                draft.vendor,
                draft.handle,
                Jsonb(draft.options) if draft.options is not None else None,
                draft.categories,
                draft.images,
                Jsonb(draft.raw_payload),
                product_id,
            ),
        )
        if row is None:
            raise KeyError(f"Product not found: {product_id}")
        return _product(row)

    async def delete_variants(self, product_id: str) -> int:
        async with await self._connect() as conn:
            cur = await conn.execute(
                'DELETE FROM product_variants WHERE "productId" = %s', (product_id,)
            )
            return cur.rowcount

    async def create_variants(self, product_id: str, variants: Sequence[VariantDraft]) -> int:
        if not variants:
            return 0
        async with await self._connect() as conn:
            async with conn.cursor() as cur:
                await cur.executemany(
                    """
                    INSERT INTO product_variants (
                        "id", "productId", "sku", "price", "compareAtPrice",
                        "currency", "featuredImage", "rawPayload"
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    [
                        (
                            str(uuid.uuid4()),
                            product_id,
                            v.sku,
                            v.price,
                            v.compare_at_price,
                            v.currency,
                            v.featured_image,
                            Jsonb(_variant_payload(v)),
                        )
                        for v in variants
                    ],
                )
        return len(variants)

    async def upsert_variant_by_sku(self, product_id: str, variant: VariantDraft) -> None:
        async with await self._connect() as conn:
            async with conn.transaction():
                cur = await conn.execute(
                    """
                    UPDATE product_variants SET
                        "productId" = %s, "price" = %s, "compareAtPrice" = %s,
                        "currency" = %s, "featuredImage" = %s, "rawPayload" = %s
                    WHERE "sku" = %s
                    """,
                    (
                        product_id,
                        variant.price,
                        variant.compare_at_price,
                        variant.currency,
                        variant.featured_image,
                        Jsonb(_variant_payload(variant)),
                        variant.sku,
                    ),
                )
                if cur.rowcount:
                    return
                await conn.execute(
                    """
                    INSERT INTO product_variants (
                        "id", "productId", "sku", "price", "compareAtPrice",
                        "currency", "featuredImage", "rawPayload"
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        str(uuid.uuid4()),
                        product_id,
                        variant.sku,
                        variant.price,
                        variant.compare_at_price,
                        variant.currency,
                        variant.featured_image,
                        Jsonb(_variant_payload(variant)),
                    ),
                )

    async def upsert_store_mapping(
        self,
        store_id: str,
        product_id: str,
        external_id: str,
        is_active: bool = True,
        synced_at: Optional[datetime] = None,
        source: str = "WOO",
    ) -> None:
        async with await self._connect() as conn:
            await conn.execute(
                """
                INSERT INTO store_product_maps (
                    "id", "storeId", "productId", "externalId",
                    "isActive", "lastSyncedAt", "syncSource"
                ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT ("storeId", "externalId") DO UPDATE SET
                    "productId" = EXCLUDED."productId",
                    "isActive" = EXCLUDED."isActive",
                    "lastSyncedAt" = EXCLUDED."lastSyncedAt",
                    "syncSource" = EXCLUDED."syncSource"
                """,
                (
                    str(uuid.uuid4()),
                    store_id,
                    product_id,
                    external_id,
                    is_active,
                    synced_at or datetime.now(timezone.utc),
                    source,
                ),
            )

    async def last_synced_at(self, store_id: str) -> Optional[datetime]:
        row = await self._fetch_one(
            'SELECT MAX("lastSyncedAt") AS last FROM store_product_maps WHERE "storeId" = %s',
            (store_id,),
        )
        return row["last"] if row else None


class PostgresStoreDirectory:
    """StoreDirectory over the stores table."""

    _COLUMNS = """
        "id", "name", "platform"::text AS platform, "domain", "isActive",
        "consumerKey", "consumerSecret", "currency", "settings"
    """

    def __init__(self, database_url: str):
        self.database_url = database_url

    @staticmethod
    def _record(row: Dict[str, Any]) -> StoreRecord:
        return StoreRecord(
            id=row["id"],
            name=row["name"],
            platform=row["platform"],
            domain=row["domain"],
            is_active=row["isActive"],
            consumer_key=row["consumerKey"],
            consumer_secret=row["consumerSecret"],
            currency=row["currency"],
            settings=row["settings"] or {},
        )

    async def list_stores(self, store_filter: StoreFilter) -> List[StoreRecord]:
        clauses, params = [], []
        if store_filter.platform:
            clauses.append('"platform"::text = %s')
            params.append(store_filter.platform)
        if store_filter.active_only:
            clauses.append('"isActive" = TRUE')
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        async with await psycopg.AsyncConnection.connect(
            self.database_url, row_factory=dict_row
        ) as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f'SELECT {self._COLUMNS} FROM stores {where} ORDER BY "createdAt"', params
                )
                rows = await cur.fetchall()

        logger.debug(f"Store directory returned {len(rows)} store(s)")
        return [self._record(r) for r in rows]

    async def get_store(self, store_id: str) -> Optional[StoreRecord]:
        async with await psycopg.AsyncConnection.connect(
            self.database_url, row_factory=dict_row
        ) as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f'SELECT {self._COLUMNS} FROM stores WHERE "id" = %s', (store_id,)
                )
                row = await cur.fetchone()
        return self._record(row) if row else None


__all__ = ["PostgresCatalogStore", "PostgresStoreDirectory"]
