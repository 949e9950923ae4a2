"""
Duplicate handling for incoming catalog items.

Two entry points:
- DuplicateResolver.resolve(): per-item decision during an import (handle match only)
- check_duplicates(): pre-import report over handles and SKUs
- find_title_match(): near-identical title lookup used by store syncs
"""

from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ..models import CatalogItem, DuplicateCandidate, DuplicateStrategy
from ..storage.base import CatalogStore, StoredProduct


class ResolutionAction(str, Enum):
    SKIP = "skip"
    OVERWRITE = "overwrite"
    CREATE = "create"


@dataclass(frozen=True)
class Resolution:
    """What to do with one incoming item."""

    action: ResolutionAction
    target_id: Optional[str] = None
    handle: Optional[str] = None
    title: Optional[str] = None


class _CopyClock:
    """Nanosecond timestamps, strictly increasing within the process."""

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            now = time.time_ns()
            self._last = now if now > self._last else self._last + 1
            return self._last


_copy_clock = _CopyClock()


class DuplicateResolver:
    """Applies a DuplicateStrategy to an (item, existing match) pair."""

    def __init__(self, clock: Optional[_CopyClock] = None):
        self._clock = clock or _copy_clock

    def resolve(
        self,
        candidate: CatalogItem,
        existing: Optional[StoredProduct],
        strategy: DuplicateStrategy,
    ) -> Resolution:
        if existing is None or not candidate.handle:
            return Resolution(
                action=ResolutionAction.CREATE,
                handle=candidate.handle,
                title=candidate.title,
            )

        if strategy == DuplicateStrategy.SKIP:
            return Resolution(action=ResolutionAction.SKIP, target_id=existing.id)

        if strategy == DuplicateStrategy.OVERWRITE:
            return Resolution(
                action=ResolutionAction.OVERWRITE,
                target_id=existing.id,
                handle=candidate.handle,
                title=candidate.title,
            )

        stamp = self._clock.next()
        return Resolution(
            action=ResolutionAction.CREATE,
            handle=f"{candidate.handle}-{stamp}",
            title=f"{candidate.title} (Copy {stamp})",
        )


@dataclass
class SkuConflict:
    sku: str
    existing_product_title: str

    def to_dict(self) -> Dict[str, Any]:
        return {"sku": self.sku, "existingProductTitle": self.existing_product_title}


@dataclass
class DuplicateMatch:
    """A candidate that collides with the persisted catalog."""

    candidate: DuplicateCandidate
    existing_product: Optional[StoredProduct] = None
    sku_conflicts: List[SkuConflict] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        existing = None
        if self.existing_product is not None:
            existing = {
                "id": self.existing_product.id,
                "title": self.existing_product.title,
                "handle": self.existing_product.handle,
            }
        return {
            "shopifyProduct": self.candidate.model_dump(),
            "existingProduct": existing,
            "skuConflicts": [c.to_dict() for c in self.sku_conflicts],
        }


async def check_duplicates(
    store: CatalogStore, candidates: Sequence[DuplicateCandidate]
) -> List[DuplicateMatch]:
    """Report candidates matching an existing item by handle or by any SKU.

    Candidates with no match are left out; order follows the input.
    """
    handles = [c.handle for c in candidates if c.handle]
    skus = [s for c in candidates for s in c.skus]

    by_handle = {p.handle: p for p in await store.find_by_handles(handles)}
    variants = await store.find_variants_by_skus(skus)

    matches = []
    for candidate in candidates:
        existing = by_handle.get(candidate.handle) if candidate.handle else None
        wanted = set(candidate.skus)
        conflicts = [
            SkuConflict(sku=v.sku, existing_product_title=v.product_title)
            for v in variants
            if v.sku in wanted
        ]
        if existing or conflicts:
            matches.append(
                DuplicateMatch(
                    candidate=candidate,
                    existing_product=existing,
                    sku_conflicts=conflicts,
                )
            )
    return matches


# =========================================================================
# Fuzzy title matching
# =========================================================================

TITLE_SIMILARITY_THRESHOLD = 0.85
TITLE_CANDIDATE_LIMIT = 50

_STOP_WORDS = frozenset(
    """
    the a an and or but in on at to for of with by from as is are was were be
    been being have has had do does did will would should can could may might
    must shall
    """.split()
)


def normalize_title(title: str) -> str:
    """Lowercase, single-spaced, without punctuation other than dashes."""
    title = re.sub(r"\s+", " ", title.lower().strip())
    return re.sub(r"[^\w\s-]", "", title)


def title_keywords(normalized: str) -> List[str]:
    return [w for w in normalized.split(" ") if len(w) >= 3 and w not in _STOP_WORDS]


def levenshtein(a: str, b: str) -> int:
    """Single-character edit distance."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(
                min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + (ca != cb))
            )
        previous = current
    return previous[-1]


def title_similarity(a: str, b: str) -> float:
    """1 - distance / longer length, over normalized titles."""
    a, b = normalize_title(a), normalize_title(b)
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return max(0.0, 1 - levenshtein(a, b) / longest)


async def find_title_match(
    store: CatalogStore,
    title: str,
    threshold: float = TITLE_SIMILARITY_THRESHOLD,
) -> Optional[StoredProduct]:
    """Most similar stored product sharing a title keyword, if similar enough."""
    keywords = title_keywords(normalize_title(title))
    if not keywords:
        return None

    best, best_score = None, 0.0
    for product in await store.find_by_title_keywords(keywords, TITLE_CANDIDATE_LIMIT):
        score = title_similarity(title, product.title)
        if best is None or score > best_score:
            best, best_score = product, score

    if best is not None and best_score >= threshold:
        return best
    return None


__all__ = [
    "TITLE_SIMILARITY_THRESHOLD",
    "title_similarity",
    "find_title_match",
    "ResolutionAction",
    "Resolution",
    "DuplicateResolver",
    "SkuConflict",
    "DuplicateMatch",
    "check_duplicates",
]
