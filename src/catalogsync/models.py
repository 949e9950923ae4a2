"""Data types for catalog imports and store syncs."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Tuple, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator, model_validator

from .exceptions import ItemProcessingError, ValidationError


class DuplicateStrategy(str, Enum):
    """What to do when an incoming handle already exists."""

    SKIP = "skip"
    OVERWRITE = "overwrite"
    KEEP_BOTH = "keepboth"


class SyncMode(str, Enum):
    """Per-store sync flavour selected by sync-all."""

    FULL = "full"
    MODIFIED_ONLY = "modified_only"


class JobState(str, Enum):
    """Import job lifecycle."""

    PENDING = "pending"
    VERIFYING = "verifying"
    FETCHING = "fetching"
    IMPORTING = "importing"
    WAITING = "waiting"
    COMPLETED = "completed"
    FAILED = "failed"


# =========================================================================
# Remote catalog payloads
# =========================================================================


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class Variant(BaseModel):
    """A sellable configuration of a catalog item."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[Union[int, str]] = None
    title: Optional[str] = None
    sku: Optional[str] = None
    price: Optional[Decimal] = None
    compare_at_price: Optional[Decimal] = None
    featured_image: Optional[str] = None
    option1: Optional[str] = None
    option2: Optional[str] = None
    option3: Optional[str] = None
    raw_payload: Dict[str, Any] = Field(default_factory=dict, repr=False)

    @model_validator(mode="before")
    @classmethod
    def _keep_raw(cls, data: Any) -> Any:
        if isinstance(data, dict) and "raw_payload" not in data:
            data = {**data, "raw_payload": dict(data)}
        return data

    @field_validator("price", "compare_at_price", mode="before")
    @classmethod
    def _parse_money(cls, value: Any) -> Optional[Decimal]:
        return _to_decimal(value)

    @field_validator("featured_image", mode="before")
    @classmethod
    def _image_src(cls, value: Any) -> Optional[str]:
        # Either a bare URL or an image object carrying "src"
        if isinstance(value, dict):
            return value.get("src") or None
        return value or None

    @field_validator("sku", mode="before")
    @classmethod
    def _blank_sku(cls, value: Any) -> Optional[str]:
        return value or None

    @property
    def options(self) -> List[str]:
        return [o for o in (self.option1, self.option2, self.option3) if o]


class CatalogItem(BaseModel):
    """A product as exported by the remote platform."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Union[int, str]
    title: str
    handle: Optional[str] = None
    description: Optional[str] = Field(default=None, alias="body_html")
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    options: List[Dict[str, Any]] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    variants: List[Variant] = Field(default_factory=list)
    raw_payload: Dict[str, Any] = Field(default_factory=dict, repr=False)

    @model_validator(mode="before")
    @classmethod
    def _keep_raw(cls, data: Any) -> Any:
        if isinstance(data, dict) and "raw_payload" not in data:
            data = {**data, "raw_payload": dict(data)}
        return data

    @field_validator("handle", "vendor", "description", "product_type", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        return value or None

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [t.strip() for t in value.split(",") if t.strip()]
        return list(value)

    @field_validator("images", mode="before")
    @classmethod
    def _image_urls(cls, value: Any) -> List[str]:
        if not value:
            return []
        urls = []
        for image in value:
            src = image.get("src") if isinstance(image, dict) else image
            if src:
                urls.append(src)
        return urls

    @field_validator("options", "variants", mode="before")
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        return value or []

    @property
    def categories(self) -> List[str]:
        """Tags followed by the product type."""
        return [c for c in [*self.tags, self.product_type] if c]

    @property
    def skus(self) -> List[str]:
        return [v.sku for v in self.variants if v.sku]


# =========================================================================
# Requests
# =========================================================================


def _raise_validation(exc: pydantic.ValidationError) -> None:
    messages = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error.get("loc", ()))
        msg = error.get("msg", "invalid value")
        messages.append(f"{loc}: {msg}" if loc else msg)
    raise ValidationError("; ".join(messages)) from exc


class ImportRequest(BaseModel):
    """Inputs of one import job."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    store_url: str = Field(alias="url", min_length=1)
    start_page: int = Field(alias="startPage", ge=1)
    end_page: int = Field(alias="endPage", ge=1)
    duplicate_strategy: DuplicateStrategy = Field(
        default=DuplicateStrategy.SKIP, alias="duplicateStrategy"
    )
    platform: str = "shopify"

    @model_validator(mode="after")
    def _check_range(self) -> "ImportRequest":
        if self.end_page < self.start_page:
            raise ValueError("endPage must be greater than or equal to startPage")
        return self

    @classmethod
    def parse(cls, **data: Any) -> "ImportRequest":
        """Validate raw input, raising the engine's ValidationError."""
        try:
            return cls.model_validate(data)
        except pydantic.ValidationError as e:
            _raise_validation(e)


PositiveInt = Annotated[StrictInt, Field(gt=0)]


class SyncOptions(BaseModel):
    """Page sizing passed to per-store syncers."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    page_size: Optional[PositiveInt] = Field(default=None, alias="pageSize")
    max_pages: Optional[PositiveInt] = Field(default=None, alias="maxPages")

    @classmethod
    def parse(cls, data: Union["SyncOptions", Dict[str, Any], None]) -> "SyncOptions":
        if isinstance(data, SyncOptions):
            return data
        try:
            return cls.model_validate(data or {})
        except pydantic.ValidationError as e:
            _raise_validation(e)


class DuplicateCandidate(BaseModel):
    """One entry of a duplicate pre-check request."""

    model_config = ConfigDict(extra="ignore")

    handle: Optional[str] = None
    skus: List[str] = Field(default_factory=list)

    @field_validator("skus", mode="before")
    @classmethod
    def _drop_blank(cls, value: Any) -> List[str]:
        return [s for s in (value or []) if s]


# =========================================================================
# Import progress
# =========================================================================


@dataclass(frozen=True)
class ProgressSnapshot:
    """Immutable view of an ImportProgress at one instant."""

    state: JobState
    total: int
    current: int
    success: int
    failed: int
    skipped: int
    current_item: Optional[str]
    logs: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "current": self.current,
            "success": self.success,
            "failed": self.failed,
            "skipped": self.skipped,
            "logs": list(self.logs),
        }


@dataclass
class ImportProgress:
    """Job-scoped counters, mutated only by the job that owns them."""

    total: int = 0
    current: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    current_item: Optional[str] = None
    state: JobState = JobState.PENDING
    logs: List[str] = field(default_factory=list)

    def log(self, message: str) -> None:
        self.logs.append(message)

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            state=self.state,
            total=self.total,
            current=self.current,
            success=self.success,
            failed=self.failed,
            skipped=self.skipped,
            current_item=self.current_item,
            logs=tuple(self.logs),
        )

    def outcome(self, items: Tuple["ItemResult", ...] = ()) -> "ImportOutcome":
        return ImportOutcome(
            total=self.total,
            current=self.current,
            success=self.success,
            failed=self.failed,
            skipped=self.skipped,
            logs=tuple(self.logs),
            items=tuple(items),
        )


@dataclass(frozen=True)
class ImportOutcome:
    """Final counters of a finished import job."""

    total: int
    current: int
    success: int
    failed: int
    skipped: int
    logs: Tuple[str, ...] = ()
    items: Tuple["ItemResult", ...] = field(default=(), repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "current": self.current,
            "success": self.success,
            "failed": self.failed,
            "skipped": self.skipped,
            "logs": list(self.logs),
        }


class ItemStatus(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ItemResult:
    """Outcome of importing one catalog item."""

    label: str
    status: ItemStatus
    product_id: Optional[str] = None
    error: Optional[ItemProcessingError] = None

    @property
    def ok(self) -> bool:
        return self.status != ItemStatus.FAILED


# =========================================================================
# Store sync results
# =========================================================================


@dataclass
class SyncResult:
    """Counters returned by a per-store syncer."""

    total: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": list(self.errors),
            "duration": self.duration_ms,
        }


@dataclass(frozen=True)
class StoreSyncOutcome:
    """Result of syncing one store inside sync-all."""

    store_id: str
    store_name: str
    success: bool
    result: Optional[SyncResult] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "storeId": self.store_id,
            "storeName": self.store_name,
            "success": self.success,
        }
        if self.success and self.result is not None:
            data["result"] = self.result.to_dict()
        else:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class SyncSummary:
    """Aggregate over all store outcomes of one sync-all run."""

    total_stores: int = 0
    successful_stores: int = 0
    failed_stores: int = 0
    total_products: int = 0

    @classmethod
    def from_outcomes(cls, outcomes: List[StoreSyncOutcome]) -> "SyncSummary":
        succeeded = [o for o in outcomes if o.success]
        return cls(
            total_stores=len(outcomes),
            successful_stores=len(succeeded),
            failed_stores=len(outcomes) - len(succeeded),
            total_products=sum(o.result.created for o in succeeded if o.result),
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "totalStores": self.total_stores,
            "successfulStores": self.successful_stores,
            "failedStores": self.failed_stores,
            "totalProducts": self.total_products,
        }


@dataclass(frozen=True)
class SyncAllResult:
    """Ordered per-store outcomes plus their summary."""

    outcomes: List[StoreSyncOutcome]
    summary: SyncSummary

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stores": [o.to_dict() for o in self.outcomes],
            "summary": self.summary.to_dict(),
        }
