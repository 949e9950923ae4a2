"""
Single-store catalog import.

Components:
- platforms: adapter base class and registry
- shopify: `/products.json` adapter (registered as "shopify")
- duplicates: duplicate resolution and the pre-import check
- images: local image archive
- importer: batch import engine
- stream: server-sent event stream over an import job
"""

from .duplicates import DuplicateResolver, Resolution, ResolutionAction, check_duplicates
from .images import HttpImageArchiver, ImageArchiver
from .importer import BatchImportEngine
from .platforms import PlatformAdapter, PlatformRegistry, platform_registry
from .shopify import ShopifyCatalogClient
from .stream import ImportProgressStream, StreamEvent

__all__ = [
    "DuplicateResolver",
    "Resolution",
    "ResolutionAction",
    "check_duplicates",
    "HttpImageArchiver",
    "ImageArchiver",
    "BatchImportEngine",
    "PlatformAdapter",
    "PlatformRegistry",
    "platform_registry",
    "ShopifyCatalogClient",
    "ImportProgressStream",
    "StreamEvent",
]
