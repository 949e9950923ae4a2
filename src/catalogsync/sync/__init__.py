"""
Multi-store synchronization.

Components:
- woocommerce: per-store syncer (full and modified-only)
- orchestrator: fan-out across stores with failure isolation
"""

from .orchestrator import MultiStoreSyncOrchestrator, Syncer
from .woocommerce import WooCommerceSyncer

__all__ = ["MultiStoreSyncOrchestrator", "Syncer", "WooCommerceSyncer"]
