"""Photisnadi sync engine.

Reconciles the local embedded store with the Supabase backend for three
collections (projects, tasks, rituals) using last-write-wins on
``modified_at``, retry with exponential backoff, and per-user change
notifications.

Core modules:
    retry         — Retry executor returning RetryResult / SyncError
    codecs        — Entity <-> wire row mapping, enum name tables
    collections   — Registry of synchronized collections
    reconciler    — Per-collection merge
    engine        — Lifecycle and orchestration (SyncEngine)
    scheduler     — Coalescing per-collection work queue
    realtime      — Change-notification listener
    config_loader — Load/validate/hot-reload sync_config.yaml
"""

from photisnadi.sync.codecs import DecodeError
from photisnadi.sync.engine import SyncEngine
from photisnadi.sync.reconciler import CollectionReconciler, MergeReport
from photisnadi.sync.retry import RetryPolicy, RetryResult, SyncError, execute_with_retry

__all__ = [
    "SyncEngine",
    "CollectionReconciler",
    "MergeReport",
    "DecodeError",
    "RetryPolicy",
    "RetryResult",
    "SyncError",
    "execute_with_retry",
]
