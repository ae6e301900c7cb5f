"""Synchronization between the local draft store and the Git host."""

from postdesk.sync.reconciler import DEFAULT_MAX_CONCURRENCY, SyncReconciler

__all__ = ["DEFAULT_MAX_CONCURRENCY", "SyncReconciler"]
