"""
Release sync service module.

- ProgressReporter: abstract progress reporting (SSE, logging)
- ReleaseSyncService: sync orchestration and single-flight status handling
- ReleaseReconciler: shadow upserts and native release linking
- SSEProgressReporter: SSE implementation of progress reporting
"""

from .progress import ProgressReporter, SyncPhase
from .reconciler import ReleaseReconciler
from .release_sync import ReleaseSyncService
from .sse_reporter import SSEProgressReporter

__all__ = [
    "ProgressReporter",
    "SyncPhase",
    "ReleaseReconciler",
    "ReleaseSyncService",
    "SSEProgressReporter",
]
