"""Database service modules."""

from .connections import ConnectionRegistry
from .github_releases import SyncedReleaseService
from .releases import ReleaseService

__all__ = [
    "ConnectionRegistry",
    "SyncedReleaseService",
    "ReleaseService",
]
