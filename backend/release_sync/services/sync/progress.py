"""
Progress reporting abstraction for release sync.

Decouples the sync orchestrator from the transport (SSE stream, logging).
"""

from enum import Enum
from typing import Any, Protocol, runtime_checkable


class SyncPhase(str, Enum):
    """Release sync phases."""
    AUTHENTICATING = "authenticating"
    FETCHING = "fetching"
    FETCHED = "fetched"
    RECONCILING = "reconciling"
    DONE = "done"
    ERROR = "error"


@runtime_checkable
class ProgressReporter(Protocol):
    """
    Protocol for reporting sync progress.

    Implementations:
    - SSEProgressReporter (streaming sync endpoint)
    - Celery tasks pass no reporter and rely on logging
    """

    async def report_phase(self, phase: SyncPhase, **data: Any) -> None:
        """Report a phase transition with optional data."""
        ...

    async def report_error(self, message: str) -> None:
        """Report an error."""
        ...

    async def report_done(self, result: dict) -> None:
        """Report completion with final result."""
        ...
