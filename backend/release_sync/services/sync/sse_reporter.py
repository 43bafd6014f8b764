"""
SSE (Server-Sent Events) progress reporter.

Bridges the release sync orchestrator with FastAPI's StreamingResponse.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Optional

from .progress import SyncPhase


class SSEProgressReporter:
    """
    Progress reporter that pushes events to an asyncio.Queue.

    Usage:
        reporter = SSEProgressReporter()
        task = asyncio.create_task(run_sync(progress=reporter))
        async for chunk in reporter.stream():
            yield chunk
    """

    def __init__(self, queue: Optional[asyncio.Queue] = None):
        self.queue = queue if queue is not None else asyncio.Queue()

    async def report_phase(self, phase: SyncPhase, **data: Any) -> None:
        await self.queue.put({
            "event": "progress",
            "data": {"phase": phase.value, **data},
        })

    async def report_error(self, message: str) -> None:
        await self.queue.put({
            "event": "error",
            "data": {"message": message},
        })

    async def report_done(self, result: dict) -> None:
        await self.queue.put({
            "event": "done",
            "data": result,
        })

    async def signal_end(self) -> None:
        """Signal end of stream."""
        await self.queue.put(None)

    async def stream(self) -> AsyncIterator[str]:
        """Yield SSE-formatted chunks until signal_end() is called."""
        while True:
            item = await self.queue.get()
            if item is None:
                break
            yield f"event: {item['event']}\ndata: {json.dumps(item['data'])}\n\n"
