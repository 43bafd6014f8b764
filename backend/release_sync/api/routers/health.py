"""
Queue health check endpoint.

Checks the Redis broker the sync workers consume from.
"""

import os
from datetime import datetime, timezone

import redis
from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/queue-health")
async def queue_health():
    """
    Redis connectivity and pending task counts per queue.

    Reads queue lengths directly instead of broadcasting to workers.
    """
    redis_url = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
    r = redis.from_url(redis_url, decode_responses=True)

    try:
        r.ping()
        queues = {"default": r.llen("default") or 0}
        redis_ok = True
    except redis.RedisError:
        queues = {"default": 0}
        redis_ok = False

    total_pending = sum(queues.values())
    return {
        "status": "healthy" if redis_ok and total_pending < 1000 else "degraded",
        "redis_connected": redis_ok,
        "queues": queues,
        "total_pending": total_pending,
        "checked_at": datetime.now(timezone.utc).isoformat(),
    }
