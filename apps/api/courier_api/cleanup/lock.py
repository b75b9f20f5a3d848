"""Cluster-wide guard so only one reconciliation sweep runs at a time."""

from typing import Optional

import redis
from redis.lock import Lock

from courier_api.settings import get_settings

SWEEP_LOCK_NAME = "courier:reconciliation-sweep"


def get_redis_client() -> redis.Redis:
    return redis.from_url(get_settings().redis_url)


def sweep_lock(client: Optional[redis.Redis] = None) -> Lock:
    """Redis lock taken by every sweep, in-process or Celery beat.

    Expiry bounds how long a crashed holder blocks the next sweep.
    """
    client = client or get_redis_client()
    return client.lock(SWEEP_LOCK_NAME, timeout=get_settings().cleanup_lock_timeout_seconds)
