"""
Pipeline queue — hands derived-artifact runs to the ARQ worker.

Only used with PIPELINE_BACKEND=queue. The queue lives in the service's own
Redis (``Settings.redis_url``), never in a tenant's cache instance. The API
process owns one PipelineQueue on ``app.state``; openmam.worker consumes it.
"""
from __future__ import annotations

import logging

from arq import ArqRedis, create_pool
from arq.connections import RedisSettings
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

QUEUE_NAME = "openmam:tasks"
PIPELINE_TASK = "process_video"


def queue_redis_settings(redis_url: str) -> RedisSettings:
    return RedisSettings.from_dsn(redis_url)


class PipelineQueue:
    """
    Enqueues ``process_video(token, asset_id)`` jobs.

    ``enqueue_pipeline`` never raises: ``None`` tells the caller the run was
    not queued and has to happen in-process instead.
    """

    def __init__(self, redis_url: str) -> None:
        self._settings = queue_redis_settings(redis_url)
        self._pool: ArqRedis | None = None

    @property
    def connected(self) -> bool:
        return self._pool is not None

    async def start(self) -> None:
        self._pool = await create_pool(self._settings, default_queue_name=QUEUE_NAME)
        logger.info("Pipeline queue connected to %s:%s", self._settings.host, self._settings.port)

    async def close(self) -> None:
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.aclose()
        logger.info("Pipeline queue closed")

    async def enqueue_pipeline(self, token: str, asset_id: str) -> str | None:
        if self._pool is None:
            logger.warning("Pipeline queue not connected, asset %s not queued", asset_id)
            return None
        try:
            job = await self._pool.enqueue_job(PIPELINE_TASK, token, asset_id)
        except (RedisError, OSError):
            logger.exception("Failed to queue pipeline for asset %s", asset_id)
            return None
        if job is None:
            return None
        logger.info("Queued pipeline for asset %s as job %s", asset_id, job.job_id)
        return job.job_id
