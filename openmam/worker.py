"""
ARQ worker — derived-artifact pipeline runs.

Runs as a SEPARATE process from the FastAPI API server when
PIPELINE_BACKEND=queue.

Start:  arq openmam.worker.WorkerSettings
Scale:  run N instances; each resolves tenants independently.

Architecture:
  API process:  confirm upload → enqueue process_video(token, asset_id) → 202
  Worker(s):    resolve tenant → run FFmpeg jobs on the platform → update asset
  Redis:        the service's own Redis holds the queue, not tenant data
"""
from __future__ import annotations

import logging
from typing import Any

from openmam.config import Settings
from openmam.task_queue import QUEUE_NAME, queue_redis_settings

logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(name)s: %(message)s")
logger = logging.getLogger("openmam.worker")


# ── Startup / shutdown hooks ────────────────────────────────────────────────

async def startup(ctx: dict[str, Any]) -> None:
    """Called once when the worker process starts."""
    from openmam.tenancy import TenantRegistry

    settings = Settings()
    ctx["settings"] = settings
    ctx["registry"] = TenantRegistry(settings)
    logger.info("Worker started")


async def shutdown(ctx: dict[str, Any]) -> None:
    """Called once when the worker process stops."""
    registry = ctx.get("registry")
    if registry is not None:
        await registry.close()
    logger.info("Worker shut down")


# ── Pipeline task ───────────────────────────────────────────────────────────

async def process_video(ctx: dict[str, Any], token: str, asset_id: str) -> str:
    """
    Run the derived-artifact pipeline for one asset.

    The pipeline records its own outcome on the asset, so a pipeline failure
    is not a job failure. Only tenant resolution errors propagate (and are
    retried by ARQ).
    """
    from openmam.asset import service
    from openmam.asset.pipeline import run_derived_artifact_pipeline

    settings: Settings = ctx["settings"]
    tenant = await ctx["registry"].resolve(token)

    asset = await service.get_asset(tenant.redis, asset_id)
    if asset is None:
        logger.warning("Asset %s vanished before processing", asset_id)
        return "missing"

    status = await run_derived_artifact_pipeline(
        tenant.redis, tenant.platform, asset, tenant.storage, settings,
    )
    logger.info("Pipeline for asset %s finished: %s", asset_id, status.value)
    return status.value


# ── ARQ worker configuration ──────────────────────────────────────────────

class WorkerSettings:
    """ARQ reads this class to configure the worker process."""
    functions = [process_video]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = queue_redis_settings(Settings().redis_url)
    # Jobs mostly sleep between platform polls
    max_jobs = 20
    max_tries = 3
    # Proxy + thumbnail, each bounded by job_max_wait_seconds
    job_timeout = 1800
    keep_result = 3600
    queue_name = QUEUE_NAME
