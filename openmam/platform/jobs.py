"""
Open Source Cloud platform — ephemeral FFmpeg jobs.

A job is an instance of the FFmpeg-over-S3 service: it reads its input from
and writes its output to the tenant's object storage, runs once, and stays
around (in a terminal state) until removed. Callers create a job, poll it to
a terminal state, then remove it.
"""
from __future__ import annotations

import asyncio
import logging
import re
import secrets
import time

from openmam.platform.client import PlatformContext
from openmam.platform.constants import (
    FFMPEG_SERVICE_ID,
    JOB_MAX_WAIT_SECONDS,
    JOB_NAME_PATTERN,
    JOB_POLL_INTERVAL_SECONDS,
    PLATFORM_JOB_STATUSES,
    TERMINAL_JOB_STATES,
    JobState,
)
from openmam.platform.exceptions import InvalidJobName, PlatformError
from openmam.platform.types import JobResult, StorageCredentials

logger = logging.getLogger(__name__)

_JOB_NAME_RE = re.compile(JOB_NAME_PATTERN)
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def validate_job_name(name: str) -> None:
    if not _JOB_NAME_RE.fullmatch(name or ""):
        raise InvalidJobName(name)


def generate_job_name(prefix: str) -> str:
    """
    Unique, valid job name: the prefix stripped to [a-z0-9], a base-36
    millisecond timestamp, and a short random suffix.
    """
    clean = re.sub(r"[^a-z0-9]", "", prefix.lower())
    return f"{clean}{_base36(int(time.time() * 1000))}{secrets.token_hex(2)}"


def normalize_state(status: str | None) -> JobState:
    if not status:
        return JobState.UNKNOWN
    return PLATFORM_JOB_STATUSES.get(status.strip().lower(), JobState.UNKNOWN)


async def create_job(
    ctx: PlatformContext,
    name: str,
    command: str,
    credentials: StorageCredentials,
) -> JobResult:
    """Submit an FFmpeg job. ``command`` is the FFmpeg argument string."""
    validate_job_name(name)

    logger.info("Creating FFmpeg job %r", name)
    logger.debug("FFmpeg job %r args: %s", name, command)

    instance = await ctx.create_instance(
        FFMPEG_SERVICE_ID,
        {
            "name": name,
            "cmdLineArgs": command,
            "awsAccessKeyId": credentials.access_key_id,
            "awsSecretAccessKey": credentials.secret_access_key,
            "s3EndpointUrl": credentials.endpoint,
        },
    )
    raw_status = instance.get("status") if isinstance(instance, dict) else None
    state = normalize_state(raw_status) if raw_status else JobState.CREATED
    logger.info("FFmpeg job %r created with state %s", name, state.value)
    return JobResult(name=name, state=state)


async def get_job_state(ctx: PlatformContext, name: str) -> JobState:
    """Current state of the job. Never raises: lookup failures read as UNKNOWN."""
    try:
        instance = await ctx.get_instance(FFMPEG_SERVICE_ID, name)
    except PlatformError as exc:
        logger.error("Failed to get status of FFmpeg job %r: %s", name, exc)
        return JobState.UNKNOWN
    if instance is None:
        return JobState.UNKNOWN
    return normalize_state(instance.get("status"))


async def poll_until_terminal(
    ctx: PlatformContext,
    name: str,
    *,
    max_wait: float = JOB_MAX_WAIT_SECONDS,
    interval: float = JOB_POLL_INTERVAL_SECONDS,
) -> JobState:
    """
    Poll the job until it reaches complete/failed/error, or return TIMEOUT
    once ``max_wait`` seconds have elapsed. UNKNOWN states keep polling.
    """
    loop = asyncio.get_running_loop()
    started = loop.time()
    logger.info("Waiting for FFmpeg job %r (max %.0fs)", name, max_wait)

    while loop.time() - started < max_wait:
        state = await get_job_state(ctx, name)
        elapsed = loop.time() - started
        if state in TERMINAL_JOB_STATES:
            logger.info("FFmpeg job %r finished: %s after %.1fs", name, state.value, elapsed)
            return state
        logger.debug("FFmpeg job %r: %s (%.0fs elapsed)", name, state.value, elapsed)
        await asyncio.sleep(interval)

    logger.warning("FFmpeg job %r timed out after %.0fs", name, max_wait)
    return JobState.TIMEOUT


async def remove_job(ctx: PlatformContext, name: str) -> None:
    """Best-effort cleanup; failures are logged, never raised."""
    try:
        await ctx.remove_instance(FFMPEG_SERVICE_ID, name)
        logger.info("Removed FFmpeg job %r", name)
    except PlatformError as exc:
        logger.warning("Failed to remove FFmpeg job %r: %s", name, exc)
