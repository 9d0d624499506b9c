"""
Open Source Cloud platform — service ids, job states and timing defaults.
"""
import enum

# Service ids on the platform catalog
STORAGE_SERVICE_ID = "minio-minio"
CACHE_SERVICE_ID = "valkey-io-valkey"
FFMPEG_SERVICE_ID = "eyevinn-ffmpeg-s3"


class InstanceKind(str, enum.Enum):
    """Instance types the service provisions on a tenant's account."""
    STORAGE = STORAGE_SERVICE_ID
    CACHE = CACHE_SERVICE_ID
    FFMPEG = FFMPEG_SERVICE_ID


class JobState(str, enum.Enum):
    CREATED = "created"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"
    ERROR = "error"
    TIMEOUT = "timeout"  # synthetic: deadline passed without a terminal state
    UNKNOWN = "unknown"  # status query failed or job not found


TERMINAL_JOB_STATES = frozenset({JobState.COMPLETE, JobState.FAILED, JobState.ERROR})

# Platform status strings (case-insensitive) -> JobState
PLATFORM_JOB_STATUSES: dict[str, JobState] = {
    "created": JobState.CREATED,
    "pending": JobState.CREATED,
    "starting": JobState.CREATED,
    "running": JobState.RUNNING,
    "suspended": JobState.RUNNING,
    "complete": JobState.COMPLETE,
    "completed": JobState.COMPLETE,
    "failed": JobState.FAILED,
    "error": JobState.ERROR,
}

# Instance names for ephemeral jobs: lowercase alphanumeric only
JOB_NAME_PATTERN = r"[a-z0-9]+"

# Instance health value meaning "ready to serve"
INSTANCE_READY_STATUS = "running"
INSTANCE_FAILED_STATUS = "failed"

# Timing defaults (seconds)
JOB_MAX_WAIT_SECONDS = 5 * 60
JOB_POLL_INTERVAL_SECONDS = 2.0
INSTANCE_READY_TIMEOUT_SECONDS = 5 * 60
INSTANCE_READY_POLL_SECONDS = 2.0
RETRY_MAX_ATTEMPTS = 3
RETRY_BASE_DELAY_SECONDS = 1.0

CACHE_PASSWORD_LENGTH = 24
