"""
Connection facts returned by instance provisioning and job submission.
"""
from __future__ import annotations

from dataclasses import dataclass

from openmam.platform.constants import JobState


@dataclass(frozen=True, slots=True)
class StorageCredentials:
    endpoint: str           # S3-compatible endpoint URL
    access_key_id: str      # RootUser
    secret_access_key: str  # RootPassword
    console_url: str = ""   # MinIO web console


@dataclass(frozen=True, slots=True)
class CacheConnection:
    url: str  # redis://:password@host:port


@dataclass(frozen=True, slots=True)
class JobResult:
    name: str
    state: JobState
