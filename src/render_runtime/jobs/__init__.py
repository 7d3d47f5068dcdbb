"""
Job system for the render runtime.

This module provides the job lifecycle primitives:
- JobRecord: Persisted job state
- JobPatch: Partial, transition-checked updates
- JobStore: Bounded, TTL-expiring persistence interface
"""

from .types import (
    JobStatus,
    JobRecord,
    JobPatch,
    JobStats,
    VALID_TRANSITIONS,
    can_transition,
    generate_job_id,
)
from .store import (
    JobStore,
    InMemoryJobStore,
)

__all__ = [
    "JobStatus",
    "JobRecord",
    "JobPatch",
    "JobStats",
    "VALID_TRANSITIONS",
    "can_transition",
    "generate_job_id",
    "JobStore",
    "InMemoryJobStore",
]
