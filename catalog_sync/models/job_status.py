# catalog_sync/models/job_status.py
# ===================================================
# Persisted job status + the named lifecycle transitions
# ===================================================
# The record is stored as JSON with camelCase keys:
#   {"status", "lastCursor", "lastSyncDate", "totalToSync",
#    "remainingToSync", "failedSyncs": [{"identifier", "errorMessage", "date"}]}
#
# Transition helpers return *partial* patches (dicts of those keys) that the
# JobHandler merges onto the current record.
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field


class JobState(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    TO_STOP = "to-stop"
    STOPPED = "stopped"
    RESUMABLE = "resumable"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class FailedItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    identifier: str
    message: str = Field("", alias="errorMessage")
    date: str = Field(default_factory=lambda: isoformat(utcnow()))

    @classmethod
    def from_exception(cls, identifier: str, exc: BaseException) -> "FailedItem":
        message = str(exc) or exc.__class__.__name__
        return cls(identifier=identifier, message=message)


class JobStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    status: JobState = JobState.SCHEDULED
    last_cursor: Optional[str] = Field(None, alias="lastCursor")
    last_sync_date: Optional[datetime] = Field(None, alias="lastSyncDate")
    total_to_sync: Optional[int] = Field(None, alias="totalToSync")
    remaining_to_sync: Optional[int] = Field(None, alias="remainingToSync")
    failed_syncs: Optional[List[FailedItem]] = Field(None, alias="failedSyncs")

    @classmethod
    def from_record(cls, value: Any) -> "JobStatus":
        if not isinstance(value, dict):
            return cls()
        return cls.model_validate(value)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    @property
    def failed_count(self) -> int:
        return len(self.failed_syncs or [])


# ---------------------------------------------------------------------------
# Transitions (partial patches)
# ---------------------------------------------------------------------------

def _dump_failed(failed: Optional[Sequence[FailedItem]]) -> Optional[List[Dict[str, Any]]]:
    if failed is None:
        return None
    return [f.model_dump(by_alias=True) for f in failed]


def to_idle(failed: Optional[Sequence[FailedItem]] = None) -> Dict[str, Any]:
    patch: Dict[str, Any] = {"status": JobState.IDLE.value, "lastCursor": None}
    if failed is not None:
        patch["failedSyncs"] = _dump_failed(failed)
    return patch


def to_scheduled(failed: Optional[Sequence[FailedItem]] = None) -> Dict[str, Any]:
    return {
        "status": JobState.SCHEDULED.value,
        "lastCursor": None,
        "lastSyncDate": None,
        "totalToSync": None,
        "remainingToSync": None,
        "failedSyncs": _dump_failed(failed) if failed else None,
    }


def to_running(total: Optional[int] = None, failed: Optional[Sequence[FailedItem]] = None) -> Dict[str, Any]:
    # the stored cursor has been read by the processor; it only lives in `resumable`.
    # A resumed run carries its earlier failures, a fresh run starts clean.
    return {
        "status": JobState.RUNNING.value,
        "lastCursor": None,
        "totalToSync": total,
        "remainingToSync": total,
        "failedSyncs": _dump_failed(failed) if failed else None,
    }


def to_to_stop() -> Dict[str, Any]:
    return {
        "status": JobState.TO_STOP.value,
        "lastCursor": None,
        "lastSyncDate": None,
        "totalToSync": None,
        "remainingToSync": None,
    }


def to_stopped(failed: Optional[Sequence[FailedItem]] = None) -> Dict[str, Any]:
    return {
        "status": JobState.STOPPED.value,
        "lastCursor": None,
        "lastSyncDate": isoformat(utcnow()),
        "failedSyncs": _dump_failed(failed),
    }


def to_resumable(cursor: str, failed: Optional[Sequence[FailedItem]] = None) -> Dict[str, Any]:
    return {
        "status": JobState.RESUMABLE.value,
        "lastCursor": cursor,
        "failedSyncs": _dump_failed(failed),
    }


def with_failures(failed: Sequence[FailedItem]) -> Dict[str, Any]:
    """Per-page bookkeeping while running: only the failure list changes."""
    return {"failedSyncs": _dump_failed(failed)}


# ---------------------------------------------------------------------------
# Validation predicates
# ---------------------------------------------------------------------------

def is_in_progress(status: JobStatus) -> bool:
    return status.status in (JobState.RUNNING, JobState.STOPPED)


def is_ready(status: JobStatus) -> bool:
    return status.status in (JobState.RESUMABLE, JobState.SCHEDULED)


def has_reached_failure_limit(status: JobStatus, max_failed: int) -> bool:
    return status.failed_count >= max_failed


def has_reached_time_limit(started_at: float, limit_seconds: float, now: float) -> bool:
    return now - started_at >= limit_seconds
