# campusvote/status_scheduler.py
"""
Election lifecycle: derive an election's status from its time window and keep
stored elections in step with the wall clock.

The functions at the top are pure. `StatusDriver` is the effectful shell that
runs them on an APScheduler background scheduler and persists the result.
"""
import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from pymongo.errors import PyMongoError

from .config import BOUNDARY_WAKE_HORIZON_SECONDS, RECONCILE_INTERVAL_SECONDS

logger = logging.getLogger(__name__)

RECONCILE_JOB_ID = "reconcile-elections"
WAKE_JOB_PREFIX = "wake:"


class ElectionStatus(str, Enum):
    UPCOMING = "Upcoming"
    ONGOING = "Ongoing"
    COMPLETED = "Completed"


# Position of each status along the lifecycle; statuses only move forward
STATUS_ORDER = {
    ElectionStatus.UPCOMING: 0,
    ElectionStatus.ONGOING: 1,
    ElectionStatus.COMPLETED: 2,
}


@dataclass
class ReconcileResult:
    updated: List[Any] = field(default_factory=list)
    changed_count: int = 0


@dataclass(frozen=True)
class BoundaryWake:
    election_id: str
    fire_at: datetime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Mongo hands back naive datetimes unless tz_aware is set; those are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def derive_status(now: datetime, start: datetime, end: datetime) -> ElectionStatus:
    """
    Status of an election window at `now`.
    Ongoing is inclusive at both ends: from the exact start instant up to and including `end`.
    """
    now, start, end = as_utc(now), as_utc(start), as_utc(end)
    if now < start:
        return ElectionStatus.UPCOMING
    if now <= end:
        return ElectionStatus.ONGOING
    return ElectionStatus.COMPLETED


def _field(election: Any, name: str) -> Any:
    if isinstance(election, dict):
        return election.get(name)
    return getattr(election, name, None)


def election_key(election: Any) -> Optional[str]:
    """Stable id for an election record: Mongo `_id` first, then the human code."""
    for name in ("_id", "id", "election_id"):
        value = _field(election, name)
        if value is not None:
            return str(value)
    return None


def _window(election: Any):
    start = _field(election, "start_date")
    end = _field(election, "end_date")
    if not isinstance(start, datetime) or not isinstance(end, datetime):
        return None
    return start, end


def _with_status(election: Any, status: ElectionStatus) -> Any:
    if isinstance(election, dict):
        updated = dict(election)
        updated["status"] = status.value
        return updated
    if hasattr(election, "model_copy"):
        return election.model_copy(update={"status": status})
    updated = copy.copy(election)
    updated.status = status
    return updated


def _stored_status(election: Any) -> Optional[str]:
    status = _field(election, "status")
    if isinstance(status, ElectionStatus):
        return status.value
    return status


def reconcile_all(elections: Iterable[Any], now: datetime) -> ReconcileResult:
    """
    Recompute every election's status against `now`.

    Only elections whose stored status differs are returned in `updated`, as copies
    carrying the new status; nothing else is touched. Records without a usable time
    window are skipped.
    """
    result = ReconcileResult()
    for election in elections:
        window = _window(election)
        if window is None:
            logger.warning(f"Skipping election {election_key(election)}: missing start/end date")
            continue
        status = derive_status(now, *window)
        if _stored_status(election) != status.value:
            result.updated.append(_with_status(election, status))
    result.changed_count = len(result.updated)
    return result


def schedule_boundary_wake(elections: Iterable[Any], now: datetime, horizon: timedelta) -> List[BoundaryWake]:
    """
    One-shot wake-ups for elections that end within `horizon` of `now`.
    Each wake fires at the election's `end_date`. Start boundaries are left to the periodic tick.
    """
    now = as_utc(now)
    wakes = []
    for election in elections:
        window = _window(election)
        if window is None:
            continue
        key = election_key(election)
        if key is None:
            logger.warning("Skipping end-of-election wake for a record without an id")
            continue
        end = as_utc(window[1])
        if now < end <= now + horizon:
            wakes.append(BoundaryWake(election_id=key, fire_at=end))
    return wakes


class StatusDriver:
    """
    Keeps stored election statuses in sync with the clock.

    A fixed-interval job reconciles every election; after each pass, elections ending
    within the wake horizon get a one-shot job at their end instant so the flip to
    Completed is not held back until the next interval.
    """

    def __init__(
        self,
        repository,
        interval_seconds: int = RECONCILE_INTERVAL_SECONDS,
        horizon_seconds: int = BOUNDARY_WAKE_HORIZON_SECONDS,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self.repository = repository
        self.interval_seconds = interval_seconds
        self.horizon = timedelta(seconds=horizon_seconds)
        self.scheduler = scheduler or BackgroundScheduler(timezone="UTC")

    def start(self) -> None:
        self.scheduler.add_job(
            self._run_tick,
            "interval",
            seconds=self.interval_seconds,
            id=RECONCILE_JOB_ID,
            replace_existing=True,
            next_run_time=utcnow(),
            coalesce=True,
            max_instances=1,
        )
        self.scheduler.start()
        logger.info(f"Election status scheduler started (every {self.interval_seconds}s)")

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Election status scheduler stopped")

    def tick(self, now: Optional[datetime] = None) -> ReconcileResult:
        """Reconcile all stored elections, persist the changed subset, arm boundary wakes."""
        now = now or utcnow()
        elections = self.repository.find_all()
        result = reconcile_all(elections, now)
        if result.changed_count:
            self.repository.save_statuses(result.updated, now)
        logger.info(f"Reconciled {len(elections)} elections, {result.changed_count} changed")

        for wake in schedule_boundary_wake(elections, now, self.horizon):
            self.arm_wake(wake)
        return result

    def arm_wake(self, wake: BoundaryWake) -> None:
        # One job per election; re-arming replaces the previous timer
        self.scheduler.add_job(
            self._fire_wake,
            "date",
            run_date=wake.fire_at,
            args=[wake.fire_at],
            id=f"{WAKE_JOB_PREFIX}{wake.election_id}",
            replace_existing=True,
            misfire_grace_time=None,
        )
        logger.debug(f"Armed boundary wake for election {wake.election_id} at {wake.fire_at.isoformat()}")

    def _fire_wake(self, fire_at: datetime) -> None:
        # The wake must see the election strictly past its end instant
        now = max(utcnow(), fire_at + timedelta(microseconds=1))
        self._run_tick(now)

    def _run_tick(self, now: Optional[datetime] = None) -> None:
        try:
            self.tick(now)
        except PyMongoError as e:
            logger.error(f"Election status reconciliation failed, retrying next tick: {e}")
