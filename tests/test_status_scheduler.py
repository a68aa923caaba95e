from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from unittest.mock import MagicMock

import pytest
from pymongo.errors import PyMongoError

from campusvote.status_scheduler import (
    RECONCILE_JOB_ID,
    STATUS_ORDER,
    BoundaryWake,
    ElectionStatus,
    StatusDriver,
    derive_status,
    reconcile_all,
    schedule_boundary_wake,
)

START = datetime(2024, 3, 15, 8, 0, tzinfo=timezone.utc)
END = datetime(2024, 3, 16, 8, 0, tzinfo=timezone.utc)


def _election(eid: str, start=START, end=END, status: Optional[str] = None) -> dict:
    return {"_id": eid, "start_date": start, "end_date": end, "status": status, "election_name": eid}


# ---------------------------------------------------------------------------
# derive_status
# ---------------------------------------------------------------------------


class TestDeriveStatus:
    @pytest.mark.parametrize(
        "now, expected",
        [
            (datetime(2024, 3, 14, 8, 0, tzinfo=timezone.utc), ElectionStatus.UPCOMING),
            (datetime(2024, 3, 15, 8, 0, tzinfo=timezone.utc), ElectionStatus.ONGOING),
            (datetime(2024, 3, 17, 8, 0, tzinfo=timezone.utc), ElectionStatus.COMPLETED),
        ],
    )
    def test_scenario_window(self, now, expected):
        assert derive_status(now, START, END) == expected

    def test_boundaries_are_ongoing(self):
        assert derive_status(START, START, END) == ElectionStatus.ONGOING
        assert derive_status(END, START, END) == ElectionStatus.ONGOING

    def test_one_millisecond_after_end_is_completed(self):
        assert derive_status(END + timedelta(milliseconds=1), START, END) == ElectionStatus.COMPLETED

    def test_one_millisecond_before_start_is_upcoming(self):
        assert derive_status(START - timedelta(milliseconds=1), START, END) == ElectionStatus.UPCOMING

    def test_idempotent(self):
        now = datetime(2024, 3, 15, 20, 0, tzinfo=timezone.utc)
        assert derive_status(now, START, END) == derive_status(now, START, END)

    def test_monotonic_as_time_advances(self):
        now = START - timedelta(hours=6)
        previous = derive_status(now, START, END)
        while now < END + timedelta(hours=6):
            now += timedelta(minutes=30)
            current = derive_status(now, START, END)
            assert STATUS_ORDER[current] >= STATUS_ORDER[previous]
            previous = current
        assert previous == ElectionStatus.COMPLETED

    def test_naive_datetimes_are_treated_as_utc(self):
        naive_now = datetime(2024, 3, 15, 9, 0)
        assert derive_status(naive_now, START.replace(tzinfo=None), END) == ElectionStatus.ONGOING

    def test_other_timezones_compare_by_instant(self):
        manila = timezone(timedelta(hours=8))
        # 15:59 in Manila is 07:59 UTC, one minute before start
        assert derive_status(datetime(2024, 3, 15, 15, 59, tzinfo=manila), START, END) == ElectionStatus.UPCOMING


# ---------------------------------------------------------------------------
# reconcile_all
# ---------------------------------------------------------------------------


class TestReconcileAll:
    def test_only_changed_elections_are_returned(self):
        now = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
        elections = [
            _election("a", status="Upcoming"),
            _election("b", status="Ongoing"),
            _election("c", start=END, end=END + timedelta(days=1), status="Upcoming"),
        ]
        result = reconcile_all(elections, now)
        assert result.changed_count == 1
        assert [e["_id"] for e in result.updated] == ["a"]
        assert result.updated[0]["status"] == "Ongoing"

    def test_other_fields_untouched_and_input_not_mutated(self):
        original = _election("a", status="Upcoming")
        result = reconcile_all([original], END + timedelta(seconds=1))
        updated = result.updated[0]
        assert updated["status"] == "Completed"
        assert {k: v for k, v in updated.items() if k != "status"} == {
            k: v for k, v in original.items() if k != "status"
        }
        assert original["status"] == "Upcoming"

    def test_second_pass_changes_nothing(self):
        now = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
        stored = {e["_id"]: e for e in [_election("a"), _election("b", status="Completed")]}
        first = reconcile_all(stored.values(), now)
        assert first.changed_count == 2
        for e in first.updated:
            stored[e["_id"]] = e
        second = reconcile_all(stored.values(), now)
        assert second.changed_count == 0
        assert second.updated == []

    def test_order_does_not_matter(self):
        now = END + timedelta(minutes=1)
        elections = [_election(str(i), status="Ongoing") for i in range(5)]
        forward = reconcile_all(elections, now)
        backward = reconcile_all(list(reversed(elections)), now)
        assert forward.changed_count == backward.changed_count == 5
        assert sorted(e["_id"] for e in forward.updated) == sorted(e["_id"] for e in backward.updated)

    def test_records_without_dates_are_skipped(self):
        broken = {"_id": "x", "start_date": None, "end_date": END, "status": "Upcoming"}
        result = reconcile_all([broken, _election("a", status="Upcoming")], START)
        assert [e["_id"] for e in result.updated] == ["a"]

    def test_accepts_objects_with_attributes(self):
        @dataclass
        class Row:
            election_id: str
            start_date: datetime
            end_date: datetime
            status: ElectionStatus

        row = Row("E-0001", START, END, ElectionStatus.UPCOMING)
        result = reconcile_all([row], START)
        assert result.changed_count == 1
        assert result.updated[0].status == ElectionStatus.ONGOING
        assert row.status == ElectionStatus.UPCOMING

    def test_enum_status_matching_derived_value_is_not_a_change(self):
        row = _election("a")
        row["status"] = ElectionStatus.ONGOING
        assert reconcile_all([row], START).changed_count == 0


# ---------------------------------------------------------------------------
# schedule_boundary_wake
# ---------------------------------------------------------------------------


class TestScheduleBoundaryWake:
    def test_wake_at_end_for_elections_ending_within_horizon(self):
        now = END - timedelta(seconds=3)
        wakes = schedule_boundary_wake([_election("a")], now, timedelta(seconds=5))
        assert wakes == [BoundaryWake(election_id="a", fire_at=END)]

    def test_end_exactly_at_horizon_is_included(self):
        now = END - timedelta(seconds=5)
        assert len(schedule_boundary_wake([_election("a")], now, timedelta(seconds=5))) == 1

    @pytest.mark.parametrize(
        "now",
        [
            END - timedelta(seconds=6),  # beyond the horizon
            END,  # ends right now, nothing left to wait for
            END + timedelta(seconds=1),  # already over
        ],
    )
    def test_no_wake_outside_window(self, now):
        assert schedule_boundary_wake([_election("a")], now, timedelta(seconds=5)) == []

    def test_start_boundaries_are_not_scheduled(self):
        now = START - timedelta(seconds=2)
        assert schedule_boundary_wake([_election("a")], now, timedelta(seconds=5)) == []

    def test_uses_election_code_when_no_mongo_id(self):
        election = {"election_id": "E-0042", "start_date": START, "end_date": END}
        wakes = schedule_boundary_wake([election], END - timedelta(seconds=1), timedelta(seconds=5))
        assert wakes[0].election_id == "E-0042"

    def test_records_without_any_id_get_no_wake(self, caplog):
        anonymous = [
            {"start_date": START, "end_date": END},
            {"start_date": START, "end_date": END - timedelta(seconds=1)},
        ]
        with caplog.at_level("WARNING"):
            wakes = schedule_boundary_wake(anonymous + [_election("a")], END - timedelta(seconds=2), timedelta(seconds=5))
        assert wakes == [BoundaryWake(election_id="a", fire_at=END)]
        assert "without an id" in caplog.text


# ---------------------------------------------------------------------------
# StatusDriver
# ---------------------------------------------------------------------------


class TestStatusDriver:
    def _driver(self, elections):
        repo = MagicMock()
        repo.find_all.return_value = elections
        scheduler = MagicMock()
        scheduler.running = True
        return StatusDriver(repo, interval_seconds=60, horizon_seconds=5, scheduler=scheduler), repo, scheduler

    def test_tick_persists_changed_subset_only(self):
        elections = [_election("a", status="Upcoming"), _election("b", status="Ongoing")]
        driver, repo, _ = self._driver(elections)
        now = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)

        result = driver.tick(now)

        assert result.changed_count == 1
        repo.save_statuses.assert_called_once()
        saved, saved_now = repo.save_statuses.call_args.args
        assert [e["_id"] for e in saved] == ["a"]
        assert saved_now == now

    def test_tick_without_changes_does_not_write(self):
        driver, repo, _ = self._driver([_election("a", status="Ongoing")])
        driver.tick(datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc))
        repo.save_statuses.assert_not_called()

    def test_tick_arms_one_wake_per_election_ending_soon(self):
        elections = [_election("a", status="Ongoing"), _election("b", end=END + timedelta(hours=1), status="Ongoing")]
        driver, _, scheduler = self._driver(elections)

        driver.tick(END - timedelta(seconds=2))

        assert scheduler.add_job.call_count == 1
        kwargs = scheduler.add_job.call_args.kwargs
        assert scheduler.add_job.call_args.args[1] == "date"
        assert kwargs["run_date"] == END
        assert kwargs["id"] == "wake:a"
        assert kwargs["replace_existing"] is True

    def test_rearming_uses_same_job_id(self):
        driver, _, scheduler = self._driver([_election("a", status="Ongoing")])
        driver.tick(END - timedelta(seconds=4))
        driver.tick(END - timedelta(seconds=2))
        ids = {c.kwargs["id"] for c in scheduler.add_job.call_args_list}
        assert ids == {"wake:a"}

    def test_start_registers_interval_job(self):
        driver, _, scheduler = self._driver([])
        driver.start()
        args, kwargs = scheduler.add_job.call_args
        assert args[1] == "interval"
        assert kwargs["seconds"] == 60
        assert kwargs["id"] == RECONCILE_JOB_ID
        scheduler.start.assert_called_once()

    def test_shutdown_stops_running_scheduler(self):
        driver, _, scheduler = self._driver([])
        driver.shutdown()
        scheduler.shutdown.assert_called_once_with(wait=False)

    def test_wake_reconciles_past_the_end_instant(self, monkeypatch):
        driver, repo, _ = self._driver([_election("a", status="Ongoing")])
        # clock reads exactly the end instant when the wake fires
        monkeypatch.setattr("campusvote.status_scheduler.utcnow", lambda: END)

        driver._fire_wake(END)

        saved, saved_now = repo.save_statuses.call_args.args
        assert saved[0]["status"] == "Completed"
        assert saved_now > END

    def test_storage_errors_are_logged_not_raised(self, caplog):
        driver, repo, _ = self._driver([])
        repo.find_all.side_effect = PyMongoError("connection refused")
        driver._run_tick(START)
        assert "retrying next tick" in caplog.text
