"""Tests for the completion ledger and streak calculator."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

from chains import db, ledger

TODAY = date(2026, 3, 10)
NOW = datetime(2026, 3, 10, 18, 30)


def _days_ago(n: int) -> date:
    return TODAY - timedelta(days=n)


@pytest.fixture()
def conn(tmp_path: Path):
    connection = db.get_connection(db_path=tmp_path / "test.db")
    yield connection
    connection.close()


class TestStartOfDay:
    def test_datetime_truncated(self) -> None:
        assert ledger.start_of_day(datetime(2026, 3, 10, 23, 59, 59)) == TODAY

    def test_date_unchanged(self) -> None:
        assert ledger.start_of_day(TODAY) == TODAY

    def test_aware_datetime_uses_local_calendar(self) -> None:
        aware = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
        assert ledger.start_of_day(aware) == aware.astimezone().date()


class TestIsNextDay:
    def test_adjacent(self) -> None:
        assert ledger.is_next_day(date(2026, 3, 7), date(2026, 3, 8))

    def test_same_day(self) -> None:
        assert not ledger.is_next_day(TODAY, TODAY)

    def test_gap(self) -> None:
        assert not ledger.is_next_day(date(2026, 3, 7), date(2026, 3, 9))

    def test_order_matters(self) -> None:
        assert not ledger.is_next_day(date(2026, 3, 8), date(2026, 3, 7))

    def test_ignores_time_of_day(self) -> None:
        # 23 hours apart across a spring-forward night is still the next day
        assert ledger.is_next_day(datetime(2026, 3, 7, 23, 0), datetime(2026, 3, 8, 22, 0))
        assert ledger.is_next_day(datetime(2026, 3, 7, 0, 30), datetime(2026, 3, 8, 23, 30))

    def test_month_boundary(self) -> None:
        assert ledger.is_next_day(date(2026, 2, 28), date(2026, 3, 1))


class TestStreakFromDays:
    def test_three_day_streak_with_gap(self) -> None:
        days = [_days_ago(0), _days_ago(1), _days_ago(2), _days_ago(4), _days_ago(5)]
        assert ledger.streak_from_days(days, TODAY) == 3

    def test_zero_without_today(self) -> None:
        assert ledger.streak_from_days([_days_ago(1), _days_ago(2)], TODAY) == 0

    def test_empty(self) -> None:
        assert ledger.streak_from_days([], TODAY) == 0

    def test_future_days_ignored(self) -> None:
        assert ledger.streak_from_days([_days_ago(-1), _days_ago(0)], TODAY) == 1


class TestLongestFromDays:
    def test_longest_run(self) -> None:
        days = [_days_ago(0), _days_ago(5), _days_ago(6), _days_ago(7), _days_ago(9)]
        assert ledger.longest_from_days(days) == 3

    def test_empty(self) -> None:
        assert ledger.longest_from_days([]) == 0


class TestHistoryFromDays:
    def test_no_completions_is_just_today(self) -> None:
        markers = ledger.history_from_days([], TODAY)
        assert len(markers) == 1
        assert markers[0].day == TODAY
        assert not markers[0].done

    def test_starts_at_earliest_completion(self) -> None:
        markers = ledger.history_from_days([_days_ago(3), _days_ago(1)], TODAY)
        assert [m.day for m in markers] == [_days_ago(n) for n in (3, 2, 1, 0)]
        assert [m.done for m in markers] == [True, False, True, False]

    def test_window(self) -> None:
        markers = ledger.history_from_days([_days_ago(30), _days_ago(0)], TODAY, window=14)
        assert len(markers) == 14
        assert markers[0].day == _days_ago(13)
        assert markers[-1].day == TODAY
        assert markers[-1].done


class TestRecordCompletion:
    def test_idempotent(self, conn) -> None:
        first = ledger.record_completion(conn, 1, NOW)
        second = ledger.record_completion(conn, 1, NOW + timedelta(hours=2))
        assert first.id == second.id
        assert len(db.list_completions(conn, activity_id=1)) == 1

    def test_normalises_day(self, conn) -> None:
        record = ledger.record_completion(conn, 1, NOW)
        assert record.day == TODAY

    def test_separate_activities(self, conn) -> None:
        ledger.record_completion(conn, 1, TODAY)
        ledger.record_completion(conn, 2, TODAY)
        assert len(db.list_completions(conn)) == 2


class TestQueries:
    def test_is_completed_today(self, conn) -> None:
        assert not ledger.is_completed_today(conn, 1, NOW)
        ledger.record_completion(conn, 1, TODAY)
        assert ledger.is_completed_today(conn, 1, NOW)
        assert not ledger.is_completed_today(conn, 1, NOW + timedelta(days=1))

    def test_current_streak(self, conn) -> None:
        for n in (0, 1, 2, 4):
            ledger.record_completion(conn, 1, _days_ago(n))
        assert ledger.current_streak(conn, 1, NOW) == 3

    def test_streak_zero_when_only_yesterday(self, conn) -> None:
        ledger.record_completion(conn, 1, _days_ago(1))
        assert ledger.current_streak(conn, 1, NOW) == 0

    def test_longest_streak(self, conn) -> None:
        for n in (0, 3, 4):
            ledger.record_completion(conn, 1, _days_ago(n))
        assert ledger.longest_streak(conn, 1) == 2

    def test_history(self, conn) -> None:
        ledger.record_completion(conn, 1, _days_ago(2))
        markers = ledger.history(conn, 1, NOW)
        assert [m.done for m in markers] == [True, False, False]
