"""Tests for the injectable clocks."""

from datetime import date, datetime, timezone

from gst_kernel.domain.clock import DeterministicClock, SystemClock


class TestDeterministicClock:

    def test_default_time_is_stable(self):
        clock = DeterministicClock()

        assert clock.now() == datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        assert clock.now() == clock.now()

    def test_set_date_and_advance_days(self):
        clock = DeterministicClock()
        clock.set_date(date(2024, 3, 31))
        clock.advance_days(1)

        assert clock.today() == date(2024, 4, 1)

    def test_tick_advances_one_second(self):
        clock = DeterministicClock()
        before = clock.now()

        after = clock.tick()

        assert (after - before).total_seconds() == 1


def test_system_clock_is_timezone_aware():
    assert SystemClock().now().tzinfo is not None


def test_today_is_the_indian_calendar_date():
    # 20:00 UTC on 31 March is 01:30 IST on 1 April, a new financial year.
    clock = DeterministicClock(datetime(2024, 3, 31, 20, 0, 0, tzinfo=timezone.utc))

    assert clock.today() == date(2024, 4, 1)


def test_set_date_survives_the_utc_offset():
    clock = DeterministicClock()
    clock.set_date(date(2024, 6, 20))

    assert clock.today() == date(2024, 6, 20)
    assert clock.now().tzinfo is not None
