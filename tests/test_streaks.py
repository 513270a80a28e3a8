import logging
import random
from collections import namedtuple
from datetime import date, datetime, timedelta

import pytest

from services.streaks import (
    InvalidCompletionDate,
    Streaks,
    calculate_streaks,
    is_success,
    toggled_value,
)

TODAY = date(2026, 10, 19)


def day(offset):
    return (TODAY - timedelta(days=offset)).isoformat()


def history(**days):
    # history(d0=True, d3=False) -> records for today and three days ago
    return [{'date': day(int(k[1:])), 'completed': v} for k, v in days.items()]


def streaks(records, is_good=True):
    return calculate_streaks(records, is_good, today=TODAY)


def test_empty_history():
    assert streaks([]) == Streaks(0, 0)
    assert streaks([], is_good=False) == Streaks(0, 0)


def test_good_habit_current_run():
    assert streaks(history(d0=True, d1=True, d2=False)) == Streaks(2, 2)


def test_bad_habit_counts_explicit_avoidance():
    records = history(d0=False, d1=False, d2=True, d3=False)
    assert streaks(records, is_good=False) == Streaks(2, 2)


def test_bad_habit_missing_days_are_not_success():
    # Only d3 is an explicit avoidance; d0..d2 have no record
    assert streaks(history(d3=False), is_good=False) == Streaks(0, 1)


def test_all_failures():
    assert streaks(history(d0=False, d1=False)) == Streaks(0, 0)
    assert streaks(history(d0=True, d1=True), is_good=False) == Streaks(0, 0)


def test_gap_breaks_run():
    assert streaks(history(d0=True, d5=True)) == Streaks(1, 1)


def test_stale_success_has_no_current_streak():
    assert streaks(history(d2=True)) == Streaks(0, 1)


def test_current_streak_may_end_yesterday():
    assert streaks(history(d1=True, d2=True, d3=True)) == Streaks(3, 3)


def test_longest_streak_in_the_past():
    records = history(d0=True, d10=True, d11=True, d12=True, d13=True, d14=True)
    assert streaks(records) == Streaks(1, 5)


def test_input_order_does_not_matter():
    records = history(d2=True, d0=True, d1=True, d7=True, d6=True)
    shuffled = list(reversed(records))
    assert streaks(records) == streaks(shuffled) == Streaks(3, 3)


def test_time_component_is_truncated():
    records = [
        {'date': datetime(2026, 10, 19, 23, 59), 'completed': True},
        {'date': '2026-10-18T00:30:00', 'completed': True},
        {'date': date(2026, 10, 17), 'completed': True},
    ]
    assert streaks(records) == Streaks(3, 3)


def test_duplicate_days_count_once():
    records = history(d0=True) + history(d0=True, d1=True)
    assert streaks(records) == Streaks(2, 2)


def test_accepts_objects_with_attributes():
    Row = namedtuple('Row', ['date', 'completed'])
    rows = [Row(day(0), True), Row(day(1), True)]
    assert streaks(rows) == Streaks(2, 2)


def test_future_success_is_not_current():
    records = [{'date': (TODAY + timedelta(days=1)).isoformat(), 'completed': True}]
    assert streaks(records) == Streaks(0, 1)


@pytest.mark.parametrize('bad_date', ['2026/10/19', '19-10-2026', '', None, 'yesterday', 20261019])
def test_malformed_date_raises_when_strict(bad_date):
    records = history(d0=True) + [{'date': bad_date, 'completed': True}]
    with pytest.raises(InvalidCompletionDate):
        streaks(records)


def test_malformed_date_is_skipped_when_lenient(caplog):
    records = history(d0=True, d1=True) + [{'date': 'not-a-date', 'completed': True}]
    with caplog.at_level(logging.WARNING):
        result = calculate_streaks(records, True, today=TODAY, strict=False)
    assert result == Streaks(2, 2)
    assert 'malformed date' in caplog.text


def test_calculation_is_repeatable():
    records = history(d0=True, d1=True, d4=True)
    assert streaks(records) == streaks(records) == Streaks(2, 2)


def test_current_never_exceeds_longest():
    rng = random.Random(1234)
    for _ in range(200):
        records = [
            {'date': day(offset), 'completed': rng.choice([True, False])}
            for offset in rng.sample(range(60), rng.randint(0, 40))
        ]
        for is_good in (True, False):
            result = streaks(records, is_good=is_good)
            assert result.current_streak <= result.longest_streak


def test_streaks_to_dict():
    assert Streaks(2, 5).to_dict() == {'currentStreak': 2, 'longestStreak': 5}


@pytest.mark.parametrize('completed, is_good, expected', [
    (True, True, True),
    (False, True, False),
    (None, True, False),
    (False, False, True),
    (True, False, False),
    (None, False, False),
])
def test_is_success(completed, is_good, expected):
    assert is_success(completed, is_good) is expected


@pytest.mark.parametrize('completed, is_good, expected', [
    (None, True, True),
    (True, True, False),
    (False, True, True),
    (None, False, False),   # unmarked bad habit -> avoided
    (False, False, True),   # avoided -> did it
    (True, False, False),   # did it -> avoided
])
def test_toggled_value_flips_effective_success(completed, is_good, expected):
    new_value = toggled_value(completed, is_good)
    assert new_value is expected
    assert is_success(new_value, is_good) is not is_success(completed, is_good)
