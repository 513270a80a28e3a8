"""Streak computation over sparse per-day completion records.

A habit's history is a set of ``{date, completed}`` records, at most one per
calendar day. Which records count as a success depends on the habit's
polarity:

* good habit: ``completed is True``
* bad habit: ``completed is False`` (the behavior was explicitly avoided)

A missing day is never a success. Everything here is pure; the reference
day can be pinned with ``today`` to make results reproducible.
"""

from collections import namedtuple
from collections.abc import Mapping
from datetime import date, datetime, timedelta

from logging_config import get_logger
from utils import local_today, parse_date_key

logger = get_logger(__name__)


class InvalidCompletionDate(ValueError):
    """A completion record carries a missing or malformed date."""


class Streaks(namedtuple('Streaks', ['current_streak', 'longest_streak'])):
    __slots__ = ()

    def to_dict(self):
        return {'currentStreak': self.current_streak, 'longestStreak': self.longest_streak}


EMPTY_STREAKS = Streaks(0, 0)


def is_success(completed, is_good):
    if is_good:
        return completed is True
    return completed is False


def _field(record, name):
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _to_day(value):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return parse_date_key(value)
        except ValueError:
            pass
        try:
            # Timestamps are truncated to their calendar day
            return datetime.fromisoformat(value).date()
        except ValueError:
            pass
    raise InvalidCompletionDate(f"Completion date must be YYYY-MM-DD, got {value!r}")


def success_days(completions, is_good, strict=True):
    """Return the distinct success days of a history, most recent first."""
    days = set()
    for record in completions:
        raw = _field(record, 'date')
        try:
            day = _to_day(raw)
        except InvalidCompletionDate:
            if strict:
                raise
            logger.warning("Skipping completion with malformed date", extra={'date': repr(raw)})
            continue
        if is_success(_field(record, 'completed'), is_good):
            days.add(day)
    return sorted(days, reverse=True)


def _is_previous_day(later, earlier):
    return later - earlier == timedelta(days=1)


def calculate_streaks(completions, is_good, today=None, strict=True):
    """Compute the current and longest streak for one habit.

    The current streak only counts when the most recent success is today or
    yesterday; it then extends backwards one calendar day at a time. The
    longest streak is the longest run of consecutive success days anywhere
    in the history and is never shorter than the current one.

    With ``strict`` a malformed date raises :class:`InvalidCompletionDate`;
    otherwise the record is logged and treated as a non-success day.
    """
    days = success_days(completions, is_good, strict=strict)
    if not days:
        return EMPTY_STREAKS

    today = today or local_today()
    yesterday = today - timedelta(days=1)

    current = 0
    if days[0] == today or days[0] == yesterday:
        current = 1
        for later, earlier in zip(days, days[1:]):
            if not _is_previous_day(later, earlier):
                break
            current += 1

    longest = current
    run = 1
    for later, earlier in zip(days, days[1:]):
        if _is_previous_day(later, earlier):
            run += 1
        else:
            longest = max(longest, run)
            run = 1
    longest = max(longest, run)

    return Streaks(current, longest)


def with_streaks(habit, completions, today=None, strict=True):
    """Serialize a habit together with its computed streaks."""
    data = habit.to_dict()
    data.update(calculate_streaks(completions, habit.is_good, today=today, strict=strict).to_dict())
    return data


def toggled_value(completed, is_good):
    """Raw value to store so that the day's success flips.

    The effective success is negated, not the stored flag, so an unmarked
    bad habit becomes "avoided" (False) on its first toggle.
    """
    succeeded = not is_success(completed, is_good)
    return succeeded if is_good else not succeeded
