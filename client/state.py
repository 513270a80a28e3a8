"""Local mirror of a user's habits, owned by the client composition root.

Every habit carries an identity that is either a :class:`LocalId` (created
locally and not yet confirmed by the server) or a :class:`PersistedId`
(known to the server). The two never compare equal, so a temporary habit
can never be mistaken for a stored one.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import date

from services.streaks import is_success, toggled_value
from utils import format_date_key, parse_date_key


@dataclass(frozen=True)
class LocalId:
    temp_id: str

    def __str__(self):
        return f"local:{self.temp_id}"


@dataclass(frozen=True)
class PersistedId:
    server_id: str

    def __str__(self):
        return self.server_id


def new_local_id():
    return LocalId(uuid.uuid4().hex)


@dataclass
class LocalHabit:
    ref: object  # LocalId | PersistedId
    title: str
    is_good: bool
    start_date: date
    description: str = None
    completions: dict = field(default_factory=dict)  # YYYY-MM-DD -> bool

    @property
    def pending(self):
        return isinstance(self.ref, LocalId)

    def completion(self, day):
        return self.completions.get(_date_key(day))

    def is_done(self, day):
        return is_success(self.completion(day), self.is_good)

    def toggled(self, day):
        return toggled_value(self.completion(day), self.is_good)

    def to_dict(self):
        return {
            'id': str(self.ref),
            'title': self.title,
            'description': self.description or '',
            'isGood': self.is_good,
            'startDate': self.start_date.isoformat(),
            'completions': dict(self.completions),
        }

    @classmethod
    def from_server(cls, data):
        return cls(
            ref=PersistedId(data['id']),
            title=data['title'],
            description=data.get('description'),
            is_good=bool(data['isGood']),
            start_date=parse_date_key(data['startDate'][:10]),
            completions=dict(data.get('completions') or {}),
        )


def _date_key(day):
    return day if isinstance(day, str) else format_date_key(day)


class HabitStore:
    """Ordered container of :class:`LocalHabit` keyed by identity.

    Only the sync coordinator should mutate a store; views read from it and
    may ``subscribe`` to be told when it changes.
    """

    def __init__(self, habits=None):
        self._habits = {}
        self._listeners = []
        for habit in habits or []:
            self._habits[habit.ref] = habit

    def __len__(self):
        return len(self._habits)

    def __contains__(self, ref):
        return ref in self._habits

    def __iter__(self):
        return iter(list(self._habits.values()))

    def subscribe(self, listener):
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _changed(self):
        for listener in list(self._listeners):
            listener(self)

    def get(self, ref):
        return self._habits.get(ref)

    def index_of(self, ref):
        for i, key in enumerate(self._habits):
            if key == ref:
                return i
        return None

    def add(self, habit, position=None):
        if position is None or position >= len(self._habits):
            self._habits[habit.ref] = habit
        else:
            items = list(self._habits.items())
            items.insert(position, (habit.ref, habit))
            self._habits = dict(items)
        self._changed()
        return habit

    def replace(self, old_ref, habit):
        """Swap the entry at ``old_ref`` for ``habit``, keeping its position."""
        self._habits = {
            (habit.ref if key == old_ref else key): (habit if key == old_ref else value)
            for key, value in self._habits.items()
        }
        self._changed()
        return habit

    def update(self, ref, **changes):
        habit = self._habits.get(ref)
        if habit is None:
            return None
        self._habits[ref] = replace(habit, **changes)
        self._changed()
        return self._habits[ref]

    def remove(self, ref):
        habit = self._habits.pop(ref, None)
        if habit is not None:
            self._changed()
        return habit

    def set_completion(self, ref, day, value):
        """Store a raw completion value; ``None`` clears the day."""
        habit = self._habits.get(ref)
        if habit is None:
            return None
        key = _date_key(day)
        if value is None:
            habit.completions.pop(key, None)
        else:
            habit.completions[key] = value
        self._changed()
        return habit

    def set_all(self, habits):
        self._habits = {habit.ref: habit for habit in habits}
        self._changed()

    def habits_for_day(self, day):
        day = parse_date_key(day) if isinstance(day, str) else day
        return [h for h in self._habits.values() if h.start_date <= day]

    def earliest_start_date(self):
        dates = [h.start_date for h in self._habits.values()]
        return min(dates) if dates else None

    def to_list(self):
        return [h.to_dict() for h in self._habits.values()]
