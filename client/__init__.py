"""Client-side habit state with optimistic server synchronisation."""

from .cache import HabitsCache
from .coordinator import Mutation, MutationState, SyncCoordinator
from .gateway import HabitGateway, HttpHabitGateway, PersistenceError
from .state import HabitStore, LocalHabit, LocalId, PersistedId

__all__ = [
    "HabitsCache",
    "HabitGateway",
    "HabitStore",
    "HttpHabitGateway",
    "LocalHabit",
    "LocalId",
    "Mutation",
    "MutationState",
    "PersistedId",
    "PersistenceError",
    "SyncCoordinator",
]
