"""Optimistic synchronisation between the local habit store and the server.

Every user action is applied to the :class:`~client.state.HabitStore`
synchronously, before anything is sent. Persistence then runs as an asyncio
task and, when the server answers, the coordinator either reconciles the
local entry with the server's version or rolls the change back and tells
the user through ``notify``.

Ordering rules:

* Requests for one habit go out one at a time, in the order the user issued
  them (a FIFO ``asyncio.Lock`` per habit). A habit's temporary and server
  identities share the same lock, so a toggle issued while the create is
  still in flight is sent after it, with the server id.
* A request that times out is reported as failed at once, but the habit's
  lock is held until the request really finishes. If the server applied it
  after all, the late answer is reconciled like any other.
* A server answer is only applied if the habit is still in the store and no
  later mutation for the same slot has been issued since. Otherwise the
  answer is discarded, so a late toggle confirmation can never bring back a
  habit that was deleted in the meantime.
* Failed deletes are rolled back: the habit reappears where it was.

Only unsettled mutations are kept; locks are dropped once a habit has
nothing in flight.

Methods that mutate must be called from inside the running event loop.
"""

import asyncio
import enum
from dataclasses import dataclass, field, replace

from logging_config import get_logger
from utils import format_date_key, local_today, parse_date_key
from .gateway import DEFAULT_TIMEOUT, PersistenceError
from .state import LocalHabit, LocalId, PersistedId, new_local_id

logger = get_logger(__name__)

SEND_ERRORS = (PersistenceError, asyncio.TimeoutError)
UPDATE_SLOT = '#update'


class MutationState(enum.Enum):
    PENDING_LOCAL = 'pending-local'
    CONFIRMED = 'confirmed'
    FAILED = 'failed'
    DISCARDED = 'discarded'  # server answered but local state had moved on


@dataclass(eq=False)
class Mutation:
    kind: str
    ref: object
    slot: str = None
    value: object = None
    previous: object = None
    position: int = None
    snapshot: LocalHabit = None
    state: MutationState = MutationState.PENDING_LOCAL
    error: str = None
    task: asyncio.Task = field(default=None, repr=False)
    request: asyncio.Future = field(default=None, repr=False)  # set when the send timed out

    @property
    def done(self):
        return self.state is not MutationState.PENDING_LOCAL


def _date_key(day):
    return format_date_key(parse_date_key(day) if isinstance(day, str) else day)


class SyncCoordinator:
    def __init__(self, store, gateway, notify=None, timeout=DEFAULT_TIMEOUT, cache=None):
        self.store = store
        self.gateway = gateway
        self.notify = notify or (lambda message: None)
        self.timeout = timeout
        self.cache = cache
        self.is_from_cache = False
        self.mutations = []  # unsettled, in issue order
        self._locks = {}
        self._aliases = {}
        self._latest = {}
        self._tasks = set()

    # -- identity bookkeeping -------------------------------------------

    def resolve(self, ref):
        """Map a temporary identity to its server identity once known."""
        while isinstance(ref, LocalId) and ref in self._aliases:
            ref = self._aliases[ref]
        return ref

    def _lock(self, ref):
        ref = self.resolve(ref)
        if ref not in self._locks:
            self._locks[ref] = asyncio.Lock()
        return self._locks[ref]

    def _alias(self, local, persisted):
        self._aliases[local] = persisted
        self._locks[persisted] = self._locks[local]
        for (ref, slot) in [k for k in self._latest if k[0] == local]:
            self._latest[(persisted, slot)] = self._latest.pop((ref, slot))

    def _is_latest(self, mutation):
        return self._latest.get((self.resolve(mutation.ref), mutation.slot)) is mutation

    def _next_in_slot(self, mutation):
        key = (self.resolve(mutation.ref), mutation.slot)
        later = self.mutations[self.mutations.index(mutation) + 1:]
        for m in later:
            if m.kind == mutation.kind and (self.resolve(m.ref), m.slot) == key:
                return m
        return None

    def _forget(self, mutation):
        """Drop a settled mutation and whatever only it was keeping alive."""
        if mutation in self.mutations:
            self.mutations.remove(mutation)
        ref = self.resolve(mutation.ref)
        if self._latest.get((ref, mutation.slot)) is mutation:
            del self._latest[(ref, mutation.slot)]

        if any(self.resolve(m.ref) == ref for m in self.mutations):
            return
        for key in [k for k in self._locks if self.resolve(k) == ref]:
            del self._locks[key]
        if mutation.kind == 'delete' and mutation.state is MutationState.CONFIRMED:
            for local in [k for k, v in self._aliases.items() if v == ref]:
                del self._aliases[local]

    # -- task plumbing ---------------------------------------------------

    def _record(self, kind, ref, **fields):
        mutation = Mutation(kind=kind, ref=ref, **fields)
        self.mutations.append(mutation)
        if mutation.slot is not None:
            self._latest[(ref, mutation.slot)] = mutation
        return mutation

    def _spawn(self, mutation, persist):
        task = asyncio.get_running_loop().create_task(self._run(mutation, persist))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        mutation.task = task
        return mutation

    async def _run(self, mutation, persist):
        try:
            async with self._lock(mutation.ref):
                await persist(mutation)
        finally:
            self._forget(mutation)

    async def _send(self, call, mutation=None):
        request = asyncio.ensure_future(call)
        try:
            return await asyncio.wait_for(asyncio.shield(request), self.timeout)
        except asyncio.TimeoutError:
            # The worker thread keeps going; remember it so the caller can wait it out
            if mutation is not None:
                mutation.request = request
            raise

    async def _late_result(self, mutation):
        """Wait for a timed-out request to finish; return its answer or None."""
        request, mutation.request = mutation.request, None
        if request is None:
            return None
        try:
            data = await request
        except PersistenceError as e:
            logger.debug("Timed-out request failed", extra={'kind': mutation.kind, 'error': str(e)})
            return None
        logger.info("Timed-out request reached the server", extra={'kind': mutation.kind, 'ref': str(mutation.ref)})
        return data

    def _fail(self, mutation, message, error):
        mutation.state = MutationState.FAILED
        mutation.error = str(error) or type(error).__name__
        logger.warning("Mutation failed", extra={'kind': mutation.kind, 'ref': str(mutation.ref), 'error': mutation.error})
        self.notify(message)

    def _discard(self, mutation):
        mutation.state = MutationState.DISCARDED
        logger.debug("Discarded stale response", extra={'kind': mutation.kind, 'ref': str(mutation.ref)})

    async def drain(self):
        """Wait until every in-flight request has been reconciled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # -- operations ------------------------------------------------------

    async def load(self, user_id):
        """Fill the store, from the offline cache first and then the server.

        Local changes the server has not confirmed yet are kept on top of
        the server's list. Returns False when the server could not be
        reached; the cached copy, if any, stays visible in that case.
        """
        if self.cache is not None and len(self.store) == 0:
            cached = self.cache.load(user_id)
            if cached:
                self.store.set_all([LocalHabit.from_server(h) for h in cached])
                self.is_from_cache = True

        try:
            data = await self._send(self.gateway.get_habits_with_completions())
        except SEND_ERRORS as e:
            logger.warning("Could not load habits", extra={'error': str(e)})
            self.notify("Could not load your habits from the server.")
            return False

        self.store.set_all(self._with_pending([LocalHabit.from_server(h) for h in data]))
        self.is_from_cache = False
        if self.cache is not None:
            self.cache.save(user_id, data)
        return True

    def _with_pending(self, habits):
        """Lay unconfirmed local mutations over a fresh server list."""
        merged = {habit.ref: habit for habit in habits}
        for m in self.mutations:
            if m.done:
                continue
            ref = self.resolve(m.ref)
            if m.kind == 'delete':
                merged.pop(ref, None)
            elif ref not in merged:
                continue
            elif m.kind == 'toggle':
                merged[ref].completions[m.slot] = m.value
            elif m.kind == 'update':
                merged[ref] = replace(merged[ref], **m.value)
        unsaved = [h for h in self.store if isinstance(h.ref, LocalId)]
        return list(merged.values()) + unsaved

    def create_habit(self, title, description=None, is_good=True, start_date=None):
        habit = LocalHabit(
            ref=new_local_id(),
            title=title,
            description=description,
            is_good=is_good,
            start_date=start_date or local_today(),
        )
        self.store.add(habit)
        mutation = self._record('create', habit.ref, value=habit)
        return self._spawn(mutation, self._persist_create)

    async def _persist_create(self, mutation):
        local = mutation.ref
        habit = mutation.value
        try:
            data = await self._send(self.gateway.create_habit(
                habit.title, habit.description, habit.is_good, habit.start_date), mutation)
        except SEND_ERRORS as e:
            self.store.remove(local)
            self._fail(mutation, f"Could not create habit '{habit.title}'.", e)
            data = await self._late_result(mutation)
            if data is not None:
                # The user was told it failed, so remove the server copy too
                await self._remove_orphan(data['id'])
            return

        persisted = PersistedId(data['id'])
        self._alias(local, persisted)
        mutation.state = MutationState.CONFIRMED

        current = self.store.get(local)
        if current is None:
            # Deleted while the create was in flight; the queued delete
            # will remove the server copy.
            return
        confirmed = LocalHabit.from_server(data)
        confirmed.completions.update(current.completions)
        self.store.replace(local, confirmed)

    async def _remove_orphan(self, habit_id):
        try:
            await self.gateway.delete_habit(habit_id)
        except PersistenceError as e:
            logger.warning("Could not remove habit created after a timeout", extra={'habit_id': habit_id, 'error': str(e)})

    def toggle_completion(self, ref, day):
        ref = self.resolve(ref)
        habit = self.store.get(ref)
        if habit is None:
            raise KeyError(f"Unknown habit {ref}")
        date_key = _date_key(day)
        if parse_date_key(date_key) < habit.start_date:
            raise ValueError(f"{date_key} is before the habit's start date")

        previous = habit.completion(date_key)
        value = habit.toggled(date_key)
        self.store.set_completion(ref, date_key, value)
        mutation = self._record('toggle', ref, slot=date_key, value=value, previous=previous)
        return self._spawn(mutation, self._persist_toggle)

    async def _persist_toggle(self, mutation):
        ref = self.resolve(mutation.ref)
        if not isinstance(ref, PersistedId):
            # The create this toggle waited for failed
            self._discard(mutation)
            return

        try:
            data = await self._send(
                self.gateway.set_completion(ref.server_id, mutation.slot, mutation.value), mutation)
        except SEND_ERRORS as e:
            self._settle_toggle(mutation, ref, mutation.previous)
            self._fail(mutation, "Could not save your progress.", e)
            data = await self._late_result(mutation)
            if data is not None:
                self._settle_toggle(mutation, ref, data.get('completed', mutation.value))
                mutation.state = MutationState.CONFIRMED
            return

        if ref not in self.store or not self._is_latest(mutation):
            self._discard(mutation)
            return
        self.store.set_completion(ref, data.get('date', mutation.slot), data.get('completed', mutation.value))
        mutation.state = MutationState.CONFIRMED

    def _settle_toggle(self, mutation, ref, value):
        # A later toggle for the same day owns the visible value; it inherits
        # ``value`` as the one to fall back to.
        successor = self._next_in_slot(mutation)
        if successor is not None:
            successor.previous = value
        else:
            self.store.set_completion(ref, mutation.slot, value)

    def update_habit(self, ref, title=None, description=None):
        ref = self.resolve(ref)
        habit = self.store.get(ref)
        if habit is None:
            raise KeyError(f"Unknown habit {ref}")

        previous = {'title': habit.title, 'description': habit.description}
        changes = {k: v for k, v in (('title', title), ('description', description)) if v is not None}
        self.store.update(ref, **changes)
        mutation = self._record('update', ref, slot=UPDATE_SLOT, value=changes, previous=previous)
        return self._spawn(mutation, self._persist_update)

    async def _persist_update(self, mutation):
        ref = self.resolve(mutation.ref)
        if not isinstance(ref, PersistedId):
            self._discard(mutation)
            return

        try:
            data = await self._send(self.gateway.update_habit(ref.server_id, **mutation.value), mutation)
        except SEND_ERRORS as e:
            self._settle_update(mutation, ref, mutation.previous)
            self._fail(mutation, "Could not save your changes.", e)
            data = await self._late_result(mutation)
            if data is not None:
                self._settle_update(mutation, ref, {'title': data['title'], 'description': data.get('description')})
                mutation.state = MutationState.CONFIRMED
            return

        if ref not in self.store or not self._is_latest(mutation):
            self._discard(mutation)
            return
        self.store.update(ref, title=data['title'], description=data.get('description'))
        mutation.state = MutationState.CONFIRMED

    def _settle_update(self, mutation, ref, fields):
        successor = self._next_in_slot(mutation)
        if successor is not None:
            successor.previous = fields
        else:
            self.store.update(ref, **fields)

    def delete_habit(self, ref):
        ref = self.resolve(ref)
        position = self.store.index_of(ref)
        habit = self.store.remove(ref)
        if habit is None:
            raise KeyError(f"Unknown habit {ref}")
        mutation = self._record('delete', ref, snapshot=habit, position=position)
        return self._spawn(mutation, self._persist_delete)

    async def _persist_delete(self, mutation):
        ref = self.resolve(mutation.ref)
        if not isinstance(ref, PersistedId):
            # Never reached the server
            mutation.state = MutationState.CONFIRMED
            return

        try:
            await self._send(self.gateway.delete_habit(ref.server_id), mutation)
        except SEND_ERRORS as e:
            if getattr(e, 'status_code', None) == 404:
                # Already gone on the server
                mutation.state = MutationState.CONFIRMED
                return
            if ref not in self.store:
                self.store.add(replace(mutation.snapshot, ref=ref), position=mutation.position)
            self._fail(mutation, f"Could not delete habit '{mutation.snapshot.title}'.", e)
            if await self._late_result(mutation) is not None:
                self.store.remove(ref)
                mutation.state = MutationState.CONFIRMED
            return
        mutation.state = MutationState.CONFIRMED
