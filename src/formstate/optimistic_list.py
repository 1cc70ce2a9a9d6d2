"""
Optimistic mutation of list-page collections.

The mutator owns one list of records. remove() and update() change the list
immediately and hand back a PendingMutation; committing it issues the
request. If the request fails, the element is put back exactly as it was and
MutationFailedError is raised to the page for user notification:

    mutator = OptimisticListMutator(tasks, id_field='task_id')
    pending = mutator.remove(task_id)
    render(pending.optimistic_list)
    try:
        pending.commit(lambda: api.delete_task(task_id))
    except MutationFailedError:
        toast('Failed to delete task')
    render(mutator.items)

Pages that keep the list themselves can use the module-level remove() and
update() functions, which wrap a one-off mutator:

    pending = remove(tasks, task_id)
    tasks = pending.commit(lambda: api.delete_task(task_id))

Only one uncommitted mutation per element is allowed at a time; a delete and
an edit racing on the same row is rejected up front instead of losing one of
the updates.
"""
import copy
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional

from formstate.config import get_engine_config
from formstate.errors import (
    InvalidStateError,
    MutationFailedError,
    MutationInFlightError,
    RecordNotFoundError,
)
from formstate.paths import Record, set_path
from formstate.snapshot_model import ListSnapshot

logger = logging.getLogger(__name__)

REMOVE = 'remove'
UPDATE = 'update'


class PendingMutation:
    """An applied but uncommitted optimistic change to one element."""

    PENDING = 'pending'
    COMMITTED = 'committed'
    ROLLED_BACK = 'rolled_back'

    def __init__(self, mutator: 'OptimisticListMutator', kind: str, item_id: Any,
                 snapshot: ListSnapshot, index: int, original: Record):
        self._mutator = mutator
        self.kind = kind
        self.item_id = item_id
        self.snapshot = snapshot
        self.index = index
        self.original = original
        self.status = self.PENDING
        self.optimistic_list: List[Record] = mutator.items
        self._version = mutator._version

    def __repr__(self) -> str:
        return f"PendingMutation({self.kind} {self.item_id!r}, {self.status})"

    def commit(self, persist: Callable[[], Any]) -> List[Record]:
        """Issue the request; on failure roll back and raise.

        Returns:
            The mutator's list after the commit

        Raises:
            MutationFailedError: persist raised; the list has been rolled back
            InvalidStateError: This mutation was already committed
        """
        self._require_pending()
        try:
            persist()
        except Exception as e:
            self._fail(e)
            raise MutationFailedError(self.item_id, self.kind, e) from e
        self._succeed()
        return self._mutator.items

    async def commit_async(self, persist: Callable[[], Awaitable[Any]]) -> List[Record]:
        """commit() for an awaitable persist collaborator."""
        self._require_pending()
        try:
            await persist()
        except Exception as e:
            self._fail(e)
            raise MutationFailedError(self.item_id, self.kind, e) from e
        self._succeed()
        return self._mutator.items

    def _require_pending(self) -> None:
        if self.status != self.PENDING:
            raise InvalidStateError(f"{self!r} has already been resolved")

    def _succeed(self) -> None:
        self.status = self.COMMITTED
        self._mutator._release(self)
        logger.debug(f"Committed optimistic {self.kind} of {self.item_id!r}")

    def _fail(self, error: Exception) -> None:
        self.status = self.ROLLED_BACK
        self._mutator._rollback(self)
        logger.warning(f"Optimistic {self.kind} of {self.item_id!r} failed, rolled back: {error}")


class OptimisticListMutator:
    """Sole writer of one list page's records.

    Args:
        items: Initial records (copied)
        id_field: Field holding each record's identifier; defaults to the
            engine config's id_field
    """

    def __init__(self, items: Iterable[Record] = (), id_field: Optional[str] = None):
        self.id_field = id_field or get_engine_config().id_field
        self._items: List[Record] = [copy.deepcopy(item) for item in items]
        self._in_flight: Dict[Any, PendingMutation] = {}
        # Bumped on every change to _items; lets a rollback tell whether it
        # is the only change since its snapshot
        self._version = 0

    @property
    def items(self) -> List[Record]:
        """Current list (a new list object; records are shared)."""
        return list(self._items)

    def in_flight(self, item_id: Any) -> bool:
        return item_id in self._in_flight

    def load(self, items: Iterable[Record]) -> None:
        """Replace the list with freshly fetched records.

        Raises:
            InvalidStateError: If any mutation is still uncommitted
        """
        if self._in_flight:
            raise InvalidStateError(f"Cannot reload while {len(self._in_flight)} mutation(s) are in flight")
        self._items = [copy.deepcopy(item) for item in items]
        self._version += 1

    def remove(self, item_id: Any) -> PendingMutation:
        """Remove the element now; commit() confirms or rolls back."""
        index = self._prepare(item_id)
        snapshot = ListSnapshot.capture(self._items, label=f"{REMOVE} {item_id!r}")
        original = self._items[index]

        self._items = self._items[:index] + self._items[index + 1:]
        self._version += 1
        return self._register(REMOVE, item_id, snapshot, index, original)

    def update(self, item_id: Any, patch: Mapping[str, Any]) -> PendingMutation:
        """Patch the element in place now; commit() confirms or rolls back.

        Args:
            patch: Mapping of field path -> new value
        """
        index = self._prepare(item_id)
        snapshot = ListSnapshot.capture(self._items, label=f"{UPDATE} {item_id!r}")
        original = self._items[index]

        updated = original
        for path, value in patch.items():
            updated = set_path(updated, path, value)
        self._items = self._items[:index] + [updated] + self._items[index + 1:]
        self._version += 1
        return self._register(UPDATE, item_id, snapshot, index, original)

    def _prepare(self, item_id: Any) -> int:
        if item_id in self._in_flight:
            raise MutationInFlightError(item_id)
        for index, item in enumerate(self._items):
            if item.get(self.id_field) == item_id:
                return index
        raise RecordNotFoundError(item_id)

    def _register(self, kind: str, item_id: Any, snapshot: ListSnapshot, index: int, original: Record) -> PendingMutation:
        pending = PendingMutation(self, kind, item_id, snapshot, index, original)
        self._in_flight[item_id] = pending
        logger.debug(f"Optimistic {kind} of {item_id!r} applied ({len(self._items)} item(s) remain)")
        return pending

    def _release(self, pending: PendingMutation) -> None:
        self._in_flight.pop(pending.item_id, None)

    def _rollback(self, pending: PendingMutation) -> None:
        self._release(pending)
        if self._version == pending._version:
            # Nothing else touched the list since this mutation
            self._items = pending.snapshot.restore()
        elif pending.kind == REMOVE:
            index = min(pending.index, len(self._items))
            self._items = self._items[:index] + [pending.original] + self._items[index:]
        else:
            self._items = [
                pending.original if item.get(self.id_field) == pending.item_id else item
                for item in self._items
            ]
        self._version += 1


def remove(items: Iterable[Record], item_id: Any, id_field: Optional[str] = None) -> PendingMutation:
    """Optimistically remove one element from a list the caller holds.

    Builds a mutator over a copy of items; the returned mutation's
    optimistic_list and commit() result are the lists to render.
    """
    return OptimisticListMutator(items, id_field=id_field).remove(item_id)


def update(items: Iterable[Record], item_id: Any, patch: Mapping[str, Any],
           id_field: Optional[str] = None) -> PendingMutation:
    """Optimistically patch one element of a list the caller holds."""
    return OptimisticListMutator(items, id_field=id_field).update(item_id, patch)
