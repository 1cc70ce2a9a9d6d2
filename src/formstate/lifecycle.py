"""
FormLifecycle: one form session around one nested record.

States:

    IDLE -> READY                             create
    IDLE -> LOADING -> READY                  edit (degraded if the fetch fails)
    READY -> SUBMITTING -> SUCCESS
    READY -> SUBMITTING -> ERROR -> READY

The same lifecycle serves create and edit pages. A session owns its record
and its ErrorMap; both are replaced together on every edit, never mutated:

    edit(path, value)
        set_path -> TaxonomyResolver.reconcile -> DerivedFieldSynchronizer.apply
        -> ErrorMap.clear_field(path)

Submission calls a persistence collaborator with a deep copy of the record.
Field-validation failures land in the ErrorMap, anything else becomes a single
submission_error, and the session returns to READY so the user can fix and
resubmit. Only one submit may be in flight at a time.

Sync methods call collaborators directly; start_async()/submit_async() await
them and are the session's only suspension points on an asyncio loop.
"""
from collections.abc import Mapping
import copy
from enum import Enum
import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Set, Tuple

from formstate.config import get_engine_config
from formstate.derived_fields import DerivedFieldSynchronizer
from formstate.error_map import ErrorMap
from formstate.errors import InvalidStateError, SubmissionInFlightError, extract_server_payload
from formstate.paths import Path, Record, changed_paths, join_path, set_path
from formstate.snapshot_model import SessionSnapshot
from formstate.taxonomy import TaxonomyResolver
from formstate.validation import Validator, run_validators

logger = logging.getLogger(__name__)


class FormState(Enum):
    IDLE = 'idle'
    LOADING = 'loading'
    READY = 'ready'
    SUBMITTING = 'submitting'
    SUCCESS = 'success'
    ERROR = 'error'


class FormMode(Enum):
    CREATE = 'create'
    EDIT = 'edit'


def _as_record(value: Any) -> Record:
    if not isinstance(value, Mapping):
        raise TypeError(f"Expected a mapping record, got {type(value).__name__}")
    return value


class FormLifecycle:
    """
    State machine wrapping one record for a create or edit page.

    Attributes exposed to pages:
    - state: current FormState
    - record: current record (treat as read-only; edit through edit())
    - errors: current ErrorMap
    - submission_error: record-scoped message from the last failed submit
    - load_degraded / load_error: set when an edit fetch failed and the
      session fell back to a cached or default record

    Not thread-safe; a session is owned by exactly one page.
    """

    def __init__(
        self,
        resolver: Optional[TaxonomyResolver] = None,
        synchronizer: Optional[DerivedFieldSynchronizer] = None,
        validators: Sequence[Validator] = (),
        name: str = '',
    ):
        """
        Args:
            resolver: Cascading selector rules (shared, read-only)
            synchronizer: Derived field rules (shared, read-only)
            validators: Client-side checks run before each submit
            name: Label used in log messages
        """
        self.resolver = resolver
        self.synchronizer = synchronizer
        self.validators: Tuple[Validator, ...] = tuple(validators)
        self.name = name

        self._state = FormState.IDLE
        self.mode: Optional[FormMode] = None
        self._record: Record = {}
        self._baseline: Record = {}
        self._errors = ErrorMap()
        self.submission_error: Optional[str] = None
        self.load_degraded = False
        self.load_error: Optional[str] = None

        # Edits received while a submit is in flight, replayed on return to READY
        self._deferred_edits: List[Tuple[str, Any]] = []

        self._on_transition_callbacks: List[Callable[[FormState, FormState], None]] = []
        self._on_record_changed_callbacks: List[Callable[[Set[str]], None]] = []

    def __repr__(self) -> str:
        return f"FormLifecycle(name={self.name!r}, state={self._state.value})"

    # === Read-only views ===

    @property
    def state(self) -> FormState:
        return self._state

    @property
    def record(self) -> Record:
        return self._record

    @property
    def errors(self) -> ErrorMap:
        return self._errors

    @property
    def is_submitting(self) -> bool:
        return self._state is FormState.SUBMITTING

    @property
    def dirty_fields(self) -> Set[str]:
        """Leaf paths whose value differs from the record the session loaded."""
        return set(changed_paths(self._baseline, self._record))

    @property
    def is_dirty(self) -> bool:
        return bool(self.dirty_fields)

    # === Subscriptions ===

    def on_transition(self, callback: Callable[[FormState, FormState], None]) -> None:
        """Subscribe to state transitions; callback receives (old_state, new_state)."""
        if callback not in self._on_transition_callbacks:
            self._on_transition_callbacks.append(callback)

    def off_transition(self, callback: Callable[[FormState, FormState], None]) -> None:
        if callback in self._on_transition_callbacks:
            self._on_transition_callbacks.remove(callback)

    def on_record_changed(self, callback: Callable[[Set[str]], None]) -> None:
        """Subscribe to record changes; callback receives the set of changed leaf paths."""
        if callback not in self._on_record_changed_callbacks:
            self._on_record_changed_callbacks.append(callback)

    def off_record_changed(self, callback: Callable[[Set[str]], None]) -> None:
        if callback in self._on_record_changed_callbacks:
            self._on_record_changed_callbacks.remove(callback)

    def _transition(self, new_state: FormState) -> None:
        old_state = self._state
        self._state = new_state
        logger.debug(f"Form {self.name!r}: {old_state.value} -> {new_state.value}")
        for callback in list(self._on_transition_callbacks):
            try:
                callback(old_state, new_state)
            except Exception as e:
                logger.warning(f"Error in transition callback: {e}")

    def _notify_record_changed(self, paths: Set[str]) -> None:
        if not paths:
            return
        for callback in list(self._on_record_changed_callbacks):
            try:
                callback(paths)
            except Exception as e:
                logger.warning(f"Error in record_changed callback: {e}")

    def _require(self, action: str, *states: FormState) -> None:
        if self._state not in states:
            allowed = ', '.join(s.value for s in states)
            raise InvalidStateError(f"Cannot {action} in state {self._state.value!r} (allowed: {allowed})")

    # === Loading ===

    def normalize(self, record: Record) -> Record:
        """Run a record through the taxonomy and derived rules used for edits."""
        if self.resolver is not None:
            record = self.resolver.reconcile(record)
        if self.synchronizer is not None:
            record = self.synchronizer.normalize(record)
        return record

    def start(
        self,
        mode: FormMode,
        default_record: Optional[Record] = None,
        fetch: Optional[Callable[[], Record]] = None,
        fallback: Optional[Record] = None,
    ) -> None:
        """Bring the session to READY.

        Args:
            mode: CREATE uses default_record; EDIT calls fetch()
            default_record: Fresh record for create pages
            fetch: Loads the edit target (EDIT only)
            fallback: Record used if fetch fails (e.g. a cached copy)
        """
        if not self._begin_start(mode, fetch):
            self._enter_ready(default_record or {})
            return
        try:
            fetched = _as_record(fetch())
        except Exception as e:
            self._load_failed(e, fallback, default_record)
            return
        self._enter_ready(fetched)

    async def start_async(
        self,
        mode: FormMode,
        default_record: Optional[Record] = None,
        fetch: Optional[Callable[[], Awaitable[Record]]] = None,
        fallback: Optional[Record] = None,
    ) -> None:
        """start() for an awaitable fetch."""
        if not self._begin_start(mode, fetch):
            self._enter_ready(default_record or {})
            return
        try:
            fetched = _as_record(await fetch())
        except Exception as e:
            self._load_failed(e, fallback, default_record)
            return
        self._enter_ready(fetched)

    def _begin_start(self, mode: FormMode, fetch: Optional[Callable]) -> bool:
        """Validate the start request; True if a fetch must follow."""
        self._require('start', FormState.IDLE)
        self.mode = FormMode(mode)
        if self.mode is FormMode.CREATE:
            return False
        if fetch is None:
            raise ValueError("EDIT mode requires a fetch callable")
        self._transition(FormState.LOADING)
        return True

    def _enter_ready(self, record: Record) -> None:
        record = self.normalize(copy.deepcopy(dict(_as_record(record))))
        before = self._record
        self._record = record
        self._baseline = record
        self._errors = ErrorMap()
        self.submission_error = None
        self._transition(FormState.READY)
        self._notify_record_changed(set(changed_paths(before, record)))

    def _load_failed(self, error: Exception, fallback: Optional[Record], default_record: Optional[Record]) -> None:
        self.load_degraded = True
        self.load_error = str(error) or get_engine_config().load_error_message
        source = 'fallback' if fallback is not None else 'default'
        logger.warning(f"Form {self.name!r}: load failed ({self.load_error}); continuing with {source} record")
        record = fallback if fallback is not None else (default_record or {})
        self._enter_ready(record)

    # === Editing ===

    def edit(self, path: Path, value: Any) -> None:
        """Apply one user edit.

        While a submit is in flight the edit is deferred and replayed, in
        order, when the session returns to READY.

        Raises:
            InvalidStateError: If the session is IDLE, LOADING or SUCCESS
        """
        if self._state is FormState.SUBMITTING:
            logger.debug(f"Form {self.name!r}: deferring edit of {join_path(path)} during submit")
            self._deferred_edits.append((join_path(path), value))
            return
        self._require('edit', FormState.READY)
        self._apply_edit(path, value)

    def _apply_edit(self, path: Path, value: Any) -> None:
        before = self._record
        record = set_path(before, path, value)
        if self.resolver is not None:
            record = self.resolver.reconcile(record, path)
        if self.synchronizer is not None:
            record = self.synchronizer.apply(record, path)
        errors = self._errors.clear_field(path)

        self._record, self._errors = record, errors
        self._notify_record_changed(set(changed_paths(before, record)))

    def _replay_deferred_edits(self) -> None:
        pending, self._deferred_edits = self._deferred_edits, []
        for path, value in pending:
            self._apply_edit(path, value)

    # === Validation and submission ===

    def validate(self) -> ErrorMap:
        """Run client-side validators, replacing the ErrorMap with their result."""
        self._require('validate', FormState.READY)
        self._errors = run_validators(self._record, self.validators)
        return self._errors

    def submit(self, persist: Callable[[Record], Optional[Record]]) -> bool:
        """Validate and persist the record.

        Args:
            persist: Collaborator called with a copy of the record. May return
                the saved record; raises on failure.

        Returns:
            True on SUCCESS, False if validation or persistence failed

        Raises:
            SubmissionInFlightError: If another submit has not finished
            InvalidStateError: If the session is not READY
        """
        submitted = self._begin_submit()
        if submitted is None:
            return False
        try:
            result = persist(submitted)
        except Exception as e:
            self._submit_failed(e)
            return False
        self._submit_succeeded(result, submitted)
        return True

    async def submit_async(self, persist: Callable[[Record], Awaitable[Optional[Record]]]) -> bool:
        """submit() for an awaitable persist collaborator."""
        submitted = self._begin_submit()
        if submitted is None:
            return False
        try:
            result = await persist(submitted)
        except Exception as e:
            self._submit_failed(e)
            return False
        self._submit_succeeded(result, submitted)
        return True

    def _begin_submit(self) -> Optional[Record]:
        if self._state is FormState.SUBMITTING:
            raise SubmissionInFlightError(f"Form {self.name!r} already has a submit in flight")
        self._require('submit', FormState.READY)
        self.submission_error = None

        if self.validators:
            client_errors = run_validators(self._record, self.validators)
            if client_errors.has_errors():
                self._errors = client_errors
                self.submission_error = get_engine_config().validation_error_message
                logger.debug(f"Form {self.name!r}: blocked by validation on {sorted(client_errors)}")
                return None

        self._transition(FormState.SUBMITTING)
        return copy.deepcopy(self._record)

    def _submit_succeeded(self, result: Optional[Record], submitted: Record) -> None:
        saved = copy.deepcopy(dict(result)) if isinstance(result, Mapping) else submitted
        if self._deferred_edits:
            logger.warning(
                f"Form {self.name!r}: dropping {len(self._deferred_edits)} edit(s) made during a successful submit"
            )
            self._deferred_edits = []
        before = self._record
        self._record = saved
        self._baseline = saved
        self._errors = ErrorMap()
        logger.info(f"Form {self.name!r}: submitted successfully")
        self._transition(FormState.SUCCESS)
        self._notify_record_changed(set(changed_paths(before, saved)))

    def _submit_failed(self, error: Exception) -> None:
        payload = extract_server_payload(error)
        if payload is not None and payload.has_field_errors:
            self._errors = self._errors.merge_server_errors(payload.errors)
            self.submission_error = payload.message or None
        elif payload is not None and payload.message:
            self.submission_error = payload.message
        else:
            self.submission_error = str(error) or get_engine_config().submit_error_message

        logger.warning(f"Form {self.name!r}: submit failed: {self.submission_error or sorted(self._errors)}")
        self._transition(FormState.ERROR)
        self._transition(FormState.READY)
        self._replay_deferred_edits()

    # === Reset and snapshots ===

    def reset(self) -> None:
        """Discard edits and errors, returning to the record the session loaded."""
        self._require('reset', FormState.READY)
        before = self._record
        self._record = self._baseline
        self._errors = ErrorMap()
        self.submission_error = None
        self._notify_record_changed(set(changed_paths(before, self._record)))

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self._state.value,
            record=copy.deepcopy(self._record),
            errors=self._errors.to_dict(),
            submission_error=self.submission_error,
            load_degraded=self.load_degraded,
            dirty_fields=tuple(sorted(self.dirty_fields)),
        )
