"""
Exception hierarchy for the form-state engine.

Everything the engine raises derives from FormStateError so pages can catch
one type. Only ConfigurationError is fatal, and only at setup time.

PersistenceError is the shape persistence collaborators raise when the server
rejects a record. It carries the structured field-validation payload:

    {"message": "The given data was invalid.",
     "errors": {"collector.name": ["required"]}}
"""
import json
import logging
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

ServerErrors = Dict[str, Union[str, List[str]]]


class FormStateError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(FormStateError):
    """Invalid rule configuration (e.g. a cyclic taxonomy cascade)."""


class InvalidStateError(FormStateError):
    """Lifecycle operation attempted in a state that does not allow it."""


class SubmissionInFlightError(InvalidStateError):
    """A submit was attempted while another submit is still in flight."""


class MutationInFlightError(FormStateError):
    """An element already has an uncommitted optimistic mutation."""

    def __init__(self, item_id: Any):
        super().__init__(f"Mutation already in flight for item {item_id!r}")
        self.item_id = item_id


class RecordNotFoundError(FormStateError, LookupError):
    """No element with the requested id exists in the list."""

    def __init__(self, item_id: Any):
        super().__init__(f"No record with id {item_id!r}")
        self.item_id = item_id


class PersistenceError(FormStateError):
    """Failure reported by a persistence collaborator.

    Args:
        message: Human-readable message for the whole record
        errors: Optional mapping of field path to one or many messages
        status: Optional transport status code (informational only)
    """

    def __init__(self, message: str = "", errors: Optional[ServerErrors] = None, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.errors: ServerErrors = dict(errors or {})
        self.status = status

    @property
    def has_field_errors(self) -> bool:
        return bool(self.errors)

    @classmethod
    def from_payload(cls, payload: Union[str, Dict[str, Any]], status: Optional[int] = None) -> 'PersistenceError':
        """Build from a response body (dict or JSON text).

        Text that is not JSON becomes an opaque error whose message is the text.
        """
        if isinstance(payload, str):
            try:
                data = json.loads(payload)
            except ValueError:
                return cls(payload, status=status)
        else:
            data = payload

        if not isinstance(data, dict):
            return cls(str(payload), status=status)

        errors = data.get('errors')
        return cls(
            message=data.get('message') or '',
            errors=errors if isinstance(errors, dict) else None,
            status=status,
        )


class MutationFailedError(FormStateError):
    """Raised by an optimistic commit after the list has been rolled back.

    Attributes:
        item_id: Id of the element whose mutation failed
        kind: 'remove' or 'update'
        cause: The collaborator's original exception
    """

    def __init__(self, item_id: Any, kind: str, cause: BaseException):
        super().__init__(f"Optimistic {kind} of {item_id!r} failed: {cause}")
        self.item_id = item_id
        self.kind = kind
        self.cause = cause


def extract_server_payload(exc: BaseException) -> Optional[PersistenceError]:
    """Return a structured PersistenceError for exc, or None if it is opaque.

    Collaborators that cannot raise PersistenceError directly often raise a
    plain exception whose message is the JSON response body; that form is
    recognized too.
    """
    if isinstance(exc, PersistenceError):
        return exc

    if exc.args and isinstance(exc.args[0], str):
        text = exc.args[0].strip()
        if text.startswith('{'):
            parsed = PersistenceError.from_payload(text)
            if parsed.has_field_errors or parsed.message:
                logger.debug(f"Parsed JSON payload from {type(exc).__name__}")
                return parsed
    return None
