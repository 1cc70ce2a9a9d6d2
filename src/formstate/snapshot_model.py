"""
Immutable snapshots of form sessions and list state.

SessionSnapshot captures one form session (record, errors, lifecycle state)
so it can be cached and later handed back to a session as a fallback record.
ListSnapshot captures a list page's items before an optimistic mutation; it
is what a failed commit rolls back to.

Snapshots hold data only (no session or mutator references), so to_dict()
output is JSON-serializable whenever the records are.
"""
from dataclasses import dataclass, field
import copy
import time
from typing import Any, Dict, List, Optional, Tuple
import uuid


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable snapshot of one form session."""
    state: str
    record: Dict[str, Any]
    errors: Dict[str, List[str]]
    submission_error: Optional[str] = None
    load_degraded: bool = False
    dirty_fields: Tuple[str, ...] = ()
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        """Export to JSON-serializable dict."""
        return {
            'state': self.state,
            'record': copy.deepcopy(self.record),
            'errors': {path: list(messages) for path, messages in self.errors.items()},
            'submission_error': self.submission_error,
            'load_degraded': self.load_degraded,
            'dirty_fields': list(self.dirty_fields),
            'timestamp': self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SessionSnapshot':
        return cls(
            state=data['state'],
            record=copy.deepcopy(data['record']),
            errors={path: list(messages) for path, messages in data.get('errors', {}).items()},
            submission_error=data.get('submission_error'),
            load_degraded=data.get('load_degraded', False),
            dirty_fields=tuple(data.get('dirty_fields', ())),
            timestamp=data.get('timestamp', time.time()),
        )


@dataclass(frozen=True)
class ListSnapshot:
    """Immutable copy of a list's items at a point in time.

    Analogous to a commit: identified by UUID, labelled with the mutation
    that is about to be applied on top of it.
    """
    id: str
    label: str
    items: Tuple[Dict[str, Any], ...]
    timestamp: float

    @classmethod
    def capture(cls, items: List[Dict[str, Any]], label: str = '') -> 'ListSnapshot':
        """Deep-copy items into a new snapshot with generated id and timestamp."""
        return cls(
            id=str(uuid.uuid4()),
            label=label,
            items=tuple(copy.deepcopy(item) for item in items),
            timestamp=time.time(),
        )

    def restore(self) -> List[Dict[str, Any]]:
        """Fresh list structurally equal to the captured items."""
        return [copy.deepcopy(item) for item in self.items]

    def index_of(self, item_id: Any, id_field: str) -> Optional[int]:
        for index, item in enumerate(self.items):
            if item.get(id_field) == item_id:
                return index
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'label': self.label,
            'items': self.restore(),
            'timestamp': self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ListSnapshot':
        return cls(
            id=data['id'],
            label=data.get('label', ''),
            items=tuple(copy.deepcopy(item) for item in data['items']),
            timestamp=data['timestamp'],
        )
