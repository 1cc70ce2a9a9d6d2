"""
Per-field error messages.

ErrorMap is an immutable mapping of dotted field path -> ordered list of
messages. Every operation returns a new map. A path present as a key always
has at least one message; clearing a path removes the key entirely.

Server validation payloads arrive as {path: "msg"} or {path: ["msg", ...]},
sometimes with bracketed keys ('collector[name]'); merge_server_errors()
normalizes both.
"""
from collections.abc import Mapping
import re
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from formstate.paths import Path, is_descendant, join_path

_BRACKET_RE = re.compile(r'\[([^\]]*)\]')


def normalize_error_key(key: Any) -> str:
    """'collector[name]' -> 'collector.name'; dotted keys pass through."""
    text = _BRACKET_RE.sub(lambda m: f'.{m.group(1)}', str(key))
    return join_path(text)


def normalize_messages(messages: Any) -> Tuple[str, ...]:
    if messages is None:
        return ()
    if isinstance(messages, str):
        return (messages,) if messages else ()
    if isinstance(messages, Iterable):
        return tuple(str(m) for m in messages if m not in (None, ''))
    return (str(messages),)


class ErrorMap(Mapping):
    """Immutable path -> [messages] mapping."""

    __slots__ = ('_errors',)

    def __init__(self, errors: Optional[Mapping] = None):
        normalized: Dict[str, Tuple[str, ...]] = {}
        for key, messages in (errors or {}).items():
            values = normalize_messages(messages)
            if values:
                normalized[normalize_error_key(key)] = values
        self._errors = normalized

    def __getitem__(self, path: str) -> List[str]:
        return list(self._errors[join_path(path)])

    def __iter__(self) -> Iterator[str]:
        return iter(self._errors)

    def __len__(self) -> int:
        return len(self._errors)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, tuple, list)):
            return False
        return join_path(path) in self._errors

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorMap):
            return self._errors == other._errors
        if isinstance(other, Mapping):
            return self.to_dict() == {k: list(normalize_messages(v)) for k, v in other.items()}
        return NotImplemented

    def __hash__(self):
        return hash(tuple(sorted(self._errors.items())))

    def __repr__(self) -> str:
        return f"ErrorMap({self.to_dict()!r})"

    def _with(self, errors: Dict[str, Tuple[str, ...]]) -> 'ErrorMap':
        new = ErrorMap()
        new._errors = errors
        return new

    def set_field_error(self, path: Path, messages: Any) -> 'ErrorMap':
        """Replace the messages at path. No messages removes the key."""
        key = join_path(path)
        values = normalize_messages(messages)
        errors = dict(self._errors)
        if values:
            errors[key] = values
        else:
            errors.pop(key, None)
        return self._with(errors)

    def add_field_error(self, path: Path, message: str) -> 'ErrorMap':
        """Append one message to the messages at path."""
        key = join_path(path)
        return self.set_field_error(key, self._errors.get(key, ()) + (message,))

    def clear_field(self, path: Path) -> 'ErrorMap':
        """Remove path, and any paths below it, entirely.

        Returns self if there is nothing to remove.
        """
        key = join_path(path)
        errors = {
            k: v for k, v in self._errors.items()
            if k != key and not is_descendant(k, key)
        }
        if len(errors) == len(self._errors):
            return self
        return self._with(errors)

    def merge_server_errors(self, server_errors: Optional[Mapping]) -> 'ErrorMap':
        """Merge a server validation payload.

        Keys named by the server replace existing messages for that path;
        other paths are kept.
        """
        if not server_errors:
            return self
        errors = dict(self._errors)
        for key, messages in server_errors.items():
            values = normalize_messages(messages)
            path = normalize_error_key(key)
            if values:
                errors[path] = values
            else:
                errors.pop(path, None)
        return self._with(errors)

    def merge(self, other: 'ErrorMap') -> 'ErrorMap':
        return self.merge_server_errors(other)

    def has_errors(self) -> bool:
        return bool(self._errors)

    def first_error(self, path: Path) -> Optional[str]:
        messages = self._errors.get(join_path(path))
        return messages[0] if messages else None

    def to_dict(self) -> Dict[str, List[str]]:
        return {key: list(values) for key, values in self._errors.items()}


EMPTY_ERRORS = ErrorMap()
