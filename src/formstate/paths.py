"""
Dotted-path access into nested records.

A record is a tree of dicts. Paths address a leaf or sub-record either as a
dotted string ('storage_location.storage_conditions.temperature') or as a
sequence of field names.

Reads never raise. Writes never mutate: set_path() copies every ancestor on
the way down and shares all untouched branches with the original.
"""
from collections.abc import Mapping
from typing import Any, Dict, Iterable, Sequence, Tuple, Union

Path = Union[str, Sequence[str]]
Record = Dict[str, Any]


def split_path(path: Path) -> Tuple[str, ...]:
    """Normalize a path to a tuple of field names."""
    if isinstance(path, str):
        return tuple(part for part in path.split('.') if part) if path else ()
    return tuple(path)


def join_path(path: Path) -> str:
    """Normalize a path to its dotted string form."""
    return '.'.join(split_path(path))


def is_descendant(path: Path, parent: Path) -> bool:
    """True if path lies strictly below parent."""
    parts = split_path(path)
    parent_parts = split_path(parent)
    return len(parts) > len(parent_parts) and parts[:len(parent_parts)] == parent_parts


def get_path(record: Any, path: Path, default: Any = None) -> Any:
    """Get the value at path, or default if any node along it is missing."""
    node = record
    for name in split_path(path):
        if not isinstance(node, Mapping) or name not in node:
            return default
        node = node[name]
    return node


def set_path(record: Mapping, path: Path, value: Any) -> Record:
    """Return a copy of record with the value at path replaced.

    Missing intermediate nodes (and intermediates that are not mappings) are
    created as empty sub-records.

    Raises:
        ValueError: If path is empty
    """
    parts = split_path(path)
    if not parts:
        raise ValueError("Cannot set a value at an empty path")
    return _set_parts(record, parts, value)


def _set_parts(node: Any, parts: Tuple[str, ...], value: Any) -> Record:
    copied = dict(node) if isinstance(node, Mapping) else {}
    head = parts[0]
    if len(parts) == 1:
        copied[head] = value
    else:
        copied[head] = _set_parts(copied.get(head), parts[1:], value)
    return copied


def flatten(record: Mapping, prefix: str = '') -> Dict[str, Any]:
    """Flatten a record into {dotted leaf path: value}.

    Empty sub-records are kept as leaves so that their presence is visible.
    """
    flat: Dict[str, Any] = {}
    for name, value in record.items():
        dotted = f'{prefix}.{name}' if prefix else name
        if isinstance(value, Mapping) and value:
            flat.update(flatten(value, dotted))
        else:
            flat[dotted] = value
    return flat


def changed_paths(before: Mapping, after: Mapping) -> Iterable[str]:
    """Leaf paths whose value differs between two records."""
    flat_before = flatten(before)
    flat_after = flatten(after)
    keys = set(flat_before) | set(flat_after)
    return sorted(k for k in keys if flat_before.get(k, _MISSING) != flat_after.get(k, _MISSING))


_MISSING = object()
