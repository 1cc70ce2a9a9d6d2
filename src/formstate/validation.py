"""
Client-side field validators run before a record is submitted.

A validator is any callable record -> {path: [messages]}. An empty mapping
means the record passed. run_validators() folds the results of several
validators into one ErrorMap, so a failing form never reaches the server.
"""
from typing import Any, Callable, Dict, Iterable, List, Optional

from formstate.derived_fields import combine, to_date, to_number
from formstate.error_map import ErrorMap
from formstate.paths import Record, get_path, join_path
from formstate.taxonomy import is_empty

Validator = Callable[[Record], Dict[str, List[str]]]


def _label(path: str) -> str:
    return path.split('.')[-1].replace('_', ' ')


def required(*paths: str, message: Optional[str] = None) -> Validator:
    """Each path must hold a non-empty value."""
    def validate(record: Record) -> Dict[str, List[str]]:
        errors = {}
        for path in paths:
            value = get_path(record, path)
            if is_empty(value) or value == [] or value == {}:
                errors[join_path(path)] = [message or f"The {_label(path)} field is required."]
        return errors
    return validate


def numeric(*paths: str, message: Optional[str] = None) -> Validator:
    """Each non-empty value must parse as a number."""
    def validate(record: Record) -> Dict[str, List[str]]:
        errors = {}
        for path in paths:
            value = get_path(record, path)
            if not is_empty(value) and to_number(value) is None:
                errors[join_path(path)] = [message or f"The {_label(path)} must be a valid number."]
        return errors
    return validate


def non_negative(*paths: str, message: Optional[str] = None) -> Validator:
    """Each numeric value must be >= 0. Non-numeric values are left to numeric()."""
    def validate(record: Record) -> Dict[str, List[str]]:
        errors = {}
        for path in paths:
            number = to_number(get_path(record, path))
            if number is not None and number < 0:
                errors[join_path(path)] = [message or f"The {_label(path)} must not be negative."]
        return errors
    return validate


def date_after(start_path: str, end_path: str,
               start_time_path: Optional[str] = None, end_time_path: Optional[str] = None) -> Validator:
    """If either date is set both must be, and the end must fall after the start.

    With time paths the comparison is on combined date+time.
    """
    def moment(record: Record, date_path: str, time_path: Optional[str]) -> Any:
        if time_path is None:
            return to_date(get_path(record, date_path))
        return combine(get_path(record, date_path), get_path(record, time_path))

    def validate(record: Record) -> Dict[str, List[str]]:
        start_value = get_path(record, start_path)
        end_value = get_path(record, end_path)
        if is_empty(start_value) and is_empty(end_value):
            return {}
        if is_empty(start_value):
            return {join_path(start_path): [f"The {_label(start_path)} is required if {_label(end_path)} is set."]}
        if is_empty(end_value):
            return {join_path(end_path): [f"The {_label(end_path)} is required if {_label(start_path)} is set."]}

        start = moment(record, start_path, start_time_path)
        end = moment(record, end_path, end_time_path)
        if start is None or end is None or not end > start:
            return {join_path(end_path): [f"The {_label(end_path)} must be after the {_label(start_path)}."]}
        return {}
    return validate


def run_validators(record: Record, validators: Iterable[Validator]) -> ErrorMap:
    """Run validators in order; later messages for a path are appended."""
    errors = ErrorMap()
    for validator in validators:
        for path, messages in validator(record).items():
            for message in messages:
                errors = errors.add_field_error(path, message)
    return errors
