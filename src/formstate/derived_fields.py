"""
Derived fields kept in sync with the fields they are computed from.

A DerivedRule observes one or more source paths and writes one or more target
paths. After an edit, only the rules observing the edited path run, and a rule
never runs for an edit to one of its own targets. Bidirectional relationships
are two rules pointing at each other:

    end_from_duration_rule()   start + duration    -> end_date, end_time
    duration_from_end_rule()   end_date, end_time  -> duration
    duration_fill_rule()       start, with an empty duration -> duration

Editing duration moves the end; editing the end recomputes the duration.
An end entered before the start is kept, and the duration is filled in
once the start is known. Each rule writes a target only when the computed
value differs from the current one, and rules do not chain, so the pair
cannot feed back into itself.
"""
from dataclasses import dataclass
import datetime
from decimal import Decimal
import logging
import math
import re
from typing import Any, Callable, Optional, Sequence, Tuple

from formstate.config import get_engine_config
from formstate.paths import Path, Record, get_path, is_descendant, join_path, set_path
from formstate.taxonomy import is_empty

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r'^-?\d*\.?\d+$')


@dataclass(frozen=True)
class DerivedRule:
    """Computes target_paths from source_paths.

    A change to any source path triggers the rule. input_paths are read but
    never trigger it. compute receives the source values followed by the
    input values positionally and returns the target value (one target) or a
    tuple of values aligned with target_paths.
    Rules with on_load=False are skipped by normalize().
    """
    name: str
    source_paths: Tuple[str, ...]
    target_paths: Tuple[str, ...]
    compute: Callable[..., Any]
    on_load: bool = True
    input_paths: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'source_paths', tuple(join_path(p) for p in self.source_paths))
        object.__setattr__(self, 'input_paths', tuple(join_path(p) for p in self.input_paths))
        object.__setattr__(self, 'target_paths', tuple(join_path(p) for p in self.target_paths))

    def observes(self, path: Path) -> bool:
        """True for an edit to a source path or to a sub-record containing one."""
        edited = join_path(path)
        return any(source == edited or is_descendant(source, edited) for source in self.source_paths)

    def targets(self, path: Path) -> bool:
        return join_path(path) in self.target_paths

    def evaluate(self, record: Record) -> Tuple[Any, ...]:
        values = [get_path(record, p) for p in self.source_paths + self.input_paths]
        result = self.compute(*values)
        if len(self.target_paths) == 1:
            return (result,)
        return tuple(result)


class DerivedFieldSynchronizer:
    """Applies DerivedRules after edits. Stateless and shareable."""

    def __init__(self, rules: Sequence[DerivedRule] = ()):
        self._rules: Tuple[DerivedRule, ...] = tuple(rules)

    @property
    def rules(self) -> Tuple[DerivedRule, ...]:
        return self._rules

    def apply(self, record: Record, edited_path: Path) -> Record:
        """Recompute every rule that observes edited_path."""
        for rule in self._rules:
            if not rule.observes(edited_path) or rule.targets(edited_path):
                continue
            record = self._write(record, rule)
        return record

    def normalize(self, record: Record) -> Record:
        """Apply every on_load rule once, in registration order."""
        for rule in self._rules:
            if rule.on_load:
                record = self._write(record, rule)
        return record

    def _write(self, record: Record, rule: DerivedRule) -> Record:
        for target, value in zip(rule.target_paths, rule.evaluate(record)):
            if get_path(record, target) != value:
                logger.debug(f"Derived {rule.name}: {target} = {value!r}")
                record = set_path(record, target, value)
        return record


# Value parsing

def to_number(value: Any) -> Optional[float]:
    """Parse a numeric field value; None for empty or non-numeric input."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
        return number if math.isfinite(number) else None
    if isinstance(value, str):
        text = value.strip()
        if _NUMBER_RE.match(text):
            return float(text)
    return None


def to_date(value: Any) -> Optional[datetime.date]:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str) and len(value) >= 10:
        try:
            return datetime.date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def to_time(value: Any) -> Optional[datetime.time]:
    if isinstance(value, datetime.time):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.time.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def combine(date_value: Any, time_value: Any) -> Optional[datetime.datetime]:
    """Combine a date field and a time-of-day field into a naive datetime."""
    day = to_date(date_value)
    moment = to_time(time_value)
    if day is None or moment is None:
        return None
    return datetime.datetime.combine(day, moment.replace(tzinfo=None))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# Rule factories

def total_price_rule(quantity_path: str = 'quantity',
                     price_path: str = 'price_per_unit',
                     total_path: str = 'total_price') -> DerivedRule:
    """total = round(quantity * unit price, money_places).

    String inputs (form text) produce a fixed-point string such as '25.00';
    numeric inputs produce a number. Empty or non-numeric input produces None.
    """
    def compute(quantity: Any, price: Any) -> Any:
        q = to_number(quantity)
        p = to_number(price)
        if q is None or p is None:
            return None
        places = get_engine_config().money_places
        total = round(q * p, places)
        if isinstance(quantity, str) or isinstance(price, str):
            return f'{total:.{places}f}'
        return total

    return DerivedRule(
        name='total_price',
        source_paths=(quantity_path, price_path),
        target_paths=(total_path,),
        compute=compute,
    )


def end_from_duration_rule(start_date: str = 'start_date', start_time: str = 'start_time',
                           duration: str = 'duration',
                           end_date: str = 'end_date', end_time: str = 'end_time',
                           on_load: bool = False) -> DerivedRule:
    """end = start + duration minutes.

    With no duration the current end is left as the user entered it.
    """
    def compute(start_day: Any, start_moment: Any, minutes: Any,
                current_end_day: Any, current_end_moment: Any) -> Tuple[Any, Any]:
        if is_empty(minutes):
            return current_end_day, current_end_moment
        start = combine(start_day, start_moment)
        length = to_number(minutes)
        if start is None or length is None:
            return None, None
        end = start + datetime.timedelta(minutes=length)
        return _format_date(end.date(), start_day), _format_time(end.time(), start_moment)

    return DerivedRule(
        name='end_from_duration',
        source_paths=(start_date, start_time, duration),
        target_paths=(end_date, end_time),
        compute=compute,
        on_load=on_load,
        input_paths=(end_date, end_time),
    )


def duration_from_end_rule(start_date: str = 'start_date', start_time: str = 'start_time',
                           end_date: str = 'end_date', end_time: str = 'end_time',
                           duration: str = 'duration',
                           on_load: bool = True) -> DerivedRule:
    """duration = round((end - start) / 60000) minutes, negative results kept."""
    def compute(end_day: Any, end_moment: Any, start_day: Any, start_moment: Any) -> Optional[int]:
        return _minutes_between(start_day, start_moment, end_day, end_moment)

    return DerivedRule(
        name='duration_from_end',
        source_paths=(end_date, end_time),
        target_paths=(duration,),
        compute=compute,
        on_load=on_load,
        input_paths=(start_date, start_time),
    )


def duration_fill_rule(start_date: str = 'start_date', start_time: str = 'start_time',
                       end_date: str = 'end_date', end_time: str = 'end_time',
                       duration: str = 'duration',
                       on_load: bool = False) -> DerivedRule:
    """Fill an empty duration from the end once the start is entered.

    Covers the end being typed before the start. A duration that is already
    set is kept; end_from_duration moves the end to match it.
    """
    def compute(start_day: Any, start_moment: Any,
                end_day: Any, end_moment: Any, current: Any) -> Any:
        if not is_empty(current):
            return current
        return _minutes_between(start_day, start_moment, end_day, end_moment)

    return DerivedRule(
        name='duration_fill',
        source_paths=(start_date, start_time),
        target_paths=(duration,),
        compute=compute,
        on_load=on_load,
        input_paths=(end_date, end_time, duration),
    )


def _minutes_between(start_day: Any, start_moment: Any, end_day: Any, end_moment: Any) -> Optional[int]:
    start = combine(start_day, start_moment)
    end = combine(end_day, end_moment)
    if start is None or end is None:
        return None
    milliseconds = (end - start).total_seconds() * 1000
    return round_half_up(milliseconds / 60000)


def _format_date(day: datetime.date, like: Any) -> Any:
    if isinstance(like, datetime.date):
        return day
    return day.strftime(get_engine_config().date_format)


def _format_time(moment: datetime.time, like: Any) -> Any:
    if isinstance(like, datetime.time):
        return moment
    return moment.strftime(get_engine_config().time_format)
