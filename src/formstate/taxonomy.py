"""
Cascading selector constraints.

A TaxonomyTable maps the value of a trigger field to the ordered legal values
of a dependent field (animal type -> breeds, product category -> units).
CascadeRules bind a table to a (trigger_path, dependent_path) pair, and the
TaxonomyResolver keeps a record consistent with all of its rules:

    resolver = TaxonomyResolver([
        CascadeRule('animal_type', 'breed', BREEDS),
    ])
    record = resolver.reconcile(record, edited_path='animal_type')

Whenever a trigger changes, any dependent whose value is no longer legal is
reset to the first legal option (or to empty when there are none), and the
reset cascades into the dependent's own dependents. Trigger graphs must be
acyclic; cycles are rejected when the resolver is built.
"""
from dataclasses import dataclass
from types import MappingProxyType
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from formstate.errors import ConfigurationError
from formstate.paths import Path, Record, get_path, is_descendant, join_path, set_path

logger = logging.getLogger(__name__)

EMPTY_VALUE = ''


def is_empty(value: Any) -> bool:
    return value is None or value == ''


class TaxonomyTable:
    """Immutable mapping of trigger value -> ordered tuple of legal values."""

    def __init__(self, entries: Mapping[str, Iterable[str]]):
        self._entries = MappingProxyType({key: tuple(values) for key, values in entries.items()})

    @property
    def entries(self) -> Mapping[str, Tuple[str, ...]]:
        return self._entries

    def options(self, trigger_value: Any) -> List[str]:
        if is_empty(trigger_value):
            return []
        try:
            return list(self._entries.get(trigger_value, ()))
        except TypeError:  # unhashable trigger value
            return []

    def triggers(self) -> List[str]:
        return list(self._entries.keys())

    def __contains__(self, trigger_value: Any) -> bool:
        return trigger_value in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"TaxonomyTable({dict(self._entries)!r})"


def options_for(table: TaxonomyTable, trigger_value: Any) -> List[str]:
    """Legal dependent values for a trigger value ([] if empty or unknown)."""
    return table.options(trigger_value)


@dataclass(frozen=True)
class CascadeRule:
    """Constrains dependent_path to table.options(value at trigger_path)."""
    trigger_path: str
    dependent_path: str
    table: TaxonomyTable

    def __post_init__(self):
        # Accept sequence paths but store the dotted form
        object.__setattr__(self, 'trigger_path', join_path(self.trigger_path))
        object.__setattr__(self, 'dependent_path', join_path(self.dependent_path))


class TaxonomyResolver:
    """Applies a set of CascadeRules to records.

    Tables are read-only, so one resolver can be shared by any number of
    form sessions.

    Raises:
        ConfigurationError: If two rules constrain the same dependent, or the
            trigger -> dependent graph contains a cycle
    """

    def __init__(self, rules: Sequence[CascadeRule] = ()):
        self._rules: Tuple[CascadeRule, ...] = tuple(rules)
        self._by_trigger: Dict[str, List[CascadeRule]] = {}
        self._by_dependent: Dict[str, CascadeRule] = {}

        for rule in self._rules:
            if rule.dependent_path in self._by_dependent:
                raise ConfigurationError(
                    f"Field {rule.dependent_path!r} is constrained by more than one cascade rule"
                )
            self._by_dependent[rule.dependent_path] = rule
            self._by_trigger.setdefault(rule.trigger_path, []).append(rule)

        self._check_acyclic()
        logger.debug(f"TaxonomyResolver built with {len(self._rules)} rule(s)")

    @property
    def rules(self) -> Tuple[CascadeRule, ...]:
        return self._rules

    def _check_acyclic(self) -> None:
        visiting: set = set()
        done: set = set()

        def visit(path: str, chain: List[str]) -> None:
            if path in done:
                return
            if path in visiting:
                cycle = ' -> '.join(chain[chain.index(path):] + [path])
                raise ConfigurationError(f"Cyclic taxonomy cascade: {cycle}")
            visiting.add(path)
            for rule in self._by_trigger.get(path, ()):
                visit(rule.dependent_path, chain + [path])
            visiting.discard(path)
            done.add(path)

        for trigger in list(self._by_trigger):
            visit(trigger, [])

    def dependents_of(self, path: Path) -> List[str]:
        """Direct dependents of a trigger path, in rule order."""
        return [rule.dependent_path for rule in self._by_trigger.get(join_path(path), ())]

    def options(self, record: Record, dependent_path: Path) -> Optional[List[str]]:
        """Legal values for dependent_path given the record, or None if unconstrained."""
        rule = self._by_dependent.get(join_path(dependent_path))
        if rule is None:
            return None
        return rule.table.options(get_path(record, rule.trigger_path))

    def is_legal(self, record: Record, dependent_path: Path) -> bool:
        """True if the dependent's current value is empty or among its options."""
        legal = self.options(record, dependent_path)
        if legal is None:
            return True
        value = get_path(record, dependent_path)
        return is_empty(value) or value in legal

    def reconcile(self, record: Record, edited_path: Optional[Path] = None) -> Record:
        """Reset dependents that are no longer legal.

        Args:
            record: Record to reconcile (not mutated)
            edited_path: Field or sub-record that was just edited. When None,
                every rule is checked, roots first (load-time normalization).

        Returns:
            The reconciled record (the same object if nothing changed)
        """
        if edited_path is None:
            dependents = set(self._by_dependent)
            for trigger in [t for t in self._by_trigger if t not in dependents]:
                record = self._cascade_from(record, trigger, exhaustive=True)
            return record

        edited = join_path(edited_path)
        record = self._cascade_from(record, edited)
        # A replaced sub-record may hold triggers or dependents at any depth
        for trigger in self._triggers_within(edited):
            record = self._cascade_from(record, trigger, exhaustive=True)
        return record

    def _triggers_within(self, path: str) -> List[str]:
        return [
            trigger for trigger, rules in self._by_trigger.items()
            if is_descendant(trigger, path)
            or any(is_descendant(rule.dependent_path, path) for rule in rules)
        ]

    def _cascade_from(self, record: Record, trigger_path: str, exhaustive: bool = False) -> Record:
        for rule in self._by_trigger.get(trigger_path, ()):
            legal = rule.table.options(get_path(record, trigger_path))
            current = get_path(record, rule.dependent_path)

            replacement = legal[0] if legal else EMPTY_VALUE
            if current in legal or (is_empty(current) and replacement == EMPTY_VALUE):
                if exhaustive:
                    record = self._cascade_from(record, rule.dependent_path, exhaustive)
                continue

            logger.debug(
                f"Cascade reset {rule.dependent_path}: {current!r} -> {replacement!r} "
                f"({trigger_path}={get_path(record, trigger_path)!r})"
            )
            record = set_path(record, rule.dependent_path, replacement)
            # Depth-first: the dependent is itself a trigger for further rules
            record = self._cascade_from(record, rule.dependent_path, exhaustive)
        return record
