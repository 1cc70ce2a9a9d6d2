"""
Nested record form-state engine.

This package manages the state behind create/edit forms and list pages whose
records are deeply nested and constrained by taxonomies.

Key Features:
- Immutable dotted-path reads and writes with structural sharing
- Cascading selector resets (animal type -> breed, category -> unit)
- Derived fields kept in sync (quantity x unit price, start + duration)
- Per-field error map that merges server errors and clears itself on edit
- Form lifecycle state machine with double-submit protection
- Optimistic list mutation with exact rollback

Quick Start:
    >>> from formstate import FormLifecycle, FormMode, DerivedFieldSynchronizer
    >>> from formstate.catalog import production_resolver, production_derived_rules
    >>>
    >>> session = FormLifecycle(
    ...     resolver=production_resolver(),
    ...     synchronizer=DerivedFieldSynchronizer(production_derived_rules()),
    ... )
    >>> session.start(FormMode.CREATE, default_record={'quantity': '', 'price_per_unit': ''})
    >>> session.edit('quantity', '10')
    >>> session.edit('price_per_unit', '2.5')
    >>> session.record['total_price']
    '25.00'

Modules:
    - paths: get/set values at dotted paths
    - taxonomy: cascade rules and the resolver that enforces them
    - derived_fields: derived field rules and synchronizer
    - error_map: immutable per-field error messages
    - lifecycle: FormLifecycle session state machine
    - optimistic_list: OptimisticListMutator and PendingMutation
    - validation: client-side validators
    - catalog: farm taxonomies and per-form rule sets
    - snapshot_model: session and list snapshots
    - config: engine-wide configuration
    - errors: exception hierarchy
"""

# Paths
from formstate.paths import get_path, set_path, split_path, join_path, flatten

# Taxonomy
from formstate.taxonomy import TaxonomyTable, CascadeRule, TaxonomyResolver, options_for

# Derived fields
from formstate.derived_fields import (
    DerivedRule,
    DerivedFieldSynchronizer,
    total_price_rule,
    end_from_duration_rule,
    duration_from_end_rule,
    duration_fill_rule,
)

# Errors
from formstate.error_map import ErrorMap
from formstate.errors import (
    FormStateError,
    ConfigurationError,
    InvalidStateError,
    SubmissionInFlightError,
    MutationInFlightError,
    MutationFailedError,
    RecordNotFoundError,
    PersistenceError,
)

# Lifecycle
from formstate.lifecycle import FormLifecycle, FormState, FormMode

# Lists
from formstate.optimistic_list import OptimisticListMutator, PendingMutation

# Validation
from formstate.validation import required, numeric, non_negative, date_after, run_validators

# Snapshots
from formstate.snapshot_model import SessionSnapshot, ListSnapshot

# Configuration
from formstate.config import EngineConfig, get_engine_config, set_engine_config, reset_engine_config

__all__ = [
    # Paths
    'get_path',
    'set_path',
    'split_path',
    'join_path',
    'flatten',
    # Taxonomy
    'TaxonomyTable',
    'CascadeRule',
    'TaxonomyResolver',
    'options_for',
    # Derived fields
    'DerivedRule',
    'DerivedFieldSynchronizer',
    'total_price_rule',
    'end_from_duration_rule',
    'duration_from_end_rule',
    'duration_fill_rule',
    # Errors
    'ErrorMap',
    'FormStateError',
    'ConfigurationError',
    'InvalidStateError',
    'SubmissionInFlightError',
    'MutationInFlightError',
    'MutationFailedError',
    'RecordNotFoundError',
    'PersistenceError',
    # Lifecycle
    'FormLifecycle',
    'FormState',
    'FormMode',
    # Lists
    'OptimisticListMutator',
    'PendingMutation',
    # Validation
    'required',
    'numeric',
    'non_negative',
    'date_after',
    'run_validators',
    # Snapshots
    'SessionSnapshot',
    'ListSnapshot',
    # Configuration
    'EngineConfig',
    'get_engine_config',
    'set_engine_config',
    'reset_engine_config',
]

__version__ = '1.0.0'
__description__ = 'Nested record form-state engine'
