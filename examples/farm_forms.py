"""
Farm form pages wired to the form-state engine.

Shows the three page shapes the engine serves:

- a production create/edit page (nested record, cascading selectors,
  derived total price, server validation errors)
- a task page (derived end time and duration)
- a task list page (optimistic delete with rollback)

Persistence is faked with in-memory callables; a real page passes its API
client calls instead.
"""
import logging

from formstate import (
    DerivedFieldSynchronizer,
    FormLifecycle,
    FormMode,
    MutationFailedError,
    OptimisticListMutator,
    PersistenceError,
)
from formstate.catalog import (
    production_derived_rules,
    production_resolver,
    production_validators,
    task_derived_rules,
    task_validators,
)

logger = logging.getLogger(__name__)

DEFAULT_PRODUCTION = {
    'product_category': {'name': 'milk', 'description': '', 'measurement_unit': ''},
    'product_grade': {'name': '', 'description': '', 'price_modifier': 1.0},
    'production_method': {'method_name': '', 'requires_certification': False},
    'collector': {'name': '', 'contact_info': ''},
    'storage_location': {
        'name': '',
        'location_code': '',
        'storage_conditions': {'temperature': '', 'humidity': ''},
    },
    'quantity': '',
    'price_per_unit': '',
    'total_price': None,
    'production_date': '2025-01-01',
    'production_time': '06:30',
    'quality_status': 'Pending',
    'trace_number': '',
}


def save_production(record):
    """Rejects the first trace number it sees, like a uniqueness check."""
    if record['trace_number'] == 'TR-001':
        raise PersistenceError.from_payload({
            'message': 'The given data was invalid.',
            'errors': {'trace_number': ['The trace number has already been taken.']},
        }, status=422)
    return dict(record, id=101)


def production_page():
    session = FormLifecycle(
        resolver=production_resolver(),
        synchronizer=DerivedFieldSynchronizer(production_derived_rules()),
        validators=production_validators(),
        name='production',
    )
    session.on_transition(lambda old, new: print(f"  state: {old.value} -> {new.value}"))
    session.start(FormMode.CREATE, default_record=DEFAULT_PRODUCTION)
    print(f"  defaults: unit={session.record['product_category']['measurement_unit']!r}, "
          f"grade={session.record['product_grade']['name']!r}")

    session.edit('product_category.name', 'eggs')
    print(f"  eggs: unit={session.record['product_category']['measurement_unit']!r}, "
          f"method={session.record['production_method']['method_name']!r}")

    if not session.submit(save_production):
        print(f"  blocked: {session.submission_error} ({len(session.errors)} field(s))")

    for path, value in [
        ('collector.name', 'Ann'),
        ('storage_location.name', 'Cold room'),
        ('quantity', '12'),
        ('price_per_unit', '0.45'),
        ('trace_number', 'TR-001'),
    ]:
        session.edit(path, value)
    print(f"  total_price={session.record['total_price']!r}")

    session.submit(save_production)
    print(f"  server said: {session.errors.first_error('trace_number')}")

    session.edit('trace_number', 'TR-002')
    session.submit(save_production)
    print(f"  saved id={session.record['id']}, state={session.state.value}")


def task_page():
    saved = {
        'id': 7, 'title': 'Hoof trimming', 'task_type': 'health_check',
        'start_date': '2025-01-01', 'start_time': '09:00',
        'end_date': '2025-01-01', 'end_time': '10:00',
        'duration': 0, 'priority': 'medium', 'status': 'pending',
    }
    session = FormLifecycle(
        synchronizer=DerivedFieldSynchronizer(task_derived_rules()),
        validators=task_validators(),
        name='task',
    )
    session.start(FormMode.EDIT, fetch=lambda: saved)
    print(f"  loaded duration={session.record['duration']}")
    session.edit('duration', 90)
    print(f"  end={session.record['end_date']} {session.record['end_time']}")
    session.edit('end_time', '08:00')
    session.validate()
    print(f"  invalid: {session.errors.first_error('duration')}")


def task_list_page():
    tasks = OptimisticListMutator([
        {'id': 'A', 'title': 'Feed'},
        {'id': 'B', 'title': 'Milk'},
        {'id': 'C', 'title': 'Clean'},
    ])
    pending = tasks.remove('B')
    print(f"  optimistic: {[t['id'] for t in pending.optimistic_list]}")

    def delete_task():
        raise ConnectionError('server unavailable')

    try:
        pending.commit(delete_task)
    except MutationFailedError as e:
        print(f"  toast: Failed to delete task ({e.cause})")
    print(f"  after rollback: {[t['id'] for t in tasks.items]}")


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    for title, page in [('Production', production_page), ('Task', task_page), ('Task list', task_list_page)]:
        print(title)
        page()
