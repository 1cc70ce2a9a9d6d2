"""Pytest configuration and shared fixtures."""
import pytest

from formstate import DerivedFieldSynchronizer, FormLifecycle
import formstate.config as config_module
from formstate.catalog import (
    animal_resolver,
    production_derived_rules,
    production_resolver,
    task_derived_rules,
)


@pytest.fixture(autouse=True)
def restore_engine_config():
    """Restore engine configuration after each test."""
    original = config_module.get_engine_config()
    yield
    config_module.set_engine_config(original)


@pytest.fixture
def production_record():
    """A production record as the production form creates it."""
    return {
        'product_category': {'name': 'milk', 'description': '', 'measurement_unit': 'Liters'},
        'product_grade': {'name': 'Grade A', 'description': '', 'price_modifier': 1.0},
        'production_method': {'method_name': 'Machine Milking', 'requires_certification': False},
        'collector': {'name': '', 'contact_info': ''},
        'storage_location': {
            'name': 'Cold room',
            'location_code': 'CR-1',
            'storage_conditions': {'temperature': 4, 'humidity': 60},
        },
        'quantity': '',
        'price_per_unit': '',
        'total_price': None,
        'production_date': '2025-01-01',
        'production_time': '06:30',
        'quality_status': 'Pending',
        'trace_number': 'TR-001',
    }


@pytest.fixture
def task_record():
    return {
        'title': 'Hoof trimming',
        'task_type': 'health_check',
        'start_date': '2025-01-01',
        'start_time': '09:00',
        'end_date': '2025-01-01',
        'end_time': '10:00',
        'duration': 60,
        'priority': 'medium',
        'status': 'pending',
    }


@pytest.fixture
def production_session():
    return FormLifecycle(
        resolver=production_resolver(),
        synchronizer=DerivedFieldSynchronizer(production_derived_rules()),
        name='production',
    )


@pytest.fixture
def task_session():
    return FormLifecycle(
        synchronizer=DerivedFieldSynchronizer(task_derived_rules()),
        name='task',
    )


@pytest.fixture
def animal_session():
    return FormLifecycle(resolver=animal_resolver(), name='animal')
