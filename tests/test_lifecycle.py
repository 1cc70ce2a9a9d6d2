"""Tests for the FormLifecycle session state machine."""
import asyncio
import json

import pytest

from formstate import (
    DerivedFieldSynchronizer,
    FormLifecycle,
    FormMode,
    FormState,
    InvalidStateError,
    PersistenceError,
    SubmissionInFlightError,
)
from formstate.catalog import production_validators, task_derived_rules, task_validators
from formstate.paths import get_path
from formstate.snapshot_model import SessionSnapshot
from formstate.taxonomy import CascadeRule, TaxonomyResolver, TaxonomyTable


def failing(error):
    def call(*args):
        raise error
    return call


class TestStart:

    def test_create_goes_straight_to_ready(self, production_session, production_record):
        transitions = []
        production_session.on_transition(lambda old, new: transitions.append((old, new)))
        production_session.start(FormMode.CREATE, default_record=production_record)

        assert production_session.state is FormState.READY
        assert production_session.mode is FormMode.CREATE
        assert transitions == [(FormState.IDLE, FormState.READY)]
        assert not production_session.errors.has_errors()

    def test_default_record_is_copied(self, production_session, production_record):
        production_session.start(FormMode.CREATE, default_record=production_record)
        production_session.edit('collector.name', 'Ann')
        assert production_record['collector']['name'] == ''

    def test_edit_fetches_and_normalizes(self, production_session, production_record):
        stale = dict(production_record, quantity='4', price_per_unit='1.5', total_price=None)
        stale['product_grade'] = {'name': 'Prime'}  # not a milk grade

        transitions = []
        production_session.on_transition(lambda old, new: transitions.append(new))
        production_session.start(FormMode.EDIT, fetch=lambda: stale)

        assert transitions == [FormState.LOADING, FormState.READY]
        assert get_path(production_session.record, 'product_grade.name') == 'Grade A'
        assert production_session.record['total_price'] == '6.00'
        assert not production_session.load_degraded

    def test_fetch_failure_uses_fallback(self, production_session, production_record):
        cached = dict(production_record, trace_number='CACHED')

        def fetch():
            raise ConnectionError('offline')

        production_session.start(FormMode.EDIT, fetch=fetch, fallback=cached)
        assert production_session.state is FormState.READY
        assert production_session.load_degraded
        assert production_session.load_error == 'offline'
        assert production_session.record['trace_number'] == 'CACHED'
        # Session stays usable
        production_session.edit('collector.name', 'Ann')

    def test_fetch_failure_without_fallback_uses_default(self, animal_session):
        animal_session.start(FormMode.EDIT, default_record={'animal_type': 'sheep'},
                             fetch=failing(RuntimeError()))
        assert animal_session.load_degraded
        assert animal_session.load_error == 'Failed to load record'
        assert animal_session.record == {'animal_type': 'sheep', 'breed': 'Merino'}

    def test_fetch_returning_non_mapping_degrades(self, production_session):
        production_session.start(FormMode.EDIT, fetch=lambda: None, fallback={'trace_number': 'CACHED'})
        assert production_session.state is FormState.READY
        assert production_session.load_degraded
        assert 'NoneType' in production_session.load_error
        assert production_session.record['trace_number'] == 'CACHED'

    def test_edit_mode_requires_fetch(self, production_session):
        with pytest.raises(ValueError):
            production_session.start(FormMode.EDIT)

    def test_start_only_once(self, production_session):
        production_session.start(FormMode.CREATE, default_record={})
        with pytest.raises(InvalidStateError):
            production_session.start(FormMode.CREATE, default_record={})

    def test_start_accepts_mode_value(self, production_session):
        production_session.start('create', default_record={})
        assert production_session.mode is FormMode.CREATE


class TestEdit:

    def test_scenario_animal_type_cascade(self):
        resolver = TaxonomyResolver([CascadeRule('animal_type', 'breed', TaxonomyTable({
            'cattle': ['Angus', 'Hereford'],
            'poultry': ['Leghorn', 'Sussex'],
        }))])
        session = FormLifecycle(resolver=resolver)
        session.start(FormMode.CREATE, default_record={'animal_type': 'cattle', 'breed': 'Angus'})
        session.edit('animal_type', 'poultry')
        assert session.record['breed'] == 'Leghorn'

    def test_scenario_total_price(self, production_session):
        production_session.start(FormMode.CREATE, default_record={'quantity': '10', 'price_per_unit': '2.5'})
        production_session.edit('quantity', '10')
        assert production_session.record['total_price'] == '25.00'
        production_session.edit('price_per_unit', '2.5')
        assert production_session.record['total_price'] == '25.00'

    def test_scenario_duration(self, task_session):
        task_session.start(FormMode.CREATE, default_record={
            'start_date': '2025-01-01', 'start_time': '09:00', 'duration': 60,
            'end_date': '2025-01-01', 'end_time': '10:00',
        })
        task_session.edit('duration', 90)
        assert (task_session.record['end_date'], task_session.record['end_time']) == ('2025-01-01', '10:30')
        task_session.edit('end_time', '11:00')
        assert task_session.record['duration'] == 120

    def test_edit_clears_its_error(self, production_session, production_record):
        production_session.start(FormMode.CREATE, default_record=production_record)
        production_session.submit(failing(PersistenceError('invalid', errors={
            'collector.name': ['required'],
            'trace_number': ['taken'],
        })))
        for path in ['collector.name', 'trace_number']:
            assert path in production_session.errors
            production_session.edit(path, 'x')
            assert path not in production_session.errors

    def test_edit_replaces_record_object(self, production_session, production_record):
        production_session.start(FormMode.CREATE, default_record=production_record)
        before = production_session.record
        production_session.edit('collector.name', 'Ann')
        assert production_session.record is not before
        assert get_path(before, 'collector.name') == ''

    def test_record_changed_reports_derived_and_cascaded_paths(self, production_session, production_record):
        changes = []
        production_session.on_record_changed(changes.append)
        production_session.start(FormMode.CREATE, default_record=dict(production_record, price_per_unit='3'))
        changes.clear()

        production_session.edit('quantity', '2')
        assert changes == [{'quantity', 'total_price'}]

    def test_edit_before_start_rejected(self, production_session):
        with pytest.raises(InvalidStateError):
            production_session.edit('quantity', '1')

    def test_sub_record_edit_cascades(self, production_session, production_record):
        production_session.start(FormMode.CREATE, default_record=production_record)
        production_session.edit('product_category', {'name': 'eggs', 'description': '', 'measurement_unit': 'Dozen'})
        assert get_path(production_session.record, 'product_grade.name') == 'AA'
        assert get_path(production_session.record, 'production_method.method_name') == 'Free Range'

    def test_sub_record_edit_clears_nested_errors(self, production_session, production_record):
        production_session.start(FormMode.CREATE, default_record=production_record)
        production_session.submit(failing(PersistenceError('invalid', errors={
            'collector.name': 'required',
            'collector.contact_info': 'required',
            'trace_number': 'taken',
        })))
        production_session.edit('collector', {'name': 'Ann', 'contact_info': '555-0100'})
        assert list(production_session.errors) == ['trace_number']

    def test_end_entered_before_start(self, task_session):
        task_session.start(FormMode.CREATE, default_record={'title': 'Shearing'})
        for path, value in [('end_date', '2025-01-01'), ('end_time', '10:00'),
                            ('start_date', '2025-01-01'), ('start_time', '09:00')]:
            task_session.edit(path, value)
        assert task_session.record['end_time'] == '10:00'
        assert task_session.record['duration'] == 60

    def test_dirty_fields(self, production_session, production_record):
        production_session.start(FormMode.CREATE, default_record=production_record)
        assert not production_session.is_dirty
        production_session.edit('collector.name', 'Ann')
        assert production_session.dirty_fields == {'collector.name'}

    def test_callback_errors_are_contained(self, production_session, caplog):
        def broken(old, new):
            raise RuntimeError('boom')

        production_session.on_transition(broken)
        production_session.start(FormMode.CREATE, default_record={})
        assert production_session.state is FormState.READY
        assert 'boom' in caplog.text

    def test_unsubscribe(self, production_session):
        seen = []
        production_session.on_transition(lambda o, n: seen.append(n))
        callback = production_session._on_transition_callbacks[0]
        production_session.off_transition(callback)
        production_session.start(FormMode.CREATE, default_record={})
        assert seen == []


class TestSubmit:

    def test_success_is_terminal(self, production_session, production_record):
        production_session.start(FormMode.CREATE, default_record=production_record)
        saved = dict(production_record, id=7)

        assert production_session.submit(lambda record: saved) is True
        assert production_session.state is FormState.SUCCESS
        assert production_session.record['id'] == 7
        with pytest.raises(InvalidStateError):
            production_session.edit('quantity', '1')
        with pytest.raises(InvalidStateError):
            production_session.submit(lambda record: None)

    def test_success_without_returned_record(self, production_session, production_record):
        production_session.start(FormMode.CREATE, default_record=production_record)
        assert production_session.submit(lambda record: None)
        assert production_session.record == production_record

    def test_persist_receives_a_copy(self, production_session, production_record):
        production_session.start(FormMode.CREATE, default_record=production_record)

        def persist(record):
            record['collector']['name'] = 'mutated by server code'
            raise PersistenceError('nope')

        production_session.submit(persist)
        assert get_path(production_session.record, 'collector.name') == ''

    def test_scenario_server_field_errors(self, production_session, production_record):
        transitions = []
        production_session.start(FormMode.CREATE, default_record=production_record)
        production_session.on_transition(lambda old, new: transitions.append(new))

        ok = production_session.submit(failing(PersistenceError.from_payload({
            'message': 'The given data was invalid.',
            'errors': {'collector.name': ['required']},
        })))

        assert ok is False
        assert transitions == [FormState.SUBMITTING, FormState.ERROR, FormState.READY]
        assert production_session.errors.get('collector.name') == ['required']
        assert production_session.submission_error == 'The given data was invalid.'

        production_session.edit('collector.name', 'Ann')
        assert 'collector.name' not in production_session.errors

    def test_json_message_payload(self, production_session, production_record):
        production_session.start(FormMode.CREATE, default_record=production_record)
        body = json.dumps({'message': 'invalid', 'errors': {'quantity': 'The quantity field is required.'}})
        production_session.submit(failing(Exception(body)))
        assert production_session.errors['quantity'] == ['The quantity field is required.']

    def test_opaque_failure_sets_top_level_error(self, production_session, production_record):
        production_session.start(FormMode.CREATE, default_record=production_record)
        production_session.submit(failing(TimeoutError('gateway timeout')))
        assert production_session.state is FormState.READY
        assert production_session.submission_error == 'gateway timeout'
        assert not production_session.errors.has_errors()

    def test_opaque_failure_without_message(self, production_session, production_record):
        production_session.start(FormMode.CREATE, default_record=production_record)
        production_session.submit(failing(RuntimeError()))
        assert production_session.submission_error == 'Failed to save record'

    def test_resubmit_after_error(self, production_session, production_record):
        production_session.start(FormMode.CREATE, default_record=production_record)
        production_session.submit(failing(PersistenceError('down')))
        assert production_session.submit(lambda record: record)
        assert production_session.submission_error is None

    def test_double_submit_rejected(self, production_session, production_record):
        production_session.start(FormMode.CREATE, default_record=production_record)
        attempts = []

        def persist(record):
            with pytest.raises(SubmissionInFlightError):
                production_session.submit(lambda r: r)
            attempts.append(record)
            return record

        assert production_session.submit(persist)
        assert len(attempts) == 1

    def test_edits_during_submit_replayed_after_error(self, production_session, production_record):
        production_session.start(FormMode.CREATE, default_record=production_record)

        def persist(record):
            production_session.edit('collector.name', 'Ann')
            assert get_path(production_session.record, 'collector.name') == ''
            raise PersistenceError('invalid', errors={'collector.name': 'required'})

        production_session.submit(persist)
        assert get_path(production_session.record, 'collector.name') == 'Ann'
        # The replayed edit clears the error it touched
        assert 'collector.name' not in production_session.errors

    def test_edits_during_successful_submit_dropped(self, production_session, production_record):
        production_session.start(FormMode.CREATE, default_record=production_record)

        def persist(record):
            production_session.edit('collector.name', 'Ann')
            return record

        production_session.submit(persist)
        assert get_path(production_session.record, 'collector.name') == ''


class TestValidation:

    def test_validators_block_submission(self, production_session, production_record):
        session = FormLifecycle(
            resolver=production_session.resolver,
            synchronizer=production_session.synchronizer,
            validators=production_validators(),
        )
        session.start(FormMode.CREATE, default_record=production_record)
        called = []

        assert session.submit(lambda record: called.append(record)) is False
        assert called == []
        assert session.state is FormState.READY
        assert session.errors['collector.name'] == ['Collector name is required.']
        assert session.errors.first_error('quantity') == 'The quantity field is required.'
        assert session.submission_error == 'Please correct the errors in the form'

    def test_negative_duration_surfaces_as_error(self, task_record):
        session = FormLifecycle(
            synchronizer=DerivedFieldSynchronizer(task_derived_rules()),
            validators=task_validators(),
        )
        session.start(FormMode.CREATE, default_record=task_record)
        session.edit('end_time', '08:00')
        assert session.record['duration'] == -60
        assert session.validate()['duration'] == ['The task must end after it starts.']

    def test_valid_record_submits(self, task_record):
        session = FormLifecycle(validators=task_validators())
        session.start(FormMode.CREATE, default_record=task_record)
        assert session.submit(lambda record: record)


class TestReset:

    def test_reset_restores_loaded_record(self, production_session, production_record):
        production_session.start(FormMode.EDIT, fetch=lambda: production_record)
        production_session.edit('collector.name', 'Ann')
        production_session.submit(failing(PersistenceError('x', errors={'quantity': 'bad'})))

        production_session.reset()
        assert production_session.record == production_record
        assert not production_session.errors.has_errors()
        assert production_session.submission_error is None
        assert not production_session.is_dirty

    def test_reset_before_start_rejected(self, production_session):
        with pytest.raises(InvalidStateError):
            production_session.reset()


class TestSnapshot:

    def test_snapshot_round_trip(self, production_session, production_record):
        production_session.start(FormMode.CREATE, default_record=production_record)
        production_session.edit('quantity', '2')
        production_session.submit(failing(PersistenceError('x', errors={'trace_number': 'taken'})))

        snapshot = production_session.snapshot()
        assert snapshot.state == 'ready'
        assert snapshot.errors == {'trace_number': ['taken']}
        assert 'quantity' in snapshot.dirty_fields

        restored = SessionSnapshot.from_dict(json.loads(json.dumps(snapshot.to_dict())))
        assert restored == snapshot

    def test_snapshot_record_as_fallback(self, production_session, production_record):
        production_session.start(FormMode.CREATE, default_record=production_record)
        production_session.edit('collector.name', 'Ann')
        cached = production_session.snapshot().record

        session = FormLifecycle(resolver=production_session.resolver)
        session.start(FormMode.EDIT, fetch=failing(OSError('offline')), fallback=cached)
        assert get_path(session.record, 'collector.name') == 'Ann'


class TestAsync:

    def test_start_async(self, production_session, production_record):
        async def fetch():
            await asyncio.sleep(0)
            return production_record

        asyncio.run(production_session.start_async(FormMode.EDIT, fetch=fetch))
        assert production_session.state is FormState.READY

    def test_start_async_non_mapping_degrades(self, production_session, production_record):
        async def fetch():
            return ['not', 'a', 'record']

        asyncio.run(production_session.start_async(FormMode.EDIT, fetch=fetch, default_record=production_record))
        assert production_session.state is FormState.READY
        assert production_session.load_degraded
        assert production_session.record == production_record

    def test_concurrent_submit_rejected(self, production_session, production_record):
        production_session.start(FormMode.CREATE, default_record=production_record)
        release = None

        async def persist(record):
            await release.wait()
            return record

        async def scenario():
            nonlocal release
            release = asyncio.Event()
            first = asyncio.ensure_future(production_session.submit_async(persist))
            await asyncio.sleep(0)
            assert production_session.is_submitting

            with pytest.raises(SubmissionInFlightError):
                await production_session.submit_async(persist)

            production_session.edit('collector.name', 'late edit')
            release.set()
            return await first

        assert asyncio.run(scenario()) is True
        assert production_session.state is FormState.SUCCESS

    def test_async_failure_replays_edits(self, production_session, production_record):
        production_session.start(FormMode.CREATE, default_record=production_record)

        async def persist(record):
            await asyncio.sleep(0)
            raise PersistenceError('invalid', errors={'collector.name': 'required'})

        async def scenario():
            task = asyncio.ensure_future(production_session.submit_async(persist))
            await asyncio.sleep(0)
            production_session.edit('quantity', '3')
            return await task

        assert asyncio.run(scenario()) is False
        assert production_session.record['quantity'] == '3'
        assert production_session.errors['collector.name'] == ['required']
