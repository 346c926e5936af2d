"""
Integration tests for FormState.

Tests actual usage patterns: editing a form, validating it after the debounce
window, restructuring arrays and submitting.
"""
import asyncio

import pytest

from formstate import CustomValidator, FormConfig, FormState

from conftest import Order, RecordingValidator


# ==================== CONSTRUCTION ====================

def test_initial_data_is_merged_with_defaults(make_form):
    """Missing fields take model defaults; caller data is copied, not shared."""
    initial = {'customer': 'Bob', 'tags': ['a']}
    form = make_form(initial)
    assert form.raw_data()['address'] == {'street': '', 'city': ''}
    form.data['tags'].push('b')
    assert initial['tags'] == ['a']


def test_initial_state(make_form):
    form = make_form({'customer': 'Bob'})
    assert form.is_valid is False
    assert form.is_validating is False
    assert form.error_count == 0
    assert form.errors == {}
    assert form.touched == {}


def test_from_model_uses_config_depth():
    form = FormState.from_model(Order, config=FormConfig(max_path_depth=3))
    assert form.validator.max_depth == 3
    form.dispose()


def test_validator_without_resolve_defaults_parses_initial_data():
    class ParseOnly:
        def parse(self, data):
            return {**data, 'parsed': True}

        def safe_parse(self, data):
            return {'success': True, 'data': data}

    form = FormState(ParseOnly(), {'name': 'x'})
    assert form.raw_data() == {'name': 'x', 'parsed': True}
    form.dispose()


# ==================== VALIDATION SCENARIOS ====================

@pytest.mark.asyncio
async def test_min_length_scenario(make_form):
    """Errors appear and disappear as the debounced validation catches up."""
    form = make_form({'customer': 'Bob'})

    form.data['customer'] = ''
    await asyncio.sleep(0.1)
    assert form.errors['customer']
    assert form.is_valid is False

    form.data['customer'] = 'Alice'
    await asyncio.sleep(0.1)
    assert 'customer' not in form.errors
    assert form.is_valid is True
    assert form.error_count == 0


@pytest.mark.asyncio
async def test_swap_moves_errors_with_elements(make_form, order_data):
    """Errors at items.0/items.2 follow the elements to items.1/items.2."""
    form = make_form(order_data)
    await form.validate()
    assert set(form.errors) == {'items.0.name', 'items.2.name'}

    form.swap('items', 0, 1)
    assert set(form.errors) == {'items.1.name', 'items.2.name'}
    assert form.touched == {'items': True}

    await form.flush()
    assert set(form.errors) == {'items.1.name', 'items.2.name'}


@pytest.mark.asyncio
async def test_remove_shifts_touched_and_errors(make_form, order_data):
    form = make_form(order_data)
    await form.validate()
    form.data['items'][1]['name'] = 'nut'

    removed = form.remove('items', 0, 1)

    assert removed[0]['name'] == ''
    assert form.touched == {'items.0.name': True, 'items': True}
    assert set(form.errors) == {'items.1.name'}


@pytest.mark.asyncio
async def test_custom_error_persists_across_validation(make_form):
    form = make_form({'customer': 'Bob'})
    form.set_custom_error('email', 'Already registered')

    form.data['customer'] = 'Robert'
    await form.flush()

    assert form.is_valid is True
    assert form.get_field('email').errors == ['Already registered']

    form.clear_custom_errors('email')
    assert form.get_field('email').errors == []


@pytest.mark.asyncio
async def test_debounced_burst_validates_once(fast_config):
    validator = RecordingValidator()
    form = FormState(validator, {'name': ''}, fast_config.with_overrides(debounce_seconds=0.05))
    for letter in 'alice':
        form.data['name'] = form.data['name'] + letter
    await asyncio.sleep(0.2)
    assert len(validator.calls) == 1
    assert validator.calls[0] == {'name': 'alice'}
    form.dispose()


@pytest.mark.asyncio
async def test_array_burst_and_field_edit_collapse(fast_config):
    validator = RecordingValidator()
    form = FormState(validator, {'tags': [], 'name': ''}, fast_config)
    await form.flush()
    validator.calls.clear()

    form.push('tags', 'a')
    form.push('tags', 'b')
    form.swap('tags', 0, 1)
    form.data['name'] = 'x'
    await asyncio.sleep(0.1)

    assert len(validator.calls) == 1
    assert validator.calls[0] == {'tags': ['b', 'a'], 'name': 'x'}
    form.dispose()


@pytest.mark.asyncio
async def test_last_issued_validation_wins(fast_config):
    """An older, slower pass finishing last does not overwrite the newer result."""
    validator = RecordingValidator(
        errors_for=lambda data: {} if data['name'] == 'new' else {'name': ['stale']},
        delays=[0.05, 0],
    )
    form = FormState(validator, {'name': 'old'}, fast_config)

    slow = asyncio.ensure_future(form.validate())
    await asyncio.sleep(0)
    form.data['name'] = 'new'
    assert await form.validate() is True
    await slow

    assert form.is_valid is True
    assert form.errors == {}
    form.dispose()


@pytest.mark.asyncio
async def test_validator_failure_keeps_errors(fast_config, caplog):
    """A raising validator marks the form invalid without touching the error map."""
    def rule(value, data):
        return [] if value else ['Required']

    class Strict(CustomValidator):
        async def safe_parse_async(self, data):
            if data.get('name') == 'explode':
                raise RuntimeError('validator crashed')
            return await super().safe_parse_async(data)

    form = FormState(Strict({'name': rule}), {'name': ''}, fast_config)
    await form.validate()
    assert form.errors == {'name': ['Required']}

    form.data['name'] = 'explode'
    assert await form.validate() is False
    assert form.errors == {'name': ['Required']}
    assert form.error_count == 1
    assert 'validator crashed' in caplog.text
    form.dispose()


@pytest.mark.asyncio
async def test_is_validating_during_slow_pass(fast_config):
    validator = RecordingValidator(delays=[0.05])
    form = FormState(validator, {'name': 'x'}, fast_config)
    states = []
    form.on_change(lambda: states.append(form.is_validating))

    await form.validate()

    assert True in states
    assert form.is_validating is False
    form.dispose()


# ==================== TOUCHED ====================

def test_touched_helpers(make_form):
    form = make_form({'customer': 'Bob'})
    form.mark_touched('customer')
    form.mark_touched('email')
    form.mark_field_as_pristine('email')
    assert form.touched == {'customer': True}
    form.mark_all_as_pristine()
    assert form.touched == {}


@pytest.mark.asyncio
async def test_mark_all_touched_marks_error_paths(make_form, order_data):
    form = make_form(order_data)
    await form.validate()
    form.mark_all_touched()
    assert form.touched == {'items.0.name': True, 'items.2.name': True}


# ==================== RESET ====================

@pytest.mark.asyncio
async def test_reset_is_idempotent(make_form, order_data):
    form = make_form(order_data)
    await form.validate()
    form.data['customer'] = 'Changed'
    form.push('items', {'name': 'extra'})
    form.set_custom_error('customer', 'taken')

    form.reset()
    first = (form.snapshot(), form.touched, form.errors, form.custom_errors)
    form.reset()
    second = (form.snapshot(), form.touched, form.errors, form.custom_errors)

    assert first == second
    assert first[0]['customer'] == 'Bob'
    assert len(first[0]['items']) == 3
    assert first[1:] == ({}, {}, {})
    assert form.is_valid is False


@pytest.mark.asyncio
async def test_reset_discards_in_flight_validation():
    validator = RecordingValidator(errors_for=lambda data: {'name': ['bad']}, delays=[0.05])
    form = FormState(validator, {'name': 'x'}, FormConfig(debounce_seconds=10))
    pending = asyncio.ensure_future(form.validate())
    await asyncio.sleep(0)
    form.reset()
    await pending
    assert form.errors == {}
    form.dispose()


@pytest.mark.asyncio
async def test_reset_revalidates_after_debounce(make_form):
    """A valid form regains is_valid once the pass scheduled by reset runs."""
    form = make_form({'customer': 'Bob'})
    await form.validate()
    assert form.is_valid is True

    form.reset()
    assert form.is_valid is False
    assert form.errors == {}

    await asyncio.sleep(0.1)
    assert form.is_valid is True


def test_reset_rebuilds_wrappers(make_form, order_data):
    form = make_form(order_data)
    items_before = form.data['items']
    form.reset()
    assert form.data['items'] is not items_before
    assert form.data['items'] == form.raw_data()['items']


# ==================== ARRAY OPERATIONS BY PATH ====================

def test_push_insert_move_splice(make_form):
    form = make_form({'customer': 'Bob', 'tags': ['a', 'b']})
    assert form.push('tags', 'c', 'd') == 4
    form.insert('tags', 1, 'x')
    assert form.raw_data()['tags'] == ['a', 'x', 'b', 'c', 'd']
    form.move('tags', 0, 4)
    assert form.raw_data()['tags'] == ['x', 'b', 'c', 'd', 'a']
    assert form.splice('tags', 1, 2, 'y') == ['b', 'c']
    assert form.raw_data()['tags'] == ['x', 'y', 'd', 'a']


def test_insert_shifts_bookkeeping(make_form, order_data):
    form = make_form(order_data)
    form.set_custom_error('items.1.name', 'duplicate')
    form.insert('items', 0, {'name': 'first'}, {'name': 'second'})
    assert form.custom_errors == {'items.3.name': ['duplicate']}


def test_array_operation_on_non_list_is_noop(make_form, caplog):
    form = make_form({'customer': 'Bob'})
    assert form.push('customer', 'x') is None
    assert form.raw_data()['customer'] == 'Bob'
    assert form.touched == {}
    assert 'not a list' in caplog.text


def test_array_operation_with_bracket_path():
    form = FormState(CustomValidator({}), {'groups': [{'members': ['a', 'b']}]})
    form.mark_touched('groups.0.members.1')
    form.insert('groups[0].members', 0, 'z')
    assert form.raw_data()['groups'][0]['members'] == ['z', 'a', 'b']
    assert form.touched == {'groups.0.members.2': True, 'groups.0.members': True}
    form.dispose()


def test_swap_twice_restores_bookkeeping(make_form, order_data):
    form = make_form(order_data)
    form.mark_touched('items.0.name')
    form.set_custom_error('items.2.name', 'e')
    form.swap('items', 0, 2)
    form.swap('items', 0, 2)
    assert form.touched == {'items.0.name': True, 'items': True}
    assert form.custom_errors == {'items.2.name': ['e']}


# ==================== DATA REPLACEMENT ====================

def test_assigning_data_replaces_tree_without_touching(make_form):
    form = make_form({'customer': 'Bob'})
    old_address = form.data['address']
    form.data = {'customer': 'Eve', 'tags': ['new']}
    assert form.raw_data()['customer'] == 'Eve'
    assert form.raw_data()['address'] == {'street': '', 'city': ''}
    assert form.touched == {}
    assert form.data['address'] is not old_address


def test_assigning_data_built_from_wrappers(make_form):
    """Wrapped values in assigned or initial data are stored as plain copies."""
    source = make_form({'customer': 'Bob', 'address': {'city': 'Oslo'}})
    form = make_form(source.data)
    form.data = {'customer': 'Eve', 'address': source.data['address']}
    assert type(form.raw_data()['address']) is dict
    assert form.raw_data()['address'] is not source.raw_data()['address']
    assert form.snapshot()['address'] == {'street': '', 'city': 'Oslo'}


def test_snapshot_is_a_copy(make_form):
    form = make_form({'customer': 'Bob'})
    snapshot = form.snapshot()
    snapshot['address']['city'] = 'Elsewhere'
    assert form.raw_data()['address']['city'] == ''


# ==================== BATCH ====================

@pytest.mark.asyncio
async def test_batch_schedules_single_pass(fast_config):
    validator = RecordingValidator()
    form = FormState(validator, {'name': '', 'tags': []}, fast_config)
    await form.flush()
    validator.calls.clear()

    with form.batch():
        form.data['name'] = 'a'
        with form.batch():
            form.push('tags', 1)
        assert not form._scheduler.pending
        form.data['name'] = 'ab'

    await asyncio.sleep(0.1)
    assert validator.calls == [{'name': 'ab', 'tags': [1]}]
    form.dispose()


# ==================== SUBMIT ====================

@pytest.mark.asyncio
async def test_submit_calls_on_success_with_data(make_form):
    form = make_form({'customer': 'Bob'})
    received = []

    async def on_success(data):
        received.append(data)

    assert await form.submit(on_success=on_success, on_error=lambda errors: None) is True
    assert received[0]['customer'] == 'Bob'


@pytest.mark.asyncio
async def test_submit_calls_on_error_with_errors(make_form):
    form = make_form({'customer': ''})
    received = []
    assert await form.submit(on_success=lambda data: None, on_error=received.append) is False
    assert 'customer' in received[0]


# ==================== LISTENERS & DISPOSAL ====================

def test_change_listeners(make_form, caplog):
    form = make_form({'customer': 'Bob'})
    seen = []

    def broken():
        raise RuntimeError('listener broke')

    form.on_change(lambda: seen.append(dict(form.touched)))
    form.on_change(broken)
    form.data['customer'] = 'Eve'
    assert seen[-1] == {'customer': True}
    assert 'listener broke' in caplog.text

    form.off_change(broken)
    form.mark_all_as_pristine()
    assert seen[-1] == {}


def test_dispose_is_idempotent_and_stops_tracking(make_form):
    form = make_form({'customer': 'Bob'})
    form.mark_touched('customer')
    calls = []
    form.on_change(lambda: calls.append(1))

    form.dispose()
    form.dispose()

    assert form.disposed
    assert form.touched == {}
    form.data['customer'] = 'Eve'
    form.push('tags', 'x')
    form.get_field('customer').value = 'Zed'
    assert form.touched == {}
    assert calls == []
