"""Pytest configuration and shared fixtures."""
import asyncio
import copy
from typing import List, Optional

import pytest
from pydantic import BaseModel, Field

from formstate import FormConfig, FormState, ValidationResult


class Address(BaseModel):
    """Nested model with plain defaults."""
    street: str = ''
    city: str = ''


class Item(BaseModel):
    """List element model."""
    name: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1, le=99)


class Order(BaseModel):
    """Form model used across the suite."""
    customer: str = Field(min_length=2, description='Customer name')
    email: Optional[str] = None
    address: Address = Field(default_factory=Address)
    items: List[Item] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    express: bool = False


class RecordingValidator:
    """Validator double that records every call and can be made slow.

    Args:
        errors_for: Maps the validated data to an error map ({} means valid)
        delays: Seconds to sleep, consumed one per async call
    """

    def __init__(self, errors_for=None, delays=None):
        self.errors_for = errors_for or (lambda data: {})
        self.delays = list(delays or [])
        self.calls = []

    def parse(self, data):
        return data

    def _evaluate(self, data):
        errors = self.errors_for(data)
        return ValidationResult.failure(errors) if errors else ValidationResult.ok(data)

    def safe_parse(self, data):
        self.calls.append(copy.deepcopy(data))
        return self._evaluate(data)

    async def safe_parse_async(self, data):
        self.calls.append(copy.deepcopy(data))
        delay = self.delays.pop(0) if self.delays else 0
        await asyncio.sleep(delay)
        return self._evaluate(data)


@pytest.fixture
def fast_config():
    """Config with a short debounce window."""
    return FormConfig(debounce_seconds=0.01)


@pytest.fixture
def order_data():
    """Initial data with three items, two of them invalid."""
    return {
        'customer': 'Bob',
        'items': [{'name': ''}, {'name': 'bolt'}, {'name': ''}],
    }


@pytest.fixture
def make_form(fast_config):
    """Factory building Order forms; disposes every form at teardown."""
    forms = []

    def factory(initial_data=None, config=None):
        form = FormState.from_model(Order, initial_data, config or fast_config)
        forms.append(form)
        return form

    yield factory

    for form in forms:
        form.dispose()
