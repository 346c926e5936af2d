"""
Reactive form state with debounced validation.

This package keeps a nested form data tree, its per-path touched flags and
its per-path error messages consistent while the tree is edited, including
structural edits to arrays that shift element ordinals.

Key Features:
- Wrapped data tree (ReactiveDict / ReactiveList) that tracks every write
- Per-path field views with value, errors, touched flag and input constraints
- Array operations that remap ordinal-keyed bookkeeping in lock-step
- Debounced, batched asyncio validation with last-issued-wins ordering
- Pluggable validators (pydantic models or plain rule functions)
- Bounded per-instance caches

Quick Start:
    >>> from pydantic import BaseModel, Field
    >>> from formstate import FormState
    >>>
    >>> class Signup(BaseModel):
    ...     name: str = Field(min_length=2)
    >>>
    >>> form = FormState.from_model(Signup, {'name': ''})
    >>> form.data.name = 'Alice'
    >>> form.touched
    {'name': True}

Architecture:
    mutation → wrapper intercepts → value updated → path touched
             → (structural) ordinal remap → cache invalidation
             → validation scheduled (debounced) → error map replaced

Modules:
    - paths: Dotted path parsing and compiled accessors
    - cache: Bounded caches and the identity-wrapper cache
    - remap: Ordinal remapping of path-keyed maps
    - array_ops: Mutating list operations and their structural descriptors
    - reactive: ReactiveDict / ReactiveList wrappers and write interception
    - scheduler: Debounced validation scheduling
    - fields: Per-path field views
    - validators: Validator protocol, pydantic and rule-function adapters
    - config: FormConfig tunables
    - form_state: The FormState engine
"""

# Configuration
from formstate.config import FormConfig, DEFAULT_CONFIG

# Errors
from formstate.errors import FormStateError, MalformedPathError

# Paths
from formstate.paths import (
    CompiledPath,
    compile_path,
    parse_path,
    normalize_path,
    is_array_index,
)

# Remapping
from formstate.remap import MutationKind, StructuralMutation, remap_keys, apply_mutation

# Reactive wrappers
from formstate.reactive import ReactiveDict, ReactiveList, unwrap

# Validators
from formstate.validators import (
    Validator,
    ValidationResult,
    PydanticValidator,
    CustomValidator,
)

# Field views
from formstate.fields import FieldView, InertFieldView

# Engine
from formstate.form_state import FormState

__all__ = [
    # Configuration
    'FormConfig',
    'DEFAULT_CONFIG',
    # Errors
    'FormStateError',
    'MalformedPathError',
    # Paths
    'CompiledPath',
    'compile_path',
    'parse_path',
    'normalize_path',
    'is_array_index',
    # Remapping
    'MutationKind',
    'StructuralMutation',
    'remap_keys',
    'apply_mutation',
    # Reactive wrappers
    'ReactiveDict',
    'ReactiveList',
    'unwrap',
    # Validators
    'Validator',
    'ValidationResult',
    'PydanticValidator',
    'CustomValidator',
    # Field views
    'FieldView',
    'InertFieldView',
    # Engine
    'FormState',
]

__version__ = '1.0.0'
__description__ = 'Reactive form state with debounced validation'
