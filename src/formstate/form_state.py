"""
FormState: the form data-binding engine.

One FormState owns a nested data tree together with three path-keyed maps
(touched flags, schema errors, custom errors) and keeps them consistent while
the tree is edited through any of its entry points:

- wrapped tree writes:      form.data['name'] = 'Alice'
- field views:              form.get_field('name').value = 'Alice'
- array operations:         form.push('items', {...}) / form.data['items'].swap(0, 1)

Every entry point folds into the same discipline, synchronously and in this
order: value updated, path touched, ordinal-keyed bookkeeping remapped (for
structural array changes), per-element caches invalidated, validation
scheduled. Validation itself is debounced and runs on the asyncio event loop.

Lifecycle: created with a validator (and optional initial data), edited,
validated/submitted, and finally dispose()d.

Thread safety: Not thread-safe (all operations expected on one event loop).
"""
from contextlib import contextmanager
import copy
import inspect
import logging
from typing import Any, Callable, Dict, Generator, List, Optional, Type

from formstate.cache import CacheManager
from formstate.config import DEFAULT_CONFIG, FormConfig
from formstate.errors import MalformedPathError
from formstate.fields import FieldViewFactory
from formstate.paths import normalize_brackets
from formstate.reactive import ReactiveDict, ReactiveTree, to_raw
from formstate.remap import StructuralMutation, apply_mutation
from formstate.scheduler import ValidationScheduler
from formstate.validators import ErrorMap, PydanticValidator, ValidationResult, to_plain

logger = logging.getLogger(__name__)


class FormState:
    """
    Reactive form model bound to a validator.

    Example:
        class Signup(BaseModel):
            name: str = Field(min_length=2)
            items: List[Item] = Field(default_factory=list)

        form = FormState.from_model(Signup, {'name': ''})
        form.data.name = 'Alice'
        form.push('items', {'title': 'first'})
        if await form.validate():
            ...

    Args:
        validator: Object implementing the Validator protocol
        initial_data: Starting values, merged with the validator's defaults
        config: FormConfig (DEFAULT_CONFIG if omitted)
    """

    def __init__(self, validator: Any, initial_data: Any = None, config: Optional[FormConfig] = None):
        self.validator = validator
        self.config = config or DEFAULT_CONFIG
        self._initial_data = copy.deepcopy(to_plain(to_raw(initial_data))) if initial_data is not None else {}

        self._caches = CacheManager(self.config)
        self._tree = ReactiveTree(self)
        self._fields = FieldViewFactory(self)

        self._touched: Dict[str, bool] = {}
        self._errors: ErrorMap = {}
        self._custom_errors: ErrorMap = {}
        self._is_valid = False
        self._error_count = 0

        self._internal = False
        self._batch_depth = 0
        self._batch_requested = False
        self._disposed = False
        self._on_change_callbacks: List[Callable[[], None]] = []

        self._scheduler = ValidationScheduler(
            validator,
            snapshot=self.snapshot,
            on_result=self._apply_validation_result,
            debounce_seconds=self.config.debounce_seconds,
            on_status=self._notify_change,
        )

        with self._internal_update():
            self._root: Dict[str, Any] = self._populate(self._initial_data)
        self._scheduler.schedule()

    @classmethod
    def from_model(cls, model_cls: Type, initial_data: Any = None, config: Optional[FormConfig] = None) -> 'FormState':
        """Build a FormState validated by a pydantic model class."""
        config = config or DEFAULT_CONFIG
        return cls(PydanticValidator(model_cls, max_depth=config.max_path_depth), initial_data, config)

    def _populate(self, initial: Any) -> Dict[str, Any]:
        """Build a fresh raw tree: resolved defaults, else parsed data, else a copy."""
        resolve_defaults = getattr(self.validator, 'resolve_defaults', None)
        data: Any = None
        if resolve_defaults is not None:
            try:
                data = resolve_defaults(copy.deepcopy(initial))
            except Exception as e:
                logger.warning(f"resolve_defaults failed, falling back to parse: {e}")
        if data is None:
            try:
                data = self.validator.parse(copy.deepcopy(initial))
            except Exception as e:
                logger.debug(f"Initial data does not parse, using it as is: {e}")
                data = initial
        data = copy.deepcopy(to_plain(data))
        if not isinstance(data, dict):
            logger.warning(f"Form data must be a mapping, got {type(data).__name__}; starting empty")
            return {}
        return data

    @contextmanager
    def _internal_update(self) -> Generator[None, None, None]:
        """Writes inside this block change values and caches only."""
        previous = self._internal
        self._internal = True
        try:
            yield
        finally:
            self._internal = previous

    # ==================== DATA ====================

    @property
    def data(self) -> ReactiveDict:
        """The wrapped data tree. Writes through it are tracked."""
        return self._tree.wrap(self._root, '')

    @data.setter
    def data(self, value: Any) -> None:
        """Replace the whole tree. Touched and error maps are kept as they are."""
        if self._disposed:
            return
        with self._internal_update():
            self._root = self._populate(to_plain(to_raw(value)))
        self._caches.clear()
        self._schedule_validation(batched=False)

    def raw_data(self) -> Dict[str, Any]:
        """The live raw tree. Mutating it directly bypasses all bookkeeping."""
        return self._root

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of the current tree."""
        return copy.deepcopy(self._root)

    def get_field(self, path: str):
        """FieldView for ``path`` (an InertFieldView if the path is undeclared or malformed)."""
        return self._fields.get(path)

    # ==================== TOUCHED ====================

    def mark_touched(self, path: str) -> None:
        self._touched[path] = True
        self._notify_change()

    def mark_field_as_pristine(self, path: str) -> None:
        self._touched.pop(path, None)
        self._notify_change()

    def mark_all_touched(self) -> None:
        """Mark every path that currently has a schema error."""
        for path in self._errors:
            self._touched[path] = True
        self._notify_change()

    def mark_all_as_pristine(self) -> None:
        self._touched.clear()
        self._notify_change()

    # ==================== RESET ====================

    def reset(self) -> None:
        """Rebuild the tree from the initial data and forget all bookkeeping.

        Pending validation is cancelled and in-flight results are discarded.
        Validity is unknown (False) until the fresh pass scheduled here runs
        after the debounce window.
        """
        if self._disposed:
            return
        self._scheduler.cancel(discard_in_flight=True)
        with self._internal_update():
            self._root = self._populate(self._initial_data)
        self._touched.clear()
        self._errors = {}
        self._custom_errors = {}
        self._is_valid = False
        self._error_count = 0
        self._batch_requested = False
        self._caches.clear()
        logger.debug("Form reset to initial data")
        self._scheduler.schedule()
        self._notify_change()

    # ==================== CUSTOM ERRORS ====================

    def set_custom_error(self, path: str, message: str) -> None:
        self._custom_errors[path] = [message]
        self._notify_change()

    def set_custom_errors(self, path: str, messages: List[str]) -> None:
        self._custom_errors[path] = list(messages)
        self._notify_change()

    def clear_custom_errors(self, path: Optional[str] = None) -> None:
        """Clear custom errors for one path, or for every path when ``path`` is None."""
        if path is None:
            self._custom_errors.clear()
        else:
            self._custom_errors.pop(path, None)
        self._notify_change()

    # ==================== ARRAY OPERATIONS ====================

    def _array_operation(self, path: str, name: str, *args: Any) -> Any:
        if self._disposed:
            return None
        try:
            path = normalize_brackets(path)
            return self._tree.run_array_operation(path, name, *args)
        except MalformedPathError as e:
            logger.warning(f"Array operation {name!r} ignored: {e}")
            return None

    def push(self, path: str, *items: Any) -> Any:
        """Append items to the array at ``path``; returns the new length."""
        return self._array_operation(path, 'push', *items)

    def insert(self, path: str, index: int, *items: Any) -> Any:
        """Insert items before ``index`` (negative counts from the end)."""
        return self._array_operation(path, 'splice', index, 0, *items)

    def remove(self, path: str, index: int, count: int = 1) -> Any:
        """Remove ``count`` elements starting at ``index``; returns them."""
        return self._array_operation(path, 'splice', index, count)

    def swap(self, path: str, i: int, j: int) -> None:
        self._array_operation(path, 'swap', i, j)

    def move(self, path: str, source: int, destination: int) -> None:
        self._array_operation(path, 'move', source, destination)

    def splice(self, path: str, start: int, delete_count: Optional[int] = None, *items: Any) -> Any:
        return self._array_operation(path, 'splice', start, delete_count, *items)

    # ==================== MUTATION BOOKKEEPING ====================

    def _record_touch(self, path: str) -> None:
        self._touched[path] = True

    def _record_structural(self, mutation: StructuralMutation) -> None:
        apply_mutation((self._touched, self._errors, self._custom_errors), mutation)

    def _schedule_validation(self, batched: bool) -> None:
        if self._disposed:
            return
        if self._batch_depth:
            self._batch_requested = True
        elif batched:
            self._scheduler.schedule_batched()
        else:
            self._scheduler.schedule()
        self._notify_change()

    @contextmanager
    def batch(self) -> Generator[None, None, None]:
        """Group edits so they schedule a single validation pass.

        Nested blocks are supported; only the outermost one schedules.

        Example:
            with form.batch():
                form.data.name = 'Alice'
                form.push('items', {'title': ''})
        """
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._batch_requested:
                self._batch_requested = False
                if not self._disposed:
                    self._scheduler.schedule()

    # ==================== VALIDATION ====================

    def _apply_validation_result(self, result: Optional[ValidationResult]) -> None:
        if result is None:
            # Validator raised: unknown validity, keep the previous error map
            self._is_valid = False
            self._error_count = 1
        elif result.success:
            self._errors = {}
            self._is_valid = True
            self._error_count = 0
        else:
            self._errors = {path: list(messages) for path, messages in result.errors.items()}
            self._is_valid = False
            self._error_count = len(self._errors)
        logger.debug(f"Validation applied: valid={self._is_valid}, error_count={self._error_count}")
        self._notify_change()

    async def validate(self) -> bool:
        """Validate the current tree now (cancelling any pending pass); returns is_valid."""
        if self._disposed:
            return self._is_valid
        self._scheduler.cancel()
        await self._scheduler.run_now()
        return self._is_valid

    async def flush(self) -> bool:
        """Run a pending validation now and wait for passes in flight; returns is_valid."""
        if not self._disposed:
            await self._scheduler.flush()
        return self._is_valid

    async def submit(
        self,
        on_success: Optional[Callable[[Dict[str, Any]], Any]] = None,
        on_error: Optional[Callable[[ErrorMap], Any]] = None,
    ) -> bool:
        """Validate once, then hand the data or the errors to the matching callback.

        Callbacks may be plain functions or coroutine functions.

        Returns:
            True if the form was valid
        """
        is_valid = await self.validate()
        if is_valid:
            callback, argument = on_success, self.snapshot()
        else:
            callback, argument = on_error, self.errors
        if callback is not None:
            outcome = callback(argument)
            if inspect.isawaitable(outcome):
                await outcome
        return is_valid

    # ==================== STATUS ====================

    @property
    def is_valid(self) -> bool:
        return self._is_valid

    @property
    def is_validating(self) -> bool:
        return self._scheduler.is_validating

    @property
    def error_count(self) -> int:
        return self._error_count

    @property
    def errors(self) -> ErrorMap:
        """Copy of the schema error map."""
        return {path: list(messages) for path, messages in self._errors.items()}

    @property
    def custom_errors(self) -> ErrorMap:
        """Copy of the custom error map."""
        return {path: list(messages) for path, messages in self._custom_errors.items()}

    @property
    def touched(self) -> Dict[str, bool]:
        """Copy of the touched map."""
        return dict(self._touched)

    @property
    def disposed(self) -> bool:
        return self._disposed

    # ==================== CHANGE LISTENERS ====================

    def on_change(self, callback: Callable[[], None]) -> None:
        """Subscribe to tree, touched, error and status changes."""
        if callback not in self._on_change_callbacks:
            self._on_change_callbacks.append(callback)

    def off_change(self, callback: Callable[[], None]) -> None:
        """Unsubscribe from change notifications."""
        if callback in self._on_change_callbacks:
            self._on_change_callbacks.remove(callback)

    def _notify_change(self) -> None:
        """Fire change callbacks (best-effort)."""
        if self._disposed:
            return
        for callback in list(self._on_change_callbacks):
            try:
                callback()
            except Exception as e:
                logger.warning(f"Error in change callback: {e}")

    # ==================== DISPOSAL ====================

    def dispose(self) -> None:
        """Stop validation and release caches, maps and listeners. Safe to call twice."""
        if self._disposed:
            return
        self._scheduler.dispose()
        self._caches.clear()
        self._touched.clear()
        self._errors = {}
        self._custom_errors = {}
        self._on_change_callbacks.clear()
        self._internal = True
        self._disposed = True
        logger.debug("Form disposed")

    def __repr__(self) -> str:
        return (
            f'FormState(valid={self._is_valid}, errors={len(self._errors)}, '
            f'touched={len(self._touched)}, disposed={self._disposed})'
        )
