"""
Per-path field views.

A FieldView is the object a UI input binds to. It exposes the value at one
dotted path plus that path's touched flag, errors and input constraints, all
read live from the owning FormState:

    name = form.get_field('name')
    name.value = 'Alice'        # write + touch + schedule validation
    name.error                  # first schema error, else first custom error
    name.constraints            # {'required': True, 'type': 'text', 'minlength': 2}

Views are memoized per raw path in the field-view cache and dropped when an
ancestor array is structurally mutated, so a view never outlives its ordinal.
"""
import logging
from typing import Any, Dict, FrozenSet, List, Optional, TYPE_CHECKING

from formstate.errors import MalformedPathError
from formstate.paths import CompiledPath, normalize_brackets, normalize_path

if TYPE_CHECKING:
    from formstate.form_state import FormState

logger = logging.getLogger(__name__)


class FieldView:
    """Live façade over one path of a FormState."""

    def __init__(self, form: 'FormState', path: str, compiled: CompiledPath, constraints: Dict[str, Any]):
        self._form = form
        self._path = path
        self._compiled = compiled
        self._constraints = constraints

    @property
    def path(self) -> str:
        return self._path

    @property
    def value(self) -> Any:
        """Current value; containers come back wrapped (ReactiveDict/ReactiveList)."""
        raw = self._compiled.get(self._form._root)
        return self._form._tree.wrap(raw, self._path)

    @value.setter
    def value(self, new_value: Any) -> None:
        if self._form.disposed:
            return
        self._form._tree.write_path(self._path, new_value)

    @property
    def touched(self) -> bool:
        return self._form._touched.get(self._path, False)

    @touched.setter
    def touched(self, flag: bool) -> None:
        if flag:
            self._form.mark_touched(self._path)
        else:
            self._form.mark_field_as_pristine(self._path)

    @property
    def error(self) -> Optional[str]:
        schema = self._form._errors.get(self._path)
        if schema:
            return schema[0]
        custom = self._form._custom_errors.get(self._path)
        return custom[0] if custom else None

    @error.setter
    def error(self, message: str) -> None:
        self._form.set_custom_error(self._path, message)

    @property
    def errors(self) -> List[str]:
        """Schema errors followed by custom errors."""
        return list(self._form._errors.get(self._path, ())) + list(self._form._custom_errors.get(self._path, ()))

    @errors.setter
    def errors(self, messages: List[str]) -> None:
        self._form.set_custom_errors(self._path, messages)

    @property
    def constraints(self) -> Dict[str, Any]:
        return self._constraints

    @property
    def is_validating(self) -> bool:
        return self._form.is_validating

    def __repr__(self) -> str:
        return f'FieldView({self._path!r}, value={self._compiled.get(self._form._root)!r}, touched={self.touched})'


class InertFieldView:
    """Stand-in for a path the validator does not declare. Reads are empty, writes are ignored."""

    def __init__(self, path: str):
        self._path = path

    @property
    def path(self) -> str:
        return self._path

    @property
    def value(self) -> Any:
        return None

    @value.setter
    def value(self, new_value: Any) -> None:
        logger.debug(f"Ignoring write to undeclared path {self._path!r}")

    @property
    def touched(self) -> bool:
        return False

    @touched.setter
    def touched(self, flag: bool) -> None:
        pass

    @property
    def error(self) -> Optional[str]:
        return None

    @error.setter
    def error(self, message: str) -> None:
        pass

    @property
    def errors(self) -> List[str]:
        return []

    @errors.setter
    def errors(self, messages: List[str]) -> None:
        pass

    @property
    def constraints(self) -> Dict[str, Any]:
        return {}

    @property
    def is_validating(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f'InertFieldView({self._path!r})'


class FieldViewFactory:
    """Builds and memoizes the FieldView for each path of one FormState.

    The validator's declared path set is read once, on first use. An empty
    (or absent) declaration accepts every path.
    """

    def __init__(self, form: 'FormState'):
        self._form = form
        self._declared: Optional[FrozenSet[str]] = None

    @property
    def declared_paths(self) -> FrozenSet[str]:
        if self._declared is None:
            get_paths = getattr(self._form.validator, 'get_paths', None)
            self._declared = frozenset(get_paths() if get_paths is not None else ())
        return self._declared

    def is_declared(self, path: str) -> bool:
        declared = self.declared_paths
        return not declared or normalize_path(path) in declared

    def get(self, path: str):
        """Return the cached FieldView for ``path``, or an uncached InertFieldView.

        Bracket ordinals are accepted: ``items[0].name`` and ``items.0.name``
        resolve to the same view.
        """
        path = normalize_brackets(path) if isinstance(path, str) else path
        cached = self._form._caches.fields.get(path)
        if cached is not None:
            return cached

        try:
            compiled = self._form._caches.compile(path)
        except MalformedPathError as e:
            logger.warning(f"get_field: {e}")
            return InertFieldView(path)

        if not self.is_declared(compiled.raw):
            logger.debug(f"get_field: {path!r} is not a declared path")
            return InertFieldView(path)

        view = FieldView(self._form, path, compiled, self._constraints_for(path))
        self._form._caches.fields.put(path, view)
        return view

    def _constraints_for(self, path: str) -> Dict[str, Any]:
        get_input_attributes = getattr(self._form.validator, 'get_input_attributes', None)
        if get_input_attributes is None:
            return {}
        try:
            return dict(get_input_attributes(path) or {})
        except Exception as e:
            logger.warning(f"Could not derive input constraints for {path!r}: {e}")
            return {}
