"""
Validator contract and the bundled adapters.

FormState never validates anything itself. It hands the whole raw tree to a
validator object and gets back either the parsed value or a flat
``{path: [message, ...]}`` error map.

Required methods: ``parse`` and ``safe_parse``. Optional methods, looked up
with getattr and skipped when absent: ``safe_parse_async``,
``resolve_defaults``, ``get_paths`` and ``get_input_attributes``.

Two adapters ship with the package:
- PydanticValidator: wraps a pydantic BaseModel subclass
- CustomValidator: wraps a mapping of top-level key -> rule function
"""
import copy
from dataclasses import dataclass, field
import inspect
import logging
import types
from typing import (
    Annotated, Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Tuple, Type, Union,
    get_args, get_origin, runtime_checkable,
)

from pydantic import AnyUrl, BaseModel, EmailStr, NameEmail, ValidationError

from formstate.config import DEFAULT_CONFIG
from formstate.paths import is_array_index, join_path, split_path

logger = logging.getLogger(__name__)

ErrorMap = Dict[str, List[str]]


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of one validation pass: parsed data on success, errors otherwise."""
    success: bool
    data: Any = None
    errors: ErrorMap = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any) -> 'ValidationResult':
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, errors: ErrorMap) -> 'ValidationResult':
        return cls(success=False, errors=errors)


@runtime_checkable
class Validator(Protocol):
    """
    Validator protocol consumed by FormState.

    Methods:
        parse(data): Returns the parsed value or raises.
        safe_parse(data): Returns a ValidationResult, never raises for invalid data.

    Optional methods (detected with getattr):
        safe_parse_async(data): Awaitable ValidationResult.
        resolve_defaults(partial): Full data tree with schema defaults filled in.
        get_paths(): Every declared path, list elements written as ordinal 0.
        get_input_attributes(path): UI constraints (required, type, min, ...).
    """

    def parse(self, data: Any) -> Any:
        ...

    def safe_parse(self, data: Any) -> ValidationResult:
        ...


# ==================== PYDANTIC ADAPTER ====================

_NOT_A_LIST = object()


def flatten_validation_errors(exc: ValidationError) -> ErrorMap:
    """Flatten pydantic errors into ``{'items.0.name': ['...'], ...}``."""
    errors: ErrorMap = {}
    for error in exc.errors():
        key = '.'.join(str(part) for part in error.get('loc', ()))
        errors.setdefault(key, []).append(error.get('msg', 'Invalid value'))
    return errors


def _unwrap_optional(annotation: Any) -> Tuple[Any, bool]:
    """Strip ``Optional[...]`` / ``X | None``; returns (inner, was_optional)."""
    origin = get_origin(annotation)
    union_types = (Union, getattr(types, 'UnionType', Union))
    if origin in union_types:
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        optional = len(args) != len(get_args(annotation))
        if len(args) == 1:
            return args[0], optional
        return annotation, optional
    return annotation, False


def _is_model(annotation: Any) -> bool:
    return isinstance(annotation, type) and issubclass(annotation, BaseModel)


def _string_input_type(annotation: Any) -> Optional[str]:
    """Input type for string-like annotations ('text', 'email', 'url'), else None."""
    if get_origin(annotation) is Annotated:
        annotation = get_args(annotation)[0]
    if annotation is str:
        return 'text'
    if not isinstance(annotation, type):
        return None
    if issubclass(annotation, (EmailStr, NameEmail)):
        return 'email'
    if issubclass(annotation, AnyUrl):
        return 'url'
    return None


def _list_item_type(annotation: Any) -> Any:
    """Element annotation of a list-like annotation, or _NOT_A_LIST."""
    origin = get_origin(annotation)
    if origin in (list, tuple, set, frozenset):
        args = get_args(annotation)
        return args[0] if args else Any
    if annotation in (list, tuple):
        return Any
    return _NOT_A_LIST


def to_plain(value: Any) -> Any:
    """Convert model instances (possibly nested in containers) to plain data."""
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    return value


class PydanticValidator:
    """
    Validator backed by a pydantic model class.

    Example:
        class Signup(BaseModel):
            name: str = Field(min_length=2)
            tags: List[str] = Field(default_factory=list)

        form = FormState(PydanticValidator(Signup))
    """

    def __init__(self, model_cls: Type[BaseModel], max_depth: int = DEFAULT_CONFIG.max_path_depth):
        if not _is_model(model_cls):
            raise TypeError(f"PydanticValidator expects a BaseModel subclass, got {model_cls!r}")
        self.model_cls = model_cls
        self.max_depth = max_depth
        self._paths: Optional[List[str]] = None

    def parse(self, data: Any) -> BaseModel:
        return self.model_cls.model_validate(data)

    def safe_parse(self, data: Any) -> ValidationResult:
        try:
            parsed = self.model_cls.model_validate(data)
        except ValidationError as exc:
            return ValidationResult.failure(flatten_validation_errors(exc))
        return ValidationResult.ok(parsed)

    async def safe_parse_async(self, data: Any) -> ValidationResult:
        return self.safe_parse(data)

    # ---------- defaults ----------

    def resolve_defaults(self, partial: Any) -> Dict[str, Any]:
        """Merge caller data with model defaults into a plain dict tree.

        Present values are kept (nested models and lists of models are
        resolved recursively). Missing optional fields take their default or
        default factory; missing required fields become None, except nested
        models (resolved recursively) and lists (empty).
        """
        if isinstance(partial, BaseModel):
            partial = partial.model_dump()
        return self._resolve_model(self.model_cls, partial, 0)

    def _resolve_model(self, model_cls: Type[BaseModel], value: Any, depth: int) -> Dict[str, Any]:
        source = value if isinstance(value, dict) else {}
        result: Dict[str, Any] = {}
        for name, info in model_cls.model_fields.items():
            if name in source:
                result[name] = self._resolve_value(info.annotation, source[name], depth + 1)
            elif not info.is_required():
                result[name] = to_plain(info.get_default(call_default_factory=True))
            else:
                result[name] = self._resolve_value(info.annotation, None, depth + 1)
        for key, extra in source.items():
            if key not in result:
                result[key] = copy.deepcopy(extra)
        return result

    def _resolve_value(self, annotation: Any, value: Any, depth: int) -> Any:
        if depth > self.max_depth:
            return copy.deepcopy(to_plain(value))
        inner, optional = _unwrap_optional(annotation)
        value = to_plain(value)

        if _is_model(inner):
            if value is None:
                return None if optional else self._resolve_model(inner, None, depth)
            return self._resolve_model(inner, value, depth) if isinstance(value, dict) else value

        item_type = _list_item_type(inner)
        if item_type is not _NOT_A_LIST:
            if isinstance(value, (list, tuple)):
                return [self._resolve_value(item_type, item, depth + 1) for item in value]
            if value is None:
                return None if optional else []
            return value

        return copy.deepcopy(value)

    # ---------- paths ----------

    def get_paths(self) -> List[str]:
        """Every declared path, list elements as ordinal 0, depth-capped.

        Self-referential models are cut off at ``max_depth`` levels rather
        than detected structurally.
        """
        if self._paths is None:
            self._paths = self._collect_paths(self.model_cls, '', 0)
        return list(self._paths)

    def _collect_paths(self, annotation: Any, base: str, depth: int) -> List[str]:
        if depth > self.max_depth:
            return []
        inner, _ = _unwrap_optional(annotation)
        if _is_model(inner):
            paths = [base] if base else []
            for name, info in inner.model_fields.items():
                paths.extend(self._collect_paths(info.annotation, join_path(base, name), depth + 1))
            return paths
        item_type = _list_item_type(inner)
        if item_type is not _NOT_A_LIST:
            return [base] + self._collect_paths(item_type, join_path(base, 0), depth + 1)
        return [base]

    # ---------- input constraints ----------

    def get_input_attributes(self, path: str) -> Dict[str, Any]:
        """Derive HTML-style input constraints for ``path`` ({} if unknown)."""
        annotation: Any = self.model_cls
        info = None
        try:
            keys = split_path(path)
        except ValueError:
            return {}
        for key in keys:
            inner, _ = _unwrap_optional(annotation)
            item_type = _list_item_type(inner)
            if _is_model(inner) and key in inner.model_fields:
                info = inner.model_fields[key]
                annotation = info.annotation
            elif item_type is not _NOT_A_LIST and is_array_index(key):
                info = None
                annotation = item_type
            else:
                return {}
        return self._constraints(annotation, info)

    @staticmethod
    def _constraints(annotation: Any, info: Any) -> Dict[str, Any]:
        inner, optional = _unwrap_optional(annotation)
        required = (info.is_required() if info is not None else True) and not optional
        constraints: Dict[str, Any] = {'required': required}

        is_list = _list_item_type(inner) is not _NOT_A_LIST
        string_type = _string_input_type(inner)
        if inner is bool:
            constraints['type'] = 'checkbox'
        elif inner is int:
            constraints['type'] = 'number'
            constraints['step'] = 1
        elif inner is float:
            constraints['type'] = 'number'
        elif string_type is not None:
            constraints['type'] = string_type
        elif is_list:
            constraints['type'] = 'array'
        elif _is_model(inner) or inner is dict or get_origin(inner) is dict:
            constraints['type'] = 'object'

        if info is None:
            return constraints

        length_names = ('minItems', 'maxItems') if is_list else ('minlength', 'maxlength')
        for meta in info.metadata:
            for attr, name in (
                ('min_length', length_names[0]),
                ('max_length', length_names[1]),
                ('ge', 'min'), ('gt', 'min'),
                ('le', 'max'), ('lt', 'max'),
                ('multiple_of', 'step'),
                ('pattern', 'pattern'),
            ):
                value = getattr(meta, attr, None)
                if value is not None:
                    constraints[name] = getattr(value, 'pattern', value)
        if info.description:
            constraints['description'] = info.description
        return constraints


# ==================== CUSTOM RULES ADAPTER ====================

Rule = Callable[[Any, Any], Union[List[str], Awaitable[List[str]]]]

RULE_FAILURE_MESSAGE = 'Validation error occurred'


class CustomValidator:
    """
    Validator built from plain rule functions keyed by top-level field.

    Each rule receives ``(value, data)`` and returns a list of messages (empty
    when valid), or an awaitable of one. The synchronous ``safe_parse`` skips
    asynchronous rules; ``safe_parse_async`` awaits them. A rule that raises
    reports RULE_FAILURE_MESSAGE for its field.

    Example:
        validator = CustomValidator({
            'name': lambda value, data: [] if value else ['Name is required'],
        })
    """

    def __init__(self, rules: Mapping[str, Rule]):
        self.rules: Dict[str, Rule] = dict(rules)

    def parse(self, data: Any) -> Any:
        return data

    def _call_rule(self, key: str, rule: Rule, data: Any) -> Any:
        value = data.get(key) if isinstance(data, dict) else None
        return rule(value, data)

    def safe_parse(self, data: Any) -> ValidationResult:
        errors: ErrorMap = {}
        for key, rule in self.rules.items():
            try:
                result = self._call_rule(key, rule, data)
            except Exception as e:
                logger.debug(f"Rule for {key!r} raised: {e}")
                errors[key] = [RULE_FAILURE_MESSAGE]
                continue
            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                continue
            if result:
                errors[key] = list(result)
        return ValidationResult.failure(errors) if errors else ValidationResult.ok(data)

    async def safe_parse_async(self, data: Any) -> ValidationResult:
        errors: ErrorMap = {}
        for key, rule in self.rules.items():
            try:
                result = self._call_rule(key, rule, data)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                logger.debug(f"Rule for {key!r} raised: {e}")
                errors[key] = [RULE_FAILURE_MESSAGE]
                continue
            if result:
                errors[key] = list(result)
        return ValidationResult.failure(errors) if errors else ValidationResult.ok(data)

    def resolve_defaults(self, partial: Any) -> Dict[str, Any]:
        return copy.deepcopy(dict(partial or {}))

    def get_paths(self) -> List[str]:
        return list(self.rules)

    def get_input_attributes(self, path: str) -> Dict[str, Any]:
        return {}
