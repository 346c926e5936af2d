"""
Interceptable views over the raw data tree.

The raw tree is plain dicts, lists and scalars. FormState never hands it out
directly; callers get a ReactiveDict for the root, and every read of a
container child returns another wrapper scoped to the child's path:

    form.data['address']['city'] = 'Paris'     # marks 'address.city' touched
    form.data.address.city = 'Paris'           # same, attribute style
    form.data['items'].push({'name': ''})      # marks 'items' touched
    form.data['items'].swap(0, 1)              # remaps 'items.0.*' <-> 'items.1.*'

Wrappers are explicit objects holding the raw container, its path and the
ReactiveTree that owns them. ReactiveTree is where writes and list
mutations are intercepted and folded into the owning FormState's bookkeeping:
touch first, then remap, then cache invalidation, then validation scheduling.
"""
from collections.abc import MutableMapping, Sequence
import logging
from typing import Any, Callable, Iterator, Set, TYPE_CHECKING

from formstate.array_ops import ARRAY_OPERATIONS, MUTATING_ARRAY_METHODS
from formstate.paths import join_path
from formstate.remap import StructuralMutation

if TYPE_CHECKING:
    from formstate.form_state import FormState

logger = logging.getLogger(__name__)

_MISSING = object()


def unwrap(value: Any) -> Any:
    """Return the raw container behind a wrapper; other values pass through."""
    if isinstance(value, ReactiveNode):
        return object.__getattribute__(value, '_raw')
    return value


def to_raw(value: Any) -> Any:
    """Unwrap ``value`` and any wrapper nested inside plain dicts and lists.

    Containers are rebuilt only when something below them was unwrapped;
    otherwise the caller's object is returned as is.
    """
    if isinstance(value, ReactiveNode):
        return object.__getattribute__(value, '_raw')
    if isinstance(value, dict):
        converted = {key: to_raw(child) for key, child in value.items()}
        if all(converted[key] is value[key] for key in value):
            return value
        return converted
    if isinstance(value, list):
        converted = [to_raw(child) for child in value]
        if all(new is old for new, old in zip(converted, value)):
            return value
        return converted
    return value


def _same_value(old: Any, new: Any) -> bool:
    """Identity for containers, typed equality for scalars."""
    if old is new:
        return True
    if isinstance(old, (dict, list)) or isinstance(new, (dict, list)):
        return False
    return type(old) is type(new) and old == new


class ReactiveNode:
    """Common state of ReactiveDict and ReactiveList."""

    def __init__(self, tree: 'ReactiveTree', raw: Any, path: str):
        object.__setattr__(self, '_tree', tree)
        object.__setattr__(self, '_raw', raw)
        object.__setattr__(self, '_path', path)

    @property
    def path(self) -> str:
        """Dotted path of this container ('' for the root)."""
        return self._path

    def unwrap(self) -> Any:
        """The underlying raw dict or list (mutations on it are not tracked)."""
        return self._raw

    def __eq__(self, other: object) -> bool:
        return self._raw == unwrap(other)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f'{type(self).__name__}({self._path!r}, {self._raw!r})'


class ReactiveDict(ReactiveNode, MutableMapping):
    """Mapping view of a raw dict.

    Item and attribute access are equivalent for keys that do not collide
    with mapping attributes. Colliding keys (``items``, ``keys``, ``get``,
    ``pop``, ...) resolve to the method on read, so assigning them as
    attributes is refused; use ``data['items']`` for those.
    """

    def __getitem__(self, key: str) -> Any:
        value = self._raw[key]
        return self._tree.wrap(value, join_path(self._path, key))

    def __setitem__(self, key: str, value: Any) -> None:
        self._tree.write(self._raw, self._path, key, value)

    def __delitem__(self, key: str) -> None:
        self._tree.delete(self._raw, self._path, key)

    def __iter__(self) -> Iterator[str]:
        return iter(self._raw)

    def __len__(self) -> int:
        return len(self._raw)

    def __contains__(self, key: object) -> bool:
        return key in self._raw

    def __getattr__(self, name: str) -> Any:
        if name.startswith('_'):
            raise AttributeError(name)
        try:
            return self[name]
        except KeyError:
            raise AttributeError(f"{self._path or '<root>'} has no key {name!r}") from None

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith('_'):
            object.__setattr__(self, name, value)
        elif hasattr(type(self), name):
            raise AttributeError(f"{name!r} is a mapping attribute; assign it with item access")
        else:
            self[name] = value

    def __delattr__(self, name: str) -> None:
        try:
            del self[name]
        except KeyError:
            raise AttributeError(name) from None


class ReactiveList(ReactiveNode, Sequence):
    """Sequence view of a raw list.

    Reads wrap container elements. Element assignment is a value write.
    Every mutating method (see MUTATING_ARRAY_METHODS) is resolved through
    ReactiveTree.array_method, so it is intercepted and remapped.
    """

    def _position(self, index: int) -> int:
        length = len(self._raw)
        position = index + length if index < 0 else index
        if not 0 <= position < length:
            raise IndexError('list index out of range')
        return position

    def __getitem__(self, index):
        if isinstance(index, slice):
            return [self[i] for i in range(*index.indices(len(self._raw)))]
        position = self._position(index)
        return self._tree.wrap(self._raw[position], join_path(self._path, position))

    def __setitem__(self, index, value: Any) -> None:
        if isinstance(index, slice):
            start, stop, step = index.indices(len(self._raw))
            if step != 1:
                raise ValueError('extended slice assignment is not supported')
            self.splice(start, max(stop - start, 0), *value)
            return
        self._tree.write(self._raw, self._path, self._position(index), value)

    def __delitem__(self, index) -> None:
        if isinstance(index, slice):
            start, stop, step = index.indices(len(self._raw))
            if step != 1:
                raise ValueError('extended slice deletion is not supported')
            self.splice(start, max(stop - start, 0))
            return
        self.pop(self._position(index))

    def __len__(self) -> int:
        return len(self._raw)

    def __iter__(self) -> Iterator[Any]:
        for position in range(len(self._raw)):
            yield self[position]

    def __iadd__(self, items: Any) -> 'ReactiveList':
        self.extend(list(unwrap(items)))
        return self

    def __getattr__(self, name: str) -> Any:
        if name in MUTATING_ARRAY_METHODS:
            return self._tree.array_method(self._path, name)
        raise AttributeError(f"{type(self).__name__} has no attribute {name!r}")


class ReactiveTree:
    """
    Wraps raw containers and intercepts writes on behalf of a FormState.

    The owner provides the live raw tree and receives the bookkeeping calls:
    ``_record_touch(path)``, ``_record_structural(mutation)`` and
    ``_schedule_validation(batched)``. Writes made while the owner is in an
    internal update (reset, data replacement) change values and caches only.
    """

    def __init__(self, owner: 'FormState'):
        self._owner = owner

    @property
    def _caches(self):
        return self._owner._caches

    # ==================== WRAPPING ====================

    def wrap(self, value: Any, path: str) -> Any:
        """Return the memoized wrapper for a container, or a scalar unchanged."""
        if isinstance(value, ReactiveNode):
            return value
        if isinstance(value, dict):
            wrapper_type = ReactiveDict
        elif isinstance(value, list):
            wrapper_type = ReactiveList
        else:
            return value

        cached = self._caches.wrappers.get(value, path)
        if cached is not None:
            return cached
        wrapper = wrapper_type(self, value, path)
        self._caches.wrappers.put(value, path, wrapper)
        return wrapper

    def rewrap_elements(self, target: list, path: str) -> None:
        """Re-key the wrappers below the array at ``path`` to current ordinals.

        A wrapper built for a surviving element (or for a container nested in
        one) is kept and re-pointed, so a reference held across a structural
        mutation stays the live wrapper. Wrappers of removed elements are
        released.
        """
        live: Set[int] = set()
        self._rebind_children(target, path, path, live)
        released = self._caches.wrappers.drop_descendants(path, keep=live)
        if released:
            logger.debug(f"Released {released} wrapper(s) below {path!r}")
        for position, element in enumerate(target):
            if isinstance(element, (dict, list)):
                self.wrap(element, join_path(path, position))

    def _rebind_children(self, container: Any, path: str, scope: str, live: Set[int]) -> None:
        children = container.items() if isinstance(container, dict) else enumerate(container)
        for key, child in children:
            if not isinstance(child, (dict, list)) or id(child) in live:
                continue
            live.add(id(child))
            child_path = join_path(path, key)
            wrapper = self._caches.wrappers.rebind(child, child_path, scope)
            if wrapper is not None:
                object.__setattr__(wrapper, '_path', child_path)
            self._rebind_children(child, child_path, scope, live)

    # ==================== VALUE WRITES ====================

    def write(self, container: Any, path: str, key: Any, value: Any) -> None:
        """Store ``value`` at ``container[key]`` and fold it into bookkeeping."""
        value = to_raw(value)
        if isinstance(container, dict):
            old = container.get(key, _MISSING)
        else:
            old = container[key]
        container[key] = value
        self.commit_write(join_path(path, key), old, value)

    def write_path(self, path: str, value: Any) -> None:
        """Store ``value`` at a dotted path, creating intermediates as needed."""
        compiled = self._caches.compile(path)
        value = to_raw(value)
        old = compiled.get(self._owner._root)
        if not compiled.set(self._owner._root, value):
            return
        self.commit_write(path, old, value)

    def commit_write(self, path: str, old: Any, new: Any) -> None:
        """Bookkeeping after a value write at ``path``.

        No-op when the value did not change. A replaced container releases
        its cached wrappers; a list replaced by a list is a bulk REPLACE.
        """
        if _same_value(old, new):
            return

        if isinstance(old, (dict, list)):
            self._caches.wrappers.discard(old)
            self._caches.invalidate_array(path)

        if self._owner._internal:
            return

        self._owner._record_touch(path)
        if isinstance(old, list) and isinstance(new, list):
            self._owner._record_structural(StructuralMutation.replace(path, len(new)))
        self._owner._schedule_validation(batched=False)

    def delete(self, container: dict, path: str, key: str) -> None:
        old = container.pop(key)
        full_path = join_path(path, key)
        if isinstance(old, (dict, list)):
            self._caches.wrappers.discard(old)
            self._caches.invalidate_array(full_path)
        if self._owner._internal:
            return
        self._owner._record_touch(full_path)
        self._owner._schedule_validation(batched=False)

    # ==================== ARRAY OPERATIONS ====================

    def array_method(self, path: str, name: str) -> Callable[..., Any]:
        """Interceptor for ``name`` on the array at ``path``, from the method cache."""
        key = f'{path}#{name}'

        def build() -> Callable[..., Any]:
            def intercepted(*args: Any, **kwargs: Any) -> Any:
                return self.run_array_operation(path, name, *args, **kwargs)
            intercepted.__name__ = name
            intercepted.__qualname__ = f'ReactiveList.{name}'
            return intercepted

        return self._caches.methods.get_or_compute(key, build)

    def run_array_operation(self, path: str, name: str, *args: Any, **kwargs: Any) -> Any:
        """Apply one mutating list operation to the array at ``path``.

        Order of effects: native mutation, touch the array path, remap
        ordinal-keyed bookkeeping, drop stale per-element caches, re-wrap the
        surviving elements, then schedule a batched validation pass.

        Returns:
            The native result (removed elements are returned raw, they no
            longer belong to the tree), or None if ``path`` is not a list.
        """
        target = self._caches.compile(path).get(self._owner._root)
        if not isinstance(target, list):
            logger.warning(f"Array operation {name!r} ignored: {path!r} is not a list")
            return None

        operation = ARRAY_OPERATIONS[name]
        args = tuple(to_raw(arg) for arg in args)
        result, mutations = operation(path, target, *args, **kwargs)

        if not self._owner._internal:
            self._owner._record_touch(path)
            for mutation in mutations:
                self._owner._record_structural(mutation)
        self._caches.invalidate_array(path, keep_wrappers=True)
        self.rewrap_elements(target, path)
        logger.debug(f"Array {name} on {path!r}: {len(mutations)} structural mutation(s)")

        if not self._owner._internal:
            self._owner._schedule_validation(batched=True)
        return result
