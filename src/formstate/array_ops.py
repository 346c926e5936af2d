"""
Mutating list operations and the structural mutations they imply.

Each entry of ARRAY_OPERATIONS applies one native mutation to a raw list and
reports how ordinals moved, as a list of StructuralMutation descriptors for
the remapper. Both Python list names (append, insert, pop, ...) and the
JavaScript-style names used by form code (push, shift, unshift, splice, fill)
are provided, plus the two reorderings lists lack natively: swap and move.

Every function has the signature ``op(path, target, *args) -> (result, mutations)``.
"""
import logging
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from formstate.remap import StructuralMutation

logger = logging.getLogger(__name__)

OperationResult = Tuple[Any, List[StructuralMutation]]
ArrayOperation = Callable[..., OperationResult]


def _clamp_start(start: int, length: int) -> int:
    """Resolve a possibly negative start index the way slicing does."""
    if start < 0:
        return max(length + start, 0)
    return min(start, length)


def _in_bounds(path: str, length: int, *indices: int) -> bool:
    for index in indices:
        if not 0 <= index < length:
            logger.warning(f"Index {index} out of range for array {path!r} of length {length}")
            return False
    return True


def push(path: str, target: list, *items: Any) -> OperationResult:
    target.extend(items)
    return len(target), []


def append(path: str, target: list, item: Any) -> OperationResult:
    target.append(item)
    return None, []


def extend(path: str, target: list, items: Any) -> OperationResult:
    target.extend(items)
    return None, []


def pop(path: str, target: list, index: int = -1) -> OperationResult:
    """Remove and return one element. An empty list yields None."""
    previous_length = len(target)
    if not previous_length:
        return None, []
    position = index + previous_length if index < 0 else index
    if not 0 <= position < previous_length:
        raise IndexError('pop index out of range')
    value = target.pop(position)
    return value, [StructuralMutation.remove(path, position, 1)]


def shift(path: str, target: list) -> OperationResult:
    if not target:
        return None, []
    value = target.pop(0)
    return value, [StructuralMutation.remove(path, 0, 1)]


def unshift(path: str, target: list, *items: Any) -> OperationResult:
    target[0:0] = items
    mutations = [StructuralMutation.insert(path, 0, len(items))] if items else []
    return len(target), mutations


def insert(path: str, target: list, index: int, item: Any) -> OperationResult:
    position = _clamp_start(index, len(target))
    target.insert(position, item)
    return None, [StructuralMutation.insert(path, position, 1)]


def remove(path: str, target: list, value: Any) -> OperationResult:
    position = target.index(value)
    del target[position]
    return None, [StructuralMutation.remove(path, position, 1)]


def clear(path: str, target: list) -> OperationResult:
    previous_length = len(target)
    target.clear()
    mutations = [StructuralMutation.remove(path, 0, previous_length)] if previous_length else []
    return None, mutations


def splice(path: str, target: list, start: int, delete_count: Optional[int] = None, *items: Any) -> OperationResult:
    """Remove ``delete_count`` elements at ``start`` and insert ``items`` there.

    ``delete_count=None`` removes everything from ``start`` to the end.
    Returns the removed elements. Emits a REMOVE followed by an INSERT.
    """
    length = len(target)
    start = _clamp_start(start, length)
    if delete_count is None:
        delete_count = length - start
    delete_count = max(0, min(delete_count, length - start))

    removed = target[start:start + delete_count]
    target[start:start + delete_count] = items

    mutations = []
    if delete_count:
        mutations.append(StructuralMutation.remove(path, start, delete_count))
    if items:
        mutations.append(StructuralMutation.insert(path, start, len(items)))
    return removed, mutations


def reverse(path: str, target: list) -> OperationResult:
    length = len(target)
    target.reverse()
    return None, [StructuralMutation.reorder(path, range(length - 1, -1, -1))]


def sort(path: str, target: list, key: Optional[Callable[[Any], Any]] = None, reverse: bool = False) -> OperationResult:
    """Stable in-place sort that also reports the resulting permutation."""
    if key is None:
        order = sorted(range(len(target)), key=target.__getitem__, reverse=reverse)
    else:
        order = sorted(range(len(target)), key=lambda i: key(target[i]), reverse=reverse)
    target[:] = [target[i] for i in order]
    return None, [StructuralMutation.reorder(path, order)]


def fill(path: str, target: list, value: Any, start: int = 0, end: Optional[int] = None) -> OperationResult:
    length = len(target)
    start = _clamp_start(start, length)
    end = length if end is None else _clamp_start(end, length)
    for position in range(start, end):
        target[position] = value
    return None, [StructuralMutation.replace(path, length)]


def swap(path: str, target: list, i: int, j: int) -> OperationResult:
    if not _in_bounds(path, len(target), i, j):
        return None, []
    target[i], target[j] = target[j], target[i]
    return None, [StructuralMutation.swap(path, i, j)]


def move(path: str, target: list, source: int, destination: int) -> OperationResult:
    """Move the element at ``source`` so it ends up at ``destination``."""
    length = len(target)
    if not _in_bounds(path, length, source, destination):
        return None, []
    order = list(range(length))
    order.insert(destination, order.pop(source))
    target[:] = [target[i] for i in order]
    return None, [StructuralMutation.reorder(path, order)]


ARRAY_OPERATIONS: Dict[str, ArrayOperation] = {
    'push': push,
    'append': append,
    'extend': extend,
    'pop': pop,
    'shift': shift,
    'unshift': unshift,
    'insert': insert,
    'remove': remove,
    'clear': clear,
    'splice': splice,
    'reverse': reverse,
    'sort': sort,
    'fill': fill,
    'swap': swap,
    'move': move,
}

MUTATING_ARRAY_METHODS: FrozenSet[str] = frozenset(ARRAY_OPERATIONS)


def is_mutating_array_method(name: str) -> bool:
    return name in MUTATING_ARRAY_METHODS
