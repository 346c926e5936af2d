"""
Ordinal remapping of path-keyed bookkeeping after array structural mutations.

Touched flags, schema errors and custom errors are all stored in flat dicts
keyed by dotted path. When the array at ``items`` loses its first element,
``items.1.name`` must become ``items.0.name`` and everything under ``items.0``
must go. A StructuralMutation describes what happened to the array; remap_keys
rewrites one dict accordingly.

All affected entries are read and removed before any is re-inserted, so a
rewrite can never overwrite another live key's bookkeeping.

Known imprecision: only keys textually prefixed by an affected ordinal are
considered. Remapping runs on the pre-slide key set, before anything else can
land on the vacated ordinals.
"""
from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from formstate.paths import is_array_index

logger = logging.getLogger(__name__)


class MutationKind(Enum):
    INSERT = 'insert'
    REMOVE = 'remove'
    SWAP = 'swap'
    REORDER = 'reorder'
    REPLACE = 'replace'


@dataclass(frozen=True)
class StructuralMutation:
    """Descriptor of one structural change to the array at ``path``.

    Fields used per kind:
    - INSERT / REMOVE: start, count
    - SWAP: i, j
    - REORDER: order, where order[new_index] == old_index
    - REPLACE: length (elements at ordinals >= length no longer exist)
    """
    kind: MutationKind
    path: str
    start: int = 0
    count: int = 0
    i: int = 0
    j: int = 0
    order: Tuple[int, ...] = ()
    length: int = 0

    @classmethod
    def insert(cls, path: str, start: int, count: int) -> 'StructuralMutation':
        return cls(MutationKind.INSERT, path, start=start, count=count)

    @classmethod
    def remove(cls, path: str, start: int, count: int) -> 'StructuralMutation':
        return cls(MutationKind.REMOVE, path, start=start, count=count)

    @classmethod
    def swap(cls, path: str, i: int, j: int) -> 'StructuralMutation':
        return cls(MutationKind.SWAP, path, i=i, j=j)

    @classmethod
    def reorder(cls, path: str, order: Iterable[int]) -> 'StructuralMutation':
        return cls(MutationKind.REORDER, path, order=tuple(order))

    @classmethod
    def replace(cls, path: str, length: int) -> 'StructuralMutation':
        return cls(MutationKind.REPLACE, path, length=length)

    @property
    def is_noop(self) -> bool:
        """True when no ordinal can move or disappear."""
        if self.kind in (MutationKind.INSERT, MutationKind.REMOVE):
            return self.count <= 0
        if self.kind is MutationKind.SWAP:
            return self.i == self.j
        if self.kind is MutationKind.REORDER:
            return all(old == new for new, old in enumerate(self.order))
        return False


def _index_mapper(mutation: StructuralMutation):
    """Build old ordinal -> new ordinal (None means the element is gone)."""
    kind = mutation.kind
    if kind is MutationKind.REMOVE:
        end = mutation.start + mutation.count

        def mapper(index: int) -> Optional[int]:
            if index < mutation.start:
                return index
            return None if index < end else index - mutation.count
    elif kind is MutationKind.INSERT:
        def mapper(index: int) -> Optional[int]:
            return index + mutation.count if index >= mutation.start else index
    elif kind is MutationKind.SWAP:
        def mapper(index: int) -> Optional[int]:
            if index == mutation.i:
                return mutation.j
            if index == mutation.j:
                return mutation.i
            return index
    elif kind is MutationKind.REORDER:
        new_position = {old: new for new, old in enumerate(mutation.order)}

        def mapper(index: int) -> Optional[int]:
            return new_position.get(index, index)
    else:
        def mapper(index: int) -> Optional[int]:
            return None if index >= mutation.length else index
    return mapper


def remap_keys(mapping: Dict[str, Any], mutation: StructuralMutation) -> int:
    """Rewrite the ordinal segment of every key below ``mutation.path``.

    Args:
        mapping: Path-keyed dict, modified in place
        mutation: What happened to the array

    Returns:
        Number of keys that were moved or deleted
    """
    if mutation.is_noop or not mapping:
        return 0

    prefix = mutation.path + '.'
    mapper = _index_mapper(mutation)

    # (index, old_key, new_key or None)
    staged: List[Tuple[int, str, Optional[str]]] = []
    for key in mapping:
        if not key.startswith(prefix):
            continue
        head, sep, tail = key[len(prefix):].partition('.')
        if not is_array_index(head):
            continue
        index = int(head)
        new_index = mapper(index)
        if new_index == index:
            continue
        new_key = None if new_index is None else f'{prefix}{new_index}{sep}{tail}'
        staged.append((index, key, new_key))

    if not staged:
        return 0

    # Removal shifts down (ascending), insertion shifts up (descending)
    staged.sort(key=lambda item: item[0], reverse=mutation.kind is MutationKind.INSERT)

    held = {old_key: mapping.pop(old_key) for _, old_key, _ in staged}
    for _, old_key, new_key in staged:
        if new_key is None:
            continue
        if new_key in mapping:
            logger.warning(f"Remap collision on {new_key!r} while applying {mutation.kind.value} to {mutation.path!r}")
        mapping[new_key] = held[old_key]

    return len(staged)


def apply_mutation(maps: Iterable[Dict[str, Any]], mutation: StructuralMutation) -> int:
    """Remap every bookkeeping dict in ``maps``; returns the total keys changed."""
    changed = sum(remap_keys(mapping, mutation) for mapping in maps)
    if changed:
        logger.debug(f"Remapped {changed} keys for {mutation.kind.value} on {mutation.path!r}")
    return changed
