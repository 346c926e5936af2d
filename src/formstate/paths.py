"""
Dotted path addressing over the form data tree.

A path such as ``address.parking_lots.0.name`` is split on dots; numeral
segments address list ordinals, every other segment addresses a dict key.

    >>> compiled = compile_path('items.0.name')
    >>> tree = {}
    >>> compiled.set(tree, 'Lot A')
    True
    >>> tree
    {'items': [{'name': 'Lot A'}]}
    >>> compiled.get(tree)
    'Lot A'

Reads never raise: a missing or non-container intermediate yields None.
Writes auto-vivify missing intermediates, picking list vs dict from the shape
of the NEXT segment. A write that would pad a list with more than
MAX_LIST_PADDING empty slots is refused with a warning. Only a syntactically
empty path (or empty segment) is rejected, with MalformedPathError.
"""
from dataclasses import dataclass, field
import logging
import re
from typing import Any, Optional, Tuple, Union

from formstate.errors import MalformedPathError

logger = logging.getLogger(__name__)

Segment = Union[str, int]

_ORDINAL_RE = re.compile(r'^\d+$')
_BRACKET_RE = re.compile(r'\[(\d+)\]')

MAX_LIST_PADDING = 1000


def is_array_index(segment: Any) -> bool:
    """True for an int ordinal or a numeral string segment."""
    if isinstance(segment, int) and not isinstance(segment, bool):
        return segment >= 0
    return isinstance(segment, str) and bool(_ORDINAL_RE.match(segment))


def normalize_brackets(path: str) -> str:
    """Rewrite ``items[0].name`` into ``items.0.name``."""
    return _BRACKET_RE.sub(r'.\1', path)


def split_path(path: str) -> Tuple[str, ...]:
    """Split a path into raw string segments, validating its shape."""
    if not isinstance(path, str) or not path:
        raise MalformedPathError(str(path), "empty path")
    keys = tuple(normalize_brackets(path).split('.'))
    if any(key == '' for key in keys):
        raise MalformedPathError(path)
    return keys


def parse_path(path: str) -> Tuple[Segment, ...]:
    """Parse a path into segments: ordinals become int, keys stay str."""
    return tuple(int(key) if is_array_index(key) else key for key in split_path(path))


def normalize_path(path: str) -> str:
    """Replace every ordinal segment with ``0``.

    The normalized form is what schema path enumeration produces for list
    elements, so it is used to check whether a concrete path is declared.
    """
    return '.'.join('0' if is_array_index(key) else key for key in normalize_brackets(path).split('.'))


def join_path(prefix: str, segment: Segment) -> str:
    """Append a segment to a (possibly empty) path prefix."""
    return f'{prefix}.{segment}' if prefix else str(segment)


def _read(container: Any, segment: Segment, key: str) -> Any:
    if isinstance(container, list):
        if isinstance(segment, int) and segment < len(container):
            return container[segment]
        return None
    if isinstance(container, dict):
        return container.get(key)
    return None


def _write(container: Any, segment: Segment, key: str, value: Any) -> bool:
    if isinstance(container, list):
        if not isinstance(segment, int):
            return False
        if segment >= len(container):
            container.extend([None] * (segment + 1 - len(container)))
        container[segment] = value
        return True
    if isinstance(container, dict):
        container[key] = value
        return True
    return False


@dataclass(frozen=True)
class CompiledPath:
    """Immutable, reusable accessor pair for one dotted path.

    Attributes:
        raw: The path string this was compiled from
        keys: Raw string segments (used for dict lookups)
        segments: Parsed segments (int for ordinals)
        is_ordinal: Per-segment ordinal flags
    """
    raw: str
    keys: Tuple[str, ...]
    segments: Tuple[Segment, ...] = field(repr=False)
    is_ordinal: Tuple[bool, ...] = field(repr=False)

    def get(self, tree: Any) -> Any:
        """Read the value at this path, or None if any hop is missing."""
        current = tree
        for segment, key in zip(self.segments, self.keys):
            current = _read(current, segment, key)
            if current is None:
                return None
        return current

    def set(self, tree: Any, value: Any) -> bool:
        """Write value at this path in place, creating intermediates as needed.

        Returns False when the write could not be placed (a non-container
        intermediate, a dict key on a list, or padding past MAX_LIST_PADDING).
        """
        overflow = self._padding_overflow(tree)
        if overflow is not None:
            logger.warning(
                f"Refusing write to {self.raw!r}: ordinal {overflow} would pad a list "
                f"past {MAX_LIST_PADDING} empty slots"
            )
            return False
        current = tree
        last = len(self.segments) - 1
        for index in range(last):
            segment, key = self.segments[index], self.keys[index]
            child = _read(current, segment, key)
            if not isinstance(child, (dict, list)):
                child = [] if self.is_ordinal[index + 1] else {}
                if not _write(current, segment, key, child):
                    return False
            current = child
        return _write(current, self.segments[last], self.keys[last], value)

    def _padding_overflow(self, tree: Any) -> Optional[int]:
        """First ordinal whose write would need more than MAX_LIST_PADDING filler slots."""
        current = tree
        for segment, key in zip(self.segments, self.keys):
            if isinstance(segment, int) and not isinstance(current, dict):
                length = len(current) if isinstance(current, list) else 0
                if segment - length > MAX_LIST_PADDING:
                    return segment
            current = _read(current, segment, key)
        return None

    @property
    def parent(self) -> str:
        """Path of the containing node ('' for top-level keys)."""
        return '.'.join(self.keys[:-1])


def compile_path(path: str) -> CompiledPath:
    """Compile a dotted path into a CompiledPath.

    Raises:
        MalformedPathError: If the path is empty or has an empty segment.
    """
    keys = split_path(path)
    segments = tuple(int(key) if is_array_index(key) else key for key in keys)
    return CompiledPath(
        raw=path,
        keys=keys,
        segments=segments,
        is_ordinal=tuple(isinstance(segment, int) for segment in segments),
    )
