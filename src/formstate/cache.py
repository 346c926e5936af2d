"""
Bounded, per-instance caches.

Every FormState owns one CacheManager holding four caches:

- compiled paths (raw path -> CompiledPath)
- field views (raw path -> FieldView)
- wrapped array methods ("<array path>#<method>" -> interceptor)
- identity wrappers (raw dict/list identity -> ReactiveDict/ReactiveList)

All of them are size-capped with insertion-order (FIFO) eviction. Access
recency is not tracked. A structural mutation on the array at path P drops
every path-keyed entry under ``P.`` so that no per-element cache survives an
ordinal shift; the entries for P itself are kept. Wrappers are keyed by
identity and follow their element to its new ordinal instead.
"""
from dataclasses import dataclass
import logging
from typing import AbstractSet, Any, Callable, Dict, Generic, Iterator, Optional, TypeVar

from formstate.config import FormConfig
from formstate.paths import CompiledPath, compile_path

logger = logging.getLogger(__name__)

T = TypeVar('T')


class BoundedCache(Generic[T]):
    """
    String-keyed cache with a hard entry bound and FIFO eviction.

    Example:
        cache = BoundedCache(max_entries=2)
        cache.put('a', 1)
        cache.put('b', 2)
        cache.put('c', 3)      # evicts 'a', the oldest insertion
        cache.drop_descendants('items')  # drops 'items.0', 'items.0.name', ...
    """

    def __init__(self, max_entries: int, name: str = 'cache'):
        self.max_entries = max_entries
        self.name = name
        self._entries: Dict[str, T] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> Iterator[str]:
        return iter(list(self._entries))

    def get(self, key: str) -> Optional[T]:
        return self._entries.get(key)

    def put(self, key: str, value: T) -> None:
        """Insert or overwrite. Overwriting keeps the original insertion slot."""
        self._entries[key] = value
        while len(self._entries) > self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug(f"{self.name}: evicted oldest entry {oldest!r}")

    def get_or_compute(self, key: str, compute_fn: Callable[[], T]) -> T:
        """Get cached value or compute, cache and return it."""
        if key in self._entries:
            return self._entries[key]
        value = compute_fn()
        self.put(key, value)
        return value

    def pop(self, key: str) -> Optional[T]:
        return self._entries.pop(key, None)

    def drop_descendants(self, prefix: str) -> int:
        """Drop every key that starts with ``prefix + '.'`` (prefix itself survives)."""
        marker = prefix + '.'
        stale = [key for key in self._entries if key.startswith(marker)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()


@dataclass
class _IdentityEntry:
    raw: Any
    path: str
    wrapper: Any
    generation: int


class IdentityCache:
    """
    Maps a raw container's identity to the wrapper built for it.

    Plain dicts and lists cannot be weakly referenced, so entries keep the raw
    object (which also pins its id() against reuse) and are released by:
    - the FIFO bound,
    - drop_descendants() for elements removed by structural mutations,
    - discard() when a container is overwritten in the tree,
    - bump_generation() on reset, which retires every entry at once.

    A hit requires the same object, the same generation and the same path.
    Elements that move to a different ordinal are re-keyed with rebind(), so
    the wrapper built for them stays the one handed out.
    """

    def __init__(self, max_entries: int):
        self.max_entries = max_entries
        self._entries: Dict[int, _IdentityEntry] = {}
        self._generation = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def generation(self) -> int:
        return self._generation

    def get(self, raw: Any, path: str) -> Optional[Any]:
        entry = self._entries.get(id(raw))
        if entry is None or entry.raw is not raw:
            return None
        if entry.generation != self._generation or entry.path != path:
            return None
        return entry.wrapper

    def put(self, raw: Any, path: str, wrapper: Any) -> None:
        key = id(raw)
        self._entries.pop(key, None)
        self._entries[key] = _IdentityEntry(raw, path, wrapper, self._generation)
        while len(self._entries) > self.max_entries:
            del self._entries[next(iter(self._entries))]

    def rebind(self, raw: Any, path: str, scope: str) -> Optional[Any]:
        """Re-key the wrapper of ``raw`` to ``path`` and return it.

        Only an entry currently keyed below ``scope`` is moved, so a container
        shared with another part of the tree keeps its wrapper there.
        """
        entry = self._entries.get(id(raw))
        if entry is None or entry.raw is not raw or entry.generation != self._generation:
            return None
        if not entry.path.startswith(scope + '.'):
            return None
        entry.path = path
        return entry.wrapper

    def discard(self, raw: Any) -> None:
        entry = self._entries.get(id(raw))
        if entry is not None and entry.raw is raw:
            del self._entries[id(raw)]

    def drop_descendants(self, prefix: str, keep: AbstractSet[int] = frozenset()) -> int:
        """Drop entries below ``prefix`` except those whose raw id is in ``keep``."""
        marker = prefix + '.'
        stale = [
            key for key, entry in self._entries.items()
            if entry.path.startswith(marker) and key not in keep
        ]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def bump_generation(self) -> None:
        self._generation += 1
        self._entries.clear()

    def clear(self) -> None:
        self._entries.clear()


class CacheManager:
    """Owns the four bounded caches of one FormState instance."""

    def __init__(self, config: FormConfig):
        self.paths: BoundedCache[CompiledPath] = BoundedCache(config.max_compiled_paths, 'paths')
        self.fields: BoundedCache[Any] = BoundedCache(config.max_field_views, 'fields')
        self.methods: BoundedCache[Callable[..., Any]] = BoundedCache(config.max_wrapped_methods, 'methods')
        self.wrappers = IdentityCache(config.max_wrappers)

    def compile(self, path: str) -> CompiledPath:
        """Compiled path for ``path``, cached by the raw path string."""
        return self.paths.get_or_compute(path, lambda: compile_path(path))

    def invalidate_array(self, path: str, keep_wrappers: bool = False) -> None:
        """Drop every per-element entry below the array at ``path``.

        With ``keep_wrappers`` the identity cache is left for the caller to
        re-key (see ReactiveTree.rewrap_elements).
        """
        dropped = (
            self.paths.drop_descendants(path)
            + self.fields.drop_descendants(path)
            + self.methods.drop_descendants(path)
        )
        if not keep_wrappers:
            dropped += self.wrappers.drop_descendants(path)
        if dropped:
            logger.debug(f"Invalidated {dropped} cache entries below {path!r}")

    def clear(self) -> None:
        self.paths.clear()
        self.fields.clear()
        self.methods.clear()
        self.wrappers.bump_generation()
