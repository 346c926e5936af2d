"""
Engine configuration.

A single frozen dataclass carries every tunable of a FormState instance:
the validation debounce window, the size bounds of the per-instance caches and
the recursion cap used when enumerating schema paths.
"""
from dataclasses import dataclass, replace
from typing import Any


@dataclass(frozen=True)
class FormConfig:
    """Tunables for one FormState instance.

    Attributes:
        debounce_seconds: Delay after the last edit before validation runs.
        max_compiled_paths: Bound of the compiled-path cache.
        max_field_views: Bound of the field-view cache.
        max_wrapped_methods: Bound of the wrapped array-method cache.
        max_wrappers: Bound of the identity-wrapper cache.
        max_path_depth: Recursion cap for schema path enumeration.
    """
    debounce_seconds: float = 0.1
    max_compiled_paths: int = 1000
    max_field_views: int = 500
    max_wrapped_methods: int = 200
    max_wrappers: int = 1000
    max_path_depth: int = 6

    def __post_init__(self):
        if self.debounce_seconds < 0:
            raise ValueError(f"debounce_seconds must be >= 0, got {self.debounce_seconds}")
        for name in ('max_compiled_paths', 'max_field_views', 'max_wrapped_methods', 'max_wrappers'):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1, got {getattr(self, name)}")

    def with_overrides(self, **changes: Any) -> 'FormConfig':
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


DEFAULT_CONFIG = FormConfig()
