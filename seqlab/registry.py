# seqlab/registry.py
"""Name-to-constructor registries for pluggable implementations."""
from __future__ import annotations
from typing import Callable, Dict, Generic, Iterator, Optional, TypeVar

from .errors import InvalidConfigurationError

T = TypeVar("T")


class Registry(Generic[T]):
    """
    Maps string identifiers to factories for one family of implementations.

    New variants are added with :meth:`register`, usually as a class
    decorator, so callers never need to touch the code doing the lookups.
    Unknown names are reported as :class:`InvalidConfigurationError`.
    """

    def __init__(self, label: str, case_sensitive: bool = True):
        self.label = label
        self.case_sensitive = case_sensitive
        self._entries: Dict[str, Callable[..., T]] = {}

    def _key(self, name: str) -> str:
        return name if self.case_sensitive else name.upper()

    def register(self, name: str, factory: Optional[Callable[..., T]] = None):
        """Registers ``factory`` under ``name``; usable as a decorator."""
        def decorator(obj: Callable[..., T]) -> Callable[..., T]:
            key = self._key(name)
            if key in self._entries and self._entries[key] is not obj:
                raise ValueError(f"{self.label} '{name}' is already registered.")
            self._entries[key] = obj
            return obj

        if factory is not None:
            return decorator(factory)
        return decorator

    def get(self, name: str) -> Callable[..., T]:
        if not isinstance(name, str):
            raise InvalidConfigurationError(f"{self.label} name must be a string, got {name!r}.")
        try:
            return self._entries[self._key(name)]
        except KeyError:
            known = ", ".join(sorted(self._entries)) or "none"
            raise InvalidConfigurationError(
                f"Unknown {self.label} '{name}'. Known values: {known}."
            ) from None

    def create(self, name: str, *args, **kwargs) -> T:
        return self.get(name)(*args, **kwargs)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self._key(name) in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._entries))
