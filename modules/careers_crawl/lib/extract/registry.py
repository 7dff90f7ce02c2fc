from __future__ import annotations

from .base import Strategy

# Global in-process registry: name -> strategy class
_REGISTRY: dict[str, type[Strategy]] = {}


def register(cls: type[Strategy]) -> type[Strategy]:
    """
    Class decorator or direct call to register an extraction strategy.
    Requires cls.name to be a non-empty string.
    """
    name = getattr(cls, "name", "") or ""
    if not isinstance(name, str) or not name.strip():
        raise ValueError(f"Cannot register strategy {cls!r}: missing/empty 'name'.")
    key = name.strip().lower()
    if key in _REGISTRY and _REGISTRY[key] is not cls:
        # Allow idempotent re-registers of the same class; otherwise reject.
        raise ValueError(f"Strategy {key!r} already registered to {_REGISTRY[key]!r}.")
    _REGISTRY[key] = cls
    return cls


def get(name: str) -> type[Strategy]:
    """
    Look up a strategy class by name (case-insensitive).
    Raises KeyError if not found.
    """
    key = (name or "").strip().lower()
    if key not in _REGISTRY:
        raise KeyError(f"No strategy registered under {name!r}.")
    return _REGISTRY[key]


def ordered() -> list[type[Strategy]]:
    """Registered strategy classes in evaluation order (priority, then name)."""
    return sorted(_REGISTRY.values(), key=lambda c: (c.priority, c.name))

