from __future__ import annotations

import importlib
from typing import Any

from pinwire._internal.type_checks import is_runtime_class


def _load_base_settings() -> type[Any] | None:
    try:
        module = importlib.import_module("pydantic_settings")
    except ImportError:
        return None
    base_settings = getattr(module, "BaseSettings", None)
    if isinstance(base_settings, type):
        return base_settings
    return None


SETTINGS_BASE: type[Any] | None = _load_base_settings()


def is_pydantic_settings_subclass(candidate: object) -> bool:
    """Return whether a class is a ``pydantic_settings.BaseSettings`` model.

    pinwire uses this for implicit registration: an unregistered settings
    subclass is registered as a Singleton built by its zero-argument
    constructor, so the environment is read once per container. Returns
    ``False`` for every candidate when ``pydantic-settings`` is not installed.

    Args:
        candidate: Object to test.

    """
    if SETTINGS_BASE is None or not is_runtime_class(candidate):
        return False
    return candidate is not SETTINGS_BASE and issubclass(candidate, SETTINGS_BASE)


__all__ = [
    "SETTINGS_BASE",
    "is_pydantic_settings_subclass",
]
