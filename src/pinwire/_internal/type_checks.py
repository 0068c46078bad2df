from __future__ import annotations

import inspect
import types
from typing import Any, TypeGuard


def is_runtime_class(candidate: object) -> TypeGuard[type[Any]]:
    """Return true for real classes; subscripted aliases such as ``list[int]`` are rejected."""
    return isinstance(candidate, type) and not isinstance(candidate, types.GenericAlias)


def is_protocol_class(candidate: object) -> bool:
    """Return true for ``typing.Protocol`` subclasses that are protocols themselves."""
    return is_runtime_class(candidate) and bool(getattr(candidate, "_is_protocol", False))


def is_builtin_class(candidate: object) -> bool:
    return is_runtime_class(candidate) and candidate.__module__ == "builtins"


def is_constructible_class(candidate: object) -> TypeGuard[type[Any]]:
    """Return true when calling ``candidate`` can produce an instance of it.

    Builtins, abstract classes and protocols are excluded.
    """
    return (
        is_runtime_class(candidate)
        and not is_builtin_class(candidate)
        and not inspect.isabstract(candidate)
        and not is_protocol_class(candidate)
    )


__all__ = [
    "is_builtin_class",
    "is_constructible_class",
    "is_protocol_class",
    "is_runtime_class",
]
