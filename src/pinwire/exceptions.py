from __future__ import annotations

from collections.abc import Sequence
from typing import Any


def _describe(value: Any) -> str:
    return getattr(value, "__qualname__", None) or repr(value)


class PinwireError(Exception):
    """Represent a base class for all pinwire-specific failures.

    Catch this type when you want to handle any pinwire error path without
    matching each concrete exception class individually.
    """


class PinwireConfigurationError(PinwireError):
    """Signal an invalid registration.

    Raised by ``Container.register``, ``Container.register_instance`` and
    ``Container.register_factory`` when the arguments cannot form a valid
    registration: an open generic service paired with a closed implementation,
    an explicit ``key=None``, a ``None`` instance, or a factory that is not
    callable.
    """


class PinwireNotRegisteredError(PinwireError):
    """Signal that a service has no registration and no implicit fallback.

    Keyed lookups never fall back, so any keyed miss raises this error.
    Unkeyed lookups fall back to open generic closing and then to implicit
    self-registration of concrete classes before failing.
    """

    def __init__(self, service: Any, key: Any = None) -> None:
        self.service = service
        self.key = key
        if key is None:
            msg = f"Service '{_describe(service)}' is not registered."
        else:
            msg = f"Service '{_describe(service)}' is not registered with key {key!r}."
        super().__init__(msg)


class PinwireLifetimeViolationError(PinwireError):
    """Signal a scoped resolution without an active lifetime scope.

    Typical fix is resolving through ``container.begin_scope()``.
    """

    def __init__(self, service: Any, reason: str | None = None) -> None:
        self.service = service
        msg = reason or (
            f"Scoped service '{_describe(service)}' cannot be resolved outside of a lifetime scope."
        )
        super().__init__(msg)


class PinwireConstructionError(PinwireError):
    """Signal that an implementation cannot be instantiated.

    Raised for abstract implementations, constructors whose signature cannot be
    inspected, and required constructor parameters without a type annotation.
    """


class PinwirePropertyInjectionError(PinwireError):
    """Signal that an ``Injected[...]`` attribute could not be populated."""

    def __init__(self, implementation: Any, attribute: str, cause: BaseException) -> None:
        self.implementation = implementation
        self.attribute = attribute
        msg = (
            f"Failed to inject attribute '{attribute}' of '{_describe(implementation)}': {cause}"
        )
        super().__init__(msg)


class PinwireCircularDependencyError(PinwireError):
    """Signal a registration that depends on itself, directly or transitively."""

    def __init__(self, service: Any, chain: Sequence[Any]) -> None:
        self.service = service
        self.chain = tuple(chain)
        path = " -> ".join(_describe(item) for item in (*self.chain, service))
        super().__init__(f"Circular dependency detected: {path}")


class PinwireInvalidGenericTypeArgumentError(PinwireError):
    """Signal invalid closed-generic arguments for an open registration.

    Raised while closing open-generic registrations when a requested argument
    violates TypeVar bounds or constraints.
    """
