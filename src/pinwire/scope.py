from __future__ import annotations

import logging
import threading
import types
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from pinwire.exceptions import PinwireLifetimeViolationError

if TYPE_CHECKING:
    from typing_extensions import Self

    from pinwire.container import Container
    from pinwire.providers import Lifetime, Registration

logger = logging.getLogger(__name__)

MISSING: Any = object()


class LifetimeScope:
    """A bounded resolution context that owns the cache for Scoped services.

    Scoped instances are cached per registration and are never shared with
    other scopes. Registration calls and every resolution go through the parent
    container; the scope only contributes its cache. Use it directly or as a
    context manager:

    .. code-block:: python

        with container.begin_scope() as scope:
            unit_of_work = scope.resolve(UnitOfWork)

    Closing the scope discards its cache; instance disposal is left to the caller.
    """

    def __init__(self, container: Container) -> None:
        self._container = container
        self._instances: dict[Registration, Any] = {}
        self._locks: dict[Registration, threading.RLock] = {}
        self._locks_lock = threading.Lock()
        self._closed = False

    @property
    def container(self) -> Container:
        return self._container

    @property
    def closed(self) -> bool:
        return self._closed

    def register(
        self,
        service: Any,
        implementation: Any | None = None,
        lifetime: Lifetime | None = None,
        **kwargs: Any,
    ) -> None:
        """Register on the parent container."""
        self._container.register(service, implementation, lifetime, **kwargs)

    def register_instance(self, service: Any, instance: Any, **kwargs: Any) -> None:
        """Register a pre-built instance on the parent container."""
        self._container.register_instance(service, instance, **kwargs)

    def register_factory(
        self,
        service: Any,
        factory: Callable[[Any], Any],
        lifetime: Lifetime | None = None,
        **kwargs: Any,
    ) -> None:
        """Register a factory on the parent container."""
        self._container.register_factory(service, factory, lifetime, **kwargs)

    def resolve(
        self,
        service: Any,
        *,
        key: Any = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> Any:
        """Resolve a service with this scope as the Scoped cache."""
        if self._closed:
            msg = f"Cannot resolve '{service!r}' through a lifetime scope that has been closed."
            raise PinwireLifetimeViolationError(service, msg)
        return self._container._resolve(service, scope=self, key=key, overrides=overrides)  # noqa: SLF001

    def get_cached(self, registration: Registration) -> Any:
        """Return the cached instance for ``registration`` or the ``MISSING`` sentinel."""
        return self._instances.get(registration, MISSING)

    def cache(self, registration: Registration, instance: Any) -> None:
        self._instances[registration] = instance

    def lock_for(self, registration: Registration) -> threading.RLock:
        """Return the lock guarding construction of ``registration`` in this scope."""
        lock = self._locks.get(registration)
        if lock is None:
            with self._locks_lock:
                lock = self._locks.setdefault(registration, threading.RLock())
        return lock

    def close(self) -> None:
        """Discard every cached Scoped instance; further resolution is rejected."""
        if self._closed:
            return
        logger.debug("Closing lifetime scope with %d cached instance(s)", len(self._instances))
        self._instances.clear()
        self._locks.clear()
        self._closed = True

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        self.close()
