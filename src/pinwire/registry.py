from __future__ import annotations

import logging
import threading
from typing import Any, get_args, get_origin

from pinwire._internal.autoregistration import ConcreteTypeAutoregistrationPolicy
from pinwire.exceptions import PinwireConfigurationError
from pinwire.integrations.pydantic_settings import is_pydantic_settings_subclass
from pinwire.open_generics import canonicalize_open_key, close_generic, is_closed_generic
from pinwire.providers import ConstructionPlanner, Lifetime, Registration, UserDependency

logger = logging.getLogger(__name__)


def normalize_service(service: UserDependency) -> UserDependency:
    """Return the store key for a service descriptor.

    Open generic spellings collapse to their origin class.
    """
    canonical = canonicalize_open_key(service)
    return service if canonical is None else canonical


class RegistrationStore:
    """Hold unkeyed and keyed registrations and synthesize fallbacks on lookup.

    Unkeyed lookups fall back to closing an open generic registration and then
    to implicit self-registration of eligible concrete classes. Synthesized
    registrations are cached so each closed shape keeps one identity; the
    cache entries a new registration shadows are dropped when it is added.

    Every write (registration, synthesis, invalidation) happens under the
    store lock. Lookups that hit an existing entry read without locking.
    """

    def __init__(
        self,
        *,
        planner: ConstructionPlanner,
        autoregister_concrete_types: bool = True,
    ) -> None:
        self._planner = planner
        self._autoregister_concrete_types = autoregister_concrete_types
        self._policy = ConcreteTypeAutoregistrationPolicy()
        self._lock = threading.RLock()
        self._unkeyed: dict[UserDependency, Registration] = {}
        self._keyed: dict[UserDependency, dict[Any, Registration]] = {}
        self._synthesized: dict[UserDependency, Registration] = {}

    def add(self, registration: Registration) -> None:
        """Store a registration, replacing any previous one for the same service and key."""
        service = registration.service
        if canonicalize_open_key(service) is not None and not registration.is_open_generic:
            msg = f"Open generic service {service!r} requires an open generic implementation."
            raise PinwireConfigurationError(msg)

        with self._lock:
            if registration.key is not None:
                self._keyed.setdefault(service, {})[registration.key] = registration
                return

            self._unkeyed[service] = registration
            self._synthesized.pop(service, None)
            if registration.is_open_generic:
                stale = [key for key in self._synthesized if get_origin(key) is service]
                for key in stale:
                    del self._synthesized[key]
                if stale:
                    logger.debug("Dropped %d closed registration(s) of %r", len(stale), service)

    def find(self, service: UserDependency, key: Any = None) -> Registration | None:
        """Return the registration for ``service``, synthesizing one when possible.

        Keyed lookups only consult the exact keyed bucket. Open generic
        descriptors never resolve to a registration.
        """
        if canonicalize_open_key(service) is not None:
            return None

        if key is not None:
            return self._keyed.get(service, {}).get(key)

        registration = self._unkeyed.get(service) or self._synthesized.get(service)
        if registration is not None:
            return registration

        with self._lock:
            # Re-check: the entry may have been added while waiting for the lock.
            registration = self._unkeyed.get(service) or self._synthesized.get(service)
            if registration is not None:
                return registration

            registration = self._synthesize(service)
            if registration is not None:
                self._synthesized[service] = registration
            return registration

    def contains(self, service: UserDependency, key: Any = None) -> bool:
        """Return whether an explicit registration exists (synthesized ones do not count)."""
        service = normalize_service(service)
        if key is not None:
            return key in self._keyed.get(service, {})
        return service in self._unkeyed

    def keyed(self, service: UserDependency) -> tuple[Registration, ...]:
        """Return the keyed registrations of ``service`` in first-registration order of each key."""
        with self._lock:
            return tuple(self._keyed.get(service, {}).values())

    def __contains__(self, service: object) -> bool:
        return self.contains(service)

    def __len__(self) -> int:
        with self._lock:
            return len(self._unkeyed) + sum(len(bucket) for bucket in self._keyed.values())

    def _synthesize(self, service: UserDependency) -> Registration | None:
        if is_closed_generic(service):
            template = self._unkeyed.get(get_origin(service))
            if template is not None and template.is_open_generic:
                return self._close(template, service)

        if not self._autoregister_concrete_types:
            return None

        if is_pydantic_settings_subclass(service):
            logger.debug("Implicitly registering settings %r as a singleton", service)
            return Registration(
                service=service,
                implementation=None,
                lifetime=Lifetime.SINGLETON,
                factory=lambda _resolver: service(),
            )

        if self._policy.is_eligible_concrete(service):
            logger.debug("Implicitly registering %r as its own transient implementation", service)
            return Registration(
                service=service,
                implementation=service,
                lifetime=Lifetime.TRANSIENT,
                plan=self._planner.plan_for(service),
            )
        return None

    def _close(self, template: Registration, service: UserDependency) -> Registration:
        open_implementation = get_origin(template.implementation) or template.implementation
        implementation = close_generic(open_implementation, get_args(service))
        logger.debug("Closed %r over %r for %r", open_implementation, get_args(service), service)
        return Registration(
            service=service,
            implementation=implementation,
            lifetime=template.lifetime,
            plan=self._planner.plan_for(implementation),
        )
