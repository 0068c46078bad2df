from __future__ import annotations

import collections.abc
import logging
import threading
import types
from collections.abc import Callable, Iterable, Mapping
from typing import Any, TypeAlias, TypeVar, cast, get_args, get_origin, overload

from pinwire._internal.autoregistration import (
    is_scannable_implementation,
    iter_candidate_types,
    iter_service_bases,
)
from pinwire.container_resolution_stack import resolution_frame
from pinwire.exceptions import (
    PinwireCircularDependencyError,
    PinwireConfigurationError,
    PinwireConstructionError,
    PinwireError,
    PinwireLifetimeViolationError,
    PinwireNotRegisteredError,
    PinwirePropertyInjectionError,
)
from pinwire.markers import Component, split_component
from pinwire.modules import Module
from pinwire.providers import (
    MISSING_ANNOTATION,
    ConstructionPlan,
    ConstructionPlanner,
    FactoryProvider,
    Lifetime,
    PlanParameter,
    Registration,
    UserDependency,
)
from pinwire.registry import RegistrationStore, normalize_service
from pinwire.scope import MISSING, LifetimeScope
from pinwire.validators import ImplementationValidator

logger = logging.getLogger(__name__)

T = TypeVar("T")

Interceptor: TypeAlias = Callable[[Registration, Any], Any]
"""Post-construction hook: ``(registration, instance) -> instance``."""

Resolver: TypeAlias = "Container | LifetimeScope"

_UNKEYED: Any = object()
_USE_DEFAULT: Any = object()
_LIST_ORIGINS: frozenset[Any] = frozenset(
    {
        list,
        collections.abc.Sequence,
        collections.abc.MutableSequence,
        collections.abc.Collection,
        collections.abc.Iterable,
    },
)
_TUPLE_VARIADIC_ARGS = 2


class Container:
    """Register services and resolve fully constructed object graphs.

    Service descriptors are usually classes, ABCs or protocols. Closed generic
    aliases resolve through open generic registrations, ``Annotated[T,
    Component(key)]`` selects a keyed registration, and ``list[T]`` (or
    ``Sequence[T]``, ``Iterable[T]``, ``tuple[T, ...]``) collects every
    registration of ``T``.

    Constructor parameters are resolved from their type hints; class attributes
    annotated with ``Injected[T]`` are populated after construction. Unregistered
    concrete classes are constructed as Transient self-registrations unless
    ``autoregister_concrete_types`` is disabled.

    The container is safe to share between threads. Registration changes run
    under the container lock. The first construction of each Singleton holds
    a lock owned by that registration, and each Scoped cache miss holds a lock
    owned by the scope for that registration, so no instance is built twice and
    unrelated services never wait on each other.
    """

    def __init__(
        self,
        default_lifetime: Lifetime = Lifetime.TRANSIENT,
        *,
        autoregister_concrete_types: bool = True,
    ) -> None:
        """Initialize a container and configure default registration behavior.

        Args:
            default_lifetime: Lifetime used by ``register`` and
                ``register_factory`` calls that omit ``lifetime``.
            autoregister_concrete_types: Construct unregistered concrete classes
                (and ``pydantic-settings`` models) on demand. Disable for strict
                mode where every service must be registered explicitly.

        Examples:
            .. code-block:: python

                container = Container()

                strict_container = Container(autoregister_concrete_types=False)

        """
        self._default_lifetime = default_lifetime
        self._lock = threading.RLock()

        # Per-registration locks for first Singleton construction
        self._singleton_locks: dict[Registration, threading.RLock] = {}
        self._singleton_locks_lock = threading.Lock()

        self._planner = ConstructionPlanner()
        self._validator = ImplementationValidator()
        self._store = RegistrationStore(
            planner=self._planner,
            autoregister_concrete_types=autoregister_concrete_types,
        )
        self._interceptors: tuple[Interceptor, ...] = ()
        self._loaded_modules: dict[int, Module] = {}

    # region Registration Methods
    def register(
        self,
        service: UserDependency,
        implementation: Any | None = None,
        lifetime: Lifetime | None = None,
        *,
        key: Any = _UNKEYED,
    ) -> None:
        """Map a service to the class that implements it.

        Re-registering the same service (and key) replaces the previous
        registration. The construction plan is computed here, once.

        Args:
            service: Service descriptor. Open generic classes (``Repository`` or
                ``Repository[T]``) register a template closed on resolution.
            implementation: Implementing class. Defaults to ``service`` itself.
            lifetime: Instance reuse policy. Defaults to the container default.
            key: Optional registration key. Must not be ``None``.

        Raises:
            PinwireConfigurationError: If the key is ``None``, the
                implementation is not a class, or an open generic service is
                paired with a closed implementation.

        """
        service, key = self._registration_target(service, key)
        implementation = service if implementation is None else implementation
        self._validator.validate_implementation(service, implementation)

        registration = Registration(
            service=normalize_service(service),
            implementation=implementation,
            lifetime=lifetime or self._default_lifetime,
            key=key,
        )
        if not registration.is_open_generic:
            registration.plan = self._planner.plan_for(implementation)

        self._add(registration)

    def register_instance(
        self,
        service: UserDependency,
        instance: Any,
        *,
        key: Any = _UNKEYED,
    ) -> None:
        """Register a pre-built instance; every resolution returns it unchanged.

        Raises:
            PinwireConfigurationError: If ``instance`` or ``key`` is ``None``.

        """
        if instance is None:
            msg = f"Instance registered for '{service!r}' must not be None."
            raise PinwireConfigurationError(msg)
        service, key = self._registration_target(service, key)
        self._validator.validate_not_open(service)

        registration = Registration(
            service=service,
            implementation=None,
            lifetime=Lifetime.SINGLETON,
            key=key,
            instance=instance,
        )
        self._add(registration)

    def register_factory(
        self,
        service: UserDependency,
        factory: FactoryProvider,
        lifetime: Lifetime | None = None,
        *,
        key: Any = _UNKEYED,
    ) -> None:
        """Register a factory called with the active resolver to build the service.

        The factory receives the ``LifetimeScope`` when resolution happens inside
        one, otherwise the container. Factory results skip constructor and
        attribute injection but still pass through the interceptors.
        """
        self._validator.validate_factory(factory)
        service, key = self._registration_target(service, key)
        self._validator.validate_not_open(service)

        registration = Registration(
            service=service,
            implementation=None,
            lifetime=lifetime or self._default_lifetime,
            factory=factory,
            key=key,
        )
        self._add(registration)

    def register_types(
        self,
        source: types.ModuleType | Iterable[Any],
        predicate: Callable[[type[Any]], bool] | None = None,
    ) -> int:
        """Map the base classes of scanned concrete classes to those classes.

        Each concrete class in ``source`` that passes ``predicate`` is registered
        as the Transient implementation of every base class that has no unkeyed
        registration yet, so the first scanned class wins for a shared base.

        Args:
            source: A module (classes defined in it, in definition order) or an
                iterable of classes (in iteration order).
            predicate: Optional filter applied to each candidate class.

        Returns:
            The number of registrations added.

        """
        added = 0
        with self._lock:
            for candidate in iter_candidate_types(source):
                if not is_scannable_implementation(candidate):
                    continue
                if predicate is not None and not predicate(candidate):
                    continue
                for service in iter_service_bases(candidate):
                    if self._store.contains(service):
                        continue
                    self.register(service, candidate, Lifetime.TRANSIENT)
                    added += 1

        logger.info("Registered %d service(s) from %r", added, getattr(source, "__name__", source))
        return added

    def register_module(self, module: Module) -> None:
        """Load a module's registrations; a module instance is only loaded once."""
        with self._lock:
            if id(module) in self._loaded_modules:
                logger.debug("Module %r already loaded", module)
                return
            self._loaded_modules[id(module)] = module
            try:
                module.load(self)
            except BaseException:
                del self._loaded_modules[id(module)]
                raise
        logger.info("Loaded module %s", type(module).__qualname__)

    def add_interceptor(self, interceptor: Interceptor) -> None:
        """Append a post-construction hook applied to every newly built instance.

        Interceptors run in registration order after attribute injection and
        may return a replacement object. Cached instances are not intercepted
        again.
        """
        with self._lock:
            self._interceptors = (*self._interceptors, interceptor)

    def is_registered(self, service: UserDependency, *, key: Any = None) -> bool:
        """Return whether an explicit registration exists for ``service`` (and ``key``)."""
        service, key = self._lookup_target(service, key)
        return self._store.contains(service, key)

    # endregion Registration Methods

    def begin_scope(self) -> LifetimeScope:
        """Create a lifetime scope for Scoped services.

        The caller owns the scope; use it as a context manager or call
        ``close()`` to discard its cache.
        """
        logger.debug("Beginning lifetime scope")
        return LifetimeScope(self)

    @overload
    def resolve(
        self,
        service: type[T],
        *,
        key: Any = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> T: ...

    @overload
    def resolve(
        self,
        service: Any,
        *,
        key: Any = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> Any: ...

    def resolve(
        self,
        service: Any,
        *,
        key: Any = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> Any:
        """Resolve a service outside of any lifetime scope.

        Args:
            service: Service descriptor to resolve.
            key: Registration key for keyed lookups. A keyed miss is an error;
                there is no fallback for keyed lookups.
            overrides: Constructor arguments by parameter name, used verbatim
                for the requested service only (not for its dependencies).

        Raises:
            PinwireNotRegisteredError: If no registration or fallback exists.
            PinwireLifetimeViolationError: If the service is Scoped.
            PinwireCircularDependencyError: If the graph contains a cycle.

        """
        return self._resolve(service, scope=None, key=key, overrides=overrides)

    def _resolve(
        self,
        service: Any,
        *,
        scope: LifetimeScope | None,
        key: Any = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> Any:
        service, key = self._lookup_target(service, key)

        if key is None:
            collection = _collection_shape(service)
            if collection is not None:
                element, collection_type = collection
                return collection_type(self._resolve_all(element, scope))

        registration = self._store.find(service, key)
        if registration is None:
            raise PinwireNotRegisteredError(service, key)
        return self._resolve_registration(registration, scope, overrides)

    def _resolve_all(self, element: Any, scope: LifetimeScope | None) -> list[Any]:
        default = self._store.find(element)
        keyed = self._store.keyed(element)

        instances: list[Any] = []
        if default is not None:
            instances.append(self._resolve_registration(default, scope, None))
        instances.extend(
            self._resolve_registration(registration, scope, None) for registration in keyed
        )
        return instances

    def _resolve_registration(
        self,
        registration: Registration,
        scope: LifetimeScope | None,
        overrides: Mapping[str, Any] | None,
    ) -> Any:
        lifetime = registration.lifetime

        if lifetime is Lifetime.SINGLETON:
            if registration.has_instance:
                return registration.instance
            with self._get_singleton_lock(registration):
                # Double-check: another thread may have finished construction.
                if registration.has_instance:
                    return registration.instance
                instance = self._construct(registration, scope, overrides)
                registration.instance = instance
                return instance

        if lifetime is Lifetime.SCOPED:
            if scope is None:
                raise PinwireLifetimeViolationError(registration.service)
            cached = scope.get_cached(registration)
            if cached is not MISSING:
                return cached
            with scope.lock_for(registration):
                cached = scope.get_cached(registration)
                if cached is not MISSING:
                    return cached
                instance = self._construct(registration, scope, overrides)
                scope.cache(registration, instance)
                return instance

        return self._construct(registration, scope, overrides)

    def _get_singleton_lock(self, registration: Registration) -> threading.RLock:
        """Get or create the lock guarding first construction of a Singleton.

        Uses double-checked locking so cached lookups never contend.
        """
        lock = self._singleton_locks.get(registration)
        if lock is None:
            with self._singleton_locks_lock:
                lock = self._singleton_locks.setdefault(registration, threading.RLock())
        return lock

    def _construct(
        self,
        registration: Registration,
        scope: LifetimeScope | None,
        overrides: Mapping[str, Any] | None,
    ) -> Any:
        with resolution_frame(registration):
            return self._create_instance(registration, scope, overrides)

    def _create_instance(
        self,
        registration: Registration,
        scope: LifetimeScope | None,
        overrides: Mapping[str, Any] | None,
    ) -> Any:
        if registration.factory is not None:
            resolver: Resolver = self if scope is None else scope
            instance = registration.factory(resolver)
            return self._apply_interceptors(registration, instance)

        # Every non-factory registration reachable from the store carries a plan.
        plan = cast("ConstructionPlan", registration.plan)
        if plan.error is not None:
            raise PinwireConstructionError(plan.error)

        args, kwargs = self._build_arguments(plan, scope, overrides)
        instance = plan.implementation(*args, **kwargs)
        self._inject_properties(plan, instance, scope)
        return self._apply_interceptors(registration, instance)

    def _build_arguments(
        self,
        plan: ConstructionPlan,
        scope: LifetimeScope | None,
        overrides: Mapping[str, Any] | None,
    ) -> tuple[list[Any], dict[str, Any]]:
        overrides = overrides or {}
        args: list[Any] = []
        kwargs: dict[str, Any] = {}

        for parameter in plan.parameters:
            if parameter.name in overrides:
                value = overrides[parameter.name]
            else:
                value = self._resolve_parameter(plan, parameter, scope)
                if value is _USE_DEFAULT:
                    continue

            if parameter.is_positional_only:
                args.append(value)
            else:
                kwargs[parameter.name] = value

        unused = set(overrides) - {parameter.name for parameter in plan.parameters}
        if unused:
            logger.debug(
                "Ignoring overrides %s not accepted by %r",
                sorted(unused),
                plan.implementation,
            )
        return args, kwargs

    def _resolve_parameter(
        self,
        plan: ConstructionPlan,
        parameter: PlanParameter,
        scope: LifetimeScope | None,
    ) -> Any:
        annotation = parameter.annotation
        if annotation is MISSING_ANNOTATION:
            if parameter.has_default:
                return _USE_DEFAULT
            msg = (
                f"Unable to resolve required parameter '{parameter.name}' of "
                f"{plan.implementation!r}: add a type annotation, a default value, "
                "or pass an override."
            )
            raise PinwireConstructionError(msg)

        if get_origin(annotation) is type:
            (type_argument,) = get_args(annotation)
            return type_argument

        if parameter.has_default and not self._can_resolve(annotation):
            return _USE_DEFAULT
        return self._resolve(annotation, scope=scope)

    def _inject_properties(
        self,
        plan: ConstructionPlan,
        instance: Any,
        scope: LifetimeScope | None,
    ) -> None:
        if plan.property_error is not None:
            raise PinwirePropertyInjectionError(
                plan.implementation,
                "<annotations>",
                plan.property_error,
            ) from plan.property_error

        for prop in plan.properties:
            try:
                value = self._resolve(prop.annotation, scope=scope)
            except PinwireCircularDependencyError:
                raise
            except PinwireError as exc:
                raise PinwirePropertyInjectionError(plan.implementation, prop.name, exc) from exc
            setattr(instance, prop.name, value)

    def _apply_interceptors(self, registration: Registration, instance: Any) -> Any:
        for interceptor in self._interceptors:
            instance = interceptor(registration, instance)
        return instance

    def _can_resolve(self, annotation: Any) -> bool:
        service, key = self._lookup_target(annotation, None)
        if key is None and _collection_shape(service) is not None:
            return True
        return self._store.find(service, key) is not None

    def _add(self, registration: Registration) -> None:
        with self._lock:
            self._store.add(registration)
        logger.debug(
            "Registered %r -> %r (lifetime=%s, key=%r)",
            registration.service,
            registration.implementation or registration.factory or type(registration.instance),
            registration.lifetime.name,
            registration.key,
        )

    def _registration_target(self, service: Any, key: Any) -> tuple[Any, Any]:
        if key is None:
            msg = f"Registration key for '{service!r}' must not be None."
            raise PinwireConfigurationError(msg)
        return self._lookup_target(service, None if key is _UNKEYED else key)

    def _lookup_target(self, service: Any, key: Any) -> tuple[Any, Any]:
        if isinstance(key, Component):
            key = key.value
        service, component = split_component(service)
        if component is None:
            return service, key
        if key is not None and key != component.value:
            msg = (
                f"Conflicting keys for '{service!r}': {key!r} and Component({component.value!r})."
            )
            raise PinwireConfigurationError(msg)
        return service, component.value


def _collection_shape(service: Any) -> tuple[Any, type[Any]] | None:
    origin = get_origin(service)
    if origin is None:
        return None
    args = get_args(service)
    if origin in _LIST_ORIGINS and len(args) == 1:
        return args[0], list
    if origin is tuple and len(args) == _TUPLE_VARIADIC_ARGS and args[1] is Ellipsis:
        return args[0], tuple
    return None
