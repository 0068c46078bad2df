from __future__ import annotations

import inspect
import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum, auto
from inspect import Parameter
from typing import Any, ClassVar, ForwardRef, TypeAlias, TypeVar, get_origin, get_type_hints

from pinwire.markers import is_injected_annotation, strip_injected_annotation
from pinwire.open_generics import is_open_generic, substitute_typevars, typevar_map_for

logger = logging.getLogger(__name__)

T = TypeVar("T")

UserDependency: TypeAlias = Any
"""A service descriptor that has been registered or is being resolved from the user's code."""

FactoryProvider: TypeAlias = Callable[[Any], Any]
"""A factory receiving the active resolver (container or lifetime scope) and returning an instance."""

MISSING_ANNOTATION: Any = object()
_NOT_CREATED: Any = object()


class Lifetime(Enum):
    """Defines the lifetime of a service in the container."""

    TRANSIENT = auto()
    """A new instance is created every time the service is requested."""

    SINGLETON = auto()
    """A single instance is created and shared for the lifetime of the container."""

    SCOPED = auto()
    """Instance is shared within a lifetime scope, different instances across scopes."""


@dataclass(frozen=True, slots=True)
class PlanParameter:
    """A constructor parameter as seen by the resolution engine."""

    name: str
    annotation: Any
    kind: inspect._ParameterKind
    has_default: bool

    @property
    def is_positional_only(self) -> bool:
        return self.kind is Parameter.POSITIONAL_ONLY


@dataclass(frozen=True, slots=True)
class PlanProperty:
    """A writable ``Injected[...]`` attribute populated after construction."""

    name: str
    annotation: Any


@dataclass(frozen=True, slots=True)
class ConstructionPlan:
    """Everything needed to build an implementation, computed once per implementation."""

    implementation: Any
    parameters: tuple[PlanParameter, ...] = ()
    properties: tuple[PlanProperty, ...] = ()
    error: str | None = None
    """Set when the implementation cannot be instantiated at all."""
    property_error: Exception | None = None
    """Set when injected attribute annotations could not be evaluated."""


@dataclass(eq=False)
class Registration:
    """Describe how to produce a service.

    Registrations compare and hash by identity; lifetime scopes key their
    caches on the registration object itself.
    """

    service: UserDependency
    """The normalized service descriptor."""
    implementation: Any | None
    """The implementation class or closed generic alias. ``None`` for factory and instance registrations."""
    lifetime: Lifetime
    factory: FactoryProvider | None = None
    key: Any = None
    """The registration key, ``None`` for the unkeyed registration."""
    plan: ConstructionPlan | None = None
    instance: Any = field(default=_NOT_CREATED, repr=False)
    """The cached singleton instance."""

    @property
    def has_instance(self) -> bool:
        return self.instance is not _NOT_CREATED

    @property
    def is_open_generic(self) -> bool:
        return self.implementation is not None and is_open_generic(self.implementation)


class ConstructionPlanner:
    """Build and cache construction plans from constructor signatures and class annotations.

    Python classes expose a single constructor signature, so the plan always
    uses ``inspect.signature(cls)``. For closed generic aliases the origin's
    TypeVars are substituted with the alias arguments.
    """

    _SKIPPED_KINDS: ClassVar[tuple[inspect._ParameterKind, ...]] = (
        Parameter.VAR_POSITIONAL,
        Parameter.VAR_KEYWORD,
    )

    def __init__(self) -> None:
        self._plans: dict[Any, ConstructionPlan] = {}

    def plan_for(self, implementation: Any) -> ConstructionPlan:
        cached = self._plans.get(implementation)
        if cached is not None:
            return cached

        plan = self._build_plan(implementation)
        return self._plans.setdefault(implementation, plan)

    def _build_plan(self, implementation: Any) -> ConstructionPlan:
        origin = get_origin(implementation) or implementation
        name = getattr(origin, "__qualname__", repr(origin))

        if inspect.isabstract(origin):
            return ConstructionPlan(
                implementation=implementation,
                error=f"'{name}' is abstract and has no public constructor.",
            )

        try:
            signature = inspect.signature(origin)
        except (TypeError, ValueError) as exc:
            return ConstructionPlan(
                implementation=implementation,
                error=f"Unable to inspect the constructor of '{name}': {exc}",
            )

        mapping = typevar_map_for(implementation)
        hints = self._constructor_hints(origin)
        parameters = tuple(
            PlanParameter(
                name=parameter.name,
                annotation=self._parameter_annotation(parameter, hints, mapping),
                kind=parameter.kind,
                has_default=parameter.default is not Parameter.empty,
            )
            for parameter in signature.parameters.values()
            if parameter.kind not in self._SKIPPED_KINDS
        )

        parameter_names = {parameter.name for parameter in parameters}
        try:
            properties = tuple(
                prop
                for prop in self._injected_properties(origin, mapping)
                if prop.name not in parameter_names
            )
        except (NameError, TypeError) as exc:
            return ConstructionPlan(
                implementation=implementation,
                parameters=parameters,
                property_error=exc,
            )

        return ConstructionPlan(
            implementation=implementation,
            parameters=parameters,
            properties=properties,
        )

    def _constructor_hints(self, origin: type[Any]) -> dict[str, Any]:
        init = inspect.getattr_static(origin, "__init__", None)
        try:
            return get_type_hints(init, include_extras=True)
        except TypeError:
            return {}
        except NameError as exc:
            logger.warning(
                "'%s' name error retrieving %s (%s) type hints",
                exc.name,
                origin.__name__,
                origin.__qualname__,
            )
            return {}

    def _parameter_annotation(
        self,
        parameter: Parameter,
        hints: dict[str, Any],
        mapping: dict[TypeVar, Any],
    ) -> Any:
        annotation = hints.get(parameter.name, MISSING_ANNOTATION)
        if annotation is MISSING_ANNOTATION:
            raw_annotation = parameter.annotation
            if raw_annotation is Parameter.empty or isinstance(raw_annotation, str):
                return MISSING_ANNOTATION
            annotation = raw_annotation
        return substitute_typevars(strip_injected_annotation(annotation), mapping=mapping)

    def _injected_properties(
        self,
        origin: type[Any],
        mapping: dict[TypeVar, Any],
    ) -> list[PlanProperty]:
        if not self._declares_injected(origin):
            return []

        properties: list[PlanProperty] = []
        for name, hint in get_type_hints(origin, include_extras=True).items():
            if not is_injected_annotation(hint):
                continue
            descriptor = inspect.getattr_static(origin, name, None)
            if isinstance(descriptor, property) and descriptor.fset is None:
                logger.debug("Skipping read-only injected attribute %s.%s", origin.__qualname__, name)
                continue
            properties.append(
                PlanProperty(
                    name=name,
                    annotation=substitute_typevars(
                        strip_injected_annotation(hint),
                        mapping=mapping,
                    ),
                ),
            )
        return properties

    def _declares_injected(self, origin: type[Any]) -> bool:
        # String annotations are checked by name so unrelated forward references
        # never fail planning for classes without injected attributes.
        for klass in origin.__mro__:
            for annotation in _own_annotations(klass).values():
                if isinstance(annotation, ForwardRef):
                    annotation = annotation.__forward_arg__
                if isinstance(annotation, str):
                    if "Injected[" in annotation:
                        return True
                elif is_injected_annotation(annotation):
                    return True
        return False


if sys.version_info >= (3, 14):
    import annotationlib

    def _own_annotations(klass: type[Any]) -> dict[str, Any]:
        return annotationlib.get_annotations(klass, format=annotationlib.Format.FORWARDREF)

else:

    def _own_annotations(klass: type[Any]) -> dict[str, Any]:
        return dict(klass.__dict__.get("__annotations__", {}))
