from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, TypeVar, get_args, get_origin

from pinwire.exceptions import PinwireInvalidGenericTypeArgumentError


def canonicalize_open_key(dependency: Any) -> type[Any] | None:
    """Normalize an open-generic descriptor to its origin class.

    ``Repository``, ``Repository[T]`` and ``Repository[U]`` all normalize to
    ``Repository`` so re-registering any spelling overrides the previous one.

    Args:
        dependency: Candidate registration key.

    Returns:
        The generic origin class when ``dependency`` is open-generic, or
        ``None`` when it is not.

    """
    origin = get_origin(dependency)
    if origin is None:
        if isinstance(dependency, type) and generic_parameters(dependency):
            return dependency
        return None

    if origin is Annotated or not isinstance(origin, type):
        return None
    if contains_typevar(dependency):
        return origin
    return None


def is_open_generic(dependency: Any) -> bool:
    """Return whether a descriptor still has unbound type parameters."""
    return canonicalize_open_key(dependency) is not None


def is_closed_generic(dependency: Any) -> bool:
    """Return whether a descriptor is a fully parameterized generic class alias."""
    origin = get_origin(dependency)
    if origin is None or origin is Annotated or not isinstance(origin, type):
        return False
    return bool(get_args(dependency)) and not contains_typevar(dependency)


def generic_parameters(cls: type[Any]) -> tuple[TypeVar, ...]:
    """Return the TypeVars a generic class is parameterized over."""
    return tuple(
        parameter
        for parameter in getattr(cls, "__parameters__", ())
        if isinstance(parameter, TypeVar)
    )


def contains_typevar(value: Any) -> bool:
    """Return whether a type expression still contains a ``TypeVar``.

    Args:
        value: Type expression or object to inspect.

    Returns:
        ``True`` when any nested node contains a TypeVar, else ``False``.

    """
    if isinstance(value, TypeVar):
        return True

    origin = get_origin(value)
    if origin is not None:
        return any(contains_typevar(argument) for argument in get_args(value))

    parameters = getattr(value, "__parameters__", ())
    return any(isinstance(parameter, TypeVar) for parameter in parameters)


def substitute_typevars(value: Any, *, mapping: Mapping[TypeVar, Any]) -> Any:
    """Substitute TypeVars in a type expression using a resolved mapping.

    Used when closing an open implementation to derive the concrete types of
    its constructor parameters and injected attributes.

    Args:
        value: Type expression template that may contain TypeVars.
        mapping: Mapping from template TypeVars to concrete type arguments.

    Returns:
        The substituted type expression with available TypeVars replaced.

    """
    if not mapping:
        return value

    if isinstance(value, TypeVar):
        return mapping.get(value, value)

    origin = get_origin(value)
    if origin is None:
        return value

    arguments = get_args(value)
    if not arguments:
        return value

    substituted_arguments = tuple(
        substitute_typevars(argument, mapping=mapping) for argument in arguments
    )
    if origin is Annotated:
        return Annotated[substituted_arguments]  # type: ignore[valid-type]
    return _rebuild_alias(origin=origin, args=substituted_arguments, fallback=value)


def typevar_map_for(dependency: Any) -> dict[TypeVar, Any]:
    """Map the origin's TypeVars to the arguments of a closed generic alias.

    Returns an empty mapping for anything that is not a closed generic alias.
    """
    if not is_closed_generic(dependency):
        return {}
    origin = get_origin(dependency)
    return dict(zip(generic_parameters(origin), get_args(dependency), strict=False))


def close_generic(open_type: type[Any], arguments: tuple[Any, ...]) -> Any:
    """Close an open generic class over concrete arguments.

    Arguments are bound positionally to ``open_type``'s TypeVars after being
    validated against their bounds and constraints.

    Raises:
        PinwireInvalidGenericTypeArgumentError: If the argument count does not
            match or any argument violates a TypeVar bound or constraint.

    """
    parameters = generic_parameters(open_type)
    if len(parameters) != len(arguments):
        msg = (
            f"'{open_type.__qualname__}' takes {len(parameters)} type argument(s), "
            f"got {len(arguments)}."
        )
        raise PinwireInvalidGenericTypeArgumentError(msg)

    validate_typevar_arguments(dict(zip(parameters, arguments, strict=True)))
    return _rebuild_alias(origin=open_type, args=arguments, fallback=open_type)


def validate_typevar_arguments(typevar_map: Mapping[TypeVar, Any]) -> None:
    """Validate closed generic arguments against TypeVar constraints and bounds.

    Args:
        typevar_map: Mapping from open TypeVars to candidate concrete arguments.

    Raises:
        PinwireInvalidGenericTypeArgumentError: If any argument violates TypeVar
            constraints or bound requirements.

    """
    for typevar, argument in typevar_map.items():
        if not _is_type_argument_valid(typevar=typevar, argument=argument):
            constraints = getattr(typevar, "__constraints__", ())
            bound = getattr(typevar, "__bound__", None)
            if constraints:
                formatted_constraints = ", ".join(repr(item) for item in constraints)
                msg = (
                    f"Generic argument {argument!r} for TypeVar '{typevar.__name__}' must satisfy "
                    f"one of: {formatted_constraints}."
                )
            elif bound is not None:
                msg = (
                    f"Generic argument {argument!r} for TypeVar '{typevar.__name__}' must satisfy "
                    f"bound {bound!r}."
                )
            else:
                msg = f"Generic argument {argument!r} is invalid for TypeVar '{typevar.__name__}'."
            raise PinwireInvalidGenericTypeArgumentError(msg)


def _rebuild_alias(*, origin: Any, args: tuple[Any, ...], fallback: Any) -> Any:
    try:
        if len(args) == 1:
            return origin[args[0]]
        return origin[args]
    except TypeError:
        return fallback


def _is_type_argument_valid(*, typevar: TypeVar, argument: Any) -> bool:
    constraints = getattr(typevar, "__constraints__", ())
    if constraints:
        return any(
            _matches_type_constraint(argument=argument, constraint=constraint)
            for constraint in constraints
        )
    bound = getattr(typevar, "__bound__", None)
    if bound is None:
        return True
    return _matches_type_constraint(argument=argument, constraint=bound)


def _matches_type_constraint(*, argument: Any, constraint: Any) -> bool:
    if constraint is Any:
        return True
    argument_type = get_origin(argument) or argument
    constraint_type = get_origin(constraint) or constraint
    if isinstance(argument_type, type) and isinstance(constraint_type, type):
        try:
            return issubclass(argument_type, constraint_type)
        except TypeError:
            return False
    return argument == constraint
