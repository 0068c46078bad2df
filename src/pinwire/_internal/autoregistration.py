from __future__ import annotations

import abc
import datetime
import decimal
import logging
import pathlib
import types
import uuid
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeGuard, get_origin

from pinwire._internal.type_checks import (
    is_builtin_class,
    is_constructible_class,
    is_runtime_class,
)
from pinwire.open_generics import contains_typevar, generic_parameters, is_closed_generic

logger = logging.getLogger(__name__)

_NEVER_SERVICES: tuple[type[Any], ...] = (object, Generic, Protocol, abc.ABC)  # type: ignore[assignment]


@dataclass(frozen=True, slots=True)
class ConcreteTypeAutoregistrationPolicy:
    """Internal policy for implicit self-registration eligibility."""

    ignored_base_types: tuple[type[Any], ...] = (
        pathlib.PurePath,
        datetime.datetime,
        datetime.date,
        datetime.time,
        datetime.timedelta,
        uuid.UUID,
        decimal.Decimal,
    )

    def is_eligible_concrete(self, candidate: object) -> bool:
        """Return true when a candidate can be implicitly registered as its own implementation.

        Closed generic aliases are eligible when their origin class is.

        Args:
            candidate: Value being checked for eligibility or runtime type constraints.

        """
        if is_closed_generic(candidate):
            return self._is_eligible_class(get_origin(candidate))
        if not self._is_eligible_class(candidate):
            return False
        return not generic_parameters(candidate)

    def _is_eligible_class(self, candidate: object) -> TypeGuard[type[Any]]:
        if not is_constructible_class(candidate):
            return False
        if issubclass(candidate, type):
            return False
        return not issubclass(candidate, self.ignored_base_types)


def iter_candidate_types(source: types.ModuleType | Iterable[Any]) -> Iterator[type[Any]]:
    """Yield candidate classes from a module or an iterable of objects.

    Module sources yield the classes defined in that module in attribute order;
    imported names are skipped.
    """
    if isinstance(source, types.ModuleType):
        values: Iterable[Any] = (
            value
            for value in vars(source).values()
            if is_runtime_class(value) and value.__module__ == source.__name__
        )
    else:
        values = source

    for value in values:
        if is_runtime_class(value):
            yield value


def is_scannable_implementation(candidate: type[Any]) -> bool:
    """Return whether a scanned class can back its base-class services."""
    return is_constructible_class(candidate)


def iter_service_bases(implementation: type[Any]) -> Iterator[Any]:
    """Yield the service descriptors a scanned class can satisfy.

    Every base class in MRO order is a candidate, except ``object``,
    ``Generic``, ``Protocol``, ``abc.ABC`` and builtins. Open generic bases
    are yielded as-is when the implementation is open with the same arity;
    for closed implementations the parameterized spelling is taken from
    ``__orig_bases__`` (``class CustomerRepo(Repository[Customer])`` yields
    ``Repository[Customer]``). Bases that cannot be paired are skipped.
    """
    implementation_arity = len(generic_parameters(implementation))
    closed_spellings = _collect_orig_bases(implementation)

    for base in implementation.__mro__[1:]:
        if base in _NEVER_SERVICES or is_builtin_class(base):
            continue

        base_arity = len(generic_parameters(base))
        if not base_arity:
            yield base
            continue

        if implementation_arity:
            if implementation_arity == base_arity:
                yield base
            else:
                logger.debug(
                    "Skipping open base %s of %s: arity %d does not match %d",
                    base.__qualname__,
                    implementation.__qualname__,
                    base_arity,
                    implementation_arity,
                )
            continue

        closed = closed_spellings.get(base)
        if closed is not None and not contains_typevar(closed):
            yield closed


def _collect_orig_bases(implementation: type[Any]) -> dict[type[Any], Any]:
    spellings: dict[type[Any], Any] = {}
    for klass in implementation.__mro__:
        for orig_base in klass.__dict__.get("__orig_bases__", ()):
            origin = get_origin(orig_base)
            if isinstance(origin, type):
                spellings.setdefault(origin, orig_base)
    return spellings
