from __future__ import annotations

from typing import Any, get_origin

from pinwire._internal.type_checks import is_protocol_class, is_runtime_class
from pinwire.exceptions import PinwireConfigurationError
from pinwire.open_generics import generic_parameters, is_closed_generic, is_open_generic


class ImplementationValidator:
    """Validates registrations before they reach the registration store."""

    def validate_implementation(self, service: Any, implementation: Any) -> None:
        """Validate that ``implementation`` is a class that can satisfy ``service``.

        Open generic services must be paired with open generic implementations
        of the same arity. Nominal subclassing is enforced when the service is a
        plain class; protocols are structural and are not checked.
        """
        if is_open_generic(service):
            self._validate_open_pair(service, implementation)
            return

        if is_open_generic(implementation):
            msg = (
                f"Implementation '{_name(implementation)}' is open generic but service "
                f"'{_name(service)}' is not."
            )
            raise PinwireConfigurationError(msg)

        implementation_origin = _origin(implementation)
        if not is_runtime_class(implementation_origin):
            msg = f"Implementation must be a class, got {implementation!r}."
            raise PinwireConfigurationError(msg)

        service_origin = _origin(service)
        if (
            is_runtime_class(service_origin)
            and not is_protocol_class(service_origin)
            and not issubclass(implementation_origin, service_origin)
        ):
            msg = (
                f"Implementation '{_name(implementation)}' must be a subclass of "
                f"'{_name(service)}'."
            )
            raise PinwireConfigurationError(msg)

    def validate_not_open(self, service: Any) -> None:
        """Reject open generic services for registrations without an implementation type."""
        if is_open_generic(service):
            msg = (
                f"Open generic service '{_name(service)}' requires an open generic "
                "implementation type."
            )
            raise PinwireConfigurationError(msg)

    def validate_factory(self, factory: object) -> None:
        if not callable(factory):
            msg = f"Factory must be callable, got {factory!r}."
            raise PinwireConfigurationError(msg)

    def _validate_open_pair(self, service: Any, implementation: Any) -> None:
        if not is_open_generic(implementation):
            msg = (
                f"Implementation '{_name(implementation)}' must be open generic when service "
                f"'{_name(service)}' is open generic."
            )
            raise PinwireConfigurationError(msg)

        service_arity = len(generic_parameters(_origin(service)))
        implementation_arity = len(generic_parameters(_origin(implementation)))
        if service_arity != implementation_arity:
            msg = (
                f"Open generic implementation '{_name(implementation)}' takes "
                f"{implementation_arity} type parameter(s) but service '{_name(service)}' "
                f"takes {service_arity}."
            )
            raise PinwireConfigurationError(msg)


def _origin(value: Any) -> Any:
    if is_closed_generic(value) or is_open_generic(value):
        return get_origin(value) or value
    return value


def _name(value: Any) -> str:
    return getattr(value, "__qualname__", None) or repr(value)
