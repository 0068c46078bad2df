from pinwire.container import Container, Interceptor
from pinwire.exceptions import (
    PinwireCircularDependencyError,
    PinwireConfigurationError,
    PinwireConstructionError,
    PinwireError,
    PinwireInvalidGenericTypeArgumentError,
    PinwireLifetimeViolationError,
    PinwireNotRegisteredError,
    PinwirePropertyInjectionError,
)
from pinwire.markers import Component, Injected
from pinwire.modules import Module
from pinwire.providers import Lifetime, Registration
from pinwire.scope import LifetimeScope

__all__ = [
    "Component",
    "Container",
    "Injected",
    "Interceptor",
    "Lifetime",
    "LifetimeScope",
    "Module",
    "PinwireCircularDependencyError",
    "PinwireConfigurationError",
    "PinwireConstructionError",
    "PinwireError",
    "PinwireInvalidGenericTypeArgumentError",
    "PinwireLifetimeViolationError",
    "PinwireNotRegisteredError",
    "PinwirePropertyInjectionError",
    "Registration",
]
