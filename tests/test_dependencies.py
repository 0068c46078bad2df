"""Tests for attribute injection and circular dependency detection."""

from __future__ import annotations

import pytest

from pinwire.container import Container
from pinwire.exceptions import (
    PinwireCircularDependencyError,
    PinwireNotRegisteredError,
    PinwirePropertyInjectionError,
)
from pinwire.markers import Injected
from pinwire.providers import Lifetime


class AuditLog:
    pass


class Mailer:
    pass


class Handler:
    audit: Injected[AuditLog]
    name: str = "handler"


class DerivedHandler(Handler):
    mailer: Injected[Mailer]


class ReadOnlyHandler:
    audit: Injected[AuditLog]

    @property
    def audit(self) -> AuditLog:  # type: ignore[no-redef]
        return AuditLog()


class ConstructorOwnsAttribute:
    audit: Injected[AuditLog]

    def __init__(self, audit: AuditLog) -> None:
        self.audit = audit
        self.constructed_with = audit


class NeedsUnresolvable:
    missing: Injected[UnregisteredService]


class UnregisteredService:
    def __init__(self, value: str) -> None:
        self.value = value


class BrokenForwardRef:
    audit: Injected[DoesNotExist]  # type: ignore[name-defined]  # noqa: F821


class ServiceA:
    def __init__(self, b: ServiceB) -> None:
        self.b = b


class ServiceB:
    def __init__(self, a: ServiceA) -> None:
        self.a = a


class SelfDependent:
    def __init__(self, other: SelfDependent) -> None:
        self.other = other


class PropertyCycleA:
    b: Injected[PropertyCycleB]


class PropertyCycleB:
    a: Injected[PropertyCycleA]


class Diamond:
    def __init__(self, left: AuditLog, right: AuditLog) -> None:
        self.left = left
        self.right = right


class TestAttributeInjection:
    def test_injected_attribute_is_populated(self, container: Container) -> None:
        handler = container.resolve(Handler)

        assert isinstance(handler.audit, AuditLog)
        assert handler.name == "handler"

    def test_injected_attributes_are_inherited(self, container: Container) -> None:
        handler = container.resolve(DerivedHandler)

        assert isinstance(handler.audit, AuditLog)
        assert isinstance(handler.mailer, Mailer)

    def test_injected_attribute_uses_registration_lifetime(self, container: Container) -> None:
        container.register(AuditLog, lifetime=Lifetime.SINGLETON)

        first = container.resolve(Handler)
        second = container.resolve(Handler)

        assert first is not second
        assert first.audit is second.audit

    def test_injected_attribute_resolves_in_scope(self, container: Container) -> None:
        container.register(AuditLog, lifetime=Lifetime.SCOPED)

        with container.begin_scope() as scope:
            handler = scope.resolve(Handler)
            assert handler.audit is scope.resolve(AuditLog)

    def test_read_only_property_is_skipped(self, container: Container) -> None:
        handler = container.resolve(ReadOnlyHandler)

        assert isinstance(handler.audit, AuditLog)

    def test_constructor_parameter_is_not_injected_twice(self, container: Container) -> None:
        instance = container.resolve(ConstructorOwnsAttribute)

        assert instance.audit is instance.constructed_with

    def test_unresolvable_attribute_raises_property_injection_error(
        self,
        container: Container,
    ) -> None:
        with pytest.raises(PinwirePropertyInjectionError) as exc_info:
            container.resolve(NeedsUnresolvable)

        assert exc_info.value.implementation is NeedsUnresolvable
        assert exc_info.value.attribute == "missing"
        assert isinstance(exc_info.value.__cause__, PinwireNotRegisteredError)

    def test_unresolvable_annotation_raises_property_injection_error(
        self,
        container: Container,
    ) -> None:
        with pytest.raises(PinwirePropertyInjectionError):
            container.resolve(BrokenForwardRef)


class TestCircularDependencies:
    def test_constructor_cycle_is_detected(self, container: Container) -> None:
        with pytest.raises(PinwireCircularDependencyError) as exc_info:
            container.resolve(ServiceA)

        assert exc_info.value.service is ServiceA
        assert exc_info.value.chain == (ServiceA, ServiceB)
        assert "ServiceA -> ServiceB -> ServiceA" in str(exc_info.value)

    def test_self_dependency_is_detected(self, container: Container) -> None:
        with pytest.raises(PinwireCircularDependencyError):
            container.resolve(SelfDependent)

    def test_singleton_cycle_is_detected(self, container: Container) -> None:
        container.register(ServiceA, lifetime=Lifetime.SINGLETON)
        container.register(ServiceB, lifetime=Lifetime.SINGLETON)

        with pytest.raises(PinwireCircularDependencyError):
            container.resolve(ServiceB)

    def test_scoped_cycle_is_detected(self, container: Container) -> None:
        container.register(ServiceA, lifetime=Lifetime.SCOPED)
        container.register(ServiceB, lifetime=Lifetime.SCOPED)

        with container.begin_scope() as scope, pytest.raises(PinwireCircularDependencyError):
            scope.resolve(ServiceA)

    def test_attribute_cycle_propagates_unwrapped(self, container: Container) -> None:
        with pytest.raises(PinwireCircularDependencyError):
            container.resolve(PropertyCycleA)

    def test_shared_dependency_is_not_a_cycle(self, container: Container) -> None:
        diamond = container.resolve(Diamond)

        assert diamond.left is not diamond.right

    def test_failed_resolution_leaves_no_stale_frames(self, container: Container) -> None:
        with pytest.raises(PinwireCircularDependencyError):
            container.resolve(ServiceA)

        container.register_instance(ServiceB, ServiceB.__new__(ServiceB))

        assert isinstance(container.resolve(ServiceA), ServiceA)
