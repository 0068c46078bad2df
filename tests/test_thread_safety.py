"""Tests for thread safety of Container."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Generic, TypeVar

from pinwire.container import Container
from pinwire.exceptions import PinwireCircularDependencyError
from pinwire.providers import Lifetime


class ServiceA:
    pass


class ServiceB:
    def __init__(self, a: ServiceA) -> None:
        self.a = a


class SlowService:
    instances = 0
    lock = threading.Lock()

    def __init__(self) -> None:
        time.sleep(0.01)
        with SlowService.lock:
            SlowService.instances += 1


T = TypeVar("T")


class Box(Generic[T]):
    pass


class Clock:
    pass


class Scheduler:
    def __init__(self, clock: Clock) -> None:
        self.clock = clock


class Fast:
    pass


class CycleA:
    def __init__(self, b: "CycleB") -> None:
        self.b = b


class CycleB:
    def __init__(self, a: CycleA) -> None:
        self.a = a


def _run_concurrently(target, count: int = 10) -> tuple[list[object], list[Exception]]:  # type: ignore[no-untyped-def]
    results: list[object] = []
    errors: list[Exception] = []
    barrier = threading.Barrier(count)

    def worker() -> None:
        barrier.wait()
        try:
            results.append(target())
        except Exception as e:  # noqa: BLE001
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


class TestConcurrentResolution:
    def test_concurrent_singleton_resolution_same_instance(self, container: Container) -> None:
        """Concurrent singleton resolution returns same instance."""
        container.register(ServiceA, lifetime=Lifetime.SINGLETON)

        results, errors = _run_concurrently(lambda: container.resolve(ServiceA))

        assert not errors
        assert len(results) == 10
        assert all(r is results[0] for r in results)

    def test_concurrent_first_singleton_construction_runs_once(
        self,
        container: Container,
    ) -> None:
        SlowService.instances = 0
        container.register(SlowService, lifetime=Lifetime.SINGLETON)

        results, errors = _run_concurrently(lambda: container.resolve(SlowService))

        assert not errors
        assert SlowService.instances == 1
        assert len({id(r) for r in results}) == 1

    def test_concurrent_singleton_factory_called_once(self, container: Container) -> None:
        calls: list[int] = []

        def build(_resolver: object) -> ServiceA:
            time.sleep(0.01)
            calls.append(1)
            return ServiceA()

        container.register_factory(ServiceA, build, Lifetime.SINGLETON)

        _, errors = _run_concurrently(lambda: container.resolve(ServiceA))

        assert not errors
        assert len(calls) == 1

    def test_concurrent_scoped_resolution_shares_instance_in_scope(
        self,
        container: Container,
    ) -> None:
        SlowService.instances = 0
        container.register(SlowService, lifetime=Lifetime.SCOPED)

        with container.begin_scope() as scope:
            results, errors = _run_concurrently(lambda: scope.resolve(SlowService))

        assert not errors
        assert SlowService.instances == 1
        assert all(r is results[0] for r in results)

    def test_concurrent_transient_resolution_different_instances(
        self,
        container: Container,
    ) -> None:
        """Concurrent transient resolution creates different instances."""
        results, errors = _run_concurrently(lambda: container.resolve(ServiceB))

        assert not errors
        assert len({id(r) for r in results}) == 10
        assert len({id(r.a) for r in results}) == 10  # type: ignore[attr-defined]

    def test_cycle_detection_is_isolated_per_thread(self, container: Container) -> None:
        _, errors = _run_concurrently(lambda: container.resolve(CycleA))

        assert len(errors) == 10
        assert all(isinstance(e, PinwireCircularDependencyError) for e in errors)


class TestConcurrentRegistration:
    def test_concurrent_registration_no_corruption(self) -> None:
        """Concurrent registration doesn't corrupt registry."""
        container = Container(autoregister_concrete_types=False)
        classes = [type(f"Service{i}", (), {}) for i in range(50)]

        with ThreadPoolExecutor(max_workers=10) as executor:
            list(executor.map(container.register, classes))

        for cls in classes:
            assert isinstance(container.resolve(cls), cls)

    def test_registration_during_resolution(self) -> None:
        container = Container()
        container.register(ServiceA, lifetime=Lifetime.SINGLETON)
        errors: list[Exception] = []

        def register_keyed(i: int) -> None:
            try:
                container.register(ServiceA, key=i)
            except Exception as e:  # noqa: BLE001
                errors.append(e)

        def resolve(_i: int) -> None:
            try:
                container.resolve(list[ServiceA])
            except Exception as e:  # noqa: BLE001
                errors.append(e)

        with ThreadPoolExecutor(max_workers=8) as executor:
            for i in range(40):
                executor.submit(register_keyed, i)
                executor.submit(resolve, i)

        assert not errors
        assert len(container.resolve(list[ServiceA])) == 41

    def test_closing_open_generics_while_template_is_replaced(self) -> None:
        container = Container()
        container.register(Box, Box)
        stop = threading.Event()
        errors: list[Exception] = []

        def resolve_new_shapes() -> None:
            while not stop.is_set():
                element = type("Element", (), {})
                try:
                    container.resolve(Box[element])  # type: ignore[valid-type]
                except Exception as e:  # noqa: BLE001
                    errors.append(e)

        threads = [threading.Thread(target=resolve_new_shapes) for _ in range(4)]
        for t in threads:
            t.start()
        try:
            for _ in range(500):
                container.register(Box, Box)
        finally:
            stop.set()
            for t in threads:
                t.join()

        assert not errors


class TestLockGranularity:
    def test_singleton_factory_can_wait_on_another_thread(self, container: Container) -> None:
        container.register(Clock, lifetime=Lifetime.SINGLETON)
        executor = ThreadPoolExecutor(max_workers=1)

        def build(_resolver: object) -> Scheduler:
            future = executor.submit(container.resolve, Clock)
            return Scheduler(future.result(timeout=2))

        container.register_factory(Scheduler, build, Lifetime.SINGLETON)

        try:
            scheduler = container.resolve(Scheduler)
        finally:
            executor.shutdown(wait=False)

        assert scheduler.clock is container.resolve(Clock)

    def test_slow_singleton_does_not_block_unrelated_singleton(
        self,
        container: Container,
    ) -> None:
        started = threading.Event()
        release = threading.Event()

        def build_slow(_resolver: object) -> ServiceA:
            started.set()
            release.wait(timeout=5)
            return ServiceA()

        container.register_factory(ServiceA, build_slow, Lifetime.SINGLETON)
        container.register(Fast, lifetime=Lifetime.SINGLETON)

        with ThreadPoolExecutor(max_workers=2) as executor:
            slow = executor.submit(container.resolve, ServiceA)
            assert started.wait(timeout=2)
            fast = executor.submit(container.resolve, Fast)
            try:
                assert isinstance(fast.result(timeout=2), Fast)
            finally:
                release.set()
            assert isinstance(slow.result(timeout=2), ServiceA)

    def test_slow_scoped_construction_does_not_block_other_scope(
        self,
        container: Container,
    ) -> None:
        started = threading.Event()
        release = threading.Event()

        def build_slow(_resolver: object) -> ServiceA:
            started.set()
            release.wait(timeout=5)
            return ServiceA()

        container.register_factory(ServiceA, build_slow, Lifetime.SCOPED)
        container.register(Fast, lifetime=Lifetime.SCOPED)

        with (
            container.begin_scope() as first,
            container.begin_scope() as second,
            ThreadPoolExecutor(max_workers=2) as executor,
        ):
            slow = executor.submit(first.resolve, ServiceA)
            assert started.wait(timeout=2)
            fast = executor.submit(second.resolve, Fast)
            try:
                assert isinstance(fast.result(timeout=2), Fast)
            finally:
                release.set()
            assert isinstance(slow.result(timeout=2), ServiceA)
