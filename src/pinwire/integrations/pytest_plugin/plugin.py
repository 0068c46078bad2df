from __future__ import annotations

import functools
import inspect
from collections.abc import Callable, Iterator
from typing import Any, cast, get_type_hints

import pytest

from pinwire.container import Container
from pinwire.markers import is_injected_annotation, strip_injected_annotation
from pinwire.scope import LifetimeScope

_PINWIRE_SCOPE_ATTR = "_pinwire_scope"
_PINWIRE_INJECTED_PARAMETERS_ATTR = "__pinwire_pytest_injected_parameters__"


@pytest.fixture()
def pinwire_container() -> Container:
    """Create a per-test container used by the plugin.

    Override this fixture to register test doubles. It is function-scoped, so
    registrations are isolated between tests unless the override widens the
    fixture scope.

    Returns:
        A new ``Container`` instance.

    """
    return Container()


@pytest.fixture()
def pinwire_scope(pinwire_container: Container) -> Iterator[LifetimeScope]:
    """Open a lifetime scope for the duration of one test.

    ``Injected[...]`` test parameters are resolved through this scope, so
    Scoped services are shared between the parameters of a single test.
    """
    with pinwire_container.begin_scope() as scope:
        yield scope


@pytest.fixture(autouse=True)
def _pinwire_state(
    request: pytest.FixtureRequest,
    pinwire_scope: LifetimeScope,
) -> None:
    """Store plugin state on the test node for hook access."""
    node = cast("Any", request.node)
    setattr(node, _PINWIRE_SCOPE_ATTR, pinwire_scope)


def pytest_pycollect_makeitem(
    collector: Any,
    name: str,
    obj: object,
) -> Any | None:
    """Hide ``Injected[...]`` parameters from pytest fixture name matching.

    Pytest treats test function parameters as fixture names. Injected
    parameters are removed from the published signature and remembered on the
    function for ``pytest_pyfunc_call``.

    Returns:
        ``None`` to continue default collection flow.

    """
    if not callable(obj):
        return None
    if not collector.istestfunction(obj, name):
        return None

    callable_obj = cast("Callable[..., Any]", obj)
    injected = _injected_parameters(callable_obj)
    if not injected:
        return None

    signature = inspect.signature(callable_obj)
    obj_as_any = cast("Any", obj)
    obj_as_any.__dict__[_PINWIRE_INJECTED_PARAMETERS_ATTR] = injected
    obj_as_any.__signature__ = signature.replace(
        parameters=[
            parameter
            for parameter in signature.parameters.values()
            if parameter.name not in injected
        ],
    )
    return None


@pytest.hookimpl(hookwrapper=True, tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> Iterator[None]:
    """Resolve ``Injected[...]`` parameters from the test's lifetime scope.

    The test callable is swapped for a wrapper that adds the resolved values to
    the fixture arguments for the duration of the call. If no scope is attached
    to the node, this hook is a no-op.
    """
    original_callable = cast("Callable[..., Any]", pyfuncitem.obj)
    injected = cast(
        "dict[str, Any] | None",
        getattr(original_callable, _PINWIRE_INJECTED_PARAMETERS_ATTR, None),
    )
    scope = cast("LifetimeScope | None", getattr(pyfuncitem, _PINWIRE_SCOPE_ATTR, None))
    if not injected or scope is None:
        yield
        return

    pyfuncitem.obj = _with_injected(original_callable, injected, scope)
    try:
        yield
    finally:
        pyfuncitem.obj = original_callable


def _injected_parameters(function: Callable[..., Any]) -> dict[str, Any]:
    try:
        hints = get_type_hints(function, include_extras=True)
    except (NameError, TypeError):
        return {}
    return {
        name: strip_injected_annotation(hint)
        for name, hint in hints.items()
        if name != "return" and is_injected_annotation(hint)
    }


def _with_injected(
    function: Callable[..., Any],
    injected: dict[str, Any],
    scope: LifetimeScope,
) -> Callable[..., Any]:
    def resolve_all() -> dict[str, Any]:
        return {name: scope.resolve(service) for name, service in injected.items()}

    if inspect.iscoroutinefunction(function):

        @functools.wraps(function)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            return await function(*args, **kwargs, **resolve_all())

        return async_wrapper

    @functools.wraps(function)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return function(*args, **kwargs, **resolve_all())

    return wrapper
