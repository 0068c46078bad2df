from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from pinwire.exceptions import PinwireCircularDependencyError
from pinwire.providers import Registration

# Registrations currently under construction in this thread or async task.
# Stored as an immutable tuple so copied contexts never share a mutable stack.
_resolution_stack: ContextVar[tuple[Registration, ...]] = ContextVar(
    "pinwire_resolution_stack",
    default=(),
)


def get_resolution_stack() -> tuple[Registration, ...]:
    """Return the registrations on the active resolution path, outermost first."""
    return _resolution_stack.get()


@contextmanager
def resolution_frame(registration: Registration) -> Iterator[None]:
    """Push ``registration`` on the resolution stack for the duration of its construction.

    Raises:
        PinwireCircularDependencyError: If ``registration`` is already being
            constructed further up the same call chain.

    """
    stack = _resolution_stack.get()
    if any(frame is registration for frame in stack):
        raise PinwireCircularDependencyError(
            registration.service,
            [frame.service for frame in stack],
        )

    token = _resolution_stack.set((*stack, registration))
    try:
        yield
    finally:
        _resolution_stack.reset(token)
