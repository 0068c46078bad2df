from pinwire.integrations.pytest_plugin.plugin import (
    _pinwire_state,
    pinwire_container,
    pinwire_scope,
    pytest_pycollect_makeitem,
    pytest_pyfunc_call,
)

__all__ = [
    "_pinwire_state",
    "pinwire_container",
    "pinwire_scope",
    "pytest_pycollect_makeitem",
    "pytest_pyfunc_call",
]
