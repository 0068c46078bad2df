"""Shared pytest fixtures for pinwire tests."""

import pytest

from pinwire.container import Container
from pinwire.providers import Lifetime


@pytest.fixture()
def container() -> Container:
    """Default container with implicit self-registration enabled."""
    return Container()


@pytest.fixture()
def container_no_autoregister() -> Container:
    """Container in strict mode: only explicit registrations resolve."""
    return Container(autoregister_concrete_types=False)


@pytest.fixture()
def container_singleton() -> Container:
    """Container with lifetime singleton as default."""
    return Container(default_lifetime=Lifetime.SINGLETON)
