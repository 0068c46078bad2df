from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pinwire.container import Container


class Module(ABC):
    """Group related registrations for reuse.

    A module only issues registration calls; the container loads each module
    instance once through ``Container.register_module``.

    Examples:
        .. code-block:: python

            class PersistenceModule(Module):
                def load(self, container: Container) -> None:
                    container.register(Repository, SqlRepository, Lifetime.SCOPED)
                    container.register_factory(Engine, lambda _: create_engine(), Lifetime.SINGLETON)

    """

    @abstractmethod
    def load(self, container: Container) -> None:
        """Apply this module's registrations to ``container``."""
