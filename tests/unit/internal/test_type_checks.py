from __future__ import annotations

import abc
from typing import Protocol

from pinwire._internal.type_checks import (
    is_builtin_class,
    is_constructible_class,
    is_protocol_class,
    is_runtime_class,
)


class Greeter(Protocol):
    def greet(self) -> str: ...


class EnglishGreeter(Greeter):
    def greet(self) -> str:
        return "hello"


class BaseRepository(abc.ABC):
    @abc.abstractmethod
    def get(self) -> object: ...


class MemoryRepository(BaseRepository):
    def get(self) -> object:
        return None


def test_subscripted_aliases_are_not_runtime_classes() -> None:
    assert is_runtime_class(MemoryRepository)
    assert not is_runtime_class(list[int])
    assert not is_runtime_class(MemoryRepository())


def test_protocol_subclass_implementations_are_not_protocols() -> None:
    assert is_protocol_class(Greeter)
    assert not is_protocol_class(EnglishGreeter)


def test_builtin_classes_are_detected() -> None:
    assert is_builtin_class(int)
    assert is_builtin_class(dict)
    assert not is_builtin_class(MemoryRepository)


def test_constructible_classes_exclude_abstract_protocol_and_builtins() -> None:
    assert is_constructible_class(MemoryRepository)
    assert is_constructible_class(EnglishGreeter)
    assert not is_constructible_class(BaseRepository)
    assert not is_constructible_class(Greeter)
    assert not is_constructible_class(str)
    assert not is_constructible_class(list[int])
