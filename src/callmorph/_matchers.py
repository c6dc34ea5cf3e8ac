from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Matcher(Protocol):
    def matches(self, value: Any) -> bool: ...


@dataclass(frozen=True, slots=True)
class Exact:
    value: Any

    def matches(self, value: Any) -> bool:
        return bool(value == self.value)

    def __str__(self) -> str:
        return repr(self.value)


@dataclass(frozen=True, slots=True)
class IsA:
    """Accepts any argument that is an instance of ``type_``."""

    type_: type | tuple[type, ...] = object

    def matches(self, value: Any) -> bool:
        return isinstance(value, self.type_)

    def __str__(self) -> str:
        if self.type_ is object:
            return "ANY"
        if isinstance(self.type_, tuple):
            names = " | ".join(t.__qualname__ for t in self.type_)
            return f"IsA({names})"
        return f"IsA({self.type_.__qualname__})"


@dataclass(frozen=True, slots=True)
class Predicate:
    function: Callable[[Any], bool]
    description: str | None = field(default=None, compare=False)

    def matches(self, value: Any) -> bool:
        return bool(self.function(value))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Predicate):
            return NotImplemented
        return self.function is other.function

    def __hash__(self) -> int:
        return id(self.function)

    def __str__(self) -> str:
        if self.description is not None:
            return self.description
        return f"Predicate({getattr(self.function, '__qualname__', self.function)})"


ANY = IsA()


def as_matcher(value: Any) -> Matcher:
    if isinstance(value, Matcher):
        return value
    return Exact(value)
