from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, final

from callmorph._errors import ConfigurationError
from callmorph._matchers import Matcher, as_matcher

if TYPE_CHECKING:
    from callmorph._invocation import Invocation, Method


@dataclass(frozen=True, slots=True)
class Expectation:
    """Which calls a setup applies to: a method plus one matcher per parameter."""

    method: Method
    matchers: tuple[Matcher, ...] = field(default_factory=tuple)

    @classmethod
    def for_call(
        cls, method: Method, args: tuple[Any, ...], kwargs: dict[str, Any]
    ) -> Expectation:
        if method.signature is None:
            return cls(method, tuple(as_matcher(a) for a in args))
        try:
            bound = method.signature.bind(*args, **kwargs)
        except TypeError as e:
            raise ConfigurationError(
                f"Arguments {args}, {kwargs} do not fit {method}{method.signature}: {e}"
            ) from e
        bound.apply_defaults()
        return cls(method, tuple(as_matcher(v) for v in bound.arguments.values()))

    def matches(self, invocation: Invocation) -> bool:
        if invocation.method != self.method:
            return False
        arguments = invocation.arguments
        if len(arguments) != len(self.matchers):
            return False
        return all(m.matches(a) for m, a in zip(self.matchers, arguments))

    def __str__(self) -> str:
        return f"{self.method}({', '.join(str(m) for m in self.matchers)})"


@final
class Condition:
    """Extra predicate a setup must satisfy, independent of the arguments."""

    def __init__(
        self,
        predicate: Callable[[], bool],
        on_success: Callable[[], None] | None = None,
    ) -> None:
        self._predicate = predicate
        self._on_success = on_success

    def is_true(self) -> bool:
        return bool(self._predicate())

    def evaluated_successfully(self) -> None:
        if self._on_success is not None:
            self._on_success()


@final
class Sequence:
    """Hands out conditions that only hold in the order they were created."""

    def __init__(self, *, cyclic: bool = False) -> None:
        self._lock = threading.Lock()
        self._cyclic = cyclic
        self._step = 0
        self._length = 0

    def next_condition(self) -> Condition:
        with self._lock:
            position = self._length
            self._length += 1
        return Condition(lambda: self._step == position, self._advance)

    def _advance(self) -> None:
        with self._lock:
            self._step += 1
            if self._cyclic and self._step >= self._length:
                self._step = 0
