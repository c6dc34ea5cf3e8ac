"""Effects a setup performs when it handles an invocation.

The terminal effect of a setup is one of four closed variants, picked once
when the setup is configured. Event raising and invocation limits are
separate, optional steps of the same chain.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, cast, final

from callmorph._compat import CallableShape
from callmorph._errors import ConfigurationError, InvocationLimitExceededError

if TYPE_CHECKING:
    from callmorph._core import Mock
    from callmorph._invocation import Invocation
    from callmorph._setup import Setup


@dataclass(frozen=True, slots=True)
class ReturnBase:
    INSTANCE: ClassVar[ReturnBase]

    def respond_to(self, invocation: Invocation) -> None:
        invocation.return_base()


ReturnBase.INSTANCE = ReturnBase()


@dataclass(frozen=True, slots=True)
class ReturnEagerValue:
    value: Any

    def respond_to(self, invocation: Invocation) -> None:
        invocation.return_value(self.value)


@dataclass(frozen=True, slots=True)
class ReturnLazyValue:
    factory: Callable[..., Any]
    parameterless: bool

    def respond_to(self, invocation: Invocation) -> None:
        if self.parameterless:
            invocation.return_value(self.factory())
        else:
            invocation.return_value(invocation.apply(self.factory))


@dataclass(frozen=True, slots=True)
class ThrowException:
    error: BaseException

    def respond_to(self, invocation: Invocation) -> None:
        invocation.record_error(self.error)
        raise self.error


type Response = ReturnBase | ReturnEagerValue | ReturnLazyValue | ThrowException


@dataclass(frozen=True, slots=True)
class RaiseEvent:
    mock: Mock[Any]
    event: str
    factory: Callable[..., Any] | None = None
    args: tuple[Any, ...] | None = None
    _parameterless: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        if (self.factory is None) == (self.args is None):
            raise ConfigurationError("RaiseEvent needs either a factory or fixed args")
        if self.factory is not None:
            parameterless = CallableShape.of(self.factory).takes_no_arguments
            object.__setattr__(self, "_parameterless", parameterless)

    def respond_to(self, invocation: Invocation) -> None:
        if self.args is not None:
            payload = self.args
        else:
            factory = cast(Callable[..., Any], self.factory)
            if self._parameterless:
                value = factory()
            else:
                value = invocation.apply(factory)
            payload = (self.mock.object, value)
        self.mock.raise_event(self.event, *payload)


@final
class InvocationLimiter:
    def __init__(self, setup: Setup, max_count: int) -> None:
        self._setup = setup
        self._max_count = max_count
        self._count = 0
        self._lock = threading.Lock()

    @property
    def max_count(self) -> int:
        return self._max_count

    @property
    def count(self) -> int:
        return self._count

    def reset(self) -> None:
        with self._lock:
            self._count = 0

    def respond_to(self, invocation: Invocation) -> None:
        _ = invocation
        with self._lock:
            self._count += 1
            count = self._count
        if count > self._max_count:
            raise InvocationLimitExceededError(self._setup, self._max_count, count)
