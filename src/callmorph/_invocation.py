from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, final

from callmorph._compat import EMPTY, NONE_TYPE, POSITIONAL_KINDS, type_hints
from callmorph._errors import ConfigurationError

if TYPE_CHECKING:
    from callmorph._core import Mock


@dataclass(frozen=True, slots=True)
class Method:
    """Identity of one callable surface of a mocked type.

    Two ``Method`` objects are equal when they name the same attribute of the
    same owner; everything else is derived from the owner's declaration.
    """

    owner: Any
    name: str
    parameter_names: tuple[str, ...] = field(compare=False, default=())
    parameter_types: tuple[Any, ...] = field(compare=False, default=())
    return_type: Any = field(compare=False, default=EMPTY)
    is_coroutine: bool = field(compare=False, default=False)
    is_abstract: bool = field(compare=False, default=False)
    signature: inspect.Signature | None = field(
        compare=False, default=None, repr=False
    )

    @classmethod
    def of(cls, owner: type, name: str) -> Method:
        """Describe ``owner.name``, dropping the receiver of instance methods."""
        attribute = inspect.getattr_static(owner, name, None)
        if attribute is None:
            raise AttributeError(
                f"Method '{name}' not found on target type {owner}"
            )

        drop_receiver = True
        function = attribute
        if isinstance(attribute, staticmethod):
            function = attribute.__func__
            drop_receiver = False
        elif isinstance(attribute, classmethod):
            function = attribute.__func__
        if not callable(function):
            raise AttributeError(f"Attribute '{name}' of {owner} is not a method")

        return cls._describe(owner, name, function, drop_receiver)

    @classmethod
    def of_callable(cls, function: Callable[..., Any]) -> Method:
        """Describe a plain function mocked as a whole (a delegate mock)."""
        return cls._describe(function, "__call__", function, drop_receiver=False)

    @classmethod
    def _describe(
        cls, owner: Any, name: str, function: Any, drop_receiver: bool
    ) -> Method:
        signature = inspect.signature(function)
        parameters = list(signature.parameters.values())
        if drop_receiver and parameters:
            parameters = parameters[1:]
        signature = signature.replace(parameters=parameters)

        hints = type_hints(function)
        return_type = (
            hints.get("return", EMPTY)
            if signature.return_annotation is not EMPTY
            else EMPTY
        )
        return cls(
            owner=owner,
            name=name,
            parameter_names=tuple(p.name for p in parameters),
            parameter_types=tuple(hints.get(p.name, EMPTY) for p in parameters),
            return_type=return_type,
            is_coroutine=inspect.iscoroutinefunction(function),
            is_abstract=getattr(function, "__isabstractmethod__", False),
            signature=signature,
        )

    @property
    def is_void(self) -> bool:
        return self.return_type is NONE_TYPE

    @property
    def positional_types(self) -> tuple[Any, ...]:
        if self.signature is None:
            return self.parameter_types
        return tuple(
            type_
            for parameter, type_ in self._typed_parameters()
            if parameter.kind in POSITIONAL_KINDS
        )

    @property
    def keyword_types(self) -> dict[str, Any]:
        """Types of the keyword-only parameters, by name."""
        return {
            parameter.name: type_
            for parameter, type_ in self._typed_parameters()
            if parameter.kind is inspect.Parameter.KEYWORD_ONLY
        }

    @property
    def has_var_positional(self) -> bool:
        return self._has_kind(inspect.Parameter.VAR_POSITIONAL)

    @property
    def has_var_keyword(self) -> bool:
        return self._has_kind(inspect.Parameter.VAR_KEYWORD)

    def _typed_parameters(self) -> list[tuple[inspect.Parameter, Any]]:
        if self.signature is None:
            return []
        return list(zip(self.signature.parameters.values(), self.parameter_types))

    def _has_kind(self, kind: Any) -> bool:
        return any(parameter.kind is kind for parameter, _ in self._typed_parameters())

    def bind(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> tuple[Any, ...]:
        """Normalise a call into one value per declared parameter."""
        if self.signature is None:
            return args
        bound = self.signature.bind(*args, **kwargs)
        bound.apply_defaults()
        return tuple(bound.arguments.values())

    def unbind(
        self, arguments: tuple[Any, ...]
    ) -> tuple[tuple[Any, ...], dict[str, Any]]:
        """Turn values produced by ``bind`` back into ``(args, kwargs)``."""
        if self.signature is None:
            return arguments, {}
        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        for parameter, value in zip(self.signature.parameters.values(), arguments):
            match parameter.kind:
                case inspect.Parameter.VAR_POSITIONAL:
                    args.extend(value)
                case inspect.Parameter.KEYWORD_ONLY:
                    kwargs[parameter.name] = value
                case inspect.Parameter.VAR_KEYWORD:
                    kwargs.update(value)
                case _:
                    args.append(value)
        return tuple(args), kwargs

    def __str__(self) -> str:
        owner = getattr(self.owner, "__qualname__", repr(self.owner))
        if self.name == "__call__":
            return owner
        return f"{owner}.{self.name}"


@dataclass(frozen=True, slots=True)
class Pending:
    pass


@dataclass(frozen=True, slots=True)
class Returned:
    value: Any


@dataclass(frozen=True, slots=True)
class ReturnedBase:
    value: Any


@dataclass(frozen=True, slots=True)
class Raised:
    error: BaseException


type Outcome = Pending | Returned | ReturnedBase | Raised

PENDING = Pending()


@final
class Invocation:
    """One call made against a mock.

    The call data is fixed at construction; only the result slot changes,
    and it is written by whichever setup handles the call.
    """

    __slots__ = ("_arguments", "_base", "_method", "_mock", "_result")

    def __init__(
        self,
        method: Method,
        arguments: tuple[Any, ...],
        mock: Mock[Any] | None = None,
        base: Callable[..., Any] | None = None,
    ) -> None:
        self._method = method
        self._arguments = arguments
        self._mock = mock
        self._base = base
        self._result: Outcome = PENDING

    @property
    def method(self) -> Method:
        return self._method

    @property
    def arguments(self) -> tuple[Any, ...]:
        return self._arguments

    @property
    def mock(self) -> Mock[Any] | None:
        return self._mock

    @property
    def result(self) -> Outcome:
        return self._result

    def return_value(self, value: Any) -> None:
        self._result = Returned(value)

    def apply(self, function: Callable[..., Any]) -> Any:
        """Call ``function`` the way this invocation called the mock."""
        args, kwargs = self._method.unbind(self._arguments)
        return function(*args, **kwargs)

    def return_base(self) -> None:
        if self._base is None:
            raise ConfigurationError(
                f"{self._method} has no base implementation to call."
            )
        self._result = ReturnedBase(self.apply(self._base))

    def record_error(self, error: BaseException) -> None:
        self._result = Raised(error)

    def __str__(self) -> str:
        args = ", ".join(repr(a) for a in self._arguments)
        return f"{self._method}({args})"

    def __repr__(self) -> str:
        return f"<Invocation {self}>"
