from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from typing import (
    Any,
    Protocol,
    cast,
    final,
    get_origin,
)

from callmorph._compat import DefaultTypeOracle, TypeOracle, default_value
from callmorph._config import Behavior, DefaultValue, Switches
from callmorph._errors import (
    ConfigurationError,
    UnexpectedInvocationError,
    UnmatchedSetupError,
    VerificationError,
)
from callmorph._expectation import Condition, Expectation, Sequence
from callmorph._invocation import Invocation, Method, Returned, ReturnedBase
from callmorph._matchers import Exact
from callmorph._registry import SetupRegistry
from callmorph._setup import Setup

logger = logging.getLogger(__name__)

_NOT_MOCKABLE_MODULES = frozenset({"builtins", "collections.abc", "typing"})


class Registrar(Protocol):
    def method(self, name: str) -> Method: ...

    def add_setup(
        self,
        expectation: Expectation,
        condition: Condition | None = None,
        *,
        awaitable: bool = False,
    ) -> Setup: ...


class InvocationHandler(Protocol):
    def method(self, name: str) -> Method: ...

    def intercept(
        self, method: Method, args: tuple[Any, ...], kwargs: dict[str, Any]
    ) -> Any: ...


@final
class SetupPhrase:
    """Fluent configuration of one registered setup."""

    def __init__(self, setup: Setup) -> None:
        self._setup = setup

    @property
    def setup(self) -> Setup:
        return self._setup

    def callback(self, callback: Callable[..., Any]) -> SetupPhrase:
        self._setup.set_callback(callback)
        return self

    def call_base(self) -> SetupPhrase:
        self._setup.set_call_base()
        return self

    def raises_event(self, event: str, *args: Any) -> SetupPhrase:
        self._setup.set_raise_event(event, *args)
        return self

    def raises_event_using(
        self, event: str, factory: Callable[..., Any]
    ) -> SetupPhrase:
        self._setup.set_raise_event_using(event, factory)
        return self

    def returns(self, *values: Any) -> SetupPhrase:
        self._setup.set_eager_return(values[0] if len(values) == 1 else values)
        return self

    def returns_using(self, factory: Callable[..., Any] | None) -> SetupPhrase:
        self._setup.set_lazy_return(factory)
        return self

    def raises(self, exception: BaseException | type[BaseException]) -> SetupPhrase:
        self._setup.set_throw(exception)
        return self

    def verifiable(self, fail_message: str | None = None) -> SetupPhrase:
        self._setup.verifiable(fail_message)
        return self

    def at_most(self, count: int) -> SetupPhrase:
        self._setup.at_most(count)
        return self

    def at_most_once(self) -> SetupPhrase:
        return self.at_most(1)


@final
class CallArgsSetter:
    def __init__(
        self, method: Method, registrar: Registrar, condition: Condition | None
    ) -> None:
        self._method = method
        self._registrar = registrar
        self._condition = condition

    def called_with(self, *args: Any, **kwargs: Any) -> SetupPhrase:
        return self._register(args, kwargs, awaitable=False)

    def awaited_with(self, *args: Any, **kwargs: Any) -> SetupPhrase:
        return self._register(args, kwargs, awaitable=True)

    def _register(
        self, args: tuple[Any, ...], kwargs: dict[str, Any], *, awaitable: bool
    ) -> SetupPhrase:
        expectation = Expectation.for_call(self._method, args, kwargs)
        setup = self._registrar.add_setup(
            expectation, self._condition, awaitable=awaitable
        )
        return SetupPhrase(setup)


@final
class MethodProxy:
    def __init__(
        self,
        method_name: str,
        registrar: Registrar,
        condition_factory: Callable[[], Condition | None],
    ) -> None:
        self._method_name = method_name
        self._registrar = registrar
        self._condition_factory = condition_factory

    def __call__(self) -> CallArgsSetter:
        try:
            method = self._registrar.method(self._method_name)
        except AttributeError as e:
            raise ConfigurationError(str(e)) from e
        return CallArgsSetter(method, self._registrar, self._condition_factory())


@final
class ExpectationBuilder:
    def __init__(
        self,
        registrar: Registrar,
        condition_factory: Callable[[], Condition | None] = lambda: None,
    ) -> None:
        self._registrar = registrar
        self._condition_factory = condition_factory

    def __getattr__(self, name: str) -> MethodProxy:
        if name.startswith("_"):
            raise AttributeError(f"Cannot set up private attribute: {name}")
        return MethodProxy(name, self._registrar, self._condition_factory)

    def __call__(self) -> CallArgsSetter:
        """Set up a call of the mocked object itself."""
        return MethodProxy("__call__", self._registrar, self._condition_factory)()


@final
class Mock[T]:
    """Mock of ``target``: a class, protocol or plain function.

    Calls made through :attr:`object` are matched against the configured
    setups, newest first. Calls no setup matches raise
    :class:`UnexpectedInvocationError` under ``Behavior.STRICT`` and return
    a default value under ``Behavior.LOOSE``.
    """

    def __init__(
        self,
        target: type[T] | Callable[..., Any],
        behavior: Behavior = Behavior.DEFAULT,
        *,
        default_value: DefaultValue = DefaultValue.EMPTY,
        switches: Switches = Switches.NONE,
        call_base: bool = False,
        oracle: TypeOracle | None = None,
    ) -> None:
        self._target = target
        self._behavior = behavior
        self._default_value = default_value
        self._switches = switches
        self._call_base = call_base
        self._oracle: TypeOracle = oracle or DefaultTypeOracle()
        self._is_delegate = not inspect.isclass(target)
        self._setups = SetupRegistry()
        self._methods: dict[str, Method] = {}
        self._invocations: list[Invocation] = []
        self._event_handlers: defaultdict[str, list[Callable[..., Any]]] = (
            defaultdict(list)
        )
        self._lock = threading.Lock()
        self._object = cast(T, _MockProxy(self))

    @property
    def object(self) -> T:
        return self._object

    def get_mock(self) -> T:
        return self._object

    @property
    def target(self) -> type[T] | Callable[..., Any]:
        return self._target

    @property
    def behavior(self) -> Behavior:
        return self._behavior

    @property
    def switches(self) -> Switches:
        return self._switches

    @property
    def oracle(self) -> TypeOracle:
        return self._oracle

    @property
    def is_delegate(self) -> bool:
        return self._is_delegate

    @property
    def setups(self) -> SetupRegistry:
        return self._setups

    @property
    def invocations(self) -> tuple[Invocation, ...]:
        with self._lock:
            return tuple(self._invocations)

    # configuration

    def setup(
        self, when: Condition | Callable[[], bool] | None = None
    ) -> ExpectationBuilder:
        if when is None or isinstance(when, Condition):
            condition = when
        else:
            condition = Condition(when)
        return ExpectationBuilder(self, lambda: condition)

    def in_sequence(self, sequence: Sequence) -> ExpectationBuilder:
        return ExpectationBuilder(self, sequence.next_condition)

    def method(self, name: str) -> Method:
        with self._lock:
            method = self._methods.get(name)
        if method is not None:
            return method

        if self._is_delegate and name == "__call__":
            method = Method.of_callable(self._target)
        else:
            method = Method.of(cast(type, self._target), name)
        with self._lock:
            self._methods[name] = method
        return method

    def add_setup(
        self,
        expectation: Expectation,
        condition: Condition | None = None,
        *,
        awaitable: bool = False,
    ) -> Setup:
        setup = Setup(self, expectation, condition, awaitable=awaitable)
        self._setups.add(setup)
        return setup

    # dispatch

    def intercept(
        self, method: Method, args: tuple[Any, ...], kwargs: dict[str, Any]
    ) -> Any:
        invocation = Invocation(
            method, method.bind(args, kwargs), self, self._base_for(method)
        )
        with self._lock:
            self._invocations.append(invocation)

        setup = self._setups.find(invocation)
        awaitable = setup.awaitable if setup is not None else method.is_coroutine
        if not awaitable:
            return self._dispatch(setup, invocation)

        future: asyncio.Future[Any] = asyncio.Future()
        try:
            future.set_result(self._dispatch(setup, invocation))
        except Exception as e:
            future.set_exception(e)
        return future

    def _dispatch(self, setup: Setup | None, invocation: Invocation) -> Any:
        if setup is None:
            return self._handle_unmatched(invocation)

        setup.evaluated_successfully()
        setup.execute(invocation)

        match invocation.result:
            case Returned(value) | ReturnedBase(value):
                return value
            case _:
                return None

    def _handle_unmatched(self, invocation: Invocation) -> Any:
        if self._behavior is Behavior.STRICT:
            raise UnexpectedInvocationError(invocation)

        method = invocation.method
        if self._call_base and not method.is_abstract:
            invocation.return_base()
            return cast(ReturnedBase, invocation.result).value
        if method.is_void:
            return None
        return self.default_return(invocation)

    def default_return(self, invocation: Invocation, *, record: bool = True) -> Any:
        """Value for a non-void call that was given nothing to return.

        With ``record`` an inner mock is remembered as a setup of its own, so
        later identical calls get the same object. Matched setups with no
        return pass ``record=False`` and are never shadowed by one.
        """
        return_type = invocation.method.return_type
        if self._default_value is DefaultValue.MOCK and _is_mockable(return_type):
            return self._inner_mock(invocation, record)
        return default_value(return_type)

    def _inner_mock(self, invocation: Invocation, record: bool) -> Any:
        expectation = Expectation(
            invocation.method, tuple(Exact(a) for a in invocation.arguments)
        )
        existing = self._setups.find_by_expectation(expectation)
        if existing is not None and existing.eager_return is not None:
            return existing.eager_return.value

        inner: Mock[Any] = Mock(
            invocation.method.return_type,
            self._behavior,
            default_value=self._default_value,
            switches=self._switches,
            oracle=self._oracle,
        )
        if not record:
            return inner.object

        setup = Setup(self, expectation)
        setup.set_eager_return(inner.object)
        setup.returns_inner_mock = True
        self._setups.add(setup)
        logger.debug("created inner mock for %s", invocation)
        return inner.object

    def _base_for(self, method: Method) -> Callable[..., Any] | None:
        if self._is_delegate:
            return cast(Callable[..., Any], self._target)
        attribute = inspect.getattr_static(self._target, method.name, None)
        if isinstance(attribute, staticmethod):
            return cast(Callable[..., Any], attribute.__func__)
        if isinstance(attribute, classmethod):
            return functools.partial(attribute.__func__, self._target)
        if callable(attribute):
            return functools.partial(attribute, self._object)
        return None

    # events

    def add_event_handler(self, event: str, handler: Callable[..., Any]) -> None:
        with self._lock:
            self._event_handlers[event].append(handler)

    def remove_event_handler(self, event: str, handler: Callable[..., Any]) -> None:
        with self._lock:
            handlers = self._event_handlers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

    def raise_event(self, event: str, *args: Any) -> None:
        with self._lock:
            handlers = list(self._event_handlers.get(event, []))
        logger.debug("raising %r on %d handler(s)", event, len(handlers))
        for handler in handlers:
            handler(*args)

    # verification

    def verify(self) -> None:
        """Fail if any setup marked verifiable was never invoked."""
        self._raise_unmatched(self._setups.try_verify())

    def verify_all(self) -> None:
        """Fail if any setup at all was never invoked."""
        self._raise_unmatched(self._setups.try_verify(verifiable_only=False))

    def _raise_unmatched(self, errors: list[UnmatchedSetupError]) -> None:
        if errors:
            logger.debug("verification failed for %d setup(s)", len(errors))
            raise VerificationError(errors)

    def reset(self) -> None:
        self._setups.clear()
        with self._lock:
            self._invocations.clear()

    def reset_calls(self) -> None:
        self._setups.uninvoke_all()
        with self._lock:
            self._invocations.clear()

    def __enter__(self) -> Mock[T]:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        _ = exc_val, exc_tb
        if exc_type is None:
            self.verify()

    async def __aenter__(self) -> Mock[T]:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        _ = exc_val, exc_tb
        if exc_type is None:
            self.verify()

    def __repr__(self) -> str:
        name = getattr(self._target, "__qualname__", repr(self._target))
        return f"<Mock of {name} ({self._behavior.name})>"


def _is_mockable(annotation: Any) -> bool:
    return (
        isinstance(annotation, type)
        and get_origin(annotation) is None
        and annotation.__module__ not in _NOT_MOCKABLE_MODULES
    )


@final
class _MockProxy:
    def __init__(self, handler: InvocationHandler) -> None:
        self._handler = handler

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_") and not name.startswith("__"):
            raise AttributeError(
                f"'{type(self).__name__}' object has no attribute '{name}'"
            )

        method = self._handler.method(name)

        def _mock_method(*args: Any, **kwargs: Any) -> Any:
            return self._handler.intercept(method, args, kwargs)

        return _mock_method

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self._handler.intercept(self._handler.method("__call__"), args, kwargs)
