from __future__ import annotations

import collections.abc
import inspect
import logging
import os
import threading
from collections.abc import Callable
from enum import Flag, auto
from types import FrameType
from typing import TYPE_CHECKING, Any, final, get_origin

from callmorph._compat import (
    validate_callback,
    validate_event_factory,
    validate_value_factory,
)
from callmorph._config import Behavior, Switches
from callmorph._errors import (
    ConfigurationError,
    ReturnValueRequiredError,
    UnmatchedSetupError,
)
from callmorph._responses import (
    InvocationLimiter,
    RaiseEvent,
    Response,
    ReturnBase,
    ReturnEagerValue,
    ReturnLazyValue,
    ThrowException,
)

if TYPE_CHECKING:
    from callmorph._core import Mock
    from callmorph._expectation import Condition, Expectation
    from callmorph._invocation import Invocation

logger = logging.getLogger(__name__)

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))


class _Flags(Flag):
    NONE = 0
    CALL_BASE = auto()
    INVOKED = auto()
    METHOD_IS_NON_VOID = auto()
    VERIFIABLE = auto()


type _InvocationAction = Callable[[Invocation], None]


@final
class Setup:
    """A configured behavior of one mock for calls matching an expectation.

    Configuration methods validate eagerly and raise ``ConfigurationError``
    without changing the setup. ``execute`` runs the response chain in a
    fixed order: invocation limit, invoked flag, callback, call-base for void
    methods, event, return or throw, and for non-void methods the callback
    registered after the return.
    """

    def __init__(
        self,
        mock: Mock[Any],
        expectation: Expectation,
        condition: Condition | None = None,
        *,
        awaitable: bool = False,
    ) -> None:
        self._mock = mock
        self._expectation = expectation
        self._condition = condition
        self._awaitable = awaitable
        self._lock = threading.Lock()
        self._flags = (
            _Flags.NONE if expectation.method.is_void else _Flags.METHOD_IS_NON_VOID
        )
        self._callback: _InvocationAction | None = None
        self._after_return_callback: _InvocationAction | None = None
        self._raise_event: RaiseEvent | None = None
        self._response: Response | None = None
        self._limiter: InvocationLimiter | None = None
        self._fail_message: str | None = None
        self._declaration_site: str | None = None
        self.returns_inner_mock = False

        if Switches.COLLECT_DIAGNOSTIC_FILE_INFO_FOR_SETUPS in mock.switches:
            self._declaration_site = _user_code_call_site()

    @property
    def mock(self) -> Mock[Any]:
        return self._mock

    @property
    def expectation(self) -> Expectation:
        return self._expectation

    @property
    def condition(self) -> Condition | None:
        return self._condition

    @property
    def awaitable(self) -> bool:
        return self._awaitable

    @property
    def fail_message(self) -> str | None:
        return self._fail_message

    @property
    def declaration_site(self) -> str | None:
        return self._declaration_site

    @property
    def is_verifiable(self) -> bool:
        return _Flags.VERIFIABLE in self._flags

    @property
    def was_invoked(self) -> bool:
        return _Flags.INVOKED in self._flags

    @property
    def invocation_limit(self) -> InvocationLimiter | None:
        return self._limiter

    @property
    def eager_return(self) -> ReturnEagerValue | None:
        if isinstance(self._response, ReturnEagerValue):
            return self._response
        return None

    def matches(self, invocation: Invocation) -> bool:
        if not self._expectation.matches(invocation):
            return False
        return self._condition is None or self._condition.is_true()

    def evaluated_successfully(self) -> None:
        if self._condition is not None:
            self._condition.evaluated_successfully()

    def execute(self, invocation: Invocation) -> None:
        if self._limiter is not None:
            self._limiter.respond_to(invocation)

        with self._lock:
            self._flags |= _Flags.INVOKED

        if self._callback is not None:
            self._callback(invocation)

        if _Flags.CALL_BASE in self._flags:
            invocation.return_base()

        if self._raise_event is not None:
            self._raise_event.respond_to(invocation)

        if self._response is not None:
            self._response.respond_to(invocation)

        if _Flags.METHOD_IS_NON_VOID in self._flags:
            if self._response is None:
                if self._mock.behavior is Behavior.STRICT:
                    raise ReturnValueRequiredError(invocation)
                invocation.return_value(
                    self._mock.default_return(invocation, record=False)
                )

            if self._after_return_callback is not None:
                self._after_return_callback(invocation)

        logger.debug("%s handled %s -> %s", self, invocation, invocation.result)

    # configuration

    def set_callback(self, callback: Callable[..., Any]) -> None:
        if callback is None:
            raise ConfigurationError("callback must not be None")

        shape = validate_callback(self._expectation.method, callback, self._mock.oracle)
        action: _InvocationAction = (
            (lambda invocation: callback())
            if shape.takes_no_arguments
            else (lambda invocation: invocation.apply(callback))
        )

        with self._lock:
            if self._response is None:
                self._callback = action
            else:
                self._after_return_callback = action

    def set_call_base(self) -> None:
        method = self._expectation.method
        if self._mock.is_delegate:
            raise ConfigurationError("call_base cannot be used with delegate mocks.")
        if method.is_abstract:
            raise ConfigurationError(
                f"{method} is abstract and has no base implementation to call."
            )

        if _Flags.METHOD_IS_NON_VOID in self._flags:
            self._set_response(ReturnBase.INSTANCE)
        else:
            with self._lock:
                self._flags |= _Flags.CALL_BASE

    def set_raise_event(self, event: str, *args: Any) -> None:
        self._raise_event = RaiseEvent(self._mock, event, args=args)

    def set_raise_event_using(self, event: str, factory: Callable[..., Any]) -> None:
        if factory is None:
            raise ConfigurationError("event argument factory must not be None")
        validate_event_factory(self._expectation.method, factory, self._mock.oracle)
        self._raise_event = RaiseEvent(self._mock, event, factory=factory)

    def set_eager_return(self, value: Any) -> None:
        self._require_non_void()
        self._set_response(ReturnEagerValue(value))

    def set_lazy_return(self, factory: Callable[..., Any] | None) -> None:
        self._require_non_void()
        method = self._expectation.method

        response: Response
        if factory is None:
            # None is a value, not a missing factory
            response = ReturnEagerValue(None)
        elif _returns_callable(method.return_type):
            response = ReturnEagerValue(factory)
        else:
            shape = validate_value_factory(method, factory, self._mock.oracle)
            response = ReturnLazyValue(factory, shape.takes_no_arguments)
        self._set_response(response)

    def set_throw(self, error: BaseException | type[BaseException]) -> None:
        if isinstance(error, type) and issubclass(error, BaseException):
            error = error()
        if not isinstance(error, BaseException):
            raise ConfigurationError(f"{error!r} is not an exception")
        self._set_response(ThrowException(error))

    def verifiable(self, fail_message: str | None = None) -> None:
        with self._lock:
            self._flags |= _Flags.VERIFIABLE
            if fail_message is not None:
                self._fail_message = fail_message

    def at_most(self, count: int) -> None:
        if count < 0:
            raise ConfigurationError(f"Invocation limit must not be negative: {count}")
        self._limiter = InvocationLimiter(self, count)

    def _require_non_void(self) -> None:
        if _Flags.METHOD_IS_NON_VOID not in self._flags:
            raise ConfigurationError(
                f"{self._expectation.method} returns None; "
                "it can only be given callbacks or an exception to raise."
            )

    def _set_response(self, response: Response) -> None:
        with self._lock:
            if self._response is not None:
                raise ConfigurationError(
                    f"{self} already has a return or throw configured."
                )
            self._response = response

    # verification

    def try_verify_all(
        self, *, verifiable_only: bool = True
    ) -> UnmatchedSetupError | None:
        if verifiable_only and not self.is_verifiable:
            return None
        if self.was_invoked:
            return None
        return UnmatchedSetupError(self)

    def uninvoke(self) -> None:
        with self._lock:
            self._flags &= ~_Flags.INVOKED
        if self._limiter is not None:
            self._limiter.reset()

    def __str__(self) -> str:
        message = ""
        if self._fail_message is not None:
            message = f"{self._fail_message}: "
        message += str(self._expectation)
        if self._declaration_site is not None:
            message += f" ({self._declaration_site})"
        return message.strip()

    def __repr__(self) -> str:
        return f"<Setup {self}>"


def _returns_callable(annotation: Any) -> bool:
    return (get_origin(annotation) or annotation) is collections.abc.Callable


def _user_code_call_site() -> str | None:
    """Describe the first stack frame outside this package, if any."""
    frame: FrameType | None = None
    try:
        frame = inspect.currentframe()
        while frame is not None and _is_package_frame(frame):
            frame = frame.f_back
        if frame is None:
            return None

        code = frame.f_code
        module = frame.f_globals.get("__name__", "?")
        site = f"{module}.{code.co_qualname} in {os.path.basename(code.co_filename)}"
        if frame.f_lineno:
            site += f": line {frame.f_lineno}"
        return site
    except Exception:
        # diagnostics only, never fail the setup over it
        logger.debug("could not determine declaration site", exc_info=True)
        return None
    finally:
        del frame


def _is_package_frame(frame: FrameType) -> bool:
    filename = os.path.abspath(frame.f_code.co_filename)
    return os.path.dirname(filename) == _PACKAGE_DIR
