from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from callmorph._invocation import Invocation
    from callmorph._setup import Setup


class MockErrorReason(Enum):
    NO_SETUP = "no_setup"
    RETURN_VALUE_REQUIRED = "return_value_required"
    MORE_THAN_ONE_CALL = "more_than_one_call"
    MORE_THAN_N_CALLS = "more_than_n_calls"
    UNMATCHED_SETUP = "unmatched_setup"
    VERIFICATION_FAILED = "verification_failed"


class MockError(AssertionError):
    """Base class for failures detected while a mock is in use.

    Derives from ``AssertionError`` so test runners report it as a failed
    assertion rather than as an error in the test itself.
    """

    reason: MockErrorReason

    def __init__(self, reason: MockErrorReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class ConfigurationError(ValueError):
    """Raised when a setup is configured in a way that can never work."""


class UnexpectedInvocationError(MockError):
    def __init__(self, invocation: Invocation) -> None:
        super().__init__(
            MockErrorReason.NO_SETUP,
            f"{invocation} invocation failed with mock behavior STRICT. "
            "All invocations on the mock must have a corresponding setup.",
        )
        self.invocation = invocation


class ReturnValueRequiredError(MockError):
    def __init__(self, invocation: Invocation) -> None:
        super().__init__(
            MockErrorReason.RETURN_VALUE_REQUIRED,
            f"{invocation} invocation failed with mock behavior STRICT. "
            "Invocation needs to return a value or raise an exception.",
        )
        self.invocation = invocation


class InvocationLimitExceededError(MockError):
    def __init__(self, setup: Setup, max_count: int, count: int) -> None:
        if max_count == 1:
            reason = MockErrorReason.MORE_THAN_ONE_CALL
            message = (
                f"Expected only one call to {setup}, "
                f"but it was called {count} times."
            )
        else:
            reason = MockErrorReason.MORE_THAN_N_CALLS
            message = (
                f"Expected only {max_count} calls to {setup}, "
                f"but it was called {count} times."
            )
        super().__init__(reason, message)
        self.setup = setup
        self.max_count = max_count
        self.count = count


class UnmatchedSetupError(MockError):
    def __init__(self, setup: Setup) -> None:
        super().__init__(
            MockErrorReason.UNMATCHED_SETUP, f"{setup}: This setup was not matched."
        )
        self.setup = setup
        self.fail_message = setup.fail_message


class VerificationError(MockError):
    def __init__(self, errors: list[UnmatchedSetupError]) -> None:
        lines = "\n".join(f"  - {e}" for e in errors)
        super().__init__(
            MockErrorReason.VERIFICATION_FAILED,
            f"Mock verification failed:\n{lines}",
        )
        self.errors = tuple(errors)
