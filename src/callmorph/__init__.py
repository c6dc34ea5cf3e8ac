from callmorph._compat import DefaultTypeOracle, TypeOracle, default_value
from callmorph._config import Behavior, DefaultValue, Switches
from callmorph._core import Mock, SetupPhrase
from callmorph._errors import (
    ConfigurationError,
    InvocationLimitExceededError,
    MockError,
    MockErrorReason,
    ReturnValueRequiredError,
    UnexpectedInvocationError,
    UnmatchedSetupError,
    VerificationError,
)
from callmorph._expectation import Condition, Expectation, Sequence
from callmorph._invocation import (
    Invocation,
    Method,
    Outcome,
    Pending,
    Raised,
    Returned,
    ReturnedBase,
)
from callmorph._matchers import ANY, Exact, IsA, Matcher, Predicate
from callmorph._registry import SetupRegistry
from callmorph._setup import Setup

__all__ = [
    "ANY",
    "Behavior",
    "Condition",
    "ConfigurationError",
    "DefaultTypeOracle",
    "DefaultValue",
    "Exact",
    "Expectation",
    "Invocation",
    "InvocationLimitExceededError",
    "IsA",
    "Matcher",
    "Method",
    "Mock",
    "MockError",
    "MockErrorReason",
    "Outcome",
    "Pending",
    "Predicate",
    "Raised",
    "ReturnValueRequiredError",
    "Returned",
    "ReturnedBase",
    "Sequence",
    "Setup",
    "SetupPhrase",
    "SetupRegistry",
    "Switches",
    "TypeOracle",
    "UnexpectedInvocationError",
    "UnmatchedSetupError",
    "VerificationError",
    "default_value",
]
