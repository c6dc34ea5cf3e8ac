from typing import Protocol

import pytest

from callmorph import (
    ANY,
    Condition,
    ConfigurationError,
    Exact,
    Expectation,
    Invocation,
    IsA,
    Method,
    Mock,
    Predicate,
    Sequence,
    SetupRegistry,
    UnmatchedSetupError,
)


class Repository(Protocol):
    def get(self, key: int) -> str: ...
    def put(self, key: int, value: str = "") -> None: ...


def _invocation(mock: Mock[Repository], name: str, *args: object) -> Invocation:
    method = mock.method(name)
    return Invocation(method, method.bind(args, {}), mock)


def test_find_returns_most_recent_matching_setup() -> None:
    mock = Mock(Repository)
    get = mock.method("get")
    first = mock.add_setup(Expectation.for_call(get, (ANY,), {}))
    second = mock.add_setup(Expectation.for_call(get, (IsA(int),), {}))

    assert mock.setups.find(_invocation(mock, "get", 1)) is second
    assert list(mock.setups) == [first, second]


def test_find_skips_setups_that_do_not_match() -> None:
    mock = Mock(Repository)
    get = mock.method("get")
    general = mock.add_setup(Expectation.for_call(get, (ANY,), {}))
    mock.add_setup(Expectation.for_call(get, (1,), {}))

    assert mock.setups.find(_invocation(mock, "get", 2)) is general
    assert mock.setups.find(_invocation(mock, "put", 2, "x")) is None


def test_find_evaluates_conditions_on_every_lookup() -> None:
    state = {"enabled": False}
    mock = Mock(Repository)
    get = mock.method("get")
    fallback = mock.add_setup(Expectation.for_call(get, (ANY,), {}))
    guarded = mock.add_setup(
        Expectation.for_call(get, (ANY,), {}), Condition(lambda: state["enabled"])
    )

    assert mock.setups.find(_invocation(mock, "get", 1)) is fallback
    state["enabled"] = True
    assert mock.setups.find(_invocation(mock, "get", 1)) is guarded


def test_stateful_condition_matches_once() -> None:
    used: list[bool] = []
    mock = Mock(Repository)
    mock.setup().get().called_with(ANY).returns("fallback")
    once = Condition(lambda: not used, lambda: used.append(True))
    mock.setup(when=once).get().called_with(ANY).returns("first")

    assert mock.object.get(1) == "first"
    assert mock.object.get(1) == "fallback"


def test_setup_with_plain_predicate_condition() -> None:
    state = {"on": True}
    mock = Mock(Repository)
    mock.setup(when=lambda: state["on"]).get().called_with(1).returns("on")
    mock.setup(when=lambda: not state["on"]).get().called_with(1).returns("off")

    assert mock.object.get(1) == "on"
    state["on"] = False
    assert mock.object.get(1) == "off"


def test_sequence_conditions_hold_in_creation_order() -> None:
    seq = Sequence()
    first = seq.next_condition()
    second = seq.next_condition()

    assert first.is_true()
    assert not second.is_true()
    first.evaluated_successfully()
    assert not first.is_true()
    assert second.is_true()


def test_find_by_expectation_ignores_conditions() -> None:
    mock = Mock(Repository)
    expectation = Expectation(mock.method("get"), (Exact(1),))
    setup = mock.add_setup(expectation, Condition(lambda: False))
    setup.returns_inner_mock = True

    assert mock.setups.find(_invocation(mock, "get", 1)) is None
    assert mock.setups.find_by_expectation(expectation) is setup
    assert mock.setups.find_by_expectation(
        Expectation(mock.method("get"), (Exact(2),))
    ) is None


def test_find_by_expectation_only_considers_inner_mock_setups() -> None:
    mock = Mock(Repository)
    expectation = Expectation(mock.method("get"), (Exact(1),))
    mock.add_setup(expectation)

    assert mock.setups.find_by_expectation(expectation) is None


def test_clear_and_len() -> None:
    registry = SetupRegistry()
    mock = Mock(Repository)
    registry.add(mock.add_setup(Expectation.for_call(mock.method("get"), (1,), {})))

    assert len(registry) == 1
    registry.clear()
    assert len(registry) == 0


def test_try_verify_collects_every_unmatched_setup() -> None:
    mock = Mock(Repository)
    mock.setup().get().called_with(1).returns("a").verifiable()
    mock.setup().get().called_with(2).returns("b").verifiable()
    mock.setup().get().called_with(3).returns("c")
    mock.object.get(2)

    errors = mock.setups.try_verify()
    assert [str(e.setup.expectation) for e in errors] == ["Repository.get(1)"]
    assert all(isinstance(e, UnmatchedSetupError) for e in errors)
    assert len(mock.setups.try_verify(verifiable_only=False)) == 2

    mock.setups.uninvoke_all()
    assert len(mock.setups.try_verify()) == 2


def test_expectation_equality() -> None:
    mock = Mock(Repository)
    get = mock.method("get")

    def positive(value: int) -> bool:
        return value > 0

    assert Expectation.for_call(get, (1,), {}) == Expectation.for_call(
        get, (), {"key": 1}
    )
    assert Expectation.for_call(get, (IsA(int),), {}) == Expectation.for_call(
        get, (IsA(int),), {}
    )
    by_predicate = Expectation.for_call(get, (Predicate(positive),), {})
    assert by_predicate == Expectation.for_call(get, (Predicate(positive),), {})
    assert Expectation.for_call(get, (1,), {}) != Expectation.for_call(get, (2,), {})
    assert Expectation.for_call(get, (1,), {}) != Expectation.for_call(
        mock.method("put"), (1,), {}
    )


def test_expectation_applies_defaults() -> None:
    mock = Mock(Repository)
    expectation = Expectation.for_call(mock.method("put"), (1,), {})

    assert expectation.matchers == (Exact(1), Exact(""))
    assert expectation.matches(_invocation(mock, "put", 1))
    assert not expectation.matches(_invocation(mock, "put", 1, "x"))


def test_expectation_rejects_arguments_outside_signature() -> None:
    mock = Mock(Repository)

    with pytest.raises(ConfigurationError, match="do not fit"):
        Expectation.for_call(mock.method("get"), (1, 2), {})


def test_method_identity_and_description() -> None:
    class Tools:
        def run(self, command: str, *, check: bool = True) -> int:
            return 0

        @staticmethod
        def version(short: bool) -> str:
            return ""

    run = Method.of(Tools, "run")

    assert run == Method.of(Tools, "run")
    assert run.parameter_names == ("command", "check")
    assert run.parameter_types == (str, bool)
    assert run.return_type is int
    assert not run.is_void
    assert run.bind(("ls",), {}) == ("ls", True)
    assert Method.of(Tools, "version").parameter_names == ("short",)

    with pytest.raises(AttributeError, match="Method 'missing' not found"):
        Method.of(Tools, "missing")


def test_void_and_coroutine_methods() -> None:
    class Worker(Protocol):
        def stop(self) -> None: ...
        async def start(self) -> bool: ...
        def unannotated(self): ...  # type: ignore[no-untyped-def]

    assert Method.of(Worker, "stop").is_void
    assert Method.of(Worker, "start").is_coroutine
    assert not Method.of(Worker, "start").is_void
    assert not Method.of(Worker, "unannotated").is_void
