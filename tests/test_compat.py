from collections.abc import Mapping, Sequence
from typing import Any, Protocol

import pytest

from callmorph import (
    ANY,
    DefaultTypeOracle,
    DefaultValue,
    InvocationLimitExceededError,
    Method,
    Mock,
    default_value,
)
from callmorph._compat import EMPTY, CallableShape


class Reader(Protocol):
    def read(self) -> str: ...


class FileReader(Reader):
    def read(self) -> str:
        return ""


class Lookup(Protocol):
    def find(self, name: str, *, limit: int = 10) -> str: ...


@pytest.mark.parametrize(
    ("target", "source", "expected"),
    [
        (int, int, True),
        (int, bool, True),
        (float, int, True),
        (complex, float, True),
        (int, float, False),
        (str, int, False),
        (object, str, True),
        (Any, str, True),
        (str, EMPTY, True),
        (int | None, None, True),
        (int | None, int, True),
        (int, int | None, False),
        (list[int], list[str], True),
        (Sequence[int], list[int], True),
        (Mapping[str, int], dict[str, int], True),
        (Reader, FileReader, True),
        (Reader, str, False),
    ],
)
def test_default_oracle_assignability(target: Any, source: Any, expected: bool) -> None:
    assert DefaultTypeOracle().is_assignable(target, source) is expected


@pytest.mark.parametrize(
    ("annotation", "expected"),
    [
        (int, 0),
        (float, 0.0),
        (bool, False),
        (str, ""),
        (bytes, b""),
        (list[int], []),
        (dict[str, int], {}),
        (tuple[int, str], ()),
        (Sequence[int], ()),
        (int | None, None),
        (Reader, None),
        (EMPTY, None),
    ],
)
def test_default_value(annotation: Any, expected: Any) -> None:
    assert default_value(annotation) == expected


def test_callable_shape_of_annotated_function() -> None:
    def handler(a: int, b: str = "", *, flag: bool = False) -> None: ...

    shape = CallableShape.of(handler)

    assert shape.parameter_types == (int, str)
    assert shape.parameter_names == ("a", "b")
    assert shape.required_count == 1
    assert shape.keyword_types == {"flag": bool}
    assert shape.required_keywords == frozenset()
    assert shape.all_types == (int, str, bool)
    assert shape.return_type is type(None)
    assert not shape.variadic
    assert not shape.var_keyword


def test_callable_shape_of_lambda_and_bound_method() -> None:
    class Handler:
        def handle(self, value: int) -> None: ...

    assert CallableShape.of(lambda x, y: None).parameter_types == (EMPTY, EMPTY)
    assert CallableShape.of(lambda: None).takes_no_arguments
    assert CallableShape.of(lambda *args: None).variadic
    assert CallableShape.of(Handler().handle).parameter_types == (int,)


def test_inner_mocks_are_reused_for_the_same_call() -> None:
    class Inner(Protocol):
        def value(self) -> int: ...

    class Outer(Protocol):
        def inner(self, key: str) -> Inner: ...
        def count(self) -> int: ...

    mock = Mock(Outer, default_value=DefaultValue.MOCK)
    first = mock.object.inner("a")

    assert first is mock.object.inner("a")
    assert first is not mock.object.inner("b")
    assert first.value() == 0
    assert mock.object.count() == 0
    mock.verify_all()


def test_setup_without_return_reuses_inner_mock() -> None:
    class Inner(Protocol):
        def value(self) -> int: ...

    class Outer(Protocol):
        def inner(self, key: str) -> Inner: ...

    mock = Mock(Outer, default_value=DefaultValue.MOCK)
    created = mock.object.inner("a")
    mock.setup().inner().called_with("a").verifiable()

    assert mock.object.inner("a") is created
    mock.verify()


def test_matched_setup_without_return_is_not_shadowed_by_inner_mock() -> None:
    class Inner(Protocol):
        def value(self) -> int: ...

    class Outer(Protocol):
        def inner(self, key: str) -> Inner: ...

    seen: list[str] = []
    mock = Mock(Outer, default_value=DefaultValue.MOCK)
    mock.setup().inner().called_with(ANY).callback(seen.append).at_most(2)

    mock.object.inner("a")
    mock.object.inner("a")
    with pytest.raises(InvocationLimitExceededError):
        mock.object.inner("a")

    assert seen == ["a", "a"]
    assert len(mock.setups) == 1


def test_callable_shape_matches_keyword_only_parameters_by_name() -> None:
    def mirror(name: str, *, limit: int = 10) -> None: ...
    def positional(name: str, limit: int) -> None: ...
    def options(name: str, **extra: Any) -> None: ...

    find = Method.of(Lookup, "find")
    oracle = DefaultTypeOracle()

    assert find.positional_types == (str,)
    assert find.keyword_types == {"limit": int}
    assert CallableShape.of(mirror).accepts(find, oracle)
    assert CallableShape.of(positional).accepts(find, oracle)
    assert CallableShape.of(options).accepts(find, oracle)
    assert CallableShape.of(lambda *args, **kwargs: None).accepts(find, oracle)


def test_callable_shape_rejects_calls_it_cannot_take() -> None:
    def no_limit(name: str) -> None: ...
    def wrong_limit(name: str, *, limit: str) -> None: ...
    def needs_more(name: str, *, limit: int, page: int) -> None: ...
    def named_differently(name: str, count: int) -> None: ...

    find = Method.of(Lookup, "find")
    oracle = DefaultTypeOracle()

    assert not CallableShape.of(no_limit).accepts(find, oracle)
    assert CallableShape.of(wrong_limit).accepts(find)
    assert not CallableShape.of(wrong_limit).accepts(find, oracle)
    assert not CallableShape.of(needs_more).accepts(find, oracle)
    assert not CallableShape.of(named_differently).accepts(find, oracle)


def test_callable_shape_needs_exact_positional_count() -> None:
    class Adder(Protocol):
        def add(self, a: int, b: int) -> int: ...

    def extra_default(a: int, b: int, c: int = 0) -> None: ...
    def fewer(a: int) -> None: ...
    def rest(a: int, *more: int) -> None: ...

    add = Method.of(Adder, "add")

    assert not CallableShape.of(extra_default).accepts(add)
    assert not CallableShape.of(fewer).accepts(add)
    assert CallableShape.of(rest).accepts(add)
