"""Type compatibility checks used when validating callbacks and factories.

Python has no static delegate types, so compatibility is judged from
annotations. Anything left unannotated is treated as compatible: a lambda
passed as a callback declares nothing and must still be accepted.
"""

from __future__ import annotations

import collections.abc
import inspect
import types
import typing
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, final, get_args, get_origin

from callmorph._errors import ConfigurationError

if TYPE_CHECKING:
    from callmorph._invocation import Method

EMPTY: Any = inspect.Parameter.empty
NONE_TYPE = type(None)

POSITIONAL_KINDS = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)

# PEP 484 numeric tower shortcuts
_PROMOTIONS: dict[type, tuple[type, ...]] = {
    float: (int,),
    complex: (int, float),
}

_ZERO_VALUES: dict[Any, Callable[[], Any]] = {
    bool: bool,
    int: int,
    float: float,
    complex: complex,
    str: str,
    bytes: bytes,
    bytearray: bytearray,
    list: list,
    dict: dict,
    set: set,
    frozenset: frozenset,
    tuple: tuple,
    collections.abc.Iterable: tuple,
    collections.abc.Collection: tuple,
    collections.abc.Sequence: tuple,
    collections.abc.MutableSequence: list,
    collections.abc.Mapping: dict,
    collections.abc.MutableMapping: dict,
    collections.abc.Set: frozenset,
    collections.abc.MutableSet: set,
}


class TypeOracle(Protocol):
    def is_assignable(self, target: Any, source: Any) -> bool:
        """Return whether a value of type ``source`` may be used as ``target``."""
        ...


@final
class DefaultTypeOracle:
    def is_assignable(self, target: Any, source: Any) -> bool:
        if _is_unknown(target) or _is_unknown(source):
            return True
        target = NONE_TYPE if target is None else target
        source = NONE_TYPE if source is None else source
        if target is source or target == source:
            return True
        if isinstance(target, TypeVar) or isinstance(source, TypeVar):
            return True

        if _is_union(source):
            return all(self.is_assignable(target, arg) for arg in get_args(source))
        if _is_union(target):
            return any(self.is_assignable(arg, source) for arg in get_args(target))

        target_cls = get_origin(target) or target
        source_cls = get_origin(source) or source
        if not (isinstance(target_cls, type) and isinstance(source_cls, type)):
            return False
        if source_cls in _PROMOTIONS.get(target_cls, ()):
            return True
        try:
            return issubclass(source_cls, target_cls)
        except TypeError:
            # non runtime-checkable protocols refuse issubclass()
            return target_cls in source_cls.__mro__


def _is_unknown(annotation: Any) -> bool:
    return annotation is EMPTY or annotation is Any or isinstance(annotation, str)


def _is_union(annotation: Any) -> bool:
    return get_origin(annotation) in (typing.Union, types.UnionType)


def type_name(annotation: Any) -> str:
    if annotation is EMPTY:
        return "Any"
    if annotation is None or annotation is NONE_TYPE:
        return "None"
    if isinstance(annotation, type) and not get_args(annotation):
        return annotation.__qualname__
    return repr(annotation).replace("typing.", "")


def type_list(annotations: tuple[Any, ...]) -> str:
    return ", ".join(type_name(a) for a in annotations)


def type_hints(fn: Any) -> dict[str, Any]:
    """Resolved annotations of ``fn``; unresolvable ones are dropped."""
    target = fn if inspect.isroutine(fn) else getattr(type(fn), "__call__", fn)
    try:
        return typing.get_type_hints(target)
    except (NameError, TypeError, AttributeError):
        return {}


def default_value(annotation: Any) -> Any:
    """Return the zero value of a return annotation, ``None`` when it has none."""
    if annotation is EMPTY or annotation is None:
        return None
    origin = get_origin(annotation) or annotation
    factory = _ZERO_VALUES.get(origin)
    return factory() if factory is not None else None

@dataclass(frozen=True, slots=True)
class CallableShape:
    """Parameters and return annotation of a user callable.

    Positional parameters are kept in order; keyword-only parameters are kept
    by name, because a mocked method's keyword-only arguments are passed on
    by name.
    """

    parameter_types: tuple[Any, ...]
    parameter_names: tuple[str, ...]
    required_count: int
    keyword_types: dict[str, Any]
    required_keywords: frozenset[str]
    return_type: Any
    variadic: bool
    var_keyword: bool
    description: str

    @classmethod
    def of(cls, fn: Callable[..., Any]) -> CallableShape:
        try:
            # bound methods and partials already drop their receiver here
            signature = inspect.signature(fn)
        except (TypeError, ValueError):
            return cls((), (), 0, {}, frozenset(), EMPTY, True, True, repr(fn))

        if inspect.isclass(fn):
            hints = type_hints(fn.__init__)
            return_type: Any = fn
        else:
            hints = type_hints(fn)
            return_type = hints.get("return", EMPTY)

        types_: list[Any] = []
        names: list[str] = []
        required = 0
        keyword_types: dict[str, Any] = {}
        required_keywords: set[str] = set()
        variadic = var_keyword = False
        for parameter in signature.parameters.values():
            annotation = hints.get(parameter.name, EMPTY)
            match parameter.kind:
                case inspect.Parameter.VAR_POSITIONAL:
                    variadic = True
                case inspect.Parameter.VAR_KEYWORD:
                    var_keyword = True
                case inspect.Parameter.KEYWORD_ONLY:
                    keyword_types[parameter.name] = annotation
                    if parameter.default is EMPTY:
                        required_keywords.add(parameter.name)
                case _:
                    types_.append(annotation)
                    names.append(parameter.name)
                    if parameter.default is EMPTY:
                        required += 1

        return cls(
            parameter_types=tuple(types_),
            parameter_names=tuple(names),
            required_count=required,
            keyword_types=keyword_types,
            required_keywords=frozenset(required_keywords),
            return_type=return_type,
            variadic=variadic,
            var_keyword=var_keyword,
            description=getattr(fn, "__qualname__", type(fn).__qualname__),
        )

    @property
    def takes_no_arguments(self) -> bool:
        return not (
            self.parameter_types
            or self.keyword_types
            or self.variadic
            or self.var_keyword
        )

    @property
    def all_types(self) -> tuple[Any, ...]:
        return self.parameter_types + tuple(self.keyword_types.values())

    def accepts(self, method: Method, oracle: TypeOracle | None = None) -> bool:
        """Whether this callable can take the arguments of a call to ``method``.

        The method's positional arguments fill the leading positional
        parameters and must match them in number, unless ``*args`` takes the
        surplus. Keyword-only arguments are matched by name. Parameter types
        are only compared when an ``oracle`` is given.
        """
        positional = method.positional_types
        keywords = method.keyword_types
        if method.has_var_positional and not self.variadic:
            return False
        if method.has_var_keyword and not self.var_keyword:
            return False

        count = len(positional)
        if count > len(self.parameter_types) and not self.variadic:
            return False

        by_name = dict(self.keyword_types)
        leftover = zip(
            self.parameter_names[count:], self.parameter_types[count:], strict=True
        )
        for name, annotation in leftover:
            if name not in keywords:
                return False
            by_name[name] = annotation

        if any(name not in by_name for name in keywords) and not self.var_keyword:
            return False
        if any(name not in keywords for name in self.required_keywords):
            return False

        if oracle is None:
            return True
        return all(
            oracle.is_assignable(actual, wanted)
            for actual, wanted in zip(self.parameter_types, positional)
        ) and all(
            oracle.is_assignable(by_name[name], wanted)
            for name, wanted in keywords.items()
            if name in by_name
        )


def validate_callback(
    method: Method, callback: Callable[..., Any], oracle: TypeOracle
) -> CallableShape:
    shape = CallableShape.of(callback)
    if not shape.takes_no_arguments and not shape.accepts(method, oracle):
        raise ConfigurationError(
            f"Invalid callback. Setup on method with parameters "
            f"({type_list(method.parameter_types)}) cannot invoke callback "
            f"{shape.description} with parameters ({type_list(shape.all_types)})."
        )
    if shape.return_type is not EMPTY and shape.return_type is not NONE_TYPE:
        raise ConfigurationError(
            f"Invalid callback {shape.description}. A callback must not return a "
            f"value, but it is annotated to return {type_name(shape.return_type)}."
        )
    return shape


def validate_value_factory(
    method: Method, factory: Callable[..., Any], oracle: TypeOracle
) -> CallableShape:
    shape = CallableShape.of(factory)
    if not shape.takes_no_arguments and not shape.accepts(method):
        raise ConfigurationError(
            f"Invalid callback. Setup on method with "
            f"{len(method.parameter_types)} parameter(s) cannot invoke callback "
            f"{shape.description} with {len(shape.all_types)} parameter(s)."
        )
    if shape.return_type is NONE_TYPE:
        raise ConfigurationError(
            f"Invalid callback {shape.description}. A value factory must return "
            "a value, but it is annotated to return None."
        )
    if not oracle.is_assignable(method.return_type, shape.return_type):
        raise ConfigurationError(
            f"Invalid callback. Setup on method with return type "
            f"{type_name(method.return_type)} cannot invoke callback with return "
            f"type {type_name(shape.return_type)}."
        )
    return shape


def validate_event_factory(
    method: Method, factory: Callable[..., Any], oracle: TypeOracle
) -> CallableShape:
    shape = CallableShape.of(factory)
    if not shape.takes_no_arguments and not shape.accepts(method, oracle):
        raise ConfigurationError(
            f"Invalid event argument factory. Setup on method with parameters "
            f"({type_list(method.parameter_types)}) cannot invoke factory "
            f"{shape.description} with parameters ({type_list(shape.all_types)})."
        )
    return shape
