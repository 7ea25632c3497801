"""
Primitive values and infix operators.

Each entry pairs an OCaml type signature with its Python implementation.
Multi-argument primitives are curried.
"""

import math
import operator
import re
from typing import Any, Callable, Dict, List, Tuple

from mlite.interpreter.values import (
    UNIT,
    DivisionByZero,
    Failure,
    InvalidArgument,
    NotFound,
    string_of_float,
)

Primitive = Tuple[str, Any]


def _curry2(fn: Callable[[Any, Any], Any]) -> Callable[[Any], Callable[[Any], Any]]:
    return lambda a: lambda b: fn(a, b)


def _curry3(fn: Callable[[Any, Any, Any], Any]) -> Callable[[Any], Any]:
    return lambda a: lambda b: lambda c: fn(a, b, c)


def _print(text: str) -> Any:
    print(text, end="")
    return UNIT


def compare_values(left: Any, right: Any) -> int:
    """Structural comparison: negative, zero or positive"""
    try:
        if left == right:
            return 0
        return -1 if left < right else 1
    except TypeError as e:
        raise InvalidArgument("compare: functional value") from e


def _int_div(left: int, right: int) -> int:
    if right == 0:
        raise DivisionByZero()
    # OCaml truncates toward zero
    quotient = abs(left) // abs(right)
    return quotient if (left >= 0) == (right >= 0) else -quotient


def _int_mod(left: int, right: int) -> int:
    if right == 0:
        raise DivisionByZero()
    return left - right * _int_div(left, right)


_INT_LITERAL = re.compile(r"([-+]?)(0[xX][0-9a-fA-F_]+|0[oO][0-7_]+|0[bB][01_]+|[0-9][0-9_]*)")

_INT_BASES = {"0x": 16, "0o": 8, "0b": 2}


def _int_of_string(text: str) -> int:
    """Decimal, 0x, 0o or 0b literals with an optional sign and `_` separators"""
    match = _INT_LITERAL.fullmatch(text)
    if match is None:
        raise Failure("int_of_string")
    sign, digits = match.groups()
    base = _INT_BASES.get(digits[:2].lower(), 10)
    if base != 10:
        digits = digits[2:]
    try:
        value = int(digits.replace("_", ""), base)
    except ValueError as e:
        raise Failure("int_of_string") from e
    return -value if sign == "-" else value


def _int_of_float(value: float) -> int:
    # unspecified in OCaml for nan and infinities
    if math.isnan(value) or math.isinf(value):
        return 0
    return math.trunc(value)


def _hd(items: List[Any]) -> Any:
    if not items:
        raise Failure("hd")
    return items[0]


def _tl(items: List[Any]) -> List[Any]:
    if not items:
        raise Failure("tl")
    return items[1:]


def _nth(items: List[Any], index: int) -> Any:
    if index < 0:
        raise InvalidArgument("List.nth")
    if index >= len(items):
        raise Failure("nth")
    return items[index]


def _fold_left(fn: Callable, acc: Any, items: List[Any]) -> Any:
    for item in items:
        acc = fn(acc)(item)
    return acc


def _fold_right(fn: Callable, items: List[Any], acc: Any) -> Any:
    for item in reversed(items):
        acc = fn(item)(acc)
    return acc


def _iter(fn: Callable, items: List[Any]) -> Any:
    for item in items:
        fn(item)
    return UNIT


def _assoc(key: Any, pairs: List[Tuple[Any, Any]]) -> Any:
    for candidate, value in pairs:
        if candidate == key:
            return value
    raise NotFound()


def _failwith(message: str) -> Any:
    raise Failure(message)


PRIMITIVES: Dict[str, Primitive] = {
    "print_string": ("string -> unit", _print),
    "print_endline": ("string -> unit", lambda text: _print(text + "\n")),
    "print_int": ("int -> unit", lambda n: _print(str(n))),
    "print_float": ("float -> unit", lambda x: _print(string_of_float(x))),
    "print_newline": ("unit -> unit", lambda _: _print("\n")),
    "string_of_int": ("int -> string", str),
    "int_of_string": ("string -> int", _int_of_string),
    "string_of_float": ("float -> string", string_of_float),
    "float_of_int": ("int -> float", float),
    "int_of_float": ("float -> int", _int_of_float),
    "string_of_bool": ("bool -> string", lambda b: "true" if b else "false"),
    "failwith": ("string -> 'a", _failwith),
    "compare": ("'a -> 'a -> int", _curry2(compare_values)),
    "List.length": ("'a list -> int", len),
    "List.hd": ("'a list -> 'a", _hd),
    "List.tl": ("'a list -> 'a list", _tl),
    "List.rev": ("'a list -> 'a list", lambda items: items[::-1]),
    "List.map": (
        "('a -> 'b) -> 'a list -> 'b list",
        _curry2(lambda fn, items: [fn(item) for item in items]),
    ),
    "List.iter": ("('a -> unit) -> 'a list -> unit", _curry2(_iter)),
    "List.filter": (
        "('a -> bool) -> 'a list -> 'a list",
        _curry2(lambda fn, items: [item for item in items if fn(item)]),
    ),
    "List.fold_left": (
        "('a -> 'b -> 'a) -> 'a -> 'b list -> 'a",
        _curry3(_fold_left),
    ),
    "List.fold_right": (
        "('a -> 'b -> 'b) -> 'a list -> 'b -> 'b",
        _curry3(_fold_right),
    ),
    "List.nth": ("'a list -> int -> 'a", _curry2(_nth)),
    "List.mem": ("'a -> 'a list -> bool", _curry2(lambda x, items: x in items)),
    "List.append": ("'a list -> 'a list -> 'a list", _curry2(operator.add)),
    "List.assoc": ("'a -> ('a * 'b) list -> 'b", _curry2(_assoc)),
    "String.length": ("string -> int", len),
    "String.concat": (
        "string -> string list -> string",
        _curry2(lambda sep, items: sep.join(items)),
    ),
}


def _float_div(left: float, right: float) -> float:
    if right == 0.0:
        if left == 0.0 or math.isnan(left):
            return math.nan
        return math.copysign(math.inf, left) * math.copysign(1.0, right)
    return left / right


def _is_odd_integer(value: float) -> bool:
    return value.is_integer() and value % 2 == 1


def _float_pow(base: float, exponent: float) -> float:
    """IEEE pow: overflow and poles give infinities, domain errors give nan"""
    try:
        return math.pow(base, exponent)
    except OverflowError:
        negative = base < 0 and _is_odd_integer(exponent)
        return -math.inf if negative else math.inf
    except ValueError:
        if base == 0.0:
            if _is_odd_integer(exponent):
                return math.copysign(math.inf, base)
            return math.inf
        return math.nan


def _compare_with(test: Callable[[int], bool]) -> Callable[[Any, Any], bool]:
    return lambda left, right: test(compare_values(left, right))


# Binary operators take both operands at once; sections curry them
OPERATORS: Dict[str, Primitive] = {
    "+": ("int -> int -> int", operator.add),
    "-": ("int -> int -> int", operator.sub),
    "*": ("int -> int -> int", operator.mul),
    "/": ("int -> int -> int", _int_div),
    "mod": ("int -> int -> int", _int_mod),
    "+.": ("float -> float -> float", operator.add),
    "-.": ("float -> float -> float", operator.sub),
    "*.": ("float -> float -> float", operator.mul),
    "/.": ("float -> float -> float", _float_div),
    "**": ("float -> float -> float", _float_pow),
    "^": ("string -> string -> string", operator.add),
    "@": ("'a list -> 'a list -> 'a list", operator.add),
    "=": ("'a -> 'a -> bool", _compare_with(lambda c: c == 0)),
    "<>": ("'a -> 'a -> bool", _compare_with(lambda c: c != 0)),
    "<": ("'a -> 'a -> bool", _compare_with(lambda c: c < 0)),
    ">": ("'a -> 'a -> bool", _compare_with(lambda c: c > 0)),
    "<=": ("'a -> 'a -> bool", _compare_with(lambda c: c <= 0)),
    ">=": ("'a -> 'a -> bool", _compare_with(lambda c: c >= 0)),
    "==": ("'a -> 'a -> bool", operator.is_),
    "!=": ("'a -> 'a -> bool", operator.is_not),
    "&&": ("bool -> bool -> bool", lambda left, right: left and right),
    "||": ("bool -> bool -> bool", lambda left, right: left or right),
}
