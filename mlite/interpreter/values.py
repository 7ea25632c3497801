"""
Runtime values and runtime failures.

ints, floats, strings and bools are the Python values of the same name,
tuples are Python tuples, lists are Python lists (never mutated) and
functions are one-argument Python callables.
"""

from dataclasses import dataclass
from typing import Any


class Unit:
    """The single value of type unit"""

    _instance = None

    def __new__(cls) -> "Unit":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Unit)

    def __lt__(self, other: object) -> bool:
        return False

    def __hash__(self) -> int:
        return 0

    def __repr__(self) -> str:
        return "()"


UNIT = Unit()


@dataclass(frozen=True, order=True)
class Variant:
    # Constructors compare in declaration order, as in OCaml
    tag: int
    name: str
    argument: Any = None


class MliteRuntimeError(Exception):
    """An uncaught mlite exception"""

    exception_name = "Exception"

    def __init__(self, argument: Any = None) -> None:
        self.argument = argument
        super().__init__(self.describe())

    def describe(self) -> str:
        if self.argument is None:
            return self.exception_name
        return f"{self.exception_name} {show_value(self.argument, nested=True)}"


class Failure(MliteRuntimeError):
    exception_name = "Failure"


class MatchFailure(MliteRuntimeError):
    exception_name = "Match_failure"


class DivisionByZero(MliteRuntimeError):
    exception_name = "Division_by_zero"


class InvalidArgument(MliteRuntimeError):
    exception_name = "Invalid_argument"


class NotFound(MliteRuntimeError):
    exception_name = "Not_found"


class StackOverflow(MliteRuntimeError):
    exception_name = "Stack_overflow"


def show_float(value: float) -> str:
    text = repr(value)
    if text.endswith(".0"):
        return text[:-1]
    return text


def string_of_float(value: float) -> str:
    """Twelve significant digits, as print_float and string_of_float write them"""
    text = "%.12g" % value
    if text.lstrip("-").isdigit():
        return text + "."
    return text


def show_string(value: str) -> str:
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def show_value(value: Any, nested: bool = False) -> str:
    """Render a value the way the OCaml toplevel prints it"""
    match value:
        case bool():
            return "true" if value else "false"
        case int():
            return f"({value})" if nested and value < 0 else str(value)
        case float():
            text = show_float(value)
            return f"({text})" if nested and value < 0 else text
        case str():
            return show_string(value)
        case Unit():
            return "()"
        case tuple():
            return "(" + ", ".join(show_value(item) for item in value) + ")"
        case list():
            return "[" + "; ".join(show_value(item) for item in value) + "]"
        case Variant(name=name, argument=None):
            return name
        case Variant(name=name, argument=argument):
            text = f"{name} {show_value(argument, nested=True)}"
            return f"({text})" if nested else text
        case _ if callable(value):
            return "<fun>"
        case _:
            return repr(value)
