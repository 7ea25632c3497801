"""
Checks on patterns that go beyond their types.

Linearity and or-pattern consistency are errors. Exhaustiveness and
redundancy are warnings, computed with Maranget's usefulness algorithm
("Warnings for pattern matching", JFP 2007) over a simplified pattern
representation.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from mlite.ast.nodes import (
    AliasPattern,
    AnnotatedPattern,
    ConsPattern,
    ConstructorPattern,
    ListPattern,
    LiteralPattern,
    OrPattern,
    Pattern,
    TuplePattern,
    UnitPattern,
    VariablePattern,
    WildcardPattern,
)
from mlite.typechecker.errors import PatternError
from mlite.typechecker.mlite_types import ConstructorInfo

NON_EXHAUSTIVE_WARNING = (
    "Warning 8 [partial-match]: this pattern-matching is not exhaustive. "
    "Here is an example of a case that is not matched: {example}"
)
UNUSED_CASE_WARNING = "Warning 11 [redundant-case]: this match case is unused."


def pattern_variables(pattern: Pattern) -> List[str]:
    """Variables bound by a pattern, in order, with repetitions"""
    match pattern:
        case VariablePattern(name=name):
            return [name]
        case AliasPattern(pattern=inner, name=name):
            return pattern_variables(inner) + [name]
        case AnnotatedPattern(pattern=inner):
            return pattern_variables(inner)
        case ConstructorPattern(argument=argument):
            return pattern_variables(argument) if argument is not None else []
        case TuplePattern(patterns=patterns) | ListPattern(patterns=patterns):
            return [name for sub in patterns for name in pattern_variables(sub)]
        case ConsPattern(head=head, tail=tail):
            return pattern_variables(head) + pattern_variables(tail)
        case OrPattern(left=left):
            # both sides bind the same names once check_pattern_variables passed
            return pattern_variables(left)
        case _:
            return []


def check_pattern_variables(pattern: Pattern) -> None:
    """Reject variables bound twice and or-patterns whose sides disagree."""
    match pattern:
        case OrPattern(left=left, right=right):
            check_pattern_variables(left)
            check_pattern_variables(right)
            unmatched = sorted(set(pattern_variables(left)) ^ set(pattern_variables(right)))
            if unmatched:
                raise PatternError(
                    f"Variable {unmatched[0]} must occur on both sides of this | pattern",
                    pattern,
                )
            return
        case AliasPattern(pattern=inner) | AnnotatedPattern(pattern=inner):
            check_pattern_variables(inner)
        case ConstructorPattern(argument=argument) if argument is not None:
            check_pattern_variables(argument)
        case TuplePattern(patterns=patterns) | ListPattern(patterns=patterns):
            for sub in patterns:
                check_pattern_variables(sub)
        case ConsPattern(head=head, tail=tail):
            check_pattern_variables(head)
            check_pattern_variables(tail)

    seen: Set[str] = set()
    for name in pattern_variables(pattern):
        if name in seen:
            raise PatternError(
                f"Variable {name} is bound several times in this matching",
                pattern,
            )
        seen.add(name)


# Simplified patterns


@dataclass(frozen=True)
class _Wild:
    pass


@dataclass(frozen=True)
class _Con:
    """A constructor head: variants, booleans, unit, list shapes, tuples, literals"""

    kind: str
    name: str
    args: Tuple[Any, ...] = ()
    value: Any = None


@dataclass(frozen=True)
class _Or:
    alternatives: Tuple[Any, ...]


WILD = _Wild()
_INFINITE_KINDS = ("int", "float", "string")

Row = Tuple[Any, ...]


class MatchChecker:
    """Exhaustiveness and redundancy for one set of constructor declarations."""

    def __init__(
        self,
        constructors: Dict[str, ConstructorInfo],
        data_types: Dict[str, List[str]],
    ) -> None:
        self.constructors = constructors
        self.data_types = data_types

    def simplify(self, pattern: Pattern) -> Any:
        match pattern:
            case WildcardPattern() | VariablePattern():
                return WILD
            case AliasPattern(pattern=inner) | AnnotatedPattern(pattern=inner):
                return self.simplify(inner)
            case UnitPattern():
                return _Con("unit", "()")
            case LiteralPattern(value=bool() as value):
                return _Con("bool", "true" if value else "false")
            case LiteralPattern(value=int() as value):
                return _Con("int", str(value), value=value)
            case LiteralPattern(value=float() as value):
                return _Con("float", repr(value), value=value)
            case LiteralPattern(value=value):
                return _Con("string", repr(value), value=value)
            case ConstructorPattern(constructor=name, argument=argument):
                info = self.constructors.get(name)
                if info is not None and info.argument is not None:
                    arg = self.simplify(argument) if argument is not None else WILD
                    return _Con("variant", name, (arg,))
                return _Con("variant", name)
            case TuplePattern(patterns=patterns):
                return _Con(
                    "tuple",
                    f"tuple/{len(patterns)}",
                    tuple(self.simplify(sub) for sub in patterns),
                )
            case ListPattern(patterns=patterns):
                result: Any = _Con("list", "[]")
                for sub in reversed(patterns):
                    result = _Con("list", "::", (self.simplify(sub), result))
                return result
            case ConsPattern(head=head, tail=tail):
                return _Con("list", "::", (self.simplify(head), self.simplify(tail)))
            case OrPattern(left=left, right=right):
                alternatives: List[Any] = []
                for side in (self.simplify(left), self.simplify(right)):
                    match side:
                        case _Or(alternatives=inner):
                            alternatives.extend(inner)
                        case _:
                            alternatives.append(side)
                return _Or(tuple(alternatives))
            case _:
                raise TypeError(f"Unknown pattern: {pattern!r}")

    def _signature(self, con: _Con) -> Optional[List[Tuple[str, int]]]:
        """All constructors of con's type with their arities, or None if infinite"""
        match con.kind:
            case "variant":
                info = self.constructors.get(con.name)
                if info is None:
                    return None
                return [
                    (name, 0 if self.constructors[name].argument is None else 1)
                    for name in self.data_types.get(info.type_name, [con.name])
                ]
            case "bool":
                return [("false", 0), ("true", 0)]
            case "unit":
                return [("()", 0)]
            case "list":
                return [("[]", 0), ("::", 2)]
            case "tuple":
                return [(con.name, len(con.args))]
            case _:
                return None

    @staticmethod
    def _expand_or(rows: List[Row]) -> List[Row]:
        expanded: List[Row] = []
        for row in rows:
            match row[0]:
                case _Or(alternatives=alternatives):
                    expanded.extend(
                        MatchChecker._expand_or([(alt,) + row[1:] for alt in alternatives])
                    )
                case _:
                    expanded.append(row)
        return expanded

    @staticmethod
    def _head_constructors(rows: List[Row]) -> Dict[str, _Con]:
        heads: Dict[str, _Con] = {}
        for row in rows:
            if isinstance(row[0], _Con):
                heads.setdefault(row[0].name, row[0])
        return heads

    @staticmethod
    def _specialize(rows: List[Row], name: str, arity: int) -> List[Row]:
        specialized: List[Row] = []
        for row in rows:
            match row[0]:
                case _Con(name=head_name, args=args) if head_name == name:
                    specialized.append(tuple(args) + row[1:])
                case _Wild():
                    specialized.append((WILD,) * arity + row[1:])
        return specialized

    @staticmethod
    def _default(rows: List[Row]) -> List[Row]:
        return [row[1:] for row in rows if isinstance(row[0], _Wild)]

    def _complete_signature(
        self,
        heads: Dict[str, _Con],
    ) -> Optional[List[Tuple[str, int]]]:
        if not heads:
            return None
        signature = self._signature(next(iter(heads.values())))
        if signature is None:
            return None
        if all(name in heads for name, _ in signature):
            return signature
        return None

    def is_useful(self, rows: List[Row], vector: Row) -> bool:
        """Can `vector` match some value that no row of `rows` matches?"""
        if not vector:
            return not rows
        rows = self._expand_or(rows)
        head, rest = vector[0], vector[1:]
        match head:
            case _Or(alternatives=alternatives):
                return any(self.is_useful(rows, (alt,) + rest) for alt in alternatives)
            case _Con(name=name, args=args):
                return self.is_useful(
                    self._specialize(rows, name, len(args)),
                    tuple(args) + rest,
                )
            case _:
                signature = self._complete_signature(self._head_constructors(rows))
                if signature is not None:
                    return any(
                        self.is_useful(
                            self._specialize(rows, name, arity),
                            (WILD,) * arity + rest,
                        )
                        for name, arity in signature
                    )
                return self.is_useful(self._default(rows), rest)

    def _missing(self, heads: Dict[str, _Con]) -> Any:
        sample = next(iter(heads.values()))
        signature = self._signature(sample)
        if signature is not None:
            for name, arity in signature:
                if name not in heads:
                    return _Con(sample.kind, name, (WILD,) * arity)
            return WILD
        used = {con.value for con in heads.values()}
        match sample.kind:
            case "int":
                value: Any = next(n for n in range(len(used) + 1) if n not in used)
            case "float":
                value = next(float(n) for n in range(len(used) + 1) if float(n) not in used)
            case _:
                value = next(
                    "a" * n for n in range(len(used) + 1) if "a" * n not in used
                )
        return _Con(sample.kind, repr(value), value=value)

    def witness(self, rows: List[Row], width: int) -> Optional[List[Any]]:
        """A vector of patterns matched by no row, or None if rows are exhaustive"""
        if width == 0:
            return [] if not rows else None
        rows = self._expand_or(rows)
        heads = self._head_constructors(rows)
        signature = self._complete_signature(heads)
        if signature is not None:
            kind = next(iter(heads.values())).kind
            for name, arity in signature:
                found = self.witness(
                    self._specialize(rows, name, arity),
                    arity + width - 1,
                )
                if found is not None:
                    return [_Con(kind, name, tuple(found[:arity]))] + found[arity:]
            return None
        found = self.witness(self._default(rows), width - 1)
        if found is None:
            return None
        if not heads:
            return [WILD] + found
        return [self._missing(heads)] + found

    def check_cases(self, patterns: Sequence[Pattern], guarded: Sequence[bool]) -> List[str]:
        """Warnings for a list of match arms against a single scrutinee."""
        warnings: List[str] = []
        rows: List[Row] = []
        for pattern, has_guard in zip(patterns, guarded):
            simple = self.simplify(pattern)
            if not self.is_useful(rows, (simple,)):
                warnings.append(UNUSED_CASE_WARNING)
            if not has_guard:
                rows.append((simple,))
        missing = self.witness(rows, 1)
        if missing is not None:
            warnings.append(NON_EXHAUSTIVE_WARNING.format(example=show_pattern(missing[0])))
        return warnings

    def check_irrefutable(self, pattern: Pattern) -> List[str]:
        """Warnings for a single pattern in `let` or a `fun` parameter."""
        return self.check_cases([pattern], [False])


def show_pattern(pattern: Any, nested: bool = False) -> str:
    """Render a simplified pattern the way OCaml prints counterexamples"""
    match pattern:
        case _Wild():
            return "_"
        case _Con(kind="tuple", args=args):
            return "(" + ", ".join(show_pattern(arg) for arg in args) + ")"
        case _Con(kind="list", name="::", args=(head, tail)):
            text = f"{show_pattern(head, True)}::{show_pattern(tail)}"
            return f"({text})" if nested else text
        case _Con(kind="variant", name=name, args=(argument,)):
            text = f"{name} {show_pattern(argument, True)}"
            return f"({text})" if nested else text
        case _Con(kind="string", value=value):
            return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
        case _Con(kind="int" | "float", value=value):
            text = repr(value)
            if isinstance(value, float) and text.endswith(".0"):
                text = text[:-1]
            return f"({text})" if nested and value < 0 else text
        case _Con(name=name):
            return name
        case _:
            raise TypeError(f"Unknown pattern: {pattern!r}")
