"""
Tree-walking interpreter over the typed AST.

Programs are type checked before they run, so evaluation assumes every
operation is applied to values of the right shape.
"""

import logging
from contextlib import redirect_stdout
from dataclasses import dataclass
from io import StringIO
from typing import Any, Callable, Dict, List, Optional, Tuple

from mlite.ast.nodes import (
    AliasPattern,
    AndOperation,
    Annotated,
    AnnotatedPattern,
    BinaryOperation,
    BoolLiteral,
    ConsOperation,
    ConsPattern,
    Constructor,
    ConstructorPattern,
    Expression,
    FloatLiteral,
    FunctionApplication,
    FunctionCases,
    IfElse,
    IntLiteral,
    Lambda,
    LetDefinition,
    LetIn,
    ListLiteral,
    ListPattern,
    LiteralPattern,
    Match,
    MatchCase,
    NegOperation,
    OperatorSection,
    OrOperation,
    OrPattern,
    Pattern,
    Phrase,
    Program,
    Sequence,
    StringLiteral,
    TopExpression,
    TupleExpression,
    TuplePattern,
    TypeDefinition,
    UnitLiteral,
    UnitPattern,
    Variable,
    VariablePattern,
    WildcardPattern,
)
from mlite.builtins import OPERATORS, PRIMITIVES
from mlite.interpreter.values import UNIT, MatchFailure, StackOverflow, Variant
from mlite.parser.parser import parse_prelude
from mlite.shared.recursion import raised_recursion_limit
from mlite.typechecker.typecheck import type_check

logger = logging.getLogger(__name__)

# Type aliases for the interpreter
Value = Any  # Any runtime value
Bindings = Dict[str, Value]


@dataclass
class RunReturn:
    output: str
    exit_code: int


class Environment:
    """Runtime bindings, chained to the enclosing scope."""

    def __init__(
        self,
        bindings: Optional[Bindings] = None,
        parent: Optional["Environment"] = None,
    ) -> None:
        self.bindings: Bindings = bindings or {}
        self.parent = parent

    def lookup(self, name: str) -> Value:
        env: Optional[Environment] = self
        while env is not None:
            if name in env.bindings:
                return env.bindings[name]
            env = env.parent
        raise RuntimeError(f"Unbound value {name}")

    def extend(self, bindings: Bindings) -> "Environment":
        return Environment(dict(bindings), self)

    def define(self, name: str, value: Value) -> None:
        self.bindings[name] = value


def _curry_operator(fn: Callable[[Value, Value], Value]) -> Callable[[Value], Value]:
    return lambda left: lambda right: fn(left, right)


class Interpreter:
    """Interpreter class for evaluating AST expressions."""

    def __init__(self) -> None:
        self.env = Environment({name: impl for name, (_, impl) in PRIMITIVES.items()})
        self.tags: Dict[str, int] = {}

    # Phrases

    def run_phrase(self, phrase: Phrase) -> List[Tuple[str, Value]]:
        """Evaluate one toplevel phrase; returns the values it defines or computes.

        The session environment only changes once the whole phrase has evaluated.
        """
        match phrase:
            case LetDefinition() as definition:
                values = self.eval_let_definition(definition, self.env)
                self.env = self.env.extend(values)
                return list(values.items())
            case TypeDefinition(declarations=declarations):
                for declaration in declarations:
                    self.tags.update(declaration.constructor_tags())
                return []
            case TopExpression(expression=expression):
                return [("-", self.eval(expression, self.env))]
            case _:
                raise RuntimeError(f"Unhandled phrase type: {type(phrase).__name__}")

    def run_program(self, program: Program) -> None:
        for phrase in program.phrases:
            self.run_phrase(phrase)

    # Definitions

    def eval_let_definition(self, definition: LetDefinition, env: Environment) -> Bindings:
        if definition.recursive:
            rec_env = env.extend({})
            for binding in definition.bindings:
                match binding.pattern:
                    case VariablePattern(name=name):
                        # Right-hand sides are functions, so nothing is looked up yet
                        rec_env.define(name, self.eval(binding.body, rec_env))
            return dict(rec_env.bindings)

        values: Bindings = {}
        for binding in definition.bindings:
            value = self.eval(binding.body, env)
            matched = self.match_pattern(binding.pattern, value)
            if matched is None:
                raise MatchFailure()
            values.update(matched)
        return values

    # Patterns

    def match_pattern(self, pattern: Pattern, value: Value) -> Optional[Bindings]:
        """Match a value against a pattern; returns the bindings or None."""
        match pattern:
            case WildcardPattern() | UnitPattern():
                return {}
            case VariablePattern(name=name):
                return {name: value}
            case LiteralPattern(value=expected):
                return {} if value == expected else None
            case ConstructorPattern(constructor=name, argument=argument):
                if not isinstance(value, Variant) or value.name != name:
                    return None
                if argument is None:
                    return {}
                return self.match_pattern(argument, value.argument)
            case TuplePattern(patterns=patterns):
                return self._match_all(patterns, list(value))
            case ListPattern(patterns=patterns):
                if len(patterns) != len(value):
                    return None
                return self._match_all(patterns, value)
            case ConsPattern(head=head, tail=tail):
                if not value:
                    return None
                return self._match_all([head, tail], [value[0], value[1:]])
            case OrPattern(left=left, right=right):
                matched = self.match_pattern(left, value)
                if matched is not None:
                    return matched
                return self.match_pattern(right, value)
            case AliasPattern(pattern=inner, name=name):
                matched = self.match_pattern(inner, value)
                if matched is None:
                    return None
                matched[name] = value
                return matched
            case AnnotatedPattern(pattern=inner):
                return self.match_pattern(inner, value)
            case _:
                raise RuntimeError(f"Unhandled pattern type: {type(pattern).__name__}")

    def _match_all(self, patterns: List[Pattern], values: List[Value]) -> Optional[Bindings]:
        bindings: Bindings = {}
        for pattern, value in zip(patterns, values):
            matched = self.match_pattern(pattern, value)
            if matched is None:
                return None
            bindings.update(matched)
        return bindings

    # Functions

    def select_case(
        self, value: Value, cases: List[MatchCase], env: Environment
    ) -> Tuple[Expression, Environment]:
        """Find the first case matching value; returns its body and environment."""
        for case in cases:
            bindings = self.match_pattern(case.pattern, value)
            if bindings is None:
                continue
            case_env = env.extend(bindings)
            if case.guard is not None and not self.eval(case.guard, case_env):
                continue
            return case.body, case_env
        raise MatchFailure()

    # Expressions

    def eval(self, expr: Expression, env: Environment) -> Value:
        """Evaluate an expression in an environment.

        Expressions in tail position (branches, sequence and let bodies, the
        body of an applied closure) are evaluated by the same loop iteration
        instead of a nested call, so tail-recursive functions run in constant
        Python stack.
        """
        while True:
            match expr:
                # Literals
                case IntLiteral(value=value) | FloatLiteral(value=value):
                    return value
                case StringLiteral(value=value) | BoolLiteral(value=value):
                    return value
                case UnitLiteral():
                    return UNIT
                case ListLiteral(elements=elements):
                    return [self.eval(element, env) for element in elements]
                case TupleExpression(elements=elements):
                    return tuple(self.eval(element, env) for element in elements)

                # Variables and constructors
                case Variable(name=name):
                    return env.lookup(name)
                case Constructor(name=name, argument=argument):
                    value = self.eval(argument, env) if argument is not None else None
                    return Variant(self.tags[name], name, value)

                # Operators
                case BinaryOperation(operator=operator, left=left, right=right):
                    _, fn = OPERATORS[operator]
                    return fn(self.eval(left, env), self.eval(right, env))
                case AndOperation(left=left, right=right):
                    if not self.eval(left, env):
                        return False
                    expr = right
                case OrOperation(left=left, right=right):
                    if self.eval(left, env):
                        return True
                    expr = right
                case ConsOperation(head=head, tail=tail):
                    return [self.eval(head, env)] + self.eval(tail, env)
                case NegOperation(operand=operand):
                    return -self.eval(operand, env)
                case OperatorSection(operator=operator):
                    _, fn = OPERATORS[operator]
                    return _curry_operator(fn)

                # Functions
                case FunctionApplication(function=function, argument=argument):
                    fn = self.eval(function, env)
                    argument_value = self.eval(argument, env)
                    if not isinstance(fn, Closure):
                        return fn(argument_value)
                    body, result = fn.enter(argument_value)
                    if body is None:
                        return result
                    expr, env = body, result
                case Lambda(params=params, body=body):
                    return FunctionClosure(self, params, body, env)
                case FunctionCases(cases=cases):
                    return CasesClosure(self, cases, env)
                case Match(scrutinee=scrutinee, cases=cases):
                    expr, env = self.select_case(self.eval(scrutinee, env), cases, env)

                # Control flow
                case IfElse(condition=cond, then_expr=then_expr, else_expr=else_expr):
                    if self.eval(cond, env):
                        expr = then_expr
                    elif else_expr is None:
                        return UNIT
                    else:
                        expr = else_expr
                case Sequence(first=first, second=second):
                    self.eval(first, env)
                    expr = second
                case Annotated(expression=inner):
                    expr = inner
                case LetIn(definition=definition, body=body):
                    values = self.eval_let_definition(definition, env)
                    expr, env = body, env.extend(values)

                case _:
                    raise RuntimeError(f"Unhandled expression type: {type(expr).__name__}")


class Closure:
    """A function value defined in mlite.

    Calling it from Python evaluates the body. The evaluator instead uses
    `enter`, which binds the argument and hands back the body to continue with.
    """

    def __init__(self, interpreter: Interpreter, env: Environment) -> None:
        self.interpreter = interpreter
        self.env = env

    def enter(self, argument: Value) -> Tuple[Optional[Expression], Any]:
        """Bind argument; returns (body, env) to evaluate, or (None, value) when done."""
        raise NotImplementedError

    def __call__(self, argument: Value) -> Value:
        body, result = self.enter(argument)
        if body is None:
            return result
        return self.interpreter.eval(body, result)


class FunctionClosure(Closure):
    """Curried closure for `fun p1 ... pn -> body`."""

    def __init__(
        self,
        interpreter: Interpreter,
        params: List[Pattern],
        body: Expression,
        env: Environment,
    ) -> None:
        super().__init__(interpreter, env)
        self.params = params
        self.body = body

    def enter(self, argument: Value) -> Tuple[Optional[Expression], Any]:
        bindings = self.interpreter.match_pattern(self.params[0], argument)
        if bindings is None:
            raise MatchFailure()
        inner = self.env.extend(bindings)
        if len(self.params) > 1:
            return None, FunctionClosure(self.interpreter, self.params[1:], self.body, inner)
        return self.body, inner


class CasesClosure(Closure):
    """Closure for `function p1 -> e1 | ...`."""

    def __init__(self, interpreter: Interpreter, cases: List[MatchCase], env: Environment) -> None:
        super().__init__(interpreter, env)
        self.cases = cases

    def enter(self, argument: Value) -> Tuple[Optional[Expression], Any]:
        return self.interpreter.select_case(argument, self.cases, self.env)


def prelude_interpreter() -> Interpreter:
    """Interpreter whose environment already holds the prelude."""
    interp = Interpreter()
    interp.run_program(parse_prelude())
    return interp


def run_guarded(action: Callable[[], Value]) -> Value:
    """Run with a raised recursion limit, reporting overflow as Stack_overflow."""
    with raised_recursion_limit():
        try:
            return action()
        except RecursionError as e:
            raise StackOverflow() from e


def interpret(
    ast: Program,
    collect_stdout: bool = False,
    use_prelude: bool = True,
) -> RunReturn:
    if not type_check(ast, use_prelude):
        print("Type checking failed, cannot interpret.")
        return RunReturn("", 1)

    interp = prelude_interpreter() if use_prelude else Interpreter()

    if collect_stdout:
        f = StringIO()
        with redirect_stdout(f):
            run_guarded(lambda: interp.run_program(ast))
        output = f.getvalue()
    else:
        run_guarded(lambda: interp.run_program(ast))
        output = ""

    logger.debug("Program finished")
    return RunReturn(output, 0)
