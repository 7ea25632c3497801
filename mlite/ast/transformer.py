"""
AST Transformer for converting Lark parse trees to custom AST nodes.

This module provides a transformer that converts raw Lark Tree and Token
objects into the structured AST node classes defined in nodes.py.
"""

import re
from typing import Any, List, Optional

from lark import Token, Transformer

from mlite.ast.nodes import (
    AliasPattern,
    AndOperation,
    Annotated,
    AnnotatedPattern,
    ArrowType,
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
    LetBinding,
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
    Program,
    Sequence,
    StringLiteral,
    TopExpression,
    TupleExpression,
    TuplePattern,
    TupleTypeExpression,
    TypeConstructor,
    TypeDeclaration,
    TypeDefinition,
    TypeVariable,
    UnitLiteral,
    UnitPattern,
    Variable,
    VariablePattern,
    VariantConstructor,
    WildcardPattern,
)
from mlite.shared.parser import ParseError


def _parse_int(text: str) -> int:
    return int(text.replace("_", ""))


def _parse_float(text: str) -> float:
    return float(text.replace("_", ""))


_SIMPLE_ESCAPES = {
    "\\": "\\",
    '"': '"',
    "'": "'",
    "n": "\n",
    "t": "\t",
    "b": "\b",
    "r": "\r",
    " ": " ",
}

_ESCAPE = re.compile(
    r"""\\(?:([\\"' ntbr])|([0-9]{3})|x([0-9a-fA-F]{2})|o([0-3][0-7]{2})|(.))"""
)


def _parse_string(token: Token) -> str:
    """Decode the OCaml escape sequences of a quoted string literal"""

    def decode(match: "re.Match[str]") -> str:
        simple, decimal, hexadecimal, octal, illegal = match.groups()
        if simple is not None:
            return _SIMPLE_ESCAPES[simple]
        if illegal is not None:
            raise ParseError(
                f"Illegal backslash escape in string: \\{illegal}", token.line, token.column
            )
        if decimal is not None:
            code = int(decimal)
            if code > 255:
                raise ParseError(
                    f"Illegal character code in string: \\{decimal}", token.line, token.column
                )
            return chr(code)
        if hexadecimal is not None:
            return chr(int(hexadecimal, 16))
        return chr(int(octal, 8))

    return _ESCAPE.sub(decode, token.value[1:-1])


def _type_var_name(token: Token) -> str:
    return token.value[1:]


class ASTTransformer(Transformer):
    """Transformer that converts Lark parse trees to custom AST nodes."""

    def __init__(self) -> None:
        super().__init__()
        # Add methods for keywords that can't be used as method names
        setattr(self, "lambda", self._lambda)

    # Literals
    def int(self, items: List[Any]) -> IntLiteral:
        return IntLiteral(_parse_int(items[0].value))

    def float(self, items: List[Any]) -> FloatLiteral:
        return FloatLiteral(_parse_float(items[0].value))

    def string(self, items: List[Any]) -> StringLiteral:
        return StringLiteral(_parse_string(items[0]))

    def true(self, items: List[Any]) -> BoolLiteral:
        return BoolLiteral(True)

    def false(self, items: List[Any]) -> BoolLiteral:
        return BoolLiteral(False)

    def unit(self, items: List[Any]) -> UnitLiteral:
        return UnitLiteral()

    def list(self, items: List[Any]) -> ListLiteral:
        """Transform list literal, empty or with `;`-separated elements."""
        return ListLiteral(list(items))

    def tuple(self, items: List[Any]) -> TupleExpression:
        return TupleExpression(list(items))

    # Variables and Identifiers
    def var(self, items: List[Any]) -> Variable:
        return Variable(items[0].value)

    def constructor(self, items: List[Any]) -> Constructor:
        return Constructor(items[0].value)

    def constructor_app(self, items: List[Any]) -> Constructor:
        return Constructor(items[0].value, items[1])

    def operator_section(self, items: List[Any]) -> OperatorSection:
        return OperatorSection(items[0].value)

    # Operators
    def binop(self, items: List[Any]) -> BinaryOperation:
        """Transform an infix operation; the operator token sits in the middle."""
        left, operator, right = items
        return BinaryOperation(operator.value, left, right)

    def cons(self, items: List[Any]) -> ConsOperation:
        return ConsOperation(items[0], items[1])

    def and_op(self, items: List[Any]) -> AndOperation:
        return AndOperation(items[0], items[2])

    def or_op(self, items: List[Any]) -> OrOperation:
        return OrOperation(items[0], items[2])

    def neg(self, items: List[Any]) -> Expression:
        """Transform unary minus, folding it into numeric literals."""
        operator, operand = items
        is_float = operator.value == "-."
        match operand:
            case IntLiteral(value=value) if not is_float:
                return IntLiteral(-value)
            case FloatLiteral(value=value):
                return FloatLiteral(-value)
            case _:
                return NegOperation(operand, is_float)

    # Functions
    def app(self, items: List[Any]) -> FunctionApplication:
        return FunctionApplication(items[0], items[1])

    def _lambda(self, items: List[Any]) -> Lambda:
        *params, body = items
        return Lambda(params, body)

    def function_cases(self, items: List[Any]) -> FunctionCases:
        return FunctionCases(list(items))

    def match(self, items: List[Any]) -> Match:
        scrutinee, *cases = items
        return Match(scrutinee, cases)

    def match_case(self, items: List[Any]) -> MatchCase:
        pattern, guard, body = items
        return MatchCase(pattern, guard, body)

    # Control Flow
    def if_else(self, items: List[Any]) -> IfElse:
        return IfElse(items[0], items[1], items[2])

    def if_then(self, items: List[Any]) -> IfElse:
        return IfElse(items[0], items[1])

    def sequence(self, items: List[Any]) -> Sequence:
        return Sequence(items[0], items[1])

    def annotated(self, items: List[Any]) -> Annotated:
        return Annotated(items[0], items[1])

    # Bindings
    def function_binding(self, items: List[Any]) -> LetBinding:
        """Transform `name params... [: type] = body` into `name = fun params -> body`."""
        name = items[0].value
        body = items[-1]
        annotation = items[-3]
        params = items[1:-3]
        if annotation is not None:
            body = Annotated(body, annotation)
        if params:
            body = Lambda(params, body)
        return LetBinding(VariablePattern(name), body)

    def pattern_binding(self, items: List[Any]) -> LetBinding:
        pattern, _, body = items
        return LetBinding(pattern, body)

    def let_head(self, items: List[Any]) -> LetDefinition:
        recursive, *bindings = items
        return LetDefinition(recursive is not None, bindings)

    def let_definition(self, items: List[Any]) -> LetDefinition:
        return items[0]

    def let_in(self, items: List[Any]) -> LetIn:
        return LetIn(items[0], items[1])

    # Type System
    def type_var(self, items: List[Any]) -> TypeVariable:
        return TypeVariable(_type_var_name(items[0]))

    def type_constructor(self, items: List[Any]) -> TypeConstructor:
        return TypeConstructor(items[0].value)

    def type_application(self, items: List[Any]) -> TypeConstructor:
        argument, name = items
        return TypeConstructor(name.value, [argument])

    def multi_type_application(self, items: List[Any]) -> TypeConstructor:
        *arguments, name = items
        return TypeConstructor(name.value, arguments)

    def arrow_type(self, items: List[Any]) -> ArrowType:
        return ArrowType(items[0], items[1])

    def tuple_type(self, items: List[Any]) -> TupleTypeExpression:
        # STAR separators are named tokens and stay in the children
        return TupleTypeExpression([item for item in items if not isinstance(item, Token)])

    def type_start(self, items: List[Any]) -> Any:
        return items[0]

    # Patterns
    def wildcard_pattern(self, items: List[Any]) -> WildcardPattern:
        return WildcardPattern()

    def var_pattern(self, items: List[Any]) -> VariablePattern:
        return VariablePattern(items[0].value)

    def constructor_pattern(self, items: List[Any]) -> ConstructorPattern:
        match items:
            case [Token(value=name)]:
                return ConstructorPattern(name)
            case [Token(value=name), argument]:
                return ConstructorPattern(name, argument)
            case _:
                raise ValueError(f"Invalid constructor pattern items: {items}")

    def int_pattern(self, items: List[Any]) -> LiteralPattern:
        value = _parse_int(items[-1].value)
        return LiteralPattern(-value if len(items) == 2 else value)

    def float_pattern(self, items: List[Any]) -> LiteralPattern:
        value = _parse_float(items[-1].value)
        return LiteralPattern(-value if len(items) == 2 else value)

    def string_pattern(self, items: List[Any]) -> LiteralPattern:
        return LiteralPattern(_parse_string(items[0]))

    def true_pattern(self, items: List[Any]) -> LiteralPattern:
        return LiteralPattern(True)

    def false_pattern(self, items: List[Any]) -> LiteralPattern:
        return LiteralPattern(False)

    def unit_pattern(self, items: List[Any]) -> UnitPattern:
        return UnitPattern()

    def list_pattern(self, items: List[Any]) -> ListPattern:
        return ListPattern(list(items))

    def tuple_pattern(self, items: List[Any]) -> TuplePattern:
        return TuplePattern(list(items))

    def cons_pattern(self, items: List[Any]) -> ConsPattern:
        return ConsPattern(items[0], items[1])

    def or_pattern(self, items: List[Any]) -> OrPattern:
        return OrPattern(items[0], items[1])

    def alias_pattern(self, items: List[Any]) -> AliasPattern:
        return AliasPattern(items[0], items[1].value)

    def annotated_pattern(self, items: List[Any]) -> AnnotatedPattern:
        return AnnotatedPattern(items[0], items[1])

    # Top-level Declarations
    def variant(self, items: List[Any]) -> VariantConstructor:
        name, argument = items
        return VariantConstructor(name.value, argument)

    def type_params(self, items: List[Any]) -> List[str]:
        return [_type_var_name(token) for token in items]

    def variant_declaration(self, items: List[Any]) -> TypeDeclaration:
        params: Optional[List[str]] = items[0]
        name = items[1].value
        constructors = [item for item in items[3:] if isinstance(item, VariantConstructor)]
        return TypeDeclaration(name, params or [], constructors)

    def alias_declaration(self, items: List[Any]) -> TypeDeclaration:
        params, name, _, alias = items
        return TypeDeclaration(name.value, params or [], alias=alias)

    def type_definition(self, items: List[Any]) -> TypeDefinition:
        return TypeDefinition(list(items))

    def top_expr(self, items: List[Any]) -> TopExpression:
        return TopExpression(items[0])

    def final_expr(self, items: List[Any]) -> TopExpression:
        return TopExpression(items[0])

    # Root
    def start(self, items: List[Any]) -> Program:
        """Transform the root program."""
        return Program([item for item in items if item is not None])

