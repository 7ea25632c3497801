from abc import ABC
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from mlite.typechecker.mlite_types import Type


@dataclass
class ASTNode(ABC):
    pass


# Literals
@dataclass
class IntLiteral(ASTNode):
    value: int
    ty: Optional[Type] = None


@dataclass
class FloatLiteral(ASTNode):
    value: float
    ty: Optional[Type] = None


@dataclass
class StringLiteral(ASTNode):
    value: str
    ty: Optional[Type] = None


@dataclass
class BoolLiteral(ASTNode):
    value: bool
    ty: Optional[Type] = None


@dataclass
class UnitLiteral(ASTNode):
    ty: Optional[Type] = None


@dataclass
class ListLiteral(ASTNode):
    elements: List["Expression"]
    ty: Optional[Type] = None


@dataclass
class TupleExpression(ASTNode):
    elements: List["Expression"]
    ty: Optional[Type] = None


# Variables and Identifiers
@dataclass
class Variable(ASTNode):
    name: str
    ty: Optional[Type] = None


@dataclass
class Constructor(ASTNode):
    """Variant constructor, applied to its argument when it has one"""

    name: str
    argument: Optional["Expression"] = None
    ty: Optional[Type] = None


# Operators
@dataclass
class BinaryOperation(ASTNode):
    """Infix operator other than the short-circuiting and list-building ones"""

    operator: str
    left: "Expression"
    right: "Expression"
    ty: Optional[Type] = None


@dataclass
class ConsOperation(ASTNode):
    head: "Expression"
    tail: "Expression"
    ty: Optional[Type] = None


@dataclass
class AndOperation(ASTNode):
    left: "Expression"
    right: "Expression"
    ty: Optional[Type] = None


@dataclass
class OrOperation(ASTNode):
    left: "Expression"
    right: "Expression"
    ty: Optional[Type] = None


@dataclass
class NegOperation(ASTNode):
    operand: "Expression"
    is_float: bool = False
    ty: Optional[Type] = None


@dataclass
class OperatorSection(ASTNode):
    """An infix operator used as a value, e.g. (+)"""

    operator: str
    ty: Optional[Type] = None


# Functions
@dataclass
class FunctionApplication(ASTNode):
    function: "Expression"
    argument: "Expression"
    ty: Optional[Type] = None


@dataclass
class Lambda(ASTNode):
    """fun p1 p2 ... -> body"""

    params: List["Pattern"]
    body: "Expression"
    ty: Optional[Type] = None


@dataclass
class MatchCase(ASTNode):
    pattern: "Pattern"
    guard: Optional["Expression"]
    body: "Expression"
    ty: Optional[Type] = None


@dataclass
class FunctionCases(ASTNode):
    """function | p1 -> e1 | p2 -> e2"""

    cases: List[MatchCase]
    ty: Optional[Type] = None


@dataclass
class Match(ASTNode):
    scrutinee: "Expression"
    cases: List[MatchCase]
    ty: Optional[Type] = None


# Control Flow
@dataclass
class IfElse(ASTNode):
    condition: "Expression"
    then_expr: "Expression"
    else_expr: Optional["Expression"] = None
    ty: Optional[Type] = None


@dataclass
class Sequence(ASTNode):
    first: "Expression"
    second: "Expression"
    ty: Optional[Type] = None


@dataclass
class Annotated(ASTNode):
    expression: "Expression"
    type_expr: "TypeExpression"
    ty: Optional[Type] = None


# Bindings
@dataclass
class LetBinding(ASTNode):
    """One `pattern = body` binding.

    `f x y : t = e` arrives here as `f = fun x y -> (e : t)`.
    """

    pattern: "Pattern"
    body: "Expression"
    ty: Optional[Type] = None


@dataclass
class LetDefinition(ASTNode):
    recursive: bool
    bindings: List[LetBinding]
    ty: Optional[Type] = None


@dataclass
class LetIn(ASTNode):
    definition: LetDefinition
    body: "Expression"
    ty: Optional[Type] = None


# Type System
@dataclass
class TypeVariable(ASTNode):
    name: str


@dataclass
class TypeConstructor(ASTNode):
    name: str
    args: List["TypeExpression"] = field(default_factory=list)


@dataclass
class ArrowType(ASTNode):
    from_type: "TypeExpression"
    to_type: "TypeExpression"


@dataclass
class TupleTypeExpression(ASTNode):
    element_types: List["TypeExpression"]


# Patterns
@dataclass
class WildcardPattern(ASTNode):
    ty: Optional[Type] = None


@dataclass
class VariablePattern(ASTNode):
    name: str
    ty: Optional[Type] = None


@dataclass
class LiteralPattern(ASTNode):
    value: Union[int, float, str, bool]
    ty: Optional[Type] = None


@dataclass
class UnitPattern(ASTNode):
    ty: Optional[Type] = None


@dataclass
class ConstructorPattern(ASTNode):
    constructor: str
    argument: Optional["Pattern"] = None
    ty: Optional[Type] = None


@dataclass
class TuplePattern(ASTNode):
    patterns: List["Pattern"]
    ty: Optional[Type] = None


@dataclass
class ListPattern(ASTNode):
    patterns: List["Pattern"]
    ty: Optional[Type] = None


@dataclass
class ConsPattern(ASTNode):
    head: "Pattern"
    tail: "Pattern"
    ty: Optional[Type] = None


@dataclass
class OrPattern(ASTNode):
    left: "Pattern"
    right: "Pattern"
    ty: Optional[Type] = None


@dataclass
class AliasPattern(ASTNode):
    pattern: "Pattern"
    name: str
    ty: Optional[Type] = None


@dataclass
class AnnotatedPattern(ASTNode):
    pattern: "Pattern"
    type_expr: "TypeExpression"
    ty: Optional[Type] = None


# Top-level Declarations
@dataclass
class VariantConstructor(ASTNode):
    name: str
    argument: Optional["TypeExpression"] = None


@dataclass
class TypeDeclaration(ASTNode):
    """`type params name = C1 | C2 of t` or the alias form `type name = t`"""

    type_name: str
    type_params: List[str]
    constructors: List[VariantConstructor] = field(default_factory=list)
    alias: Optional["TypeExpression"] = None

    def constructor_tags(self) -> Dict[str, int]:
        """Runtime tags: constant constructors first, then the others, each in order"""
        constant = [c.name for c in self.constructors if c.argument is None]
        non_constant = [c.name for c in self.constructors if c.argument is not None]
        tags = {name: index for index, name in enumerate(constant)}
        for index, name in enumerate(non_constant):
            tags[name] = len(constant) + index
        return tags


@dataclass
class TypeDefinition(ASTNode):
    declarations: List[TypeDeclaration]


@dataclass
class TopExpression(ASTNode):
    expression: "Expression"
    ty: Optional[Type] = None


@dataclass
class Program(ASTNode):
    phrases: List["Phrase"]


Expression = Union[
    IntLiteral,
    FloatLiteral,
    StringLiteral,
    BoolLiteral,
    UnitLiteral,
    ListLiteral,
    TupleExpression,
    Variable,
    Constructor,
    BinaryOperation,
    ConsOperation,
    AndOperation,
    OrOperation,
    NegOperation,
    OperatorSection,
    FunctionApplication,
    Lambda,
    FunctionCases,
    Match,
    IfElse,
    Sequence,
    Annotated,
    LetIn,
]

TypeExpression = Union[
    TypeVariable,
    TypeConstructor,
    ArrowType,
    TupleTypeExpression,
]

Pattern = Union[
    WildcardPattern,
    VariablePattern,
    LiteralPattern,
    UnitPattern,
    ConstructorPattern,
    TuplePattern,
    ListPattern,
    ConsPattern,
    OrPattern,
    AliasPattern,
    AnnotatedPattern,
]

Phrase = Union[
    LetDefinition,
    TypeDefinition,
    TopExpression,
]
