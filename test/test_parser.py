import pytest

from mlite.ast.nodes import (
    AndOperation,
    Annotated,
    AnnotatedPattern,
    ArrowType,
    BinaryOperation,
    ConsOperation,
    Constructor,
    FloatLiteral,
    FunctionApplication,
    IfElse,
    IntLiteral,
    Lambda,
    LetBinding,
    LetDefinition,
    LetIn,
    ListLiteral,
    LiteralPattern,
    Match,
    MatchCase,
    NegOperation,
    OperatorSection,
    OrOperation,
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
    Variable,
    VariablePattern,
    VariantConstructor,
    WildcardPattern,
)
from mlite.parser.parser import parse_prelude, parse_string, parse_type
from mlite.shared.parser import ParseError


def expression(source: str):
    program = parse_string(source)
    assert len(program.phrases) == 1
    phrase = program.phrases[0]
    assert isinstance(phrase, TopExpression)
    return phrase.expression


def var(name: str) -> Variable:
    return Variable(name)


def test_let_definition() -> None:
    assert parse_string("let x = 1 + 2 * 3") == Program(
        [
            LetDefinition(
                False,
                [
                    LetBinding(
                        VariablePattern("x"),
                        BinaryOperation(
                            "+",
                            IntLiteral(1),
                            BinaryOperation("*", IntLiteral(2), IntLiteral(3)),
                        ),
                    )
                ],
            )
        ]
    )


def test_function_binding_becomes_lambda() -> None:
    program = parse_string("let f x y = x")
    assert program.phrases == [
        LetDefinition(
            False,
            [
                LetBinding(
                    VariablePattern("f"),
                    Lambda([VariablePattern("x"), VariablePattern("y")], var("x")),
                )
            ],
        )
    ]


def test_function_binding_with_annotations() -> None:
    program = parse_string("let f (x : int) : int = x")
    int_type = TypeConstructor("int")
    assert program.phrases[0].bindings == [
        LetBinding(
            VariablePattern("f"),
            Lambda(
                [AnnotatedPattern(VariablePattern("x"), int_type)],
                Annotated(var("x"), int_type),
            ),
        )
    ]


def test_recursive_definitions() -> None:
    definition = parse_string("let rec f x = g x and g x = f x").phrases[0]
    assert definition.recursive
    assert [binding.pattern for binding in definition.bindings] == [
        VariablePattern("f"),
        VariablePattern("g"),
    ]


def test_pattern_binding() -> None:
    definition = parse_string("let (a, _) = p").phrases[0]
    assert definition.bindings == [
        LetBinding(TuplePattern([VariablePattern("a"), WildcardPattern()]), var("p"))
    ]


def test_let_in() -> None:
    assert expression("let x = 1 in x") == LetIn(
        LetDefinition(False, [LetBinding(VariablePattern("x"), IntLiteral(1))]),
        var("x"),
    )


def test_phrases_separated_by_double_semicolons() -> None:
    program = parse_string("1;; 2;;\nlet x = 3;;")
    assert program.phrases == [
        TopExpression(IntLiteral(1)),
        TopExpression(IntLiteral(2)),
        LetDefinition(False, [LetBinding(VariablePattern("x"), IntLiteral(3))]),
    ]


def test_comments_are_ignored() -> None:
    program = parse_string("(* leading\n comment *) let x = (* inline *) 1")
    assert program.phrases == [
        LetDefinition(False, [LetBinding(VariablePattern("x"), IntLiteral(1))])
    ]


# Expressions


def test_application_is_left_associative() -> None:
    assert expression("f x y") == FunctionApplication(
        FunctionApplication(var("f"), var("x")),
        var("y"),
    )


def test_qualified_names() -> None:
    assert expression("List.map f") == FunctionApplication(var("List.map"), var("f"))


def test_subtraction_is_left_associative() -> None:
    assert expression("1 - 2 - 3") == BinaryOperation(
        "-",
        BinaryOperation("-", IntLiteral(1), IntLiteral(2)),
        IntLiteral(3),
    )


def test_concatenation_and_cons_are_right_associative() -> None:
    assert expression('"a" ^ "b" ^ "c"') == BinaryOperation(
        "^",
        StringLiteral("a"),
        BinaryOperation("^", StringLiteral("b"), StringLiteral("c")),
    )
    assert expression("1 :: 2 :: []") == ConsOperation(
        IntLiteral(1),
        ConsOperation(IntLiteral(2), ListLiteral([])),
    )


def test_application_binds_tighter_than_operators() -> None:
    assert expression("f x + 1") == BinaryOperation(
        "+",
        FunctionApplication(var("f"), var("x")),
        IntLiteral(1),
    )


def test_boolean_operators() -> None:
    assert expression("a && b || c") == OrOperation(AndOperation(var("a"), var("b")), var("c"))
    assert expression("x = 1 && y <> 2") == AndOperation(
        BinaryOperation("=", var("x"), IntLiteral(1)),
        BinaryOperation("<>", var("y"), IntLiteral(2)),
    )


def test_negation() -> None:
    assert expression("f (-1)") == FunctionApplication(var("f"), IntLiteral(-1))
    assert expression("-. 2.5") == FloatLiteral(-2.5)
    assert expression("- x") == NegOperation(var("x"))


def test_numeric_literals() -> None:
    assert expression("1_000") == IntLiteral(1000)
    assert expression("1.5") == FloatLiteral(1.5)
    assert expression("1e3") == FloatLiteral(1000.0)
    assert expression("2.") == FloatLiteral(2.0)


def test_string_escapes() -> None:
    assert expression('"a\\nb \\"q\\""') == StringLiteral('a\nb "q"')
    assert expression('"\\065\\x42\\o103"') == StringLiteral("ABC")
    assert expression(r'"it\'s\ta\\b"') == StringLiteral("it's\ta\\b")


def test_long_lists_parse() -> None:
    node = expression(" :: ".join(["1"] * 5000) + " :: []")
    length = 0
    while isinstance(node, ConsOperation):
        node = node.tail
        length += 1
    assert length == 5000
    assert node == ListLiteral([])


def test_tuples_and_lists() -> None:
    assert expression("1, (2, 3)") == TupleExpression(
        [IntLiteral(1), TupleExpression([IntLiteral(2), IntLiteral(3)])]
    )
    assert expression("[1; 2;]") == ListLiteral([IntLiteral(1), IntLiteral(2)])
    assert expression("[(1, 2)]") == ListLiteral([TupleExpression([IntLiteral(1), IntLiteral(2)])])


def test_constructors() -> None:
    assert expression("None") == Constructor("None")
    assert expression("Some (1, 2)") == Constructor(
        "Some",
        TupleExpression([IntLiteral(1), IntLiteral(2)]),
    )


def test_operator_sections() -> None:
    assert expression("( + )") == OperatorSection("+")
    assert expression("( * )") == OperatorSection("*")
    assert expression("(mod)") == OperatorSection("mod")


def test_if_and_sequence() -> None:
    assert expression("if a then b else c") == IfElse(var("a"), var("b"), var("c"))
    assert expression("if a then b") == IfElse(var("a"), var("b"))
    assert expression("f 1; g 2") == Sequence(
        FunctionApplication(var("f"), IntLiteral(1)),
        FunctionApplication(var("g"), IntLiteral(2)),
    )


def test_match_with_guard() -> None:
    assert expression("match x with | -1 -> 0 | n when n > 0 -> n") == Match(
        var("x"),
        [
            MatchCase(LiteralPattern(-1), None, IntLiteral(0)),
            MatchCase(
                VariablePattern("n"),
                BinaryOperation(">", var("n"), IntLiteral(0)),
                var("n"),
            ),
        ],
    )


def test_lambda() -> None:
    assert expression("fun x _ -> x") == Lambda(
        [VariablePattern("x"), WildcardPattern()],
        var("x"),
    )


# Types


def test_parse_type() -> None:
    a, b = TypeVariable("a"), TypeVariable("b")
    assert parse_type("('a -> 'b) -> 'a list -> 'b list") == ArrowType(
        ArrowType(a, b),
        ArrowType(TypeConstructor("list", [a]), TypeConstructor("list", [b])),
    )
    assert parse_type("int * string -> bool") == ArrowType(
        TupleTypeExpression([TypeConstructor("int"), TypeConstructor("string")]),
        TypeConstructor("bool"),
    )
    assert parse_type("(int, string) result") == TypeConstructor(
        "result",
        [TypeConstructor("int"), TypeConstructor("string")],
    )


def test_type_declarations() -> None:
    program = parse_string(
        """
        type 'a tree = Leaf | Node of 'a tree * 'a * 'a tree
        type ('k, 'v) table = ('k * 'v) list
        """
    )
    tree = TypeConstructor("tree", [TypeVariable("a")])
    assert program.phrases[0] == TypeDefinition(
        [
            TypeDeclaration(
                "tree",
                ["a"],
                [
                    VariantConstructor("Leaf"),
                    VariantConstructor(
                        "Node",
                        TupleTypeExpression([tree, TypeVariable("a"), tree]),
                    ),
                ],
            )
        ]
    )
    assert program.phrases[1] == TypeDefinition(
        [
            TypeDeclaration(
                "table",
                ["k", "v"],
                alias=TypeConstructor(
                    "list",
                    [TupleTypeExpression([TypeVariable("k"), TypeVariable("v")])],
                ),
            )
        ]
    )


def test_constructor_tags() -> None:
    declaration = parse_string("type t = A of int | B | C of string | D").phrases[0].declarations[0]
    assert declaration.constructor_tags() == {"B": 0, "D": 1, "A": 2, "C": 3}


def test_prelude_parses() -> None:
    phrases = parse_prelude().phrases
    assert any(isinstance(phrase, TypeDefinition) for phrase in phrases)
    assert any(isinstance(phrase, LetDefinition) for phrase in phrases)


# Errors


@pytest.mark.parametrize(
    "source",
    [
        "let = 1",
        "let x = (1",
        'let s = "unterminated',
        "let x = 1 +",
        "let x = 1 $ 2",
        'let s = "\\N"',
        'let s = "\\300"',
    ],
)
def test_syntax_errors(source: str) -> None:
    with pytest.raises(ParseError):
        parse_string(source)
