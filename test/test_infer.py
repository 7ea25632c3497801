from typing import Dict

import pytest

from mlite.parser.parser import parse_string
from mlite.typechecker.errors import PatternError, TypeInferenceError
from mlite.typechecker.infer import (
    NON_UNIT_STATEMENT_WARNING,
    PARTIAL_APPLICATION_WARNING,
    TypeInferrer,
    type_check_ast,
)
from mlite.typechecker.patterns import UNUSED_CASE_WARNING
from mlite.typechecker.typecheck import get_type_str, type_check


def infer_types(source: str) -> Dict[str, str]:
    _, _, bindings = type_check_ast(parse_string(source))
    return {name: str(scheme) for name, scheme in bindings}


def infer_warnings(source: str) -> list[str]:
    inferrer, _, _ = type_check_ast(parse_string(source))
    return inferrer.warnings


def assert_type_error(source: str, message: str) -> None:
    with pytest.raises(TypeInferenceError) as excinfo:
        type_check_ast(parse_string(source))
    assert message in str(excinfo.value)


# Functions and polymorphism


def test_flip() -> None:
    types = infer_types("let flip f x y = f y x")
    assert types["flip"] == "('a -> 'b -> 'c) -> 'b -> 'a -> 'c"


def test_compose() -> None:
    types = infer_types("let compose f g x = f (g x)")
    assert types["compose"] == "('a -> 'b) -> ('c -> 'a) -> 'c -> 'b"


def test_identity_is_polymorphic() -> None:
    types = infer_types(
        """
        let id x = x
        let pair = (id 1, id true)
        """
    )
    assert types["id"] == "'a -> 'a"
    assert types["pair"] == "int * bool"


def test_let_in_generalizes() -> None:
    types = infer_types('let p = let id x = x in (id 1, id "a")')
    assert types["p"] == "int * string"


def test_lambda_parameter_is_monomorphic() -> None:
    assert_type_error(
        "let bad f = (f 1, f true)",
        "This expression has type bool but an expression was expected of type int",
    )


def test_occurs_check() -> None:
    assert_type_error("let f x = x x", "occurs inside")


def test_unbound_value() -> None:
    assert_type_error("let y = z + 1", "Unbound value z")


def test_not_a_function() -> None:
    assert_type_error(
        "let x = 1 2",
        "This expression has type int. This is not a function; it cannot be applied.",
    )


def test_mutual_recursion() -> None:
    types = infer_types(
        """
        let rec even n = if n = 0 then true else odd (n - 1)
        and odd n = if n = 0 then false else even (n - 1)
        """
    )
    assert types == {"even": "int -> bool", "odd": "int -> bool"}


def test_recursive_polymorphic_function() -> None:
    types = infer_types(
        """
        let rec length l = match l with
          | [] -> 0
          | _ :: rest -> 1 + length rest
        """
    )
    assert types["length"] == "'a list -> int"


def test_let_rec_requires_a_function() -> None:
    assert_type_error(
        "let rec x = x + 1",
        "This kind of expression is not allowed as right-hand side of `let rec'",
    )


def test_let_rec_requires_a_variable() -> None:
    assert_type_error(
        "let rec (a, b) = (1, 2)",
        "Only variables are allowed as left-hand side of `let rec'",
    )


def test_names_bound_twice_in_one_definition() -> None:
    assert_type_error(
        "let x = 1 and x = 2",
        "Variable x is bound several times in this matching",
    )


def test_parameter_bound_twice() -> None:
    with pytest.raises(PatternError, match="Variable x is bound several times"):
        type_check_ast(parse_string("let f x x = x"))


# Expressions


def test_literals_and_lists() -> None:
    types = infer_types(
        """
        let xs = [1; 2; 3]
        let empty = []
        let words = "a" :: ["b"]
        let nested = [[1.5]]
        let u = ()
        """
    )
    assert types == {
        "xs": "int list",
        "empty": "'a list",
        "words": "string list",
        "nested": "float list list",
        "u": "unit",
    }


def test_list_elements_must_agree() -> None:
    assert_type_error(
        'let xs = [1; "two"]',
        "This expression has type string but an expression was expected of type int",
    )


def test_operators() -> None:
    types = infer_types(
        """
        let add = ( + )
        let eq = ( = )
        let fadd x = x +. 1.0
        let greet name = "hello " ^ name
        let both a b = a && not b
        let join = ( @ )
        """
    )
    assert types == {
        "add": "int -> int -> int",
        "eq": "'a -> 'a -> bool",
        "fadd": "float -> float",
        "greet": "string -> string",
        "both": "bool -> bool -> bool",
        "join": "'a list -> 'a list -> 'a list",
    }


def test_int_and_float_arithmetic_do_not_mix() -> None:
    assert_type_error(
        "let x = 1 + 2.0",
        "This expression has type float but an expression was expected of type int",
    )


def test_stdlib_functions() -> None:
    types = infer_types(
        """
        let m = List.map
        let total = List.fold_left ( + ) 0 [1; 2]
        let first = fst (1, "x")
        """
    )
    assert types == {
        "m": "('a -> 'b) -> 'a list -> 'b list",
        "total": "int",
        "first": "int",
    }


def test_if_without_else_must_be_unit() -> None:
    types = infer_types('let f b = if b then print_string "yes"')
    assert types["f"] == "bool -> unit"
    assert_type_error(
        "let f b = if b then 1",
        "This expression has type int but an expression was expected of type unit",
    )


def test_if_branches_must_agree() -> None:
    assert_type_error(
        'let f b = if b then 1 else "no"',
        "This expression has type string but an expression was expected of type int",
    )


def test_guard_must_be_bool() -> None:
    assert_type_error(
        "let f = match 1 with n when n -> 0 | _ -> 1",
        "This expression has type int but an expression was expected of type bool",
    )


def test_long_sequences_type_check() -> None:
    body = "; ".join(["print_int 1"] * 400)
    assert infer_types(f"let f () = {body}") == {"f": "unit -> unit"}


def test_excessive_nesting_is_a_type_error() -> None:
    body = "; ".join(["()"] * 20000)
    assert_type_error(f"let f () = {body}", "too deeply nested")


def test_bare_expressions() -> None:
    _, _, bindings = type_check_ast(parse_string("1 + 2;;\nSome [true]"))
    assert [(name, str(scheme)) for name, scheme in bindings] == [
        ("-", "int"),
        ("-", "bool list option"),
    ]


# Annotations


def test_annotations() -> None:
    types = infer_types(
        """
        let f (x : 'a) : 'a = x
        let g (x : int) = x
        let h = (fun x -> x : int -> int)
        """
    )
    assert types == {"f": "'a -> 'a", "g": "int -> int", "h": "int -> int"}


def test_annotation_mismatch() -> None:
    assert_type_error(
        'let h : int = "s"',
        "This expression has type string but an expression was expected of type int",
    )


# Type declarations


def test_variant_declaration() -> None:
    types = infer_types(
        """
        type 'a tree = Leaf | Node of 'a tree * 'a * 'a tree
        let rec size t = match t with
          | Leaf -> 0
          | Node (l, _, r) -> size l + 1 + size r
        let t = Node (Leaf, "x", Leaf)
        """
    )
    assert types["size"] == "'a tree -> int"
    assert types["t"] == "string tree"


def test_prelude_types() -> None:
    types = infer_types("let r = Ok 1\nlet o = None")
    assert types == {"r": "(int, 'a) result", "o": "'a option"}


def test_alias_is_expanded() -> None:
    types = infer_types(
        """
        type point = int * int
        let origin : point = (0, 0)
        """
    )
    assert types["origin"] == "int * int"


def test_mutually_recursive_types() -> None:
    types = infer_types(
        """
        type expr = Num of int | Block of stmt list
        and stmt = Eval of expr
        let e = Block [Eval (Num 1)]
        """
    )
    assert types["e"] == "expr"


@pytest.mark.parametrize(
    "source, message",
    [
        ("type t = Foo of foo", "Unbound type constructor foo"),
        ("type t = Foo of 'a", "The type variable 'a is unbound in this type declaration"),
        (
            "type t = (int, int) list",
            "The type constructor list expects 1 argument(s), but is here applied to 2 argument(s)",
        ),
        ("type t = A | A", "Two constructors are named A"),
        ("type t = t list", "The type abbreviation t is cyclic"),
        ("type t = A and t = B", "Multiple definition of the type name t"),
    ],
)
def test_declaration_errors(source: str, message: str) -> None:
    assert_type_error(source, message)


def test_failed_declaration_is_rolled_back() -> None:
    inferrer = TypeInferrer()
    env = inferrer.initial_environment()

    with pytest.raises(TypeInferenceError):
        inferrer.infer_program(parse_string("type t = Foo of bar"), env)

    assert "t" not in inferrer.type_arities
    assert "Foo" not in inferrer.constructors


def test_constructor_errors() -> None:
    assert_type_error("let x = Foo", "Unbound constructor Foo")
    assert_type_error(
        "let x = Some",
        "The constructor Some expects 1 argument(s), but is applied here to 0 argument(s)",
    )
    assert_type_error(
        "let x = None 1",
        "The constructor None expects 0 argument(s), but is applied here to 1 argument(s)",
    )


def test_pattern_type_mismatch() -> None:
    assert_type_error(
        'let f x = match x with 1 -> 0 | "a" -> 1',
        "This pattern matches values of type string "
        "but a pattern was expected which matches values of type int",
    )


# Warnings


def test_non_exhaustive_function() -> None:
    warnings = infer_warnings("let f = function Some x -> x")
    assert warnings == [
        "Warning 8 [partial-match]: this pattern-matching is not exhaustive. "
        "Here is an example of a case that is not matched: None"
    ]


def test_unused_case() -> None:
    assert infer_warnings("let g x = match x with _ -> 0 | 1 -> 1") == [UNUSED_CASE_WARNING]


def test_sequence_warnings() -> None:
    assert infer_warnings("let s = (1; 2)") == [NON_UNIT_STATEMENT_WARNING]
    assert infer_warnings("let s = (List.map succ; 2)") == [PARTIAL_APPLICATION_WARNING]
    assert infer_warnings('let s = (print_string "a"; 2)') == []


def test_exhaustive_match_has_no_warnings() -> None:
    source = """
    let describe l = match l with
      | [] -> "empty"
      | [_] -> "one"
      | _ :: _ :: _ -> "many"
    """
    assert infer_warnings(source) == []


# Reports


def test_get_type_str() -> None:
    report = get_type_str(parse_string("let x = 1\nlet f = function Some y -> y;;\nx + 1"))
    assert report.splitlines() == [
        "val x : int",
        "val f : 'a option -> 'a",
        "- : int",
        "Warning 8 [partial-match]: this pattern-matching is not exhaustive. "
        "Here is an example of a case that is not matched: None",
    ]


def test_get_type_str_failure() -> None:
    report = get_type_str(parse_string("let y = z"))
    assert report == "Type checking failed: Unbound value z"


def test_type_check_prints_failure(capsys: pytest.CaptureFixture[str]) -> None:
    assert type_check(parse_string("let x = 1"))
    assert not type_check(parse_string("let y = z"))
    assert capsys.readouterr().out == "Type checking failed: Unbound value z\n"
