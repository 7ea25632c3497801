from mlite.toplevel import Toplevel, describe_binding
from mlite.typechecker.mlite_types import INT_TYPE, TypeScheme


def test_describe_binding() -> None:
    scheme = TypeScheme(set(), INT_TYPE)
    assert describe_binding("x", scheme, 1) == "val x : int = 1"
    assert describe_binding("-", scheme, -1) == "- : int = -1"


def test_value_definitions() -> None:
    session = Toplevel()
    assert session.feed("let x = 1;;") == ["val x : int = 1"]
    assert session.feed("let id x = x;;") == ["val id : 'a -> 'a = <fun>"]
    assert session.feed('let a = x + 1 and b = "s";;') == ['val a : int = 2\nval b : string = "s"']


def test_expressions() -> None:
    session = Toplevel()
    assert session.feed("1 + 2;; 1.0 +. 2.;; Some (-1);;") == [
        "- : int = 3",
        "- : float = 3.",
        "- : int option = Some (-1)",
    ]
    assert session.feed("[Some 1; None];;") == ["- : int option list = [Some 1; None]"]


def test_recursive_function() -> None:
    session = Toplevel()
    responses = session.feed(
        "let rec fact n = if n = 0 then 1 else n * fact (n - 1);;\nfact 5;;"
    )
    assert responses == ["val fact : int -> int = <fun>", "- : int = 120"]


def test_type_definitions_are_echoed() -> None:
    session = Toplevel()
    assert session.feed("type 'a tree = Leaf | Node of 'a tree * 'a * 'a tree;;") == [
        "type 'a tree = Leaf | Node of 'a tree * 'a * 'a tree"
    ]
    assert session.feed("type color = Red | Green;; Red;;") == [
        "type color = Red | Green",
        "- : color = Red",
    ]


def test_program_output_comes_before_the_answer() -> None:
    session = Toplevel()
    assert session.feed('print_string "hi";;') == ["hi- : unit = ()"]


def test_warnings_come_before_the_answer() -> None:
    session = Toplevel()
    assert session.feed("let f = function Some x -> x;;") == [
        "Warning 8 [partial-match]: this pattern-matching is not exhaustive. "
        "Here is an example of a case that is not matched: None\n"
        "val f : 'a option -> 'a = <fun>"
    ]


def test_warnings_can_be_hidden() -> None:
    session = Toplevel(show_warnings=False)
    assert session.feed("let f = function Some x -> x;;") == ["val f : 'a option -> 'a = <fun>"]


def test_type_error_leaves_session_unchanged() -> None:
    session = Toplevel()
    session.feed("let x = 1;;")
    assert session.feed("let x = y;;") == ["Error: Unbound value y"]
    assert session.feed("x;;") == ["- : int = 1"]


def test_runtime_error_leaves_session_unchanged() -> None:
    session = Toplevel()
    session.feed("let x = 1;;")
    assert session.feed('let x = failwith "boom";;') == ['Exception: Failure "boom".']
    assert session.feed('print_string "a"; failwith "b";;') == ['aException: Failure "b".']
    assert session.feed("x;;") == ["- : int = 1"]


def test_wildcard_definition_prints_nothing() -> None:
    session = Toplevel()
    assert session.feed("let _ = 5;;") == [""]


def test_parse_error() -> None:
    session = Toplevel()
    responses = session.feed("let = ;;")
    assert len(responses) == 1
    assert responses[0].startswith("Error: ")


def test_without_prelude() -> None:
    session = Toplevel(use_prelude=False)
    assert session.feed("Some 1;;") == ["Error: Unbound constructor Some"]
    assert session.feed("print_int 4;;") == ["4- : unit = ()"]


def test_illegal_string_escape_is_an_error() -> None:
    session = Toplevel()
    responses = session.feed('let s = "\\N";;')
    assert len(responses) == 1
    assert responses[0].startswith("Error: ")
    assert "Illegal backslash escape" in responses[0]


def test_failures_are_recorded() -> None:
    session = Toplevel()
    session.feed("let x = 1;;")
    assert not session.failed
    session.feed('let y = failwith "boom";;')
    assert session.failed

    session = Toplevel()
    session.feed("let x = y;;")
    assert session.failed


def test_tail_recursion_runs_in_the_toplevel() -> None:
    session = Toplevel()
    responses = session.feed(
        "let rec count n acc = if n = 0 then acc else count (n - 1) (acc + 1);;\n"
        "count 100000 0;;"
    )
    assert responses == ["val count : int -> int -> int = <fun>", "- : int = 100000"]
