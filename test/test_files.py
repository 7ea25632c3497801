from pathlib import Path
from typing import Any

import pytest

from mlite.interpreter.interpreter import interpret
from mlite.parser.parser import parse
from mlite.toplevel import Toplevel
from mlite.typechecker.infer import type_check_ast
from utility.file_tester import file_test_output, file_test_type, get_all_test_files

MLITE_BASE_TEST_FILES_PATH = Path(__file__).parent / "files"
TEST_FILES = list(get_all_test_files(MLITE_BASE_TEST_FILES_PATH, "ml"))


def test_files_are_found() -> None:
    assert len(TEST_FILES) > 10


@pytest.mark.parametrize(
    "file_name",
    TEST_FILES,
    ids=lambda p: p.name,
)
def test_interpreter(file_name: Path) -> None:
    def run_interpreter(f: Path) -> str:
        result = interpret(parse(f), collect_stdout=True)
        if result.exit_code != 0:
            raise RuntimeError(f"{f} was rejected by the type checker")
        return result.output

    file_test_output(file_name, run_interpreter)


@pytest.mark.parametrize(
    "file_name",
    TEST_FILES,
    ids=lambda p: p.name,
)
def test_is_type_valid(file_name: Path) -> None:
    def run_type_check(f: Path) -> Any:
        return type_check_ast(parse(f))

    file_test_type(file_name, run_type_check)


@pytest.mark.parametrize(
    "file_name",
    TEST_FILES,
    ids=lambda p: p.name,
)
def test_toplevel_agrees_with_type_checker(file_name: Path) -> None:
    def run_toplevel(f: Path) -> Any:
        responses = Toplevel().feed(f.read_text())
        errors = [response for response in responses if response.startswith("Error:")]
        if errors:
            raise RuntimeError(errors[0])
        return responses

    file_test_type(file_name, run_toplevel)
