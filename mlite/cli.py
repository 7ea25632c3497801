import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from mlite.ast.nodes import Program
from mlite.interpreter.interpreter import interpret
from mlite.interpreter.values import MliteRuntimeError
from mlite.parser.parser import parse as mlite_parse
from mlite.shared.parser import ParseError
from mlite.toplevel import Toplevel
from mlite.typechecker.errors import TypeInferenceError
from mlite.typechecker.infer import type_check_ast

app = typer.Typer(pretty_exceptions_enable=False)
console = Console(soft_wrap=True)
err_console = Console(stderr=True)

PROMPT = "# "
CONTINUATION_PROMPT = "  "


@app.callback()
def configure(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log unifications and generalizations",
    ),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _load(input_file: Path) -> Program:
    try:
        return mlite_parse(input_file)
    except ParseError as e:
        console.print(f"Syntax error in {input_file}: {e}", style="bold red", markup=False)
        raise typer.Exit(code=1)


def _print_warnings(warnings: list[str]) -> None:
    for warning in warnings:
        console.print(warning, style="yellow", markup=False)


@app.command()
def parse(
    input_file: Path = typer.Argument(..., exists=True, help="Path to input file"),
) -> None:
    console.print(_load(input_file))


@app.command()
def types(
    input_file: Path = typer.Argument(..., exists=True, help="Path to input file"),
    no_warnings: bool = typer.Option(False, "--no-warnings", help="Hide warnings"),
    no_prelude: bool = typer.Option(False, "--no-prelude", help="Skip the prelude"),
) -> None:
    ast = _load(input_file)
    try:
        inferrer, _, bindings = type_check_ast(ast, use_prelude=not no_prelude)
    except TypeInferenceError as e:
        console.print(f"Error: {e}", style="bold red", markup=False)
        raise typer.Exit(code=1)

    for name, scheme in bindings:
        prefix = "-" if name == "-" else f"val {name}"
        console.print(f"{prefix} : {scheme}", markup=False, highlight=False)
    if not no_warnings:
        _print_warnings(inferrer.warnings)


@app.command()
def typecheck(
    input_file: Path = typer.Argument(..., exists=True, help="Path to input file"),
    no_warnings: bool = typer.Option(False, "--no-warnings", help="Hide warnings"),
    no_prelude: bool = typer.Option(False, "--no-prelude", help="Skip the prelude"),
) -> None:
    ast = _load(input_file)
    try:
        inferrer, _, _ = type_check_ast(ast, use_prelude=not no_prelude)
    except TypeInferenceError as e:
        console.print(f"Type checking failed: {e}", style="bold red", markup=False)
        raise typer.Exit(code=1)
    if not no_warnings:
        _print_warnings(inferrer.warnings)
    console.print("Type checking succeeded", style="bold green")


@app.command()
def run(
    input_file: Path = typer.Argument(..., exists=True, help="Path to input file"),
    no_prelude: bool = typer.Option(False, "--no-prelude", help="Skip the prelude"),
) -> None:
    ast = _load(input_file)
    try:
        result = interpret(ast, use_prelude=not no_prelude)
    except MliteRuntimeError as e:
        console.print(f"Exception: {e.describe()}", style="bold red", markup=False)
        raise typer.Exit(code=1)
    if result.exit_code != 0:
        raise typer.Exit(code=result.exit_code)


@app.command()
def toplevel(
    input_file: Path = typer.Argument(..., exists=True, help="Path to input file"),
    no_warnings: bool = typer.Option(False, "--no-warnings", help="Hide warnings"),
    no_prelude: bool = typer.Option(False, "--no-prelude", help="Skip the prelude"),
) -> None:
    """Print the toplevel's answer to every phrase of a file."""
    session = Toplevel(use_prelude=not no_prelude, show_warnings=not no_warnings)
    responses = session.feed(input_file.read_text())
    for response in responses:
        console.print(response, markup=False, highlight=False)
    if session.failed:
        raise typer.Exit(code=1)


@app.command()
def repl(
    no_warnings: bool = typer.Option(False, "--no-warnings", help="Hide warnings"),
    no_prelude: bool = typer.Option(False, "--no-prelude", help="Skip the prelude"),
) -> None:
    """Interactive toplevel; end each phrase with `;;`."""
    session = Toplevel(use_prelude=not no_prelude, show_warnings=not no_warnings)
    buffer = ""
    while True:
        try:
            line = console.input(CONTINUATION_PROMPT if buffer else PROMPT)
        except (EOFError, KeyboardInterrupt):
            console.print()
            return
        buffer += line + "\n"
        if not buffer.rstrip().endswith(";;"):
            continue
        for response in session.feed(buffer):
            style = "bold red" if response.startswith("Error:") else None
            console.print(response, style=style, markup=False, highlight=False)
        buffer = ""


def main() -> None:
    app()


if __name__ == "__main__":
    main()
