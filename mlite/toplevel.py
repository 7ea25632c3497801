"""
Interactive toplevel: type check and evaluate phrases one at a time and
answer the way the OCaml toplevel does, e.g.

    # let x = 1 + 2;;
    val x : int = 3
"""

import logging
from contextlib import redirect_stdout
from io import StringIO
from typing import List, Tuple

from mlite.ast.nodes import Phrase, TypeDefinition
from mlite.interpreter.interpreter import (
    Interpreter,
    Value,
    prelude_interpreter,
    run_guarded,
)
from mlite.interpreter.values import MliteRuntimeError, show_value
from mlite.parser.parser import parse_string
from mlite.shared.parser import ParseError
from mlite.typechecker.errors import TypeInferenceError
from mlite.typechecker.infer import TypeInferrer
from mlite.typechecker.mlite_types import TypeScheme

logger = logging.getLogger(__name__)


def describe_binding(name: str, scheme: TypeScheme, value: Value) -> str:
    if name == "-":
        return f"- : {scheme} = {show_value(value)}"
    return f"val {name} : {scheme} = {show_value(value)}"


class Toplevel:
    """A toplevel session; a phrase that fails leaves the session unchanged."""

    def __init__(self, use_prelude: bool = True, show_warnings: bool = True) -> None:
        self.show_warnings = show_warnings
        # set once any phrase is rejected or raises an exception
        self.failed = False
        self.inferrer = TypeInferrer()
        if use_prelude:
            self.type_env = self.inferrer.prelude_environment()
            self.interpreter = prelude_interpreter()
        else:
            self.type_env = self.inferrer.initial_environment()
            self.interpreter = Interpreter()

    def feed(self, text: str) -> List[str]:
        """Run every phrase in `text` and return one response per phrase."""
        try:
            program = parse_string(text)
        except ParseError as e:
            self.failed = True
            return [f"Error: {e}"]
        return [self.execute(phrase) for phrase in program.phrases]

    def execute(self, phrase: Phrase) -> str:
        self.inferrer.warnings = []
        try:
            env, defined = self.inferrer.infer_phrase(phrase, self.type_env)
        except TypeInferenceError as e:
            logger.debug("phrase rejected: %s", e)
            self.failed = True
            return f"Error: {e}"

        lines = list(self.inferrer.warnings) if self.show_warnings else []
        output, result = self._evaluate(phrase)
        if isinstance(result, MliteRuntimeError):
            self.failed = True
            lines.append(f"{output}Exception: {result.describe()}.")
            return "\n".join(lines)

        self.type_env = env
        match phrase:
            case TypeDefinition(declarations=declarations):
                answers = [
                    self.inferrer.describe_type_declaration(declaration)
                    for declaration in declarations
                ]
            case _:
                values = dict(result)
                answers = [
                    describe_binding(name, scheme, values[name]) for name, scheme in defined
                ]
        if answers:
            answers[0] = output + answers[0]
        elif output:
            answers = [output.rstrip("\n")]
        lines.extend(answers)
        return "\n".join(lines)

    def _evaluate(self, phrase: Phrase) -> Tuple[str, object]:
        """Evaluate with stdout captured; returns (output, values or the runtime error)"""
        f = StringIO()
        result: object
        with redirect_stdout(f):
            try:
                result = run_guarded(lambda: self.interpreter.run_phrase(phrase))
            except MliteRuntimeError as e:
                result = e
        return f.getvalue(), result
