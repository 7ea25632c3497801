from mlite.ast.nodes import Program
from mlite.typechecker.errors import TypeInferenceError
from mlite.typechecker.infer import type_check_ast


def get_type_str(ast: Program, use_prelude: bool = True) -> str:
    res = ""

    try:
        inferrer, _, bindings = type_check_ast(ast, use_prelude)

        for name, scheme in bindings:
            if name == "-":
                res += f"- : {scheme}\n"
            else:
                res += f"val {name} : {scheme}\n"

        for warning in inferrer.warnings:
            res += f"{warning}\n"

    except TypeInferenceError as e:
        res += f"Type checking failed: {e}"
    return res


def type_check(ast: Program, use_prelude: bool = True) -> bool:
    try:
        type_check_ast(ast, use_prelude)
        return True
    except TypeInferenceError as e:
        print(f"Type checking failed: {e}")
        return False
