from pathlib import Path

from mlite.ast.nodes import Program, TypeExpression
from mlite.ast.transformer import ASTTransformer
from mlite.shared.parser import parse_lark, read_prelude

GRAMMAR = Path(__file__).parent / "mlite.lark"
PRELUDE_DIR = Path(__file__).parent.parent / "prelude"
FILE_EXTENSION = "ml"

TRANSFORMER = ASTTransformer()


def parse_string(text: str) -> Program:
    return parse_lark(text, grammar=GRAMMAR, transformer=TRANSFORMER)


def parse(path: Path) -> Program:
    return parse_string(Path(path).read_text())


def parse_type(text: str) -> TypeExpression:
    """Parse a type expression such as `('a -> 'b) -> 'a list -> 'b list`."""
    return parse_lark(text, grammar=GRAMMAR, start="type_start", transformer=TRANSFORMER)


def parse_prelude() -> Program:
    return parse_string(read_prelude(PRELUDE_DIR, FILE_EXTENSION))
