import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from lark import Lark, Transformer
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput

logger = logging.getLogger(__name__)


class ParseError(Exception):
    def __init__(
        self,
        message: str,
        line: Optional[int] = None,
        column: Optional[int] = None,
    ) -> None:
        self.line = line
        self.column = column
        location = f"line {line}, column {column}: " if line is not None else ""
        super().__init__(f"{location}{message}")


@lru_cache(maxsize=None)
def load_lark(grammar: Path, transformer: Optional[Transformer] = None) -> Lark:
    logger.debug("Loading grammar %s", grammar)
    # the LALR parser applies the transformer as it reduces, so no tree
    # walk recurses on deeply nested input
    return Lark.open(
        str(grammar),
        parser="lalr",
        start=["start", "type_start"],
        transformer=transformer,
    )


def parse_lark(
    text: str,
    grammar: Path,
    start: str = "start",
    transformer: Optional[Transformer] = None,
) -> Any:
    parser = load_lark(grammar, transformer)
    try:
        return parser.parse(text, start=start)
    except UnexpectedEOF as e:
        raise ParseError("Syntax error: unexpected end of input") from e
    except UnexpectedCharacters as e:
        raise ParseError(
            f"Illegal character {text[e.pos_in_stream]!r}",
            e.line,
            e.column,
        ) from e
    except UnexpectedInput as e:
        token = getattr(e, "token", None)
        shown = repr(token.value) if token is not None else "input"
        raise ParseError(f"Syntax error near {shown}", e.line, e.column) from e


def read_prelude(prelude_dir: Path, file_extension: str) -> str:
    """Concatenate every prelude file in prelude_dir, in name order"""
    prelude_content = ""

    if prelude_dir.exists():
        for prelude_file in sorted(prelude_dir.glob(f"*.{file_extension}")):
            prelude_content += prelude_file.read_text() + "\n"

    return prelude_content
