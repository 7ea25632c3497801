from typing import Any, Optional


class TypeInferenceError(Exception):
    """Exception raised during type inference."""

    def __init__(self, message: str, node: Optional[Any] = None) -> None:
        self.message = message
        self.node = node
        super().__init__(message)


class PatternError(TypeInferenceError):
    """A pattern that is ill-formed regardless of types, e.g. non-linear."""
