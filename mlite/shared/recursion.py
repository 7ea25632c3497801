import logging
import sys
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)

# Deep but finite: each level of mlite nesting costs several Python frames
RECURSION_LIMIT = 20000


@contextmanager
def raised_recursion_limit(limit: int = RECURSION_LIMIT) -> Iterator[None]:
    """Raise the recursion limit to at least `limit` for the duration of the block"""
    previous = sys.getrecursionlimit()
    if previous < limit:
        logger.debug("Raising recursion limit from %d to %d", previous, limit)
        sys.setrecursionlimit(limit)
    try:
        yield
    finally:
        sys.setrecursionlimit(previous)
