from __future__ import annotations
import logging
import re
import time
from typing import Callable, List, Optional, Protocol, TypeVar
from pydantic import BaseModel
from .errors import ServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_TEXT = re.compile(
    r"\b(429|5\d\d)\b|rate.?limit|too many requests|timed? ?out|temporarily unavailable|overloaded",
    re.IGNORECASE,
)


class SearchHit(BaseModel):
    title: str = ""
    url: str = ""
    content: str = ""
    score: Optional[float] = None


class CompletionService(Protocol):
    def complete(self, system_prompt: str, user_prompt: str) -> str: ...


class SearchService(Protocol):
    def search(self, query: str, max_results: int = 5) -> List[SearchHit]: ...


def _status_code(exc: BaseException) -> Optional[int]:
    for holder in (exc, getattr(exc, "response", None)):
        code = getattr(holder, "status_code", None) or getattr(holder, "status", None)
        if isinstance(code, int):
            return code
    return None


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return True
    code = _status_code(exc)
    if code is not None:
        return code == 429 or 500 <= code < 600
    return bool(_TRANSIENT_TEXT.search(str(exc)))


def call_with_retries(
    fn: Callable[[], T],
    what: str,
    retries: int = 3,
    backoff: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run `fn`, retrying transient failures with exponential backoff.

    Gives up after `retries` extra attempts; every failure surfaces as
    ServiceError so stages see a single error type.
    """
    attempt = 0
    while True:
        try:
            return fn()
        except ServiceError as e:
            # already wrapped below us (provider failover); keep its message
            if not e.transient or attempt >= retries:
                raise
            error: Exception = e
        except Exception as e:
            if not is_transient(e) or attempt >= retries:
                raise ServiceError(f"{what} failed after {attempt + 1} attempt(s): {e}", transient=is_transient(e)) from e
            error = e
        wait = backoff * (2 ** attempt)
        logger.info(f"{what} transient failure ({error}); retrying in {wait:.1f}s")
        sleep(wait)
        attempt += 1
