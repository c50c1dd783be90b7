from __future__ import annotations
from typing import Any, Callable, List, Optional
from tavily import TavilyClient
from ..config import Settings, get_secret
from ..errors import ConfigurationError
from ..services import SearchHit, call_with_retries


def hits_from_response(res: Any) -> List[SearchHit]:
    hits: List[SearchHit] = []
    for item in (res or {}).get("results", []) or []:
        if not isinstance(item, dict):
            continue
        content = (item.get("content", "") or "").strip()
        title = (item.get("title", "") or "").strip()
        if not content and not title:
            continue
        score = item.get("score")
        hits.append(SearchHit(
            title=title,
            url=(item.get("url", "") or "").strip(),
            content=content,
            score=float(score) if isinstance(score, (int, float)) else None,
        ))
    return hits


class TavilySearchService:
    """Search Service backed by Tavily."""

    def __init__(
        self,
        client: Any = None,
        timeout: float = 20.0,
        retries: int = 3,
        backoff: float = 1.0,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        if client is None:
            api_key = get_secret("TAVILY_API_KEY")
            if not api_key:
                raise ConfigurationError("TAVILY_API_KEY is missing. Set it in .env.")
            client = TavilyClient(api_key=api_key)
        self.client = client
        self.timeout = timeout
        self.retries = retries
        self.backoff = backoff
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> "TavilySearchService":
        return cls(timeout=settings.timeout_seconds, retries=settings.max_retries, backoff=settings.backoff_seconds)

    def search(self, query: str, max_results: int = 5) -> List[SearchHit]:
        kwargs = {"sleep": self._sleep} if self._sleep else {}
        res = call_with_retries(
            lambda: self.client.search(query=query, max_results=max_results, timeout=self.timeout),
            "search",
            retries=self.retries,
            backoff=self.backoff,
            **kwargs,
        )
        return hits_from_response(res)
