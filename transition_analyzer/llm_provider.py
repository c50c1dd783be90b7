from __future__ import annotations
import logging
import os
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_mistralai import ChatMistralAI
from .config import Settings, get_secret, normalize_provider
from .errors import ConfigurationError, ServiceError
from .services import call_with_retries, is_transient

logger = logging.getLogger(__name__)


def build_gemini(temperature: float = 0.2, timeout: float = 20.0) -> ChatGoogleGenerativeAI:
    # Prefer GEMINI_API_KEY, fallback to GOOGLE_API_KEY
    key = get_secret("GEMINI_API_KEY") or get_secret("GOOGLE_API_KEY")
    if not key:
        raise ConfigurationError("GEMINI_API_KEY (or GOOGLE_API_KEY) is missing. Set it in .env.")
    model = get_secret("GEMINI_MODEL") or "gemini-2.0-flash"
    os.environ["GOOGLE_API_KEY"] = key
    # retries are handled by LLMCompletionService
    return ChatGoogleGenerativeAI(model=model, temperature=temperature, timeout=timeout, max_retries=0)


def build_mistral(temperature: float = 0.2, timeout: float = 20.0) -> ChatMistralAI:
    key = get_secret("MISTRAL_API_KEY")
    if not key:
        raise ConfigurationError("MISTRAL_API_KEY is missing. Set it in .env.")
    model = get_secret("MISTRAL_MODEL") or "mistral-large-latest"
    os.environ["MISTRAL_API_KEY"] = key
    return ChatMistralAI(model=model, temperature=temperature, timeout=int(timeout), max_retries=0)


class MultiProviderLLM:
    """Chat model that fails over across providers in order.

    Providers are built on first use. One that cannot be configured (missing
    key) is skipped for the rest of the process; one whose call fails is tried
    again on the next request.
    """

    def __init__(self, providers: List[Tuple[str, Callable[[], Any]]]):
        self.providers = providers
        self._models: Dict[str, Any] = {}
        self._unavailable: Dict[str, str] = {}
        self._lock = threading.Lock()

    def _model(self, name: str, build: Callable[[], Any]) -> Any:
        with self._lock:
            if name not in self._models and name not in self._unavailable:
                try:
                    self._models[name] = build()
                except Exception as e:
                    logger.warning(f"Provider {name} unavailable: {e}")
                    self._unavailable[name] = str(e)
            return self._models.get(name)

    def invoke(self, messages: List[Any]) -> Any:
        errors: List[str] = []
        transient = False
        last_exc: Optional[Exception] = None
        for name, build in self.providers:
            model = self._model(name, build)
            if model is None:
                errors.append(f"{name}: {self._unavailable.get(name, 'not configured')}")
                continue
            try:
                return model.invoke(messages)
            except Exception as e:
                logger.warning(f"Provider {name} failed, trying next: {e}")
                errors.append(f"{name}: {e}")
                transient = transient or is_transient(e)
                last_exc = e
        raise ServiceError("all completion providers failed: " + "; ".join(errors), transient=transient) from last_exc


def get_llm(provider: str = "auto", temperature: float = 0.2, timeout: float = 20.0) -> Any:
    p = normalize_provider(provider)
    if p == "gemini":
        return build_gemini(temperature, timeout)
    if p == "mistral":
        return build_mistral(temperature, timeout)
    return MultiProviderLLM([
        ("gemini", lambda: build_gemini(temperature, timeout)),
        ("mistral", lambda: build_mistral(temperature, timeout)),
    ])


def content_text(resp: Any) -> str:
    content = getattr(resp, "content", resp)
    if isinstance(content, list):
        # some chat models return a list of content parts
        parts = [p.get("text", "") if isinstance(p, dict) else str(p) for p in content]
        return "".join(parts).strip()
    return str(content or "").strip()


class LLMCompletionService:
    """Completion Service backed by a LangChain chat model."""

    def __init__(self, llm: Any, retries: int = 3, backoff: float = 1.0, sleep: Optional[Callable[[float], None]] = None):
        self.llm = llm
        self.retries = retries
        self.backoff = backoff
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> "LLMCompletionService":
        llm = get_llm(settings.provider, settings.temperature, settings.timeout_seconds)
        return cls(llm, retries=settings.max_retries, backoff=settings.backoff_seconds)

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        messages = [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)]
        kwargs = {"sleep": self._sleep} if self._sleep else {}
        resp = call_with_retries(
            lambda: self.llm.invoke(messages),
            "completion",
            retries=self.retries,
            backoff=self.backoff,
            **kwargs,
        )
        return content_text(resp)
