import sys
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional
import pytest

# Ensure repo root is importable regardless of pytest import mode.
ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from transition_analyzer.agents.base import StageContext  # noqa: E402
from transition_analyzer.repository import InMemoryRepository  # noqa: E402
from transition_analyzer.services import SearchHit  # noqa: E402


class FakeCompletion:
    """Returns canned replies; a reply may be an Exception to raise or a callable."""

    def __init__(self, replies: Optional[Dict[str, object]] = None, default: object = ""):
        self.replies = replies or {}
        self.default = default
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        with self._lock:
            self.calls.append(user_prompt)
        reply = self.default
        for marker, value in self.replies.items():
            if marker in system_prompt:
                reply = value
                break
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(system_prompt, user_prompt)
        return reply


class FakeSearch:
    def __init__(self, hits: Optional[List[SearchHit]] = None, before: Optional[Callable[[], None]] = None):
        self.hits = hits or []
        self.before = before
        self.queries: List[str] = []
        self._lock = threading.Lock()

    def search(self, query: str, max_results: int = 5) -> List[SearchHit]:
        with self._lock:
            self.queries.append(query)
        if self.before:
            self.before()
        return list(self.hits)


class FlakyRepository(InMemoryRepository):
    """Fails the first `failures` skill gap writes."""

    def __init__(self, failures: int = 1, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures

    def create_skill_gap(self, gap):
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("database write rejected")
        return super().create_skill_gap(gap)


@pytest.fixture
def repo():
    return InMemoryRepository(role_skills={"Data Scientist": ["Python", "Statistics", "Machine Learning"]})


@pytest.fixture
def make_ctx(repo):
    def _make(completion=None, search=None, repository=None, existing_skills=None):
        repository = repository or repo
        t = repository.create_transition("Data Analyst", "Data Scientist")
        return StageContext(
            transition_id=t.id,
            current_role="Data Analyst",
            target_role="Data Scientist",
            completion=completion or FakeCompletion(),
            search=search or FakeSearch(),
            repository=repository,
            existing_skills=existing_skills or ["SQL", "Excel"],
        )
    return _make
