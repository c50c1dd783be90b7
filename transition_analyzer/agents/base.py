from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, List
from ..repository import Repository
from ..services import CompletionService, SearchService
from ..state import PipelineState, RunPhase


@dataclass
class StageContext:
    transition_id: int
    current_role: str
    target_role: str
    completion: CompletionService
    search: SearchService
    repository: Repository
    existing_skills: List[str] = field(default_factory=list)
    search_max_results: int = 5


@dataclass(frozen=True)
class Stage:
    """One pipeline step.

    `run` may raise; `fallback` is deterministic and does no I/O; `persist`
    writes the chosen output and isolates per-record write failures.
    """
    name: str
    phase: RunPhase
    output_field: str
    run: Callable[[StageContext, PipelineState], Any]
    fallback: Callable[[StageContext, PipelineState], Any]
    persist: Callable[[StageContext, Any], Any]
