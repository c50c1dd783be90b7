from __future__ import annotations
import time
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from .models import CamelModel, InsightOutput, PlanOutput, ResearchOutput, SkillGap, SkillGapOutput


class RunStatus(str, Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    FAILED = "failed"


class RunPhase(str, Enum):
    ADMITTED = "admitted"
    RESEARCHING = "researching"
    ANALYZING_GAPS = "analyzing_gaps"
    GENERATING_INSIGHTS = "generating_insights"
    PLANNING = "planning"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    FAILED = "failed"


class RunState(BaseModel):
    transition_id: int
    state: RunStatus = RunStatus.IDLE
    phase: Optional[RunPhase] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    generation: int = 0
    updated_at: float = Field(default_factory=time.time)


class PipelineState(BaseModel):
    # Input
    transition_id: int
    current_role: str
    target_role: str
    existing_skills: List[str] = Field(default_factory=list)

    # Intermediate
    research: Optional[ResearchOutput] = None
    skill_gaps: Optional[SkillGapOutput] = None
    insights: Optional[InsightOutput] = None
    plan: Optional[PlanOutput] = None

    # Output
    errors: List[str] = Field(default_factory=list)


class AnalysisResult(CamelModel):
    skill_gaps: List[SkillGap] = Field(default_factory=list)
    insights: Dict[str, Any] = Field(default_factory=dict)
    scraped_count: int = 0
    status: RunStatus = RunStatus.COMPLETE
    errors: List[str] = Field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
