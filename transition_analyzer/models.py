from __future__ import annotations
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    # camelCase on the wire, snake_case in Python
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GapLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class InsightType(str, Enum):
    OBSERVATION = "observation"
    CHALLENGE = "challenge"
    STORY = "story"


# -------- Persisted records --------
class Transition(CamelModel):
    id: int
    current_role: str
    target_role: str
    is_complete: bool = False


class Story(CamelModel):
    id: Optional[int] = None
    transition_id: int
    source: str
    content: str
    url: Optional[str] = None
    date: Optional[str] = None


class SkillGap(CamelModel):
    id: Optional[int] = None
    transition_id: int
    skill_name: str = Field(min_length=1)
    gap_level: GapLevel = GapLevel.MEDIUM
    confidence_score: int = Field(default=70, ge=0, le=100)
    mention_count: int = Field(default=1, ge=1)
    context_summary: Optional[str] = None


class Insight(CamelModel):
    id: Optional[int] = None
    transition_id: int
    type: InsightType
    content: str = Field(min_length=1)
    source: Optional[str] = None
    date: Optional[str] = None


class Resource(CamelModel):
    id: Optional[int] = None
    milestone_id: Optional[int] = None
    title: str
    url: str
    type: str = "website"


class Milestone(CamelModel):
    id: Optional[int] = None
    plan_id: Optional[int] = None
    title: str = Field(min_length=1)
    description: Optional[str] = None
    priority: GapLevel = GapLevel.MEDIUM
    duration_weeks: int = Field(default=4, ge=1)
    order: int = Field(default=1, ge=1)
    progress: int = Field(default=0, ge=0, le=100)
    resources: List[Resource] = Field(default_factory=list)


class Plan(CamelModel):
    id: Optional[int] = None
    transition_id: int
    milestones: List[Milestone] = Field(default_factory=list)


# -------- Stage outputs --------
class ResearchOutput(CamelModel):
    stories: List[Story] = Field(default_factory=list)


class SkillGapOutput(CamelModel):
    skill_gaps: List[SkillGap] = Field(default_factory=list)


class InsightOutput(CamelModel):
    key_observations: List[str] = Field(default_factory=list)
    common_challenges: List[str] = Field(default_factory=list)
    success_stories: List[str] = Field(default_factory=list)
    success_rate: Optional[int] = None
    timeframe: Optional[str] = None
    success_factors: List[str] = Field(default_factory=list)


class PlanOutput(CamelModel):
    overview: Optional[str] = None
    milestones: List[Milestone] = Field(default_factory=list)
