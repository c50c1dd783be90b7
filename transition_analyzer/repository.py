from __future__ import annotations
import itertools
import threading
from typing import Dict, Iterable, List, Optional, Protocol
from .errors import TransitionNotFoundError
from .models import Insight, Milestone, Plan, Resource, SkillGap, Story, Transition


class Repository(Protocol):
    """Persistence consumed by the pipeline. Each call commits on its own."""

    def create_transition(self, current_role: str, target_role: str) -> Transition: ...
    def get_transition(self, transition_id: int) -> Optional[Transition]: ...
    def update_transition_status(self, transition_id: int, is_complete: bool) -> None: ...
    def clear_transition_data(self, transition_id: int) -> None: ...

    def create_scraped_data(self, story: Story) -> Story: ...
    def get_scraped_data_by_transition_id(self, transition_id: int) -> List[Story]: ...

    def create_skill_gap(self, gap: SkillGap) -> SkillGap: ...
    def get_skill_gaps_by_transition_id(self, transition_id: int) -> List[SkillGap]: ...

    def create_insight(self, insight: Insight) -> Insight: ...
    def get_insights_by_transition_id(self, transition_id: int) -> List[Insight]: ...

    def create_plan(self, transition_id: int) -> Plan: ...
    def get_plan_by_transition_id(self, transition_id: int) -> Optional[Plan]: ...
    def create_milestone(self, milestone: Milestone) -> Milestone: ...
    def get_milestones_by_plan_id(self, plan_id: int) -> List[Milestone]: ...
    def create_resource(self, resource: Resource) -> Resource: ...
    def get_resources_by_milestone_id(self, milestone_id: int) -> List[Resource]: ...

    def get_role_skills(self, role: str) -> List[str]: ...


class InMemoryRepository:
    """Dict-backed repository for the CLI and tests."""

    def __init__(self, role_skills: Optional[Dict[str, Iterable[str]]] = None):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._transitions: Dict[int, Transition] = {}
        self._stories: Dict[int, List[Story]] = {}
        self._skill_gaps: Dict[int, List[SkillGap]] = {}
        self._insights: Dict[int, List[Insight]] = {}
        self._plans: Dict[int, Plan] = {}
        self._milestones: Dict[int, List[Milestone]] = {}
        self._resources: Dict[int, List[Resource]] = {}
        self._role_skills = {k.strip().lower(): list(v) for k, v in (role_skills or {}).items()}

    # -------- Transitions --------
    def create_transition(self, current_role: str, target_role: str) -> Transition:
        with self._lock:
            t = Transition(id=next(self._ids), current_role=current_role, target_role=target_role)
            self._transitions[t.id] = t
            return t.model_copy()

    def get_transition(self, transition_id: int) -> Optional[Transition]:
        with self._lock:
            t = self._transitions.get(transition_id)
            return t.model_copy() if t else None

    def update_transition_status(self, transition_id: int, is_complete: bool) -> None:
        with self._lock:
            t = self._transitions.get(transition_id)
            if t is None:
                raise TransitionNotFoundError(transition_id)
            t.is_complete = is_complete

    def clear_transition_data(self, transition_id: int) -> None:
        with self._lock:
            self._stories.pop(transition_id, None)
            self._skill_gaps.pop(transition_id, None)
            self._insights.pop(transition_id, None)
            plan = self._plans.pop(transition_id, None)
            if plan is not None:
                for m in self._milestones.pop(plan.id, []):
                    self._resources.pop(m.id, None)
            t = self._transitions.get(transition_id)
            if t is not None:
                t.is_complete = False

    # -------- Stories --------
    def create_scraped_data(self, story: Story) -> Story:
        with self._lock:
            stored = story.model_copy(update={"id": next(self._ids)})
            self._stories.setdefault(story.transition_id, []).append(stored)
            return stored

    def get_scraped_data_by_transition_id(self, transition_id: int) -> List[Story]:
        with self._lock:
            return list(self._stories.get(transition_id, []))

    # -------- Skill gaps --------
    def create_skill_gap(self, gap: SkillGap) -> SkillGap:
        with self._lock:
            stored = gap.model_copy(update={"id": next(self._ids)})
            self._skill_gaps.setdefault(gap.transition_id, []).append(stored)
            return stored

    def get_skill_gaps_by_transition_id(self, transition_id: int) -> List[SkillGap]:
        with self._lock:
            return list(self._skill_gaps.get(transition_id, []))

    # -------- Insights --------
    def create_insight(self, insight: Insight) -> Insight:
        with self._lock:
            stored = insight.model_copy(update={"id": next(self._ids)})
            self._insights.setdefault(insight.transition_id, []).append(stored)
            return stored

    def get_insights_by_transition_id(self, transition_id: int) -> List[Insight]:
        with self._lock:
            return list(self._insights.get(transition_id, []))

    # -------- Plans --------
    def create_plan(self, transition_id: int) -> Plan:
        with self._lock:
            plan = Plan(id=next(self._ids), transition_id=transition_id)
            self._plans[transition_id] = plan
            return plan.model_copy()

    def get_plan_by_transition_id(self, transition_id: int) -> Optional[Plan]:
        with self._lock:
            plan = self._plans.get(transition_id)
            if plan is None:
                return None
            return plan.model_copy(update={"milestones": list(self._milestones.get(plan.id, []))})

    def create_milestone(self, milestone: Milestone) -> Milestone:
        with self._lock:
            stored = milestone.model_copy(update={"id": next(self._ids), "resources": []})
            self._milestones.setdefault(milestone.plan_id, []).append(stored)
            return stored

    def get_milestones_by_plan_id(self, plan_id: int) -> List[Milestone]:
        with self._lock:
            return sorted(self._milestones.get(plan_id, []), key=lambda m: m.order)

    def create_resource(self, resource: Resource) -> Resource:
        with self._lock:
            stored = resource.model_copy(update={"id": next(self._ids)})
            self._resources.setdefault(resource.milestone_id, []).append(stored)
            return stored

    def get_resources_by_milestone_id(self, milestone_id: int) -> List[Resource]:
        with self._lock:
            return list(self._resources.get(milestone_id, []))

    # -------- Reference data --------
    def get_role_skills(self, role: str) -> List[str]:
        with self._lock:
            return list(self._role_skills.get((role or "").strip().lower(), []))
