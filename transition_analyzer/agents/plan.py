from __future__ import annotations
import logging
import re
from typing import Any, List, Optional
from urllib.parse import quote_plus
from ..extraction import ARRAY, OBJECT, extract
from ..models import GapLevel, InsightOutput, Milestone, Plan, PlanOutput, Resource, SkillGap, Story
from ..state import PipelineState
from ..utils import first_present, level_from_text, to_int, truncate
from .base import StageContext

logger = logging.getLogger(__name__)

DEFAULT_WEEKS = 4
MAX_SYNTHESIZED = 5
COURSE_SEARCH_URL = "https://www.coursera.org/search?query="
GENERIC_RESOURCE_URL = "https://www.coursera.org/"

_LEVEL_RANK = {GapLevel.HIGH: 0, GapLevel.MEDIUM: 1, GapLevel.LOW: 2}
_MONTHS = re.compile(r"month", re.IGNORECASE)

SYSTEM_PROMPT = (
    "You are a career development planner who creates actionable development plans. "
    "Return ONLY a JSON object with a \"milestones\" array, no markdown."
)

SCHEMA_EXAMPLE = (
    '{"overview":"","milestones":[{"title":"","description":"","priority":"High",'
    '"durationWeeks":4,"resources":[{"title":"","url":"","type":"course"}]}]}'
)


def build_prompt(ctx: StageContext, gaps: List[SkillGap], insights: Optional[InsightOutput],
                 stories: List[Story]) -> str:
    gaps_text = "\n".join(
        f"- {g.skill_name} ({g.gap_level.value}, confidence {g.confidence_score})" for g in gaps
    ) or "- No specific skill gaps identified"
    existing = ", ".join(ctx.existing_skills) if ctx.existing_skills else "None provided"
    lines = [
        f"Create a development plan for transitioning from {ctx.current_role} to {ctx.target_role}.",
        "",
        f"Existing skills: {existing}",
        "",
        "Skill gaps:",
        gaps_text,
    ]
    if insights:
        lines += ["", "Key observations:"] + [f"- {o}" for o in insights.key_observations]
        lines += ["", "Common challenges:"] + [f"- {c}" for c in insights.common_challenges]
    if stories:
        lines += ["", "What worked for others:"] + [f"- {truncate(s.content, 300)}" for s in stories[:3]]
    lines += [
        "",
        "Create 3-6 ordered milestones. Each milestone needs a title, a description, a priority",
        "(Low, Medium or High), a duration in weeks and 1-3 learning resources with real URLs.",
        "SCHEMA (JSON shape example):",
        SCHEMA_EXAMPLE,
    ]
    return "\n".join(lines)


def parse_weeks(value: Any) -> int:
    n = to_int(value)
    if n is None or n < 1:
        return DEFAULT_WEEKS
    if isinstance(value, str) and _MONTHS.search(value):
        return n * 4
    return n


def _resource(record: Any) -> Optional[Resource]:
    if isinstance(record, str):
        record = {"title": record}
    if not isinstance(record, dict):
        return None
    title = str(first_present(record, "title", "name") or "").strip()
    url = str(first_present(record, "url", "link") or "").strip()
    if not title and not url:
        return None
    return Resource(
        title=title or url,
        url=url or GENERIC_RESOURCE_URL,
        type=str(first_present(record, "type", "kind") or "website").strip().lower(),
    )


def generic_resource(title: str) -> Resource:
    return Resource(title=f"Learn more: {title}", url=GENERIC_RESOURCE_URL, type="website")


def normalize_milestone(record: Any, order: int) -> Optional[Milestone]:
    """Map one extracted record onto Milestone; None when it has no title."""
    if not isinstance(record, dict):
        return None
    title = str(first_present(record, "title", "name", "milestone") or "").strip()
    if not title:
        return None
    description = first_present(record, "description", "details", "summary")
    raw_resources = list(record.get("resources") or [])
    # resources may also hang off nested tasks
    for task in record.get("tasks") or []:
        if isinstance(task, dict):
            raw_resources += list(task.get("resources") or [])
    resources = [r for r in (_resource(x) for x in raw_resources) if r is not None]
    if not resources:
        resources = [generic_resource(title)]
    return Milestone(
        title=title,
        description=str(description).strip() if description else None,
        priority=level_from_text(first_present(record, "priority", "importance")),
        duration_weeks=parse_weeks(first_present(record, "durationWeeks", "duration_weeks", "weeks",
                                                 "timeframe", "duration")),
        order=order,
        resources=resources,
    )


def parse_milestones(text: str) -> PlanOutput:
    value, ok = extract(text, OBJECT, intent="plan")
    records = first_present(value, "milestones", "phases", "steps") if ok else None
    overview = first_present(value, "overview", "summary") if records is not None else None
    if records is None:
        # bare milestone array, or an object span picked out of one
        records, _ = extract(text, ARRAY)
    if not isinstance(records, list):
        records = []
    milestones: List[Milestone] = []
    for rec in records:
        m = normalize_milestone(rec, len(milestones) + 1)
        if m is not None:
            milestones.append(m)
    return PlanOutput(overview=str(overview).strip() if overview else None, milestones=milestones)


def rank_gaps(gaps: List[SkillGap]) -> List[SkillGap]:
    return sorted(gaps, key=lambda g: (_LEVEL_RANK[g.gap_level], -g.confidence_score))


def synthesize_plan(ctx: StageContext, gaps: List[SkillGap]) -> PlanOutput:
    """Deterministic plan with one milestone per top skill gap."""
    ranked = rank_gaps(gaps)[:MAX_SYNTHESIZED]
    milestones = [
        Milestone(
            title=f"Develop {g.skill_name}",
            description=g.context_summary or f"Close the {g.skill_name} gap for the {ctx.target_role} role",
            priority=g.gap_level,
            duration_weeks=DEFAULT_WEEKS,
            order=i,
            resources=[Resource(
                title=f"Learn {g.skill_name}",
                url=COURSE_SEARCH_URL + quote_plus(g.skill_name),
                type="course",
            )],
        )
        for i, g in enumerate(ranked, start=1)
    ]
    if not milestones:
        milestones = [Milestone(
            title=f"Build foundations for {ctx.target_role}",
            description=f"Core skills and knowledge for moving from {ctx.current_role} to {ctx.target_role}",
            priority=GapLevel.HIGH,
            duration_weeks=DEFAULT_WEEKS,
            order=1,
            resources=[Resource(
                title=f"Learn {ctx.target_role} fundamentals",
                url=COURSE_SEARCH_URL + quote_plus(ctx.target_role),
                type="course",
            )],
        )]
    return PlanOutput(
        overview=f"Development plan for transitioning from {ctx.current_role} to {ctx.target_role}",
        milestones=milestones,
    )


def run_plan(ctx: StageContext, state: PipelineState) -> PlanOutput:
    gaps = state.skill_gaps.skill_gaps if state.skill_gaps else []
    stories = state.research.stories if state.research else []
    text = ctx.completion.complete(SYSTEM_PROMPT, build_prompt(ctx, gaps, state.insights, stories))
    output = parse_milestones(text)
    if not output.milestones:
        logger.warning("Plan completion had no usable milestones, synthesizing from skill gaps")
        return synthesize_plan(ctx, gaps)
    return output


def plan_fallback(ctx: StageContext, state: PipelineState) -> PlanOutput:
    return synthesize_plan(ctx, state.skill_gaps.skill_gaps if state.skill_gaps else [])


def persist_plan(ctx: StageContext, output: PlanOutput) -> PlanOutput:
    try:
        plan: Plan = ctx.repository.create_plan(ctx.transition_id)
    except Exception as e:
        logger.warning(f"Could not create plan for transition {ctx.transition_id}: {e}")
        return output
    # order counts stored milestones only, so a failed write leaves no hole
    next_order = 1
    for milestone in output.milestones:
        try:
            stored = ctx.repository.create_milestone(
                milestone.model_copy(update={"plan_id": plan.id, "order": next_order})
            )
        except Exception as e:
            logger.warning(f"Could not store milestone '{milestone.title}': {e}")
            continue
        next_order += 1
        for resource in milestone.resources:
            try:
                ctx.repository.create_resource(resource.model_copy(update={"milestone_id": stored.id}))
            except Exception as e:
                logger.warning(f"Could not store resource '{resource.title}': {e}")
    return output
