from __future__ import annotations
import logging
from typing import Any, List, Optional
from ..errors import StageError
from ..extraction import ARRAY, extract
from ..models import GapLevel, SkillGap, SkillGapOutput, Story
from ..state import PipelineState
from ..utils import clamp, first_present, level_from_text, to_int, truncate
from .base import StageContext

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 70

SYSTEM_PROMPT = (
    "You are a career skills analyst who identifies skill gaps between roles. "
    "Return ONLY a JSON array, no commentary."
)


def build_prompt(ctx: StageContext, stories: List[Story], role_skills: List[str]) -> str:
    stories_text = "\n\n".join(
        f"Source: {s.source}\n{truncate(s.content, 500)}" for s in stories
    ) or "No stories available."
    existing = ", ".join(ctx.existing_skills) if ctx.existing_skills else "None provided"
    parts = [
        f"Analyze skill gaps for a transition from {ctx.current_role} to {ctx.target_role}.",
        "",
        f"User's existing skills: {existing}",
    ]
    if role_skills:
        parts.append(f"Skills typically required for {ctx.target_role}: {', '.join(role_skills)}")
    parts += [
        "",
        "Transition stories:",
        stories_text,
        "",
        "For each skill gap return an object with:",
        '- "skillName": specific, actionable skill',
        '- "gapLevel": "Low", "Medium" or "High"',
        '- "confidenceScore": 0-100',
        '- "mentionCount": number of mentions in the stories',
        '- "contextSummary": why it matters for this transition',
        "Return a JSON array of these objects.",
    ]
    return "\n".join(parts)


def normalize_skill_gap(record: Any, transition_id: int) -> Optional[SkillGap]:
    """Map one extracted record onto SkillGap; None when it has no skill name."""
    if not isinstance(record, dict):
        return None
    name = first_present(record, "skillName", "skill_name", "skill", "name")
    name = str(name or "").strip()
    if not name:
        return None
    confidence = to_int(first_present(record, "confidenceScore", "confidence_score", "confidence"))
    if confidence is None:
        confidence = DEFAULT_CONFIDENCE
    mentions = to_int(first_present(record, "mentionCount", "mention_count", "number_of_mentions", "mentions"))
    summary = first_present(record, "contextSummary", "context_summary", "context", "summary")
    return SkillGap(
        transition_id=transition_id,
        skill_name=name,
        gap_level=level_from_text(first_present(record, "gapLevel", "gap_level", "level")),
        confidence_score=clamp(confidence, 0, 100),
        mention_count=max(1, mentions or 1),
        context_summary=str(summary).strip() if summary else None,
    )


def parse_skill_gaps(text: str, transition_id: int) -> List[SkillGap]:
    records, ok = extract(text, ARRAY, intent="skill_gaps")
    if not ok:
        return []
    gaps = [g for g in (normalize_skill_gap(r, transition_id) for r in records) if g is not None]
    dropped = len(records) - len(gaps)
    if dropped:
        logger.warning(f"Discarded {dropped} skill gap record(s) without a skill name")
    return gaps


def _role_skills(ctx: StageContext) -> List[str]:
    try:
        return ctx.repository.get_role_skills(ctx.target_role)
    except Exception as e:
        logger.warning(f"Could not load known skills for {ctx.target_role}: {e}")
        return []


def run_skill_gaps(ctx: StageContext, state: PipelineState) -> SkillGapOutput:
    stories = state.research.stories if state.research else []
    prompt = build_prompt(ctx, stories, _role_skills(ctx))
    text = ctx.completion.complete(SYSTEM_PROMPT, prompt)
    gaps = parse_skill_gaps(text, ctx.transition_id)
    if not gaps:
        raise StageError("skill_gaps", "no skill gaps recovered from completion")
    return SkillGapOutput(skill_gaps=gaps)


def skill_gap_fallback(ctx: StageContext, state: PipelineState) -> SkillGapOutput:
    tid, target = ctx.transition_id, ctx.target_role
    return SkillGapOutput(skill_gaps=[
        SkillGap(transition_id=tid, skill_name="Technical Skills", gap_level=GapLevel.MEDIUM,
                 confidence_score=70, mention_count=1,
                 context_summary=f"Core technical skills needed for the {target} role"),
        SkillGap(transition_id=tid, skill_name="Domain Knowledge", gap_level=GapLevel.HIGH,
                 confidence_score=80, mention_count=2,
                 context_summary="Specific knowledge required for the industry"),
        SkillGap(transition_id=tid, skill_name="Leadership Experience", gap_level=GapLevel.MEDIUM,
                 confidence_score=75, mention_count=3,
                 context_summary=f"Leadership expectations for {target}"),
    ])


def persist_skill_gaps(ctx: StageContext, output: SkillGapOutput) -> SkillGapOutput:
    for gap in output.skill_gaps:
        try:
            ctx.repository.create_skill_gap(gap)
        except Exception as e:
            logger.warning(f"Could not store skill gap '{gap.skill_name}': {e}")
    return output
