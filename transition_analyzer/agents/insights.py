from __future__ import annotations
import logging
from typing import List
from ..errors import StageError
from ..extraction import OBJECT, extract
from ..models import Insight, InsightOutput, InsightType, SkillGap, Story
from ..state import PipelineState
from ..utils import clamp, clean_strings, first_present, to_int, truncate
from .base import StageContext

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a career insights specialist who extracts patterns and observations from transition data. "
    "Return ONLY a JSON object, no markdown."
)

SCHEMA_EXAMPLE = (
    '{"keyObservations":[""],"commonChallenges":[""],"successStories":[""],'
    '"successRate":65,"timeframe":"6-12 months","successFactors":[""]}'
)


def build_prompt(ctx: StageContext, stories: List[Story], gaps: List[SkillGap]) -> str:
    stories_text = "\n\n".join(truncate(s.content, 500) for s in stories) or "No stories available."
    gaps_text = "\n".join(
        f"{g.skill_name} ({g.gap_level.value} gap): {g.context_summary or ''}".rstrip(": ")
        for g in gaps
    ) or "No skill gaps identified."
    return "\n".join([
        f"Generate career transition insights from {ctx.current_role} to {ctx.target_role}.",
        "",
        "Stories:",
        stories_text,
        "",
        "Skill Gaps:",
        gaps_text,
        "",
        "Provide key observations (3-5), common challenges (3-5), short success stories (0-3),",
        "an estimated success rate (percentage), a typical timeframe and success factors (3-5).",
        "SCHEMA (JSON shape example):",
        SCHEMA_EXAMPLE,
    ])


def parse_insights(text: str) -> InsightOutput:
    value, ok = extract(text, OBJECT, intent="insights")
    if not ok:
        raise StageError("insights", "no insight object recovered from completion")
    rate = to_int(first_present(value, "successRate", "success_rate", "estimatedSuccessRate"))
    timeframe = first_present(value, "timeframe", "typicalTimeframe", "typical_timeframe", "estimatedTimeframe")
    output = InsightOutput(
        key_observations=clean_strings(first_present(value, "keyObservations", "key_observations", "observations") or []),
        common_challenges=clean_strings(first_present(value, "commonChallenges", "common_challenges", "challenges") or []),
        success_stories=clean_strings(first_present(value, "successStories", "success_stories") or []),
        success_rate=clamp(rate, 0, 100) if rate is not None else None,
        timeframe=str(timeframe).strip() if timeframe else None,
        success_factors=clean_strings(first_present(value, "successFactors", "success_factors") or []),
    )
    if not output.key_observations and not output.common_challenges:
        raise StageError("insights", "completion had neither observations nor challenges")
    return output


def run_insights(ctx: StageContext, state: PipelineState) -> InsightOutput:
    stories = state.research.stories if state.research else []
    gaps = state.skill_gaps.skill_gaps if state.skill_gaps else []
    text = ctx.completion.complete(SYSTEM_PROMPT, build_prompt(ctx, stories, gaps))
    return parse_insights(text)


def insight_fallback(ctx: StageContext, state: PipelineState) -> InsightOutput:
    return InsightOutput(
        key_observations=[
            f"Most successful transitions from {ctx.current_role} to {ctx.target_role} take 6-12 months",
            "Building a portfolio of relevant projects is critical",
            "Networking with professionals already in the target role increases success rate",
        ],
        common_challenges=[
            "Adapting to new technical requirements",
            "Building required domain knowledge",
            "Demonstrating leadership capabilities",
        ],
        success_rate=65,
        timeframe="6-12 months",
        success_factors=[
            "Continuously expanding technical skills",
            "Building a professional network",
            "Creating a portfolio of relevant projects",
        ],
    )


def persist_insights(ctx: StageContext, output: InsightOutput) -> InsightOutput:
    rows = (
        [(InsightType.OBSERVATION, c) for c in output.key_observations]
        + [(InsightType.CHALLENGE, c) for c in output.common_challenges]
        + [(InsightType.STORY, c) for c in output.success_stories]
    )
    for kind, content in rows:
        try:
            ctx.repository.create_insight(Insight(transition_id=ctx.transition_id, type=kind, content=content))
        except Exception as e:
            logger.warning(f"Could not store {kind.value} insight: {e}")
    return output
