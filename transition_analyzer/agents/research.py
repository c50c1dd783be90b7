from __future__ import annotations
import logging
from typing import List, Set
from ..errors import ServiceError, StageError
from ..extraction import ARRAY, extract
from ..models import ResearchOutput, Story
from ..services import SearchHit
from ..state import PipelineState
from .base import StageContext

logger = logging.getLogger(__name__)

MIN_RESULTS = 2
MAX_ALTERNATES = 3


def build_queries(current_role: str, target_role: str) -> List[str]:
    """Primary query first, then up to MAX_ALTERNATES broader phrasings."""
    queries = [
        f"career transition stories from {current_role} to {target_role} personal experiences challenges success",
        f"{current_role} to {target_role} career change experience blog",
        f"how I switched from {current_role} to {target_role} forum discussion",
        f"skills needed to move from {current_role} into a {target_role} role success stories",
    ]
    return queries[:1 + MAX_ALTERNATES]


def collect_hits(ctx: StageContext) -> List[SearchHit]:
    hits: List[SearchHit] = []
    seen: Set[str] = set()
    failures: List[str] = []
    for i, query in enumerate(build_queries(ctx.current_role, ctx.target_role)):
        if i > 0 and len(hits) >= MIN_RESULTS:
            break
        try:
            batch = ctx.search.search(query, ctx.search_max_results)
        except ServiceError as e:
            logger.warning(f"Search attempt {i + 1} failed: {e}")
            failures.append(str(e))
            continue
        for hit in batch:
            key = hit.url or hit.content[:120]
            if key in seen:
                continue
            seen.add(key)
            hits.append(hit)
        logger.info(f"Search attempt {i + 1} returned {len(batch)} result(s), {len(hits)} collected")
    if not hits and failures:
        raise StageError("research", "all searches failed: " + "; ".join(failures))
    return hits


def stories_from_hit(hit: SearchHit, transition_id: int) -> List[Story]:
    """Split a hit into stories when its content carries labelled story blocks."""
    records, ok = extract(hit.content, ARRAY, intent="stories")
    stories: List[Story] = []
    if ok:
        for rec in records:
            if not isinstance(rec, dict):
                continue
            content = str(rec.get("content") or "").strip()
            if not content:
                continue
            stories.append(Story(
                transition_id=transition_id,
                source=str(rec.get("source") or hit.title or "Search Result").strip(),
                content=content,
                url=str(rec.get("url") or hit.url or "").strip() or None,
                date=str(rec.get("date") or "").strip() or None,
            ))
    if stories:
        return stories
    return [Story(
        transition_id=transition_id,
        source=hit.title or "Search Result",
        content=hit.content or hit.title,
        url=hit.url or None,
    )]


def run_research(ctx: StageContext, state: PipelineState) -> ResearchOutput:
    hits = collect_hits(ctx)
    stories: List[Story] = []
    urls: Set[str] = set()
    for hit in hits:
        for story in stories_from_hit(hit, ctx.transition_id):
            if story.url and story.url in urls:
                continue
            if story.url:
                urls.add(story.url)
            stories.append(story)
    if not stories:
        raise StageError("research", f"no search results for {ctx.current_role} -> {ctx.target_role}")
    return ResearchOutput(stories=stories)


def research_fallback(ctx: StageContext, state: PipelineState) -> ResearchOutput:
    current, target = ctx.current_role, ctx.target_role
    return ResearchOutput(stories=[
        Story(
            transition_id=ctx.transition_id,
            source="Professional Transition Blog",
            content=(
                f"After spending 5 years as a {current}, I decided to transition to a {target} role. "
                "The biggest challenges were learning new technical skills and adapting to a different workflow. "
                "I spent about 6 months taking online courses and working on side projects to build my portfolio. "
                f"What helped most was connecting with people already in {target} positions who could provide "
                "mentorship and advice."
            ),
        ),
        Story(
            transition_id=ctx.transition_id,
            source="Career Forum",
            content=(
                f"My journey from {current} to {target} took about 9 months of dedicated effort. "
                "I started by identifying the skill gaps, particularly in areas I hadn't been exposed to before. "
                "The interview process was challenging, but highlighting my transferable skills from my previous "
                "role really helped. Focus on building practical experience through projects rather than just "
                "theoretical learning."
            ),
        ),
    ])


def persist_stories(ctx: StageContext, output: ResearchOutput) -> ResearchOutput:
    stored_urls = {s.url for s in ctx.repository.get_scraped_data_by_transition_id(ctx.transition_id) if s.url}
    created = 0
    for story in output.stories:
        if story.url and story.url in stored_urls:
            continue
        try:
            ctx.repository.create_scraped_data(story)
        except Exception as e:
            logger.warning(f"Could not store story from '{story.source}': {e}")
            continue
        created += 1
        if story.url:
            stored_urls.add(story.url)
    logger.info(f"Stored {created} new stor{'y' if created == 1 else 'ies'} for transition {ctx.transition_id}")
    return output
