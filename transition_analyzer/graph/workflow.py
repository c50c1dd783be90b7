from __future__ import annotations
import logging
from typing import Any, Callable, Dict, List, Optional
from langgraph.graph import StateGraph, END
from ..agents.base import Stage, StageContext
from ..agents.insights import insight_fallback, persist_insights, run_insights
from ..agents.plan import persist_plan, plan_fallback, run_plan
from ..agents.research import persist_stories, research_fallback, run_research
from ..agents.skill_gaps import persist_skill_gaps, run_skill_gaps, skill_gap_fallback
from ..errors import StageError, TransitionNotFoundError
from ..progress import ProgressTracker
from ..repository import Repository
from ..services import CompletionService, SearchService
from ..state import AnalysisResult, PipelineState, RunPhase, RunStatus

logger = logging.getLogger(__name__)

STAGES: List[Stage] = [
    Stage("research", RunPhase.RESEARCHING, "research", run_research, research_fallback, persist_stories),
    Stage("skill_gaps", RunPhase.ANALYZING_GAPS, "skill_gaps", run_skill_gaps, skill_gap_fallback, persist_skill_gaps),
    Stage("insights", RunPhase.GENERATING_INSIGHTS, "insights", run_insights, insight_fallback, persist_insights),
    Stage("plan", RunPhase.PLANNING, "plan", run_plan, plan_fallback, persist_plan),
]


class TransitionAnalyzer:
    """Runs research -> skill gaps -> insights -> plan for one transition.

    Adapters and the tracker are injected. Stage failures are replaced by the
    stage fallback and recorded in `errors`; only failures outside the stages
    (missing transition, repository down) end the run as failed.
    """

    def __init__(
        self,
        completion: CompletionService,
        search: SearchService,
        repository: Repository,
        tracker: Optional[ProgressTracker] = None,
        search_max_results: int = 5,
    ):
        self.completion = completion
        self.search = search
        self.repository = repository
        self.tracker = tracker or ProgressTracker()
        self.search_max_results = search_max_results

    def _context(self, transition_id: int, current_role: str, target_role: str,
                 existing_skills: Optional[List[str]]) -> StageContext:
        return StageContext(
            transition_id=transition_id,
            current_role=current_role,
            target_role=target_role,
            completion=self.completion,
            search=self.search,
            repository=self.repository,
            existing_skills=list(existing_skills or []),
            search_max_results=self.search_max_results,
        )

    def _stage_node(self, stage: Stage, ctx: StageContext, token: int) -> Callable[[PipelineState], Dict[str, Any]]:
        def node(state: PipelineState) -> Dict[str, Any]:
            self.tracker.update(ctx.transition_id, phase=stage.phase, token=token)
            errors = list(state.errors)
            try:
                output = stage.run(ctx, state)
            except Exception as e:
                msg = str(e) if isinstance(e, StageError) else f"{stage.name}: {e}"
                logger.warning(f"Stage {stage.name} failed for transition {ctx.transition_id}, using fallback: {msg}")
                errors.append(msg)
                output = stage.fallback(ctx, state)
            try:
                stage.persist(ctx, output)
            except Exception as e:
                logger.warning(f"Stage {stage.name} could not persist output: {e}")
                errors.append(f"{stage.name}: persist failed: {e}")
            self.tracker.update(ctx.transition_id, data={stage.output_field: output, "errors": errors}, token=token)
            return {stage.output_field: output, "errors": errors}
        return node

    def build_graph(self, ctx: StageContext, token: int) -> Callable[[PipelineState], PipelineState]:
        def finalize_node(state: PipelineState) -> Dict[str, Any]:
            self.tracker.update(ctx.transition_id, phase=RunPhase.FINALIZING, token=token)
            self.repository.update_transition_status(ctx.transition_id, True)
            return {}

        g = StateGraph(PipelineState)
        names = []
        for stage in STAGES:
            # node names must not collide with state field names
            name = stage.phase.value
            g.add_node(name, self._stage_node(stage, ctx, token))
            names.append(name)
        g.add_node(RunPhase.FINALIZING.value, finalize_node)
        names.append(RunPhase.FINALIZING.value)

        g.set_entry_point(names[0])
        for a, b in zip(names, names[1:]):
            g.add_edge(a, b)
        g.add_edge(names[-1], END)

        app = g.compile()

        def runner(state: PipelineState) -> PipelineState:
            final = app.invoke(state)
            # LangGraph app.invoke may return a plain dict
            if isinstance(final, dict):
                final = PipelineState.model_validate(final)
            return final

        return runner

    def run(
        self,
        current_role: str,
        target_role: str,
        transition_id: int,
        existing_skills: Optional[List[str]] = None,
        force_refresh: bool = False,
    ) -> AnalysisResult:
        ctx = self._context(transition_id, current_role, target_role, existing_skills)

        if force_refresh:
            try:
                self.repository.clear_transition_data(transition_id)
            except Exception as e:
                logger.warning(f"Could not clear data for transition {transition_id}: {e}")

        token = self.tracker.admit(transition_id, force_refresh=force_refresh)
        if token is None:
            logger.info(f"Transition {transition_id} is already being analyzed, returning snapshot")
            return self.snapshot_result(ctx)

        try:
            self.tracker.update(transition_id, data={
                "current_role": current_role,
                "target_role": target_role,
                "existing_skills": ctx.existing_skills,
                "errors": [],
            }, token=token)
            if self.repository.get_transition(transition_id) is None:
                raise TransitionNotFoundError(transition_id)

            state = PipelineState(
                transition_id=transition_id,
                current_role=current_role,
                target_role=target_role,
                existing_skills=ctx.existing_skills,
            )
            final = self.build_graph(ctx, token)(state)
            self.tracker.update(transition_id, state=RunStatus.COMPLETE, phase=RunPhase.COMPLETE, token=token)
            return self._result(final, self._scraped_count(final))
        except Exception:
            logger.exception(f"Analysis of transition {transition_id} failed")
            self.tracker.update(transition_id, state=RunStatus.FAILED, phase=RunPhase.FAILED, token=token)
            try:
                self.repository.update_transition_status(transition_id, True)
            except Exception as e:
                logger.warning(f"Could not mark transition {transition_id} complete: {e}")
            return self.snapshot_result(ctx)
        finally:
            self.tracker.release(transition_id, token=token)

    def _scraped_count(self, state: PipelineState) -> int:
        try:
            return len(self.repository.get_scraped_data_by_transition_id(state.transition_id))
        except Exception as e:
            logger.warning(f"Could not count stored stories: {e}")
            return len(state.research.stories) if state.research else 0

    @staticmethod
    def _result(state: PipelineState, scraped_count: int, status: RunStatus = RunStatus.COMPLETE) -> AnalysisResult:
        insights: Dict[str, Any] = state.insights.model_dump(mode="json", by_alias=True) if state.insights else {}
        insights["plan"] = state.plan.model_dump(mode="json", by_alias=True) if state.plan else None
        return AnalysisResult(
            skill_gaps=state.skill_gaps.skill_gaps if state.skill_gaps else [],
            insights=insights,
            scraped_count=scraped_count,
            status=status,
            errors=list(state.errors),
        )

    def snapshot_result(self, ctx: StageContext) -> AnalysisResult:
        """Result built from the tracker entry, with fallbacks for missing stages."""
        snap = self.tracker.snapshot(ctx.transition_id)
        data = snap.data if snap is not None else {}
        state = PipelineState(
            transition_id=ctx.transition_id,
            current_role=ctx.current_role,
            target_role=ctx.target_role,
            existing_skills=ctx.existing_skills,
            errors=list(data.get("errors") or []),
        )
        for stage in STAGES:
            value = data.get(stage.output_field)
            if value is None:
                value = stage.fallback(ctx, state)
            state = state.model_copy(update={stage.output_field: value})
        status = snap.state if snap is not None else RunStatus.FAILED
        return self._result(state, len(state.research.stories), status)
