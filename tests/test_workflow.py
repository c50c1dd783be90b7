import threading

from conftest import FakeCompletion, FakeSearch, FlakyRepository
from transition_analyzer.errors import ServiceError
from transition_analyzer.graph.workflow import TransitionAnalyzer
from transition_analyzer.progress import ProgressTracker
from transition_analyzer.repository import InMemoryRepository
from transition_analyzer.services import SearchHit
from transition_analyzer.state import RunPhase, RunStatus

GAPS = '```json\n[{"skillName":"SQL","gapLevel":"high"}, {"skillName": "Statistics", "gapLevel": "Medium"}]\n```'
INSIGHTS = '{"keyObservations": ["Projects matter"], "commonChallenges": ["Math refresh"], "successRate": 70}'
PLAN = '{"milestones": [{"title": "Statistics refresher", "durationWeeks": 6}]}'

HITS = [
    SearchHit(title="Blog", url="https://blog.example/switch", content="I switched after 8 months."),
    SearchHit(title="Forum", url="https://forum.example/t/9", content="Learn stats first."),
]


def _completion():
    return FakeCompletion(replies={
        "skills analyst": GAPS,
        "insights specialist": INSIGHTS,
        "development planner": PLAN,
    })


def _analyzer(completion=None, search=None, repository=None, tracker=None):
    return TransitionAnalyzer(
        completion=completion or _completion(),
        search=search or FakeSearch(hits=HITS),
        repository=repository or InMemoryRepository(),
        tracker=tracker,
    )


def test_happy_path():
    repo = InMemoryRepository()
    t = repo.create_transition("Data Analyst", "Data Scientist")
    analyzer = _analyzer(repository=repo)
    result = analyzer.run("Data Analyst", "Data Scientist", t.id, existing_skills=["Excel"])

    assert result.status == RunStatus.COMPLETE
    assert result.errors == []
    assert result.scraped_count == 2
    gap = result.skill_gaps[0]
    assert (gap.skill_name, gap.gap_level.value, gap.confidence_score, gap.mention_count) == ("SQL", "High", 70, 1)

    payload = result.to_payload()
    assert set(payload) == {"skillGaps", "insights", "scrapedCount", "status", "errors"}
    assert payload["insights"]["keyObservations"] == ["Projects matter"]
    assert payload["insights"]["plan"]["milestones"][0]["durationWeeks"] == 6

    assert repo.get_transition(t.id).is_complete is True
    snap = analyzer.tracker.snapshot(t.id)
    assert snap.state == RunStatus.COMPLETE
    assert snap.phase == RunPhase.COMPLETE


def test_empty_search_uses_fallback_stories():
    repo = InMemoryRepository()
    t = repo.create_transition("Accountant", "UX Designer")
    result = _analyzer(search=FakeSearch(hits=[]), repository=repo).run("Accountant", "UX Designer", t.id)
    assert result.status == RunStatus.COMPLETE
    assert result.scraped_count == 2
    assert [e.split(":")[0] for e in result.errors] == ["research"]


def test_every_stage_degrades_but_run_completes():
    repo = InMemoryRepository()
    t = repo.create_transition("Nurse", "Product Manager")
    completion = FakeCompletion(default=ServiceError("completion failed after 4 attempt(s): 503"))
    result = _analyzer(completion=completion, repository=repo).run("Nurse", "Product Manager", t.id)

    assert result.status == RunStatus.COMPLETE
    assert [e.split(":")[0] for e in result.errors] == ["skill_gaps", "insights", "plan"]
    assert [g.skill_name for g in result.skill_gaps] == ["Technical Skills", "Domain Knowledge", "Leadership Experience"]
    assert result.insights["successRate"] == 65
    assert len(result.insights["plan"]["milestones"]) == 3
    assert repo.get_plan_by_transition_id(t.id) is not None
    assert repo.get_transition(t.id).is_complete is True


def test_failed_skill_gap_write_does_not_stop_the_run():
    repo = FlakyRepository(failures=1)
    t = repo.create_transition("Data Analyst", "Data Scientist")
    result = _analyzer(repository=repo).run("Data Analyst", "Data Scientist", t.id)
    assert result.status == RunStatus.COMPLETE
    assert repo.get_transition(t.id).is_complete is True
    assert [g.skill_name for g in repo.get_skill_gaps_by_transition_id(t.id)] == ["Statistics"]


def test_concurrent_run_gets_snapshot_without_adapter_calls():
    started = threading.Event()
    proceed = threading.Event()

    def block():
        started.set()
        proceed.wait(timeout=10)

    repo = InMemoryRepository()
    t = repo.create_transition("Data Analyst", "Data Scientist")
    search = FakeSearch(hits=HITS, before=block)
    completion = _completion()
    analyzer = _analyzer(completion=completion, search=search, repository=repo)

    results = {}
    worker = threading.Thread(
        target=lambda: results.setdefault("first", analyzer.run("Data Analyst", "Data Scientist", t.id))
    )
    worker.start()
    try:
        assert started.wait(timeout=10)
        second = analyzer.run("Data Analyst", "Data Scientist", t.id)
        assert second.status == RunStatus.IN_PROGRESS
        assert len(search.queries) == 1
        assert completion.calls == []
        assert second.skill_gaps
    finally:
        proceed.set()
        worker.join(timeout=30)

    assert results["first"].status == RunStatus.COMPLETE
    assert results["first"].skill_gaps[0].skill_name == "SQL"


def test_missing_transition_fails_without_adapter_calls():
    search = FakeSearch(hits=HITS)
    completion = _completion()
    tracker = ProgressTracker()
    analyzer = _analyzer(completion=completion, search=search, tracker=tracker)
    result = analyzer.run("Chef", "Data Engineer", 404)

    assert result.status == RunStatus.FAILED
    assert search.queries == []
    assert completion.calls == []
    assert tracker.snapshot(404).state == RunStatus.FAILED
    # still a well-formed result
    assert result.skill_gaps
    assert result.insights["plan"]["milestones"]


def test_force_refresh_replaces_stored_data():
    repo = InMemoryRepository()
    t = repo.create_transition("Data Analyst", "Data Scientist")
    analyzer = _analyzer(repository=repo)
    analyzer.run("Data Analyst", "Data Scientist", t.id)
    analyzer.run("Data Analyst", "Data Scientist", t.id, force_refresh=True)

    assert len(repo.get_skill_gaps_by_transition_id(t.id)) == 2
    assert len(repo.get_insights_by_transition_id(t.id)) == 2
    assert len(repo.get_scraped_data_by_transition_id(t.id)) == 2
    assert repo.get_transition(t.id).is_complete is True


def test_rerun_without_force_keeps_story_urls_unique():
    repo = InMemoryRepository()
    t = repo.create_transition("Data Analyst", "Data Scientist")
    analyzer = _analyzer(repository=repo)
    analyzer.run("Data Analyst", "Data Scientist", t.id)
    result = analyzer.run("Data Analyst", "Data Scientist", t.id)
    assert result.scraped_count == 2


def test_forced_run_keeps_ownership_after_older_run_finishes():
    started = {"old": threading.Event(), "new": threading.Event()}
    gates = {"old": threading.Event(), "new": threading.Event()}

    def block():
        name = threading.current_thread().name
        started[name].set()
        gates[name].wait(timeout=10)

    repo = InMemoryRepository()
    t = repo.create_transition("Data Analyst", "Data Scientist")
    analyzer = _analyzer(search=FakeSearch(hits=HITS, before=block), repository=repo)

    results = {}

    def run(name, force):
        results[name] = analyzer.run("Data Analyst", "Data Scientist", t.id, force_refresh=force)

    old = threading.Thread(target=run, args=("old", False), name="old")
    new = threading.Thread(target=run, args=("new", True), name="new")
    old.start()
    try:
        assert started["old"].wait(timeout=10)
        new.start()
        assert started["new"].wait(timeout=10)

        gates["old"].set()
        old.join(timeout=30)
        assert not old.is_alive()

        assert analyzer.tracker.snapshot(t.id).state == RunStatus.IN_PROGRESS
        assert analyzer.tracker.try_acquire(t.id) is False
    finally:
        gates["old"].set()
        gates["new"].set()
        old.join(timeout=30)
        new.join(timeout=30)

    assert results["new"].status == RunStatus.COMPLETE
    assert analyzer.tracker.snapshot(t.id).state == RunStatus.COMPLETE
    assert analyzer.tracker.try_acquire(t.id) is True
