import json

import pytest

from conftest import FakeCompletion, FlakyRepository
from transition_analyzer.agents.skill_gaps import (
    normalize_skill_gap,
    parse_skill_gaps,
    persist_skill_gaps,
    run_skill_gaps,
    skill_gap_fallback,
)
from transition_analyzer.errors import StageError
from transition_analyzer.models import GapLevel, SkillGapOutput
from transition_analyzer.state import PipelineState


def _state(ctx):
    return PipelineState(transition_id=ctx.transition_id, current_role=ctx.current_role, target_role=ctx.target_role)


def test_fenced_minimal_record_gets_defaults():
    text = '```json\n[{"skillName":"SQL","gapLevel":"high"}]\n```'
    [gap] = parse_skill_gaps(text, 1)
    assert gap.gap_level == GapLevel.HIGH
    assert gap.confidence_score == 70
    assert gap.mention_count == 1
    payload = gap.model_dump(mode="json", by_alias=True)
    assert payload["gapLevel"] == "High"
    assert payload["confidenceScore"] == 70


def test_records_without_name_are_discarded():
    records = [
        {"skillName": "Python", "gapLevel": "Medium"},
        {"gapLevel": "High"},
        {"skill_name": "Statistics"},
        {"skillName": "   "},
        {"name": "Machine Learning", "gapLevel": "significant"},
    ]
    gaps = parse_skill_gaps(json.dumps(records), 1)
    assert [g.skill_name for g in gaps] == ["Python", "Statistics", "Machine Learning"]


@pytest.mark.parametrize("level,expected", [
    ("minor", GapLevel.LOW),
    ("Small gap", GapLevel.LOW),
    ("major", GapLevel.HIGH),
    ("significant", GapLevel.HIGH),
    ("moderate", GapLevel.MEDIUM),
    (None, GapLevel.MEDIUM),
])
def test_gap_level_mapping(level, expected):
    gap = normalize_skill_gap({"skillName": "X", "gapLevel": level}, 1)
    assert gap.gap_level == expected


def test_snake_case_and_clamping():
    gap = normalize_skill_gap({
        "skill_name": "Deep Learning",
        "gap_level": "High",
        "confidence_score": "140%",
        "mention_count": 0,
        "context_summary": "Frequently cited",
    }, 9)
    assert gap.transition_id == 9
    assert gap.confidence_score == 100
    assert gap.mention_count == 1
    assert gap.context_summary == "Frequently cited"


def test_negative_confidence_clamped_to_zero():
    gap = normalize_skill_gap({"skillName": "X", "confidenceScore": -5}, 1)
    assert gap.confidence_score == 0


def test_run_uses_known_role_skills(make_ctx):
    completion = FakeCompletion(default='[{"skillName": "Statistics", "gapLevel": "High"}]')
    ctx = make_ctx(completion=completion)
    out = run_skill_gaps(ctx, _state(ctx))
    assert [g.skill_name for g in out.skill_gaps] == ["Statistics"]
    assert "Machine Learning" in completion.calls[0]
    assert "SQL, Excel" in completion.calls[0]


def test_run_raises_when_nothing_recovered(make_ctx):
    ctx = make_ctx(completion=FakeCompletion(default="I am unable to help with that."))
    with pytest.raises(StageError):
        run_skill_gaps(ctx, _state(ctx))


def test_fallback_gaps(make_ctx):
    ctx = make_ctx()
    out = skill_gap_fallback(ctx, _state(ctx))
    assert [g.skill_name for g in out.skill_gaps] == ["Technical Skills", "Domain Knowledge", "Leadership Experience"]


def test_persist_isolates_failed_writes():
    repo = FlakyRepository(failures=1)
    t = repo.create_transition("Nurse", "Product Manager")

    class Ctx:
        transition_id = t.id
        repository = repo

    gaps = parse_skill_gaps('[{"skillName": "A"}, {"skillName": "B"}, {"skillName": "C"}]', t.id)
    persist_skill_gaps(Ctx(), SkillGapOutput(skill_gaps=gaps))
    assert [g.skill_name for g in repo.get_skill_gaps_by_transition_id(t.id)] == ["B", "C"]


def test_non_finite_confidence_falls_back_to_default():
    text = (
        '[{"skillName": "SQL", "gapLevel": "high"},'
        ' {"skillName": "Go", "confidenceScore": NaN},'
        ' {"skillName": "Rust", "confidenceScore": 1e999, "mentionCount": -Infinity}]'
    )
    gaps = parse_skill_gaps(text, 1)
    assert [(g.skill_name, g.confidence_score, g.mention_count) for g in gaps] == [
        ("SQL", 70, 1),
        ("Go", 70, 1),
        ("Rust", 70, 1),
    ]
    assert normalize_skill_gap({"skillName": "X", "confidenceScore": "9" * 400}, 1).confidence_score == 70
