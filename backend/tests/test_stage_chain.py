import pytest
from sqlalchemy import func, select

from talentpipe.core.errors import NotFoundError, ValidationError
from talentpipe.core.stage_machine import ACTIVE, PENDING, WAITING
from talentpipe.models.candidate import Candidate
from talentpipe.models.stage import Stage
from talentpipe.schemas.stage_chain import chain_to_json, parse_stage_chain

from conftest import HR_SCREENER_ID, TECH_LEAD_ID, TWO_STAGE_CHAIN, load_stages


async def _stage_count(session, candidate_id: int) -> int:
    return (
        await session.execute(select(func.count()).select_from(Stage).where(Stage.candidate_id == candidate_id))
    ).scalar_one()


def test_parse_accepts_camel_and_snake_case():
    entries = parse_stage_chain(
        [
            {"stageName": " HR Screen ", "interviewerId": 1},
            {"stage_name": "Tech", "interviewer_id": 2},
        ]
    )
    assert [(e.stage_name, e.interviewer_id) for e in entries] == [("HR Screen", 1), ("Tech", 2)]
    assert chain_to_json(entries) == [
        {"stage_name": "HR Screen", "interviewer_id": 1},
        {"stage_name": "Tech", "interviewer_id": 2},
    ]


@pytest.mark.parametrize(
    "chain",
    [
        [],
        None,
        [{"stageName": "HR Screen"}],
        [{"interviewerId": 1}],
        [{"stageName": "   ", "interviewerId": 1}],
        [{"stageName": "HR Screen", "interviewerId": 1}, {"stageName": "Tech", "interviewerId": None}],
    ],
)
def test_parse_rejects_incomplete_chains(chain):
    with pytest.raises(ValidationError):
        parse_stage_chain(chain)


def test_parse_reports_position_of_bad_entry():
    with pytest.raises(ValidationError) as excinfo:
        parse_stage_chain([{"stageName": "HR Screen", "interviewerId": 1}, {"stageName": "Tech"}])
    assert excinfo.value.details["position"] == 1


async def test_materialize_first_stage_pending_rest_waiting(db_session, pipeline):
    db_session.add(Candidate(candidate_id=7, full_name="Seven", status=ACTIVE, current_stage_index=0))
    await db_session.commit()

    await pipeline.materialize_chain(7, TWO_STAGE_CHAIN)

    stages = await load_stages(db_session, 7)
    assert [(s.stage_index, s.stage_name, s.interviewer_id, s.status) for s in stages] == [
        (0, "HR Screen", HR_SCREENER_ID, PENDING),
        (1, "Tech", TECH_LEAD_ID, WAITING),
    ]


async def test_materialize_replaces_previous_rows_without_gaps(db_session, pipeline, make_candidate):
    candidate = await make_candidate()
    chain = [{"stageName": f"Round {i}", "interviewerId": HR_SCREENER_ID} for i in range(4)]

    await pipeline.materialize_chain(candidate.candidate_id, chain)
    await pipeline.materialize_chain(candidate.candidate_id, chain[:3])

    stages = await load_stages(db_session, candidate.candidate_id)
    assert [s.stage_index for s in stages] == [0, 1, 2]
    assert [s.stage_name for s in stages] == ["Round 0", "Round 1", "Round 2"]


async def test_invalid_chain_leaves_existing_stages(db_session, pipeline, make_candidate):
    candidate = await make_candidate()

    with pytest.raises(ValidationError):
        await pipeline.materialize_chain(candidate.candidate_id, [{"stageName": "Tech"}])
    with pytest.raises(ValidationError):
        await pipeline.materialize_chain(candidate.candidate_id, [])

    assert await _stage_count(db_session, candidate.candidate_id) == 2


async def test_materialize_unknown_candidate(pipeline):
    with pytest.raises(NotFoundError):
        await pipeline.materialize_chain(404, TWO_STAGE_CHAIN)


async def test_create_candidate_stores_chain_and_stages(db_session, make_candidate):
    candidate = await make_candidate()

    assert candidate.status == ACTIVE
    assert candidate.current_stage_index == 0
    assert candidate.interview_stage_chain == [
        {"stage_name": "HR Screen", "interviewer_id": HR_SCREENER_ID},
        {"stage_name": "Tech", "interviewer_id": TECH_LEAD_ID},
    ]
    assert await _stage_count(db_session, candidate.candidate_id) == 2
