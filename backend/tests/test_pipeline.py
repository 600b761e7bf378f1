import asyncio
from datetime import datetime

import pytest
from sqlalchemy import func, select

from talentpipe.core.errors import ForbiddenError, NotFoundError, PreconditionError, ValidationError
from talentpipe.core.roles import Role
from talentpipe.core.stage_machine import (
    ACTIVE,
    ACTIVE_STAGE_STATUSES,
    COMPLETED,
    DISMISSED,
    DOCUMENTATION,
    FAILED,
    HIRED,
    PASSED,
    PENDING,
    REJECTED,
    WAITING,
)
from talentpipe.models.candidate import Candidate
from talentpipe.models.interview import Interview
from talentpipe.models.stage import Stage
from talentpipe.schemas.user import UserContext
from talentpipe.services.events import decode_meta, list_candidate_events
from talentpipe.services.notifications import EventType, NotificationHook
from talentpipe.services.pipeline import PipelineEngine
from talentpipe.services.scheduler import Scheduler

from conftest import HR_SCREENER_ID, TECH_LEAD_ID, load_stages

BOOKED_AT = datetime(2025, 1, 10, 10, 0)


async def _candidate(session, candidate_id: int) -> Candidate:
    candidate = await session.get(Candidate, candidate_id)
    await session.refresh(candidate)
    return candidate


async def _stage_ids(session, candidate_id: int) -> list[int]:
    return [stage.stage_id for stage in await load_stages(session, candidate_id)]


async def _assert_single_active(session, candidate_id: int) -> None:
    stages = await load_stages(session, candidate_id)
    assert len([s for s in stages if s.status in ACTIVE_STAGE_STATUSES]) <= 1


def _actor(user_id: int, *roles: Role) -> UserContext:
    return UserContext(user_id=user_id, email=f"user{user_id}@example.com", roles=list(roles) or [Role.EMPLOYEE])


async def test_pass_advances_pointer_and_leaves_next_stage_waiting(db_session, pipeline, notifier, make_candidate):
    candidate = await make_candidate()
    candidate_id = candidate.candidate_id
    first_id, _ = await _stage_ids(db_session, candidate_id)

    stage = await pipeline.record_outcome(first_id, "passed", "Good fit")

    assert stage.status == PASSED
    assert stage.comments == "Good fit"
    assert stage.completed_at is not None
    candidate = await _candidate(db_session, candidate_id)
    assert candidate.current_stage_index == 1
    assert candidate.status == ACTIVE
    stages = await load_stages(db_session, candidate_id)
    assert [s.status for s in stages] == [PASSED, WAITING]
    await _assert_single_active(db_session, candidate_id)

    [assigned] = notifier.of_type(EventType.INTERVIEWER_ASSIGNED)
    assert assigned.recipient_id == TECH_LEAD_ID
    assert assigned.payload["stage_name"] == "Tech"
    assert assigned.payload["interviewer_email"] == "tomas.lead@example.com"
    [advanced] = notifier.of_type(EventType.STAGE_ADVANCED)
    assert advanced.payload["to_stage_index"] == 1


async def test_fail_on_last_stage_rejects_candidate(db_session, pipeline, notifier, make_candidate):
    candidate_id = (await make_candidate()).candidate_id
    first_id, second_id = await _stage_ids(db_session, candidate_id)
    await pipeline.record_outcome(first_id, "passed", "Good fit")

    await pipeline.record_outcome(second_id, "failed", "Weak on system design")

    candidate = await _candidate(db_session, candidate_id)
    assert candidate.status == REJECTED
    assert candidate.rejection_stage == "Tech"
    assert candidate.rejection_reason == "Weak on system design"
    assert candidate.current_stage_index == 1
    assert len(notifier.of_type(EventType.CANDIDATE_REJECTED)) == 1


async def test_fail_freezes_pointer_and_keeps_later_stages(db_session, pipeline, make_candidate):
    candidate_id = (await make_candidate()).candidate_id
    first_id, _ = await _stage_ids(db_session, candidate_id)

    await pipeline.record_outcome(first_id, "failed", "Not a fit")

    candidate = await _candidate(db_session, candidate_id)
    assert candidate.status == REJECTED
    assert candidate.current_stage_index == 0
    assert candidate.rejection_stage == "HR Screen"
    assert [s.status for s in await load_stages(db_session, candidate_id)] == [FAILED, WAITING]


async def test_passing_every_stage_moves_to_documentation(db_session, pipeline, notifier, make_candidate):
    candidate_id = (await make_candidate()).candidate_id
    first_id, second_id = await _stage_ids(db_session, candidate_id)

    await pipeline.record_outcome(first_id, "passed", "Good fit")
    await pipeline.record_outcome(second_id, "passed", "Strong design skills")

    candidate = await _candidate(db_session, candidate_id)
    assert candidate.status == DOCUMENTATION
    assert candidate.current_stage_index == 2
    assert len(notifier.of_type(EventType.CANDIDATE_MOVED_TO_DOCUMENTATION)) == 1
    with pytest.raises(PreconditionError):
        await pipeline.move_to_documentation(candidate_id)


async def test_move_to_documentation_requires_all_passed(db_session, pipeline, make_candidate):
    candidate_id = (await make_candidate()).candidate_id

    with pytest.raises(PreconditionError):
        await pipeline.move_to_documentation(candidate_id)

    for stage in await load_stages(db_session, candidate_id):
        stage.status = PASSED
    await db_session.commit()

    candidate = await pipeline.move_to_documentation(candidate_id)
    assert candidate.status == DOCUMENTATION

    with pytest.raises(PreconditionError):
        await pipeline.move_to_documentation(candidate_id)


@pytest.mark.parametrize("comments", ["", "   ", None])
async def test_empty_feedback_is_rejected_without_changes(db_session, pipeline, notifier, make_candidate, comments):
    candidate_id = (await make_candidate()).candidate_id
    first_id, _ = await _stage_ids(db_session, candidate_id)

    with pytest.raises(ValidationError):
        await pipeline.record_outcome(first_id, "passed", comments)

    candidate = await _candidate(db_session, candidate_id)
    assert candidate.current_stage_index == 0
    assert [s.status for s in await load_stages(db_session, candidate_id)] == [PENDING, WAITING]
    assert notifier.events == []


async def test_unknown_outcome_and_bad_rating(db_session, pipeline, make_candidate):
    first_id, _ = await _stage_ids(db_session, (await make_candidate()).candidate_id)

    with pytest.raises(ValidationError):
        await pipeline.record_outcome(first_id, "maybe", "Hard to say")
    with pytest.raises(ValidationError):
        await pipeline.record_outcome(first_id, "passed", "Fine", rating=9)


async def test_outcome_for_unknown_stage(db_session, pipeline):
    with pytest.raises(NotFoundError):
        await pipeline.record_outcome(9999, "passed", "Good fit")
    assert not db_session.in_transaction()


async def test_second_pass_does_not_double_advance(db_session, pipeline, make_candidate):
    candidate_id = (await make_candidate()).candidate_id
    first_id, _ = await _stage_ids(db_session, candidate_id)
    await pipeline.record_outcome(first_id, "passed", "Good fit")

    with pytest.raises(PreconditionError):
        await pipeline.record_outcome(first_id, "passed", "Good fit again")
    with pytest.raises(PreconditionError):
        await pipeline.record_outcome(first_id, "failed", "Changed my mind")

    candidate = await _candidate(db_session, candidate_id)
    assert candidate.current_stage_index == 1
    assert candidate.status == ACTIVE


@pytest.mark.parametrize(
    ("first", "second"),
    [(("passed", "Good fit"), ("failed", "Not a fit")), (("passed", "Good fit"), ("passed", "Also good"))],
)
async def test_concurrent_outcomes_decide_the_stage_once(
    db_session, session_factory, locks, notifier, make_candidate, first, second
):
    candidate_id = (await make_candidate()).candidate_id
    first_id, _ = await _stage_ids(db_session, candidate_id)

    async def record(status, comments):
        async with session_factory() as session:
            engine = PipelineEngine(session, locks=locks, notifier=notifier)
            stage = await engine.record_outcome(first_id, status, comments)
            return stage.status

    results = await asyncio.gather(record(*first), record(*second), return_exceptions=True)

    decided = [r for r in results if isinstance(r, str)]
    refused = [r for r in results if isinstance(r, PreconditionError)]
    assert len(decided) == 1
    assert len(refused) == 1

    candidate = await _candidate(db_session, candidate_id)
    stages = await load_stages(db_session, candidate_id)
    if decided[0] == PASSED:
        assert candidate.status == ACTIVE
        assert candidate.current_stage_index == 1
        assert [s.status for s in stages] == [PASSED, WAITING]
        assert len(notifier.of_type(EventType.STAGE_ADVANCED)) == 1
        assert notifier.of_type(EventType.CANDIDATE_REJECTED) == []
    else:
        assert candidate.status == REJECTED
        assert candidate.current_stage_index == 0
        assert [s.status for s in stages] == [FAILED, WAITING]
        assert len(notifier.of_type(EventType.CANDIDATE_REJECTED)) == 1
        assert notifier.of_type(EventType.STAGE_ADVANCED) == []
    assert locks.active_keys == 0


async def test_outcome_on_future_stage_is_rejected(db_session, pipeline, make_candidate):
    candidate_id = (await make_candidate()).candidate_id
    _, second_id = await _stage_ids(db_session, candidate_id)

    with pytest.raises(PreconditionError):
        await pipeline.record_outcome(second_id, "passed", "Skipped ahead")

    assert (await _candidate(db_session, candidate_id)).current_stage_index == 0


async def test_outcome_completes_the_booking(db_session, pipeline, scheduler, make_candidate):
    candidate_id = (await make_candidate()).candidate_id
    first_id, _ = await _stage_ids(db_session, candidate_id)
    interview = await scheduler.book_interview(first_id, HR_SCREENER_ID, BOOKED_AT)
    interview_id = interview.interview_id

    await pipeline.record_outcome(first_id, "passed", "Good fit", rating=4)

    interview = await db_session.get(Interview, interview_id)
    await db_session.refresh(interview)
    assert interview.outcome == PASSED
    assert interview.status == COMPLETED
    assert interview.notes == "Good fit"
    stage = (await load_stages(db_session, candidate_id))[0]
    assert stage.rating == 4

    with pytest.raises(PreconditionError):
        await scheduler.cancel_interview(interview_id)


async def test_interview_outcome_drives_stage(db_session, pipeline, scheduler, make_candidate):
    candidate_id = (await make_candidate()).candidate_id
    first_id, _ = await _stage_ids(db_session, candidate_id)
    interview = await scheduler.book_interview(first_id, HR_SCREENER_ID, BOOKED_AT)

    updated = await pipeline.record_interview_outcome(interview.interview_id, "failed", "No show of skills")

    assert updated.outcome == FAILED
    assert updated.status == COMPLETED
    stage = (await load_stages(db_session, candidate_id))[0]
    assert stage.status == FAILED
    assert stage.comments == "No show of skills"
    assert (await _candidate(db_session, candidate_id)).status == REJECTED


async def test_cancelled_interview_cannot_take_outcome(db_session, pipeline, scheduler, make_candidate):
    candidate_id = (await make_candidate()).candidate_id
    first_id, _ = await _stage_ids(db_session, candidate_id)
    interview = await scheduler.book_interview(first_id, HR_SCREENER_ID, BOOKED_AT)
    interview_id = interview.interview_id
    await scheduler.cancel_interview(interview_id)

    with pytest.raises(PreconditionError):
        await pipeline.record_interview_outcome(interview_id, "passed", "Good fit")

    stage = (await load_stages(db_session, candidate_id))[0]
    assert stage.status == PENDING
    assert stage.comments is None


async def test_activate_next_stage(db_session, pipeline, make_candidate):
    candidate_id = (await make_candidate()).candidate_id
    first_id, second_id = await _stage_ids(db_session, candidate_id)

    with pytest.raises(PreconditionError):
        await pipeline.activate_stage(candidate_id)

    await pipeline.record_outcome(first_id, "passed", "Good fit")
    stage = await pipeline.activate_stage(candidate_id)

    assert stage.stage_id == second_id
    assert stage.status == PENDING
    await _assert_single_active(db_session, candidate_id)


async def test_documentation_hire_and_dismissal(db_session, pipeline, notifier, make_candidate):
    candidate_id = (await make_candidate()).candidate_id
    first_id, second_id = await _stage_ids(db_session, candidate_id)

    with pytest.raises(PreconditionError):
        await pipeline.complete_documentation(candidate_id)
    with pytest.raises(PreconditionError):
        await pipeline.dismiss(candidate_id, "Restructuring", datetime(2025, 6, 1))

    await pipeline.record_outcome(first_id, "passed", "Good fit")
    await pipeline.record_outcome(second_id, "passed", "Strong")
    hired = await pipeline.complete_documentation(candidate_id)
    assert hired.status == HIRED

    with pytest.raises(ValidationError):
        await pipeline.dismiss(candidate_id, "  ", datetime(2025, 6, 1))

    dismissed = await pipeline.dismiss(candidate_id, "Restructuring", datetime(2025, 6, 1))
    assert dismissed.status == DISMISSED
    assert dismissed.dismissal_reason == "Restructuring"
    assert dismissed.dismissal_date == datetime(2025, 6, 1)
    assert len(notifier.of_type(EventType.CANDIDATE_HIRED)) == 1
    assert len(notifier.of_type(EventType.CANDIDATE_DISMISSED)) == 1

    with pytest.raises(PreconditionError):
        await pipeline.dismiss(candidate_id, "Again", datetime(2025, 7, 1))


async def test_replace_chain_keeps_history_in_audit_trail(db_session, pipeline, make_candidate):
    candidate_id = (await make_candidate()).candidate_id
    first_id, _ = await _stage_ids(db_session, candidate_id)
    await pipeline.record_outcome(first_id, "passed", "Good fit", rating=5)

    stages = await pipeline.replace_stage_chain(
        candidate_id,
        [
            {"stageName": "HR Screen", "interviewerId": HR_SCREENER_ID},
            {"stageName": "System Design", "interviewerId": TECH_LEAD_ID},
            {"stageName": "Founder Chat", "interviewerId": HR_SCREENER_ID},
        ],
    )

    assert [(s.stage_index, s.status) for s in stages] == [(0, PENDING), (1, WAITING), (2, WAITING)]
    assert (await _candidate(db_session, candidate_id)).current_stage_index == 0

    events = [e for e in await list_candidate_events(db_session, candidate_id=candidate_id) if e.action_type == "stage_chain_replaced"]
    assert len(events) == 1
    previous = decode_meta(events[0])["previous_stages"]
    assert previous[0]["status"] == PASSED
    assert previous[0]["comments"] == "Good fit"
    assert previous[0]["rating"] == 5


async def test_replace_chain_only_while_active(db_session, pipeline, make_candidate):
    candidate_id = (await make_candidate()).candidate_id
    first_id, _ = await _stage_ids(db_session, candidate_id)
    await pipeline.record_outcome(first_id, "failed", "Not a fit")

    with pytest.raises(PreconditionError):
        await pipeline.replace_stage_chain(candidate_id, [{"stageName": "Retry", "interviewerId": HR_SCREENER_ID}])


async def test_materialize_chain_only_while_active(db_session, pipeline, make_candidate):
    candidate_id = (await make_candidate()).candidate_id
    first_id, _ = await _stage_ids(db_session, candidate_id)
    await pipeline.record_outcome(first_id, "failed", "Not a fit")

    with pytest.raises(PreconditionError):
        await pipeline.materialize_chain(candidate_id, [{"stageName": "Retry", "interviewerId": HR_SCREENER_ID}])

    candidate = await _candidate(db_session, candidate_id)
    assert candidate.status == REJECTED
    assert candidate.current_stage_index == 0
    assert candidate.rejection_stage == "HR Screen"
    assert [s.status for s in await load_stages(db_session, candidate_id)] == [FAILED, WAITING]


async def test_feedback_edit_permissions(db_session, pipeline, make_candidate):
    candidate_id = (await make_candidate()).candidate_id
    first_id, _ = await _stage_ids(db_session, candidate_id)

    with pytest.raises(PreconditionError):
        await pipeline.update_stage_comments(first_id, "Too early", actor=_actor(HR_SCREENER_ID))

    await pipeline.record_outcome(first_id, "passed", "Good fit")

    with pytest.raises(ForbiddenError):
        await pipeline.update_stage_comments(first_id, "Hijacked", actor=_actor(TECH_LEAD_ID))
    with pytest.raises(ValidationError):
        await pipeline.update_stage_comments(first_id, "", actor=_actor(HR_SCREENER_ID))

    stage = await pipeline.update_stage_comments(first_id, "Good fit, strong communicator", actor=_actor(HR_SCREENER_ID))
    assert stage.comments == "Good fit, strong communicator"

    stage = await pipeline.update_stage_comments(first_id, "Edited by admin", actor=_actor(99, Role.ADMIN))
    assert stage.comments == "Edited by admin"


async def test_delete_candidate_cascades(db_session, pipeline, scheduler, make_candidate):
    candidate_id = (await make_candidate()).candidate_id
    first_id, _ = await _stage_ids(db_session, candidate_id)
    await scheduler.book_interview(first_id, HR_SCREENER_ID, BOOKED_AT)

    await pipeline.delete_candidate(candidate_id)

    for model in (Stage, Interview):
        count = (
            await db_session.execute(select(func.count()).select_from(model).where(model.candidate_id == candidate_id))
        ).scalar_one()
        assert count == 0
    with pytest.raises(NotFoundError):
        await pipeline.candidate_detail(candidate_id)


async def test_interviewer_workload(db_session, pipeline, make_candidate):
    candidate_id = (await make_candidate()).candidate_id
    first_id, _ = await _stage_ids(db_session, candidate_id)

    rows = await pipeline.interviewer_workload(HR_SCREENER_ID)
    assert [(c.candidate_id, s.stage_id) for c, s in rows] == [(candidate_id, first_id)]
    assert await pipeline.interviewer_workload(TECH_LEAD_ID) == []


class ExplodingHook(NotificationHook):
    async def _deliver(self, event) -> None:
        raise RuntimeError("smtp down")


async def test_notification_failure_does_not_undo_transition(db_session, locks, make_candidate, caplog):
    candidate_id = (await make_candidate()).candidate_id
    first_id, _ = await _stage_ids(db_session, candidate_id)
    pipeline = PipelineEngine(db_session, locks=locks, notifier=ExplodingHook())
    scheduler = Scheduler(db_session, locks=locks, notifier=ExplodingHook())

    await scheduler.book_interview(first_id, HR_SCREENER_ID, BOOKED_AT)
    stage = await pipeline.record_outcome(first_id, "passed", "Good fit")

    assert stage.status == PASSED
    assert (await _candidate(db_session, candidate_id)).current_stage_index == 1
    assert "notification_delivery_failed" in caplog.text
