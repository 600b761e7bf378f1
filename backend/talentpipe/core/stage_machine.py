from __future__ import annotations

# Stage row statuses.
WAITING = "waiting"
PENDING = "pending"
IN_PROGRESS = "in_progress"
PASSED = "passed"
FAILED = "failed"

ACTIVE_STAGE_STATUSES: frozenset[str] = frozenset({PENDING, IN_PROGRESS})
COMPLETED_STAGE_STATUSES: frozenset[str] = frozenset({PASSED, FAILED})
OUTCOME_STATUSES: frozenset[str] = COMPLETED_STAGE_STATUSES


# Candidate statuses.
ACTIVE = "active"
DOCUMENTATION = "documentation"
HIRED = "hired"
REJECTED = "rejected"
ARCHIVED = "archived"
DISMISSED = "dismissed"


# Interview booking statuses and outcomes.
SCHEDULED = "scheduled"
COMPLETED = "completed"
CANCELLED = "cancelled"
RESCHEDULED = "rescheduled"


# Legacy spellings seen in payloads.
_ALIASES = {
    "in progress": IN_PROGRESS,
    "inprogress": IN_PROGRESS,
    "pass": PASSED,
    "fail": FAILED,
    "canceled": CANCELLED,
}


# Explicit state diagrams: each key can only move to the listed next states.
# A scheduled interview that gets cancelled sends its stage back to pending.
STAGE_GRAPH: dict[str, frozenset[str]] = {
    WAITING: frozenset({PENDING, IN_PROGRESS, PASSED, FAILED}),
    PENDING: frozenset({IN_PROGRESS, PASSED, FAILED}),
    IN_PROGRESS: frozenset({PENDING, PASSED, FAILED}),
    PASSED: frozenset(),
    FAILED: frozenset(),
}

CANDIDATE_GRAPH: dict[str, frozenset[str]] = {
    ACTIVE: frozenset({DOCUMENTATION, REJECTED, ARCHIVED}),
    DOCUMENTATION: frozenset({HIRED, ARCHIVED}),
    HIRED: frozenset({DISMISSED}),
    REJECTED: frozenset(),
    ARCHIVED: frozenset(),
    DISMISSED: frozenset(),
}

INTERVIEW_GRAPH: dict[str, frozenset[str]] = {
    SCHEDULED: frozenset({COMPLETED, CANCELLED, RESCHEDULED}),
    RESCHEDULED: frozenset({COMPLETED, CANCELLED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
}


def normalize_status(raw: str | None) -> str | None:
    if raw is None:
        return None
    normalized = raw.strip().lower().replace("-", "_")
    if not normalized:
        return None
    return _ALIASES.get(normalized, normalized.replace(" ", "_"))



def is_completed_stage(status: str | None) -> bool:
    return normalize_status(status) in COMPLETED_STAGE_STATUSES


def _can_move(graph: dict[str, frozenset[str]], from_status: str | None, to_status: str | None) -> bool:
    from_normalized = normalize_status(from_status)
    to_normalized = normalize_status(to_status)
    if from_normalized is None or to_normalized is None:
        return False
    if from_normalized not in graph or to_normalized not in graph:
        return False
    if from_normalized == to_normalized:
        return False
    return to_normalized in graph[from_normalized]


def can_transition_stage(from_status: str | None, to_status: str | None) -> bool:
    return _can_move(STAGE_GRAPH, from_status, to_status)


def can_transition_candidate(from_status: str | None, to_status: str | None) -> bool:
    return _can_move(CANDIDATE_GRAPH, from_status, to_status)


def can_transition_interview(from_status: str | None, to_status: str | None) -> bool:
    return _can_move(INTERVIEW_GRAPH, from_status, to_status)


def initial_stage_status(stage_index: int) -> str:
    return PENDING if stage_index == 0 else WAITING
