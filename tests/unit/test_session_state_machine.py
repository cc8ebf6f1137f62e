"""Unit tests for the session lifecycle"""

import pytest
from datetime import datetime, timedelta, timezone

from card_advisor.domain.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from card_advisor.domain.lifecycle import TRANSITIONS, can_transition
from card_advisor.domain.models import SessionStatus
from card_advisor.infrastructure.database.repositories import SessionRepository
from card_advisor.infrastructure.database.session import Database
from card_advisor.services.sessions import SessionStateMachine, SessionSummary


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 2, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def machine(database: Database, clock: FakeClock) -> SessionStateMachine:
    return SessionStateMachine(SessionRepository(database), ttl_hours=24, max_retries=2, clock=clock)


def walk_to(machine: SessionStateMachine, session_id: str, status: SessionStatus) -> None:
    path = [
        (SessionStatus.QUEUED, 0),
        (SessionStatus.EXTRACTING, 10),
        (SessionStatus.CATEGORIZING, 70),
        (SessionStatus.MCC_DISCOVERY, 80),
        (SessionStatus.ANALYZING, 90),
    ]
    for target, progress in path:
        machine.advance(session_id, target, progress)
        if target == status:
            return


def test_create_starts_uploading(machine: SessionStateMachine, clock: FakeClock):
    session = machine.create()

    assert session.status == SessionStatus.UPLOADING
    assert session.progress == 0
    assert session.retry_count == 0
    assert session.expires_at == clock.now + timedelta(hours=24)
    assert session.token and session.token != session.id


def test_resolve_by_id_or_token(machine: SessionStateMachine):
    session = machine.create()

    assert machine.resolve(session.id).id == session.id
    assert machine.resolve(session.token).id == session.id


def test_happy_path_reaches_completed(machine: SessionStateMachine):
    session = machine.create()
    walk_to(machine, session.id, SessionStatus.ANALYZING)

    completed = machine.complete(
        session.id,
        SessionSummary(
            total_spend=150.0,
            top_category="Groceries",
            total_transactions=2,
            categorized_count=2,
            unknown_mcc_count=0,
            new_mcc_discovered=0,
        ),
    )

    assert completed.status == SessionStatus.COMPLETED
    assert completed.progress == 100
    stored = machine.resolve(session.id)
    assert stored.top_category == "Groceries"
    assert stored.total_spend == 150.0


def test_out_of_table_target_fails_and_leaves_status_unchanged(machine: SessionStateMachine):
    session = machine.create()
    machine.advance(session.id, SessionStatus.QUEUED, 0)

    with pytest.raises(InvalidTransitionError):
        machine.advance(session.id, SessionStatus.ANALYZING, 90)

    stored = machine.resolve(session.id)
    assert stored.status == SessionStatus.QUEUED
    assert stored.progress == 0


def test_every_reachable_status_follows_transition_table(machine: SessionStateMachine):
    """Try every target from every reachable state; accepted moves must be in the table"""
    for status in SessionStatus:
        for target in SessionStatus:
            session = machine.create()
            if status == SessionStatus.FAILED:
                machine.fail(session.id, "boom")
            elif status == SessionStatus.COMPLETED:
                walk_to(machine, session.id, SessionStatus.ANALYZING)
                machine.complete(session.id)
            elif status != SessionStatus.UPLOADING:
                walk_to(machine, session.id, status)

            before = machine.resolve(session.id)
            assert before.status == status
            try:
                after = machine.advance(session.id, target, before.progress)
            except InvalidTransitionError:
                assert not can_transition(status, target)
                assert machine.resolve(session.id).status == status
            else:
                assert target in TRANSITIONS[status]
                assert after.status == target


def test_progress_is_clamped_and_never_decreases(machine: SessionStateMachine):
    session = machine.create()
    machine.advance(session.id, SessionStatus.QUEUED, 0)
    machine.advance(session.id, SessionStatus.EXTRACTING, 45)

    lower = machine.advance(session.id, SessionStatus.EXTRACTING, 20)
    assert lower.progress == 45

    over = machine.advance(session.id, SessionStatus.EXTRACTING, 250)
    assert over.progress == 100


def test_fail_records_message_without_counting_a_retry(machine: SessionStateMachine):
    session = machine.create()
    walk_to(machine, session.id, SessionStatus.EXTRACTING)

    failed = machine.fail(session.id, "Classifier unavailable")

    assert failed.status == SessionStatus.FAILED
    assert failed.error_message == "Classifier unavailable"
    assert failed.retry_count == 0


def test_fail_after_completion_is_rejected(machine: SessionStateMachine):
    session = machine.create()
    walk_to(machine, session.id, SessionStatus.ANALYZING)
    machine.complete(session.id)

    with pytest.raises(InvalidTransitionError):
        machine.fail(session.id, "late failure")
    assert machine.resolve(session.id).status == SessionStatus.COMPLETED


def test_schedule_retry_requeues_until_budget_is_spent(machine: SessionStateMachine):
    session = machine.create()
    walk_to(machine, session.id, SessionStatus.EXTRACTING)
    machine.fail(session.id, "timed out")

    assert machine.schedule_retry(session.id) is True
    requeued = machine.resolve(session.id)
    assert requeued.status == SessionStatus.QUEUED
    assert requeued.retry_count == 1
    assert requeued.progress == 0
    assert requeued.error_message is None

    machine.advance(session.id, SessionStatus.EXTRACTING, 10)
    machine.fail(session.id, "timed out again")

    assert machine.schedule_retry(session.id) is False
    exhausted = machine.resolve(session.id)
    assert exhausted.status == SessionStatus.FAILED
    assert exhausted.retry_count == 2
    assert exhausted.error_message == "timed out again"

    with pytest.raises(InvalidTransitionError):
        machine.advance(session.id, SessionStatus.QUEUED, 0)


def test_begin_attempt_reopens_completed_sessions(machine: SessionStateMachine):
    session = machine.create()
    walk_to(machine, session.id, SessionStatus.EXTRACTING)
    machine.fail(session.id, "timed out")
    machine.schedule_retry(session.id)
    walk_to(machine, session.id, SessionStatus.ANALYZING)
    machine.complete(session.id)

    reopened = machine.begin_attempt(session.id)

    assert reopened.status == SessionStatus.QUEUED
    assert reopened.progress == 0
    assert reopened.retry_count == 0


def test_begin_attempt_requeues_failed_session_with_retries_left(machine: SessionStateMachine):
    session = machine.create()
    walk_to(machine, session.id, SessionStatus.EXTRACTING)
    machine.fail(session.id, "timed out")
    machine.schedule_retry(session.id)
    machine.advance(session.id, SessionStatus.EXTRACTING, 10)
    machine.fail(session.id, "Document does not look like a card statement")

    requeued = machine.begin_attempt(session.id)

    assert requeued.status == SessionStatus.QUEUED
    assert requeued.retry_count == 1
    assert requeued.error_message is None


def test_begin_attempt_keeps_exhausted_session_failed(machine: SessionStateMachine):
    session = machine.create()
    walk_to(machine, session.id, SessionStatus.EXTRACTING)
    for _ in range(2):
        machine.fail(session.id, "timed out")
        if machine.schedule_retry(session.id):
            machine.advance(session.id, SessionStatus.EXTRACTING, 10)

    with pytest.raises(InvalidTransitionError):
        machine.begin_attempt(session.id)

    stored = machine.resolve(session.id)
    assert stored.status == SessionStatus.FAILED
    assert stored.retry_count == 2
    assert stored.error_message == "timed out"


def test_fail_on_failed_session_is_rejected(machine: SessionStateMachine):
    session = machine.create()
    machine.fail(session.id, "first")

    with pytest.raises(InvalidTransitionError):
        machine.fail(session.id, "second")
    assert machine.resolve(session.id).error_message == "first"


def test_exhausting_retries_keeps_status_and_counts_no_transition(machine: SessionStateMachine):
    session = machine.create()
    walk_to(machine, session.id, SessionStatus.EXTRACTING)
    machine.fail(session.id, "timed out")
    machine.schedule_retry(session.id)
    machine.advance(session.id, SessionStatus.EXTRACTING, 10)
    machine.fail(session.id, "timed out")

    assert machine.schedule_retry(session.id) is False
    assert not can_transition(SessionStatus.FAILED, SessionStatus.FAILED)
    assert machine.resolve(session.id).status == SessionStatus.FAILED


def test_begin_attempt_rejects_in_flight_sessions(machine: SessionStateMachine):
    session = machine.create()
    walk_to(machine, session.id, SessionStatus.CATEGORIZING)

    with pytest.raises(InvalidTransitionError):
        machine.begin_attempt(session.id)


def test_expired_session_is_deleted_on_read(machine: SessionStateMachine, clock: FakeClock):
    session = machine.create()
    clock.advance(hours=25)

    with pytest.raises(NotFoundError):
        machine.resolve(session.id)

    # Gone from storage, not only hidden
    assert machine.store.get(session.id) is None


def test_extend_pushes_expiry(machine: SessionStateMachine, clock: FakeClock):
    session = machine.create()

    extended = machine.extend(session.id, 12)
    assert extended.expires_at == session.expires_at + timedelta(hours=12)

    clock.advance(hours=30)
    assert machine.resolve(session.id).id == session.id


def test_extend_rejects_non_positive_hours(machine: SessionStateMachine):
    session = machine.create()

    with pytest.raises(ValidationError):
        machine.extend(session.id, 0)


def test_extend_missing_session(machine: SessionStateMachine):
    with pytest.raises(NotFoundError):
        machine.extend("missing", 5)


def test_cleanup_and_stats(machine: SessionStateMachine, clock: FakeClock):
    old = machine.create()
    clock.advance(hours=20)
    fresh = machine.create()
    clock.advance(hours=5)

    stats = machine.stats()
    assert stats.total == 2
    assert stats.expired == 1
    assert stats.active == 1
    assert stats.by_status == {"uploading": 2}

    assert machine.cleanup_expired() == 1
    with pytest.raises(NotFoundError):
        machine.resolve(old.id)
    assert machine.resolve(fresh.id).id == fresh.id


def test_delete_removes_session(machine: SessionStateMachine):
    session = machine.create()
    machine.delete(session.id)

    with pytest.raises(NotFoundError):
        machine.resolve(session.id)
