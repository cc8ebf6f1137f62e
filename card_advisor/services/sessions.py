"""Session lifecycle: creation, status transitions, expiry and retry bookkeeping"""

import logging
import secrets
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Optional

from card_advisor.domain.contracts import SessionStore
from card_advisor.domain.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from card_advisor.domain.lifecycle import can_transition, is_terminal
from card_advisor.domain.models import ProcessingSession, SessionStats, SessionStatus
from card_advisor.infrastructure.observability.metrics import session_transition_counter
from card_advisor.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class SessionSummary:
    """Aggregate figures written onto a session when processing completes"""

    total_spend: float
    top_category: Optional[str]
    total_transactions: int
    categorized_count: int
    unknown_mcc_count: int
    new_mcc_discovered: int


class SessionStateMachine:
    """
    Sole writer of session status and progress.

    Every write is a compare-and-set on the stored status, so a concurrent
    writer (or a delete) surfaces as InvalidTransitionError / NotFoundError
    instead of a lost update.
    """

    def __init__(
        self,
        store: SessionStore,
        ttl_hours: int = 24,
        max_retries: int = 2,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.ttl_hours = ttl_hours
        self.max_retries = max_retries
        self.clock = clock

    def create(self) -> ProcessingSession:
        now = self.clock()
        session = ProcessingSession(
            id=str(uuid.uuid4()),
            token=secrets.token_urlsafe(32),
            status=SessionStatus.UPLOADING,
            progress=0,
            retry_count=0,
            expires_at=now + timedelta(hours=self.ttl_hours),
        )
        created = self.store.create(session)
        logger.info("Session created", extra={"session_id": created.id, "expires_at": created.expires_at.isoformat()})
        return created

    def resolve(self, token_or_id: str) -> ProcessingSession:
        """Find a live session by id or token; expired sessions are deleted and reported missing"""
        session = self.store.get(token_or_id) or self.store.get_by_token(token_or_id)
        if session is None:
            raise NotFoundError("Session not found")
        if session.is_expired(self.clock()):
            self.store.delete(session.id)
            logger.info("Expired session removed on read", extra={"session_id": session.id})
            raise NotFoundError("Session not found or expired")
        return session

    def _write(self, current: ProcessingSession, updated: ProcessingSession, note: str = "") -> ProcessingSession:
        if not self.store.update(updated, expected_status=current.status):
            latest = self.store.get(current.id)
            if latest is None:
                raise NotFoundError("Session not found")
            logger.error(
                "Concurrent session update",
                extra={
                    "session_id": current.id,
                    "expected_status": current.status.value,
                    "actual_status": latest.status.value,
                },
            )
            raise InvalidTransitionError(
                f"Session status changed to {latest.status.value} while moving to {updated.status.value}"
            )

        logger.info(
            "Session transition" if updated.status != current.status else "Session updated",
            extra={
                "session_id": current.id,
                "from_status": current.status.value,
                "to_status": updated.status.value,
                "from_progress": current.progress,
                "to_progress": updated.progress,
                "note": note,
            },
        )
        if updated.status != current.status:
            session_transition_counter.labels(status=updated.status.value).inc()
        return updated

    def _update_fields(self, session: ProcessingSession, note: str, **changes) -> ProcessingSession:
        """Write fields other than status; the stored status is left as it is"""
        if "status" in changes:
            raise ValueError("Status changes go through advance, fail or complete")
        return self._write(session, replace(session, **changes), note)

    def _reject(self, session: ProcessingSession, target: SessionStatus, reason: str = "") -> None:
        logger.error(
            "Invalid session transition",
            extra={
                "session_id": session.id,
                "from_status": session.status.value,
                "to_status": target.value,
                "reason": reason,
            },
        )
        message = f"Cannot move session from {session.status.value} to {target.value}"
        raise InvalidTransitionError(f"{message}: {reason}" if reason else message)

    def advance(self, session_id: str, target: SessionStatus, progress: int, note: str = "") -> ProcessingSession:
        """
        Move a session to target and record progress.

        Progress is clamped to 0-100 and never decreases within an attempt;
        entering queued starts a new attempt.
        """
        session = self.resolve(session_id)
        if not can_transition(session.status, target):
            self._reject(session, target)
        if session.status == SessionStatus.FAILED and session.retry_count >= self.max_retries:
            self._reject(session, target, "retries exhausted")

        clamped = min(max(int(progress), 0), 100)
        new_attempt = target == SessionStatus.QUEUED and session.status != SessionStatus.QUEUED
        updated = replace(
            session,
            status=target,
            progress=clamped if new_attempt else max(session.progress, clamped),
            error_message=None if new_attempt else session.error_message,
        )
        return self._write(session, updated, note)

    def begin_attempt(self, session_id: str) -> ProcessingSession:
        """
        Queue a session for a fresh extraction run.

        uploading moves to queued; completed sessions are reopened with the retry
        budget reset (re-extraction); failed sessions re-queue only while retries
        remain and keep their retry count; queued sessions are left as they are.
        """
        session = self.resolve(session_id)
        if session.status == SessionStatus.QUEUED:
            return session
        if session.status in (SessionStatus.UPLOADING, SessionStatus.FAILED):
            return self.advance(session_id, SessionStatus.QUEUED, 0, note="queued")
        if session.status != SessionStatus.COMPLETED:
            self._reject(session, SessionStatus.QUEUED, "processing already in progress")

        reopened = replace(session, status=SessionStatus.QUEUED, progress=0, retry_count=0, error_message=None)
        return self._write(session, reopened, note="reopened")

    def fail(self, session_id: str, message: str) -> ProcessingSession:
        session = self.resolve(session_id)
        if not can_transition(session.status, SessionStatus.FAILED):
            self._reject(session, SessionStatus.FAILED, f"session already {session.status.value}")
        updated = replace(session, status=SessionStatus.FAILED, error_message=message)
        return self._write(session, updated, note="failed")

    def complete(self, session_id: str, summary: Optional[SessionSummary] = None) -> ProcessingSession:
        session = self.resolve(session_id)
        if is_terminal(session.status):
            self._reject(session, SessionStatus.COMPLETED)
        updated = replace(session, status=SessionStatus.COMPLETED, progress=100, error_message=None)
        if summary is not None:
            updated = replace(
                updated,
                total_spend=summary.total_spend,
                top_category=summary.top_category,
                total_transactions=summary.total_transactions,
                categorized_count=summary.categorized_count,
                unknown_mcc_count=summary.unknown_mcc_count,
                new_mcc_discovered=summary.new_mcc_discovered,
            )
        return self._write(session, updated, note="completed")

    def schedule_retry(self, session_id: str) -> bool:
        """
        Count a retryable failure against a failed session.

        Returns True and re-queues the session while retry_count stays below
        max_retries; otherwise the session remains failed with its error intact.
        """
        session = self.resolve(session_id)
        if session.status != SessionStatus.FAILED:
            self._reject(session, SessionStatus.QUEUED, "only failed sessions can be retried")

        retry_count = session.retry_count + 1
        if retry_count < self.max_retries:
            updated = replace(session, status=SessionStatus.QUEUED, progress=0, retry_count=retry_count, error_message=None)
            self._write(session, updated, note=f"retry {retry_count}")
            return True

        self._update_fields(session, "retries exhausted", retry_count=retry_count)
        return False

    def extend(self, session_id: str, hours: int = 24) -> ProcessingSession:
        if hours <= 0:
            raise ValidationError("Extension hours must be positive")
        session = self.resolve(session_id)
        return self._update_fields(session, f"extended {hours}h", expires_at=session.expires_at + timedelta(hours=hours))

    def delete(self, session_id: str) -> None:
        session = self.resolve(session_id)
        self.store.delete(session.id)
        logger.info("Session deleted", extra={"session_id": session.id})

    def cleanup_expired(self) -> int:
        """Optional sweep; reads already enforce expiry on their own"""
        removed = 0
        for session_id in self.store.list_expired(self.clock()):
            if self.store.delete(session_id):
                removed += 1
        if removed:
            logger.info("Expired sessions cleaned up", extra={"removed": removed})
        return removed

    def stats(self) -> SessionStats:
        return self.store.stats(self.clock())
