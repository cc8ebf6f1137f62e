"""Processing service - the operations the outside world calls"""

import asyncio
import logging
import time
import uuid
from typing import List, Optional

from card_advisor.domain.contracts import ProgressSink
from card_advisor.domain.exceptions import ValidationError
from card_advisor.domain.models import (
    ExtractionContext,
    ExtractionHints,
    ExtractionResult,
    JobHandle,
    ProcessingSession,
    RecommendationOptions,
    RecommendationResult,
    SessionStats,
    SpendingAnalysis,
)
from card_advisor.infrastructure.observability.metrics import jobs_in_flight_gauge
from card_advisor.services.extraction import ExtractionOrchestrator
from card_advisor.services.recommendations import RecommendationEngine
from card_advisor.services.sessions import SessionStateMachine
from card_advisor.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


class ProcessingService:
    """Facade over sessions, the extraction pipeline and the recommendation engine"""

    def __init__(
        self,
        sessions: SessionStateMachine,
        orchestrator: ExtractionOrchestrator,
        recommendations: RecommendationEngine,
        max_concurrent_jobs: int = 3,
    ):
        self.sessions = sessions
        self.orchestrator = orchestrator
        self.recommendations = recommendations
        self.max_concurrent_jobs = max_concurrent_jobs
        # Excess jobs wait here for a free slot
        self._job_slots = asyncio.Semaphore(max_concurrent_jobs)

    def create_session(self) -> ProcessingSession:
        return self.sessions.create()

    def begin_extraction(
        self, session_id: str, document_ref: str, hints: Optional[ExtractionHints] = None
    ) -> JobHandle:
        """Queue a session for extraction; the caller runs the returned handle with run_job"""
        if not document_ref or not document_ref.strip():
            raise ValidationError("document_ref is required")
        hints = hints or ExtractionHints()
        if hints.expected_transaction_count is not None and hints.expected_transaction_count < 0:
            raise ValidationError("expected_transaction_count cannot be negative")

        session = self.sessions.begin_attempt(session_id)
        handle = JobHandle(
            job_id=str(uuid.uuid4()),
            session_id=session.id,
            document_ref=document_ref,
            queued_at=utcnow(),
            hints=hints,
        )
        logger.info("Extraction queued", extra={"session_id": session.id, "job_id": handle.job_id})
        return handle

    async def run_job(self, handle: JobHandle, sink: Optional[ProgressSink] = None) -> ExtractionResult:
        """Run a queued job once a worker slot is free"""
        queued_at = time.time()
        async with self._job_slots:
            jobs_in_flight_gauge.inc()
            logger.info(
                "Job started",
                extra={
                    "session_id": handle.session_id,
                    "job_id": handle.job_id,
                    "wait_ms": (time.time() - queued_at) * 1000,
                },
            )
            try:
                return await self.orchestrator.run(
                    ExtractionContext(session_id=handle.session_id, document_ref=handle.document_ref, hints=handle.hints),
                    sink,
                )
            finally:
                jobs_in_flight_gauge.dec()

    async def run_batch(self, handles: List[JobHandle], sink: Optional[ProgressSink] = None) -> List[ExtractionResult]:
        """Run queued jobs back to back in a single worker slot, pausing between classifier calls"""
        contexts = [
            ExtractionContext(session_id=h.session_id, document_ref=h.document_ref, hints=h.hints) for h in handles
        ]
        async with self._job_slots:
            jobs_in_flight_gauge.inc()
            try:
                return await self.orchestrator.run_batch(contexts, sink)
            finally:
                jobs_in_flight_gauge.dec()

    def get_session_status(self, session_id: str) -> ProcessingSession:
        return self.sessions.resolve(session_id)

    def get_recommendations(
        self, session_id: str, options: Optional[RecommendationOptions] = None
    ) -> RecommendationResult:
        return self.recommendations.generate(session_id, options)

    def get_spending_analysis(self, session_id: str) -> SpendingAnalysis:
        return self.recommendations.spending_analysis(session_id)

    def delete_cached_recommendations(self, session_id: str) -> bool:
        return self.recommendations.invalidate(session_id)

    def extend_session(self, session_id: str, hours: int = 24) -> ProcessingSession:
        return self.sessions.extend(session_id, hours)

    def delete_session(self, session_id: str) -> None:
        session = self.sessions.resolve(session_id)
        self.orchestrator.cancel(session.id)
        self.sessions.delete(session.id)

    def cleanup_expired_sessions(self) -> int:
        return self.sessions.cleanup_expired()

    def session_stats(self) -> SessionStats:
        return self.sessions.stats()
