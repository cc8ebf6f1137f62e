"""Statement extraction pipeline: parse, guard, classify, sanitize, persist, categorize"""

import asyncio
import logging
import time
from typing import Dict, List, Optional

from card_advisor.config import Settings, settings as default_settings
from card_advisor.domain.aggregation import SpendingAggregator
from card_advisor.domain.categorization import MerchantCategorizer, is_spending
from card_advisor.domain.contracts import DocumentParser, ProgressSink, TextClassifier, TransactionStore
from card_advisor.domain.document_analysis import clean_text, suitability_problems
from card_advisor.domain.exceptions import (
    ClassifierRejectedError,
    ClassifierTimeoutError,
    ClassifierUnavailableError,
    DomainException,
    InvalidTransitionError,
    NotFoundError,
    UnsuitableDocumentError,
)
from card_advisor.domain.extraction import quality_warnings, sanitize_candidates
from card_advisor.domain.models import (
    ClassifierResult,
    ExtractionContext,
    ExtractionHints,
    ExtractionResult,
    ProgressEvent,
    SessionStatus,
)
from card_advisor.infrastructure.observability.logging import log_extraction
from card_advisor.infrastructure.observability.metrics import (
    classifier_failure_counter,
    classifier_latency_histogram,
    record_extraction,
)
from card_advisor.services.sessions import SessionStateMachine, SessionSummary

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Internal processing error"


class ExtractionOrchestrator:
    """Drives one statement through every stage and leaves its session completed or failed"""

    def __init__(
        self,
        sessions: SessionStateMachine,
        parser: DocumentParser,
        classifier: TextClassifier,
        transactions: TransactionStore,
        categorizer: Optional[MerchantCategorizer] = None,
        aggregator: Optional[SpendingAggregator] = None,
        settings: Optional[Settings] = None,
    ):
        self.sessions = sessions
        self.parser = parser
        self.classifier = classifier
        self.transactions = transactions
        self.categorizer = categorizer or MerchantCategorizer()
        self.aggregator = aggregator or SpendingAggregator()
        self.settings = settings or default_settings
        self._cancellations: Dict[str, asyncio.Event] = {}

    async def run(self, context: ExtractionContext, sink: Optional[ProgressSink] = None) -> ExtractionResult:
        """
        Process one statement end to end.

        Retryable failures (classifier outages, timeouts, storage errors) re-queue the
        session until the retry budget runs out. Everything else fails the session at
        once. Never raises for stage errors; the outcome is in the returned result.
        """
        session_id = context.session_id
        start_time = time.time()
        attempts = 0

        try:
            self.sessions.begin_attempt(session_id)
        except (NotFoundError, InvalidTransitionError) as e:
            return ExtractionResult(session_id, success=False, status=SessionStatus.FAILED, attempts=0, error_message=str(e))

        while True:
            attempts += 1
            try:
                result = await self._run_attempt(context, sink, attempts)
                self._finish(result, start_time)
                return result

            except NotFoundError as e:
                logger.warning("Session disappeared during extraction", extra={"session_id": session_id})
                return ExtractionResult(session_id, success=False, status=SessionStatus.FAILED, attempts=attempts, error_message=str(e))

            except DomainException as e:
                message = str(e)
                logger.warning(
                    "Extraction attempt failed",
                    extra={"session_id": session_id, "attempt": attempts, "error": message, "retryable": e.retryable},
                )
                failed = self._fail_quietly(session_id, message)
                if failed and e.retryable and self._retry_quietly(session_id):
                    continue
                result = ExtractionResult(
                    session_id, success=False, status=SessionStatus.FAILED, attempts=attempts, error_message=message
                )
                self._finish(result, start_time)
                return result

            except Exception:
                logger.exception("Unexpected extraction error", extra={"session_id": session_id, "attempt": attempts})
                self._fail_quietly(session_id, GENERIC_FAILURE_MESSAGE)
                result = ExtractionResult(
                    session_id,
                    success=False,
                    status=SessionStatus.FAILED,
                    attempts=attempts,
                    error_message=GENERIC_FAILURE_MESSAGE,
                )
                self._finish(result, start_time)
                return result

    def _finish(self, result: ExtractionResult, start_time: float) -> None:
        duration_ms = (time.time() - start_time) * 1000
        record_extraction(result.success, result.transactions_extracted)
        log_extraction(result.session_id, result.success, result.attempts, result.transactions_extracted, duration_ms)

    def _fail_quietly(self, session_id: str, message: str) -> bool:
        try:
            self.sessions.fail(session_id, message)
            return True
        except DomainException as e:
            logger.warning("Could not mark session failed", extra={"session_id": session_id, "error": str(e)})
            return False

    def _retry_quietly(self, session_id: str) -> bool:
        try:
            retried = self.sessions.schedule_retry(session_id)
        except DomainException as e:
            logger.warning("Could not schedule retry", extra={"session_id": session_id, "error": str(e)})
            return False
        if retried:
            logger.info("Extraction re-queued", extra={"session_id": session_id})
        return retried

    async def _run_attempt(self, context: ExtractionContext, sink: Optional[ProgressSink], attempt: int) -> ExtractionResult:
        session_id = context.session_id

        # 1. Parse
        await self._stage(session_id, SessionStatus.EXTRACTING, 10, "parsing_document", "Reading statement document", sink)
        document = await asyncio.to_thread(self.parser.parse, context.document_ref)

        # 2. Content guard before the expensive classifier call
        await self._stage(session_id, SessionStatus.EXTRACTING, 15, "validating_content", "Checking document content", sink)
        problems = suitability_problems(document.stats, self.settings.min_document_words)
        if problems:
            raise UnsuitableDocumentError(
                "Document does not look like a card statement: " + "; ".join(problems)
                + ". Upload the statement PDF issued by your bank."
            )

        # 3. Clean
        await self._stage(session_id, SessionStatus.EXTRACTING, 20, "preparing_text", "Preparing text for analysis", sink)
        text = clean_text(document.text)[: self.settings.classifier_max_text_chars]

        # 4. Classify
        await self._stage(session_id, SessionStatus.EXTRACTING, 30, "classifying", "Extracting transactions", sink)
        classified = await self._classify(text, context.hints)
        await self._stage(
            session_id,
            SessionStatus.EXTRACTING,
            45,
            "classification_completed",
            f"Found {len(classified.candidates)} candidate transactions",
            sink,
        )

        # 5. Sanitize
        await self._stage(session_id, SessionStatus.EXTRACTING, 50, "validating_transactions", "Validating transactions", sink)
        warnings = list(classified.warnings) + quality_warnings(classified.candidates)
        sanitized = sanitize_candidates(
            classified.candidates,
            min_confidence=self.settings.min_extraction_confidence,
            needs_review_threshold=self.settings.needs_review_threshold,
            default_confidence=classified.confidence,
        )
        if sanitized.dropped:
            logger.warning(
                "Dropped invalid candidates",
                extra={"session_id": session_id, "dropped": sanitized.dropped, "reasons": sanitized.drop_reasons[:20]},
            )
        if not sanitized.transactions:
            raise UnsuitableDocumentError("No valid transactions could be extracted from the document")
        expected = context.hints.expected_transaction_count
        if expected and abs(len(sanitized.transactions) - expected) > expected * 0.5:
            warnings.append(f"Extracted {len(sanitized.transactions)} transactions, expected about {expected}")

        # 6. Persist (delete-then-insert)
        await self._stage(session_id, SessionStatus.EXTRACTING, 60, "storing_transactions", "Saving transactions", sink)
        stored = await asyncio.to_thread(self.transactions.replace, session_id, sanitized.transactions)

        await self._stage(session_id, SessionStatus.CATEGORIZING, 70, "categorizing", "Matching merchants to categories", sink)
        known = self.categorizer.categorize_known(stored)

        await self._stage(session_id, SessionStatus.MCC_DISCOVERY, 80, "mcc_discovery", "Classifying unrecognised merchants", sink)
        categorized = self.categorizer.discover_unknown(known)
        stored = await asyncio.to_thread(self.transactions.replace, session_id, categorized.transactions)

        await self._stage(session_id, SessionStatus.ANALYZING, 90, "analyzing", "Analysing spending", sink)
        patterns = self.aggregator.aggregate(stored)
        summary = SessionSummary(
            total_spend=round(sum(t.amount for t in stored if is_spending(t)), 2),
            top_category=patterns[0].category_name if patterns else None,
            total_transactions=len(stored),
            categorized_count=categorized.categorized_count,
            unknown_mcc_count=categorized.unknown_mcc_count,
            new_mcc_discovered=categorized.new_mcc_discovered,
        )
        self.sessions.complete(session_id, summary)
        await self._notify(sink, ProgressEvent(session_id, "completed", 100, "Statement processed"))

        return ExtractionResult(
            session_id=session_id,
            success=True,
            status=SessionStatus.COMPLETED,
            attempts=attempt,
            transactions_extracted=len(stored),
            transactions_dropped=sanitized.dropped,
            needs_review_count=sum(1 for t in stored if t.needs_review),
            warnings=warnings,
        )

    async def _classify(self, text: str, hints: ExtractionHints) -> ClassifierResult:
        timeout = self.settings.classifier_timeout_seconds
        try:
            with classifier_latency_histogram.time():
                return await asyncio.wait_for(self.classifier.extract(text, hints), timeout=timeout)
        except asyncio.TimeoutError as e:
            classifier_failure_counter.labels(reason="timeout").inc()
            raise ClassifierTimeoutError(f"Classifier timed out after {timeout}s") from e
        except ClassifierTimeoutError:
            classifier_failure_counter.labels(reason="timeout").inc()
            raise
        except ClassifierRejectedError:
            classifier_failure_counter.labels(reason="rejected").inc()
            raise
        except ClassifierUnavailableError:
            classifier_failure_counter.labels(reason="unavailable").inc()
            raise

    async def _stage(
        self,
        session_id: str,
        status: SessionStatus,
        progress: int,
        step: str,
        message: str,
        sink: Optional[ProgressSink],
    ) -> None:
        self.sessions.advance(session_id, status, progress, note=step)
        await self._notify(sink, ProgressEvent(session_id, step, progress, message))

    async def _notify(self, sink: Optional[ProgressSink], event: ProgressEvent) -> None:
        """Best-effort delivery: a slow or failing sink never stops the pipeline"""
        if sink is None:
            return
        try:
            await asyncio.wait_for(sink(event), timeout=self.settings.progress_sink_timeout_seconds)
        except Exception as e:
            logger.warning(
                "Progress sink failed",
                extra={"session_id": event.session_id, "step": event.step, "error": repr(e)},
            )

    def cancel(self, session_id: str) -> None:
        """Interrupt a pending batch delay for this session"""
        event = self._cancellations.get(session_id)
        if event is not None:
            event.set()

    async def _pause_before(self, session_id: str) -> bool:
        """Wait out the batch delay; False when the session was cancelled meanwhile"""
        event = self._cancellations[session_id]
        if event.is_set():
            return False
        try:
            await asyncio.wait_for(event.wait(), timeout=self.settings.batch_delay_seconds)
            return False
        except asyncio.TimeoutError:
            return True

    async def run_batch(
        self, contexts: List[ExtractionContext], sink: Optional[ProgressSink] = None
    ) -> List[ExtractionResult]:
        """
        Process statements one after another with a delay between calls.

        A failure in one statement is recorded in its result and never stops the rest.
        """
        for context in contexts:
            self._cancellations[context.session_id] = asyncio.Event()

        results: List[ExtractionResult] = []
        try:
            for index, context in enumerate(contexts):
                if index > 0 and not await self._pause_before(context.session_id):
                    logger.info("Batch item cancelled", extra={"session_id": context.session_id})
                    results.append(
                        ExtractionResult(
                            context.session_id,
                            success=False,
                            status=SessionStatus.FAILED,
                            attempts=0,
                            error_message="Session was deleted before processing",
                        )
                    )
                    continue
                try:
                    results.append(await self.run(context, sink))
                except Exception as e:
                    logger.exception("Batch item failed", extra={"session_id": context.session_id})
                    results.append(
                        ExtractionResult(
                            context.session_id,
                            success=False,
                            status=SessionStatus.FAILED,
                            attempts=0,
                            error_message=str(e) or GENERIC_FAILURE_MESSAGE,
                        )
                    )
        finally:
            for context in contexts:
                self._cancellations.pop(context.session_id, None)
        return results
