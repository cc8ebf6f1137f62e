"""Collaborator interfaces the processing core is written against"""

from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Protocol

from card_advisor.domain.models import (
    Card,
    CardFilters,
    ClassifierResult,
    ExtractionHints,
    ParsedDocument,
    ProcessingSession,
    ProgressEvent,
    RecommendationResult,
    RewardRule,
    SessionStats,
    SessionStatus,
    Transaction,
)

ProgressSink = Callable[[ProgressEvent], Awaitable[None]]


class DocumentParser(Protocol):
    def parse(self, document_ref: str) -> ParsedDocument:
        """Raises UnreadableDocumentError"""
        ...


class TextClassifier(Protocol):
    async def extract(self, text: str, hints: ExtractionHints) -> ClassifierResult:
        """Raises ClassifierUnavailableError, ClassifierTimeoutError or ClassifierRejectedError"""
        ...


class CatalogRepository(Protocol):
    def list_eligible_cards(self, filters: CardFilters) -> List[Card]: ...

    def get_accelerated_rewards(self, card_id: str) -> List[RewardRule]: ...


class TransactionStore(Protocol):
    def replace(self, session_id: str, transactions: List[Transaction]) -> List[Transaction]: ...

    def list_by_session(self, session_id: str) -> List[Transaction]: ...


class SessionStore(Protocol):
    def create(self, session: ProcessingSession) -> ProcessingSession: ...

    def get(self, session_id: str) -> Optional[ProcessingSession]: ...

    def get_by_token(self, token: str) -> Optional[ProcessingSession]: ...

    def update(self, session: ProcessingSession, expected_status: SessionStatus) -> bool: ...

    def delete(self, session_id: str) -> bool: ...

    def list_expired(self, now: datetime) -> List[str]: ...

    def stats(self, now: datetime) -> SessionStats: ...


class RecommendationCache(Protocol):
    def get(self, session_id: str) -> Optional[RecommendationResult]: ...

    def store(self, result: RecommendationResult) -> None: ...

    def delete(self, session_id: str) -> bool: ...
