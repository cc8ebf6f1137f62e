"""Data access layer for sessions, transactions, cached recommendations and the card catalog"""

from collections import Counter
from datetime import datetime
from typing import List, Optional

from pydantic import TypeAdapter
from sqlalchemy import delete, update
from sqlalchemy.orm import selectinload

from card_advisor.domain.exceptions import NotFoundError
from card_advisor.domain.extraction import clamp_confidence
from card_advisor.domain.models import (
    Card,
    CardFilters,
    MccStatus,
    ProcessingSession,
    RecommendationResult,
    RewardRule,
    SessionStats,
    SessionStatus,
    Transaction,
)
from card_advisor.infrastructure.database.models import (
    AcceleratedRewardRecord,
    CachedRecommendationRecord,
    CardNetworkRecord,
    CreditCardRecord,
    ProcessingSessionRecord,
    StatementTransactionRecord,
)
from card_advisor.infrastructure.database.session import Database
from card_advisor.utils.date_utils import ensure_utc

recommendation_adapter = TypeAdapter(RecommendationResult)


def _to_session(row: ProcessingSessionRecord) -> ProcessingSession:
    return ProcessingSession(
        id=row.id,
        token=row.token,
        status=SessionStatus(row.status),
        progress=row.progress,
        retry_count=row.retry_count,
        expires_at=ensure_utc(row.expires_at),
        created_at=ensure_utc(row.created_at) if row.created_at else None,
        updated_at=ensure_utc(row.updated_at) if row.updated_at else None,
        total_spend=row.total_spend,
        top_category=row.top_category,
        total_transactions=row.total_transactions,
        categorized_count=row.categorized_count,
        unknown_mcc_count=row.unknown_mcc_count,
        new_mcc_discovered=row.new_mcc_discovered,
        error_message=row.error_message,
    )


def _to_transaction(row: StatementTransactionRecord) -> Transaction:
    return Transaction(
        id=row.id,
        date=row.date,
        description=row.description,
        merchant=row.merchant,
        amount=row.amount,
        type=row.type,
        confidence=row.confidence,
        mcc_code=row.mcc_code,
        category_name=row.category_name,
        sub_category_name=row.sub_category_name,
        mcc_status=MccStatus(row.mcc_status),
        mcc_confidence=row.mcc_confidence,
        is_verified=row.is_verified,
        needs_review=row.needs_review,
    )


def _to_reward_rule(row: AcceleratedRewardRecord) -> RewardRule:
    return RewardRule(
        category_name=row.category.name,
        category_slug=row.category.slug,
        reward_rate=row.reward_rate,
        mcc_codes=tuple(row.category.mcc_codes or ()),
        merchant_patterns=tuple(row.merchant_patterns or ()),
        capping_limit=row.capping_limit,
        capping_period=row.capping_period,
        description=row.description,
    )


def _to_card(row: CreditCardRecord) -> Card:
    return Card(
        id=row.id,
        name=row.name,
        slug=row.slug,
        issuer_name=row.issuer.name,
        issuer_slug=row.issuer.slug,
        network=row.network.slug,
        annual_fee=row.annual_fee,
        joining_fee=row.joining_fee,
        card_type=row.card_type,
        is_lifetime_free=row.is_lifetime_free,
        is_active=row.is_active,
        is_business=row.is_business,
        base_reward_rate=row.base_reward_rate,
        reward_currency=row.reward_currency,
        min_credit_score=row.min_credit_score,
        min_income=row.min_income,
        popularity_score=row.popularity_score,
        customer_satisfaction=row.customer_satisfaction,
        recommendation_score=row.recommendation_score,
        signup_bonus_value=row.signup_bonus_value,
        unique_features=tuple(row.unique_features or ()),
    )


class SessionRepository:
    """Repository for processing sessions"""

    def __init__(self, database: Database):
        self.database = database

    def create(self, session: ProcessingSession) -> ProcessingSession:
        with self.database.unit_of_work() as db:
            row = ProcessingSessionRecord(
                id=session.id,
                token=session.token,
                status=session.status.value,
                progress=session.progress,
                retry_count=session.retry_count,
                expires_at=session.expires_at,
            )
            db.add(row)
            db.flush()
            db.refresh(row)
            return _to_session(row)

    def get(self, session_id: str) -> Optional[ProcessingSession]:
        with self.database.unit_of_work() as db:
            row = db.get(ProcessingSessionRecord, session_id)
            return _to_session(row) if row else None

    def get_by_token(self, token: str) -> Optional[ProcessingSession]:
        with self.database.unit_of_work() as db:
            row = (
                db.query(ProcessingSessionRecord)
                .filter(ProcessingSessionRecord.token == token)
                .first()
            )
            return _to_session(row) if row else None

    def update(self, session: ProcessingSession, expected_status: SessionStatus) -> bool:
        """
        Write all mutable fields if the stored status still equals expected_status.

        Returns False when the row is gone or another writer changed its status first.
        """
        with self.database.unit_of_work() as db:
            result = db.execute(
                update(ProcessingSessionRecord)
                .where(ProcessingSessionRecord.id == session.id)
                .where(ProcessingSessionRecord.status == expected_status.value)
                .values(
                    status=session.status.value,
                    progress=session.progress,
                    retry_count=session.retry_count,
                    error_message=session.error_message,
                    expires_at=session.expires_at,
                    total_spend=session.total_spend,
                    top_category=session.top_category,
                    total_transactions=session.total_transactions,
                    categorized_count=session.categorized_count,
                    unknown_mcc_count=session.unknown_mcc_count,
                    new_mcc_discovered=session.new_mcc_discovered,
                )
            )
            return result.rowcount == 1

    def delete(self, session_id: str) -> bool:
        """Delete a session together with its transactions and cached recommendation"""
        with self.database.unit_of_work() as db:
            row = db.get(ProcessingSessionRecord, session_id)
            if row is None:
                return False
            db.delete(row)
            return True

    def list_expired(self, now: datetime) -> List[str]:
        with self.database.unit_of_work() as db:
            rows = (
                db.query(ProcessingSessionRecord.id)
                .filter(ProcessingSessionRecord.expires_at <= now)
                .all()
            )
            return [row.id for row in rows]

    def stats(self, now: datetime) -> SessionStats:
        with self.database.unit_of_work() as db:
            rows = db.query(ProcessingSessionRecord.status, ProcessingSessionRecord.expires_at).all()
        expired = sum(1 for row in rows if ensure_utc(row.expires_at) <= now)
        return SessionStats(
            total=len(rows),
            active=len(rows) - expired,
            expired=expired,
            by_status=dict(Counter(row.status for row in rows)),
        )


class TransactionRepository:
    """Repository for statement transactions"""

    def __init__(self, database: Database, needs_review_threshold: float):
        self.database = database
        self.needs_review_threshold = needs_review_threshold

    def replace(self, session_id: str, transactions: List[Transaction]) -> List[Transaction]:
        """
        Swap the session's transaction set for a new one in a single unit of work.

        Confidence is clamped and needs_review recomputed on write. Any cached
        recommendation for the session is dropped with the old rows.
        """
        with self.database.unit_of_work() as db:
            if db.get(ProcessingSessionRecord, session_id) is None:
                raise NotFoundError(f"Session {session_id} not found")

            db.execute(delete(StatementTransactionRecord).where(StatementTransactionRecord.session_id == session_id))
            db.execute(delete(CachedRecommendationRecord).where(CachedRecommendationRecord.session_id == session_id))

            rows = []
            for position, txn in enumerate(transactions):
                confidence = clamp_confidence(txn.confidence)
                row = StatementTransactionRecord(
                    session_id=session_id,
                    position=position,
                    date=txn.date,
                    description=txn.description,
                    merchant=txn.merchant,
                    amount=txn.amount,
                    type=txn.type,
                    confidence=confidence,
                    mcc_code=txn.mcc_code,
                    category_name=txn.category_name,
                    sub_category_name=txn.sub_category_name,
                    mcc_status=txn.mcc_status.value,
                    mcc_confidence=clamp_confidence(txn.mcc_confidence),
                    is_verified=txn.is_verified,
                    needs_review=confidence < self.needs_review_threshold,
                )
                db.add(row)
                rows.append(row)
            db.flush()
            return [_to_transaction(row) for row in rows]

    def list_by_session(self, session_id: str) -> List[Transaction]:
        with self.database.unit_of_work() as db:
            rows = (
                db.query(StatementTransactionRecord)
                .filter(StatementTransactionRecord.session_id == session_id)
                .order_by(StatementTransactionRecord.position)
                .all()
            )
            return [_to_transaction(row) for row in rows]


class RecommendationRepository:
    """Cache of generated recommendations, one row per session"""

    def __init__(self, database: Database):
        self.database = database

    def get(self, session_id: str) -> Optional[RecommendationResult]:
        with self.database.unit_of_work() as db:
            row = (
                db.query(CachedRecommendationRecord)
                .filter(CachedRecommendationRecord.session_id == session_id)
                .first()
            )
            if row is None:
                return None
            result = recommendation_adapter.validate_python(row.payload)
        result.cached = True
        return result

    def store(self, result: RecommendationResult) -> None:
        payload = recommendation_adapter.dump_python(result, mode="json")
        with self.database.unit_of_work() as db:
            db.execute(
                delete(CachedRecommendationRecord).where(CachedRecommendationRecord.session_id == result.session_id)
            )
            db.add(
                CachedRecommendationRecord(
                    session_id=result.session_id,
                    payload=payload,
                    criteria=payload["criteria"],
                    generated_at=result.generated_at,
                    expires_at=result.expires_at,
                )
            )

    def delete(self, session_id: str) -> bool:
        with self.database.unit_of_work() as db:
            result = db.execute(
                delete(CachedRecommendationRecord).where(CachedRecommendationRecord.session_id == session_id)
            )
            return result.rowcount > 0


class CatalogRepository:
    """Read-only queries over the card catalog"""

    def __init__(self, database: Database):
        self.database = database

    def list_eligible_cards(self, filters: CardFilters) -> List[Card]:
        """Active cards passing the fee, network and business-card filters, ordered by id"""
        with self.database.unit_of_work() as db:
            query = (
                db.query(CreditCardRecord)
                .options(selectinload(CreditCardRecord.issuer), selectinload(CreditCardRecord.network))
                .filter(CreditCardRecord.is_active.is_(True))
            )
            if filters.max_annual_fee is not None:
                query = query.filter(CreditCardRecord.annual_fee <= filters.max_annual_fee)
            if filters.preferred_network:
                query = query.join(CreditCardRecord.network).filter(
                    CardNetworkRecord.slug == filters.preferred_network.lower()
                )
            if not filters.include_business_cards:
                query = query.filter(CreditCardRecord.is_business.is_(False))
            return [_to_card(row) for row in query.order_by(CreditCardRecord.id).all()]

    def get_accelerated_rewards(self, card_id: str) -> List[RewardRule]:
        with self.database.unit_of_work() as db:
            rows = (
                db.query(AcceleratedRewardRecord)
                .options(selectinload(AcceleratedRewardRecord.category))
                .filter(AcceleratedRewardRecord.card_id == card_id)
                .order_by(AcceleratedRewardRecord.reward_rate.desc(), AcceleratedRewardRecord.id)
                .all()
            )
            return [_to_reward_rule(row) for row in rows]
