"""SQLAlchemy ORM models for sessions, statement transactions and the card catalog"""

import uuid
from sqlalchemy import Column, String, Boolean, Float, DateTime, Date, Integer, ForeignKey, Text, JSON
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class ProcessingSessionRecord(Base):
    """Statement-processing session"""

    __tablename__ = "processing_session"

    id = Column(String(36), primary_key=True, default=_new_id)
    token = Column(String(64), nullable=False, unique=True, index=True)
    status = Column(String(32), nullable=False, default="uploading")
    progress = Column(Integer, nullable=False, default=0)
    retry_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    total_spend = Column(Float, nullable=False, default=0.0)
    top_category = Column(Text, nullable=True)
    total_transactions = Column(Integer, nullable=False, default=0)
    categorized_count = Column(Integer, nullable=False, default=0)
    unknown_mcc_count = Column(Integer, nullable=False, default=0)
    new_mcc_discovered = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    transactions = relationship(
        "StatementTransactionRecord", back_populates="session", cascade="all, delete-orphan"
    )
    recommendation = relationship(
        "CachedRecommendationRecord", back_populates="session", cascade="all, delete-orphan", uselist=False
    )


class StatementTransactionRecord(Base):
    """Transaction extracted from a statement"""

    __tablename__ = "statement_transaction"

    id = Column(String(36), primary_key=True, default=_new_id)
    session_id = Column(
        String(36), ForeignKey("processing_session.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False, default=0)
    date = Column(Date, nullable=False)
    description = Column(Text, nullable=False)
    merchant = Column(Text, nullable=False)
    amount = Column(Float, nullable=False)
    type = Column(String(16), nullable=False, default="debit")
    confidence = Column(Float, nullable=False)
    mcc_code = Column(String(4), nullable=True)
    category_name = Column(Text, nullable=True)
    sub_category_name = Column(Text, nullable=True)
    mcc_status = Column(String(16), nullable=False, default="unknown")
    mcc_confidence = Column(Float, nullable=False, default=0.0)
    is_verified = Column(Boolean, nullable=False, default=False)
    needs_review = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    session = relationship("ProcessingSessionRecord", back_populates="transactions")


class CachedRecommendationRecord(Base):
    """Serialized recommendation result kept for reuse until it expires"""

    __tablename__ = "cached_recommendation"

    id = Column(String(36), primary_key=True, default=_new_id)
    session_id = Column(
        String(36), ForeignKey("processing_session.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    payload = Column(JSON, nullable=False)
    criteria = Column(JSON, nullable=False)
    generated_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    session = relationship("ProcessingSessionRecord", back_populates="recommendation")


class CardIssuerRecord(Base):
    __tablename__ = "card_issuer"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(Text, nullable=False)
    slug = Column(String(64), nullable=False, unique=True)

    cards = relationship("CreditCardRecord", back_populates="issuer")


class CardNetworkRecord(Base):
    __tablename__ = "card_network"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(Text, nullable=False)
    slug = Column(String(32), nullable=False, unique=True)

    cards = relationship("CreditCardRecord", back_populates="network")


class RewardCategoryRecord(Base):
    """Spending category a reward rule can target"""

    __tablename__ = "reward_category"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(Text, nullable=False)
    slug = Column(String(64), nullable=False, unique=True)
    mcc_codes = Column(JSON, nullable=False, default=list)


class CreditCardRecord(Base):
    """Catalog card product"""

    __tablename__ = "credit_card"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(Text, nullable=False)
    slug = Column(String(128), nullable=False, unique=True)
    issuer_id = Column(String(36), ForeignKey("card_issuer.id"), nullable=False)
    network_id = Column(String(36), ForeignKey("card_network.id"), nullable=False)
    card_type = Column(String(32), nullable=False, default="rewards")
    annual_fee = Column(Float, nullable=False, default=0.0)
    joining_fee = Column(Float, nullable=False, default=0.0)
    is_lifetime_free = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    is_business = Column(Boolean, nullable=False, default=False)
    base_reward_rate = Column(Float, nullable=False, default=1.0)
    reward_currency = Column(String(32), nullable=False, default="reward_points")
    min_credit_score = Column(Integer, nullable=True)
    min_income = Column(Float, nullable=True)
    popularity_score = Column(Float, nullable=False, default=0.0)
    customer_satisfaction = Column(Float, nullable=True)
    recommendation_score = Column(Float, nullable=True)
    signup_bonus_value = Column(Float, nullable=False, default=0.0)
    unique_features = Column(JSON, nullable=False, default=list)

    issuer = relationship("CardIssuerRecord", back_populates="cards")
    network = relationship("CardNetworkRecord", back_populates="cards")
    accelerated_rewards = relationship(
        "AcceleratedRewardRecord", back_populates="card", cascade="all, delete-orphan"
    )


class AcceleratedRewardRecord(Base):
    """Elevated earn rate on one reward category"""

    __tablename__ = "accelerated_reward"

    id = Column(String(36), primary_key=True, default=_new_id)
    card_id = Column(String(36), ForeignKey("credit_card.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(String(36), ForeignKey("reward_category.id"), nullable=False)
    reward_rate = Column(Float, nullable=False)
    merchant_patterns = Column(JSON, nullable=False, default=list)
    capping_limit = Column(Float, nullable=True)
    capping_period = Column(String(16), nullable=True)
    description = Column(Text, nullable=False, default="")

    card = relationship("CreditCardRecord", back_populates="accelerated_rewards")
    category = relationship("RewardCategoryRecord")
