"""Recommendation engine: score the eligible catalog against a session's spending and rank it"""

import logging
import time
from dataclasses import fields, replace
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from card_advisor.config import Settings, settings as default_settings
from card_advisor.domain.aggregation import SpendingAggregator
from card_advisor.domain.categorization import is_spending
from card_advisor.domain.contracts import CatalogRepository, RecommendationCache, TransactionStore
from card_advisor.domain.exceptions import SessionNotReadyError, ValidationError
from card_advisor.domain.models import (
    Card,
    CardFilters,
    CardRecommendation,
    MccStatus,
    ProcessingSession,
    RecommendationCriteria,
    RecommendationOptions,
    RecommendationResult,
    RecommendationSummary,
    ScoreBreakdown,
    ScoringWeights,
    SessionStatus,
    SpendingAnalysis,
    SpendingPattern,
    Transaction,
)
from card_advisor.domain.scoring import CREDIT_SCORE_VALUES, ScoringEngine
from card_advisor.infrastructure.observability.logging import log_recommendation
from card_advisor.infrastructure.observability.metrics import recommendation_counter
from card_advisor.services.sessions import SessionStateMachine
from card_advisor.utils.date_utils import month_span, utcnow

logger = logging.getLogger(__name__)

# (minimum mean confidence, label), highest first
CONFIDENCE_LABELS: Tuple[Tuple[float, str], ...] = (
    (0.9, "very_high"),
    (0.8, "high"),
    (0.7, "medium"),
    (0.6, "low"),
)
LOW_DATA_LABELS = ("very_high", "high", "medium")
WEIGHT_NAMES = {f.name for f in fields(ScoringWeights)}
MAX_RECOMMENDATIONS = 20


def confidence_label(mean_confidence: float) -> str:
    for minimum, label in CONFIDENCE_LABELS:
        if mean_confidence >= minimum:
            return label
    return "very_low"


class RecommendationEngine:
    """Ranks catalog cards for a completed session, caching the result per session"""

    def __init__(
        self,
        sessions: SessionStateMachine,
        transactions: TransactionStore,
        catalog: CatalogRepository,
        cache: RecommendationCache,
        scoring: Optional[ScoringEngine] = None,
        aggregator: Optional[SpendingAggregator] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.sessions = sessions
        self.transactions = transactions
        self.catalog = catalog
        self.cache = cache
        self.settings = settings or default_settings
        self.scoring = scoring or ScoringEngine(currency_symbol=self.settings.currency_symbol)
        self.aggregator = aggregator or SpendingAggregator()
        self.clock = clock

    def _completed_session(self, session_id: str) -> ProcessingSession:
        session = self.sessions.resolve(session_id)
        if session.status != SessionStatus.COMPLETED:
            raise SessionNotReadyError(
                f"Session is {session.status.value}; recommendations are available once processing completes"
            )
        return session

    def validate_options(self, options: RecommendationOptions) -> None:
        if options.credit_score is not None and options.credit_score not in CREDIT_SCORE_VALUES:
            raise ValidationError(
                f"credit_score must be one of {', '.join(CREDIT_SCORE_VALUES)}, got {options.credit_score!r}"
            )
        if options.max_annual_fee is not None and options.max_annual_fee < 0:
            raise ValidationError("max_annual_fee cannot be negative")
        if options.limit is not None and not 1 <= options.limit <= MAX_RECOMMENDATIONS:
            raise ValidationError(f"limit must be between 1 and {MAX_RECOMMENDATIONS}")
        if options.custom_weights:
            unknown = set(options.custom_weights) - WEIGHT_NAMES
            if unknown:
                raise ValidationError(f"Unknown weight names: {', '.join(sorted(unknown))}")
            if any(value < 0 for value in options.custom_weights.values()):
                raise ValidationError("Weights cannot be negative")

    def weights_for(self, options: RecommendationOptions) -> ScoringWeights:
        base = self.scoring.profile.weights
        if not options.custom_weights:
            return base
        weights = replace(base, **options.custom_weights)
        if sum(getattr(weights, name) for name in WEIGHT_NAMES) <= 0:
            raise ValidationError("At least one weight must be positive")
        return weights

    def build_criteria(
        self, transactions: List[Transaction], patterns: List[SpendingPattern], options: RecommendationOptions
    ) -> RecommendationCriteria:
        spending = [t for t in transactions if is_spending(t)]
        total = round(sum(t.amount for t in spending), 2)
        months = month_span(t.date for t in transactions)
        categorized = sum(1 for t in spending if t.category_name)
        verified = sum(1 for t in spending if t.is_verified or t.mcc_status == MccStatus.KNOWN)

        return RecommendationCriteria(
            total_spending=total,
            monthly_spending=round(total / months, 2),
            statement_months=months,
            transaction_count=len(spending),
            categorized_fraction=categorized / len(spending) if spending else 0.0,
            verified_fraction=verified / len(spending) if spending else 0.0,
            top_categories=[p.category_name for p in patterns[: self.scoring.profile.thresholds.top_category_count]],
            credit_score=options.credit_score,
            max_annual_fee=options.max_annual_fee,
            preferred_network=options.preferred_network,
            preferred_issuer=options.preferred_issuer,
            include_business_cards=options.include_business_cards,
            low_confidence=(
                total < self.settings.min_total_spending or len(patterns) < self.settings.min_category_count
            ),
        )

    def rank(
        self,
        cards: List[Card],
        patterns: List[SpendingPattern],
        criteria: RecommendationCriteria,
        weights: ScoringWeights,
    ) -> List[Tuple[Card, ScoreBreakdown]]:
        """Score every card; order by score desc, confidence desc, card id asc"""
        scored = []
        for card in cards:
            if not card.accelerated_rewards:
                card = replace(card, accelerated_rewards=tuple(self.catalog.get_accelerated_rewards(card.id)))
            scored.append((card, self.scoring.score(card, patterns, criteria, weights)))
        return sorted(scored, key=lambda item: (-item[1].total_score, -item[1].confidence.overall, item[0].id))

    def _recommendation(
        self, rank: int, card: Card, breakdown: ScoreBreakdown, criteria: RecommendationCriteria
    ) -> CardRecommendation:
        reason, pros, cons = self.scoring.explain(card, breakdown, criteria)
        return CardRecommendation(
            card_id=card.id,
            card_name=card.name,
            issuer_name=card.issuer_name,
            network=card.network,
            rank=rank,
            score=breakdown.total_score,
            confidence_score=breakdown.confidence.overall,
            primary_reason=reason,
            pros=pros,
            cons=cons,
            estimated_earnings=breakdown.statement_earnings,
            potential_savings=breakdown.potential_savings,
            signup_bonus_value=card.signup_bonus_value,
            annual_fee=card.annual_fee,
            score_breakdown=breakdown,
            benefit_breakdown=breakdown.benefits,
        )

    def summarize(
        self, recommendations: List[CardRecommendation], patterns: List[SpendingPattern], criteria: RecommendationCriteria
    ) -> RecommendationSummary:
        if not recommendations:
            return RecommendationSummary(
                top_recommendation=None,
                potential_savings=0.0,
                average_score=0.0,
                categories_analyzed=len(patterns),
                confidence_level="very_low",
                low_confidence=True,
            )

        mean_confidence = sum(r.confidence_score for r in recommendations) / len(recommendations)
        label = confidence_label(mean_confidence)
        if criteria.low_confidence and label in LOW_DATA_LABELS:
            label = "low"
        return RecommendationSummary(
            top_recommendation=recommendations[0].card_name,
            potential_savings=max(r.potential_savings for r in recommendations),
            average_score=round(sum(r.score for r in recommendations) / len(recommendations), 2),
            categories_analyzed=len(patterns),
            confidence_level=label,
            low_confidence=criteria.low_confidence,
        )

    def generate(self, session_id: str, options: Optional[RecommendationOptions] = None) -> RecommendationResult:
        """
        Produce ranked recommendations for a completed session.

        Low spend or too few categories still yield a ranking, flagged low confidence.
        A cached result is reused while unexpired and built from identical options.
        """
        start_time = time.time()
        options = options or RecommendationOptions()
        self.validate_options(options)
        session = self._completed_session(session_id)
        now = self.clock()

        cached = self.cache.get(session.id)
        if cached is not None and cached.expires_at > now and cached.options == options:
            recommendation_counter.labels(source="cache").inc()
            log_recommendation(
                session.id,
                True,
                len(cached.recommendations),
                cached.summary.top_recommendation,
                (time.time() - start_time) * 1000,
            )
            return cached

        transactions = self.transactions.list_by_session(session.id)
        patterns = self.aggregator.aggregate(transactions)
        criteria = self.build_criteria(transactions, patterns, options)
        weights = self.weights_for(options)

        cards = self.catalog.list_eligible_cards(
            CardFilters(
                max_annual_fee=options.max_annual_fee,
                preferred_network=options.preferred_network,
                include_business_cards=options.include_business_cards,
            )
        )
        ranked = self.rank(cards, patterns, criteria, weights)
        limit = options.limit or self.settings.recommendation_limit
        recommendations = [
            self._recommendation(rank, card, breakdown, criteria)
            for rank, (card, breakdown) in enumerate(ranked[:limit], start=1)
        ]

        result = RecommendationResult(
            session_id=session.id,
            recommendations=recommendations,
            summary=self.summarize(recommendations, patterns, criteria),
            criteria=criteria,
            options=options,
            generated_at=now,
            expires_at=now + timedelta(hours=self.settings.recommendation_cache_hours),
            analysis=self.aggregator.analyze(transactions) if options.include_analysis else None,
        )
        self.cache.store(result)
        recommendation_counter.labels(source="fresh").inc()
        logger.debug("Cards scored", extra={"session_id": session.id, "cards_scored": len(ranked), "low_confidence": criteria.low_confidence})
        log_recommendation(
            session.id, False, len(recommendations), result.summary.top_recommendation, (time.time() - start_time) * 1000
        )
        return result

    def spending_analysis(self, session_id: str) -> SpendingAnalysis:
        session = self._completed_session(session_id)
        return self.aggregator.analyze(self.transactions.list_by_session(session.id))

    def invalidate(self, session_id: str) -> bool:
        session = self.sessions.resolve(session_id)
        return self.cache.delete(session.id)
