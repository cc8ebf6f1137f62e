"""Card scoring engine - core business logic for ranking card products against spending"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from card_advisor.domain.models import (
    BenefitBreakdown,
    Card,
    ConfidenceFactors,
    RecommendationCriteria,
    RewardRule,
    ScoreBreakdown,
    ScoringWeights,
    SpendingPattern,
)

# Currency value of one reward unit
POINT_VALUES: Dict[str, float] = {
    "reward_points": 0.25,
    "edge": 0.20,
    "cashback": 1.0,
    "neu_coins": 1.0,
    "cash_points": 1.0,
    "amazon_pay": 1.0,
    "statement_credit": 1.0,
    "miles": 0.5,
}
DEFAULT_POINT_VALUE = 0.25

CREDIT_SCORE_VALUES: Dict[str, int] = {
    "excellent": 800,
    "good": 750,
    "fair": 700,
    "poor": 650,
}
DEFAULT_CREDIT_SCORE = "good"

LIMITED_ACCEPTANCE_NETWORKS = ("amex", "diners")
GENERAL_REWARD_SLUGS = ("general", "all", "other", "everything-else")
DIGITAL_FEATURE_KEYWORDS = ("contactless", "digital", "app", "upi", "virtual", "tap to pay", "instant")

# (minimum value, score) pairs, highest first
FIRST_YEAR_VALUE_TIERS: Tuple[Tuple[float, float], ...] = ((5000, 100), (3000, 85), (1500, 70), (500, 50))
FEE_EFFICIENCY_TIERS: Tuple[Tuple[float, float], ...] = ((3.0, 100), (2.0, 85), (1.5, 70), (1.0, 50), (0.5, 25))

CAPPING_PERIOD_MONTHS = {"monthly": 1, "quarterly": 3, "yearly": 12}


@dataclass
class BonusPoints:
    lifetime_free: float = 15
    preferred_network: float = 30
    preferred_issuer: float = 20
    high_popularity: float = 10
    high_recommendation_score: float = 10
    medium_recommendation_score: float = 5
    high_satisfaction: float = 5
    digital_features_max: float = 5


@dataclass
class PenaltyPoints:
    inactive: float = 50
    high_fee_low_benefit: float = 20
    poor_satisfaction: float = 10
    limited_acceptance: float = 5


@dataclass
class ScoringThresholds:
    baseline_reward_rate: float = 1.0  # What a plain card earns, percent
    high_annual_fee: float = 2000
    low_fee_efficiency_score: float = 50
    high_popularity: float = 80
    high_recommendation_score: float = 85
    medium_recommendation_score: float = 75
    high_satisfaction: float = 4.5
    poor_satisfaction: float = 3.5
    excellent_reward_rate: float = 5.0  # Accelerated rate that earns full alignment credit
    top_category_count: int = 5


@dataclass
class ScoringProfile:
    """Weights, bonus/penalty points and thresholds used by ScoringEngine"""

    weights: ScoringWeights = field(default_factory=ScoringWeights)
    bonuses: BonusPoints = field(default_factory=BonusPoints)
    penalties: PenaltyPoints = field(default_factory=PenaltyPoints)
    thresholds: ScoringThresholds = field(default_factory=ScoringThresholds)
    point_values: Dict[str, float] = field(default_factory=lambda: dict(POINT_VALUES))
    default_point_value: float = DEFAULT_POINT_VALUE


def tier_score(value: float, tiers: Tuple[Tuple[float, float], ...], floor: float = 0.0) -> float:
    """Map value onto the first tier whose minimum it reaches"""
    for minimum, score in tiers:
        if value >= minimum:
            return score
    return floor


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return min(max(value, low), high)


def rule_match_score(rule: RewardRule, pattern: SpendingPattern) -> float:
    """
    How well a reward rule fits a spending category.

    Brand-specific rules (merchant patterns, no MCCs) only apply when a merchant matches.
    Otherwise: category name match +100, +40 per shared MCC, +30 per matching merchant,
    and +20 when a general rule meets the "Other" category.
    """
    merchant_hits = sum(
        1
        for merchant in pattern.merchants
        if any(p.lower() in merchant.lower() for p in rule.merchant_patterns)
    )
    if rule.is_brand_specific:
        return 100.0 * merchant_hits

    score = 0.0
    if rule.category_name.lower() == pattern.category_name.lower():
        score += 100
    score += 40 * len(set(rule.mcc_codes) & set(pattern.mcc_codes))
    score += 30 * merchant_hits
    if rule.category_slug in GENERAL_REWARD_SLUGS and pattern.category_name.lower() == "other":
        score += 20
    return score


def best_reward_rule(rules: Tuple[RewardRule, ...], pattern: SpendingPattern) -> Optional[RewardRule]:
    best = None
    best_key = None
    for rule in rules:
        score = rule_match_score(rule, pattern)
        if score <= 0:
            continue
        key = (score, rule.reward_rate, rule.category_slug)
        if best_key is None or key > best_key:
            best, best_key = rule, key
    return best


def eligible_spend_cap(rule: RewardRule, statement_months: int) -> Optional[float]:
    """Accelerated-rate spend allowed over the statement window, or None when uncapped"""
    if rule.capping_limit is None:
        return None
    period_months = CAPPING_PERIOD_MONTHS.get((rule.capping_period or "monthly").lower(), 1)
    periods = max(1, math.ceil(statement_months / period_months))
    return rule.capping_limit * periods


class ScoringEngine:
    """Scores one card against one set of spending patterns"""

    def __init__(self, profile: Optional[ScoringProfile] = None, currency_symbol: str = "₹"):
        self.profile = profile or ScoringProfile()
        self.currency_symbol = currency_symbol

    def point_value(self, card: Card) -> float:
        return self.profile.point_values.get(card.reward_currency, self.profile.default_point_value)

    def benefit_breakdown(
        self, card: Card, patterns: List[SpendingPattern], statement_months: int
    ) -> List[BenefitBreakdown]:
        """
        Per-category earnings on this card versus a baseline card.

        Spend above a rule's cap for the statement window earns the card's base rate.
        """
        baseline = self.profile.thresholds.baseline_reward_rate
        point_value = self.point_value(card)
        benefits = []

        for pattern in patterns:
            rule = best_reward_rule(card.accelerated_rewards, pattern)
            rate = card.base_reward_rate
            cap = None
            capped = False
            accelerated_spend = 0.0
            if rule is not None and rule.reward_rate > card.base_reward_rate:
                rate = rule.reward_rate
                cap = eligible_spend_cap(rule, statement_months)
                accelerated_spend = pattern.total_spent if cap is None else min(pattern.total_spent, cap)
                capped = cap is not None and pattern.total_spent > cap

            base_spend = pattern.total_spent - accelerated_spend
            points = accelerated_spend * rate / 100 + base_spend * card.base_reward_rate / 100
            value = points * point_value
            current_value = pattern.total_spent * baseline / 100

            benefits.append(
                BenefitBreakdown(
                    category=pattern.category_name,
                    current_rate=baseline,
                    card_rate=rate,
                    spent_amount=pattern.total_spent,
                    earned_points=round(points, 2),
                    dollar_value=round(value, 2),
                    savings_amount=round(max(0.0, value - current_value), 2),
                    cap_limit=cap,
                    capped=capped,
                )
            )
        return benefits

    def category_alignment_score(self, card: Card, patterns: List[SpendingPattern], benefits: List[BenefitBreakdown]) -> float:
        """Share of spend in top categories earning an accelerated rate, scaled by how good that rate is"""
        thresholds = self.profile.thresholds
        share = 0.0
        weighted_quality = 0.0
        aligned_spend = 0.0
        for pattern, benefit in list(zip(patterns, benefits))[: thresholds.top_category_count]:
            if benefit.card_rate <= card.base_reward_rate:
                continue
            share += pattern.percentage / 100
            weighted_quality += min(benefit.card_rate / thresholds.excellent_reward_rate, 1.0) * pattern.total_spent
            aligned_spend += pattern.total_spent
        if aligned_spend == 0:
            return 0.0
        return clamp(100 * share * (weighted_quality / aligned_spend))

    def accessibility_score(self, card: Card, criteria: RecommendationCriteria) -> float:
        user_score = CREDIT_SCORE_VALUES.get(criteria.credit_score or DEFAULT_CREDIT_SCORE, CREDIT_SCORE_VALUES[DEFAULT_CREDIT_SCORE])
        if card.min_credit_score is None or user_score >= card.min_credit_score:
            credit_part = 100.0
        else:
            credit_part = clamp(100 - (card.min_credit_score - user_score) * 2)

        if card.lifetime_free:
            fee_part = 100.0
        else:
            fee_part = clamp(100 - (card.annual_fee + card.joining_fee) / self.profile.thresholds.high_annual_fee * 50)
        return 0.7 * credit_part + 0.3 * fee_part

    def brand_preference_score(self, card: Card, criteria: RecommendationCriteria) -> float:
        parts = [clamp(card.popularity_score)]
        if criteria.preferred_network:
            parts.append(100.0 if self._network_matches(card, criteria) else 0.0)
        if criteria.preferred_issuer:
            parts.append(100.0 if self._issuer_matches(card, criteria) else 0.0)
        return sum(parts) / len(parts)

    def _network_matches(self, card: Card, criteria: RecommendationCriteria) -> bool:
        return bool(criteria.preferred_network) and card.network.lower() == criteria.preferred_network.lower()

    def _issuer_matches(self, card: Card, criteria: RecommendationCriteria) -> bool:
        preferred = (criteria.preferred_issuer or "").lower()
        return bool(preferred) and preferred in (card.issuer_slug.lower(), card.issuer_name.lower())

    def bonus_factors(self, card: Card, criteria: RecommendationCriteria) -> Dict[str, float]:
        bonuses = self.profile.bonuses
        thresholds = self.profile.thresholds
        factors: Dict[str, float] = {}

        if card.lifetime_free:
            factors["lifetime_free"] = bonuses.lifetime_free
        if self._network_matches(card, criteria):
            factors["preferred_network"] = bonuses.preferred_network
        if self._issuer_matches(card, criteria):
            factors["preferred_issuer"] = bonuses.preferred_issuer
        if card.popularity_score >= thresholds.high_popularity:
            factors["high_popularity"] = bonuses.high_popularity
        if card.recommendation_score is not None:
            if card.recommendation_score >= thresholds.high_recommendation_score:
                factors["high_recommendation_score"] = bonuses.high_recommendation_score
            elif card.recommendation_score >= thresholds.medium_recommendation_score:
                factors["medium_recommendation_score"] = bonuses.medium_recommendation_score
        if card.customer_satisfaction is not None and card.customer_satisfaction >= thresholds.high_satisfaction:
            factors["high_satisfaction"] = bonuses.high_satisfaction

        digital = sum(
            1
            for feature in card.unique_features
            if any(keyword in feature.lower() for keyword in DIGITAL_FEATURE_KEYWORDS)
        )
        if digital:
            factors["digital_features"] = float(min(digital, bonuses.digital_features_max))
        return factors

    def penalty_factors(self, card: Card, fee_efficiency_score: float) -> Dict[str, float]:
        penalties = self.profile.penalties
        thresholds = self.profile.thresholds
        factors: Dict[str, float] = {}

        if not card.is_active:
            factors["inactive"] = penalties.inactive
        if card.annual_fee >= thresholds.high_annual_fee and fee_efficiency_score < thresholds.low_fee_efficiency_score:
            factors["high_fee_low_benefit"] = penalties.high_fee_low_benefit
        if card.customer_satisfaction is not None and card.customer_satisfaction < thresholds.poor_satisfaction:
            factors["poor_satisfaction"] = penalties.poor_satisfaction
        if card.network.lower() in LIMITED_ACCEPTANCE_NETWORKS:
            factors["limited_acceptance"] = penalties.limited_acceptance
        return factors

    def confidence(self, card: Card, criteria: RecommendationCriteria) -> ConfidenceFactors:
        """How far the score can be trusted; never feeds back into the score"""
        checks = [
            bool(card.accelerated_rewards),
            bool(card.reward_currency),
            card.popularity_score > 0,
            card.customer_satisfaction is not None,
            card.recommendation_score is not None,
            card.min_credit_score is not None,
        ]
        completeness = sum(checks) / len(checks)
        overall = 0.5 * criteria.categorized_fraction + 0.3 * criteria.verified_fraction + 0.2 * completeness
        return ConfidenceFactors(
            categorized_fraction=round(criteria.categorized_fraction, 3),
            verified_fraction=round(criteria.verified_fraction, 3),
            card_completeness=round(completeness, 3),
            overall=round(clamp(overall, 0.0, 1.0), 3),
        )

    def score(
        self,
        card: Card,
        patterns: List[SpendingPattern],
        criteria: RecommendationCriteria,
        weights: Optional[ScoringWeights] = None,
    ) -> ScoreBreakdown:
        """
        Score a card from 0 to 100.

        Sub-scores (each 0-100), weighted by the normalized weights:
        - first-year value: statement-period savings plus signup bonus, by tier
        - category alignment: accelerated coverage of the top spending categories
        - fee efficiency: statement earnings / annual fee prorated to the statement window
        - brand preference: popularity blended with network and issuer preferences
        - accessibility: credit score headroom and fee burden

        Bonus points are added and penalty points subtracted before clamping to 0-100.
        """
        weights = (weights or self.profile.weights).normalized()
        months = max(criteria.statement_months, 1)

        benefits = self.benefit_breakdown(card, patterns, months)
        earnings = sum(b.dollar_value for b in benefits)
        savings = sum(b.savings_amount for b in benefits)
        prorated_fee = card.annual_fee * months / 12
        first_year_value = savings + card.signup_bonus_value

        first_year_score = tier_score(first_year_value, FIRST_YEAR_VALUE_TIERS, floor=30.0 if first_year_value > 0 else 0.0)
        alignment_score = self.category_alignment_score(card, patterns, benefits)
        if prorated_fee <= 0:
            fee_score = 100.0
        else:
            fee_score = tier_score(earnings / prorated_fee, FEE_EFFICIENCY_TIERS)
        brand_score = self.brand_preference_score(card, criteria)
        access_score = self.accessibility_score(card, criteria)

        weighted = (
            weights.first_year_value * first_year_score
            + weights.category_alignment * alignment_score
            + weights.fee_efficiency * fee_score
            + weights.brand_preference * brand_score
            + weights.accessibility * access_score
        )
        bonuses = self.bonus_factors(card, criteria)
        penalties = self.penalty_factors(card, fee_score)
        total = clamp(weighted + sum(bonuses.values()) - sum(penalties.values()))

        return ScoreBreakdown(
            total_score=round(total, 2),
            weighted_score=round(weighted, 2),
            first_year_value_score=round(first_year_score, 2),
            category_alignment_score=round(alignment_score, 2),
            fee_efficiency_score=round(fee_score, 2),
            brand_preference_score=round(brand_score, 2),
            accessibility_score=round(access_score, 2),
            bonus_factors=bonuses,
            penalty_factors=penalties,
            confidence=self.confidence(card, criteria),
            statement_earnings=round(earnings, 2),
            potential_savings=round(savings, 2),
            prorated_fee=round(prorated_fee, 2),
            first_year_value=round(first_year_value, 2),
            benefits=benefits,
        )

    def explain(self, card: Card, breakdown: ScoreBreakdown, criteria: RecommendationCriteria) -> Tuple[str, List[str], List[str]]:
        """Primary reason, pros and cons in plain language"""
        sym = self.currency_symbol
        accelerated = sorted(
            (b for b in breakdown.benefits if b.card_rate > card.base_reward_rate),
            key=lambda b: (-b.savings_amount, b.category),
        )

        pros: List[str] = []
        if card.lifetime_free:
            pros.append("No annual fee")
        for benefit in accelerated[:2]:
            quality = "Excellent" if benefit.card_rate >= self.profile.thresholds.excellent_reward_rate else "Good"
            pros.append(f"{quality} {benefit.category} rewards ({benefit.card_rate:g}% earning rate)")
        if breakdown.potential_savings > 0:
            pros.append(f"Earns {sym}{breakdown.potential_savings:,.2f} more than a basic card on this statement")
        if card.signup_bonus_value > 0:
            pros.append(f"Welcome benefit worth {sym}{card.signup_bonus_value:,.0f}")
        if "high_satisfaction" in breakdown.bonus_factors:
            pros.append("Highly rated by cardholders")
        if "preferred_network" in breakdown.bonus_factors:
            pros.append(f"On your preferred {card.network.title()} network")

        cons: List[str] = []
        if card.annual_fee > 0:
            fee_text = f"Annual fee of {sym}{card.annual_fee:,.0f}"
            if breakdown.fee_efficiency_score < self.profile.thresholds.low_fee_efficiency_score:
                fee_text += " is not covered by rewards at your spend level"
            cons.append(fee_text)
        if card.min_credit_score is not None and card.min_credit_score >= CREDIT_SCORE_VALUES["good"]:
            cons.append("Requires excellent credit")
        elif card.min_credit_score is not None and card.min_credit_score >= CREDIT_SCORE_VALUES["fair"]:
            cons.append("Requires good credit")
        if "limited_acceptance" in breakdown.penalty_factors:
            cons.append(f"Limited merchant acceptance on {card.network.title()}")
        for benefit in breakdown.benefits:
            if benefit.capped:
                cons.append(f"{benefit.category} rewards capped at {sym}{benefit.cap_limit:,.0f} of spend for this period")
        if not accelerated and criteria.top_categories:
            cons.append("No accelerated rewards on your top spending categories")
        if "poor_satisfaction" in breakdown.penalty_factors:
            cons.append("Below-average cardholder satisfaction")
        if not card.is_active:
            cons.append("No longer open to new applicants")

        if accelerated and accelerated[0].savings_amount > 0:
            top = accelerated[0]
            reason = f"Best for {top.category} spending: earns {top.card_rate:g}% on {sym}{top.spent_amount:,.0f}"
        elif card.lifetime_free:
            reason = f"No annual fee with {card.base_reward_rate:g}% rewards on all spending"
        else:
            reason = f"Solid overall value with {card.base_reward_rate:g}% base rewards"
        return reason, pros, cons
