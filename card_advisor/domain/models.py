"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple


class SessionStatus(str, Enum):
    """Lifecycle states of a statement-processing session"""

    UPLOADING = "uploading"
    QUEUED = "queued"
    EXTRACTING = "extracting"
    CATEGORIZING = "categorizing"
    MCC_DISCOVERY = "mcc_discovery"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"


class MccStatus(str, Enum):
    """How a transaction's merchant category code was resolved"""

    KNOWN = "known"
    UNKNOWN = "unknown"
    DISCOVERED = "discovered"


@dataclass
class ProcessingSession:
    """One uploaded statement moving through the pipeline"""

    id: str
    token: str
    status: SessionStatus
    progress: int
    retry_count: int
    expires_at: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    total_spend: float = 0.0
    top_category: Optional[str] = None
    total_transactions: int = 0
    categorized_count: int = 0
    unknown_mcc_count: int = 0
    new_mcc_discovered: int = 0
    error_message: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass
class SessionStats:
    """Counts of stored sessions for housekeeping dashboards"""

    total: int
    active: int
    expired: int
    by_status: Dict[str, int]


@dataclass
class Transaction:
    """Statement line item after extraction and classification"""

    date: date
    description: str
    merchant: str
    amount: float  # Positive for charges, negative for payments and refunds
    type: str  # debit | credit | payment | fee | interest | other
    confidence: float
    mcc_code: Optional[str] = None
    category_name: Optional[str] = None
    sub_category_name: Optional[str] = None
    mcc_status: MccStatus = MccStatus.UNKNOWN
    mcc_confidence: float = 0.0
    is_verified: bool = False
    needs_review: bool = False
    id: Optional[str] = None


@dataclass
class RawTransaction:
    """Candidate transaction as reported by the text classifier"""

    date: Optional[str]
    description: Optional[str]
    merchant: Optional[str]
    amount: Optional[float]
    type: Optional[str] = None
    confidence: Optional[float] = None


@dataclass
class ClassifierResult:
    """Output of one text classifier call"""

    candidates: List[RawTransaction]
    confidence: float
    warnings: List[str] = field(default_factory=list)


@dataclass
class DocumentStats:
    """Structural signals used to judge whether a document is a statement"""

    total_characters: int
    total_words: int
    total_lines: int
    average_words_per_line: float
    contains_numbers: bool
    contains_currency: bool
    contains_dates: bool
    keyword_matches: int
    signal_score: int
    likely_transaction_data: bool
    table_count: int = 0
    table_density: float = 0.0


@dataclass
class ParsedDocument:
    """Text pulled out of a source document"""

    text: str
    page_count: int
    stats: DocumentStats


@dataclass
class ExtractionHints:
    """Optional caller knowledge about the statement"""

    expected_issuer: Optional[str] = None
    expected_transaction_count: Optional[int] = None


@dataclass
class ExtractionContext:
    """Everything one pipeline run needs"""

    session_id: str
    document_ref: str
    hints: ExtractionHints = field(default_factory=ExtractionHints)


@dataclass
class ProgressEvent:
    """Stage notification delivered to a progress sink"""

    session_id: str
    step: str
    progress_percent: int
    message: str


@dataclass
class ExtractionResult:
    """Typed outcome of a pipeline run, returned to the immediate caller"""

    session_id: str
    success: bool
    status: SessionStatus
    attempts: int = 1
    transactions_extracted: int = 0
    transactions_dropped: int = 0
    needs_review_count: int = 0
    warnings: List[str] = field(default_factory=list)
    error_message: Optional[str] = None


@dataclass
class JobHandle:
    """Reference to queued work for one session"""

    job_id: str
    session_id: str
    document_ref: str
    queued_at: datetime
    hints: ExtractionHints = field(default_factory=ExtractionHints)


@dataclass(frozen=True)
class RewardRule:
    """Accelerated earn rate a card offers on a subset of spending"""

    category_name: str
    category_slug: str
    reward_rate: float  # Percent of spend
    mcc_codes: Tuple[str, ...] = ()
    merchant_patterns: Tuple[str, ...] = ()
    capping_limit: Optional[float] = None  # Max eligible spend per capping period
    capping_period: Optional[str] = None  # monthly | quarterly | yearly
    description: str = ""

    @property
    def is_brand_specific(self) -> bool:
        return bool(self.merchant_patterns) and not self.mcc_codes


@dataclass(frozen=True)
class Card:
    """Credit card product from the catalog"""

    id: str
    name: str
    slug: str
    issuer_name: str
    issuer_slug: str
    network: str
    annual_fee: float
    joining_fee: float = 0.0
    card_type: str = "rewards"
    is_lifetime_free: bool = False
    is_active: bool = True
    is_business: bool = False
    base_reward_rate: float = 1.0
    reward_currency: str = "reward_points"
    min_credit_score: Optional[int] = None
    min_income: Optional[float] = None
    popularity_score: float = 0.0  # 0-100
    customer_satisfaction: Optional[float] = None  # 0-5
    recommendation_score: Optional[float] = None  # 0-100
    signup_bonus_value: float = 0.0
    unique_features: Tuple[str, ...] = ()
    accelerated_rewards: Tuple[RewardRule, ...] = ()

    @property
    def lifetime_free(self) -> bool:
        return self.is_lifetime_free or self.annual_fee == 0


@dataclass
class CardFilters:
    """Eligibility filters applied when listing catalog cards"""

    max_annual_fee: Optional[float] = None
    preferred_network: Optional[str] = None
    include_business_cards: bool = False


@dataclass
class SpendingPattern:
    """Spending aggregated over one category"""

    category_name: str
    sub_category_name: Optional[str]
    total_spent: float
    transaction_count: int
    average_transaction: float
    monthly_average: float
    percentage: float
    mcc_codes: List[str]
    merchants: List[str]


@dataclass
class MerchantSpend:
    merchant: str
    total_spent: float
    transaction_count: int


@dataclass
class MonthlySpend:
    month: str  # YYYY-MM
    total_spent: float
    transaction_count: int


@dataclass
class SpendingAnalysis:
    """Full spending breakdown for one session"""

    total_spending: float
    total_transactions: int
    statement_months: int
    monthly_average: float
    uncategorized_spending: float
    categories: List[SpendingPattern]
    top_merchants: List[MerchantSpend]
    monthly_trends: List[MonthlySpend]


@dataclass
class ScoringWeights:
    """Relative importance of the five sub-scores"""

    first_year_value: float = 0.40
    category_alignment: float = 0.25
    fee_efficiency: float = 0.20
    brand_preference: float = 0.10
    accessibility: float = 0.05

    def normalized(self) -> "ScoringWeights":
        total = (
            self.first_year_value
            + self.category_alignment
            + self.fee_efficiency
            + self.brand_preference
            + self.accessibility
        )
        if total <= 0:
            return ScoringWeights()
        return ScoringWeights(
            first_year_value=self.first_year_value / total,
            category_alignment=self.category_alignment / total,
            fee_efficiency=self.fee_efficiency / total,
            brand_preference=self.brand_preference / total,
            accessibility=self.accessibility / total,
        )


@dataclass
class RecommendationOptions:
    """Caller-supplied filters and knobs for one recommendation request"""

    credit_score: Optional[str] = None  # excellent | good | fair | poor
    max_annual_fee: Optional[float] = None
    preferred_network: Optional[str] = None
    preferred_issuer: Optional[str] = None
    include_business_cards: bool = False
    limit: Optional[int] = None
    include_analysis: bool = False
    custom_weights: Optional[Dict[str, float]] = None


@dataclass
class RecommendationCriteria:
    """Spending snapshot plus the filters used to produce a result"""

    total_spending: float
    monthly_spending: float
    statement_months: int
    transaction_count: int
    categorized_fraction: float
    verified_fraction: float
    top_categories: List[str]
    credit_score: Optional[str] = None
    max_annual_fee: Optional[float] = None
    preferred_network: Optional[str] = None
    preferred_issuer: Optional[str] = None
    include_business_cards: bool = False
    low_confidence: bool = False


@dataclass
class BenefitBreakdown:
    """Current versus card earnings for one spending category"""

    category: str
    current_rate: float
    card_rate: float
    spent_amount: float
    earned_points: float
    dollar_value: float
    savings_amount: float
    cap_limit: Optional[float] = None
    capped: bool = False


@dataclass
class ConfidenceFactors:
    """Data-quality signals behind a recommendation's confidence"""

    categorized_fraction: float
    verified_fraction: float
    card_completeness: float
    overall: float


@dataclass
class ScoreBreakdown:
    """Full explanation of one card's score"""

    total_score: float
    weighted_score: float
    first_year_value_score: float
    category_alignment_score: float
    fee_efficiency_score: float
    brand_preference_score: float
    accessibility_score: float
    bonus_factors: Dict[str, float]
    penalty_factors: Dict[str, float]
    confidence: ConfidenceFactors
    statement_earnings: float
    potential_savings: float
    prorated_fee: float
    first_year_value: float
    benefits: List[BenefitBreakdown]

    @property
    def bonus_total(self) -> float:
        return round(sum(self.bonus_factors.values()), 2)

    @property
    def penalty_total(self) -> float:
        return round(sum(self.penalty_factors.values()), 2)


@dataclass
class CardRecommendation:
    """One ranked output row"""

    card_id: str
    card_name: str
    issuer_name: str
    network: str
    rank: int
    score: float
    confidence_score: float
    primary_reason: str
    pros: List[str]
    cons: List[str]
    estimated_earnings: float
    potential_savings: float
    signup_bonus_value: float
    annual_fee: float
    score_breakdown: ScoreBreakdown
    benefit_breakdown: List[BenefitBreakdown]


@dataclass
class RecommendationSummary:
    top_recommendation: Optional[str]
    potential_savings: float
    average_score: float
    categories_analyzed: int
    confidence_level: str
    low_confidence: bool = False


@dataclass
class RecommendationResult:
    """Ranked recommendations for one session"""

    session_id: str
    recommendations: List[CardRecommendation]
    summary: RecommendationSummary
    criteria: RecommendationCriteria
    options: RecommendationOptions
    generated_at: datetime
    expires_at: datetime
    analysis: Optional[SpendingAnalysis] = None
    cached: bool = False
