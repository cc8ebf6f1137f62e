"""Validation and clean-up of classifier candidates before they are stored"""

import math
import re
from dataclasses import dataclass, field
from typing import List, Optional

from card_advisor.domain.models import RawTransaction, Transaction
from card_advisor.utils.date_utils import parse_statement_date

VALID_TYPES = {"debit", "credit", "payment", "fee", "interest", "other"}
ZERO_AMOUNT_TYPES = {"fee", "interest"}
MERCHANT_DISALLOWED = re.compile(r"[^a-zA-Z0-9\s&'-]")


@dataclass
class SanitizedCandidates:
    """Transactions that survived sanitizing, plus why the rest were dropped"""

    transactions: List[Transaction]
    dropped: int = 0
    drop_reasons: List[str] = field(default_factory=list)


def clamp_confidence(value: Optional[float]) -> float:
    """Clamp to [0, 1]; missing and NaN count as no confidence"""
    if value is None:
        return 0.0
    number = float(value)
    if math.isnan(number):
        return 0.0
    return min(max(number, 0.0), 1.0)


def clean_merchant(name: Optional[str]) -> str:
    """Remove punctuation other than & ' - and collapse whitespace"""
    if not name:
        return ""
    return re.sub(r"\s+", " ", MERCHANT_DISALLOWED.sub("", name)).strip()


def normalize_type(value: Optional[str]) -> str:
    kind = (value or "").strip().lower()
    return kind if kind in VALID_TYPES else "other"


def sanitize_candidates(
    candidates: List[RawTransaction],
    min_confidence: float,
    needs_review_threshold: float,
    default_confidence: float = 0.5,
) -> SanitizedCandidates:
    """
    Turn raw classifier candidates into storable transactions.

    Rules, applied per candidate:
    - Drop when date, merchant or amount is missing or unparseable
    - Drop NaN or infinite amounts
    - Drop zero amounts unless the type is fee or interest
    - Drop when confidence is below min_confidence
    - Clean merchant text, clamp confidence to [0, 1]
    - needs_review is set when confidence is below needs_review_threshold
    """
    kept: List[Transaction] = []
    reasons: List[str] = []

    for index, candidate in enumerate(candidates):
        txn_date = parse_statement_date(candidate.date)
        merchant = clean_merchant(candidate.merchant)
        if txn_date is None or not merchant or candidate.amount is None:
            reasons.append(f"#{index}: missing date, merchant or amount")
            continue
        if not math.isfinite(float(candidate.amount)):
            reasons.append(f"#{index}: amount is not a finite number")
            continue

        amount = round(float(candidate.amount), 2)
        txn_type = normalize_type(candidate.type)
        if amount == 0 and txn_type not in ZERO_AMOUNT_TYPES:
            reasons.append(f"#{index}: zero amount")
            continue

        raw_confidence = candidate.confidence if candidate.confidence is not None else default_confidence
        confidence = clamp_confidence(raw_confidence)
        if confidence < min_confidence:
            reasons.append(f"#{index}: confidence {confidence:.2f} below {min_confidence}")
            continue

        kept.append(
            Transaction(
                date=txn_date,
                description=(candidate.description or candidate.merchant or "").strip(),
                merchant=merchant,
                amount=amount,
                type=txn_type,
                confidence=confidence,
                needs_review=confidence < needs_review_threshold,
            )
        )

    return SanitizedCandidates(transactions=kept, dropped=len(reasons), drop_reasons=reasons)


def quality_warnings(candidates: List[RawTransaction]) -> List[str]:
    """Coverage checks over a candidate list; warnings only, nothing is rejected"""
    if not candidates:
        return ["No transactions found in the document"]

    total = len(candidates)
    warnings = []
    with_dates = sum(1 for c in candidates if c.date)
    with_amounts = sum(1 for c in candidates if c.amount is not None)
    with_merchants = sum(1 for c in candidates if c.merchant)
    low_confidence = sum(1 for c in candidates if c.confidence is not None and c.confidence < 0.7)

    if with_dates / total < 0.8:
        warnings.append(f"Only {with_dates}/{total} transactions have dates")
    if with_amounts / total < 0.9:
        warnings.append(f"Only {with_amounts}/{total} transactions have amounts")
    if with_merchants / total < 0.85:
        warnings.append(f"Only {with_merchants}/{total} transactions have merchants")
    if low_confidence / total > 0.3:
        warnings.append(f"{low_confidence}/{total} transactions have low confidence")
    return warnings
