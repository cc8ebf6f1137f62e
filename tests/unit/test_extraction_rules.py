"""Unit tests for candidate sanitizing and quality checks"""

from datetime import date

from card_advisor.domain.extraction import (
    clamp_confidence,
    clean_merchant,
    normalize_type,
    quality_warnings,
    sanitize_candidates,
)
from card_advisor.domain.models import RawTransaction


def test_drops_candidates_missing_required_fields():
    candidates = [
        RawTransaction("2024-01-05", "ok", "Amazon", 100.0, "debit", 0.9),
        RawTransaction(None, "no date", "Amazon", 100.0, "debit", 0.9),
        RawTransaction("2024-01-05", "no merchant", None, 100.0, "debit", 0.9),
        RawTransaction("2024-01-05", "no amount", "Amazon", None, "debit", 0.9),
        RawTransaction("not a date", "bad date", "Amazon", 100.0, "debit", 0.9),
    ]

    result = sanitize_candidates(candidates, min_confidence=0.3, needs_review_threshold=0.8)

    assert len(result.transactions) == 1
    assert result.dropped == 4
    assert result.transactions[0].date == date(2024, 1, 5)


def test_zero_amount_kept_only_for_fees_and_interest():
    candidates = [
        RawTransaction("2024-01-05", "annual fee waived", "Card Fee", 0.0, "fee", 0.9),
        RawTransaction("2024-01-05", "finance charge", "Interest", 0.0, "interest", 0.9),
        RawTransaction("2024-01-05", "zero purchase", "Shop", 0.0, "debit", 0.9),
    ]

    result = sanitize_candidates(candidates, min_confidence=0.3, needs_review_threshold=0.8)

    assert [t.type for t in result.transactions] == ["fee", "interest"]


def test_low_confidence_is_dropped_and_review_flag_is_derived():
    candidates = [
        RawTransaction("2024-01-05", "a", "Shop A", 10.0, "debit", 0.2),
        RawTransaction("2024-01-06", "b", "Shop B", 10.0, "debit", 0.5),
        RawTransaction("2024-01-07", "c", "Shop C", 10.0, "debit", 0.95),
    ]

    result = sanitize_candidates(candidates, min_confidence=0.3, needs_review_threshold=0.8)

    assert [t.merchant for t in result.transactions] == ["Shop B", "Shop C"]
    assert [t.needs_review for t in result.transactions] == [True, False]


def test_confidence_is_clamped_and_defaults_to_overall():
    candidates = [
        RawTransaction("2024-01-05", "a", "Shop A", 10.0, "debit", 1.7),
        RawTransaction("2024-01-06", "b", "Shop B", 10.0, "debit", None),
    ]

    result = sanitize_candidates(candidates, min_confidence=0.3, needs_review_threshold=0.8, default_confidence=0.65)

    assert result.transactions[0].confidence == 1.0
    assert result.transactions[1].confidence == 0.65
    assert result.transactions[1].needs_review is True


def test_clean_merchant_strips_punctuation():
    assert clean_merchant("  SWIGGY*ORDER #1234 ") == "SWIGGYORDER 1234"
    assert clean_merchant("Marks & Spencer's  -  Mumbai!") == "Marks & Spencer's - Mumbai"
    assert clean_merchant(None) == ""


def test_unknown_types_become_other():
    assert normalize_type("DEBIT") == "debit"
    assert normalize_type("refund") == "other"
    assert normalize_type(None) == "other"


def test_quality_warnings_on_sparse_candidates():
    candidates = [
        RawTransaction(None, "x", None, None, "debit", 0.5),
        RawTransaction("2024-01-05", "y", "Shop", 10.0, "debit", 0.9),
    ]

    warnings = quality_warnings(candidates)

    assert any("dates" in w for w in warnings)
    assert any("amounts" in w for w in warnings)
    assert any("merchants" in w for w in warnings)
    assert any("low confidence" in w for w in warnings)


def test_quality_warnings_clean_list():
    candidates = [RawTransaction("2024-01-05", "y", "Shop", 10.0, "debit", 0.9) for _ in range(5)]

    assert quality_warnings(candidates) == []
    assert quality_warnings([]) == ["No transactions found in the document"]


def test_nan_confidence_counts_as_zero():
    assert clamp_confidence(float("nan")) == 0.0
    assert clamp_confidence(float("inf")) == 1.0
    assert clamp_confidence(-0.5) == 0.0

    candidates = [RawTransaction("2024-01-05", "a", "Shop A", 10.0, "debit", float("nan"))]
    result = sanitize_candidates(candidates, min_confidence=0.3, needs_review_threshold=0.8)

    assert result.transactions == []
    assert result.dropped == 1


def test_non_finite_amounts_are_dropped():
    candidates = [
        RawTransaction("2024-01-05", "a", "Shop A", float("inf"), "debit", 0.9),
        RawTransaction("2024-01-06", "b", "Shop B", float("nan"), "debit", 0.9),
        RawTransaction("2024-01-07", "c", "Shop C", 25.0, "debit", 0.9),
    ]

    result = sanitize_candidates(candidates, min_confidence=0.3, needs_review_threshold=0.8)

    assert [t.merchant for t in result.transactions] == ["Shop C"]
    assert result.dropped == 2
    assert all(0.0 <= t.confidence <= 1.0 for t in result.transactions)
