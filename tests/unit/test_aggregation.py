"""Unit tests for spending aggregation"""

from datetime import date

from card_advisor.domain.aggregation import SpendingAggregator
from card_advisor.domain.models import Transaction


def txn(amount: float, category: str | None, merchant: str = "Store", day: date = date(2024, 1, 10), type: str = "debit") -> Transaction:
    return Transaction(
        date=day,
        description=merchant,
        merchant=merchant,
        amount=amount,
        type=type,
        confidence=0.9,
        category_name=category,
        mcc_code="5411" if category == "Groceries" else None,
    )


def test_groceries_and_fuel_example():
    """$120 groceries and $30 fuel -> 80% / 20%, groceries first"""
    patterns = SpendingAggregator().aggregate([txn(30, "Fuel"), txn(120, "Groceries")])

    assert [(p.category_name, p.total_spent, p.percentage) for p in patterns] == [
        ("Groceries", 120, 80.0),
        ("Fuel", 30, 20.0),
    ]


def test_aggregate_is_idempotent():
    transactions = [
        txn(45.5, "Dining", "Cafe"),
        txn(12.25, "Dining", "Bakery"),
        txn(300, "Travel", "Airline"),
        txn(80, None, "Unknown"),
    ]
    aggregator = SpendingAggregator()

    assert aggregator.aggregate(transactions) == aggregator.aggregate(transactions)


def test_percentages_sum_to_100_when_fully_categorized():
    transactions = [txn(33.33, "A"), txn(33.33, "B"), txn(33.34, "C"), txn(17, "A")]
    patterns = SpendingAggregator().aggregate(transactions)

    assert abs(sum(p.percentage for p in patterns) - 100) <= 0.1


def test_uncategorized_spend_lowers_category_share():
    patterns = SpendingAggregator().aggregate([txn(75, "Groceries"), txn(25, None)])

    assert len(patterns) == 1
    assert patterns[0].percentage == 75.0
    assert sum(p.percentage for p in patterns) < 100


def test_ties_break_by_count_then_name():
    transactions = [
        txn(50, "Beta"),
        txn(50, "Alpha"),
        txn(25, "Gamma"),
        txn(25, "Gamma"),
    ]
    patterns = SpendingAggregator().aggregate(transactions)

    # All total 50; Gamma has two transactions, then Alpha before Beta
    assert [p.category_name for p in patterns] == ["Gamma", "Alpha", "Beta"]


def test_no_spending_yields_no_patterns():
    patterns = SpendingAggregator().aggregate([txn(-20, "Refunds", type="credit")])

    assert patterns == []


def test_payments_and_refunds_are_not_spend():
    transactions = [
        txn(100, "Groceries"),
        txn(-500, None, "Payment", type="payment"),
        txn(-20, "Groceries", "Refund", type="credit"),
    ]
    patterns = SpendingAggregator().aggregate(transactions)

    assert patterns[0].total_spent == 100
    assert patterns[0].transaction_count == 1
    assert patterns[0].percentage == 100.0


def test_monthly_average_uses_calendar_month_span():
    transactions = [
        txn(100, "Groceries", day=date(2024, 1, 31)),
        txn(200, "Groceries", day=date(2024, 3, 1)),
    ]
    pattern = SpendingAggregator().aggregate(transactions)[0]

    assert pattern.monthly_average == 100.0
    assert pattern.average_transaction == 150.0


def test_single_month_divides_by_one():
    pattern = SpendingAggregator().aggregate([txn(90, "Fuel", day=date(2024, 5, 2))])[0]

    assert pattern.monthly_average == 90.0


def test_analyze_reports_merchants_trend_and_uncategorized():
    transactions = [
        txn(100, "Groceries", "BigBasket", day=date(2024, 1, 5)),
        txn(60, "Groceries", "BigBasket", day=date(2024, 2, 5)),
        txn(40, None, "XYZ Traders", day=date(2024, 2, 9)),
    ]
    analysis = SpendingAggregator(top_merchant_count=1).analyze(transactions)

    assert analysis.total_spending == 200
    assert analysis.total_transactions == 3
    assert analysis.statement_months == 2
    assert analysis.monthly_average == 100
    assert analysis.uncategorized_spending == 40
    assert [m.merchant for m in analysis.top_merchants] == ["BigBasket"]
    assert [(m.month, m.total_spent) for m in analysis.monthly_trends] == [("2024-01", 100), ("2024-02", 100)]
    assert analysis.categories[0].category_name == "Groceries"
