"""Reduce classified transactions into ranked spending patterns"""

from collections import Counter, defaultdict
from typing import Dict, List

from card_advisor.domain.categorization import is_spending
from card_advisor.domain.models import MerchantSpend, MonthlySpend, SpendingAnalysis, SpendingPattern, Transaction
from card_advisor.utils.date_utils import month_key, month_span


def _pattern_order(pattern: SpendingPattern):
    return (-pattern.total_spent, -pattern.transaction_count, pattern.category_name)


class SpendingAggregator:
    """Groups spending by category; only charges (positive amounts) count as spend"""

    def __init__(self, top_merchant_count: int = 10):
        self.top_merchant_count = top_merchant_count

    def aggregate(self, transactions: List[Transaction]) -> List[SpendingPattern]:
        """
        Build one SpendingPattern per category.

        Requirements:
        - Uncategorized spend counts toward the overall total only
        - percentage = category total / overall total * 100, two decimals, 0 when the total is 0
        - monthly_average divides by the calendar-month span of the transaction set (at least 1)
        - Ordered by total desc, then count desc, then category name asc
        """
        spending = [t for t in transactions if is_spending(t)]
        overall_total = sum(t.amount for t in spending)
        months = month_span(t.date for t in transactions)

        groups: Dict[str, List[Transaction]] = defaultdict(list)
        for txn in spending:
            if txn.category_name:
                groups[txn.category_name].append(txn)

        patterns = []
        for category, txns in groups.items():
            total = sum(t.amount for t in txns)
            sub_categories = Counter(t.sub_category_name for t in txns if t.sub_category_name)
            sub_category = (
                sorted(sub_categories.items(), key=lambda item: (-item[1], item[0]))[0][0]
                if sub_categories
                else None
            )
            patterns.append(
                SpendingPattern(
                    category_name=category,
                    sub_category_name=sub_category,
                    total_spent=round(total, 2),
                    transaction_count=len(txns),
                    average_transaction=round(total / len(txns), 2),
                    monthly_average=round(total / months, 2),
                    percentage=round(total / overall_total * 100, 2) if overall_total > 0 else 0.0,
                    mcc_codes=sorted({t.mcc_code for t in txns if t.mcc_code}),
                    merchants=sorted({t.merchant for t in txns}),
                )
            )

        return sorted(patterns, key=_pattern_order)

    def analyze(self, transactions: List[Transaction]) -> SpendingAnalysis:
        """Full breakdown: totals, categories, top merchants and month-by-month trend"""
        spending = [t for t in transactions if is_spending(t)]
        total = sum(t.amount for t in spending)
        months = month_span(t.date for t in transactions)

        merchant_totals: Dict[str, List[float]] = defaultdict(list)
        monthly_totals: Dict[str, List[float]] = defaultdict(list)
        for txn in spending:
            merchant_totals[txn.merchant].append(txn.amount)
            monthly_totals[month_key(txn.date)].append(txn.amount)

        top_merchants = sorted(
            (MerchantSpend(merchant, round(sum(amounts), 2), len(amounts)) for merchant, amounts in merchant_totals.items()),
            key=lambda m: (-m.total_spent, -m.transaction_count, m.merchant),
        )[: self.top_merchant_count]

        monthly_trends = [
            MonthlySpend(month, round(sum(amounts), 2), len(amounts))
            for month, amounts in sorted(monthly_totals.items())
        ]

        return SpendingAnalysis(
            total_spending=round(total, 2),
            total_transactions=len(spending),
            statement_months=months,
            monthly_average=round(total / months, 2),
            uncategorized_spending=round(sum(t.amount for t in spending if not t.category_name), 2),
            categories=self.aggregate(transactions),
            top_merchants=top_merchants,
            monthly_trends=monthly_trends,
        )
