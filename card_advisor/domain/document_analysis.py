"""Heuristics that decide whether extracted text looks like a card statement"""

import re
from typing import List

from card_advisor.domain.models import DocumentStats

NUMBER_PATTERN = re.compile(r"\d")
CURRENCY_PATTERN = re.compile(r"[$₹€£]|\b(?:rs\.?|inr|usd|amount)\b", re.IGNORECASE)
DATE_PATTERNS = [
    re.compile(r"\b\d{1,2}[/-]\d{1,2}[/-]\d{2,4}\b"),
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),
    re.compile(r"\b\d{1,2}\s+(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\s+\d{2,4}\b", re.IGNORECASE),
    re.compile(r"\b(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\s+\d{1,2},?\s+\d{2,4}\b", re.IGNORECASE),
]
STATEMENT_KEYWORDS = [
    "statement",
    "transaction",
    "payment",
    "balance",
    "credit",
    "debit",
    "purchase",
    "merchant",
    "account",
]
CONTROL_CHARACTERS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

LIKELY_STATEMENT_SCORE = 6
MAX_KEYWORD_POINTS = 3


def analyze_text(text: str, table_count: int = 0) -> DocumentStats:
    """
    Compute structural statistics for document text.

    Signal score:
    - +2 numbers, +3 currency markers, +3 dates
    - +1 more than 10 lines, +1 average of 2-20 words per line
    - +1 per statement keyword found, at most 3

    A score of 6 or more marks the text as likely transaction data.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    words = text.split()
    total_lines = len(lines)
    average_words = round(len(words) / total_lines, 2) if total_lines else 0.0

    contains_numbers = bool(NUMBER_PATTERN.search(text))
    contains_currency = bool(CURRENCY_PATTERN.search(text))
    contains_dates = any(pattern.search(text) for pattern in DATE_PATTERNS)

    lowered = text.lower()
    keyword_matches = sum(1 for keyword in STATEMENT_KEYWORDS if keyword in lowered)

    score = 0
    if contains_numbers:
        score += 2
    if contains_currency:
        score += 3
    if contains_dates:
        score += 3
    if total_lines > 10:
        score += 1
    if 2 <= average_words <= 20:
        score += 1
    score += min(keyword_matches, MAX_KEYWORD_POINTS)

    return DocumentStats(
        total_characters=len(text),
        total_words=len(words),
        total_lines=total_lines,
        average_words_per_line=average_words,
        contains_numbers=contains_numbers,
        contains_currency=contains_currency,
        contains_dates=contains_dates,
        keyword_matches=keyword_matches,
        signal_score=score,
        likely_transaction_data=score >= LIKELY_STATEMENT_SCORE,
        table_count=table_count,
        table_density=round(table_count / total_lines, 4) if total_lines else 0.0,
    )


def suitability_problems(stats: DocumentStats, min_words: int) -> List[str]:
    """Reasons the document should not be sent to the classifier; empty when it passes"""
    problems = []
    if stats.total_words < min_words:
        problems.append(f"Document has too little text ({stats.total_words} words, need {min_words})")
    if not stats.contains_numbers:
        problems.append("No numeric values found")
    if not stats.contains_currency:
        problems.append("No currency amounts found")
    if not stats.contains_dates:
        problems.append("No transaction dates found")
    if not problems and not stats.likely_transaction_data:
        problems.append("Content does not resemble a card statement")
    return problems


def clean_text(text: str) -> str:
    """Strip control characters and collapse runs of blank space while keeping line structure"""
    text = CONTROL_CHARACTERS.sub("", text.replace("\r\n", "\n").replace("\r", "\n"))
    lines = [re.sub(r"[ \t]+", " ", line).strip() for line in text.split("\n")]
    cleaned = "\n".join(line for line in lines if line)
    return cleaned
