"""
Merchant category classification.

Two passes over spending transactions:
- known: merchant name matches a curated alias of a merchant with a fixed MCC
- discovered: keywords in merchant or description suggest an MCC
Anything left stays unknown and uncategorized.
"""

import re
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from card_advisor.domain.models import MccStatus, Transaction

HIGH_CONFIDENCE = 0.85
MEDIUM_CONFIDENCE = 0.7
REVIEW_CONFIDENCE = 0.6

# MCC -> (category, sub-category)
MCC_CATEGORIES: Dict[str, Tuple[str, str]] = {
    "5399": ("Online Shopping", "Marketplaces"),
    "5651": ("Online Shopping", "Fashion"),
    "5732": ("Online Shopping", "Electronics"),
    "5411": ("Groceries", "Supermarkets"),
    "5499": ("Groceries", "Convenience & Quick Commerce"),
    "5300": ("Groceries", "Wholesale Clubs"),
    "4814": ("Bills & Utilities", "Mobile & Internet"),
    "4900": ("Bills & Utilities", "Electricity & Water"),
    "6540": ("Bills & Utilities", "Wallet Top-ups"),
    "5812": ("Dining", "Restaurants"),
    "5814": ("Dining", "Fast Food & Delivery"),
    "5541": ("Fuel", "Petrol Stations"),
    "5542": ("Fuel", "Automated Fuel Dispensers"),
    "4121": ("Transportation", "Ride Hailing"),
    "4111": ("Transportation", "Public Transport"),
    "4784": ("Transportation", "Parking & Tolls"),
    "3000": ("Travel", "Airlines"),
    "3504": ("Travel", "Hotels"),
    "7011": ("Travel", "Hotels"),
    "4112": ("Travel", "Railways"),
    "4722": ("Travel", "Travel Agencies"),
    "5815": ("Entertainment", "Streaming"),
    "7832": ("Entertainment", "Movies"),
    "5912": ("Health", "Pharmacies"),
    "8062": ("Health", "Hospitals"),
}

# Canonical merchant -> (aliases, MCC, confidence)
MERCHANT_ALIASES: Dict[str, Tuple[List[str], str, float]] = {
    "AMAZON": (["AMAZON", "AMZN", "AMAZON PAY", "AMAZON IN"], "5399", 0.95),
    "FLIPKART": (["FLIPKART", "FKRT"], "5399", 0.95),
    "MYNTRA": (["MYNTRA"], "5651", 0.95),
    "BIGBASKET": (["BIGBASKET", "BIG BASKET", "BB NOW"], "5411", 0.95),
    "BLINKIT": (["BLINKIT", "GROFERS"], "5499", 0.95),
    "DMART": (["DMART", "D MART", "AVENUE SUPERMARTS"], "5411", 0.95),
    "WALMART": (["WALMART", "WAL-MART", "WM SUPERCENTER"], "5411", 0.95),
    "COSTCO": (["COSTCO", "COSTCO WHSE"], "5300", 0.95),
    "SWIGGY": (["SWIGGY"], "5814", 0.95),
    "ZOMATO": (["ZOMATO"], "5814", 0.95),
    "MCDONALDS": (["MCDONALDS", "MCDONALD'S", "MCDONALD", "MC DONALDS", "MCD"], "5814", 0.98),
    "STARBUCKS": (["STARBUCKS", "SBUX", "STAR BUCKS"], "5499", 0.98),
    "SHELL": (["SHELL"], "5542", 0.95),
    "INDIAN OIL": (["INDIAN OIL", "IOCL"], "5541", 0.95),
    "HP PETROL": (["HPCL", "HP PETROL"], "5541", 0.95),
    "BHARAT PETROLEUM": (["BHARAT PETROLEUM", "BPCL"], "5541", 0.95),
    "UBER": (["UBER", "UBER TRIP", "UBER BV"], "4121", 0.95),
    "OLA": (["OLA CABS", "OLACABS", "ANI TECHNOLOGIES"], "4121", 0.95),
    "IRCTC": (["IRCTC"], "4112", 0.95),
    "INDIGO": (["INDIGO", "INTERGLOBE"], "3000", 0.95),
    "MAKEMYTRIP": (["MAKEMYTRIP", "MMT"], "4722", 0.9),
    "MARRIOTT": (["MARRIOTT"], "3504", 0.95),
    "NETFLIX": (["NETFLIX"], "5815", 0.98),
    "SPOTIFY": (["SPOTIFY"], "5815", 0.98),
    "AIRTEL": (["AIRTEL", "BHARTI AIRTEL"], "4814", 0.95),
    "JIO": (["JIO", "RELIANCE JIO"], "4814", 0.95),
    "APOLLO PHARMACY": (["APOLLO PHARMACY"], "5912", 0.95),
}

# Keyword hints used when no alias matched
DISCOVERY_KEYWORDS: Dict[str, List[str]] = {
    "5411": ["SUPERMARKET", "GROCERY", "GROCERIES", "HYPERMARKET", "MART", "FRESH"],
    "5812": ["RESTAURANT", "DINER", "BISTRO", "KITCHEN", "DHABA", "GRILL"],
    "5814": ["PIZZA", "BURGER", "FOOD DELIVERY", "BIRYANI"],
    "5499": ["CAFE", "COFFEE", "BAKERY", "TEA"],
    "5541": ["PETROL", "FUEL", "FILLING STATION", "GAS STATION", "DIESEL"],
    "4121": ["TAXI", "CAB", "RIDE"],
    "4111": ["METRO", "BUS", "TRANSIT"],
    "4784": ["TOLL", "PARKING", "FASTAG"],
    "3000": ["AIRLINE", "AIRWAYS", "AIR INDIA", "FLIGHT"],
    "7011": ["HOTEL", "RESORT", "INN", "LODGE"],
    "4900": ["ELECTRICITY", "POWER", "WATER BOARD", "UTILITY"],
    "4814": ["MOBILE", "RECHARGE", "BROADBAND", "TELECOM", "POSTPAID"],
    "5815": ["STREAMING", "SUBSCRIPTION", "PRIME VIDEO", "HOTSTAR"],
    "7832": ["CINEMA", "PVR", "INOX", "MOVIES"],
    "5912": ["PHARMACY", "CHEMIST", "MEDICAL STORE", "MEDPLUS"],
    "8062": ["HOSPITAL", "CLINIC", "DIAGNOSTIC"],
    "5651": ["FASHION", "APPAREL", "CLOTHING", "FOOTWEAR"],
    "5732": ["ELECTRONICS", "CROMA", "RELIANCE DIGITAL"],
}


@dataclass
class CategoryMatch:
    mcc_code: str
    category_name: str
    sub_category_name: str
    confidence: float
    status: MccStatus


@dataclass
class CategorizationSummary:
    transactions: List[Transaction]
    categorized_count: int
    unknown_mcc_count: int
    new_mcc_discovered: int


def _normalize(text: str) -> str:
    return re.sub(r"\s+", " ", re.sub(r"[^A-Z0-9&' ]", " ", text.upper())).strip()


def _contains_phrase(haystack: str, phrase: str) -> bool:
    return re.search(rf"(?<![A-Z0-9]){re.escape(phrase)}(?![A-Z0-9])", haystack) is not None


def is_spending(txn: Transaction) -> bool:
    return txn.amount > 0 and txn.type not in ("payment", "credit")


class MerchantCategorizer:
    """Resolves merchant category codes for spending transactions"""

    def __init__(
        self,
        high_confidence: float = HIGH_CONFIDENCE,
        review_confidence: float = REVIEW_CONFIDENCE,
    ):
        self.high_confidence = high_confidence
        self.review_confidence = review_confidence
        self._aliases = sorted(
            (
                (_normalize(alias), mcc, confidence)
                for aliases, mcc, confidence in MERCHANT_ALIASES.values()
                for alias in aliases
            ),
            key=lambda item: -len(item[0]),  # Longest alias wins
        )

    def _match(self, mcc_code: str, confidence: float, status: MccStatus) -> CategoryMatch:
        category, sub_category = MCC_CATEGORIES[mcc_code]
        return CategoryMatch(mcc_code, category, sub_category, confidence, status)

    def match_known(self, txn: Transaction) -> Optional[CategoryMatch]:
        merchant = _normalize(txn.merchant)
        for alias, mcc_code, confidence in self._aliases:
            if _contains_phrase(merchant, alias):
                return self._match(mcc_code, confidence, MccStatus.KNOWN)
        return None

    def discover(self, txn: Transaction) -> Optional[CategoryMatch]:
        merchant = _normalize(txn.merchant)
        description = _normalize(txn.description)
        for mcc_code, keywords in DISCOVERY_KEYWORDS.items():
            for keyword in keywords:
                if _contains_phrase(merchant, keyword):
                    return self._match(mcc_code, MEDIUM_CONFIDENCE, MccStatus.DISCOVERED)
        for mcc_code, keywords in DISCOVERY_KEYWORDS.items():
            for keyword in keywords:
                if _contains_phrase(description, keyword):
                    return self._match(mcc_code, REVIEW_CONFIDENCE, MccStatus.DISCOVERED)
        return None

    def apply(self, txn: Transaction, match: CategoryMatch) -> Transaction:
        return replace(
            txn,
            mcc_code=match.mcc_code,
            category_name=match.category_name,
            sub_category_name=match.sub_category_name,
            mcc_status=match.status,
            mcc_confidence=match.confidence,
            is_verified=match.status == MccStatus.KNOWN and match.confidence >= self.high_confidence,
        )

    def categorize_known(self, transactions: List[Transaction]) -> List[Transaction]:
        result = []
        for txn in transactions:
            match = self.match_known(txn) if is_spending(txn) else None
            result.append(self.apply(txn, match) if match else txn)
        return result

    def discover_unknown(self, transactions: List[Transaction]) -> CategorizationSummary:
        """Second pass over transactions the alias table could not resolve"""
        result = []
        discovered_codes = set()
        for txn in transactions:
            if txn.category_name is None and is_spending(txn):
                match = self.discover(txn)
                if match and match.confidence >= self.review_confidence:
                    txn = self.apply(txn, match)
                    discovered_codes.add(match.mcc_code)
                else:
                    txn = replace(txn, mcc_status=MccStatus.UNKNOWN, mcc_confidence=0.0)
            result.append(txn)

        spending = [t for t in result if is_spending(t)]
        return CategorizationSummary(
            transactions=result,
            categorized_count=sum(1 for t in spending if t.category_name),
            unknown_mcc_count=sum(1 for t in spending if t.mcc_status == MccStatus.UNKNOWN),
            new_mcc_discovered=len(discovered_codes),
        )
