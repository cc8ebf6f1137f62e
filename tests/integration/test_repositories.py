"""Integration tests for the SQLAlchemy repositories and catalog seeding"""

from dataclasses import replace
from datetime import date

import pytest

from card_advisor.bootstrap import DEFAULT_CATALOG
from card_advisor.domain.exceptions import NotFoundError, StorageError
from card_advisor.domain.models import CardFilters, SessionStatus, Transaction
from card_advisor.infrastructure.database.repositories import (
    CatalogRepository,
    RecommendationRepository,
    SessionRepository,
    TransactionRepository,
)
from card_advisor.infrastructure.database.seed import load_catalog_file
from card_advisor.infrastructure.database.session import Database


def transaction(merchant: str, amount: float, confidence: float = 0.9) -> Transaction:
    return Transaction(
        date=date(2024, 1, 10),
        description=merchant,
        merchant=merchant,
        amount=amount,
        type="debit",
        confidence=confidence,
    )


def test_seeding_is_idempotent(database):
    assert load_catalog_file(database, DEFAULT_CATALOG) == 0


def test_catalog_filters(database):
    catalog = CatalogRepository(database)

    personal = catalog.list_eligible_cards(CardFilters())
    everything = catalog.list_eligible_cards(CardFilters(include_business_cards=True))
    free = catalog.list_eligible_cards(CardFilters(max_annual_fee=0))
    mastercard = catalog.list_eligible_cards(CardFilters(preferred_network="mastercard"))

    assert len(personal) == 6
    assert len(everything) == 7
    assert [c.id for c in personal] == sorted(c.id for c in personal)
    assert [c.slug for c in free] == ["amazon-pay-icici"]
    assert [c.slug for c in mastercard] == ["hdfc-millennia"]


def test_accelerated_rewards_loaded_per_card(database):
    catalog = CatalogRepository(database)
    [amazon] = catalog.list_eligible_cards(CardFilters(max_annual_fee=0))

    rules = catalog.get_accelerated_rewards(amazon.id)

    brand_rule = next(r for r in rules if r.category_name == "Amazon")
    assert brand_rule.is_brand_specific
    assert "amazon" in brand_rule.merchant_patterns


def test_update_is_compare_and_set(service, database):
    sessions = SessionRepository(database)
    session = service.create_session()

    stale = sessions.update(replace(session, status=SessionStatus.QUEUED), expected_status=SessionStatus.EXTRACTING)
    fresh = sessions.update(replace(session, status=SessionStatus.QUEUED), expected_status=SessionStatus.UPLOADING)

    assert stale is False
    assert fresh is True
    assert sessions.get(session.id).status == SessionStatus.QUEUED


def test_replace_swaps_the_whole_set(service, database):
    store = TransactionRepository(database, needs_review_threshold=0.8)
    session = service.create_session()

    store.replace(session.id, [transaction("A", 10.0), transaction("B", 20.0), transaction("C", 30.0)])
    stored = store.replace(session.id, [transaction("D", 40.0, confidence=0.5)])

    assert [t.merchant for t in store.list_by_session(session.id)] == ["D"]
    assert stored[0].needs_review is True


def test_replace_clamps_nan_confidence(service, database):
    store = TransactionRepository(database, needs_review_threshold=0.8)
    session = service.create_session()

    [stored] = store.replace(session.id, [transaction("A", 10.0, confidence=float("nan"))])

    assert stored.confidence == 0.0
    assert stored.needs_review is True


def test_replace_for_missing_session(database):
    with pytest.raises(NotFoundError):
        TransactionRepository(database, needs_review_threshold=0.8).replace("missing", [transaction("A", 10.0)])


async def test_delete_cascades_to_transactions_and_cache(service, database):
    session = service.create_session()
    await service.run_job(service.begin_extraction(session.id, "statement.pdf"))
    service.get_recommendations(session.id)
    cache = RecommendationRepository(database)
    assert cache.get(session.id) is not None

    assert SessionRepository(database).delete(session.id) is True

    assert TransactionRepository(database, 0.8).list_by_session(session.id) == []
    assert cache.get(session.id) is None


def test_database_errors_become_storage_errors():
    database = Database("sqlite://")
    try:
        with pytest.raises(StorageError) as excinfo:
            SessionRepository(database).get("anything")
        assert str(excinfo.value) == "Database error: OperationalError"
        assert "[SQL:" not in str(excinfo.value)
    finally:
        database.dispose()
