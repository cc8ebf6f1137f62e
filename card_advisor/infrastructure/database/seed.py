"""Load card catalog entries from JSON into the catalog tables"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable

from sqlalchemy.orm import Session

from card_advisor.infrastructure.database.models import (
    AcceleratedRewardRecord,
    CardIssuerRecord,
    CardNetworkRecord,
    CreditCardRecord,
    RewardCategoryRecord,
)
from card_advisor.infrastructure.database.session import Database

logger = logging.getLogger(__name__)


def _get_or_create(db: Session, model, slug: str, **values):
    row = db.query(model).filter(model.slug == slug).first()
    if row is None:
        row = model(slug=slug, **values)
        db.add(row)
        db.flush()
    return row


def seed_catalog(database: Database, cards: Iterable[Dict[str, Any]]) -> int:
    """
    Insert catalog cards that are not stored yet (matched by slug).

    Each entry carries nested "issuer", "network" and "rewards" objects in the
    layout of data/catalog_seed.json. Returns the number of cards inserted.
    """
    inserted = 0
    with database.unit_of_work() as db:
        for entry in cards:
            if db.query(CreditCardRecord).filter(CreditCardRecord.slug == entry["slug"]).first():
                continue

            issuer = _get_or_create(db, CardIssuerRecord, entry["issuer"]["slug"], name=entry["issuer"]["name"])
            network = _get_or_create(db, CardNetworkRecord, entry["network"]["slug"], name=entry["network"]["name"])
            card = CreditCardRecord(
                name=entry["name"],
                slug=entry["slug"],
                issuer_id=issuer.id,
                network_id=network.id,
                card_type=entry.get("card_type", "rewards"),
                annual_fee=entry.get("annual_fee", 0.0),
                joining_fee=entry.get("joining_fee", 0.0),
                is_lifetime_free=entry.get("is_lifetime_free", False),
                is_active=entry.get("is_active", True),
                is_business=entry.get("is_business", False),
                base_reward_rate=entry.get("base_reward_rate", 1.0),
                reward_currency=entry.get("reward_currency", "reward_points"),
                min_credit_score=entry.get("min_credit_score"),
                min_income=entry.get("min_income"),
                popularity_score=entry.get("popularity_score", 0.0),
                customer_satisfaction=entry.get("customer_satisfaction"),
                recommendation_score=entry.get("recommendation_score"),
                signup_bonus_value=entry.get("signup_bonus_value", 0.0),
                unique_features=entry.get("unique_features", []),
            )
            if entry.get("id"):
                card.id = entry["id"]
            db.add(card)
            db.flush()

            for reward in entry.get("rewards", []):
                category = _get_or_create(
                    db,
                    RewardCategoryRecord,
                    reward["category"]["slug"],
                    name=reward["category"]["name"],
                    mcc_codes=reward["category"].get("mcc_codes", []),
                )
                db.add(
                    AcceleratedRewardRecord(
                        card_id=card.id,
                        category_id=category.id,
                        reward_rate=reward["reward_rate"],
                        merchant_patterns=reward.get("merchant_patterns", []),
                        capping_limit=reward.get("capping_limit"),
                        capping_period=reward.get("capping_period"),
                        description=reward.get("description", ""),
                    )
                )
            inserted += 1

    logger.info("Catalog seeded", extra={"cards_inserted": inserted})
    return inserted


def load_catalog_file(database: Database, path: str | Path) -> int:
    with open(path, encoding="utf-8") as f:
        return seed_catalog(database, json.load(f))
