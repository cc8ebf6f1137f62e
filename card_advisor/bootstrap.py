"""Wire repositories, collaborators and services into a ProcessingService"""

import logging
from pathlib import Path
from typing import Optional

from card_advisor.config import Settings, settings as default_settings
from card_advisor.domain.contracts import DocumentParser, TextClassifier
from card_advisor.infrastructure.clients.classifier import OpenAITransactionClassifier
from card_advisor.infrastructure.clients.document_parser import PdfDocumentParser
from card_advisor.infrastructure.database.repositories import (
    CatalogRepository,
    RecommendationRepository,
    SessionRepository,
    TransactionRepository,
)
from card_advisor.infrastructure.database.seed import load_catalog_file
from card_advisor.infrastructure.database.session import Database
from card_advisor.services.extraction import ExtractionOrchestrator
from card_advisor.services.processing import ProcessingService
from card_advisor.services.recommendations import RecommendationEngine
from card_advisor.services.sessions import SessionStateMachine

logger = logging.getLogger(__name__)

DEFAULT_CATALOG = Path(__file__).parent / "data" / "catalog_seed.json"


def prepare_database(database: Database, settings: Optional[Settings] = None) -> None:
    """Create tables and load the card catalog (bundled file unless CATALOG_SEED_PATH is set)"""
    settings = settings or default_settings
    database.create_all()
    catalog_path = Path(settings.catalog_seed_path) if settings.catalog_seed_path else DEFAULT_CATALOG
    inserted = load_catalog_file(database, catalog_path)
    logger.info("Database ready", extra={"catalog": catalog_path.name, "cards_inserted": inserted})


def build_service(
    database: Database,
    settings: Optional[Settings] = None,
    parser: Optional[DocumentParser] = None,
    classifier: Optional[TextClassifier] = None,
) -> ProcessingService:
    settings = settings or default_settings

    sessions = SessionStateMachine(
        SessionRepository(database),
        ttl_hours=settings.session_ttl_hours,
        max_retries=settings.max_retries,
    )
    transactions = TransactionRepository(database, settings.needs_review_threshold)

    orchestrator = ExtractionOrchestrator(
        sessions,
        parser or PdfDocumentParser(),
        classifier
        or OpenAITransactionClassifier(
            api_key=settings.openai_api_key,
            model=settings.classifier_model,
            timeout=settings.classifier_timeout_seconds,
        ),
        transactions,
        settings=settings,
    )
    recommendations = RecommendationEngine(
        sessions,
        transactions,
        CatalogRepository(database),
        RecommendationRepository(database),
        settings=settings,
    )
    return ProcessingService(sessions, orchestrator, recommendations, max_concurrent_jobs=settings.max_concurrent_jobs)
