"""Pytest fixtures for testing"""

import pytest
from typing import Dict, Generator, List, Union
from fastapi.testclient import TestClient

from card_advisor.api.main import create_app
from card_advisor.bootstrap import DEFAULT_CATALOG, build_service
from card_advisor.config import Settings
from card_advisor.domain.document_analysis import analyze_text
from card_advisor.domain.exceptions import UnreadableDocumentError
from card_advisor.domain.models import ClassifierResult, ExtractionHints, ParsedDocument, RawTransaction
from card_advisor.infrastructure.database.seed import load_catalog_file
from card_advisor.infrastructure.database.session import Database
from card_advisor.services.processing import ProcessingService


STATEMENT_TEXT = """HDFC Bank Credit Card Statement
Statement Date: 31/01/2024 Account Number: XXXX XXXX XXXX 4321
Payment Due Date: 20/02/2024 Total Amount Due: Rs. 10,050.00
Date Transaction Description Amount (INR)
05/01/2024 AMAZON PAY INDIA purchase 4,500.00
08/01/2024 SWIGGY BANGALORE food order 850.00
12/01/2024 BHARAT PETROLEUM fuel purchase 3,000.00
15/01/2024 GREEN LEAF RESTAURANT dinner 1,200.00
20/01/2024 PAYMENT RECEIVED THANK YOU -10,000.00 CR
22/01/2024 XYZ TRADERS purchase 500.00
Opening balance Rs. 10,000.00 Closing balance Rs. 10,050.00
Reward points earned this statement: 100
Minimum amount due: Rs. 510.00
For queries call the number on the back of your card
"""

NOT_A_STATEMENT_TEXT = "Dear team, please find the meeting notes attached. Thanks."


def sample_candidates() -> List[RawTransaction]:
    """Classifier output for STATEMENT_TEXT, including one unusable row"""
    return [
        RawTransaction("2024-01-05", "AMAZON PAY INDIA purchase", "AMAZON PAY INDIA", 4500.0, "debit", 0.95),
        RawTransaction("2024-01-08", "SWIGGY BANGALORE food order", "SWIGGY BANGALORE", 850.0, "debit", 0.92),
        RawTransaction("2024-01-12", "BHARAT PETROLEUM fuel purchase", "BHARAT PETROLEUM", 3000.0, "debit", 0.9),
        RawTransaction("2024-01-15", "GREEN LEAF RESTAURANT dinner", "GREEN LEAF RESTAURANT", 1200.0, "debit", 0.75),
        RawTransaction("2024-01-20", "PAYMENT RECEIVED THANK YOU", "PAYMENT RECEIVED", -10000.0, "payment", 0.99),
        RawTransaction("2024-01-22", "XYZ TRADERS purchase", "XYZ TRADERS", 500.0, "debit", 0.85),
        RawTransaction("2024-01-25", "Unreadable row", None, 120.0, "debit", 0.4),
    ]


class StubDocumentParser:
    """In-memory documents keyed by reference; unknown references are unreadable"""

    def __init__(self, documents: Dict[str, str]):
        self.documents = documents

    def parse(self, document_ref: str) -> ParsedDocument:
        if document_ref not in self.documents:
            raise UnreadableDocumentError(f"Document not found: {document_ref}")
        text = self.documents[document_ref]
        return ParsedDocument(text=text, page_count=1, stats=analyze_text(text))


class StubClassifier:
    """
    Plays back queued outcomes in order; the last one repeats once the queue is drained.

    An outcome is either a ClassifierResult to return or an exception to raise.
    """

    def __init__(self, *outcomes: Union[ClassifierResult, Exception]):
        self.outcomes = list(outcomes)
        self.calls: List[ExtractionHints] = []

    def queue(self, *outcomes: Union[ClassifierResult, Exception]) -> None:
        self.outcomes = list(outcomes)

    async def extract(self, text: str, hints: ExtractionHints) -> ClassifierResult:
        self.calls.append(hints)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def statement_text() -> str:
    return STATEMENT_TEXT


@pytest.fixture
def settings() -> Settings:
    """Settings for tests: in-memory database, short delays"""
    return Settings(
        database_url="sqlite://",
        openai_api_key=None,
        classifier_timeout_seconds=1.0,
        batch_delay_seconds=0.01,
        progress_sink_timeout_seconds=0.2,
        max_retries=2,
        log_level="WARNING",
    )


@pytest.fixture
def database(settings: Settings) -> Generator[Database, None, None]:
    """In-memory database with tables created and the bundled card catalog loaded"""
    database = Database(settings.database_url)
    database.create_all()
    load_catalog_file(database, DEFAULT_CATALOG)
    try:
        yield database
    finally:
        database.drop_all()
        database.dispose()


@pytest.fixture
def parser() -> StubDocumentParser:
    return StubDocumentParser(
        {
            "statement.pdf": STATEMENT_TEXT,
            "notes.pdf": NOT_A_STATEMENT_TEXT,
        }
    )


@pytest.fixture
def classifier() -> StubClassifier:
    return StubClassifier(ClassifierResult(candidates=sample_candidates(), confidence=0.9, warnings=[]))


@pytest.fixture
def service(database: Database, settings: Settings, parser: StubDocumentParser, classifier: StubClassifier) -> ProcessingService:
    return build_service(database, settings, parser=parser, classifier=classifier)


@pytest.fixture
def client(service: ProcessingService, settings: Settings) -> TestClient:
    """Create FastAPI test client backed by the in-memory service"""
    app = create_app(settings=settings, service=service)
    return TestClient(app)
