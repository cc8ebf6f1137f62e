"""Unit tests for the OpenAI classifier client and its reply parsing"""

import httpx
import openai
import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from card_advisor.domain.exceptions import (
    ClassifierRejectedError,
    ClassifierTimeoutError,
    ClassifierUnavailableError,
    UnreadableDocumentError,
)
from card_advisor.domain.models import ExtractionHints
from card_advisor.infrastructure.clients.classifier import (
    OpenAITransactionClassifier,
    build_user_prompt,
    parse_classifier_response,
)
from card_advisor.infrastructure.clients.document_parser import PdfDocumentParser

REPLY = """{
  "transactions": [
    {"date": "2024-01-05", "description": "AMAZON PAY INDIA", "merchant": "AMAZON PAY INDIA",
     "amount": "₹1,200.50", "type": "debit", "confidence": 0.93},
    {"date": "2024-01-20", "description": "PAYMENT RECEIVED", "merchant": "PAYMENT RECEIVED",
     "amount": -5000, "type": "payment"}
  ],
  "totalFound": 2,
  "confidence": 0.88,
  "processingNotes": "Two pages read",
  "warnings": ["Page 2 was faint"]
}"""

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def status_error(cls, status_code: int):
    return cls("request failed", response=httpx.Response(status_code, request=REQUEST), body=None)


def mock_client(reply=None, error=None) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=completion(reply), side_effect=error)
    return client


def test_parse_plain_json_reply():
    result = parse_classifier_response(REPLY)

    assert len(result.candidates) == 2
    assert result.candidates[0].amount == 1200.50
    assert result.candidates[0].confidence == 0.93
    assert result.candidates[1].amount == -5000.0
    assert result.candidates[1].confidence is None
    assert result.confidence == 0.88
    assert result.warnings == ["Page 2 was faint", "Two pages read"]


def test_parse_json_wrapped_in_prose():
    result = parse_classifier_response(f"Here is what I found:\n{REPLY}\nLet me know if you need more.")

    assert len(result.candidates) == 2


@pytest.mark.parametrize(
    "content",
    [None, "", "no json here", "{not: valid json}", '{"count": 3}', '{"transactions": "none"}'],
)
def test_unreadable_replies_are_unavailable(content):
    with pytest.raises(ClassifierUnavailableError):
        parse_classifier_response(content)


def test_missing_overall_confidence_defaults():
    result = parse_classifier_response('{"transactions": []}')

    assert result.candidates == []
    assert result.confidence == 0.5


def test_non_finite_numbers_are_treated_as_missing():
    result = parse_classifier_response(
        '{"transactions": [{"date": "2024-01-05", "merchant": "SWIGGY", "amount": NaN, "confidence": NaN},'
        ' {"date": "2024-01-06", "merchant": "ZOMATO", "amount": Infinity, "confidence": 0.9}],'
        ' "confidence": NaN}'
    )

    assert [c.amount for c in result.candidates] == [None, None]
    assert result.candidates[0].confidence is None
    assert result.confidence == 0.5


def test_user_prompt_carries_hints():
    prompt = build_user_prompt("statement body", ExtractionHints(expected_issuer="HDFC Bank", expected_transaction_count=12))

    assert "Statement issuer: HDFC Bank" in prompt
    assert "about 12" in prompt
    assert prompt.endswith("statement body")


async def test_extract_sends_json_mode_request():
    client = mock_client(reply=REPLY)
    classifier = OpenAITransactionClassifier(api_key="test", model="gpt-4o-mini", timeout=5.0, client=client)

    result = await classifier.extract("statement body", ExtractionHints())

    assert len(result.candidates) == 2
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["messages"][1]["content"].endswith("statement body")


@pytest.mark.parametrize(
    "error,expected",
    [
        (openai.APITimeoutError(request=REQUEST), ClassifierTimeoutError),
        (openai.APIConnectionError(request=REQUEST), ClassifierUnavailableError),
        (status_error(openai.RateLimitError, 429), ClassifierUnavailableError),
        (status_error(openai.InternalServerError, 500), ClassifierUnavailableError),
        (status_error(openai.BadRequestError, 400), ClassifierRejectedError),
    ],
)
async def test_api_errors_are_mapped(error, expected):
    classifier = OpenAITransactionClassifier(api_key="test", client=mock_client(error=error))

    with pytest.raises(expected):
        await classifier.extract("statement body", ExtractionHints())


async def test_rejection_is_not_retryable():
    classifier = OpenAITransactionClassifier(api_key="test", client=mock_client(error=status_error(openai.BadRequestError, 400)))

    with pytest.raises(ClassifierRejectedError) as exc_info:
        await classifier.extract("statement body", ExtractionHints())

    assert exc_info.value.retryable is False


async def test_empty_choices_are_unavailable():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[]))
    classifier = OpenAITransactionClassifier(api_key="test", client=client)

    with pytest.raises(ClassifierUnavailableError):
        await classifier.extract("statement body", ExtractionHints())


async def test_missing_api_key_is_unavailable():
    classifier = OpenAITransactionClassifier(api_key=None)
    classifier.api_key = None

    with pytest.raises(ClassifierUnavailableError):
        await classifier.extract("statement body", ExtractionHints())


def test_text_export_is_parsed(tmp_path, statement_text):
    path = tmp_path / "statement.txt"
    path.write_text(statement_text, encoding="utf-8")

    document = PdfDocumentParser().parse(str(path))

    assert document.page_count == 1
    assert document.stats.likely_transaction_data


def test_missing_document_is_unreadable(tmp_path):
    with pytest.raises(UnreadableDocumentError):
        PdfDocumentParser().parse(str(tmp_path / "missing.pdf"))


def test_broken_pdf_is_unreadable(tmp_path):
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"this is not a pdf")

    with pytest.raises(UnreadableDocumentError):
        PdfDocumentParser().parse(str(path))
