"""OpenAI-backed text classifier that pulls transactions out of statement text"""

import json
import math
import re
from typing import Any, Dict, List

import openai
from openai import AsyncOpenAI

from card_advisor.config import settings
from card_advisor.domain.exceptions import (
    ClassifierRejectedError,
    ClassifierTimeoutError,
    ClassifierUnavailableError,
)
from card_advisor.domain.models import ClassifierResult, ExtractionHints, RawTransaction

SYSTEM_PROMPT = """You extract transactions from credit card statements.
Return only a JSON object of this shape:
{
  "transactions": [
    {
      "date": "YYYY-MM-DD",
      "description": "line item text as printed",
      "merchant": "merchant name without reference numbers",
      "amount": 123.45,
      "type": "debit | credit | payment | fee | interest | other",
      "confidence": 0.0
    }
  ],
  "totalFound": 0,
  "confidence": 0.0,
  "processingNotes": "",
  "warnings": []
}
Rules:
- Purchases and fees are positive amounts; payments, refunds and credits are negative.
- confidence is your certainty for each transaction, from 0 to 1.
- Skip summary rows such as opening balance, total due or minimum due.
- Do not invent transactions that are not in the text."""

JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


def build_user_prompt(text: str, hints: ExtractionHints) -> str:
    lines = []
    if hints.expected_issuer:
        lines.append(f"Statement issuer: {hints.expected_issuer}")
    if hints.expected_transaction_count:
        lines.append(f"Expected number of transactions: about {hints.expected_transaction_count}")
    lines.append("Statement text:")
    lines.append(text)
    return "\n".join(lines)


def _as_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        cleaned = re.sub(r"[^0-9.\-]", "", str(value))
        try:
            number = float(cleaned)
        except ValueError:
            return None
    # json.loads accepts NaN and Infinity
    return number if math.isfinite(number) else None


def parse_classifier_response(content: str | None) -> ClassifierResult:
    """
    Parse the model's JSON reply.

    Raises:
        ClassifierUnavailableError: When no JSON object with a transactions list can be read
    """
    if not content:
        raise ClassifierUnavailableError("Classifier returned an empty response")
    try:
        data: Dict[str, Any] = json.loads(content)
    except json.JSONDecodeError:
        match = JSON_BLOCK.search(content)
        if not match:
            raise ClassifierUnavailableError("Classifier response contained no JSON object")
        try:
            data = json.loads(match.group())
        except json.JSONDecodeError as e:
            raise ClassifierUnavailableError(f"Classifier returned malformed JSON: {e}") from e

    items = data.get("transactions") if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise ClassifierUnavailableError("Classifier response is missing the transactions list")

    candidates: List[RawTransaction] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        candidates.append(
            RawTransaction(
                date=str(item["date"]) if item.get("date") else None,
                description=item.get("description"),
                merchant=item.get("merchant"),
                amount=_as_float(item.get("amount")),
                type=item.get("type"),
                confidence=_as_float(item.get("confidence")),
            )
        )

    warnings = [str(w) for w in data.get("warnings") or []]
    notes = data.get("processingNotes")
    if notes:
        warnings.append(str(notes))
    return ClassifierResult(
        candidates=candidates,
        confidence=_as_float(data.get("confidence")) or 0.5,
        warnings=warnings,
    )


class OpenAITransactionClassifier:
    """Client for the OpenAI chat completions API"""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        client: AsyncOpenAI | None = None,
    ):
        self.api_key = api_key or settings.openai_api_key
        self.model = model or settings.classifier_model
        self.timeout = timeout or settings.classifier_timeout_seconds
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise ClassifierUnavailableError("OpenAI API key is not configured")
            self._client = AsyncOpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    async def extract(self, text: str, hints: ExtractionHints) -> ClassifierResult:
        """
        Ask the model for the statement's transactions.

        Raises:
            ClassifierTimeoutError: Request timed out
            ClassifierUnavailableError: Network failure, rate limit, server error or unreadable reply
            ClassifierRejectedError: The API refused the request as invalid
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_user_prompt(text, hints)},
                ],
                response_format={"type": "json_object"},
                temperature=0,
            )
        except openai.APITimeoutError as e:
            raise ClassifierTimeoutError(f"OpenAI request timed out after {self.timeout}s") from e
        except openai.APIConnectionError as e:
            raise ClassifierUnavailableError(f"OpenAI connection error: {e}") from e
        except (openai.BadRequestError, openai.UnprocessableEntityError) as e:
            raise ClassifierRejectedError(f"OpenAI rejected the request: {e.status_code}") from e
        except openai.APIStatusError as e:
            raise ClassifierUnavailableError(f"OpenAI API error: {e.status_code}") from e

        if not response.choices:
            raise ClassifierUnavailableError("OpenAI returned no choices")
        return parse_classifier_response(response.choices[0].message.content)
