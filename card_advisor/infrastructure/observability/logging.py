"""Structured JSON logging for the advisor service"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps every record with UTC time, level and service name"""

    def __init__(self, *args, service_name: str = "card-advisor", **kwargs):
        super().__init__(*args, **kwargs)
        self.service_name = service_name

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = self.service_name


def setup_logging(level: str = "INFO", service_name: str = "card-advisor") -> None:
    """Route the root logger to stdout as one JSON object per line"""
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s", service_name=service_name))
    root.addHandler(handler)


def log_extraction(session_id: str, success: bool, attempts: int, extracted: int, duration_ms: float) -> None:
    """Log structured pipeline outcome for analysis"""
    logging.getLogger("card_advisor.pipeline").info(
        "Extraction finished",
        extra={
            "session_id": session_id,
            "step": "pipeline_complete",
            "outcome": "completed" if success else "failed",
            "attempts": attempts,
            "transactions_extracted": extracted,
            "duration_ms": duration_ms,
        },
    )


def log_recommendation(session_id: str, cached: bool, returned: int, top_card: str | None, duration_ms: float) -> None:
    logging.getLogger("card_advisor.recommendations").info(
        "Recommendations served",
        extra={
            "session_id": session_id,
            "source": "cache" if cached else "fresh",
            "returned": returned,
            "top_card": top_card,
            "duration_ms": duration_ms,
        },
    )
