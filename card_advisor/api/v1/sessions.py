"""/v1/sessions - statement processing sessions, extraction jobs and recommendations"""

import logging
from typing import Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request

from card_advisor.api.dependencies import get_processing_service, get_request_id
from card_advisor.api.v1.schemas import (
    CleanupResponse,
    DeletedResponse,
    ExtractionRequest,
    JobResponse,
    SessionCreatedResponse,
    SessionStatsResponse,
    SessionStatusResponse,
)
from card_advisor.domain.exceptions import (
    DomainException,
    ExternalServiceError,
    InvalidTransitionError,
    NotFoundError,
    SessionNotReadyError,
    UnreadableDocumentError,
    UnsuitableDocumentError,
    ValidationError,
)
from card_advisor.domain.models import (
    ExtractionHints,
    RecommendationOptions,
    RecommendationResult,
    SpendingAnalysis,
)
from card_advisor.services.processing import ProcessingService

logger = logging.getLogger(__name__)

router = APIRouter()

# Most specific first; SessionNotReadyError is a ValidationError
ERROR_STATUS_CODES = (
    (SessionNotReadyError, 409),
    (ValidationError, 422),
    (NotFoundError, 404),
    (UnsuitableDocumentError, 422),
    (UnreadableDocumentError, 422),
    (InvalidTransitionError, 409),
    (ExternalServiceError, 503),
)


def to_http_error(error: DomainException, request_id: str) -> HTTPException:
    """Map a domain exception onto the HTTP status the API reports for it"""
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            if status_code >= 500:
                logger.error(f"Dependency failure: {error}", extra={"request_id": request_id})
                return HTTPException(status_code=status_code, detail="Service temporarily unavailable")
            logger.warning(f"{error.__class__.__name__}: {error}", extra={"request_id": request_id})
            return HTTPException(status_code=status_code, detail=str(error))

    logger.error(f"Unhandled domain error: {error}", extra={"request_id": request_id})
    return HTTPException(status_code=500, detail="Internal server error")


def parse_weights(raw: Optional[str]) -> Optional[Dict[str, float]]:
    """Read "name:value" pairs separated by commas, e.g. "fee_efficiency:0.5,accessibility:0.1" """
    if not raw:
        return None
    weights = {}
    for pair in raw.split(","):
        name, sep, value = pair.partition(":")
        if not sep:
            raise ValidationError(f"Weight {pair!r} must look like name:value")
        try:
            weights[name.strip()] = float(value)
        except ValueError:
            raise ValidationError(f"Weight {name.strip()!r} is not a number")
    return weights


@router.post("/sessions", response_model=SessionCreatedResponse, status_code=201)
def create_session(request: Request, service: ProcessingService = Depends(get_processing_service)):
    """Open a new session in the uploading state"""
    try:
        session = service.create_session()
    except DomainException as e:
        raise to_http_error(e, get_request_id(request))

    return SessionCreatedResponse(
        session_id=session.id, token=session.token, status=session.status.value, expires_at=session.expires_at
    )


@router.get("/sessions/stats", response_model=SessionStatsResponse)
def session_stats(request: Request, service: ProcessingService = Depends(get_processing_service)):
    try:
        return SessionStatsResponse.from_stats(service.session_stats())
    except DomainException as e:
        raise to_http_error(e, get_request_id(request))


@router.post("/sessions/cleanup", response_model=CleanupResponse)
def cleanup_sessions(request: Request, service: ProcessingService = Depends(get_processing_service)):
    try:
        return CleanupResponse(removed=service.cleanup_expired_sessions())
    except DomainException as e:
        raise to_http_error(e, get_request_id(request))


@router.get("/sessions/{session_id}", response_model=SessionStatusResponse)
def get_session(session_id: str, request: Request, service: ProcessingService = Depends(get_processing_service)):
    """Current status, progress and extraction statistics; accepts the session id or token"""
    try:
        return SessionStatusResponse.from_session(service.get_session_status(session_id))
    except DomainException as e:
        raise to_http_error(e, get_request_id(request))


@router.post("/sessions/{session_id}/extraction", response_model=JobResponse, status_code=202)
async def start_extraction(
    session_id: str,
    request_body: ExtractionRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    service: ProcessingService = Depends(get_processing_service),
):
    """
    Queue a statement for extraction.

    Flow:
    1. Validate input and move the session to queued
    2. Schedule the pipeline run as a background task
    3. Return the job handle; poll GET /sessions/{id} for progress
    """
    request_id = get_request_id(request)
    hints = ExtractionHints(
        expected_issuer=request_body.expected_issuer,
        expected_transaction_count=request_body.expected_transaction_count,
    )
    try:
        handle = service.begin_extraction(session_id, request_body.document_path, hints)
    except DomainException as e:
        raise to_http_error(e, request_id)

    background_tasks.add_task(service.run_job, handle)
    logger.info("Extraction accepted", extra={"request_id": request_id, "session_id": handle.session_id})
    return JobResponse.from_handle(handle)


@router.get("/sessions/{session_id}/recommendations", response_model=RecommendationResult)
def get_recommendations(
    session_id: str,
    request: Request,
    credit_score: Optional[str] = Query(None, description="excellent | good | fair | poor"),
    max_annual_fee: Optional[float] = Query(None),
    preferred_network: Optional[str] = Query(None),
    preferred_issuer: Optional[str] = Query(None),
    include_business_cards: bool = Query(False),
    limit: Optional[int] = Query(None),
    include_analysis: bool = Query(False),
    weights: Optional[str] = Query(None, description="Custom weights as name:value pairs"),
    service: ProcessingService = Depends(get_processing_service),
):
    try:
        options = RecommendationOptions(
            credit_score=credit_score,
            max_annual_fee=max_annual_fee,
            preferred_network=preferred_network,
            preferred_issuer=preferred_issuer,
            include_business_cards=include_business_cards,
            limit=limit,
            include_analysis=include_analysis,
            custom_weights=parse_weights(weights),
        )
        return service.get_recommendations(session_id, options)
    except DomainException as e:
        raise to_http_error(e, get_request_id(request))


@router.delete("/sessions/{session_id}/recommendations", response_model=DeletedResponse)
def delete_recommendations(
    session_id: str, request: Request, service: ProcessingService = Depends(get_processing_service)
):
    """Drop the cached recommendation so the next request recomputes it"""
    try:
        deleted = service.delete_cached_recommendations(session_id)
    except DomainException as e:
        raise to_http_error(e, get_request_id(request))
    return DeletedResponse(session_id=session_id, deleted=deleted)


@router.get("/sessions/{session_id}/analysis", response_model=SpendingAnalysis)
def get_analysis(session_id: str, request: Request, service: ProcessingService = Depends(get_processing_service)):
    try:
        return service.get_spending_analysis(session_id)
    except DomainException as e:
        raise to_http_error(e, get_request_id(request))


@router.post("/sessions/{session_id}/extend", response_model=SessionStatusResponse)
def extend_session(
    session_id: str,
    request: Request,
    hours: int = Query(24),
    service: ProcessingService = Depends(get_processing_service),
):
    try:
        return SessionStatusResponse.from_session(service.extend_session(session_id, hours))
    except DomainException as e:
        raise to_http_error(e, get_request_id(request))


@router.delete("/sessions/{session_id}", response_model=DeletedResponse)
async def delete_session(session_id: str, request: Request, service: ProcessingService = Depends(get_processing_service)):
    """Delete a session with its transactions and cached recommendations; cancels pending batch work"""
    try:
        service.delete_session(session_id)
    except DomainException as e:
        raise to_http_error(e, get_request_id(request))
    return DeletedResponse(session_id=session_id)
