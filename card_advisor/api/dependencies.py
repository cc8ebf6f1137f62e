"""Dependency injection for FastAPI endpoints"""

from fastapi import Request

from card_advisor.services.processing import ProcessingService


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_processing_service(request: Request) -> ProcessingService:
    """Provide the service instance built by the application factory"""
    return request.app.state.service
