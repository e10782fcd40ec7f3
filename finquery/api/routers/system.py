"""
System router - health, metadata and session endpoints.

Endpoints:
- GET /health            - Health check and provider configuration
- GET /metadata/{mode}   - Metadata descriptor sent to providers for a mode
- GET /session           - Current query session
- DELETE /session        - Drop the current session
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status

from finquery import __version__
from finquery.orchestrator import FinanceAssistant
from finquery.query_engine import MODE_COLLECTIONS

from ..schemas import HealthResponse, SessionResponse
from ..deps import get_assistant, logger


router = APIRouter(tags=["System"])


def _session_response(assistant: FinanceAssistant) -> SessionResponse:
    session = assistant.session
    if session is None:
        return SessionResponse()
    return SessionResponse(active=True, **session.to_dict())


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check(assistant: FinanceAssistant = Depends(get_assistant)):
    """Check API health and configuration status."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        providers_configured=assistant.settings.configured_providers(),
        priority_order=list(assistant.settings.priority_order),
        collections=assistant.datasets.counts(),
    )


@router.get("/metadata/{mode}")
async def get_metadata(mode: str, assistant: FinanceAssistant = Depends(get_assistant)) -> Dict[str, Any]:
    """Metadata descriptor for expenses or investments."""
    if mode not in MODE_COLLECTIONS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No metadata for mode '{mode}'",
        )
    return assistant.metadata(mode)


@router.get("/session", response_model=SessionResponse)
async def get_session(assistant: FinanceAssistant = Depends(get_assistant)):
    return _session_response(assistant)


@router.delete("/session", response_model=SessionResponse)
async def reset_session(assistant: FinanceAssistant = Depends(get_assistant)):
    """Forget the current session; the next query resends metadata."""
    assistant.reset_session()
    logger.info("Session reset via API")
    return _session_response(assistant)
