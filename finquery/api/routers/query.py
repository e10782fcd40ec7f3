"""
Query router: structured queries and free-text chat.

Endpoints:
- POST /query - Answer a question with a locally executed structured query
- POST /chat  - Free-text advisory answer
- POST /cards/benefits - Reward rules for a credit card via web search
"""

import asyncio
from fastapi import APIRouter, Depends, HTTPException, status

from configs import ConfigurationError
from finquery.orchestrator import ExhaustionError, FatalProviderError, FinanceAssistant, UnsupportedModeError

from ..schemas import CardBenefitsRequest, ChatRequest, ChatResponse, QueryRequest, QueryResponse
from ..deps import drain_notices, get_assistant, logger, QUERY_TIMEOUT_SECONDS


router = APIRouter(tags=["Query"])


# =============================================================================
# HELPERS
# =============================================================================

async def _run(fn, *args):
    """
    Run a blocking assistant call in a worker thread under the API timeout,
    translating provider failures into HTTP errors.
    """
    try:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=QUERY_TIMEOUT_SECONDS)

    except asyncio.TimeoutError:
        logger.error("Request timed out after %ds", QUERY_TIMEOUT_SECONDS)
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail=f"Request timed out after {QUERY_TIMEOUT_SECONDS} seconds. Try a simpler question.",
        )

    except UnsupportedModeError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    except ConfigurationError as e:
        logger.warning("Provider configuration problem: %s", e)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    except ExhaustionError as e:
        logger.error("All providers exhausted: %s", e)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    except FatalProviderError as e:
        logger.error("Provider %s failed: %s", e.provider, e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    except Exception:
        # Log the full error internally, return sanitized message to client
        logger.exception("Assistant call failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An internal error occurred while processing your question. Please try again.",
        )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/query", response_model=QueryResponse)
async def execute_query(request: QueryRequest, assistant: FinanceAssistant = Depends(get_assistant)):
    """
    Answer a question over expenses or investments.

    Flow: session → metadata (first question of a mode) → provider chain →
    parse + auto-correct → validate → execute.
    """
    drain_notices(assistant)
    answer = await _run(assistant.query, request.question, request.mode)
    return QueryResponse.model_validate({**answer.model_dump(), "notices": drain_notices(assistant)})


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, assistant: FinanceAssistant = Depends(get_assistant)):
    """Free-text answer with the mode's data attached as context."""
    drain_notices(assistant)
    answer = await _run(assistant.chat, request.message, request.mode)
    return ChatResponse.model_validate({**answer.model_dump(), "notices": drain_notices(assistant)})


@router.post("/cards/benefits", response_model=ChatResponse)
async def card_benefits(request: CardBenefitsRequest, assistant: FinanceAssistant = Depends(get_assistant)):
    """Look up a credit card's reward rules with a web-search provider (Gemini, then Perplexity)."""
    drain_notices(assistant)
    answer = await _run(assistant.lookup_card_benefits, request.card_name)
    return ChatResponse.model_validate({**answer.model_dump(), "notices": drain_notices(assistant)})
