"""
Pydantic schemas for the FinQuery API.

These models define the request/response structure for all API endpoints.
"""

from typing import Optional, List, Dict
from pydantic import BaseModel, Field

from finquery.models import ChatAnswer, Mode, QueryAnswer


# ============================================================
# REQUEST MODELS
# ============================================================

class QueryRequest(BaseModel):
    """Request body for POST /query."""
    question: str = Field(..., description="Natural language question", min_length=1)
    mode: Mode = Field(default=Mode.EXPENSES, description="Dataset to query (expenses or investments)")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"question": "How much did I spend on groceries in November 2024?", "mode": "expenses"},
                {"question": "Total long-term investments", "mode": "investments"},
            ]
        }
    }


class ChatRequest(BaseModel):
    """Request body for POST /chat."""
    message: str = Field(..., description="Free-text question", min_length=1)
    mode: Mode = Field(default=Mode.GENERAL, description="Context to attach to the question")


class CardBenefitsRequest(BaseModel):
    """Request body for POST /cards/benefits."""
    card_name: str = Field(..., description="Card name as the issuer markets it", min_length=1)


# ============================================================
# RESPONSE MODELS
# ============================================================

class NoticeAPI(BaseModel):
    """Transient user-facing notice (provider used, fallback taken)."""
    message: str
    level: str = "info"


class QueryResponse(QueryAnswer):
    """Response for POST /query."""
    notices: List[NoticeAPI] = Field(default_factory=list)


class ChatResponse(ChatAnswer):
    """Response for POST /chat."""
    notices: List[NoticeAPI] = Field(default_factory=list)


class SessionResponse(BaseModel):
    """Response for GET/DELETE /session."""
    active: bool = False
    mode: Optional[str] = None
    conversation_id: Optional[str] = None
    metadata_sent: bool = False


class HealthResponse(BaseModel):
    """Response for GET /health."""
    status: str = "healthy"
    version: str = "1.0.0"
    providers_configured: List[str] = []
    priority_order: List[str] = []
    collections: Dict[str, int] = {}
