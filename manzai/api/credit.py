"""FastAPI routes for credit grants (purchase already verified upstream)."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, field_validator

from manzai.features.credits.service import CreditLedger
from manzai.models.usage import CreditGrant

router = APIRouter(prefix="/api/credit", tags=["credit"])
logger = logging.getLogger("manzai")


class CreditAddRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: Optional[str] = None
    product_id: Optional[str] = None

    @field_validator("user_id", mode="before")
    @classmethod
    def _user_id_as_text(cls, value):
        if value is None or value == "":
            return None
        return str(value)


class CreditAddResponse(BaseModel):
    ok: bool
    product_id: str
    paid_credits: int
    added: int


def grant_response(grant: CreditGrant) -> Dict[str, Any]:
    return CreditAddResponse(
        ok=True,
        product_id=grant.product_id,
        paid_credits=grant.paid_credits,
        added=grant.added,
    ).model_dump()


@router.post("/add", response_model=CreditAddResponse)
def add_credit(payload: CreditAddRequest, request: Request) -> Dict[str, Any]:
    """Add the fixed credit pack for the recognized product id."""
    ledger: CreditLedger = request.app.state.ledger
    return grant_response(ledger.grant_credits(payload.user_id, payload.product_id))
