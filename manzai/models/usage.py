"""
manzai/models/usage.py

Per-user usage row and the ledger results built from it.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class UsageRecord(BaseModel):
    """
    One row per user.

    output_count counts every successful generation (free or paid);
    paid_credits is the purchased balance still available.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    output_count: int = 0
    paid_credits: int = 0
    updated_at: Optional[datetime] = None


class CreditCheck(BaseModel):
    """Read-only gate decision. tracked is False when no row store is in play."""
    model_config = ConfigDict(frozen=True)

    allowed: bool
    usage_count: Optional[int] = None
    paid_credits: Optional[int] = None
    tracked: bool = False


class CreditGrant(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    product_id: str
    added: int
    paid_credits: int
