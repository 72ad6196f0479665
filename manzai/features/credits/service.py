"""
Credit ledger gate.

Handles:
- Pre-generation check (free quota or paid credits)
- Post-success consumption
- Credit grants for the single recognized product

A read failure before generation counts as an empty row and a write failure
after a successful generation is logged and swallowed: a script that was
already produced is always returned.
"""

from typing import Optional

from manzai.core.config import PipelineConfig
from manzai.core.errors import LedgerUnavailableError, QuotaExceededError, ValidationError
from manzai.core.logging import log_event
from manzai.features.credits.store import UsageStore
from manzai.models.usage import CreditCheck, CreditGrant, UsageRecord


class CreditLedger:
    def __init__(
        self,
        store: Optional[UsageStore],
        free_quota: int = 20,
        product_id: str = "credit_100",
        grant_amount: int = 100,
    ):
        self.store = store
        self.free_quota = free_quota
        self.product_id = product_id
        self.grant_amount = grant_amount

    @classmethod
    def from_config(cls, store: Optional[UsageStore], config: PipelineConfig) -> "CreditLedger":
        return cls(
            store,
            free_quota=config.free_quota,
            product_id=config.credit_product_id,
            grant_amount=config.credit_grant_amount,
        )

    def _tracked(self, user_id: Optional[str]) -> bool:
        return self.store is not None and bool(user_id)

    def balance(self, user_id: Optional[str]) -> Optional[UsageRecord]:
        """Current row, or None when untracked or the store cannot be read."""
        if not self._tracked(user_id):
            return None
        try:
            return self.store.get(user_id)
        except Exception as e:
            log_event(
                "warning",
                "credits.read_failed",
                user_id=user_id,
                error_code="ledger_read_failed",
                extra={"error": e},
            )
            return None

    def _read(self, user_id: str) -> UsageRecord:
        record = self.balance(user_id)
        return record if record is not None else UsageRecord(user_id=user_id)

    def is_allowed(self, record: UsageRecord) -> bool:
        return record.output_count < self.free_quota or record.paid_credits > 0

    def check_allowed(self, user_id: Optional[str]) -> CreditCheck:
        """Read-only gate. No store or no user id means allowed and untracked."""
        if not self._tracked(user_id):
            return CreditCheck(allowed=True)
        record = self._read(user_id)
        return CreditCheck(
            allowed=self.is_allowed(record),
            usage_count=record.output_count,
            paid_credits=record.paid_credits,
            tracked=True,
        )

    def require_allowed(self, user_id: Optional[str]) -> CreditCheck:
        """
        check_allowed that raises when the user is out of credits.

        Raises:
            QuotaExceededError: carrying the current usage_count / paid_credits
        """
        check = self.check_allowed(user_id)
        if not check.allowed:
            log_event(
                "info",
                "credits.quota_exceeded",
                user_id=user_id,
                event_type="credits.denied",
                extra={"usage_count": check.usage_count, "paid_credits": check.paid_credits},
            )
            raise QuotaExceededError(
                "Free quota exhausted and no paid credits left",
                payload={"usage_count": check.usage_count, "paid_credits": check.paid_credits},
            )
        return check

    def consume(self, record: UsageRecord) -> UsageRecord:
        """Pure consumption rule applied to a row."""
        if record.output_count < self.free_quota:
            return record.model_copy(update={"output_count": record.output_count + 1})
        if record.paid_credits > 0:
            return record.model_copy(
                update={"output_count": record.output_count + 1, "paid_credits": record.paid_credits - 1}
            )
        return record

    def consume_on_success(self, user_id: Optional[str]) -> Optional[UsageRecord]:
        """Charge one generation. Returns the new row, or None when untracked or on failure."""
        if not self._tracked(user_id):
            return None
        try:
            current = self.store.get(user_id)
            updated = self.consume(current)
            if updated != current:
                updated = self.store.upsert(updated)
            return updated
        except Exception as e:
            log_event(
                "error",
                "credits.consume_failed",
                user_id=user_id,
                error_code="ledger_write_failed",
                extra={"error": e},
            )
            return None

    def grant_credits(self, user_id: Optional[str], product_id: Optional[str]) -> CreditGrant:
        """
        Add purchased credits after an already-verified purchase.

        Raises:
            ValidationError: Missing user id or unrecognized product
            LedgerUnavailableError: No row store configured
        """
        if not user_id:
            raise ValidationError("user_id is required")
        if product_id != self.product_id:
            raise ValidationError(f"Unknown product_id: {product_id}")
        if self.store is None:
            raise LedgerUnavailableError("Credit store is not configured")

        current = self.store.get(user_id)
        updated = self.store.upsert(
            current.model_copy(update={"paid_credits": current.paid_credits + self.grant_amount})
        )
        log_event(
            "info",
            "credits.granted",
            user_id=user_id,
            event_type="credits.granted",
            extra={"product_id": product_id, "added": self.grant_amount, "paid_credits": updated.paid_credits},
        )
        return CreditGrant(
            user_id=user_id,
            product_id=product_id,
            added=self.grant_amount,
            paid_credits=updated.paid_credits,
        )
