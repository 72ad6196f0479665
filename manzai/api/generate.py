"""FastAPI routes for manzai script generation."""

import logging
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, field_validator

from manzai.api.credit import CreditAddResponse, grant_response
from manzai.core.config import PipelineConfig
from manzai.features.credits.service import CreditLedger
from manzai.features.script.prompts import build_generation_request
from manzai.features.script.service import generate_script
from manzai.features.techniques.catalog import TechniqueSelection

router = APIRouter(prefix="/api", tags=["generate"])
logger = logging.getLogger("manzai")

ADD_CREDIT_ACTION = "add_credit"


class GenerateRequest(BaseModel):
    """Loose request body; missing or odd values fall back to defaults."""
    model_config = ConfigDict(extra="ignore")

    theme: Optional[str] = None
    genre: Optional[str] = None
    characters: Optional[Any] = None
    length: Optional[Any] = None
    user_id: Optional[str] = None
    boke: List[str] = []
    tsukkomi: List[str] = []
    general: List[str] = []
    action: Optional[str] = None
    product_id: Optional[str] = None

    @field_validator("boke", "tsukkomi", "general", mode="before")
    @classmethod
    def _only_string_ids(cls, value):
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, str)]

    @field_validator("user_id", mode="before")
    @classmethod
    def _user_id_as_text(cls, value):
        if value is None or value == "":
            return None
        return str(value)

    def techniques(self) -> TechniqueSelection:
        return TechniqueSelection(boke=list(self.boke), tsukkomi=list(self.tsukkomi), general=list(self.general))


class GenerateMeta(BaseModel):
    structure: List[str]
    techniques: List[str]
    usage_count: Optional[int] = None
    paid_credits: Optional[int] = None
    target_length: int
    min_length: int
    max_length: int
    actual_length: int


class GenerateResponse(BaseModel):
    """Same script under text/body/content for older clients."""
    title: str
    text: str
    body: str
    content: str
    meta: GenerateMeta


@router.post("/generate", response_model=Union[GenerateResponse, CreditAddResponse])
def generate(payload: GenerateRequest, request: Request) -> Dict[str, Any]:
    """Generate one manzai script, or grant credits when action is add_credit.

    Runs in the threadpool; model calls are blocking.
    """
    state = request.app.state
    config: PipelineConfig = state.pipeline_config
    ledger: CreditLedger = state.ledger

    if payload.action == ADD_CREDIT_ACTION:
        return grant_response(ledger.grant_credits(payload.user_id, payload.product_id))

    gen_request = build_generation_request(
        theme=payload.theme,
        genre=payload.genre,
        characters=payload.characters,
        length=payload.length,
        techniques=payload.techniques(),
        user_id=payload.user_id,
        default_length=config.default_length,
        max_length=config.max_length,
    )

    check = ledger.require_allowed(gen_request.user_id)

    result = generate_script(
        gen_request,
        generator=state.generator,
        config=config,
        rng=getattr(state, "rng", None),
    )
    draft, plan, band = result.draft, result.plan, result.band

    usage_count, paid_credits = None, None
    if check.tracked:
        record = ledger.consume_on_success(gen_request.user_id)
        if record is None:
            # write failed; report the stored balance, or nothing if unreadable
            record = ledger.balance(gen_request.user_id)
        if record is not None:
            usage_count, paid_credits = record.output_count, record.paid_credits

    logger.info(
        "generate.success",
        extra={"user_id": gen_request.user_id, "event_type": "generate.success", "status": 200},
    )
    return GenerateResponse(
        title=draft.title,
        text=draft.body,
        body=draft.body,
        content=draft.body,
        meta=GenerateMeta(
            structure=plan.structure_meta,
            techniques=plan.techniques_for_meta,
            usage_count=usage_count,
            paid_credits=paid_credits,
            target_length=band.target,
            min_length=band.min_len,
            max_length=band.max_len,
            actual_length=draft.length,
        ),
    ).model_dump()
