"""
Manzai script generation pipeline.

Stages:
1. Initial generation (fatal on failure)
2. Length-deficiency continuation (optional, degrades to the prior draft)
3. Self-verification against a checklist (optional, degrades)
4. Title regeneration when no title was extracted (optional, degrades)
5. Strict band enforcement

The normalizer runs after every model call, so each stage starts from a
well-formed draft even if the next one fails.
"""

import math
import random
import sys
from dataclasses import dataclass
from typing import Optional

from manzai.core.config import PipelineConfig
from manzai.core.errors import EmptyOutputError, GenerationError
from manzai.core.logging import log_event
from manzai.features.script.generator import TextGenerator, TextGeneratorError
from manzai.features.script.length_band import LengthBand
from manzai.features.script.normalizer import (
    TITLE_PLACEHOLDER,
    clean_title,
    enforce_band,
    enforce_single_title,
    ensure_blank_line_between_turns,
    ensure_closing_line,
    finalize_body,
    has_turn_lines,
    normalize_body,
    normalize_speaker_colons,
    prepare_draft,
    strip_closing_lines,
)
from manzai.features.script.prompts import (
    banned_terms_for,
    build_prompt,
    continuation_messages,
    find_banned_terms,
    initial_messages,
    is_verification_ok,
    title_messages,
    verification_messages,
)
from manzai.models.script import GenerationRequest, PromptPlan, ScriptDraft

MAX_OUTPUT_TOKENS = 8192

INITIAL_TEMPERATURE = 0.8
CONTINUATION_TEMPERATURE = 0.1
VERIFICATION_TEMPERATURE = 0.2
TITLE_TEMPERATURE = 0.7
TITLE_MAX_TOKENS = 200


@dataclass
class GenerationResult:
    draft: ScriptDraft
    plan: PromptPlan

    @property
    def band(self) -> LengthBand:
        return self.plan.band


def initial_token_budget(band: LengthBand) -> int:
    return min(MAX_OUTPUT_TOKENS, math.ceil(max(band.max_len * 2, 3500) * 3))


def continuation_token_budget(remaining_chars: int) -> int:
    return min(MAX_OUTPUT_TOKENS, math.ceil(max(remaining_chars * 2, 400) * 3))


def _stage_failed(stage: str, exc: Exception, user_id: Optional[str]) -> None:
    log_event(
        "warning",
        f"generation.{stage}_failed",
        user_id=user_id,
        event_type="generation.degraded",
        error_code="upstream_error" if isinstance(exc, TextGeneratorError) else "stage_error",
        extra={"stage": stage, "error": exc},
    )


def _merge_continuation(body: str, continuation: str, plan: PromptPlan) -> str:
    cont = enforce_band(continuation, 0, sys.maxsize, allow_overflow=True)
    cont = enforce_single_title("", cont)
    cont = normalize_speaker_colons(cont)
    cont = ensure_blank_line_between_turns(cont)
    cont = ensure_closing_line(cont, plan.tsukkomi_name)
    merged = f"{strip_closing_lines(body)}\n\n{cont}".strip()
    merged = normalize_speaker_colons(merged)
    merged = ensure_blank_line_between_turns(merged)
    return ensure_closing_line(merged, plan.tsukkomi_name)


def run_continuation(draft: ScriptDraft, plan: PromptPlan, generator: TextGenerator, config: PipelineConfig, user_id: Optional[str] = None) -> ScriptDraft:
    """Ask the model to extend a draft that falls short of the target length."""
    deficit = plan.band.target - draft.length
    if deficit < config.continuation_threshold:
        return draft
    try:
        continuation = generator.complete(
            continuation_messages(draft.body, deficit, plan.tsukkomi_name),
            temperature=CONTINUATION_TEMPERATURE,
            max_tokens=continuation_token_budget(deficit),
        )
    except Exception as exc:
        _stage_failed("continuation", exc, user_id)
        return draft
    draft.model_calls += 1
    if not continuation.strip():
        log_event("warning", "generation.continuation_empty", user_id=user_id, extra={"deficit": deficit})
        return draft
    draft.body = _merge_continuation(draft.body, continuation, plan)
    draft.stages.append("continuation")
    return draft


def run_verification(draft: ScriptDraft, plan: PromptPlan, generator: TextGenerator, user_id: Optional[str] = None) -> ScriptDraft:
    """Re-submit the draft against the checklist; accept a rewrite if it is usable."""
    found = find_banned_terms(strip_closing_lines(draft.body), banned_terms_for(plan))
    try:
        reply = generator.complete(
            verification_messages(draft.body, plan, found),
            temperature=VERIFICATION_TEMPERATURE,
            max_tokens=initial_token_budget(plan.band),
        )
    except Exception as exc:
        _stage_failed("verification", exc, user_id)
        return draft
    draft.model_calls += 1
    if is_verification_ok(reply):
        draft.stages.append("verification:ok")
        return draft

    revised = normalize_speaker_colons(enforce_single_title(draft.title, reply))
    if not has_turn_lines(revised):
        log_event("warning", "generation.verification_unusable", user_id=user_id, extra={"reply_chars": len(reply)})
        return draft
    draft.body = normalize_body(revised, plan.band, plan.tsukkomi_name)
    draft.stages.append("verification:rewritten")
    return draft


def run_title_regeneration(draft: ScriptDraft, request: GenerationRequest, generator: TextGenerator) -> ScriptDraft:
    try:
        reply = generator.complete(
            title_messages(draft.body, request.theme),
            temperature=TITLE_TEMPERATURE,
            max_tokens=TITLE_MAX_TOKENS,
        )
    except Exception as exc:
        _stage_failed("title", exc, request.user_id)
        return draft
    draft.model_calls += 1
    title = clean_title(reply)
    if title:
        draft.title = title
        draft.stages.append("title")
    return draft


def generate_script(
    request: GenerationRequest,
    *,
    generator: Optional[TextGenerator],
    config: PipelineConfig,
    rng: Optional[random.Random] = None,
) -> GenerationResult:
    """Run the full pipeline for one request.

    Raises:
        GenerationError: No generator configured or the initial call failed
        EmptyOutputError: The pipeline ended without a usable body
    """
    if generator is None:
        raise GenerationError("Text generator is not configured")

    plan = build_prompt(request, config.tolerance, rng)
    band = plan.band

    try:
        raw = generator.complete(
            initial_messages(plan),
            temperature=INITIAL_TEMPERATURE,
            max_tokens=initial_token_budget(band),
        )
    except TextGeneratorError as exc:
        log_event(
            "error",
            "generation.initial_failed",
            user_id=request.user_id,
            error_code="upstream_error",
            extra={"status": exc.status, "error": exc},
        )
        raise GenerationError("Model request failed") from exc

    title, body = prepare_draft(raw, band, plan.tsukkomi_name, plan.characters)
    draft = ScriptDraft(title=title, body=body, model_calls=1, stages=["initial"])
    if draft.is_empty():
        raise EmptyOutputError("Empty output")

    if config.continuation_enabled:
        draft = run_continuation(draft, plan, generator, config, request.user_id)
    if config.verification_enabled:
        draft = run_verification(draft, plan, generator, request.user_id)
    if config.title_regeneration_enabled and not draft.title:
        draft = run_title_regeneration(draft, request, generator)

    draft.body = finalize_body(draft.body, band, plan.tsukkomi_name)
    if draft.is_empty():
        raise EmptyOutputError("Empty output")
    draft.title = draft.title or TITLE_PLACEHOLDER

    log_event(
        "info",
        "generation.complete",
        user_id=request.user_id,
        event_type="generation.complete",
        extra={"stages": ",".join(draft.stages), "model_calls": draft.model_calls, "length": draft.length},
    )
    return GenerationResult(draft=draft, plan=plan)
