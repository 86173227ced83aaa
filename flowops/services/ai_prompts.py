"""Prompt builders and strict JSON schemas for handoff AI artifacts.

Each artifact type maps to a ``PromptSpec``: the schema sent to the
structured-output API and the Pydantic model the result must validate
against. The context bundle is the only source of facts the model sees.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Callable, get_args

from pydantic import BaseModel

from flowops.db.enums import AiArtifactType
from flowops.services.ai_prompt_schemas import (
    AttentionFlag,
    HandoffSummaryOutput,
    ReplyDraftOutput,
    ReplyTone,
    ResolutionCategory,
    ResolutionSuggestionOutput,
    RiskAssessmentOutput,
    RiskLevel,
)


@dataclass(frozen=True)
class PromptSpec:
    schema_name: str
    schema: dict
    output_model: type[BaseModel]
    build: Callable[[dict], tuple[str, str]]


def _string_array() -> dict:
    return {"type": "array", "items": {"type": "string"}}


def _object(properties: dict) -> dict:
    # Strict structured outputs: every property required, nothing extra
    return {
        "type": "object",
        "additionalProperties": False,
        "properties": properties,
        "required": list(properties),
    }


def _context_block(bundle: dict) -> str:
    return f"CONTEXT (authoritative JSON):\n{json.dumps(bundle, default=str)}\n\n"


HANDOFF_SUMMARY_SCHEMA = _object(
    {
        "summary_text": {"type": "string"},
        "key_facts": _string_array(),
        "risks": _string_array(),
        "recommended_human_next_step": {"type": "string"},
    }
)

REPLY_DRAFT_SCHEMA = _object(
    {
        "draft_text": {"type": "string"},
        "tone": {"type": "string", "enum": list(get_args(ReplyTone))},
        "citations": _string_array(),
        "disclaimers": _string_array(),
    }
)

RISK_ASSESSMENT_SCHEMA = _object(
    {
        "risk_level": {"type": "string", "enum": list(get_args(RiskLevel))},
        "reasons": _string_array(),
        "attention_flags": {
            "type": "array",
            "items": {"type": "string", "enum": list(get_args(AttentionFlag))},
        },
    }
)

RESOLUTION_SUGGESTION_SCHEMA = _object(
    {
        "suggested_category": {"type": "string", "enum": list(get_args(ResolutionCategory))},
        "confidence": {"type": "number"},
        "uncertainties": _string_array(),
        "key_facts_used": _string_array(),
        "suggested_internal_notes": {"type": "string"},
        "suggested_customer_message": {"type": ["string", "null"]},
    }
)


def build_handoff_summary_prompt(bundle: dict) -> tuple[str, str]:
    system = (
        "You are a reliability-focused support-ops summarizer.\n"
        "Rules:\n"
        "- Only use facts provided in CONTEXT.\n"
        "- If a fact is missing, say so in risks; do not invent.\n"
        "- Output must be valid JSON matching the provided schema.\n"
        "- Keep summary concise and operator-friendly.\n"
    )
    user = _context_block(bundle) + "Task:\nGenerate a human handoff summary for an operator.\n"
    return system, user


def build_reply_draft_prompt(bundle: dict) -> tuple[str, str]:
    system = (
        "You draft customer support replies for a human operator.\n"
        "Rules:\n"
        "- Do NOT promise actions you cannot verify from CONTEXT.\n"
        "- Only use facts in CONTEXT.\n"
        '- If uncertain, say "I will confirm" instead of inventing.\n'
        "- Output JSON only.\n"
    )
    user = (
        _context_block(bundle)
        + "Task:\nDraft a customer-facing reply the human operator can approve.\n"
        "Include citations that point to which facts you used (short bullet-like strings).\n"
    )
    return system, user


def build_risk_assessment_prompt(bundle: dict) -> tuple[str, str]:
    system = (
        "You assist human operators by highlighting potential operational risk.\n"
        "Rules:\n"
        "- You do NOT make decisions.\n"
        "- You do NOT approve or deny actions.\n"
        "- You ONLY assess risk based on provided CONTEXT.\n"
        "- If uncertain, choose lower risk.\n"
        "- Use plain English only.\n"
        "- Output JSON only.\n"
    )
    user = (
        _context_block(bundle)
        + "Task:\nAssess the potential operational risk of this handoff.\n"
        "Explain your reasoning clearly for a human operator.\n"
    )
    return system, user


def build_resolution_suggestion_prompt(bundle: dict) -> tuple[str, str]:
    system = (
        "You assist human operators by proposing a resolution direction for a case.\n"
        "Rules:\n"
        "- You do NOT resolve the case.\n"
        "- You do NOT approve/deny refunds or policy exceptions.\n"
        "- You ONLY use facts present in CONTEXT.\n"
        '- If information is missing, choose suggested_category="needs_more_info".\n'
        "- You MUST list uncertainties explicitly.\n"
        "- Output JSON only.\n"
    )
    user = (
        _context_block(bundle)
        + "Task:\nPropose a resolution suggestion for the human operator to review.\n"
        "Return suggested_category, confidence (0..1), uncertainties, key_facts_used "
        "(short citations of the context facts you relied on), suggested_internal_notes "
        "and, optionally, suggested_customer_message (null when not applicable).\n"
    )
    return system, user


PROMPT_SPECS: dict[AiArtifactType, PromptSpec] = {
    AiArtifactType.HANDOFF_SUMMARY: PromptSpec(
        "handoff_summary_v1", HANDOFF_SUMMARY_SCHEMA, HandoffSummaryOutput,
        build_handoff_summary_prompt,
    ),
    AiArtifactType.REPLY_DRAFT: PromptSpec(
        "reply_draft_v1", REPLY_DRAFT_SCHEMA, ReplyDraftOutput, build_reply_draft_prompt,
    ),
    AiArtifactType.RISK_ASSESSMENT: PromptSpec(
        "risk_assessment_v1", RISK_ASSESSMENT_SCHEMA, RiskAssessmentOutput,
        build_risk_assessment_prompt,
    ),
    AiArtifactType.RESOLUTION_SUGGESTION: PromptSpec(
        "resolution_suggestion_v1", RESOLUTION_SUGGESTION_SCHEMA, ResolutionSuggestionOutput,
        build_resolution_suggestion_prompt,
    ),
}
