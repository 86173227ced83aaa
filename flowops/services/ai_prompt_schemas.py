"""Pydantic schemas for AI artifact outputs."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ReplyTone = Literal["neutral", "empathetic", "concise"]
RiskLevel = Literal["low", "medium", "high"]
AttentionFlag = Literal[
    "sla_near_breach",
    "ambiguous_customer_intent",
    "policy_edge_case",
    "missing_information",
    "repeat_escalation",
    "financial_sensitivity",
]
ResolutionCategory = Literal[
    "refund_possible",
    "refund_not_allowed",
    "billing_issue",
    "technical_issue",
    "account_access",
    "policy_exception",
    "needs_more_info",
    "escalate_to_supervisor",
    "other",
]


class HandoffSummaryOutput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    summary_text: str = Field(min_length=1)
    key_facts: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)
    recommended_human_next_step: str = Field(min_length=1)


class ReplyDraftOutput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    draft_text: str = Field(min_length=1)
    tone: ReplyTone
    citations: list[str] = Field(default_factory=list)
    disclaimers: list[str] = Field(default_factory=list)


class RiskAssessmentOutput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    risk_level: RiskLevel
    reasons: list[str] = Field(min_length=1)
    attention_flags: list[AttentionFlag] = Field(default_factory=list)


class ResolutionSuggestionOutput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    suggested_category: ResolutionCategory
    confidence: float
    uncertainties: list[str] = Field(default_factory=list)
    key_facts_used: list[str] = Field(default_factory=list)
    suggested_internal_notes: str = Field(min_length=1)
    suggested_customer_message: str | None = None

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value):
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.0
        if number != number:  # NaN
            return 0.0
        return max(0.0, min(1.0, number))

    @field_validator("suggested_customer_message", mode="before")
    @classmethod
    def blank_message_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value
