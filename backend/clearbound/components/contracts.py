"""
Contract models for the decision and generation components.

Every component consumes and produces one of these models, so each
boundary is observable and testable on its own.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple, get_args

from pydantic import BaseModel, ConfigDict, Field, model_validator

Relationship = Literal[
    "personal", "family", "partner", "friend", "coworker",
    "manager", "client", "landlord", "neighbor", "other",
]
Intent = Literal[
    "set_boundary", "request_change", "follow_up", "apologize",
    "decline", "clarify", "end_contact", "not_sure",
]
Tone = Literal["calm", "soft", "neutral", "firm", "formal"]
Format = Literal["message", "email"]
Impact = Literal["low", "high"]
Continuity = Literal["low", "mid", "high"]
Concern = Literal["repeat", "roles", "impact_work", "document", "avoid_escalation"]
Constraint = Literal["no_emotion", "no_aggressive", "no_ambiguity", "no_worse"]
PackageId = Literal["message", "email", "analysis_message", "analysis_email", "total"]

ContinuityBucket = Literal["one_time", "short_term", "ongoing"]
RiskLevel = Literal["low", "moderate", "high"]
Direction = Literal["maintain", "reset", "disengage"]
Detail = Literal["concise", "standard", "detailed"]
StageName = Literal["analysis", "message", "email", "bundle"]

RELATIONSHIPS: Tuple[str, ...] = get_args(Relationship)
INTENTS: Tuple[str, ...] = get_args(Intent)
TONES: Tuple[str, ...] = get_args(Tone)
FORMATS: Tuple[str, ...] = get_args(Format)
IMPACTS: Tuple[str, ...] = get_args(Impact)
CONTINUITIES: Tuple[str, ...] = get_args(Continuity)
CONCERNS: Tuple[str, ...] = get_args(Concern)
CONSTRAINTS: Tuple[str, ...] = get_args(Constraint)
PACKAGES: Tuple[str, ...] = get_args(PackageId)

MAX_MAIN_CONCERNS = 2

MESSAGE_FIELD = "message_text"
EMAIL_FIELD = "email_text"
ANALYSIS_FIELD = "analysis_report"
NOTES_FIELD = "notes"


class RiskScan(BaseModel):
    model_config = ConfigDict(frozen=True)

    impact: Impact
    continuity: Continuity


class CanonicalInput(BaseModel):
    """Single normalized representation of the caller's situation"""
    model_config = ConfigDict(frozen=True)

    relationship: Relationship
    intent: Intent
    tone_requested: Tone
    format: Format
    risk_scan: RiskScan
    facts: str = Field(..., min_length=1)
    main_concerns: Tuple[Concern, ...] = Field(default=(), max_length=MAX_MAIN_CONCERNS)
    constraints: Tuple[Constraint, ...] = ()
    package: PackageId
    direction_unsure: bool = False


class ControlFlags(BaseModel):
    """Internal flags, derived from CanonicalInput only"""
    model_config = ConfigDict(frozen=True)

    continuity_bucket: ContinuityBucket
    repeat_flag: bool = False
    leverage_flag: bool = False
    documentation_sensitivity: bool = False
    reputation_impact: bool = False
    emotional_fallout: bool = False
    ongoing_flag: bool = False


class DecisionConstraints(BaseModel):
    model_config = ConfigDict(frozen=True)

    tone_soften_if_high_risk: bool
    record_safe_mode: bool
    forbidden_patterns_enabled: bool = True


class DecisionReasons(BaseModel):
    model_config = ConfigDict(frozen=True)

    direction: str
    tone: str
    detail: str


class EngineDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    risk_score: int = Field(..., ge=0)
    risk_level: RiskLevel
    record_safe_level: Literal[0, 1, 2]
    tone_recommendation: Literal["calm", "neutral", "formal"]
    detail_recommendation: Detail
    insight_candor_level: RiskLevel
    direction_suggestion: Optional[Direction] = None
    show_direction: bool = False
    constraints: DecisionConstraints
    flags: ControlFlags
    reasons: DecisionReasons

    @model_validator(mode="after")
    def record_safe_requires_formal(self):
        if self.record_safe_level == 2 and self.tone_recommendation != "formal":
            raise ValueError("record_safe_level 2 requires formal tone")
        return self


class FieldBudget(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_chars: int = Field(..., ge=0)
    max_chars: int = Field(..., ge=1)

    @model_validator(mode="after")
    def min_below_max(self):
        if self.min_chars >= self.max_chars:
            raise ValueError("min_chars must be below max_chars")
        return self


class StageBudget(BaseModel):
    model_config = ConfigDict(frozen=True)

    token_budget: int = Field(..., ge=1)


class OutputPlan(BaseModel):
    """What a package is entitled to receive, and how much of it"""
    model_config = ConfigDict(frozen=True)

    package: PackageId
    want_message: bool
    want_email: bool
    want_analysis: bool
    stages: Tuple[StageName, ...]
    field_budgets: Dict[str, FieldBudget]
    stage_budgets: Dict[str, StageBudget]

    @model_validator(mode="after")
    def at_least_one_output(self):
        if not (self.want_message or self.want_email or self.want_analysis):
            raise ValueError("output plan must license at least one field")
        return self

    @property
    def licensed_fields(self) -> Tuple[str, ...]:
        fields = []
        if self.want_message:
            fields.append(MESSAGE_FIELD)
        if self.want_email:
            fields.append(EMAIL_FIELD)
        if self.want_analysis:
            fields.append(ANALYSIS_FIELD)
        fields.append(NOTES_FIELD)
        return tuple(fields)


class PromptPair(BaseModel):
    model_config = ConfigDict(frozen=True)

    system: str
    user: str


class RouteDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: str
    token_budget: int = Field(..., ge=1)
    temperature: float = Field(..., ge=0.0, le=2.0)


class StageState(str, Enum):
    PENDING = "pending"
    CALLED = "called"
    VALID = "valid"
    PARSE_FAILED = "parse_failed"
    REPAIR_CALLED = "repair_called"
    FALLBACK = "fallback"
    DONE = "done"


class StageResult(BaseModel):
    """Outcome of one generation stage, consumed by the postprocessor"""
    stage: StageName
    field_names: Tuple[str, ...]
    model: str
    raw_model_text: str = ""
    parsed_object: Optional[Dict[str, Any]] = None
    validated: bool = False
    used_fallback: bool = False
    repaired: bool = False
    state: StageState = StageState.PENDING
    history: List[StageState] = Field(default_factory=lambda: [StageState.PENDING])
    fields: Dict[str, str] = Field(default_factory=dict)


SAFETY_DISCLAIMER = (
    "This draft is a communication aid generated from your own description. "
    "It is not legal, medical, or professional advice. Review it before sending."
)


class FinalResponse(BaseModel):
    package: PackageId
    message_text: Optional[str] = None
    email_text: Optional[str] = None
    analysis_report: Optional[str] = None
    notes: Optional[str] = None
    safety_disclaimer: str = SAFETY_DISCLAIMER
