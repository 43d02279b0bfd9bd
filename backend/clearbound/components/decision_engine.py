"""
Decision Engine — component.

Pure, deterministic classification of a situation's risk and the writing
parameters derived from it. No I/O, no model calls, and every branch has a
default, so `decide` cannot fail on a valid CanonicalInput.

The numeric policy (weights and band edges) is product configuration, kept
together here as named constants.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, NamedTuple, Optional, Tuple

from clearbound.components.contracts import (CanonicalInput, ControlFlags,
                                             DecisionConstraints,
                                             DecisionReasons, EngineDecision)

CONTINUITY_BUCKETS: Dict[str, str] = {
    "low": "one_time",
    "mid": "short_term",
    "high": "ongoing",
}

CONTINUITY_WEIGHTS: Dict[str, int] = {
    "one_time": 0,
    "short_term": 1,
    "ongoing": 2,
}

REPEAT_WEIGHT = 1

EXPOSURE_WEIGHTS: Dict[str, int] = {
    "emotional_fallout": 1,
    "reputation_impact": 2,
    "documentation_sensitivity": 2,
    "leverage": 3,
}

# Upper bounds (inclusive) of the low and moderate bands
LOW_RISK_MAX = 2
MODERATE_RISK_MAX = 5

PERSONAL_RELATIONSHIPS = frozenset({"personal", "family", "partner", "friend"})
WORK_RELATIONSHIPS = frozenset({"coworker", "manager", "client"})
POWER_RELATIONSHIPS = frozenset({"manager", "landlord"})


class ExposureRule(NamedTuple):
    """A flag trips when every given condition matches"""
    flag: str
    concern: Optional[str] = None
    impact: Optional[str] = None
    relationships: Optional[FrozenSet[str]] = None


EXPOSURE_RULES: Tuple[ExposureRule, ...] = (
    ExposureRule("emotional_fallout", concern="avoid_escalation"),
    ExposureRule("emotional_fallout", impact="high", relationships=PERSONAL_RELATIONSHIPS),
    ExposureRule("reputation_impact", concern="impact_work"),
    ExposureRule("reputation_impact", impact="high"),
    ExposureRule("documentation_sensitivity", concern="document"),
    ExposureRule("leverage", relationships=POWER_RELATIONSHIPS),
    ExposureRule("leverage", concern="roles", relationships=WORK_RELATIONSHIPS),
)


def _rule_matches(rule: ExposureRule, data: CanonicalInput) -> bool:
    if rule.concern is not None and rule.concern not in data.main_concerns:
        return False
    if rule.impact is not None and rule.impact != data.risk_scan.impact:
        return False
    if rule.relationships is not None and data.relationship not in rule.relationships:
        return False
    return True


def derive_flags(data: CanonicalInput) -> ControlFlags:
    """Compute internal control flags from the canonical input alone"""
    bucket = CONTINUITY_BUCKETS[data.risk_scan.continuity]
    tripped = {rule.flag for rule in EXPOSURE_RULES if _rule_matches(rule, data)}
    return ControlFlags(
        continuity_bucket=bucket,
        repeat_flag="repeat" in data.main_concerns,
        leverage_flag="leverage" in tripped,
        documentation_sensitivity="documentation_sensitivity" in tripped,
        reputation_impact="reputation_impact" in tripped,
        emotional_fallout="emotional_fallout" in tripped,
        ongoing_flag=bucket == "ongoing",
    )


def exposure_weight(flags: ControlFlags) -> int:
    active = {
        "emotional_fallout": flags.emotional_fallout,
        "reputation_impact": flags.reputation_impact,
        "documentation_sensitivity": flags.documentation_sensitivity,
        "leverage": flags.leverage_flag,
    }
    return sum(EXPOSURE_WEIGHTS[name] for name, on in active.items() if on)


def risk_score(flags: ControlFlags) -> int:
    repeat_weight = REPEAT_WEIGHT if flags.repeat_flag else 0
    return CONTINUITY_WEIGHTS[flags.continuity_bucket] + repeat_weight + exposure_weight(flags)


def risk_level(score: int) -> str:
    if score <= LOW_RISK_MAX:
        return "low"
    if score <= MODERATE_RISK_MAX:
        return "moderate"
    return "high"


def record_safe_level(flags: ControlFlags) -> int:
    if flags.documentation_sensitivity:
        return 2
    if flags.reputation_impact:
        return 1
    return 0


def tone_recommendation(record_safe: int, level: str) -> str:
    if record_safe == 2:
        return "formal"
    if level in ("high", "moderate"):
        return "neutral"
    return "calm"


def detail_recommendation(record_safe: int, level: str, ongoing: bool) -> str:
    if record_safe == 2:
        return "detailed"
    if level in ("high", "moderate") or ongoing:
        return "standard"
    return "concise"


def direction_suggestion(level: str, record_safe: int, flags: ControlFlags) -> str:
    if level == "low" and flags.continuity_bucket == "one_time" and not flags.repeat_flag:
        return "maintain"
    if record_safe == 2 and flags.leverage_flag and flags.ongoing_flag and flags.repeat_flag:
        return "disengage"
    return "reset"


def _reasons() -> DecisionReasons:
    return DecisionReasons(
        direction="Based on continuity and documentation signals, this aligns with the present context.",
        tone="Selected from documentation and interaction signals.",
        detail="Selected from continuity and interaction signals.",
    )


def decide(data: CanonicalInput) -> EngineDecision:
    """Classify risk and derive writing parameters"""
    flags = derive_flags(data)
    score = risk_score(flags)
    level = risk_level(score)
    record_safe = record_safe_level(flags)

    return EngineDecision(
        risk_score=score,
        risk_level=level,
        record_safe_level=record_safe,
        tone_recommendation=tone_recommendation(record_safe, level),
        detail_recommendation=detail_recommendation(record_safe, level, flags.ongoing_flag),
        insight_candor_level=level,
        direction_suggestion=direction_suggestion(level, record_safe, flags),
        show_direction=data.direction_unsure,
        constraints=DecisionConstraints(
            tone_soften_if_high_risk=level == "high",
            record_safe_mode=record_safe == 2,
            forbidden_patterns_enabled=True,
        ),
        flags=flags,
        reasons=_reasons(),
    )
