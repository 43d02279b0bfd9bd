"""
Prompt Composer — component.

Builds the system/user prompt pair for one generation stage from fetched
guide templates, engine control metadata and one few-shot example.

Section order in the system prompt is fixed:
output contract, safety rules, risk overrides, format rules, intent guide,
relationship guide, tone micro-style, minimum lengths, example, JSON schema,
closing contract, so the contract is stated at both ends.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Sequence

from clearbound.components.contracts import (ANALYSIS_FIELD, CanonicalInput,
                                             EngineDecision, OutputPlan,
                                             PromptPair)
from clearbound.components.example_library import (ANALYSIS_EXAMPLE,
                                                   select_example)
from clearbound.components.package_resolver import STAGE_FIELDS

SAFETY_RULES = (
    "Do not give legal, medical, financial or therapeutic advice.",
    "Do not predict how the other person will react.",
    "Use only the facts provided. Never invent events, dates, names or quotes.",
    "No threats, ultimatums, insults, sarcasm or guilt-tripping.",
    "No diagnosing or labeling the other person.",
)

FORBIDDEN_PATTERNS = (
    "legal terms such as 'liable', 'lawsuit', 'breach', 'harassment claim'",
    "alarmist words such as 'unacceptable', 'outrageous', 'disgusting'",
    "absolutes such as 'always' and 'never' applied to the other person",
    "statements about being an AI or a writing assistant",
)

CALLER_CONSTRAINTS = {
    "no_emotion": "Keep emotional language out; describe actions, not feelings about them.",
    "no_aggressive": "Nothing that could read as aggressive or accusatory.",
    "no_ambiguity": "State the request or boundary explicitly; no hedging.",
    "no_worse": "Prefer wording that cannot escalate the situation.",
}

DETAIL_GUIDES = {
    "concise": "Keep it short: only what is needed to make the point.",
    "standard": "Give enough context for the point to stand on its own.",
    "detailed": "Include the relevant facts in order so the text can serve as a record.",
}

ANALYSIS_FORMAT_RULES = (
    "analysis_report is an internal note for the user only, never sent to the other person.\n"
    "It has exactly three lines separated by a single newline:\n"
    "line 1 'Risk posture: ...', line 2 'Strategy: ...', line 3 'Next step: ...'.\n"
    "The next step must be concrete and bounded."
)


def effective_tone(data: CanonicalInput, decision: EngineDecision) -> str:
    """Tone actually used for writing: record-safe forces formal, high risk softens firm"""
    if decision.record_safe_level == 2:
        return "formal"
    if decision.constraints.tone_soften_if_high_risk and data.tone_requested == "firm":
        return "neutral"
    return data.tone_requested


def stage_formats(data: CanonicalInput, stage: str) -> List[str]:
    if stage == "bundle":
        return ["message", "email"]
    if stage in ("message", "email"):
        return [stage]
    return []


def required_templates(data: CanonicalInput, decision: EngineDecision, stage: str) -> Dict[str, str]:
    """Template ids a stage needs, keyed by prompt section"""
    templates: Dict[str, str] = {}
    for fmt in stage_formats(data, stage):
        templates[f"format:{fmt}"] = f"format/format.{fmt}.v1.md"
    templates["intent"] = f"intent/intent.{data.intent}.v1.md"
    templates["relationship"] = f"relationship/relationship.{data.relationship}.v1.md"
    if stage != "analysis":
        templates["tone"] = f"tone/tone.{effective_tone(data, decision)}.v1.md"
    return templates


def stage_schema(field_names: Sequence[str]) -> Dict[str, Any]:
    """JSON schema a stage's output must satisfy"""
    return {
        "type": "object",
        "properties": {name: {"type": "string", "minLength": 1} for name in field_names},
        "required": list(field_names),
        "additionalProperties": False,
    }


def _contract(field_names: Sequence[str]) -> str:
    keys = ", ".join(f'"{name}"' for name in field_names)
    return (
        f"OUTPUT CONTRACT: Return ONLY one JSON object with exactly these keys: {keys}. "
        "Every value is a non-empty string. No markdown, no code fences, no text before or after the object."
    )


def _section(title: str, body: str) -> str:
    return f"== {title} ==\n{body.strip()}"


def _risk_overrides(decision: EngineDecision, stage: str) -> str:
    lines = []
    if decision.record_safe_level == 2:
        lines.append(
            "RECORD-SAFE MODE: write as if this text may be kept as documentation. "
            "Factual, neutral, dated where the facts give dates, no emotional language, "
            "no speculation about motives."
        )
    elif decision.record_safe_level == 1:
        lines.append(
            "REPUTATION-AWARE: keep the wording measured; write nothing you would mind "
            "being forwarded to others."
        )
    else:
        lines.append("No record-keeping constraints apply; natural wording is fine.")
    if decision.constraints.tone_soften_if_high_risk:
        lines.append("High-risk situation: soften firm phrasing and leave room for a calm reply.")
    if stage == "analysis":
        lines.append(f"Candor level for the analysis: {decision.insight_candor_level}.")
    return "\n".join(lines)


def _format_rules(stage: str, data: CanonicalInput, templates: Mapping[str, str]) -> str:
    if stage == "analysis":
        return ANALYSIS_FORMAT_RULES
    parts = []
    for fmt in stage_formats(data, stage):
        guide = templates.get(f"format:{fmt}", "")
        field = "message_text" if fmt == "message" else "email_text"
        parts.append(f"{field} ({fmt}):\n{guide.strip()}")
    parts.append("notes: one or two sentences for the user about when or how to send; never addressed to the recipient.")
    return "\n\n".join(parts)


def _length_requirements(plan: OutputPlan, field_names: Sequence[str]) -> str:
    lines = []
    for name in field_names:
        budget = plan.field_budgets[name]
        lines.append(f"- {name}: at least {budget.min_chars} and at most {budget.max_chars} characters.")
    return "\n".join(lines)


def _example(data: CanonicalInput, decision: EngineDecision, stage: str) -> str:
    if stage == "analysis":
        return f"Example {ANALYSIS_FIELD} (shape only, do not copy content):\n{ANALYSIS_EXAMPLE}"
    _, text = select_example(data.relationship, data.intent, decision.record_safe_level > 0)
    return f"Example of the expected register (do not copy content):\n{text}"


def _user_prompt(data: CanonicalInput, decision: EngineDecision, stage: str) -> str:
    situation = {
        "relationship": data.relationship,
        "intent": data.intent,
        "tone": effective_tone(data, decision),
        "detail": decision.detail_recommendation,
        "main_concerns": list(data.main_concerns),
        "constraints": list(data.constraints),
        "facts": data.facts,
    }
    if stage == "analysis":
        situation["risk_level"] = decision.risk_level
        situation["direction_suggestion"] = decision.direction_suggestion
    return "SITUATION (JSON):\n" + json.dumps(situation, ensure_ascii=False, indent=2)


def compose(
    data: CanonicalInput,
    decision: EngineDecision,
    plan: OutputPlan,
    stage: str,
    templates: Mapping[str, str],
) -> PromptPair:
    """
    Compose the prompt pair for a stage

    Args:
        templates: template text keyed by template id (see required_templates)
    """
    field_names = STAGE_FIELDS[stage]
    by_section = {
        section: templates.get(template_id, "")
        for section, template_id in required_templates(data, decision, stage).items()
    }

    safety = list(SAFETY_RULES)
    if decision.constraints.forbidden_patterns_enabled:
        safety.append("Never use: " + "; ".join(FORBIDDEN_PATTERNS) + ".")
    safety.extend(CALLER_CONSTRAINTS[c] for c in data.constraints)

    tone_body = by_section.get("tone", "Plain, even, respectful.")
    tone_body = f"{tone_body.strip()}\n{DETAIL_GUIDES[decision.detail_recommendation]}"

    sections = [
        _contract(field_names),
        _section("SAFETY RULES", "\n".join(f"- {rule}" for rule in safety)),
        _section("RISK OVERRIDES", _risk_overrides(decision, stage)),
        _section("FORMAT RULES", _format_rules(stage, data, by_section)),
        _section("INTENT STRUCTURE", by_section.get("intent", "")),
        _section("RELATIONSHIP WORDING", by_section.get("relationship", "")),
        _section("TONE", tone_body),
        _section("MINIMUM LENGTHS", _length_requirements(plan, field_names)),
        _section("EXAMPLE", _example(data, decision, stage)),
        _section("JSON SCHEMA", json.dumps(stage_schema(field_names), indent=2)),
        _contract(field_names),
    ]

    return PromptPair(
        system="\n\n".join(sections),
        user=_user_prompt(data, decision, stage),
    )


def compose_repair(field_names: Sequence[str], malformed_text: str) -> PromptPair:
    """Minimal instruction to coerce malformed output into the stage schema"""
    system = "\n\n".join([
        "You fix malformed output. Rewrite the text below into valid JSON.",
        _contract(field_names),
        "Keep the original wording wherever possible. Do not add new facts.",
        _section("JSON SCHEMA", json.dumps(stage_schema(field_names), indent=2)),
    ])
    user = "MALFORMED OUTPUT:\n" + (malformed_text or "(empty)")
    return PromptPair(system=system, user=user)
