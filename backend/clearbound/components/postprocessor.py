"""
Postprocessor — component.

Deterministic, generator-free enforcement of the field contract:
truncate to the field ceiling, pad with content-neutral sentences up to
the floor, and force the analysis report into exactly three lines.
"""

from __future__ import annotations

import math
from typing import Dict, List, Mapping, Sequence

from clearbound.components.contracts import (ANALYSIS_FIELD, EMAIL_FIELD,
                                             NOTES_FIELD, FieldBudget,
                                             OutputPlan)
from clearbound.core.logging_config import LoggingConfig
from clearbound.core.metrics import postprocess_adjustments_total

logger = LoggingConfig.get_logger(__name__)

RECIPIENT_PADDING = (
    "I want to keep this clear and respectful.",
    "My aim is simply to make sure we understand each other.",
    "I am open to talking this through at a time that works for both of us.",
    "Thank you for taking the time to read this.",
)

NOTES_PADDING = (
    "Review the draft once before sending.",
    "Adjust any detail that does not match what happened.",
)

ANALYSIS_SLOTS = (
    "Risk posture: treat this as a situation that calls for careful, factual wording.",
    "Strategy: describe what happened briefly and make one specific, reasonable request.",
    "Next step: send the draft, then wait for a reply before raising anything new.",
)

ANALYSIS_LINE_PADDING = "Keep the focus on observable facts and one clear request."

BACKSTOP = "This is written to keep things clear."


def _truncate(text: str, limit: int) -> str:
    return text[:limit].rstrip()


def _pad(text: str, minimum: int, sentences: Sequence[str], separator: str) -> str:
    padding = list(sentences)
    while len(text) < minimum:
        sentence = padding.pop(0) if padding else BACKSTOP
        text = f"{text}{separator}{sentence}" if text else sentence
    return text


def _padding_for(field_name: str) -> Sequence[str]:
    return NOTES_PADDING if field_name == NOTES_FIELD else RECIPIENT_PADDING


def fit_length(field_name: str, text: str, budget: FieldBudget) -> str:
    """Clamp a plain text field into [min_chars, max_chars]"""
    original = (text or "").strip()
    result = original

    if len(result) > budget.max_chars:
        result = _truncate(result, budget.max_chars)
        postprocess_adjustments_total.labels(field_name, "truncated").inc()

    if len(result) < budget.min_chars:
        separator = "\n\n" if field_name == EMAIL_FIELD else " "
        result = _pad(result, budget.min_chars, _padding_for(field_name), separator)
        result = _truncate(result, budget.max_chars)
        postprocess_adjustments_total.labels(field_name, "padded").inc()

    return result


def shape_analysis(text: str, budget: FieldBudget) -> str:
    """Force exactly three non-empty lines within the analysis budget"""
    lines: List[str] = [line.strip() for line in (text or "").splitlines() if line.strip()]
    reshaped = len(lines) != 3

    lines = lines[:3]
    while len(lines) < 3:
        lines.append(ANALYSIS_SLOTS[len(lines)])

    # Two newline separators share the budget with the three lines
    line_max = (budget.max_chars - 2) // 3
    line_min = math.ceil(max(budget.min_chars - 2, 0) / 3)

    shaped = []
    for line in lines:
        if len(line) > line_max:
            line = _truncate(line, line_max)
            reshaped = True
        if len(line) < line_min:
            line = _truncate(_pad(line, line_min, (ANALYSIS_LINE_PADDING,), " "), line_max)
            reshaped = True
        shaped.append(line)

    if reshaped:
        postprocess_adjustments_total.labels(ANALYSIS_FIELD, "reshaped").inc()
    return "\n".join(shaped)


def postprocess(plan: OutputPlan, fields: Mapping[str, str]) -> Dict[str, str]:
    """
    Apply the length and shape contract to every licensed field

    Licensed fields missing from `fields` are built from padding alone, so
    the result always carries every licensed field.
    """
    delivered: Dict[str, str] = {}
    for name in plan.licensed_fields:
        budget = plan.field_budgets[name]
        raw = fields.get(name, "")
        if name == ANALYSIS_FIELD:
            delivered[name] = shape_analysis(raw, budget)
        else:
            delivered[name] = fit_length(name, raw, budget)

    logger.debug(
        "Postprocessed fields",
        extra={"package": plan.package, "lengths": {k: len(v) for k, v in delivered.items()}}
    )
    return delivered
