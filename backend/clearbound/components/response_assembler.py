"""
Response Assembler — component.

Builds the FinalResponse from postprocessed fields. Only fields the plan
licenses are copied; every other field is null.
"""

from __future__ import annotations

from typing import Mapping

from clearbound.components.contracts import (ANALYSIS_FIELD, EMAIL_FIELD,
                                             MESSAGE_FIELD, NOTES_FIELD,
                                             SAFETY_DISCLAIMER, FinalResponse,
                                             OutputPlan)


def assemble(plan: OutputPlan, fields: Mapping[str, str]) -> FinalResponse:
    licensed = set(plan.licensed_fields)

    def pick(name: str):
        return fields.get(name) if name in licensed else None

    return FinalResponse(
        package=plan.package,
        message_text=pick(MESSAGE_FIELD),
        email_text=pick(EMAIL_FIELD),
        analysis_report=pick(ANALYSIS_FIELD),
        notes=pick(NOTES_FIELD),
        safety_disclaimer=SAFETY_DISCLAIMER,
    )
