"""
Package Resolver — component.

Single source of truth for which fields a package licenses, which stages
produce them, and the character/token budgets that apply. The resolved
OutputPlan instance is shared by the prompt composer, the postprocessor and
the response assembler of one request.
"""

from __future__ import annotations

from typing import Dict, Tuple

from clearbound.components.contracts import (ANALYSIS_FIELD, EMAIL_FIELD,
                                             MESSAGE_FIELD, NOTES_FIELD,
                                             FieldBudget, OutputPlan,
                                             StageBudget)
from clearbound.core.errors import UnknownPackageError

# package -> (message, email, analysis)
PACKAGE_TABLE: Dict[str, Tuple[bool, bool, bool]] = {
    "message": (True, False, False),
    "email": (False, True, False),
    "analysis_message": (True, False, True),
    "analysis_email": (False, True, True),
    "total": (True, True, True),
}

PACKAGE_STAGES: Dict[str, Tuple[str, ...]] = {
    "message": ("message",),
    "email": ("email",),
    "analysis_message": ("analysis", "message"),
    "analysis_email": ("analysis", "email"),
    "total": ("analysis", "bundle"),
}

# Fields each stage must return, in schema order
STAGE_FIELDS: Dict[str, Tuple[str, ...]] = {
    "analysis": (ANALYSIS_FIELD,),
    "message": (MESSAGE_FIELD, NOTES_FIELD),
    "email": (EMAIL_FIELD, NOTES_FIELD),
    "bundle": (MESSAGE_FIELD, EMAIL_FIELD, NOTES_FIELD),
}

FIELD_BUDGETS: Dict[str, FieldBudget] = {
    MESSAGE_FIELD: FieldBudget(min_chars=220, max_chars=900),
    EMAIL_FIELD: FieldBudget(min_chars=600, max_chars=2400),
    ANALYSIS_FIELD: FieldBudget(min_chars=240, max_chars=900),
    NOTES_FIELD: FieldBudget(min_chars=40, max_chars=400),
}

# Sized from the field ceilings above (roughly 4 chars per token plus JSON overhead)
STAGE_TOKEN_BUDGETS: Dict[Tuple[str, str], int] = {
    ("message", "message"): 450,
    ("email", "email"): 900,
    ("analysis", "analysis_message"): 450,
    ("message", "analysis_message"): 450,
    ("analysis", "analysis_email"): 450,
    ("email", "analysis_email"): 900,
    ("analysis", "total"): 450,
    ("bundle", "total"): 1300,
}


def resolve(package_id: str) -> OutputPlan:
    """Resolve a package id to its OutputPlan"""
    if package_id not in PACKAGE_TABLE:
        raise UnknownPackageError(package_id)

    want_message, want_email, want_analysis = PACKAGE_TABLE[package_id]
    stages = PACKAGE_STAGES[package_id]

    licensed = [NOTES_FIELD]
    if want_message:
        licensed.append(MESSAGE_FIELD)
    if want_email:
        licensed.append(EMAIL_FIELD)
    if want_analysis:
        licensed.append(ANALYSIS_FIELD)

    return OutputPlan(
        package=package_id,
        want_message=want_message,
        want_email=want_email,
        want_analysis=want_analysis,
        stages=stages,
        field_budgets={name: FIELD_BUDGETS[name] for name in licensed},
        stage_budgets={
            stage: StageBudget(token_budget=STAGE_TOKEN_BUDGETS[(stage, package_id)])
            for stage in stages
        },
    )
