"""
Normalizer — component.

Maps caller state of any historical shape into one CanonicalInput.

Each canonical field is resolved through one explicit, prioritized alias
table: canonical path first, then legacy nested paths, then top-level
aliases. The first non-empty match wins. Enum values are lower-cased and
checked against a closed allow-list; unknown tokens are rejected, never
defaulted.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from clearbound.components.contracts import (CONCERNS, CONSTRAINTS,
                                             CONTINUITIES, FORMATS, IMPACTS,
                                             INTENTS, MAX_MAIN_CONCERNS,
                                             PACKAGES, RELATIONSHIPS, TONES,
                                             CanonicalInput, RiskScan)
from clearbound.core.errors import (FactsTooShortError, InvalidEnumError,
                                    InvalidPayloadError, MissingFieldError,
                                    TooManyValuesError, UnknownPackageError)

# field -> ordered candidate paths (canonical, legacy nested, top-level alias)
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "relationship": (
        "relationship",
        "context_builder.relationship",
        "context.relationship",
        "target.relationship",
        "target",
    ),
    "intent": (
        "intent",
        "context_builder.intent",
        "context.intent",
        "goal",
    ),
    "tone_requested": (
        "tone_requested",
        "context_builder.tone",
        "context.tone",
        "tone",
    ),
    "format": (
        "format",
        "context_builder.format",
        "context.format",
        "output_format",
    ),
    "risk_scan.impact": (
        "risk_scan.impact",
        "context.risk_scan.impact",
        "context_builder.risk_scan.impact",
        "impact",
    ),
    "risk_scan.continuity": (
        "risk_scan.continuity",
        "context.risk_scan.continuity",
        "context_builder.risk_scan.continuity",
        "continuity",
    ),
    "facts": (
        "facts",
        "context_builder.key_facts",
        "context.key_facts",
        "context.facts",
        "key_facts",
    ),
    "main_concerns": (
        "main_concerns",
        "context_builder.main_concerns",
        "context.main_concerns",
        "concerns",
    ),
    "constraints": (
        "constraints",
        "context_builder.constraints",
        "context.constraints",
    ),
    "package": (
        "package",
        "paywall.package",
        "context.package",
        "plan",
    ),
    "direction_unsure": (
        "direction_unsure",
        "context.direction_unsure",
        "context_builder.direction_unsure",
    ),
}

# Alternate spellings accepted per enum; applied after lower-casing
ENUM_ALIASES: Dict[str, Dict[str, str]] = {
    "risk_scan.continuity": {"one_time": "low", "short_term": "mid", "ongoing": "high"},
    "package": {"bundle": "total"},
}

ALLOWED_VALUES: Dict[str, Tuple[str, ...]] = {
    "relationship": RELATIONSHIPS,
    "intent": INTENTS,
    "tone_requested": TONES,
    "format": FORMATS,
    "risk_scan.impact": IMPACTS,
    "risk_scan.continuity": CONTINUITIES,
    "main_concerns": CONCERNS,
    "constraints": CONSTRAINTS,
    "package": PACKAGES,
}

REQUIRED_FIELDS = (
    "relationship",
    "intent",
    "tone_requested",
    "format",
    "risk_scan.impact",
    "risk_scan.continuity",
    "facts",
    "package",
)


def _unwrap(value: Any) -> Any:
    """Strip {value: ...} wrappers"""
    while isinstance(value, Mapping) and "value" in value:
        value = value["value"]
    return value


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def _lookup(state: Mapping[str, Any], path: str) -> Any:
    current: Any = state
    for part in path.split("."):
        current = _unwrap(current)
        if not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    return _unwrap(current)


def resolve_field(state: Mapping[str, Any], field_name: str) -> Any:
    """Return the first non-empty value along the field's alias paths"""
    for path in FIELD_ALIASES[field_name]:
        value = _lookup(state, path)
        if not _is_empty(value):
            return value
    return None


def _normalize_token(field_name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise InvalidEnumError(field_name, value)
    token = value.strip().lower().replace("-", "_").replace(" ", "_")
    token = ENUM_ALIASES.get(field_name, {}).get(token, token)
    if token not in ALLOWED_VALUES[field_name]:
        if field_name == "package":
            raise UnknownPackageError(value, stage="normalize")
        raise InvalidEnumError(field_name, value)
    return token


def _normalize_token_set(field_name: str, value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items: Sequence[Any] = [value]
    elif isinstance(value, (list, tuple, set)):
        items = list(value)
    else:
        raise InvalidEnumError(field_name, value)
    tokens = {_normalize_token(field_name, _unwrap(item)) for item in items if not _is_empty(_unwrap(item))}
    return tuple(sorted(tokens))


def _normalize_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y")
    return bool(value)


def unwrap_state(payload: Any) -> Mapping[str, Any]:
    """Accept either the state itself or {state: ...}"""
    if not isinstance(payload, Mapping):
        raise InvalidPayloadError()
    inner = payload.get("state")
    if isinstance(inner, Mapping):
        return inner
    return payload


def normalize(payload: Any, facts_min_length: int = 22) -> CanonicalInput:
    """
    Build CanonicalInput from an arbitrarily shaped payload

    Raises:
        InvalidPayloadError: payload is not an object
        MissingFieldError: a required field has no non-empty match
        InvalidEnumError: a value is outside its allow-list
        TooManyValuesError: more than two main concerns
        FactsTooShortError: facts shorter than the configured minimum
    """
    state = unwrap_state(payload)

    raw: Dict[str, Any] = {name: resolve_field(state, name) for name in FIELD_ALIASES}

    missing: List[str] = [name for name in REQUIRED_FIELDS if _is_empty(raw[name])]
    if missing:
        raise MissingFieldError(missing[0])

    enums: Dict[str, str] = {
        name: _normalize_token(name, raw[name])
        for name in REQUIRED_FIELDS
        if name in ALLOWED_VALUES
    }

    concerns = _normalize_token_set("main_concerns", raw["main_concerns"])
    if len(concerns) > MAX_MAIN_CONCERNS:
        raise TooManyValuesError("main_concerns", MAX_MAIN_CONCERNS)
    constraints = _normalize_token_set("constraints", raw["constraints"])

    facts_value = raw["facts"]
    if not isinstance(facts_value, str):
        raise InvalidEnumError("facts", type(facts_value).__name__)
    facts = facts_value.strip()
    if len(facts) < facts_min_length:
        raise FactsTooShortError(facts_min_length)

    direction_unsure: Optional[Any] = raw["direction_unsure"]
    unsure = _normalize_bool(direction_unsure) if direction_unsure is not None else False

    return CanonicalInput(
        relationship=enums["relationship"],
        intent=enums["intent"],
        tone_requested=enums["tone_requested"],
        format=enums["format"],
        risk_scan=RiskScan(
            impact=enums["risk_scan.impact"],
            continuity=enums["risk_scan.continuity"],
        ),
        facts=facts,
        main_concerns=concerns,
        constraints=constraints,
        package=enums["package"],
        direction_unsure=unsure or enums["intent"] == "not_sure",
    )
