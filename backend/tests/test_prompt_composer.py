"""
Tests for the Prompt Composer component
"""
import json

from clearbound.components import decision_engine, package_resolver
from clearbound.components.example_library import (DEFAULT_EXAMPLE,
                                                   GENERIC_BY_RELATIONSHIP,
                                                   RECORD_SAFE_BY_INTENT,
                                                   select_example)
from clearbound.components.normalizer import normalize
from clearbound.components.prompt_composer import (compose, compose_repair,
                                                   effective_tone,
                                                   required_templates,
                                                   stage_schema)


def _prepare(state, package="message"):
    state["package"] = package
    data = normalize(state)
    return data, decision_engine.decide(data), package_resolver.resolve(package)


def _templates(data, decision, stage):
    ids = required_templates(data, decision, stage)
    return {tid: f"<<{section}>>" for section, tid in ids.items()}


def test_required_templates_for_message(state):
    data, decision, _ = _prepare(state)
    ids = required_templates(data, decision, "message")
    assert ids == {
        "format:message": "format/format.message.v1.md",
        "intent": "intent/intent.request_change.v1.md",
        "relationship": "relationship/relationship.coworker.v1.md",
        "tone": "tone/tone.calm.v1.md",
    }


def test_bundle_needs_both_formats_and_analysis_needs_no_tone(state):
    data, decision, _ = _prepare(state, "total")
    bundle = required_templates(data, decision, "bundle")
    analysis = required_templates(data, decision, "analysis")
    assert "format:message" in bundle and "format:email" in bundle
    assert "tone" not in analysis
    assert not any(key.startswith("format:") for key in analysis)


def test_section_order(state):
    data, decision, plan = _prepare(state)
    prompt = compose(data, decision, plan, "message", _templates(data, decision, "message"))
    markers = [
        "OUTPUT CONTRACT",
        "== SAFETY RULES ==",
        "== RISK OVERRIDES ==",
        "== FORMAT RULES ==",
        "== INTENT STRUCTURE ==",
        "== RELATIONSHIP WORDING ==",
        "== TONE ==",
        "== MINIMUM LENGTHS ==",
        "== EXAMPLE ==",
        "== JSON SCHEMA ==",
    ]
    positions = [prompt.system.index(marker) for marker in markers]
    assert positions == sorted(positions)
    assert prompt.system.rstrip().split("\n\n")[-1].startswith("OUTPUT CONTRACT")
    assert prompt.system.count("OUTPUT CONTRACT") == 2


def test_templates_and_lengths_are_embedded(state):
    data, decision, plan = _prepare(state)
    prompt = compose(data, decision, plan, "message", _templates(data, decision, "message"))
    assert "<<intent>>" in prompt.system
    assert "<<relationship>>" in prompt.system
    assert "<<tone>>" in prompt.system
    assert "message_text: at least 220 and at most 900 characters" in prompt.system
    assert "notes: at least 40" in prompt.system


def test_caller_constraints_become_safety_rules(state):
    data, decision, plan = _prepare(state)
    prompt = compose(data, decision, plan, "message", {})
    assert "aggressive or accusatory" in prompt.system


def test_user_prompt_carries_facts_not_analysis(state):
    data, decision, plan = _prepare(state, "analysis_message")
    message = compose(data, decision, plan, "message", {})
    analysis = compose(data, decision, plan, "analysis", {})
    situation = json.loads(message.user.split("\n", 1)[1])
    assert situation["facts"] == data.facts
    assert "risk_level" not in situation
    assert "risk_level" in json.loads(analysis.user.split("\n", 1)[1])


def test_record_safe_forces_formal_tone(state):
    state["main_concerns"] = ["document"]
    state["tone_requested"] = "firm"
    data, decision, plan = _prepare(state)
    assert effective_tone(data, decision) == "formal"
    prompt = compose(data, decision, plan, "message", {})
    assert "RECORD-SAFE MODE" in prompt.system
    assert required_templates(data, decision, "message")["tone"] == "tone/tone.formal.v1.md"


def test_high_risk_softens_firm_tone(state):
    state.update({
        "relationship": "partner",
        "tone_requested": "firm",
        "risk_scan": {"impact": "high", "continuity": "high"},
        "main_concerns": ["repeat"],
    })
    data, decision, _ = _prepare(state)
    assert decision.risk_level == "high"
    assert effective_tone(data, decision) == "neutral"


def test_stage_schema():
    schema = stage_schema(("message_text", "notes"))
    assert schema["required"] == ["message_text", "notes"]
    assert schema["additionalProperties"] is False


def test_repair_prompt_contains_malformed_text():
    prompt = compose_repair(("email_text", "notes"), "not json at all")
    assert "not json at all" in prompt.user
    assert '"email_text"' in prompt.system
    assert compose_repair(("notes",), "").user.endswith("(empty)")


def test_example_cascade():
    assert select_example("manager", "set_boundary", True) == (
        "record_safe_intent", RECORD_SAFE_BY_INTENT[("manager", "set_boundary")]
    )
    assert select_example("manager", "decline", True)[0] == "record_safe_default"
    assert select_example("friend", "decline", True) == ("generic_default", GENERIC_BY_RELATIONSHIP["friend"])
    assert select_example("manager", "set_boundary", False)[0] == "generic_default"
    assert select_example("other", "decline", False) == ("literal", DEFAULT_EXAMPLE)
