"""
Tests for the Model Router component
"""
from clearbound.components import decision_engine, package_resolver
from clearbound.components.model_router import (CAREFUL_TEMPERATURE,
                                                DEFAULT_TEMPERATURE,
                                                ModelRouter)
from clearbound.components.normalizer import normalize


def test_low_risk_message_uses_default_model(settings, state):
    decision = decision_engine.decide(normalize(state))
    plan = package_resolver.resolve("message")
    route = ModelRouter(settings).route(decision, plan, "message")
    assert decision.risk_level == "low"
    assert route.model == settings.model_default
    assert route.temperature == DEFAULT_TEMPERATURE
    assert route.token_budget == plan.stage_budgets["message"].token_budget


def test_analysis_uses_analysis_model(settings, state):
    state["package"] = "analysis_message"
    decision = decision_engine.decide(normalize(state))
    plan = package_resolver.resolve("analysis_message")
    router = ModelRouter(settings)
    assert router.route(decision, plan, "analysis").model == settings.model_analysis
    assert router.route(decision, plan, "analysis").temperature == CAREFUL_TEMPERATURE
    assert router.route(decision, plan, "message").model == settings.model_default


def test_record_safe_routes_to_high_capability_model(settings, state):
    state["main_concerns"] = ["document"]
    decision = decision_engine.decide(normalize(state))
    plan = package_resolver.resolve("message")
    route = ModelRouter(settings).route(decision, plan, "message")
    assert decision.record_safe_level == 2
    assert route.model == settings.model_high_risk
    assert route.temperature == CAREFUL_TEMPERATURE


def test_high_risk_routes_to_high_capability_model(settings, state):
    state.update({
        "relationship": "partner",
        "risk_scan": {"impact": "high", "continuity": "high"},
        "main_concerns": ["repeat"],
    })
    decision = decision_engine.decide(normalize(state))
    plan = package_resolver.resolve("message")
    assert decision.risk_level == "high"
    assert ModelRouter(settings).route(decision, plan, "message").model == settings.model_high_risk
