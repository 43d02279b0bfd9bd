"""
Model Router — component.

Picks the backing model, token budget and temperature for a stage.
Analysis stages, and every stage of a record-safe (level 2) or high-risk
request, go to the higher-capability model; the rest use the default
low-latency model. Token budgets come from the resolved OutputPlan.
"""

from __future__ import annotations

from typing import Optional

from clearbound.components.contracts import (EngineDecision, OutputPlan,
                                             RouteDecision)
from clearbound.core.config import Settings, get_settings
from clearbound.core.logging_config import LoggingConfig

logger = LoggingConfig.get_logger(__name__)

DEFAULT_TEMPERATURE = 0.6
CAREFUL_TEMPERATURE = 0.3
REPAIR_TEMPERATURE = 0.0


class ModelRouter:
    component_name = "model_router"

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def route(self, decision: EngineDecision, plan: OutputPlan, stage: str) -> RouteDecision:
        token_budget = plan.stage_budgets[stage].token_budget
        careful = decision.record_safe_level == 2 or decision.risk_level == "high"

        if stage == "analysis":
            model = self.settings.model_analysis
        elif careful:
            model = self.settings.model_high_risk
        else:
            model = self.settings.model_default

        temperature = CAREFUL_TEMPERATURE if (stage == "analysis" or careful) else DEFAULT_TEMPERATURE

        logger.debug(
            "Routed stage",
            extra={"stage": stage, "model": model, "token_budget": token_budget}
        )
        return RouteDecision(model=model, token_budget=token_budget, temperature=temperature)
