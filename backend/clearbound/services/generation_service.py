"""
Generation Service: request pipeline from raw caller state to FinalResponse
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends

from clearbound.components import (decision_engine, normalizer,
                                   package_resolver, postprocessor,
                                   prompt_composer, response_assembler)
from clearbound.components.contracts import (CanonicalInput, EngineDecision,
                                             FinalResponse, OutputPlan,
                                             StageResult)
from clearbound.components.model_router import ModelRouter
from clearbound.components.stage_runner import StageRunner
from clearbound.components.template_store import (TemplateCache,
                                                  TemplateStore,
                                                  build_template_source)
from clearbound.core.config import Settings, get_settings
from clearbound.core.llm_client import OpenAIResponsesClient, TextGenerator
from clearbound.core.logging_config import LoggingConfig

logger = LoggingConfig.get_logger(__name__)


def evaluate_state(payload: Any, settings: Settings) -> Tuple[CanonicalInput, EngineDecision]:
    """Normalize and decide only; needs no template source and no generator"""
    data = normalizer.normalize(payload, facts_min_length=settings.facts_min_length)
    return data, decision_engine.decide(data)


@dataclass
class GenerationOutcome:
    """FinalResponse plus the decision and stage results that produced it"""
    response: FinalResponse
    decision: EngineDecision
    plan: OutputPlan
    stages: List[StageResult]

    def meta(self) -> Dict[str, Any]:
        return {
            "risk_level": self.decision.risk_level,
            "record_safe_level": self.decision.record_safe_level,
            "stages": [
                {
                    "stage": result.stage,
                    "model": result.model,
                    "validated": result.validated,
                    "used_fallback": result.used_fallback,
                }
                for result in self.stages
            ],
        }


class GenerationService:
    """Runs normalize -> decide -> resolve -> compose -> generate -> postprocess -> assemble"""

    def __init__(
        self,
        template_store: TemplateStore,
        generator: TextGenerator,
        settings: Optional[Settings] = None,
        router: Optional[ModelRouter] = None,
        runner: Optional[StageRunner] = None,
    ):
        self.template_store = template_store
        self.generator = generator
        self.settings = settings or get_settings()
        self.router = router or ModelRouter(self.settings)
        self.runner = runner or StageRunner(generator, self.settings)

    def evaluate(self, payload: Any) -> Tuple[CanonicalInput, EngineDecision]:
        """Normalize and decide only; no template fetch, no generator call"""
        return evaluate_state(payload, self.settings)

    async def _run_stage(
        self,
        data: CanonicalInput,
        decision: EngineDecision,
        plan: OutputPlan,
        stage: str,
    ) -> StageResult:
        template_ids = prompt_composer.required_templates(data, decision, stage)
        templates = await self.template_store.fetch_many(template_ids.values())
        prompt = prompt_composer.compose(data, decision, plan, stage, templates)
        route = self.router.route(decision, plan, stage)
        return await self.runner.run(stage, package_resolver.STAGE_FIELDS[stage], prompt, route)

    async def generate(self, payload: Any) -> GenerationOutcome:
        """
        Produce the FinalResponse for a caller state

        Raises:
            ValidationError: before any template fetch or generator call
            TemplateFetchError: template store unreachable
            GenerationFailedError: generator failed after its single retry
        """
        data, decision = self.evaluate(payload)
        plan = package_resolver.resolve(data.package)

        LoggingConfig.set_context(package=plan.package)
        logger.info(
            "Generation started",
            extra={
                "package": plan.package,
                "risk_level": decision.risk_level,
                "record_safe_level": decision.record_safe_level,
                "stages": list(plan.stages),
            }
        )

        # Stages share no text; recipient prompts never see the analysis output
        # Every started stage finishes before the first failure is raised
        outcomes = await asyncio.gather(
            *(self._run_stage(data, decision, plan, stage) for stage in plan.stages),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        results: List[StageResult] = list(outcomes)

        fields: Dict[str, str] = {}
        for result in results:
            fields.update(result.fields)

        delivered = postprocessor.postprocess(plan, fields)
        response = response_assembler.assemble(plan, delivered)

        logger.info(
            "Generation completed",
            extra={
                "package": plan.package,
                "fallback_stages": [r.stage for r in results if r.used_fallback],
            }
        )
        return GenerationOutcome(response=response, decision=decision, plan=plan, stages=results)

    async def close(self):
        await self.generator.close()
        close_source = getattr(self.template_store.source, "close", None)
        if close_source is not None:
            await close_source()


_service: Optional[GenerationService] = None


def build_generation_service(settings: Optional[Settings] = None) -> GenerationService:
    """Wire the production collaborators from settings"""
    settings = settings or get_settings()
    store = TemplateStore(
        source=build_template_source(settings),
        cache=TemplateCache(
            ttl_seconds=settings.template_cache_ttl_seconds,
            max_entries=settings.template_cache_max_entries,
        ),
    )
    return GenerationService(
        template_store=store,
        generator=OpenAIResponsesClient(settings),
        settings=settings,
    )


def get_generation_service(settings: Settings = Depends(get_settings)) -> GenerationService:
    """
    FastAPI dependency: process-wide pipeline instance

    Raises:
        TemplateSourceNotConfiguredError: the template source cannot be built from settings
    """
    global _service
    if _service is None:
        _service = build_generation_service(settings)
    return _service


async def close_generation_service():
    global _service
    if _service is not None:
        await _service.close()
        _service = None
