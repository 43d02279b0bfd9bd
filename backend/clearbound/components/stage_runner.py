"""
Generation Stage Runner — component.

Drives one stage through its state machine:

    PENDING -> CALLED -> VALID -> DONE
                      -> PARSE_FAILED -> REPAIR_CALLED -> VALID -> DONE
                                                       -> FALLBACK -> DONE

Provider failures on the primary call get exactly one retry for transient
errors and then surface as GenerationFailedError. The repair call is a
separate one-shot; any failure there ends in FALLBACK.
"""

from __future__ import annotations

import asyncio
import json
import re
import time
from typing import Any, Dict, Optional, Sequence, Tuple

from clearbound.components.contracts import (ANALYSIS_FIELD, EMAIL_FIELD,
                                             MESSAGE_FIELD, NOTES_FIELD,
                                             PromptPair, RouteDecision,
                                             StageResult, StageState)
from clearbound.components.model_router import REPAIR_TEMPERATURE
from clearbound.components.prompt_composer import compose_repair
from clearbound.core.config import Settings, get_settings
from clearbound.core.errors import (EmptyResponseError,
                                    GenerationFailedError,
                                    GenerationFailureKind, ProviderError,
                                    ProviderTimeoutError,
                                    SchemaViolationError)
from clearbound.core.llm_client import GenerationRequest, TextGenerator
from clearbound.core.logging_config import LoggingConfig
from clearbound.core.metrics import (generation_stage_total,
                                     llm_request_duration_seconds,
                                     llm_requests_total)
from clearbound.core.tracing import add_span_attributes, get_tracer

logger = LoggingConfig.get_logger(__name__)

RETRYABLE_PROVIDER_STATUSES = frozenset({429, 500, 502, 503, 504})

ALLOWED_TRANSITIONS: Dict[StageState, Tuple[StageState, ...]] = {
    StageState.PENDING: (StageState.CALLED,),
    StageState.CALLED: (StageState.VALID, StageState.PARSE_FAILED),
    StageState.PARSE_FAILED: (StageState.REPAIR_CALLED,),
    StageState.REPAIR_CALLED: (StageState.VALID, StageState.FALLBACK),
    StageState.VALID: (StageState.DONE,),
    StageState.FALLBACK: (StageState.DONE,),
    StageState.DONE: (),
}

# Each text fits its field budget unchanged
FALLBACK_TEXTS: Dict[str, str] = {
    MESSAGE_FIELD: (
        "I wanted to reach out about something that has been on my mind. "
        "I would like us to find a clear and respectful way forward, and I am "
        "open to talking about it at a time that works for both of us. "
        "I would rather raise this directly now than let it build up, and I am "
        "happy to hear your side as well."
    ),
    EMAIL_FIELD: (
        "Hello,\n\n"
        "I am writing to follow up on a matter I would like to address clearly. "
        "My aim is to describe the situation accurately and agree on a reasonable "
        "next step that works for both of us.\n\n"
        "I would like us to keep the conversation focused on what has happened and "
        "on what each of us can do from here. If it helps, I am glad to set aside "
        "some time to talk it through, either in person or in writing, whichever "
        "you prefer. I would like to settle this calmly and keep things on a good "
        "footing between us.\n\n"
        "I would appreciate a reply when you have had a chance to consider this. "
        "Thank you for taking the time to read it.\n\n"
        "Kind regards"
    ),
    ANALYSIS_FIELD: (
        "Risk posture: the situation calls for careful, factual wording that can be "
        "read again later without regret.\n"
        "Strategy: state the facts briefly, make one specific request, and leave out "
        "guesses about the other person's motives.\n"
        "Next step: send the draft, then wait for a reply before following up or "
        "raising anything new."
    ),
    NOTES_FIELD: (
        "Read the draft once more before sending and adjust any detail that "
        "does not match what happened."
    ),
}

_CODE_FENCE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL | re.IGNORECASE)


def parse_stage_output(text: str, field_names: Sequence[str]) -> Dict[str, str]:
    """
    Parse and validate generator output against a stage's key schema

    Raises:
        SchemaViolationError: not a JSON object, or keys/values off-schema
    """
    if not text or not text.strip():
        raise SchemaViolationError("empty output")

    body = text.strip()
    fenced = _CODE_FENCE.match(body)
    if fenced:
        body = fenced.group(1)

    try:
        parsed: Any = json.loads(body)
    except ValueError as e:
        raise SchemaViolationError(f"not valid JSON: {e.__class__.__name__}") from e

    if not isinstance(parsed, dict):
        raise SchemaViolationError("output is not a JSON object")

    expected = set(field_names)
    keys = set(parsed)
    if keys - expected:
        raise SchemaViolationError(f"unexpected keys: {sorted(keys - expected)}")
    if expected - keys:
        raise SchemaViolationError(f"missing keys: {sorted(expected - keys)}")

    for name in field_names:
        value = parsed[name]
        if not isinstance(value, str) or not value.strip():
            raise SchemaViolationError(f"{name} must be a non-empty string")

    return {name: parsed[name] for name in field_names}


def fallback_fields(field_names: Sequence[str]) -> Dict[str, str]:
    return {name: FALLBACK_TEXTS[name] for name in field_names}


class StageRunner:
    """Runs one generation stage to DONE or a terminal generation failure"""

    component_name = "stage_runner"

    def __init__(
        self,
        generator: TextGenerator,
        settings: Optional[Settings] = None,
    ):
        self.generator = generator
        self.settings = settings or get_settings()
        self.tracer = get_tracer(__name__)

    @staticmethod
    def _transition(result: StageResult, target: StageState):
        if target not in ALLOWED_TRANSITIONS[result.state]:
            raise RuntimeError(f"illegal stage transition {result.state.value} -> {target.value}")
        result.state = target
        result.history.append(target)

    async def _call(self, stage: str, request: GenerationRequest) -> str:
        start = time.time()
        status = "success"
        try:
            return await self.generator.generate(request)
        except ProviderTimeoutError:
            status = "timeout"
            raise
        except EmptyResponseError:
            status = "empty"
            raise
        except ProviderError:
            status = "provider_error"
            raise
        finally:
            llm_requests_total.labels(request.model, stage, status).inc()
            llm_request_duration_seconds.labels(request.model, stage).observe(time.time() - start)

    @staticmethod
    def _is_transient(error: Exception) -> bool:
        if isinstance(error, ProviderTimeoutError):
            return True
        if isinstance(error, ProviderError):
            return error.status is None or error.status in RETRYABLE_PROVIDER_STATUSES
        return False

    async def _call_with_retry(self, stage: str, request: GenerationRequest) -> str:
        """Primary call with a single retry for transient failures"""
        try:
            return await self._call(stage, request)
        except (ProviderError, ProviderTimeoutError) as e:
            if not self._is_transient(e):
                raise self._as_generation_failure(stage, e) from e
            logger.warning(
                "Transient generator failure, retrying once",
                extra={"stage": stage, "model": request.model, "error_type": type(e).__name__}
            )

        await asyncio.sleep(self.settings.llm_retry_backoff_seconds)
        try:
            return await self._call(stage, request)
        except (ProviderError, ProviderTimeoutError) as e:
            raise self._as_generation_failure(stage, e) from e

    @staticmethod
    def _as_generation_failure(stage: str, error: Exception) -> GenerationFailedError:
        if isinstance(error, ProviderTimeoutError):
            return GenerationFailedError(stage, GenerationFailureKind.TIMEOUT)
        status = getattr(error, "status", None)
        return GenerationFailedError(stage, GenerationFailureKind.PROVIDER_ERROR, status=status)

    async def _repair(
        self,
        stage: str,
        field_names: Sequence[str],
        malformed: str,
        route: RouteDecision,
    ) -> Optional[Dict[str, str]]:
        """One-shot repair call; None when it fails for any reason"""
        prompt = compose_repair(field_names, malformed)
        request = GenerationRequest(
            model=route.model,
            system_prompt=prompt.system,
            user_prompt=prompt.user,
            token_budget=route.token_budget,
            temperature=REPAIR_TEMPERATURE,
        )
        try:
            text = await self._call(stage, request)
        except (ProviderError, ProviderTimeoutError, EmptyResponseError) as e:
            logger.warning(
                "Repair call failed",
                extra={"stage": stage, "model": route.model, "error_type": type(e).__name__}
            )
            return None

        try:
            return parse_stage_output(text, field_names)
        except SchemaViolationError as e:
            logger.warning("Repair output still off-schema", extra={"stage": stage, "reason": e.reason})
            return None

    async def run(
        self,
        stage: str,
        field_names: Sequence[str],
        prompt: PromptPair,
        route: RouteDecision,
    ) -> StageResult:
        """
        Run a stage to DONE

        Raises:
            GenerationFailedError: primary call failed after its single retry
        """
        result = StageResult(stage=stage, field_names=tuple(field_names), model=route.model)

        with self.tracer.start_as_current_span(f"stage.{stage}") as span:
            add_span_attributes(span, stage=stage, model=route.model, token_budget=route.token_budget)

            request = GenerationRequest(
                model=route.model,
                system_prompt=prompt.system,
                user_prompt=prompt.user,
                token_budget=route.token_budget,
                temperature=route.temperature,
            )

            self._transition(result, StageState.CALLED)
            try:
                text = await self._call_with_retry(stage, request)
            except EmptyResponseError:
                text = ""
            except GenerationFailedError as e:
                generation_stage_total.labels(stage, "failed").inc()
                logger.error(
                    "Stage generation failed",
                    extra={"stage": stage, "model": route.model, "error_code": e.code, "status": e.status}
                )
                raise
            result.raw_model_text = text

            try:
                fields = parse_stage_output(text, field_names)
            except SchemaViolationError as e:
                self._transition(result, StageState.PARSE_FAILED)
                logger.info(
                    "Stage output off-schema, attempting repair",
                    extra={"stage": stage, "reason": e.reason, "output_chars": len(text)}
                )
                self._transition(result, StageState.REPAIR_CALLED)
                fields = await self._repair(stage, field_names, text, route)
                if fields is None:
                    self._transition(result, StageState.FALLBACK)
                    result.used_fallback = True
                    fields = fallback_fields(field_names)
                else:
                    self._transition(result, StageState.VALID)
                    result.repaired = True
                    result.validated = True
            else:
                self._transition(result, StageState.VALID)
                result.validated = True

            result.parsed_object = dict(fields) if result.validated else None
            result.fields = dict(fields)
            self._transition(result, StageState.DONE)

            outcome = "fallback" if result.used_fallback else ("repaired" if result.repaired else "valid")
            generation_stage_total.labels(stage, outcome).inc()
            add_span_attributes(span, outcome=outcome)
            logger.info(
                "Stage done",
                extra={
                    "stage": stage,
                    "model": route.model,
                    "outcome": outcome,
                    "states": [s.value for s in result.history],
                }
            )

        return result
