"""
Tests for the generation stage runner state machine
"""
import json
import pytest

from clearbound.components.contracts import (PromptPair, RouteDecision,
                                             StageResult, StageState)
from clearbound.components.model_router import REPAIR_TEMPERATURE
from clearbound.components.package_resolver import FIELD_BUDGETS
from clearbound.components.postprocessor import fit_length, shape_analysis
from clearbound.components.stage_runner import (FALLBACK_TEXTS, StageRunner,
                                                parse_stage_output)
from clearbound.core.errors import (EmptyResponseError, GenerationFailedError,
                                    ProviderError, ProviderTimeoutError,
                                    SchemaViolationError)
from fakes import FakeGenerator

FIELDS = ("message_text", "notes")
PROMPT = PromptPair(system="system", user="user")
ROUTE = RouteDecision(model="model-a", token_budget=450, temperature=0.6)
GOOD = json.dumps({"message_text": "Hello there.", "notes": "Send it today."})


@pytest.fixture
def runner_for(settings):
    def build(generator):
        return StageRunner(generator, settings)
    return build


class TestParseStageOutput:
    def test_valid(self):
        assert parse_stage_output(GOOD, FIELDS) == {"message_text": "Hello there.", "notes": "Send it today."}

    def test_code_fence_is_stripped(self):
        assert parse_stage_output(f"```json\n{GOOD}\n```", FIELDS)["notes"] == "Send it today."

    @pytest.mark.parametrize("text", [
        "",
        "   ",
        "not json",
        "[1, 2]",
        json.dumps({"message_text": "Hi"}),
        json.dumps({"message_text": "Hi", "notes": "n", "extra": "x"}),
        json.dumps({"message_text": "Hi", "notes": 3}),
        json.dumps({"message_text": "  ", "notes": "n"}),
    ])
    def test_invalid(self, text):
        with pytest.raises(SchemaViolationError):
            parse_stage_output(text, FIELDS)


@pytest.mark.asyncio
async def test_valid_first_call(runner_for):
    generator = FakeGenerator([GOOD])
    result = await runner_for(generator).run("message", FIELDS, PROMPT, ROUTE)

    assert result.state == StageState.DONE
    assert result.history == [StageState.PENDING, StageState.CALLED, StageState.VALID, StageState.DONE]
    assert result.validated is True
    assert result.used_fallback is False
    assert result.fields["message_text"] == "Hello there."
    assert len(generator.requests) == 1
    assert generator.requests[0].token_budget == 450


@pytest.mark.asyncio
async def test_repair_recovers(runner_for):
    generator = FakeGenerator(["Sure! Here is your message: Hello", GOOD])
    result = await runner_for(generator).run("message", FIELDS, PROMPT, ROUTE)

    assert result.history == [
        StageState.PENDING, StageState.CALLED, StageState.PARSE_FAILED,
        StageState.REPAIR_CALLED, StageState.VALID, StageState.DONE,
    ]
    assert result.repaired is True
    assert result.validated is True
    assert result.raw_model_text.startswith("Sure!")
    repair_request = generator.requests[1]
    assert repair_request.temperature == REPAIR_TEMPERATURE
    assert "Sure! Here is your message" in repair_request.user_prompt


@pytest.mark.asyncio
async def test_fallback_after_failed_repair(runner_for):
    generator = FakeGenerator(["garbage", "still garbage"])
    result = await runner_for(generator).run("message", FIELDS, PROMPT, ROUTE)

    assert result.history[-2:] == [StageState.FALLBACK, StageState.DONE]
    assert result.used_fallback is True
    assert result.validated is False
    assert result.parsed_object is None
    assert result.fields == {name: FALLBACK_TEXTS[name] for name in FIELDS}
    assert len(generator.requests) == 2


@pytest.mark.asyncio
async def test_repair_provider_error_falls_back(runner_for):
    generator = FakeGenerator(["garbage", ProviderError(500, "boom")])
    result = await runner_for(generator).run("message", FIELDS, PROMPT, ROUTE)
    assert result.used_fallback is True
    assert all(result.fields[name] for name in FIELDS)


@pytest.mark.asyncio
async def test_empty_response_goes_to_repair(runner_for):
    generator = FakeGenerator([EmptyResponseError("empty"), GOOD])
    result = await runner_for(generator).run("message", FIELDS, PROMPT, ROUTE)
    assert StageState.PARSE_FAILED in result.history
    assert result.repaired is True


@pytest.mark.asyncio
async def test_transient_error_retried_once(runner_for):
    generator = FakeGenerator([ProviderError(503, "busy"), GOOD])
    result = await runner_for(generator).run("message", FIELDS, PROMPT, ROUTE)
    assert result.validated is True
    assert len(generator.requests) == 2


@pytest.mark.asyncio
async def test_transient_error_twice_fails(runner_for):
    generator = FakeGenerator([ProviderError(429, "slow down"), ProviderError(429, "slow down"), GOOD])
    with pytest.raises(GenerationFailedError) as exc:
        await runner_for(generator).run("message", FIELDS, PROMPT, ROUTE)
    assert exc.value.status == 429
    assert exc.value.code == "GENERATION_FAILED"
    assert exc.value.stage == "message"
    assert len(generator.requests) == 2


@pytest.mark.asyncio
async def test_auth_error_not_retried(runner_for):
    generator = FakeGenerator([ProviderError(401, "bad key"), GOOD])
    with pytest.raises(GenerationFailedError) as exc:
        await runner_for(generator).run("message", FIELDS, PROMPT, ROUTE)
    assert exc.value.status == 401
    assert len(generator.requests) == 1


@pytest.mark.asyncio
async def test_timeout_is_reported_distinctly(runner_for):
    generator = FakeGenerator([ProviderTimeoutError("t"), ProviderTimeoutError("t")])
    with pytest.raises(GenerationFailedError) as exc:
        await runner_for(generator).run("email", ("email_text", "notes"), PROMPT, ROUTE)
    assert exc.value.code == "GENERATION_TIMEOUT"
    assert exc.value.status_code == 504


def test_illegal_transition_rejected():
    result = StageResult(stage="message", field_names=FIELDS, model="m")
    with pytest.raises(RuntimeError):
        StageRunner._transition(result, StageState.DONE)


def test_fallback_texts_are_never_empty():
    assert all(text.strip() for text in FALLBACK_TEXTS.values())


@pytest.mark.parametrize("field_name", ["message_text", "email_text", "notes"])
def test_fallback_texts_fit_their_budgets_unchanged(field_name):
    text = FALLBACK_TEXTS[field_name]
    assert fit_length(field_name, text, FIELD_BUDGETS[field_name]) == text


def test_fallback_analysis_keeps_its_shape():
    text = FALLBACK_TEXTS["analysis_report"]
    assert shape_analysis(text, FIELD_BUDGETS["analysis_report"]) == text


def test_fallback_email_ends_with_sign_off():
    budget = FIELD_BUDGETS["email_text"]
    assert fit_length("email_text", FALLBACK_TEXTS["email_text"], budget).endswith("Kind regards")
