"""
Test doubles for the generator and the template source
"""
import json
import re
from typing import Callable, Dict, List, Optional, Union

from clearbound.components.template_store import (FetchedTemplate,
                                                  TemplateSource)
from clearbound.core.errors import TemplateFetchError
from clearbound.core.llm_client import GenerationRequest, TextGenerator

_CONTRACT_KEYS = re.compile(r'"([a-z_]+)"')


def contract_fields(request: GenerationRequest) -> List[str]:
    """Field names named in the first output-contract line of a prompt"""
    for line in request.system_prompt.splitlines():
        if "OUTPUT CONTRACT" in line:
            return _CONTRACT_KEYS.findall(line)
    return []


def valid_output(request: GenerationRequest) -> str:
    """Schema-valid JSON for whatever fields the prompt asks for"""
    values = {}
    for name in contract_fields(request):
        if name == "analysis_report":
            values[name] = (
                "Risk posture: moderate.\n"
                "Strategy: keep it factual.\n"
                "Next step: send and wait."
            )
        else:
            values[name] = f"Generated {name} for the situation."
    return json.dumps(values)


Response = Union[str, Exception, Callable[[GenerationRequest], str]]


class FakeGenerator(TextGenerator):
    """
    Scripted generator.

    Queued responses are consumed in order (strings are returned, exceptions
    raised, callables invoked); once the queue is empty `default` is used.
    """

    def __init__(self, responses: Optional[List[Response]] = None, default: Response = valid_output):
        self.responses = list(responses or [])
        self.default = default
        self.requests: List[GenerationRequest] = []
        self.closed = False

    async def generate(self, request: GenerationRequest) -> str:
        self.requests.append(request)
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        return response

    async def close(self):
        self.closed = True


class FakeTemplateSource(TemplateSource):
    """In-memory template source that records every fetch"""

    name = "fake"

    def __init__(self, templates: Optional[Dict[str, str]] = None, version: str = "v-test"):
        self.templates = templates
        self._version = version
        self.calls: List[tuple] = []
        self.failures: List[Exception] = []

    @property
    def version(self) -> str:
        return self._version

    async def fetch(self, template_id: str, etag: Optional[str] = None) -> FetchedTemplate:
        self.calls.append((template_id, etag))
        if self.failures:
            raise self.failures.pop(0)
        if self.templates is None:
            return FetchedTemplate(text=f"Guide for {template_id}")
        if template_id not in self.templates:
            raise TemplateFetchError(template_id, status=404)
        return FetchedTemplate(text=self.templates[template_id])
