"""
Pytest configuration and fixtures
"""
import os
import sys
from pathlib import Path

import pytest

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

# No tracing exporters and no outbound template fetches in unit tests
os.environ.setdefault("ENABLE_TRACING", "false")
os.environ.setdefault("PROMPTS_SOURCE", "local")

from clearbound.components.template_store import TemplateCache, TemplateStore
from clearbound.core.config import Settings
from fakes import FakeGenerator, FakeTemplateSource


@pytest.fixture
def settings() -> Settings:
    """Isolated settings for component tests"""
    return Settings(
        prompts_source="local",
        openai_api_key="test-key",
        llm_retry_backoff_seconds=0.0,
        enable_tracing=False,
    )


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def fake_source() -> FakeTemplateSource:
    return FakeTemplateSource()


@pytest.fixture
def template_store(fake_source) -> TemplateStore:
    return TemplateStore(fake_source, TemplateCache(), retry_backoff_seconds=0.0)


@pytest.fixture
def state() -> dict:
    """A valid caller state in canonical shape"""
    return {
        "relationship": "coworker",
        "intent": "request_change",
        "tone_requested": "calm",
        "format": "message",
        "risk_scan": {"impact": "low", "continuity": "mid"},
        "facts": "My coworker keeps reassigning my tickets without asking me first.",
        "main_concerns": ["repeat"],
        "constraints": ["no_aggressive"],
        "package": "message",
    }
