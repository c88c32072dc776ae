"""
Pytest configuration and fixtures for all tests.

This file is automatically loaded by pytest and provides common fixtures
and configuration for all test modules.
"""

import sys
import random
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Import pytest for fixtures
import pytest

from longdoc.core.prompt_pool.models import HealthConfig, PromptVariant
from longdoc.core.prompt_pool.pool import PromptPool
from longdoc.core.prompt_pool.storage import PromptPoolStore


class FakeClock:
    """Settable clock returning aware datetimes."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class ScriptedTranslator:
    """
    Translator double.

    ``script`` is a list of outcomes consumed one per call: an exception
    instance is raised, anything else is returned. Once the script is
    exhausted, ``default`` is used (a callable receives the user prompt).
    """

    def __init__(self, script: Optional[List] = None, default=None):
        self.script = list(script or [])
        self.default = default if default is not None else (lambda user_prompt: f"TRANSLATED:{user_prompt}")
        self.calls = []

    async def translate(self, system_prompt, user_prompt, backend):
        self.calls.append((system_prompt, user_prompt))
        outcome = self.script.pop(0) if self.script else self.default
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return outcome(user_prompt)
        return outcome


class RecordingSleep:
    """Async sleep that returns at once and records the requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)


def build_variant(prompt_id: str, selected: bool = True, **kwargs) -> PromptVariant:
    return PromptVariant(
        id=prompt_id,
        name=kwargs.pop('name', f"Prompt {prompt_id}"),
        system_prompt=kwargs.pop('system_prompt', f"system {prompt_id}"),
        user_prompt_template=kwargs.pop(
            'user_prompt_template', "Translate to ${targetLangName}:\n${content}"
        ),
        is_active=selected,
        user_selected=True if selected else None,
        **kwargs
    )


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def scripted_translator():
    """Factory for ScriptedTranslator doubles."""
    return ScriptedTranslator


@pytest.fixture
def make_variant():
    """Factory for prompt variants (selected and active by default)."""
    return build_variant


@pytest.fixture
def pool(fake_clock):
    """In-memory pool with two selected variants A and B."""
    prompt_pool = PromptPool(health_config=HealthConfig(), clock=fake_clock, rng=random.Random(42))
    prompt_pool.init()
    prompt_pool.add_variations([build_variant('A'), build_variant('B')])
    return prompt_pool


@pytest.fixture
def store(tmp_path):
    return PromptPoolStore(tmp_path / "prompt_pool.json", tmp_path / "prompt_health_config.json")


@pytest.fixture
def sample_markdown():
    """Markdown with a heading, prose, a captioned table and a code block."""
    return (
        "# Results\n"
        "\n"
        "The experiment ran for three weeks.\n"
        "\n"
        "Table 1: Accuracy by model\n"
        "| Model | Accuracy |\n"
        "| :-- | --: |\n"
        "| base | 81% |\n"
        "| large | 88% |\n"
        "\n"
        "```python\n"
        "print('hello')\n"
        "```\n"
        "\n"
        "Conclusions follow."
    )
