"""Tests for GeminiClient retry, token growth and error mapping."""

import asyncio
from types import SimpleNamespace
from typing import Any

import pytest

from proposal_factcheck.config.settings import Settings
from proposal_factcheck.exceptions import GenerationError, SchemaValidationError
from proposal_factcheck.llm.gemini_client import GeminiClient
from proposal_factcheck.llm.structured import NumberSchema, ObjectSchema

SCHEMA = ObjectSchema(properties={"value": NumberSchema()})


class ScriptedModel:
    """Stands in for genai.GenerativeModel; replays texts or raises exceptions."""

    def __init__(self, script: list[Any], log: list[dict[str, Any]]) -> None:
        self._script = script
        self._log = log

    async def generate_content_async(self, prompt: str, generation_config: Any = None) -> Any:
        self._log.append({"prompt": prompt, "max_output_tokens": generation_config.max_output_tokens})
        item = self._script.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, SimpleNamespace):
            return item
        if item == "SLOW":
            await asyncio.sleep(10)
        return SimpleNamespace(text=item)


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def client_settings(settings: Settings) -> Settings:
    return settings.model_copy(update={"llm_max_attempts": 3, "llm_timeout_seconds": 0.05})


def _client(client_settings: Settings, script: list[Any]) -> tuple[GeminiClient, list, list]:
    log: list[dict[str, Any]] = []
    models: list[str] = []

    def factory(model_name: str, system_prompt: str) -> ScriptedModel:
        models.append(model_name)
        return ScriptedModel(script, log)

    return GeminiClient(client_settings, model_factory=factory), log, models


# ── Tests ────────────────────────────────────────────────────────────────


class TestExtractStructured:
    @pytest.mark.asyncio
    async def test_valid_response(self, client_settings: Settings) -> None:
        client, log, _ = _client(client_settings, ['{"value": 12}'])
        value = await client.extract_structured("sys", "user", SCHEMA, schema_name="v")
        assert value == {"value": 12}
        assert client.calls == 1
        assert "'v'" in log[0]["prompt"]

    @pytest.mark.asyncio
    async def test_usage_metadata_counted(self, client_settings: Settings) -> None:
        usage = SimpleNamespace(prompt_token_count=120, candidates_token_count=30)
        client, _, _ = _client(
            client_settings,
            [SimpleNamespace(text='{"value": 1}', usage_metadata=usage), '{"value": 2}'],
        )
        await client.extract_structured("sys", "user", SCHEMA, schema_name="v")
        await client.extract_structured("sys", "user", SCHEMA, schema_name="v")
        assert client.usage() == {"llm_calls": 2, "llm_input_tokens": 120, "llm_output_tokens": 30}

    @pytest.mark.asyncio
    async def test_schema_failure_retried_with_larger_budget(self, client_settings: Settings) -> None:
        client, log, _ = _client(client_settings, ["not json", '{"wrong": 1}', '{"value": "3"}'])
        value = await client.extract_structured(
            "sys", "user", SCHEMA, schema_name="v", max_output_tokens=1000
        )
        assert value == {"value": 3}
        assert [entry["max_output_tokens"] for entry in log] == [1000, 1500, 2250]

    @pytest.mark.asyncio
    async def test_budget_capped(self, client_settings: Settings) -> None:
        client, log, _ = _client(client_settings, ["x", "x", '{"value": 1}'])
        await client.extract_structured("sys", "user", SCHEMA, schema_name="v", max_output_tokens=12000)
        assert log[-1]["max_output_tokens"] == 16000

    @pytest.mark.asyncio
    async def test_schema_error_propagates_after_attempts(self, client_settings: Settings) -> None:
        client, _, _ = _client(client_settings, ["x", "y", "z"])
        with pytest.raises(SchemaValidationError):
            await client.extract_structured("sys", "user", SCHEMA, schema_name="v")
        assert client.calls == 3

    @pytest.mark.asyncio
    async def test_transport_error_mapped(self, client_settings: Settings) -> None:
        client, _, _ = _client(client_settings, [RuntimeError("boom")] * 3)
        with pytest.raises(GenerationError):
            await client.extract_structured("sys", "user", SCHEMA, schema_name="v")

    @pytest.mark.asyncio
    async def test_timeout_mapped_and_retried(self, client_settings: Settings) -> None:
        client, _, _ = _client(client_settings, ["SLOW", '{"value": 2}'])
        value = await client.extract_structured("sys", "user", SCHEMA, schema_name="v")
        assert value == {"value": 2}
        assert client.calls == 2

    @pytest.mark.asyncio
    async def test_difficulty_selects_model(self, client_settings: Settings) -> None:
        client, _, models = _client(client_settings, ['{"value": 1}'])
        await client.extract_structured("sys", "user", SCHEMA, schema_name="v", difficulty="hard")
        assert models == [client_settings.model_for("hard")]
