"""Gemini reasoning client producing schema-validated structured output.

Every call runs in JSON mode, is bounded by a timeout, and is retried with
exponential backoff via tenacity. The output-token budget grows 1.5x per attempt so a
truncated response gets more room on the retry. After the final attempt the last
error propagates to the caller.

Usage:
    from proposal_factcheck.llm.gemini_client import GeminiClient

    client = GeminiClient(settings)
    value = await client.extract_structured(
        system_prompt, user_prompt, schema, schema_name="claim_verdict",
    )
"""

import asyncio
import json
from typing import Any, Callable, Optional, Protocol

import google.generativeai as genai
from google.generativeai.types.generation_types import BlockedPromptException
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from proposal_factcheck.config.logging import get_logger
from proposal_factcheck.config.settings import Settings
from proposal_factcheck.exceptions import GenerationError, SchemaValidationError
from proposal_factcheck.llm.structured import Schema, decode_structured, to_json_schema

MAX_OUTPUT_TOKENS_CAP = 16000
TOKEN_GROWTH = 1.5


class ReasoningClient(Protocol):
    """Probabilistic judgment oracle returning structured output."""

    async def extract_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: Schema,
        *,
        schema_name: str,
        max_output_tokens: int = 4000,
        difficulty: Optional[str] = None,
    ) -> Any:
        ...


def _default_model_factory(model_name: str, system_prompt: str) -> Any:
    return genai.GenerativeModel(model_name=model_name, system_instruction=system_prompt)


class GeminiClient:
    """
    Google Gemini client for structured (JSON) calls.

    Attributes:
        settings: Run settings (model selection, timeout, retry policy)
        calls: Number of model invocations made, including retries
        input_tokens / output_tokens: Token usage reported by the model
    """

    def __init__(
        self,
        settings: Settings,
        model_factory: Optional[Callable[[str, str], Any]] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            settings: Immutable run settings.
            model_factory: Builds a model object exposing ``generate_content_async``
                from (model_name, system_prompt). Defaults to ``genai.GenerativeModel``.
        """
        self.settings = settings
        self.calls = 0
        self.input_tokens = 0
        self.output_tokens = 0
        self._model_factory = model_factory or _default_model_factory
        self.logger = get_logger("llm.gemini")

        if model_factory is None:
            genai.configure(api_key=settings.gemini_api_key)

    async def extract_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: Schema,
        *,
        schema_name: str,
        max_output_tokens: int = 4000,
        difficulty: Optional[str] = None,
    ) -> Any:
        """
        Request a structured response and validate it against ``schema``.

        Args:
            system_prompt: Role and policy instructions
            user_prompt: Task content
            schema: Expected output shape
            schema_name: Name used in the prompt and in logs
            max_output_tokens: Starting output budget (grows per retry)
            difficulty: "easy", "normal" or "hard"; selects a model override

        Returns:
            Schema-valid decoded value (dict/list/primitive)

        Raises:
            GenerationError: Transport failure, blocked prompt or timeout after retries
            SchemaValidationError: Malformed output after retries
        """
        model_name = self.settings.model_for(difficulty)
        prompt = self._render_prompt(user_prompt, schema, schema_name)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.llm_max_attempts),
            wait=wait_exponential(multiplier=self.settings.llm_backoff_seconds, max=8),
            retry=retry_if_exception_type((GenerationError, SchemaValidationError)),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                number = attempt.retry_state.attempt_number
                budget = min(
                    MAX_OUTPUT_TOKENS_CAP,
                    int(max_output_tokens * TOKEN_GROWTH ** (number - 1)),
                )
                text = await self._generate(model_name, system_prompt, prompt, budget)
                try:
                    value = decode_structured(text, schema)
                except SchemaValidationError as e:
                    self.logger.warning(
                        f"Schema validation failed for {schema_name} "
                        f"(attempt {number}/{self.settings.llm_max_attempts}): {e}"
                    )
                    raise
                self.logger.debug(f"Structured output accepted for {schema_name} on attempt {number}")
                return value

        raise GenerationError(f"No attempts made for {schema_name}")

    async def _generate(
        self, model_name: str, system_prompt: str, prompt: str, max_output_tokens: int
    ) -> str:
        self.calls += 1
        model = self._model_factory(model_name, system_prompt)
        config = genai.types.GenerationConfig(
            temperature=self.settings.llm_temperature,
            max_output_tokens=max_output_tokens,
            response_mime_type="application/json",
        )
        try:
            response = await asyncio.wait_for(
                model.generate_content_async(prompt, generation_config=config),
                timeout=self.settings.llm_timeout_seconds,
            )
            self._record_usage(response)
            return response.text
        except asyncio.TimeoutError as e:
            self.logger.warning(f"Gemini call timed out after {self.settings.llm_timeout_seconds}s")
            raise GenerationError("Reasoning call timed out") from e
        except BlockedPromptException as e:
            self.logger.error(f"Prompt blocked by safety filters: {e}")
            raise GenerationError(f"Prompt blocked: {e}") from e
        except ValueError as e:
            # response.text raises ValueError when no candidate text came back
            raise GenerationError(f"Empty model response: {e}") from e
        except Exception as e:
            self.logger.warning(f"Gemini call failed: {e}")
            raise GenerationError(str(e)) from e

    def _record_usage(self, response: Any) -> None:
        usage = getattr(response, "usage_metadata", None)
        if usage is None:
            return
        self.input_tokens += getattr(usage, "prompt_token_count", 0) or 0
        self.output_tokens += getattr(usage, "candidates_token_count", 0) or 0

    def usage(self) -> dict[str, int]:
        return {
            "llm_calls": self.calls,
            "llm_input_tokens": self.input_tokens,
            "llm_output_tokens": self.output_tokens,
        }

    @staticmethod
    def _render_prompt(user_prompt: str, schema: Schema, schema_name: str) -> str:
        rendered = json.dumps(to_json_schema(schema), indent=2)
        return (
            f"{user_prompt}\n\n"
            f"Respond with a single JSON value named '{schema_name}' matching this schema. "
            f"No prose outside the JSON.\n{rendered}"
        )
