"""Reasoning collaborator adapter and structured-output validation."""

from proposal_factcheck.llm.gemini_client import GeminiClient, ReasoningClient
from proposal_factcheck.llm.structured import (
    ArraySchema,
    BooleanSchema,
    NumberSchema,
    ObjectSchema,
    Schema,
    StringSchema,
    decode_structured,
    to_json_schema,
    validate_and_prune,
)

__all__ = [
    "GeminiClient",
    "ReasoningClient",
    "ArraySchema",
    "BooleanSchema",
    "NumberSchema",
    "ObjectSchema",
    "Schema",
    "StringSchema",
    "decode_structured",
    "to_json_schema",
    "validate_and_prune",
]
