"""Schema representation and validation for structured reasoning output.

A single validate-and-prune pass serves every decoding path: the primary JSON-mode
response and the fallback extraction from free text go through the same
``decode_structured`` call, so a schema-valid result is identical whichever path
produced it.

Usage:
    from proposal_factcheck.llm.structured import (
        ObjectSchema, StringSchema, NumberSchema, decode_structured,
    )

    schema = ObjectSchema(
        properties={"status": StringSchema(enum=("supported", "contested", "unknown")),
                    "confidence": NumberSchema()},
    )
    value = decode_structured('{"status": "supported", "confidence": "0.8"}', schema)
"""

import json
import math
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from proposal_factcheck.exceptions import SchemaValidationError


@dataclass(frozen=True)
class StringSchema:
    """String value, optionally restricted to an enum."""

    enum: Optional[tuple[str, ...]] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class NumberSchema:
    """Numeric value. ``integer=True`` rejects values with a fractional part."""

    integer: bool = False
    description: Optional[str] = None


@dataclass(frozen=True)
class BooleanSchema:
    description: Optional[str] = None


@dataclass(frozen=True)
class ArraySchema:
    items: "Schema"
    description: Optional[str] = None


@dataclass(frozen=True)
class ObjectSchema:
    """Object with known properties.

    ``required`` defaults to every property. Unknown keys are pruned.
    """

    properties: dict[str, "Schema"] = field(default_factory=dict)
    required: Optional[tuple[str, ...]] = None
    description: Optional[str] = None

    @property
    def required_keys(self) -> tuple[str, ...]:
        if self.required is None:
            return tuple(self.properties)
        return self.required


Schema = Union[ObjectSchema, ArraySchema, StringSchema, NumberSchema, BooleanSchema]


def to_json_schema(schema: Schema) -> dict[str, Any]:
    """Render a schema as a JSON Schema dict for prompting."""
    if isinstance(schema, ObjectSchema):
        out: dict[str, Any] = {
            "type": "object",
            "properties": {k: to_json_schema(v) for k, v in schema.properties.items()},
            "required": list(schema.required_keys),
            "additionalProperties": False,
        }
    elif isinstance(schema, ArraySchema):
        out = {"type": "array", "items": to_json_schema(schema.items)}
    elif isinstance(schema, StringSchema):
        out = {"type": "string"}
        if schema.enum:
            out["enum"] = list(schema.enum)
    elif isinstance(schema, NumberSchema):
        out = {"type": "integer" if schema.integer else "number"}
    elif isinstance(schema, BooleanSchema):
        out = {"type": "boolean"}
    else:
        raise TypeError(f"Unsupported schema node: {type(schema).__name__}")

    if schema.description:
        out["description"] = schema.description
    return out


def validate_and_prune(schema: Schema, value: Any) -> Any:
    """Validate ``value`` against ``schema``, coercing primitives and pruning unknown keys.

    Coercions: numeric strings become numbers, "true"/"false" become booleans,
    non-null scalars become strings where a string is expected. Optional object
    properties that are missing or null are omitted from the result.

    Raises:
        SchemaValidationError: With every path-qualified error found.
    """
    errors: list[str] = []
    result = _walk(schema, value, "$", errors)
    if errors:
        raise SchemaValidationError("Structured output failed schema validation", errors)
    return result


def _walk(schema: Schema, value: Any, path: str, errors: list[str]) -> Any:
    if isinstance(schema, ObjectSchema):
        if not isinstance(value, dict):
            errors.append(f"{path}: expected object")
            return value
        out: dict[str, Any] = {}
        required = set(schema.required_keys)
        for key, sub in schema.properties.items():
            raw = value.get(key)
            if raw is None:
                if key in required:
                    errors.append(f"{path}: missing required '{key}'")
                continue
            out[key] = _walk(sub, raw, f"{path}.{key}", errors)
        return out

    if isinstance(schema, ArraySchema):
        if not isinstance(value, list):
            errors.append(f"{path}: expected array")
            return value
        return [_walk(schema.items, v, f"{path}[{i}]", errors) for i, v in enumerate(value)]

    if isinstance(schema, StringSchema):
        if value is None:
            errors.append(f"{path}: expected string")
            return value
        if isinstance(value, (dict, list)):
            errors.append(f"{path}: expected string")
            return value
        if isinstance(value, bool):
            text = "true" if value else "false"
        else:
            text = value if isinstance(value, str) else str(value)
        if schema.enum is not None and text not in schema.enum:
            errors.append(f"{path}: '{text}' not in {list(schema.enum)}")
        return text

    if isinstance(schema, NumberSchema):
        number = _coerce_number(value)
        if number is None:
            errors.append(f"{path}: expected number")
            return value
        if schema.integer:
            if not float(number).is_integer():
                errors.append(f"{path}: expected integer")
                return value
            return int(number)
        return number

    if isinstance(schema, BooleanSchema):
        if isinstance(value, bool):
            return value
        lowered = str(value).strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
        errors.append(f"{path}: expected boolean")
        return value

    errors.append(f"{path}: unsupported schema node")
    return value


def _coerce_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        if not math.isfinite(number):
            return None
        return int(number) if number.is_integer() and "." not in value else number
    return None


# ── Decoding ────────────────────────────────────────────────────────

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def extract_json_text(text: str) -> str:
    """Pull a JSON object or array out of free text (fenced block or first bracket span)."""
    fenced = _FENCED_BLOCK.search(text)
    if fenced:
        return fenced.group(1).strip()

    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return text.strip()
    start = min(starts)
    closer = "}" if text[start] == "{" else "]"
    end = text.rfind(closer)
    if end <= start:
        return text[start:].strip()
    return text[start:end + 1]


def decode_structured(text: str, schema: Schema) -> Any:
    """Decode a model response into a schema-valid value.

    Tries strict JSON first, then the free-text extraction fallback. Both paths are
    validated by ``validate_and_prune``.

    Raises:
        SchemaValidationError: If neither path yields JSON, or the JSON is invalid.
    """
    if not text or not text.strip():
        raise SchemaValidationError("Empty structured response")

    try:
        raw = json.loads(text)
    except json.JSONDecodeError:
        try:
            raw = json.loads(extract_json_text(text))
        except json.JSONDecodeError as e:
            raise SchemaValidationError("Response did not contain valid JSON", [str(e)]) from e

    return validate_and_prune(schema, raw)
