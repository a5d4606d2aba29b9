"""Custom exception hierarchy for the fact-check pipeline."""


class FactCheckError(Exception):
    """Base exception for all fact-check pipeline errors."""


class RetrievalError(FactCheckError):
    """Retrieval collaborator failed after retries were exhausted."""


class GenerationError(FactCheckError):
    """Reasoning collaborator failed to produce a response (transport, timeout, block)."""


class SchemaValidationError(FactCheckError):
    """Structured output did not match the requested schema.

    Attributes:
        errors: Path-qualified validation messages, e.g. ``"citations[1]: expected number"``.
    """

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.errors = list(errors or [])
        detail = f" ({'; '.join(self.errors[:5])})" if self.errors else ""
        super().__init__(f"{message}{detail}")


class ArithmeticParseError(FactCheckError):
    """Arithmetic expression could not be normalized or evaluated."""


class ConfigurationError(FactCheckError):
    """Missing or invalid configuration. Fatal at startup."""
