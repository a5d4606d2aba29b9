"""Application settings using Pydantic BaseSettings for environment variable management.

The Settings object is immutable. Entrypoints construct it once (``load_settings()``)
and pass it explicitly to every component; nothing below the CLI reads the
environment directly.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

from proposal_factcheck.exceptions import ConfigurationError

DEFAULT_ITEM_TYPES = [
    "discussion",
    "snapshot",
    "onchain",
    "code",
    "pullRequest",
    "officialDoc",
]


class Settings(BaseSettings):
    """
    Run configuration loaded from environment variables or a ``.env`` file.

    Attributes:
        gemini_api_key: Google Gemini API key (required for live runs)
        gemini_model: Default Gemini model identifier
        gemini_model_easy / gemini_model_normal / gemini_model_hard: Per-difficulty overrides
        llm_timeout_seconds: Per-call timeout for the reasoning collaborator
        llm_max_attempts: Attempts per structured call before the error propagates
        retrieval_base_url: Base URL of the retrieval service
        retrieval_sources / retrieval_types: Allowed source and document-type filters
        similarity_threshold_*: Escalation cascade constants
        evidence_cache_ttl_seconds: Lifetime of evidence cache entries
        fact_*: Claim refinement loop bounds and sufficiency thresholds
        stage_max_iterations: Maximum runs per stage under QA gating
        judge_confidence_threshold: Minimum adjudication confidence accepted by QA
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log output format (json for production, console for dev)
    """

    # Reasoning collaborator
    gemini_api_key: str = Field(default="", description="Google Gemini API key")
    gemini_model: str = Field(
        default="gemini-1.5-flash",
        description="Default Gemini model identifier"
    )
    gemini_model_easy: str | None = Field(default=None, description="Model for easy calls")
    gemini_model_normal: str | None = Field(default=None, description="Model for normal calls")
    gemini_model_hard: str | None = Field(default="gemini-1.5-pro", description="Model for hard calls")
    llm_temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    llm_timeout_seconds: float = Field(default=60.0, gt=0)
    llm_max_attempts: int = Field(default=3, ge=1, le=10)
    llm_backoff_seconds: float = Field(
        default=0.25, ge=0.0,
        description="Base delay for exponential backoff between structured-call attempts"
    )

    # Retrieval collaborator
    retrieval_base_url: str = Field(default="http://localhost:8080/v1")
    retrieval_api_key: str = Field(default="")
    retrieval_timeout_seconds: float = Field(default=20.0, gt=0)
    retrieval_max_attempts: int = Field(default=3, ge=1, le=10)
    retrieval_backoff_seconds: float = Field(default=0.5, ge=0.0)
    retrieval_sources: list[str] = Field(
        default_factory=lambda: ["optimism"],
        description="Source identifiers the planner may filter on"
    )
    retrieval_types: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ITEM_TYPES),
        description="Document types the planner may filter on"
    )
    retrieval_default_limit: int = Field(default=6, ge=1, le=50)
    retrieval_max_rounds: int = Field(default=2, ge=1, le=3)
    retrieval_concurrency: int = Field(default=2, ge=1, le=32)
    raw_content_max_chars: int = Field(default=4000, ge=200)

    # Escalation cascade
    similarity_threshold_default: float = Field(default=0.4, ge=0.0, le=1.0)
    similarity_threshold_step: float = Field(default=0.1, gt=0.0, le=1.0)
    similarity_threshold_floor: float = Field(default=0.15, ge=0.0, le=1.0)
    keyword_fallback_threshold: float = Field(default=0.3, ge=0.0, le=1.0)

    # Evidence cache
    evidence_cache_ttl_seconds: float = Field(default=600.0, gt=0)

    # Claim verification
    fact_max_iterations: int = Field(default=2, ge=1, le=10)
    fact_min_citations: int = Field(default=1, ge=0)
    fact_min_confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    classifier_evidence_limit: int = Field(default=8, ge=1, le=32)
    query_rewrite_enabled: bool = Field(default=True)
    arithmetic_oracle_enabled: bool = Field(default=True)

    # Stage sequencing
    stage_max_iterations: int = Field(default=2, ge=1, le=5)
    judge_confidence_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    premise_evidence_max: int = Field(default=3, ge=0, le=10)
    stage_schema_names: dict[str, str] = Field(default_factory=dict)
    stage_trace_labels: dict[str, str] = Field(default_factory=dict)

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log output format: json or console")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "frozen": True,
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def _check_threshold_order(self) -> "Settings":
        """The escalation floor must not sit above the starting threshold."""
        if self.similarity_threshold_floor > self.similarity_threshold_default:
            raise ValueError(
                "similarity_threshold_floor must be <= similarity_threshold_default"
            )
        return self

    def model_for(self, difficulty: str | None) -> str:
        """Resolve the Gemini model for a call difficulty, falling back to the default."""
        overrides = {
            "easy": self.gemini_model_easy,
            "normal": self.gemini_model_normal,
            "hard": self.gemini_model_hard,
        }
        return overrides.get(difficulty or "normal") or self.gemini_model

    def require_credentials(self) -> None:
        """Raise ConfigurationError when a live run is missing API keys."""
        missing = []
        if not self.gemini_api_key:
            missing.append("GEMINI_API_KEY")
        if not self.retrieval_base_url:
            missing.append("RETRIEVAL_BASE_URL")
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")


def load_settings(**overrides) -> Settings:
    """Build the run's Settings once, translating validation failures.

    Raises:
        ConfigurationError: If any value is out of range or malformed.
    """
    try:
        return Settings(**overrides)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e
