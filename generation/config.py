"""
Pipeline tunables.

One immutable PipelineConfig is built per run (usually from the environment)
and handed to every pipeline stage at construction.
"""

import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class PipelineConfig(BaseModel):
    """Frozen bundle of generation limits, thresholds and sampling settings."""
    model_config = ConfigDict(frozen=True)

    # Claim extraction
    max_claims_per_chunk: int = Field(12, ge=1)
    require_verbatim_evidence: bool = True

    # Synthesis + quota
    max_questions_per_topic: int = Field(8, ge=1)
    min_confidence: float = Field(0.7, ge=0.0, le=1.0)

    # Topic matching / chunk selection
    match_threshold: float = 0.3
    max_chunks_per_topic: int = Field(6, ge=1)
    fallback_chunk_count: int = Field(3, ge=1)

    # Generation service
    model: str = "gpt-4o-mini"
    temp_extract: float = 0.2
    temp_synthesize: float = 0.5
    max_tokens_extract: int = 4096
    max_tokens_synthesize: int = 2048
    request_timeout_s: float = 60.0

    pipeline_version: int = 5

    @classmethod
    def from_env(cls, model: Optional[str] = None) -> "PipelineConfig":
        """Build a config from GEN_* environment variables, falling back to defaults."""
        return cls(
            max_claims_per_chunk=_env_int("GEN_MAX_CLAIMS_PER_CHUNK", 12),
            require_verbatim_evidence=_env_bool("GEN_REQUIRE_VERBATIM_EVIDENCE", True),
            max_questions_per_topic=_env_int("GEN_MAX_QUESTIONS_PER_TOPIC", 8),
            min_confidence=_env_float("GEN_MIN_CONFIDENCE", 0.7),
            match_threshold=_env_float("GEN_MATCH_THRESHOLD", 0.3),
            max_chunks_per_topic=_env_int("GEN_MAX_CHUNKS_PER_TOPIC", 6),
            fallback_chunk_count=_env_int("GEN_FALLBACK_CHUNK_COUNT", 3),
            model=model or os.getenv("GPT_MODEL", "gpt-4o-mini"),
            temp_extract=_env_float("GEN_TEMP_EXTRACT", 0.2),
            temp_synthesize=_env_float("GEN_TEMP_SYNTHESIZE", 0.5),
            max_tokens_extract=_env_int("GEN_MAX_TOKENS_EXTRACT", 4096),
            max_tokens_synthesize=_env_int("GEN_MAX_TOKENS_SYNTHESIZE", 2048),
            request_timeout_s=_env_float("GEN_REQUEST_TIMEOUT_S", 60.0),
        )
