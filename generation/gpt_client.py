"""
Shared OpenAI GPT helper for the generation pipeline.

Used by:
  - claim_extractor.py  (one call per chunk)
  - mcq_synthesizer.py  (one call per claim)

Model: gpt-4o-mini  (override with GPT_MODEL env var, e.g. "gpt-4o")
Every call requests a JSON object response and is bounded by a request timeout.
"""

import json
import os
import re
from typing import Awaitable, Callable, Optional

import openai
from openai import AsyncOpenAI

from generation.errors import GenerationServiceError

# ── Model config ───────────────────────────────────────────────────────────────
GPT_MODEL = os.getenv("GPT_MODEL", "gpt-4o-mini")

# Signature shared by call_gpt and test doubles:
#   (prompt, *, system, temperature, max_tokens, timeout, model) -> raw response text
LlmCall = Callable[..., Awaitable[str]]

# Lazy singleton
_client: Optional[AsyncOpenAI] = None


def _get_client() -> AsyncOpenAI:
    global _client
    if _client is None:
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise GenerationServiceError(
                "OPENAI_API_KEY is not set. Add it to your .env file."
            )
        _client = AsyncOpenAI(api_key=api_key, max_retries=0)
    return _client


async def call_gpt(
    prompt: str,
    system: str = "You are a careful exam author. Output only valid JSON.",
    temperature: float = 0.4,
    max_tokens: int = 2048,
    timeout: float = 60.0,
    model: Optional[str] = None,
) -> str:
    """
    Call OpenAI Chat Completions in JSON mode and return the assistant message text.

    Args:
        prompt:      User-turn message (the actual instruction)
        system:      System prompt
        temperature: Sampling temperature (lower = more deterministic)
        max_tokens:  Max response tokens
        timeout:     Per-request timeout in seconds
        model:       Model override (defaults to GPT_MODEL)

    Raises:
        GenerationServiceError on transport errors, timeouts, non-success
        responses or empty content.
    """
    client = _get_client()
    try:
        response = await client.chat.completions.create(
            model=model or GPT_MODEL,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
            response_format={"type": "json_object"},
            timeout=timeout,
        )
    except openai.APITimeoutError as e:
        raise GenerationServiceError(f"Generation call timed out after {timeout}s") from e
    except openai.OpenAIError as e:
        raise GenerationServiceError(f"Generation call failed: {e}") from e

    content = response.choices[0].message.content if response.choices else None
    if not content:
        raise GenerationServiceError("Generation call returned empty content")
    return content


# ─── JSON extraction ───────────────────────────────────────────────────────────

def extract_json_obj(raw: str) -> dict:
    """Strip markdown fences and parse the outermost JSON object."""
    raw = (raw or "").strip()
    raw = re.sub(r"^```(?:json)?\s*", "", raw, flags=re.MULTILINE)
    raw = re.sub(r"\s*```$", "", raw, flags=re.MULTILINE)
    start = raw.find("{")
    end = raw.rfind("}") + 1
    if start == -1 or end == 0:
        raise ValueError(f"No JSON object found: {raw[:200]}")
    data = json.loads(raw[start:end])
    if not isinstance(data, dict):
        raise ValueError("Top-level JSON value is not an object")
    return data
