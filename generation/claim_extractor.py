"""
Claim Extraction

One generation call per chunk turns the chunk's text into a bank of
TestableClaims: atomic statements answerable from that excerpt alone, each
backed by 1–2 short verbatim quotes.

Failures are per chunk: a failed call, an unparsable response or an empty
claim list all yield [] and the pipeline moves on to the next chunk.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from generation.config import PipelineConfig
from generation.errors import GenerationServiceError
from generation.gpt_client import LlmCall, call_gpt, extract_json_obj
from generation.schemas import EvidenceQuote, SelectedChunk, TestableClaim

log = logging.getLogger(__name__)


# ─── Claim type priority ───────────────────────────────────────────────────────

# procedural / quantitative claims first, rote definitions last
CLAIM_TYPE_PRIORITY = ("procedure", "formula", "conceptual", "example", "pitfall", "definition")
_PRIORITY_RANK = {t: i for i, t in enumerate(CLAIM_TYPE_PRIORITY)}

MAX_QUOTES_PER_CLAIM = 2


def prioritize_claims(claims: Sequence[TestableClaim]) -> List[TestableClaim]:
    """Stable sort by claim type priority; extraction order is kept within a type."""
    return sorted(claims, key=lambda c: _PRIORITY_RANK.get(c.claim_type, len(CLAIM_TYPE_PRIORITY)))


# ─── Prompt ────────────────────────────────────────────────────────────────────

CLAIM_SYSTEM = "You extract exam-ready facts from lecture material. Output only valid JSON."

CLAIM_PROMPT = """You are preparing a bank of testable claims from ONE excerpt of lecture material.

EXCERPT ({position_label}):
---
{chunk_text}
---

TASK: Extract up to {max_claims} TESTABLE CLAIMS from this excerpt.

A testable claim is one atomic, independently verifiable statement that an exam
question could be built on.

RULES:
1. Every claim MUST be answerable using ONLY this excerpt. Fewer claims is fine; fabrication is not.
2. Each claim cites 1-2 SHORT verbatim quotes (copied character-for-character from the excerpt, max ~30 words each).
3. claim_type is one of: definition, procedure, formula, conceptual, example, pitfall
4. common_confusions: things students typically mix up about this claim (may be empty).
5. claim_id: short id unique within this excerpt, e.g. "c1", "c2".
6. Skip slide furniture (titles, agenda, "questions?", page numbers).

OUTPUT FORMAT — respond with ONLY a JSON object:
{{
  "claims": [
    {{
      "claim_id": "c1",
      "claim": "<one atomic statement>",
      "claim_type": "<definition|procedure|formula|conceptual|example|pitfall>",
      "evidence": [{{"quote": "<verbatim excerpt text>", "page": "{position_label}"}}],
      "common_confusions": ["<confusion>", ...]
    }}
  ]
}}"""


# ─── Verbatim check ────────────────────────────────────────────────────────────

def _squash(text: str) -> str:
    """Case/whitespace/quote-style normalization for substring checks."""
    text = (text or "").lower()
    text = text.replace("’", "'").replace("‘", "'").replace("“", '"').replace("”", '"')
    return re.sub(r"\s+", " ", text).strip()


def is_verbatim(quote: str, chunk_text: str) -> bool:
    q = _squash(quote)
    return bool(q) and q in _squash(chunk_text)


# ─── Parsing ───────────────────────────────────────────────────────────────────

def _parse_evidence(raw: Any, default_page: str) -> List[EvidenceQuote]:
    quotes = []
    for item in raw if isinstance(raw, list) else []:
        if isinstance(item, str):
            item = {"quote": item}
        if not isinstance(item, dict):
            continue
        quote = str(item.get("quote") or "").strip()
        page = item.get("page")
        if not isinstance(page, (int, str)) or page == "":
            page = default_page
        if quote:
            quotes.append(EvidenceQuote(quote=quote, page=page))
    return quotes


def _str_list(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    return [str(c).strip() for c in raw if c is not None and str(c).strip()]


def parse_claims(
    data: Dict[str, Any],
    chunk: SelectedChunk,
    config: PipelineConfig,
) -> List[TestableClaim]:
    """Turn a raw extraction response into clean, bounded claims for one chunk."""
    raw_claims = data.get("claims")
    if not isinstance(raw_claims, list):
        raise ValueError("Response has no 'claims' list")

    claims: List[TestableClaim] = []
    used_ids = set()
    for n, item in enumerate(raw_claims, start=1):
        if not isinstance(item, dict):
            continue
        evidence = _parse_evidence(item.get("evidence"), chunk.page_label)
        if config.require_verbatim_evidence:
            evidence = [e for e in evidence if is_verbatim(e.quote, chunk.text)]
        if not evidence:
            continue

        claim_id = str(item.get("claim_id") or f"c{n}").strip()
        if claim_id in used_ids:
            claim_id = f"{claim_id}_{n}"
        try:
            claim = TestableClaim(
                claim_id=claim_id,
                claim=str(item.get("claim") or "").strip(),
                claim_type=str(item.get("claim_type") or "").strip().lower(),
                evidence=evidence[:MAX_QUOTES_PER_CLAIM],
                common_confusions=_str_list(item.get("common_confusions")),
                chunk_index=chunk.index,
            )
        except ValidationError:
            continue
        if not claim.claim:
            continue

        used_ids.add(claim_id)
        claims.append(claim)
        if len(claims) >= config.max_claims_per_chunk:
            break
    return claims


# ─── Extractor ─────────────────────────────────────────────────────────────────

class ClaimExtractor:
    """Chunk → claims, one generation call per chunk."""

    def __init__(self, config: PipelineConfig, llm: Optional[LlmCall] = None):
        self.config = config
        self.llm = llm or call_gpt

    def build_prompt(self, chunk: SelectedChunk) -> str:
        return CLAIM_PROMPT.format(
            position_label=chunk.page_label,
            chunk_text=chunk.text,
            max_claims=self.config.max_claims_per_chunk,
        )

    async def extract(self, chunk: SelectedChunk) -> List[TestableClaim]:
        try:
            raw = await self.llm(
                self.build_prompt(chunk),
                system=CLAIM_SYSTEM,
                temperature=self.config.temp_extract,
                max_tokens=self.config.max_tokens_extract,
                timeout=self.config.request_timeout_s,
                model=self.config.model,
            )
        except GenerationServiceError as e:
            log.warning(f"[CLAIMS] {chunk.page_label}: extraction call failed: {e}")
            return []

        try:
            claims = parse_claims(extract_json_obj(raw), chunk, self.config)
        except ValueError as e:
            log.warning(f"[CLAIMS] {chunk.page_label}: unparsable response: {e}")
            return []

        log.info(f"[CLAIMS] {chunk.page_label}: {len(claims)} claim(s)")
        return claims

    async def extract_all(self, chunks: Sequence[SelectedChunk]) -> List[TestableClaim]:
        """Extract from each chunk in order, then apply the global type priority."""
        claims: List[TestableClaim] = []
        for chunk in chunks:
            claims.extend(await self.extract(chunk))
        return prioritize_claims(claims)
