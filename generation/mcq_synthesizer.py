"""
MCQ Synthesis

One generation call per TestableClaim produces one multiple-choice question
with a mandatory per-option self-audit. The service is told to rewrite the
question once on its own if its audit finds ambiguity; the caller never
re-prompts.

Every call ends in exactly one outcome:
  Accepted   structurally complete, one "correct" audit verdict, confident enough
  Declined   the service said the claim cannot support a question
  Malformed  call failed / timed out / output not a complete question
  Rejected   complete question that failed the audit or confidence gate
"""

import logging
from typing import Any, Dict, List, Optional

from generation.config import PipelineConfig
from generation.errors import GenerationServiceError
from generation.gpt_client import LlmCall, call_gpt, extract_json_obj
from generation.schemas import (
    CHOICE_LABELS, Accepted, Declined, DistractorRationale, GeneratedQuestion, Malformed,
    OptionAudit, Rejected, SynthesisResult, TestableClaim,
)

log = logging.getLogger(__name__)

CONTEXT_LIMIT = 6000
RATIONALE_TYPES = ("misconception", "computation_error", "partial_understanding")


# ─── Prompt ────────────────────────────────────────────────────────────────────

MCQ_SYSTEM = "You are an expert university exam question setter. Output only valid JSON."

MCQ_PROMPT = """Write exactly ONE multiple-choice question that tests the claim below.

TOPIC: {topic_title}

CLAIM ({claim_type}): {claim_text}

EVIDENCE (verbatim from the source):
{evidence_block}

COMMON CONFUSIONS (use these for distractors when available):
{confusions_block}

SURROUNDING SOURCE TEXT (the only material the question may rely on):
---
{context_text}
---

RULES:
1. The question must be answerable from the evidence above alone.
2. Exactly 4 choices A-D, exactly ONE correct.
3. Each wrong choice must come from a misconception, a computation error or partial understanding.
4. Do NOT use "All of the above" / "None of the above". Do NOT start with "According to the passage".
5. OPTION AUDIT: for EVERY option give verdict "correct" or "wrong", a one-line why, and the
   evidence quote that supports or refutes it (or "none in excerpt" if the excerpt is silent).
6. If your audit finds more than one defensible answer, rewrite the question ONCE and audit again.
7. If the claim is too thin to support a fair question, return {{"cannot_create": true, "reason": "<why>"}}.
8. confidence_0to1 is your honest confidence that the question is unambiguous and correct.

OUTPUT FORMAT — respond with ONLY a JSON object:
{{
  "stem": "<complete, self-sufficient question>",
  "choices": {{"A": "<text>", "B": "<text>", "C": "<text>", "D": "<text>"}},
  "correct": "<A|B|C|D>",
  "explanation": "<why the correct answer is right, citing the evidence>",
  "evidence_spans": ["<verbatim quote>", ...],
  "option_audit": {{
    "A": {{"verdict": "correct|wrong", "why": "<one line>", "evidence": "<quote or 'none in excerpt'>"}},
    "B": {{...}}, "C": {{...}}, "D": {{...}}
  }},
  "difficulty_1to5": <1-5>,
  "confidence_0to1": <0.0-1.0>,
  "distractor_rationales": [
    {{"choice_id": "<wrong label>", "rationale_type": "misconception|computation_error|partial_understanding", "error_description": "<what the student got wrong>"}}
  ]
}}"""


def _evidence_block(claim: TestableClaim) -> str:
    lines = []
    for e in claim.evidence:
        page = f" [{e.page}]" if e.page not in (None, "") else ""
        lines.append(f'- "{e.quote}"{page}')
    return "\n".join(lines) or "- (none)"


def build_prompt(claim: TestableClaim, topic_title: str, context_text: str) -> str:
    confusions = "\n".join(f"- {c}" for c in claim.common_confusions) or "- (none listed)"
    return MCQ_PROMPT.format(
        topic_title=topic_title,
        claim_type=claim.claim_type,
        claim_text=claim.claim,
        evidence_block=_evidence_block(claim),
        confusions_block=confusions,
        context_text=(context_text or "")[:CONTEXT_LIMIT],
    )


# ─── Parsing ───────────────────────────────────────────────────────────────────

def _parse_choices(raw: Any) -> Dict[str, str]:
    """Accept {"A": ...} dicts, ["A) ...", ...] lists or [{"id"/"label", "text"}] lists."""
    choices: Dict[str, str] = {}
    if isinstance(raw, dict):
        for label, text in raw.items():
            choices[str(label).strip().upper()] = str(text or "").strip()
    elif isinstance(raw, list):
        for idx, item in enumerate(raw[: len(CHOICE_LABELS)]):
            if isinstance(item, dict):
                label = str(item.get("id") or item.get("label") or CHOICE_LABELS[idx]).strip().upper()
                choices[label] = str(item.get("text") or "").strip()
            else:
                text = str(item or "").strip()
                prefix = f"{CHOICE_LABELS[idx]})"
                if text.upper().startswith(prefix):
                    text = text[len(prefix):].strip()
                choices[CHOICE_LABELS[idx]] = text
    return choices


def _parse_audit(raw: Any) -> Dict[str, OptionAudit]:
    audit: Dict[str, OptionAudit] = {}
    if not isinstance(raw, dict):
        return audit
    for label, entry in raw.items():
        if not isinstance(entry, dict):
            continue
        verdict = str(entry.get("verdict") or "").strip().lower()
        if not verdict:
            continue
        audit[str(label).strip().upper()] = OptionAudit(
            verdict=verdict,
            why=str(entry.get("why") or "").strip(),
            evidence=entry.get("evidence"),
        )
    return audit


def _parse_rationales(raw: Any) -> List[DistractorRationale]:
    rationales = []
    for item in raw if isinstance(raw, list) else []:
        if not isinstance(item, dict):
            continue
        choice_id = str(item.get("choice_id") or "").strip().upper()
        rtype = str(item.get("rationale_type") or "").strip().lower()
        if choice_id in CHOICE_LABELS and rtype in RATIONALE_TYPES:
            rationales.append(DistractorRationale(
                choice_id=choice_id,
                rationale_type=rtype,
                error_description=str(item.get("error_description") or "").strip(),
            ))
    return rationales


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_int(value: Any, default: int) -> int:
    try:
        return int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return default


def parse_question(data: Dict[str, Any]) -> GeneratedQuestion:
    """
    Structural check + parse. Raises ValueError naming the first missing piece:
    stem, four choices A–D, a designated correct choice, an audit for every option.
    """
    stem = str(data.get("stem") or "").strip()
    if not stem:
        raise ValueError("missing stem")

    choices = _parse_choices(data.get("choices"))
    if set(choices) != set(CHOICE_LABELS) or not all(choices.values()):
        raise ValueError("choices must be exactly A-D, all non-empty")

    correct = str(data.get("correct") or "").strip().upper()[:1]
    if correct not in CHOICE_LABELS:
        raise ValueError(f"invalid correct choice: {data.get('correct')!r}")

    audit = _parse_audit(data.get("option_audit"))
    if not set(CHOICE_LABELS) <= set(audit):
        raise ValueError("option_audit must cover A-D")

    spans = data.get("evidence_spans")
    return GeneratedQuestion(
        stem=stem,
        choices={label: choices[label] for label in CHOICE_LABELS},
        correct=correct,
        explanation=str(data.get("explanation") or "").strip(),
        evidence_spans=[str(s).strip() for s in spans if str(s).strip()] if isinstance(spans, list) else [],
        option_audit={label: audit[label] for label in CHOICE_LABELS},
        difficulty_1to5=min(5, max(1, _as_int(data.get("difficulty_1to5"), 3))),
        confidence_0to1=min(1.0, max(0.0, _as_float(data.get("confidence_0to1"), 0.0))),
        distractor_rationales=_parse_rationales(data.get("distractor_rationales")),
    )


def evaluate(data: Dict[str, Any], min_confidence: float) -> SynthesisResult:
    """Run the acceptance algorithm on one parsed response object."""
    if data.get("cannot_create") is True:
        return Declined(reason=str(data.get("reason") or "service declined"))

    try:
        question = parse_question(data)
    except ValueError as e:
        return Malformed(reason=str(e))

    verdicts = question.correct_verdicts()
    if len(verdicts) != 1:
        return Rejected(reason=f"audit marks {len(verdicts)} options correct", question=question)
    if verdicts[0] != question.correct:
        return Rejected(
            reason=f"audit marks {verdicts[0]} correct but answer key is {question.correct}",
            question=question,
        )

    if question.confidence_0to1 < min_confidence:
        return Rejected(
            reason=f"confidence {question.confidence_0to1:.2f} below {min_confidence:.2f}",
            question=question,
        )
    return Accepted(question=question)


# ─── Synthesizer ───────────────────────────────────────────────────────────────

class McqSynthesizer:
    """Claim → one audited MCQ (or a typed rejection), one generation call per claim."""

    def __init__(self, config: PipelineConfig, llm: Optional[LlmCall] = None):
        self.config = config
        self.llm = llm or call_gpt

    async def synthesize(self, claim: TestableClaim, topic_title: str, context_text: str) -> SynthesisResult:
        prompt = build_prompt(claim, topic_title, context_text)
        try:
            raw = await self.llm(
                prompt,
                system=MCQ_SYSTEM,
                temperature=self.config.temp_synthesize,
                max_tokens=self.config.max_tokens_synthesize,
                timeout=self.config.request_timeout_s,
                model=self.config.model,
            )
        except GenerationServiceError as e:
            return Malformed(reason=str(e))

        try:
            data = extract_json_obj(raw)
        except ValueError as e:
            return Malformed(reason=f"unparsable response: {e}")

        try:
            result = evaluate(data, self.config.min_confidence)
        except (ValueError, ArithmeticError) as e:
            return Malformed(reason=f"unusable response: {e}")

        if result.kind == "accepted":
            log.info(f"[MCQ] claim {claim.claim_id}: accepted (confidence={result.question.confidence_0to1:.2f})")
        else:
            log.info(f"[MCQ] claim {claim.claim_id}: {result.kind}: {result.reason}")
        return result
