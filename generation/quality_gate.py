"""
Quality Gate

Annotates an accepted question for human review triage. Thresholding already
happened in the synthesizer, so nothing is rejected here.

score (0–10) = 10 × (0.5 × confidence + 0.5 × audit_completeness)
"""

from typing import Any

from generation.config import PipelineConfig
from generation.schemas import GeneratedQuestion, QualityAnnotation, TestableClaim

INCOMPLETE_AUDIT_SCORE = 0.5


def _cites_evidence(evidence: Any) -> bool:
    # a quote, a list of quotes, or an explicit marker such as "none in excerpt"
    if isinstance(evidence, str):
        return bool(evidence.strip())
    if isinstance(evidence, (list, tuple)):
        return any(_cites_evidence(e) for e in evidence)
    if isinstance(evidence, dict):
        return any(_cites_evidence(v) for v in evidence.values())
    return False


def audit_completeness(question: GeneratedQuestion) -> float:
    """1.0 when every option's audit cites evidence (or explicitly cites its absence)."""
    complete = all(_cites_evidence(audit.evidence) for audit in question.option_audit.values())
    return 1.0 if complete else INCOMPLETE_AUDIT_SCORE


def annotate(question: GeneratedQuestion, claim: TestableClaim, config: PipelineConfig) -> QualityAnnotation:
    completeness = audit_completeness(question)
    score = round(10 * (0.5 * question.confidence_0to1 + 0.5 * completeness), 1)

    wrong_labels = {label for label in question.choices if label != question.correct}
    plausible = {r.choice_id for r in question.distractor_rationales if r.choice_id in wrong_labels}

    flags = {
        "grounded": 1 if claim.evidence else 0,
        "answerable_from_context": 1,
        "has_single_clear_correct": 1 if len(question.correct_verdicts()) == 1 else 0,
        "distractors_plausible": len(plausible),
        "audit_complete": completeness == 1.0,
        "pipeline_version": config.pipeline_version,
        "claim_type": claim.claim_type,
        "confidence": question.confidence_0to1,
        "issues": [] if completeness == 1.0 else ["option audit missing evidence for some options"],
        "was_repaired": False,
    }
    return QualityAnnotation(score=score, flags=flags)
