"""Tests for generation.mcq_synthesizer."""
import asyncio
import json

from conftest import mcq_payload
from generation.config import PipelineConfig
from generation.errors import GenerationServiceError
from generation.mcq_synthesizer import McqSynthesizer, build_prompt, evaluate, parse_question
from generation.schemas import EvidenceQuote, TestableClaim

CLAIM = TestableClaim(
    claim_id="c1",
    claim="A rigid body keeps the distance between any two of its points fixed.",
    claim_type="definition",
    evidence=[EvidenceQuote(quote="A rigid body keeps the distance", page="Slide 2")],
)


def _synth(response):
    async def llm(prompt, **kwargs):
        if isinstance(response, Exception):
            raise response
        return response

    return asyncio.run(McqSynthesizer(PipelineConfig(), llm).synthesize(CLAIM, "Rigid Bodies", "context"))


def test_prompt_carries_claim_evidence_and_context():
    prompt = build_prompt(CLAIM, "Rigid Bodies", "x" * 10000)
    assert "CLAIM (definition): A rigid body" in prompt
    assert '"A rigid body keeps the distance" [Slide 2]' in prompt
    assert "- (none listed)" in prompt
    assert "x" * 6001 not in prompt


def test_declined_without_error():
    result = _synth(json.dumps({"cannot_create": True, "reason": "definition too thin"}))
    assert result.kind == "declined"
    assert result.reason == "definition too thin"


def test_accepted():
    result = _synth(mcq_payload(correct="C", confidence=0.85))
    assert result.kind == "accepted"
    assert result.question.correct == "C"
    assert result.question.correct_verdicts() == ["C"]


def test_two_correct_verdicts_rejected():
    verdicts = {"A": "correct", "B": "correct", "C": "wrong", "D": "wrong"}
    result = _synth(mcq_payload(correct="A", verdicts=verdicts))
    assert result.kind == "rejected"
    assert "2 options" in result.reason


def test_audit_disagreeing_with_key_rejected():
    verdicts = {"A": "wrong", "B": "correct", "C": "wrong", "D": "wrong"}
    assert _synth(mcq_payload(correct="A", verdicts=verdicts)).kind == "rejected"


def test_low_confidence_rejected():
    result = _synth(mcq_payload(confidence=0.69))
    assert result.kind == "rejected"
    assert "confidence" in result.reason


def test_confidence_at_threshold_accepted():
    assert _synth(mcq_payload(confidence=0.7)).kind == "accepted"


def test_missing_audit_is_malformed():
    data = json.loads(mcq_payload())
    del data["option_audit"]["D"]
    assert _synth(json.dumps(data)).kind == "malformed"


def test_unparsable_output_is_malformed():
    assert _synth("not json at all").kind == "malformed"


def test_service_error_is_malformed():
    result = _synth(GenerationServiceError("Generation call timed out after 60.0s"))
    assert result.kind == "malformed"
    assert "timed out" in result.reason


def test_parse_question_accepts_list_choices_and_clamps():
    data = json.loads(mcq_payload())
    data["choices"] = ["A) first", "B) second", "C) third", "D) fourth"]
    data["difficulty_1to5"] = 9
    data["confidence_0to1"] = "1.4"
    question = parse_question(data)
    assert question.choices["A"] == "first"
    assert question.difficulty_1to5 == 5
    assert question.confidence_0to1 == 1.0


def test_evaluate_rejects_bad_correct_label():
    data = json.loads(mcq_payload())
    data["correct"] = "E"
    assert evaluate(data, 0.7).kind == "malformed"


def test_non_finite_difficulty_falls_back_to_default():
    data = json.loads(mcq_payload())
    data["difficulty_1to5"] = float("inf")
    result = _synth(json.dumps(data))
    assert result.kind == "accepted"
    assert result.question.difficulty_1to5 == 3


def test_arithmetic_error_while_evaluating_is_malformed(monkeypatch):
    from generation import mcq_synthesizer

    def explode(data, min_confidence):
        raise OverflowError("cannot convert float infinity to integer")

    monkeypatch.setattr(mcq_synthesizer, "evaluate", explode)
    result = _synth(mcq_payload())
    assert result.kind == "malformed"
    assert "infinity" in result.reason
