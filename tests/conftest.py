"""Shared fixtures: in-memory database, seed helpers and a scripted generation service."""
import json
import os
import re

os.environ.setdefault("HUEY_IMMEDIATE", "1")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database.database import Base
from database.models import Course, CourseMaterial, Topic
from generation.claim_extractor import CLAIM_SYSTEM
from generation.config import PipelineConfig


LIMITS_TEXT = (
    "A limit describes the value a function approaches as the input approaches a point. "
    "The limit of a sum is the sum of the limits, provided both limits exist. "
    "To evaluate a limit by substitution, replace x with the approached value."
)

DYNAMICS_TEXT = (
    "Torque equals the moment of inertia times the angular acceleration. "
    "A rigid body keeps the distance between any two of its points fixed."
)

ANALYSIS_V3 = {
    "schema_version": 3,
    "topics": [
        {"title": "Limits", "topic_code": "L1", "supporting_chunks": [0]},
        {"title": "Dynamics of Rigid Bodies", "supporting_chunks": [1]},
    ],
    "chunk_summaries": [
        {"chunk_index": 0, "chunk_type": "slide", "summary": "Limits and limit laws"},
        {"chunk_index": 1, "chunk_type": "slide", "summary": "Torque and rigid bodies"},
    ],
    "chunks": [
        {"chunk_index": 0, "chunk_type": "slide", "text": LIMITS_TEXT},
        {"chunk_index": 1, "chunk_type": "slide", "text": DYNAMICS_TEXT},
    ],
}


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def config():
    return PipelineConfig()


def seed_material(db, analysis=ANALYSIS_V3, topics=(("Limits", "L1"), ("Rigid Body Dynamics", None)),
                  status="analyzed"):
    """Insert a course with topics and one material; returns (material, [topics])."""
    course = Course(title="Calculus & Mechanics")
    db.add(course)
    db.flush()
    rows = [Topic(course_id=course.id, title=title, topic_code=code) for title, code in topics]
    db.add_all(rows)
    material = CourseMaterial(course_id=course.id, title="Week 1 slides", status=status, analysis_json=analysis)
    db.add(material)
    db.commit()
    return material, rows


# ─── Scripted generation service ───────────────────────────────────────────────

def claims_payload(*claims):
    """claims: (claim_id, claim, claim_type, quote) tuples."""
    return json.dumps({
        "claims": [
            {
                "claim_id": cid,
                "claim": text,
                "claim_type": ctype,
                "evidence": [{"quote": quote, "page": "Slide 1"}],
                "common_confusions": [],
            }
            for cid, text, ctype, quote in claims
        ]
    })


def mcq_payload(stem="Which statement is true?", correct="A", confidence=0.9, verdicts=None, evidence="quoted text"):
    verdicts = verdicts or {label: ("correct" if label == correct else "wrong") for label in "ABCD"}
    return json.dumps({
        "stem": stem,
        "choices": {"A": "first", "B": "second", "C": "third", "D": "fourth"},
        "correct": correct,
        "explanation": "Stated directly in the excerpt.",
        "evidence_spans": [evidence],
        "option_audit": {
            label: {"verdict": verdict, "why": "see excerpt", "evidence": evidence}
            for label, verdict in verdicts.items()
        },
        "difficulty_1to5": 2,
        "confidence_0to1": confidence,
        "distractor_rationales": [
            {"choice_id": label, "rationale_type": "misconception", "error_description": "mixes up terms"}
            for label in "ABCD" if label != correct
        ],
    })


def _excerpt(prompt):
    match = re.search(r"---\n(.*?)\n---", prompt, re.S)
    return match.group(1) if match else ""


def _claim_text(prompt):
    match = re.search(r"CLAIM \(\w+\): (.*)", prompt)
    return match.group(1).strip() if match else "claim"


class FakeLlm:
    """
    Async stand-in for gpt_client.call_gpt.

    Extraction calls quote the first sentence of the excerpt as `claims_per_chunk`
    claims; synthesis calls return an accepted question whose stem is derived from
    the claim text (so re-runs produce the same stems).
    """

    def __init__(self, claims_per_chunk=2, synthesize=None):
        self.claims_per_chunk = claims_per_chunk
        self.synthesize = synthesize
        self.calls = []

    async def __call__(self, prompt, system="", **kwargs):
        self.calls.append({"prompt": prompt, "system": system, **kwargs})
        if system == CLAIM_SYSTEM:
            sentence = _excerpt(prompt).split(". ")[0]
            return claims_payload(*[
                (f"c{n}", f"{sentence} (fact {n})", "conceptual", sentence)
                for n in range(1, self.claims_per_chunk + 1)
            ])
        claim = _claim_text(prompt)
        if self.synthesize is not None:
            return self.synthesize(claim)
        return mcq_payload(stem=f"Which is true about: {claim}?")

    @property
    def extraction_calls(self):
        return [c for c in self.calls if c["system"] == CLAIM_SYSTEM]

    @property
    def synthesis_calls(self):
        return [c for c in self.calls if c["system"] != CLAIM_SYSTEM]


@pytest.fixture
def fake_llm():
    return FakeLlm()
