"""
Persist accepted questions.

One accepted question → one `questions` row, inserted and committed on its
own. Generated rows are always draft / needs_review / unpublished.
A duplicate stem for the same material (re-run) or any other DB error is
rolled back and reported as a skip.
"""

import hashlib
import logging
import re
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from database.models import Question
from generation.schemas import GeneratedQuestion, QualityAnnotation, TestableClaim

log = logging.getLogger(__name__)


def _normalize_question_text(text: str) -> str:
    """Normalize for hash/dedupe."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text.strip().lower())


def stem_hash(text: str) -> str:
    return hashlib.sha256(_normalize_question_text(text).encode()).hexdigest()


def _choices_payload(question: GeneratedQuestion) -> List[dict]:
    return [
        {"id": label, "text": text, "isCorrect": label == question.correct}
        for label, text in question.choices.items()
    ]


def _common_mistakes(question: GeneratedQuestion) -> List[dict]:
    return [
        {
            "choice": r.choice_id,
            "type": r.rationale_type,
            "description": r.error_description,
        }
        for r in question.distractor_rationales
        if r.choice_id != question.correct
    ]


def build_question_row(
    question: GeneratedQuestion,
    claim: TestableClaim,
    annotation: QualityAnnotation,
    *,
    course_id: int,
    topic_id: int,
    topic_title: str,
    material_id: int,
    job_id: int,
) -> Question:
    return Question(
        course_id=course_id,
        topic_ids=[topic_id],
        source_material_id=material_id,
        generation_job_id=job_id,
        prompt=question.stem,
        choices=_choices_payload(question),
        correct_answer=question.correct,
        full_solution=question.explanation,
        common_mistakes=_common_mistakes(question),
        tags=[claim.claim_type, topic_title],
        difficulty=question.difficulty_1to5,
        question_format="multiple_choice",
        source="generated",
        status="draft",
        is_published=False,
        needs_review=True,
        quality_score=annotation.score,
        quality_flags=annotation.flags,
        provenance={
            "claim_id": claim.claim_id,
            "claim": claim.claim,
            "claim_type": claim.claim_type,
            "chunk_index": claim.chunk_index,
            "evidence": [e.model_dump() for e in claim.evidence],
            "evidence_spans": question.evidence_spans,
        },
        stem_hash=stem_hash(question.stem),
    )


class Persister:
    def __init__(self, db: Session):
        self.db = db

    def save(self, question: GeneratedQuestion, claim: TestableClaim, annotation: QualityAnnotation,
             **context) -> Optional[Question]:
        """Insert one question; returns the row, or None when the insert was skipped."""
        row = build_question_row(question, claim, annotation, **context)
        try:
            self.db.add(row)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            log.info(f"[DB] claim {claim.claim_id}: duplicate stem for material {context.get('material_id')}, skipped")
            return None
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error(f"[DB] claim {claim.claim_id}: insert failed: {e}")
            return None
        self.db.refresh(row)
        log.info(f"[DB] Saved question_id={row.id} (claim {claim.claim_id})")
        return row
