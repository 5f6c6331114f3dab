"""Tests for generation.pipeline (end to end over SQLite with a scripted generation service)."""
import asyncio
import json

import pytest
from sqlalchemy.exc import OperationalError

from conftest import ANALYSIS_V3, FakeLlm, mcq_payload, seed_material
from database import crud
from database.models import GenerationJob, Question
from generation.config import PipelineConfig
from generation.errors import AnalysisMissing, MaterialNotFound, NoTopicsFound, NoTopicsMatched
from generation.job_tracker import request_cancel
from generation.pipeline import run_generation


def _run(db, material_id, llm, config=None, topic_ids=None):
    return asyncio.run(run_generation(db, material_id, topic_ids, "instructor", config or PipelineConfig(), llm))


def test_full_run_stores_questions_and_completes(db, fake_llm):
    material, _ = seed_material(db)
    job, summary = _run(db, material.id, fake_llm)

    assert job.status == "completed"
    assert summary.topics_total == 2
    assert summary.topics_matched == 2
    assert summary.claims_extracted == 4
    assert summary.questions_generated == 4
    assert job.completed_topics == 2
    assert job.completed_questions == 4
    assert job.failed_questions == 0
    assert job.total_questions == 16
    assert job.error_message is None

    questions = crud.get_material_questions(db, material.id)
    assert len(questions) == 4
    assert all(q.status == "draft" and q.needs_review and not q.is_published for q in questions)
    assert all(q.generation_job_id == job.id for q in questions)

    db.refresh(material)
    assert material.status == "ready"
    assert material.questions_generated_count == 4


def test_one_extraction_call_per_chunk_and_one_synthesis_call_per_claim(db, fake_llm):
    material, _ = seed_material(db)
    _run(db, material.id, fake_llm)
    assert len(fake_llm.extraction_calls) == 2
    assert len(fake_llm.synthesis_calls) == 4
    assert all(c["timeout"] == 60.0 for c in fake_llm.calls)


def test_topic_quota(db):
    material, _ = seed_material(db)
    llm = FakeLlm(claims_per_chunk=5)
    job, summary = _run(db, material.id, llm, PipelineConfig(max_questions_per_topic=2))
    assert summary.questions_generated == 4
    assert len(llm.synthesis_calls) == 4


def test_low_confidence_questions_never_stored(db):
    material, _ = seed_material(db)
    llm = FakeLlm(synthesize=lambda claim: mcq_payload(stem=claim, confidence=0.5))
    job, summary = _run(db, material.id, llm)

    assert job.status == "completed"
    assert summary.questions_generated == 0
    assert summary.claims_rejected == 4
    assert job.failed_questions == 4
    assert db.query(Question).count() == 0


def test_matched_but_no_questions_completes_with_zero(db):
    material, _ = seed_material(db)
    llm = FakeLlm(synthesize=lambda claim: json.dumps({"cannot_create": True, "reason": "too thin"}))
    job, summary = _run(db, material.id, llm)
    assert job.status == "completed"
    assert summary.questions_generated == 0
    assert summary.claims_declined == 4


def test_rerun_skips_duplicates_and_keeps_prior_questions(db, fake_llm):
    material, _ = seed_material(db)
    first_job, _ = _run(db, material.id, fake_llm)
    second_job, summary = _run(db, material.id, FakeLlm())

    assert second_job.status == "completed"
    assert summary.questions_generated == 0
    assert summary.persist_failures == 4
    questions = crud.get_material_questions(db, material.id)
    assert len(questions) == 4
    assert {q.generation_job_id for q in questions} == {first_job.id}


def test_topic_ids_restrict_the_run(db, fake_llm):
    material, topics = seed_material(db)
    job, summary = _run(db, material.id, fake_llm, topic_ids=[topics[1].id])
    assert summary.topics_total == 1
    assert summary.questions_generated == 2


def test_missing_material(db, fake_llm):
    with pytest.raises(MaterialNotFound):
        _run(db, 999, fake_llm)
    assert db.query(GenerationJob).count() == 0


def test_unanalyzed_material_fails_job(db, fake_llm):
    material, _ = seed_material(db, analysis=None, status="uploaded")
    with pytest.raises(AnalysisMissing) as exc:
        _run(db, material.id, fake_llm)

    job = crud.get_job(db, exc.value.job_id)
    assert job.status == "failed"
    assert job.error_message == "Material has not been analyzed yet"
    db.refresh(material)
    assert material.status == "uploaded"


def test_no_topics(db, fake_llm):
    material, _ = seed_material(db, topics=())
    with pytest.raises(NoTopicsFound):
        _run(db, material.id, fake_llm)


def test_zero_matched_topics_fails_job(db, fake_llm):
    material, _ = seed_material(db, topics=(("Organic Chemistry", None), ("Thermodynamics", None)))
    with pytest.raises(NoTopicsMatched) as exc:
        _run(db, material.id, fake_llm)

    job = crud.get_job(db, exc.value.job_id)
    assert job.status == "failed"
    assert job.error_message
    assert fake_llm.calls == []
    db.refresh(material)
    assert material.status == "analyzed"
    assert material.error_message == job.error_message


def test_topic_without_chunks_is_skipped(db, fake_llm):
    analysis = dict(ANALYSIS_V3, chunks=[], chunk_summaries=[])
    material, _ = seed_material(db, analysis=analysis)
    job, summary = _run(db, material.id, fake_llm)
    assert job.status == "completed"
    assert summary.topics_skipped == 2
    assert summary.questions_generated == 0


def test_cancellation_between_claims(db):
    material, _ = seed_material(db)
    state = {"calls": 0}

    def synthesize(claim):
        state["calls"] += 1
        if state["calls"] == 1:
            job = db.query(GenerationJob).one()
            request_cancel(db, job.id)
        return mcq_payload(stem=claim)

    job, summary = _run(db, material.id, FakeLlm(synthesize=synthesize))
    assert job.status == "cancelled"
    assert summary.cancelled is True
    assert summary.questions_generated == 1
    assert db.query(Question).count() == 1


def test_cancelled_topic_is_not_counted_as_completed(db):
    material, _ = seed_material(db)

    def synthesize(claim):
        request_cancel(db, db.query(GenerationJob).one().id)
        return mcq_payload(stem=claim)

    job, _ = _run(db, material.id, FakeLlm(synthesize=synthesize))
    assert job.status == "cancelled"
    assert job.completed_topics == 0
    assert job.completed_questions == 1


def test_non_finite_difficulty_only_affects_its_claim(db):
    material, _ = seed_material(db)
    llm = FakeLlm(synthesize=lambda claim: mcq_payload(stem=claim).replace('"difficulty_1to5": 2', '"difficulty_1to5": 1e999'))
    job, summary = _run(db, material.id, llm)
    assert job.status == "completed"
    assert summary.questions_generated == 4
    assert {q.difficulty for q in crud.get_material_questions(db, material.id)} == {3}


def test_unexpected_setup_error_fails_job(db, fake_llm, monkeypatch):
    material, _ = seed_material(db)

    def broken(*args, **kwargs):
        raise OperationalError("SELECT topics", {}, Exception("connection lost"))

    monkeypatch.setattr(crud, "get_course_topics", broken)
    with pytest.raises(OperationalError):
        _run(db, material.id, fake_llm)

    job = db.query(GenerationJob).one()
    assert job.status == "failed"
    assert job.error_message.startswith("Unexpected error:")
    assert job.completed_at is not None
    db.refresh(material)
    assert material.status == "analyzed"


def test_unexpected_error_mid_run_fails_job_and_keeps_questions(db):
    material, _ = seed_material(db)
    state = {"calls": 0}

    def synthesize(claim):
        state["calls"] += 1
        if state["calls"] == 2:
            raise RuntimeError("service client crashed")
        return mcq_payload(stem=claim)

    with pytest.raises(RuntimeError):
        _run(db, material.id, FakeLlm(synthesize=synthesize))

    job = db.query(GenerationJob).one()
    assert job.status == "failed"
    assert job.error_message == "Unexpected error: service client crashed"
    assert job.completed_at is not None
    assert db.query(Question).count() == 1
    db.refresh(material)
    assert material.status == "analyzed"
    assert material.error_message == "service client crashed"
