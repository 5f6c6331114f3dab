"""
Generation Pipeline

Material analysis → topic matches → chunks → claims → audited MCQs → stored questions.

    setup:  material → analysis → course topics → matched topics  (SetupError on any gap)
    fold:   for each matched topic (in order)
                select chunks → extract claims → priority order
                for each claim, until the topic quota is met
                    synthesize → quality annotate → persist
            progress committed after every topic; cancel flag checked
            between topics and between claims

Only setup faults (and truly unexpected exceptions) fail the job. Everything
below the topic level is counted in the GenerationSummary and skipped.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from database import crud
from database.models import CourseMaterial, GenerationJob, Topic
from generation.analysis_normalizer import normalize_analysis
from generation.chunk_selector import select_chunks
from generation.claim_extractor import ClaimExtractor
from generation.config import PipelineConfig
from generation.errors import (
    AnalysisMissing, MaterialNotFound, NoTopicsFound, NoTopicsMatched, SetupError,
)
from generation.gpt_client import LlmCall
from generation.job_tracker import JobTracker, create_job
from generation.mcq_synthesizer import McqSynthesizer
from generation.persister import Persister
from generation.quality_gate import annotate
from generation.schemas import (
    AnalysisDocument, AnalysisTopic, GenerationSummary, SelectedChunk, TestableClaim,
)
from generation.topic_matcher import match_topics

log = logging.getLogger("generation.pipeline")

MATERIAL_GENERATING = "generating_questions"
MATERIAL_READY = "ready"
MATERIAL_ANALYZED = "analyzed"

MatchedTopic = Tuple[Topic, AnalysisTopic]


def _context_for(claim: TestableClaim, chunks: Sequence[SelectedChunk]) -> str:
    for chunk in chunks:
        if chunk.index == claim.chunk_index:
            return chunk.text
    return "\n\n".join(c.text for c in chunks)


class GenerationPipeline:
    """One sequential run over one material, reporting into one job."""

    def __init__(self, db: Session, config: Optional[PipelineConfig] = None, llm: Optional[LlmCall] = None):
        self.db = db
        self.config = config or PipelineConfig.from_env()
        self.extractor = ClaimExtractor(self.config, llm)
        self.synthesizer = McqSynthesizer(self.config, llm)
        self.persister = Persister(db)

    # ── setup ──────────────────────────────────────────────────────────────

    def _load_material(self, material_id: int) -> Tuple[CourseMaterial, AnalysisDocument]:
        material = crud.get_material(self.db, material_id)
        if material is None:
            raise MaterialNotFound(material_id)
        if not material.analysis_json:
            raise AnalysisMissing(material_id)
        return material, normalize_analysis(material.analysis_json)

    def _match(
        self,
        material: CourseMaterial,
        analysis: AnalysisDocument,
        topic_ids: Optional[Sequence[int]],
    ) -> Tuple[List[Topic], List[MatchedTopic]]:
        topics = crud.get_course_topics(self.db, material.course_id, topic_ids)
        if not topics:
            raise NoTopicsFound(material.course_id)

        matched: List[MatchedTopic] = []
        for topic, analysis_topic in match_topics(topics, analysis.topics, self.config.match_threshold):
            if analysis_topic is None:
                log.info(f"[MATCH] '{topic.title}': no analysis topic, skipped")
                continue
            log.info(f"[MATCH] '{topic.title}' -> '{analysis_topic.title}'")
            matched.append((topic, analysis_topic))

        if not matched:
            raise NoTopicsMatched(len(topics))
        return topics, matched

    # ── run ────────────────────────────────────────────────────────────────

    async def run(
        self,
        material_id: int,
        topic_ids: Optional[Sequence[int]],
        job: GenerationJob,
    ) -> GenerationSummary:
        """Run generation for one job. Raises SetupError after failing the job."""
        tracker = JobTracker(self.db, job)
        log.info("=" * 60)
        log.info(f"[PIPELINE START] job={job.id} material={material_id}")

        material: Optional[CourseMaterial] = None
        try:
            material, analysis = self._load_material(material_id)
            crud.set_material_status(self.db, material, MATERIAL_GENERATING)
            topics, matched = self._match(material, analysis, topic_ids)
        except SetupError as e:
            tracker.fail(str(e))
            if material is not None:
                crud.set_material_status(self.db, material, MATERIAL_ANALYZED, error_message=str(e))
            raise
        except Exception as e:
            self.db.rollback()
            log.exception(f"[PIPELINE] job={job.id} setup error: {e}")
            tracker.fail(f"Unexpected error: {e}")
            if material is not None:
                crud.set_material_status(self.db, material, MATERIAL_ANALYZED, error_message=str(e))
            raise

        summary = GenerationSummary(topics_total=len(topics), topics_matched=len(matched))
        tracker.start(len(matched), len(matched) * self.config.max_questions_per_topic)

        try:
            await self._fold(tracker, material, analysis, matched, summary)
        except Exception as e:
            self.db.rollback()
            log.exception(f"[PIPELINE] job={job.id} unexpected error: {e}")
            summary.last_error = str(e)
            tracker.fail(f"Unexpected error: {e}", summary)
            crud.set_material_status(self.db, material, MATERIAL_ANALYZED, error_message=str(e))
            raise

        stored = len(crud.get_material_questions(self.db, material.id))
        if summary.cancelled:
            tracker.mark_cancelled(summary)
        else:
            tracker.complete(summary)
        crud.set_material_status(
            self.db, material,
            MATERIAL_READY,
            questions_generated_count=stored,
        )

        log.info("=" * 60)
        log.info(
            f"[DONE] job={job.id} questions={summary.questions_generated} "
            f"topics={summary.topics_matched}/{summary.topics_total} failed={summary.failed_questions}"
            + (" (cancelled)" if summary.cancelled else "")
        )
        log.info("=" * 60)
        return summary

    async def _fold(
        self,
        tracker: JobTracker,
        material: CourseMaterial,
        analysis: AnalysisDocument,
        matched: Sequence[MatchedTopic],
        summary: GenerationSummary,
    ) -> None:
        for n, (topic, analysis_topic) in enumerate(matched, start=1):
            if tracker.cancel_requested():
                summary.cancelled = True
                return
            tracker.set_current_item(topic.title)

            questions_before = summary.questions_generated
            failed_before = summary.failed_questions
            await self._run_topic(tracker, material, topic, analysis_topic, analysis, summary)
            # a topic stopped by cancellation is not finished
            tracker.record_topic(
                topic.title,
                completed_topics=n - 1 if summary.cancelled else n,
                questions_delta=summary.questions_generated - questions_before,
                failed_delta=summary.failed_questions - failed_before,
                message=f"Cancelled during topic {n}/{len(matched)}: {topic.title}" if summary.cancelled else None,
            )
            if summary.cancelled:
                return

    async def _run_topic(
        self,
        tracker: JobTracker,
        material: CourseMaterial,
        topic: Topic,
        analysis_topic: AnalysisTopic,
        analysis: AnalysisDocument,
        summary: GenerationSummary,
    ) -> None:
        chunks = select_chunks(analysis_topic, analysis, self.config)
        if not chunks:
            summary.topics_skipped += 1
            log.warning(f"[TOPIC] '{topic.title}': no source chunks, skipped")
            return

        claims = await self.extractor.extract_all(chunks)
        summary.claims_extracted += len(claims)
        log.info(f"[TOPIC] '{topic.title}': {len(chunks)} chunk(s), {len(claims)} claim(s)")

        quota = self.config.max_questions_per_topic
        stored = 0
        for claim in claims:
            if stored >= quota:
                log.info(f"[TOPIC] '{topic.title}': quota of {quota} reached")
                break
            if tracker.cancel_requested():
                summary.cancelled = True
                return

            result = await self.synthesizer.synthesize(claim, topic.title, _context_for(claim, chunks))
            if result.kind == "declined":
                summary.claims_declined += 1
                continue
            if result.kind == "malformed":
                summary.claims_malformed += 1
                summary.last_error = result.reason
                continue
            if result.kind == "rejected":
                summary.claims_rejected += 1
                summary.last_error = result.reason
                continue

            row = self.persister.save(
                result.question, claim, annotate(result.question, claim, self.config),
                course_id=material.course_id,
                topic_id=topic.id,
                topic_title=topic.title,
                material_id=material.id,
                job_id=tracker.job_id,
            )
            if row is None:
                summary.persist_failures += 1
                continue
            stored += 1
            summary.questions_generated += 1


async def run_generation(
    db: Session,
    material_id: int,
    topic_ids: Optional[Sequence[int]] = None,
    requested_by: Optional[str] = None,
    config: Optional[PipelineConfig] = None,
    llm: Optional[LlmCall] = None,
) -> Tuple[GenerationJob, GenerationSummary]:
    """
    Create a job for the material and run it to completion.

    Raises MaterialNotFound before any job exists; every other SetupError is
    raised after the job has been marked failed.
    """
    if crud.get_material(db, material_id) is None:
        raise MaterialNotFound(material_id)

    job = create_job(db, material_id, created_by=requested_by)
    pipeline = GenerationPipeline(db, config, llm)
    try:
        summary = await pipeline.run(material_id, topic_ids, job)
    except SetupError as e:
        e.job_id = job.id
        raise
    return job, summary
