"""
Generation Router — /generation

Runs the evidence-grounded MCQ pipeline over an analyzed course material.
Endpoints:
  POST /generation/generate-questions          — run (or queue) a generation job
  GET  /generation/jobs/{job_id}               — job progress record
  GET  /generation/materials/{material_id}/jobs — recent jobs for a material
  POST /generation/jobs/{job_id}/cancel        — cooperative cancellation
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from database.database import get_db
from database import crud
from generation.config import PipelineConfig
from generation.errors import JobStateError, MaterialNotFound, SetupError
from generation.job_tracker import create_job, request_cancel
from generation.pipeline import run_generation
from generation.schemas import (
    GenerateQuestionsRequest, GenerateQuestionsResponse, JobStatusResponse, QueuedJobResponse,
)
from generation.tasks import run_generation_job

router = APIRouter(prefix="/generation", tags=["generation"])

# Use Python's standard logger so output appears in the uvicorn console
log = logging.getLogger("generation.pipeline")
logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)s  %(message)s")


def get_pipeline_config() -> PipelineConfig:
    return PipelineConfig.from_env()


def get_llm():
    """Generation service callable; None means the default OpenAI client."""
    return None


def _setup_error(e: SetupError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail={"error": str(e), "jobId": e.job_id})


# ─── Generate ─────────────────────────────────────────────────────────────────

@router.post(
    "/generate-questions",
    response_model=GenerateQuestionsResponse,
    responses={202: {"model": QueuedJobResponse}},
)
async def generate_questions(
    request: GenerateQuestionsRequest,
    db: Session = Depends(get_db),
    config: PipelineConfig = Depends(get_pipeline_config),
    llm=Depends(get_llm),
):
    """
    **Generate draft MCQs for an analyzed material.**

    Every stored question is draft + needs_review; nothing is published here.

    - `background: false` (default) runs the whole pipeline in this request and
      returns the counts.
    - `background: true` queues the run and returns `202` with the job id; poll
      `GET /generation/jobs/{jobId}`.
    """
    log.info(f"[GENERATE] material={request.material_id} topics={request.topic_ids or 'all'} background={request.background}")

    if request.background:
        if crud.get_material(db, request.material_id) is None:
            raise _setup_error(MaterialNotFound(request.material_id))
        job = create_job(db, request.material_id, created_by=request.requested_by)
        # immediate-mode Huey runs the task inline; keep its asyncio.run off this event loop
        await run_in_threadpool(run_generation_job, job.id, request.material_id, request.topic_ids)
        log.info(f"[GENERATE] job={job.id} queued")
        return JSONResponse(
            status_code=202,
            content=QueuedJobResponse(job_id=job.id, status=job.status).model_dump(by_alias=True),
        )

    try:
        job, summary = await run_generation(
            db,
            request.material_id,
            topic_ids=request.topic_ids,
            requested_by=request.requested_by,
            config=config,
            llm=llm,
        )
    except SetupError as e:
        log.warning(f"[GENERATE] material={request.material_id} setup failed: {e}")
        raise _setup_error(e)

    return GenerateQuestionsResponse(
        success=True,
        job_id=job.id,
        questions_generated=summary.questions_generated,
        topics_matched=summary.topics_matched,
        topics_total=summary.topics_total,
    )


# ─── Jobs ─────────────────────────────────────────────────────────────────────

@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
def get_job_status(job_id: int, db: Session = Depends(get_db)):
    """Progress record for one generation job (safe to poll)."""
    job = crud.get_job(db, job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return job


@router.get("/materials/{material_id}/jobs", response_model=List[JobStatusResponse])
def list_material_jobs(material_id: int, limit: int = 20, db: Session = Depends(get_db)):
    """Most recent generation jobs for a material, newest first."""
    if crud.get_material(db, material_id) is None:
        raise HTTPException(status_code=404, detail=f"Material {material_id} not found")
    return crud.get_material_jobs(db, material_id, limit=limit)


@router.post("/jobs/{job_id}/cancel", response_model=JobStatusResponse)
def cancel_job(job_id: int, db: Session = Depends(get_db)):
    """Ask a running job to stop after the current claim. Already-stored questions stay."""
    try:
        job = request_cancel(db, job_id)
    except JobStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    log.info(f"[JOB] {job_id} cancellation requested")
    return job
