"""
Background tasks.

Start a worker with:  huey_consumer generation.tasks.huey_queue
"""

import asyncio
import logging
from typing import List, Optional

from database.database import SessionLocal
from database import crud
from generation.config import PipelineConfig
from generation.errors import SetupError
from generation.pipeline import GenerationPipeline
from generation.queue import huey_queue

log = logging.getLogger("generation.pipeline")


@huey_queue.task()
def run_generation_job(job_id: int, material_id: int, topic_ids: Optional[List[int]] = None):
    """Executed by the Huey worker, NOT FastAPI. The job row already exists (pending)."""
    db = SessionLocal()
    try:
        job = crud.get_job(db, job_id)
        if job is None:
            log.error(f"[JOB] {job_id} not found, nothing to run")
            return None
        summary = asyncio.run(
            GenerationPipeline(db, PipelineConfig.from_env()).run(material_id, topic_ids, job)
        )
        return summary.model_dump()
    except SetupError as e:
        # job already marked failed by the pipeline
        log.warning(f"[JOB] {job_id} setup failed: {e}")
        return None
    finally:
        db.close()
