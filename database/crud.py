"""
Read helpers for the records the generation pipeline touches
Material and topic rows are read-only here; jobs and questions are written
through generation.job_tracker and generation.persister.
"""

from sqlalchemy.orm import Session
from typing import List, Optional, Sequence
from database import models


# ==========================================
# MATERIALS
# ==========================================

def get_material(db: Session, material_id: int) -> Optional[models.CourseMaterial]:
    """Get material by ID"""
    return db.query(models.CourseMaterial).filter(models.CourseMaterial.id == material_id).first()


def set_material_status(
    db: Session,
    material: models.CourseMaterial,
    status: str,
    error_message: Optional[str] = None,
    questions_generated_count: Optional[int] = None,
) -> models.CourseMaterial:
    """Update the material's pipeline status (and optionally its generated-question count)"""
    material.status = status
    material.error_message = error_message
    if questions_generated_count is not None:
        material.questions_generated_count = questions_generated_count
    db.commit()
    db.refresh(material)
    return material


# ==========================================
# TOPICS
# ==========================================

def get_course_topics(
    db: Session,
    course_id: int,
    topic_ids: Optional[Sequence[int]] = None,
) -> List[models.Topic]:
    """Get a course's topics in id order, optionally restricted to a subset of ids"""
    query = db.query(models.Topic).filter(models.Topic.course_id == course_id)
    if topic_ids:
        query = query.filter(models.Topic.id.in_(list(topic_ids)))
    return query.order_by(models.Topic.id).all()


# ==========================================
# JOBS
# ==========================================

def get_job(db: Session, job_id: int) -> Optional[models.GenerationJob]:
    """Get generation job by ID"""
    return db.query(models.GenerationJob).filter(models.GenerationJob.id == job_id).first()


def get_material_jobs(db: Session, material_id: int, limit: int = 20) -> List[models.GenerationJob]:
    """Most recent jobs for a material, newest first"""
    return (
        db.query(models.GenerationJob)
        .filter(models.GenerationJob.material_id == material_id)
        .order_by(models.GenerationJob.id.desc())
        .limit(limit)
        .all()
    )


# ==========================================
# QUESTIONS
# ==========================================

def get_material_questions(db: Session, material_id: int) -> List[models.Question]:
    """Questions generated from a material, in insertion order"""
    return (
        db.query(models.Question)
        .filter(models.Question.source_material_id == material_id)
        .order_by(models.Question.id)
        .all()
    )
