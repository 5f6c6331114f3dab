"""
SQLAlchemy models for the question generation pipeline
Course → Topic, Course → CourseMaterial → GenerationJob → Question

Courses, topics and materials are owned by the CRUD layers of the platform;
the generation pipeline only reads them. Questions are insert-only from the
pipeline's point of view and jobs are insert-then-update.
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, DateTime, Text, Float, JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database.database import Base


# ==========================================
# STRUCTURE: COURSE → TOPIC
# ==========================================

class Course(Base):
    """A course pack. Topics, materials and questions all hang off a course."""
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    topics = relationship("Topic", back_populates="course", cascade="all, delete-orphan")
    materials = relationship("CourseMaterial", back_populates="course", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Course(id={self.id}, title='{self.title}')>"


class Topic(Base):
    """
    Platform topic owned by a course.
    topic_code is an optional stable code (e.g. "L1") used for matching against
    topics named in a material analysis.
    """
    __tablename__ = "topics"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    topic_code = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    course = relationship("Course", back_populates="topics")

    def __repr__(self):
        return f"<Topic(id={self.id}, title='{self.title}', code={self.topic_code})>"


# ==========================================
# SOURCE MATERIAL
# ==========================================

class CourseMaterial(Base):
    """
    Uploaded lecture material plus the analysis produced by the analysis step.
    analysis_json: versioned analysis document (schema_version 1..4), null until analyzed.
    status: uploaded | analyzing | analyzed | generating_questions | ready | published | failed
    """
    __tablename__ = "course_materials"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    status = Column(String(30), default="uploaded", nullable=False, index=True)
    analysis_json = Column(JSON, nullable=True)
    questions_generated_count = Column(Integer, default=0, nullable=False, server_default="0")
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    course = relationship("Course", back_populates="materials")
    jobs = relationship("GenerationJob", back_populates="material", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<CourseMaterial(id={self.id}, title='{self.title}', status='{self.status}')>"


# ==========================================
# GENERATION JOBS
# ==========================================

class GenerationJob(Base):
    """
    One question generation run over a material.
    status: pending | running | completed | failed | cancelled (last three are terminal)
    Progress columns are committed after every topic so pollers see mid-job state.
    """
    __tablename__ = "generation_jobs"

    id = Column(Integer, primary_key=True, index=True)
    material_id = Column(Integer, ForeignKey("course_materials.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), default="pending", nullable=False, index=True)

    total_topics = Column(Integer, default=0, nullable=False)
    completed_topics = Column(Integer, default=0, nullable=False)
    total_questions = Column(Integer, default=0, nullable=False)  # upper bound: matched topics x per-topic quota
    completed_questions = Column(Integer, default=0, nullable=False)
    failed_questions = Column(Integer, default=0, nullable=False)  # claims that did not yield a stored question

    current_item = Column(String(255), nullable=True)
    progress_message = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)  # setup faults only
    cancel_requested = Column(Boolean, default=False, nullable=False, server_default="false")
    summary = Column(JSON, nullable=True)

    created_by = Column(String(255), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    material = relationship("CourseMaterial", back_populates="jobs")

    def __repr__(self):
        return f"<GenerationJob(id={self.id}, material_id={self.material_id}, status='{self.status}')>"


# ==========================================
# GENERATED QUESTIONS
# ==========================================

class Question(Base):
    """
    Stored question. Generated rows are always draft + needs_review + unpublished;
    publication is a separate action.
    provenance: {claim_id, claim_type, chunk_index, evidence: [{quote, page}]}
    stem_hash: sha256 of the normalized stem; unique per material so re-runs skip duplicates.
    """
    __tablename__ = "questions"
    __table_args__ = (
        UniqueConstraint("source_material_id", "stem_hash", name="uq_questions_material_stem"),
    )

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    topic_ids = Column(JSON, default=list, nullable=False)
    source_material_id = Column(Integer, ForeignKey("course_materials.id", ondelete="SET NULL"), nullable=True, index=True)
    generation_job_id = Column(Integer, ForeignKey("generation_jobs.id", ondelete="SET NULL"), nullable=True, index=True)

    prompt = Column(Text, nullable=False)
    choices = Column(JSON, nullable=True)  # [{"id": "A", "text": "...", "isCorrect": false}, ...]
    correct_answer = Column(String(20), nullable=True)
    full_solution = Column(Text, nullable=True)
    common_mistakes = Column(JSON, default=list, nullable=False)
    tags = Column(JSON, default=list, nullable=False)
    difficulty = Column(Integer, default=3, nullable=False)  # 1..5
    question_format = Column(String(30), default="multiple_choice", nullable=False)

    source = Column(String(20), default="generated", nullable=False)
    status = Column(String(20), default="draft", nullable=False, index=True)
    is_published = Column(Boolean, default=False, nullable=False, server_default="false")
    needs_review = Column(Boolean, default=True, nullable=False, server_default="true")

    quality_score = Column(Float, nullable=True)  # 0..10
    quality_flags = Column(JSON, nullable=True)
    provenance = Column(JSON, nullable=True)
    stem_hash = Column(String(64), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Question(id={self.id}, material_id={self.source_material_id}, status='{self.status}')>"
