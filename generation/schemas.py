"""
Pydantic schemas for the question generation pipeline.

Analysis layer:   AnalysisDocument (canonical shape of every analysis schema version)
Claim layer:      TestableClaim + EvidenceQuote
Question layer:   GeneratedQuestion + OptionAudit + DistractorRationale
Outcome layer:    Accepted | Declined | Malformed | Rejected  (one synthesis call)
API layer:        GenerateQuestionsRequest / GenerateQuestionsResponse / JobStatusResponse
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


CHOICE_LABELS = ("A", "B", "C", "D")

ClaimType = Literal["definition", "procedure", "formula", "conceptual", "example", "pitfall"]


# ─── Analysis document (canonical) ────────────────────────────────────────────

class KeyTerm(BaseModel):
    term: str
    definition: str = ""
    page_ref: Optional[int] = None


class Formula(BaseModel):
    name: str = ""
    expression: str
    context: str = ""


class Misconception(BaseModel):
    description: str
    correct_concept: str = ""


class AnalysisTopic(BaseModel):
    """One topic named by the material analysis. Enrichment fields default to empty."""
    model_config = ConfigDict(frozen=True)

    title: str
    topic_code: Optional[str] = None
    description: str = ""
    objectives: List[str] = Field(default_factory=list)
    recommended_question_types: List[str] = Field(default_factory=list)
    supporting_chunks: List[int] = Field(default_factory=list)
    key_terms: List[KeyTerm] = Field(default_factory=list)
    formulas: List[Formula] = Field(default_factory=list)
    common_misconceptions: List[Misconception] = Field(default_factory=list)
    difficulty_signals: List[str] = Field(default_factory=list)


class ChunkSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    chunk_index: int
    chunk_type: str = "page"   # "page" | "slide"
    summary: str = ""
    key_terms: List[str] = Field(default_factory=list)


class Chunk(BaseModel):
    """Full source text of one page/slide."""
    model_config = ConfigDict(frozen=True)

    index: int
    chunk_type: str = "page"
    text: str


class AnalysisDocument(BaseModel):
    model_config = ConfigDict(frozen=True)

    schema_version: int = 1
    topics: List[AnalysisTopic] = Field(default_factory=list)
    chunk_summaries: List[ChunkSummary] = Field(default_factory=list)
    chunks: List[Chunk] = Field(default_factory=list)


class SelectedChunk(BaseModel):
    """Chunk text resolved for one topic, with a human-readable position label."""
    index: int
    text: str
    page_label: str


# ─── Claims ───────────────────────────────────────────────────────────────────

class EvidenceQuote(BaseModel):
    quote: str
    page: Optional[Union[int, str]] = None


class TestableClaim(BaseModel):
    """Atomic, independently verifiable statement extracted from one chunk."""
    __test__ = False  # keep pytest from collecting this as a test class

    claim_id: str
    claim: str
    claim_type: ClaimType
    evidence: List[EvidenceQuote] = Field(default_factory=list)
    common_confusions: List[str] = Field(default_factory=list)
    chunk_index: Optional[int] = None


# ─── Generated question ───────────────────────────────────────────────────────

class OptionAudit(BaseModel):
    verdict: str                 # "correct" | "wrong"
    why: str = ""
    evidence: Any = None         # quote, list of quotes, or explicit absence marker


class DistractorRationale(BaseModel):
    choice_id: str
    rationale_type: str          # misconception | computation_error | partial_understanding
    error_description: str = ""


class GeneratedQuestion(BaseModel):
    """Candidate MCQ returned by one synthesis call (after structural parsing)."""
    stem: str
    choices: Dict[str, str]
    correct: str
    explanation: str = ""
    evidence_spans: List[str] = Field(default_factory=list)
    option_audit: Dict[str, OptionAudit]
    difficulty_1to5: int = 3
    confidence_0to1: float = 0.0
    distractor_rationales: List[DistractorRationale] = Field(default_factory=list)

    def correct_verdicts(self) -> List[str]:
        """Labels whose audit verdict is 'correct'."""
        return [
            label for label, audit in self.option_audit.items()
            if audit.verdict.strip().lower() == "correct"
        ]


# ─── Synthesis outcomes ───────────────────────────────────────────────────────

class Accepted(BaseModel):
    kind: Literal["accepted"] = "accepted"
    question: GeneratedQuestion


class Declined(BaseModel):
    """The service said this claim cannot support a question."""
    kind: Literal["declined"] = "declined"
    reason: str = ""


class Malformed(BaseModel):
    """The call failed or its output could not be parsed into a question."""
    kind: Literal["malformed"] = "malformed"
    reason: str = ""


class Rejected(BaseModel):
    """Well-formed question that failed the audit-consistency or confidence gate."""
    kind: Literal["rejected"] = "rejected"
    reason: str = ""
    question: Optional[GeneratedQuestion] = None


SynthesisResult = Union[Accepted, Declined, Malformed, Rejected]


class QualityAnnotation(BaseModel):
    score: float                 # 0..10
    flags: Dict[str, Any]


# ─── Run summary ──────────────────────────────────────────────────────────────

class GenerationSummary(BaseModel):
    """Accumulated by the topic/claim fold; always reports actual counts."""
    questions_generated: int = 0
    topics_matched: int = 0
    topics_total: int = 0
    topics_skipped: int = 0
    claims_extracted: int = 0
    claims_declined: int = 0
    claims_rejected: int = 0
    claims_malformed: int = 0
    persist_failures: int = 0
    last_error: Optional[str] = None
    cancelled: bool = False

    @property
    def failed_questions(self) -> int:
        return self.claims_declined + self.claims_rejected + self.claims_malformed + self.persist_failures


# ─── API ──────────────────────────────────────────────────────────────────────

class GenerateQuestionsRequest(BaseModel):
    material_id: int = Field(..., description="Material whose analysis drives generation")
    topic_ids: Optional[List[int]] = Field(None, description="Restrict generation to these topics")
    requested_by: Optional[str] = Field(None, description="Owner recorded on the job")
    background: bool = Field(False, description="Queue the run and return the job id immediately")


class GenerateQuestionsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    job_id: int = Field(..., alias="jobId")
    questions_generated: int = Field(..., alias="questionsGenerated")
    topics_matched: int = Field(..., alias="topicsMatched")
    topics_total: int = Field(..., alias="topicsTotal")


class QueuedJobResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: int = Field(..., alias="jobId")
    status: str


class JobStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    material_id: int
    status: str
    total_topics: int
    completed_topics: int
    total_questions: int
    completed_questions: int
    failed_questions: int
    current_item: Optional[str] = None
    progress_message: Optional[str] = None
    error_message: Optional[str] = None
    cancel_requested: bool = False
    summary: Optional[Dict[str, Any]] = None
    created_by: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
