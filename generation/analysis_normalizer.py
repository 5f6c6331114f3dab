"""
Analysis normalization

The material analysis format has grown across four schema versions:
  v1  topics only (title, code, description, objectives, supporting_chunks)
  v2  + topic enrichment (key_terms, formulas, misconceptions, difficulty signals)
      + chunk_summaries
  v3  same shape as v2
  v4  question_ready_chunks (per-chunk facts + evidence spans) instead of chunk_summaries

Everything downstream works on one canonical AnalysisDocument; fields a
version does not have are present but empty.
"""

import logging
from typing import Any, Dict, List, Optional

from generation.schemas import (
    AnalysisDocument, AnalysisTopic, Chunk, ChunkSummary, Formula, KeyTerm, Misconception,
)

log = logging.getLogger(__name__)


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _as_str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


# ─── Topics ────────────────────────────────────────────────────────────────────

def _key_terms(raw: Any) -> List[KeyTerm]:
    terms = []
    for item in _as_list(raw):
        if isinstance(item, str) and item.strip():
            terms.append(KeyTerm(term=item.strip()))
        elif isinstance(item, dict) and _as_str(item.get("term")):
            terms.append(KeyTerm(
                term=_as_str(item.get("term")),
                definition=_as_str(item.get("definition")),
                page_ref=_as_int(item.get("page_ref")),
            ))
    return terms


def _formulas(raw: Any) -> List[Formula]:
    return [
        Formula(
            name=_as_str(f.get("name")),
            expression=_as_str(f.get("expression")),
            context=_as_str(f.get("context")),
        )
        for f in _as_list(raw)
        if isinstance(f, dict) and _as_str(f.get("expression"))
    ]


def _misconceptions(raw: Any) -> List[Misconception]:
    return [
        Misconception(
            description=_as_str(m.get("description")),
            correct_concept=_as_str(m.get("correct_concept")),
        )
        for m in _as_list(raw)
        if isinstance(m, dict) and _as_str(m.get("description"))
    ]


def _topic(raw: Any, enriched: bool) -> Optional[AnalysisTopic]:
    if not isinstance(raw, dict):
        return None
    title = _as_str(raw.get("title"))
    if not title:
        return None

    supporting = [i for i in (_as_int(c) for c in _as_list(raw.get("supporting_chunks"))) if i is not None]
    code = _as_str(raw.get("topic_code")) or None

    topic = {
        "title": title,
        "topic_code": code,
        "description": _as_str(raw.get("description")),
        "objectives": [o.strip() for o in _as_list(raw.get("objectives")) if isinstance(o, str) and o.strip()],
        "recommended_question_types": [
            t for t in _as_list(raw.get("recommended_question_types")) if isinstance(t, str)
        ],
        "supporting_chunks": supporting,
    }
    if enriched:
        topic.update(
            key_terms=_key_terms(raw.get("key_terms")),
            formulas=_formulas(raw.get("formulas")),
            common_misconceptions=_misconceptions(raw.get("common_misconceptions")),
            difficulty_signals=[s for s in _as_list(raw.get("difficulty_signals")) if isinstance(s, str)],
        )
    return AnalysisTopic(**topic)


# ─── Chunks ────────────────────────────────────────────────────────────────────

def _chunk_summaries(raw: Any) -> List[ChunkSummary]:
    summaries = []
    for item in _as_list(raw):
        if not isinstance(item, dict):
            continue
        index = _as_int(item.get("chunk_index"))
        if index is None:
            continue
        summaries.append(ChunkSummary(
            chunk_index=index,
            chunk_type=_as_str(item.get("chunk_type")) or "page",
            summary=_as_str(item.get("summary")),
            key_terms=[t for t in _as_list(item.get("key_terms")) if isinstance(t, str)],
        ))
    return summaries


def _raw_chunks(raw: Any) -> List[Chunk]:
    chunks = []
    for item in _as_list(raw):
        if not isinstance(item, dict):
            continue
        index = _as_int(item.get("chunk_index", item.get("index")))
        text = _as_str(item.get("text"))
        if index is None or not text:
            continue
        chunks.append(Chunk(
            index=index,
            chunk_type=_as_str(item.get("chunk_type", item.get("type"))) or "page",
            text=text,
        ))
    return chunks


def _v4_chunk_text(qrc: Dict[str, Any]) -> str:
    """Rebuild chunk text from a v4 question-ready chunk: evidence spans are verbatim excerpts."""
    lines = [_as_str(s.get("text")) for s in _as_list(qrc.get("evidence_spans")) if isinstance(s, dict)]
    lines += [_as_str(f.get("statement")) for f in _as_list(qrc.get("atomic_facts")) if isinstance(f, dict)]
    lines += [
        f"{_as_str(d.get('term'))}: {_as_str(d.get('definition'))}"
        for d in _as_list(qrc.get("definitions"))
        if isinstance(d, dict) and _as_str(d.get("term"))
    ]
    return "\n".join(line for line in lines if line)


# ─── Main entry ────────────────────────────────────────────────────────────────

def normalize_analysis(raw: Optional[Dict[str, Any]]) -> AnalysisDocument:
    """
    Normalize any analysis_json version into an AnalysisDocument.

    Unknown or missing schema_version is treated as v1.
    """
    if not isinstance(raw, dict):
        return AnalysisDocument()

    version = _as_int(raw.get("schema_version")) or 1
    enriched = version >= 2
    topics = [t for t in (_topic(r, enriched) for r in _as_list(raw.get("topics"))) if t is not None]
    chunks = _raw_chunks(raw.get("chunks"))

    if version >= 4:
        qrcs = [q for q in _as_list(raw.get("question_ready_chunks")) if isinstance(q, dict)]
        summaries = _chunk_summaries(qrcs)
        if not chunks:
            for qrc in qrcs:
                index = _as_int(qrc.get("chunk_index"))
                text = _v4_chunk_text(qrc)
                if index is not None and text:
                    chunks.append(Chunk(index=index, chunk_type=_as_str(qrc.get("chunk_type")) or "page", text=text))
    elif enriched:
        summaries = _chunk_summaries(raw.get("chunk_summaries"))
    else:
        summaries = []

    log.info(
        f"[ANALYSIS] schema v{version}: {len(topics)} topics, "
        f"{len(summaries)} chunk summaries, {len(chunks)} raw chunks"
    )
    return AnalysisDocument(
        schema_version=version,
        topics=topics,
        chunk_summaries=summaries,
        chunks=chunks,
    )
