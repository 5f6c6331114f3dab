"""
Chunk Selector

Resolves the source text a matched topic is grounded in.

Resolution order:
  (a) raw chunks listed in the topic's supporting_chunks
  (b) no supporting chunk resolved → first few raw chunks (generic fallback)
  (c) no raw chunk store at all   → pseudo-chunks built from chunk summaries + key terms

An empty result means the topic is skipped by the pipeline.
"""

import logging
from typing import List

from generation.config import PipelineConfig
from generation.schemas import AnalysisDocument, AnalysisTopic, ChunkSummary, SelectedChunk

log = logging.getLogger(__name__)


def page_label(index: int, chunk_type: str = "page") -> str:
    """Human-readable 1-based position label, e.g. 'Slide 4'."""
    kind = "Slide" if (chunk_type or "").lower() == "slide" else "Page"
    return f"{kind} {index + 1}"


def _pseudo_chunk(summary: ChunkSummary) -> str:
    parts = []
    if summary.summary:
        parts.append(summary.summary)
    if summary.key_terms:
        parts.append("Key terms: " + ", ".join(summary.key_terms))
    return "\n".join(parts)


def _topic_notes(topic: AnalysisTopic) -> str:
    """Topic-level enrichment appended to synthesized pseudo-chunks."""
    lines = [f"- {kt.term}: {kt.definition}" if kt.definition else f"- {kt.term}" for kt in topic.key_terms]
    lines += [
        f"- {f.name}: {f.expression}" + (f" ({f.context})" if f.context else "")
        for f in topic.formulas
    ]
    return ("Topic notes:\n" + "\n".join(lines)) if lines else ""


def select_chunks(
    topic: AnalysisTopic,
    analysis: AnalysisDocument,
    config: PipelineConfig,
) -> List[SelectedChunk]:
    """Return the ordered, bounded chunk list for a matched analysis topic."""
    limit = config.max_chunks_per_topic

    if analysis.chunks:
        by_index = {c.index: c for c in analysis.chunks}
        selected: List[SelectedChunk] = []
        seen = set()
        for idx in topic.supporting_chunks:
            chunk = by_index.get(idx)
            if chunk is None or idx in seen:
                continue
            seen.add(idx)
            selected.append(SelectedChunk(index=idx, text=chunk.text, page_label=page_label(idx, chunk.chunk_type)))
            if len(selected) >= limit:
                break
        if selected:
            return selected

        log.info(f"[CHUNKS] '{topic.title}': no supporting chunk resolved, using first {config.fallback_chunk_count}")
        fallback = analysis.chunks[: min(config.fallback_chunk_count, limit)]
        return [
            SelectedChunk(index=c.index, text=c.text, page_label=page_label(c.index, c.chunk_type))
            for c in fallback
        ]

    if not analysis.chunk_summaries:
        return []

    supporting = set(topic.supporting_chunks)
    summaries = [s for s in analysis.chunk_summaries if s.chunk_index in supporting]
    if not summaries:
        summaries = analysis.chunk_summaries[: config.fallback_chunk_count]

    notes = _topic_notes(topic)
    selected = []
    for summary in summaries[:limit]:
        text = _pseudo_chunk(summary)
        if notes:
            text = f"{text}\n{notes}" if text else notes
        if text.strip():
            selected.append(SelectedChunk(
                index=summary.chunk_index,
                text=text,
                page_label=page_label(summary.chunk_index, summary.chunk_type),
            ))
    log.info(f"[CHUNKS] '{topic.title}': no raw chunk store, synthesized {len(selected)} pseudo-chunk(s)")
    return selected
