"""
Question Generation Pipeline
generation/

Steps:
1. Analysis Normalizer — any analysis_json schema version → AnalysisDocument
2. Topic Matcher       — platform topics ↔ analysis topics (exact → code → substring → keywords)
3. Chunk Selector      — supporting source chunks per matched topic (with fallbacks)
4. Claim Extractor     — one GPT call per chunk → verbatim-backed testable claims
5. MCQ Synthesizer     — one GPT call per claim → audited MCQ or typed rejection
6. Quality Gate        — score + flags for review triage
7. Persister           — draft / needs_review question rows, duplicate stems skipped
8. Job Tracker         — job lifecycle + progress committed per topic
"""
