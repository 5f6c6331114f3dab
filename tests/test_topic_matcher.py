"""Tests for generation.topic_matcher."""
import pytest

from database.models import Topic
from generation.schemas import AnalysisTopic
from generation.topic_matcher import keyword_overlap, match_topic, match_topics, tokenize


def _topic(title, code=None, description=None):
    return Topic(title=title, topic_code=code, description=description)


def test_tokenize_drops_short_tokens_and_punctuation():
    assert tokenize("Newton's 2nd Law of Motion") == {"newton", "2nd", "law", "motion"}


def test_exact_title_wins_over_earlier_substring_candidate():
    candidates = [AnalysisTopic(title="Limits and Continuity"), AnalysisTopic(title="LIMITS")]
    assert match_topic(_topic("limits"), candidates).title == "LIMITS"


def test_topic_code_match():
    candidates = [AnalysisTopic(title="Something else entirely", topic_code="L1")]
    assert match_topic(_topic("Intro", code=" l1 "), candidates) is candidates[0]


def test_substring_match_either_direction():
    candidates = [AnalysisTopic(title="Newton's Laws of Motion")]
    assert match_topic(_topic("Newton's Laws"), candidates) is candidates[0]
    assert match_topic(_topic("Newton's Laws of Motion in 3D"), candidates) is candidates[0]


def test_rigid_body_keyword_overlap_matches():
    assert keyword_overlap("Rigid Body Dynamics", "Dynamics of Rigid Bodies") == pytest.approx(2 / 3)
    candidates = [AnalysisTopic(title="Integration"), AnalysisTopic(title="Dynamics of Rigid Bodies")]
    assert match_topic(_topic("Rigid Body Dynamics"), candidates).title == "Dynamics of Rigid Bodies"


def test_overlap_is_symmetric():
    a, b = "Rigid Body Dynamics", "Dynamics of Rigid Bodies"
    assert keyword_overlap(a, b) == keyword_overlap(b, a)


def test_score_at_floor_is_not_a_match():
    long_title = "alpha beta gamma delta epsilon zeta theta iota kappa lambda"
    assert keyword_overlap("gamma beta alpha", long_title) == pytest.approx(0.3)
    assert match_topic(_topic("gamma beta alpha"), [AnalysisTopic(title=long_title)]) is None


def test_description_overlap_adds_half_weight():
    candidate = AnalysisTopic(title="Thermal energy flow rates", description="conduction convection radiation")
    # title overlap alone is 1/4
    assert match_topic(_topic("Heat flow in solids"), [candidate]) is None
    topic = _topic("Heat flow in solids", description="conduction convection radiation")
    assert match_topic(topic, [candidate]) is candidate


def test_no_match_returns_none():
    assert match_topic(_topic("Organic Chemistry"), [AnalysisTopic(title="Limits")]) is None


def test_match_topics_is_deterministic_and_ordered():
    topics = [_topic("Limits"), _topic("Quantum Field Theory"), _topic("Rigid Body Dynamics")]
    candidates = [AnalysisTopic(title="Limits"), AnalysisTopic(title="Dynamics of Rigid Bodies")]
    first = match_topics(topics, candidates)
    second = match_topics(topics, candidates)
    assert [(t.title, a.title if a else None) for t, a in first] == [
        ("Limits", "Limits"),
        ("Quantum Field Theory", None),
        ("Rigid Body Dynamics", "Dynamics of Rigid Bodies"),
    ]
    assert [a for _, a in first] == [a for _, a in second]
