"""Tests for ai_debate/output.py."""

from pathlib import Path

from ai_debate.models import AgentStatus, Stage, StageProgress
from ai_debate.output import _slug, format_progress, save_transcript, total_tokens
from ai_debate.summary import DebateSummary
from tests.conftest import AGREE, utter


def test_slug_basic():
    assert _slug("Should we use YAML or JSON?") == "should-we-use-yaml-or-json"


def test_slug_max_len():
    assert len(_slug("a" * 100)) <= 40


def test_slug_special_chars():
    result = _slug("API vs. SDK (2024)")
    assert "." not in result
    assert "(" not in result
    assert ")" not in result


def test_total_tokens(two_agent_session):
    two_agent_session.state_for("a").token_usage = 120
    two_agent_session.state_for("b").token_usage = 30
    assert total_tokens(two_agent_session) == 150


def test_format_progress():
    progress = StageProgress(stage=Stage.CROSS_EXAM, round=2, current=1, total=3, label="Stage 2: Cross-examination")
    assert format_progress(progress) == "Stage 2: Cross-examination | Round 2 - 1/3"


def test_format_progress_done():
    progress = StageProgress(stage=Stage.DONE, round=0, current=0, total=2, label="Debate finished")
    assert format_progress(progress) == "Debate finished"


def test_save_transcript_creates_file(tmp_path: Path, two_agent_session):
    saved = save_transcript(two_agent_session, tmp_path / "nested" / "output")
    assert saved.exists()
    assert saved.suffix == ".md"
    assert saved.name.endswith("should-cities-ban-cars-downtown.md")


def test_save_transcript_content(tmp_path: Path, two_agent_session):
    two_agent_session.utterances += [
        utter("a", "Ban them.", Stage.POSITION, 1),
        utter("b", "Keep them.", Stage.POSITION, 1),
        utter("a", AGREE, Stage.CONSENSUS, 3),
    ]
    two_agent_session.complete = True
    two_agent_session.consensus_reached = True
    summary = DebateSummary(text="### Key points of agreement\n- Fewer cars", summarizer="b")

    content = save_transcript(
        two_agent_session, tmp_path, summary=summary, display_names={"a": "Alpha", "b": "Beta"}
    ).read_text(encoding="utf-8")

    assert "# AI Debate: Should cities ban cars downtown?" in content
    assert "**Panel:** Alpha, Beta" in content
    assert "**Outcome:** consensus reached" in content
    assert "## Stage 1: Positions, round 1" in content
    assert "## Stage 4: Consensus, round 3" in content
    assert "### Alpha\n\nBan them." in content
    assert "## Consensus summary (by Beta)" in content
    assert "- Fewer cars" in content


def test_save_transcript_interrupted_with_abstention(tmp_path: Path, two_agent_session):
    state = two_agent_session.state_for("b")
    state.status = AgentStatus.ABSTAINED
    state.last_error = "[b] Invalid API key"

    content = save_transcript(two_agent_session, tmp_path).read_text(encoding="utf-8")

    assert "**Outcome:** interrupted" in content
    assert "## Abstentions" in content
    assert "- B: [b] Invalid API key" in content
