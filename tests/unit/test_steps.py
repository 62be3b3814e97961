"""Unit tests for step logic and the gate/passthrough wrappers."""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from draft_orchestrator.llm.provider import LLMProvider
from draft_orchestrator.orchestrator.workflow import drafting
from draft_orchestrator.orchestrator.workflow.coaching import coaching_stage
from draft_orchestrator.orchestrator.workflow.errors import WorkflowValidationError
from draft_orchestrator.orchestrator.workflow.steps import (
    StepContext,
    StepOutput,
    StepSuspension,
    dump,
    gate,
    passthrough,
)
from draft_orchestrator.search.client import SourceRecord


def _ctx(llm: object | None = None, search: object | None = None) -> StepContext:
    return StepContext(
        llm=llm or Mock(spec=LLMProvider),
        search=search or Mock(),
        run_id="run-1",
        document_id="doc-1",
    )


def _outline_result() -> drafting.OutlineResult:
    return drafting.OutlineResult(
        topic="Sleep",
        outline=drafting.Outline(
            sections=[drafting.OutlineSection(title="Introduction", subsections=["Background"])]
        ),
    )


def test_gate_approval_promotes_pending_output_without_collaborators() -> None:
    llm = Mock(spec=LLMProvider)
    search = Mock()
    ctx = _ctx(llm, search)
    step = gate(drafting.OUTLINE_STEP)
    pending = dump(_outline_result())

    outcome = step.execute(
        {"topic": "Sleep"},
        ctx,
        resume=step.parse_resume({"approved": True}),
        pending=pending,
    )

    assert outcome == StepOutput(output=pending)
    llm.generate.assert_not_called()
    search.search.assert_not_called()
    assert ctx.generation_calls == 0


def test_gate_approval_prefers_the_supplied_override() -> None:
    llm = Mock(spec=LLMProvider)
    step = gate(drafting.OUTLINE_STEP)
    edited = {"sections": [{"title": "Edited", "subsections": []}]}

    outcome = step.execute(
        {"topic": "Sleep"},
        _ctx(llm),
        resume=step.parse_resume({"approved": True, "editedOutline": edited}),
        pending=dump(_outline_result()),
    )

    assert isinstance(outcome, StepOutput)
    assert outcome.output["outline"] == edited
    llm.generate.assert_not_called()


def test_gate_approval_without_anything_to_promote_regenerates() -> None:
    llm = Mock(spec=LLMProvider)
    llm.generate.return_value = '{"sections": [{"title": "Fresh", "subsections": []}]}'
    step = gate(drafting.OUTLINE_STEP)

    outcome = step.execute(
        {"topic": "Sleep"}, _ctx(llm), resume=step.parse_resume({"approved": True})
    )

    assert isinstance(outcome, StepSuspension)
    assert outcome.payload["outline"]["sections"][0]["title"] == "Fresh"


def test_gate_without_resume_runs_and_suspends() -> None:
    llm = Mock(spec=LLMProvider)
    llm.generate.return_value = '{"sections": [{"title": "A", "subsections": ["x"]}]}'
    step = gate(drafting.OUTLINE_STEP)

    outcome = step.execute({"topic": "Sleep"}, _ctx(llm))

    assert isinstance(outcome, StepSuspension)
    assert outcome.payload == {"outline": {"sections": [{"title": "A", "subsections": ["x"]}]}}
    assert outcome.pending["topic"] == "Sleep"
    assert llm.generate.call_count == 1


def test_passthrough_returns_output_directly() -> None:
    llm = Mock(spec=LLMProvider)
    llm.generate.return_value = '{"sections": [{"title": "A", "subsections": []}]}'

    outcome = passthrough(drafting.OUTLINE_STEP).execute({"topic": "Sleep"}, _ctx(llm))

    assert isinstance(outcome, StepOutput)
    assert outcome.output["outline"]["sections"][0]["title"] == "A"


def test_gate_requires_a_resume_contract() -> None:
    with pytest.raises(ValueError):
        gate(drafting.COMBINE_STEP)


def test_parse_resume_reports_the_first_error() -> None:
    step = gate(drafting.SOURCES_STEP)
    with pytest.raises(WorkflowValidationError, match="approved"):
        step.parse_resume({"approvedSources": {}})
    with pytest.raises(WorkflowValidationError, match="does not accept"):
        passthrough(drafting.COMBINE_STEP).parse_resume({})


def test_outline_falls_back_to_imrad_on_garbage() -> None:
    llm = Mock(spec=LLMProvider)
    llm.generate.return_value = "Sure! Here is an outline: Introduction, then Methods."

    result = drafting.generate_outline(drafting.TopicInput(topic="Sleep"), _ctx(llm))

    assert [s.title for s in result.outline.sections] == [
        "Introduction",
        "Methods",
        "Results",
        "Discussion",
        "Conclusion",
    ]


def test_outline_accepts_fenced_json() -> None:
    llm = Mock(spec=LLMProvider)
    llm.generate.return_value = (
        'Here you go:\n```json\n{"sections": [{"title": "Only", "subsections": []}]}\n```'
    )
    result = drafting.generate_outline(drafting.TopicInput(topic="Sleep"), _ctx(llm))
    assert [s.title for s in result.outline.sections] == ["Only"]


def _records(query: str, count: int) -> list[SourceRecord]:
    return [SourceRecord(external_id=f"{query}-{i}", title=f"{query} {i}") for i in range(count)]


def test_find_sources_limits_queries_and_results() -> None:
    llm = Mock(spec=LLMProvider)
    llm.generate.return_value = '["q1", "q2", "q3", "q4", "q5"]'
    search = Mock()
    search.search.side_effect = lambda q: _records(q, 8)

    result = drafting.find_sources(_outline_result(), _ctx(llm, search))

    assert [c.args[0] for c in search.search.call_args_list] == ["q1", "q2", "q3"]
    assert len(result.sources_by_section["Introduction"]) == 15


def test_find_sources_falls_back_to_section_title_query() -> None:
    llm = Mock(spec=LLMProvider)
    llm.generate.return_value = "not json"
    search = Mock()
    search.search.return_value = []

    drafting.find_sources(_outline_result(), _ctx(llm, search))

    search.search.assert_called_once_with("Introduction")


def test_find_sources_dedupes_by_doi_and_skips_failed_queries() -> None:
    llm = Mock(spec=LLMProvider)
    llm.generate.return_value = '["q1", "q2", "q3"]'
    same_doi = [
        SourceRecord(external_id="a", title="A", doi="10.1/X"),
        SourceRecord(external_id="b", title="B", doi="10.1/x"),
    ]
    search = Mock()
    search.search.side_effect = [same_doi, ConnectionError("down"), _records("q3", 1)]

    result = drafting.find_sources(_outline_result(), _ctx(llm, search))

    ids = [s.external_id for s in result.sources_by_section["Introduction"]]
    assert ids == ["a", "q3-0"]


def test_write_sections_records_citations() -> None:
    llm = Mock(spec=LLMProvider)
    llm.generate.return_value = "Claim [2]. Another [1], again [2] and none [0].\n"
    sources = drafting.SourcesResult(
        topic="Sleep", outline=_outline_result().outline, sources_by_section={}
    )

    result = drafting.write_sections(sources, _ctx(llm))

    draft = result.section_drafts[0]
    assert draft.content == "Claim [2]. Another [1], again [2] and none [0]."
    assert draft.citations == [2, 1]
    assert "No sources available" in llm.generate.call_args.args[0]


def test_combine_draft_is_pure() -> None:
    llm = Mock(spec=LLMProvider)
    search = Mock()
    drafts = drafting.DraftsResult(
        section_drafts=[
            drafting.SectionDraft(section_title="One", content="First."),
            drafting.SectionDraft(section_title="Two", content="Second."),
        ]
    )

    first = drafting.combine_draft(drafts, _ctx(llm, search))
    second = drafting.combine_draft(drafts, _ctx(llm, search))

    assert first == second
    assert first.complete_draft == "## One\n\nFirst.\n\n---\n\n## Two\n\nSecond."
    llm.generate.assert_not_called()
    search.search.assert_not_called()


def test_feedback_stage_does_not_generate() -> None:
    llm = Mock(spec=LLMProvider)
    step = gate(coaching_stage("feedback", final=True))

    outcome = step.execute({"topic": "Sleep"}, _ctx(llm))

    assert isinstance(outcome, StepSuspension)
    assert outcome.payload["stage"] == "feedback"
    assert outcome.pending["complete"] is True
    llm.generate.assert_not_called()


def test_unknown_coaching_stage_is_rejected() -> None:
    with pytest.raises(ValueError):
        coaching_stage("publishing")
