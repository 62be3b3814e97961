"""Drafting steps: outline -> sources -> section drafts -> combined draft.

Each step is a plain function over typed models. Whether a step waits for a
human is decided by the pipeline that wraps it (see ``pipelines.py``).
"""

from __future__ import annotations

import logging

from pydantic import Field, field_validator

from draft_orchestrator.search.client import SourceRecord

from . import prompts
from .parsing import citation_indices, parse_model, parse_string_list
from .steps import StepContext, StepDefinition, StepModel, dump

logger = logging.getLogger(__name__)

MAX_QUERIES_PER_SECTION = 3
MAX_RESULTS_PER_QUERY = 5
SECTION_DELIMITER = "\n\n---\n\n"

GENERATE_OUTLINE = "generate-outline"
FIND_SOURCES = "find-sources"
WRITE_SECTIONS = "write-sections"
COMBINE_DRAFT = "combine-draft"


class OutlineSection(StepModel):
    title: str = Field(min_length=1)
    subsections: list[str] = Field(default_factory=list)


class Outline(StepModel):
    sections: list[OutlineSection] = Field(min_length=1)

    @field_validator("sections")
    @classmethod
    def _unique_titles(cls, sections: list[OutlineSection]) -> list[OutlineSection]:
        # Sources and drafts are keyed by section title.
        seen: set[str] = set()
        for section in sections:
            key = section.title.strip().casefold()
            if key in seen:
                raise ValueError(f"Duplicate section title: {section.title!r}")
            seen.add(key)
        return sections


class TopicInput(StepModel):
    topic: str = Field(min_length=1, max_length=500)


class OutlineResult(StepModel):
    topic: str
    outline: Outline


class OutlineResume(StepModel):
    approved: bool
    edited_outline: Outline | None = None


class SourcesResult(StepModel):
    topic: str
    outline: Outline
    sources_by_section: dict[str, list[SourceRecord]] = Field(default_factory=dict)


class SourcesResume(StepModel):
    approved: bool
    approved_sources: dict[str, list[SourceRecord]] | None = None


class SectionDraft(StepModel):
    section_title: str
    content: str
    citations: list[int] = Field(default_factory=list)


class DraftsResult(StepModel):
    section_drafts: list[SectionDraft]


class DraftsResume(StepModel):
    approved: bool
    edited_drafts: list[SectionDraft] | None = None


class CompleteDraft(StepModel):
    complete_draft: str


def default_outline() -> Outline:
    """Five-section IMRAD outline used when the generated outline is unusable."""

    return Outline(
        sections=[
            OutlineSection(
                title="Introduction", subsections=["Background", "Research gap", "Objective"]
            ),
            OutlineSection(
                title="Methods", subsections=["Study design", "Data collection", "Analysis"]
            ),
            OutlineSection(title="Results", subsections=["Primary findings", "Secondary findings"]),
            OutlineSection(
                title="Discussion",
                subsections=["Interpretation", "Limitations", "Future directions"],
            ),
            OutlineSection(title="Conclusion", subsections=["Summary of findings"]),
        ]
    )


def generate_outline(inputs: TopicInput, ctx: StepContext) -> OutlineResult:
    text = ctx.generate(prompts.outline_prompt(inputs.topic), system=prompts.OUTLINE_SYSTEM)
    outline = parse_model(text, Outline, fallback=default_outline())
    return OutlineResult(topic=inputs.topic, outline=outline)


def _search_section(ctx: StepContext, section: OutlineSection) -> list[SourceRecord]:
    text = ctx.generate(
        prompts.search_queries_prompt(section.title, section.subsections),
        system=prompts.SOURCE_FINDER_SYSTEM,
    )
    queries = parse_string_list(text, fallback=[section.title])[:MAX_QUERIES_PER_SECTION]

    found: list[SourceRecord] = []
    seen: set[str] = set()
    for query in queries:
        try:
            results = ctx.search(query)
        except Exception:
            # Partial results are fine; one failing query must not sink the section.
            logger.warning(
                "Source search failed; continuing with remaining queries",
                extra={"run_id": ctx.run_id, "section": section.title, "query": query},
                exc_info=True,
            )
            continue
        for record in results[:MAX_RESULTS_PER_QUERY]:
            key = record.dedupe_key()
            if key in seen:
                continue
            seen.add(key)
            found.append(record)
    return found


def find_sources(inputs: OutlineResult, ctx: StepContext) -> SourcesResult:
    by_section: dict[str, list[SourceRecord]] = {}
    for section in inputs.outline.sections:
        by_section[section.title] = _search_section(ctx, section)
    logger.info(
        "Sources collected",
        extra={
            "run_id": ctx.run_id,
            "sections": len(by_section),
            "sources": sum(len(v) for v in by_section.values()),
        },
    )
    return SourcesResult(topic=inputs.topic, outline=inputs.outline, sources_by_section=by_section)


def write_sections(inputs: SourcesResult, ctx: StepContext) -> DraftsResult:
    drafts: list[SectionDraft] = []
    for section in inputs.outline.sections:
        sources = inputs.sources_by_section.get(section.title, [])
        text = ctx.generate(
            prompts.section_prompt(section.title, section.subsections, sources),
            system=prompts.WRITER_SYSTEM,
        )
        content = text.strip()
        drafts.append(
            SectionDraft(
                section_title=section.title,
                content=content,
                citations=citation_indices(content),
            )
        )
    return DraftsResult(section_drafts=drafts)


def combine_draft(inputs: DraftsResult, _ctx: StepContext) -> CompleteDraft:
    parts = [f"## {d.section_title}\n\n{d.content}" for d in inputs.section_drafts]
    return CompleteDraft(complete_draft=SECTION_DELIMITER.join(parts))


def _approve_outline(
    inputs: TopicInput, pending: OutlineResult | None, resume: OutlineResume
) -> OutlineResult | None:
    if resume.edited_outline is not None:
        return OutlineResult(topic=inputs.topic, outline=resume.edited_outline)
    return pending


def _approve_sources(
    inputs: OutlineResult, pending: SourcesResult | None, resume: SourcesResume
) -> SourcesResult | None:
    if resume.approved_sources is not None:
        return SourcesResult(
            topic=inputs.topic,
            outline=inputs.outline,
            sources_by_section=resume.approved_sources,
        )
    return pending


def _approve_drafts(
    _inputs: SourcesResult, pending: DraftsResult | None, resume: DraftsResume
) -> DraftsResult | None:
    if resume.edited_drafts is not None:
        # Edited text may add or drop citation markers.
        return DraftsResult(
            section_drafts=[
                d.model_copy(update={"citations": citation_indices(d.content)})
                for d in resume.edited_drafts
            ]
        )
    return pending


OUTLINE_STEP = StepDefinition(
    id=GENERATE_OUTLINE,
    input_model=TopicInput,
    output_model=OutlineResult,
    run=generate_outline,
    resume_model=OutlineResume,
    suspend_payload=lambda out: {"outline": dump(out.outline)},
    approve=_approve_outline,
)

SOURCES_STEP = StepDefinition(
    id=FIND_SOURCES,
    input_model=OutlineResult,
    output_model=SourcesResult,
    run=find_sources,
    resume_model=SourcesResume,
    suspend_payload=lambda out: {"sourcesBySection": dump(out)["sourcesBySection"]},
    approve=_approve_sources,
)

SECTIONS_STEP = StepDefinition(
    id=WRITE_SECTIONS,
    input_model=SourcesResult,
    output_model=DraftsResult,
    run=write_sections,
    resume_model=DraftsResume,
    suspend_payload=lambda out: {"sectionDrafts": dump(out)["sectionDrafts"]},
    approve=_approve_drafts,
)

COMBINE_STEP = StepDefinition(
    id=COMBINE_DRAFT,
    input_model=DraftsResult,
    output_model=CompleteDraft,
    run=combine_draft,
)
