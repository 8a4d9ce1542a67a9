"""
Compilation of extracted fragments into a single Markdown document: filtering by
a tag query, removing fragments already covered by a matched section, ordering
by date or by file, and rendering with date headers.
"""

import calendar
from datetime import date, timedelta
from pathlib import Path
from textwrap import dedent
from typing import Dict, Iterable, List, Optional, Tuple

import regex

from mdtags.config.logger import get_logger
from mdtags.model.fragments_model import (
    CompilationFormat,
    DateStyle,
    LiteralPayload,
    PARAGRAPH,
    ParagraphContext,
    SectionContext,
    SourceText,
    SpanPayload,
    TaggedFragment,
)
from mdtags.tags.tag_query import parse_query, TagQuery

log = get_logger(__name__)

NO_MATCHES = "*No matching content found.*"

UNDATED = "Undated"

DATE_FORMAT = "%d-%m-%Y"

MAX_HEADING_LEVEL = 6

_list_item_pattern = regex.compile(r"^\s*(?:[-*+](?:\s|$)|\d+[.)](?:\s|$))")


def is_subsumed(fragment: TaggedFragment, kept: Iterable[TaggedFragment]) -> bool:
    """
    Whether an already kept section body from the same document contains this
    fragment's text. Fragments that merely sit under a heading never subsume.
    """
    text = fragment.plain_text
    if not text:
        return False
    return any(
        other.section_body
        and other.source_path == fragment.source_path
        and text in other.plain_text
        for other in kept
    )


def filter_fragments(fragments: Iterable[TaggedFragment], query: TagQuery) -> List[TaggedFragment]:
    """
    Keep fragments whose tags satisfy the query, in order, dropping any fragment
    whose text is already part of an earlier kept section from the same document.
    """
    kept: List[TaggedFragment] = []
    subsumed = 0
    for fragment in fragments:
        if not query.matches(frozenset(fragment.tags)):
            continue
        if is_subsumed(fragment, kept):
            subsumed += 1
            continue
        kept.append(fragment)
    log.debug("Query %s kept %s fragments (%s subsumed)", query, len(kept), subsumed)
    return kept


def sort_chronological(fragments: Iterable[TaggedFragment]) -> List[TaggedFragment]:
    """Sort by date, then source file. Undated fragments go last."""
    return sorted(
        fragments,
        key=lambda f: (f.date is None, f.date or date.min, str(f.source_path)),
    )


def group_by_file(fragments: Iterable[TaggedFragment]) -> List[Tuple[str, List[TaggedFragment]]]:
    """Group by source file name, sorted by name. Order within a group is kept."""
    groups: Dict[str, List[TaggedFragment]] = {}
    for fragment in fragments:
        groups.setdefault(fragment.source_path.name or "unknown", []).append(fragment)
    return sorted(groups.items(), key=lambda item: item[0])


def end_of_month(day: date) -> date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def format_date_header(day: date, date_style: DateStyle) -> str:
    if date_style == DateStyle.week_range:
        end = day + timedelta(days=6)
    elif date_style == DateStyle.month_range:
        end = end_of_month(day)
    else:
        return day.strftime(DATE_FORMAT)
    return f"{day.strftime(DATE_FORMAT)} to {end.strftime(DATE_FORMAT)}"


def looks_like_list_item(text: str) -> bool:
    return bool(_list_item_pattern.match(text))


def fragment_separator(previous: TaggedFragment, current: TaggedFragment) -> str:
    """
    Text between two fragments rendered one after the other. Spans that were
    separated only by whitespace in the same document keep that whitespace, so a
    tight list stays tight. Otherwise list-like plain paragraphs from the same
    document and date get a single newline and everything else a blank line.
    """
    if isinstance(previous.payload, SpanPayload) and isinstance(current.payload, SpanPayload):
        gap = previous.payload.gap_before(current.payload)
        if gap is not None and "\n" in gap and not gap.strip():
            return gap

    if (
        isinstance(previous.context, ParagraphContext)
        and isinstance(current.context, ParagraphContext)
        and previous.source_path == current.source_path
        and previous.date == current.date
        and looks_like_list_item(previous.text)
        and looks_like_list_item(current.text)
    ):
        return "\n"
    return "\n\n"


class CompilationWriter:
    """
    Accumulates the rendered document. Headers break contiguity between
    fragments; consecutive fragments are joined with `fragment_separator()`.
    """

    def __init__(self, query: TagQuery, include_context: bool):
        self.include_context = include_context
        self.parts: List[str] = [f"# Compilation: {query}\n\n"]
        self.previous: Optional[TaggedFragment] = None

    def _close_fragment(self) -> None:
        if self.previous is not None:
            self.parts.append("\n\n")
            self.previous = None

    def header(self, text: str) -> None:
        self._close_fragment()
        self.parts.append(f"\n## {text}\n\n")

    def fragment(self, fragment: TaggedFragment) -> None:
        context = fragment.context
        if self.include_context and isinstance(context, SectionContext) and context.heading.strip():
            self._close_fragment()
            level = min(context.level + 2, MAX_HEADING_LEVEL)
            self.parts.append(f"{'#' * level} {context.heading}\n\n")

        if self.previous is not None:
            self.parts.append(fragment_separator(self.previous, fragment))
        self.parts.append(fragment.text)
        self.previous = fragment

    def render(self) -> str:
        return "".join(self.parts).rstrip("\n") + "\n"


def render_compilation(
    fragments: List[TaggedFragment],
    query: TagQuery,
    format: CompilationFormat = CompilationFormat.chronological,
    date_style: DateStyle = DateStyle.single_date,
    include_context: bool = False,
) -> str:
    """
    Render already filtered fragments as one Markdown document titled with the query.
    """
    writer = CompilationWriter(query, include_context)
    if not fragments:
        writer.parts.append(NO_MATCHES)
        return writer.render()

    if format == CompilationFormat.grouped:
        for filename, group in group_by_file(fragments):
            first_date = next((f.date for f in group if f.date), None)
            if date_style != DateStyle.single_date and first_date:
                writer.header(f"From: {filename} ({format_date_header(first_date, date_style)})")
            else:
                writer.header(f"From: {filename}")
            for fragment in group:
                writer.fragment(fragment)
    else:
        current_date: Optional[date] = None
        for fragment in sort_chronological(fragments):
            if fragment.date != current_date:
                if fragment.date:
                    writer.header(format_date_header(fragment.date, date_style))
                elif current_date:
                    writer.header(UNDATED)
                current_date = fragment.date
            writer.fragment(fragment)

    return writer.render()


def compile_fragments(
    fragments: Iterable[TaggedFragment],
    query: TagQuery,
    format: CompilationFormat = CompilationFormat.chronological,
    date_style: DateStyle = DateStyle.single_date,
    include_context: bool = False,
) -> str:
    """Filter by the query and render."""
    return render_compilation(
        filter_fragments(fragments, query), query, format, date_style, include_context
    )


## Tests


def _fragment(
    tags: List[str],
    text: str,
    filename: str = "a.md",
    day: Optional[date] = None,
    context=PARAGRAPH,
    section_body: bool = False,
) -> TaggedFragment:
    return TaggedFragment(
        tuple(tags), LiteralPayload(text), Path(filename), day, context, section_body
    )


def test_filter_queries():
    fragments = [
        _fragment(["work", "urgent"], "Urgent work", "a.md"),
        _fragment(["work"], "Regular work", "b.md"),
        _fragment(["urgent"], "Urgent personal", "c.md"),
        _fragment(["coding"], "Coding", "d.md"),
    ]
    assert [f.text for f in filter_fragments(fragments, parse_query("work"))] == [
        "Urgent work",
        "Regular work",
    ]
    assert [f.text for f in filter_fragments(fragments, parse_query("work AND urgent"))] == [
        "Urgent work"
    ]
    assert len(filter_fragments(fragments, parse_query("work OR urgent"))) == 3
    assert [f.text for f in filter_fragments(fragments, parse_query("coding AND NOT work"))] == [
        "Coding"
    ]


def test_section_subsumes_interior_match():
    from mdtags.tags.tag_extractor import extract_fragments

    fragments = extract_fragments(
        "## Notes #work\n\nText. #work\n\nMore text.\n", Path("2025-01-15.md")
    )
    assert len(fragments) == 2
    kept = filter_fragments(fragments, parse_query("work"))
    assert len(kept) == 1
    assert kept[0].context == SectionContext("Notes", 2)
    assert kept[0].section_body


def test_repeated_lines_under_untagged_headings_are_kept():
    from mdtags.tags.tag_extractor import extract_fragments

    fragments = extract_fragments(
        "## Monday\n\nStandup. #work\n\n## Tuesday\n\nStandup. #work\n", Path("2025-W03.md")
    )
    kept = filter_fragments(fragments, parse_query("work"))
    assert [f.context for f in kept] == [SectionContext("Monday", 2), SectionContext("Tuesday", 2)]
    assert not any(f.section_body for f in kept)


def test_subsumption_is_per_document_and_order_dependent():
    section = _fragment(
        ["work"], "Alpha beta.", "a.md", context=SectionContext("S", 2), section_body=True
    )
    inner = _fragment(["work"], "Alpha\nbeta.", "a.md")
    other_doc = _fragment(["work"], "Alpha beta.", "b.md")

    assert filter_fragments([section, inner, other_doc], parse_query("work")) == [
        section,
        other_doc,
    ]
    # A fragment kept before the section is not removed afterwards.
    assert filter_fragments([inner, section], parse_query("work")) == [inner, section]


def test_sort_and_group():
    a = _fragment(["x"], "Content A", "2025-01-15.md", date(2025, 1, 15))
    b = _fragment(["x"], "Content B", "2025-01-16.md", date(2025, 1, 16))
    c = _fragment(["x"], "Content C", "2025-01-17.md", date(2025, 1, 17))
    undated = _fragment(["x"], "No date", "journal.md")
    assert sort_chronological([undated, c, a, b]) == [a, b, c, undated]

    groups = group_by_file([_fragment(["x"], "1", "b.md"), a, _fragment(["x"], "2", "b.md")])
    assert [(name, len(items)) for name, items in groups] == [("2025-01-15.md", 1), ("b.md", 2)]


def test_date_headers():
    assert format_date_header(date(2025, 1, 15), DateStyle.single_date) == "15-01-2025"
    assert format_date_header(date(2025, 1, 13), DateStyle.week_range) == "13-01-2025 to 19-01-2025"
    assert format_date_header(date(2025, 2, 1), DateStyle.month_range) == "01-02-2025 to 28-02-2025"
    assert end_of_month(date(2024, 2, 10)) == date(2024, 2, 29)
    assert end_of_month(date(2024, 12, 31)) == date(2024, 12, 31)


def test_render_chronological():
    query = parse_query("work")
    fragments = [
        _fragment(["work"], "Second day", "2025-01-16.md", date(2025, 1, 16)),
        _fragment(["work"], "No date", "journal.md"),
        _fragment(["work"], "First day", "2025-01-15.md", date(2025, 1, 15)),
    ]
    markdown = render_compilation(fragments, query)
    print(markdown)
    assert markdown == dedent(
        """\
        # Compilation: #work


        ## 15-01-2025

        First day


        ## 16-01-2025

        Second day


        ## Undated

        No date
        """
    )


def test_render_grouped_with_context():
    query = parse_query("work OR personal")
    fragments = [
        _fragment(
            ["work"],
            "Weekly notes",
            "2025-W03.md",
            date(2025, 1, 13),
            SectionContext("Work Notes", 1),
        ),
        _fragment(["personal"], "Other", "2025-W02.md", date(2025, 1, 6)),
    ]
    markdown = render_compilation(
        fragments, query, CompilationFormat.grouped, DateStyle.week_range, include_context=True
    )
    print(markdown)
    assert markdown.startswith("# Compilation: (#work OR #personal)\n")
    assert "## From: 2025-W02.md (06-01-2025 to 12-01-2025)" in markdown
    assert "### Work Notes\n\nWeekly notes" in markdown
    assert markdown.index("2025-W02.md") < markdown.index("2025-W03.md")


def test_context_heading_level_capped():
    query = parse_query("x")
    fragment = _fragment(["x"], "Deep", context=SectionContext("Deep Heading", 5))
    markdown = render_compilation([fragment], query, include_context=True)
    assert "###### Deep Heading\n\nDeep" in markdown


def test_render_empty():
    markdown = render_compilation([], parse_query("work"))
    assert markdown == "# Compilation: #work\n\n*No matching content found.*\n"


def test_section_scenario():
    from mdtags.tags.tag_extractor import extract_fragments

    fragments = extract_fragments(
        "## Meeting #work #urgent\n\nDiscussed timeline.\n", Path("meeting.md")
    )
    markdown = compile_fragments(fragments, parse_query("work"))
    assert "# Compilation: #work" in markdown.splitlines()
    assert markdown.count("Discussed timeline.") == 1


def test_tight_list_spacing_preserved():
    source = SourceText("- a #x\n- b #x\n", Path("list.md"))
    a = TaggedFragment(("x",), SpanPayload(source, 0, 6), Path("list.md"), None, PARAGRAPH)
    b = TaggedFragment(("x",), SpanPayload(source, 7, 13), Path("list.md"), None, PARAGRAPH)
    assert fragment_separator(a, b) == "\n"
    markdown = render_compilation([a, b], parse_query("x"))
    assert "- a #x\n- b #x\n" in markdown


def test_separator_heuristics():
    a = _fragment(["x"], "- a")
    b = _fragment(["x"], "1. b")
    para = _fragment(["x"], "Paragraph")
    other_file = _fragment(["x"], "- c", "b.md")
    section_item = _fragment(["x"], "- d", context=SectionContext("S", 2))
    assert fragment_separator(a, b) == "\n"
    assert fragment_separator(a, para) == "\n\n"
    assert fragment_separator(a, other_file) == "\n\n"
    assert fragment_separator(a, section_item) == "\n\n"


def test_extracted_tight_list_renders_tight():
    from mdtags.tags.tag_extractor import extract_fragments

    fragments = extract_fragments("#todo\n- a\n- b\n\nAfter.\n", Path("todo.md"))
    markdown = compile_fragments(fragments, parse_query("todo"))
    assert markdown == "# Compilation: #todo\n\n- a\n- b\n"
