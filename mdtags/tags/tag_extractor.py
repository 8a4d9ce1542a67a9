"""
Extraction of tagged fragments from a Markdown document.

The document's structural events are walked once, keeping a stack of open scopes
(heading, paragraph, list item, code block, quote) plus the section and list
hierarchies. Each completed unit is emitted as a fragment if it carries tags of
its own or inherits them, and a tagged heading emits its whole section body.

Bodies are kept as spans of the original text wherever possible so formatting is
preserved exactly. Units that can't be sliced cleanly (nested list items, content
inside quotes) are reconstructed as Markdown.
"""

from dataclasses import dataclass, field, replace
from datetime import date
from pathlib import Path
from textwrap import dedent
from typing import List, Optional, Tuple

from mdtags.config.logger import get_logger
from mdtags.errors import UnexpectedError
from mdtags.markdown.link_rewrite import LinkRewriter
from mdtags.markdown.md_events import (
    Code,
    CodeBlockEnd,
    CodeBlockStart,
    EmphasisEnd,
    EmphasisStart,
    Escaped,
    HardBreak,
    HeadingEnd,
    HeadingStart,
    Html,
    ImageEnd,
    ImageStart,
    ItemEnd,
    ItemStart,
    LinkEnd,
    LinkStart,
    ListEnd,
    ListStart,
    MdEvent,
    normalize_line_endings,
    ParagraphEnd,
    ParagraphStart,
    parse_events,
    QuoteEnd,
    QuoteStart,
    SoftBreak,
    SourceRange,
    StrongEnd,
    StrongStart,
    Text,
    ThematicBreak,
)
from mdtags.model.fragments_model import (
    ContentPayload,
    LiteralPayload,
    PARAGRAPH,
    SectionContext,
    SourceText,
    SpanPayload,
    TaggedFragment,
)
from mdtags.tags.hierarchy import ListStack, SectionStack
from mdtags.tags.tag_matching import extend_unique, TagMatcher

log = get_logger(__name__)

SourceEdit = Tuple[int, int, str]


def fenced_code(info: str, code: str) -> str:
    """Reconstruct a code block as a backtick-fenced block."""
    fence = "```"
    while fence in code:
        fence += "`"
    newline = "" if not code or code.endswith("\n") else "\n"
    return f"{fence}{info.strip()}\n{code}{newline}{fence}"


def code_span(code: str) -> str:
    ticks = "`"
    while ticks in code:
        ticks += "`"
    pad = " " if code.startswith("`") or code.endswith("`") else ""
    return f"{ticks}{pad}{code}{pad}{ticks}"


def link_tail(dest: str, title: str) -> str:
    if not title:
        return f"]({dest})"
    escaped_title = title.replace('"', '\\"')
    return f']({dest} "{escaped_title}")'


def format_list_item(item_text: str, depth: int, marker: str = "-") -> str:
    """
    Render an item's accumulated text after its list marker (`-` or an ordered
    number like `2.`), indented for its nesting depth, with continuation lines
    indented under the item text.
    """
    trimmed = item_text.strip()
    if not trimmed:
        return ""

    indent = "  " * max(depth - 1, 0)
    continuation = indent + " " * (len(marker) + 1)
    first, *rest = trimmed.split("\n")
    lines = [f"{indent}{marker} {first}" if first else f"{indent}{marker}"]
    for line in rest:
        lines.append(continuation + line if line else "")
    return "\n".join(lines)


def trim_range(text: str, start: int, end: int, chars: Optional[str] = None) -> SourceRange:
    """Shrink `[start, end)` so it excludes leading and trailing `chars` (default whitespace)."""
    while start < end and (text[start] in chars if chars else text[start].isspace()):
        start += 1
    while end > start and (text[end - 1] in chars if chars else text[end - 1].isspace()):
        end -= 1
    return start, end


@dataclass
class TextBuffer:
    """
    Accumulates a unit's Markdown and, separately, the plain text in which tags
    are looked for (code and link destinations excluded).
    """

    markdown: List[str] = field(default_factory=list)
    plain: List[str] = field(default_factory=list)

    def add(self, markdown: str, plain: Optional[str] = None) -> None:
        self.markdown.append(markdown)
        self.plain.append(markdown if plain is None else plain)

    def add_block(self, markdown: str, plain: str) -> None:
        if self.markdown_text.strip():
            self.markdown.append("\n\n")
            self.plain.append("\n\n")
        self.add(markdown, plain)

    @property
    def markdown_text(self) -> str:
        return "".join(self.markdown)

    @property
    def plain_text(self) -> str:
        return "".join(self.plain)


@dataclass
class Scope:
    span: Optional[SourceRange] = None
    buffer: Optional[TextBuffer] = None


@dataclass
class HeadingScope(Scope):
    level: int = 1


@dataclass
class ParagraphScope(Scope):
    needs_literal: bool = False


@dataclass
class CodeBlockScope(Scope):
    info: str = ""


@dataclass
class QuoteScope(Scope):
    pass


@dataclass
class ItemScope(Scope):
    depth: int = 1
    marker: str = "-"
    tags: List[str] = field(default_factory=list)
    children: List[TaggedFragment] = field(default_factory=list)
    verbatim: bool = True


@dataclass(frozen=True)
class InlineLink:
    opener: str
    dest: str
    title: str


class DocumentWalk:
    """
    State for one pass over one document's events.
    """

    def __init__(self, extractor: "TagExtractor", source: SourceText, date: Optional[date]):
        self.matcher = extractor.matcher
        self.rewriter = extractor.rewriter
        self.source = source
        self.date = date
        self.events = parse_events(source.text)
        self.edits = self._source_edits()
        self.section_bodies = self._section_bodies()

        self.sections = SectionStack()
        self.lists = ListStack()
        self.scopes: List[Scope] = []
        self.inlines: List[InlineLink] = []
        self.results: List[TaggedFragment] = []
        self.pending_list_tags: Optional[List[str]] = None
        self.pending_code_target: Optional[int] = None
        self.heading_index = 0

    # Preparation

    def _source_edits(self) -> List[SourceEdit]:
        """
        Replacements of link destinations and HTML attributes that rewriting
        changes, as `(start, end, replacement)` ranges of the source text.
        """
        if not self.rewriter.active:
            return []
        text = self.source.text
        edits: List[SourceEdit] = []
        for event in self.events:
            match event:
                case LinkStart(dest=dest, dest_span=(start, end)) | ImageStart(
                    dest=dest, dest_span=(start, end)
                ):
                    rewritten = self.rewriter.rewrite(dest)
                    if rewritten != dest:
                        if text[start:end].startswith("<"):
                            rewritten = f"<{rewritten}>"
                        edits.append((start, end, rewritten))
                case Html(span=(start, end)):
                    # Block spans include the trailing newline; fragment spans are trimmed.
                    start, end = trim_range(text, start, end)
                    original = text[start:end]
                    rewritten = self.rewriter.rewrite_html(original)
                    if rewritten != original:
                        edits.append((start, end, rewritten))
        return sorted(edits)

    def _section_bodies(self) -> List[Optional[SourceRange]]:
        """
        For each heading in order, the range of its body: everything after the
        heading up to the next heading of the same or a higher level.
        """
        text = self.source.text
        headings = [event for event in self.events if isinstance(event, HeadingStart)]
        bodies: List[Optional[SourceRange]] = []
        for i, heading in enumerate(headings):
            if not heading.span:
                bodies.append(None)
                continue
            end = len(text)
            for following in headings[i + 1 :]:
                if following.level <= heading.level and following.span:
                    end = following.span[0]
                    break
            bodies.append(trim_range(text, heading.span[1], end, "\r\n"))
        return bodies

    # Helpers

    def payload(self, start: int, end: int) -> ContentPayload:
        """
        A span of the source, or if any rewrite falls inside it, the edited text.
        """
        inner = [edit for edit in self.edits if start <= edit[0] and edit[1] <= end]
        if not inner:
            return SpanPayload(self.source, start, end)

        text = self.source.text
        parts: List[str] = []
        pos = start
        for edit_start, edit_end, replacement in inner:
            parts.append(text[pos:edit_start])
            parts.append(replacement)
            pos = edit_end
        parts.append(text[pos:end])
        return LiteralPayload("".join(parts))

    def span_payload(self, span: SourceRange) -> ContentPayload:
        return self.payload(*trim_range(self.source.text, *span))

    def innermost(self, scope_type: type) -> Optional[Scope]:
        for scope in reversed(self.scopes):
            if isinstance(scope, scope_type):
                return scope
        return None

    def open_items(self) -> List[ItemScope]:
        return [scope for scope in self.scopes if isinstance(scope, ItemScope)]

    def in_quote(self) -> bool:
        return self.innermost(QuoteScope) is not None

    def in_heading(self) -> bool:
        return bool(self.scopes) and isinstance(self.scopes[-1], HeadingScope)

    def target_buffer(self) -> Optional[TextBuffer]:
        for scope in reversed(self.scopes):
            if scope.buffer is not None:
                return scope.buffer
        return None

    def append(self, markdown: str, plain: Optional[str] = None) -> None:
        buffer = self.target_buffer()
        if buffer is not None:
            buffer.add(markdown, plain)

    def pop_scope(self, scope_type: type) -> Scope:
        scope = self.scopes.pop() if self.scopes else None
        if not isinstance(scope, scope_type):
            # Conformant event streams always close what they open.
            raise UnexpectedError(f"Expected open {scope_type.__name__}, got {scope!r}")
        return scope

    def disallow_verbatim_items(self) -> None:
        for item in self.open_items():
            item.verbatim = False

    def qualifying_tags(self, local_tags: List[str]) -> Optional[List[str]]:
        """
        The full tag list for a unit if it should be emitted. Inside an explicitly
        tagged section only units with their own tags qualify, since the section
        itself is emitted whole.
        """
        all_tags = extend_unique(self.sections.current_tags(), local_tags)
        if self.sections.has_explicitly_tagged_ancestor():
            return all_tags if local_tags else None
        return all_tags or None

    def fragment(self, tags: List[str], payload: ContentPayload) -> TaggedFragment:
        return TaggedFragment(
            tags=tuple(tags),
            payload=payload,
            source_path=self.source.path,
            date=self.date,
            context=self.sections.current_context(),
        )

    # Event handling

    def run(self) -> List[TaggedFragment]:
        for event in self.events:
            self.handle(event)
        return self.results

    def handle(self, event: MdEvent) -> None:
        match event:
            case HeadingStart(level=level):
                self.pending_code_target = None
                self.pending_list_tags = None
                self.disallow_verbatim_items()
                self.scopes.append(HeadingScope(span=event.span, buffer=TextBuffer(), level=level))
            case HeadingEnd():
                self.end_heading()
            case ParagraphStart():
                self.pending_code_target = None
                self.pending_list_tags = None
                self.scopes.append(ParagraphScope(span=event.span, buffer=TextBuffer()))
            case ParagraphEnd():
                self.end_paragraph()
            case ListStart():
                self.start_list(event)
            case ListEnd():
                self.lists.pop()
            case ItemStart():
                self.pending_code_target = None
                depth = len(self.open_items()) + 1
                verbatim = depth == 1 and event.span is not None and not self.in_quote()
                self.scopes.append(
                    ItemScope(
                        span=event.span,
                        buffer=TextBuffer(),
                        depth=depth,
                        marker=self.lists.next_marker(),
                        verbatim=verbatim,
                    )
                )
            case ItemEnd():
                self.end_item()
            case QuoteStart():
                self.pending_code_target = None
                self.disallow_verbatim_items()
                self.scopes.append(QuoteScope(span=event.span))
            case QuoteEnd():
                self.pop_scope(QuoteScope)
            case CodeBlockStart(info=info):
                self.scopes.append(CodeBlockScope(span=event.span, buffer=TextBuffer(), info=info))
            case CodeBlockEnd():
                self.end_code_block()
            case EmphasisStart() | EmphasisEnd():
                self.append("*", "")
            case StrongStart() | StrongEnd():
                self.append("**", "")
            case LinkStart() | ImageStart():
                self.start_link(event)
            case LinkEnd() | ImageEnd():
                if self.inlines:
                    link = self.inlines.pop()
                    self.append(link_tail(link.dest, link.title), "")
            case Text(text=text):
                self.append(text)
            case Escaped(text=text):
                self.append("\\" + text, " " if text == "#" else text)
            case Code(text=text):
                self.append(code_span(text), " ")
            case Html():
                self.handle_html(event)
            case SoftBreak():
                self.append(" " if self.in_heading() else "\n")
            case HardBreak():
                if self.in_heading():
                    self.append(" ")
                else:
                    self.append("  \n", "\n")
            case ThematicBreak():
                self.pending_code_target = None
            case _:
                raise UnexpectedError(f"Unhandled Markdown event: {event!r}")

    def end_heading(self) -> None:
        scope = self.pop_scope(HeadingScope)
        assert isinstance(scope, HeadingScope) and scope.buffer is not None
        heading_tags = self.matcher.unique(scope.buffer.plain_text)
        heading = self.matcher.strip(scope.buffer.markdown_text)

        body = None
        if self.heading_index < len(self.section_bodies):
            body = self.section_bodies[self.heading_index]
        self.heading_index += 1

        self.sections.push_heading(scope.level, heading, heading_tags)

        if heading_tags and body and self.source.text[body[0] : body[1]].strip():
            self.results.append(
                TaggedFragment(
                    tags=tuple(self.sections.current_tags()),
                    payload=self.payload(*body),
                    source_path=self.source.path,
                    date=self.date,
                    context=SectionContext(heading=heading, level=scope.level),
                    section_body=True,
                )
            )

    def end_paragraph(self) -> None:
        scope = self.pop_scope(ParagraphScope)
        assert isinstance(scope, ParagraphScope) and scope.buffer is not None
        markdown = scope.buffer.markdown_text.strip()
        plain = scope.buffer.plain_text
        para_tags = self.matcher.unique(plain)
        visible = self.matcher.is_visible(markdown)

        item = self.innermost(ItemScope)
        if isinstance(item, ItemScope):
            extend_unique(item.tags, para_tags)
            if visible and item.buffer is not None:
                item.buffer.add_block(markdown, plain)
            self.pending_list_tags = None
        elif not visible and para_tags:
            # A tag-only line applies to the list right after it.
            self.pending_list_tags = para_tags
        else:
            self.pending_list_tags = None
            tags = self.qualifying_tags(extend_unique(self.lists.current_tags(), para_tags))
            if visible and tags:
                if scope.needs_literal or scope.span is None or self.in_quote():
                    payload: ContentPayload = LiteralPayload(markdown)
                else:
                    payload = self.span_payload(scope.span)
                self.results.append(self.fragment(tags, payload))
                self.pending_code_target = len(self.results) - 1

    def start_list(self, event: ListStart) -> None:
        self.pending_code_target = None
        item = self.innermost(ItemScope)
        if isinstance(item, ItemScope) and item.buffer is not None:
            self.disallow_verbatim_items()
            inherited = self.lists.current_tags()
            extend_unique(inherited, item.tags)
            extend_unique(inherited, self.matcher.unique(item.buffer.plain_text))
        else:
            inherited = self.pending_list_tags or []
            self.pending_list_tags = None
        self.lists.push(inherited, event.ordered, event.start, event.delimiter)

    def end_item(self) -> None:
        scope = self.pop_scope(ItemScope)
        assert isinstance(scope, ItemScope) and scope.buffer is not None
        markdown = scope.buffer.markdown_text
        item_tags = extend_unique(list(scope.tags), self.matcher.unique(scope.buffer.plain_text))
        tags = self.qualifying_tags(extend_unique(self.lists.current_tags(), item_tags))

        emitted: List[TaggedFragment] = []
        if tags and self.matcher.is_visible(markdown):
            if scope.verbatim and scope.span is not None:
                payload: ContentPayload = self.span_payload(scope.span)
            else:
                payload = LiteralPayload(format_list_item(markdown, scope.depth, scope.marker))
            emitted.append(self.fragment(tags, payload))
        emitted.extend(scope.children)

        parent = self.innermost(ItemScope)
        if isinstance(parent, ItemScope):
            parent.children.extend(emitted)
        else:
            self.results.extend(emitted)

    def end_code_block(self) -> None:
        scope = self.pop_scope(CodeBlockScope)
        assert isinstance(scope, CodeBlockScope) and scope.buffer is not None
        fenced = fenced_code(scope.info, scope.buffer.markdown_text)

        item = self.innermost(ItemScope)
        if isinstance(item, ItemScope) and item.buffer is not None:
            item.buffer.add_block(fenced, "")
        elif self.pending_code_target is not None:
            self.attach_code_block(self.pending_code_target, fenced, scope.span)
        else:
            tags = self.qualifying_tags(self.lists.current_tags())
            if tags:
                self.results.append(self.fragment(tags, LiteralPayload(fenced)))

    def attach_code_block(self, index: int, fenced: str, span: Optional[SourceRange]) -> None:
        """
        A code block right after an emitted paragraph belongs to that paragraph.
        """
        previous = self.results[index]
        payload = previous.payload
        if isinstance(payload, SpanPayload) and span and not self.in_quote():
            extended = self.payload(*trim_range(self.source.text, payload.start, span[1]))
            if isinstance(extended, SpanPayload):
                self.results[index] = replace(previous, payload=extended)
                return
        self.results[index] = replace(
            previous, payload=LiteralPayload(f"{previous.text}\n\n{fenced}")
        )

    def start_link(self, event: MdEvent) -> None:
        assert isinstance(event, (LinkStart, ImageStart))
        if event.dest_span is None:
            # Reference-style: the definition won't travel with the fragment.
            paragraph = self.innermost(ParagraphScope)
            if isinstance(paragraph, ParagraphScope):
                paragraph.needs_literal = True
            self.disallow_verbatim_items()
        opener = "![" if isinstance(event, ImageStart) else "["
        self.append(opener, "")
        self.inlines.append(InlineLink(opener, self.rewriter.rewrite(event.dest), event.title))

    def handle_html(self, event: Html) -> None:
        rewritten = self.rewriter.rewrite_html(event.text)
        if self.target_buffer() is not None or not event.is_block:
            self.append(rewritten, event.text)
            return

        tags = self.qualifying_tags(
            extend_unique(self.lists.current_tags(), self.matcher.unique(event.text))
        )
        if tags and self.matcher.is_visible(rewritten):
            if event.span and not self.in_quote():
                payload: ContentPayload = self.span_payload(event.span)
            else:
                payload = LiteralPayload(rewritten.strip())
            self.results.append(self.fragment(tags, payload))


class TagExtractor:
    """
    Extracts tagged fragments from documents. When the compiled output's path is
    known, relative links and images are rewritten to resolve from there.
    """

    def __init__(self, source_path: Path, output_path: Optional[Path] = None):
        self.source_path = Path(source_path)
        self.matcher = TagMatcher()
        self.rewriter = LinkRewriter(self.source_path, output_path)

    def extract(self, text: str, date: Optional[date] = None) -> List[TaggedFragment]:
        source = SourceText(normalize_line_endings(text), self.source_path)
        fragments = DocumentWalk(self, source, date).run()
        log.debug("Extracted %s tagged fragments from %s", len(fragments), self.source_path)
        return fragments


def extract_fragments(
    text: str,
    source_path: Path,
    date: Optional[date] = None,
    output_path: Optional[Path] = None,
) -> List[TaggedFragment]:
    return TagExtractor(source_path, output_path).extract(text, date)


## Tests


def _extract(markdown: str, **kwargs) -> List[TaggedFragment]:
    return extract_fragments(dedent(markdown), Path("test.md"), **kwargs)


def _section(results: List[TaggedFragment], heading: str) -> TaggedFragment:
    return next(
        r
        for r in results
        if isinstance(r.context, SectionContext) and r.context.heading == heading
    )


def test_section_level_tags():
    results = _extract(
        """
        ## Meeting Notes #work #urgent

        Discussed project timeline.
        Action items assigned.
        """
    )
    assert len(results) == 1
    section = _section(results, "Meeting Notes")
    assert section.tags == ("work", "urgent")
    assert section.text == "Discussed project timeline.\nAction items assigned."
    assert section.is_span


def test_paragraph_level_tags():
    results = _extract(
        """
        This is a regular paragraph.

        This paragraph has tags. #idea #garden
        """
    )
    assert len(results) == 1
    assert results[0].tags == ("idea", "garden")
    assert results[0].text == "This paragraph has tags. #idea #garden"
    assert results[0].context == PARAGRAPH


def test_tag_inheritance_and_siblings():
    results = _extract(
        """
        # Project Alpha #project-alpha

        ## Sprint Planning #work

        Planning for sprint 3.

        ### Tasks #urgent

        Critical path items.

        ## Retro #retro

        Went well.
        """
    )
    assert _section(results, "Project Alpha").tags == ("project-alpha",)
    assert _section(results, "Sprint Planning").tags == ("project-alpha", "work")
    assert _section(results, "Tasks").tags == ("project-alpha", "work", "urgent")
    assert _section(results, "Retro").tags == ("project-alpha", "retro")

    sprint = _section(results, "Sprint Planning")
    assert "Critical path items." in sprint.text
    assert "Went well." not in sprint.text


def test_paragraph_inside_tagged_section():
    results = _extract(
        """
        ## Work Notes #work

        Plain paragraph.

        This paragraph adds a tag. #meeting
        """
    )
    assert len(results) == 2
    paragraph = next(r for r in results if "meeting" in r.tags)
    assert paragraph.tags == ("work", "meeting")
    assert paragraph.context == SectionContext("Work Notes", 2)


def test_untagged_heading_inheritance():
    results = _extract(
        """
        # Journal #life

        ## Morning

        Coffee.
        """
    )
    # Only the tagged section is emitted; the paragraph is inside it.
    assert len(results) == 1
    assert "Coffee." in results[0].text
    assert "## Morning" in results[0].text


def test_no_tags_and_empty_sections():
    assert _extract("## Regular Heading\n\nRegular paragraph with no tags.\n") == []
    assert _extract("## Heading #tag\n\n") == []
    assert _extract("#tags #here\n") == []


def test_case_insensitive_tags():
    results = _extract("## Notes #Work #URGENT #Project-Alpha\n\nContent here.\n")
    assert results[0].tags == ("work", "urgent", "project-alpha")


def test_heading_only_tag():
    results = _extract("### #codex\n\nSome content under the heading.\n")
    assert len(results) == 1
    assert results[0].text == "Some content under the heading."
    assert results[0].context == SectionContext("", 3)


def test_inline_code_and_links_preserved():
    results = _extract(
        """
        Use the `git commit` command here. #git

        See [Design Doc](./docs/design.md). #work

        ![Diagram](./images/diagram.png) #work
        """
    )
    assert len(results) == 3
    assert "`git commit`" in results[0].text
    assert "[Design Doc](./docs/design.md)" in results[1].text
    assert "![Diagram](./images/diagram.png)" in results[2].text


def test_tags_in_code_are_ignored():
    assert _extract("Run `#notatag` now.\n") == []
    results = _extract("Run `#notatag` now. #real\n")
    assert results[0].tags == ("real",)


def test_paths_rewritten_for_output_file():
    markdown = dedent(
        """
        See [Design Doc](./docs/design.md). #work

        ![Diagram](./images/diagram.png) #work

        [Site](https://example.com/docs) and [top](#top). #work
        """
    )
    results = extract_fragments(
        markdown,
        Path("/journal/2025-01-15.md"),
        output_path=Path("/journal/.compilations/work.md"),
    )
    combined = "\n".join(r.text for r in results)
    assert "[Design Doc](../docs/design.md)" in combined
    assert "![Diagram](../images/diagram.png)" in combined
    assert "[Site](https://example.com/docs)" in combined
    assert "[top](#top)" in combined
    assert not results[0].is_span
    assert results[2].is_span


def test_section_body_links_rewritten():
    markdown = "## Docs #work\n\nSee [x](./a.md) and <img src=\"pics/b.png\">.\n"
    results = extract_fragments(
        markdown, Path("notes/2025-01-15.md"), output_path=Path("compilations/work.md")
    )
    assert len(results) == 1
    assert results[0].text == 'See [x](../notes/a.md) and <img src="../notes/pics/b.png">.'


def test_multi_line_paragraph():
    results = _extract("This was a very sad day. #tostos #diary\nI am planning to go.")
    assert len(results) == 1
    assert results[0].tags == ("tostos", "diary")
    assert results[0].text == "This was a very sad day. #tostos #diary\nI am planning to go."


def test_tag_only_line_applies_to_list():
    results = _extract(
        """
        #tag
        - item 1
        - item 2
        - item 3
        """
    )
    assert [r.text for r in results] == ["- item 1", "- item 2", "- item 3"]
    assert all(r.tags == ("tag",) for r in results)


def test_list_item_tag_applies_to_subitems():
    results = _extract(
        """
        - #tag
          - item 1
          - item 2
        """
    )
    assert [r.text for r in results] == ["  - item 1", "  - item 2"]
    assert all(r.tags == ("tag",) for r in results)


def test_nested_items_roll_up_in_order():
    results = _extract(
        """
        - parent #p
          - child
            continued
        - sibling #s
        """
    )
    assert [r.text for r in results] == [
        "- parent #p",
        "  - child\n    continued",
        "- sibling #s",
    ]
    assert results[1].tags == ("p",)
    assert not results[0].is_span
    assert results[2].is_span


def test_section_tag_preserves_nested_list():
    results = _extract(
        """
        ### #section

        - parent
          - child
        - sibling
        """
    )
    assert [r.text for r in results] == ["- parent\n  - child\n- sibling"]


def test_code_block_attaches_to_paragraph():
    results = _extract(
        """
        Setup steps: #howto

        ```bash
        make install
        ```

        Unrelated text.
        """
    )
    assert len(results) == 1
    assert results[0].text == "Setup steps: #howto\n\n```bash\nmake install\n```"
    assert results[0].is_span


def test_standalone_code_block_in_list_context():
    results = _extract(
        """
        # Snippets

        #code
        - first

        ```
        #!/bin/sh
        ```
        """
    )
    assert [r.text for r in results] == ["- first"]


def test_code_block_in_item():
    results = _extract(
        """
        - Run this #ops

          ```sh
          ls
          ```
        """
    )
    assert len(results) == 1
    assert "```sh\n  ls\n  ```" in results[0].text


def test_quote_paragraph_reconstructed():
    results = _extract("> Quoted *idea* here. #idea\n")
    assert len(results) == 1
    assert results[0].text == "Quoted *idea* here. #idea"
    assert not results[0].is_span


def test_html_block():
    results = _extract('<div class="x">\nHTML content #web\n</div>\n')
    assert len(results) == 1
    assert results[0].tags == ("web",)
    assert results[0].text.startswith("<div")


def test_date_preserved():
    when = date(2025, 1, 17)
    results = extract_fragments("## Notes #work\n\nBody content.", Path("2025-01-17.md"), when)
    assert len(results) == 1
    assert results[0].date == when


def test_crlf_input():
    results = _extract("## Notes #work\r\n\r\nLine one\r\nLine two\r\n")
    assert results[0].text == "Line one\nLine two"


def test_tag_stripping_is_lossless():
    markdown = dedent(
        """
        ## Alpha #a

        Some *text* with [a link](x.md) and `code`. #b

        - item #c

        > Quoted **idea** #d

        Top-level line. #e
        """
    )
    matcher = TagMatcher()
    stripped_source = matcher.pattern.sub("", markdown)
    fragments = extract_fragments(markdown, Path("t.md"))
    assert len(fragments) == 5
    for fragment in fragments:
        assert matcher.extract(fragment.text)
        # Removing tags from a fragment leaves exactly the untagged source text.
        assert matcher.pattern.sub("", fragment.text) in stripped_source


def test_html_block_rewritten():
    source_path = Path("notes/2025-01-15.md")
    output_path = Path("compilations/work.md")

    results = extract_fragments(
        '<div><img src="pics/a.png"> #work</div>\n', source_path, output_path=output_path
    )
    assert [r.text for r in results] == ['<div><img src="../notes/pics/a.png"> #work</div>']

    results = extract_fragments(
        '## D #work\n\n<div><img src="pics/a.png"></div>\n', source_path, output_path=output_path
    )
    assert [r.text for r in results] == ['<div><img src="../notes/pics/a.png"></div>']

    results = extract_fragments(
        '> <a href="b.md">b</a>\n>\n> Quoted. #work\n', source_path, output_path=output_path
    )
    assert [r.text for r in results] == ["Quoted. #work"]

    results = extract_fragments(
        'See <a href="b.md">b</a>. #work\n', source_path, output_path=output_path
    )
    assert [r.text for r in results] == ['See <a href="../notes/b.md">b</a>. #work']


def test_ordered_items_keep_numbering():
    results = _extract(
        """
        1. one #x
           - inner
        2. two #x
        """
    )
    assert [r.text for r in results] == ["1. one #x", "  - inner", "2. two #x"]
    assert not results[0].is_span
    assert results[2].is_span
