"""
Flattening of a marko parse tree into a stream of structural events.

Every block element carries the `(start, end)` character range it came from in the
line-ending normalized source (see `normalize_line_endings()`). Inline elements
carry one when marko can map it back to the source.
"""

from dataclasses import dataclass
from textwrap import dedent
from typing import List, Optional, Tuple

import marko
from marko import block, inline

from mdtags.errors import UnexpectedError

SourceRange = Tuple[int, int]


def normalize_line_endings(text: str) -> str:
    """
    Normalize text the same way marko does before parsing, so that source ranges
    index directly into the result.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\f", "\n")
    return text.replace("\x00", "�")


@dataclass(frozen=True, kw_only=True)
class MdEvent:
    span: Optional[SourceRange] = None


@dataclass(frozen=True)
class HeadingStart(MdEvent):
    level: int


@dataclass(frozen=True)
class HeadingEnd(MdEvent):
    level: int


@dataclass(frozen=True)
class ParagraphStart(MdEvent):
    pass


@dataclass(frozen=True)
class ParagraphEnd(MdEvent):
    pass


@dataclass(frozen=True)
class ListStart(MdEvent):
    ordered: bool
    start: int = 1
    delimiter: str = "."
    """Number of the first item and the `.` or `)` after it, for ordered lists."""


@dataclass(frozen=True)
class ListEnd(MdEvent):
    pass


@dataclass(frozen=True)
class ItemStart(MdEvent):
    pass


@dataclass(frozen=True)
class ItemEnd(MdEvent):
    pass


@dataclass(frozen=True)
class QuoteStart(MdEvent):
    pass


@dataclass(frozen=True)
class QuoteEnd(MdEvent):
    pass


@dataclass(frozen=True)
class CodeBlockStart(MdEvent):
    info: str


@dataclass(frozen=True)
class CodeBlockEnd(MdEvent):
    pass


@dataclass(frozen=True)
class EmphasisStart(MdEvent):
    pass


@dataclass(frozen=True)
class EmphasisEnd(MdEvent):
    pass


@dataclass(frozen=True)
class StrongStart(MdEvent):
    pass


@dataclass(frozen=True)
class StrongEnd(MdEvent):
    pass


@dataclass(frozen=True)
class LinkStart(MdEvent):
    dest: str
    title: str
    dest_span: Optional[SourceRange] = None


@dataclass(frozen=True)
class LinkEnd(MdEvent):
    pass


@dataclass(frozen=True)
class ImageStart(MdEvent):
    dest: str
    title: str
    dest_span: Optional[SourceRange] = None


@dataclass(frozen=True)
class ImageEnd(MdEvent):
    pass


@dataclass(frozen=True)
class Text(MdEvent):
    text: str


@dataclass(frozen=True)
class Escaped(MdEvent):
    """A backslash-escaped character. Never part of a tag."""

    text: str


@dataclass(frozen=True)
class Code(MdEvent):
    """An inline code span."""

    text: str


@dataclass(frozen=True)
class Html(MdEvent):
    text: str
    is_block: bool


@dataclass(frozen=True)
class SoftBreak(MdEvent):
    pass


@dataclass(frozen=True)
class HardBreak(MdEvent):
    pass


@dataclass(frozen=True)
class ThematicBreak(MdEvent):
    pass


standard_markdown = marko.Markdown()


def _code_info(element: block.FencedCode) -> str:
    return f"{element.lang} {element.extra}".strip() if element.extra else element.lang


def _raw_children(element) -> str:
    return "".join(
        child.children if isinstance(child, inline.RawText) else str(child.children)
        for child in element.children
    )


class _EventWalker:
    def __init__(self) -> None:
        self.events: List[MdEvent] = []

    def emit(self, event: MdEvent) -> None:
        self.events.append(event)

    def walk_blocks(self, elements) -> None:
        for element in elements:
            self.walk_block(element)

    def walk_block(self, element: block.BlockElement) -> None:
        span = element.source_span
        match element:
            case block.Heading() | block.SetextHeading():
                self.emit(HeadingStart(element.level, span=span))
                self.walk_inlines(element.children)
                self.emit(HeadingEnd(element.level, span=span))
            case block.Paragraph():
                self.emit(ParagraphStart(span=span))
                self.walk_inlines(element.children)
                self.emit(ParagraphEnd(span=span))
            case block.List():
                self.emit(ListStart(element.ordered, element.start, element.bullet[-1], span=span))
                self.walk_blocks(element.children)
                self.emit(ListEnd(span=span))
            case block.ListItem():
                self.emit(ItemStart(span=span))
                self.walk_blocks(element.children)
                self.emit(ItemEnd(span=span))
            case block.Quote():
                self.emit(QuoteStart(span=span))
                self.walk_blocks(element.children)
                self.emit(QuoteEnd(span=span))
            case block.FencedCode():
                self.emit(CodeBlockStart(_code_info(element), span=span))
                self.emit(Text(_raw_children(element)))
                self.emit(CodeBlockEnd(span=span))
            case block.CodeBlock():
                self.emit(CodeBlockStart("", span=span))
                self.emit(Text(_raw_children(element)))
                self.emit(CodeBlockEnd(span=span))
            case block.HTMLBlock():
                self.emit(Html(element.body, True, span=span))
            case block.ThematicBreak():
                self.emit(ThematicBreak(span=span))
            case block.BlankLine() | block.LinkRefDef():
                pass
            case _:
                raise UnexpectedError(f"Unsupported Markdown block element: {element.get_type()}")

    def walk_inlines(self, elements) -> None:
        for element in elements:
            self.walk_inline(element)

    def walk_inline(self, element: inline.InlineElement) -> None:
        span = element.source_span
        match element:
            case inline.RawText():
                self.emit(Text(element.children, span=span))
            case inline.Literal():
                self.emit(Escaped(element.children, span=span))
            case inline.LineBreak():
                self.emit(SoftBreak(span=span) if element.soft else HardBreak(span=span))
            case inline.CodeSpan():
                self.emit(Code(element.children, span=span))
            case inline.InlineHTML():
                self.emit(Html(element.children, False, span=span))
            case inline.Emphasis():
                self.emit(EmphasisStart(span=span))
                self.walk_inlines(element.children)
                self.emit(EmphasisEnd(span=span))
            case inline.StrongEmphasis():
                self.emit(StrongStart(span=span))
                self.walk_inlines(element.children)
                self.emit(StrongEnd(span=span))
            case inline.Image():
                self.emit(
                    ImageStart(
                        element.dest,
                        element.title or "",
                        getattr(element, "dest_span", None),
                        span=span,
                    )
                )
                self.walk_inlines(element.children)
                self.emit(ImageEnd(span=span))
            case inline.Link():
                self.emit(
                    LinkStart(
                        element.dest,
                        element.title or "",
                        getattr(element, "dest_span", None),
                        span=span,
                    )
                )
                self.walk_inlines(element.children)
                self.emit(LinkEnd(span=span))
            case inline.AutoLink():
                self.emit(Text(f"<{_raw_children(element)}>", span=span))
            case _:
                raise UnexpectedError(f"Unsupported Markdown inline element: {element.get_type()}")


def parse_events(text: str) -> List[MdEvent]:
    """
    Parse Markdown and return its structural events in document order. Ranges refer
    to `normalize_line_endings(text)`.
    """
    document = standard_markdown.parse(text)
    walker = _EventWalker()
    walker.walk_blocks(document.children)
    return walker.events


## Tests


def _kinds(events: List[MdEvent]) -> List[str]:
    return [type(event).__name__ for event in events]


def test_heading_and_paragraph_events():
    text = "## Meeting #work\n\nDiscussed *timeline*.\n"
    events = parse_events(text)
    print(events)
    assert _kinds(events) == [
        "HeadingStart",
        "Text",
        "HeadingEnd",
        "ParagraphStart",
        "Text",
        "EmphasisStart",
        "Text",
        "EmphasisEnd",
        "Text",
        "ParagraphEnd",
    ]
    heading = events[0]
    assert isinstance(heading, HeadingStart) and heading.level == 2
    assert heading.span is not None
    assert text[heading.span[0] : heading.span[1]].strip() == "## Meeting #work"

    para = events[3]
    assert para.span is not None
    assert text[para.span[0] : para.span[1]].strip() == "Discussed *timeline*."


def test_list_events_and_spans():
    text = "- a #x\n- b\n  - c\n"
    events = parse_events(text)
    assert _kinds(events).count("ItemStart") == 3
    assert _kinds(events).count("ListStart") == 2
    first_item = next(e for e in events if isinstance(e, ItemStart))
    assert first_item.span is not None
    assert text[first_item.span[0] : first_item.span[1]].strip() == "- a #x"

    ordered = next(e for e in parse_events("3) three\n4) four\n") if isinstance(e, ListStart))
    assert (ordered.ordered, ordered.start, ordered.delimiter) == (True, 3, ")")


def test_code_and_link_events():
    text = dedent(
        """
        See [Doc](./docs/x.md "Title") and `#notatag` and \\#escaped.

        ```python extra
        print("#x")
        ```
        """
    )
    events = parse_events(text)
    link = next(e for e in events if isinstance(e, LinkStart))
    assert link.dest == "./docs/x.md"
    assert link.title == "Title"
    assert link.dest_span is not None
    assert text[link.dest_span[0] : link.dest_span[1]] == "./docs/x.md"

    code = next(e for e in events if isinstance(e, Code))
    assert code.text == "#notatag"
    assert any(isinstance(e, Escaped) and e.text == "#" for e in events)

    start = next(e for e in events if isinstance(e, CodeBlockStart))
    assert start.info == "python extra"
    body = events[events.index(start) + 1]
    assert isinstance(body, Text) and body.text == 'print("#x")\n'


def test_normalize_line_endings():
    assert normalize_line_endings("a\r\nb\rc") == "a\nb\nc"
