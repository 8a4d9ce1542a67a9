"""
Data model for tagged fragments: the units of Markdown content extracted from
notes, with their tags, body, and where they came from.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Union

import regex


class CompilationFormat(str, Enum):
    """Layout of a compiled document."""

    chronological = "chronological"
    grouped = "grouped"


class DateStyle(str, Enum):
    """How dates appear in compiled document headers."""

    single_date = "single_date"
    week_range = "week_range"
    month_range = "month_range"


@dataclass(frozen=True)
class SectionContext:
    """
    Content that came from under a heading. The heading text has tags removed.
    """

    heading: str
    level: int

    def __str__(self):
        return f"{'#' * self.level} {self.heading}"


@dataclass(frozen=True)
class ParagraphContext:
    """
    Content with no enclosing heading.
    """

    def __str__(self):
        return "(paragraph)"


TagContext = Union[SectionContext, ParagraphContext]

PARAGRAPH = ParagraphContext()


@dataclass(frozen=True, eq=False)
class SourceText:
    """
    The full (line-ending normalized) text of one document. Shared by every span
    payload from that document and never modified. Equality is identity, so two
    spans are only adjacent if they point into the very same buffer.
    """

    text: str
    path: Path

    def __len__(self) -> int:
        return len(self.text)

    def __repr__(self):
        return f"SourceText({str(self.path)!r}, {len(self.text)} chars)"


@dataclass(frozen=True)
class LiteralPayload:
    """A fully reconstructed Markdown body."""

    text: str


@dataclass(frozen=True)
class SpanPayload:
    """
    A half-open character range `[start, end)` into a document's source text.
    """

    source: SourceText
    start: int
    end: int

    def __post_init__(self):
        if not 0 <= self.start <= self.end <= len(self.source):
            raise ValueError(
                f"Invalid span ({self.start}, {self.end}) for source of length {len(self.source)}"
            )

    @property
    def text(self) -> str:
        return self.source.text[self.start : self.end]

    def gap_before(self, following: "SpanPayload") -> Optional[str]:
        """
        The original source text between this span and a following span of the same
        source, or None if they aren't in the same source or overlap.
        """
        if following.source is not self.source or following.start < self.end:
            return None
        return self.source.text[self.end : following.start]


ContentPayload = Union[LiteralPayload, SpanPayload]


_whitespace = regex.compile(r"\s+")


@dataclass(frozen=True)
class TaggedFragment:
    """
    One extracted unit of tagged Markdown content. Tags are lowercase, unique, and
    in the order they were seen (ancestors first).
    """

    tags: Tuple[str, ...]
    payload: ContentPayload
    source_path: Path
    date: Optional[date]
    context: TagContext
    section_body: bool = False
    """Set on the fragment holding a tagged heading's whole section body."""

    @property
    def text(self) -> str:
        return self.payload.text

    @property
    def plain_text(self) -> str:
        """Body with all whitespace runs collapsed, for containment checks."""
        return _whitespace.sub(" ", self.payload.text).strip()

    @property
    def is_span(self) -> bool:
        return isinstance(self.payload, SpanPayload)

    def __str__(self):
        return f"TaggedFragment({', '.join('#' + t for t in self.tags)} @ {self.context}: {self.text!r})"


## Tests


def test_span_payload():
    import pytest

    source = SourceText("- a #x\n- b #x\n", Path("notes/a.md"))
    first = SpanPayload(source, 0, 6)
    second = SpanPayload(source, 7, 13)
    assert first.text == "- a #x"
    assert second.text == "- b #x"
    assert first.gap_before(second) == "\n"
    assert second.gap_before(first) is None

    other = SourceText(source.text, Path("notes/a.md"))
    assert first.gap_before(SpanPayload(other, 7, 13)) is None

    with pytest.raises(ValueError):
        SpanPayload(source, 5, 100)


def test_fragment_plain_text():
    fragment = TaggedFragment(
        tags=("work",),
        payload=LiteralPayload("- parent\n  - child #work"),
        source_path=Path("a.md"),
        date=None,
        context=SectionContext("Notes", 2),
    )
    assert fragment.plain_text == "- parent - child #work"
    assert not fragment.is_span
    assert str(fragment.context) == "## Notes"
