"""
Tracking of the enclosing headings and lists while walking a document, so that
tags attached to a heading or list item are inherited by everything inside it.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from mdtags.model.fragments_model import PARAGRAPH, SectionContext, TagContext
from mdtags.tags.tag_matching import extend_unique


@dataclass(frozen=True)
class Section:
    level: int
    heading: str
    tags: List[str]


class SectionStack:
    """
    The open sections, outermost first. Levels strictly increase from bottom to top.
    """

    def __init__(self) -> None:
        self.stack: List[Section] = []

    def push_heading(self, level: int, heading: str, tags: List[str]) -> None:
        """
        Enter a heading. Any open section at the same or a deeper level is closed
        first, so siblings never inherit from each other.
        """
        while self.stack and self.stack[-1].level >= level:
            self.stack.pop()
        self.stack.append(Section(level, heading, list(tags)))

    def current_tags(self) -> List[str]:
        tags: List[str] = []
        for section in self.stack:
            extend_unique(tags, section.tags)
        return tags

    def current_context(self) -> TagContext:
        if not self.stack:
            return PARAGRAPH
        innermost = self.stack[-1]
        return SectionContext(heading=innermost.heading, level=innermost.level)

    def has_explicitly_tagged_ancestor(self) -> bool:
        """
        Whether any open section has its own tags. If so, that section is emitted
        whole, and units inside it are only emitted if they add tags of their own.
        """
        return any(section.tags for section in self.stack)

    def __len__(self) -> int:
        return len(self.stack)


@dataclass
class ListScope:
    """Tags every item of an open list inherits, and how its items are numbered."""

    tags: List[str] = field(default_factory=list)
    ordered: bool = False
    next_number: int = 1
    delimiter: str = "."


class ListStack:
    """
    The open lists. A list inherits tags from a tag-only paragraph just before it
    (for a top-level list) or from the enclosing item (for a nested list).
    """

    def __init__(self) -> None:
        self.stack: List[ListScope] = []

    def push(
        self, inherited: List[str], ordered: bool = False, start: int = 1, delimiter: str = "."
    ) -> None:
        self.stack.append(ListScope(list(inherited), ordered, start, delimiter))

    def next_marker(self) -> str:
        """
        The marker for the next item of the innermost list: `-` for bullet lists,
        the item number and delimiter for ordered ones.
        """
        if not self.stack or not self.stack[-1].ordered:
            return "-"
        scope = self.stack[-1]
        marker = f"{scope.next_number}{scope.delimiter}"
        scope.next_number += 1
        return marker

    def pop(self) -> Optional[ListScope]:
        return self.stack.pop() if self.stack else None

    def current_tags(self) -> List[str]:
        return list(self.stack[-1].tags) if self.stack else []

    def __len__(self) -> int:
        return len(self.stack)


## Tests


def test_section_stack():
    stack = SectionStack()
    assert stack.current_context() == PARAGRAPH
    assert not stack.has_explicitly_tagged_ancestor()

    stack.push_heading(1, "Main", ["tag1"])
    assert stack.current_tags() == ["tag1"]

    stack.push_heading(2, "Sub", ["tag2"])
    assert stack.current_tags() == ["tag1", "tag2"]
    assert stack.current_context() == SectionContext("Sub", 2)

    stack.push_heading(2, "Sub2", ["tag3"])
    assert stack.current_tags() == ["tag1", "tag3"]

    stack.push_heading(1, "Main2", ["tag4"])
    assert stack.current_tags() == ["tag4"]
    assert len(stack) == 1


def test_section_stack_skipped_levels():
    stack = SectionStack()
    stack.push_heading(1, "A", ["a"])
    stack.push_heading(3, "C", ["c"])
    stack.push_heading(2, "B", ["b"])
    assert stack.current_tags() == ["a", "b"]
    assert [s.level for s in stack.stack] == [1, 2]


def test_section_stack_deduplication():
    stack = SectionStack()
    stack.push_heading(1, "Main", ["work", "urgent"])
    stack.push_heading(2, "Sub", ["urgent", "meeting"])
    assert stack.current_tags() == ["work", "urgent", "meeting"]


def test_explicitly_tagged_ancestor():
    stack = SectionStack()
    stack.push_heading(1, "Plain", [])
    assert not stack.has_explicitly_tagged_ancestor()
    stack.push_heading(2, "Tagged", ["x"])
    assert stack.has_explicitly_tagged_ancestor()
    stack.push_heading(2, "Untagged sibling", [])
    assert not stack.has_explicitly_tagged_ancestor()


def test_list_stack():
    lists = ListStack()
    assert lists.current_tags() == []
    lists.push(["a"])
    lists.push(["a", "b"])
    assert lists.current_tags() == ["a", "b"]
    lists.pop()
    assert lists.current_tags() == ["a"]
    lists.pop()
    assert lists.pop() is None


def test_list_markers():
    lists = ListStack()
    assert lists.next_marker() == "-"
    lists.push([], ordered=True, start=3, delimiter=")")
    assert [lists.next_marker(), lists.next_marker()] == ["3)", "4)"]
    lists.push([])
    assert lists.next_marker() == "-"
    lists.pop()
    assert lists.next_marker() == "5)"
