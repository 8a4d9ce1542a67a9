"""
Matching of hashtag-style labels (`#work`, `#project-alpha`) in text.
"""

from typing import Callable, Iterable, List

import regex

from mdtags.errors import InvalidTagError

TAG_CHARS = r"[A-Za-z0-9_-]"


def normalize_tag(value: str) -> str:
    """
    Normalize a tag name as typed by a user: strip one leading `#` and lowercase.
    Raises `InvalidTagError` if anything outside `[A-Za-z0-9_-]` remains.
    """
    tag = value[1:] if value.startswith("#") else value
    if not tag or not regex.fullmatch(f"{TAG_CHARS}+", tag):
        raise InvalidTagError(f"Invalid tag: {value!r}", token=value)
    return tag.lower()


def extend_unique(dest: List[str], tags: Iterable[str]) -> List[str]:
    """
    Append tags not already present, preserving first-seen order. Returns `dest`.
    """
    for tag in tags:
        if tag not in dest:
            dest.append(tag)
    return dest


class TagMatcher:
    """
    Finds, counts, and strips tags in text.
    """

    def __init__(self) -> None:
        self.pattern = regex.compile(f"#({TAG_CHARS}+)")

    def extract(self, text: str) -> List[str]:
        """All tags in order of appearance, lowercased, duplicates kept."""
        return [match.group(1).lower() for match in self.pattern.finditer(text)]

    def unique(self, text: str) -> List[str]:
        return extend_unique([], self.extract(text))

    def strip(self, text: str) -> str:
        """Text with every tag removed, trimmed."""
        return self.pattern.sub("", text).strip()

    def is_visible(self, text: str) -> bool:
        """Whether anything but tags and whitespace is left."""
        return bool(self.strip(text))

    def replace(self, text: str, replace_fn: Callable[[str, str], str]) -> str:
        """
        Replace every tag occurrence with `replace_fn(full_match, tag_name)`.
        """
        return self.pattern.sub(lambda m: replace_fn(m.group(0), m.group(1)), text)


class HtmlAttrMatcher:
    """
    Finds `src=` and `href=` attribute values in raw HTML.
    """

    def __init__(self) -> None:
        self.double_quoted = regex.compile(r'\b(src|href)\s*=\s*"([^"]+)"', regex.IGNORECASE)
        self.single_quoted = regex.compile(r"\b(src|href)\s*=\s*'([^']+)'", regex.IGNORECASE)

    def rewrite(self, html: str, rewrite_fn: Callable[[str], str]) -> str:
        html = self.double_quoted.sub(
            lambda m: f'{m.group(1)}="{rewrite_fn(m.group(2))}"', html
        )
        return self.single_quoted.sub(lambda m: f"{m.group(1)}='{rewrite_fn(m.group(2))}'", html)


## Tests


def test_extract_tags():
    matcher = TagMatcher()
    assert matcher.extract("Hello #world") == ["world"]
    assert matcher.extract("#work #urgent") == ["work", "urgent"]
    assert matcher.extract("#project-alpha #task_1") == ["project-alpha", "task_1"]
    assert matcher.extract("#Work #WORK") == ["work", "work"]
    assert matcher.unique("#Work #WORK #home") == ["work", "home"]
    assert matcher.extract("No tags here") == []


def test_strip_tags():
    matcher = TagMatcher()
    assert matcher.strip("Text #work #urgent") == "Text"
    assert matcher.strip("#work Meeting notes #urgent") == "Meeting notes"
    assert matcher.strip("No tags") == "No tags"
    assert not matcher.is_visible("  #work  #urgent ")
    assert matcher.is_visible("Done. #work")


def test_normalize_tag():
    import pytest

    assert normalize_tag("#Work") == "work"
    assert normalize_tag("task_1") == "task_1"
    with pytest.raises(InvalidTagError):
        normalize_tag("work@email")
    with pytest.raises(InvalidTagError):
        normalize_tag("#")


def test_extend_unique():
    assert extend_unique(["a", "b"], ["b", "c", "a", "d"]) == ["a", "b", "c", "d"]


def test_html_attr_rewrite():
    matcher = HtmlAttrMatcher()
    html = """<img src="a.png"> <a HREF='b.md'>b</a> <a href="">x</a>"""
    assert matcher.rewrite(html, lambda t: "../" + t) == (
        """<img src="../a.png"> <a HREF='../b.md'>b</a> <a href="">x</a>"""
    )
