"""
Renaming a tag throughout Markdown text, leaving code untouched.
"""

from dataclasses import dataclass
from textwrap import dedent
from typing import Iterator, List, Tuple

from mdtags.markdown.md_events import Code, CodeBlockStart, normalize_line_endings, parse_events
from mdtags.tags.tag_matching import TagMatcher

Range = Tuple[int, int]


@dataclass(frozen=True)
class RetagResult:
    content: str
    replacements: int


def _original_offsets(text: str) -> List[int]:
    """
    Map each offset of the line-ending normalized text (plus the end) back to an
    offset in `text`. Only `\\r\\n` changes length when normalized.
    """
    offsets: List[int] = []
    i = 0
    while i < len(text):
        offsets.append(i)
        i += 2 if text.startswith("\r\n", i) else 1
    offsets.append(len(text))
    return offsets


def merge_ranges(ranges: List[Range]) -> List[Range]:
    merged: List[Range] = []
    for start, end in sorted(ranges):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def code_ranges(text: str) -> List[Range]:
    """
    Ranges of `text` covered by code blocks (fenced or indented) and inline code spans.
    """
    normalized = normalize_line_endings(text)
    ranges = [
        event.span
        for event in parse_events(normalized)
        if isinstance(event, (CodeBlockStart, Code)) and event.span is not None
    ]
    if normalized != text:
        offsets = _original_offsets(text)
        ranges = [(offsets[start], offsets[end]) for start, end in ranges]
    return merge_ranges(ranges)


def prose_chunks(text: str) -> Iterator[Tuple[bool, str]]:
    """
    Split text into consecutive `(is_code, chunk)` pieces that together make up `text`.
    """
    cursor = 0
    for start, end in code_ranges(text):
        if start > cursor:
            yield False, text[cursor:start]
        yield True, text[start:end]
        cursor = end
    if cursor < len(text):
        yield False, text[cursor:]


def tags_outside_code(text: str, matcher: TagMatcher) -> List[str]:
    tags: List[str] = []
    for is_code, chunk in prose_chunks(text):
        if not is_code:
            tags.extend(matcher.extract(chunk))
    return tags


def retag_markdown(text: str, from_tag: str, to_tag: str) -> RetagResult:
    """
    Replace every `#from_tag` (any case, whole tag only) with `#to_tag`, except
    inside code blocks and inline code.
    """
    if not text or from_tag.lower() == to_tag.lower():
        return RetagResult(text, 0)

    matcher = TagMatcher()
    replacements = 0

    def replace_tag(full_match: str, name: str) -> str:
        nonlocal replacements
        if name.lower() != from_tag.lower():
            return full_match
        replacements += 1
        return f"#{to_tag}"

    parts = [
        chunk if is_code else matcher.replace(chunk, replace_tag)
        for is_code, chunk in prose_chunks(text)
    ]
    return RetagResult("".join(parts), replacements)


## Tests


def test_replaces_matching_tags_case_insensitively():
    result = retag_markdown("One #work, two #WORK, keep #workshop.", "work", "project")
    assert result.content == "One #project, two #project, keep #workshop."
    assert result.replacements == 2


def test_duplicate_tags():
    result = retag_markdown("#work #work #work", "work", "focus")
    assert result == RetagResult("#focus #focus #focus", 3)


def test_skips_code():
    text = dedent(
        """
        Outside #work

        ```rust
        // #work
        ```

            indented #work

        Use `#work` here, but change #work.
        """
    )
    result = retag_markdown(text, "work", "focus")
    assert "Outside #focus" in result.content
    assert "// #work" in result.content
    assert "indented #work" in result.content
    assert "Use `#work` here, but change #focus." in result.content
    assert result.replacements == 2


def test_no_op_when_tags_identical():
    text = "Keep #work unchanged."
    assert retag_markdown(text, "work", "WORK") == RetagResult(text, 0)
    assert retag_markdown("", "a", "b") == RetagResult("", 0)


def test_crlf_offsets():
    text = "Para #work\r\n\r\n`#work` and #work\r\n"
    result = retag_markdown(text, "work", "job")
    assert result.content == "Para #job\r\n\r\n`#work` and #job\r\n"
    assert result.replacements == 2


def test_tags_outside_code():
    text = "#a `#b`\n\n```\n#c\n```\n#D\n"
    assert tags_outside_code(text, TagMatcher()) == ["a", "d"]


def test_merge_ranges():
    assert merge_ranges([(5, 8), (0, 2), (1, 3), (8, 9)]) == [(0, 3), (5, 9)]
