"""
Rewriting of relative link and image targets so they still resolve when content
moves from a note into a compiled document in a different directory.
"""

import os
from pathlib import Path
from typing import Optional, Tuple

import regex

from mdtags.tags.tag_matching import HtmlAttrMatcher

_scheme_pattern = regex.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:")

_passthrough_prefixes = ("#", "?", "//", "/", "\\")


def has_uri_scheme(target: str) -> bool:
    return bool(_scheme_pattern.match(target))


def split_target_suffix(target: str) -> Tuple[str, str]:
    """
    Split `path?query#fragment` into the path and everything from the first `?` or `#`.
    """
    positions = [pos for pos in (target.find("?"), target.find("#")) if pos >= 0]
    if not positions:
        return target, ""
    split_pos = min(positions)
    return target[:split_pos], target[split_pos:]


def is_rewritable(target: str) -> bool:
    return bool(target) and not target.startswith(_passthrough_prefixes) and not has_uri_scheme(target)


def _dir_of(path: Path) -> str:
    return os.path.dirname(os.fspath(path)) or "."


class LinkRewriter:
    """
    Rebases relative targets from the source note's directory onto the output
    file's directory. Purely lexical: nothing is read from the filesystem. With no
    output path, every target passes through unchanged.
    """

    def __init__(self, source_path: Path, output_path: Optional[Path] = None) -> None:
        self.source_path = Path(source_path)
        self.output_path = Path(output_path) if output_path else None
        self.html_attrs = HtmlAttrMatcher()

    @property
    def active(self) -> bool:
        return self.output_path is not None

    def rewrite(self, target: str) -> str:
        if not self.output_path or not is_rewritable(target):
            return target

        path_part, suffix = split_target_suffix(target)
        if not path_part:
            return target

        source_dir = _dir_of(self.source_path)
        output_dir = _dir_of(self.output_path)
        if os.path.isabs(source_dir) != os.path.isabs(output_dir):
            return target

        target_path = os.path.normpath(os.path.join(source_dir, path_part))
        rel = os.path.relpath(target_path, os.path.normpath(output_dir))
        return rel.replace("\\", "/") + suffix

    def rewrite_html(self, html: str) -> str:
        if not self.output_path:
            return html
        return self.html_attrs.rewrite(html, self.rewrite)


## Tests


def test_rewrite_relative_targets():
    rewriter = LinkRewriter(Path("notes/2025-01-15.md"), Path("compilations/work.md"))
    assert rewriter.rewrite("./docs/x.md") == "../notes/docs/x.md"
    assert rewriter.rewrite("docs/x.md#part") == "../notes/docs/x.md#part"
    assert rewriter.rewrite("../shared/img.png?v=2") == "../shared/img.png?v=2"
    assert rewriter.rewrite("../compilations/other.md") == "other.md"


def test_rewrite_absolute_note_paths():
    rewriter = LinkRewriter(
        Path("/journal/2025-01-15.md"), Path("/journal/.compilations/work.md")
    )
    assert rewriter.rewrite("./docs/design.md") == "../docs/design.md"
    assert rewriter.rewrite("./images/diagram.png") == "../images/diagram.png"


def test_passthrough_targets():
    rewriter = LinkRewriter(Path("notes/a.md"), Path("out/b.md"))
    for target in [
        "",
        "#section",
        "?q=1",
        "//cdn.example.com/x.js",
        "/abs/path.md",
        "https://example.com/docs",
        "mailto:me@example.com",
    ]:
        assert rewriter.rewrite(target) == target

    mixed = LinkRewriter(Path("/abs/notes/a.md"), Path("out/b.md"))
    assert mixed.rewrite("x.md") == "x.md"

    inactive = LinkRewriter(Path("notes/a.md"))
    assert not inactive.active
    assert inactive.rewrite("./x.md") == "./x.md"


def test_rewrite_html():
    rewriter = LinkRewriter(Path("notes/a.md"), Path("out/b.md"))
    html = '<img src="img/a.png" alt="x"> <a href="https://example.com">x</a>'
    assert rewriter.rewrite_html(html) == (
        '<img src="../notes/img/a.png" alt="x"> <a href="https://example.com">x</a>'
    )


def test_split_target_suffix():
    assert split_target_suffix("a.md") == ("a.md", "")
    assert split_target_suffix("a.md#x?y") == ("a.md", "#x?y")
    assert split_target_suffix("a.md?y#x") == ("a.md", "?y#x")
