"""
Settings that define the visual appearance of console output.
"""

from rich.highlighter import _combine_regex, RegexHighlighter

## Colors

COLOR_HINT = "bright_black"

COLOR_PATH = "cyan"

COLOR_TAG = "bright_green"

COLOR_KEYWORD = "bold bright_blue"


## Symbols and emojis

EMOJI_WARN = "△"

EMOJI_ERROR = EMOJI_WARN + EMOJI_WARN

EMOJI_SAVED = "⩣"


## Rich setup


class MdtagsHighlighter(RegexHighlighter):
    """
    Highlights tags, query operators, and paths in log messages.
    """

    base_style = "mdtags."
    highlights = [
        _combine_regex(
            r"(?P<tag>(?<![\w&])#[A-Za-z0-9_-]+)",
            r"(?P<keyword>\b(AND|OR|NOT)\b)",
            r"(?P<path>(?<![\w/])(\.{0,2}/)?[-\w.]+(/[-\w.]+)+\.md\b)",
        ),
    ]


RICH_STYLES = {
    "mdtags.tag": COLOR_TAG,
    "mdtags.keyword": COLOR_KEYWORD,
    "mdtags.path": COLOR_PATH,
    "mdtags.hint": COLOR_HINT,
}
