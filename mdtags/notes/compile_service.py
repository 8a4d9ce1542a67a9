"""
Operations over a directory of notes: compiling tagged content into a document,
listing the tags in use, and renaming a tag everywhere.
"""

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from textwrap import dedent
from typing import List, Optional

from slugify import slugify

from mdtags.config.logger import get_logger
from mdtags.config.settings import global_settings
from mdtags.config.setup import setup
from mdtags.config.text_styles import EMOJI_SAVED
from mdtags.errors import InvalidInput, InvalidTagError, NoMatch
from mdtags.model.fragments_model import CompilationFormat, TaggedFragment
from mdtags.notes.note_files import list_notes, NoteMode, read_note, write_text_atomic
from mdtags.tags.retag import retag_markdown, tags_outside_code
from mdtags.tags.tag_compiler import filter_fragments, render_compilation
from mdtags.tags.tag_extractor import TagExtractor
from mdtags.tags.tag_matching import normalize_tag, TagMatcher
from mdtags.tags.tag_query import parse_query

log = get_logger(__name__)


@dataclass
class CompileOptions:
    root: Path
    query: str
    mode: NoteMode = NoteMode.daily
    output: Optional[Path] = None
    """Output file. Relative paths are under `root`. Defaults to a file named for the query."""

    from_date: Optional[date] = None
    to_date: Optional[date] = None
    format: Optional[CompilationFormat] = None
    include_context: Optional[bool] = None
    recursive: Optional[bool] = None
    """Unset options take their value from the global settings."""


def default_output_name(query: str) -> str:
    return f"{slugify(query) or 'compilation'}.md"


def resolve_output_path(root: Path, output: Optional[Path], query: str) -> Path:
    """
    Where a compilation is written. It must be inside the notes root so that
    rewritten links stay relative.
    """
    if output is None:
        output_path = root / global_settings().compilations_dir / default_output_name(query)
    else:
        output_path = Path(output) if Path(output).is_absolute() else root / output
    output_path = output_path.resolve()
    if not output_path.is_relative_to(root):
        raise InvalidInput(f"Output path must be within the notes directory {root}: {output_path}")
    return output_path


def compile_tags(options: CompileOptions) -> Path:
    """
    Compile every fragment of every note matching the query into one Markdown file.
    Returns the path written.
    """
    setup()
    settings = global_settings()
    format = options.format or settings.default_format
    include_context = (
        settings.include_context if options.include_context is None else options.include_context
    )
    recursive = settings.recursive if options.recursive is None else options.recursive

    query = parse_query(options.query)
    root = Path(options.root).resolve()

    notes = list_notes(root, options.mode, options.from_date, options.to_date, recursive=recursive)
    if not notes:
        raise NoMatch(f"No notes found for query: {options.query}")

    output_path = resolve_output_path(root, options.output, options.query)

    fragments: List[TaggedFragment] = []
    for note in notes:
        text = read_note(root, note.filename)
        if not text:
            continue
        extractor = TagExtractor(root / note.filename, output_path)
        fragments.extend(extractor.extract(text, note.date))

    kept = filter_fragments(fragments, query)
    if not kept:
        raise NoMatch(f"No content found matching query: {options.query}")

    markdown = render_compilation(kept, query, format, options.mode.date_style, include_context)
    write_text_atomic(output_path, markdown)

    log.message(
        "%s Compiled %s fragments from %s notes: %s",
        EMOJI_SAVED,
        len(kept),
        len(notes),
        output_path,
    )
    return output_path


def list_tags(
    root: Path,
    mode: NoteMode = NoteMode.daily,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    recursive: bool = False,
) -> List[str]:
    """
    All tags used in the notes (outside code), lowercased and sorted.
    """
    setup()
    matcher = TagMatcher()
    tags = set()
    for note in list_notes(root, mode, from_date, to_date, recursive=recursive):
        tags.update(tags_outside_code(read_note(root, note.filename), matcher))
    return sorted(tags)


@dataclass(frozen=True)
class RetagFileChange:
    filename: str
    replacements: int


@dataclass
class RetagReport:
    scanned_files: int = 0
    dry_run: bool = False
    changes: List[RetagFileChange] = field(default_factory=list)

    @property
    def changed_files(self) -> int:
        return len(self.changes)

    @property
    def total_replacements(self) -> int:
        return sum(change.replacements for change in self.changes)


def retag_notes(
    root: Path,
    from_tag: str,
    to_tag: str,
    mode: NoteMode = NoteMode.daily,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    recursive: bool = False,
    dry_run: bool = False,
) -> RetagReport:
    """
    Rename a tag in every note. Changed notes are rewritten atomically unless
    `dry_run` is set.
    """
    setup()
    try:
        old_tag = normalize_tag(from_tag)
        new_tag = normalize_tag(to_tag)
    except InvalidTagError as e:
        raise InvalidTagError(
            f"{e}. Allowed characters: letters, numbers, '-', '_'", token=e.token
        ) from e

    notes = list_notes(root, mode, from_date, to_date, recursive=recursive)
    report = RetagReport(scanned_files=len(notes), dry_run=dry_run)
    for note in notes:
        text = read_note(root, note.filename)
        if not text:
            continue
        result = retag_markdown(text, old_tag, new_tag)
        if not result.replacements:
            continue
        if not dry_run:
            write_text_atomic(Path(root) / note.filename, result.content)
        report.changes.append(RetagFileChange(note.filename, result.replacements))

    log.message(
        "%s #%s to #%s: %s replacements in %s of %s notes",
        "Would retag" if dry_run else "Retagged",
        old_tag,
        new_tag,
        report.total_replacements,
        report.changed_files,
        report.scanned_files,
    )
    return report


## Tests


def _write_notes(root: Path) -> None:
    (root / "2025-01-15.md").write_text(
        dedent(
            """
            ## Meeting #work #urgent

            Discussed timeline. See [Doc](./docs/x.md).

            # Home

            Lunch. #personal
            """
        )
    )
    (root / "2025-01-16.md").write_text("- a #work\n- b #work\n\n`#code` stays\n")
    (root / "notes.md").write_text("Not a dated note. #work\n")


def test_compile_tags(tmp_path: Path):
    _write_notes(tmp_path)
    output = compile_tags(CompileOptions(root=tmp_path, query="work"))
    assert output == (tmp_path / "compilations" / "work.md").resolve()

    markdown = output.read_text()
    print(markdown)
    assert markdown.startswith("# Compilation: #work\n")
    assert "## 15-01-2025" in markdown
    assert "## 16-01-2025" in markdown
    assert markdown.count("Discussed timeline.") == 1
    assert "[Doc](../docs/x.md)" in markdown
    assert "Lunch." not in markdown
    assert "- a #work\n- b #work" in markdown
    assert "Not a dated note" not in markdown


def test_compile_tags_output_and_errors(tmp_path: Path):
    _write_notes(tmp_path)
    output = compile_tags(
        CompileOptions(
            root=tmp_path,
            query="work AND NOT urgent",
            output=Path("out/custom.md"),
            format=CompilationFormat.grouped,
        )
    )
    markdown = output.read_text()
    assert output == (tmp_path / "out" / "custom.md").resolve()
    assert "## From: 2025-01-16.md" in markdown
    assert "Discussed timeline." not in markdown

    for query in ["missing", "personal AND urgent"]:
        try:
            compile_tags(CompileOptions(root=tmp_path, query=query))
            assert False
        except NoMatch as e:
            assert "No content found" in str(e)

    try:
        compile_tags(CompileOptions(root=tmp_path, query="work", output=tmp_path.parent / "x.md"))
        assert False
    except InvalidInput as e:
        assert "within the notes directory" in str(e)

    empty = tmp_path / "empty"
    empty.mkdir()
    try:
        compile_tags(CompileOptions(root=empty, query="work"))
        assert False
    except NoMatch as e:
        assert "No notes found" in str(e)


def test_default_output_name():
    assert default_output_name("work AND urgent") == "work-and-urgent.md"
    assert default_output_name("#project-alpha") == "project-alpha.md"


def test_list_tags(tmp_path: Path):
    _write_notes(tmp_path)
    assert list_tags(tmp_path) == ["personal", "urgent", "work"]


def test_retag_notes(tmp_path: Path):
    _write_notes(tmp_path)
    report = retag_notes(tmp_path, "#WORK", "job", dry_run=True)
    assert report.changed_files == 2
    assert report.total_replacements == 3
    assert "#work" in (tmp_path / "2025-01-16.md").read_text()

    report = retag_notes(tmp_path, "work", "job")
    assert report.scanned_files == 2
    assert [c.filename for c in report.changes] == ["2025-01-16.md", "2025-01-15.md"]
    assert (tmp_path / "2025-01-16.md").read_text() == "- a #job\n- b #job\n\n`#code` stays\n"
    assert (tmp_path / "notes.md").read_text() == "Not a dated note. #work\n"

    try:
        retag_notes(tmp_path, "work@email", "x")
        assert False
    except InvalidTagError as e:
        assert "Allowed characters" in str(e)
