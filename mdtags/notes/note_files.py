"""
Finding, reading, and writing note files. Notes are Markdown files whose names
encode their date according to the notes directory's mode.
"""

import os
from dataclasses import dataclass
from datetime import date
from enum import Enum
from pathlib import Path
from typing import List, Optional

import regex
from strif import atomic_output_file

from mdtags.config.logger import get_logger
from mdtags.errors import FileNotFound, InvalidInput
from mdtags.model.fragments_model import DateStyle

log = get_logger(__name__)

SINGLE_NOTE_NAME = "journal.md"

_daily_pattern = regex.compile(r"^(\d{4}-\d{2}-\d{2})\.md$")
_weekly_pattern = regex.compile(r"^(\d{4})-W(\d{1,2})(?:-(\d{4}-\d{2}-\d{2}))?\.md$")
_monthly_pattern = regex.compile(r"^(\d{4})-(\d{2})\.md$")


def _parse_iso_date(value: str) -> Optional[date]:
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


class NoteMode(str, Enum):
    """
    How notes are organized: one file per day, week, or month, or a single file.
    """

    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    single = "single"

    @classmethod
    def parse(cls, value: str) -> "NoteMode":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise InvalidInput(
                f"Invalid mode: `{value}`. Valid modes are: {', '.join(m.value for m in cls)}"
            )

    @property
    def date_style(self) -> DateStyle:
        if self == NoteMode.weekly:
            return DateStyle.week_range
        elif self == NoteMode.monthly:
            return DateStyle.month_range
        else:
            return DateStyle.single_date

    def date_from_filename(self, name: str) -> Optional[date]:
        """
        The date a note file name stands for, or None if it isn't a dated note name
        for this mode. Weekly notes are dated by the Monday of their ISO week.
        """
        if self == NoteMode.daily:
            match = _daily_pattern.match(name)
            return _parse_iso_date(match.group(1)) if match else None

        elif self == NoteMode.weekly:
            match = _weekly_pattern.match(name)
            if not match:
                return None
            year, week = int(match.group(1)), int(match.group(2))
            if match.group(3) is None:
                try:
                    return date.fromisocalendar(year, week, 1)
                except ValueError:
                    return None
            start = _parse_iso_date(match.group(3))
            if start and start.isocalendar()[:3] == (year, week, 1):
                return start
            return None

        elif self == NoteMode.monthly:
            match = _monthly_pattern.match(name)
            return _parse_iso_date(f"{match.group(1)}-{match.group(2)}-01") if match else None

        return None

    def is_note_name(self, name: str) -> bool:
        if self == NoteMode.single:
            return name == SINGLE_NOTE_NAME
        return self.date_from_filename(name) is not None


@dataclass(frozen=True)
class NoteEntry:
    filename: str
    """Path relative to the notes root, with `/` separators."""

    date: Optional[date]


def _root_filenames(root: Path) -> List[str]:
    return [entry.name for entry in os.scandir(root) if entry.is_file()]


def _recursive_filenames(root: Path) -> List[str]:
    filenames: List[str] = []
    for dirname, dirnames, names in os.walk(root):
        # Skip hidden directories such as `.git`.
        dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
        rel_dir = Path(dirname).relative_to(root)
        filenames.extend((rel_dir / name).as_posix() for name in sorted(names))
    return filenames


def list_notes(
    root: Path,
    mode: NoteMode,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    limit: Optional[int] = None,
    recursive: bool = False,
) -> List[NoteEntry]:
    """
    Notes under `root` for the given mode, newest first with undated notes last.
    The date range is inclusive and never excludes undated notes.
    """
    root = Path(root)
    if not root.is_dir():
        raise FileNotFound(f"Notes directory not found: {root}")

    filenames = _recursive_filenames(root) if recursive else _root_filenames(root)
    notes = []
    for filename in filenames:
        name = filename.rsplit("/", 1)[-1]
        if not mode.is_note_name(name):
            continue
        note_date = mode.date_from_filename(name)
        if note_date and from_date and note_date < from_date:
            continue
        if note_date and to_date and note_date > to_date:
            continue
        notes.append(NoteEntry(filename, note_date))

    dated = sorted((n for n in notes if n.date), key=lambda n: (n.date, n.filename), reverse=True)
    undated = sorted((n for n in notes if not n.date), key=lambda n: n.filename)
    notes = dated + undated
    if limit is not None:
        notes = notes[:limit]

    log.info("Found %s notes in %s (mode %s)", len(notes), root, mode.value)
    return notes


def read_note(root: Path, filename: str) -> str:
    """
    Read a note as text. Line endings are left as they are in the file.
    """
    path = Path(root) / filename
    if not path.is_file():
        raise FileNotFound(f"Note not found: {path}")
    with open(path, "r", encoding="utf-8", newline="") as f:
        return f.read()


def write_text_atomic(path: Path, content: str, make_parents: bool = True) -> None:
    """
    Write text to a temporary file alongside `path`, then move it into place, so
    readers never see a partially written file.
    """
    with atomic_output_file(path, make_parents=make_parents) as tmp_path:
        with open(tmp_path, "w", encoding="utf-8", newline="") as f:
            f.write(content)


## Tests


def test_date_from_filename():
    assert NoteMode.daily.date_from_filename("2025-01-17.md") == date(2025, 1, 17)
    assert NoteMode.daily.date_from_filename("2025-13-01.md") is None
    assert NoteMode.daily.date_from_filename("notes.md") is None

    assert NoteMode.weekly.date_from_filename("2025-W03.md") == date(2025, 1, 13)
    assert NoteMode.weekly.date_from_filename("2025-W03-2025-01-13.md") == date(2025, 1, 13)
    assert NoteMode.weekly.date_from_filename("2025-W03-2025-01-14.md") is None
    assert NoteMode.weekly.date_from_filename("2025-W01-2024-12-30.md") == date(2024, 12, 30)

    assert NoteMode.monthly.date_from_filename("2025-02.md") == date(2025, 2, 1)
    assert NoteMode.monthly.date_from_filename("2025-02-01.md") is None

    assert NoteMode.single.date_from_filename("journal.md") is None
    assert NoteMode.single.is_note_name("journal.md")
    assert not NoteMode.single.is_note_name("2025-01-17.md")


def test_mode_parse_and_date_style():
    assert NoteMode.parse(" Weekly ") == NoteMode.weekly
    assert NoteMode.weekly.date_style == DateStyle.week_range
    assert NoteMode.monthly.date_style == DateStyle.month_range
    assert NoteMode.single.date_style == DateStyle.single_date
    try:
        NoteMode.parse("yearly")
        assert False
    except InvalidInput as e:
        assert "yearly" in str(e)


def test_list_notes(tmp_path: Path):
    for name in ["2025-01-15.md", "2025-01-17.md", "2025-01-16.md", "readme.md", "2025-01-18.txt"]:
        (tmp_path / name).write_text("x")
    (tmp_path / "2025").mkdir()
    (tmp_path / "2025" / "2025-01-14.md").write_text("x")
    (tmp_path / ".hidden").mkdir()
    (tmp_path / ".hidden" / "2025-01-19.md").write_text("x")

    notes = list_notes(tmp_path, NoteMode.daily)
    assert [n.filename for n in notes] == ["2025-01-17.md", "2025-01-16.md", "2025-01-15.md"]

    notes = list_notes(tmp_path, NoteMode.daily, recursive=True)
    assert [n.filename for n in notes] == [
        "2025-01-17.md",
        "2025-01-16.md",
        "2025-01-15.md",
        "2025/2025-01-14.md",
    ]

    notes = list_notes(tmp_path, NoteMode.daily, date(2025, 1, 16), date(2025, 1, 17))
    assert [n.date for n in notes] == [date(2025, 1, 17), date(2025, 1, 16)]

    assert len(list_notes(tmp_path, NoteMode.daily, limit=1)) == 1

    try:
        list_notes(tmp_path / "missing", NoteMode.daily)
        assert False
    except FileNotFound:
        pass


def test_read_and_write_atomic(tmp_path: Path):
    path = tmp_path / "out" / "nested" / "note.md"
    write_text_atomic(path, "line\r\nnext\n")
    assert read_note(tmp_path, "out/nested/note.md") == "line\r\nnext\n"
    assert [p.name for p in path.parent.iterdir()] == ["note.md"]

    try:
        read_note(tmp_path, "nope.md")
        assert False
    except FileNotFound as e:
        assert isinstance(e, FileNotFoundError)
