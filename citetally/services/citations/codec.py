"""Citation annotations embedded in a record's free-text ``extra`` field.

One line per database is written in the canonical form::

    Citations: 42 (Crossref) [2026-03-01]

Older releases wrote several other shapes. Those are still recognized, and
removed, whenever a record is rewritten; only the canonical form is ever
emitted. Lines that are not annotations are preserved in place, and new
annotations are placed just above a ``Citation Key:`` line when the record
has one.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date
import re

from citetally.services.citations.databases import display_name
from citetally.services.citations.errors import CodecUsageError
from citetally.services.citations.types import ColumnView, CountEntry

MISSING_COUNT = "-"

_DATE = r"\d{4}-\d{1,2}-\d{1,2}"
_LEGACY_SOURCES = (
    "Crossref/DOI",
    "Inspire/DOI",
    "Inspire/arXiv",
    "Semantic Scholar/DOI",
    "Semantic Scholar/arXiv",
)

ANCHOR_RE = re.compile(r"^Citation Key: \S+", re.I)


@dataclass(frozen=True)
class AnnotationRule:
    name: str
    build: Callable[[str], str]

    def pattern(self, titles: Sequence[str]) -> re.Pattern[str]:
        return re.compile(self.build(_title_alternation(titles)), re.I)

    def matches(self, line: str, titles: Sequence[str]) -> bool:
        return self.pattern(titles).match(line) is not None


ANNOTATION_RULES: tuple[AnnotationRule, ...] = (
    AnnotationRule("current", lambda t: rf"^Citations: *\d+ *\({t}\) *\[{_DATE}\]"),
    AnnotationRule("citation_count", lambda t: rf"^Citation *Count: *\d+ *\({t}\) *\[{_DATE}\]"),
    AnnotationRule("label_first", lambda t: rf"^Citations \({t}\): \d+"),
    AnnotationRule("count_first", lambda t: rf"^\d+ citations \({t}\)"),
    AnnotationRule("locale_key", lambda _t: rf"^Citations: *\d+ \(citationtally-database-\w+\) \[{_DATE}\]"),
    AnnotationRule(
        "legacy_source",
        lambda _t: rf"^\d+ citations \((?:{'|'.join(re.escape(s) for s in _LEGACY_SOURCES)})\) \[{_DATE}\]",
    ),
)


def match_rule(line: str, titles: Sequence[str]) -> AnnotationRule | None:
    for rule in ANNOTATION_RULES:
        if rule.matches(line, titles):
            return rule
    return None


def format_entry(entry: CountEntry, today: date) -> str:
    return f"Citations: {entry.count} ({entry.title.strip()}) [{today:%Y-%m-%d}]"


def merge_entries(text: str | None, entries: Sequence[CountEntry], *, today: date | None = None) -> str:
    if not entries:
        raise CodecUsageError("merge_entries requires at least one count entry")
    stamp = today or date.today()
    titles = [entry.title.strip() for entry in entries]
    patterns = [rule.pattern(titles) for rule in ANNOTATION_RULES]

    kept = [line for line in _lines(text) if not any(pattern.match(line) for pattern in patterns)]
    for entry in entries:
        _insert_before_anchor(kept, format_entry(entry, stamp))
    return "\n".join(kept)


def decode_column_view(text: str | None, databases: Iterable[str]) -> ColumnView | None:
    lines = _lines(text)
    if not lines:
        return None
    counts: list[str] = []
    names: list[str] = []
    for database in databases:
        pattern = re.compile(
            rf"^Citations: *(\d+) *\({re.escape(display_name(database))}\)",
            re.I,
        )
        count = MISSING_COUNT
        for line in lines:
            match = pattern.match(line)
            if match:
                count = str(int(match.group(1)))
                break
        counts.append(count)
        names.append(database)
    if all(count == MISSING_COUNT for count in counts):
        return None
    return ColumnView(counts=counts, databases=names)


def decode_entry_date(text: str | None, title: str) -> date | None:
    pattern = re.compile(
        rf"^Citations: *\d+ *\({re.escape(title)}\) *\[(\d{{4}})-(\d{{1,2}})-(\d{{1,2}})\]",
        re.I,
    )
    for line in _lines(text):
        match = pattern.match(line)
        if match is None:
            continue
        try:
            return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        except ValueError:
            return None
    return None


def _lines(text: str | None) -> list[str]:
    if not text:
        return []
    return text.split("\n")


def _title_alternation(titles: Sequence[str]) -> str:
    return "(?:" + "|".join(re.escape(title) for title in titles) + ")"


def _insert_before_anchor(lines: list[str], new_line: str) -> None:
    for index, line in enumerate(lines):
        if ANCHOR_RE.match(line):
            lines.insert(index, new_line)
            return
    lines.append(new_line)
