"""CSV import/export for glossary entries.

Parsing tolerates spreadsheet exports: a leading BOM is
dropped, quoted fields may contain commas, doubled quotes and newlines, every
field is trimmed, and whitespace-only lines are ignored.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Dict, Iterable, List, Optional, Sequence

from models import Entry, ImportResult, effective_tags, new_entry_id
from storage import GlossaryStore

logger = logging.getLogger(__name__)

EXPORT_HEADERS = ["Term", "Acronym", "Definition", "Tags", "Related Terms", "Calculation"]

# First matching column wins for each field.
HEADER_SYNONYMS: Dict[str, Sequence[str]] = {
    "term": ("term", "name"),
    "acronym": ("acronym", "abbreviation"),
    "definition": ("definition", "description"),
    "tags": ("tags", "category", "priority", "type"),
    "related": ("related", "related terms"),
    "calculation": ("calculation", "formula"),
}

_RELATED_SPLIT = re.compile(r"[-•;\n]")
_TAGS_SPLIT = re.compile(r"[;,]")


def parse_csv(content: str) -> List[List[str]]:
    """Split CSV text into rows of trimmed fields. Row 0 is the header."""
    if content.startswith("\ufeff"):
        content = content[1:]

    rows: List[List[str]] = []
    row: List[str] = []
    field: List[str] = []
    blank = True
    in_quotes = False
    i = 0
    length = len(content)

    while i < length:
        char = content[i]
        if char == '"':
            blank = False
            if in_quotes and i + 1 < length and content[i + 1] == '"':
                field.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            blank = False
            row.append("".join(field).strip())
            field = []
        elif char in "\r\n" and not in_quotes:
            if char == "\r" and i + 1 < length and content[i + 1] == "\n":
                i += 1
            if not blank:
                row.append("".join(field).strip())
                rows.append(row)
            row, field, blank = [], [], True
        else:
            if not char.isspace():
                blank = False
            field.append(char)
        i += 1

    if not blank:
        row.append("".join(field).strip())
        rows.append(row)
    return rows


def _column_index(headers: List[str], names: Sequence[str]) -> int:
    for idx, header in enumerate(headers):
        if header in names:
            return idx
    return -1


def _cell(row: List[str], idx: int) -> str:
    if idx < 0 or idx >= len(row):
        return ""
    return row[idx].strip()


def split_related_terms(value: str) -> List[str]:
    return [piece.strip() for piece in _RELATED_SPLIT.split(value) if piece.strip()]


def split_tags(value: str) -> List[str]:
    return [piece.strip() for piece in _TAGS_SPLIT.split(value) if piece.strip()]


def rows_to_entries(rows: List[List[str]], result: ImportResult, now: Optional[float] = None) -> List[Entry]:
    """Turn parsed rows into new entries, recording skips and errors on ``result``."""
    if len(rows) < 2:
        result.errors.append("CSV file is empty or has no data rows")
        return []

    headers = [header.lower().strip() for header in rows[0]]
    columns = {name: _column_index(headers, synonyms) for name, synonyms in HEADER_SYNONYMS.items()}

    if columns["term"] == -1:
        result.errors.append('CSV must have a "Term" or "Name" column')
        return []
    if columns["definition"] == -1:
        result.errors.append('CSV must have a "Definition" or "Description" column')
        return []

    now = time.time() if now is None else now
    entries: List[Entry] = []

    for index, row in enumerate(rows[1:]):
        term_name = _cell(row, columns["term"])
        definition = _cell(row, columns["definition"])

        if not term_name:
            result.skipped += 1
            continue
        if not definition:
            result.errors.append(f'Row {index + 2}: "{term_name}" has no definition, skipped')
            result.skipped += 1
            continue

        related = _cell(row, columns["related"])
        tags = _cell(row, columns["tags"])

        entries.append(
            Entry(
                id=new_entry_id(),
                term=term_name,
                definition=definition,
                acronym=_cell(row, columns["acronym"]) or None,
                tags=split_tags(tags) if tags else [],
                related_terms=split_related_terms(related) if related else [],
                calculation=_cell(row, columns["calculation"]) or None,
                created_at=now,
                updated_at=now,
            )
        )

    return entries


def import_from_csv(content: str, store: GlossaryStore) -> ImportResult:
    """Parse ``content`` and merge the resulting entries into ``store`` in one batch.

    Failures are reported on the returned result, never raised.
    """
    result = ImportResult()
    try:
        entries = rows_to_entries(parse_csv(content), result)
        if entries:
            saved = store.upsert_many(entries)
            result.imported = saved.accepted_count
            if saved.error:
                result.errors.append(saved.error)
    except Exception as exc:
        logger.exception("CSV import failed")
        result.imported = 0
        result.errors.append(f"Failed to parse CSV: {exc}")

    logger.info(
        "CSV import: imported=%d skipped=%d errors=%d",
        result.imported,
        result.skipped,
        len(result.errors),
    )
    return result


def _quote(cell: str) -> str:
    return '"' + cell.replace('"', '""') + '"'


def export_to_csv(entries: Iterable[Entry]) -> str:
    lines = [",".join(EXPORT_HEADERS)]
    for entry in entries:
        cells = [
            entry.term,
            entry.acronym or "",
            entry.definition,
            "; ".join(effective_tags(entry)),
            "; ".join(entry.related_terms),
            entry.calculation or "",
        ]
        lines.append(",".join(_quote(cell) for cell in cells))
    return "\n".join(lines)


def export_filename(timestamp: Optional[float] = None) -> str:
    return time.strftime("glossary-%Y-%m-%d.csv", time.localtime(timestamp))
