from __future__ import annotations

import logging
from typing import Dict, List

import bibtexparser
from bibtexparser.bparser import BibTexParser
from bibtexparser.customization import splitname

from errors import BibParseError
from models import BibEntry, PersonName
from patterns import BIB_ENTRY_START, BIB_NON_ENTRY_TYPES
from utils import clean_latex, extract_year, normalize_surname, split_authors, year_to_yy

logger = logging.getLogger(__name__)


def _new_parser() -> BibTexParser:
    # BibTexParser keeps its database between calls, so never share one
    parser = BibTexParser(common_strings=True, ignore_nonstandard_types=False)
    parser.customization = None
    return parser


def _parse_person(raw: str) -> PersonName:
    parts = splitname(raw, strict_mode=False)
    family = " ".join(parts.get("von", []) + parts.get("last", []))
    given = " ".join(parts.get("first", []))
    jr = " ".join(parts.get("jr", []))
    if jr:
        given = f"{given}, {jr}" if given else jr
    return PersonName(given=clean_latex(given), family=clean_latex(family))


def _first_surname(raw_names: List[str]) -> str:
    if not raw_names:
        return ""
    parts = splitname(raw_names[0], strict_mode=False)
    last = " ".join(parts.get("last", []))
    if not last:
        # fall back to the last word of whatever name we have
        words = clean_latex(raw_names[0]).split()
        last = words[-1] if words else ""
    return normalize_surname(clean_latex(last))


def to_entry(record: Dict[str, str], position: int) -> BibEntry:
    fields = {
        k.lower(): clean_latex(v)
        for k, v in record.items()
        if k not in ("ID", "ENTRYTYPE") and isinstance(v, str)
    }
    author_names = split_authors(record.get("author", ""))
    editor_names = split_authors(record.get("editor", ""))
    year = extract_year(record.get("year", "")) or extract_year(record.get("date", ""))
    surname = _first_surname(author_names) or None
    return BibEntry(
        key=record.get("ID", f"entry{position}"),
        entry_type=(record.get("ENTRYTYPE") or "misc").lower(),
        position=position,
        authors=[_parse_person(n) for n in author_names],
        editors=[_parse_person(n) for n in editor_names],
        surname=surname,
        year=year,
        year_yy=year_to_yy(year),
        title=fields.get("title", ""),
        fields=fields,
    )


def parse_bibtex(raw_text: str) -> List[BibEntry]:
    """Parse BibTeX text into entries, in source order.

    Raises BibParseError when the parser fails or silently drops an entry
    that the text declares.
    """
    if not raw_text or not raw_text.strip():
        return []
    try:
        database = bibtexparser.loads(raw_text, parser=_new_parser())
    except Exception as exc:
        raise BibParseError(f"BibTeX parsing error: {exc}") from exc

    declared = [
        m.group(1)
        for m in BIB_ENTRY_START.finditer(raw_text)
        if m.group(1).lower() not in BIB_NON_ENTRY_TYPES
    ]
    records = database.entries
    if len(records) < len(declared):
        raise BibParseError(
            f"BibTeX parsing error: {len(declared) - len(records)} of {len(declared)} entries could not be parsed"
        )

    entries = [to_entry(rec, i) for i, rec in enumerate(records)]
    logger.info("Parsed %d BibTeX entries", len(entries))
    return entries


def load_bibtex(path: str) -> List[BibEntry]:
    with open(path, "r", encoding="utf-8") as f:
        return parse_bibtex(f.read())
