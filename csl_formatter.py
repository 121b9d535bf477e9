from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Tuple

from citeproc import (
    LOCALES_PATH,
    STYLES_PATH,
    Citation,
    CitationItem,
    CitationStylesBibliography,
    CitationStylesStyle,
)
from citeproc import formatter as csl_output
from citeproc.source.json import CiteProcJSON

from errors import FormatError, LocaleNotFound, StyleNotFound
from formatter import CitationFormatter, LocaleArg, PlainCitationFormatter
from models import BibEntry, LocaleTerms, PersonName
from patterns import CSL_LOCALE_FILE

logger = logging.getLogger(__name__)

# BibTeX entry type -> CSL item type
CSL_TYPES = {
    "article": "article-journal",
    "book": "book",
    "booklet": "book",
    "inbook": "chapter",
    "incollection": "chapter",
    "inproceedings": "paper-conference",
    "conference": "paper-conference",
    "proceedings": "book",
    "phdthesis": "thesis",
    "mastersthesis": "thesis",
    "techreport": "report",
    "manual": "report",
    "unpublished": "manuscript",
    "online": "webpage",
    "misc": "article",
}

# BibTeX field -> CSL variable
CSL_VARIABLES = {
    "journal": "container-title",
    "booktitle": "container-title",
    "volume": "volume",
    "number": "issue",
    "pages": "page",
    "publisher": "publisher",
    "address": "publisher-place",
    "edition": "edition",
    "doi": "DOI",
    "url": "URL",
    "isbn": "ISBN",
    "note": "note",
}


def _csl_name(person: PersonName) -> Dict[str, str]:
    name = {"family": person.family}
    if person.given:
        name["given"] = person.given
    return name


def _csl_id(entry: BibEntry) -> str:
    # positions are unique even when BibTeX keys repeat
    return f"entry{entry.position}"


def to_csl_json(entry: BibEntry) -> Dict[str, Any]:
    item: Dict[str, Any] = {
        "id": _csl_id(entry),
        "type": CSL_TYPES.get(entry.entry_type, "article"),
    }
    if entry.title:
        item["title"] = entry.title
    if entry.authors:
        item["author"] = [_csl_name(p) for p in entry.authors]
    if entry.editors:
        item["editor"] = [_csl_name(p) for p in entry.editors]
    if entry.year:
        item["issued"] = {"date-parts": [[int(entry.year)]]}
    for field, variable in CSL_VARIABLES.items():
        value = entry.field(field)
        if value and variable not in item:
            item[variable] = value
    if entry.entry_type in ("phdthesis", "mastersthesis") and entry.field("school"):
        item["publisher"] = entry.field("school")
    if entry.entry_type == "techreport" and entry.field("institution"):
        item.setdefault("publisher", entry.field("institution"))
    return item


def csl_locale_name(locale: LocaleArg) -> str:
    """Locale code from a name (en-US) or a CSL locale file (locales-en-US.xml)."""
    if isinstance(locale, LocaleTerms):
        return locale.name
    value = (locale or "").strip()
    if value.lower().endswith(".xml"):
        m = CSL_LOCALE_FILE.search(os.path.basename(value))
        if not m:
            raise LocaleNotFound(value, "expected a file named locales-<code>.xml")
        return m.group(1)
    return value


class CslCitationFormatter:
    """Reference formatting through citeproc-py.

    ``style`` is a style name known to citeproc or a path to a ``.csl`` file;
    ``locale`` is a CSL locale code or a ``locales-<code>.xml`` file name.
    """

    def __init__(self) -> None:
        self._styles: Dict[Tuple[str, str], CitationStylesStyle] = {}

    def _load_style(self, style: str, locale: LocaleArg) -> CitationStylesStyle:
        name = (style or "").strip()
        code = csl_locale_name(locale)
        cached = self._styles.get((name, code))
        if cached is not None:
            return cached
        if not name or not (os.path.isfile(name) or os.path.isfile(os.path.join(STYLES_PATH, f"{name}.csl"))):
            raise StyleNotFound(style)
        # citeproc falls back to en-US for unknown locales; refuse them instead
        if code and not os.path.isfile(os.path.join(LOCALES_PATH, f"locales-{code}.xml")):
            raise LocaleNotFound(code, "no such CSL locale")
        try:
            loaded = CitationStylesStyle(name, locale=code or None, validate=False)
        except ValueError as exc:
            raise LocaleNotFound(code, str(exc)) from exc
        except (OSError, SyntaxError) as exc:
            # lxml parse errors derive from SyntaxError
            raise StyleNotFound(name) from exc
        logger.debug("Loaded CSL style %s with locale %s", name, code or "default")
        self._styles[(name, code)] = loaded
        return loaded

    def _render(self, csl_style: CitationStylesStyle, entry: BibEntry) -> str:
        if not entry.title and not entry.authors and not entry.editors:
            raise FormatError(f"Entry '{entry.key}' has no title, author or editor to format")
        try:
            source = CiteProcJSON([to_csl_json(entry)])
            bibliography = CitationStylesBibliography(csl_style, source, csl_output.plain)
            bibliography.register(Citation([CitationItem(_csl_id(entry))]))
            rendered = [str(item) for item in bibliography.bibliography()]
        except (KeyError, IndexError, ValueError, TypeError, AttributeError) as exc:
            raise FormatError(f"Could not format entry '{entry.key}': {exc}") from exc
        text = " ".join(r.strip() for r in rendered if r.strip())
        if not text:
            raise FormatError(f"Style produced no text for entry '{entry.key}'")
        return text

    def format_entry(self, entry: BibEntry, style: str, locale: LocaleArg) -> str:
        return self._render(self._load_style(style, locale), entry)

    def format_bibliography(self, entries: List[BibEntry], style: str, locale: LocaleArg) -> List[str]:
        # one entry per bibliography run keeps output aligned with the input order
        csl_style = self._load_style(style, locale)
        out = [self._render(csl_style, e) for e in entries]
        logger.debug("Formatted %d entries with CSL style=%s", len(out), style)
        return out


def make_formatter(engine: str) -> CitationFormatter:
    if engine == "csl":
        return CslCitationFormatter()
    return PlainCitationFormatter()
