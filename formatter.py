from __future__ import annotations

import logging
import os
from typing import Callable, Dict, List, Optional, Protocol, Union

from pydantic import ValidationError

from errors import FormatError, LocaleNotFound, StyleNotFound
from models import BibEntry, LocaleTerms, PersonName
from utils import en_dash_pages

logger = logging.getLogger(__name__)

LocaleArg = Union[str, LocaleTerms]

BUILTIN_LOCALES: Dict[str, LocaleTerms] = {
    "en-US": LocaleTerms(name="en-US"),
    "en-GB": LocaleTerms(name="en-GB"),
    "de-DE": LocaleTerms(
        name="de-DE",
        and_word="und",
        no_date="o. J.",
        editor="Hrsg.",
        editors="Hrsg.",
        pages_prefix="S.",
        volume_prefix="Bd.",
        number_prefix="Nr.",
    ),
    "fr-FR": LocaleTerms(
        name="fr-FR",
        and_word="et",
        no_date="s. d.",
        editor="éd.",
        editors="éds.",
        pages_prefix="p.",
        volume_prefix="vol.",
        number_prefix="n°",
    ),
}


class CitationFormatter(Protocol):
    def format_entry(self, entry: BibEntry, style: str, locale: LocaleArg) -> str:
        ...

    def format_bibliography(self, entries: List[BibEntry], style: str, locale: LocaleArg) -> List[str]:
        ...


def resolve_locale(locale: LocaleArg) -> LocaleTerms:
    """Accept a built-in locale name, a JSON file of LocaleTerms, or LocaleTerms itself."""
    if isinstance(locale, LocaleTerms):
        return locale
    name = (locale or "").strip()
    if name in BUILTIN_LOCALES:
        return BUILTIN_LOCALES[name]
    for known, terms in BUILTIN_LOCALES.items():
        if known.lower() == name.lower():
            return terms
    if name.lower().endswith(".json") and os.path.isfile(name):
        try:
            with open(name, "r", encoding="utf-8") as f:
                return LocaleTerms.model_validate_json(f.read())
        except (OSError, ValidationError) as exc:
            raise LocaleNotFound(name, str(exc)) from exc
    raise LocaleNotFound(name)


# ---- small text helpers ----


def _close(text: str) -> str:
    text = text.strip()
    if not text:
        return ""
    if text[-1] in ".?!":
        return text
    return f"{text}."


def _quoted_title(title: str) -> str:
    # "Title." but "Title?" stays as is
    t = title.strip()
    if t and t[-1] in ".?!":
        return f'"{t}"'
    return f'"{t}."'


def _year_or_nd(entry: BibEntry, terms: LocaleTerms) -> str:
    return entry.year or terms.no_date


def _link(entry: BibEntry) -> str:
    doi = entry.field("doi")
    if doi:
        if doi.startswith("http"):
            return doi
        return f"https://doi.org/{doi}"
    return entry.field("url")


# ---- APA ----


def _apa_person(p: PersonName) -> str:
    initials = p.initials()
    return f"{p.family}, {initials}" if initials else p.family


def _apa_names(people: List[PersonName]) -> str:
    names = [_apa_person(p) for p in people]
    if len(names) == 1:
        return names[0]
    return ", ".join(names[:-1]) + ", & " + names[-1]


def format_apa(entry: BibEntry, terms: LocaleTerms) -> str:
    title = entry.title
    journal = entry.field("journal") or entry.field("journaltitle")
    booktitle = entry.field("booktitle")
    publisher = entry.field("publisher")
    volume = entry.field("volume")
    number = entry.field("number") or entry.field("issue")
    pages = en_dash_pages(entry.field("pages"))
    date = f"({_year_or_nd(entry, terms)})."

    if journal:
        work = _close(title)
        source = f"*{journal}*"
        if volume:
            source += f", *{volume}*"
        if number:
            source += f"({number})"
        if pages:
            source += f", {pages}"
        body = f"{work} {_close(source)}"
    elif booktitle:
        source = f"In *{booktitle}*"
        if pages:
            source += f" ({terms.pages_prefix} {pages})"
        body = f"{_close(title)} {_close(source)}"
        if publisher:
            body += f" {_close(publisher)}"
    else:
        body = _close(f"*{title}*") if title else ""
        if publisher:
            body += f" {_close(publisher)}"

    if entry.authors:
        head = f"{_close(_apa_names(entry.authors))} {date}"
    elif entry.editors:
        term = terms.editor if len(entry.editors) == 1 else terms.editors
        head = f"{_apa_names(entry.editors)} ({term.capitalize()}). {date}"
    else:
        head = ""

    if head:
        text = f"{head} {body}".strip()
    else:
        text = f"{body} {date}".strip()
    link = _link(entry)
    if link:
        text += f" {link}"
    return text


# ---- MLA ----


def _mla_names(people: List[PersonName], terms: LocaleTerms) -> str:
    first = people[0]
    lead = f"{first.family}, {first.given}" if first.given else first.family
    if len(people) == 1:
        return lead
    if len(people) == 2:
        return f"{lead}, {terms.and_word} {people[1].given_first()}"
    return f"{lead}, et al."


def format_mla(entry: BibEntry, terms: LocaleTerms) -> str:
    title = entry.title
    container = entry.field("journal") or entry.field("journaltitle") or entry.field("booktitle")
    volume = entry.field("volume")
    number = entry.field("number") or entry.field("issue")
    pages = en_dash_pages(entry.field("pages"))
    publisher = entry.field("publisher")

    parts: List[str] = []
    if entry.authors:
        parts.append(_close(_mla_names(entry.authors, terms)))
    elif entry.editors:
        term = terms.editor if len(entry.editors) == 1 else terms.editors
        parts.append(_close(f"{_mla_names(entry.editors, terms)}, {term}"))

    if container:
        if title:
            parts.append(_quoted_title(title))
        details = [f"*{container}*"]
        if volume:
            details.append(f"{terms.volume_prefix} {volume}")
        if number:
            details.append(f"{terms.number_prefix} {number}")
        if publisher and not entry.field("journal"):
            details.append(publisher)
        details.append(_year_or_nd(entry, terms))
        if pages:
            details.append(f"{terms.pages_prefix} {pages}")
        parts.append(_close(", ".join(details)))
    else:
        if title:
            parts.append(_close(f"*{title}*"))
        details = [d for d in (publisher, _year_or_nd(entry, terms)) if d]
        parts.append(_close(", ".join(details)))

    text = " ".join(p for p in parts if p)
    link = _link(entry)
    if link:
        text += f" {link}"
    return text


# ---- Chicago author-date ----


def _chicago_names(people: List[PersonName], terms: LocaleTerms) -> str:
    first = people[0]
    names = [f"{first.family}, {first.given}" if first.given else first.family]
    names.extend(p.given_first() for p in people[1:])
    if len(names) == 1:
        return names[0]
    if len(names) == 2:
        return f"{names[0]} {terms.and_word} {names[1]}"
    return ", ".join(names[:-1]) + f", {terms.and_word} " + names[-1]


def format_chicago(entry: BibEntry, terms: LocaleTerms) -> str:
    title = entry.title
    journal = entry.field("journal") or entry.field("journaltitle")
    booktitle = entry.field("booktitle")
    volume = entry.field("volume")
    number = entry.field("number") or entry.field("issue")
    pages = en_dash_pages(entry.field("pages"))
    publisher = entry.field("publisher")
    address = entry.field("address") or entry.field("location")

    parts: List[str] = []
    if entry.authors:
        parts.append(_close(_chicago_names(entry.authors, terms)))
    elif entry.editors:
        term = terms.editor if len(entry.editors) == 1 else terms.editors
        parts.append(_close(f"{_chicago_names(entry.editors, terms)}, {term}"))
    parts.append(_close(_year_or_nd(entry, terms)))

    if journal:
        if title:
            parts.append(_quoted_title(title))
        source = f"*{journal}*"
        if volume:
            source += f" {volume}"
        if number:
            source += f" ({number})"
        if pages:
            source += f": {pages}"
        parts.append(_close(source))
    else:
        if booktitle:
            if title:
                parts.append(_quoted_title(title))
            source = f"In *{booktitle}*"
            if pages:
                source += f", {pages}"
            parts.append(_close(source))
        elif title:
            parts.append(_close(f"*{title}*"))
        imprint = ": ".join(p for p in (address, publisher) if p)
        if imprint:
            parts.append(_close(imprint))

    text = " ".join(p for p in parts if p)
    link = _link(entry)
    if link:
        text += f" {link}"
    return text


STYLES: Dict[str, Callable[[BibEntry, LocaleTerms], str]] = {
    "apa": format_apa,
    "mla": format_mla,
    "chicago-author-date": format_chicago,
    "chicago": format_chicago,
}


class PlainCitationFormatter:
    """Markdown-flavoured reference formatting for a handful of common styles."""

    def __init__(self, styles: Optional[Dict[str, Callable[[BibEntry, LocaleTerms], str]]] = None) -> None:
        self.styles = dict(styles or STYLES)

    def _style(self, style: str) -> Callable[[BibEntry, LocaleTerms], str]:
        fn = self.styles.get((style or "").strip().lower())
        if fn is None:
            raise StyleNotFound(style)
        return fn

    def _render(self, fn: Callable[[BibEntry, LocaleTerms], str], entry: BibEntry, terms: LocaleTerms) -> str:
        if not entry.title and not entry.authors and not entry.editors:
            raise FormatError(f"Entry '{entry.key}' has no title, author or editor to format")
        try:
            return fn(entry, terms)
        except (KeyError, IndexError, ValueError) as exc:
            raise FormatError(f"Could not format entry '{entry.key}': {exc}") from exc

    def format_entry(self, entry: BibEntry, style: str, locale: LocaleArg) -> str:
        return self._render(self._style(style), entry, resolve_locale(locale))

    def format_bibliography(self, entries: List[BibEntry], style: str, locale: LocaleArg) -> List[str]:
        fn = self._style(style)
        terms = resolve_locale(locale)
        out = [self._render(fn, e, terms) for e in entries]
        logger.debug("Formatted %d entries with style=%s locale=%s", len(out), style, terms.name)
        return out
