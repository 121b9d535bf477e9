from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from bib_source import parse_bibtex
from errors import FormatError
from formatter import CitationFormatter, LocaleArg, PlainCitationFormatter
from models import BibEntry, BibliographyItem, CitationKey, ProcessingOutput, ResolutionResult
from patterns import CITATION_MARKER
from utils import author_distance

logger = logging.getLogger(__name__)

DEFAULT_FUZZY_MAX_DISTANCE = 10
BIBLIOGRAPHY_HEADING = "# Bibliography"
NOT_FOUND_NOTE = "[Reference Not Found]"
NO_KEYS_MESSAGE = "*(No citation keys found in Markdown input)*"
NO_MATCHES_MESSAGE = "*(No BibTeX entries found matching any citation keys)*"


def extract_citation_keys(text: str) -> Dict[str, CitationKey]:
    """Unique citation markers keyed by their literal text; first sighting wins."""
    keys: Dict[str, CitationKey] = {}
    for m in CITATION_MARKER.finditer(text or ""):
        raw = m.group(1)
        if raw in keys:
            continue
        keys[raw] = CitationKey(
            raw_marker=raw,
            author_token=m.group(2),
            year_token=m.group(3),
            suffix_token=m.group(4),
        )
    logger.info("Found %d unique citation keys in markdown", len(keys))
    return keys


class EntryIndex:
    """Entries grouped by (surname, 2-digit year), each group ordered by title."""

    def __init__(self, entries: Iterable[BibEntry]) -> None:
        self.entries: Dict[str, BibEntry] = {}
        self.by_position: Dict[int, BibEntry] = {}
        groups: Dict[Tuple[str, str], List[BibEntry]] = defaultdict(list)
        for entry in entries:
            self.by_position[entry.position] = entry
            if entry.key in self.entries:
                logger.warning("Duplicate BibTeX key '%s' at position %d", entry.key, entry.position)
            else:
                self.entries[entry.key] = entry
            if not entry.surname or not entry.year_yy:
                logger.debug("Entry '%s' has no surname or year; not indexed", entry.key)
                continue
            groups[(entry.surname, entry.year_yy)].append(entry)
        self.groups: Dict[Tuple[str, str], List[BibEntry]] = {
            k: sorted(v, key=lambda e: (e.title.lower(), e.position)) for k, v in groups.items()
        }

    def __len__(self) -> int:
        return len(self.by_position)

    def get(self, key: str) -> Optional[BibEntry]:
        """First entry carrying ``key``; use ``at`` when keys may repeat."""
        return self.entries.get(key)

    def at(self, position: int) -> BibEntry:
        return self.by_position[position]

    def group(self, surname: str, year_yy: str) -> Optional[List[BibEntry]]:
        return self.groups.get((surname.lower(), year_yy))

    def candidates_for_year(self, year_yy: str) -> List[Tuple[str, List[BibEntry]]]:
        return sorted((s, g) for (s, y), g in self.groups.items() if y == year_yy)


def _fuzzy_group(
    index: EntryIndex, key: CitationKey, max_distance: int
) -> Optional[Tuple[str, int, List[BibEntry]]]:
    best: Optional[Tuple[int, str, List[BibEntry]]] = None
    for surname, group in index.candidates_for_year(key.year_token):
        distance = author_distance(key.author_token, surname)
        if distance > max_distance:
            continue
        # candidates come sorted by surname, so ties keep the first surname
        if best is None or distance < best[0]:
            best = (distance, surname, group)
    if best is None:
        return None
    return best[1], best[0], best[2]


def resolve_citations(
    keys: Dict[str, CitationKey],
    index: EntryIndex,
    max_distance: int = DEFAULT_FUZZY_MAX_DISTANCE,
) -> ResolutionResult:
    """Map each citation key to an entry key.

    Exact (author, year) groups always win. The fuzzy author scan only runs
    when no exact group exists; an out-of-range suffix inside an exact group
    leaves the key unresolved.
    """
    result = ResolutionResult()
    for raw, key in keys.items():
        idx = key.suffix_index
        group = index.group(key.author_token, key.year_token)
        fuzzy = False
        if group is None:
            found = _fuzzy_group(index, key, max_distance)
            if found is not None:
                surname, distance, group = found
                fuzzy = True
                logger.info(
                    "Key '%s' fuzzy-matched author '%s' (distance %d)", raw, surname, distance
                )

        if group is None:
            logger.warning(
                "No candidates found for key '%s' (author: %s, year: %s)",
                raw,
                key.author_token,
                key.year_token,
            )
            result.unresolved.append(raw)
            continue
        if idx >= len(group):
            logger.warning(
                "Suffix '%s' for key '%s' is out of bounds (candidates: %d, index: %d)",
                key.suffix_token,
                raw,
                len(group),
                idx,
            )
            result.unresolved.append(raw)
            continue

        entry = group[idx]
        result.resolved[raw] = entry.key
        result.positions[raw] = entry.position
        if fuzzy:
            result.fuzzy.append(raw)
        logger.debug("Mapped key '%s' to entry '%s' (candidates: %d, index: %d)", raw, entry.key, len(group), idx)
    return result


def order_citation_keys(keys: Iterable[CitationKey]) -> List[CitationKey]:
    return sorted(
        keys,
        key=lambda k: (k.author_token.lower(), k.year_token, k.suffix_index, k.raw_marker),
    )


def _bibliography_sort_key(entry: BibEntry) -> Tuple[str, bool, int, str, int]:
    # undated entries follow the dated ones of the same author
    year = int(entry.year) if entry.year else 0
    return (entry.surname or "", entry.year is None, year, entry.title.lower(), entry.position)


def assemble_bibliography(
    keys: Dict[str, CitationKey], resolution: ResolutionResult, index: EntryIndex
) -> List[BibliographyItem]:
    """One item per distinct entry; the first key in citation order supplies the anchor.

    Entries are identified by source position, so repeated BibTeX keys stay
    distinct.
    """
    seen = set()
    chosen: List[Tuple[BibEntry, BibliographyItem]] = []
    for key in order_citation_keys(keys.values()):
        position = resolution.positions.get(key.raw_marker)
        if position is None or position in seen:
            continue
        seen.add(position)
        entry = index.at(position)
        item = BibliographyItem(
            entry_key=entry.key,
            entry_position=position,
            anchor=key.anchor,
            display_key=key.raw_marker,
        )
        chosen.append((entry, item))
    chosen.sort(key=lambda pair: _bibliography_sort_key(pair[0]))
    logger.info("Prepared %d unique entries for the bibliography", len(chosen))
    return [item for _, item in chosen]


def render_bibliography(
    items: Sequence[BibliographyItem],
    index: EntryIndex,
    formatter: CitationFormatter,
    style: str,
    locale: LocaleArg,
    *,
    had_keys: bool,
) -> str:
    lines = [BIBLIOGRAPHY_HEADING, ""]
    if not items:
        lines.append(NO_MATCHES_MESSAGE if had_keys else NO_KEYS_MESSAGE)
        return "\n".join(lines)

    entries = [index.at(item.entry_position) for item in items]
    texts = formatter.format_bibliography(entries, style, locale)
    if len(texts) != len(items):
        raise FormatError(
            f"Formatter returned {len(texts)} entries for {len(items)} bibliography items"
        )
    for item, text in zip(items, texts):
        lines.append(f'## <a name="{item.anchor}"></a>{text.rstrip()}')
        lines.append("")
    return "\n".join(lines)


def rewrite_links(
    text: str,
    resolution: ResolutionResult,
    link_prefix: str = "",
    anchors: Optional[Dict[int, str]] = None,
) -> str:
    """Replace every marker with a bibliography link or a not-found note.

    ``anchors`` maps entry position -> bibliography anchor so that several markers
    citing one entry share its heading; without it each marker links to its
    own anchor.
    """
    anchors = anchors or {}

    def _replace(m) -> str:
        raw = m.group(1)
        if raw not in resolution.resolved:
            return f"{raw} {NOT_FOUND_NOTE}"
        key = CitationKey(
            raw_marker=raw,
            author_token=m.group(2),
            year_token=m.group(3),
            suffix_token=m.group(4),
        )
        anchor = anchors.get(resolution.positions.get(raw), key.anchor)
        return f"[{key.link_text}]({link_prefix}#{anchor})"

    return CITATION_MARKER.sub(_replace, text or "")


def resolve_and_render(
    document_text: str,
    bibliography_entries: Iterable[BibEntry],
    link_prefix: str = "",
    formatter: Optional[CitationFormatter] = None,
    *,
    style: str = "apa",
    locale: LocaleArg = "en-US",
    max_distance: int = DEFAULT_FUZZY_MAX_DISTANCE,
) -> ProcessingOutput:
    """Resolve citation markers, build the bibliography and rewrite the markers as links.

    Only the formatter can fail; unresolved citations are annotated inline and
    listed in ``unresolved_keys``.
    """
    formatter = formatter or PlainCitationFormatter()
    keys = extract_citation_keys(document_text)
    index = EntryIndex(bibliography_entries)
    resolution = resolve_citations(keys, index, max_distance)

    items = assemble_bibliography(keys, resolution, index)
    bibliography = render_bibliography(
        items, index, formatter, style, locale, had_keys=bool(keys)
    )
    anchors = {item.entry_position: item.anchor for item in items}
    modified = rewrite_links(document_text, resolution, link_prefix, anchors)
    return ProcessingOutput(
        modified_markdown=modified,
        bibliography_markdown=bibliography,
        unresolved_keys=sorted(resolution.unresolved),
        bibliography_items=items,
    )


def process_markdown_and_bibtex(
    markdown_input: str,
    bibtex_input: str,
    link_prefix: str = "",
    style: str = "apa",
    locale: LocaleArg = "en-US",
    *,
    formatter: Optional[CitationFormatter] = None,
    max_distance: int = DEFAULT_FUZZY_MAX_DISTANCE,
) -> ProcessingOutput:
    entries = parse_bibtex(bibtex_input)
    return resolve_and_render(
        markdown_input,
        entries,
        link_prefix,
        formatter,
        style=style,
        locale=locale,
        max_distance=max_distance,
    )
