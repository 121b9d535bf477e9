from __future__ import annotations

import os
from typing import List, Optional

from bibtexparser.latexenc import latex_to_unicode
from rapidfuzz.distance import Levenshtein

from patterns import AUTHOR_SEPARATOR, PAGE_RANGE, SURNAME_NOISE, YEAR_DIGITS


def suffix_to_index(suffix: str) -> int:
    """'' and 'a' -> 0, 'b' -> 1, ... Anything below 'a' saturates at 0."""
    if not suffix:
        return 0
    return max(0, ord(suffix[0]) - ord("a"))


def make_anchor(author: str, year: str, suffix: str = "") -> str:
    base = f"{author}{year}".lower()
    if suffix and suffix != "a":
        return f"{base}{suffix}"
    return base


def make_link_text(author: str, year: str, suffix: str = "") -> str:
    if suffix and suffix != "a":
        return f"{author}{year}{suffix}"
    return f"{author}{year}"


def normalize_surname(raw: str) -> str:
    return SURNAME_NOISE.sub("", raw).lower()


def extract_year(raw: str) -> Optional[str]:
    # 'year' is usually plain digits; biblatex 'date' looks like 2020-05-01
    if not raw:
        return None
    m = YEAR_DIGITS.search(raw)
    if not m:
        return None
    return m.group(0)


def year_to_yy(year: Optional[str]) -> Optional[str]:
    if not year or len(year) < 2:
        return None
    return year[-2:]


def clean_latex(value: str) -> str:
    if not value:
        return ""
    s = latex_to_unicode(value)
    s = s.replace("{", "").replace("}", "")
    return " ".join(s.split())


def split_authors(raw: str) -> List[str]:
    """Split a BibTeX name list on ' and ' outside of braces."""
    if not raw:
        return []
    names: List[str] = []
    depth = 0
    buf: List[str] = []
    i = 0
    text = " ".join(raw.split())
    while i < len(text):
        ch = text[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth = max(0, depth - 1)
        elif depth == 0:
            m = AUTHOR_SEPARATOR.match(text, i)
            if m and ch.isspace():
                names.append("".join(buf).strip())
                buf = []
                i = m.end()
                continue
        buf.append(ch)
        i += 1
    names.append("".join(buf).strip())
    return [n for n in names if n]


def author_distance(author_token: str, surname: str) -> int:
    return Levenshtein.distance(author_token.lower(), surname.lower())


def en_dash_pages(pages: str) -> str:
    return PAGE_RANGE.sub("–", pages.strip())


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def settings_from_env():
    """Build Settings from BIB_* environment variables (load .env first)."""
    from models import Settings

    values = {}
    prefix = os.getenv("BIB_LINK_PREFIX")
    if prefix is not None:
        values["link_prefix"] = prefix.strip()
    style = os.getenv("BIB_STYLE", "").strip()
    if style:
        values["style"] = style
    locale = os.getenv("BIB_LOCALE", "").strip()
    if locale:
        values["locale"] = locale
    engine = os.getenv("BIB_ENGINE", "").strip().lower()
    if engine:
        values["engine"] = engine
    distance = os.getenv("BIB_FUZZY_MAX_DISTANCE", "").strip()
    if distance:
        values["fuzzy_max_distance"] = distance
    values["complete"] = _env_flag("BIB_COMPLETE_MARKDOWN")
    return Settings(**values)
