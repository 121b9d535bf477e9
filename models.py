from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from utils import make_anchor, make_link_text, suffix_to_index


class CitationKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    raw_marker: str = Field(..., description="Literal marker text, e.g. @Smith20a")
    author_token: str
    year_token: str = Field(..., min_length=2, max_length=2)
    suffix_token: str = Field(default="", max_length=1)

    @property
    def suffix_index(self) -> int:
        return suffix_to_index(self.suffix_token)

    @property
    def anchor(self) -> str:
        return make_anchor(self.author_token, self.year_token, self.suffix_token)

    @property
    def link_text(self) -> str:
        return make_link_text(self.author_token, self.year_token, self.suffix_token)


class PersonName(BaseModel):
    model_config = ConfigDict(frozen=True)

    given: str = ""
    family: str = ""

    def initials(self) -> str:
        parts = [p for p in self.given.replace("-", " ").split() if p]
        return " ".join(f"{p[0]}." for p in parts)

    def given_first(self) -> str:
        return f"{self.given} {self.family}".strip()


class BibEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="Canonical identity (BibTeX citation key)")
    entry_type: str = "misc"
    position: int = Field(..., ge=0, description="Order in the source collection")
    authors: List[PersonName] = Field(default_factory=list)
    editors: List[PersonName] = Field(default_factory=list)
    surname: Optional[str] = Field(default=None, description="Normalized first-author surname")
    year: Optional[str] = Field(default=None, description="Year as written, e.g. 2020")
    year_yy: Optional[str] = Field(default=None, description="Last two digits of year")
    title: str = ""
    fields: Dict[str, str] = Field(default_factory=dict)

    def field(self, name: str, default: str = "") -> str:
        return self.fields.get(name.lower(), default)


class BibliographyItem(BaseModel):
    entry_key: str
    entry_position: int = Field(..., description="Position of the entry in the source collection")
    anchor: str
    display_key: str


class ResolutionResult(BaseModel):
    resolved: Dict[str, str] = Field(default_factory=dict, description="raw marker -> entry key")
    positions: Dict[str, int] = Field(default_factory=dict, description="raw marker -> entry position")
    unresolved: List[str] = Field(default_factory=list)
    fuzzy: List[str] = Field(default_factory=list, description="markers resolved by fuzzy author match")


class ProcessingOutput(BaseModel):
    modified_markdown: str
    bibliography_markdown: str
    unresolved_keys: List[str] = Field(default_factory=list)
    bibliography_items: List[BibliographyItem] = Field(default_factory=list)


class LocaleTerms(BaseModel):
    name: str
    and_word: str = "and"
    no_date: str = "n.d."
    editor: str = "ed."
    editors: str = "eds."
    pages_prefix: str = "pp."
    volume_prefix: str = "vol."
    number_prefix: str = "no."


class Settings(BaseModel):
    link_prefix: str = ""
    style: str = "apa"
    locale: str = "en-US"
    engine: Literal["plain", "csl"] = "plain"
    fuzzy_max_distance: int = Field(default=10, ge=0)
    complete: bool = False
