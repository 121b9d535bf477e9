import os
import sys
import pytest

PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from bib_source import load_bibtex, parse_bibtex
from errors import BibParseError

SAMPLE_BIB = r"""
@article{smith20first_key,
  author = {Smith, John and Collaborator, Jane},
  year = {2020},
  title = {First {Great} Paper},
  journal = {Journal of Studies},
  volume = {1},
  number = {1},
  pages = {1-10},
}
@book{doe2021_key,
  author = {Doe, Jane},
  year = {2021},
  title = {A Book on Everything},
  publisher = {Open Books},
  address = {New York},
}
@online{who_key,
  author = {{World Health Organization}},
  date = {2019-05-01},
  title = {Report},
}
"""


def test_parse_bibtex_keeps_source_order_and_identity():
    entries = parse_bibtex(SAMPLE_BIB)
    assert [e.key for e in entries] == ["smith20first_key", "doe2021_key", "who_key"]
    assert [e.position for e in entries] == [0, 1, 2]


def test_parse_bibtex_extracts_surname_year_title():
    smith, doe, who = parse_bibtex(SAMPLE_BIB)
    assert smith.surname == "smith"
    assert smith.year == "2020"
    assert smith.year_yy == "20"
    assert smith.title == "First Great Paper"
    assert [a.family for a in smith.authors] == ["Smith", "Collaborator"]
    assert smith.authors[0].given == "John"
    assert smith.field("journal") == "Journal of Studies"
    assert doe.entry_type == "book"
    assert doe.field("publisher") == "Open Books"
    # biblatex date field, non-standard entry type, braced corporate author
    assert who.year == "2019"
    assert who.entry_type == "online"
    assert who.surname == "worldhealthorganization"


def test_parse_bibtex_first_last_name_order():
    entries = parse_bibtex("@misc{k, author = {J. Smith}, title = {A Work}, year = 2020}")
    assert entries[0].surname == "smith"
    assert entries[0].authors[0].given == "J."


def test_parse_bibtex_entry_without_author_or_year():
    entries = parse_bibtex("@misc{One, title = {First}}")
    assert entries[0].surname is None
    assert entries[0].year is None
    assert entries[0].year_yy is None
    assert entries[0].title == "First"


def test_parse_bibtex_empty_input():
    assert parse_bibtex("") == []
    assert parse_bibtex("   \n") == []


def test_parse_bibtex_ignores_comments_and_strings():
    raw = '@comment{nothing here}\n@string{jos = "Journal of Studies"}\n@article{a, author={Doe, J}, year={2020}, title={T}, journal=jos}'
    entries = parse_bibtex(raw)
    assert [e.key for e in entries] == ["a"]
    assert entries[0].field("journal") == "Journal of Studies"


def test_parse_bibtex_raises_on_dropped_entry():
    raw = "@article{good, author={Doe, J}, year={2020}, title={T}}\n@article{, title = {no key}"
    with pytest.raises(BibParseError):
        parse_bibtex(raw)


def test_load_bibtex_reads_file(tmp_path):
    path = tmp_path / "refs.bib"
    path.write_text(SAMPLE_BIB, encoding="utf-8")
    assert len(load_bibtex(str(path))) == 3
