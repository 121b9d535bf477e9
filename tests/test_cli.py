import os
import sys
import pytest

PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from process_markdown import main

BIB = """
@book{doe2021_key,
  author = {Doe, Jane},
  year = {2021},
  title = {A Book on Everything},
  publisher = {Open Books},
}
"""


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    for name in ("BIB_LINK_PREFIX", "BIB_STYLE", "BIB_LOCALE", "BIB_FUZZY_MAX_DISTANCE", "BIB_COMPLETE_MARKDOWN", "BIB_ENGINE"):
        monkeypatch.delenv(name, raising=False)
    # keep load_dotenv from picking up a developer's .env
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def inputs(tmp_path):
    md = tmp_path / "doc.md"
    md.write_text("As argued by @Doe21, see also @Ghost99.", encoding="utf-8")
    bib = tmp_path / "refs.bib"
    bib.write_text(BIB, encoding="utf-8")
    return str(md), str(bib)


def test_cli_writes_combined_document(inputs, tmp_path):
    md, bib = inputs
    out = tmp_path / "out" / "result.md"
    code = main(["--markdown", md, "--bibtex", bib, "--link-prefix", "bib.html", "--out", str(out)])
    assert code == 0
    content = out.read_text(encoding="utf-8")
    body, bibliography = content.split("\n\n", 1)
    assert body == "As argued by [Doe21](bib.html#doe21), see also @Ghost99 [Reference Not Found]."
    assert bibliography.startswith("# Bibliography")
    assert '## <a name="doe21"></a>Doe, J. (2021). *A Book on Everything*. Open Books.' in bibliography


def test_cli_separate_bibliography_file(inputs, tmp_path):
    md, bib = inputs
    out = tmp_path / "doc_out.md"
    bib_out = tmp_path / "bib.md"
    code = main(["--markdown", md, "--bibtex", bib, "--out", str(out), "--bib-out", str(bib_out)])
    assert code == 0
    assert "# Bibliography" not in out.read_text(encoding="utf-8")
    assert bib_out.read_text(encoding="utf-8").startswith("# Bibliography")


def test_cli_prints_to_stdout(inputs, capsys):
    md, bib = inputs
    assert main(["--markdown", md, "--bibtex", bib]) == 0
    captured = capsys.readouterr()
    assert "[Doe21](#doe21)" in captured.out
    assert "# Bibliography" in captured.out


def test_cli_strict_fails_on_unresolved(inputs, tmp_path):
    md, bib = inputs
    code = main(["--markdown", md, "--bibtex", bib, "--out", str(tmp_path / "o.md"), "--strict"])
    assert code == 3


def test_cli_missing_input_file(tmp_path, capsys):
    code = main(["--markdown", str(tmp_path / "nope.md"), "--bibtex", str(tmp_path / "nope.bib")])
    assert code == 2
    assert "not found" in capsys.readouterr().err


def test_cli_unknown_style_is_an_error(inputs, capsys):
    md, bib = inputs
    code = main(["--markdown", md, "--bibtex", bib, "--style", "no-such-style"])
    assert code == 1
    assert "no-such-style" in capsys.readouterr().err


def test_cli_style_from_environment(inputs, tmp_path, monkeypatch):
    md, bib = inputs
    monkeypatch.setenv("BIB_STYLE", "mla")
    out = tmp_path / "mla.md"
    assert main(["--markdown", md, "--bibtex", bib, "--out", str(out)]) == 0
    assert "Doe, Jane. *A Book on Everything*. Open Books, 2021." in out.read_text(encoding="utf-8")


def test_cli_complete_only(tmp_path, capsys):
    md = tmp_path / "partial.md"
    md.write_text("streaming **bold", encoding="utf-8")
    assert main(["--markdown", str(md), "--complete-only"]) == 0
    assert capsys.readouterr().out.strip() == "streaming **bold**"


def test_cli_complete_flag_applies_to_rewritten_document(tmp_path):
    md = tmp_path / "partial.md"
    md.write_text("Per @Doe21 this is **important", encoding="utf-8")
    bib = tmp_path / "refs.bib"
    bib.write_text(BIB, encoding="utf-8")
    out = tmp_path / "o.md"
    assert main(["--markdown", str(md), "--bibtex", str(bib), "--out", str(out), "--complete"]) == 0
    assert out.read_text(encoding="utf-8").startswith("Per [Doe21](#doe21) this is **important**\n\n")


MINIMAL_CSL = """<?xml version="1.0" encoding="utf-8"?>
<style xmlns="http://purl.org/net/xbiblio/csl" class="in-text" version="1.0">
  <info><title>Minimal</title><id>minimal</id><updated>2024-01-01T00:00:00+00:00</updated></info>
  <citation><layout><text variable="title"/></layout></citation>
  <bibliography><layout><text variable="title"/></layout></bibliography>
</style>
"""


def test_cli_csl_style_file(inputs, tmp_path):
    md, bib = inputs
    style = tmp_path / "minimal.csl"
    style.write_text(MINIMAL_CSL, encoding="utf-8")
    out = tmp_path / "csl.md"
    assert main(["--markdown", md, "--bibtex", bib, "--csl", str(style), "--out", str(out)]) == 0
    assert '## <a name="doe21"></a>A Book on Everything' in out.read_text(encoding="utf-8")


def test_cli_csl_unknown_locale_is_an_error(inputs, tmp_path, capsys):
    md, bib = inputs
    style = tmp_path / "minimal.csl"
    style.write_text(MINIMAL_CSL, encoding="utf-8")
    code = main(["--markdown", md, "--bibtex", bib, "--csl", str(style), "--locale", "locales-xx-XX.xml"])
    assert code == 1
    assert "xx-XX" in capsys.readouterr().err
