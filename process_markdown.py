#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from bib_source import load_bibtex
from citations import resolve_and_render
from errors import ProcessingError
from csl_formatter import make_formatter
from md_complete import complete_markdown
from models import ProcessingOutput, Settings
from utils import settings_from_env

__version__ = "0.1.0"


def _read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _write_text(path: str, content: str) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)


def run_processing(
    markdown_path: str,
    bibtex_path: str,
    settings: Settings,
    *,
    out_path: Optional[str] = None,
    bib_out_path: Optional[str] = None,
    summary: bool = False,
) -> ProcessingOutput:
    markdown_input = _read_text(markdown_path)
    entries = load_bibtex(bibtex_path)

    output = resolve_and_render(
        markdown_input,
        entries,
        settings.link_prefix,
        make_formatter(settings.engine),
        style=settings.style,
        locale=settings.locale,
        max_distance=settings.fuzzy_max_distance,
    )
    modified = output.modified_markdown
    if settings.complete:
        modified = complete_markdown(modified)

    if bib_out_path:
        _write_text(bib_out_path, output.bibliography_markdown)
        final_document = modified
    else:
        final_document = f"{modified}\n\n{output.bibliography_markdown}"

    if out_path:
        _write_text(out_path, final_document)
    else:
        print(final_document)

    if summary:
        stream = sys.stderr if not out_path else sys.stdout
        print(f"\nSummary (engine={settings.engine}, style={settings.style}, locale={settings.locale})", file=stream)
        print(f"bibliography entries: {len(output.bibliography_items)}", file=stream)
        print(f"unresolved keys: {len(output.unresolved_keys)}", file=stream)
        for key in output.unresolved_keys:
            print(f"  {key}", file=stream)

    return output


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Resolve @AuthorYY citations in a markdown file against a BibTeX bibliography."
    )
    parser.add_argument("--markdown", required=True, help="Path to the input markdown file")
    parser.add_argument("--bibtex", help="Path to the input BibTeX file")
    parser.add_argument("--style", help="Citation style: apa, mla, chicago-author-date (or a CSL style with --engine csl)")
    parser.add_argument(
        "--engine",
        choices=["plain", "csl"],
        help="Formatter: built-in plain styles or citeproc-py with CSL styles",
    )
    parser.add_argument("--csl", help="CSL style name or .csl file; implies --engine csl")
    parser.add_argument(
        "--locale",
        help="Locale name (e.g. en-US), a locale JSON file (plain) or a locales-<code>.xml file (csl)",
    )
    parser.add_argument("--link-prefix", help="Prefix for bibliography links, e.g. bib.html")
    parser.add_argument(
        "--fuzzy-max-distance",
        type=int,
        help="Maximum edit distance for fuzzy author matching",
    )
    parser.add_argument("--out", help="Write the combined document here instead of stdout")
    parser.add_argument("--bib-out", help="Write the bibliography to a separate file")
    parser.add_argument(
        "--complete",
        action="store_true",
        help="Close unterminated markdown spans in the rewritten document",
    )
    parser.add_argument(
        "--complete-only",
        action="store_true",
        help="Only close unterminated markdown spans in --markdown and print the result",
    )
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Print bibliography and unresolved-key counts",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with non-zero status if any citation could not be resolved",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    args = parser.parse_args(argv)

    load_dotenv(override=False)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not os.path.isfile(args.markdown):
        print(f"Markdown file not found: {args.markdown}", file=sys.stderr)
        return 2

    if args.complete_only:
        try:
            print(complete_markdown(_read_text(args.markdown)))
        except OSError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        return 0

    if not args.bibtex:
        parser.error("--bibtex is required unless --complete-only is given")
    if not os.path.isfile(args.bibtex):
        print(f"BibTeX file not found: {args.bibtex}", file=sys.stderr)
        return 2

    try:
        settings = settings_from_env()
        overrides = {
            "link_prefix": args.link_prefix,
            "style": args.csl or args.style,
            "engine": "csl" if args.csl else args.engine,
            "locale": args.locale,
            "fuzzy_max_distance": args.fuzzy_max_distance,
        }
        overrides = {k: v for k, v in overrides.items() if v is not None}
        if args.complete:
            overrides["complete"] = True
        settings = Settings(**{**settings.model_dump(), **overrides})
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    try:
        result = run_processing(
            args.markdown,
            args.bibtex,
            settings,
            out_path=args.out,
            bib_out_path=args.bib_out,
            summary=bool(args.summary),
        )
    except (ProcessingError, OSError) as e:
        print(f"Error processing files: {e}", file=sys.stderr)
        return 1

    if args.strict and result.unresolved_keys:
        return 3
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
