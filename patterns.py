from __future__ import annotations

import re

# Compile patterns once

# Citation markers: @Smith20, @Smith20b
CITATION_MARKER = re.compile(r"(@([A-Za-z]+)(\d{2})([a-z]?))\b")

# BibTeX helpers
BIB_ENTRY_START = re.compile(r"^\s*@\s*([A-Za-z]+)\s*[{(]", re.MULTILINE)
BIB_NON_ENTRY_TYPES = {"comment", "string", "preamble"}
YEAR_DIGITS = re.compile(r"\d+")
AUTHOR_SEPARATOR = re.compile(r"\s+and\s+", re.IGNORECASE)
SURNAME_NOISE = re.compile(r"[{}\s'’`-]+")
PAGE_RANGE = re.compile(r"\s*-{1,2}\s*")

# Incomplete markdown spans (trailing, unterminated)
LINK_OR_IMAGE_TAIL = re.compile(r"(!?\[)([^\]]*)$")
BOLD_ITALIC_TAIL = re.compile(r"(\*\*\*)([^*]*)$")
BOLD_TAIL = re.compile(r"(\*\*)([^*]*)$")
DOUBLE_UNDERSCORE_TAIL = re.compile(r"(__)([^_]*)$")
STRIKETHROUGH_TAIL = re.compile(r"(~~)([^~]*)$")
INLINE_CODE_TAIL = re.compile(r"(`)([^`]*)$")

FENCE = re.compile(r"```")
BACKTICK_RUN = re.compile(r"`+")
ASTERISK_RUN = re.compile(r"\*+")
DOUBLE_ASTERISK = re.compile(r"\*\*")
DOUBLE_UNDERSCORE = re.compile(r"__")
DOUBLE_TILDE = re.compile(r"~~")
BLOCK_MATH = re.compile(r"(?<!\\)\$\$")

# CSL locale files: locales-en-US.xml
CSL_LOCALE_FILE = re.compile(r"^locales-([A-Za-z]{2,3}(?:-[A-Za-z0-9]{2,8})*)\.xml$", re.IGNORECASE)

# Trailing content that carries no text worth closing a span for
MEANINGLESS_CONTENT = re.compile(r"^[\s_~*`]*$")

INCOMPLETE_LINK_TARGET = "streamdown:incomplete-link"


def is_meaningless(content: str) -> bool:
    return not content or bool(MEANINGLESS_CONTENT.match(content))
