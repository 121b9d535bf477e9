from __future__ import annotations

from typing import List

from patterns import (
    ASTERISK_RUN,
    BACKTICK_RUN,
    BLOCK_MATH,
    BOLD_ITALIC_TAIL,
    BOLD_TAIL,
    DOUBLE_ASTERISK,
    DOUBLE_TILDE,
    DOUBLE_UNDERSCORE,
    DOUBLE_UNDERSCORE_TAIL,
    FENCE,
    INCOMPLETE_LINK_TARGET,
    INLINE_CODE_TAIL,
    LINK_OR_IMAGE_TAIL,
    STRIKETHROUGH_TAIL,
    is_meaningless,
)

INCOMPLETE_LINK_SUFFIX = f"]({INCOMPLETE_LINK_TARGET})"


def has_complete_code_block(text: str) -> bool:
    fences = len(FENCE.findall(text))
    return fences > 0 and fences % 2 == 0 and "\n" in text


def _inside_open_fence(text: str) -> bool:
    return len(FENCE.findall(text)) % 2 == 1


def _close_link_or_image(text: str) -> str:
    m = LINK_OR_IMAGE_TAIL.search(text)
    if not m:
        return text
    if len(FENCE.findall(text, 0, m.start())) % 2 == 1:
        # the bracket is code
        return text
    if m.group(1).startswith("!"):
        return text[: m.start()]
    return f"{text}{INCOMPLETE_LINK_SUFFIX}"


def _count_single_backticks(text: str) -> int:
    # runs of three or more are fences
    return sum(len(run) for run in BACKTICK_RUN.findall(text) if len(run) < 3)


def _close_inline_code(text: str) -> str:
    if _inside_open_fence(text):
        return text
    m = INLINE_CODE_TAIL.search(text)
    if not m or is_meaningless(m.group(2)):
        return text
    if _count_single_backticks(text) % 2 == 1:
        return f"{text}`"
    return text


def _count_triple_asterisks(text: str) -> int:
    return sum(len(run) // 3 for run in ASTERISK_RUN.findall(text) if len(run) >= 3)


def _close_bold_italic(text: str) -> str:
    if has_complete_code_block(text) or text.startswith("****"):
        return text
    m = BOLD_ITALIC_TAIL.search(text)
    if not m or is_meaningless(m.group(2)):
        return text
    if _count_triple_asterisks(text) % 2 == 1:
        return f"{text}***"
    return text


def _close_pair(text: str, tail, pair, marker: str) -> str:
    m = tail.search(text)
    if not m or is_meaningless(m.group(2)):
        return text
    if len(pair.findall(text)) % 2 == 1:
        return f"{text}{marker}"
    return text


def _close_bold(text: str) -> str:
    if has_complete_code_block(text):
        return text
    return _close_pair(text, BOLD_TAIL, DOUBLE_ASTERISK, "**")


def _close_double_underscore(text: str) -> str:
    if has_complete_code_block(text):
        return text
    return _close_pair(text, DOUBLE_UNDERSCORE_TAIL, DOUBLE_UNDERSCORE, "__")


def _is_list_bullet(text: str, i: int) -> bool:
    line_start = text.rfind("\n", 0, i) + 1
    nxt = text[i + 1] if i + 1 < len(text) else ""
    return text[line_start:i].strip() == "" and nxt in (" ", "\t")


def _single_asterisk_positions(text: str) -> List[int]:
    """Asterisks that can open or close italics.

    A lone ``*`` counts unless escaped or a list bullet. An odd run longer than
    one (``***``) leaves one asterisk over after its pairs.
    """
    positions: List[int] = []
    for m in ASTERISK_RUN.finditer(text):
        start, end = m.start(), m.end()
        if start > 0 and text[start - 1] == "\\":
            start += 1
        length = end - start
        if length == 1:
            if _is_list_bullet(text, start):
                continue
            positions.append(start)
        elif length > 1 and length % 2 == 1:
            positions.append(end - 1)
    return positions


def _close_single_asterisk(text: str) -> str:
    if has_complete_code_block(text):
        return text
    positions = _single_asterisk_positions(text)
    if len(positions) % 2 == 0:
        return text
    if is_meaningless(text[positions[-1] + 1 :]):
        return text
    return f"{text}*"


def _is_word_char(ch: str) -> bool:
    return bool(ch) and (ch.isalnum() or ch == "_")


def _single_underscore_positions(text: str) -> List[int]:
    """Underscores that can open or close emphasis.

    Skips escaped underscores, '__' runs, word-internal underscores and
    anything inside $...$ or $$...$$.
    """
    positions: List[int] = []
    in_inline_math = False
    in_block_math = False
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "$":
            if text.startswith("$$", i):
                in_block_math = not in_block_math
                i += 2
                continue
            if not in_block_math:
                in_inline_math = not in_inline_math
            i += 1
            continue
        if ch == "_":
            prev = text[i - 1] if i > 0 else ""
            nxt = text[i + 1] if i + 1 < n else ""
            if prev == "_" or nxt == "_":
                i += 1
                continue
            if in_inline_math or in_block_math:
                i += 1
                continue
            if _is_word_char(prev) and _is_word_char(nxt):
                i += 1
                continue
            positions.append(i)
        i += 1
    return positions


def _close_single_underscore(text: str) -> str:
    if has_complete_code_block(text):
        return text
    positions = _single_underscore_positions(text)
    if len(positions) % 2 == 0:
        return text
    if is_meaningless(text[positions[-1] + 1 :]):
        return text
    return f"{text}_"


def _close_strikethrough(text: str) -> str:
    return _close_pair(text, STRIKETHROUGH_TAIL, DOUBLE_TILDE, "~~")


def _close_block_math(text: str) -> str:
    openers = list(BLOCK_MATH.finditer(text))
    if len(openers) % 2 == 0:
        return text
    after = text[openers[-1].end() :]
    if "\n" in after and not text.endswith("\n"):
        return f"{text}\n$$"
    return f"{text}$$"


def complete_markdown(text: str) -> str:
    """Close trailing unterminated inline spans in streamed or truncated markdown.

    An incomplete link gets a placeholder target and nothing else is touched;
    an incomplete image is dropped. The remaining rules run in a fixed order
    and each appends at most one closing marker.
    """
    if not text:
        return text or ""

    result = _close_link_or_image(text)
    if result.endswith(INCOMPLETE_LINK_SUFFIX):
        return result

    result = _close_inline_code(result)
    result = _close_bold_italic(result)
    result = _close_bold(result)
    result = _close_double_underscore(result)
    result = _close_single_asterisk(result)
    result = _close_single_underscore(result)
    result = _close_strikethrough(result)
    result = _close_block_math(result)
    return result
