import os
import sys
import pytest

PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from md_complete import complete_markdown, has_complete_code_block


@pytest.mark.parametrize(
    "text,expected",
    [
        ("hello **world", "hello **world**"),
        ("see ![alt", "see "),
        ("click [here", "click [here](streamdown:incomplete-link)"),
        ("run `code", "run `code`"),
        ("***strong and emphasised", "***strong and emphasised***"),
        ("__underlined", "__underlined__"),
        ("an *italic", "an *italic*"),
        ("an _italic", "an _italic_"),
        ("~~struck", "~~struck~~"),
        ("$$x^2", "$$x^2$$"),
        ("$$\nx^2", "$$\nx^2\n$$"),
        ("$$\nx^2\n", "$$\nx^2\n$$"),
    ],
)
def test_closes_trailing_spans(text, expected):
    assert complete_markdown(text) == expected


@pytest.mark.parametrize(
    "text",
    [
        "",
        "plain text",
        "hello **world**",
        "[done](https://example.com)",
        "![img](a.png) after",
        "snake_case_name and other_word",
        "`code` and ``double``",
        "* item one\n* item two",
        "~~gone~~ and **bold** and *it* and _it_",
        "$$\na_b\n$$",
    ],
)
def test_leaves_complete_markdown_alone(text):
    assert complete_markdown(text) == text


def test_link_placeholder_skips_other_rules():
    assert complete_markdown("**bold [link") == "**bold [link](streamdown:incomplete-link)"


def test_image_inside_bold_is_dropped_then_bold_closed():
    assert complete_markdown("**see ![al") == "**see **"


def test_meaningless_trailing_content_is_not_closed():
    assert complete_markdown("text **") == "text **"
    assert complete_markdown("text ** _") == "text ** _"
    assert complete_markdown("text ~~ ") == "text ~~ "


def test_list_bullets_do_not_count_as_italic():
    assert complete_markdown("* first\n* second") == "* first\n* second"
    assert complete_markdown("  * nested *emph") == "  * nested *emph*"


def test_four_asterisks_are_left_alone():
    assert complete_markdown("****") == "****"


def test_escaped_and_math_underscores_do_not_count():
    assert complete_markdown(r"file\_name") == r"file\_name"
    assert complete_markdown("inline $a_1$ math") == "inline $a_1$ math"
    assert complete_markdown("block $$a_1 and") == "block $$a_1 and$$"
    assert complete_markdown(r"price \$5 _cheap") == r"price \$5 _cheap_"


def test_inside_open_fence_inline_code_is_not_closed():
    text = "```python\nprint(`x"
    assert complete_markdown(text) == text


def test_complete_code_block_suppresses_emphasis_rules():
    assert has_complete_code_block("```\na**b\n```")
    text = "```\ncode\n```\nthen **bold"
    assert complete_markdown(text) == text


def test_inline_code_after_complete_fence_is_closed():
    assert complete_markdown("```\ncode\n```\nuse `foo") == "```\ncode\n```\nuse `foo`"


@pytest.mark.parametrize(
    "text",
    [
        "hello **world",
        "run `code",
        "***both",
        "an *italic",
        "an _italic",
        "~~struck",
        "$$\nx^2",
        "mixed **bold and ~~strike",
        "*a **b",
    ],
)
def test_completion_is_idempotent(text):
    once = complete_markdown(text)
    assert complete_markdown(once) == once


def test_italic_around_bold_closes_once():
    assert complete_markdown("*a **b") == "*a **b***"
    assert complete_markdown("*a **b***") == "*a **b***"


@pytest.mark.parametrize(
    "text",
    [
        "```\nx = arr[0\n```",
        "```\nsee ![alt\n```",
        "```python\nitems[",
    ],
)
def test_brackets_inside_code_fences_are_left_alone(text):
    assert complete_markdown(text) == text


def test_link_after_complete_fence_still_gets_placeholder():
    text = "```\nx = arr[0]\n```\nsee [docs"
    assert complete_markdown(text) == f"{text}](streamdown:incomplete-link)"
