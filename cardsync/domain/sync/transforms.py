"""Content transforms applied to card fields before they reach the note store.

Order matters: LaTeX delimiters are converted first, then internal links,
then the Markdown subset. The Markdown step leaves LaTeX spans and HTML
tags produced by the earlier steps untouched.
"""

import re
from typing import Callable, List, Optional
from urllib.parse import quote

DISPLAY_MATH_PATTERN = re.compile(r"(?<!\\)\$\$(.+?)(?<!\\)\$\$", re.DOTALL)
INLINE_MATH_PATTERN = re.compile(r"(?<![\\$])\$(?!\$)(?!\s)(.+?)(?<![\s\\$])\$(?!\$)")

INTERNAL_LINK_PATTERN = re.compile(r"(?<!!)\[\[([^\]|#]*)(?:#([^\]|]+))?(?:\|([^\]]+))?\]\]")

PROTECTED_PATTERN = re.compile(
    r"\\\[.*?\\\]"  # \[ display \]
    r"|\\\(.*?\\\)"  # \( inline \)
    r"|\$\$.*?\$\$"
    r"|(?<!\\)\$[^$\n]+?\$"
    r"|<[^>\n]+>",
    re.DOTALL,
)
MARKDOWN_LINK_PATTERN = re.compile(r"(?<!!)\[([^\]\n]+)\]\(([^)\s]+)\)")
BOLD_PATTERN = re.compile(r"\*\*(.+?)\*\*")
ITALIC_PATTERN = re.compile(r"(?<![\w*])\*(?![\s*])(.+?)(?<![\s*])\*(?![\w*])|(?<![\w_])_(?![\s_])(.+?)(?<![\s_])_(?![\w_])")
NEWLINE_PATTERN = re.compile(r"\n(?!<br>)")

BLANK_PATTERN = re.compile(r"(?<![\w\\])____(?!\w)")

PLACEHOLDER = "\x00{}\x00"
PLACEHOLDER_PATTERN = re.compile(r"\x00(\d+)\x00")


def convert_latex(text: str) -> str:
    """Convert ``$$...$$`` to ``\\[...\\]`` and ``$...$`` to ``\\(...\\)``."""
    if not text:
        return ""
    text = DISPLAY_MATH_PATTERN.sub(lambda m: f"\\[{m.group(1)}\\]", text)
    return INLINE_MATH_PATTERN.sub(lambda m: f"\\({m.group(1)}\\)", text)


def _link_target(target: str, source_path: Optional[str]) -> str:
    target = target.strip()
    if not target and source_path:
        # [[#Heading]] points into the note itself
        target = source_path
    if target.lower().endswith(".md"):
        target = target[:-3]
    return target


def convert_internal_links(text: str, vault_name: str, source_path: Optional[str] = None) -> str:
    """
    Rewrite ``[[target]]``, ``[[target|alias]]`` and ``[[target#heading]]`` into
    ``obsidian://open`` deep links. Image embeds (``![[...]]``) are left alone.

    Args:
        text (str): Field text
        vault_name (str): Vault used in the deep link
        source_path (Optional[str]): Path of the note holding the block, used for
            links to a heading of the same note
    """
    if not text:
        return ""

    def replace(match: re.Match) -> str:
        target = _link_target(match.group(1), source_path)
        heading = (match.group(2) or "").strip()
        alias = (match.group(3) or "").strip()

        file_param = f"{target}#{heading}" if heading else target
        if alias:
            label = alias
        elif heading and match.group(1).strip():
            label = f"{match.group(1).strip()} > {heading}"
        else:
            label = heading or target
        href = f"obsidian://open?vault={quote(vault_name, safe='')}&file={quote(file_param, safe='')}"
        return f'<a href="{href}">{label}</a>'

    return INTERNAL_LINK_PATTERN.sub(replace, text)


def _protect(text: str, store: List[str]) -> str:
    def keep(match: re.Match) -> str:
        store.append(match.group(0))
        return PLACEHOLDER.format(len(store) - 1)

    return PROTECTED_PATTERN.sub(keep, text)


def _restore(text: str, store: List[str]) -> str:
    return PLACEHOLDER_PATTERN.sub(lambda m: store[int(m.group(1))], text)


def _emphasis(tag: str) -> Callable[[re.Match], str]:
    def wrap(match: re.Match) -> str:
        inner = next(group for group in match.groups() if group is not None)
        return f"<{tag}>{inner}</{tag}>"

    return wrap


def markdown_to_html(text: str) -> str:
    """Convert Markdown links, bold, italic and line breaks to HTML."""
    if not text:
        return ""

    store: List[str] = []
    html = _protect(text, store)

    def link(match: re.Match) -> str:
        store.append(f'<a href="{match.group(2)}">{match.group(1)}</a>')
        return PLACEHOLDER.format(len(store) - 1)

    html = MARKDOWN_LINK_PATTERN.sub(link, html)
    html = BOLD_PATTERN.sub(_emphasis("b"), html)
    html = ITALIC_PATTERN.sub(_emphasis("i"), html)
    html = NEWLINE_PATTERN.sub("<br>", html)
    return _restore(html, store)


def build_cloze_text(question_html: str, answer_html: str) -> str:
    """Place the answer as cloze deletion ``{{c1::...}}`` into the question.

    The first unescaped ``____`` is replaced; without one the deletion is appended.
    """
    deletion = f"{{{{c1::{answer_html}}}}}"
    if BLANK_PATTERN.search(question_html):
        return BLANK_PATTERN.sub(lambda _: deletion, question_html, count=1)
    return f"{question_html} {deletion}".strip()
