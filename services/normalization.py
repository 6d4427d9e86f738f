from __future__ import annotations

import re

LINE_ENDING_RE = re.compile(r"\r\n?")
INLINE_SPACE_RE = re.compile(r"[^\S\n]+")
SPACE_AROUND_NEWLINE_RE = re.compile(r" ?\n ?")
NEWLINE_RUN_RE = re.compile(r"\n+")
QUOTE_CHARS = ("'", '"')


def _strip_wrapping_quotes(text: str) -> str:
    # Strips every wrapping layer, not just the outermost: with a single pass
    # normalize_text("\"'a'\"") would differ from normalizing it twice.
    while len(text) >= 2 and text[0] in QUOTE_CHARS and text[0] == text[-1]:
        text = text[1:-1].strip()
    return text


def normalize_text(text: str | None) -> str:
    """Canonical form of a comment, used as a join key across re-serialized copies.

    Line endings become ``\\n``, inline whitespace runs become one space, blank
    lines are collapsed, and surrounding whitespace and wrapping quotes are removed.
    """
    clean = LINE_ENDING_RE.sub("\n", str(text or ""))
    clean = INLINE_SPACE_RE.sub(" ", clean)
    clean = SPACE_AROUND_NEWLINE_RE.sub("\n", clean)
    clean = NEWLINE_RUN_RE.sub("\n", clean)
    return _strip_wrapping_quotes(clean.strip())
