"""
Inline span codec: **bold**, *italic* and ***bold italic*** inside one line.
Literal asterisks and backslashes in span text are written as ``\\*`` and
``\\\\``.
"""

import re
from typing import List, Optional

from models import InlineSpan

_CONTENT = r"((?:\\.|[^*\\])+)"
SPAN_PATTERN = re.compile(
    r"\\([\\*])"
    rf"|\*\*\*{_CONTENT}\*\*\*"
    rf"|\*\*{_CONTENT}\*\*"
    rf"|\*{_CONTENT}\*"
)
ESCAPE_PATTERN = re.compile(r"([\\*])")
UNESCAPE_PATTERN = re.compile(r"\\([\\*])")


def escape_inline(text: str) -> str:
    return ESCAPE_PATTERN.sub(r"\\\1", text)


def unescape_inline(text: str) -> str:
    return UNESCAPE_PATTERN.sub(r"\1", text)


def parse_inline(text: str) -> List[InlineSpan]:
    """Split a line body into marked spans. Unbalanced markers stay literal."""
    text = text or ""
    spans: List[InlineSpan] = []
    plain: List[str] = []
    position = 0

    def flush_plain():
        joined = "".join(plain)
        plain.clear()
        if joined:
            spans.append(InlineSpan(joined))

    for match in SPAN_PATTERN.finditer(text):
        plain.append(text[position:match.start()])
        position = match.end()
        escaped, both, bold, italic = match.groups()
        if escaped is not None:
            plain.append(escaped)
            continue
        flush_plain()
        if both is not None:
            spans.append(InlineSpan(unescape_inline(both), bold=True, italic=True))
        elif bold is not None:
            spans.append(InlineSpan(unescape_inline(bold), bold=True))
        else:
            spans.append(InlineSpan(unescape_inline(italic), italic=True))

    plain.append(text[position:])
    flush_plain()
    return spans


def serialize_inline(spans: Optional[List[InlineSpan]]) -> str:
    """Inverse of parse_inline."""
    if not spans:
        return ""
    out = []
    for span in spans:
        text = getattr(span, "text", None)
        if not text:
            continue
        text = escape_inline(text)
        if span.bold:
            text = f"**{text}**"
        if span.italic:
            text = f"*{text}*"
        out.append(text)
    return "".join(out)


def spans_text(spans: Optional[List[InlineSpan]]) -> str:
    """Plain text of a span list, marks dropped."""
    return "".join(span.text for span in spans or [] if span.text)
