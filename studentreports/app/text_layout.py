"""Greedy line breaking for mixed Latin/CJK report comments."""

from __future__ import annotations

import logging
import unicodedata
from typing import Callable, List

logger = logging.getLogger(__name__)

MeasureFn = Callable[[str], float]

# Closing punctuation stays on the line of the token before it.
CJK_CLOSING_PUNCTUATION = frozenset("，。、；：！？）」』】》〉”’．…")
# Opening punctuation stays on the line of the token after it.
CJK_OPENING_PUNCTUATION = frozenset("（「『【《〈“‘")

_CJK_RANGES = (
    (0x3040, 0x30FF),  # Hiragana, Katakana
    (0x3400, 0x4DBF),  # CJK Extension A
    (0x4E00, 0x9FFF),  # CJK Unified Ideographs
    (0xAC00, 0xD7AF),  # Hangul syllables
    (0xF900, 0xFAFF),  # CJK Compatibility Ideographs
    (0x20000, 0x2FA1F),
)


def is_cjk(char: str) -> bool:
    code = ord(char)
    return any(start <= code <= end for start, end in _CJK_RANGES)


def tokenize(text: str) -> List[str]:
    """Split one paragraph into breakable tokens.

    Whitespace runs become a single ``" "`` token. Every CJK character is
    its own token, with adjacent CJK punctuation glued on.
    """

    tokens: List[str] = []
    current = ""

    def flush() -> None:
        nonlocal current
        if current:
            tokens.append(current)
            current = ""

    for char in text:
        if char.isspace():
            flush()
            if tokens and tokens[-1] != " ":
                tokens.append(" ")
            continue

        if char in CJK_CLOSING_PUNCTUATION:
            if current:
                current += char
            elif tokens and tokens[-1] != " ":
                tokens[-1] += char
            else:
                current = char
            continue

        if char in CJK_OPENING_PUNCTUATION:
            if not all(existing in CJK_OPENING_PUNCTUATION for existing in current):
                flush()
            current += char
            continue

        if is_cjk(char):
            if current and all(existing in CJK_OPENING_PUNCTUATION for existing in current):
                tokens.append(current + char)
                current = ""
            else:
                flush()
                tokens.append(char)
            continue

        if current and current[-1] in CJK_CLOSING_PUNCTUATION:
            flush()
        current += char

    flush()
    while tokens and tokens[-1] == " ":
        tokens.pop()
    return tokens


def _approximate_width(text: str, font_size: float) -> float:
    width = 0.0
    for char in text:
        wide = unicodedata.east_asian_width(char) in ("W", "F")
        width += font_size if wide else font_size * 0.5
    return width


def make_measure(font_name: str, font_size: float) -> MeasureFn:
    """Return a width function backed by ReportLab font metrics.

    Unregistered fonts fall back to a fixed-advance approximation.
    """

    from reportlab.pdfbase import pdfmetrics

    try:
        pdfmetrics.getFont(font_name)
    except KeyError:
        logger.warning("Font %s is not registered; approximating text widths", font_name)
        return lambda text: _approximate_width(text, font_size)

    return lambda text: pdfmetrics.stringWidth(text, font_name, font_size)


def _wrap_paragraph(paragraph: str, max_width: float, measure: MeasureFn) -> List[str]:
    lines: List[str] = []
    line = ""
    pending_space = False

    for token in tokenize(paragraph):
        if token == " ":
            pending_space = bool(line)
            continue

        candidate = f"{line} {token}" if pending_space and line else line + token
        pending_space = False
        if measure(candidate) <= max_width:
            line = candidate
            continue

        if line:
            lines.append(line)
            line = ""

        if measure(token) <= max_width:
            line = token
            continue

        # Token wider than a whole line: break it between characters.
        for char in token:
            if not line or measure(line + char) <= max_width:
                line += char
            else:
                lines.append(line)
                line = char

    if line or not lines:
        lines.append(line)
    return lines


def wrap_text(text: str, max_width: float, measure: MeasureFn) -> List[str]:
    """Greedily pack ``text`` into lines no wider than ``max_width``.

    Explicit newlines always start a new line. A line only exceeds the
    budget when it holds a single character that is wider on its own.
    """

    if not text:
        return []

    lines: List[str] = []
    for paragraph in text.replace("\r\n", "\n").split("\n"):
        lines.extend(_wrap_paragraph(paragraph, max_width, measure))
    return lines
