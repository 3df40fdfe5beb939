"""Response headers for file downloads."""

from __future__ import annotations

import re
import unicodedata
from pathlib import PurePath
from urllib.parse import quote

_FALLBACK_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9 ._-]")
_REPEATED_SEPARATORS = re.compile(r"([ _])[ _]+")


def ascii_filename(filename: str) -> str:
    """Return an ASCII-only stand-in for ``filename`` keeping its extension."""

    decomposed = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    fallback = _FALLBACK_UNSAFE_CHARS.sub("", decomposed)
    fallback = _REPEATED_SEPARATORS.sub(r"\1", fallback).strip(" _-")
    if not fallback or fallback.startswith("."):
        return f"download{PurePath(filename).suffix}"
    return fallback


def content_disposition(filename: str, disposition: str = "attachment") -> str:
    """Build a ``Content-Disposition`` value that survives non-Latin names.

    Header values are sent as latin-1, so the plain ``filename`` carries an
    ASCII fallback and ``filename*`` the UTF-8 name (RFC 5987).
    """

    return f"{disposition}; filename=\"{ascii_filename(filename)}\"; filename*=UTF-8''{quote(filename, safe='')}"
