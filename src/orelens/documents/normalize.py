"""Turn fetched filing documents into plain, single-spaced text."""

from __future__ import annotations

import logging
import re
from html.entities import html5

from bs4 import BeautifulSoup, Comment

from orelens.documents.fetch import RawDocument
from orelens.documents.pdf_text import pdf_to_text

logger = logging.getLogger(__name__)

SKIP_TAGS = ("script", "style", "noscript", "template")

_NAMED_ENTITY_RE = re.compile(r"&([A-Za-z][A-Za-z0-9]*);")
# Tags that only appear once escaped markup (&lt;b&gt;) has been decoded.
_DECODED_TAG_RE = re.compile(r"</?[A-Za-z!][^<>]*>")
_WHITESPACE_RE = re.compile(r"\s+")


def _drop_unknown_entity(m: re.Match[str]) -> str:
    return m.group(0) if f"{m.group(1)};" in html5 else " "


def strip_markup(html: str) -> str:
    html = _NAMED_ENTITY_RE.sub(_drop_unknown_entity, html)
    soup = BeautifulSoup(html, "html.parser")
    for tag in SKIP_TAGS:
        for node in soup.find_all(tag):
            node.decompose()
    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()
    text = soup.get_text(" ")
    return _DECODED_TAG_RE.sub(" ", text)


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize(raw: RawDocument | bytes | str, *, max_chars: int | None = None) -> str:
    """Return markup-free text with single spaces.

    PDF payloads are read with PyMuPDF; other bytes are decoded as UTF-8 with
    replacement. ``max_chars`` truncates the output.
    """
    if isinstance(raw, RawDocument):
        if raw.is_pdf:
            text = pdf_to_text(raw.content)
        else:
            text = strip_markup(raw.content.decode("utf-8", errors="replace"))
    elif isinstance(raw, bytes):
        if raw[:5] == b"%PDF-":
            text = pdf_to_text(raw)
        else:
            text = strip_markup(raw.decode("utf-8", errors="replace"))
    elif isinstance(raw, str):
        text = strip_markup(raw)
    else:
        raise TypeError(f"Cannot normalize {type(raw).__name__}")

    out = collapse_whitespace(text)
    if max_chars is not None and len(out) > max_chars:
        logger.debug("Truncating normalized text from %s to %s chars", len(out), max_chars)
        out = out[:max_chars].rstrip()
    return out
