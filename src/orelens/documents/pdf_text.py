from __future__ import annotations

from dataclasses import dataclass

import fitz  # PyMuPDF


@dataclass(frozen=True)
class PageText:
    page_number: int  # 1-indexed
    text: str


def extract_text_per_page(data: bytes) -> list[PageText]:
    doc = fitz.open(stream=data, filetype="pdf")
    pages: list[PageText] = []
    try:
        for i in range(doc.page_count):
            page = doc.load_page(i)
            text = page.get_text("text") or ""
            pages.append(PageText(page_number=i + 1, text=text.strip()))
    finally:
        doc.close()
    return pages


def pdf_to_text(data: bytes) -> str:
    return "\n".join(p.text for p in extract_text_per_page(data) if p.text)
