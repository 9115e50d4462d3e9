"""Branded DOCX generation: cover page, table of contents and content sections."""

from __future__ import annotations

import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from docx import Document
from docx.document import Document as DocxDocument
from docx.enum.section import WD_SECTION
from docx.enum.text import WD_ALIGN_PARAGRAPH, WD_TAB_ALIGNMENT, WD_TAB_LEADER
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.section import Section
from docx.shared import Inches, Pt, RGBColor
from docx.text.paragraph import Paragraph
from docx.text.run import Run

from .config import Settings, get_settings
from .exceptions import DocumentGenerationError, ImageEmbedError
from .models import (
    BrandedDocumentRequest,
    ContentSection,
    DocumentMetadata,
    FooterCell,
    FooterConfig,
    HeaderConfig,
    TocEntry,
)

logger = logging.getLogger(__name__)

COLORS = {
    "primary": "66FF66",
    "black": "000000",
    "gray": "6B7280",
    "light_gray": "9CA3AF",
    "text_gray": "374151",
}

SUPPORTED_IMAGE_TYPES = {"image/png", "image/jpeg", "image/jpg", "image/gif", "image/bmp"}

# (indent, font size, bold, color) per table-of-contents level.
TOC_STYLES = {
    1: (Inches(0), 13, True, COLORS["black"]),
    2: (Inches(0.3), 11, False, COLORS["black"]),
    3: (Inches(0.6), 10, False, COLORS["gray"]),
}

FOOTER_ALIGNMENT = {
    "left": WD_ALIGN_PARAGRAPH.LEFT,
    "middle": WD_ALIGN_PARAGRAPH.CENTER,
    "right": WD_ALIGN_PARAGRAPH.RIGHT,
}

DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


@dataclass
class GeneratedDocument:
    content: bytes
    filename: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "success": True,
            "document": base64.b64encode(self.content).decode("ascii"),
            "filename": self.filename,
        }


def document_filename(title: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "_", title) + ".docx"


def decode_image(data: str, mime_type: Optional[str] = None) -> bytes:
    """Decode base64 (optionally a data: URL) image data."""
    if data.startswith("data:"):
        header, _, data = data.partition(",")
        if not mime_type:
            mime_type = header[5:].split(";", 1)[0]
    if mime_type and mime_type.lower() not in SUPPORTED_IMAGE_TYPES:
        raise ImageEmbedError(f"Unsupported image type: {mime_type}")
    try:
        return base64.b64decode("".join(data.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageEmbedError(f"Malformed base64 image data: {exc}") from exc


# --- low-level helpers ------------------------------------------------------------


def _add_run(
    paragraph: Paragraph,
    text: str,
    size: Optional[float] = None,
    bold: bool = False,
    italic: bool = False,
    color: Optional[str] = None,
) -> Run:
    run = paragraph.add_run(text)
    if size is not None:
        run.font.size = Pt(size)
    run.bold = bold or None
    run.italic = italic or None
    if color:
        run.font.color.rgb = RGBColor.from_string(color)
    return run


def _add_field(paragraph: Paragraph, instruction: str, size: float, color: str) -> None:
    """Append a complex field (e.g. PAGE, NUMPAGES) Word evaluates on render."""
    run = _add_run(paragraph, "", size=size, color=color)
    begin = OxmlElement("w:fldChar")
    begin.set(qn("w:fldCharType"), "begin")
    instr = OxmlElement("w:instrText")
    instr.set(qn("xml:space"), "preserve")
    instr.text = f" {instruction} "
    separate = OxmlElement("w:fldChar")
    separate.set(qn("w:fldCharType"), "separate")
    placeholder = OxmlElement("w:t")
    placeholder.text = "1"
    end = OxmlElement("w:fldChar")
    end.set(qn("w:fldCharType"), "end")
    for el in (begin, instr, separate, placeholder, end):
        run._r.append(el)


def _remove_paragraph(paragraph: Paragraph) -> None:
    el = paragraph._element
    el.getparent().remove(el)


def _spacing(paragraph: Paragraph, before: float = 0, after: float = 0) -> Paragraph:
    paragraph.paragraph_format.space_before = Pt(before)
    paragraph.paragraph_format.space_after = Pt(after)
    return paragraph


def _embed_picture(paragraph: Paragraph, blob: bytes, width, height=None) -> None:
    try:
        paragraph.add_run().add_picture(io.BytesIO(blob), width=width, height=height)
    except Exception as exc:
        raise ImageEmbedError(f"Unrecognised image data: {exc}") from exc


def _add_image_paragraph(
    container, data: str, mime_type: Optional[str], width, alignment=None
) -> Paragraph:
    """Add a paragraph holding one image; nothing is left behind on failure."""
    blob = decode_image(data, mime_type)
    paragraph = container.add_paragraph()
    if alignment is not None:
        paragraph.alignment = alignment
    try:
        _embed_picture(paragraph, blob, width)
    except ImageEmbedError:
        _remove_paragraph(paragraph)
        raise
    return paragraph


def _set_margins(section: Section) -> None:
    section.top_margin = section.bottom_margin = Inches(1)
    section.left_margin = section.right_margin = Inches(1)


def _text_width(section: Section):
    return section.page_width - section.left_margin - section.right_margin


def _set_bottom_border(cell, color: str, size: int) -> None:
    tc_pr = cell._tc.get_or_add_tcPr()
    borders = OxmlElement("w:tcBorders")
    bottom = OxmlElement("w:bottom")
    bottom.set(qn("w:val"), "single")
    bottom.set(qn("w:sz"), str(size))
    bottom.set(qn("w:space"), "0")
    bottom.set(qn("w:color"), color)
    borders.append(bottom)
    tc_pr.append(borders)


# --- page groups ------------------------------------------------------------------


class BrandedDocumentWriter:
    """Render a BrandedDocumentRequest into a styled DOCX."""

    def __init__(self, request: BrandedDocumentRequest, settings: Optional[Settings] = None):
        self.request = request
        self.settings = settings or get_settings()
        self.doc: DocxDocument = Document()
        normal = self.doc.styles["Normal"].font
        normal.name = "Helvetica"
        normal.size = Pt(12)

    def render(self) -> bytes:
        request = self.request
        cover = self.doc.sections[0]
        _set_margins(cover)
        self._write_cover(request.metadata)
        self._decorate(cover, request.cover_header, request.cover_footer, default_label=None)

        if request.table_of_contents:
            section = self._new_section()
            self._write_toc(section)
            self._decorate(section, request.toc_header, request.toc_footer, "TABLE OF CONTENTS")

        if request.sections:
            section = self._new_section()
            for content_section in request.sections:
                self._write_section(content_section)
            self._decorate(
                section,
                request.content_header,
                request.content_footer,
                request.metadata.category.upper(),
            )

        buffer = io.BytesIO()
        self.doc.save(buffer)
        return buffer.getvalue()

    def _new_section(self) -> Section:
        # A new-page section break terminates the previous page group.
        section = self.doc.add_section(WD_SECTION.NEW_PAGE)
        _set_margins(section)
        return section

    # --- cover --------------------------------------------------------------------

    def _write_cover(self, metadata: DocumentMetadata) -> None:
        doc = self.doc
        if self.request.logo_base64:
            try:
                p = _add_image_paragraph(doc, self.request.logo_base64, None, Inches(1.6))
                _spacing(p, after=20)
            except ImageEmbedError as exc:
                logger.warning("Skipping cover logo: %s", exc)

        if metadata.confidential:
            p = _spacing(doc.add_paragraph(), after=30)
            p.alignment = WD_ALIGN_PARAGRAPH.RIGHT
            _add_run(p, "CONFIDENTIAL", size=10, bold=True, color=COLORS["gray"])
            _add_run(p, " - Internal Use Only", size=9, color=COLORS["light_gray"])

        _spacing(doc.add_paragraph(), before=100)

        p = _spacing(doc.add_paragraph(), after=10)
        _add_run(p, "● ", size=8, color=COLORS["primary"])
        _add_run(p, metadata.category.upper(), size=11, bold=True, color=COLORS["primary"])

        p = _spacing(doc.add_paragraph(), after=10)
        _add_run(p, metadata.title, size=36, bold=True, color=COLORS["primary"])

        if metadata.subtitle:
            p = _spacing(doc.add_paragraph(), after=40)
            _add_run(p, metadata.subtitle, size=16, color=COLORS["gray"])

        _spacing(doc.add_paragraph(), before=50)

        for label, value in metadata.cover_fields():
            if not value:
                continue
            p = _spacing(doc.add_paragraph(), after=2)
            _add_run(p, label.upper(), size=9, color=COLORS["gray"])
            p = _spacing(doc.add_paragraph(), after=10)
            _add_run(p, value, size=12, bold=True, color=COLORS["black"])

    # --- table of contents --------------------------------------------------------

    def _write_toc(self, section: Section) -> None:
        doc = self.doc
        p = _spacing(doc.add_paragraph(), after=30)
        p.alignment = WD_ALIGN_PARAGRAPH.CENTER
        _add_run(p, "Table of ", size=28, bold=True, color=COLORS["black"])
        _add_run(p, "Contents", size=28, bold=True, color=COLORS["primary"])

        width = _text_width(section)
        for entry in self.request.table_of_contents:
            self._write_toc_entry(entry, width)

    def _write_toc_entry(self, entry: TocEntry, width) -> None:
        indent, size, bold, color = TOC_STYLES[entry.level]
        p = _spacing(self.doc.add_paragraph(), after=6)
        p.paragraph_format.left_indent = indent
        p.paragraph_format.tab_stops.add_tab_stop(
            width, WD_TAB_ALIGNMENT.RIGHT, WD_TAB_LEADER.DOTS
        )
        if entry.level == 1:
            _add_run(p, "● ", size=7, color=COLORS["primary"])
        _add_run(p, entry.title, size=size, bold=bold, color=color)
        _add_run(p, f"\t{entry.page}", size=size, color=COLORS["gray"])

    # --- content ------------------------------------------------------------------

    def _write_section(self, section: ContentSection) -> None:
        doc = self.doc
        if section.type == "heading":
            if section.chapter_number or section.title:
                p = _spacing(doc.add_paragraph(), before=20, after=10)
                if section.chapter_number:
                    _add_run(p, f"{section.chapter_number} ", size=24, bold=True, color=COLORS["primary"])
                _add_run(p, section.title, size=24, bold=True, color=COLORS["primary"])
            if section.subtitle:
                p = _spacing(doc.add_paragraph(), after=20)
                _add_run(p, section.subtitle, size=16, color=COLORS["gray"])

        for block in re.split(r"\n\s*\n", section.content or ""):
            if block.strip():
                p = _spacing(doc.add_paragraph(), after=10)
                _add_run(p, block.strip(), size=12, color=COLORS["text_gray"])

        if section.type == "text-image" and section.image_base64:
            try:
                p = _add_image_paragraph(
                    doc,
                    section.image_base64,
                    section.image_mime_type or None,
                    Inches(4),
                    alignment=WD_ALIGN_PARAGRAPH.CENTER,
                )
            except ImageEmbedError as exc:
                logger.warning("Skipping image in section %r: %s", section.title, exc)
                return
            _spacing(p, before=10, after=5)
            if section.image_caption:
                p = _spacing(doc.add_paragraph(), after=15)
                p.alignment = WD_ALIGN_PARAGRAPH.CENTER
                _add_run(p, section.image_caption, size=9, italic=True, color=COLORS["gray"])

    # --- headers and footers ------------------------------------------------------

    def _decorate(
        self,
        section: Section,
        header: Optional[HeaderConfig],
        footer: Optional[FooterConfig],
        default_label: Optional[str],
    ) -> None:
        if header is None and default_label is not None:
            header = HeaderConfig(label=default_label)
        if header is not None:
            self._write_header(section, header)
        section.footer.is_linked_to_previous = False
        if footer is None:
            self._write_default_footer(section)
        else:
            self._write_footer(section, footer)

    def _write_header(self, section: Section, config: HeaderConfig) -> None:
        section.header.is_linked_to_previous = False
        p = section.header.paragraphs[0]
        if config.show_brand:
            _add_run(p, self.settings.brand_name, size=10, bold=True, color=COLORS["black"])
        if config.label:
            prefix = " | " if config.show_brand else ""
            _add_run(p, f"{prefix}{config.label}", size=9, color=COLORS["gray"])

    def _write_default_footer(self, section: Section) -> None:
        p = section.footer.paragraphs[0]
        p.alignment = WD_ALIGN_PARAGRAPH.LEFT
        _add_run(p, self.settings.copyright_text, size=8, color=COLORS["light_gray"])

    def _write_footer(self, section: Section, config: FooterConfig) -> None:
        footer = section.footer
        rows = 2 if config.show_separator else 1
        table = footer.add_table(rows, 3, _text_width(section))
        # Footer content has to end with a paragraph, so the table goes first.
        footer.paragraphs[0]._p.addprevious(table._tbl)

        if config.show_separator:
            row = table.rows[0]
            merged = row.cells[0].merge(row.cells[2])
            _set_bottom_border(merged, config.separator_color, config.separator_thickness * 8)

        cells = table.rows[-1].cells
        for cell, (position, footer_cell) in zip(cells, self._footer_cells(config)):
            p = cell.paragraphs[0]
            p.alignment = FOOTER_ALIGNMENT[position]
            self._write_footer_cell(p, footer_cell)

    @staticmethod
    def _footer_cells(config: FooterConfig) -> Tuple[Tuple[str, FooterCell], ...]:
        return (("left", config.left), ("middle", config.middle), ("right", config.right))

    def _write_footer_cell(self, paragraph: Paragraph, cell: FooterCell) -> None:
        color = COLORS["gray"]
        if cell.type == "text" and cell.text:
            _add_run(paragraph, cell.text, size=8, color=color)
        elif cell.type == "page_number":
            _add_run(paragraph, "Page ", size=8, color=color)
            _add_field(paragraph, "PAGE", 8, color)
            _add_run(paragraph, " of ", size=8, color=color)
            _add_field(paragraph, "NUMPAGES", 8, color)
        elif cell.type == "image" and cell.image_base64:
            try:
                blob = decode_image(cell.image_base64, cell.image_mime or None)
                _embed_picture(paragraph, blob, Pt(45), Pt(18))
            except ImageEmbedError as exc:
                logger.warning("Skipping footer image: %s", exc)


def generate_branded_document(
    request: BrandedDocumentRequest, settings: Optional[Settings] = None
) -> GeneratedDocument:
    """Render the request; any failure other than a skipped image is fatal."""
    logger.info(
        "Generating document %r (confidential=%s, sections=%d, toc entries=%d)",
        request.metadata.title,
        request.metadata.confidential,
        len(request.sections),
        len(request.table_of_contents),
    )
    try:
        content = BrandedDocumentWriter(request, settings).render()
    except DocumentGenerationError:
        raise
    except Exception as exc:
        raise DocumentGenerationError(f"Failed to generate document: {exc}") from exc
    logger.info("Document %r generated (%d bytes)", request.metadata.title, len(content))
    return GeneratedDocument(content=content, filename=document_filename(request.metadata.title))


def generate_from_dict(data: Dict, settings: Optional[Settings] = None) -> GeneratedDocument:
    return generate_branded_document(BrandedDocumentRequest.from_dict(data), settings)
