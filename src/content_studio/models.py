"""Request types for branded document generation.

``from_dict`` constructors read the camelCase JSON accepted at the HTTP and
CLI boundary and raise DocumentGenerationError for anything the template
cannot render.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .exceptions import DocumentGenerationError

SECTION_TYPES = ("heading", "text", "text-image")
FOOTER_CELL_TYPES = ("none", "text", "page_number", "image")
TOC_LEVELS = (1, 2, 3)
HEX_COLOR = re.compile(r"[0-9A-Fa-f]{6}")


def _require_mapping(value: Any, label: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise DocumentGenerationError(f"{label} must be an object")
    return value


def _require_list(value: Any, label: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise DocumentGenerationError(f"{label} must be a list")
    return value


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


@dataclass
class DocumentMetadata:
    title: str
    category: str
    subtitle: str = ""
    prepared_for: str = ""
    version: str = ""
    author: str = ""
    date: str = ""
    confidential: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentMetadata":
        data = _require_mapping(data, "metadata")
        title = _text(data.get("title")).strip()
        if not title:
            raise DocumentGenerationError("Document metadata requires a title")
        category = _text(data.get("category")).strip()
        if not category:
            raise DocumentGenerationError("Document metadata requires a category")
        return cls(
            title=title,
            category=category,
            subtitle=_text(data.get("subtitle")),
            prepared_for=_text(data.get("preparedFor")),
            version=_text(data.get("version")),
            author=_text(data.get("author")),
            date=_text(data.get("date")),
            confidential=bool(data.get("confidential")),
        )

    def cover_fields(self) -> List[tuple]:
        """Label/value pairs shown on the cover, in display order."""
        return [
            ("Prepared For", self.prepared_for),
            ("Version", self.version),
            ("Author", self.author),
            ("Date", self.date),
        ]


@dataclass
class TocEntry:
    title: str
    page: str
    level: int = 1

    @classmethod
    def flatten(cls, data: Dict[str, Any], level: Optional[int] = None) -> List["TocEntry"]:
        """Return the entry followed by its subsections, one level deeper."""
        data = _require_mapping(data, "table of contents entry")
        if level is None:
            level = data.get("level", 1)
        if level not in TOC_LEVELS:
            raise DocumentGenerationError(f"Table of contents level must be 1-3, got {level!r}")
        entries = [cls(title=_text(data.get("title")), page=_text(data.get("page")), level=level)]
        for sub in _require_list(data.get("subsections"), "subsections"):
            entries.extend(cls.flatten(sub, level=min(level + 1, 3)))
        return entries


@dataclass
class ContentSection:
    type: str
    content: str = ""
    chapter_number: str = ""
    title: str = ""
    subtitle: str = ""
    image_base64: str = ""
    image_mime_type: str = ""
    image_caption: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContentSection":
        data = _require_mapping(data, "section")
        section_type = data.get("type")
        if section_type not in SECTION_TYPES:
            raise DocumentGenerationError(f"Unknown section type {section_type!r}")
        return cls(
            type=section_type,
            content=_text(data.get("content")),
            chapter_number=_text(data.get("chapterNumber")),
            title=_text(data.get("title")),
            subtitle=_text(data.get("subtitle")),
            image_base64=_text(data.get("imageBase64")),
            image_mime_type=_text(data.get("imageMimeType")),
            image_caption=_text(data.get("imageCaption")),
        )


@dataclass
class FooterCell:
    type: str = "none"
    text: str = ""
    image_base64: str = ""
    image_mime: str = ""


@dataclass
class FooterConfig:
    show_separator: bool = False
    separator_color: str = "CCCCCC"
    separator_thickness: int = 1
    left: FooterCell = field(default_factory=FooterCell)
    middle: FooterCell = field(default_factory=FooterCell)
    right: FooterCell = field(default_factory=FooterCell)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["FooterConfig"]:
        if data is None:
            return None
        data = _require_mapping(data, "footer config")
        cells = {}
        for position in ("left", "middle", "right"):
            cell_type = data.get(f"{position}Type") or "none"
            if cell_type not in FOOTER_CELL_TYPES:
                raise DocumentGenerationError(
                    f"Unknown footer cell type {cell_type!r} for {position} cell"
                )
            cells[position] = FooterCell(
                type=cell_type,
                text=_text(data.get(f"{position}Text")),
                image_base64=_text(data.get(f"{position}ImageBase64")),
                image_mime=_text(data.get(f"{position}ImageMime")),
            )
        try:
            thickness = int(data.get("separatorThickness") or 1)
        except (TypeError, ValueError) as exc:
            raise DocumentGenerationError("separatorThickness must be a number") from exc
        color = (_text(data.get("separatorColor")) or "CCCCCC").lstrip("#")
        if not HEX_COLOR.fullmatch(color):
            raise DocumentGenerationError(f"separatorColor must be a hex RGB color, got {color!r}")
        return cls(
            show_separator=bool(data.get("showSeparator")),
            separator_color=color.upper(),
            separator_thickness=max(thickness, 1),
            **cells,
        )


@dataclass
class HeaderConfig:
    label: str = ""
    show_brand: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["HeaderConfig"]:
        if data is None:
            return None
        data = _require_mapping(data, "header config")
        return cls(label=_text(data.get("label")), show_brand=data.get("showBrand", True) is not False)


@dataclass
class BrandedDocumentRequest:
    metadata: DocumentMetadata
    table_of_contents: List[TocEntry] = field(default_factory=list)
    sections: List[ContentSection] = field(default_factory=list)
    logo_base64: str = ""
    cover_header: Optional[HeaderConfig] = None
    toc_header: Optional[HeaderConfig] = None
    content_header: Optional[HeaderConfig] = None
    cover_footer: Optional[FooterConfig] = None
    toc_footer: Optional[FooterConfig] = None
    content_footer: Optional[FooterConfig] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BrandedDocumentRequest":
        data = _require_mapping(data, "request")
        toc: List[TocEntry] = []
        for entry in _require_list(data.get("tableOfContents"), "tableOfContents"):
            toc.extend(TocEntry.flatten(entry))
        return cls(
            metadata=DocumentMetadata.from_dict(data.get("metadata")),
            table_of_contents=toc,
            sections=[
                ContentSection.from_dict(s) for s in _require_list(data.get("sections"), "sections")
            ],
            logo_base64=_text(data.get("logoBase64")),
            cover_header=HeaderConfig.from_dict(data.get("coverHeaderConfig")),
            toc_header=HeaderConfig.from_dict(data.get("tocHeaderConfig")),
            content_header=HeaderConfig.from_dict(data.get("contentHeaderConfig")),
            cover_footer=FooterConfig.from_dict(data.get("coverFooterConfig")),
            toc_footer=FooterConfig.from_dict(data.get("tocFooterConfig")),
            content_footer=FooterConfig.from_dict(data.get("contentFooterConfig")),
        )
