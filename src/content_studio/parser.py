from __future__ import annotations

import io
import json
import logging
import zipfile
import zlib
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

from lxml import etree

from .exceptions import DocxDecodeError

logger = logging.getLogger(__name__)

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
NS = {"w": W_NS}

COMMENTS_PART = "word/comments.xml"
DOCUMENT_PART = "word/document.xml"

_W_ID = f"{{{W_NS}}}id"
_W_AUTHOR = f"{{{W_NS}}}author"
_W_DATE = f"{{{W_NS}}}date"
_TAG_T = f"{{{W_NS}}}t"
_TAG_P = f"{{{W_NS}}}p"
_TAG_RANGE_START = f"{{{W_NS}}}commentRangeStart"
_TAG_RANGE_END = f"{{{W_NS}}}commentRangeEnd"


def _text_in_element(el: etree._Element) -> str:
    """Return concatenated text for all w:t descendants."""
    parts: List[str] = []
    for t in el.xpath(".//w:t", namespaces=NS):
        if t.text:
            parts.append(t.text)
    return "".join(parts)


def _comment_text(comment: etree._Element) -> str:
    """Join runs within a paragraph directly and paragraphs with newlines."""
    paragraphs = comment.xpath("./w:p", namespaces=NS)
    if not paragraphs:
        return _text_in_element(comment).strip()
    return "\n".join(_text_in_element(p) for p in paragraphs).strip()


@dataclass
class ExtractedComment:
    author: str
    date: str
    comment_text: str
    anchor_text: str = ""
    comment_id: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)


def comments_to_json(comments: List[ExtractedComment], **json_kwargs) -> str:
    return json.dumps([c.to_dict() for c in comments], ensure_ascii=False, **json_kwargs)


class CommentExtractor:
    """Read reviewer comments (and the text they annotate) out of a DOCX."""

    def __init__(self, data: bytes):
        try:
            self._zip = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as exc:
            raise DocxDecodeError(f"Uploaded file is not a valid DOCX archive: {exc}") from exc
        # Uploaded documents are untrusted input. lxml parsers are not shared
        # between threads, so each extractor gets its own.
        self._parser = etree.XMLParser(resolve_entities=False, no_network=True)

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> "CommentExtractor":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def extract(self) -> List[ExtractedComment]:
        comments = self._load_comments()
        if comments:
            self._resolve_anchors(comments)
        return comments

    # --- internal parsing helpers -------------------------------------------------

    def _read_part(self, name: str) -> Optional[etree._Element]:
        try:
            data = self._zip.read(name)
        except KeyError:
            return None
        except (zipfile.BadZipFile, zlib.error, EOFError, RuntimeError, NotImplementedError) as exc:
            # Corrupt, truncated, encrypted or unsupported compression.
            raise DocxDecodeError(f"Cannot read {name} from the DOCX archive: {exc}") from exc
        try:
            return etree.fromstring(data, self._parser)
        except etree.XMLSyntaxError:
            logger.warning("Archive member %s is not well-formed XML", name, exc_info=True)
            return None

    def _load_comments(self) -> List[ExtractedComment]:
        root = self._read_part(COMMENTS_PART)
        if root is None:
            logger.info("No readable %s in document", COMMENTS_PART)
            return []
        comments: List[ExtractedComment] = []
        for comment in root.xpath(".//w:comment", namespaces=NS):
            text = _comment_text(comment)
            if not text:
                continue
            comments.append(
                ExtractedComment(
                    author=comment.get(_W_AUTHOR) or "",
                    date=comment.get(_W_DATE) or "",
                    comment_text=text,
                    comment_id=comment.get(_W_ID),
                )
            )
        return comments

    def _resolve_anchors(self, comments: List[ExtractedComment]) -> None:
        """Fill anchor_text from the text between matching range markers."""
        by_id = {c.comment_id: c for c in comments if c.comment_id is not None}
        if not by_id:
            return
        root = self._read_part(DOCUMENT_PART)
        if root is None:
            return

        open_ranges: Dict[str, List[str]] = {}
        # iter() walks elements in document order, so text lands in every
        # range that is open at that point.
        for el in root.iter():
            tag = el.tag
            if tag == _TAG_T:
                if el.text:
                    for buf in open_ranges.values():
                        buf.append(el.text)
            elif tag == _TAG_P:
                for buf in open_ranges.values():
                    if buf:
                        buf.append("\n")
            elif tag == _TAG_RANGE_START:
                cid = el.get(_W_ID)
                if cid in by_id:
                    open_ranges[cid] = []
            elif tag == _TAG_RANGE_END:
                cid = el.get(_W_ID)
                parts = open_ranges.pop(cid, None)
                if parts is not None:
                    by_id[cid].anchor_text = "".join(parts).strip()

        for cid in open_ranges:
            logger.warning("Comment range %s is never closed; anchor left empty", cid)


def extract_comments(data: bytes) -> List[ExtractedComment]:
    """Return reviewer comments in document order.

    Raises DocxDecodeError when the bytes are not a ZIP archive. A document
    without comments yields an empty list.
    """
    with CommentExtractor(data) as extractor:
        comments = extractor.extract()
    logger.info("Extracted %d reviewer comments", len(comments))
    return comments
