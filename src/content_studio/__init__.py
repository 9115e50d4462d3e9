"""
Content tooling for sales enablement: clean up AI-generated markdown, pull
content out of upstream response envelopes, read reviewer comments from DOCX
files and generate branded DOCX documents.
"""

from .normalizer import normalize_content
from .parser import ExtractedComment, extract_comments
from .response import extract_response_content, parse_envelope
from .writer import GeneratedDocument, generate_branded_document

__all__ = [
    "ExtractedComment",
    "GeneratedDocument",
    "extract_comments",
    "extract_response_content",
    "generate_branded_document",
    "normalize_content",
    "parse_envelope",
]
