"""Cleanup of AI-generated markdown before it is displayed or stored."""

from __future__ import annotations

import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)


FENCED_FRONT_MATTER = re.compile(
    r"\A\s*```(?:markdown|md|ya?ml)?[ \t]*\n"
    r"---[ \t]*\n(?:[A-Za-z_][\w-]*[ \t]*:[^\n]*\n)+---[ \t]*\n"
    r"\s*```[ \t]*(?:\n|\Z)",
    re.IGNORECASE,
)

# Every line of the block must be a key: value pair so that thematic breaks
# in the body are never mistaken for front-matter delimiters.
PLAIN_FRONT_MATTER = re.compile(
    r"\A\s*---[ \t]*\n(?:[A-Za-z_][\w-]*[ \t]*:[^\n]*\n)+---[ \t]*(?:\n|\Z)"
)

METADATA_LINE = re.compile(
    r"\A\s*(?:title|meta_description|meta|keywords|description)[ \t]*:[^\n]*(?:\n|\Z)",
    re.IGNORECASE,
)

FENCE_OPENER = re.compile(r"^```[ \t]*(markdown|md|text)?[ \t]*$", re.IGNORECASE)

# Applied in order with &amp; first, so "&amp;lt;" decodes all the way to "<".
HTML_ENTITIES = (
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&nbsp;", " "),
)

LITERAL_ESCAPE = re.compile(r"\\(r\\n|n|t|r)")
LITERAL_ESCAPES = {
    "r\\n": "\n",
    "n": "\n",
    "t": "\t",
    "r": "\r",
}

EXCESS_NEWLINES = re.compile(r"\n{4,}")


def strip_front_matter(content: str) -> str:
    """Remove leading front-matter blocks and standalone metadata lines."""
    content = FENCED_FRONT_MATTER.sub("", content, count=1)
    content = PLAIN_FRONT_MATTER.sub("", content, count=1)
    while True:
        stripped = METADATA_LINE.sub("", content, count=1)
        if stripped == content:
            return content
        content = stripped


def unwrap_code_fence(content: str) -> Optional[str]:
    """Return the interior of a fence that wraps the whole content, else None.

    The opening fence may be untagged or tagged markdown/md/text. The first
    bare closing fence after it has to be the last line; a fence that closes
    earlier means the content merely contains a code block.
    """
    lines = content.strip().split("\n")
    if len(lines) < 2 or not FENCE_OPENER.match(lines[0].strip()):
        return None
    for index in range(1, len(lines)):
        if lines[index].strip() == "```":
            if index == len(lines) - 1:
                return "\n".join(lines[1:index])
            return None
    return None


def decode_html_entities(content: str) -> str:
    for entity, char in HTML_ENTITIES:
        content = content.replace(entity, char)
    return content


def decode_literal_escapes(content: str) -> str:
    return LITERAL_ESCAPE.sub(lambda m: LITERAL_ESCAPES[m.group(1)], content)


def normalize_whitespace(content: str) -> str:
    content = content.replace("\r\n", "\n")
    content = EXCESS_NEWLINES.sub("\n\n", content)
    return content.strip()


def normalize_content(content: str) -> str:
    """Strip generation artifacts from markdown.

    Best effort: any failure is logged and the input is returned untouched.
    """
    if not content:
        return content
    try:
        cleaned = strip_front_matter(content)
        unwrapped = unwrap_code_fence(cleaned)
        if unwrapped is not None:
            cleaned = strip_front_matter(unwrapped)
        cleaned = decode_html_entities(cleaned)
        cleaned = decode_literal_escapes(cleaned)
        return normalize_whitespace(cleaned)
    except Exception:
        logger.warning("Content normalization failed; returning input unchanged", exc_info=True)
        return content
