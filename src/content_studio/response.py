"""Pull human-readable content out of upstream AI/workflow payloads.

Upstream services wrap their answer in several envelope shapes. They are
modelled as a small tagged union (plain text, JSON object, JSON array);
anything else is an :class:`UnrecognizedFormatError`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from .exceptions import UnrecognizedFormatError

logger = logging.getLogger(__name__)

CONTENT_FIELDS = ("content", "output", "message", "response", "text")
ARRAY_SEPARATOR = "\n\n---\n\n"
NO_CONTENT = "No valid content found in array."
UNEXTRACTABLE = "Unable to extract content from response."

# Results longer than this that share this many leading characters are
# treated as the same answer delivered twice.
DUPLICATE_PREFIX = 100


@dataclass
class PlainTextEnvelope:
    text: str

    def content(self) -> str:
        return self.text


@dataclass
class ObjectEnvelope:
    data: Dict[str, Any]

    def content(self) -> str:
        found = find_content_field(self.data)
        if found is not None:
            return found
        try:
            return json.dumps(self.data, indent=2, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            logger.warning("Could not serialise response object", exc_info=True)
            return str(self.data)


@dataclass
class ArrayEnvelope:
    items: List[Any]

    def content(self) -> str:
        texts = [extract_response_content(item) for item in self.items]
        texts = [text for text in texts if text and text.strip()]
        unique = deduplicate(texts)
        if not unique:
            return NO_CONTENT
        if len(unique) == 1:
            return unique[0]
        return ARRAY_SEPARATOR.join(unique)


Envelope = Union[PlainTextEnvelope, ObjectEnvelope, ArrayEnvelope]


def _looks_like_json(text: str) -> bool:
    trimmed = text.strip()
    return (trimmed.startswith("{") and trimmed.endswith("}")) or (
        trimmed.startswith("[") and trimmed.endswith("]")
    )


def parse_envelope(payload: Any) -> Envelope:
    """Classify a payload into one of the known envelope variants."""
    if isinstance(payload, str):
        if _looks_like_json(payload):
            try:
                parsed = json.loads(payload)
            except ValueError:
                return PlainTextEnvelope(payload)
            return parse_envelope(parsed)
        return PlainTextEnvelope(payload)
    if isinstance(payload, (list, tuple)):
        return ArrayEnvelope(list(payload))
    if isinstance(payload, dict):
        return ObjectEnvelope(payload)
    raise UnrecognizedFormatError(f"Unsupported payload type: {type(payload).__name__}")


def find_content_field(data: Any) -> Optional[str]:
    """Search nested objects level by level for the first content-like field.

    Every object on a level is checked before any object one level deeper,
    so shallow matches win.
    """
    visited = set()
    level = [data]
    while level:
        next_level: List[Any] = []
        for node in level:
            if id(node) in visited:
                continue
            visited.add(id(node))
            if isinstance(node, dict):
                for field in CONTENT_FIELDS:
                    value = node.get(field)
                    if isinstance(value, str) and value.strip():
                        return value
                children = node.values()
            else:
                children = node
            next_level.extend(child for child in children if isinstance(child, (dict, list, tuple)))
        level = next_level
    return None


def _is_duplicate(text: str, other: str) -> bool:
    if text == other:
        return True
    return (
        len(text) > DUPLICATE_PREFIX
        and len(other) > DUPLICATE_PREFIX
        and text[:DUPLICATE_PREFIX] == other[:DUPLICATE_PREFIX]
    )


def deduplicate(texts: List[str]) -> List[str]:
    unique: List[str] = []
    for text in texts:
        if not any(_is_duplicate(text, seen) for seen in unique):
            unique.append(text)
    return unique


def extract_response_content(payload: Any) -> str:
    """Return a single best-guess content string for any payload."""
    try:
        return parse_envelope(payload).content()
    except UnrecognizedFormatError:
        return UNEXTRACTABLE
    except Exception:
        logger.warning("Response extraction failed; returning raw value", exc_info=True)
        return payload if isinstance(payload, str) else UNEXTRACTABLE
