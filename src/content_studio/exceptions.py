class ContentStudioError(Exception):
    """Base class for errors surfaced to callers."""


class DocxDecodeError(ContentStudioError):
    """Raised when uploaded bytes are not a readable DOCX (ZIP) archive."""


class DocumentGenerationError(ContentStudioError):
    """Raised when a branded document cannot be generated as a whole."""


class ImageEmbedError(ContentStudioError):
    """Raised when a single embedded image cannot be decoded or placed."""


class LLMResponseError(ContentStudioError):
    """Raised when the LLM answer is not in the expected shape."""


class UnrecognizedFormatError(ContentStudioError):
    """Raised when an upstream payload matches no known envelope."""
