from pathlib import Path
from typing import Any, Optional

import markdown
from fastapi import Body, FastAPI, File, Form, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response

from .config import configure_logging, get_settings
from .exceptions import DocumentGenerationError, DocxDecodeError, LLMResponseError
from .llm_review import CommentReviewer, process_docx_review
from .normalizer import normalize_content
from .parser import extract_comments
from .response import extract_response_content
from .writer import DOCX_MIME_TYPE, generate_from_dict

settings = get_settings()
configure_logging(settings.log_level)

app = FastAPI(title="Content Studio")


def _error(status_code: int, message: str, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "error_type": error_type},
    )


def _unexpected(exc: Exception) -> JSONResponse:
    return _error(500, f"Unexpected error: {exc}", "unknown_error")


async def _read_docx_upload(file: UploadFile):
    """Return (content, None) for a valid upload or (None, error response)."""
    content = await file.read()
    file_size = len(content)
    limit = get_settings().max_file_size
    if file_size > limit:
        return None, _error(
            400,
            f"File is too large ({file_size / 1024 / 1024:.1f}MB). "
            f"The limit is {limit / 1024 / 1024:.0f}MB.",
            "file_too_large",
        )
    if not file.filename or not file.filename.lower().endswith(".docx"):
        return None, _error(400, "Only DOCX files are supported.", "invalid_file_type")
    return content, None


@app.post("/api/normalize")
async def api_normalize(payload: dict = Body(...)):
    content = payload.get("content")
    if not isinstance(content, str):
        return _error(400, "'content' must be a string.", "invalid_request")
    try:
        normalized = normalize_content(content)
        html = markdown.markdown(normalized)
    except Exception as exc:
        return _unexpected(exc)
    return {"content": normalized, "html": html}


@app.post("/api/extract-content")
async def api_extract_content(payload: Any = Body(...)):
    return {"content": extract_response_content(payload)}


@app.post("/api/docx/comments")
async def api_docx_comments(file: UploadFile = File(...)):
    """Return the reviewer comments found in an uploaded DOCX."""
    content, error = await _read_docx_upload(file)
    if error is not None:
        return error
    try:
        comments = await run_in_threadpool(extract_comments, content)
    except DocxDecodeError as exc:
        return _error(400, f"Could not read the document: {exc}", "parse_error")
    except Exception as exc:
        return _unexpected(exc)

    body = {
        "success": True,
        "count": len(comments),
        "comments": [c.to_dict() for c in comments],
    }
    if not comments:
        body["message"] = (
            "No reviewer comments were found. Make sure the document contains "
            "comments, not just tracked changes."
        )
    return body


@app.post("/api/docx/review")
async def api_docx_review(
    file: UploadFile = File(...),
    content: str = Form(...),
    model: Optional[str] = Form(None),
):
    """Apply the reviewer comments in an uploaded DOCX to ``content``."""
    data, error = await _read_docx_upload(file)
    if error is not None:
        return error
    if not content.strip():
        return _error(400, "There is no content to review.", "invalid_request")

    try:
        reviewer = CommentReviewer(model=model or get_settings().gemini_model)
    except RuntimeError as exc:
        return _error(502, f"The LLM review is unavailable: {exc}", "llm_error")

    # Gemini calls block, so the review runs off the event loop.
    try:
        outcome = await run_in_threadpool(process_docx_review, data, content, reviewer)
    except DocxDecodeError as exc:
        return _error(400, f"Could not read the document: {exc}", "parse_error")
    except LLMResponseError as exc:
        return _error(502, f"The LLM review failed: {exc}", "llm_error")
    except Exception as exc:
        return _unexpected(exc)

    body = {"success": True, "filename": file.filename, **outcome.to_dict()}
    if not outcome.comments:
        body["message"] = "No reviewer comments were found in the uploaded document."
    elif outcome.revised_content:
        body["revised_html"] = markdown.markdown(outcome.revised_content)
    return body


@app.post("/api/documents/generate")
async def api_generate_document(payload: dict = Body(...)):
    try:
        document = await run_in_threadpool(generate_from_dict, payload)
    except DocumentGenerationError as exc:
        return _error(400, str(exc), "generation_error")
    except Exception as exc:
        return _unexpected(exc)
    return document.to_dict()


@app.post("/api/documents/download")
async def api_download_document(payload: dict = Body(...)):
    try:
        document = await run_in_threadpool(generate_from_dict, payload)
    except DocumentGenerationError as exc:
        return _error(400, str(exc), "generation_error")
    except Exception as exc:
        return _unexpected(exc)
    filename = Path(document.filename).name
    return Response(
        content=document.content,
        media_type=DOCX_MIME_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
