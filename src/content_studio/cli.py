from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .config import configure_logging, get_settings
from .exceptions import ContentStudioError
from .llm_review import CommentReviewer, review_comments
from .normalizer import normalize_content
from .parser import comments_to_json, extract_comments
from .response import extract_response_content
from .writer import generate_from_dict


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="content-studio",
        description="Normalize AI content, read DOCX reviewer comments and build branded documents.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    comments = subparsers.add_parser("comments", help="Print the reviewer comments in a DOCX as JSON.")
    comments.add_argument("docx_path", type=Path, help="Path to the reviewed DOCX file.")
    comments.add_argument(
        "--analyze",
        action="store_true",
        help="Classify the comments with Gemini and apply them to --content.",
    )
    comments.add_argument(
        "--content",
        type=Path,
        help="Markdown file holding the content the comments refer to (required with --analyze).",
    )
    comments.add_argument("--model", default=None, help="Gemini model name to use with --analyze.")
    comments.add_argument("--indent", type=int, default=2, help="Indentation for JSON output.")

    normalize = subparsers.add_parser("normalize", help="Strip generation artifacts from markdown.")
    normalize.add_argument("path", nargs="?", type=Path, help="Input file (defaults to stdin).")

    extract = subparsers.add_parser("extract", help="Extract content from an AI/workflow JSON payload.")
    extract.add_argument("path", type=Path, help="File holding the raw payload.")

    generate = subparsers.add_parser("generate", help="Generate a branded DOCX from a JSON request.")
    generate.add_argument("request_path", type=Path, help="JSON file with metadata, TOC and sections.")
    generate.add_argument("-o", "--output", type=Path, help="Output path (defaults to a name derived from the title).")

    return parser.parse_args(argv)


def _run_comments(args: argparse.Namespace) -> None:
    comments = extract_comments(args.docx_path.read_bytes())
    print(comments_to_json(comments, indent=args.indent))
    if not comments:
        print("No reviewer comments found.", file=sys.stderr)
        return
    if args.analyze:
        if not args.content:
            raise SystemExit("--content is required with --analyze")
        reviewer = CommentReviewer(model=args.model or get_settings().gemini_model)
        outcome = review_comments(comments, args.content.read_text(encoding="utf-8"), reviewer)
        print("\n--- Review ---")
        print(json.dumps(outcome.to_dict(), ensure_ascii=False, indent=args.indent))


def _run_normalize(args: argparse.Namespace) -> None:
    text = args.path.read_text(encoding="utf-8") if args.path else sys.stdin.read()
    print(normalize_content(text))


def _run_extract(args: argparse.Namespace) -> None:
    print(extract_response_content(args.path.read_text(encoding="utf-8")))


def _run_generate(args: argparse.Namespace) -> None:
    request = json.loads(args.request_path.read_text(encoding="utf-8"))
    document = generate_from_dict(request)
    output = args.output or Path(document.filename)
    output.write_bytes(document.content)
    print(str(output))


COMMANDS = {
    "comments": _run_comments,
    "normalize": _run_normalize,
    "extract": _run_extract,
    "generate": _run_generate,
}


def main(args: Optional[argparse.Namespace] = None) -> None:
    args = args or parse_args()
    load_dotenv()
    configure_logging(get_settings().log_level)
    try:
        COMMANDS[args.command](args)
    except ContentStudioError as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
