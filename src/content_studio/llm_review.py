from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

import google.generativeai as genai
from dotenv import load_dotenv

from .config import DEFAULT_MODEL
from .exceptions import LLMResponseError
from .normalizer import normalize_content
from .parser import ExtractedComment, extract_comments

logger = logging.getLogger(__name__)

CATEGORIES = ("style", "accuracy", "tone", "structure", "messaging", "general")
SEVERITIES = ("critical", "major", "minor", "suggestion")
ACTION_TYPES = ("modify", "remove", "add", "conditional", "clarify")
PRIORITIES = ("high", "medium", "low")

# Only this much of the reviewed content is sent along with the comments.
CONTENT_PREVIEW_CHARS = 4000
PATTERN_SIMILARITY_THRESHOLD = 0.6

# Any language tag is accepted here; models usually answer with ```json.
JSON_FENCE = re.compile(r"\A\s*```[\w+-]*[ \t]*\n(.*?)\n[ \t]*```\s*\Z", re.DOTALL)


def _choice(value: Any, allowed: Sequence[str], default: str, label: str) -> str:
    if isinstance(value, str) and value.lower() in allowed:
        return value.lower()
    logger.warning("Classifier returned unknown %s %r; using %r", label, value, default)
    return default


def _optional_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


@dataclass
class ProcessedComment:
    original: ExtractedComment
    category: str
    severity: str
    issue: str
    instruction: str
    action_type: str
    decision_needed: Optional[str] = None
    conservative_action: Optional[str] = None

    @classmethod
    def from_llm(cls, item: Dict[str, Any], original: ExtractedComment) -> "ProcessedComment":
        return cls(
            original=original,
            category=_choice(item.get("category"), CATEGORIES, "general", "category"),
            severity=_choice(item.get("severity"), SEVERITIES, "suggestion", "severity"),
            issue=str(item.get("issue") or ""),
            instruction=str(item.get("instruction") or ""),
            action_type=_choice(item.get("action_type"), ACTION_TYPES, "clarify", "action_type"),
            decision_needed=_optional_text(item.get("decision_needed")),
            conservative_action=_optional_text(item.get("conservative_action")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original": self.original.to_dict(),
            "category": self.category,
            "severity": self.severity,
            "issue": self.issue,
            "instruction": self.instruction,
            "action_type": self.action_type,
            "decision_needed": self.decision_needed,
            "conservative_action": self.conservative_action,
        }


@dataclass
class FeedbackPattern:
    feedback_type: str
    feedback_pattern: str
    feedback_instruction: str
    priority: str = "medium"

    @classmethod
    def from_llm(cls, item: Dict[str, Any]) -> "FeedbackPattern":
        return cls(
            feedback_type=_choice(item.get("feedback_type"), CATEGORIES, "general", "feedback_type"),
            feedback_pattern=str(item.get("feedback_pattern") or "")[:100],
            feedback_instruction=str(item.get("feedback_instruction") or "")[:200],
            priority=_choice(item.get("priority"), PRIORITIES, "medium", "priority"),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "feedback_type": self.feedback_type,
            "feedback_pattern": self.feedback_pattern,
            "feedback_instruction": self.feedback_instruction,
            "priority": self.priority,
        }


@dataclass
class ReviewOutcome:
    comments: List[ExtractedComment]
    processed: List[ProcessedComment] = field(default_factory=list)
    revised_content: Optional[str] = None
    patterns: List[FeedbackPattern] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "comments_processed": len(self.comments),
            "comments": [c.to_dict() for c in self.processed],
            "revised_content": self.revised_content,
            "patterns_created": len(self.patterns),
            "patterns": [p.to_dict() for p in self.patterns],
        }


def _word_similarity(a: str, b: str) -> float:
    words_a = set(a.lower().split())
    words_b = set(b.lower().split())
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / max(len(words_a), len(words_b))


def is_duplicate_pattern(pattern: FeedbackPattern, existing: Iterable[FeedbackPattern]) -> bool:
    """True when an existing pattern of the same type shares most of its words."""
    for other in existing:
        if other.feedback_type != pattern.feedback_type:
            continue
        similarity = _word_similarity(pattern.feedback_pattern, other.feedback_pattern)
        if similarity > PATTERN_SIMILARITY_THRESHOLD:
            return True
    return False


def filter_new_patterns(
    patterns: Iterable[FeedbackPattern], existing: Iterable[FeedbackPattern] = ()
) -> List[FeedbackPattern]:
    known = list(existing)
    fresh: List[FeedbackPattern] = []
    for pattern in patterns:
        if is_duplicate_pattern(pattern, known):
            logger.info("Skipping duplicate feedback pattern %r", pattern.feedback_pattern)
            continue
        fresh.append(pattern)
        known.append(pattern)
    return fresh


def parse_json_response(text: Optional[str]) -> Any:
    """Decode JSON from an LLM answer, tolerating a wrapping code fence."""
    if not text or not text.strip():
        raise LLMResponseError("LLM returned an empty response")
    match = JSON_FENCE.match(text)
    candidate = match.group(1) if match else text
    try:
        return json.loads(candidate)
    except ValueError as exc:
        raise LLMResponseError(f"LLM response is not valid JSON: {exc}") from exc


def _items(payload: Any, key: str) -> List[Dict[str, Any]]:
    if isinstance(payload, dict):
        payload = payload.get(key)
    if not isinstance(payload, list):
        raise LLMResponseError(f"LLM response has no {key!r} list")
    return [item for item in payload if isinstance(item, dict)]


class CommentReviewer:
    """Small wrapper around Gemini to classify reviewer comments and apply them."""

    def __init__(self, model: str = DEFAULT_MODEL):
        load_dotenv()
        api_key = os.getenv("GOOGLE_API_KEY")
        if not api_key:
            raise RuntimeError("GOOGLE_API_KEY is not set")
        genai.configure(api_key=api_key)
        self.model_name = model

    def _generate(self, system_instruction: str, prompt: str, as_json: bool) -> str:
        model = genai.GenerativeModel(self.model_name, system_instruction=system_instruction)
        if as_json:
            response = model.generate_content(
                prompt,
                generation_config=genai.types.GenerationConfig(
                    response_mime_type="application/json"
                ),
            )
        else:
            response = model.generate_content(
                prompt,
                generation_config=genai.types.GenerationConfig(temperature=0.3),
            )
        return response.text or ""

    def analyze(self, comments: List[ExtractedComment], content: str) -> List[ProcessedComment]:
        """Categorise each reviewer comment and turn it into an instruction."""
        if not comments:
            return []
        prompt = build_analysis_prompt(comments, content)
        payload = parse_json_response(self._generate(ANALYSIS_INSTRUCTION, prompt, as_json=True))

        processed: List[ProcessedComment] = []
        for item in _items(payload, "analyzed_comments"):
            index = item.get("index")
            valid = isinstance(index, int) and not isinstance(index, bool)
            if not valid or not 1 <= index <= len(comments):
                logger.warning("Ignoring classification with out-of-range index %r", index)
                continue
            processed.append(ProcessedComment.from_llm(item, comments[index - 1]))
        logger.info("Analyzed %d of %d comments", len(processed), len(comments))
        return processed

    def revise(self, content: str, processed: List[ProcessedComment]) -> str:
        """Apply the processed feedback to the content and return clean markdown."""
        if not processed:
            return content
        prompt = build_revision_prompt(content, processed)
        revised = normalize_content(self._generate(REVISION_INSTRUCTION, prompt, as_json=False))
        return revised or content

    def extract_patterns(self, processed: List[ProcessedComment]) -> List[FeedbackPattern]:
        significant = [c for c in processed if c.severity in ("critical", "major")]
        if not significant:
            return []
        prompt = build_pattern_prompt(significant)
        payload = parse_json_response(self._generate(PATTERN_INSTRUCTION, prompt, as_json=True))
        return [FeedbackPattern.from_llm(item) for item in _items(payload, "patterns")]


def process_docx_review(
    data: bytes,
    content: str,
    reviewer: CommentReviewer,
    existing_patterns: Iterable[FeedbackPattern] = (),
) -> ReviewOutcome:
    """Extract comments from a reviewed DOCX and apply them to ``content``.

    A document without reviewer comments produces an outcome with an empty
    comment list and no LLM calls.
    """
    return review_comments(extract_comments(data), content, reviewer, existing_patterns)


def review_comments(
    comments: List[ExtractedComment],
    content: str,
    reviewer: CommentReviewer,
    existing_patterns: Iterable[FeedbackPattern] = (),
) -> ReviewOutcome:
    """Run classification, revision and pattern extraction on extracted comments."""
    if not comments:
        return ReviewOutcome(comments=[])
    processed = reviewer.analyze(comments, content)
    revised = reviewer.revise(content, processed)
    patterns = filter_new_patterns(reviewer.extract_patterns(processed), existing_patterns)
    logger.info(
        "Review processed: %d comments, %d new patterns", len(comments), len(patterns)
    )
    return ReviewOutcome(
        comments=comments, processed=processed, revised_content=revised, patterns=patterns
    )


def build_analysis_prompt(comments: List[ExtractedComment], content: str) -> str:
    lines = []
    for i, comment in enumerate(comments, start=1):
        line = f'{i}. "{comment.comment_text}" (by {comment.author or "unknown"})'
        if comment.anchor_text:
            line += f'\n   Commented text: "{comment.anchor_text}"'
        lines.append(line)
    return (
        "Content being reviewed:\n---\n"
        f"{content[:CONTENT_PREVIEW_CHARS]}\n---\n\n"
        "Comments from human reviewer:\n" + "\n".join(lines)
    )


def build_revision_prompt(content: str, processed: List[ProcessedComment]) -> str:
    feedback = []
    for i, c in enumerate(processed, start=1):
        entry = (
            f"{i}. [{c.severity.upper()}] {c.category} ({c.action_type}): {c.issue}\n"
            f"   Fix: {c.instruction}"
        )
        if c.decision_needed:
            entry += f"\n   Open decision: {c.decision_needed}"
            if c.conservative_action:
                entry += f"\n   Until decided: {c.conservative_action}"
        feedback.append(entry)
    return (
        f"Original content:\n---\n{content}\n---\n\n"
        "Reviewer feedback to apply:\n" + "\n\n".join(feedback)
    )


def build_pattern_prompt(significant: List[ProcessedComment]) -> str:
    return "Significant reviewer comments:\n" + "\n\n".join(
        f"{i}. [{c.category}] Issue: {c.issue}\n   Instruction: {c.instruction}"
        for i, c in enumerate(significant, start=1)
    )


ANALYSIS_INSTRUCTION = """\
You are an expert content reviewer. Analyze the comments a human reviewer left on
a piece of content and categorize each one.

For each comment, determine:
1. category: one of "style", "accuracy", "tone", "structure", "messaging", "general"
2. severity: one of "critical", "major", "minor", "suggestion"
3. issue: the specific issue being pointed out
4. instruction: a clear instruction for how to fix it
5. action_type: one of "modify", "remove", "add", "conditional", "clarify"
   - use "conditional" when the fix depends on a decision nobody has made yet
   - use "clarify" when the comment is a question for the author
6. decision_needed (optional): the open decision, for conditional comments
7. conservative_action (optional): the safest edit to make until it is decided

Return ONLY valid JSON in this shape:
{"analyzed_comments": [
  {"index": 1, "category": "...", "severity": "...", "issue": "...",
   "instruction": "...", "action_type": "...",
   "decision_needed": null, "conservative_action": null}
]}
"index" is the 1-based number of the comment in the input list.
"""

REVISION_INSTRUCTION = """\
You are an expert content editor. Revise the following content based on human
reviewer feedback.

Apply each piece of feedback carefully while:
- Maintaining the original voice and structure
- Preserving any embedded links and formatting
- Making targeted changes rather than rewriting everything
- Keeping the length similar to the original

Return only the revised content in markdown format, without front-matter or
code fences around it.
"""

PATTERN_INSTRUCTION = """\
You are an expert at extracting reusable feedback patterns from specific
reviewer comments.

For each significant comment, extract a general pattern that can be applied to
future content reviews. Focus on principles that apply broadly, not specific
instances. The pattern should help an AI reviewer catch similar issues.

Return ONLY valid JSON in this shape:
{"patterns": [
  {"feedback_type": "style|accuracy|tone|structure|messaging|general",
   "feedback_pattern": "what to look for (under 100 chars)",
   "feedback_instruction": "what to do when found (under 200 chars)",
   "priority": "high|medium|low"}
]}
"""
