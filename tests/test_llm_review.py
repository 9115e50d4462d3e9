import json
import os
import unittest
from unittest import mock

from content_studio.exceptions import LLMResponseError
from content_studio.llm_review import (
    CommentReviewer,
    FeedbackPattern,
    ProcessedComment,
    filter_new_patterns,
    is_duplicate_pattern,
    parse_json_response,
    process_docx_review,
    review_comments,
)
from content_studio.parser import ExtractedComment

from test_parser import COMMENTS_XML, build_docx


def comment(text, author="Dana"):
    return ExtractedComment(author=author, date="2025-01-02", comment_text=text)


def processed(severity="major", category="tone"):
    return ProcessedComment(
        original=comment("x"),
        category=category,
        severity=severity,
        issue="Too salesy",
        instruction="Tone it down",
        action_type="modify",
    )


class FakeResponse:
    def __init__(self, text):
        self.text = text


class ReviewerTestCase(unittest.TestCase):
    """Patch the Gemini SDK and queue canned answers."""

    def setUp(self):
        env = mock.patch.dict(os.environ, {"GOOGLE_API_KEY": "test-key"})
        env.start()
        self.addCleanup(env.stop)
        genai_patch = mock.patch("content_studio.llm_review.genai")
        self.genai = genai_patch.start()
        self.addCleanup(genai_patch.stop)
        self.model = self.genai.GenerativeModel.return_value

    def answer(self, *texts):
        self.model.generate_content.side_effect = [FakeResponse(t) for t in texts]


class TestProcessedComment(unittest.TestCase):
    def test_valid_values_are_kept(self):
        item = {
            "category": "Accuracy",
            "severity": "critical",
            "issue": "Wrong number",
            "instruction": "Fix it",
            "action_type": "conditional",
            "decision_needed": "Which price applies?",
            "conservative_action": "Remove the price",
        }
        result = ProcessedComment.from_llm(item, comment("price?"))
        self.assertEqual(result.category, "accuracy")
        self.assertEqual(result.action_type, "conditional")
        self.assertEqual(result.decision_needed, "Which price applies?")
        self.assertEqual(result.conservative_action, "Remove the price")

    def test_unknown_values_are_defaulted(self):
        item = {"category": "vibes", "severity": "huge", "action_type": "rewrite"}
        with self.assertLogs("content_studio.llm_review", level="WARNING"):
            result = ProcessedComment.from_llm(item, comment("?"))
        self.assertEqual(result.category, "general")
        self.assertEqual(result.severity, "suggestion")
        self.assertEqual(result.action_type, "clarify")
        self.assertIsNone(result.decision_needed)


class TestPatterns(unittest.TestCase):
    def test_similar_pattern_of_same_type_is_duplicate(self):
        existing = [FeedbackPattern("tone", "avoid overly salesy language", "x")]
        new = FeedbackPattern("tone", "Avoid overly salesy language here", "y")
        self.assertTrue(is_duplicate_pattern(new, existing))

    def test_other_type_is_not_duplicate(self):
        existing = [FeedbackPattern("style", "avoid overly salesy language", "x")]
        new = FeedbackPattern("tone", "avoid overly salesy language", "y")
        self.assertFalse(is_duplicate_pattern(new, existing))

    def test_filter_new_patterns_dedups_within_batch(self):
        patterns = [
            FeedbackPattern("tone", "avoid jargon", "a"),
            FeedbackPattern("tone", "avoid jargon", "b"),
            FeedbackPattern("accuracy", "cite sources for statistics", "c"),
        ]
        fresh = filter_new_patterns(patterns)
        self.assertEqual([p.feedback_instruction for p in fresh], ["a", "c"])


class TestParseJsonResponse(unittest.TestCase):
    def test_fenced_json(self):
        self.assertEqual(parse_json_response('```json\n{"a": 1}\n```'), {"a": 1})

    def test_fence_with_any_language_tag(self):
        for tag in ("JSON", "javascript", ""):
            with self.subTest(tag=tag):
                self.assertEqual(parse_json_response(f"```{tag}\n[1, 2]\n```\n"), [1, 2])

    def test_plain_json(self):
        self.assertEqual(parse_json_response('{"a": 1}'), {"a": 1})

    def test_invalid_json(self):
        with self.assertRaises(LLMResponseError):
            parse_json_response("not json")
        with self.assertRaises(LLMResponseError):
            parse_json_response("")


class TestCommentReviewer(ReviewerTestCase):
    def test_requires_api_key(self):
        with mock.patch.dict(os.environ, {"GOOGLE_API_KEY": ""}), mock.patch(
            "content_studio.llm_review.load_dotenv"
        ):
            with self.assertRaises(RuntimeError):
                CommentReviewer()

    def test_analyze_maps_indices(self):
        self.answer(json.dumps({"analyzed_comments": [
            {"index": 2, "category": "tone", "severity": "minor", "issue": "i2",
             "instruction": "f2", "action_type": "remove"},
            {"index": 9, "category": "tone", "severity": "minor", "issue": "bad",
             "instruction": "bad", "action_type": "remove"},
            {"index": 1, "category": "style", "severity": "major", "issue": "i1",
             "instruction": "f1", "action_type": "add"},
        ]}))
        comments = [comment("first"), comment("second")]
        result = CommentReviewer().analyze(comments, "Body")
        self.assertEqual([p.original.comment_text for p in result], ["second", "first"])
        self.assertEqual([p.action_type for p in result], ["remove", "add"])

    def test_analyze_reads_fenced_json(self):
        self.answer("```json\n" + json.dumps({"analyzed_comments": [
            {"index": 1, "category": "tone", "severity": "minor", "issue": "i",
             "instruction": "f", "action_type": "modify"},
        ]}) + "\n```")
        result = CommentReviewer().analyze([comment("only")], "Body")
        self.assertEqual([p.original.comment_text for p in result], ["only"])

    def test_analyze_ignores_boolean_index(self):
        self.answer(json.dumps({"analyzed_comments": [
            {"index": True, "category": "tone", "severity": "minor", "issue": "i",
             "instruction": "f", "action_type": "modify"},
        ]}))
        self.assertEqual(CommentReviewer().analyze([comment("only")], "Body"), [])

    def test_analyze_rejects_wrong_shape(self):
        self.answer(json.dumps({"something": []}))
        with self.assertRaises(LLMResponseError):
            CommentReviewer().analyze([comment("a")], "Body")

    def test_revise_normalizes_output(self):
        self.answer("```markdown\n# Revised\n\nBetter &amp; clearer\n```")
        revised = CommentReviewer().revise("# Old", [processed()])
        self.assertEqual(revised, "# Revised\n\nBetter & clearer")

    def test_revise_falls_back_to_original(self):
        self.answer("")
        self.assertEqual(CommentReviewer().revise("# Old", [processed()]), "# Old")

    def test_extract_patterns_skips_minor_feedback(self):
        result = CommentReviewer().extract_patterns([processed(severity="minor")])
        self.assertEqual(result, [])
        self.model.generate_content.assert_not_called()

    def test_process_docx_review(self):
        self.answer(
            json.dumps({"analyzed_comments": [
                {"index": 1, "category": "tone", "severity": "major", "issue": "Too absolute",
                 "instruction": "Soften the claim", "action_type": "modify"},
                {"index": 2, "category": "accuracy", "severity": "critical", "issue": "Price",
                 "instruction": "Verify price", "action_type": "conditional",
                 "decision_needed": "Confirm list price", "conservative_action": "Drop the number"},
            ]}),
            "Our platform secures cloud workloads.",
            json.dumps({"patterns": [
                {"feedback_type": "tone", "feedback_pattern": "absolute security claims",
                 "feedback_instruction": "Soften", "priority": "high"},
                {"feedback_type": "accuracy", "feedback_pattern": "unverified prices",
                 "feedback_instruction": "Verify", "priority": "high"},
            ]}),
        )
        existing = [FeedbackPattern("accuracy", "unverified prices", "old")]
        outcome = process_docx_review(
            build_docx(COMMENTS_XML), "Our platform secures every cloud workload.",
            CommentReviewer(), existing_patterns=existing,
        )
        self.assertEqual(len(outcome.comments), 2)
        self.assertEqual(outcome.revised_content, "Our platform secures cloud workloads.")
        self.assertEqual([p.feedback_pattern for p in outcome.patterns], ["absolute security claims"])
        summary = outcome.to_dict()
        self.assertEqual(summary["comments_processed"], 2)
        self.assertEqual(summary["comments"][1]["decision_needed"], "Confirm list price")

    def test_review_comments_uses_given_comments(self):
        self.answer(
            json.dumps({"analyzed_comments": [
                {"index": 1, "category": "style", "severity": "minor", "issue": "i",
                 "instruction": "f", "action_type": "modify"},
            ]}),
            "Revised body.",
        )
        with mock.patch("content_studio.llm_review.extract_comments") as extract:
            outcome = review_comments([comment("Shorter")], "Body", CommentReviewer())
        extract.assert_not_called()
        self.assertEqual(outcome.revised_content, "Revised body.")
        self.assertEqual(outcome.patterns, [])
        self.assertEqual(self.model.generate_content.call_count, 2)

    def test_process_docx_review_without_comments(self):
        outcome = process_docx_review(build_docx(), "Body", CommentReviewer())
        self.assertEqual(outcome.comments, [])
        self.assertIsNone(outcome.revised_content)
        self.model.generate_content.assert_not_called()


if __name__ == "__main__":
    unittest.main()
