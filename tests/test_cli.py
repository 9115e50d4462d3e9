import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest import mock

from docx import Document

from content_studio.cli import main, parse_args
from content_studio.llm_review import ReviewOutcome

from test_parser import COMMENTS_XML, build_docx


def run(argv):
    out = io.StringIO()
    with redirect_stdout(out):
        main(parse_args(argv))
    return out.getvalue()


class TestCli(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.dir = Path(self.tmp.name)

    def test_normalize_file(self):
        path = self.dir / "post.md"
        path.write_text("```markdown\n# Title\n\nBody\n```", encoding="utf-8")
        self.assertEqual(run(["normalize", str(path)]), "# Title\n\nBody\n")

    def test_extract(self):
        path = self.dir / "payload.json"
        path.write_text(json.dumps({"data": {"output": "hello"}}), encoding="utf-8")
        self.assertEqual(run(["extract", str(path)]), "hello\n")

    def test_comments(self):
        path = self.dir / "review.docx"
        path.write_bytes(build_docx(COMMENTS_XML))
        comments = json.loads(run(["comments", str(path)]))
        self.assertEqual([c["comment_text"] for c in comments], ["Too absolute", "Check the price."])

    def test_comments_analyze_reuses_extracted_comments(self):
        path = self.dir / "review.docx"
        path.write_bytes(build_docx(COMMENTS_XML))
        content = self.dir / "post.md"
        content.write_text("# Post", encoding="utf-8")
        with mock.patch("content_studio.cli.CommentReviewer") as reviewer_cls, mock.patch(
            "content_studio.cli.review_comments", return_value=ReviewOutcome(comments=[])
        ) as review:
            output = run(["comments", str(path), "--analyze", "--content", str(content)])
        comments, text, reviewer = review.call_args[0]
        self.assertEqual([c.comment_text for c in comments], ["Too absolute", "Check the price."])
        self.assertEqual(text, "# Post")
        self.assertIs(reviewer, reviewer_cls.return_value)
        self.assertIn("--- Review ---", output)

    def test_comments_on_invalid_file_exits(self):
        path = self.dir / "broken.docx"
        path.write_bytes(b"nope")
        with redirect_stderr(io.StringIO()), self.assertRaises(SystemExit) as ctx:
            run(["comments", str(path)])
        self.assertEqual(ctx.exception.code, 1)

    def test_generate(self):
        request = self.dir / "request.json"
        request.write_text(json.dumps({
            "metadata": {"title": "Launch Plan", "category": "Plan"},
            "sections": [{"type": "text", "content": "Step one."}],
        }), encoding="utf-8")
        output = self.dir / "out.docx"
        self.assertEqual(run(["generate", str(request), "-o", str(output)]).strip(), str(output))
        doc = Document(str(output))
        self.assertIn("Step one.", [p.text for p in doc.paragraphs])

    def test_generate_default_filename(self):
        request = self.dir / "request.json"
        request.write_text(json.dumps({"metadata": {"title": "Launch Plan", "category": "Plan"}}),
                           encoding="utf-8")
        cwd = os.getcwd()
        os.chdir(self.dir)
        self.addCleanup(os.chdir, cwd)
        run(["generate", str(request)])
        self.assertTrue((self.dir / "Launch_Plan.docx").exists())


if __name__ == "__main__":
    unittest.main()
