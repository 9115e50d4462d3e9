import json
import unittest

from content_studio.exceptions import UnrecognizedFormatError
from content_studio.response import (
    NO_CONTENT,
    UNEXTRACTABLE,
    ArrayEnvelope,
    ObjectEnvelope,
    PlainTextEnvelope,
    extract_response_content,
    find_content_field,
    parse_envelope,
)


class TestExtractResponseContent(unittest.TestCase):
    def test_plain_string_is_returned(self):
        self.assertEqual(extract_response_content("hello"), "hello")

    def test_object_field_priority(self):
        self.assertEqual(extract_response_content({"content": "A", "output": "B"}), "A")
        self.assertEqual(extract_response_content({"text": "T", "output": "B"}), "B")

    def test_blank_fields_are_skipped(self):
        self.assertEqual(extract_response_content({"content": "   ", "message": "M"}), "M")

    def test_nested_object(self):
        payload = {"data": {"data": {"content": "deep"}}}
        self.assertEqual(extract_response_content(payload), "deep")

    def test_shallow_match_wins(self):
        payload = {"a": {"b": {"content": "deep"}}, "c": {"output": "shallow"}}
        self.assertEqual(extract_response_content(payload), "shallow")

    def test_searches_inside_lists_in_objects(self):
        payload = {"choices": [{"message": {"content": "from choice"}}]}
        self.assertEqual(extract_response_content(payload), "from choice")

    def test_object_without_content_is_dumped(self):
        payload = {"status": "ok", "count": 2}
        self.assertEqual(extract_response_content(payload), json.dumps(payload, indent=2))

    def test_cyclic_object_does_not_loop(self):
        payload = {"name": "x"}
        payload["self"] = payload
        payload["inner"] = {"output": "found"}
        self.assertEqual(extract_response_content(payload), "found")

    def test_array_duplicates_collapse(self):
        self.assertEqual(extract_response_content(["same text", "same text"]), "same text")

    def test_array_long_prefix_duplicates_collapse(self):
        prefix = "x" * 120
        result = extract_response_content([prefix + " first", prefix + " second"])
        self.assertEqual(result, prefix + " first")

    def test_array_distinct_items_are_joined(self):
        result = extract_response_content([{"output": "one"}, {"output": "two"}])
        self.assertEqual(result, "one\n\n---\n\ntwo")

    def test_empty_array_returns_sentinel(self):
        self.assertEqual(extract_response_content([]), NO_CONTENT)
        self.assertEqual(extract_response_content(["", "  "]), NO_CONTENT)

    def test_json_string_is_parsed(self):
        self.assertEqual(extract_response_content('[{"output": "from json"}]'), "from json")
        self.assertEqual(extract_response_content('  {"response": "r"}  '), "r")

    def test_malformed_json_string_is_returned_verbatim(self):
        raw = "{not json}"
        self.assertEqual(extract_response_content(raw), raw)

    def test_other_types_return_sentinel(self):
        self.assertEqual(extract_response_content(42), UNEXTRACTABLE)
        self.assertEqual(extract_response_content(None), UNEXTRACTABLE)


class TestParseEnvelope(unittest.TestCase):
    def test_variants(self):
        self.assertIsInstance(parse_envelope("text"), PlainTextEnvelope)
        self.assertIsInstance(parse_envelope({"a": 1}), ObjectEnvelope)
        self.assertIsInstance(parse_envelope([1]), ArrayEnvelope)
        self.assertIsInstance(parse_envelope('{"a": 1}'), ObjectEnvelope)

    def test_unrecognized_format(self):
        with self.assertRaises(UnrecognizedFormatError):
            parse_envelope(3.5)

    def test_find_content_field_returns_none(self):
        self.assertIsNone(find_content_field({"a": {"b": 1}}))


if __name__ == "__main__":
    unittest.main()
